"""
Contextual Suggestions.

Autocomplete for a partial query, drawn from (in order):

1. the session's top categories and health benefits (prefix match)
2. health dictionary keywords (prefix match)
3. the active season's suggestion phrases (substring match)
4. regional suggestion phrases for the requester's country, then the
   region's preferred categories (prefix match)
"""

from datetime import datetime
from typing import Callable, Dict, List, Optional

from config.constants import MAX_SUGGESTIONS, REGIONAL_SUGGESTIONS
from core.logging import get_logger
from search.booster import regional_preferences, season_for_month
from search.query_expander import DEFAULT_DICTIONARY, KeywordDictionary
from services.profile_store import BehaviorProfile

logger = get_logger(__name__)


class ContextualSuggester:
    """Profile-, season- and region-aware suggestions for partial queries."""

    def __init__(
        self,
        dictionary: Optional[KeywordDictionary] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.dictionary = dictionary or DEFAULT_DICTIONARY
        self._clock = clock

    def suggest(
        self,
        partial: str,
        profile: Optional[BehaviorProfile] = None,
        country: Optional[str] = None,
        region: Optional[str] = None,
        limit: int = MAX_SUGGESTIONS,
    ) -> List[str]:
        """
        Get suggestions for partial text.

        Args:
            partial: Text typed so far (case-insensitive).
            profile: Session profile snapshot, if any.
            country: Requester country for regional phrases.
            region: Requester region within the country.
            limit: Max suggestions (default 8).

        Returns:
            De-duplicated suggestions, most personal first.
        """
        text = partial.lower().strip()
        if not text:
            return []

        ordered: Dict[str, None] = {}

        if profile is not None:
            for term in profile.top_categories(3) + profile.top_benefits(3):
                if term.startswith(text):
                    ordered.setdefault(term)

        for keyword in self.dictionary.keywords:
            if keyword.startswith(text):
                ordered.setdefault(keyword)

        rule = season_for_month(self._clock().month)
        if rule is not None:
            for phrase in rule.suggestions:
                if text in phrase:
                    ordered.setdefault(phrase)

        if country:
            for phrase in REGIONAL_SUGGESTIONS.get(country.lower().strip(), ()):
                if text in phrase:
                    ordered.setdefault(phrase)
            for category in regional_preferences(country, region):
                if category.startswith(text):
                    ordered.setdefault(category)

        suggestions = list(ordered)[:limit]
        logger.debug("Suggestions", partial=text, count=len(suggestions))
        return suggestions

"""
Contextual Booster.

Applies three independent multiplicative adjustments to fused results:

- seasonal:        active-season query terms boost in-season products
- regional:        requester's (country, region) preferred categories
- personalization: session preference counters for categories/benefits

    final = hybrid * seasonal * regional * personalization

Each multiplier is clamped into [BOOST_MIN, BOOST_MAX] and falls back to a
neutral 1.0 when its computation fails. Every applied boost leaves a
label in recommendation_reason ("seasonal:immunity",
"regional:coconut", "personalized:turmeric-affinity").
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from config.constants import REGIONAL_RULES, SEASONAL_RULES, RegionalRule, SeasonalRule
from core.logging import get_logger
from core.utils import clamp
from search.types import FusedResult, ranking_key
from services.profile_store import BehaviorProfile

logger = get_logger(__name__)


BOOST_MIN = 0.5
BOOST_MAX = 2.0
PERSONALIZATION_CAP = 0.5  # at most 1.5x
PERSONALIZATION_SCALE = 0.05  # uplift per preference point
REGIONAL_MULTIPLIER = 1.2


# ============================================================================
# Rule lookups (built once)
# ============================================================================

_RULES_BY_MONTH: Dict[int, SeasonalRule] = {
    month: rule for rule in SEASONAL_RULES for month in rule.months
}

_REGIONAL_INDEX: Dict[Tuple[str, Optional[str]], RegionalRule] = {
    (rule.country, rule.region): rule for rule in REGIONAL_RULES
}


def season_for_month(month: int) -> Optional[SeasonalRule]:
    """Seasonal rule active in a calendar month (1-12)."""
    return _RULES_BY_MONTH.get(month)


def regional_preferences(
    country: Optional[str],
    region: Optional[str],
    default_multiplier: float = REGIONAL_MULTIPLIER,
) -> Dict[str, float]:
    """
    Preferred category -> multiplier for a requester location.

    Country-wide rules apply to every region; a region rule wins where it
    names the same category with a higher multiplier.
    """
    if not country:
        return {}
    country = country.lower().strip()
    prefs: Dict[str, float] = {}
    keys = [(country, None)]
    if region:
        keys.append((country, region.lower().strip()))
    for key in keys:
        rule = _REGIONAL_INDEX.get(key)
        if rule is None:
            continue
        for category, multiplier in rule.categories.items():
            value = multiplier if multiplier is not None else default_multiplier
            prefs[category] = max(prefs.get(category, 0.0), value)
    return prefs


# ============================================================================
# Context / outcome
# ============================================================================

@dataclass
class BoostContext:
    """Per-request inputs to boosting."""
    query: str
    variants: Sequence[str] = ()  # expanded query texts
    profile: Optional[BehaviorProfile] = None
    country: Optional[str] = None
    region: Optional[str] = None
    enable_seasonal: bool = True
    enable_regional: bool = True
    enable_personalization: bool = True


@dataclass
class BoostOutcome:
    results: List[FusedResult]
    applied_context: List[str] = field(default_factory=list)
    personalized_boosts: Dict[int, float] = field(default_factory=dict)
    regional_boosts: Dict[str, float] = field(default_factory=dict)
    seasonal_boost: float = 1.0
    season: Optional[str] = None


# ============================================================================
# Booster
# ============================================================================

class ContextualBooster:
    """
    Seasonal, regional and personalized re-scoring.

    Usage:
        booster = ContextualBooster(clock=lambda: datetime(2026, 10, 1))
        outcome = booster.apply(fused, BoostContext(query="immunity tea",
                                                    profile=profile,
                                                    country="philippines"))
    """

    def __init__(
        self,
        boost_min: float = BOOST_MIN,
        boost_max: float = BOOST_MAX,
        personalization_cap: float = PERSONALIZATION_CAP,
        personalization_scale: float = PERSONALIZATION_SCALE,
        regional_multiplier: float = REGIONAL_MULTIPLIER,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.boost_min = boost_min
        self.boost_max = boost_max
        self.personalization_cap = personalization_cap
        self.personalization_scale = personalization_scale
        self.regional_multiplier = regional_multiplier
        self._clock = clock

    def _clamp(self, value: float) -> float:
        return clamp(value, self.boost_min, self.boost_max)

    def apply(self, results: List[FusedResult], context: BoostContext) -> BoostOutcome:
        """Set the three boosts on every result and re-sort by final score."""
        outcome = BoostOutcome(results=results)

        if context.enable_seasonal:
            self._guard("seasonal", self._apply_seasonal, results, context, outcome)
        if context.enable_regional:
            self._guard("regional", self._apply_regional, results, context, outcome)
        if context.enable_personalization:
            self._guard("personalization", self._apply_personalization, results, context, outcome)

        results.sort(key=lambda r: ranking_key(r, r.final_score))
        return outcome

    def _guard(self, name, fn, results, context, outcome) -> None:
        try:
            fn(results, context, outcome)
        except Exception as e:
            logger.warning("Boost computation failed, using neutral boost", boost=name, error=str(e))
            prefix = _LABEL_PREFIX[name]
            for r in results:
                setattr(r, f"{name}_boost", 1.0)
                r.recommendation_reason = [
                    label for label in r.recommendation_reason if not label.startswith(prefix)
                ]
            if name == "seasonal":
                outcome.seasonal_boost = 1.0
            elif name == "regional":
                outcome.regional_boosts.clear()
            else:
                outcome.personalized_boosts.clear()

    # ------------------------------------------------------------------
    # Seasonal
    # ------------------------------------------------------------------

    def _apply_seasonal(self, results, context: BoostContext, outcome: BoostOutcome) -> None:
        rule = season_for_month(self._clock().month)
        if rule is None:
            return
        outcome.season = rule.season

        text = " ".join([context.query, *context.variants]).lower()
        active = [term for term in rule.terms if term in text]
        if not active:
            return

        term = max(active, key=lambda t: rule.terms[t])
        multiplier = self._clamp(rule.terms[term])
        outcome.seasonal_boost = multiplier
        label = f"seasonal:{term}"
        applied = False

        for r in results:
            if r.product is None:
                continue
            in_season = bool(rule.categories.intersection(r.product.categories)) or any(
                t in r.product.search_text for t in active
            )
            if in_season:
                r.seasonal_boost = multiplier
                r.recommendation_reason.append(label)
                applied = True

        if applied:
            outcome.applied_context.append(label)

    # ------------------------------------------------------------------
    # Regional
    # ------------------------------------------------------------------

    def _apply_regional(self, results, context: BoostContext, outcome: BoostOutcome) -> None:
        prefs = regional_preferences(context.country, context.region, self.regional_multiplier)
        if not prefs:
            return

        for r in results:
            if r.product is None:
                continue
            terms = set(r.product.categories) | set(r.product.tags)
            matching = [c for c in prefs if c in terms]
            if not matching:
                continue
            category = max(matching, key=lambda c: (prefs[c], c))
            r.regional_boost = self._clamp(prefs[category])
            r.recommendation_reason.append(f"regional:{category}")
            outcome.regional_boosts[category] = r.regional_boost

        for category in sorted(outcome.regional_boosts):
            outcome.applied_context.append(f"regional:{category}")

    # ------------------------------------------------------------------
    # Personalization
    # ------------------------------------------------------------------

    def _apply_personalization(self, results, context: BoostContext, outcome: BoostOutcome) -> None:
        profile = context.profile
        if profile is None or profile.is_empty:
            return

        applied = False
        for r in results:
            if r.product is None:
                continue
            contributions: Dict[str, float] = {}
            for category in r.product.categories:
                weight = profile.category_preferences.get(category, 0.0)
                if weight > 0:
                    contributions[category] = contributions.get(category, 0.0) + weight
            for benefit in r.product.health_benefits:
                weight = profile.benefit_preferences.get(benefit, 0.0)
                if weight > 0:
                    contributions[benefit] = contributions.get(benefit, 0.0) + weight
            if not contributions:
                continue

            uplift = min(self.personalization_cap, self.personalization_scale * sum(contributions.values()))
            boost = self._clamp(1.0 + uplift)
            if boost == 1.0:
                continue
            key = max(contributions, key=lambda k: (contributions[k], k))
            r.personalization_boost = boost
            r.recommendation_reason.append(f"personalized:{key.replace(' ', '-')}-affinity")
            outcome.personalized_boosts[r.product_id] = boost
            applied = True

        if applied:
            outcome.applied_context.append("personalized")


_LABEL_PREFIX = {
    "seasonal": "seasonal:",
    "regional": "regional:",
    "personalization": "personalized:",
}

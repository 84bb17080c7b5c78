"""
Query Expander.

Maps a raw query to expanded variants using the static health keyword
dictionary (nutrients, benefits, conditions, properties):

- "turmeric anti inflammatory" matches the benefits entry
  "anti-inflammatory" and yields variants such as
  "turmeric anti inflammatory anti-inflammatory" and
  "turmeric anti inflammatory inflammation".
- Two-term variants combine matched entries from different categories
  ("ginger tea for cough immunity" -> "... respiratory immune").
- A query that already holds every expansion term of its matched entries
  expands to itself only.

The dictionary is compiled once into an immutable keyword map plus a
single overlapping-match regex, so matching is one scan of the query.
"""

import re
from collections import Counter
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from config.constants import CATEGORY_RELATIONS, HEALTH_KEYWORDS, KEYWORD_CATEGORIES
from core.logging import get_logger
from search.types import SearchIntent
from services.profile_store import BehaviorProfile

logger = get_logger(__name__)


_CATEGORY_INTENTS: Dict[str, SearchIntent] = {
    "nutrients": SearchIntent.NUTRIENT,
    "benefits": SearchIntent.HEALTH_BENEFIT,
    "conditions": SearchIntent.CONDITION,
    "properties": SearchIntent.PROPERTY,
}


@dataclass(frozen=True)
class KeywordEntry:
    """One dictionary entry: canonical term plus synonyms, all lowercase."""
    category: str
    canonical: str
    keywords: Tuple[str, ...]  # canonical first


@dataclass(frozen=True)
class KeywordMatch:
    keyword: str  # the text found in the query
    entry: KeywordEntry


@dataclass(frozen=True)
class QueryVariant:
    """A query phrasing tagged with the dictionary keywords behind it."""
    text: str
    keywords: Tuple[str, ...] = ()


# ============================================================================
# Compiled dictionary
# ============================================================================

class KeywordDictionary:
    """Immutable, pre-compiled view of the health keyword tables."""

    def __init__(self, tables: Mapping[str, Mapping[str, Sequence[str]]]):
        entries: List[KeywordEntry] = []
        by_keyword: Dict[str, KeywordEntry] = {}
        for category in KEYWORD_CATEGORIES:
            for canonical, synonyms in tables.get(category, {}).items():
                keywords = tuple(dict.fromkeys([canonical.lower(), *(s.lower() for s in synonyms)]))
                entry = KeywordEntry(category=category, canonical=canonical.lower(), keywords=keywords)
                entries.append(entry)
                for kw in keywords:
                    # First category wins for a keyword listed twice
                    by_keyword.setdefault(kw, entry)

        self._entries: Tuple[KeywordEntry, ...] = tuple(entries)
        self._by_keyword: Mapping[str, KeywordEntry] = MappingProxyType(by_keyword)

        # Longest-first alternation inside a lookahead reports the longest
        # keyword starting at every position, overlaps included.
        alternation = "|".join(
            re.escape(kw) for kw in sorted(by_keyword, key=len, reverse=True)
        )
        self._pattern: Optional[re.Pattern] = (
            re.compile(f"(?=({alternation}))") if alternation else None
        )

    @property
    def entries(self) -> Tuple[KeywordEntry, ...]:
        return self._entries

    @property
    def keywords(self) -> Tuple[str, ...]:
        return tuple(sorted(self._by_keyword))

    def lookup(self, keyword: str) -> Optional[KeywordEntry]:
        return self._by_keyword.get(keyword.lower())

    def match(self, text: str) -> List[KeywordMatch]:
        """Entries whose keywords occur in text, in order of first occurrence.

        Each entry is reported once, with the first keyword that hit it.
        """
        if not self._pattern or not text:
            return []
        seen = set()
        matches: List[KeywordMatch] = []
        for m in self._pattern.finditer(text.lower()):
            keyword = m.group(1)
            entry = self._by_keyword[keyword]
            if entry.canonical in seen:
                continue
            seen.add(entry.canonical)
            matches.append(KeywordMatch(keyword=keyword, entry=entry))
        return matches


DEFAULT_DICTIONARY = KeywordDictionary(HEALTH_KEYWORDS)


# ============================================================================
# Expander
# ============================================================================

def _truncate(text: str, max_length: int) -> str:
    """Cut text to max_length, preferring the last word boundary."""
    if len(text) <= max_length:
        return text
    cut = text[:max_length]
    if text[max_length] == " ":
        return cut.rstrip()
    head, sep, _ = cut.rpartition(" ")
    return head.rstrip() if sep and head.strip() else cut.rstrip()


def related_categories(
    query: str,
    profile: Optional[BehaviorProfile],
    relations: Mapping[str, Sequence[str]] = CATEGORY_RELATIONS,
    top_n: int = 3,
) -> List[str]:
    """The profile's top categories that the query relates to but does not name."""
    if profile is None:
        return []
    lowered = query.lower()
    return [
        category
        for category in profile.top_categories(top_n)
        if category not in lowered and any(term in lowered for term in relations.get(category, ()))
    ]


class QueryExpander:
    """
    Expand queries into variants using the keyword dictionary.

    Never fails: a query without matches expands to itself only.
    """

    def __init__(
        self,
        dictionary: Optional[KeywordDictionary] = None,
        max_variants: int = 5,
        max_variant_length: int = 200,
    ):
        self.dictionary = dictionary or DEFAULT_DICTIONARY
        self.max_variants = max_variants
        self.max_variant_length = max_variant_length

    def match(self, query: str) -> List[KeywordMatch]:
        return self.dictionary.match(query)

    def expand(self, query: str, profile: Optional[BehaviorProfile] = None) -> List[QueryVariant]:
        """
        Return the original query first, then up to max_variants variants.

        With a profile, the session's top categories that the query relates
        to come first. Single-term variants follow (round-robin over matched
        entries), then two-term variants pairing entries of different
        categories.
        """
        base = query.strip()
        matches = self.match(base)
        original = QueryVariant(text=base, keywords=tuple(m.keyword for m in matches))
        if self.max_variants <= 0 or len(base) + 2 > self.max_variant_length:
            return [original]

        lowered = base.lower()
        variants: List[QueryVariant] = [original]
        seen = {lowered}

        def _add(text: str, keywords: Tuple[str, ...]) -> bool:
            text = _truncate(text, self.max_variant_length)
            key = text.lower()
            if key in seen:
                return False
            seen.add(key)
            variants.append(QueryVariant(text=text, keywords=keywords))
            return len(variants) - 1 >= self.max_variants

        for category in related_categories(lowered, profile):
            if _add(f"{base} {category}", (category,)):
                return variants

        # Expansion terms per matched entry, skipping terms already present
        pending: List[Tuple[KeywordMatch, List[str]]] = []
        for m in matches:
            terms = [kw for kw in m.entry.keywords if kw not in lowered]
            if terms:
                pending.append((m, terms))
        if not pending:
            return variants

        depth = max(len(terms) for _, terms in pending)
        for i in range(depth):
            for m, terms in pending:
                if i < len(terms) and _add(f"{base} {terms[i]}", (m.keyword,)):
                    return variants

        for a in range(len(pending)):
            for b in range(a + 1, len(pending)):
                (m1, t1), (m2, t2) = pending[a], pending[b]
                if m1.entry.category == m2.entry.category:
                    continue
                if _add(f"{base} {t1[0]} {t2[0]}", (m1.keyword, m2.keyword)):
                    return variants

        return variants

    def detect_intent(self, query: str) -> Optional[SearchIntent]:
        """Category with the most matched entries; ties go to the earlier category."""
        matches = self.match(query)
        if not matches:
            return None
        counts = Counter(m.entry.category for m in matches)
        best = max(
            KEYWORD_CATEGORIES,
            key=lambda c: (counts.get(c, 0), -KEYWORD_CATEGORIES.index(c)),
        )
        return _CATEGORY_INTENTS[best]

    def health_benefits(self, query: str) -> List[str]:
        """Canonical benefit terms mentioned by the query."""
        return [m.entry.canonical for m in self.match(query) if m.entry.category == "benefits"]

    def matched_terms(self, query: str) -> List[str]:
        """Canonical terms of every matched entry, in query order."""
        return [m.entry.canonical for m in self.match(query)]

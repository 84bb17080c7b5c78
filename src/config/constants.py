"""
Search vocabulary and contextual rule tables.

These are values that don't change based on environment but may need
to be tuned or referenced across the codebase. The tables are plain data;
search.query_expander and search.booster compile them into lookup
structures once at import time.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple


# =============================================================================
# Health Keyword Dictionary
# =============================================================================

# Keyword categories, in priority order (used to break intent ties)
KEYWORD_CATEGORIES: Tuple[str, ...] = ("nutrients", "benefits", "conditions", "properties")

# canonical term -> synonyms. Every string is lowercase.
NUTRIENT_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "antioxidants": ("antioxidant", "polyphenols", "flavonoids", "free radicals"),
    "vitamin c": ("ascorbic acid",),
    "vitamin a": ("beta-carotene", "beta carotene"),
    "curcumin": ("curcuminoids",),
    "fiber": ("fibre", "dietary fiber"),
    "protein": ("amino acids",),
    "iron": ("ferrous",),
    "omega-3": ("omega 3", "fatty acids"),
    "magnesium": (),
    "calcium": (),
    "gingerol": (),
}

BENEFIT_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "immunity": ("immune", "immune system", "immune support", "immunoboost", "defense"),
    "anti-inflammatory": ("anti inflammatory", "inflammation", "inflammatory response"),
    "digestion": ("digestive", "gut health", "intestinal"),
    "energy": ("energizing", "energy boost", "stamina", "vitality"),
    "heart health": ("cardiovascular", "cardiac", "circulation"),
    "brain health": ("cognitive", "memory", "focus", "mental clarity"),
    "weight management": ("metabolism", "weight loss", "slimming"),
    "detox": ("detoxification", "cleanse", "purify", "liver cleanse"),
    "skin health": ("complexion", "anti-aging"),
    "hydration": ("hydrating", "electrolytes"),
}

CONDITION_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "arthritis": ("joint pain", "joints", "mobility"),
    "diabetes": ("blood sugar", "glucose", "insulin", "glycemic"),
    "hypertension": ("blood pressure",),
    "respiratory": ("cough", "flu", "congestion"),
    "fatigue": ("tiredness", "exhaustion"),
    "bloating": ("indigestion", "stomach"),
    "stress": ("anxiety", "tension"),
    "insomnia": ("sleep",),
}

PROPERTY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "organic": ("natural", "pure", "chemical-free", "pesticide-free"),
    "unrefined": ("raw honey", "unprocessed", "unfiltered"),
    "gluten-free": ("gluten free",),
    "vegan": ("plant-based", "plant based"),
    "traditional": ("heritage", "authentic", "native"),
    "warming": ("warm",),
    "cooling": ("refreshing",),
    "fermented": ("probiotic",),
}

HEALTH_KEYWORDS: Dict[str, Dict[str, Tuple[str, ...]]] = {
    "nutrients": NUTRIENT_KEYWORDS,
    "benefits": BENEFIT_KEYWORDS,
    "conditions": CONDITION_KEYWORDS,
    "properties": PROPERTY_KEYWORDS,
}


# =============================================================================
# Seasonal Rules
# =============================================================================

@dataclass(frozen=True)
class SeasonalRule:
    """Boost for one season: query terms that activate it and the product
    categories it favors."""

    season: str
    months: Tuple[int, ...]
    # term -> multiplier; multipliers stay within 1.0-1.4
    terms: Dict[str, float]
    categories: FrozenSet[str]
    suggestions: Tuple[str, ...]


SEASONAL_RULES: Tuple[SeasonalRule, ...] = (
    SeasonalRule(
        season="spring",
        months=(3, 4, 5),
        terms={"detox": 1.4, "cleanse": 1.3, "energy": 1.2},
        categories=frozenset({"detox", "tea", "herbs"}),
        suggestions=("detox products", "energy boosters", "cleansing herbs", "spring wellness"),
    ),
    SeasonalRule(
        season="summer",
        months=(6, 7, 8),
        terms={"hydration": 1.4, "cooling": 1.3, "weight loss": 1.3},
        categories=frozenset({"tea", "beverages", "coconut"}),
        suggestions=("hydrating foods", "cooling herbs", "weight management", "summer nutrition"),
    ),
    SeasonalRule(
        season="autumn",
        months=(9, 10, 11),
        terms={"immunity": 1.4, "immune": 1.35, "vitamin c": 1.3},
        categories=frozenset({"immunity", "turmeric", "ginger", "honey"}),
        suggestions=("immune support", "vitamin c rich", "cold prevention", "immunity boosters"),
    ),
    SeasonalRule(
        season="winter",
        months=(12, 1, 2),
        terms={"immune support": 1.4, "warming": 1.4, "respiratory": 1.3},
        categories=frozenset({"spices", "ginger", "tea", "salabat"}),
        suggestions=("warming spices", "respiratory support", "immune system", "winter wellness"),
    ),
)


# =============================================================================
# Regional Rules
# =============================================================================

@dataclass(frozen=True)
class RegionalRule:
    """Preferred categories for requesters in a country or region.

    region None applies country-wide. A multiplier of None uses the
    configured default.
    """

    country: str
    region: Optional[str]
    categories: Dict[str, Optional[float]]


REGIONAL_RULES: Tuple[RegionalRule, ...] = (
    RegionalRule(
        country="philippines",
        region=None,
        categories={
            "rice": 1.3,
            "coconut": 1.2,
            "tropical": 1.2,
            "traditional": 1.15,
            "organic": 1.1,
        },
    ),
    RegionalRule(
        country="philippines",
        region="luzon",
        categories={"vegetables": 1.1, "highland": 1.15},
    ),
    RegionalRule(
        country="philippines",
        region="visayas",
        categories={"seafood": None, "coconut": 1.3},
    ),
    RegionalRule(
        country="philippines",
        region="mindanao",
        categories={"fruit": None, "durian": 1.4, "coffee": 1.3},
    ),
)

# country -> suggestion phrases for autocomplete
REGIONAL_SUGGESTIONS: Dict[str, Tuple[str, ...]] = {
    "philippines": (
        "traditional filipino herbs",
        "organic rice varieties",
        "coconut products",
        "tropical superfoods",
    ),
}


# =============================================================================
# Category Inference
# =============================================================================

# category -> title keywords, used when only a product title is known
CATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "spices": ("turmeric", "ginger", "cinnamon", "cumin", "pepper", "spice"),
    "honey": ("honey",),
    "rice": ("rice", "grain"),
    "herbs": ("moringa", "basil", "oregano", "thyme", "sage", "herb"),
    "tea": ("tea", "salabat", "blend", "beverage"),
    "coconut": ("coconut",),
    "turmeric": ("turmeric", "curcumin"),
    "ginger": ("ginger", "salabat"),
}

# category -> query terms that relate a query to the category; a session's
# top categories are added as expansion variants when the query relates
CATEGORY_RELATIONS: Dict[str, Tuple[str, ...]] = {
    "spices": ("seasoning", "flavor", "cooking", "culinary"),
    "honey": ("sweet", "natural sweetener", "syrup"),
    "rice": ("grain", "carbohydrate", "staple"),
    "herbs": ("medicinal", "herbal", "botanical"),
    "tea": ("beverage", "drink", "infusion"),
}


# =============================================================================
# Semantic Clustering
# =============================================================================

MAX_CLUSTERS: int = 6
MIN_CLUSTER_SIZE: int = 2

# Suggestions returned for a partial query
MAX_SUGGESTIONS: int = 8

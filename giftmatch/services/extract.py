"""Signal extraction from free-text gift requests.

Every function in this module is pure: no I/O, no randomness, no hidden state.
The same utterance always yields the same signals.
"""

import math
import re
import unicodedata
from fractions import Fraction
from typing import Iterable, NamedTuple, Optional

from giftmatch.constants import (
    APPROXIMATE_BUDGET_SPREAD,
    MAX_CATEGORIES,
    MAX_INTERESTS,
)
from giftmatch.models.domain import (
    EmotionalFlags,
    Milestone,
    MilestoneKind,
    Occasion,
    RecipientKey,
    SignalSet,
)


def normalize(text: str) -> str:
    """Lower-case, strip accents and punctuation, collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = re.sub(r"[^a-z0-9\s]", " ", stripped)
    return re.sub(r"\s+", " ", stripped).strip()


def _synonym_pattern(table: dict) -> tuple[re.Pattern, dict[str, object]]:
    """Compile a leftmost-longest alternation over every normalized synonym."""
    lookup: dict[str, object] = {}
    for key, synonyms in table.items():
        for synonym in synonyms:
            lookup.setdefault(normalize(synonym), key)
    alternation = "|".join(re.escape(s) for s in sorted(lookup, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternation})\b"), lookup


# =============================================================================
# Recipient & occasion
# =============================================================================

RECIPIENT_SYNONYMS: dict[RecipientKey, list[str]] = {
    RecipientKey.SISTER: ["sister", "sis"],
    RecipientKey.BROTHER: ["brother", "bro"],
    RecipientKey.PARTNER: ["partner", "boyfriend", "girlfriend", "fiance", "fiancé", "fiancee", "spouse"],
    RecipientKey.WIFE: ["wife"],
    RecipientKey.HUSBAND: ["husband"],
    RecipientKey.MOTHER: ["mother", "mom", "mum", "mommy", "mama"],
    RecipientKey.FATHER: ["father", "dad", "daddy", "papa"],
    RecipientKey.GRANDMA: ["grandma", "grandmother", "granny", "nana"],
    RecipientKey.GRANDPA: ["grandpa", "grandfather", "grandad", "granddad"],
    RecipientKey.NEPHEW: ["nephew"],
    RecipientKey.NIECE: ["niece"],
    RecipientKey.COUSIN: ["cousin"],
    RecipientKey.AUNT: ["aunt", "auntie"],
    RecipientKey.UNCLE: ["uncle"],
    RecipientKey.PARENT: ["parent", "parents"],
    RecipientKey.FRIEND: ["friend", "best friend", "bff", "bestie"],
    RecipientKey.COLLEAGUE: ["colleague", "coworker", "co-worker", "boss", "manager", "team", "teammate"],
    RecipientKey.DAUGHTER: ["daughter"],
    RecipientKey.SON: ["son"],
    RecipientKey.CHILD: ["child", "kid", "kids"],
}

OCCASION_SYNONYMS: dict[Occasion, list[str]] = {
    Occasion.BIRTHDAY: ["birthday", "bday", "b-day"],
    Occasion.ANNIVERSARY: ["anniversary"],
    Occasion.WEDDING: ["wedding", "bride", "groom", "marriage"],
    Occasion.CHRISTMAS: ["christmas", "xmas"],
    Occasion.VALENTINE: ["valentine", "valentines", "valentine's day"],
    Occasion.MOTHER_DAY: ["mother's day", "mothers day"],
    Occasion.FATHER_DAY: ["father's day", "fathers day"],
    Occasion.GRADUATION: ["graduation", "graduating"],
    Occasion.BABY_SHOWER: ["baby shower"],
    Occasion.HOUSEWARMING: ["housewarming", "house warming"],
    Occasion.RETIREMENT: ["retirement", "retiring"],
    Occasion.THANK_YOU: ["thank you", "thanks"],
}

_RECIPIENT_RE, _RECIPIENT_LOOKUP = _synonym_pattern(RECIPIENT_SYNONYMS)
_OCCASION_RE, _OCCASION_LOOKUP = _synonym_pattern(OCCASION_SYNONYMS)

# "mother's day" names an occasion, not necessarily the recipient
_HOLIDAY_NAMES_RE = re.compile(r"\b(?:mother s|mothers|father s|fathers) day\b")

OCCASION_KEYWORD_RE = re.compile(
    r"birthday|anniversary|wedding|holiday|valentine|thank|graduation|baby|diwali|christmas|hanukkah|eid",
    re.IGNORECASE,
)
"""Loose occasion cue used by the readiness gate in addition to stored occasions."""


def extract_recipient(text: str) -> Optional[RecipientKey]:
    """Return the first (leftmost, longest) recipient mentioned, if any."""
    ntext = normalize(text)
    for candidate in (_HOLIDAY_NAMES_RE.sub(" ", ntext), ntext):
        match = _RECIPIENT_RE.search(candidate)
        if match:
            return _RECIPIENT_LOOKUP[match.group(0)]
    return None


def extract_occasion(text: str) -> Optional[Occasion]:
    """Return the first (leftmost, longest) occasion mentioned, if any."""
    match = _OCCASION_RE.search(normalize(text))
    return _OCCASION_LOOKUP[match.group(0)] if match else None


def has_occasion_keyword(text: str) -> bool:
    return bool(OCCASION_KEYWORD_RE.search(text or ""))


# =============================================================================
# Budget
# =============================================================================


class BudgetRange(NamedTuple):
    min: Optional[float] = None
    max: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self.min is None and self.max is None


_NUM = r"\$?(\d{1,5})"

_RANGE_PATTERNS = [
    re.compile(rf"\bbetween\s*{_NUM}\s*(?:and|-|to)\s*{_NUM}\b", re.IGNORECASE),
    re.compile(rf"\b{_NUM}\s*[-–]\s*{_NUM}\b"),
    re.compile(rf"\bfrom\s*{_NUM}\s*to\s*{_NUM}\b", re.IGNORECASE),
    re.compile(r"\$(\d{1,5})\s*(?:to|and)\s*\$?(\d{1,5})\b", re.IGNORECASE),
    # Bare "X to Y" / "X and Y" only counts in a money context
    re.compile(
        rf"\b(?:budget|spend|spending)\s*(?:is|of|:)?\s*{_NUM}\s*(?:to|and|-)\s*{_NUM}\b",
        re.IGNORECASE,
    ),
    re.compile(rf"\b(\d{{1,5}})\s*(?:to|and)\s*{_NUM}\s*(?:dollars?|bucks|usd)\b", re.IGNORECASE),
]

_UNDER_RE = re.compile(rf"\b(?:under|below|less than|up to|max(?:imum)?|at most)\s*{_NUM}\b", re.IGNORECASE)
_AROUND_RE = re.compile(rf"\b(?:about|around|roughly|approx(?:\.|imate(?:ly)?)?)\s*{_NUM}\b", re.IGNORECASE)

_UPPER_BOUND_PATTERNS = [
    re.compile(rf"\bbudget\s*(?:is|of|:)?\s*{_NUM}\b", re.IGNORECASE),
    re.compile(rf"\bspend\s*{_NUM}\b", re.IGNORECASE),
    re.compile(r"\bfor\s*\$(\d{1,5})\b", re.IGNORECASE),
    re.compile(rf"\b(?:only have|just have)\s*{_NUM}\b", re.IGNORECASE),
    re.compile(r"\bgot\s*\$(\d{1,5})\b", re.IGNORECASE),
    re.compile(r"\b(\d{2,4})\s*(?:dollars?|bucks|usd)\b", re.IGNORECASE),
    re.compile(r"\$(\d{2,4})\b"),
]


def approximate_budget(amount: float) -> BudgetRange:
    """Expand "around X" into [floor(X * 0.8), ceil(X * 1.2)]."""
    spread = Fraction(str(APPROXIMATE_BUDGET_SPREAD))
    exact = Fraction(str(amount))
    return BudgetRange(
        min=float(math.floor(exact * (1 - spread))),
        max=float(math.ceil(exact * (1 + spread))),
    )


def parse_budget(text: str) -> BudgetRange:
    """Extract one budget shape from text.

    Patterns are tried in priority order and the first match wins:
    explicit ranges, "under $X", "around $X", then the remaining upper-bound
    phrasings ("budget of $X", "spend $X", "only have $X", "X dollars", "$X").
    """
    for pattern in _RANGE_PATTERNS:
        match = pattern.search(text)
        if match:
            a, b = float(match.group(1)), float(match.group(2))
            return BudgetRange(min=min(a, b), max=max(a, b))

    match = _UNDER_RE.search(text)
    if match:
        return BudgetRange(max=float(match.group(1)))

    match = _AROUND_RE.search(text)
    if match:
        return approximate_budget(float(match.group(1)))

    for pattern in _UPPER_BOUND_PATTERNS:
        match = pattern.search(text)
        if match:
            return BudgetRange(max=float(match.group(1)))

    return BudgetRange()


# =============================================================================
# Interests, categories & values
# =============================================================================

VALUE_SYNONYMS: dict[str, list[str]] = {
    "sustainable": ["eco", "eco-friendly", "sustainable", "sustainability", "green", "earth-friendly", "environmentally friendly"],
    "handmade": ["handmade", "hand-crafted", "handcrafted", "artisan", "artisanal"],
    "local": ["local", "locally", "made nearby", "shop local"],
    "vegan": ["vegan", "plant-based", "cruelty free", "cruelty-free"],
    "luxury": ["luxury", "luxurious", "premium"],
    "organic": ["organic"],
    "fair_trade": ["fair trade", "fair-trade"],
    "recycled": ["recycled", "upcycled"],
}

_VALUE_PATTERNS = {
    canonical: re.compile(r"\b(?:" + "|".join(re.escape(normalize(s)) for s in synonyms) + r")\b")
    for canonical, synonyms in VALUE_SYNONYMS.items()
}


class InterestMapping(NamedTuple):
    categories: tuple[str, ...]
    interests: tuple[str, ...]
    keywords: re.Pattern


def _kw(pattern: str) -> re.Pattern:
    return re.compile(rf"\b(?:{pattern})\b", re.IGNORECASE)


INTEREST_MAPPINGS: dict[str, InterestMapping] = {
    "gardening": InterestMapping(
        ("Flowers & Plants", "Home & Garden"), ("gardening",),
        _kw(r"garden|gardening|plant|plants|flower|flowers|seed|seeds|grow|growing|botanical|horticulture|landscap\w*"),
    ),
    "cooking": InterestMapping(
        ("Home & Garden", "Food & Beverages"), ("cooking",),
        _kw(r"cook|cooking|kitchen|baking|bake|chef|culinary|recipe|recipes|cookware|utensils?"),
    ),
    "reading": InterestMapping(
        ("Books & Media",), ("reading",),
        _kw(r"read|reading|reader|book|books|novel|novels|literature|library|bibliophile"),
    ),
    "art": InterestMapping(
        ("Art & Crafts", "Home & Garden"), ("art",),
        _kw(r"art|artist|artistic|paint|painting|draw|drawing|sketch|craft|crafting|creative"),
    ),
    "music": InterestMapping(
        ("Music & Instruments", "Electronics & Gadgets"), ("music",),
        _kw(r"music|musician|musical|instrument|guitar|piano|sing|singing|concert|vinyl|record"),
    ),
    "fitness": InterestMapping(
        ("Sports & Outdoors", "Health & Beauty"), ("fitness",),
        _kw(r"fitness|workout|exercise|gym|yoga|pilates|running|runner|athletic|sports?"),
    ),
    "travel": InterestMapping(
        ("Travel & Luggage", "Books & Media"), ("travel",),
        _kw(r"travel|traveling|traveler|wanderlust|adventure|adventurous|trip|trips|vacation|journey"),
    ),
    "photography": InterestMapping(
        ("Electronics & Gadgets", "Art & Crafts"), ("photography",),
        _kw(r"photo|photos|photography|photographer|camera|cameras|lens|lenses|snapshot"),
    ),
    "gaming": InterestMapping(
        ("Toys & Games", "Electronics & Gadgets"), ("gaming",),
        _kw(r"game|games|gaming|gamer|video game|board game|puzzle|puzzles"),
    ),
    "coffee": InterestMapping(
        ("Food & Beverages", "Home & Garden"), ("coffee",),
        _kw(r"coffee|espresso|cappuccino|latte|barista|brew|brewing|caffeine"),
    ),
    "tea": InterestMapping(
        ("Food & Beverages", "Home & Garden"), ("tea",),
        _kw(r"tea|chai|matcha|herbal|steep|steeping|teapot"),
    ),
    "wine": InterestMapping(
        ("Food & Beverages", "Home & Garden"), ("wine",),
        _kw(r"wine|wines|winery|vineyard|sommelier"),
    ),
    "pets": InterestMapping(
        ("Pet Supplies",), ("pets",),
        _kw(r"pet|pets|dog|dogs|cat|cats|puppy|puppies|kitten|kittens|animal|animals"),
    ),
    "tech": InterestMapping(
        ("Electronics & Gadgets", "Office & Stationery"), ("tech",),
        _kw(r"tech|techie|technology|gadget|gadgets|electronics?|computer|coding|programming|software"),
    ),
    "fashion": InterestMapping(
        ("Clothing & Accessories", "Jewelry & Watches"), ("fashion",),
        _kw(r"fashion|fashionable|style|stylish|trendy|chic|designer|accessory|accessories"),
    ),
    "outdoors": InterestMapping(
        ("Sports & Outdoors", "Travel & Luggage"), ("outdoors",),
        _kw(r"outdoor|outdoors|hiking|camping|nature|wilderness|trail|mountain|mountains"),
    ),
    "skincare": InterestMapping(
        ("Health & Beauty", "Wellness & Self-Care"), ("skincare",),
        _kw(r"skincare|skin care|beauty|cosmetic|cosmetics|facial|serum|moisturizer|spa"),
    ),
    "fishing": InterestMapping(
        ("Sports & Outdoors",), ("fishing",),
        _kw(r"fish|fishing|fisherman|angler|angling|lure|bait|tackle"),
    ),
    "hunting": InterestMapping(
        ("Sports & Outdoors",), ("hunting",),
        _kw(r"hunt|hunting|hunter|wildlife"),
    ),
    "camping": InterestMapping(
        ("Sports & Outdoors", "Travel & Luggage"), ("camping",),
        _kw(r"camp|camping|camper|tent|hike|hikes|hiker|backpack|backpacking|trail"),
    ),
}


class InterestMatch(NamedTuple):
    categories: list[str]
    interests: list[str]
    values: list[str]


def extract_values(text: str) -> list[str]:
    ntext = normalize(text)
    return [canonical for canonical, pattern in _VALUE_PATTERNS.items() if pattern.search(ntext)]


def extract_interests(text: str, known_categories: Optional[Iterable[str]] = None) -> InterestMatch:
    """Map interest keywords and verbatim catalog category names to tags.

    When the catalog's category list is supplied, mapped categories that the
    catalog does not carry are dropped and any category named verbatim in the
    text is added.
    """
    categories: list[str] = []
    interests: list[str] = []
    for mapping in INTEREST_MAPPINGS.values():
        if mapping.keywords.search(text):
            categories.extend(c for c in mapping.categories if c not in categories)
            interests.extend(i for i in mapping.interests if i not in interests)

    if known_categories is not None:
        catalog = {normalize(c): c for c in known_categories if normalize(c)}
        categories = [catalog[normalize(c)] for c in categories if normalize(c) in catalog]
        ntext = normalize(text)
        for ncat, display in catalog.items():
            if len(ncat) >= 3 and display not in categories and re.search(rf"\b{re.escape(ncat)}\b", ntext):
                categories.append(display)

    return InterestMatch(
        categories=categories[:MAX_CATEGORIES],
        interests=interests[:MAX_INTERESTS],
        values=extract_values(text),
    )


# =============================================================================
# Emotional tone & milestones
# =============================================================================

_EMOTION_PATTERNS = {
    "anxiety": re.compile(r"\b(?:stress|stressed|anxious|worry|worried|nervous|help|stuck|overwhelm\w*)\b"),
    "excitement": re.compile(r"!{2,}|exciting|amazing|wonderful|can't wait|so happy|thrilled|love|excited"),
    "uncertainty": re.compile(r"\b(?:not sure|don't know|don't really know|maybe|unsure|no idea|clueless|unclear)\b"),
    "urgency": re.compile(r"\b(?:tomorrow|tonight|today|asap|urgent|last minute|forgot|quickly|quick|rush|need fast)\b"),
    "celebration": re.compile(r"\b(?:birthday|anniversary|graduation|wedding|milestone|special|celebrate)\b"),
}


def detect_emotional_context(text: str) -> EmotionalFlags:
    lowered = text.lower().replace("’", "'")
    return EmotionalFlags(**{name: bool(p.search(lowered)) for name, p in _EMOTION_PATTERNS.items()})


_MILESTONE_PATTERNS = {
    MilestoneKind.BIG_BIRTHDAY: re.compile(r"\b(?:50th|60th|70th|80th|90th|100th|milestone|big birthday)\b", re.IGNORECASE),
    MilestoneKind.ANNIVERSARY: re.compile(r"\b(\d+)(?:th|st|nd|rd)?\s*(?:year\s*)?anniversary\b", re.IGNORECASE),
    MilestoneKind.FIRST_TIME: re.compile(r"\b(?:first|1st)\s+(?:mother'?s?\s+day|father'?s?\s+day|christmas|birthday|time)\b", re.IGNORECASE),
    MilestoneKind.GRADUATION: re.compile(r"\b(?:graduation|graduating|graduate|diploma|degree)\b", re.IGNORECASE),
    MilestoneKind.WEDDING: re.compile(r"\b(?:wedding|bride|groom|marriage|married|getting married|engagement|engaged)\b", re.IGNORECASE),
    MilestoneKind.NEW_BABY: re.compile(r"\b(?:baby|newborn|pregnancy|expecting|baby shower|new mom|new dad|new parent)\b", re.IGNORECASE),
    MilestoneKind.PROMOTION: re.compile(r"\b(?:promotion|new job|got the job|starting new)\b", re.IGNORECASE),
    MilestoneKind.HOUSEWARMING: re.compile(r"\b(?:housewarming|new house|new home|new place|just moved|first house)\b", re.IGNORECASE),
}


def detect_milestone(text: str) -> Optional[Milestone]:
    """Return at most one milestone, checked in a fixed priority order."""
    for kind, pattern in _MILESTONE_PATTERNS.items():
        match = pattern.search(text)
        if not match:
            continue
        if kind is MilestoneKind.ANNIVERSARY:
            return Milestone(kind=kind, years=int(match.group(1)))
        return Milestone(kind=kind)
    return None


def milestone_message(milestone: Optional[Milestone]) -> Optional[str]:
    if milestone is None:
        return None
    kind = milestone.kind
    if kind is MilestoneKind.BIG_BIRTHDAY:
        return "Wow, that's a special milestone! Let's make it memorable."
    if kind is MilestoneKind.ANNIVERSARY:
        years = milestone.years or 0
        if years >= 25:
            return f"{years} years, that's incredible! This deserves something really special."
        if years >= 10:
            return f"{years} years together! Let's find something meaningful."
        return "What a wonderful milestone to celebrate!"
    if kind is MilestoneKind.FIRST_TIME:
        return "A first, that's so special! Let's find something they'll treasure."
    if kind is MilestoneKind.GRADUATION:
        return "Graduation! That's huge. Let's find something they'll treasure."
    if kind is MilestoneKind.WEDDING:
        return "Such an exciting time! Let's find the perfect gift."
    if kind is MilestoneKind.NEW_BABY:
        return "A new baby, how exciting! Let's find something thoughtful."
    if kind is MilestoneKind.PROMOTION:
        return "New job! That's worth celebrating properly."
    return "New home! Let's find something they'll actually use and love."


def empathetic_intro(emotional: EmotionalFlags) -> Optional[str]:
    if emotional.urgency and emotional.anxiety:
        return "Okay, deep breath, I've got you! Let's find something great, fast."
    if emotional.anxiety:
        return "Totally get it, gift shopping can be stressful. Let's make this easy."
    if emotional.excitement or emotional.celebration:
        return "How exciting! Let's find something really special."
    if emotional.uncertainty:
        return "No worries, that's what I'm here for! Let's figure this out together."
    return None


# =============================================================================
# Entry point
# =============================================================================


def extract_signals(text: str, known_categories: Optional[Iterable[str]] = None) -> SignalSet:
    """Extract a full signal set from one utterance."""
    budget = parse_budget(text)
    matched = extract_interests(text, known_categories)
    return SignalSet(
        recipient_key=extract_recipient(text),
        occasion=extract_occasion(text),
        budget_min=budget.min,
        budget_max=budget.max,
        categories=matched.categories,
        interests=matched.interests,
        values=matched.values,
        emotional=detect_emotional_context(text),
    )

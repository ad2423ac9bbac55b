# =============================================================================
# SIGNAL EXTRACTION LIMITS
# =============================================================================

MAX_CATEGORIES = 8
"""Maximum number of categories kept per signal set (extraction and merge)."""

MAX_INTERESTS = 10
"""Maximum number of interest tags kept per signal set."""

MAX_VALUES = 8
"""Maximum number of value/ethics tags kept per signal set."""

MAX_CONTEXT_NOTES = 20
"""Number of most recent utterances kept as free-text notes on a context record."""

APPROXIMATE_BUDGET_SPREAD = 0.2
"""
Relative spread applied to "around $X" budgets.

Example:
    "around $50" -> budget_min = floor(50 * 0.8) = 40, budget_max = ceil(50 * 1.2) = 60
"""


# =============================================================================
# READINESS GATE
# =============================================================================

READINESS_MIN_SIGNALS = 2
"""
Number of independent signals (budget, recipient, interests, occasion) required
before recommending instead of asking a clarifying question.

A single signal such as a budget alone produces irrelevant results; two signals
meaningfully narrow the catalog.
"""


# =============================================================================
# RETRIEVAL CONFIGURATION
# =============================================================================

DEFAULT_RECOMMENDATION_LIMIT = 5
"""Default number of items returned by a direct recommendation request."""

VECTOR_CANDIDATE_MULTIPLIER = 3
"""Vector search fetches limit * this many candidates before boosting."""

VECTOR_CANDIDATE_CAP = 30
"""Hard cap on nearest-neighbour candidates per request."""

KEYWORD_CANDIDATE_MULTIPLIER = 2
"""Keyword fallback fetches limit * this many candidates."""

KEYWORD_CANDIDATE_CAP = 20
"""Hard cap on keyword fallback candidates per request."""

KEYWORD_BASE_SCORE = 0.5
"""
Base score of the first keyword-fallback result.

Keyword hits carry no similarity, so they start below the quality threshold
and decrease by KEYWORD_SCORE_STEP per rank to preserve ordering.
"""

KEYWORD_SCORE_STEP = 0.02

DEFAULT_LIST_BASE_SCORE = 1.0
"""Base score of the first item of the unfiltered default list."""

DEFAULT_LIST_SCORE_STEP = 0.05


# =============================================================================
# BOOST WEIGHTS
# =============================================================================
# Fixed heuristics. Preserve as-is; override per service via ScoringWeights.

FACET_BOOST_WEIGHTS = {
    "occasion": 0.4,   # x confidence, first matching occasion facet
    "recipient": 0.3,  # x confidence, per matching recipient facet
    "interest": 0.3,   # x confidence, per matching interest facet
    "value": 0.2,      # x confidence, per matching value facet
}
"""
Weights applied to facet confidence when a product facet matches the request.

Example:
    Product has facet (interest, gardening, 0.9) and request interests = [gardening]
    Score += 0.3 * 0.9 = 0.27
"""

GRAPH_PREFERENCE_BOOST = 0.3
"""Flat boost for products whose category is a recipient's preferred category."""

TRENDING_BOOST = 0.2
"""Flat boost for products in the current trending set."""

OCCASION_EXACT_BOOST = 0.5
"""Multiplier of calendar confidence when a product occasion facet equals the current occasion."""

OCCASION_RELATED_BOOST = 0.25
"""Multiplier of calendar confidence for an occasion related to the current one."""

RERANK_EXISTING_WEIGHT = 0.3
RERANK_RELEVANCE_WEIGHT = 0.7
"""Final score after reranking = 0.3 * existing score + 0.7 * rerank relevance."""


# =============================================================================
# OCCASION CALENDAR
# =============================================================================

OCCASION_FULL_CONFIDENCE_DAYS = 7
"""Occasions within this many days get confidence 1.0."""

OCCASION_NEAR_CONFIDENCE_DAYS = 14
"""Occasions within this many days (beyond the full window) get confidence 0.85."""

OCCASION_NEAR_CONFIDENCE = 0.85
OCCASION_FAR_CONFIDENCE = 0.7

CURRENT_OCCASION_WINDOW_DAYS = 14
"""Only occasions this close count as the "current" occasion for boosting."""

UPCOMING_OCCASIONS_WINDOW_DAYS = 30


# =============================================================================
# QUALITY GATE (conversational entry point)
# =============================================================================

HIGH_QUALITY_THRESHOLD = 0.7
"""Items scoring strictly above this are high quality."""

MEDIUM_QUALITY_THRESHOLD = 0.5
"""Items scoring above this (and up to HIGH_QUALITY_THRESHOLD) are medium quality."""

QUALITY_GATE_MIN_ITEMS = 3
"""Preferred minimum number of items before topping up with lower tiers."""

QUALITY_GATE_MAX_ITEMS = 5
"""Maximum number of items shown in a conversational reply."""


# =============================================================================
# TRENDING
# =============================================================================

TRENDING_RECENT_DAYS = 7
TRENDING_HISTORICAL_DAYS = 30
TRENDING_MIN_ACTIVITY = 10
"""Minimum recent view/click events for a product to be considered trending."""

TRENDING_SET_SIZE = 50
TRENDING_CACHE_TTL_SECONDS = 300


# =============================================================================
# SESSION INTENT
# =============================================================================

SESSION_PRICE_SPREAD = 0.2
"""
Spread applied around the prices of clicked products to infer a session budget.

Example:
    Clicked products at $20 and $45 -> price range floor(20 * 0.8) = 16 to ceil(45 * 1.2) = 54
"""

SESSION_ABANDON_MIN_VIEWS = 3
"""Viewed-but-not-clicked products needed before any of them are excluded."""

SESSION_MAX_EXCLUDED = 5
"""Only the most recently abandoned products are excluded from results."""


# =============================================================================
# EMBEDDINGS
# =============================================================================

EMBEDDING_BATCH_SIZE = 100
"""Products embedded per OpenAI request by the backfill task."""

MAX_DESCRIPTION_LENGTH = 2000
"""Descriptions are truncated to this many characters before embedding."""


# =============================================================================
# VALIDATION
# =============================================================================

def validate_constants():
    """
    Validate that all constants are within acceptable ranges.

    Raises:
        ValueError: If any constant is out of range
    """
    for name, weight in FACET_BOOST_WEIGHTS.items():
        if weight < 0:
            raise ValueError(f"FACET_BOOST_WEIGHTS[{name}] must be >= 0, got {weight}")

    if not 0.0 <= MEDIUM_QUALITY_THRESHOLD <= HIGH_QUALITY_THRESHOLD:
        raise ValueError(
            "Quality thresholds must satisfy 0 <= MEDIUM <= HIGH, got "
            f"{MEDIUM_QUALITY_THRESHOLD} / {HIGH_QUALITY_THRESHOLD}"
        )

    if abs(RERANK_EXISTING_WEIGHT + RERANK_RELEVANCE_WEIGHT - 1.0) > 1e-9:
        raise ValueError("RERANK_EXISTING_WEIGHT + RERANK_RELEVANCE_WEIGHT must equal 1.0")

    if not 0.0 < APPROXIMATE_BUDGET_SPREAD < 1.0:
        raise ValueError(f"APPROXIMATE_BUDGET_SPREAD must be 0.0-1.0, got {APPROXIMATE_BUDGET_SPREAD}")

    if OCCASION_FULL_CONFIDENCE_DAYS > OCCASION_NEAR_CONFIDENCE_DAYS:
        raise ValueError("OCCASION_FULL_CONFIDENCE_DAYS must not exceed OCCASION_NEAR_CONFIDENCE_DAYS")

    if QUALITY_GATE_MIN_ITEMS > QUALITY_GATE_MAX_ITEMS:
        raise ValueError("QUALITY_GATE_MIN_ITEMS must not exceed QUALITY_GATE_MAX_ITEMS")

    if READINESS_MIN_SIGNALS < 1:
        raise ValueError(f"READINESS_MIN_SIGNALS must be >= 1, got {READINESS_MIN_SIGNALS}")

    if not 0.0 <= SESSION_PRICE_SPREAD < 1.0:
        raise ValueError(f"SESSION_PRICE_SPREAD must be 0.0-1.0, got {SESSION_PRICE_SPREAD}")

    if MAX_CATEGORIES < 1 or MAX_INTERESTS < 1 or MAX_VALUES < 1:
        raise ValueError("Signal caps must be >= 1")


# Run validation on import
validate_constants()

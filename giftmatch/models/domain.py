"""Domain models shared by the context engine and the recommendation pipeline."""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from giftmatch.constants import (
    DEFAULT_RECOMMENDATION_LIMIT,
    MAX_CATEGORIES,
    MAX_INTERESTS,
    MAX_VALUES,
)


# ============================================================================
# Enumerations
# ============================================================================


class RecipientKey(str, Enum):
    """Canonical recipient relationships recognised by the extractor."""

    SISTER = "sister"
    BROTHER = "brother"
    PARTNER = "partner"
    WIFE = "wife"
    HUSBAND = "husband"
    MOTHER = "mother"
    FATHER = "father"
    GRANDMA = "grandma"
    GRANDPA = "grandpa"
    NEPHEW = "nephew"
    NIECE = "niece"
    COUSIN = "cousin"
    AUNT = "aunt"
    UNCLE = "uncle"
    PARENT = "parent"
    FRIEND = "friend"
    COLLEAGUE = "colleague"
    DAUGHTER = "daughter"
    SON = "son"
    CHILD = "child"


class Occasion(str, Enum):
    """Canonical occasions recognised by the extractor (facet value spelling)."""

    BIRTHDAY = "birthday"
    ANNIVERSARY = "anniversary"
    WEDDING = "wedding"
    CHRISTMAS = "christmas"
    VALENTINE = "valentine"
    MOTHER_DAY = "mother_day"
    FATHER_DAY = "father_day"
    GRADUATION = "graduation"
    BABY_SHOWER = "baby_shower"
    HOUSEWARMING = "housewarming"
    RETIREMENT = "retirement"
    THANK_YOU = "thank_you"


class MissingSignal(str, Enum):
    BUDGET = "budget"
    RECIPIENT = "recipient"
    INTERESTS = "interests"
    OCCASION = "occasion"


class PromptVariant(str, Enum):
    """Which clarifying question to ask, keyed on the signals already known."""

    NONE = "none"  # ready, nothing to ask
    GENERIC = "generic"  # zero signals
    HAVE_BUDGET = "have_budget"  # ask who it is for and what they like
    HAVE_RECIPIENT = "have_recipient"  # ask budget and interests
    HAVE_INTERESTS = "have_interests"  # ask recipient and budget
    HAVE_OCCASION = "have_occasion"  # ask recipient and budget


class MilestoneKind(str, Enum):
    BIG_BIRTHDAY = "big_birthday"
    ANNIVERSARY = "anniversary"
    FIRST_TIME = "first_time"
    GRADUATION = "graduation"
    WEDDING = "wedding"
    NEW_BABY = "new_baby"
    PROMOTION = "promotion"
    HOUSEWARMING = "housewarming"


class FacetSource(str, Enum):
    RULES = "rules"
    ML = "ml"
    MANUAL = "manual"


# ============================================================================
# Signal Schemas
# ============================================================================


def _dedupe(items: List[str], *, lower: bool, cap: int) -> List[str]:
    seen: set[str] = set()
    out: List[str] = []
    for item in items:
        text = str(item).strip()
        if not text:
            continue
        key = text.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(text.lower() if lower else text)
    return out[:cap]


class EmotionalFlags(BaseModel):
    """Independent (not mutually exclusive) emotional cues in one utterance."""

    anxiety: bool = False
    excitement: bool = False
    uncertainty: bool = False
    urgency: bool = False
    celebration: bool = False


class SignalSet(BaseModel):
    """Structured gift-giving signals extracted from text or accumulated in context.

    Set-valued fields are ordered (newest first after a merge), de-duplicated
    case-insensitively and capped. Interests and values are lower-cased canonical
    tags; categories keep the catalog's display spelling.
    """

    recipient_key: Optional[RecipientKey] = None
    occasion: Optional[Occasion] = None
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None
    categories: List[str] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)
    values: List[str] = Field(default_factory=list)
    emotional: EmotionalFlags = Field(default_factory=EmotionalFlags)

    @field_validator("categories", mode="after")
    @classmethod
    def _normalize_categories(cls, v: List[str]) -> List[str]:
        return _dedupe(v, lower=False, cap=MAX_CATEGORIES)

    @field_validator("interests", mode="after")
    @classmethod
    def _normalize_interests(cls, v: List[str]) -> List[str]:
        return _dedupe(v, lower=True, cap=MAX_INTERESTS)

    @field_validator("values", mode="after")
    @classmethod
    def _normalize_values(cls, v: List[str]) -> List[str]:
        return _dedupe(v, lower=True, cap=MAX_VALUES)

    @model_validator(mode="after")
    def _check_budget_order(self) -> "SignalSet":
        if (
            self.budget_min is not None
            and self.budget_max is not None
            and self.budget_min > self.budget_max
        ):
            raise ValueError(
                f"budget_min ({self.budget_min}) must not exceed budget_max ({self.budget_max})"
            )
        return self

    @property
    def has_budget(self) -> bool:
        return self.budget_min is not None or self.budget_max is not None

    @property
    def has_recipient(self) -> bool:
        return self.recipient_key is not None

    @property
    def has_interests(self) -> bool:
        return bool(self.categories or self.interests or self.values)

    @property
    def has_occasion(self) -> bool:
        return self.occasion is not None


class Milestone(BaseModel):
    """A celebratory milestone detected in an utterance. Used for tone only."""

    kind: MilestoneKind
    years: Optional[int] = None


class ContextRecord(BaseModel):
    """Accumulated signals for a (user, recipient|default) scope."""

    user_id: str
    recipient_key: Optional[str] = None
    signals: SignalSet = Field(default_factory=SignalSet)
    notes: List[str] = Field(default_factory=list)
    updated_at: Optional[float] = None


class SessionState(BaseModel):
    """Product interactions within one browsing session, plus what they imply."""

    session_id: str
    user_id: Optional[str] = None
    viewed: List[str] = Field(default_factory=list)
    clicked: List[str] = Field(default_factory=list)
    abandoned: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    interaction_count: int = 0
    started_at: Optional[float] = None
    last_activity_at: Optional[float] = None


class SessionContext(BaseModel):
    """Session-derived adjustments applied to a direct recommendation request."""

    category_boost: List[str] = Field(default_factory=list)
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    exclude_ids: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.category_boost or self.exclude_ids or self.price_max is not None)


class ReadinessDecision(BaseModel):
    ready: bool
    signal_count: int = Field(..., ge=0, le=4)
    missing_signals: List[MissingSignal] = Field(default_factory=list)
    prompt_variant: PromptVariant = PromptVariant.NONE


# ============================================================================
# Catalog Schemas
# ============================================================================


class Product(BaseModel):
    """Catalog product. Owned by the catalog; never mutated by the pipeline."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    title: str
    description: Optional[str] = None
    vendor: Optional[str] = None
    category: Optional[str] = None
    price: float = 0.0
    currency: str = "USD"
    available: bool = True
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)


class Facet(BaseModel):
    product_id: Optional[str] = None
    key: str
    value: str
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    source: FacetSource = FacetSource.RULES


class FacetFilter(BaseModel):
    occasion: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)
    values: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.occasion or self.recipients or self.interests or self.values)


class SearchQuery(BaseModel):
    text: Optional[str] = None
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None
    categories: List[str] = Field(default_factory=list)
    facets: Optional[FacetFilter] = None
    limit: int = 10
    offset: int = 0


class VectorHit(BaseModel):
    id: str
    score: float


class RerankResult(BaseModel):
    index: int
    relevance_score: float


class DetectedOccasion(BaseModel):
    occasion: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    days_until: int
    display_name: str


# ============================================================================
# Recommendation Schemas
# ============================================================================


class RecommendationRequest(BaseModel):
    """Retrieval request derived from a merged signal set."""

    query_text: str = ""
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None
    categories: List[str] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)
    occasion: Optional[str] = None
    facets: FacetFilter = Field(default_factory=FacetFilter)
    recipient_id: Optional[str] = None
    limit: int = Field(DEFAULT_RECOMMENDATION_LIMIT, ge=1)

    @property
    def has_budget(self) -> bool:
        return self.budget_min is not None or self.budget_max is not None


class CandidateItem(BaseModel):
    """A product travelling through one recommendation call."""

    product: Product
    score: float
    facets: List[Facet] = Field(default_factory=list)
    rationale_parts: List[str] = Field(default_factory=list)
    boosts: dict[str, float] = Field(default_factory=dict)
    rerank_score: Optional[float] = None


class RankedItem(BaseModel):
    product: Product
    score: float
    rationale: str
    rationale_parts: List[str] = Field(default_factory=list)
    rerank_score: Optional[float] = None


class RecommendationResult(BaseModel):
    items: List[RankedItem] = Field(default_factory=list)
    took_ms: int = 0


class TurnResult(BaseModel):
    """Outcome of one conversational turn: a clarifying prompt or ranked items."""

    ready: bool
    reply: str
    items: List[RankedItem] = Field(default_factory=list)
    decision: ReadinessDecision
    signals: SignalSet
    context_summary: Optional[str] = None
    milestone: Optional[Milestone] = None

"""Pydantic schemas for request/response validation."""

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from giftmatch.models.domain import (
    DetectedOccasion,
    Milestone,
    MissingSignal,
    Occasion,
    PromptVariant,
    RankedItem,
    RecipientKey,
    SignalSet,
)


# ============================================================================
# Chat Schemas
# ============================================================================


class ChatRequest(BaseModel):
    """Request schema for one conversational turn."""

    user_id: str = Field(..., min_length=1, description="Stable id of the person shopping")
    message: str = Field(..., min_length=1, max_length=2000, description="User's message")
    recipient_key: Optional[str] = Field(
        None, description="Optional explicit recipient scope, e.g. 'sister'"
    )


class ChatResponse(BaseModel):
    """Response schema for a conversational turn."""

    ready: bool
    reply: str
    items: List[RankedItem] = Field(default_factory=list)
    missing_signals: List[MissingSignal] = Field(default_factory=list)
    prompt_variant: PromptVariant
    signals: SignalSet
    context_summary: Optional[str] = None
    milestone: Optional[Milestone] = None


# ============================================================================
# Recommendation Schemas
# ============================================================================


class RecommendRequest(BaseModel):
    """Request schema for direct recommendations (no readiness gate)."""

    recipient_key: Optional[RecipientKey] = None
    occasion: Optional[Occasion] = None
    budget_min: Optional[float] = Field(None, ge=0)
    budget_max: Optional[float] = Field(None, ge=0)
    categories: List[str] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)
    values: List[str] = Field(default_factory=list)
    query: Optional[str] = Field(None, description="Free text used when no interests are given")
    user_id: Optional[str] = Field(None, description="Enables preference-graph boosting")
    session_id: Optional[str] = Field(None, description="Applies intent inferred from this session's events")
    limit: int = Field(5, ge=1, le=50)

    @model_validator(mode="after")
    def _check_budget(self) -> "RecommendRequest":
        if self.budget_min is not None and self.budget_max is not None and self.budget_min > self.budget_max:
            raise ValueError("budget_min must not exceed budget_max")
        return self

    def to_signals(self) -> SignalSet:
        return SignalSet(
            recipient_key=self.recipient_key,
            occasion=self.occasion,
            budget_min=self.budget_min,
            budget_max=self.budget_max,
            categories=self.categories,
            interests=self.interests,
            values=self.values,
        )


class RecommendResponse(BaseModel):
    items: List[RankedItem]
    took_ms: int


# ============================================================================
# Context Schemas
# ============================================================================


class ContextResponse(BaseModel):
    user_id: str
    recipient_key: Optional[str] = None
    signals: SignalSet
    notes: List[str] = Field(default_factory=list)
    updated_at: Optional[float] = None
    summary: Optional[str] = None


class RecipientsResponse(BaseModel):
    user_id: str
    recipients: List[str]


# ============================================================================
# Occasion & Event Schemas
# ============================================================================


class UpcomingOccasionsResponse(BaseModel):
    season: str
    occasions: List[DetectedOccasion]
    message: Optional[str] = Field(None, description="Banner for the closest occasion, if near")


class EventSubmit(BaseModel):
    """Request schema for recording a product interaction."""

    event_type: str = Field(..., pattern="^(product_view|product_click)$")
    product_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    session_id: Optional[str] = None


class EventResponse(BaseModel):
    success: bool
    event_id: int

"""Readiness gate: recommend now, or ask one more clarifying question."""

from typing import Optional

from giftmatch.constants import READINESS_MIN_SIGNALS
from giftmatch.models.domain import MissingSignal, PromptVariant, ReadinessDecision, SignalSet
from giftmatch.services.extract import has_occasion_keyword

PROMPT_TEMPLATES = {
    PromptVariant.GENERIC: "Who's the gift for, and what budget are you thinking?",
    PromptVariant.HAVE_BUDGET: "Got the budget! Who's the gift for? What are they into?",
    PromptVariant.HAVE_RECIPIENT: "What's your budget, and what are they interested in?",
    PromptVariant.HAVE_INTERESTS: "Nice! Who's the gift for, and what's your budget?",
    PromptVariant.HAVE_OCCASION: "Perfect! Who's the gift for, and what's your budget?",
    PromptVariant.NONE: "Let me find some great options for you!",
}

_SINGLE_SIGNAL_VARIANTS = {
    MissingSignal.BUDGET: PromptVariant.HAVE_BUDGET,
    MissingSignal.RECIPIENT: PromptVariant.HAVE_RECIPIENT,
    MissingSignal.INTERESTS: PromptVariant.HAVE_INTERESTS,
    MissingSignal.OCCASION: PromptVariant.HAVE_OCCASION,
}


def present_signals(
    signals: SignalSet,
    utterance: str = "",
    recipient_key: Optional[str] = None,
) -> dict[MissingSignal, bool]:
    """Which of the four independent signals are present.

    The occasion counts when stored in context or when the current utterance
    carries an occasion cue the synonym table does not canonicalize
    (e.g. "holiday", "diwali").
    """
    return {
        MissingSignal.BUDGET: signals.has_budget,
        MissingSignal.RECIPIENT: signals.has_recipient or bool(recipient_key),
        MissingSignal.INTERESTS: signals.has_interests,
        MissingSignal.OCCASION: signals.has_occasion or has_occasion_keyword(utterance),
    }


def evaluate(
    signals: SignalSet,
    utterance: str = "",
    recipient_key: Optional[str] = None,
) -> ReadinessDecision:
    """Decide whether the merged context is enough to recommend.

    Args:
        signals: Merged signal set for the turn
        utterance: Raw text of the current turn
        recipient_key: Explicit recipient scope of the turn, if any

    Returns:
        ReadinessDecision with ready = (signal count >= 2), the missing signals
        worth asking about, and the prompt variant to use when not ready
    """
    present = present_signals(signals, utterance, recipient_key)
    count = sum(present.values())
    ready = count >= READINESS_MIN_SIGNALS

    has_recipient = present[MissingSignal.RECIPIENT]
    has_interests = present[MissingSignal.INTERESTS]
    missing = []
    if not present[MissingSignal.BUDGET]:
        missing.append(MissingSignal.BUDGET)
    if not has_recipient:
        missing.append(MissingSignal.RECIPIENT)
    if not has_interests and not has_recipient:
        missing.append(MissingSignal.INTERESTS)
    if not present[MissingSignal.OCCASION] and not has_recipient and not has_interests:
        missing.append(MissingSignal.OCCASION)

    if ready:
        variant = PromptVariant.NONE
    elif count == 0:
        variant = PromptVariant.GENERIC
    else:
        only = next(signal for signal, on in present.items() if on)
        variant = _SINGLE_SIGNAL_VARIANTS[only]

    return ReadinessDecision(
        ready=ready,
        signal_count=count,
        missing_signals=missing,
        prompt_variant=variant,
    )


def template_prompt(variant: PromptVariant, recipient: Optional[str] = None) -> str:
    """Deterministic clarifying question for a prompt variant."""
    if variant is PromptVariant.HAVE_RECIPIENT and recipient:
        return f"Got it, shopping for your {recipient}! {PROMPT_TEMPLATES[variant]}"
    return PROMPT_TEMPLATES[variant]

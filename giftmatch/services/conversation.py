"""Conversational entry point: one user turn in, a question or recommendations out."""

import logging
import re
from typing import Callable, Iterable, Optional

from langfuse import observe

from giftmatch.models.domain import (
    MissingSignal,
    PromptVariant,
    RankedItem,
    RecipientKey,
    SignalSet,
    TurnResult,
)
from giftmatch.services.context_store import ContextStore, summarize_context
from giftmatch.services.extract import (
    detect_milestone,
    empathetic_intro,
    extract_signals,
    milestone_message,
)
from giftmatch.services.ports import Catalog, NullPreferenceGraph, PreferenceGraph
from giftmatch.services.preference_graph import recipient_id_for
from giftmatch.services.readiness import evaluate, template_prompt
from giftmatch.services.recommendation_engine import RecommendService, apply_quality_gate

logger = logging.getLogger(__name__)

QuestionPhraser = Callable[[PromptVariant, SignalSet, str, list[MissingSignal], list[str]], str]

_WORKPLACE_EXCLUDES = [
    re.compile(r"\b(?:sexy|lingerie|intimate|gag gift|prank|bachelor|bachelorette|drinking game)\b", re.IGNORECASE),
    re.compile(r"\b(?:pirate costumes?|halloween costumes?|dress-up costumes?|adult costumes?)\b", re.IGNORECASE),
    re.compile(r"\b(?:tablecloth|party supply|party supplies)\b", re.IGNORECASE),
]

RECIPIENT_EXCLUDE_PATTERNS: dict[RecipientKey, list[re.Pattern]] = {
    RecipientKey.COLLEAGUE: _WORKPLACE_EXCLUDES,
}
"""Product text patterns that are never appropriate for a recipient."""

_RECIPIENT_VALUES = {key.value for key in RecipientKey}

NO_RESULTS_REPLY = (
    "I couldn't find a great match in the catalog yet. "
    "Could you tell me a bit more about what they like?"
)


def filter_inappropriate_products(
    items: Iterable[RankedItem], recipient_key: Optional[RecipientKey]
) -> list[RankedItem]:
    """Drop items whose title, category, description or tags match a recipient's exclusions."""
    items = list(items)
    patterns = RECIPIENT_EXCLUDE_PATTERNS.get(recipient_key) if recipient_key else None
    if not patterns:
        return items

    kept = []
    for item in items:
        product = item.product
        text = " ".join(
            part for part in [product.title, product.category, product.description, *product.tags] if part
        )
        if not any(p.search(text) for p in patterns):
            kept.append(item)
    if len(kept) < len(items):
        logger.info(f"Filtered {len(items) - len(kept)} items inappropriate for {recipient_key.value}")
    return kept


def results_intro(items: list[RankedItem]) -> str:
    """Lead-in sentence reflecting how strong the matches are."""
    average = sum(it.score for it in items) / len(items) if items else 0.0
    if average > 0.7:
        return "Here are some ideas I think they'll love:"
    if len(items) < 3:
        return "I found a few options that might work:"
    return "Here are some ideas:"


class ConversationService:
    """Extract -> merge -> readiness gate -> clarify or recommend."""

    def __init__(
        self,
        context_store: ContextStore,
        recommender: RecommendService,
        catalog: Optional[Catalog] = None,
        graph: Optional[PreferenceGraph] = None,
        phrase_question: Optional[QuestionPhraser] = None,
        recommendation_limit: int = 15,
    ):
        self.context_store = context_store
        self.recommender = recommender
        self.catalog = catalog
        self.graph = graph or NullPreferenceGraph()
        self.phrase_question = phrase_question
        self.recommendation_limit = recommendation_limit

    def _known_categories(self) -> Optional[list[str]]:
        if self.catalog is None:
            return None
        try:
            return self.catalog.list_categories()
        except Exception as e:
            logger.warning(f"Could not load catalog categories, using keyword mapping only: {e}")
            return None

    def _update_context(
        self, user_id: str, extracted: SignalSet, recipient_key: Optional[str], utterance: str
    ):
        try:
            return self.context_store.update(user_id, extracted, recipient_key, note=utterance)
        except Exception as e:
            logger.warning(f"Context store unavailable, continuing without stored context: {e}")
            return None

    def _record_likes(self, recipient_id: str, categories: list[str]) -> None:
        if not categories:
            return
        try:
            self.graph.record_likes(recipient_id, categories)
        except Exception as e:
            logger.warning(f"Failed to record liked categories for {recipient_id}: {e}")

    def _clarifying_question(
        self,
        variant: PromptVariant,
        signals: SignalSet,
        utterance: str,
        missing: list[MissingSignal],
        notes: list[str],
        prefix: str,
    ) -> str:
        recipient = signals.recipient_key.value if signals.recipient_key else None
        fallback = prefix + template_prompt(variant, recipient)
        if self.phrase_question is None:
            return fallback
        try:
            return self.phrase_question(variant, signals, utterance, missing, notes)
        except Exception as e:
            logger.warning(f"Question phrasing failed, using template: {e}")
            return fallback

    @observe()
    def process_turn(
        self,
        user_id: str,
        utterance: str,
        recipient_key: Optional[str] = None,
    ) -> TurnResult:
        """Handle one user message.

        Args:
            user_id: Stable id of the person shopping
            utterance: Raw message text
            recipient_key: Optional explicit recipient scope (e.g. "sister")

        Returns:
            TurnResult with ready=False and a clarifying question, or ready=True
            with up to five ranked items
        """
        extracted = extract_signals(utterance, self._known_categories())
        if recipient_key and extracted.recipient_key is None and recipient_key in _RECIPIENT_VALUES:
            extracted.recipient_key = RecipientKey(recipient_key)

        record = self._update_context(user_id, extracted, recipient_key, utterance)
        signals = record.signals if record else extracted
        notes = list(record.notes) if record else [utterance]
        scope = record.recipient_key if record else recipient_key
        recipient_id = recipient_id_for(user_id, scope)

        self._record_likes(recipient_id, extracted.categories)

        decision = evaluate(signals, utterance, recipient_key)
        milestone = detect_milestone(utterance)
        opener = milestone_message(milestone) or empathetic_intro(extracted.emotional)
        prefix = f"{opener} " if opener else ""
        summary = summarize_context(signals)

        logger.info(
            f"Turn for user={user_id}: {decision.signal_count} signals, ready={decision.ready}"
        )

        if not decision.ready:
            reply = self._clarifying_question(
                decision.prompt_variant, signals, utterance, decision.missing_signals, notes, prefix
            )
            return TurnResult(
                ready=False,
                reply=reply,
                decision=decision,
                signals=signals,
                context_summary=summary,
                milestone=milestone,
            )

        result = self.recommender.recommend_for_signals(
            signals, self.recommendation_limit, recipient_id=recipient_id, utterance=utterance
        )
        weights = self.recommender.weights
        items = filter_inappropriate_products(result.items, signals.recipient_key)
        items = apply_quality_gate(items, weights.high_quality, weights.medium_quality)

        if items:
            ack = f"Got it, shopping for your {signals.recipient_key.value}. " if signals.recipient_key else ""
            reply = prefix + ack + results_intro(items)
        else:
            reply = prefix + NO_RESULTS_REPLY

        return TurnResult(
            ready=True,
            reply=reply,
            items=items,
            decision=decision,
            signals=signals,
            context_summary=summary,
            milestone=milestone,
        )

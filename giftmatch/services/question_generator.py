"""Clarifying-question phrasing for the conversational gift assistant."""

import logging
from typing import Optional

from langfuse import observe

from giftmatch.config import get_settings
from giftmatch.core.embeddings import get_openai_client
from giftmatch.models.domain import MissingSignal, PromptVariant, SignalSet

logger = logging.getLogger(__name__)
settings = get_settings()

MAX_NOTES_IN_CONTEXT = 3
MAX_NOTE_LENGTH = 240


@observe(as_type="generation")
def generate_question(
    variant: PromptVariant,
    signals: SignalSet,
    utterance: str,
    missing: list[MissingSignal],
    notes: Optional[list[str]] = None,
) -> str:
    """Generate a warm, single follow-up question using the LLM.

    Args:
        variant: Which signals are already known
        signals: Merged context for the turn
        utterance: The user's latest message
        missing: Signals worth asking about, most useful first
        notes: Recent utterances from the stored context

    Returns:
        Generated question text

    Raises:
        Exception: If LLM generation fails (caller should catch and use fallback)
    """
    try:
        user_prompt = _build_user_prompt(variant, signals, utterance, missing, notes or [])

        logger.info(f"Generating clarifying question ({variant.value}) using {settings.llm_model}")

        response = get_openai_client().chat.completions.create(
            model=settings.llm_model,
            messages=[
                {"role": "system", "content": _build_system_prompt()},
                {"role": "user", "content": user_prompt},
            ],
            temperature=0.7,
            max_tokens=120,
        )

        question = (response.choices[0].message.content or "").strip()
        if not question:
            raise ValueError("LLM returned an empty question")

        logger.info(f"Generated clarifying question: {question[:100]}")
        return question

    except Exception as e:
        logger.error(f"Failed to generate clarifying question: {e}")
        raise


def build_context_block(signals: SignalSet, notes: list[str]) -> str:
    """Plain-text summary of the known context for the prompt."""
    lines = []
    if signals.recipient_key:
        lines.append(f"Recipient: {signals.recipient_key.value}")
    if signals.occasion:
        lines.append(f"Occasion: {signals.occasion.value.replace('_', ' ')}")
    if signals.has_budget:
        low = "-" if signals.budget_min is None else f"{signals.budget_min:g}"
        high = "-" if signals.budget_max is None else f"{signals.budget_max:g}"
        lines.append(f"Budget: {low} to {high}")
    if signals.interests:
        lines.append(f"Interests: {', '.join(signals.interests)}")
    if signals.values:
        lines.append(f"Values: {', '.join(signals.values)}")
    if signals.categories:
        lines.append(f"Categories: {', '.join(signals.categories)}")
    for note in notes[-MAX_NOTES_IN_CONTEXT:]:
        lines.append(f"Note: {note[:MAX_NOTE_LENGTH]}")
    return "\n".join(lines) or "Nothing known yet."


def _build_system_prompt() -> str:
    return """You are a thoughtful friend who loves helping people find meaningful gifts.

Guidelines:
- Ask ONE short, natural follow-up question (1-2 sentences max)
- Ask for what is missing, never for what the user already told you
- Be warm and genuine; mirror the user's energy
- Recognise emotional cues: reassure anxious users, celebrate milestones
- Never list requirements or sound like a form ("To proceed I need...")
- Avoid corporate phrasing ("utilize", "facilitate", "per your request")"""


def _build_user_prompt(
    variant: PromptVariant,
    signals: SignalSet,
    utterance: str,
    missing: list[MissingSignal],
    notes: list[str],
) -> str:
    missing_text = ", ".join(m.value for m in missing) or "nothing specific"
    return f"""Context:
{build_context_block(signals, notes)}

User: {utterance}
Known so far: {variant.value.replace('_', ' ')}
Missing: {missing_text}

Return ONLY the question text, nothing else."""

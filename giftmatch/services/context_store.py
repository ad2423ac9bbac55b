"""Per-user and per-recipient conversational context."""

import logging
import time
from typing import Callable, Optional

from giftmatch.constants import MAX_CONTEXT_NOTES
from giftmatch.core.redis_client import KeyValueStore
from giftmatch.models.domain import ContextRecord, SignalSet

logger = logging.getLogger(__name__)

CONTEXT_KEY_PREFIX = "context"


def merge_signals(existing: Optional[SignalSet], incoming: SignalSet) -> SignalSet:
    """Merge newly extracted signals into stored ones.

    Scalars take the incoming value when present. Lists are unioned with the
    incoming values first and capped by the SignalSet validators. Emotional
    flags describe the latest utterance only, so they are replaced.

    A budget bound kept from the existing record is dropped when it would
    contradict a newly stated bound (e.g. stored min 80, new "under $50").

    Merging the same incoming set twice yields the same result as merging once.
    """
    if existing is None:
        return incoming.model_copy(deep=True)

    budget_min = incoming.budget_min if incoming.budget_min is not None else existing.budget_min
    budget_max = incoming.budget_max if incoming.budget_max is not None else existing.budget_max
    if budget_min is not None and budget_max is not None and budget_min > budget_max:
        if incoming.budget_min is None:
            budget_min = None
        else:
            budget_max = None

    return SignalSet(
        recipient_key=incoming.recipient_key or existing.recipient_key,
        occasion=incoming.occasion or existing.occasion,
        budget_min=budget_min,
        budget_max=budget_max,
        categories=incoming.categories + existing.categories,
        interests=incoming.interests + existing.interests,
        values=incoming.values + existing.values,
        emotional=incoming.emotional.model_copy(),
    )


def fill_missing(
    signals: SignalSet,
    budget_min: Optional[float] = None,
    budget_max: Optional[float] = None,
    categories: Optional[list[str]] = None,
) -> SignalSet:
    """Fill absent budget bounds and an empty category list from another source.

    Bounds and categories already on ``signals`` always win. An inherited bound
    that would cross a stated one is skipped.
    """
    low = signals.budget_min if signals.budget_min is not None else budget_min
    high = signals.budget_max if signals.budget_max is not None else budget_max
    if low is not None and high is not None and low > high:
        if signals.budget_min is None:
            low = None
        else:
            high = None

    return SignalSet.model_validate(
        {
            **signals.model_dump(),
            "budget_min": low,
            "budget_max": high,
            "categories": signals.categories or list(categories or []),
        }
    )


class ContextStore:
    """Loads, merges and persists context records in a key-value store.

    Records live under ``context:{user}`` (default scope) and
    ``context:{user}:recipient:{key}`` (recipient scope). Turns that never
    name a recipient build the default record; a recipient scope with no
    record of its own starts from the default record. The recipient last
    discussed is kept under ``context:{user}:active`` so follow-up turns that
    omit the recipient continue that scope.
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: int = 0,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl = ttl_seconds or None
        self.clock = clock

    @staticmethod
    def key_for(user_id: str, recipient_key: Optional[str] = None) -> str:
        if recipient_key:
            return f"{CONTEXT_KEY_PREFIX}:{user_id}:recipient:{recipient_key}"
        return f"{CONTEXT_KEY_PREFIX}:{user_id}"

    @staticmethod
    def active_key_for(user_id: str) -> str:
        return f"{CONTEXT_KEY_PREFIX}:{user_id}:active"

    def _read(self, key: str) -> Optional[ContextRecord]:
        try:
            data = self.store.get(key)
            if data is None:
                return None
            return ContextRecord.model_validate(data)
        except (ValueError, TypeError) as e:
            # Corrupt JSON and failed validation both land here
            logger.warning(f"Discarding malformed context record {key}: {e}")
            return None

    def get(self, user_id: str, recipient_key: Optional[str] = None) -> Optional[ContextRecord]:
        """Return exactly the record for one scope, without fallback."""
        return self._read(self.key_for(user_id, recipient_key))

    def active_recipient(self, user_id: str) -> Optional[str]:
        """The recipient scope most recently discussed by the user, if any."""
        key = self.active_key_for(user_id)
        try:
            value = self.store.get(key)
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding malformed active recipient {key}: {e}")
            return None
        return value if isinstance(value, str) and value else None

    def load(self, user_id: str, recipient_key: Optional[str] = None) -> Optional[ContextRecord]:
        """Return the recipient-scoped record, falling back to the user's default.

        Without an explicit recipient the active recipient scope is used.
        """
        recipient_key = recipient_key or self.active_recipient(user_id)
        if recipient_key:
            record = self.get(user_id, recipient_key)
            if record is not None:
                return record
        return self.get(user_id)

    def save(self, record: ContextRecord) -> None:
        record.updated_at = self.clock()
        payload = record.model_dump(mode="json")
        self.store.set(self.key_for(record.user_id, record.recipient_key), payload, ttl=self.ttl)

    def update(
        self,
        user_id: str,
        incoming: SignalSet,
        recipient_key: Optional[str] = None,
        note: Optional[str] = None,
    ) -> ContextRecord:
        """Merge incoming signals into the stored context and persist the result.

        Args:
            user_id: Owner of the context
            incoming: Signals extracted from the current utterance
            recipient_key: Explicit recipient scope; defaults to the extracted
                recipient, then to the active recipient
            note: Raw utterance to append to the record's notes

        Returns:
            The merged record (scoped to the recipient when one is known)
        """
        scope = recipient_key or (incoming.recipient_key.value if incoming.recipient_key else None)
        if scope is None:
            # Follow-up turn about the recipient already under discussion
            scope = self.active_recipient(user_id)

        existing = self.load(user_id, scope) if scope else self.get(user_id)

        merged = merge_signals(existing.signals if existing else None, incoming)
        notes = list(existing.notes) if existing else []
        if note:
            notes.append(note)
        notes = notes[-MAX_CONTEXT_NOTES:]

        record = ContextRecord(user_id=user_id, recipient_key=scope, signals=merged, notes=notes)
        self.save(record)
        if scope:
            self.store.set(self.active_key_for(user_id), scope, ttl=self.ttl)

        logger.debug(f"Context updated for user={user_id} scope={scope or 'default'}")
        return record

    def delete(self, user_id: str, recipient_key: Optional[str] = None) -> None:
        """Delete one scope, or every record of the user when no recipient is given."""
        if recipient_key:
            keys = [self.key_for(user_id, recipient_key)]
            if self.active_recipient(user_id) == recipient_key:
                keys.append(self.active_key_for(user_id))
            self.store.delete(*keys)
            return
        keys = self.store.keys(f"{self.key_for(user_id)}:recipient:")
        self.store.delete(self.key_for(user_id), self.active_key_for(user_id), *keys)

    def list_recipients(self, user_id: str) -> list[str]:
        prefix = f"{self.key_for(user_id)}:recipient:"
        return [key[len(prefix):] for key in self.store.keys(prefix)]


def summarize_context(signals: SignalSet) -> Optional[str]:
    """One-line human summary of the context used for a reply."""
    parts = []
    if signals.recipient_key:
        parts.append(f"recipient: {signals.recipient_key.value}")
    if signals.occasion:
        parts.append(f"occasion: {signals.occasion.value.replace('_', ' ')}")
    if signals.has_budget:
        low = f"{signals.budget_min:g}" if signals.budget_min is not None else ""
        high = f"{signals.budget_max:g}" if signals.budget_max is not None else ""
        parts.append(f"budget: {low}-{high}")
    if signals.values:
        parts.append(f"values: {', '.join(signals.values)}")
    if signals.categories:
        parts.append(f"categories: {', '.join(signals.categories[:3])}")
    if not parts:
        return None
    return f"Using your context ({'; '.join(parts)})"

"""Tests for signal merging and the context store."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from giftmatch.core.redis_client import InMemoryKeyValueStore
from giftmatch.models.domain import EmotionalFlags, Occasion, RecipientKey, SignalSet
from giftmatch.services.context_store import ContextStore, merge_signals, summarize_context


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_store(ttl: int = 0):
    clock = FakeClock()
    kv = InMemoryKeyValueStore(clock=clock)
    return ContextStore(kv, ttl_seconds=ttl, clock=clock), kv, clock


# =============================================================================
# merge_signals
# =============================================================================


def test_merge_into_nothing_copies_incoming():
    incoming = SignalSet(recipient_key=RecipientKey.SISTER, interests=["yoga"])
    merged = merge_signals(None, incoming)
    assert merged == incoming
    assert merged is not incoming
    print("✓ Merge with no existing context copies incoming")


def test_merge_scalars_prefer_incoming():
    existing = SignalSet(recipient_key=RecipientKey.SISTER, occasion=Occasion.BIRTHDAY, budget_max=50)
    incoming = SignalSet(occasion=Occasion.CHRISTMAS)

    merged = merge_signals(existing, incoming)

    assert merged.recipient_key == RecipientKey.SISTER
    assert merged.occasion == Occasion.CHRISTMAS
    assert merged.budget_max == 50
    print("✓ Present scalars overwrite, absent scalars keep stored values")


def test_merge_lists_union_newest_first():
    existing = SignalSet(interests=["reading", "tea"], values=["handmade"])
    incoming = SignalSet(interests=["Tea", "gardening"], values=["vegan"])

    merged = merge_signals(existing, incoming)

    assert merged.interests == ["tea", "gardening", "reading"]
    assert merged.values == ["vegan", "handmade"]
    print(f"✓ Lists unioned, newest first, de-duplicated: {merged.interests}")


def test_merge_is_idempotent():
    existing = SignalSet(recipient_key=RecipientKey.MOTHER, categories=["Home & Garden"], budget_min=20)
    incoming = SignalSet(interests=["cooking"], categories=["Food & Beverages"], budget_max=60)

    once = merge_signals(existing, incoming)
    twice = merge_signals(once, incoming)

    assert once == twice
    print("✓ merge(merge(a, b), b) == merge(a, b)")


def test_merge_drops_contradicting_stored_bound():
    existing = SignalSet(budget_min=80, budget_max=120)
    incoming = SignalSet(budget_max=50)

    merged = merge_signals(existing, incoming)

    assert merged.budget_max == 50
    assert merged.budget_min is None
    print("✓ Stale min dropped when new max is lower")


def test_merge_replaces_emotional_flags():
    existing = SignalSet(emotional=EmotionalFlags(anxiety=True))
    incoming = SignalSet(emotional=EmotionalFlags(excitement=True))

    merged = merge_signals(existing, incoming)

    assert not merged.emotional.anxiety
    assert merged.emotional.excitement
    print("✓ Emotional flags describe the latest turn only")


def test_merge_caps_list_sizes():
    existing = SignalSet(categories=[f"cat{i}" for i in range(8)])
    incoming = SignalSet(categories=["new1", "new2"])

    merged = merge_signals(existing, incoming)

    assert len(merged.categories) == 8
    assert merged.categories[:2] == ["new1", "new2"]
    print("✓ Categories capped after merge")


# =============================================================================
# ContextStore
# =============================================================================


def test_update_then_load_round_trip():
    store, _, _ = make_store()
    store.update("u1", SignalSet(recipient_key=RecipientKey.SISTER, budget_max=50), note="hi")

    record = store.load("u1", "sister")
    assert record is not None
    assert record.recipient_key == "sister"
    assert record.signals.budget_max == 50
    assert record.notes == ["hi"]
    assert record.updated_at == 1000.0
    print("✓ Stored context reloads")


def test_follow_up_turn_inherits_recipient_scope():
    store, _, _ = make_store()
    store.update("u1", SignalSet(recipient_key=RecipientKey.SISTER))
    record = store.update("u1", SignalSet(budget_max=40))

    assert record.recipient_key == "sister"
    assert record.signals.recipient_key == RecipientKey.SISTER
    assert record.signals.budget_max == 40
    assert store.get("u1", "sister").signals.budget_max == 40
    print("✓ Follow-up without a recipient updates the recipient under discussion")


def test_recipient_scopes_are_separate():
    store, _, _ = make_store()
    store.update("u1", SignalSet(recipient_key=RecipientKey.SISTER, interests=["yoga"]))
    store.update("u1", SignalSet(recipient_key=RecipientKey.FATHER, interests=["fishing"]))

    assert store.get("u1", "sister").signals.interests == ["yoga"]
    assert store.get("u1", "father").signals.interests == ["fishing"]
    assert store.list_recipients("u1") == ["father", "sister"]
    print("✓ Each recipient keeps its own context")


def test_new_recipient_starts_from_default_context():
    """Details given before naming anyone carry over to every new recipient."""
    store, _, _ = make_store()
    store.update("u1", SignalSet(budget_max=50, interests=["gardening"]), note="budget $50, loves gardening")
    store.update("u1", SignalSet(recipient_key=RecipientKey.MOTHER), note="for my mom")

    record = store.update("u1", SignalSet(recipient_key=RecipientKey.SISTER), note="actually my sister")

    assert record.recipient_key == "sister"
    assert record.signals.budget_max == 50
    assert record.signals.interests == ["gardening"]
    assert record.notes == ["budget $50, loves gardening", "actually my sister"]

    default = store.get("u1")
    assert default.recipient_key is None
    assert default.signals.recipient_key is None
    assert default.notes == ["budget $50, loves gardening"]
    print("✓ Missing recipient scope falls back to the default record")


def test_recipient_turns_do_not_overwrite_default():
    store, _, _ = make_store()
    store.update("u1", SignalSet(budget_max=50))
    store.update("u1", SignalSet(recipient_key=RecipientKey.FATHER, budget_max=200, interests=["fishing"]))

    assert store.get("u1").signals.budget_max == 50
    assert store.get("u1").signals.interests == []
    assert store.active_recipient("u1") == "father"
    assert store.load("u1").recipient_key == "father"
    print("✓ Recipient turns write only their own scope")


def test_notes_are_capped():
    store, _, _ = make_store()
    for i in range(25):
        store.update("u1", SignalSet(), note=f"message {i}")

    record = store.load("u1")
    assert len(record.notes) == 20
    assert record.notes[-1] == "message 24"
    print("✓ Only the most recent notes are kept")


def test_context_expires_after_ttl():
    store, _, clock = make_store(ttl=60)
    store.update("u1", SignalSet(budget_max=30))

    clock.now += 59
    assert store.load("u1") is not None

    clock.now += 2
    assert store.load("u1") is None
    print("✓ Context expires after its TTL")


def test_malformed_context_is_treated_as_absent():
    store, kv, _ = make_store()
    kv.set_raw(store.key_for("u1"), "{not json")
    assert store.load("u1") is None

    kv.set(store.key_for("u2"), {"signals": {"budget_min": 90, "budget_max": 10}})
    assert store.load("u2") is None

    record = store.update("u1", SignalSet(budget_max=25))
    assert record.signals.budget_max == 25
    print("✓ Corrupt and invalid records start fresh")


def test_delete_user_removes_every_scope():
    store, kv, _ = make_store()
    store.update("u1", SignalSet(recipient_key=RecipientKey.SISTER))
    store.update("u1", SignalSet(recipient_key=RecipientKey.MOTHER))
    store.update("u2", SignalSet(budget_max=10))

    store.delete("u1")

    assert kv.keys("context:u1") == []
    assert store.load("u2") is not None
    print("✓ Deleting a user clears default and recipient scopes only for that user")


def test_delete_single_recipient():
    store, _, _ = make_store()
    store.update("u1", SignalSet(budget_max=30))
    store.update("u1", SignalSet(recipient_key=RecipientKey.SISTER))
    store.delete("u1", "sister")

    assert store.get("u1", "sister") is None
    assert store.get("u1") is not None
    assert store.active_recipient("u1") is None
    print("✓ Deleting one recipient keeps the default record")


def test_summarize_context():
    signals = SignalSet(
        recipient_key=RecipientKey.MOTHER,
        occasion=Occasion.MOTHER_DAY,
        budget_min=40,
        budget_max=60,
        values=["handmade"],
    )
    summary = summarize_context(signals)
    assert summary == (
        "Using your context (recipient: mother; occasion: mother day; budget: 40-60; values: handmade)"
    )
    assert summarize_context(SignalSet()) is None
    print(f"✓ Summary: {summary}")


def test_in_memory_store_eviction():
    clock = FakeClock()
    kv = InMemoryKeyValueStore(clock=clock)
    kv.set("a", 1, ttl=10)
    kv.set("b", 2)

    clock.now += 11
    assert kv.evict_expired() == 1
    assert kv.get("a") is None
    assert kv.get("b") == 2
    print("✓ Expired keys evicted explicitly")

"""
Tests for ProcessedEventStore.

Claim, commit and release semantics plus TTL expiry with a fake clock.
"""

import pytest

from app.services import event_store as event_store_module
from app.services.event_store import ClaimResult, ProcessedEventStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> ProcessedEventStore:
    return ProcessedEventStore(ttl_seconds=60, clock=clock)


class TestClaim:
    """Tests for claim/commit/release."""

    def test_first_claim_succeeds(self, store: ProcessedEventStore):
        assert store.claim("evt_1") is ClaimResult.CLAIMED

    def test_in_flight_event_cannot_be_claimed_twice(self, store: ProcessedEventStore):
        """A concurrent redelivery is refused while the first is running."""
        store.claim("evt_1")

        assert store.claim("evt_1") is ClaimResult.IN_PROGRESS
        assert store.is_in_flight("evt_1") is True

    def test_committed_event_is_processed(self, store: ProcessedEventStore):
        store.claim("evt_1")
        store.commit("evt_1")

        assert store.is_processed("evt_1") is True
        assert store.claim("evt_1") is ClaimResult.PROCESSED
        assert len(store) == 1

    def test_released_event_can_be_claimed_again(self, store: ProcessedEventStore):
        """Failed processing does not mark the event as processed."""
        store.claim("evt_1")
        store.release("evt_1")

        assert store.is_processed("evt_1") is False
        assert store.claim("evt_1") is ClaimResult.CLAIMED


class TestExpiry:
    """Tests for TTL expiry."""

    def test_entry_expires_after_ttl(self, store: ProcessedEventStore, clock: FakeClock):
        store.claim("evt_1")
        store.commit("evt_1")

        clock.now += 61

        assert store.is_processed("evt_1") is False
        assert store.claim("evt_1") is ClaimResult.CLAIMED
        assert len(store) == 0

    def test_entry_alive_within_ttl(self, store: ProcessedEventStore, clock: FakeClock):
        store.claim("evt_1")
        store.commit("evt_1")

        clock.now += 59

        assert store.is_processed("evt_1") is True

    def test_overflow_drops_oldest(
        self, store: ProcessedEventStore, clock: FakeClock, monkeypatch: pytest.MonkeyPatch
    ):
        """The store stays bounded, dropping the entries closest to expiry."""
        monkeypatch.setattr(event_store_module, "MAX_ENTRIES", 3)
        for i in range(3):
            store.claim(f"evt_{i}")
            store.commit(f"evt_{i}")
            clock.now += 1

        store.claim("evt_new")

        assert store.is_processed("evt_0") is False
        assert store.is_processed("evt_2") is True

    def test_overflow_trim_keeps_newest(
        self, store: ProcessedEventStore, clock: FakeClock, monkeypatch: pytest.MonkeyPatch
    ):
        """Trimming pops from the front without reordering survivors."""
        monkeypatch.setattr(event_store_module, "MAX_ENTRIES", 2)
        for i in range(5):
            store.claim(f"evt_{i}")
            store.commit(f"evt_{i}")
            clock.now += 1

        assert len(store) == 2
        assert [store.is_processed(f"evt_{i}") for i in range(5)] == [
            False,
            False,
            False,
            True,
            True,
        ]

    def test_expired_entries_purged_in_order(
        self, store: ProcessedEventStore, clock: FakeClock
    ):
        store.claim("evt_old")
        store.commit("evt_old")
        clock.now += 30
        store.claim("evt_new")
        store.commit("evt_new")

        clock.now += 31
        store.claim("evt_other")

        assert len(store) == 1
        assert store.is_processed("evt_new") is True

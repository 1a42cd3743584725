"""
Processed Event Store - at-least-once delivery guard for webhooks.

Stripe may deliver the same event more than once. An event id is claimed
before dispatch, committed after success and released on failure so the
provider's redelivery is processed again. Entries expire after a TTL.
"""

import time
from collections import OrderedDict
from collections.abc import Callable
from enum import Enum

from structlog import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 86400
MAX_ENTRIES = 100_000


class ClaimResult(str, Enum):
    """Outcome of claiming an event id."""

    CLAIMED = "claimed"
    IN_PROGRESS = "in_progress"
    PROCESSED = "processed"


class ProcessedEventStore:
    """In-memory TTL set of processed webhook event ids."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # event_id -> expiry, in commit order; constant TTL keeps it sorted by expiry
        self._processed: OrderedDict[str, float] = OrderedDict()
        self._in_flight: set[str] = set()

    def claim(self, event_id: str) -> ClaimResult:
        """
        Reserve an event id for processing.

        Only CLAIMED grants the caller the right to dispatch the event.
        """
        self._purge_expired()
        if event_id in self._processed:
            return ClaimResult.PROCESSED
        if event_id in self._in_flight:
            return ClaimResult.IN_PROGRESS
        self._in_flight.add(event_id)
        return ClaimResult.CLAIMED

    def commit(self, event_id: str) -> None:
        """Mark a claimed event as processed."""
        self._in_flight.discard(event_id)
        self._processed.pop(event_id, None)
        self._processed[event_id] = self._clock() + self.ttl_seconds

    def release(self, event_id: str) -> None:
        """Give up a claim so a redelivery is processed."""
        self._in_flight.discard(event_id)

    def is_processed(self, event_id: str) -> bool:
        expiry = self._processed.get(event_id)
        return expiry is not None and expiry > self._clock()

    def is_in_flight(self, event_id: str) -> bool:
        return event_id in self._in_flight

    def __len__(self) -> int:
        return len(self._processed)

    def _purge_expired(self) -> None:
        now = self._clock()
        while self._processed:
            _, expiry = next(iter(self._processed.items()))
            if expiry > now:
                break
            self._processed.popitem(last=False)

        if len(self._processed) >= MAX_ENTRIES:
            overflow = len(self._processed) - MAX_ENTRIES + 1
            for _ in range(overflow):
                self._processed.popitem(last=False)
            logger.warning("processed_event_store_trimmed", removed=overflow)

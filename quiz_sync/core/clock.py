"""Wall-clock sources and clock-offset estimation against the store's time."""

from __future__ import annotations

import logging
import time
from typing import Protocol

from quiz_sync.constants.quiz_constants import (
    CLOCK_SMOOTHING_WEIGHT,
    CLOCK_SYNCED_THRESHOLD_MS,
)
from quiz_sync.constants.store_constants import SERVER_TIME_COLLECTION, SERVER_TIME_DOCUMENT
from quiz_sync.core.errors import QuizSyncError
from quiz_sync.core.record_codec import normalize_timestamp
from quiz_sync.core.services.document_store import SERVER_TIMESTAMP, DocumentStore

logger = logging.getLogger(__name__)


class Clock(Protocol):
    """Anything that can report the current time in epoch milliseconds."""

    def now_ms(self) -> int: ...


class SystemClock:
    """Local wall clock."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000


class ManualClock:
    """Clock that only moves when told to; used for deterministic runs."""

    def __init__(self, start_ms: int = 0) -> None:
        self._now = start_ms

    def now_ms(self) -> int:
        return self._now

    def set(self, now_ms: int) -> None:
        self._now = now_ms

    def advance(self, delta_ms: int) -> int:
        self._now += delta_ms
        return self._now


class ClockOffsetEstimator:
    """Tracks ``server - local`` with an exponentially weighted average.

    The first sample is taken as-is. Later samples are blended in with
    ``smoothing_weight`` so a noisy round trip never makes displayed
    countdowns jump.
    """

    def __init__(self, smoothing_weight: float = CLOCK_SMOOTHING_WEIGHT) -> None:
        if not 0 < smoothing_weight <= 1:
            raise ValueError("Smoothing weight must be in (0, 1].")
        self._weight = smoothing_weight
        self._offset_ms = 0
        self._sample_count = 0

    @property
    def offset_ms(self) -> int:
        return self._offset_ms

    @property
    def sample_count(self) -> int:
        return self._sample_count

    def add_sample(self, local_before_ms: int, server_ms: int, local_after_ms: int) -> int:
        """Fold one round-trip measurement into the estimate and return it."""
        midpoint = (local_before_ms + local_after_ms) // 2
        sample = server_ms - midpoint
        if self._sample_count == 0:
            self._offset_ms = sample
        else:
            blended = self._offset_ms * (1 - self._weight) + sample * self._weight
            self._offset_ms = round(blended)
        self._sample_count += 1
        return self._offset_ms

    def is_synced(self, threshold_ms: int = CLOCK_SYNCED_THRESHOLD_MS) -> bool:
        return self._sample_count > 0 and abs(self._offset_ms) < threshold_ms


def read_server_time(store: DocumentStore) -> int:
    """Round trip: write a server-timestamp sentinel, read it back as epoch ms."""
    store.set(SERVER_TIME_COLLECTION, SERVER_TIME_DOCUMENT, {"timestamp": SERVER_TIMESTAMP})
    record = store.get(SERVER_TIME_COLLECTION, SERVER_TIME_DOCUMENT)
    server_ms = normalize_timestamp(record.get("timestamp")) if record else None
    if server_ms is None:
        raise QuizSyncError("Store did not return a server timestamp.")
    return server_ms


class SynchronizedClock:
    """Local clock corrected by the estimated offset to the store's clock."""

    def __init__(
        self,
        store: DocumentStore,
        local_clock: Clock | None = None,
        estimator: ClockOffsetEstimator | None = None,
    ) -> None:
        self._store = store
        self._local = local_clock or SystemClock()
        self._estimator = estimator or ClockOffsetEstimator()
        self._last_sync_ms: int | None = None

    @property
    def offset_ms(self) -> int:
        return self._estimator.offset_ms

    @property
    def last_sync_ms(self) -> int | None:
        return self._last_sync_ms

    def is_synced(self) -> bool:
        return self._estimator.is_synced()

    def sync(self) -> int:
        """Measure the offset once; a failed measurement keeps the previous estimate."""
        before = self._local.now_ms()
        try:
            server_ms = read_server_time(self._store)
        except QuizSyncError as exc:
            logger.warning("Clock sync failed, keeping offset %d ms: %s", self.offset_ms, exc)
            return self.offset_ms
        after = self._local.now_ms()
        offset = self._estimator.add_sample(before, server_ms, after)
        self._last_sync_ms = after
        logger.debug("Clock offset now %d ms", offset)
        return offset

    def sync_due(self, interval_ms: int) -> bool:
        if self._last_sync_ms is None:
            return True
        return self._local.now_ms() - self._last_sync_ms >= interval_ms

    def now_ms(self) -> int:
        return self._local.now_ms() + self._estimator.offset_ms

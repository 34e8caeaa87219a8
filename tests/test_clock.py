import pytest

from quiz_sync.constants.store_constants import SERVER_TIME_COLLECTION, SERVER_TIME_DOCUMENT
from quiz_sync.core.clock import (
    ClockOffsetEstimator,
    ManualClock,
    SynchronizedClock,
    read_server_time,
)
from quiz_sync.core.services.document_store import InMemoryDocumentStore


def test_first_sample_is_taken_as_is():
    estimator = ClockOffsetEstimator()
    assert estimator.add_sample(1_000, 6_000, 1_200) == 4_900
    assert estimator.sample_count == 1


def test_later_samples_are_smoothed():
    estimator = ClockOffsetEstimator(smoothing_weight=0.3)
    estimator.add_sample(1_000, 6_000, 1_200)
    assert estimator.add_sample(2_000, 7_200, 2_000) == 4_990


def test_single_outlier_moves_offset_only_partially():
    estimator = ClockOffsetEstimator(smoothing_weight=0.3)
    estimator.add_sample(0, 1_000, 0)
    estimator.add_sample(0, 11_000, 0)
    assert estimator.offset_ms == 4_000


def test_is_synced_needs_a_sample_and_small_offset():
    estimator = ClockOffsetEstimator()
    assert estimator.is_synced() is False
    estimator.add_sample(0, 100, 0)
    assert estimator.is_synced() is True
    estimator = ClockOffsetEstimator()
    estimator.add_sample(0, 60_000, 0)
    assert estimator.is_synced() is False


def test_invalid_weight_is_rejected():
    with pytest.raises(ValueError):
        ClockOffsetEstimator(smoothing_weight=0)


def test_read_server_time_round_trips_through_store():
    store = InMemoryDocumentStore(time_source=lambda: 77_000)
    assert read_server_time(store) == 77_000
    assert store.get(SERVER_TIME_COLLECTION, SERVER_TIME_DOCUMENT) is not None


def test_synchronized_clock_applies_offset():
    local = ManualClock(10_000)
    store = InMemoryDocumentStore(time_source=lambda: local.now_ms() + 5_000)
    clock = SynchronizedClock(store, local_clock=local)

    assert clock.sync_due(30_000) is True
    assert clock.sync() == 5_000
    assert clock.now_ms() == 15_000
    assert clock.is_synced() is False
    assert clock.sync_due(30_000) is False

    local.advance(30_000)
    assert clock.sync_due(30_000) is True


def test_failed_sync_keeps_previous_offset(caplog):
    local = ManualClock(0)
    store = InMemoryDocumentStore(time_source=lambda: local.now_ms() + 2_000)
    clock = SynchronizedClock(store, local_clock=local)
    clock.sync()

    store.available = False
    assert clock.sync() == 2_000
    assert clock.now_ms() == 2_000
    assert "Clock sync failed" in caplog.text

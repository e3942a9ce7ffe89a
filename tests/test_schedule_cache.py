"""
Bifrost Schedule Cache and Tracker Tests

  1. ScheduleCache   (hits, single-flight, failure propagation, eviction, teardown)
  2. LeaderTracker   (slot lookups across epochs, upcoming leaders, rotation)
  3. SlotsTracker    (current-slot estimate with outlier rejection)
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from bifrost.exceptions import (
    CacheClosed,
    ConfigurationError,
    EmptyStakeSet,
    ScheduleTimeout,
    ZeroSlots,
)
from bifrost.metrics import ScheduleMetrics
from bifrost.schedule import (
    LeaderTracker,
    ScheduleBuilder,
    ScheduleCache,
    SlotEvent,
    SlotsTracker,
    StakeSnapshot,
    ValidatorId,
)


# =============================================================================
# FIXTURES
# =============================================================================

def vid(byte: int) -> ValidatorId:
    return ValidatorId(bytes([byte]) * 32)


A = vid(0x0A)
B = vid(0x0B)
C = vid(0x0C)

STAKES = {A: 1000, B: 1000, C: 500}


class CountingProvider:
    """Stake provider that records every epoch it is asked for."""

    def __init__(self, stakes=None, delay: float = 0.0):
        self.stakes = STAKES if stakes is None else stakes
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, epoch: int):
        with self._lock:
            self.calls.append(epoch)
        if self.delay:
            time.sleep(self.delay)
        return self.stakes

    @property
    def count(self) -> int:
        return len(self.calls)


@pytest.fixture
def metrics():
    return ScheduleMetrics()


@pytest.fixture
def cache(metrics):
    cache = ScheduleCache(slots_per_epoch=12, retention=3, metrics=metrics)
    yield cache
    cache.close()


# =============================================================================
# SCHEDULE CACHE
# =============================================================================

class TestScheduleCache:
    """Test per-epoch memoization."""

    def test_builds_once_then_hits(self, cache, metrics):
        provider = CountingProvider()
        first = cache.get_or_build(0, provider)
        second = cache.get_or_build(0, provider)

        assert first is second
        assert provider.count == 1
        assert metrics.builds_total.value == 1
        assert metrics.cache_hits_total.value == 1
        assert metrics.cache_misses_total.value == 1
        assert list(first) == [A] * 4 + [B] * 8

    def test_matches_direct_build(self, cache):
        built = cache.get_or_build(5, CountingProvider())
        direct = ScheduleBuilder().build(StakeSnapshot.normalize(STAKES), 5, 12)
        assert built == direct

    def test_get_does_not_build(self, cache):
        assert cache.get(1) is None
        assert 1 not in cache
        schedule = cache.get_or_build(1, CountingProvider())
        assert cache.get(1) is schedule
        assert 1 in cache
        assert len(cache) == 1

    def test_invalid_construction(self):
        with pytest.raises(ZeroSlots):
            ScheduleCache(slots_per_epoch=0)
        with pytest.raises(ConfigurationError):
            ScheduleCache(slots_per_epoch=32, retention=0)

    def test_single_flight(self, cache, metrics):
        provider = CountingProvider(delay=0.2)
        workers = 16
        barrier = threading.Barrier(workers)

        def lookup():
            barrier.wait()
            return cache.get_or_build(7, provider)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = [f.result() for f in [pool.submit(lookup) for _ in range(workers)]]

        assert provider.count == 1
        assert metrics.builds_total.value == 1
        assert all(r is results[0] for r in results)

    def test_failure_reaches_every_waiter(self, cache, metrics):
        provider = CountingProvider(stakes={}, delay=0.2)
        workers = 8
        barrier = threading.Barrier(workers)

        def lookup():
            barrier.wait()
            try:
                cache.get_or_build(3, provider)
            except EmptyStakeSet as e:
                return e
            return None

        with ThreadPoolExecutor(max_workers=workers) as pool:
            errors = [f.result() for f in [pool.submit(lookup) for _ in range(workers)]]

        assert all(isinstance(e, EmptyStakeSet) for e in errors)
        assert 3 not in cache
        assert metrics.build_failures_total.value >= 1

        # A later call with corrected input retries and succeeds
        schedule = cache.get_or_build(3, CountingProvider())
        assert len(schedule) == 12
        assert 3 in cache

    def test_interrupted_build_is_retried(self, cache, metrics):
        class Interrupted(BaseException):
            pass

        def interrupted_provider(epoch):
            raise Interrupted()

        with pytest.raises(Interrupted):
            cache.get_or_build(5, interrupted_provider)

        assert 5 not in cache
        assert metrics.build_failures_total.value == 1
        schedule = cache.get_or_build(5, CountingProvider(), timeout=0.5)
        assert schedule.epoch == 5
        assert 5 in cache

    def test_interrupted_build_reaches_waiters(self, cache):
        class Interrupted(BaseException):
            pass

        release = threading.Event()
        entered = threading.Event()

        def interrupted_provider(epoch):
            entered.set()
            release.wait(5)
            raise Interrupted()

        def owner():
            try:
                cache.get_or_build(6, interrupted_provider)
            except Interrupted as e:
                return e
            return None

        with ThreadPoolExecutor(max_workers=2) as pool:
            owner_future = pool.submit(owner)
            assert entered.wait(5)
            waiter = pool.submit(cache.get_or_build, 6, interrupted_provider, 5)
            time.sleep(0.05)
            release.set()
            assert isinstance(owner_future.result(5), Interrupted)
            with pytest.raises(Interrupted):
                waiter.result(5)

    def test_waiter_timeout(self, cache):
        release = threading.Event()
        entered = threading.Event()

        def blocking_provider(epoch):
            entered.set()
            release.wait(5)
            return STAKES

        with ThreadPoolExecutor(max_workers=1) as pool:
            owner = pool.submit(cache.get_or_build, 9, blocking_provider)
            assert entered.wait(5)
            with pytest.raises(ScheduleTimeout) as exc_info:
                cache.get_or_build(9, blocking_provider, timeout=0.05)
            assert exc_info.value.epoch == 9
            release.set()
            schedule = owner.result(5)

        assert cache.get_or_build(9, blocking_provider) is schedule

    def test_unrelated_epochs_do_not_block(self, cache):
        release = threading.Event()
        entered = threading.Event()

        def slow_provider(epoch):
            entered.set()
            release.wait(5)
            return STAKES

        with ThreadPoolExecutor(max_workers=1) as pool:
            slow = pool.submit(cache.get_or_build, 1, slow_provider)
            assert entered.wait(5)
            # Epoch 2 builds while epoch 1 is still in flight
            other = cache.get_or_build(2, CountingProvider())
            assert other.epoch == 2
            assert not slow.done()
            release.set()
            assert slow.result(5).epoch == 1

    def test_eviction_of_oldest(self, cache, metrics):
        provider = CountingProvider()
        original = cache.get_or_build(0, provider)
        for epoch in (1, 2, 3):
            cache.get_or_build(epoch, provider)

        assert cache.epochs() == [1, 2, 3]
        assert 0 not in cache
        assert metrics.evictions_total.value == 1
        assert metrics.cached_epochs.value == 3

        rebuilt = cache.get_or_build(0, provider)
        assert provider.calls == [0, 1, 2, 3, 0]
        assert rebuilt is not original
        assert rebuilt == original
        assert cache.epochs() == [2, 3, 0]

    def test_explicit_evict_and_clear(self, cache):
        cache.get_or_build(0, CountingProvider())
        cache.get_or_build(1, CountingProvider())
        assert cache.evict(0) is True
        assert cache.evict(0) is False
        cache.clear()
        assert len(cache) == 0

    def test_close(self, metrics):
        with ScheduleCache(slots_per_epoch=12, metrics=metrics) as cache:
            cache.get_or_build(0, CountingProvider())
        assert cache.closed
        assert len(cache) == 0
        with pytest.raises(CacheClosed):
            cache.get_or_build(0, CountingProvider())

    def test_custom_builder(self):
        with ScheduleCache(slots_per_epoch=8, builder=ScheduleBuilder(leader_slot_span=2)) as cache:
            schedule = cache.get_or_build(0, CountingProvider())
        for i in range(1, 8, 2):
            assert schedule[i] == schedule[i - 1]


# =============================================================================
# LEADER TRACKER
# =============================================================================

class TestLeaderTracker:
    """Test slot → leader lookups."""

    @pytest.fixture
    def provider(self):
        return CountingProvider()

    @pytest.fixture
    def tracker(self, cache, provider):
        return LeaderTracker(cache, provider)

    def test_leader_for_slot(self, tracker):
        schedule = tracker.schedule_for(0)
        for slot in range(12):
            assert tracker.leader_for(slot) == schedule[slot]
        assert tracker.leader_for(0) == A
        assert tracker.leader_for(11) == B

    def test_leader_in_later_epoch(self, tracker):
        schedule = tracker.schedule_for(4)
        assert tracker.leader_for(4 * 12 + 5) == schedule[5]

    def test_negative_slot(self, tracker):
        with pytest.raises(IndexError):
            tracker.leader_for(-1)

    def test_epoch_params(self, tracker):
        params = tracker.epoch_params(30)
        assert params.epoch == 2
        assert params.slot_index(30) == 6

    def test_upcoming_leaders_distinct_in_order(self, tracker):
        assert tracker.upcoming_leaders(0, 12) == [A, B]
        assert tracker.upcoming_leaders(2, 1) == [A]

    def test_upcoming_leaders_cross_epoch(self, tracker, provider):
        next_first = tracker.schedule_for(1)[0]
        leaders = tracker.upcoming_leaders(10, 3)
        assert leaders[0] == B
        assert next_first in leaders
        assert set(provider.calls) == {0, 1}

    def test_on_slot_rotation_prefetches(self, tracker, provider, cache):
        assert tracker.on_slot(5) is True
        assert 0 in cache and 1 in cache
        assert tracker.on_slot(6) is False
        assert tracker.on_slot(12) is True
        assert 2 in cache
        assert provider.calls == [0, 1, 2]


# =============================================================================
# SLOTS TRACKER
# =============================================================================

def tracker_from_slots(slots):
    tracker = SlotsTracker()
    for slot in slots:
        tracker.record(SlotEvent.start(slot))
        tracker.record(SlotEvent.end(slot))
    return tracker


class TestSlotsTracker:
    """Test current-slot estimation."""

    def test_sequential_slots(self):
        assert tracker_from_slots(range(1, 13)).current_slot == 13

    def test_reverse_order(self):
        assert tracker_from_slots(range(12, 0, -1)).current_slot == 13

    def test_record_returns_estimate(self):
        tracker = SlotsTracker()
        assert tracker.record(SlotEvent.start(13)) == 13
        assert tracker.current_slot == 13
        assert tracker.record(SlotEvent.start(14)) == 14

    def test_outlier_rejection(self):
        assert tracker_from_slots([1, 100]).current_slot == 2
        assert tracker_from_slots([1, 2, 100]).current_slot == 3

    def test_window_is_bounded(self):
        tracker = tracker_from_slots(range(1, 200))
        assert tracker.current_slot == 200

    def test_updates_from_notifications(self):
        tracker = SlotsTracker()
        assert tracker.record_update({"type": "firstShredReceived", "slot": 40, "timestamp": 0}) == 40
        assert tracker.record_update({"type": "completed", "slot": 40, "timestamp": 0}) == 41
        assert tracker.record_update({"type": "optimisticConfirmation", "slot": 90}) is None
        assert tracker.current_slot == 41

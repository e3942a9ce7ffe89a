"""
Bifrost Schedule Cache

Memoizes built leader schedules per epoch with single-flight construction
and a bounded retention window.

Concurrency:
- Lookups of built epochs take the cache lock only long enough to read a dict
- A missing epoch is built by exactly one caller; concurrent callers for the
  same epoch wait on that build and receive the same schedule or exception
- No lock is held while a build runs, so builds of different epochs proceed
  in parallel
"""

import threading
from collections import OrderedDict
from typing import Callable, Dict, List, Optional

from ..constants import DEFAULT_SCHEDULE_RETENTION
from ..exceptions import CacheClosed, ConfigurationError, ScheduleTimeout, ZeroSlots
from ..logger import get_logger
from ..metrics import ScheduleMetrics
from .builder import ScheduleBuilder
from .snapshot import RawStakes, StakeSnapshot
from .types import LeaderSchedule

logger = get_logger(__name__)

StakeProvider = Callable[[int], RawStakes]


class _InFlightBuild:
    """Result slot shared by every caller waiting on one epoch's build."""

    __slots__ = ("epoch", "_done", "_schedule", "_error")

    def __init__(self, epoch: int):
        self.epoch = epoch
        self._done = threading.Event()
        self._schedule: Optional[LeaderSchedule] = None
        self._error: Optional[BaseException] = None

    def resolve(self, schedule: LeaderSchedule) -> None:
        self._schedule = schedule
        self._done.set()

    def fail(self, error: BaseException) -> None:
        self._error = error
        self._done.set()

    def wait(self, timeout: Optional[float] = None) -> LeaderSchedule:
        if not self._done.wait(timeout):
            raise ScheduleTimeout(self.epoch, timeout)
        if self._error is not None:
            raise self._error
        return self._schedule


class ScheduleCache:
    """
    Process-wide cache of leader schedules keyed by epoch.

    Construct once at startup, inject into consumers, and call
    :meth:`close` (or use it as a context manager) at shutdown.

    Args:
        slots_per_epoch: Slots in every epoch
        retention: Maximum number of built epochs to keep
        builder: Schedule builder (default: 4-slot leader span)
        metrics: Optional metrics collector to update
        wait_timeout: Default seconds to wait on another caller's build
    """

    def __init__(
        self,
        slots_per_epoch: int,
        retention: int = DEFAULT_SCHEDULE_RETENTION,
        builder: Optional[ScheduleBuilder] = None,
        metrics: Optional[ScheduleMetrics] = None,
        wait_timeout: Optional[float] = None,
    ):
        if slots_per_epoch <= 0:
            raise ZeroSlots()
        if retention < 1:
            raise ConfigurationError(f"retention must be at least 1, got {retention}")

        self.slots_per_epoch = slots_per_epoch
        self.retention = retention
        self.builder = builder or ScheduleBuilder()
        self.metrics = metrics
        self.wait_timeout = wait_timeout

        # Insertion order is build order; the first key is the oldest build
        self._entries: "OrderedDict[int, LeaderSchedule]" = OrderedDict()
        self._inflight: Dict[int, _InFlightBuild] = {}
        self._lock = threading.Lock()
        self._closed = False

        logger.debug(
            f"Schedule cache started ({slots_per_epoch} slots per epoch, "
            f"retention {retention})"
        )

    def __enter__(self) -> "ScheduleCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, epoch: int) -> Optional[LeaderSchedule]:
        """Built schedule for epoch, or None without building."""
        with self._lock:
            return self._entries.get(epoch)

    def get_or_build(
        self,
        epoch: int,
        stake_provider: StakeProvider,
        timeout: Optional[float] = None,
    ) -> LeaderSchedule:
        """
        Return the schedule for epoch, building it once if needed.

        Args:
            epoch: Epoch number
            stake_provider: Callable returning raw stake weights for an epoch
            timeout: Seconds to wait on another caller's in-flight build
                (defaults to the cache's wait_timeout; None waits forever)

        Returns:
            The shared, immutable LeaderSchedule

        Raises:
            CacheClosed: The cache was closed
            ScheduleTimeout: Waiting on another caller's build timed out
            ScheduleError: The build failed (propagated to every waiter)
        """
        with self._lock:
            if self._closed:
                raise CacheClosed("Schedule cache is closed")
            schedule = self._entries.get(epoch)
            if schedule is not None:
                if self.metrics:
                    self.metrics.cache_hits_total.inc()
                return schedule
            inflight = self._inflight.get(epoch)
            owner = inflight is None
            if owner:
                inflight = _InFlightBuild(epoch)
                self._inflight[epoch] = inflight

        if self.metrics:
            self.metrics.cache_misses_total.inc()

        if not owner:
            logger.debug(f"Waiting on in-flight build for epoch {epoch}")
            return inflight.wait(self.wait_timeout if timeout is None else timeout)

        try:
            schedule = self._build(epoch, stake_provider)
        except BaseException as e:
            # Interrupts included: waiters must never be left on a dead build
            with self._lock:
                self._inflight.pop(epoch, None)
            inflight.fail(e)
            if self.metrics:
                self.metrics.build_failures_total.inc()
            logger.warning(f"Schedule build for epoch {epoch} failed: {e!r}")
            raise

        self._publish(epoch, schedule)
        inflight.resolve(schedule)
        return schedule

    def _build(self, epoch: int, stake_provider: StakeProvider) -> LeaderSchedule:
        if self.metrics:
            self.metrics.builds_total.inc()
            with self.metrics.build_seconds.time():
                snapshot = StakeSnapshot.normalize(stake_provider(epoch))
                return self.builder.build(snapshot, epoch, self.slots_per_epoch)
        snapshot = StakeSnapshot.normalize(stake_provider(epoch))
        return self.builder.build(snapshot, epoch, self.slots_per_epoch)

    def _publish(self, epoch: int, schedule: LeaderSchedule) -> None:
        evicted: List[int] = []
        with self._lock:
            self._inflight.pop(epoch, None)
            if self._closed:
                return
            self._entries[epoch] = schedule
            while len(self._entries) > self.retention:
                old_epoch, _ = self._entries.popitem(last=False)
                evicted.append(old_epoch)
            cached = len(self._entries)

        if self.metrics:
            self.metrics.cached_epochs.set(cached)
            if evicted:
                self.metrics.evictions_total.inc(len(evicted))

        logger.info(f"Published leader schedule for epoch {epoch}")
        if evicted:
            logger.debug(f"Evicted epochs {evicted} from schedule cache")

    def evict(self, epoch: int) -> bool:
        """Drop one epoch's schedule. Returns True if it was cached."""
        with self._lock:
            removed = self._entries.pop(epoch, None) is not None
            cached = len(self._entries)
        if removed and self.metrics:
            self.metrics.evictions_total.inc()
            self.metrics.cached_epochs.set(cached)
        return removed

    def epochs(self) -> List[int]:
        """Cached epochs, oldest build first."""
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        if self.metrics:
            self.metrics.cached_epochs.set(0)

    def close(self) -> None:
        """Tear down: drop every schedule and refuse further builds."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._entries.clear()
        if self.metrics:
            self.metrics.cached_epochs.set(0)
        logger.debug("Schedule cache closed")

    def __contains__(self, epoch: int) -> bool:
        with self._lock:
            return epoch in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

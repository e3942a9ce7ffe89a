"""
Bifrost Leader Tracker

Slot → leader lookups on top of the schedule cache, plus an estimate of the
cluster's current slot from a stream of slot start/end notifications.

Looking up the leader for a slot:
1. epoch = slot // slots_per_epoch, offset = slot % slots_per_epoch
2. fetch (or build once) that epoch's schedule from the cache
3. return schedule[offset]
"""

import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, List, Optional

from ..constants import MAX_SLOT_SKIP_DISTANCE, RECENT_SLOT_EVENTS_CAPACITY
from ..logger import get_logger
from .cache import ScheduleCache, StakeProvider
from .types import EpochParams, LeaderSchedule, ValidatorId

logger = get_logger(__name__)


class LeaderTracker:
    """
    Answers "who leads slot N" for any slot, across epochs.

    Args:
        cache: Shared schedule cache (owns slots_per_epoch)
        stake_provider: Callable returning raw stake weights for an epoch
    """

    def __init__(self, cache: ScheduleCache, stake_provider: StakeProvider):
        self.cache = cache
        self.stake_provider = stake_provider
        self._current_epoch: Optional[int] = None
        self._lock = threading.Lock()

    @property
    def slots_per_epoch(self) -> int:
        return self.cache.slots_per_epoch

    def epoch_params(self, slot: int) -> EpochParams:
        return EpochParams.for_slot(slot, self.slots_per_epoch)

    def schedule_for(self, epoch: int) -> LeaderSchedule:
        """Whole-epoch schedule (read-only, shared)."""
        return self.cache.get_or_build(epoch, self.stake_provider)

    def leader_for(self, slot: int) -> ValidatorId:
        """Leader of an absolute slot."""
        if slot < 0:
            raise IndexError(f"Slot {slot} is negative")
        epoch, offset = divmod(slot, self.slots_per_epoch)
        return self.schedule_for(epoch)[offset]

    def upcoming_leaders(self, slot: int, count: int) -> List[ValidatorId]:
        """
        Distinct leaders of slots ``slot .. slot + count - 1`` in slot order.

        Crosses epoch boundaries, building the next epoch's schedule if the
        window reaches into it.
        """
        leaders: List[ValidatorId] = []
        seen = set()
        for s in range(slot, slot + count):
            leader = self.leader_for(s)
            if leader not in seen:
                seen.add(leader)
                leaders.append(leader)
        return leaders

    def prefetch(self, epoch: int) -> LeaderSchedule:
        """Build an epoch's schedule ahead of time."""
        return self.schedule_for(epoch)

    def on_slot(self, slot: int) -> bool:
        """
        Record the current slot.

        On entering a new epoch, logs the rotation and warms the following
        epoch so lookups near the boundary never wait on a build.

        Returns:
            True if the slot started a new epoch
        """
        epoch = slot // self.slots_per_epoch
        with self._lock:
            if self._current_epoch is not None and epoch <= self._current_epoch:
                return False
            previous, self._current_epoch = self._current_epoch, epoch

        if previous is not None:
            logger.info(f"Rotated from epoch {previous} to epoch {epoch} at slot {slot}")
        self.schedule_for(epoch)
        self.prefetch(epoch + 1)
        return True


class SlotEventKind(Enum):
    """Slot notification type."""
    START = "start"  # first shred of the slot received
    END = "end"      # slot completed


@dataclass(frozen=True)
class SlotEvent:
    """A slot start or end notification."""
    kind: SlotEventKind
    slot: int

    @property
    def is_start(self) -> bool:
        return self.kind is SlotEventKind.START

    @classmethod
    def start(cls, slot: int) -> "SlotEvent":
        return cls(SlotEventKind.START, slot)

    @classmethod
    def end(cls, slot: int) -> "SlotEvent":
        return cls(SlotEventKind.END, slot)

    @classmethod
    def from_update(cls, update: dict) -> Optional["SlotEvent"]:
        """
        Map a ``slotsUpdatesSubscribe`` notification to an event.

        ``firstShredReceived`` is a start, ``completed`` an end; anything
        else is ignored.
        """
        kind = update.get("type")
        if kind == "firstShredReceived":
            return cls.start(int(update["slot"]))
        if kind == "completed":
            return cls.end(int(update["slot"]))
        return None


class SlotsTracker:
    """
    Current-slot estimate from recent slot notifications.

    Validators occasionally broadcast far-future slots; the estimate takes
    the median of the recent window and ignores anything more than
    MAX_SLOT_SKIP_DISTANCE slots beyond where the median says we should be.
    """

    def __init__(self, capacity: int = RECENT_SLOT_EVENTS_CAPACITY):
        self._events: Deque[SlotEvent] = deque(maxlen=capacity)
        self._current_slot = 0
        self._lock = threading.Lock()

    @property
    def current_slot(self) -> int:
        return self._current_slot

    def record(self, event: Optional[SlotEvent]) -> Optional[int]:
        """
        Record an event and return the new estimate (None if ignored).
        """
        if event is None:
            return None
        with self._lock:
            self._events.append(event)
            self._current_slot = self._estimate()
            return self._current_slot

    def record_update(self, update: dict) -> Optional[int]:
        return self.record(SlotEvent.from_update(update))

    def _estimate(self) -> int:
        if not self._events:
            return self._current_slot

        # Same slot: start sorts before end
        events = sorted(self._events, key=lambda e: (e.slot, not e.is_start))

        max_idx = len(events) - 1
        median_idx = max_idx // 2
        expected = events[median_idx].slot + (max_idx - median_idx)
        max_reasonable = expected + MAX_SLOT_SKIP_DISTANCE

        idx = median_idx
        for i in range(max_idx, -1, -1):
            if events[i].slot <= max_reasonable:
                idx = i
                break

        event = events[idx]
        return event.slot if event.is_start else event.slot + 1

"""
Bifrost Leader Schedule Module

Computes the stake-weighted slot leader schedule locally, producing the same
deterministic assignment every validator derives, without a remote lookup
per slot.

Components:
- StakeSnapshot: Canonical ordering of raw stake weights
- WeightedSampler: Cumulative-weight index selection
- ChaChaRng: Epoch-seeded ChaCha20 stream with unbiased range reduction
- ScheduleBuilder: Full-epoch slot → leader assignment
- ScheduleCache: Single-flight, bounded per-epoch memoization
- LeaderTracker: Slot → leader lookups across epochs
- SlotsTracker: Current-slot estimate from slot notifications

Usage:
    from bifrost.schedule import ScheduleCache, LeaderTracker, ScheduleConfig

    config = ScheduleConfig.from_file("config.toml")
    with ScheduleCache(config.slots_per_epoch, config.retention) as cache:
        tracker = LeaderTracker(cache, fetch_stakes)
        leader = tracker.leader_for(slot)
"""

from .types import (
    ValidatorId,
    StakeEntry,
    EpochParams,
    LeaderSchedule,
)
from .snapshot import StakeSnapshot, stakes_from_vote_accounts
from .sampler import WeightedSampler
from .rng import ChaChaRng, epoch_seed
from .builder import ScheduleBuilder, build_leader_schedule
from .cache import ScheduleCache, StakeProvider
from .config import ScheduleConfig
from .tracker import (
    LeaderTracker,
    SlotEvent,
    SlotEventKind,
    SlotsTracker,
)

__all__ = [
    # Types
    "ValidatorId",
    "StakeEntry",
    "EpochParams",
    "LeaderSchedule",
    # Snapshot
    "StakeSnapshot",
    "stakes_from_vote_accounts",
    # Sampling
    "WeightedSampler",
    "ChaChaRng",
    "epoch_seed",
    # Building
    "ScheduleBuilder",
    "build_leader_schedule",
    # Cache
    "ScheduleCache",
    "StakeProvider",
    # Config
    "ScheduleConfig",
    # Tracking
    "LeaderTracker",
    "SlotEvent",
    "SlotEventKind",
    "SlotsTracker",
]

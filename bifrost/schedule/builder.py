"""
Bifrost Schedule Builder

Stake-weighted leader schedule construction.

Algorithm (identical on every participant):
1. Normalize stakes: descending stake, ties by descending identity
2. Build a cumulative-weight sampler over the normalized order
3. Seed ChaCha20 with the epoch number
4. Walk the epoch's slots once; at every multiple of the leader slot span
   draw ``uniform_u64(total)``, resolve it to a validator and keep that
   leader for the following span of slots
"""

import time
from typing import Optional

from ..constants import NUM_CONSECUTIVE_LEADER_SLOTS
from ..exceptions import ConfigurationError, EmptyStakeSet, ZeroSlots
from ..logger import get_logger
from .rng import ChaChaRng
from .sampler import WeightedSampler
from .snapshot import RawStakes, StakeSnapshot
from .types import LeaderSchedule, check_u64_arg

logger = get_logger(__name__)


class ScheduleBuilder:
    """
    Builds the full leader schedule for one epoch.

    Stateless apart from the leader slot span, so one builder may serve any
    number of threads.
    """

    def __init__(self, leader_slot_span: int = NUM_CONSECUTIVE_LEADER_SLOTS):
        if leader_slot_span < 1:
            raise ConfigurationError(
                f"leader_slot_span must be at least 1, got {leader_slot_span}"
            )
        self.leader_slot_span = leader_slot_span

    def build(
        self,
        snapshot: StakeSnapshot,
        epoch: int,
        slots_per_epoch: int,
    ) -> LeaderSchedule:
        """
        Build the leader schedule for an epoch.

        Args:
            snapshot: Normalized stake snapshot
            epoch: Epoch number (seeds the RNG)
            slots_per_epoch: Number of slots in the epoch

        Returns:
            LeaderSchedule with exactly slots_per_epoch entries

        Raises:
            EmptyStakeSet: Snapshot has no entries
            ZeroSlots: slots_per_epoch is 0
            WeightOverflow: Total stake exceeds u64
        """
        if snapshot is None or len(snapshot) == 0:
            raise EmptyStakeSet()
        check_u64_arg(epoch, "epoch")
        check_u64_arg(slots_per_epoch, "slots_per_epoch")
        if slots_per_epoch == 0:
            raise ZeroSlots()

        started = time.perf_counter()

        keys = snapshot.validator_ids()
        sampler = WeightedSampler(snapshot.stakes())
        rng = ChaChaRng.from_epoch(epoch)

        span = self.leader_slot_span
        total = sampler.total
        sample = sampler.sample
        draw = rng.uniform_u64

        leaders = [None] * slots_per_epoch
        leader = None
        for slot in range(slots_per_epoch):
            if slot % span == 0:
                leader = keys[sample(draw(total))]
            leaders[slot] = leader

        schedule = LeaderSchedule(epoch, leaders)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(
            f"Built schedule for epoch {epoch}: {slots_per_epoch} slots, "
            f"{len(snapshot)} validators in {elapsed_ms:.1f}ms"
        )
        return schedule

    def build_from_stakes(
        self,
        raw: RawStakes,
        epoch: int,
        slots_per_epoch: int,
    ) -> LeaderSchedule:
        """Normalize raw weights and build in one step."""
        return self.build(StakeSnapshot.normalize(raw), epoch, slots_per_epoch)


def build_leader_schedule(
    snapshot: StakeSnapshot,
    epoch: int,
    slots_per_epoch: int,
    leader_slot_span: Optional[int] = None,
) -> LeaderSchedule:
    """Build a schedule with a one-off builder."""
    if leader_slot_span is None:
        leader_slot_span = NUM_CONSECUTIVE_LEADER_SLOTS
    builder = ScheduleBuilder(leader_slot_span)
    return builder.build(snapshot, epoch, slots_per_epoch)

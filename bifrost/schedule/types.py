"""
Bifrost Schedule Types

Core value types shared by the schedule builder, cache and tracker.
"""

from dataclasses import dataclass
from functools import total_ordering
from typing import Dict, Iterator, List, Sequence, Tuple, Union

import base58

from ..constants import (
    NUM_CONSECUTIVE_LEADER_SLOTS,
    U64_MAX,
    VALIDATOR_ID_LENGTH,
)
from ..exceptions import InvalidStake, InvalidValidatorId, ZeroSlots


@total_ordering
class ValidatorId:
    """
    Fixed-length validator identity (32 bytes).

    Ordered by raw byte value, hashable, and rendered in base58 the way
    vote-account payloads carry node identities.
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: bytes):
        if isinstance(raw, (bytearray, memoryview)):
            raw = bytes(raw)
        if not isinstance(raw, bytes):
            raise InvalidValidatorId(f"Validator id must be bytes, got {type(raw).__name__}")
        if len(raw) != VALIDATOR_ID_LENGTH:
            raise InvalidValidatorId(
                f"Validator id must be {VALIDATOR_ID_LENGTH} bytes, got {len(raw)}"
            )
        object.__setattr__(self, "_raw", raw)

    def __setattr__(self, name, value):
        raise AttributeError("ValidatorId is immutable")

    @classmethod
    def from_base58(cls, text: str) -> "ValidatorId":
        try:
            raw = base58.b58decode(text)
        except ValueError as e:
            raise InvalidValidatorId(f"Invalid base58 validator id {text!r}: {e}") from e
        return cls(raw)

    @classmethod
    def parse(cls, value: Union["ValidatorId", bytes, str]) -> "ValidatorId":
        """
        Coerce a ValidatorId, raw 32 bytes, 64 hex chars or base58 text.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(bytes(value))
        if isinstance(value, str):
            text = value.strip()
            if len(text) == VALIDATOR_ID_LENGTH * 2:
                try:
                    return cls(bytes.fromhex(text))
                except ValueError:
                    pass
            return cls.from_base58(text)
        raise InvalidValidatorId(f"Cannot interpret {type(value).__name__} as a validator id")

    def to_bytes(self) -> bytes:
        return self._raw

    def to_base58(self) -> str:
        return base58.b58encode(self._raw).decode("ascii")

    def hex(self) -> str:
        return self._raw.hex()

    def __bytes__(self) -> bytes:
        return self._raw

    def __eq__(self, other):
        if isinstance(other, ValidatorId):
            return self._raw == other._raw
        return NotImplemented

    def __lt__(self, other):
        if isinstance(other, ValidatorId):
            return self._raw < other._raw
        return NotImplemented

    def __hash__(self):
        return hash(self._raw)

    def __str__(self):
        return self.to_base58()

    def __repr__(self):
        return f"ValidatorId({self.to_base58()!r})"


def _u64_problem(value, what: str):
    if isinstance(value, bool) or not isinstance(value, int):
        return f"{what} must be an integer, got {type(value).__name__}"
    if value < 0 or value > U64_MAX:
        return f"{what} {value} is outside the u64 range"
    return None


def check_u64(value: int, what: str = "stake") -> int:
    """Validate a stake weight as an unsigned 64-bit integer."""
    problem = _u64_problem(value, what)
    if problem:
        raise InvalidStake(problem)
    return value


def check_u64_arg(value: int, what: str) -> int:
    """Validate an epoch or slot count argument; raises ValueError."""
    problem = _u64_problem(value, what)
    if problem:
        raise ValueError(problem)
    return value


@dataclass(frozen=True)
class StakeEntry:
    """A validator identity and its stake weight."""
    validator_id: ValidatorId
    stake: int

    def __post_init__(self):
        check_u64(self.stake)


@dataclass(frozen=True)
class EpochParams:
    """
    Epoch boundaries for a fixed-length epoch schedule.

    Attributes:
        epoch: Epoch number
        slots_per_epoch: Number of slots in every epoch
        leader_slot_span: Consecutive slots per leader draw
    """
    epoch: int
    slots_per_epoch: int
    leader_slot_span: int = NUM_CONSECUTIVE_LEADER_SLOTS

    def __post_init__(self):
        check_u64_arg(self.epoch, "epoch")
        check_u64_arg(self.slots_per_epoch, "slots_per_epoch")
        if self.slots_per_epoch == 0:
            raise ZeroSlots()

    @classmethod
    def for_slot(cls, slot: int, slots_per_epoch: int) -> "EpochParams":
        """Epoch containing an absolute slot."""
        if slots_per_epoch == 0:
            raise ZeroSlots()
        return cls(epoch=slot // slots_per_epoch, slots_per_epoch=slots_per_epoch)

    @property
    def first_slot(self) -> int:
        return self.epoch * self.slots_per_epoch

    @property
    def last_slot(self) -> int:
        return self.first_slot + self.slots_per_epoch - 1

    def contains(self, slot: int) -> bool:
        return self.first_slot <= slot <= self.last_slot

    def slot_index(self, slot: int) -> int:
        """Offset of an absolute slot within this epoch."""
        if not self.contains(slot):
            raise IndexError(
                f"Slot {slot} is outside epoch {self.epoch} "
                f"[{self.first_slot}, {self.last_slot}]"
            )
        return slot - self.first_slot

    def next(self) -> "EpochParams":
        return EpochParams(self.epoch + 1, self.slots_per_epoch, self.leader_slot_span)


class LeaderSchedule(Sequence):
    """
    Leader assignment for every slot of one epoch.

    Indexed by intra-epoch slot offset. Immutable once built and safe to
    share between threads.
    """

    __slots__ = ("_epoch", "_leaders")

    def __init__(self, epoch: int, leaders: Sequence[ValidatorId]):
        self._epoch = epoch
        self._leaders: Tuple[ValidatorId, ...] = tuple(leaders)

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def slots_per_epoch(self) -> int:
        return len(self._leaders)

    @property
    def first_slot(self) -> int:
        return self._epoch * len(self._leaders)

    def __len__(self) -> int:
        return len(self._leaders)

    def __getitem__(self, index):
        return self._leaders[index]

    def __iter__(self) -> Iterator[ValidatorId]:
        return iter(self._leaders)

    def __eq__(self, other):
        if isinstance(other, LeaderSchedule):
            return self._epoch == other._epoch and self._leaders == other._leaders
        return NotImplemented

    def __hash__(self):
        return hash((self._epoch, self._leaders))

    def __repr__(self):
        return f"LeaderSchedule(epoch={self._epoch}, slots={len(self._leaders)})"

    def leader_at(self, offset: int) -> ValidatorId:
        """Leader for an intra-epoch slot offset."""
        if offset < 0 or offset >= len(self._leaders):
            raise IndexError(
                f"Slot offset {offset} out of range for epoch {self._epoch} "
                f"({len(self._leaders)} slots)"
            )
        return self._leaders[offset]

    def leader_for_slot(self, slot: int) -> ValidatorId:
        """Leader for an absolute slot inside this schedule's epoch."""
        return self.leader_at(slot - self.first_slot)

    def leader_slots(self) -> Dict[ValidatorId, List[int]]:
        """Inverse view: validator -> ascending slot offsets it leads."""
        slots: Dict[ValidatorId, List[int]] = {}
        for offset, leader in enumerate(self._leaders):
            slots.setdefault(leader, []).append(offset)
        return slots

    def to_bytes(self) -> bytes:
        """Concatenated 32-byte identities in slot order."""
        return b"".join(leader.to_bytes() for leader in self._leaders)

"""
Bifrost Stake Snapshot

Normalizes raw stake weights into the canonical order every participant
derives independently: descending stake, ties broken by descending
validator identity bytes.
"""

from typing import Any, Dict, Iterable, Iterator, Mapping, Tuple, Union

from ..exceptions import ConflictingStake, EmptyStakeSet, InvalidStake
from ..logger import get_logger
from .types import StakeEntry, ValidatorId, check_u64

logger = get_logger(__name__)

RawStakes = Union[Mapping[Any, int], Iterable[Tuple[Any, int]]]


def _sort_key(entry: StakeEntry) -> Tuple[int, bytes]:
    return entry.stake, entry.validator_id.to_bytes()


class StakeSnapshot:
    """
    Canonically ordered, deduplicated stake entries for one epoch.

    Build with :meth:`normalize`; instances are immutable.
    """

    __slots__ = ("_entries", "_total")

    def __init__(self, entries: Iterable[StakeEntry]):
        self._entries: Tuple[StakeEntry, ...] = tuple(entries)
        self._total = sum(e.stake for e in self._entries)

    @classmethod
    def normalize(cls, raw: RawStakes) -> "StakeSnapshot":
        """
        Build a snapshot from raw weights.

        Args:
            raw: Mapping of validator id -> stake, or an iterable of
                (validator id, stake) pairs. Ids may be ValidatorId, raw
                bytes, hex or base58 strings.

        Returns:
            StakeSnapshot sorted by descending stake, then descending id

        Raises:
            EmptyStakeSet: Nothing remains after dropping zero stakes
            ConflictingStake: One id carries two different stakes
            InvalidStake: A stake is not a u64
        """
        items = raw.items() if isinstance(raw, Mapping) else raw

        entries = []
        for key, stake in items:
            check_u64(stake)
            if stake == 0:
                continue
            entries.append(StakeEntry(ValidatorId.parse(key), stake))

        if not entries:
            raise EmptyStakeSet()

        entries.sort(key=_sort_key, reverse=True)

        # Identical (id, stake) pairs are adjacent after sorting
        deduped = [entries[0]]
        for entry in entries[1:]:
            if entry != deduped[-1]:
                deduped.append(entry)

        if len(deduped) != len({e.validator_id for e in deduped}):
            cls._raise_conflict(deduped)

        if len(deduped) != len(entries):
            logger.debug(f"Dropped {len(entries) - len(deduped)} duplicate stake entries")

        return cls(deduped)

    @staticmethod
    def _raise_conflict(entries) -> None:
        seen: Dict[ValidatorId, list] = {}
        for entry in entries:
            seen.setdefault(entry.validator_id, []).append(entry.stake)
        for validator_id, stakes in seen.items():
            if len(stakes) > 1:
                raise ConflictingStake(validator_id, sorted(stakes, reverse=True))

    @property
    def entries(self) -> Tuple[StakeEntry, ...]:
        return self._entries

    @property
    def total_stake(self) -> int:
        return self._total

    def validator_ids(self) -> Tuple[ValidatorId, ...]:
        return tuple(e.validator_id for e in self._entries)

    def stakes(self) -> Tuple[int, ...]:
        return tuple(e.stake for e in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[StakeEntry]:
        return iter(self._entries)

    def __getitem__(self, index: int) -> StakeEntry:
        return self._entries[index]

    def __eq__(self, other):
        if isinstance(other, StakeSnapshot):
            return self._entries == other._entries
        return NotImplemented

    def __hash__(self):
        return hash(self._entries)

    def __repr__(self):
        return f"StakeSnapshot(validators={len(self._entries)}, total_stake={self._total})"


def stakes_from_vote_accounts(
    payload: Mapping[str, Any],
    include_delinquent: bool = False,
) -> Dict[ValidatorId, int]:
    """
    Convert a ``getVoteAccounts``-shaped payload into raw stake weights.

    Vote accounts that share a node identity have their activated stake
    summed, so one identity never appears twice.

    Args:
        payload: ``{"current": [...], "delinquent": [...]}`` where each
            account carries ``nodePubkey`` and ``activatedStake``
        include_delinquent: Also count delinquent vote accounts

    Returns:
        Mapping of validator id -> stake
    """
    groups = ["current", "delinquent"] if include_delinquent else ["current"]

    stakes: Dict[ValidatorId, int] = {}
    for group in groups:
        for account in payload.get(group, []) or []:
            try:
                node = account["nodePubkey"]
                stake = int(account["activatedStake"])
            except (KeyError, TypeError, ValueError) as e:
                raise InvalidStake(f"Malformed vote account entry {account!r}: {e}") from e
            check_u64(stake)
            validator_id = ValidatorId.parse(node)
            stakes[validator_id] = check_u64(stakes.get(validator_id, 0) + stake)

    logger.debug(f"Parsed {len(stakes)} node identities from vote accounts")
    return stakes

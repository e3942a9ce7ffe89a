"""
Bifrost Weighted Sampler

Cumulative-weight index over an ordered stake list. Resolves a uniform draw
in ``[0, total)`` to the entry whose weight bucket contains it.
"""

from bisect import bisect_right
from typing import List, Sequence

from ..constants import U64_MAX
from ..exceptions import EmptyStakeSet, WeightOverflow


class WeightedSampler:
    """
    Stake-weighted index selection.

    ``cumulative[i] = weights[0] + ... + weights[i]``; entry ``i`` is chosen
    with probability ``weights[i] / total``.
    """

    __slots__ = ("_cumulative", "_total")

    def __init__(self, weights: Sequence[int]):
        if not weights:
            raise EmptyStakeSet()

        cumulative: List[int] = []
        running = 0
        for index, weight in enumerate(weights):
            running += weight
            if running > U64_MAX:
                raise WeightOverflow(index, running)
            cumulative.append(running)

        if running == 0:
            raise EmptyStakeSet("All stake weights are zero")

        self._cumulative = cumulative
        self._total = running

    @property
    def total(self) -> int:
        return self._total

    @property
    def cumulative(self) -> Sequence[int]:
        return tuple(self._cumulative)

    def __len__(self) -> int:
        return len(self._cumulative)

    def sample(self, r: int) -> int:
        """
        Smallest index ``i`` with ``r < cumulative[i]``.

        Args:
            r: Draw in ``[0, total)``

        Returns:
            Selected entry index
        """
        if r < 0 or r >= self._total:
            raise ValueError(f"Draw {r} outside [0, {self._total})")
        return bisect_right(self._cumulative, r)

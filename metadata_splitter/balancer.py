"""Greedy assignment of harvested entries to a fixed number of splits."""

import heapq
import logging
from typing import Iterator, Sequence

from .models import FileMetadata, Split

logger = logging.getLogger(__name__)

DEFAULT_MAX_PER_SPLIT = 128


def compute_num_splits(total_entries: int, max_per_split: int) -> int:
    """Smallest number of splits that keeps every split at or below the cap."""
    if max_per_split < 1:
        raise ValueError(f"max_per_split must be a positive integer, got {max_per_split}")
    if total_entries <= 0:
        return 0
    return (total_entries - 1) // max_per_split + 1


def sort_for_balancing(entries: Sequence[FileMetadata]) -> list[FileMetadata]:
    """Largest entries first; equal sizes keep their discovery order."""
    order = sorted(range(len(entries)), key=lambda i: (-entries[i].file_size, i))
    return [entries[i] for i in order]


class SplitPlan:
    """Finalized splits, addressed by index the way a scheduler assigns tasks."""

    def __init__(self, splits: list[Split], max_per_split: int):
        self._splits = splits
        self.max_per_split = max_per_split

    @property
    def num_splits(self) -> int:
        return len(self._splits)

    def get_split(self, index: int) -> Split:
        if not 0 <= index < len(self._splits):
            raise IndexError(f"Split index {index} out of range (0..{len(self._splits) - 1})")
        return self._splits[index]

    def loads(self) -> list[int]:
        return [split.load for split in self._splits]

    def total_bytes(self) -> list[int]:
        return [split.total_bytes for split in self._splits]

    def __iter__(self) -> Iterator[Split]:
        return iter(self._splits)

    def __len__(self) -> int:
        return len(self._splits)


def balance_splits(
    entries: Sequence[FileMetadata],
    max_per_split: int = DEFAULT_MAX_PER_SPLIT
) -> SplitPlan:
    """
    Partition entries into ``ceil(len(entries) / max_per_split)`` splits.

    Entries are placed largest first, each into the split with the lowest
    entry count (then fewest bytes, then lowest index). A split that reaches
    ``max_per_split`` entries is finalized and leaves the heap for good.

    Returns:
        SplitPlan whose splits are in finalization order, followed by the
        splits that never reached the cap in ascending index order.
    """
    num_splits = compute_num_splits(len(entries), max_per_split)
    if num_splits == 0:
        return SplitPlan([], max_per_split)

    pending = [Split(index=i) for i in range(num_splits)]
    # Heap keys are (load, total_bytes, split index); keys are rebuilt after
    # every assignment because the split they describe has changed.
    heap = [(0, 0, i) for i in range(num_splits)]
    heapq.heapify(heap)

    finished = []
    for entry in sort_for_balancing(entries):
        _, _, index = heapq.heappop(heap)
        split = pending[index]
        split.add(entry)

        if split.load >= max_per_split:
            finished.append(split.finalize())
        else:
            heapq.heappush(heap, (split.load, split.total_bytes, index))

    remaining = sorted(index for _, _, index in heap)
    finished.extend(pending[index].finalize() for index in remaining)

    logger.debug(
        "Balanced %d entries into %d splits (cap %d)", len(entries), num_splits, max_per_split
    )
    return SplitPlan(finished, max_per_split)

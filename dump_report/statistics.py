"""Per-group streaming statistics over large keyed populations.

Heap walks can yield tens of millions of objects, so sizes are folded into one
running accumulator per key instead of being buffered.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, List, Optional, Tuple


@dataclass
class GroupStatistics:
    """Aggregate of all sizes observed for one key."""
    key: Hashable
    count: int = 0
    total: int = 0
    minimum: int = 0
    maximum: int = 0

    @property
    def average(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total / float(self.count)

    def add(self, size: int) -> None:
        if self.count == 0:
            self.minimum = size
            self.maximum = size
        else:
            self.minimum = min(self.minimum, size)
            self.maximum = max(self.maximum, size)
        self.count += 1
        self.total += size


def aggregate_statistics(pairs: Iterable[Tuple[Hashable, int]]) -> List[GroupStatistics]:
    """Group (key, size) pairs in a single pass.

    Returns one GroupStatistics per distinct key, ordered by descending total
    size. Ties keep the order in which keys were first seen.
    """
    groups: Dict[Hashable, GroupStatistics] = {}
    for key, size in pairs:
        stats = groups.get(key)
        if stats is None:
            stats = groups[key] = GroupStatistics(key=key)
        stats.add(size)

    return sorted(groups.values(), key=lambda g: g.total, reverse=True)


def top_statistics(pairs: Iterable[Tuple[Hashable, int]],
                   limit: Optional[int] = None) -> List[GroupStatistics]:
    """Aggregate the entire population, then keep the first `limit` groups."""
    ordered = aggregate_statistics(pairs)
    if limit is None:
        return ordered
    return ordered[:limit]

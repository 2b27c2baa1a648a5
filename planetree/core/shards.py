"""Partition shards: the opaque subset references carried by tree nodes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence, Tuple

import numpy as np

_EMPTY = np.empty(0, dtype=np.int64)


@dataclass(frozen=True)
class PartitionShard:
    """Collection of row indices grouped by data partition."""

    rows_per_partition: Tuple[np.ndarray, ...]

    @classmethod
    def from_grouped_indices(cls, grouped: Sequence[np.ndarray]) -> "PartitionShard":
        rows = tuple(np.asarray(arr, dtype=np.int64).reshape(-1) for arr in grouped)
        return cls(rows)

    @classmethod
    def full(cls, partition_sizes: Sequence[int]) -> "PartitionShard":
        """Shard covering every row of every partition."""
        return cls(tuple(np.arange(int(size), dtype=np.int64) for size in partition_sizes))

    @classmethod
    def empty(cls, n_partitions: int) -> "PartitionShard":
        return cls(tuple(_EMPTY for _ in range(n_partitions)))

    @property
    def n_partitions(self) -> int:
        return len(self.rows_per_partition)

    @property
    def sample_count(self) -> int:
        return int(sum(int(rows.size) for rows in self.rows_per_partition))

    def __len__(self) -> int:
        return self.sample_count

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PartitionShard):
            return NotImplemented
        if self.n_partitions != other.n_partitions:
            return False
        return all(
            np.array_equal(a, b) for a, b in zip(self.rows_per_partition, other.rows_per_partition)
        )

    def __hash__(self) -> int:
        return hash(tuple(rows.tobytes() for rows in self.rows_per_partition))

    def to_dict(self) -> dict[str, Any]:
        return {"rows": [rows.tolist() for rows in self.rows_per_partition]}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "PartitionShard":
        return cls.from_grouped_indices([np.asarray(rows, dtype=np.int64) for rows in payload["rows"]])


def split_shard(
    shard: PartitionShard, columns: Sequence[np.ndarray], threshold: float
) -> Tuple[PartitionShard, PartitionShard]:
    """Partition ``shard`` into left/right children using ``column <= threshold``.

    ``columns[p]`` holds the full feature column of partition ``p``.
    """
    if len(columns) != shard.n_partitions:
        raise ValueError("columns must provide one array per partition")
    left_rows: list[np.ndarray] = []
    right_rows: list[np.ndarray] = []
    for rows, column in zip(shard.rows_per_partition, columns):
        if rows.size == 0:
            left_rows.append(_EMPTY)
            right_rows.append(_EMPTY)
            continue
        mask = column[rows] <= threshold
        if mask.all():
            left_rows.append(rows)
            right_rows.append(_EMPTY)
            continue
        if (~mask).all():
            left_rows.append(_EMPTY)
            right_rows.append(rows)
            continue
        left_rows.append(rows[mask])
        right_rows.append(rows[~mask])
    return PartitionShard.from_grouped_indices(left_rows), PartitionShard.from_grouped_indices(right_rows)

"""Helpers for assigning in-memory rows to data partitions."""

from __future__ import annotations

from typing import Tuple

import numpy as np


def round_robin_partition_ids(n_rows: int, n_partitions: int) -> np.ndarray:
    """Return a partition id per row, dealing rows out in turn."""
    if n_partitions <= 0:
        raise ValueError("n_partitions must be positive")
    return np.arange(n_rows, dtype=np.int64) % n_partitions


def group_rows_by_partition(partition_ids: np.ndarray, n_partitions: int) -> Tuple[np.ndarray, ...]:
    """Return row indices grouped by partition in stable order.

    Rows keep their original order inside each partition, so histograms
    summed per partition and merged in partition order match the ones an
    in-memory evaluation builds over the same subset.
    """
    if partition_ids.ndim != 1:
        raise ValueError("partition_ids must be a 1D array")
    if n_partitions <= 0:
        raise ValueError("n_partitions must be positive")

    ids = np.asarray(partition_ids, dtype=np.int64)
    if ids.size == 0:
        empty = np.empty(0, dtype=np.int64)
        return tuple(empty for _ in range(n_partitions))
    if ids.min() < 0 or ids.max() >= n_partitions:
        raise ValueError("partition ids must lie within [0, n_partitions)")

    counts = np.bincount(ids, minlength=n_partitions)
    order = np.argsort(ids, kind="stable").astype(np.int64, copy=False)

    offsets = np.empty(n_partitions + 1, dtype=np.int64)
    offsets[0] = 0
    np.cumsum(counts[:n_partitions], out=offsets[1:])

    grouped: list[np.ndarray] = []
    for part in range(n_partitions):
        start = int(offsets[part])
        end = int(offsets[part + 1])
        grouped.append(order[start:end])
    return tuple(grouped)

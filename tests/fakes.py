"""Deterministic evaluators and job services shared by the scheduler tests."""

from __future__ import annotations

import numpy as np

from planetree.core.shards import PartitionShard
from planetree.errors import JobFailure
from planetree.evaluator import LeafDecision, SplitDecision, SplitEvaluator
from planetree.jobs import JobHandle, JobResult, JobService, JobSpec, LocalJobService
from planetree.node import Predicate


class PositionSplitEvaluator(SplitEvaluator):
    """Sends the first 3/5 of a subset's rows left, regardless of their values.

    Leaf values equal the subset size so trees are easy to compare.
    """

    def __init__(self, min_split: int = 2) -> None:
        self.min_split = min_split

    def evaluate(self, subset: PartitionShard) -> SplitDecision | LeafDecision:
        n_rows = subset.sample_count
        if n_rows < self.min_split:
            return LeafDecision(self.leaf_value(subset))
        remaining = max(1, n_rows * 3 // 5)
        left_rows: list[np.ndarray] = []
        right_rows: list[np.ndarray] = []
        for rows in subset.rows_per_partition:
            take = min(remaining, rows.size)
            left_rows.append(rows[:take])
            right_rows.append(rows[take:])
            remaining -= take
        return SplitDecision(
            Predicate(feature=0, threshold=float(n_rows)),
            PartitionShard.from_grouped_indices(left_rows),
            PartitionShard.from_grouped_indices(right_rows),
        )

    def leaf_value(self, subset: PartitionShard) -> float:
        return float(subset.sample_count)

    def partial_statistics(self, subset: PartitionShard, partition: int) -> int:
        return int(subset.rows_per_partition[partition].size)


class ScriptedJobService(JobService):
    """Runs jobs locally but injects one scripted fault per awaited submission.

    ``faults`` holds ``None`` (healthy), ``"fail"`` or ``"partial"`` entries,
    consumed in submission order.
    """

    def __init__(self, evaluator: SplitEvaluator, faults: tuple[str | None, ...] = ()) -> None:
        self.inner = LocalJobService(evaluator)
        self.faults = list(faults)
        self.submitted: list[JobSpec] = []
        self.cancelled: list[str] = []

    def submit(self, spec: JobSpec) -> JobHandle:
        self.submitted.append(spec)
        return self.inner.submit(spec)

    def await_result(self, handle: JobHandle, timeout: float | None = None) -> JobResult:
        fault = self.faults.pop(0) if self.faults else None
        result = self.inner.await_result(handle, timeout)
        if fault == "fail":
            raise JobFailure("injected failure", phase=handle.spec.phase, node_ids=handle.spec.node_ids)
        if fault == "partial":
            decisions = dict(result.decisions)
            decisions.pop(handle.spec.node_ids[-1])
            return JobResult(job_id=result.job_id, decisions=decisions, seconds=result.seconds)
        return result

    def cancel(self, handle: JobHandle) -> None:
        self.cancelled.append(handle.job_id)
        self.inner.cancel(handle)

    def close(self) -> None:
        self.inner.close()


def root_shard(n_rows: int, n_partitions: int = 4) -> PartitionShard:
    sizes = [n_rows // n_partitions + (1 if p < n_rows % n_partitions else 0) for p in range(n_partitions)]
    return PartitionShard.full(sizes)


class PeelOneEvaluator(PositionSplitEvaluator):
    """Splits off a single row per level, growing one long right-hand chain."""

    def evaluate(self, subset: PartitionShard) -> SplitDecision | LeafDecision:
        n_rows = subset.sample_count
        if n_rows < self.min_split:
            return LeafDecision(self.leaf_value(subset))
        rows = np.concatenate(subset.rows_per_partition)
        return SplitDecision(
            Predicate(feature=0, threshold=float(n_rows)),
            PartitionShard.from_grouped_indices([rows[:1]]),
            PartitionShard.from_grouped_indices([rows[1:]]),
        )

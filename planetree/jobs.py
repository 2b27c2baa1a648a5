"""Job-execution service boundary for distributed frontier expansion."""

from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Dict, Tuple

from .core.shards import PartitionShard
from .errors import JobFailure
from .evaluator import Decision, SplitEvaluator


@dataclass(frozen=True)
class NodeTask:
    """One node to resolve inside a job."""

    node_id: str
    subset: PartitionShard
    leaf_only: bool = False


@dataclass(frozen=True)
class JobSpec:
    """Everything a job needs: the phase and the nodes to evaluate."""

    name: str
    phase: int
    tasks: Tuple[NodeTask, ...]

    @property
    def node_ids(self) -> tuple[str, ...]:
        return tuple(task.node_id for task in self.tasks)


@dataclass(frozen=True)
class JobHandle:
    job_id: str
    spec: JobSpec


@dataclass
class JobResult:
    """Decision per node id of the submitted spec."""

    job_id: str
    decisions: Dict[str, Decision] = field(default_factory=dict)
    seconds: float = 0.0


class JobService:
    """Submit expansion jobs and wait for their results."""

    def submit(self, spec: JobSpec) -> JobHandle:
        raise NotImplementedError()

    def await_result(self, handle: JobHandle, timeout: float | None = None) -> JobResult:
        """Block until ``handle`` completes; raise :class:`JobFailure` otherwise."""
        raise NotImplementedError()

    def cancel(self, handle: JobHandle) -> None:
        return None

    def close(self) -> None:
        return None

    def __enter__(self) -> "JobService":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class LocalJobService(JobService):
    """Runs jobs on thread pools in MapReduce shape.

    Each job maps every data partition once, collecting partial statistics
    for all nodes of the job, then reduces the partials of each node in
    partition order into a decision.
    """

    def __init__(
        self,
        evaluator: SplitEvaluator,
        *,
        max_workers: int | None = None,
        max_jobs: int = 2,
    ) -> None:
        self.evaluator = evaluator
        self._coordinator = ThreadPoolExecutor(max_workers=max_jobs, thread_name_prefix="planetree-job")
        self._mappers = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="planetree-map")
        self._counter = itertools.count()
        self._futures: dict[str, Future] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)
        self.submitted: list[JobSpec] = []

    def submit(self, spec: JobSpec) -> JobHandle:
        with self._lock:
            job_id = f"job_{next(self._counter):04d}"
            self.submitted.append(spec)
            self._futures[job_id] = self._coordinator.submit(self._run, job_id, spec)
        self._logger.debug("submitted %s (%s, %d nodes)", job_id, spec.name, len(spec.tasks))
        return JobHandle(job_id=job_id, spec=spec)

    def _map_partition(self, spec: JobSpec, partition: int) -> list[Any]:
        return [self.evaluator.partial_statistics(task.subset, partition) for task in spec.tasks]

    def _run(self, job_id: str, spec: JobSpec) -> JobResult:
        start = perf_counter()
        if not spec.tasks:
            return JobResult(job_id=job_id)
        n_partitions = spec.tasks[0].subset.n_partitions
        if any(task.subset.n_partitions != n_partitions for task in spec.tasks):
            raise ValueError("all subsets of a job must span the same partitions")

        map_futures = [
            self._mappers.submit(self._map_partition, spec, partition)
            for partition in range(n_partitions)
        ]
        per_partition = [future.result() for future in map_futures]

        decisions: Dict[str, Decision] = {}
        for idx, task in enumerate(spec.tasks):
            partials = [partials_row[idx] for partials_row in per_partition]
            decisions[task.node_id] = self.evaluator.combine(
                task.subset, partials, leaf_only=task.leaf_only
            )
        return JobResult(job_id=job_id, decisions=decisions, seconds=perf_counter() - start)

    def await_result(self, handle: JobHandle, timeout: float | None = None) -> JobResult:
        with self._lock:
            future = self._futures.get(handle.job_id)
        if future is None:
            raise JobFailure(f"unknown job {handle.job_id}", phase=handle.spec.phase)
        try:
            result = future.result(timeout=timeout)
        except FuturesTimeout as exc:
            future.cancel()
            raise JobFailure(
                f"{handle.job_id} timed out after {timeout}s",
                phase=handle.spec.phase,
                node_ids=handle.spec.node_ids,
            ) from exc
        except JobFailure:
            raise
        except Exception as exc:
            raise JobFailure(
                f"{handle.job_id} failed: {exc}",
                phase=handle.spec.phase,
                node_ids=handle.spec.node_ids,
            ) from exc
        finally:
            if future.done():
                with self._lock:
                    self._futures.pop(handle.job_id, None)
        return result

    def cancel(self, handle: JobHandle) -> None:
        with self._lock:
            future = self._futures.pop(handle.job_id, None)
        if future is not None:
            future.cancel()

    def close(self) -> None:
        self._coordinator.shutdown(wait=True, cancel_futures=True)
        self._mappers.shutdown(wait=True, cancel_futures=True)

"""Breadth-first phase loop that grows one tree across distributed and local passes."""

from __future__ import annotations

import json
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from time import perf_counter

from .builder import InMemoryBuilder
from .config import PlanetConfig
from .core.frontier import expand_frontier
from .core.shards import PartitionShard
from .errors import InvalidTransition, PlanetError, RunCancelled, ZeroProgress
from .evaluator import SplitEvaluator
from .jobs import JobService
from .model import DecisionTree
from .node import Node
from .store import TreeStore


class LoopState(str, Enum):
    INITIALIZING = "initializing"
    LOOPING = "looping"
    DRAINING = "draining"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PhaseReport:
    """What one phase did; logged as JSON at INFO level."""

    phase: int
    frontier: int = 0
    small: list[tuple[str, int]] = field(default_factory=list)
    large: list[tuple[str, int]] = field(default_factory=list)
    carried: int = 0
    jobs: int = 0
    resolved: int = 0
    children: int = 0
    seconds: float = 0.0

    def to_dict(self) -> dict[str, object]:
        return {
            "phase": self.phase,
            "frontier": self.frontier,
            "small_nodes": len(self.small),
            "large_nodes": len(self.large),
            "small_rows": sum(size for _, size in self.small),
            "large_rows": sum(size for _, size in self.large),
            "carried": self.carried,
            "jobs": self.jobs,
            "resolved": self.resolved,
            "children": self.children,
            "seconds": self.seconds,
        }


class PhaseScheduler:
    """Drive tree growth phase by phase until the frontier is empty.

    Each phase takes a snapshot of the frontier, grows nodes with fewer than
    ``config.threshold`` rows in memory and resolves the others with a single
    distributed expansion job. Children created by the job form the next
    frontier. Every phase ends with a checkpoint in the store, from which a
    new scheduler over the same store resumes.
    """

    def __init__(
        self,
        config: PlanetConfig,
        evaluator: SplitEvaluator,
        job_service: JobService,
        store: TreeStore,
        *,
        output_path: str | Path | None = None,
    ) -> None:
        config.validate()
        self.config = config
        self.evaluator = evaluator
        self.job_service = job_service
        self.store = store
        self.output_path = Path(output_path) if output_path is not None else None
        self._logger = logging.getLogger(__name__)

        env_attempts = os.getenv("PLANETREE_JOB_ATTEMPTS")
        attempts = int(env_attempts) if env_attempts else int(config.max_job_attempts)
        if attempts < 1:
            raise ValueError(f"max_job_attempts must be at least 1, got {attempts}")
        self._max_attempts = attempts

        self._cancel_event = threading.Event()
        self.builder = InMemoryBuilder(evaluator, store, config, cancel_event=self._cancel_event)
        self._state = LoopState.INITIALIZING
        self._phase = 0
        self._reports: list[PhaseReport] = []

    # Public -------------------------------------------------------------

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def phase(self) -> int:
        return self._phase

    @property
    def reports(self) -> list[PhaseReport]:
        return list(self._reports)

    @property
    def jobs_submitted(self) -> int:
        return sum(report.jobs for report in self._reports)

    def cancel(self) -> None:
        """Stop at the next safe point; nothing half-done is written."""
        self._cancel_event.set()

    def run(self, root_subset: PartitionShard | None = None) -> DecisionTree:
        """Grow the tree and return the final snapshot.

        ``root_subset`` is required for a fresh store and ignored when the
        store already holds a checkpoint.
        """
        start = perf_counter()
        try:
            frontier = self._initialize(root_subset)
            self._state = LoopState.LOOPING
            while frontier:
                self._check_cancelled()
                frontier = self._run_phase(frontier)
            self._state = LoopState.DRAINING
            tree = self._drain()
        except Exception as exc:
            self._state = LoopState.FAILED
            self._logger.error("tree growth failed in phase %d: %s", self._phase, exc)
            raise
        self._state = LoopState.DONE
        self._logger.info("Build Time: %.3fs", perf_counter() - start)
        return tree

    # Phases -------------------------------------------------------------

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise RunCancelled(f"cancelled in phase {self._phase}")

    def _initialize(self, root_subset: PartitionShard | None) -> list[Node]:
        checkpoint = self.store.checkpoint()
        if checkpoint is not None:
            self._phase = checkpoint.phase
            if checkpoint.done:
                self._logger.info("store already holds a complete tree (phase %d)", checkpoint.phase)
                return []
            self._logger.info(
                "resuming at phase %d with %d frontier nodes", checkpoint.phase, len(checkpoint.frontier)
            )
            return [self.store.get(node_id) for node_id in checkpoint.frontier]

        if root_subset is None:
            raise ValueError("a root subset is required to start a new tree")
        root = Node.unknown(root_subset)
        self.store.put(root)
        self.store.commit_phase(0, [root.node_id])
        return [root]

    def _reconcile(self, frontier: list[Node]) -> tuple[list[Node], list[Node]]:
        """Split ``frontier`` into nodes still unknown in the store and the
        unknown children of nodes an interrupted phase already resolved."""
        pending: list[Node] = []
        carried: list[Node] = []
        seen: set[str] = set()
        for node in frontier:
            if node.node_id in seen:
                continue
            seen.add(node.node_id)
            stored = self.store.get(node.node_id)
            if stored.is_unknown:
                pending.append(stored)
                continue
            self._logger.info("node %s is already %s; not expanding it again", stored.node_id, stored.state.value)
            for child_id in stored.children:
                child = self.store.get(child_id)
                if child.is_unknown:
                    carried.append(child)
        return pending, carried

    def _build_one(self, node: Node) -> None:
        try:
            self.builder.build_subtree(node)
        except InvalidTransition as exc:
            self._logger.warning("%s; keeping the stored state", exc)

    def _build_small(self, nodes: list[Node]) -> None:
        if not nodes:
            return
        workers = min(int(self.config.n_workers), len(nodes))
        if workers == 1:
            for node in nodes:
                self._build_one(node)
            return
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="planetree-build") as pool:
            list(pool.map(self._build_one, nodes))

    def _run_phase(self, frontier: list[Node]) -> list[Node]:
        start = perf_counter()
        phase = self._phase
        threshold = int(self.config.threshold)
        report = PhaseReport(phase=phase, frontier=len(frontier))

        pending, carried = self._reconcile(frontier)
        small = [node for node in pending if node.n_samples < threshold]
        large = [node for node in pending if node.n_samples >= threshold]
        report.small = [(node.node_id, node.n_samples) for node in small]
        report.large = [(node.node_id, node.n_samples) for node in large]
        report.carried = len(carried)

        self._build_small(small)

        expansion = expand_frontier(
            large,
            self.job_service,
            phase=phase,
            max_height=self.config.max_height,
            max_attempts=self._max_attempts,
            timeout=self.config.job_timeout,
        )
        report.jobs = expansion.attempts
        # results of a job that finished after cancellation are dropped
        self._check_cancelled()
        self.store.put_many(expansion.children)
        self.store.put_many(expansion.resolved)

        unresolved = [node for node in pending if self.store.get(node.node_id).is_unknown]
        if pending and len(unresolved) == len(pending):
            raise ZeroProgress(phase, [node.node_id for node in pending])

        next_frontier = unresolved + carried + expansion.children
        report.resolved = len(pending) - len(unresolved)
        report.children = len(expansion.children)

        self._phase = phase + 1
        self.store.commit_phase(self._phase, [node.node_id for node in next_frontier])
        report.seconds = perf_counter() - start
        self._reports.append(report)
        if self._logger.isEnabledFor(logging.INFO):
            self._logger.info(json.dumps(report.to_dict()))
        return next_frontier

    def _drain(self) -> DecisionTree:
        tree = self.store.snapshot()
        if not tree.is_complete:
            raise PlanetError(f"frontier is empty but nodes are unresolved: {', '.join(tree.pending)}")
        self.store.commit_phase(self._phase, [], done=True)
        if self.output_path is not None:
            self._logger.info("Storing the tree in: %s", self.output_path)
            tree.save(self.output_path)
        self._logger.info(json.dumps(tree.summary()))
        return tree


def grow_tree(
    config: PlanetConfig,
    evaluator: SplitEvaluator,
    job_service: JobService,
    store: TreeStore,
    root_subset: PartitionShard | None = None,
    *,
    output_path: str | Path | None = None,
) -> DecisionTree:
    """Convenience wrapper running a :class:`PhaseScheduler` to completion."""
    scheduler = PhaseScheduler(config, evaluator, job_service, store, output_path=output_path)
    return scheduler.run(root_subset)

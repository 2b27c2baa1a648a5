"""Frontier expansion phase: resolve every large frontier node with one job."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from ..errors import JobFailure
from ..evaluator import LeafDecision, SplitDecision
from ..jobs import JobResult, JobService, JobSpec, NodeTask
from ..node import LEFT, RIGHT, Node

_LOGGER = logging.getLogger(__name__)

JOB_NAME = "PLANET - Node Expansion Phase #{phase}"


@dataclass
class ExpansionResult:
    """Outcome of one phase: resolved inputs and their new unknown children."""

    resolved: list[Node] = field(default_factory=list)
    children: list[Node] = field(default_factory=list)
    attempts: int = 0

    @property
    def submitted(self) -> bool:
        return self.attempts > 0


def build_job_spec(nodes: Sequence[Node], *, phase: int, max_height: int | None) -> JobSpec:
    """One spec covering all ``nodes``; nodes at the height limit only need a leaf value."""
    tasks = []
    for node in nodes:
        if not node.is_unknown:
            raise ValueError(f"node {node.node_id!r} is already {node.state.value}")
        if node.subset is None:
            raise ValueError(f"node {node.node_id!r} carries no data subset")
        leaf_only = max_height is not None and node.depth >= max_height
        tasks.append(NodeTask(node_id=node.node_id, subset=node.subset, leaf_only=leaf_only))
    return JobSpec(name=JOB_NAME.format(phase=phase), phase=phase, tasks=tuple(tasks))


def _check_complete(spec: JobSpec, result: JobResult) -> None:
    missing = [node_id for node_id in spec.node_ids if node_id not in result.decisions]
    if missing:
        raise JobFailure(
            f"{result.job_id} reported {len(spec.node_ids) - len(missing)} of {len(spec.node_ids)} nodes",
            phase=spec.phase,
            node_ids=missing,
        )
    for task in spec.tasks:
        decision = result.decisions[task.node_id]
        if task.leaf_only and not isinstance(decision, LeafDecision):
            raise JobFailure(
                f"{result.job_id} split a node at the height limit", phase=spec.phase, node_ids=[task.node_id]
            )


def _apply_decisions(nodes: Sequence[Node], result: JobResult) -> tuple[list[Node], list[Node]]:
    resolved: list[Node] = []
    children: list[Node] = []
    for node in nodes:
        decision = result.decisions[node.node_id]
        updated = node.copy()
        if isinstance(decision, LeafDecision):
            updated.mark_leaf(decision.value)
        elif isinstance(decision, SplitDecision):
            left = Node.unknown(decision.left, node.node_id, LEFT)
            right = Node.unknown(decision.right, node.node_id, RIGHT)
            updated.mark_split(decision.predicate, left.node_id, right.node_id)
            children.extend((left, right))
        else:
            raise TypeError(f"unexpected decision {decision!r}")
        resolved.append(updated)
    return resolved, children


def expand_frontier(
    nodes: Sequence[Node],
    job_service: JobService,
    *,
    phase: int,
    max_height: int | None = None,
    max_attempts: int = 3,
    timeout: float | None = None,
) -> ExpansionResult:
    """Run one distributed expansion job over ``nodes``.

    The job is all-or-nothing: a failed, timed-out or partial job is
    resubmitted in full, up to ``max_attempts`` times, after which
    :class:`JobFailure` propagates. Input nodes are never mutated.
    """
    if not nodes:
        return ExpansionResult()
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    spec = build_job_spec(nodes, phase=phase, max_height=max_height)
    last_error: JobFailure | None = None
    for attempt in range(1, max_attempts + 1):
        handle = job_service.submit(spec)
        try:
            result = job_service.await_result(handle, timeout=timeout)
            _check_complete(spec, result)
        except JobFailure as exc:
            job_service.cancel(handle)
            last_error = exc
            _LOGGER.warning("%s attempt %d/%d failed: %s", spec.name, attempt, max_attempts, exc)
            continue
        resolved, children = _apply_decisions(nodes, result)
        return ExpansionResult(resolved=resolved, children=children, attempts=attempt)

    raise JobFailure(
        f"{spec.name} failed after {max_attempts} attempts",
        phase=phase,
        node_ids=spec.node_ids,
        attempts=max_attempts,
    ) from last_error

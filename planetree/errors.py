"""Exception hierarchy for planetree."""

from __future__ import annotations

from typing import Iterable


class PlanetError(Exception):
    """Base class for every error raised by planetree."""


class InvalidTransition(PlanetError):
    """A node that is no longer unknown was asked to change state."""

    def __init__(self, node_id: str, state: str, requested: str) -> None:
        super().__init__(f"node {node_id!r} is {state}; cannot mark it {requested}")
        self.node_id = node_id
        self.state = state
        self.requested = requested


class NotFound(PlanetError, KeyError):
    """The tree store holds no node with the requested id."""

    def __init__(self, node_id: str) -> None:
        super().__init__(node_id)
        self.node_id = node_id

    def __str__(self) -> str:
        return f"node {self.node_id!r} not found"


class ConflictingWrite(PlanetError):
    """Two different terminal outcomes were written for the same node."""

    def __init__(self, node_id: str, stored: dict, incoming: dict) -> None:
        super().__init__(
            f"conflicting outcome for node {node_id!r}: stored {stored}, incoming {incoming}"
        )
        self.node_id = node_id
        self.stored = stored
        self.incoming = incoming


class CapacityExceeded(PlanetError):
    """An in-memory build recursed past its safety bound."""

    def __init__(self, node_id: str, level: int, limit: int) -> None:
        super().__init__(f"in-memory build reached level {level} at node {node_id!r} (limit {limit})")
        self.node_id = node_id
        self.level = level
        self.limit = limit


class JobFailure(PlanetError):
    """A distributed expansion job failed, timed out or reported partially."""

    def __init__(
        self,
        message: str,
        *,
        phase: int | None = None,
        node_ids: Iterable[str] = (),
        attempts: int = 0,
    ) -> None:
        self.phase = phase
        self.node_ids = tuple(node_ids)
        self.attempts = attempts
        detail = message
        if phase is not None:
            detail = f"phase {phase}: {detail}"
        if self.node_ids:
            detail = f"{detail} (nodes: {', '.join(self.node_ids)})"
        super().__init__(detail)


class ZeroProgress(PlanetError):
    """A phase finished without resolving any frontier node."""

    def __init__(self, phase: int, node_ids: Iterable[str]) -> None:
        self.phase = phase
        self.node_ids = tuple(node_ids)
        super().__init__(f"phase {phase} resolved none of {len(self.node_ids)} frontier nodes")


class OutputAlreadyExists(PlanetError):
    """The requested output location is already present."""

    def __init__(self, path: object) -> None:
        super().__init__(f"output path already exists: {path}")
        self.path = path


class RunCancelled(PlanetError):
    """The phase loop was cancelled before completion."""


__all__ = [
    "CapacityExceeded",
    "ConflictingWrite",
    "InvalidTransition",
    "JobFailure",
    "NotFound",
    "OutputAlreadyExists",
    "PlanetError",
    "RunCancelled",
    "ZeroProgress",
]

"""Tree node model: identity, tagged state and one-shot transitions."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Literal

import numpy as np

from .core.shards import PartitionShard
from .errors import InvalidTransition

ROOT_ID = "r"
LEFT = "L"
RIGHT = "R"

Side = Literal["L", "R"]


def child_id(parent_id: str, side: Side) -> str:
    """Return the id of the ``side`` child of ``parent_id``."""
    if side not in (LEFT, RIGHT):
        raise ValueError(f"side must be {LEFT!r} or {RIGHT!r}, got {side!r}")
    return parent_id + side


def parent_id(node_id: str) -> str | None:
    """Return the parent id of ``node_id`` or ``None`` for the root."""
    if node_id == ROOT_ID:
        return None
    return node_id[:-1]


def depth_of(node_id: str) -> int:
    if not node_id.startswith(ROOT_ID) or any(c not in (LEFT, RIGHT) for c in node_id[1:]):
        raise ValueError(f"malformed node id: {node_id!r}")
    return len(node_id) - 1


def is_ancestor(ancestor_id: str, node_id: str) -> bool:
    return node_id != ancestor_id and node_id.startswith(ancestor_id)


class NodeState(str, Enum):
    UNKNOWN = "unknown"
    LEAF = "leaf"
    SPLIT = "split"


@dataclass(frozen=True, slots=True)
class Predicate:
    """Rows with ``x[feature] <= threshold`` are routed to the left child."""

    feature: int
    threshold: float

    def goes_left(self, X: np.ndarray) -> np.ndarray:
        return np.asarray(X)[:, self.feature] <= self.threshold

    def to_dict(self) -> dict[str, Any]:
        return {"feature": self.feature, "threshold": self.threshold}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Predicate":
        return cls(feature=int(payload["feature"]), threshold=float(payload["threshold"]))


@dataclass(slots=True)
class Node:
    """A tree node.

    ``state`` selects which of the remaining fields are meaningful:

    - ``UNKNOWN``: ``subset`` holds the rows of the node, the split is not
      computed yet.
    - ``LEAF``: ``value`` holds the prediction.
    - ``SPLIT``: ``predicate``, ``left`` and ``right`` describe the split.
    """

    node_id: str
    state: NodeState = NodeState.UNKNOWN
    subset: PartitionShard | None = field(default=None, compare=False)
    n_samples: int = 0
    value: float | None = None
    predicate: Predicate | None = None
    left: str | None = None
    right: str | None = None

    @classmethod
    def unknown(
        cls,
        subset: PartitionShard,
        parent_id: str | None = None,
        side: Side | None = None,
    ) -> "Node":
        """Create an unknown node, the root when ``parent_id`` is ``None``."""
        if parent_id is None:
            if side is not None:
                raise ValueError("the root node has no side")
            node_id = ROOT_ID
        else:
            if side is None:
                raise ValueError("a child node needs a side")
            node_id = child_id(parent_id, side)
        return cls(node_id=node_id, subset=subset, n_samples=subset.sample_count)

    @property
    def depth(self) -> int:
        return depth_of(self.node_id)

    @property
    def is_unknown(self) -> bool:
        return self.state is NodeState.UNKNOWN

    @property
    def is_leaf(self) -> bool:
        return self.state is NodeState.LEAF

    @property
    def is_split(self) -> bool:
        return self.state is NodeState.SPLIT

    @property
    def is_terminal(self) -> bool:
        return self.state is not NodeState.UNKNOWN

    @property
    def children(self) -> tuple[str, ...]:
        if self.state is NodeState.SPLIT:
            return (self.left, self.right)  # type: ignore[return-value]
        return ()

    def _require_unknown(self, requested: NodeState) -> None:
        if self.state is not NodeState.UNKNOWN:
            raise InvalidTransition(self.node_id, self.state.value, requested.value)

    def mark_leaf(self, value: float) -> None:
        self._require_unknown(NodeState.LEAF)
        self.value, self.state = float(value), NodeState.LEAF

    def mark_split(self, predicate: Predicate, left_id: str, right_id: str) -> None:
        self._require_unknown(NodeState.SPLIT)
        if left_id != child_id(self.node_id, LEFT) or right_id != child_id(self.node_id, RIGHT):
            raise ValueError(f"children of {self.node_id!r} must be its L/R ids, got {left_id!r}, {right_id!r}")
        self.predicate, self.left, self.right, self.state = predicate, left_id, right_id, NodeState.SPLIT

    def copy(self) -> "Node":
        return replace(self)

    def outcome(self) -> dict[str, Any]:
        """State-specific payload, without the subset reference."""
        if self.state is NodeState.UNKNOWN:
            return {"state": self.state.value}
        if self.state is NodeState.LEAF:
            return {"state": self.state.value, "value": self.value}
        if self.state is NodeState.SPLIT:
            assert self.predicate is not None
            return {
                "state": self.state.value,
                "predicate": self.predicate.to_dict(),
                "left": self.left,
                "right": self.right,
            }
        raise AssertionError(f"unhandled node state {self.state!r}")

    def same_outcome(self, other: "Node") -> bool:
        return self.node_id == other.node_id and self.outcome() == other.outcome()

    def to_dict(self) -> dict[str, Any]:
        payload = {"node_id": self.node_id, "n_samples": self.n_samples}
        payload.update(self.outcome())
        if self.state is NodeState.UNKNOWN and self.subset is not None:
            payload["subset"] = self.subset.to_dict()
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Node":
        state = NodeState(payload["state"])
        node = cls(node_id=str(payload["node_id"]), state=state, n_samples=int(payload.get("n_samples", 0)))
        if state is NodeState.UNKNOWN:
            subset = payload.get("subset")
            node.subset = PartitionShard.from_dict(subset) if subset is not None else None
        elif state is NodeState.LEAF:
            node.value = float(payload["value"])
        elif state is NodeState.SPLIT:
            node.predicate = Predicate.from_dict(payload["predicate"])
            node.left = str(payload["left"])
            node.right = str(payload["right"])
        return node

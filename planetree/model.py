"""Tree snapshots and inference utilities."""

from __future__ import annotations

import json
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import numpy as np

from .errors import NotFound
from .node import ROOT_ID, Node


@dataclass
class FlattenedTree:
    """Contiguous breadth-first representation of a complete tree."""

    node_ids: List[str]
    features: np.ndarray
    thresholds: np.ndarray
    lefts: np.ndarray
    rights: np.ndarray
    is_leaf: np.ndarray
    values: np.ndarray


@dataclass
class DecisionTree:
    """All persisted nodes of one tree, keyed by node id."""

    nodes: Dict[str, Node] = field(default_factory=dict)
    _flattened: Optional[FlattenedTree] = field(default=None, init=False, repr=False)

    @classmethod
    def from_nodes(cls, nodes: Iterable[Node]) -> "DecisionTree":
        return cls(nodes={node.node_id: node for node in nodes})

    @property
    def root(self) -> Node | None:
        return self.nodes.get(ROOT_ID)

    def get(self, node_id: str) -> Node:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise NotFound(node_id) from None

    def reachable(self) -> list[Node]:
        """Nodes reachable from the root via split edges, in breadth-first order."""
        if self.root is None:
            return []
        ordered: list[Node] = []
        queue = deque([ROOT_ID])
        while queue:
            node = self.get(queue.popleft())
            ordered.append(node)
            queue.extend(node.children)
        return ordered

    @property
    def pending(self) -> list[str]:
        """Ids of reachable nodes that are still unknown."""
        return [node.node_id for node in self.reachable() if node.is_unknown]

    @property
    def is_complete(self) -> bool:
        return self.root is not None and not self.pending

    @property
    def depth(self) -> int:
        return max((node.depth for node in self.reachable()), default=-1)

    @property
    def n_leaves(self) -> int:
        return sum(1 for node in self.reachable() if node.is_leaf)

    @property
    def n_splits(self) -> int:
        return sum(1 for node in self.reachable() if node.is_split)

    def nodes_at_depth(self, depth: int) -> list[Node]:
        return [node for node in self.reachable() if node.depth == depth]

    def summary(self) -> dict[str, int | bool]:
        return {
            "nodes": len(self.reachable()),
            "splits": self.n_splits,
            "leaves": self.n_leaves,
            "depth": self.depth,
            "complete": self.is_complete,
        }

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Return leaf predictions for the rows of ``X``."""
        X_arr = np.asarray(X)
        if X_arr.ndim != 2:
            raise ValueError("X must be 2D")
        if not self.is_complete:
            raise RuntimeError("cannot predict with an incomplete tree")

        n_samples = X_arr.shape[0]
        out = np.zeros(n_samples, dtype=np.float64)
        stack: List[tuple[str, np.ndarray]] = [(ROOT_ID, np.arange(n_samples, dtype=np.int64))]
        while stack:
            node_id, indices = stack.pop()
            node = self.nodes[node_id]
            if node.is_leaf:
                out[indices] = node.value
                continue
            assert node.predicate is not None and node.left is not None and node.right is not None
            left_mask = X_arr[indices, node.predicate.feature] <= node.predicate.threshold
            if np.any(left_mask):
                stack.append((node.left, indices[left_mask]))
            if not np.all(left_mask):
                stack.append((node.right, indices[~left_mask]))
        return out

    def flatten(self) -> FlattenedTree:
        """Return a flattened breadth-first view of a complete tree."""
        if self._flattened is not None:
            return self._flattened
        if not self.is_complete:
            raise RuntimeError("cannot flatten an incomplete tree")

        ordered = self.reachable()
        position = {node.node_id: idx for idx, node in enumerate(ordered)}
        n_nodes = len(ordered)
        features = np.full(n_nodes, -1, dtype=np.int32)
        thresholds = np.full(n_nodes, np.nan, dtype=np.float64)
        lefts = np.full(n_nodes, -1, dtype=np.int32)
        rights = np.full(n_nodes, -1, dtype=np.int32)
        is_leaf = np.zeros(n_nodes, dtype=np.uint8)
        values = np.zeros(n_nodes, dtype=np.float64)

        for idx, node in enumerate(ordered):
            if node.is_leaf:
                is_leaf[idx] = 1
                values[idx] = float(node.value)  # type: ignore[arg-type]
                continue
            assert node.predicate is not None
            features[idx] = node.predicate.feature
            thresholds[idx] = node.predicate.threshold
            lefts[idx] = position[node.left]  # type: ignore[index]
            rights[idx] = position[node.right]  # type: ignore[index]

        flattened = FlattenedTree(
            node_ids=[node.node_id for node in ordered],
            features=features,
            thresholds=thresholds,
            lefts=lefts,
            rights=rights,
            is_leaf=is_leaf,
            values=values,
        )
        self._flattened = flattened
        return flattened

    def to_dict(self) -> Dict[str, object]:
        """Serialise the reachable nodes to a dictionary."""
        return {"nodes": [node.to_dict() for node in self.reachable()]}

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "DecisionTree":
        """Create a tree from ``payload`` produced by :meth:`to_dict`."""
        return cls.from_nodes(Node.from_dict(item) for item in payload["nodes"])  # type: ignore[union-attr]

    def save(self, path: str | Path) -> None:
        Path(path).write_text(json.dumps(self.to_dict()))

    @classmethod
    def load(cls, path: str | Path) -> "DecisionTree":
        return cls.from_dict(json.loads(Path(path).read_text()))

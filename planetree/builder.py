"""Local, recursive subtree construction for nodes below the in-memory threshold."""

from __future__ import annotations

import logging
import threading

from .config import PlanetConfig
from .errors import CapacityExceeded, InvalidTransition, RunCancelled
from .evaluator import LeafDecision, SplitDecision, SplitEvaluator
from .node import LEFT, RIGHT, Node
from .store import TreeStore


class InMemoryBuilder:
    """Grow the whole subtree under a node without leaving the process.

    The subtree is assembled in memory and written to the store in a single
    ``put_many`` once construction finishes, children before their parent, so
    an abandoned build leaves no node behind.
    """

    def __init__(
        self,
        evaluator: SplitEvaluator,
        store: TreeStore,
        config: PlanetConfig,
        *,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.evaluator = evaluator
        self.store = store
        self.config = config
        self._cancel_event = cancel_event
        self._logger = logging.getLogger(__name__)

    def build_subtree(self, node: Node) -> list[Node]:
        """Resolve ``node`` and every descendant, persist them and return them."""
        if not node.is_unknown:
            raise InvalidTransition(node.node_id, node.state.value, "expanded")
        if node.subset is None:
            raise ValueError(f"node {node.node_id!r} carries no data subset")

        resolved: list[Node] = []
        self._grow(node.copy(), 0, resolved)
        self._check_cancelled()
        self.store.put_many(resolved)
        return resolved

    def _check_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise RunCancelled("in-memory build cancelled")

    def _grow(self, node: Node, level: int, out: list[Node]) -> None:
        self._check_cancelled()
        limit = int(self.config.max_local_depth)
        if level > limit:
            raise CapacityExceeded(node.node_id, level, limit)

        if node.subset is None:
            raise ValueError(f"node {node.node_id!r} carries no data subset")
        max_height = self.config.max_height
        if max_height is not None and node.depth >= max_height:
            node.mark_leaf(self.evaluator.leaf_value(node.subset))
            out.append(node)
            return

        decision = self.evaluator.evaluate(node.subset)
        if isinstance(decision, LeafDecision):
            node.mark_leaf(decision.value)
            out.append(node)
            return
        if not isinstance(decision, SplitDecision):
            raise TypeError(f"unexpected decision {decision!r}")

        left = Node.unknown(decision.left, node.node_id, LEFT)
        right = Node.unknown(decision.right, node.node_id, RIGHT)
        node.mark_split(decision.predicate, left.node_id, right.node_id)
        for child, subset in ((left, decision.left), (right, decision.right)):
            try:
                self._grow(child, level + 1, out)
            except CapacityExceeded as exc:
                self._logger.warning("%s; forcing a leaf", exc)
                child.mark_leaf(self.evaluator.leaf_value(subset))
                out.append(child)
        out.append(node)

"""Split evaluators: map a node's data subset to a leaf or a split decision."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Sequence, Union

import numpy as np
import torch

from .config import PlanetConfig
from .core.shards import PartitionShard, split_shard
from .data import PartitionedDataset, apply_bins, quantile_bin_edges
from .node import Predicate


@dataclass(frozen=True)
class LeafDecision:
    value: float


@dataclass(frozen=True)
class SplitDecision:
    predicate: Predicate
    left: PartitionShard
    right: PartitionShard
    gain: float = 0.0


Decision = Union[LeafDecision, SplitDecision]


class SplitEvaluator(ABC):
    """Pure decision function over data subsets.

    ``evaluate`` is used by the in-memory builder. The distributed expansion
    pass runs the same logic split in two: :meth:`partial_statistics` once
    per data partition (map) and :meth:`combine` once per node (reduce).
    Implementations must not keep hidden state between calls so both paths
    produce the same tree.
    """

    @abstractmethod
    def evaluate(self, subset: PartitionShard) -> Decision:
        """Return the decision for ``subset``."""

    @abstractmethod
    def leaf_value(self, subset: PartitionShard) -> float:
        """Default prediction for ``subset`` when it is forced to be a leaf."""

    def partial_statistics(self, subset: PartitionShard, partition: int) -> Any:
        return None

    def combine(
        self,
        subset: PartitionShard,
        partials: Sequence[Any],
        *,
        leaf_only: bool = False,
    ) -> Decision:
        if leaf_only:
            return LeafDecision(self.leaf_value(subset))
        return self.evaluate(subset)


@dataclass
class NodeStatistics:
    """Per-feature histograms of row counts and target sums for one node."""

    count: int
    total: float
    counts: np.ndarray  # [F, B]
    sums: np.ndarray    # [F, B]

    def merge(self, other: "NodeStatistics") -> "NodeStatistics":
        return NodeStatistics(
            count=self.count + other.count,
            total=self.total + other.total,
            counts=self.counts + other.counts,
            sums=self.sums + other.sums,
        )


class HistogramSplitEvaluator(SplitEvaluator):
    """Variance-reduction splits over quantile-binned numeric features."""

    def __init__(
        self,
        dataset: PartitionedDataset,
        config: PlanetConfig | None = None,
        *,
        bin_edges: Sequence[np.ndarray] | None = None,
    ) -> None:
        self.dataset = dataset
        self.config = config if config is not None else PlanetConfig()
        self._device = torch.device(self.config.device)
        if bin_edges is None:
            seed = self.config.random_state if self.config.random_state is not None else 42
            bin_edges = quantile_bin_edges(dataset, self.config.max_bins, random_state=seed)
        if len(bin_edges) != dataset.schema.n_features:
            raise ValueError("bin_edges must provide one array per feature")
        self.bin_edges = [np.asarray(edges, dtype=np.float32) for edges in bin_edges]
        self._n_features = len(self.bin_edges)
        self._n_bins = max((edges.size for edges in self.bin_edges), default=0) + 1

        # bins and targets are fixed per dataset, never updated afterwards
        self._bins = tuple(
            torch.from_numpy(apply_bins(part.X, self.bin_edges)).to(device=self._device)
            for part in dataset.partitions
        )
        self._targets = tuple(
            torch.from_numpy(np.asarray(part.y, dtype=np.float64)).to(device=self._device)
            for part in dataset.partitions
        )
        thresholds = np.arange(self._n_bins - 1)[None, :]
        sizes = np.array([edges.size for edges in self.bin_edges])[:, None]
        self._threshold_mask = thresholds < sizes  # [F, B-1]

    @property
    def n_bins(self) -> int:
        return self._n_bins

    def _empty_statistics(self) -> NodeStatistics:
        shape = (self._n_features, self._n_bins)
        return NodeStatistics(
            count=0,
            total=0.0,
            counts=np.zeros(shape, dtype=np.int64),
            sums=np.zeros(shape, dtype=np.float64),
        )

    def _check_subset(self, subset: PartitionShard) -> None:
        if subset.n_partitions != self.dataset.n_partitions:
            raise ValueError(
                f"subset spans {subset.n_partitions} partitions, dataset has {self.dataset.n_partitions}"
            )

    def partial_statistics(self, subset: PartitionShard, partition: int) -> NodeStatistics:
        self._check_subset(subset)
        rows = subset.rows_per_partition[partition]
        if rows.size == 0:
            return self._empty_statistics()

        F, B = self._n_features, self._n_bins
        index = torch.from_numpy(rows).to(device=self._device)
        bins = self._bins[partition].index_select(0, index)          # [R, F]
        y = self._targets[partition].index_select(0, index)           # [R]
        R = int(index.numel())

        base = torch.arange(F, device=self._device, dtype=torch.int64).view(1, F) * B
        key = (base + bins).reshape(-1)
        hist_size = F * B
        counts = torch.bincount(key, minlength=hist_size).reshape(F, B)
        weights = y.view(R, 1).expand(R, F).reshape(-1)
        sums = torch.bincount(key, weights=weights, minlength=hist_size).reshape(F, B)
        return NodeStatistics(
            count=R,
            total=float(y.sum().item()),
            counts=counts.cpu().numpy().astype(np.int64, copy=False),
            sums=sums.cpu().numpy().astype(np.float64, copy=False),
        )

    def combine(
        self,
        subset: PartitionShard,
        partials: Sequence[Any],
        *,
        leaf_only: bool = False,
    ) -> Decision:
        stats = self._empty_statistics()
        for part in partials:
            stats = stats.merge(part)
        if stats.count == 0:
            return LeafDecision(0.0)
        value = stats.total / stats.count
        if leaf_only:
            return LeafDecision(value)

        best = self._best_split(stats)
        if best is None:
            return LeafDecision(value)
        feature, threshold_idx, gain = best
        threshold = float(self.bin_edges[feature][threshold_idx])
        left, right = split_shard(subset, self.dataset.feature_columns(feature), threshold)
        return SplitDecision(Predicate(feature=feature, threshold=threshold), left, right, gain)

    def _best_split(self, stats: NodeStatistics) -> tuple[int, int, float] | None:
        min_leaf = max(1, int(self.config.min_samples_leaf))
        if stats.count < 2 * min_leaf or self._n_bins < 2:
            return None

        left_n = np.cumsum(stats.counts, axis=1)[:, :-1]
        left_s = np.cumsum(stats.sums, axis=1)[:, :-1]
        total_n = stats.counts.sum(axis=1, keepdims=True)
        total_s = stats.sums.sum(axis=1, keepdims=True)
        right_n = total_n - left_n
        right_s = total_s - left_s

        valid = self._threshold_mask & (left_n >= min_leaf) & (right_n >= min_leaf)
        if not valid.any():
            return None
        with np.errstate(divide="ignore", invalid="ignore"):
            parent = total_s**2 / np.maximum(total_n, 1)
            gain = left_s**2 / left_n + right_s**2 / right_n - parent
        gain = np.where(valid, gain, -np.inf)

        best_flat = int(np.argmax(gain))
        feature, threshold_idx = divmod(best_flat, self._n_bins - 1)
        best_gain = float(gain[feature, threshold_idx])
        # gains within rounding noise of zero are not splits
        tolerance = 1e-9 * max(1.0, abs(float(parent[feature, 0])))
        if not np.isfinite(best_gain) or best_gain <= self.config.min_gain + tolerance:
            return None
        return feature, threshold_idx, best_gain

    def evaluate(self, subset: PartitionShard) -> Decision:
        partials = [self.partial_statistics(subset, p) for p in range(subset.n_partitions)]
        return self.combine(subset, partials)

    def leaf_value(self, subset: PartitionShard) -> float:
        partials = [self.partial_statistics(subset, p) for p in range(subset.n_partitions)]
        decision = self.combine(subset, partials, leaf_only=True)
        return decision.value  # type: ignore[union-attr]

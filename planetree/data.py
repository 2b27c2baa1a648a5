"""Dataset descriptors, partitioned data and binning utilities."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import numpy as np
import pandas as pd
import torch

from .core.dataset import group_rows_by_partition, round_robin_partition_ids
from .core.shards import PartitionShard


@dataclass(frozen=True, slots=True)
class Schema:
    """Column layout of a dataset: numeric features plus one numeric target."""

    features: tuple[str, ...]
    target: str

    @property
    def n_features(self) -> int:
        return len(self.features)

    def to_dict(self) -> dict[str, Any]:
        return {"features": list(self.features), "target": self.target}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Schema":
        try:
            features = tuple(str(name) for name in payload["features"])
            target = str(payload["target"])
        except (KeyError, TypeError) as exc:
            raise ValueError(f"malformed dataset descriptor: {payload!r}") from exc
        if not features:
            raise ValueError("dataset descriptor lists no features")
        if target in features:
            raise ValueError(f"target {target!r} is also listed as a feature")
        if len(set(features)) != len(features):
            raise ValueError("dataset descriptor lists duplicate features")
        return cls(features=features, target=target)


def load_schema(path: str | Path) -> Schema:
    """Load the JSON dataset descriptor at ``path``."""
    payload = json.loads(Path(path).read_text())
    return Schema.from_dict(payload)


def save_schema(schema: Schema, path: str | Path) -> None:
    Path(path).write_text(json.dumps(schema.to_dict(), indent=2))


def describe_frame(frame: pd.DataFrame, target: str) -> Schema:
    """Build a descriptor from ``frame`` using every numeric non-target column."""
    if target not in frame.columns:
        raise ValueError(f"target column {target!r} not found")
    if not pd.api.types.is_numeric_dtype(frame[target]):
        raise ValueError(f"target column {target!r} must be numeric")
    features = [
        str(col)
        for col in frame.columns
        if col != target and pd.api.types.is_numeric_dtype(frame[col])
    ]
    return Schema.from_dict({"features": features, "target": target})


def ensure_numpy(array: np.ndarray | torch.Tensor | pd.DataFrame | Sequence[float]) -> np.ndarray:
    """Convert ``array`` to an ``np.ndarray``."""

    if isinstance(array, np.ndarray):
        return np.asarray(array)
    if isinstance(array, torch.Tensor):  # pragma: no cover - convenience path
        return array.detach().cpu().numpy()
    if isinstance(array, (pd.DataFrame, pd.Series)):
        return array.to_numpy()
    return np.asarray(array)


@dataclass(frozen=True, eq=False)
class Partition:
    """One block of rows: ``float32`` features and ``float64`` targets."""

    X: np.ndarray
    y: np.ndarray

    def __post_init__(self) -> None:
        if self.X.ndim != 2:
            raise ValueError("partition features must be 2D")
        if self.y.ndim != 1 or self.y.shape[0] != self.X.shape[0]:
            raise ValueError("partition target must be 1D and align with X rows")

    @property
    def n_rows(self) -> int:
        return int(self.X.shape[0])


@dataclass(frozen=True, eq=False)
class PartitionedDataset:
    """A dataset split into partitions, addressed through :class:`PartitionShard`."""

    schema: Schema
    partitions: tuple[Partition, ...]

    @property
    def n_partitions(self) -> int:
        return len(self.partitions)

    @property
    def n_rows(self) -> int:
        return int(sum(part.n_rows for part in self.partitions))

    def root_subset(self) -> PartitionShard:
        return PartitionShard.full([part.n_rows for part in self.partitions])

    def feature_columns(self, feature: int) -> list[np.ndarray]:
        return [part.X[:, feature] for part in self.partitions]

    def gather(self, subset: PartitionShard) -> tuple[np.ndarray, np.ndarray]:
        """Materialise the rows of ``subset`` as ``(X, y)`` arrays."""
        if subset.n_partitions != self.n_partitions:
            raise ValueError("subset does not match the dataset partitioning")
        xs = [part.X[rows] for part, rows in zip(self.partitions, subset.rows_per_partition)]
        ys = [part.y[rows] for part, rows in zip(self.partitions, subset.rows_per_partition)]
        return np.concatenate(xs, axis=0), np.concatenate(ys, axis=0)

    @classmethod
    def from_arrays(
        cls,
        X: np.ndarray,
        y: np.ndarray,
        *,
        n_partitions: int = 1,
        feature_names: Sequence[str] | None = None,
        target_name: str = "target",
    ) -> "PartitionedDataset":
        X_np = ensure_numpy(X).astype(np.float32, copy=False)
        y_np = ensure_numpy(y).astype(np.float64, copy=False)
        if X_np.ndim != 2:
            raise ValueError("X must be 2D")
        if y_np.ndim != 1:
            raise ValueError("y must be 1-D")
        if X_np.shape[0] != y_np.shape[0]:
            raise ValueError("X and y row mismatch")
        if feature_names is None:
            feature_names = [f"f{i}" for i in range(X_np.shape[1])]
        schema = Schema.from_dict({"features": list(feature_names), "target": target_name})
        if schema.n_features != X_np.shape[1]:
            raise ValueError("feature_names must match the number of columns of X")
        n_parts = max(1, min(int(n_partitions), max(1, X_np.shape[0])))
        grouped = group_rows_by_partition(round_robin_partition_ids(X_np.shape[0], n_parts), n_parts)
        partitions = tuple(
            Partition(X=np.ascontiguousarray(X_np[rows]), y=np.ascontiguousarray(y_np[rows]))
            for rows in grouped
        )
        return cls(schema=schema, partitions=partitions)

    @classmethod
    def from_frames(cls, frames: Sequence[pd.DataFrame], schema: Schema) -> "PartitionedDataset":
        partitions: list[Partition] = []
        for idx, frame in enumerate(frames):
            missing = [col for col in (*schema.features, schema.target) if col not in frame.columns]
            if missing:
                raise ValueError(f"partition {idx} lacks columns: {', '.join(missing)}")
            X = frame.loc[:, list(schema.features)].to_numpy(dtype=np.float32)
            y = frame[schema.target].to_numpy(dtype=np.float64)
            partitions.append(Partition(X=X, y=y))
        if not partitions:
            raise ValueError("dataset has no partitions")
        return cls(schema=schema, partitions=tuple(partitions))

    @classmethod
    def from_directory(cls, data_path: str | Path, schema: Schema) -> "PartitionedDataset":
        """Read one partition per CSV file under ``data_path`` (or a single file)."""
        path = Path(data_path)
        if path.is_dir():
            files = sorted(p for p in path.iterdir() if p.suffix == ".csv")
        elif path.is_file():
            files = [path]
        else:
            raise FileNotFoundError(f"data path not found: {path}")
        if not files:
            raise ValueError(f"no CSV partitions under {path}")
        return cls.from_frames([pd.read_csv(f) for f in files], schema)


def quantile_bin_edges(
    dataset: PartitionedDataset,
    max_bins: int,
    subsample: int | None = 200_000,
    random_state: int | None = 42,
) -> list[np.ndarray]:
    """Compute per-feature quantile cut points over every partition.

    Returns one sorted, de-duplicated ``float32`` array of at most
    ``max_bins - 1`` inner edges per feature. A value ``x`` falls in bin
    ``searchsorted(edges, x, side="left")`` so bin ``b <= t`` holds exactly
    when ``x <= edges[t]``.
    """
    if max_bins < 2:
        raise ValueError("max_bins must be at least 2")
    if max_bins > 256:
        raise ValueError("max_bins cannot exceed 256")

    n_features = dataset.schema.n_features
    non_empty = [part.X for part in dataset.partitions if part.n_rows]
    if not non_empty:
        return [np.empty(0, dtype=np.float32) for _ in range(n_features)]
    X = np.concatenate(non_empty, axis=0)
    n_samples = X.shape[0]
    if subsample is not None and subsample < n_samples:
        rng = np.random.default_rng(random_state)
        X = X[rng.choice(n_samples, size=subsample, replace=False)]

    quantiles = np.linspace(0.0, 1.0, max_bins + 1, dtype=np.float64)[1:-1]
    edges: list[np.ndarray] = []
    for j in range(n_features):
        column = X[:, j]
        column = column[np.isfinite(column)]
        if column.size == 0:
            edges.append(np.empty(0, dtype=np.float32))
            continue
        cuts = np.quantile(column, quantiles, method="linear").astype(np.float32)
        cuts = np.unique(cuts)
        # the largest value would send every row left
        edges.append(cuts[cuts < column.max()])
    return edges


def apply_bins(X: np.ndarray, bin_edges: Sequence[np.ndarray]) -> np.ndarray:
    """Bin ``X`` column-wise using edges from :func:`quantile_bin_edges`."""
    X_np = ensure_numpy(X).astype(np.float32, copy=False)
    if X_np.ndim != 2 or X_np.shape[1] != len(bin_edges):
        raise ValueError("X must be 2D with one column per edge array")
    bins = np.empty(X_np.shape, dtype=np.int64)
    for j, column_edges in enumerate(bin_edges):
        bins[:, j] = np.searchsorted(column_edges, X_np[:, j], side="left")
    return bins

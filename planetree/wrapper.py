"""scikit-learn wrapper for phase-scheduled tree growth."""

from __future__ import annotations

from typing import Optional

import numpy as np
from sklearn.base import BaseEstimator, RegressorMixin

from .config import PlanetConfig
from .data import PartitionedDataset
from .evaluator import HistogramSplitEvaluator
from .jobs import LocalJobService
from .model import DecisionTree
from .scheduler import PhaseScheduler
from .store import TreeStore


class PlanetRegressor(BaseEstimator, RegressorMixin):
    """scikit-learn compatible regression tree grown by :class:`PhaseScheduler`."""

    def __init__(
        self,
        *,
        threshold: int = 10_000,
        max_height: Optional[int] = None,
        max_bins: int = 32,
        min_samples_leaf: int = 1,
        min_gain: float = 0.0,
        n_partitions: int = 4,
        n_workers: int = 1,
        random_state: Optional[int] = None,
        device: str = "cpu",
    ) -> None:
        self.threshold = threshold
        self.max_height = max_height
        self.max_bins = max_bins
        self.min_samples_leaf = min_samples_leaf
        self.min_gain = min_gain
        self.n_partitions = n_partitions
        self.n_workers = n_workers
        self.random_state = random_state
        self.device = device
        self._tree: Optional[DecisionTree] = None

    def fit(self, X: np.ndarray, y: np.ndarray) -> "PlanetRegressor":
        """Fit the estimator.

        Parameters
        ----------
        X: np.ndarray
            Feature matrix of shape (n_samples, n_features).
        y: np.ndarray
            Targets of shape (n_samples,).
        """
        config = PlanetConfig(
            threshold=self.threshold,
            max_height=self.max_height,
            max_bins=self.max_bins,
            min_samples_leaf=self.min_samples_leaf,
            min_gain=self.min_gain,
            n_workers=self.n_workers,
            n_partitions=self.n_partitions,
            random_state=self.random_state,
            device=self.device,
        )
        dataset = PartitionedDataset.from_arrays(
            np.asarray(X), np.asarray(y), n_partitions=config.n_partitions
        )
        evaluator = HistogramSplitEvaluator(dataset, config)
        with LocalJobService(evaluator) as job_service:
            scheduler = PhaseScheduler(config, evaluator, job_service, TreeStore.in_memory())
            self._tree = scheduler.run(dataset.root_subset())
        self.tree_ = self._tree
        self.n_features_in_ = dataset.schema.n_features
        self.n_phases_ = scheduler.phase
        self.n_jobs_ = scheduler.jobs_submitted
        return self

    def predict(self, X: np.ndarray) -> np.ndarray:
        if self._tree is None:
            raise RuntimeError("Estimator has not been fitted")
        return self._tree.predict(np.asarray(X, dtype=np.float32))

    def get_tree(self) -> DecisionTree:
        if self._tree is None:
            raise RuntimeError("Estimator has not been fitted")
        return self._tree

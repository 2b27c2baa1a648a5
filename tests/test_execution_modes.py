"""Trees must not depend on where nodes are resolved."""

from __future__ import annotations

import numpy as np
import pytest

from planetree.config import PlanetConfig
from planetree.data import PartitionedDataset
from planetree.evaluator import HistogramSplitEvaluator
from planetree.jobs import LocalJobService
from planetree.scheduler import PhaseScheduler
from planetree.store import TreeStore


def make_random_regression(seed: int = 42) -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(512, 6)).astype(np.float32)
    coefs = rng.normal(size=6).astype(np.float32)
    y = X @ coefs + 0.1 * rng.standard_normal(X.shape[0])
    return X, y


def grow(threshold: int, n_workers: int = 1):
    X, y = make_random_regression()
    dataset = PartitionedDataset.from_arrays(X, y, n_partitions=4)
    config = PlanetConfig(threshold=threshold, max_height=5, max_bins=32, min_samples_leaf=4, n_workers=n_workers)
    evaluator = HistogramSplitEvaluator(dataset, config)
    with LocalJobService(evaluator, max_workers=2) as jobs:
        scheduler = PhaseScheduler(config, evaluator, jobs, TreeStore.in_memory())
        tree = scheduler.run(dataset.root_subset())
    return scheduler, tree


@pytest.mark.parametrize("threshold", [1, 64, 200])
def test_distributed_and_in_memory_paths_agree(threshold: int) -> None:
    _, local_tree = grow(threshold=10**9)
    scheduler, tree = grow(threshold=threshold)

    assert tree.to_dict() == local_tree.to_dict()
    assert scheduler.jobs_submitted >= 1


def test_parallel_in_memory_builds_agree() -> None:
    _, serial = grow(threshold=128, n_workers=1)
    _, parallel = grow(threshold=128, n_workers=4)
    assert parallel.to_dict() == serial.to_dict()


def test_tree_fits_training_data() -> None:
    X, y = make_random_regression()
    _, tree = grow(threshold=100)
    preds = tree.predict(X)
    assert preds.shape == (X.shape[0],)
    baseline_loss = float(np.mean((y - y.mean()) ** 2))
    trained_loss = float(np.mean((y - preds) ** 2))
    assert trained_loss < baseline_loss

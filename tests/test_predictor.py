import numpy as np
import pandas as pd
import pytest

from planetree.config import PlanetConfig
from planetree.data import PartitionedDataset
from planetree.evaluator import HistogramSplitEvaluator
from planetree.jobs import LocalJobService
from planetree.predictor import TreePredictor, load_predictor
from planetree.scheduler import grow_tree
from planetree.store import TreeStore


def fit_tree():
    rng = np.random.default_rng(3)
    X = rng.normal(size=(300, 3)).astype(np.float32)
    y = 2.0 * X[:, 0] - X[:, 1]
    dataset = PartitionedDataset.from_arrays(X, y, n_partitions=3)
    config = PlanetConfig(threshold=100, max_height=4, max_bins=16)
    evaluator = HistogramSplitEvaluator(dataset, config)
    with LocalJobService(evaluator) as jobs:
        tree = grow_tree(config, evaluator, jobs, TreeStore.in_memory(), dataset.root_subset())
    return X, tree


def test_predictor_json_roundtrip(tmp_path):
    X, tree = fit_tree()
    predictor = TreePredictor(tree)
    path = tmp_path / "tree.json"
    predictor.to_json(path)

    loaded = TreePredictor.from_json(path)
    np.testing.assert_allclose(loaded.predict(X), tree.predict(X))
    assert loaded.model.summary() == tree.summary()


def test_predictor_selects_frame_columns():
    X, tree = fit_tree()
    frame = pd.DataFrame(X, columns=["a", "b", "c"])
    frame.insert(0, "target", 0.0)
    predictor = load_predictor(tree.to_dict())
    with_features = TreePredictor(tree, features=["a", "b", "c"])
    np.testing.assert_allclose(with_features.predict(frame), predictor.predict(X))


def test_predictor_rejects_incomplete_tree():
    _, tree = fit_tree()
    payload = tree.to_dict()
    last = payload["nodes"][-1]
    payload["nodes"][-1] = {"node_id": last["node_id"], "state": "unknown", "n_samples": last["n_samples"]}
    with pytest.raises(ValueError):
        load_predictor(payload)

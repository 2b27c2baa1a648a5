import numpy as np
import pytest
from sklearn.base import clone
from sklearn.datasets import make_regression

from planetree.wrapper import PlanetRegressor


def test_sklearn_wrapper_deterministic() -> None:
    X, y = make_regression(n_samples=200, n_features=5, random_state=123)

    est1 = PlanetRegressor(threshold=64, max_height=4, max_bins=32, min_samples_leaf=5, n_partitions=3)
    preds1 = est1.fit(X, y).predict(X)
    est2 = clone(est1)
    preds2 = est2.fit(X, y).predict(X)

    assert preds1.shape == (X.shape[0],)
    np.testing.assert_allclose(preds1, preds2)
    assert est1.n_features_in_ == 5
    assert est1.get_tree().depth <= 4


def test_sklearn_wrapper_reduces_loss() -> None:
    X, y = make_regression(n_samples=300, n_features=4, noise=0.1, random_state=5)
    est = PlanetRegressor(threshold=50, max_height=5, min_samples_leaf=3)
    est.fit(X, y)
    baseline = float(np.mean((y - y.mean()) ** 2))
    trained = float(np.mean((y - est.predict(X)) ** 2))
    assert trained < baseline
    assert est.n_jobs_ >= 1
    assert est.score(X, y) > 0


def test_unfitted_estimator_raises() -> None:
    with pytest.raises(RuntimeError):
        PlanetRegressor().predict(np.zeros((1, 2)))

"""Standalone prediction utilities for stored trees."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Sequence

import numpy as np
import pandas as pd

from .model import DecisionTree


class TreePredictor:
    """Lightweight predictor that depends only on a serialised tree."""

    def __init__(self, tree: DecisionTree, features: Sequence[str] | None = None) -> None:
        if not tree.is_complete:
            raise ValueError("predictor requires a complete tree")
        self._tree = tree
        self._features = tuple(features) if features is not None else None

    @classmethod
    def from_json(cls, path: str | Path, features: Sequence[str] | None = None) -> "TreePredictor":
        payload = json.loads(Path(path).read_text())
        return cls(DecisionTree.from_dict(payload), features)

    def to_json(self, path: str | Path) -> None:
        Path(path).write_text(json.dumps(self._tree.to_dict()))

    def predict(self, X: np.ndarray | pd.DataFrame) -> np.ndarray:
        if isinstance(X, pd.DataFrame):
            if self._features is not None:
                X = X.loc[:, list(self._features)]
            X_array = X.to_numpy(dtype=np.float32)
        else:
            X_array = np.asarray(X, dtype=np.float32)
        return self._tree.predict(X_array)

    @property
    def model(self) -> DecisionTree:
        return self._tree


def load_predictor(payload: dict[str, Any]) -> TreePredictor:
    return TreePredictor(DecisionTree.from_dict(payload))

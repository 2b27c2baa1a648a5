"""planetree: phase-scheduled decision tree growth over partitioned data."""

from .config import PlanetConfig
from .data import PartitionedDataset, Schema
from .evaluator import HistogramSplitEvaluator, SplitEvaluator
from .jobs import LocalJobService
from .model import DecisionTree
from .scheduler import PhaseScheduler, grow_tree
from .store import TreeStore

__all__ = [
    "DecisionTree",
    "HistogramSplitEvaluator",
    "LocalJobService",
    "PartitionedDataset",
    "PhaseScheduler",
    "PlanetConfig",
    "Schema",
    "SplitEvaluator",
    "TreeStore",
    "grow_tree",
]

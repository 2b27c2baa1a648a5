"""Configuration objects for planetree."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PlanetConfig:
    """Parameters steering tree growth.

    Parameters
    ----------
    threshold:
        In-memory threshold. Nodes whose data subset holds fewer rows are
        grown locally by the in-memory builder; larger nodes go through a
        distributed frontier expansion phase.
    max_height:
        Maximum depth of the tree (root is depth 0). Nodes at this depth are
        always leaves. ``None`` leaves the height unbounded.
    max_bins:
        Number of quantile bins per feature used by the histogram evaluator.
    min_samples_leaf:
        Minimum number of rows required in each child of a split.
    min_gain:
        Minimum variance reduction required to accept a split.
    max_local_depth:
        Hard bound on the recursion depth of a single in-memory build. Nodes
        below it are turned into leaves.
    max_job_attempts:
        Number of submissions of one expansion job before the phase fails.
    job_timeout:
        Seconds to wait for a submitted job, ``None`` waits forever.
    n_workers:
        Size of the thread pool running in-memory builds within a phase.
    n_partitions:
        Number of partitions used when data is supplied as in-memory arrays.
    random_state:
        Optional seed for the quantile subsample of the bin edges.
    device:
        Torch device identifier (``"cpu"`` or ``"cuda"``) for histogram ops.
    """

    threshold: int = 10_000
    max_height: int | None = None
    max_bins: int = 32
    min_samples_leaf: int = 1
    min_gain: float = 0.0
    max_local_depth: int = 256
    max_job_attempts: int = 3
    job_timeout: float | None = None
    n_workers: int = 1
    n_partitions: int = 4
    random_state: int | None = None
    device: str = "cpu"

    def validate(self) -> None:
        """Raise ``ValueError`` for values the scheduler cannot run with."""
        if self.threshold < 1:
            raise ValueError("threshold must be at least 1")
        if self.max_height is not None and self.max_height < 0:
            raise ValueError("max_height must be non-negative")
        if self.max_bins < 2:
            raise ValueError("max_bins must be at least 2")
        if self.min_samples_leaf < 1:
            raise ValueError("min_samples_leaf must be at least 1")
        if self.max_local_depth < 0:
            raise ValueError("max_local_depth must be non-negative")
        if self.max_job_attempts < 1:
            raise ValueError("max_job_attempts must be at least 1")
        if self.job_timeout is not None and self.job_timeout <= 0:
            raise ValueError("job_timeout must be positive")
        if self.n_workers < 1:
            raise ValueError("n_workers must be at least 1")
        if self.n_partitions < 1:
            raise ValueError("n_partitions must be at least 1")

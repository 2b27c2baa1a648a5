"""Command line entry point: ``planetree build|resume|describe|predict``."""

import json
import logging
from dataclasses import asdict, replace
from pathlib import Path
from typing import NoReturn, Optional

import pandas as pd
import typer

from .config import PlanetConfig
from .data import PartitionedDataset, describe_frame, load_schema, save_schema
from .errors import OutputAlreadyExists, PlanetError
from .evaluator import HistogramSplitEvaluator
from .jobs import LocalJobService
from .predictor import TreePredictor
from .scheduler import PhaseScheduler
from .store import TreeStore

app = typer.Typer(help="Grow decision trees over partitioned data, phase by phase.")

RUN_FILE = "run.json"
STORE_DIR = "store"
TREE_FILE = "tree.json"


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(exc: Exception) -> NoReturn:
    typer.echo(f"error: {exc}", err=True)
    raise typer.Exit(code=1)


def _grow(output: Path, data: Path, dataset: Path, config: PlanetConfig, *, fresh: bool) -> None:
    schema = load_schema(dataset)
    frame_data = PartitionedDataset.from_directory(data, schema)
    evaluator = HistogramSplitEvaluator(frame_data, config)
    store = TreeStore.open(output / STORE_DIR)
    with LocalJobService(evaluator, max_workers=config.n_workers) as job_service:
        scheduler = PhaseScheduler(config, evaluator, job_service, store, output_path=output / TREE_FILE)
        tree = scheduler.run(frame_data.root_subset() if fresh else None)
    typer.echo(json.dumps({**tree.summary(), "phases": scheduler.phase, "jobs": scheduler.jobs_submitted}))


@app.command()
def build(
    data: Path = typer.Option(..., "--data", help="CSV file or directory with one CSV per partition."),
    dataset: Path = typer.Option(..., "--dataset", help="Dataset descriptor (JSON)."),
    output: Path = typer.Option(..., "--output", help="Output directory; must not exist."),
    threshold: int = typer.Option(..., "--threshold", help="Nodes with fewer rows are grown in memory."),
    height: Optional[int] = typer.Option(None, "--height", help="Maximum tree height."),
    partitions: int = typer.Option(4, "--partitions", help="Partitions for single-file data."),
    workers: int = typer.Option(1, "--workers", help="Threads for in-memory builds and map tasks."),
    max_bins: int = typer.Option(32, "--max-bins"),
    min_samples_leaf: int = typer.Option(1, "--min-samples-leaf"),
    job_attempts: int = typer.Option(3, "--job-attempts", help="Submissions per expansion job."),
    job_timeout: Optional[float] = typer.Option(None, "--job-timeout", help="Seconds to wait for a job."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Grow a new tree and store it under OUTPUT."""
    _setup_logging(verbose)
    if output.exists():
        _fail(OutputAlreadyExists(output))

    config = PlanetConfig(
        threshold=threshold,
        max_height=height,
        max_bins=max_bins,
        min_samples_leaf=min_samples_leaf,
        max_job_attempts=job_attempts,
        job_timeout=job_timeout,
        n_workers=workers,
        n_partitions=partitions,
    )
    try:
        config.validate()
    except ValueError as exc:
        _fail(exc)

    output.mkdir(parents=True)
    run = {"data": str(data.resolve()), "dataset": str(dataset.resolve()), "config": asdict(config)}
    (output / RUN_FILE).write_text(json.dumps(run, indent=2))
    try:
        _grow(output, data, dataset, config, fresh=True)
    except (PlanetError, ValueError, FileNotFoundError) as exc:
        _fail(exc)


@app.command()
def resume(
    output: Path = typer.Option(..., "--output", help="Output directory of an earlier build."),
    job_attempts: Optional[int] = typer.Option(None, "--job-attempts"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Continue an interrupted build from its last committed phase."""
    _setup_logging(verbose)
    run_file = output / RUN_FILE
    if not run_file.is_file():
        _fail(FileNotFoundError(f"no build found under {output}"))
    run = json.loads(run_file.read_text())
    config = PlanetConfig(**run["config"])
    if job_attempts is not None:
        config = replace(config, max_job_attempts=job_attempts)
    try:
        _grow(output, Path(run["data"]), Path(run["dataset"]), config, fresh=False)
    except (PlanetError, ValueError, FileNotFoundError) as exc:
        _fail(exc)


@app.command()
def describe(
    data: Path = typer.Option(..., "--data", help="CSV file to describe."),
    target: str = typer.Option(..., "--target", help="Name of the target column."),
    output: Path = typer.Option(..., "--output", help="Where to write the descriptor."),
) -> None:
    """Write a dataset descriptor listing the numeric feature columns."""
    try:
        schema = describe_frame(pd.read_csv(data), target)
    except (ValueError, FileNotFoundError) as exc:
        _fail(exc)
    save_schema(schema, output)
    typer.echo(f"{schema.n_features} features, target {schema.target!r} -> {output}")


@app.command()
def predict(
    tree: Path = typer.Option(..., "--tree", help="tree.json or a build output directory."),
    data: Path = typer.Option(..., "--data", help="CSV file to score."),
    output: Path = typer.Option(..., "--output", help="CSV file receiving the predictions."),
    dataset: Optional[Path] = typer.Option(None, "--dataset", help="Descriptor naming the feature columns."),
) -> None:
    """Score the rows of a CSV file with a stored tree."""
    tree_path = tree / TREE_FILE if tree.is_dir() else tree
    if dataset is None and (tree / RUN_FILE).is_file():
        dataset = Path(json.loads((tree / RUN_FILE).read_text())["dataset"])
    features = load_schema(dataset).features if dataset is not None else None
    try:
        predictor = TreePredictor.from_json(tree_path, features)
    except (ValueError, FileNotFoundError) as exc:
        _fail(exc)
    frame = pd.read_csv(data)
    pd.DataFrame({"prediction": predictor.predict(frame)}).to_csv(output, index=False)
    typer.echo(f"wrote {len(frame)} predictions to {output}")


if __name__ == "__main__":
    app()

import json

import numpy as np
import pandas as pd
from typer.testing import CliRunner

from planetree.cli import app
from planetree.store import TreeStore

runner = CliRunner()


def write_inputs(tmp_path):
    rng = np.random.default_rng(11)
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    for idx in range(3):
        X = rng.normal(size=(80, 3))
        frame = pd.DataFrame(X, columns=["a", "b", "c"])
        frame["y"] = np.where(frame["b"] > 0, 1.0, -1.0)
        frame.to_csv(data_dir / f"part-{idx}.csv", index=False)
    dataset = tmp_path / "dataset.json"
    dataset.write_text(json.dumps({"features": ["a", "b", "c"], "target": "y"}))
    return data_dir, dataset


def build_args(data_dir, dataset, output, *extra):
    return [
        "build",
        "--data", str(data_dir),
        "--dataset", str(dataset),
        "--output", str(output),
        "--threshold", "100",
        "--height", "3",
        *extra,
    ]


def test_build_writes_tree_and_store(tmp_path):
    data_dir, dataset = write_inputs(tmp_path)
    output = tmp_path / "out"

    result = runner.invoke(app, build_args(data_dir, dataset, output))

    assert result.exit_code == 0, result.output
    assert (output / "tree.json").is_file()
    checkpoint = TreeStore.open(output / "store").checkpoint()
    assert checkpoint is not None and checkpoint.done
    summary = json.loads(result.output.strip().splitlines()[-1])
    assert summary["complete"] is True
    assert summary["jobs"] >= 1


def test_existing_output_aborts_without_writes(tmp_path):
    data_dir, dataset = write_inputs(tmp_path)
    output = tmp_path / "out"
    output.mkdir()

    result = runner.invoke(app, build_args(data_dir, dataset, output))

    assert result.exit_code == 1
    assert "already exists" in result.output
    assert list(output.iterdir()) == []


def test_missing_threshold_is_a_usage_error(tmp_path):
    data_dir, dataset = write_inputs(tmp_path)
    result = runner.invoke(
        app, ["build", "--data", str(data_dir), "--dataset", str(dataset), "--output", str(tmp_path / "o")]
    )
    assert result.exit_code != 0
    assert not (tmp_path / "o").exists()


def test_invalid_threshold_exits_before_writing(tmp_path):
    data_dir, dataset = write_inputs(tmp_path)
    output = tmp_path / "out"
    args = build_args(data_dir, dataset, output)
    args[args.index("--threshold") + 1] = "0"
    result = runner.invoke(app, args)
    assert result.exit_code == 1
    assert not output.exists()


def test_resume_of_finished_build_is_stable(tmp_path):
    data_dir, dataset = write_inputs(tmp_path)
    output = tmp_path / "out"
    assert runner.invoke(app, build_args(data_dir, dataset, output)).exit_code == 0
    before = (output / "tree.json").read_text()

    result = runner.invoke(app, ["resume", "--output", str(output)])

    assert result.exit_code == 0, result.output
    assert (output / "tree.json").read_text() == before


def test_resume_without_build_fails(tmp_path):
    result = runner.invoke(app, ["resume", "--output", str(tmp_path / "nothing")])
    assert result.exit_code == 1


def test_describe_and_predict(tmp_path):
    data_dir, _ = write_inputs(tmp_path)
    descriptor = tmp_path / "described.json"
    result = runner.invoke(
        app, ["describe", "--data", str(data_dir / "part-0.csv"), "--target", "y", "--output", str(descriptor)]
    )
    assert result.exit_code == 0, result.output
    assert json.loads(descriptor.read_text()) == {"features": ["a", "b", "c"], "target": "y"}

    output = tmp_path / "out"
    assert runner.invoke(app, build_args(data_dir, descriptor, output)).exit_code == 0
    scores = tmp_path / "scores.csv"
    result = runner.invoke(
        app, ["predict", "--tree", str(output), "--data", str(data_dir / "part-1.csv"), "--output", str(scores)]
    )
    assert result.exit_code == 0, result.output
    predictions = pd.read_csv(scores)["prediction"].to_numpy()
    labels = pd.read_csv(data_dir / "part-1.csv")["y"].to_numpy()
    assert predictions.shape == (80,)
    assert np.mean(np.sign(predictions) == labels) > 0.9

import pytest

from planetree.config import PlanetConfig


def test_config_defaults():
    cfg = PlanetConfig()
    assert cfg.threshold == 10_000
    assert cfg.max_height is None
    assert cfg.device == "cpu"
    assert cfg.max_bins <= 256
    cfg.validate()


@pytest.mark.parametrize(
    "overrides",
    [
        {"threshold": 0},
        {"max_height": -1},
        {"max_bins": 1},
        {"min_samples_leaf": 0},
        {"max_job_attempts": 0},
        {"job_timeout": 0.0},
        {"n_workers": 0},
        {"n_partitions": 0},
    ],
)
def test_config_validate_rejects(overrides):
    with pytest.raises(ValueError):
        PlanetConfig(**overrides).validate()


def test_config_is_frozen():
    cfg = PlanetConfig()
    with pytest.raises(AttributeError):
        cfg.threshold = 5  # type: ignore[misc]

"""Tests for YAML-backed registration settings."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from pcfuse.config import RegistrationConfig, load_config

DEFAULT_YAML = Path(__file__).resolve().parents[1] / "configs" / "default.yaml"


def test_defaults_match_the_sensor_setup() -> None:
    cfg = RegistrationConfig()

    assert cfg.match.descriptor_dim == 128
    assert cfg.sac.max_iterations == 2000
    assert cfg.sac.inlier_threshold == pytest.approx(0.001)
    assert cfg.session.on_empty_correspondences == "apply_anyway"
    assert cfg.session.voxel_size is None


def test_shipped_yaml_equals_defaults() -> None:
    assert load_config(DEFAULT_YAML) == RegistrationConfig()


def test_partial_yaml_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "cfg.yaml"
    path.write_text(yaml.safe_dump({"sac": {"max_iterations": 50, "seed": None}}), encoding="utf-8")

    cfg = load_config(path)

    assert cfg.sac.max_iterations == 50
    assert cfg.sac.seed is None
    assert cfg.match.descriptor_dim == 128


def test_round_trip_through_dict() -> None:
    cfg = RegistrationConfig.from_dict({"session": {"voxel_size": 0.01, "on_empty_correspondences": "hold_last_transform"}})
    assert RegistrationConfig.from_dict(cfg.to_dict()) == cfg


@pytest.mark.parametrize(
    "raw",
    [
        {"session": {"on_empty_correspondences": "drop"}},
        {"sac": {"inlier_threshold": 0.0}},
        {"match": {"descriptor_dim": 0}},
        {"session": {"voxel_size": -1.0}},
        {"session": {"min_points": 0}},
        {"session": {"min_keypoints": 0}},
        {"session": {"min_keypoints": 2}},
    ],
)
def test_invalid_values_are_rejected(raw: dict) -> None:
    with pytest.raises(ValueError):
        RegistrationConfig.from_dict(raw)


def test_missing_path_gives_defaults() -> None:
    assert load_config(None) == RegistrationConfig()

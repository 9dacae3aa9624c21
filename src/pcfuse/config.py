# src/pcfuse/config.py
"""Registration settings: YAML file -> frozen dataclasses."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path

import yaml

from .modules.rigid_sac import SAMPLE_SIZE
from .system.policy import APPLY_ANYWAY, POLICIES


@dataclass(frozen=True)
class MatchConfig:
    descriptor_dim: int = 128


@dataclass(frozen=True)
class SacConfig:
    max_iterations: int = 2000
    inlier_threshold: float = 0.001
    seed: int | None = 0
    refine: bool = False
    min_inliers: int = 3


@dataclass(frozen=True)
class SessionConfig:
    on_empty_correspondences: str = APPLY_ANYWAY
    min_points: int = 1
    min_keypoints: int = 3
    voxel_size: float | None = None  # None: merged cloud is plain concatenation


@dataclass(frozen=True)
class RegistrationConfig:
    match: MatchConfig = field(default_factory=MatchConfig)
    sac: SacConfig = field(default_factory=SacConfig)
    session: SessionConfig = field(default_factory=SessionConfig)

    @classmethod
    def from_dict(cls, cfg: dict | None) -> RegistrationConfig:
        cfg = cfg or {}
        m = cfg.get("match", {}) or {}
        s = cfg.get("sac", {}) or {}
        ss = cfg.get("session", {}) or {}

        seed = s.get("seed", 0)
        voxel = ss.get("voxel_size", None)
        conf = cls(
            match=MatchConfig(descriptor_dim=int(m.get("descriptor_dim", 128))),
            sac=SacConfig(
                max_iterations=int(s.get("max_iterations", 2000)),
                inlier_threshold=float(s.get("inlier_threshold", 0.001)),
                seed=None if seed is None else int(seed),
                refine=bool(s.get("refine", False)),
                min_inliers=int(s.get("min_inliers", 3)),
            ),
            session=SessionConfig(
                on_empty_correspondences=str(ss.get("on_empty_correspondences", APPLY_ANYWAY)),
                min_points=int(ss.get("min_points", 1)),
                min_keypoints=int(ss.get("min_keypoints", 3)),
                voxel_size=None if voxel is None else float(voxel),
            ),
        )
        conf.validate()
        return conf

    def validate(self) -> None:
        if self.match.descriptor_dim <= 0:
            raise ValueError(f"match.descriptor_dim must be positive, got {self.match.descriptor_dim}")
        if self.sac.max_iterations < 0:
            raise ValueError(f"sac.max_iterations must be >= 0, got {self.sac.max_iterations}")
        if self.sac.inlier_threshold <= 0.0:
            raise ValueError(f"sac.inlier_threshold must be positive, got {self.sac.inlier_threshold}")
        if self.session.on_empty_correspondences not in POLICIES:
            raise ValueError(
                f"session.on_empty_correspondences must be one of {POLICIES}, "
                f"got {self.session.on_empty_correspondences!r}"
            )
        if self.session.min_points < 1:
            raise ValueError(f"session.min_points must be >= 1, got {self.session.min_points}")
        if self.session.min_keypoints < SAMPLE_SIZE:
            raise ValueError(
                f"session.min_keypoints must be >= {SAMPLE_SIZE} (one rigid sample), got {self.session.min_keypoints}"
            )
        if self.session.voxel_size is not None and self.session.voxel_size <= 0.0:
            raise ValueError(f"session.voxel_size must be positive or null, got {self.session.voxel_size}")

    def to_dict(self) -> dict:
        return asdict(self)


def load_config(path: str | Path | None) -> RegistrationConfig:
    if path is None:
        return RegistrationConfig()
    with open(path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f)
    return RegistrationConfig.from_dict(cfg)

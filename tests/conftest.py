"""Pytest configuration and shared fixtures: synthetic frames with known motion."""

from __future__ import annotations

import numpy as np
import pytest

from pcfuse.geom.cloud import KeypointCloud, PointCloud
from pcfuse.geom.se3 import Rt_to_T, rot_z, transform_points

DIM = 128


def make_cloud(rng: np.random.Generator, n: int = 1000) -> PointCloud:
    xyz = rng.uniform(-1.0, 1.0, size=(n, 3))
    rgb = rng.integers(0, 256, size=(n, 3), dtype=np.uint8)
    return PointCloud(xyz, rgb)


def make_keypoints(rng: np.random.Generator, n: int = 50, dim: int = DIM) -> KeypointCloud:
    xyz = rng.uniform(-1.0, 1.0, size=(n, 3))
    desc = rng.random((n, dim)).astype(np.float32)
    return KeypointCloud(xyz, desc)


def moved_frame(
    T_prev_cur: np.ndarray,
    cloud_prev: PointCloud,
    kp_prev: KeypointCloud,
) -> tuple[PointCloud, KeypointCloud]:
    """The next frame: same scene seen from a camera moved by T_prev_cur, identical descriptors."""
    T_cur_prev = np.linalg.inv(T_prev_cur)
    cloud = PointCloud(transform_points(T_cur_prev, cloud_prev.xyz), cloud_prev.rgb.copy())
    kp = KeypointCloud(transform_points(T_cur_prev, kp_prev.xyz), kp_prev.desc.copy())
    return cloud, kp


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture
def T_rot90_x1() -> np.ndarray:
    """90 degrees about Z plus translation (1, 0, 0)."""
    return Rt_to_T(rot_z(np.pi / 2.0), np.array([1.0, 0.0, 0.0]))


@pytest.fixture
def frame_pair(rng: np.random.Generator, T_rot90_x1: np.ndarray):
    """(cloud_a, kp_a, cloud_b, kp_b) with T_rot90_x1 mapping frame B coordinates into frame A."""
    cloud_a = make_cloud(rng, 1000)
    kp_a = make_keypoints(rng, 50)
    cloud_b, kp_b = moved_frame(T_rot90_x1, cloud_a, kp_a)
    return cloud_a, kp_a, cloud_b, kp_b

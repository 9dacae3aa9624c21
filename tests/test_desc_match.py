"""Tests for reciprocal descriptor matching."""

from __future__ import annotations

import numpy as np
import pytest

from pcfuse.errors import DimensionMismatch, InsufficientFrame
from pcfuse.geom.cloud import KeypointCloud
from pcfuse.modules.desc_match import desc_match

from conftest import DIM, make_keypoints


def test_matches_follow_descriptors_not_positions(rng: np.random.Generator) -> None:
    kp_prev = make_keypoints(rng, 40)
    perm = rng.permutation(40)
    # positions unrelated to the previous frame, descriptors permuted
    kp_next = KeypointCloud(rng.uniform(5.0, 6.0, size=(40, 3)), kp_prev.desc[perm])

    corrs, info = desc_match(kp_next, kp_prev, descriptor_dim=DIM)

    assert len(corrs) == 40
    assert info["num_mutual"] == 40
    for c in corrs:
        assert c.dst_idx == perm[c.src_idx]
        assert c.distance == pytest.approx(0.0, abs=1e-4)


def test_indices_in_bounds_and_bounded_size(rng: np.random.Generator) -> None:
    kp_next = make_keypoints(rng, 30)
    kp_prev = make_keypoints(rng, 70)

    corrs, _ = desc_match(kp_next, kp_prev, descriptor_dim=DIM)

    assert 0 < len(corrs) <= 30
    assert all(0 <= c.src_idx < 30 and 0 <= c.dst_idx < 70 for c in corrs)
    # mutual: no prev keypoint is used twice
    assert len({c.dst_idx for c in corrs}) == len(corrs)


def test_pairs_are_mutual_nearest_neighbours(rng: np.random.Generator) -> None:
    kp_next = make_keypoints(rng, 25, dim=16)
    kp_prev = make_keypoints(rng, 35, dim=16)

    corrs, _ = desc_match(kp_next, kp_prev, descriptor_dim=16)

    d = np.linalg.norm(kp_next.desc[:, None, :] - kp_prev.desc[None, :, :], axis=2)
    expected = {
        (i, int(np.argmin(d[i])))
        for i in range(d.shape[0])
        if int(np.argmin(d[:, int(np.argmin(d[i]))])) == i
    }
    assert {(c.src_idx, c.dst_idx) for c in corrs} == expected


def test_matching_is_deterministic(rng: np.random.Generator) -> None:
    kp_next = make_keypoints(rng, 50)
    kp_prev = make_keypoints(rng, 50)

    first, _ = desc_match(kp_next, kp_prev, descriptor_dim=DIM)
    second, _ = desc_match(kp_next, kp_prev, descriptor_dim=DIM)

    assert first == second


def test_invalid_keypoints_are_skipped(rng: np.random.Generator) -> None:
    kp_prev = make_keypoints(rng, 10)
    xyz = kp_prev.xyz.copy()
    xyz[3] = np.nan
    kp_next = KeypointCloud(xyz, kp_prev.desc.copy())

    corrs, info = desc_match(kp_next, kp_prev, descriptor_dim=DIM)

    assert info["num_valid_next"] == 9
    assert 3 not in {c.src_idx for c in corrs}
    assert {(c.src_idx, c.dst_idx) for c in corrs} == {(i, i) for i in range(10) if i != 3}


def test_no_valid_keypoints_gives_empty_result(rng: np.random.Generator) -> None:
    kp_prev = make_keypoints(rng, 10)
    kp_next = KeypointCloud(np.full((10, 3), np.nan), kp_prev.desc.copy())

    corrs, info = desc_match(kp_next, kp_prev, descriptor_dim=DIM)

    assert corrs == []
    assert info["num_mutual"] == 0


def test_dimension_mismatch(rng: np.random.Generator) -> None:
    with pytest.raises(DimensionMismatch):
        desc_match(make_keypoints(rng, 5, dim=64), make_keypoints(rng, 5), descriptor_dim=DIM)
    with pytest.raises(DimensionMismatch):
        desc_match(make_keypoints(rng, 5, dim=64), make_keypoints(rng, 5, dim=64), descriptor_dim=DIM)


def test_empty_input_is_insufficient(rng: np.random.Generator) -> None:
    empty = KeypointCloud(np.zeros((0, 3)), np.zeros((0, DIM), np.float32))
    with pytest.raises(InsufficientFrame):
        desc_match(empty, make_keypoints(rng, 5), descriptor_dim=DIM)

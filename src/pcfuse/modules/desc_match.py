# src/pcfuse/modules/desc_match.py
from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np
from loguru import logger

from ..errors import DimensionMismatch, InsufficientFrame
from ..geom.cloud import KeypointCloud

_log = logger.bind(module="pcfuse.desc_match")


@dataclass(frozen=True)
class Correspondence:
    src_idx: int      # index into the "next" keypoint cloud
    dst_idx: int      # index into the "previous" keypoint cloud
    distance: float   # descriptor-space L2 distance


def desc_match(
    kp_next: KeypointCloud,
    kp_prev: KeypointCloud,
    *,
    descriptor_dim: int = 128,
) -> tuple[list[Correspondence], dict]:
    """
    Reciprocal nearest-neighbour matching in descriptor space.

    Args:
        kp_next, kp_prev: keypoint clouds of the current and previous frame
        descriptor_dim: required descriptor length for both clouds

    Returns:
        corrs: mutually-nearest pairs, sorted by src_idx. Indices refer to the
               input clouds, keypoints with non-finite position or descriptor
               never take part.
        info: dict with diagnostic info: num_kp_next, num_kp_prev,
              num_valid_next, num_valid_prev, num_mutual
    """
    if len(kp_next) == 0 or len(kp_prev) == 0:
        raise InsufficientFrame(
            f"desc_match needs keypoints on both sides (next={len(kp_next)}, prev={len(kp_prev)})"
        )
    if kp_next.dim != kp_prev.dim or kp_next.dim != descriptor_dim:
        raise DimensionMismatch(
            f"descriptor length next={kp_next.dim} prev={kp_prev.dim}, expected {descriptor_dim}"
        )

    idx_next = np.flatnonzero(kp_next.valid_mask)
    idx_prev = np.flatnonzero(kp_prev.valid_mask)

    info = {
        "num_kp_next": len(kp_next),
        "num_kp_prev": len(kp_prev),
        "num_valid_next": int(idx_next.size),
        "num_valid_prev": int(idx_prev.size),
        "num_mutual": 0,
    }

    if idx_next.size == 0 or idx_prev.size == 0:
        _log.debug("no valid keypoints to match ({})", info)
        return [], info

    # OpenCV wants contiguous float32 for NORM_L2
    d_next = np.ascontiguousarray(kp_next.desc[idx_next], dtype=np.float32)
    d_prev = np.ascontiguousarray(kp_prev.desc[idx_prev], dtype=np.float32)

    # crossCheck keeps (i, j) only if j is i's nearest and i is j's nearest
    bf = cv2.BFMatcher(cv2.NORM_L2, crossCheck=True)
    matches = bf.match(d_next, d_prev)

    corrs = [
        Correspondence(
            src_idx=int(idx_next[m.queryIdx]),
            dst_idx=int(idx_prev[m.trainIdx]),
            distance=float(m.distance),
        )
        for m in matches
    ]
    corrs.sort(key=lambda c: c.src_idx)

    info["num_mutual"] = len(corrs)
    _log.debug(
        "reciprocal correspondences: {} out of {} keypoints", len(corrs), info["num_kp_next"]
    )
    return corrs, info


def corr_index_arrays(corrs: list[Correspondence]) -> tuple[np.ndarray, np.ndarray]:
    """(src_idx, dst_idx) as int64 arrays."""
    if not corrs:
        return np.zeros((0,), np.int64), np.zeros((0,), np.int64)
    src = np.fromiter((c.src_idx for c in corrs), dtype=np.int64, count=len(corrs))
    dst = np.fromiter((c.dst_idx for c in corrs), dtype=np.int64, count=len(corrs))
    return src, dst

# src/pcfuse/modules/rigid_sac.py
from __future__ import annotations

from dataclasses import dataclass, field
from functools import reduce
from typing import Iterator

import numpy as np
from loguru import logger

from ..errors import DegenerateSample, EmptyCorrespondenceSet, InvalidCorrespondence
from ..geom.cloud import KeypointCloud
from ..geom.se3 import kabsch, transform_points
from ..system.proposal import Evidence, Proposal
from .desc_match import Correspondence, corr_index_arrays

_log = logger.bind(module="pcfuse.rigid_sac")

SAMPLE_SIZE = 3
_MIN_CROSS_NORM = 1e-12  # |(b-a) x (c-a)| at or below this: colinear sample


@dataclass(frozen=True)
class _Hypothesis:
    T: np.ndarray
    inlier_mask: np.ndarray
    num_inliers: int


@dataclass
class RigidEstimate:
    T: np.ndarray                                   # 4x4, maps source (next) points onto target (prev)
    inliers: list[Correspondence] = field(default_factory=list)
    num_correspondences: int = 0
    iterations: int = 0
    num_degenerate: int = 0
    rmse: float | None = None

    @property
    def num_inliers(self) -> int:
        return len(self.inliers)

    @property
    def inlier_ratio(self) -> float:
        return float(self.num_inliers) / float(self.num_correspondences + 1e-9)


def _fit_sample(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    for tri in (src, dst):
        a, b, c = tri
        if float(np.linalg.norm(np.cross(b - a, c - a))) <= _MIN_CROSS_NORM:
            raise DegenerateSample("colinear or repeated points in sample")
    try:
        return kabsch(src, dst)
    except np.linalg.LinAlgError as ex:
        raise DegenerateSample(str(ex)) from ex


def _hypotheses(
    src: np.ndarray,
    dst: np.ndarray,
    rng: np.random.Generator,
    max_iterations: int,
    inlier_threshold: float,
) -> Iterator[_Hypothesis | None]:
    """One candidate per attempt; None for a discarded degenerate sample."""
    n = src.shape[0]
    for _ in range(max_iterations):
        sample = rng.choice(n, size=SAMPLE_SIZE, replace=False)
        try:
            T = _fit_sample(src[sample], dst[sample])
        except DegenerateSample:
            yield None
            continue
        d = np.linalg.norm(transform_points(T, src) - dst, axis=1)
        inl = d < inlier_threshold
        yield _Hypothesis(T, inl, int(inl.sum()))


def _keep_best(acc: tuple[_Hypothesis, int], cand: _Hypothesis | None) -> tuple[_Hypothesis, int]:
    best, num_degenerate = acc
    if cand is None:
        return best, num_degenerate + 1
    # strict: the earliest of equally good candidates wins
    if cand.num_inliers > best.num_inliers:
        return cand, num_degenerate
    return best, num_degenerate


def estimate_rigid_sac(
    kp_src: KeypointCloud,
    kp_dst: KeypointCloud,
    corrs: list[Correspondence],
    *,
    max_iterations: int = 2000,
    inlier_threshold: float = 0.001,
    seed: int | None = None,
    rng: np.random.Generator | None = None,
    refine: bool = False,
) -> RigidEstimate:
    """
    Sample-consensus rigid registration over putative correspondences.

    Args:
        kp_src: keypoints of the frame being registered (the "next" frame)
        kp_dst: keypoints of the reference frame (the "previous" frame)
        corrs: putative correspondences src_idx -> dst_idx
        max_iterations: number of 3-point samples drawn
        inlier_threshold: a correspondence is an inlier if |T*src - dst| < threshold
        seed: seeds a fresh generator when rng is not given
        rng: random source, takes precedence over seed
        refine: re-fit the winning transform on all of its inliers

    Returns:
        RigidEstimate. T maps src coordinates into dst coordinates; identity
        with no inliers if no sample produced any.
    """
    if not corrs:
        raise EmptyCorrespondenceSet("estimate_rigid_sac called with no correspondences")

    src_idx, dst_idx = corr_index_arrays(corrs)
    if src_idx.min() < 0 or src_idx.max() >= len(kp_src):
        raise InvalidCorrespondence(f"src index out of range [0, {len(kp_src)})")
    if dst_idx.min() < 0 or dst_idx.max() >= len(kp_dst):
        raise InvalidCorrespondence(f"dst index out of range [0, {len(kp_dst)})")

    src_all = kp_src.xyz[src_idx]
    dst_all = kp_dst.xyz[dst_idx]
    finite = np.all(np.isfinite(src_all), axis=1) & np.all(np.isfinite(dst_all), axis=1)
    kept = np.flatnonzero(finite)
    src = src_all[kept]
    dst = dst_all[kept]

    if rng is None:
        rng = np.random.default_rng(seed)

    none = _Hypothesis(np.eye(4, dtype=np.float64), np.zeros(kept.size, dtype=bool), 0)
    iterations = max_iterations if kept.size >= SAMPLE_SIZE else 0
    best, num_degenerate = reduce(
        _keep_best,
        _hypotheses(src, dst, rng, iterations, inlier_threshold),
        (none, 0),
    )

    T = best.T
    mask = best.inlier_mask
    if refine and best.num_inliers >= SAMPLE_SIZE:
        try:
            T_ref = kabsch(src[mask], dst[mask])
        except np.linalg.LinAlgError:
            T_ref = None
        if T_ref is not None:
            mask_ref = np.linalg.norm(transform_points(T_ref, src) - dst, axis=1) < inlier_threshold
            if int(mask_ref.sum()) >= best.num_inliers:
                T, mask = T_ref, mask_ref

    inliers = [corrs[int(i)] for i in kept[mask]]
    rmse = None
    if inliers:
        d = np.linalg.norm(transform_points(T, src[mask]) - dst[mask], axis=1)
        rmse = float(np.sqrt(np.mean(d * d)))

    _log.debug(
        "SAC inliers {} / {} ({} iterations, {} degenerate samples)",
        len(inliers), len(corrs), iterations, num_degenerate,
    )
    return RigidEstimate(
        T=T,
        inliers=inliers,
        num_correspondences=len(corrs),
        iterations=iterations,
        num_degenerate=num_degenerate,
        rmse=rmse,
    )


def propose_sac(
    kp_cur: KeypointCloud,
    kp_prev: KeypointCloud,
    corrs: list[Correspondence],
    *,
    max_iterations: int = 2000,
    inlier_threshold: float = 0.001,
    rng: np.random.Generator | None = None,
    refine: bool = False,
    min_inliers: int = SAMPLE_SIZE,
) -> Proposal:
    """
    Relative motion of the current frame from keypoint correspondences.

    Returns:
        Proposal with name "sac" and T_prev_cur (4x4, current -> previous frame).
        valid=False when the estimate has fewer than min_inliers inliers;
        the estimate itself is still attached so a policy may apply it anyway.
    """
    I = np.eye(4, dtype=np.float64)
    ev = Evidence(num_correspondences=len(corrs))

    try:
        est = estimate_rigid_sac(
            kp_cur,
            kp_prev,
            corrs,
            max_iterations=max_iterations,
            inlier_threshold=inlier_threshold,
            rng=rng,
            refine=refine,
        )
    except EmptyCorrespondenceSet:
        return Proposal("sac", I, ev, valid=False, reason="REJECT_SAC_NO_CORRESPONDENCES")

    ev.num_inliers = est.num_inliers
    ev.inlier_ratio = est.inlier_ratio
    ev.rmse = est.rmse

    if est.num_inliers < min_inliers:
        return Proposal(
            "sac",
            est.T,
            ev,
            valid=False,
            reason=f"REJECT_SAC_TOO_FEW_INLIERS:{est.num_inliers}",
            inliers=est.inliers,
        )
    return Proposal("sac", est.T, ev, valid=True, reason="SAC_OK", inliers=est.inliers)

# src/pcfuse/system/runner.py
from __future__ import annotations

import numpy as np
from loguru import logger

from .state import RegistrationState
from .telemetry import Telemetry
from .policy import RegistrationPolicy
from ..config import RegistrationConfig
from ..errors import DimensionMismatch, InsufficientFrame
from ..modules.desc_match import desc_match
from ..modules.rigid_sac import propose_sac
from ..modules.hold import propose_hold
from ..modules.voxel import voxel_downsample

_log = logger.bind(module="pcfuse.runner")


def step(
    state: RegistrationState,
    policy: RegistrationPolicy,
    cfg: RegistrationConfig,
    telemetry: Telemetry,
    rng: np.random.Generator,
) -> None:
    """
    One registration step from state.prev -> state.cur.

    Responsibilities:
      1) reciprocal descriptor matching (cur keypoints against prev keypoints)
      2) generate proposals (hold, sac)
      3) ask policy to choose
      4) commit chosen motion to the global pose and merge the frame
      5) log telemetry

    Assumptions:
      - state.prev, state.cur and state.accumulator are set
      - transforms follow convention: T_a_b maps points from b to a
        - proposals output T_prev_cur
        - state.T_w_prev is the global pose of the previous frame
    """
    if state.prev is None or state.cur is None:
        raise ValueError("runner.step requires state.prev and state.cur to be set.")
    if state.accumulator is None:
        raise ValueError("runner.step requires a merged cloud from the first frame.")

    # --- 1) Matching in each frame's local coordinates
    match_info: dict = {}
    match_error = None
    try:
        corrs, match_info = desc_match(
            state.cur.keypoints,
            state.prev.keypoints,
            descriptor_dim=cfg.match.descriptor_dim,
        )
    except DimensionMismatch as ex:
        _log.warning("frame {}: skipping registration: {}", state.cur.idx, ex)
        corrs = []
        match_error = f"DIMENSION_MISMATCH:{ex}"
    except InsufficientFrame as ex:
        # a keypoint-less previous frame cannot anchor a match
        _log.warning("frame {}: skipping registration: {}", state.cur.idx, ex)
        corrs = []
        match_error = "INSUFFICIENT_KEYPOINTS"

    # --- 2) Proposals
    # hold is always available as a fallback
    proposals = [propose_hold()]
    prop_sac = propose_sac(
        state.cur.keypoints,
        state.prev.keypoints,
        corrs,
        max_iterations=cfg.sac.max_iterations,
        inlier_threshold=cfg.sac.inlier_threshold,
        rng=rng,
        refine=cfg.sac.refine,
        min_inliers=cfg.sac.min_inliers,
    )
    if match_error is not None:
        prop_sac.reason = f"REJECT_SAC_{match_error}"
    proposals.append(prop_sac)

    # --- 3) Decision
    chosen = policy.choose(proposals)
    if chosen.name != "sac":
        _log.warning(
            "frame {}: registration not applied ({}), global pose held",
            state.cur.idx, prop_sac.reason,
        )

    # --- 4) Commit: T_w_cur = T_w_prev @ T_prev_cur
    if chosen.name == "hold":
        T_w_cur = state.T_w_prev.copy()
    else:
        T_w_cur = state.T_w_prev @ chosen.T_prev_cur

    to_merge = state.cur.cloud.transformed(T_w_cur)
    if cfg.session.voxel_size is not None:
        to_merge = voxel_downsample(to_merge, cfg.session.voxel_size)
    state.accumulator.append(to_merge)
    state.merged = state.accumulator.snapshot()

    state.T_w_prev = T_w_cur
    state.traj_T_w_c.append(T_w_cur)

    # --- 5) Telemetry
    telemetry.log_frame(state.cur.idx, {
        "match": {
            "num_kp_next": int(match_info.get("num_kp_next", len(state.cur.keypoints))),
            "num_kp_prev": int(match_info.get("num_kp_prev", len(state.prev.keypoints))),
            "num_mutual": int(match_info.get("num_mutual", len(corrs))),
        },
        "proposals": [
            {
                "name": p.name,
                "valid": bool(p.valid),
                "reason": str(p.reason),
                "num_correspondences": int(p.evidence.num_correspondences),
                "num_inliers": int(p.evidence.num_inliers),
                "inlier_ratio": float(p.evidence.inlier_ratio),
                "rmse": (None if p.evidence.rmse is None else float(p.evidence.rmse)),
            }
            for p in proposals
        ],
        "chosen": {
            "name": chosen.name,
            "reason": chosen.reason,
        },
        "merged_points": len(state.merged),
    })

# src/pcfuse/system/session.py
"""Stateful frame-to-previous-frame registration and fusion."""

from __future__ import annotations

import threading

import numpy as np
from loguru import logger

from .policy import RegistrationPolicy
from .runner import step
from .state import FrameData, RegistrationState
from .telemetry import Telemetry
from ..config import RegistrationConfig
from ..errors import InsufficientFrame
from ..geom.cloud import CloudAccumulator, KeypointCloud, PointCloud


class RegistrationSession:
    """
    Feeds frames one at a time and keeps the merged cloud.

    The first frame defines the global frame and is merged as-is. Every later
    frame is matched against the previous frame in their own local
    coordinates, its relative motion is chained onto the global pose and the
    frame is appended to the merged cloud in global coordinates.

    Calls to ingest are serialized; accessors return snapshots.
    """

    def __init__(self, config: RegistrationConfig | None = None, telemetry: Telemetry | None = None):
        self.config = config or RegistrationConfig()
        self.config.validate()
        self.policy = RegistrationPolicy(self.config.session.on_empty_correspondences)
        self.telemetry = telemetry or Telemetry()
        self._state = RegistrationState()
        self._rng = np.random.default_rng(self.config.sac.seed)
        self._lock = threading.Lock()
        self._log = logger.bind(module="pcfuse.session")

    # ────────────── ingest ──────────────

    def ingest(self, cloud: PointCloud, keypoints: KeypointCloud) -> PointCloud:
        """
        Register one frame and return the merged cloud (read-only snapshot).

        Raises InsufficientFrame if the frame is too small to register; the
        session state is left untouched in that case.
        """
        self._check_frame(cloud, keypoints)

        with self._lock:
            st = self._state
            frame = FrameData(idx=st.frame_count, cloud=cloud.copy(), keypoints=keypoints.copy())

            if not st.tracking:
                st.prev = frame
                st.accumulator = CloudAccumulator(cloud)
                st.merged = st.accumulator.snapshot()
                st.T_w_prev = np.eye(4, dtype=np.float64)
                st.traj_T_w_c.append(st.T_w_prev.copy())
                self.telemetry.log_frame(frame.idx, {
                    "chosen": {"name": "init", "reason": "INIT"},
                    "proposals": [],
                    "merged_points": len(st.merged),
                })
                self._log.info("frame {}: initialized merged cloud with {} points", frame.idx, len(cloud))
            else:
                st.cur = frame
                try:
                    step(st, self.policy, self.config, self.telemetry, self._rng)
                except Exception:
                    st.cur = None
                    raise
                rec = self.telemetry.last() or {}
                self._log.info(
                    "frame {}: {} ({}), merged cloud has {} points",
                    frame.idx,
                    rec.get("chosen", {}).get("name"),
                    rec.get("chosen", {}).get("reason"),
                    len(st.merged),
                )
                # shift window: previous frame stays in its own local coordinates
                st.prev = st.cur
                st.cur = None

            st.frame_count += 1
            st.version += 1
            return st.merged

    def _check_frame(self, cloud: PointCloud, keypoints: KeypointCloud) -> None:
        s = self.config.session
        if len(cloud) < s.min_points:
            raise InsufficientFrame(f"frame has {len(cloud)} points, need at least {s.min_points}")
        if len(keypoints) < s.min_keypoints:
            raise InsufficientFrame(
                f"frame has {len(keypoints)} keypoints, need at least {s.min_keypoints}"
            )

    # ────────────── snapshots ──────────────

    @property
    def merged(self) -> PointCloud | None:
        with self._lock:
            return self._state.merged

    @property
    def global_transform(self) -> np.ndarray:
        with self._lock:
            return self._state.T_w_prev.copy()

    @property
    def frame_count(self) -> int:
        with self._lock:
            return self._state.frame_count

    @property
    def trajectory(self) -> list[np.ndarray]:
        with self._lock:
            return [T.copy() for T in self._state.traj_T_w_c]

    @property
    def version(self) -> int:
        with self._lock:
            return self._state.version

    @property
    def tracking(self) -> bool:
        with self._lock:
            return self._state.tracking

from dataclasses import dataclass, field
import numpy as np

from ..geom.cloud import CloudAccumulator, KeypointCloud, PointCloud

@dataclass
class FrameData:
    idx: int
    cloud: PointCloud          # frame-local coordinates
    keypoints: KeypointCloud   # frame-local coordinates

@dataclass
class RegistrationState:
    prev: FrameData | None = None
    cur: FrameData | None = None

    frame_count: int = 0
    T_w_prev: np.ndarray = field(default_factory=lambda: np.eye(4))  # accumulated global pose
    traj_T_w_c: list[np.ndarray] = field(default_factory=list)
    accumulator: CloudAccumulator | None = None
    merged: PointCloud | None = None  # last read-only snapshot of the accumulator

    version: int = 0  # bumped on every committed ingest

    @property
    def tracking(self) -> bool:
        return self.prev is not None

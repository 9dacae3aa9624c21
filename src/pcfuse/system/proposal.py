from dataclasses import dataclass, field
import numpy as np

@dataclass
class Evidence:
    num_correspondences: int = 0
    num_inliers: int = 0
    inlier_ratio: float = 0.0
    rmse: float | None = None

@dataclass
class Proposal:
    name: str
    T_prev_cur: np.ndarray  # 4x4, maps current-frame points into the previous frame
    evidence: Evidence
    valid: bool = True
    reason: str = ""
    inliers: list = field(default_factory=list)  # Correspondence

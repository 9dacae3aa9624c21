import numpy as np

def Rt_to_T(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    T = np.eye(4)
    T[:3,:3] = R
    T[:3, 3] = t.reshape(3)
    return T

def inv_T(T: np.ndarray) -> np.ndarray:
    R = T[:3,:3]; t = T[:3,3]
    Ti = np.eye(4)
    Ti[:3,:3] = R.T
    Ti[:3, 3] = -R.T @ t
    return Ti

def transform_points(T: np.ndarray, pts: np.ndarray) -> np.ndarray:
    """
    Apply a 4x4 rigid transform to (N,3) points.

    Non-finite rows stay non-finite; finite rows are never touched by them.
    """
    pts = np.asarray(pts, dtype=np.float64).reshape(-1, 3)
    return pts @ T[:3,:3].T + T[:3, 3]

def rot_z(angle_rad: float) -> np.ndarray:
    c, s = np.cos(angle_rad), np.sin(angle_rad)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]], dtype=np.float64)

def is_rigid(T: np.ndarray, tol: float = 1e-6) -> bool:
    T = np.asarray(T, dtype=np.float64)
    if T.shape != (4, 4) or not np.all(np.isfinite(T)):
        return False
    R = T[:3,:3]
    if not np.allclose(R.T @ R, np.eye(3), atol=tol):
        return False
    if abs(np.linalg.det(R) - 1.0) > tol:
        return False
    return bool(np.allclose(T[3], [0.0, 0.0, 0.0, 1.0], atol=tol))

def pose_error(T_est: np.ndarray, T_gt: np.ndarray) -> tuple[float, float]:
    """Returns (rotation angle in rad, translation error norm) between two poses."""
    T_err = inv_T(T_est) @ T_gt
    R = T_err[:3,:3]
    # arccos of the trace alone cannot resolve angles below ~1e-8
    w = np.array([R[2,1] - R[1,2], R[0,2] - R[2,0], R[1,0] - R[0,1]])
    angle = np.arctan2(np.linalg.norm(w) / 2.0, (np.trace(R) - 1.0) / 2.0)
    return float(angle), float(np.linalg.norm(T_est[:3, 3] - T_gt[:3, 3]))

def R_to_quat_xyzw(R: np.ndarray) -> np.ndarray:
    # Returns quaternion [x,y,z,w] from rotation matrix.
    m = R.astype(np.float64)
    trace = float(np.trace(m))
    if trace > 0.0:
        s = np.sqrt(trace + 1.0) * 2.0
        qw = 0.25 * s
        qx = (m[2, 1] - m[1, 2]) / s
        qy = (m[0, 2] - m[2, 0]) / s
        qz = (m[1, 0] - m[0, 1]) / s
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = np.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2]) * 2.0
        qw = (m[2, 1] - m[1, 2]) / s
        qx = 0.25 * s
        qy = (m[0, 1] + m[1, 0]) / s
        qz = (m[0, 2] + m[2, 0]) / s
    elif m[1, 1] > m[2, 2]:
        s = np.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2]) * 2.0
        qw = (m[0, 2] - m[2, 0]) / s
        qx = (m[0, 1] + m[1, 0]) / s
        qy = 0.25 * s
        qz = (m[1, 2] + m[2, 1]) / s
    else:
        s = np.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1]) * 2.0
        qw = (m[1, 0] - m[0, 1]) / s
        qx = (m[0, 2] + m[2, 0]) / s
        qy = (m[1, 2] + m[2, 1]) / s
        qz = 0.25 * s

    q = np.array([qx, qy, qz, qw], dtype=np.float64)
    return q / (np.linalg.norm(q) + 1e-12)

def kabsch(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """
    Least-squares rigid transform mapping src[i] onto dst[i] (both (N,3), N >= 3).

    Raises np.linalg.LinAlgError if the SVD does not converge.
    """
    src = np.asarray(src, dtype=np.float64)
    dst = np.asarray(dst, dtype=np.float64)
    c_src = src.mean(axis=0)
    c_dst = dst.mean(axis=0)

    U, _, Vt = np.linalg.svd((src - c_src).T @ (dst - c_dst))
    R = Vt.T @ U.T
    # reflection -> proper rotation
    if np.linalg.det(R) < 0:
        Vt[-1, :] *= -1
        R = Vt.T @ U.T

    return Rt_to_T(R, c_dst - R @ c_src)

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import numpy as np
import yaml
from loguru import logger

from pcfuse.config import RegistrationConfig, load_config
from pcfuse.dataset.frames import FrameSequence
from pcfuse.errors import InsufficientFrame
from pcfuse.geom.se3 import R_to_quat_xyzw
from pcfuse.system.session import RegistrationSession
from pcfuse.system.telemetry import Telemetry


def _write_traj_tum(traj_T_w_c: list[np.ndarray], ts_list: list[float], out_path: str) -> None:
    assert len(traj_T_w_c) == len(ts_list)
    with open(out_path, "w", encoding="utf-8") as f:
        for T, ts in zip(traj_T_w_c, ts_list):
            t = T[:3, 3]
            q = R_to_quat_xyzw(T[:3, :3])  # x y z w
            f.write(f"{ts:.6f} {t[0]:.6f} {t[1]:.6f} {t[2]:.6f} {q[0]:.6f} {q[1]:.6f} {q[2]:.6f} {q[3]:.6f}\n")


def _plot_traj(traj_T_w_c: list[np.ndarray], out_path: str) -> None:
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    positions = np.array([T[:3, 3] for T in traj_T_w_c])
    x, y, z = positions[:, 0], positions[:, 1], positions[:, 2]

    fig = plt.figure(figsize=(12, 5))
    ax1 = fig.add_subplot(121, projection='3d')
    ax1.set_xlabel('X')
    ax1.set_ylabel('Y')
    ax1.set_zlabel('Z')
    ax1.set_title(f'Camera poses ({len(traj_T_w_c)} frames)')
    ax1.plot(x, y, z, 'b-', linewidth=1.5, alpha=0.7)
    ax1.scatter(x[0], y[0], z[0], c='g', s=100, marker='o', label='Start')
    ax1.scatter(x[-1], y[-1], z[-1], c='r', s=100, marker='o', label='End')
    ax1.legend()

    ax2 = fig.add_subplot(122)
    ax2.set_xlabel('X')
    ax2.set_ylabel('Y')
    ax2.set_title('Top-Down View (X-Y)')
    ax2.plot(x, y, 'b-', linewidth=1.5, alpha=0.7)
    ax2.scatter(x[0], y[0], c='g', s=100, marker='o', label='Start')
    ax2.scatter(x[-1], y[-1], c='r', s=100, marker='o', label='End')
    ax2.grid(True)
    ax2.legend()
    ax2.axis('equal')

    fig.savefig(out_path, dpi=120, bbox_inches="tight")
    plt.close(fig)


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Register and fuse a sequence of keypoint-annotated point clouds.")
    ap.add_argument("--config", type=str, default=None, help="YAML config, defaults built in when omitted")
    ap.add_argument("--frames_dir", type=str, required=True, help="Directory with frames.txt and .npz frames")
    ap.add_argument("--out_dir", type=str, default="outputs")
    ap.add_argument("--start", type=int, default=0)
    ap.add_argument("--step", type=int, default=1)
    ap.add_argument("--max_frames", type=int, default=None)
    ap.add_argument("--plot", action="store_true", help="Save a trajectory figure next to traj.txt")
    ap.add_argument("--log_level", type=str, default="INFO")
    args = ap.parse_args(argv)

    logger.remove()
    logger.add(sys.stderr, level=args.log_level.upper())

    logger.info("Loading config: {}", args.config or "<defaults>")
    cfg = load_config(args.config)

    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Output dir: {}", out_dir)

    seq = FrameSequence(args.frames_dir)
    logger.info("Sequence frames: {}", len(seq))

    telemetry = Telemetry()
    session = RegistrationSession(cfg, telemetry=telemetry)

    ts_list: list[float] = []
    rc = 0
    for idx, ts, cloud, keypoints in seq.iter_frames(start=args.start, step=args.step, max_frames=args.max_frames):
        try:
            merged = session.ingest(cloud, keypoints)
        except InsufficientFrame as ex:
            logger.error("frame {} (ts={:.6f}) rejected: {}", idx, ts, ex)
            rc = 2
            break
        ts_list.append(ts)
        logger.debug("frame {}: merged cloud {} points", idx, len(merged))

    if not ts_list:
        logger.error("no frames fused from {}", args.frames_dir)
        return rc or 1

    # frames fused before a rejected one are still written out
    _write_outputs(out_dir, session, telemetry, cfg, ts_list, plot=args.plot)
    return rc


def _write_outputs(out_dir: Path, session: RegistrationSession, telemetry: Telemetry,
                   cfg: RegistrationConfig, ts_list: list[float], plot: bool = False) -> None:
    traj_path = str(out_dir / "traj.txt")
    metrics_path = str(out_dir / "metrics.json")
    cfg_path = str(out_dir / "config_used.yaml")

    _write_traj_tum(session.trajectory, ts_list, traj_path)

    with open(metrics_path, "w", encoding="utf-8") as f:
        json.dump({"summary": telemetry.summary(), "frames": telemetry.frames}, f, indent=2)

    with open(cfg_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(cfg.to_dict(), f, sort_keys=False)

    logger.info("wrote: {}", traj_path)
    logger.info("wrote: {}", metrics_path)
    logger.info("summary: {}", telemetry.summary())

    if plot:
        plot_path = str(out_dir / "traj.png")
        _plot_traj(session.trajectory, plot_path)
        logger.info("wrote: {}", plot_path)


if __name__ == "__main__":
    sys.exit(main())

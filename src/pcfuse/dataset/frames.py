from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterator, List, Tuple

import numpy as np

from ..geom.cloud import KeypointCloud, PointCloud


@dataclass
class FrameEntry:
    ts: float
    path: str


def _read_frames_txt(frames_txt_path: str) -> List[FrameEntry]:
    entries: List[FrameEntry] = []
    base = os.path.dirname(frames_txt_path)

    with open(frames_txt_path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if (not line) or line.startswith("#"):
                continue
            parts = line.split()
            if len(parts) < 2:
                continue
            entries.append(FrameEntry(ts=float(parts[0]), path=os.path.join(base, parts[1])))
    return entries


def load_frame(path: str) -> Tuple[PointCloud, KeypointCloud]:
    """
    One frame from an .npz file.

    Keys: xyz (N,3), optional rgb (N,3) uint8, kp_xyz (K,3), kp_desc (K,D).
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Missing frame file: {path}")
    with np.load(path) as data:
        missing = [k for k in ("xyz", "kp_xyz", "kp_desc") if k not in data.files]
        if missing:
            raise KeyError(f"{path}: missing arrays {missing}")
        cloud = PointCloud(data["xyz"], data["rgb"] if "rgb" in data.files else None)
        keypoints = KeypointCloud(data["kp_xyz"], data["kp_desc"])
    return cloud, keypoints


def save_frame(path: str, cloud: PointCloud, keypoints: KeypointCloud) -> None:
    arrays = {"xyz": cloud.xyz, "kp_xyz": keypoints.xyz, "kp_desc": keypoints.desc}
    if cloud.rgb is not None:
        arrays["rgb"] = cloud.rgb
    np.savez(path, **arrays)


class FrameSequence:
    """
    A directory of frames listed in frames.txt, one "<timestamp> <file.npz>"
    per line, '#' for comments.
    """

    def __init__(self, seq_dir: str):
        self.seq_dir = seq_dir
        frames_txt = os.path.join(seq_dir, "frames.txt")
        if not os.path.isfile(frames_txt):
            raise FileNotFoundError(f"Missing frames.txt: {frames_txt}")
        self.entries = _read_frames_txt(frames_txt)

    def __len__(self) -> int:
        return len(self.entries)

    def iter_frames(
        self,
        *,
        start: int = 0,
        step: int = 1,
        max_frames: int | None = None,
    ) -> Iterator[Tuple[int, float, PointCloud, KeypointCloud]]:
        end = len(self.entries) if max_frames is None else min(len(self.entries), start + max_frames * step)
        idx = 0
        for i in range(start, end, step):
            e = self.entries[i]
            cloud, keypoints = load_frame(e.path)
            yield idx, e.ts, cloud, keypoints
            idx += 1

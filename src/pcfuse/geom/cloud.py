from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .se3 import transform_points


@dataclass(frozen=True, eq=False)
class PointCloud:
    xyz: np.ndarray               # (N,3) float, NaN/inf rows are unmeasured points
    rgb: np.ndarray | None = None # (N,3) uint8

    def __post_init__(self):
        object.__setattr__(self, "xyz", np.asarray(self.xyz, dtype=np.float64).reshape(-1, 3))
        if self.rgb is not None:
            object.__setattr__(self, "rgb", np.asarray(self.rgb, dtype=np.uint8).reshape(-1, 3))
            if self.rgb.shape[0] != self.xyz.shape[0]:
                raise ValueError(f"rgb has {self.rgb.shape[0]} rows, xyz has {self.xyz.shape[0]}")

    def __len__(self) -> int:
        return int(self.xyz.shape[0])

    @property
    def valid_mask(self) -> np.ndarray:
        return np.all(np.isfinite(self.xyz), axis=1)

    def copy(self) -> PointCloud:
        return PointCloud(self.xyz.copy(), None if self.rgb is None else self.rgb.copy())

    def transformed(self, T: np.ndarray) -> PointCloud:
        return PointCloud(transform_points(T, self.xyz), None if self.rgb is None else self.rgb.copy())

    def frozen(self) -> PointCloud:
        """Same arrays, marked read-only so the cloud can be handed out as a snapshot."""
        self.xyz.flags.writeable = False
        if self.rgb is not None:
            self.rgb.flags.writeable = False
        return self

    @staticmethod
    def empty(with_rgb: bool = True) -> PointCloud:
        return PointCloud(np.zeros((0, 3)), np.zeros((0, 3), np.uint8) if with_rgb else None)


def _grow(buf: np.ndarray, capacity: int, used: int) -> np.ndarray:
    out = np.empty((capacity,) + buf.shape[1:], dtype=buf.dtype)
    out[:used] = buf[:used]
    return out


class CloudAccumulator:
    """
    Append-only merged cloud.

    Rows live in buffers whose capacity doubles when full, so an append copies
    only the new frame apart from the occasional regrowth. snapshot() returns
    read-only views of the filled prefix; appends only write past that prefix,
    so a snapshot never changes after it was taken.
    Colors are kept only while every appended frame has them.
    """

    def __init__(self, first: PointCloud):
        capacity = max(len(first), 1)
        self._xyz = np.empty((capacity, 3), dtype=np.float64)
        self._rgb = None if first.rgb is None else np.empty((capacity, 3), dtype=np.uint8)
        self._n = 0
        self.append(first)

    def __len__(self) -> int:
        return self._n

    @property
    def capacity(self) -> int:
        return int(self._xyz.shape[0])

    def append(self, cloud: PointCloud) -> None:
        end = self._n + len(cloud)
        if cloud.rgb is None:
            self._rgb = None
        if end > self.capacity:
            capacity = max(end, 2 * self.capacity)
            self._xyz = _grow(self._xyz, capacity, self._n)
            if self._rgb is not None:
                self._rgb = _grow(self._rgb, capacity, self._n)
        self._xyz[self._n:end] = cloud.xyz
        if self._rgb is not None:
            self._rgb[self._n:end] = cloud.rgb
        self._n = end

    def snapshot(self) -> PointCloud:
        rgb = None if self._rgb is None else self._rgb[:self._n]
        return PointCloud(self._xyz[:self._n], rgb).frozen()


@dataclass
class KeypointCloud:
    xyz: np.ndarray   # (N,3) keypoint positions in the frame's local coordinates
    desc: np.ndarray  # (N,D) float32 descriptors

    def __post_init__(self):
        self.xyz = np.asarray(self.xyz, dtype=np.float64).reshape(-1, 3)
        self.desc = np.asarray(self.desc, dtype=np.float32)
        if self.desc.ndim != 2:
            raise ValueError(f"desc must be (N,D), got shape {self.desc.shape}")
        if self.desc.shape[0] != self.xyz.shape[0]:
            raise ValueError(f"desc has {self.desc.shape[0]} rows, xyz has {self.xyz.shape[0]}")

    def __len__(self) -> int:
        return int(self.xyz.shape[0])

    @property
    def dim(self) -> int:
        return int(self.desc.shape[1])

    @property
    def valid_mask(self) -> np.ndarray:
        return np.all(np.isfinite(self.xyz), axis=1) & np.all(np.isfinite(self.desc), axis=1)

    def copy(self) -> KeypointCloud:
        return KeypointCloud(self.xyz.copy(), self.desc.copy())

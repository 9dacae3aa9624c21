import numpy as np

from ..geom.cloud import PointCloud

def voxel_downsample(cloud: PointCloud, voxel_size: float) -> PointCloud:
    """
    Keep the first point falling in each voxel, in original order.
    Non-finite points have no voxel and are dropped.
    """
    if voxel_size <= 0:
        raise ValueError(f"voxel_size must be positive, got {voxel_size}")

    valid = np.flatnonzero(cloud.valid_mask)
    if valid.size == 0:
        return PointCloud(np.zeros((0, 3)), None if cloud.rgb is None else np.zeros((0, 3), np.uint8))

    voxel_indices = np.floor(cloud.xyz[valid] / voxel_size).astype(np.int64)
    _, first = np.unique(voxel_indices, axis=0, return_index=True)
    keep = valid[np.sort(first)]

    return PointCloud(cloud.xyz[keep], None if cloud.rgb is None else cloud.rgb[keep])

"""Preprocessing: voxel down-sampling, outlier removal, normal estimation."""

from __future__ import annotations

import logging

import numpy as np
from scipy.spatial import cKDTree

from packages.perception.cloud import PointCloud

logger = logging.getLogger(__name__)

UP = np.array([0.0, 0.0, 1.0])


def voxel_downsample(cloud: PointCloud, voxel_size: float = 50.0) -> PointCloud:
    """Voxel-grid down-sampling.

    Each occupied voxel keeps the centroid of its points (and their mean
    colour).  Voxels are emitted in sorted key order, so the output is
    deterministic and running the same size twice is a no-op.
    """
    if voxel_size <= 0:
        raise ValueError("voxel_size must be positive")
    if len(cloud) == 0:
        return cloud.derive("downsampled", cloud.positions)

    # Quantise to voxel grid; np.unique sorts the keys lexicographically
    keys = np.floor(cloud.positions / voxel_size).astype(np.int64)
    _, inverse, counts = np.unique(keys, axis=0, return_inverse=True, return_counts=True)
    inverse = inverse.reshape(-1)

    sums = np.zeros((len(counts), 3), dtype=np.float64)
    np.add.at(sums, inverse, cloud.positions)
    centroids = sums / counts[:, None]

    colors = None
    if cloud.colors is not None:
        csum = np.zeros((len(counts), 3), dtype=np.float64)
        np.add.at(csum, inverse, cloud.colors)
        colors = np.rint(csum / counts[:, None])

    out = cloud.derive("downsampled", centroids, colors=colors)
    logger.info(
        "Down-sampled %s: %d → %d points (voxel=%.1f mm)",
        cloud.id, len(cloud), len(out), voxel_size,
    )
    return out


def mean_neighbour_distances(points: np.ndarray, k: int) -> np.ndarray:
    """Mean distance from each point to its *k* nearest neighbours (self excluded)."""
    tree = cKDTree(points)
    dists, _ = tree.query(points, k=k + 1)
    # column 0 is the point itself (distance 0)
    return dists[:, 1:].mean(axis=1)


def remove_outliers(cloud: PointCloud, k: int = 20, std_ratio: float = 2.0) -> PointCloud:
    """Statistical outlier removal.

    Drops every point whose mean *k*-NN distance is at least
    ``mean + std_ratio * std`` of that statistic over the whole cloud.
    One pass only: the statistic is computed on the unfiltered cloud.
    """
    if k < 1:
        raise ValueError("k must be at least 1")
    n = len(cloud)
    if n < k or n < 2:
        return cloud

    avg = mean_neighbour_distances(cloud.positions, min(k, n - 1))
    mean = float(avg.mean())
    std = float(avg.std())  # population std (ddof=0)
    keep = avg < mean + std_ratio * std

    out = cloud.subset(keep, "filtered")
    logger.info(
        "Outlier filter on %s: removed %d of %d points (k=%d, ratio=%.1f)",
        cloud.id, n - len(out), n, k, std_ratio,
    )
    return out


def _patch_normal(neighbours: np.ndarray) -> np.ndarray:
    cov = np.cov(neighbours, rowvar=False, bias=True)
    _, eigvecs = np.linalg.eigh(cov)
    normal = eigvecs[:, 0]  # smallest eigenvalue → normal direction
    if abs(normal[2]) >= 0.8:
        return UP.copy()
    horizontal = np.array([normal[0], normal[1], 0.0])
    norm = np.linalg.norm(horizontal)
    if norm < 1e-9:
        return UP.copy()
    return horizontal / norm


def estimate_normals(cloud: PointCloud, radius: float = 100.0) -> PointCloud:
    """Estimate per-point normals from neighbours strictly within *radius*.

    Horizontal patches get exactly ``(0, 0, 1)``; vertical patches get the
    PCA normal flattened into the XY plane.  Points with fewer than three
    neighbours default to ``(0, 0, 1)``.
    """
    n = len(cloud)
    normals = np.tile(UP, (n, 1))
    if n == 0:
        return cloud.with_normals(normals)

    points = cloud.positions
    tree = cKDTree(points)
    for i, idx in enumerate(tree.query_ball_point(points, radius)):
        idx = np.asarray(idx, dtype=np.int64)
        idx = idx[idx != i]
        if len(idx) == 0:
            continue
        d = np.linalg.norm(points[idx] - points[i], axis=1)
        idx = idx[d < radius]
        if len(idx) < 3:
            continue
        normals[i] = _patch_normal(points[idx])

    vertical = int((normals[:, 2] == 0).sum())
    logger.info(
        "Estimated normals for %s: %d horizontal, %d vertical (radius=%.0f mm)",
        cloud.id, n - vertical, vertical, radius,
    )
    return cloud.with_normals(normals)

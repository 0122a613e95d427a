"""RANSAC single-plane fitting."""

from __future__ import annotations

from collections.abc import Callable

import numpy as np

from packages.core.types import PlaneEquation

DEGENERATE_CROSS = 1e-4


def plane_from_points(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray) -> PlaneEquation | None:
    """Plane through three points, or *None* if they are (nearly) collinear."""
    normal = np.cross(p1 - p0, p2 - p0)
    norm = np.linalg.norm(normal)
    if norm < DEGENERATE_CROSS:
        return None
    normal = normal / norm
    d = -float(np.dot(normal, p0))
    return PlaneEquation(a=float(normal[0]), b=float(normal[1]), c=float(normal[2]), d=d)


def fit_plane_ransac(
    points: np.ndarray,
    *,
    rng: np.random.Generator,
    candidates: np.ndarray | None = None,
    max_iterations: int = 100,
    distance_threshold: float = 50.0,
    min_inliers: int = 50,
    accept: Callable[[PlaneEquation], bool] | None = None,
) -> tuple[PlaneEquation, np.ndarray] | None:
    """Fit a single plane to the *candidates* subset of *points* using RANSAC.

    *candidates* holds indices into *points* (all points if omitted).  Each
    iteration samples three distinct candidates, skips degenerate samples
    and planes rejected by *accept*, and counts candidates closer than
    *distance_threshold*.  Only a strictly larger count replaces the best.

    Returns ``(plane, inlier_indices)`` with indices into *points*, or
    *None* if no plane reaches *min_inliers*.
    """
    if candidates is None:
        candidates = np.arange(len(points))
    n = len(candidates)
    if n < 3:
        return None

    pool = points[candidates]
    best_plane: PlaneEquation | None = None
    best_mask: np.ndarray | None = None
    best_count = 0

    for _ in range(max_iterations):
        idx = rng.choice(n, size=3, replace=False)
        plane = plane_from_points(*pool[idx])
        if plane is None:
            continue
        if accept is not None and not accept(plane):
            continue

        inlier_mask = plane.distance(pool) < distance_threshold
        count = int(inlier_mask.sum())

        if count > best_count:
            best_count = count
            best_mask = inlier_mask
            best_plane = plane

    if best_plane is None or best_count < min_inliers:
        return None

    return best_plane, candidates[best_mask]

"""Ground and wall detection with RANSAC.

The ground is the best-supported mostly-horizontal plane.  Walls are then
peeled off the remaining points one round at a time; a round's inliers
leave the pool whether or not the wall clears the area test, which bounds
the loop at ten rounds.
"""

from __future__ import annotations

import logging

import numpy as np

from packages.core.types import CloudIndices, DetectedSurface, PlaneEquation, SurfaceKind
from packages.perception.cloud import PointCloud, compute_bounds
from packages.perception.ransac import fit_plane_ransac

logger = logging.getLogger(__name__)

GROUND_MIN_POINTS = 100
GROUND_ITERATIONS = 100
GROUND_MIN_INLIERS = 50
GROUND_MIN_NZ = 0.8

WALL_ROUNDS = 10
WALL_ITERATIONS = 50
WALL_MIN_INLIERS = 30
WALL_MAX_NZ = 0.3
WALL_MIN_POOL = 100

DISTANCE_THRESHOLD = 50.0  # mm


def _is_horizontal(plane: PlaneEquation) -> bool:
    return abs(plane.c) >= GROUND_MIN_NZ


def _is_vertical(plane: PlaneEquation) -> bool:
    return abs(plane.c) <= WALL_MAX_NZ


def _upward(plane: PlaneEquation) -> PlaneEquation:
    if plane.c >= 0:
        return plane
    return PlaneEquation(a=-plane.a, b=-plane.b, c=-plane.c, d=-plane.d)


def detect_ground_plane(
    cloud: PointCloud,
    *,
    rng: np.random.Generator | None = None,
) -> DetectedSurface | None:
    """Find the floor plane, or *None* if the cloud is too sparse.

    Confidence is the inlier fraction of the whole cloud; bounds and area
    come from the inliers only.
    """
    n = len(cloud)
    if n < GROUND_MIN_POINTS:
        logger.debug("Ground detection skipped for %s: %d points", cloud.id, n)
        return None

    rng = rng or np.random.default_rng()
    result = fit_plane_ransac(
        cloud.positions,
        rng=rng,
        max_iterations=GROUND_ITERATIONS,
        distance_threshold=DISTANCE_THRESHOLD,
        min_inliers=GROUND_MIN_INLIERS,
        accept=_is_horizontal,
    )
    if result is None:
        logger.info("No ground plane found in %s", cloud.id)
        return None

    plane, inliers = result
    plane = _upward(plane)
    bounds = compute_bounds(cloud.positions[inliers])
    size = bounds.size

    logger.info(
        "Ground plane in %s: %d / %d inliers (z≈%.0f mm)",
        cloud.id, len(inliers), n, bounds.center.z,
    )
    return DetectedSurface(
        id=f"{cloud.id}/surface-ground",
        kind=SurfaceKind.FLOOR,
        plane=plane,
        bounds=bounds,
        area=size.x * size.y,
        point_refs=[CloudIndices(cloud_id=cloud.id, indices=tuple(int(i) for i in inliers))],
        confidence=len(inliers) / n,
    )


def detect_walls(
    cloud: PointCloud,
    *,
    min_area: float = 500_000.0,
    ground: DetectedSurface | None = None,
    rng: np.random.Generator | None = None,
) -> list[DetectedSurface]:
    """Extract up to ten vertical planes from the non-ground points.

    Pass an already detected *ground* to reuse it; otherwise the ground is
    detected here first.  Walls whose bounding-box area is below *min_area*
    are dropped but their inliers are still consumed.
    """
    rng = rng or np.random.default_rng()
    n = len(cloud)
    if ground is None:
        ground = detect_ground_plane(cloud, rng=rng)

    pool = np.arange(n)
    if ground is not None:
        pool = np.setdiff1d(pool, np.asarray(ground.indices_for(cloud.id), dtype=np.int64))

    walls: list[DetectedSurface] = []
    for round_no in range(WALL_ROUNDS):
        if len(pool) < WALL_MIN_POOL:
            break

        result = fit_plane_ransac(
            cloud.positions,
            rng=rng,
            candidates=pool,
            max_iterations=WALL_ITERATIONS,
            distance_threshold=DISTANCE_THRESHOLD,
            min_inliers=WALL_MIN_INLIERS,
            accept=_is_vertical,
        )
        if result is None:
            break

        plane, inliers = result
        bounds = compute_bounds(cloud.positions[inliers])
        size = bounds.size
        area = size.x * size.z + size.y * size.z

        if area >= min_area:
            walls.append(
                DetectedSurface(
                    id=f"{cloud.id}/surface-wall-{round_no}",
                    kind=SurfaceKind.WALL,
                    plane=plane,
                    bounds=bounds,
                    area=area,
                    point_refs=[CloudIndices(cloud_id=cloud.id, indices=tuple(int(i) for i in inliers))],
                    confidence=len(inliers) / n,
                )
            )
            logger.info(
                "  Wall %d in %s: %d inliers, area %.2f m²",
                round_no, cloud.id, len(inliers), area / 1e6,
            )
        else:
            logger.debug(
                "  Round %d in %s: %d inliers rejected (area %.0f mm² < %.0f)",
                round_no, cloud.id, len(inliers), area, min_area,
            )

        pool = np.setdiff1d(pool, inliers, assume_unique=True)

    logger.info("Detected %d wall(s) in %s", len(walls), cloud.id)
    return walls

"""Obstacle clustering and shape classification."""

from __future__ import annotations

import logging

import numpy as np
from scipy.spatial import cKDTree

from packages.core.types import (
    CloudIndices,
    DetectedObstacle,
    DetectedSurface,
    Dimensions,
    ObstacleKind,
    Vec3,
)
from packages.perception.cloud import PointCloud, compute_bounds

logger = logging.getLogger(__name__)

MIN_CANDIDATES = 10
CLUSTER_RADIUS = 200.0  # mm
MIN_CLUSTER_SIZE = 5
OBSTACLE_CONFIDENCE = 0.6


def cluster_points(
    points: np.ndarray,
    cluster_eps: float = CLUSTER_RADIUS,
    min_cluster_size: int = MIN_CLUSTER_SIZE,
) -> list[np.ndarray]:
    """Split *points* into single-link clusters.

    Starting from an unvisited point, flood-fill every neighbour closer
    than *cluster_eps* to any point already in the cluster.  Returns one
    array of row indices per cluster, smallest seed first.
    """
    n = len(points)
    if n == 0:
        return []

    tree = cKDTree(points)
    visited = np.zeros(n, dtype=bool)
    clusters: list[np.ndarray] = []

    for i in range(n):
        if visited[i]:
            continue

        queue = [i]
        visited[i] = True
        members = []

        while queue:
            idx = queue.pop()
            members.append(idx)
            nbs = np.asarray(tree.query_ball_point(points[idx], cluster_eps), dtype=np.int64)
            # query_ball_point is inclusive; a link needs d < eps
            nbs = nbs[np.linalg.norm(points[nbs] - points[idx], axis=1) < cluster_eps]
            for nb in nbs:
                if not visited[nb]:
                    visited[nb] = True
                    queue.append(nb)

        if len(members) >= min_cluster_size:
            clusters.append(np.sort(np.asarray(members, dtype=np.int64)))

    logger.debug(
        "Clustered %d points into %d cluster(s) (eps=%.0f, min_size=%d)",
        n, len(clusters), cluster_eps, min_cluster_size,
    )
    return clusters


def classify_obstacle(width: float, depth: float, height: float) -> ObstacleKind:
    """Classify a cluster by its bounding-box dimensions (first match wins).

    Pipes and columns must be taller than their footprint, so a cube-like
    600 x 600 x 600 mm cluster falls through to equipment.  This moves every
    squat square-footprint cluster (``|width - depth| < 100``,
    ``500 < height <= max(width, depth)``) out of the column row: it becomes
    a duct when ``height < 800`` and the footprint exceeds twice the height
    (e.g. 1700 x 1700 x 700), otherwise equipment (e.g. 900 x 900 x 700).
    Pipes are unaffected, since a footprint under 300 mm is always shorter
    than a height over 500 mm.
    """
    # round cross-section, tall
    if abs(width - depth) < 100 and height > 500 and height > max(width, depth):
        if width < 300:
            return ObstacleKind.PIPE
        return ObstacleKind.COLUMN

    # long and thin
    if 200 < height < 800 and (width > 2 * height or depth > 2 * height):
        if min(width, depth) < 200:
            return ObstacleKind.BEAM
        return ObstacleKind.DUCT

    if width > 500 and depth > 500 and height > 500:
        return ObstacleKind.EQUIPMENT

    return ObstacleKind.UNKNOWN


def detect_obstacles(
    cloud: PointCloud,
    surfaces: list[DetectedSurface],
) -> list[DetectedObstacle]:
    """Cluster the points no surface claims and classify each cluster.

    Only surface indices recorded against this exact cloud are honoured.
    """
    claimed = np.zeros(len(cloud), dtype=bool)
    for surface in surfaces:
        idx = surface.indices_for(cloud.id)
        if idx:
            claimed[np.asarray(idx, dtype=np.int64)] = True

    remaining = np.flatnonzero(~claimed)
    if len(remaining) < MIN_CANDIDATES:
        logger.info("Obstacle detection skipped for %s: %d free points", cloud.id, len(remaining))
        return []

    candidates = cloud.positions[remaining]
    obstacles: list[DetectedObstacle] = []
    for members in cluster_points(candidates):
        pts = candidates[members]
        bounds = compute_bounds(pts)
        size = bounds.size
        kind = classify_obstacle(size.x, size.y, size.z)
        obstacles.append(
            DetectedObstacle(
                id=f"{cloud.id}/obstacle-{len(obstacles)}",
                kind=kind,
                bounds=bounds,
                centroid=Vec3.from_array(pts.mean(axis=0)),
                dimensions=Dimensions(width=size.x, depth=size.y, height=size.z),
                point_refs=[
                    CloudIndices(cloud_id=cloud.id, indices=tuple(int(i) for i in remaining[members]))
                ],
                confidence=OBSTACLE_CONFIDENCE,
            )
        )

    logger.info(
        "Detected %d obstacle(s) in %s from %d free points: %s",
        len(obstacles), cloud.id, len(remaining),
        ", ".join(o.kind.value for o in obstacles) or "none",
    )
    return obstacles

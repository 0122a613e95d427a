"""Per-cloud pipeline: condition a cloud, then detect surfaces, obstacles, edges."""

from __future__ import annotations

import logging
from typing import NamedTuple

import numpy as np

from packages.core.config import ProcessingConfig, SurfaceReconstruction
from packages.core.types import BBox, DetectedEdge, DetectedObstacle, DetectedSurface
from packages.perception.cloud import PointCloud, load_from_array
from packages.perception.edges import detect_edges
from packages.perception.obstacles import detect_obstacles
from packages.perception.preprocess import estimate_normals, remove_outliers, voxel_downsample
from packages.perception.surfaces import detect_ground_plane, detect_walls

logger = logging.getLogger(__name__)


class CloudProcessingResult(NamedTuple):
    processed_cloud: PointCloud
    surfaces: list[DetectedSurface]
    obstacles: list[DetectedObstacle]
    edges: list[DetectedEdge]


def condition_cloud(cloud: PointCloud, config: ProcessingConfig) -> PointCloud:
    """Down-sample, filter and attach normals as configured."""
    processed = cloud
    if config.voxel_size:
        processed = voxel_downsample(processed, config.voxel_size)
    if config.remove_outliers:
        processed = remove_outliers(processed, k=config.outlier_k, std_ratio=config.outlier_std_ratio)
    if config.estimate_normals:
        processed = estimate_normals(processed, radius=config.normal_radius)
    return processed


def process_cloud(
    cloud: PointCloud,
    config: ProcessingConfig | None = None,
    *,
    rng: np.random.Generator | None = None,
) -> CloudProcessingResult:
    """Run conditioning and detection on one cloud.

    1. Down-sample with a voxel grid.
    2. Remove statistical outliers.
    3. Estimate normals.
    4. Detect the ground plane and walls via RANSAC.
    5. Cluster what is left into obstacles.
    6. Approximate edges between surfaces.

    All detections index the returned ``processed_cloud``.
    """
    config = config or ProcessingConfig()
    rng = rng or np.random.default_rng(config.seed)

    logger.info("Processing cloud %s (%d points) …", cloud.id, len(cloud))
    processed = condition_cloud(cloud, config)

    surfaces: list[DetectedSurface] = []
    ground = None
    if config.detect_ground:
        ground = detect_ground_plane(processed, rng=rng)
        if ground is not None:
            surfaces.append(ground)

    surfaces.extend(
        detect_walls(processed, min_area=config.min_wall_area, ground=ground, rng=rng)
    )

    if config.surface_reconstruction is not SurfaceReconstruction.NONE:
        logger.warning(
            "Surface reconstruction '%s' is not implemented; skipping",
            config.surface_reconstruction.value,
        )

    obstacles = detect_obstacles(processed, surfaces)
    edges = detect_edges(surfaces, id_prefix=f"{processed.id}/")

    logger.info(
        "Cloud %s: %d surface(s), %d obstacle(s), %d edge(s)",
        cloud.id, len(surfaces), len(obstacles), len(edges),
    )
    return CloudProcessingResult(processed, surfaces, obstacles, edges)


def summarize_cloud(
    points,
    config: ProcessingConfig | None = None,
) -> dict:
    """Quick counts for a raw point list: surfaces, obstacles, edges, bounds."""
    result = process_cloud(load_from_array(points), config)
    bounds: BBox = result.processed_cloud.bounds
    return {
        "surfaces": len(result.surfaces),
        "obstacles": len(result.obstacles),
        "edges": len(result.edges),
        "bounds": bounds.model_dump(),
    }

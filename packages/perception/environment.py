"""Fuse per-cloud detections and image openings into an EnvironmentModel.

The modeler runs the per-cloud pipeline on every input cloud, projects
image openings, deduplicates across sources and derives attachment points
and clearance zones from what is left.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Sequence

import numpy as np

from packages.core.config import ModelerConfig, ProcessingConfig
from packages.core.types import (
    AttachmentKind,
    AttachmentMethod,
    AttachmentPoint,
    BBox,
    Clearance,
    ClearanceKind,
    ClearancePriority,
    ClearanceZone,
    DetectedEdge,
    DetectedObstacle,
    DetectedOpening,
    DetectedSurface,
    EnvironmentModel,
    EnvironmentSource,
    ImageInput,
    IssueSeverity,
    ModelMetadata,
    ObstacleKind,
    OpeningKind,
    ScanIssue,
    ScanQuality,
    ScanStatistics,
    ScanToCADResult,
    SourceKind,
    SurfaceKind,
    Vec3,
)
from packages.perception.cloud import PointCloud
from packages.perception.fuse import merge_obstacles, merge_surfaces
from packages.perception.images import ImageAnalyzer, SimulatedImageAnalyzer, project_openings
from packages.perception.pipeline import process_cloud

logger = logging.getLogger(__name__)

DEFAULT_BOUNDS = BBox(
    min=Vec3(x=0.0, y=0.0, z=0.0),
    max=Vec3(x=10_000.0, y=10_000.0, z=5_000.0),
)

# ── attachment grids ─────────────────────────────────────────────────
FLOOR_GRID_STEP = 1000.0
FLOOR_LOAD_CAPACITY = 50_000.0  # N
FLOOR_CONFIDENCE_SCALE = 0.9

WALL_GRID_STEP_X = 1000.0
WALL_GRID_STEP_Z = 500.0
WALL_BASE_OFFSET = 500.0
WALL_LOAD_CAPACITY = 10_000.0  # N
WALL_CONFIDENCE_SCALE = 0.8

# ── clearance zones ──────────────────────────────────────────────────
EGRESS_SIDE_MARGIN = 500.0
EGRESS_DEPTH = 1000.0  # each side of the opening plane
EQUIPMENT_MARGIN = 750.0
EQUIPMENT_HEADROOM = 500.0


def environment_bounds(
    surfaces: Sequence[DetectedSurface],
    obstacles: Sequence[DetectedObstacle],
) -> BBox:
    """Union of all detection bounds, or the default room if there are none."""
    boxes = [s.bounds for s in surfaces] + [o.bounds for o in obstacles]
    if not boxes:
        return DEFAULT_BOUNDS
    out = boxes[0]
    for box in boxes[1:]:
        out = out.union(box)
    return out


def _grid(start: float, stop: float, step: float) -> np.ndarray:
    if start >= stop:
        return np.empty(0)
    return np.arange(start, stop, step)


def identify_attachment_points(surfaces: Sequence[DetectedSurface]) -> list[AttachmentPoint]:
    """Floor and wall mounting grids.

    Floors get a 1 m grid offset by half a step from the minimum corner;
    walls get a 1 m × 0.5 m grid starting 0.5 m above the wall base.
    """
    points: list[AttachmentPoint] = []

    for surface in surfaces:
        b = surface.bounds
        if surface.kind is SurfaceKind.FLOOR:
            for x in _grid(b.min.x + FLOOR_GRID_STEP / 2, b.max.x, FLOOR_GRID_STEP):
                for y in _grid(b.min.y + FLOOR_GRID_STEP / 2, b.max.y, FLOOR_GRID_STEP):
                    points.append(
                        AttachmentPoint(
                            id=f"attachment-{len(points)}",
                            position=Vec3(x=float(x), y=float(y), z=b.min.z),
                            normal=Vec3(x=0.0, y=0.0, z=1.0),
                            surface_id=surface.id,
                            kind=AttachmentKind.FLOOR,
                            load_capacity=FLOOR_LOAD_CAPACITY,
                            methods=[AttachmentMethod.ANCHOR_BOLT, AttachmentMethod.EMBED],
                            clearance=Clearance(front=500.0, sides=300.0),
                            confidence=surface.confidence * FLOOR_CONFIDENCE_SCALE,
                        )
                    )
        elif surface.kind is SurfaceKind.WALL:
            for z in _grid(b.min.z + WALL_BASE_OFFSET, b.max.z, WALL_GRID_STEP_Z):
                for x in _grid(b.min.x + WALL_GRID_STEP_X / 2, b.max.x, WALL_GRID_STEP_X):
                    points.append(
                        AttachmentPoint(
                            id=f"attachment-{len(points)}",
                            position=Vec3(x=float(x), y=b.min.y, z=float(z)),
                            normal=surface.normal,
                            surface_id=surface.id,
                            kind=AttachmentKind.WALL,
                            load_capacity=WALL_LOAD_CAPACITY,
                            methods=[AttachmentMethod.ANCHOR_BOLT, AttachmentMethod.WELD],
                            clearance=Clearance(front=300.0, sides=200.0),
                            confidence=surface.confidence * WALL_CONFIDENCE_SCALE,
                        )
                    )

    return points


def identify_clearance_zones(
    obstacles: Sequence[DetectedObstacle],
    openings: Sequence[DetectedOpening],
) -> list[ClearanceZone]:
    """Egress zones in front of doors and access zones around equipment."""
    zones: list[ClearanceZone] = []

    for opening in openings:
        if opening.kind is not OpeningKind.DOOR:
            continue
        p = opening.position
        half = opening.dimensions.width / 2 + EGRESS_SIDE_MARGIN
        zones.append(
            ClearanceZone(
                id=f"zone-{len(zones)}",
                kind=ClearanceKind.EGRESS,
                bounds=BBox(
                    min=Vec3(x=p.x - half, y=p.y - EGRESS_DEPTH, z=p.z),
                    max=Vec3(x=p.x + half, y=p.y + EGRESS_DEPTH, z=p.z + opening.dimensions.height),
                ),
                priority=ClearancePriority.REQUIRED,
                description="Door swing and egress clearance",
            )
        )

    for obstacle in obstacles:
        if obstacle.kind is not ObstacleKind.EQUIPMENT:
            continue
        b = obstacle.bounds
        zones.append(
            ClearanceZone(
                id=f"zone-{len(zones)}",
                kind=ClearanceKind.EQUIPMENT,
                bounds=BBox(
                    min=Vec3(x=b.min.x - EQUIPMENT_MARGIN, y=b.min.y - EQUIPMENT_MARGIN, z=b.min.z),
                    max=Vec3(
                        x=b.max.x + EQUIPMENT_MARGIN,
                        y=b.max.y + EQUIPMENT_MARGIN,
                        z=b.max.z + EQUIPMENT_HEADROOM,
                    ),
                ),
                priority=ClearancePriority.PREFERRED,
                description="Equipment access and maintenance zone",
            )
        )

    return zones


def average_confidence(
    surfaces: Sequence[DetectedSurface],
    obstacles: Sequence[DetectedObstacle],
) -> float:
    values = [s.confidence for s in surfaces] + [o.confidence for o in obstacles]
    if not values:
        return 0.0
    return sum(values) / len(values)


class EnvironmentModeler:
    """Builds :class:`EnvironmentModel` instances from clouds and images.

    The modeler owns one seeded generator, so two modelers built with the
    same seed produce identical models for identical inputs.
    """

    def __init__(
        self,
        config: ModelerConfig | ProcessingConfig | None = None,
        *,
        image_analyzer: ImageAnalyzer | None = None,
        rng: np.random.Generator | None = None,
    ):
        if isinstance(config, ProcessingConfig):
            config = ModelerConfig(processing=config)
        self.config = config or ModelerConfig()
        self.image_analyzer = image_analyzer or SimulatedImageAnalyzer()
        self.rng = rng or np.random.default_rng(self.config.processing.seed)

    def build_model(
        self,
        clouds: Sequence[PointCloud] = (),
        images: Sequence[ImageInput] = (),
    ) -> EnvironmentModel:
        start = time.perf_counter()
        n_sources = len(clouds) + len(images)

        surfaces: list[DetectedSurface] = []
        obstacles: list[DetectedObstacle] = []
        edges: list[DetectedEdge] = []
        openings: list[DetectedOpening] = []
        sources: list[EnvironmentSource] = []

        for cloud in clouds:
            result = process_cloud(cloud, self.config.processing, rng=self.rng)
            surfaces.extend(result.surfaces)
            obstacles.extend(result.obstacles)
            edges.extend(result.edges)
            sources.append(
                EnvironmentSource(kind=SourceKind.POINT_CLOUD, id=cloud.id, contribution=1 / n_sources)
            )

        for image in images:
            analysis = self.image_analyzer.analyze(image)
            openings.extend(project_openings(image, analysis))
            sources.append(
                EnvironmentSource(kind=SourceKind.IMAGE, id=image.id, contribution=0.5 / n_sources)
            )

        surfaces = merge_surfaces(surfaces)
        obstacles = merge_obstacles(obstacles)

        model = EnvironmentModel(
            id=f"env-{uuid.uuid4().hex[:8]}",
            bounds=environment_bounds(surfaces, obstacles),
            surfaces=surfaces,
            obstacles=obstacles,
            openings=openings,
            edges=edges,
            attachment_points=identify_attachment_points(surfaces),
            clearance_zones=identify_clearance_zones(obstacles, openings),
            sources=sources,
            metadata=ModelMetadata(
                processed_points=sum(len(c) for c in clouds),
                processed_images=len(images),
                processing_time_ms=(time.perf_counter() - start) * 1000,
                confidence=average_confidence(surfaces, obstacles),
            ),
        )
        logger.info(
            "Built %s: %d surfaces, %d obstacles, %d openings, %d attachment points, %d zones",
            model.id, len(model.surfaces), len(model.obstacles), len(model.openings),
            len(model.attachment_points), len(model.clearance_zones),
        )
        return model

    def scan_to_cad(
        self,
        clouds: Sequence[PointCloud] = (),
        images: Sequence[ImageInput] = (),
    ) -> ScanToCADResult:
        """Build the model and summarise how much of the scan it explains."""
        start = time.perf_counter()
        env = self.build_model(clouds, images)
        input_points = sum(len(c) for c in clouds)

        statistics = ScanStatistics(
            input_points=input_points,
            input_images=len(images),
            surfaces_detected=len(env.surfaces),
            obstacles_detected=len(env.obstacles),
            attachment_points_found=len(env.attachment_points),
            processing_time_ms=(time.perf_counter() - start) * 1000,
            memory_used_mb=round(input_points * 0.0001),
        )
        quality = ScanQuality(
            coverage=min(100.0, len(env.surfaces) * 20.0),
            average_confidence=env.metadata.confidence,
            completeness=75.0 if env.attachment_points else 50.0,
            noise_level=5.0,
        )

        issues: list[ScanIssue] = []
        if input_points < 1000:
            issues.append(
                ScanIssue(
                    severity=IssueSeverity.WARNING,
                    code="LOW_POINT_DENSITY",
                    message="Low point cloud density may affect accuracy",
                )
            )
        if not env.surfaces:
            issues.append(
                ScanIssue(
                    severity=IssueSeverity.ERROR,
                    code="NO_SURFACES",
                    message="No surfaces could be detected",
                )
            )

        return ScanToCADResult(environment=env, statistics=statistics, quality=quality, issues=issues)


def build_model(
    clouds: Sequence[PointCloud] = (),
    images: Sequence[ImageInput] = (),
    *,
    config: ModelerConfig | ProcessingConfig | None = None,
    image_analyzer: ImageAnalyzer | None = None,
) -> EnvironmentModel:
    """One-shot convenience around :class:`EnvironmentModeler`."""
    return EnvironmentModeler(config, image_analyzer=image_analyzer).build_model(clouds, images)

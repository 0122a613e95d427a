"""End-to-end and unit tests for environment-model fusion."""

from __future__ import annotations

import numpy as np
import pytest

from packages.core.config import ModelerConfig, ProcessingConfig
from packages.core.types import (
    AttachmentKind,
    BBox,
    ClearanceKind,
    ClearancePriority,
    DetectedObstacle,
    DetectedOpening,
    DetectedSurface,
    Dimensions,
    EnvironmentModel,
    ImageAnalysisResult,
    ImageInput,
    ImageRegion,
    ObstacleKind,
    OpeningKind,
    OpeningSize,
    PixelBox,
    PlaneEquation,
    SourceKind,
    SurfaceKind,
    Vec3,
)
from packages.perception.cloud import load_from_array
from packages.perception.environment import (
    DEFAULT_BOUNDS,
    EnvironmentModeler,
    build_model,
    environment_bounds,
    identify_attachment_points,
    identify_clearance_zones,
)
from packages.perception.images import ImageAnalyzer, SimulatedImageAnalyzer, project_openings
from packages.perception.pipeline import process_cloud, summarize_cloud


def _box(lo, hi) -> BBox:
    return BBox(min=Vec3(x=lo[0], y=lo[1], z=lo[2]), max=Vec3(x=hi[0], y=hi[1], z=hi[2]))


def _surface(sid, kind, lo, hi, normal=(0, 0, 1), confidence=0.5) -> DetectedSurface:
    return DetectedSurface(
        id=sid,
        kind=kind,
        plane=PlaneEquation(a=normal[0], b=normal[1], c=normal[2], d=0),
        bounds=_box(lo, hi),
        area=1.0,
        confidence=confidence,
    )


def _equipment(x0=1000.0, x1=2000.0) -> DetectedObstacle:
    return DetectedObstacle(
        id="o",
        kind=ObstacleKind.EQUIPMENT,
        bounds=_box((x0, 0, 0), (x1, 1000, 1000)),
        centroid=Vec3(x=(x0 + x1) / 2, y=500, z=500),
        dimensions=Dimensions(width=x1 - x0, depth=1000, height=1000),
        confidence=0.6,
    )


class _WindowAnalyzer:
    def analyze(self, image: ImageInput) -> ImageAnalysisResult:
        return ImageAnalysisResult(
            image_id=image.id,
            openings=[
                ImageRegion(
                    kind="window",
                    bounding_box=PixelBox(x=10, y=20, width=30, height=40),
                    confidence=0.5,
                )
            ],
        )


class TestProcessCloud:
    def test_room(self, room_cloud):
        result = process_cloud(room_cloud, ProcessingConfig(seed=42))

        kinds = sorted(s.kind.value for s in result.surfaces)
        assert kinds == ["floor", "wall", "wall"]
        assert len(result.obstacles) == 1
        column = result.obstacles[0]
        assert column.kind is ObstacleKind.COLUMN
        assert column.dimensions.width == pytest.approx(500)
        assert column.dimensions.height == pytest.approx(900)

    def test_detections_index_the_processed_cloud(self, room_cloud):
        result = process_cloud(room_cloud, ProcessingConfig(seed=42))
        processed = result.processed_cloud

        assert processed.id == "room-downsampled-filtered-normals"
        assert processed.normals is not None
        for detection in [*result.surfaces, *result.obstacles]:
            assert detection.indices_for(room_cloud.id) == []
            idx = detection.indices_for(processed.id)
            assert idx and max(idx) < len(processed)
        assert all(e.id.startswith(f"{processed.id}/") for e in result.edges)

    def test_conditioning_can_be_switched_off(self, room_cloud):
        config = ProcessingConfig(voxel_size=None, remove_outliers=False, estimate_normals=False, seed=1)
        result = process_cloud(room_cloud, config)
        assert result.processed_cloud is room_cloud
        assert result.processed_cloud.normals is None

    def test_summarize(self, room_points):
        summary = summarize_cloud(room_points, ProcessingConfig(seed=42))
        assert summary["surfaces"] == 3
        assert summary["obstacles"] == 1
        assert isinstance(summary["edges"], int)
        assert summary["bounds"]["min"]["x"] == 0.0


class TestBuildModel:
    def test_room_model(self, room_cloud):
        model = EnvironmentModeler(ProcessingConfig(seed=42)).build_model([room_cloud])

        assert model.units == "millimetres"
        assert model.id.startswith("env-")
        assert sum(s.kind is SurfaceKind.FLOOR for s in model.surfaces) == 1
        assert sum(s.kind is SurfaceKind.WALL for s in model.surfaces) == 2
        assert [o.kind for o in model.obstacles] == [ObstacleKind.COLUMN]
        assert 0.0 < model.metadata.confidence <= 1.0
        assert model.metadata.processed_points == len(room_cloud)
        assert model.sources[0].kind is SourceKind.POINT_CLOUD
        assert model.sources[0].contribution == 1.0
        for s in model.surfaces:
            assert model.bounds.contains(np.array([s.bounds.min.to_array(), s.bounds.max.to_array()]))

    def test_floor_attachment_points(self, room_cloud):
        model = EnvironmentModeler(ProcessingConfig(seed=42)).build_model([room_cloud])

        floor_points = [a for a in model.attachment_points if a.kind is AttachmentKind.FLOOR]
        assert floor_points
        for a in model.attachment_points:
            surface = model.surface(a.surface_id)
            assert surface is not None
            assert a.confidence <= surface.confidence
        floor = model.surface(floor_points[0].surface_id)
        assert all(a.position.z == floor.bounds.min.z for a in floor_points)
        assert floor_points[0].position.x == floor.bounds.min.x + 500

    def test_same_seed_same_geometry(self, room_cloud):
        a = EnvironmentModeler(ProcessingConfig(seed=5)).build_model([room_cloud])
        b = EnvironmentModeler(ProcessingConfig(seed=5)).build_model([room_cloud])
        assert a.surfaces == b.surfaces
        assert a.obstacles == b.obstacles
        assert a.attachment_points == b.attachment_points

    def test_no_inputs(self):
        model = build_model()
        assert model.bounds == DEFAULT_BOUNDS
        assert model.surfaces == []
        assert model.metadata.confidence == 0.0
        assert model.sources == []

    def test_images_only(self):
        image = ImageInput(id="cam1", width=1000, height=1000)
        model = build_model(images=[image])

        (opening,) = model.openings
        assert opening.id == "img-cam1-opening-0"
        assert opening.kind is OpeningKind.DOOR
        assert opening.position == Vec3(x=500, y=0, z=150)
        assert opening.dimensions == OpeningSize(width=200, height=600)
        assert opening.confidence == pytest.approx(0.56)

        (zone,) = model.clearance_zones
        assert zone.kind is ClearanceKind.EGRESS
        assert zone.priority is ClearancePriority.REQUIRED
        assert zone.bounds == _box((-100, -1000, 150), (1100, 1000, 750))
        assert model.sources[0].kind is SourceKind.IMAGE
        assert model.sources[0].contribution == 0.5

    def test_custom_image_analyzer(self):
        analyzer = _WindowAnalyzer()
        assert isinstance(analyzer, ImageAnalyzer)
        model = build_model(images=[ImageInput(id="cam2", width=640, height=480)], image_analyzer=analyzer)

        (opening,) = model.openings
        assert opening.kind is OpeningKind.WINDOW
        # windows need no egress zone
        assert model.clearance_zones == []

    def test_mixed_sources_contributions(self, room_cloud):
        model = EnvironmentModeler(ProcessingConfig(seed=42)).build_model(
            [room_cloud], [ImageInput(id="cam1", width=100, height=100)]
        )
        contributions = {s.kind: s.contribution for s in model.sources}
        assert contributions[SourceKind.POINT_CLOUD] == pytest.approx(0.5)
        assert contributions[SourceKind.IMAGE] == pytest.approx(0.25)

    def test_model_is_serialisable(self, room_cloud):
        model = EnvironmentModeler(ModelerConfig()).build_model([room_cloud])
        restored = EnvironmentModel.model_validate_json(model.model_dump_json())
        assert restored.id == model.id
        assert len(restored.attachment_points) == len(model.attachment_points)


class TestAttachmentPoints:
    def test_floor_grid(self):
        floor = _surface("f", SurfaceKind.FLOOR, (0, 0, 0), (3000, 2000, 0), confidence=0.5)
        points = identify_attachment_points([floor])

        assert [(p.position.x, p.position.y) for p in points] == [
            (500, 500), (500, 1500), (1500, 500), (1500, 1500), (2500, 500), (2500, 1500),
        ]
        assert all(p.load_capacity == 50_000 for p in points)
        assert points[0].confidence == pytest.approx(0.45)
        assert points[0].normal == Vec3(x=0, y=0, z=1)

    def test_wall_grid(self):
        wall = _surface("w", SurfaceKind.WALL, (0, 0, 0), (2000, 0, 2000), normal=(0, 1, 0))
        points = identify_attachment_points([wall])

        assert [(p.position.x, p.position.z) for p in points] == [
            (500, 500), (1500, 500), (500, 1000), (1500, 1000), (500, 1500), (1500, 1500),
        ]
        assert all(p.kind is AttachmentKind.WALL for p in points)
        assert points[0].normal == Vec3(x=0, y=1, z=0)
        assert points[0].load_capacity == 10_000
        assert points[0].confidence == pytest.approx(0.4)

    def test_other_kinds_ignored(self):
        ceiling = _surface("c", SurfaceKind.CEILING, (0, 0, 3000), (3000, 3000, 3000))
        assert identify_attachment_points([ceiling]) == []


class TestClearanceZones:
    def test_equipment_zone(self):
        (zone,) = identify_clearance_zones([_equipment()], [])
        assert zone.kind is ClearanceKind.EQUIPMENT
        assert zone.priority is ClearancePriority.PREFERRED
        assert zone.bounds == _box((250, -750, 0), (2750, 1750, 1500))

    def test_only_doors_and_equipment(self):
        window = DetectedOpening(
            id="w",
            kind=OpeningKind.WINDOW,
            position=Vec3(x=0, y=0, z=0),
            dimensions=OpeningSize(width=100, height=100),
            normal=Vec3(x=0, y=1, z=0),
            confidence=0.5,
        )
        column = _equipment().model_copy(update={"kind": ObstacleKind.COLUMN})
        assert identify_clearance_zones([column], [window]) == []


class TestEnvironmentBounds:
    def test_union(self):
        floor = _surface("f", SurfaceKind.FLOOR, (0, 0, 0), (3000, 2000, 0))
        bounds = environment_bounds([floor], [_equipment(x0=2500, x1=4000)])
        assert bounds == _box((0, 0, 0), (4000, 2000, 1000))

    def test_default(self):
        assert environment_bounds([], []) == DEFAULT_BOUNDS


class TestScanToCad:
    def test_sparse_scan_issues(self):
        cloud = load_from_array(np.random.default_rng(0).uniform(0, 1000, (50, 3)), cloud_id="s")
        result = EnvironmentModeler(ProcessingConfig(seed=0)).scan_to_cad([cloud])

        codes = {issue.code for issue in result.issues}
        assert codes == {"LOW_POINT_DENSITY", "NO_SURFACES"}
        assert result.statistics.input_points == 50
        assert result.quality.coverage == 0.0
        assert result.quality.completeness == 50.0

    def test_room_scan(self, room_cloud):
        result = EnvironmentModeler(ProcessingConfig(seed=42)).scan_to_cad([room_cloud])

        assert result.issues == []
        assert result.statistics.surfaces_detected == 3
        assert result.statistics.obstacles_detected == 1
        assert result.quality.coverage == 60.0
        assert result.quality.completeness == 75.0


class TestProjectOpenings:
    def test_simulated_door(self):
        image = ImageInput(id="i", width=200, height=100)
        openings = project_openings(image, SimulatedImageAnalyzer(confidence=0.5).analyze(image))
        assert openings[0].position == Vec3(x=100, y=0, z=15)
        assert openings[0].dimensions == OpeningSize(width=40, height=60)
        assert openings[0].confidence == pytest.approx(0.4)

    def test_unknown_label_is_generic_opening(self):
        image = ImageInput(id="i", width=10, height=10)
        result = ImageAnalysisResult(
            image_id="i",
            openings=[ImageRegion(kind="skylight", bounding_box=PixelBox(x=0, y=0, width=1, height=1), confidence=1.0)],
        )
        (opening,) = project_openings(image, result)
        assert opening.kind is OpeningKind.OPENING
        assert opening.confidence == pytest.approx(0.8)

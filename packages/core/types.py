"""Pydantic models for detections and the environment model.

The environment model is the structured JSON output of the scan-processing
pipeline.  It describes the detected surfaces (floors, walls), obstacles,
openings, the seams between surfaces, and the engineering artefacts derived
from them (attachment points, clearance zones).

All coordinates are millimetres, areas mm², loads newtons.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field


# ── tiny helpers ──────────────────────────────────────────────────────
class Vec3(BaseModel):
    """A 3-component vector (x, y, z) in millimetres."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    z: float

    @classmethod
    def from_array(cls, arr) -> Vec3:
        return cls(x=float(arr[0]), y=float(arr[1]), z=float(arr[2]))

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)


class BBox(BaseModel):
    """Axis-aligned bounding box."""

    model_config = ConfigDict(frozen=True)

    min: Vec3
    max: Vec3

    @classmethod
    def empty(cls) -> BBox:
        """The zero box used for clouds and detections with no points."""
        zero = Vec3(x=0.0, y=0.0, z=0.0)
        return cls(min=zero, max=zero)

    @classmethod
    def from_points(cls, points: np.ndarray) -> BBox:
        if len(points) == 0:
            return cls.empty()
        return cls(min=Vec3.from_array(points.min(axis=0)), max=Vec3.from_array(points.max(axis=0)))

    @property
    def size(self) -> Vec3:
        return Vec3(
            x=self.max.x - self.min.x,
            y=self.max.y - self.min.y,
            z=self.max.z - self.min.z,
        )

    @property
    def center(self) -> Vec3:
        return Vec3(
            x=(self.min.x + self.max.x) / 2,
            y=(self.min.y + self.max.y) / 2,
            z=(self.min.z + self.max.z) / 2,
        )

    def union(self, other: BBox) -> BBox:
        return BBox(
            min=Vec3(
                x=min(self.min.x, other.min.x),
                y=min(self.min.y, other.min.y),
                z=min(self.min.z, other.min.z),
            ),
            max=Vec3(
                x=max(self.max.x, other.max.x),
                y=max(self.max.y, other.max.y),
                z=max(self.max.z, other.max.z),
            ),
        )

    def overlaps(self, other: BBox, strict: bool = False) -> bool:
        """True if the boxes share at least one point.

        With *strict*, boxes that only touch (or are flat along an axis they
        share a face on) do not overlap.
        """
        if strict:
            return (
                self.min.x < other.max.x and self.max.x > other.min.x
                and self.min.y < other.max.y and self.max.y > other.min.y
                and self.min.z < other.max.z and self.max.z > other.min.z
            )
        return (
            self.min.x <= other.max.x and self.max.x >= other.min.x
            and self.min.y <= other.max.y and self.max.y >= other.min.y
            and self.min.z <= other.max.z and self.max.z >= other.min.z
        )

    def contains(self, points: np.ndarray) -> bool:
        lo = self.min.to_array()
        hi = self.max.to_array()
        return bool(np.all((points >= lo) & (points <= hi)))


class RGB(BaseModel):
    """Colour with 0-255 channels."""

    r: float
    g: float
    b: float


# ── point-level types ────────────────────────────────────────────────
class PointClassification(str, Enum):
    UNCLASSIFIED = "unclassified"
    GROUND = "ground"
    LOW_VEGETATION = "low-vegetation"
    MEDIUM_VEGETATION = "medium-vegetation"
    HIGH_VEGETATION = "high-vegetation"
    BUILDING = "building"
    LOW_POINT = "low-point"
    WATER = "water"
    RAIL = "rail"
    ROAD = "road"
    BRIDGE = "bridge"
    WIRE = "wire"
    STRUCTURE = "structure"
    EQUIPMENT = "equipment"


class Point(BaseModel):
    """A single scan point with its optional attributes."""

    position: Vec3
    color: Optional[RGB] = None
    normal: Optional[Vec3] = None
    intensity: Optional[float] = None
    classification: Optional[PointClassification] = None
    confidence: Optional[float] = None


class CloudSourceKind(str, Enum):
    LIDAR = "lidar"
    PHOTOGRAMMETRY = "photogrammetry"
    STRUCTURED_LIGHT = "structured-light"
    DEPTH_CAMERA = "depth-camera"
    SYNTHETIC = "synthetic"


class CloudSource(BaseModel):
    """Where a point cloud came from."""

    model_config = ConfigDict(frozen=True)

    kind: CloudSourceKind = CloudSourceKind.PHOTOGRAMMETRY
    scanner: Optional[str] = None
    accuracy: Optional[float] = Field(default=None, description="Nominal accuracy in mm")
    timestamp: Optional[str] = None


class CloudIndices(BaseModel):
    """Point indices bound to the exact cloud snapshot they index."""

    model_config = ConfigDict(frozen=True)

    cloud_id: str
    indices: tuple[int, ...] = ()


# ── detection types ──────────────────────────────────────────────────
class SurfaceKind(str, Enum):
    FLOOR = "floor"
    WALL = "wall"
    CEILING = "ceiling"
    RAMP = "ramp"
    STAIRS = "stairs"
    IRREGULAR = "irregular"


class ObstacleKind(str, Enum):
    COLUMN = "column"
    PIPE = "pipe"
    DUCT = "duct"
    EQUIPMENT = "equipment"
    BEAM = "beam"
    UNKNOWN = "unknown"


class EdgeKind(str, Enum):
    WALL_FLOOR = "wall-floor"
    WALL_WALL = "wall-wall"
    WALL_CEILING = "wall-ceiling"
    CURB = "curb"


class OpeningKind(str, Enum):
    DOOR = "door"
    WINDOW = "window"
    HATCH = "hatch"
    OPENING = "opening"


class PlaneEquation(BaseModel):
    """Plane ``a·x + b·y + c·z + d = 0`` with unit normal ``(a, b, c)``."""

    model_config = ConfigDict(frozen=True)

    a: float
    b: float
    c: float
    d: float

    @property
    def normal(self) -> Vec3:
        return Vec3(x=self.a, y=self.b, z=self.c)

    def distance(self, points: np.ndarray) -> np.ndarray:
        """Unsigned point-to-plane distances for an (N, 3) array."""
        return np.abs(points @ np.array([self.a, self.b, self.c]) + self.d)


class _Detection(BaseModel):
    model_config = ConfigDict(frozen=True)

    point_refs: list[CloudIndices] = Field(default_factory=list)

    def indices_for(self, cloud_id: str) -> list[int]:
        """Indices of this detection that are valid for *cloud_id*."""
        out: list[int] = []
        for ref in self.point_refs:
            if ref.cloud_id == cloud_id:
                out.extend(ref.indices)
        return out

    @property
    def point_count(self) -> int:
        return sum(len(ref.indices) for ref in self.point_refs)


class DetectedSurface(_Detection):
    """A planar surface found by RANSAC."""

    id: str
    kind: SurfaceKind
    plane: PlaneEquation
    bounds: BBox
    area: float = Field(description="Bounding-box derived area in mm²")
    confidence: float = Field(ge=0.0, le=1.0)

    @property
    def normal(self) -> Vec3:
        return self.plane.normal


class Dimensions(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: float
    depth: float
    height: float


class DetectedObstacle(_Detection):
    """A cluster of non-surface points with a shape classification."""

    id: str
    kind: ObstacleKind
    bounds: BBox
    centroid: Vec3
    dimensions: Dimensions
    confidence: float = Field(ge=0.0, le=1.0)


class OpeningSize(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: float
    height: float


class DetectedOpening(BaseModel):
    """A door/window projected into 3D from an image detection."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: OpeningKind
    position: Vec3
    dimensions: OpeningSize
    normal: Vec3
    confidence: float = Field(ge=0.0, le=1.0)


class DetectedEdge(BaseModel):
    """Approximate seam where two surfaces meet."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: EdgeKind
    start: Vec3
    end: Vec3
    length: float
    confidence: float = Field(ge=0.0, le=1.0)


# ── derived artefacts ────────────────────────────────────────────────
class AttachmentKind(str, Enum):
    FLOOR = "floor"
    WALL = "wall"
    CEILING = "ceiling"
    BEAM = "beam"
    COLUMN = "column"


class AttachmentMethod(str, Enum):
    ANCHOR_BOLT = "anchor-bolt"
    WELD = "weld"
    CLAMP = "clamp"
    EMBED = "embed"


class Clearance(BaseModel):
    model_config = ConfigDict(frozen=True)

    front: float
    sides: float


class AttachmentPoint(BaseModel):
    """Candidate mounting location.

    ``surface_id`` is a lookup key into :attr:`EnvironmentModel.surfaces`,
    not an owning reference.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    position: Vec3
    normal: Vec3
    surface_id: str
    kind: AttachmentKind
    load_capacity: Optional[float] = Field(default=None, description="Newtons")
    methods: list[AttachmentMethod] = Field(default_factory=list)
    clearance: Clearance
    confidence: float = Field(ge=0.0, le=1.0)


class ClearanceKind(str, Enum):
    EGRESS = "egress"
    ACCESS = "access"
    EQUIPMENT = "equipment"
    SAFETY = "safety"
    MAINTENANCE = "maintenance"


class ClearancePriority(str, Enum):
    REQUIRED = "required"
    PREFERRED = "preferred"
    OPTIONAL = "optional"


class ClearanceZone(BaseModel):
    """A volume that must stay free."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: ClearanceKind
    bounds: BBox
    priority: ClearancePriority
    description: str = ""


class SourceKind(str, Enum):
    POINT_CLOUD = "point-cloud"
    IMAGE = "image"
    MANUAL = "manual"


class EnvironmentSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: SourceKind
    id: str
    contribution: float = Field(ge=0.0, le=1.0)


class ModelMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    processed_points: int = 0
    processed_images: int = 0
    processing_time_ms: float = 0.0
    confidence: float = 0.0


# ── environment model ────────────────────────────────────────────────
class EnvironmentModel(BaseModel):
    """Top-level environment model produced by the fusion step."""

    model_config = ConfigDict(frozen=True)

    version: str = "0.1.0"
    id: str
    units: str = "millimetres"
    bounds: BBox
    surfaces: list[DetectedSurface] = Field(default_factory=list)
    obstacles: list[DetectedObstacle] = Field(default_factory=list)
    openings: list[DetectedOpening] = Field(default_factory=list)
    edges: list[DetectedEdge] = Field(default_factory=list)
    attachment_points: list[AttachmentPoint] = Field(default_factory=list)
    clearance_zones: list[ClearanceZone] = Field(default_factory=list)
    sources: list[EnvironmentSource] = Field(default_factory=list)
    metadata: ModelMetadata = Field(default_factory=ModelMetadata)

    def surface(self, surface_id: str) -> Optional[DetectedSurface]:
        """Resolve an attachment point's ``surface_id``."""
        for s in self.surfaces:
            if s.id == surface_id:
                return s
        return None


# ── connection analysis ──────────────────────────────────────────────
class SolutionKind(str, Enum):
    WALKWAY = "walkway"
    RAMP = "ramp"
    STAIRS = "stairs"
    LADDER = "ladder"
    STAIRS_WITH_LANDINGS = "stairs-with-landings"


class SuggestedSolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: SolutionKind
    feasibility: float
    notes: str = ""


class ConnectionOpportunity(BaseModel):
    """A feasible link between two attachment points (derived, not stored)."""

    start: AttachmentPoint
    end: AttachmentPoint
    distance: float
    elevation_change: float
    clear_path: bool
    obstacles: list[DetectedObstacle] = Field(default_factory=list)
    suggestions: list[SuggestedSolution] = Field(default_factory=list)

    @property
    def score(self) -> float:
        top = self.suggestions[0].feasibility if self.suggestions else 0.0
        return (1.0 if self.clear_path else 0.0) + top


# ── constraint projection ────────────────────────────────────────────
class ConstraintKind(str, Enum):
    ATTACHMENT = "attachment"
    CLEARANCE = "clearance"
    ALIGNMENT = "alignment"
    DIMENSION = "dimension"
    OBSTACLE = "obstacle"


class ConstraintSource(str, Enum):
    POINT_CLOUD = "point-cloud"
    IMAGE = "image"
    INFERENCE = "inference"


class EnvironmentConstraint(BaseModel):
    """Engineering constraint record for downstream reasoning."""

    kind: ConstraintKind
    description: str
    value: dict = Field(default_factory=dict)
    location: Optional[Vec3] = None
    confidence: float
    source: ConstraintSource


# ── image collaborator shapes ────────────────────────────────────────
class ImageInput(BaseModel):
    """An image handed to the image-analysis collaborator."""

    id: str
    data: str = Field(default="", description="Base64 payload or URL")
    format: str = "jpeg"
    width: int
    height: int
    metadata: dict = Field(default_factory=dict)


class PixelBox(BaseModel):
    x: float
    y: float
    width: float
    height: float


class ImageRegion(BaseModel):
    kind: str
    bounding_box: PixelBox
    confidence: float


class ImageAnalysisResult(BaseModel):
    """The only part of an image analysis the modeler consumes."""

    image_id: str
    openings: list[ImageRegion] = Field(default_factory=list)


# ── scan-to-CAD summary ──────────────────────────────────────────────
class ScanStatistics(BaseModel):
    input_points: int = 0
    input_images: int = 0
    surfaces_detected: int = 0
    obstacles_detected: int = 0
    attachment_points_found: int = 0
    processing_time_ms: float = 0.0
    memory_used_mb: float = 0.0


class ScanQuality(BaseModel):
    coverage: float = 0.0
    average_confidence: float = 0.0
    completeness: float = 0.0
    noise_level: float = 0.0


class IssueSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class ScanIssue(BaseModel):
    severity: IssueSeverity
    code: str
    message: str
    location: Optional[Vec3] = None


class ScanToCADResult(BaseModel):
    environment: EnvironmentModel
    statistics: ScanStatistics
    quality: ScanQuality
    issues: list[ScanIssue] = Field(default_factory=list)

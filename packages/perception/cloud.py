"""Immutable point-cloud value type and array ingestion.

Every conditioning step takes a :class:`PointCloud` and returns a *new* one
with a new id, so index lists computed against one snapshot can never be
silently applied to another.
"""

from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Mapping, Sequence
from typing import Any, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

from packages.core.types import RGB, BBox, CloudSource, Point, Vec3

logger = logging.getLogger(__name__)

MM3_PER_M3 = 1e9


class PointCloudValidationError(ValueError):
    """Raised when raw input cannot be turned into a point cloud."""


def compute_bounds(points: np.ndarray) -> BBox:
    """Return the axis-aligned bounding box of an (N, 3) point array."""
    return BBox.from_points(points)


def compute_density(count: int, bounds: BBox) -> float:
    """Points per cubic metre; 0 for flat or empty bounds."""
    size = bounds.size
    volume = size.x * size.y * size.z
    if volume <= 0:
        return 0.0
    return count / (volume / MM3_PER_M3)


def _frozen(arr: np.ndarray | None) -> np.ndarray | None:
    if arr is None:
        return None
    out = np.array(arr, dtype=np.float64)
    out.flags.writeable = False
    return out


class PointCloud(BaseModel):
    """A snapshot of scan points in millimetres.

    Per-point attributes are parallel arrays; ``colors``, ``normals``,
    ``intensities`` and ``confidences`` are optional.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    source: CloudSource = CloudSource()
    positions: np.ndarray
    colors: Optional[np.ndarray] = None
    normals: Optional[np.ndarray] = None
    intensities: Optional[np.ndarray] = None
    confidences: Optional[np.ndarray] = None
    bounds: BBox
    density: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("positions", "colors", "normals", "intensities", "confidences")
    @classmethod
    def _read_only(cls, v):
        return _frozen(v)

    def __len__(self) -> int:
        return len(self.positions)

    @property
    def points(self) -> list[Point]:
        """Materialise the cloud as :class:`Point` models."""
        out: list[Point] = []
        for i, pos in enumerate(self.positions):
            out.append(
                Point(
                    position=Vec3.from_array(pos),
                    color=RGB(r=self.colors[i, 0], g=self.colors[i, 1], b=self.colors[i, 2])
                    if self.colors is not None else None,
                    normal=Vec3.from_array(self.normals[i]) if self.normals is not None else None,
                    intensity=float(self.intensities[i]) if self.intensities is not None else None,
                    confidence=float(self.confidences[i]) if self.confidences is not None else None,
                )
            )
        return out

    def derive(self, suffix: str, positions: np.ndarray, **attrs) -> PointCloud:
        """Build a new snapshot ``<id>-<suffix>`` with recomputed bounds."""
        bounds = compute_bounds(positions)
        return PointCloud(
            id=f"{self.id}-{suffix}",
            source=self.source,
            positions=positions,
            bounds=bounds,
            density=compute_density(len(positions), bounds),
            metadata=dict(self.metadata),
            **attrs,
        )

    def subset(self, keep: np.ndarray, suffix: str) -> PointCloud:
        """New cloud holding only the points selected by the boolean *keep*."""

        def pick(arr):
            return None if arr is None else arr[keep]

        return self.derive(
            suffix,
            self.positions[keep],
            colors=pick(self.colors),
            normals=pick(self.normals),
            intensities=pick(self.intensities),
            confidences=pick(self.confidences),
        )

    def with_normals(self, normals: np.ndarray, suffix: str = "normals") -> PointCloud:
        return PointCloud(
            id=f"{self.id}-{suffix}",
            source=self.source,
            positions=self.positions,
            colors=self.colors,
            normals=normals,
            intensities=self.intensities,
            confidences=self.confidences,
            bounds=self.bounds,
            density=self.density,
            metadata=dict(self.metadata),
        )


def _coerce(value: Any, row: int, field: str) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError) as exc:
        raise PointCloudValidationError(
            f"Point {row}: field '{field}' is not a number ({value!r})"
        ) from exc
    if not math.isfinite(out):
        raise PointCloudValidationError(f"Point {row}: field '{field}' is not finite ({out})")
    return out


def _rows_from_mappings(points: Sequence[Mapping[str, Any]]) -> tuple[np.ndarray, np.ndarray | None]:
    positions = np.empty((len(points), 3), dtype=np.float64)
    colors = np.empty((len(points), 3), dtype=np.float64)
    all_colored = len(points) > 0
    for i, p in enumerate(points):
        if not isinstance(p, Mapping):
            raise PointCloudValidationError(f"Point {i}: expected a mapping, got {type(p).__name__}")
        for axis, key in enumerate("xyz"):
            if key not in p:
                raise PointCloudValidationError(f"Point {i}: missing coordinate '{key}'")
            positions[i, axis] = _coerce(p[key], i, key)
        if all_colored and all(p.get(c) is not None for c in "rgb"):
            for axis, key in enumerate("rgb"):
                colors[i, axis] = _coerce(p[key], i, key)
        else:
            all_colored = False
    return positions, colors if all_colored else None


def _rows_from_array(points: Any) -> tuple[np.ndarray, np.ndarray | None]:
    try:
        arr = np.asarray(points, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise PointCloudValidationError(f"Point array is not numeric: {exc}") from exc
    if arr.ndim != 2 or arr.shape[1] not in (3, 6):
        raise PointCloudValidationError(
            f"Point array must have shape (N, 3) or (N, 6), got {arr.shape}"
        )
    bad = ~np.isfinite(arr).all(axis=1)
    if bad.any():
        row = int(np.flatnonzero(bad)[0])
        raise PointCloudValidationError(f"Point {row}: non-finite value {arr[row].tolist()}")
    colors = arr[:, 3:6] if arr.shape[1] == 6 else None
    return arr[:, :3], colors


def load_from_array(
    points: Sequence[Mapping[str, Any]] | np.ndarray,
    source: CloudSource | None = None,
    *,
    cloud_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> PointCloud:
    """Turn raw ``{x, y, z, r?, g?, b?}`` rows (or an (N, 3|6) array) into a cloud.

    This is the only place where bad numeric input is a hard failure:
    non-finite coordinates raise :class:`PointCloudValidationError`.
    """
    if isinstance(points, np.ndarray) or (
        len(points) > 0 and not isinstance(points[0], Mapping)
    ):
        positions, colors = _rows_from_array(points)
    else:
        positions, colors = _rows_from_mappings(points)

    bounds = compute_bounds(positions)
    cloud = PointCloud(
        id=cloud_id or f"cloud-{uuid.uuid4().hex[:8]}",
        source=source or CloudSource(),
        positions=positions,
        colors=colors,
        bounds=bounds,
        density=compute_density(len(positions), bounds),
        metadata=metadata or {},
    )
    logger.info(
        "Loaded cloud %s: %d points (%s)",
        cloud.id, len(cloud), "with colour" if colors is not None else "no colour",
    )
    return cloud

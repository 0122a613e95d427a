"""Approximate seams between surfaces from their bounding boxes."""

from __future__ import annotations

import logging
import math

from packages.core.types import BBox, DetectedEdge, DetectedSurface, EdgeKind, SurfaceKind, Vec3

logger = logging.getLogger(__name__)

_EDGE_KINDS: dict[frozenset[SurfaceKind], EdgeKind] = {
    frozenset({SurfaceKind.WALL, SurfaceKind.FLOOR}): EdgeKind.WALL_FLOOR,
    frozenset({SurfaceKind.WALL}): EdgeKind.WALL_WALL,
    frozenset({SurfaceKind.WALL, SurfaceKind.CEILING}): EdgeKind.WALL_CEILING,
}


def classify_edge(a: SurfaceKind, b: SurfaceKind) -> EdgeKind:
    return _EDGE_KINDS.get(frozenset({a, b}), EdgeKind.CURB)


def bounds_intersection(a: BBox, b: BBox) -> tuple[Vec3, Vec3] | None:
    """Corners of the AABB intersection, or *None* unless the boxes overlap
    with positive extent on every axis."""
    if not a.overlaps(b, strict=True):
        return None
    start = Vec3(
        x=max(a.min.x, b.min.x),
        y=max(a.min.y, b.min.y),
        z=max(a.min.z, b.min.z),
    )
    end = Vec3(
        x=min(a.max.x, b.max.x),
        y=min(a.max.y, b.max.y),
        z=min(a.max.z, b.max.z),
    )
    return start, end


def detect_edges(surfaces: list[DetectedSurface], *, id_prefix: str = "") -> list[DetectedEdge]:
    """One edge per unordered surface pair whose bounds meet."""
    edges: list[DetectedEdge] = []
    for i, s1 in enumerate(surfaces):
        for s2 in surfaces[i + 1:]:
            hit = bounds_intersection(s1.bounds, s2.bounds)
            if hit is None:
                continue
            start, end = hit
            edges.append(
                DetectedEdge(
                    id=f"{id_prefix}edge-{len(edges)}",
                    kind=classify_edge(s1.kind, s2.kind),
                    start=start,
                    end=end,
                    length=math.dist(
                        (start.x, start.y, start.z), (end.x, end.y, end.z)
                    ),
                    confidence=min(s1.confidence, s2.confidence),
                )
            )

    logger.debug("Detected %d edge(s) between %d surfaces", len(edges), len(surfaces))
    return edges

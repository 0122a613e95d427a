"""Cross-source deduplication of surfaces and obstacles."""

from __future__ import annotations

import logging
import math

from packages.core.types import DetectedObstacle, DetectedSurface

logger = logging.getLogger(__name__)

SURFACE_OVERLAP_RATIO = 0.5
OBSTACLE_DUPLICATE_DISTANCE = 500.0  # mm


def xy_overlap_ratio(a: DetectedSurface, b: DetectedSurface) -> float:
    """Fraction of *a*'s XY footprint covered by *b*'s (0 for a flat footprint)."""
    overlap_x = max(0.0, min(a.bounds.max.x, b.bounds.max.x) - max(a.bounds.min.x, b.bounds.min.x))
    overlap_y = max(0.0, min(a.bounds.max.y, b.bounds.max.y) - max(a.bounds.min.y, b.bounds.min.y))
    size = a.bounds.size
    a_area = size.x * size.y
    if a_area <= 0:
        return 0.0
    return overlap_x * overlap_y / a_area


def should_merge(a: DetectedSurface, b: DetectedSurface) -> bool:
    return a.kind == b.kind and xy_overlap_ratio(a, b) > SURFACE_OVERLAP_RATIO


def merge_two_surfaces(a: DetectedSurface, b: DetectedSurface) -> DetectedSurface:
    """Union of bounds; *a*'s id and plane survive."""
    return DetectedSurface(
        id=a.id,
        kind=a.kind,
        plane=a.plane,
        bounds=a.bounds.union(b.bounds),
        area=max(a.area, b.area),
        point_refs=[*a.point_refs, *b.point_refs],
        confidence=max(a.confidence, b.confidence),
    )


def merge_surfaces(surfaces: list[DetectedSurface]) -> list[DetectedSurface]:
    """Merge same-kind surfaces whose XY footprints overlap by more than half.

    Single pass: each surface absorbs at most its first matching partner,
    so chains of three or more overlapping surfaces may stay split.
    """
    merged: list[DetectedSurface] = []
    used: set[int] = set()

    for i, s1 in enumerate(surfaces):
        if i in used:
            continue
        result = s1
        for j in range(i + 1, len(surfaces)):
            if j in used:
                continue
            if should_merge(s1, surfaces[j]):
                logger.debug("Merging surface %s ← %s", s1.id, surfaces[j].id)
                used.add(j)
                result = merge_two_surfaces(s1, surfaces[j])
                break
        merged.append(result)

    if len(merged) != len(surfaces):
        logger.info("  \U0001f517 Merged %d surfaces down to %d", len(surfaces), len(merged))
    return merged


def merge_obstacles(obstacles: list[DetectedObstacle]) -> list[DetectedObstacle]:
    """Drop obstacles whose centroid lies within 500 mm of an earlier one."""
    merged: list[DetectedObstacle] = []
    used: set[int] = set()

    for i, o1 in enumerate(obstacles):
        if i in used:
            continue
        c1 = (o1.centroid.x, o1.centroid.y, o1.centroid.z)
        for j in range(i + 1, len(obstacles)):
            if j in used:
                continue
            c2 = obstacles[j].centroid
            if math.dist(c1, (c2.x, c2.y, c2.z)) < OBSTACLE_DUPLICATE_DISTANCE:
                used.add(j)
        merged.append(o1)

    if len(merged) != len(obstacles):
        logger.info("  \U0001f517 Deduplicated %d obstacles down to %d", len(obstacles), len(merged))
    return merged

"""Connection opportunities between attachment points."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from packages.core.types import (
    BBox,
    ConnectionOpportunity,
    DetectedObstacle,
    EnvironmentModel,
    SolutionKind,
    SuggestedSolution,
    Vec3,
)

logger = logging.getLogger(__name__)

MIN_CONNECTION_DISTANCE = 500.0  # mm
DEFAULT_MAX_DISTANCE = 20_000.0  # mm
MAX_RESULTS = 20
PARALLEL_EPS = 1e-4


def segment_intersects_box(start: Vec3, end: Vec3, box: BBox) -> bool:
    """Slab test for the segment ``start → end`` against an AABB.

    An axis along which the segment barely moves only passes if the start
    already lies inside that slab.
    """
    s = (start.x, start.y, start.z)
    e = (end.x, end.y, end.z)
    lo = (box.min.x, box.min.y, box.min.z)
    hi = (box.max.x, box.max.y, box.max.z)

    t_min, t_max = 0.0, 1.0
    for axis in range(3):
        d = e[axis] - s[axis]
        if abs(d) < PARALLEL_EPS:
            if s[axis] < lo[axis] or s[axis] > hi[axis]:
                return False
            continue
        t1 = (lo[axis] - s[axis]) / d
        t2 = (hi[axis] - s[axis]) / d
        t_min = max(t_min, min(t1, t2))
        t_max = min(t_max, max(t1, t2))

    return t_min <= t_max


def obstacles_in_path(
    start: Vec3,
    end: Vec3,
    obstacles: Sequence[DetectedObstacle],
) -> list[DetectedObstacle]:
    return [o for o in obstacles if segment_intersects_box(start, end, o.bounds)]


def suggest_solutions(
    distance: float,
    elevation_change: float,
    obstructed: bool = False,
) -> list[SuggestedSolution]:
    """Access methods for bridging *elevation_change* over *distance*, best first."""
    rise = abs(elevation_change)
    slope = rise / max(distance, 1.0)

    if rise < 50:
        return [
            SuggestedSolution(
                kind=SolutionKind.WALKWAY,
                feasibility=0.5 if obstructed else 0.9,
                notes="Direct horizontal path",
            )
        ]

    suggestions: list[SuggestedSolution] = []
    if slope < 0.1 and rise < 750:
        suggestions.append(
            SuggestedSolution(kind=SolutionKind.RAMP, feasibility=0.85, notes="ADA-compliant ramp possible")
        )
    if 300 < rise < 5000:
        suggestions.append(
            SuggestedSolution(kind=SolutionKind.STAIRS, feasibility=0.9, notes="Standard stairway")
        )
    if rise >= 3000:
        suggestions.append(
            SuggestedSolution(kind=SolutionKind.LADDER, feasibility=0.7, notes="Fixed ladder with cage")
        )
        if rise > 4000:
            suggestions.append(
                SuggestedSolution(
                    kind=SolutionKind.STAIRS_WITH_LANDINGS,
                    feasibility=0.8,
                    notes="Multi-flight stairway with intermediate landings",
                )
            )

    suggestions.sort(key=lambda s: s.feasibility, reverse=True)
    return suggestions


def find_connection_opportunities(
    model: EnvironmentModel,
    max_distance: float | None = None,
    require_clear_path: bool = False,
) -> list[ConnectionOpportunity]:
    """Rank attachment-point pairs by path clearance and best suggestion.

    Pairs closer than 500 mm or farther than *max_distance* are skipped;
    the top twenty are returned.
    """
    max_distance = max_distance or DEFAULT_MAX_DISTANCE
    points = model.attachment_points
    opportunities: list[ConnectionOpportunity] = []

    for i, p1 in enumerate(points):
        a = (p1.position.x, p1.position.y, p1.position.z)
        for p2 in points[i + 1:]:
            b = (p2.position.x, p2.position.y, p2.position.z)
            distance = math.dist(a, b)
            if distance > max_distance or distance < MIN_CONNECTION_DISTANCE:
                continue

            elevation_change = p2.position.z - p1.position.z
            blocking = obstacles_in_path(p1.position, p2.position, model.obstacles)
            opportunities.append(
                ConnectionOpportunity(
                    start=p1,
                    end=p2,
                    distance=distance,
                    elevation_change=elevation_change,
                    clear_path=not blocking or not require_clear_path,
                    obstacles=blocking,
                    suggestions=suggest_solutions(distance, elevation_change, bool(blocking)),
                )
            )

    opportunities.sort(key=lambda o: o.score, reverse=True)
    logger.info(
        "Found %d connection candidate(s) among %d attachment points; returning top %d",
        len(opportunities), len(points), min(MAX_RESULTS, len(opportunities)),
    )
    return opportunities[:MAX_RESULTS]

"""Read-only projection of an EnvironmentModel into design constraints."""

from __future__ import annotations

from packages.core.types import (
    ConstraintKind,
    ConstraintSource,
    EnvironmentConstraint,
    EnvironmentModel,
    SurfaceKind,
    Vec3,
)

OBSTACLE_CLEARANCE = 500.0  # mm
OPENING_CLEARANCE = 1000.0  # mm


def extract_constraints(model: EnvironmentModel) -> list[EnvironmentConstraint]:
    constraints: list[EnvironmentConstraint] = []

    for surface in model.surfaces:
        if surface.kind is not SurfaceKind.FLOOR:
            continue
        b = surface.bounds
        constraints.append(
            EnvironmentConstraint(
                kind=ConstraintKind.ATTACHMENT,
                description=f"Floor surface available at elevation {b.min.z:.0f}mm",
                value={"elevation": b.min.z, "area": surface.area},
                location=Vec3(x=(b.min.x + b.max.x) / 2, y=(b.min.y + b.max.y) / 2, z=b.min.z),
                confidence=surface.confidence,
                source=ConstraintSource.POINT_CLOUD,
            )
        )

    for obstacle in model.obstacles:
        constraints.append(
            EnvironmentConstraint(
                kind=ConstraintKind.OBSTACLE,
                description=f"{obstacle.kind.value} obstacle requires {OBSTACLE_CLEARANCE:.0f}mm clearance",
                value={"bounds": obstacle.bounds.model_dump(), "clearance": OBSTACLE_CLEARANCE},
                location=obstacle.centroid,
                confidence=obstacle.confidence,
                source=ConstraintSource.POINT_CLOUD,
            )
        )

    for opening in model.openings:
        constraints.append(
            EnvironmentConstraint(
                kind=ConstraintKind.CLEARANCE,
                description=f"{opening.kind.value} opening requires egress clearance",
                value={
                    "position": opening.position.model_dump(),
                    "dimensions": opening.dimensions.model_dump(),
                    "required_clearance": OPENING_CLEARANCE,
                },
                location=opening.position,
                confidence=opening.confidence,
                source=ConstraintSource.INFERENCE,
            )
        )

    return constraints

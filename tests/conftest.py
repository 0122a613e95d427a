"""Shared test fixtures – synthetic point clouds in millimetres."""

from __future__ import annotations

import numpy as np
import pytest

from packages.perception.cloud import PointCloud, load_from_array


def _grid(u_range: tuple[float, float], v_range: tuple[float, float], step: float) -> np.ndarray:
    """Regular (N, 2) grid of (u, v) samples, ends inclusive."""
    u = np.arange(u_range[0], u_range[1] + step / 2, step)
    v = np.arange(v_range[0], v_range[1] + step / 2, step)
    uu, vv = np.meshgrid(u, v, indexing="ij")
    return np.column_stack((uu.ravel(), vv.ravel()))


def _column_rings(
    center: tuple[float, float],
    side: float,
    z_levels: np.ndarray,
    per_side: int = 3,
) -> np.ndarray:
    """Points around the perimeter of a square column at each height."""
    cx, cy = center
    h = side / 2
    corners = [(cx - h, cy - h), (cx + h, cy - h), (cx + h, cy + h), (cx - h, cy + h)]
    ring = []
    for k in range(4):
        (x0, y0), (x1, y1) = corners[k], corners[(k + 1) % 4]
        for t in range(per_side):
            f = t / per_side
            ring.append((x0 + f * (x1 - x0), y0 + f * (y1 - y0)))
    ring = np.asarray(ring)
    return np.vstack([np.column_stack((ring, np.full(len(ring), z))) for z in z_levels])


def make_room_points() -> np.ndarray:
    """A 10 m × 10 m floor, two 10 m × 3 m walls and one square column.

    Floor at z = 0; walls on y = 0 and x = 0; the column is 500 × 500 mm,
    centred at (5000, 5000) and spans z = 100 … 1000.
    """
    floor_uv = _grid((0, 10_000), (0, 10_000), 250)
    floor = np.column_stack((floor_uv, np.zeros(len(floor_uv))))

    wall_uv = _grid((0, 10_000), (0, 3_000), 250)
    wall_y0 = np.column_stack((wall_uv[:, 0], np.zeros(len(wall_uv)), wall_uv[:, 1]))
    wall_x0 = np.column_stack((np.zeros(len(wall_uv)), wall_uv[:, 0], wall_uv[:, 1]))

    column = _column_rings((5_000, 5_000), 500, np.arange(100, 1_001, 150))

    return np.vstack([floor, wall_y0, wall_x0, column])


@pytest.fixture()
def room_points() -> np.ndarray:
    return make_room_points()


@pytest.fixture()
def room_cloud(room_points: np.ndarray) -> PointCloud:
    return load_from_array(room_points, cloud_id="room")


@pytest.fixture()
def room_payload(room_points: np.ndarray) -> list[dict]:
    """The room as the raw ``{x, y, z}`` rows a client would send."""
    return [{"x": float(x), "y": float(y), "z": float(z)} for x, y, z in room_points]


@pytest.fixture()
def noisy_floor_cloud() -> PointCloud:
    """1000 points on z = 0 over 10 m × 10 m plus 50 points at random heights."""
    rng = np.random.default_rng(0)
    floor = np.column_stack((rng.uniform(0, 10_000, (1000, 2)), np.zeros(1000)))
    noise = np.column_stack((rng.uniform(0, 10_000, (50, 2)), rng.uniform(200, 3_000, 50)))
    return load_from_array(np.vstack([floor, noise]), cloud_id="floor")

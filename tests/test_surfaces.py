"""Tests for RANSAC plane fitting and ground / wall extraction."""

from __future__ import annotations

import numpy as np

from packages.core.types import SurfaceKind
from packages.perception.cloud import load_from_array
from packages.perception.ransac import fit_plane_ransac, plane_from_points
from packages.perception.surfaces import detect_ground_plane, detect_walls


class TestPlaneFromPoints:
    def test_horizontal(self):
        plane = plane_from_points(
            np.array([0.0, 0.0, 100.0]), np.array([1000.0, 0.0, 100.0]), np.array([0.0, 1000.0, 100.0])
        )
        assert abs(plane.c) == 1.0
        assert abs(plane.d) == 100.0

    def test_collinear_is_none(self):
        p = np.array([0.0, 0.0, 0.0])
        assert plane_from_points(p, p + 1, p + 2) is None


class TestFitPlaneRansac:
    def test_finds_dominant_plane(self):
        rng = np.random.default_rng(0)
        plane_pts = np.column_stack((rng.uniform(0, 5000, (400, 2)), np.full(400, 200.0)))
        noise = rng.uniform(0, 5000, (40, 3))
        pts = np.vstack([plane_pts, noise])

        result = fit_plane_ransac(pts, rng=np.random.default_rng(1))

        assert result is not None
        plane, inliers = result
        assert abs(plane.c) > 0.99
        assert set(range(400)) <= set(inliers.tolist())

    def test_returns_none_below_min_inliers(self):
        pts = np.random.default_rng(0).uniform(0, 10_000, (20, 3))
        assert fit_plane_ransac(pts, rng=np.random.default_rng(0), min_inliers=50) is None

    def test_accept_filter(self):
        rng = np.random.default_rng(0)
        floor = np.column_stack((rng.uniform(0, 5000, (300, 2)), np.zeros(300)))
        result = fit_plane_ransac(
            floor, rng=np.random.default_rng(0), accept=lambda p: abs(p.c) <= 0.3,
        )
        assert result is None


class TestDetectGroundPlane:
    def test_recall_on_noisy_floor(self, noisy_floor_cloud):
        ground = detect_ground_plane(noisy_floor_cloud, rng=np.random.default_rng(7))

        assert ground is not None
        assert ground.kind is SurfaceKind.FLOOR
        assert ground.confidence > 0.9
        assert abs(ground.normal.z) > 0.99
        assert ground.plane.c > 0
        assert ground.id == "floor/surface-ground"
        assert ground.point_refs[0].cloud_id == "floor"

    def test_area_is_footprint(self, noisy_floor_cloud):
        ground = detect_ground_plane(noisy_floor_cloud, rng=np.random.default_rng(7))
        size = ground.bounds.size
        assert ground.area == size.x * size.y
        assert size.z < 50

    def test_sparse_cloud_returns_none(self):
        pts = np.column_stack((np.arange(99) * 10.0, np.zeros(99), np.zeros(99)))
        assert detect_ground_plane(load_from_array(pts)) is None

    def test_reproducible_with_same_seed(self, noisy_floor_cloud):
        a = detect_ground_plane(noisy_floor_cloud, rng=np.random.default_rng(11))
        b = detect_ground_plane(noisy_floor_cloud, rng=np.random.default_rng(11))
        assert a == b

    def test_no_horizontal_plane(self):
        rng = np.random.default_rng(0)
        wall = np.column_stack((rng.uniform(0, 5000, 300), np.zeros(300), rng.uniform(0, 3000, 300)))
        assert detect_ground_plane(load_from_array(wall), rng=np.random.default_rng(0)) is None


class TestDetectWalls:
    def test_room_walls(self, room_cloud):
        rng = np.random.default_rng(42)
        ground = detect_ground_plane(room_cloud, rng=rng)
        walls = detect_walls(room_cloud, ground=ground, rng=rng)

        assert len(walls) == 2
        for wall in walls:
            assert wall.kind is SurfaceKind.WALL
            assert abs(wall.normal.z) <= 0.3
            assert wall.area >= 500_000
            assert wall.bounds.min.z >= 250  # ground row stays with the floor
        normals = sorted(
            (round(abs(w.normal.x)), round(abs(w.normal.y))) for w in walls
        )
        assert normals == [(0, 1), (1, 0)]

    def test_walls_and_ground_are_disjoint(self, room_cloud):
        rng = np.random.default_rng(42)
        ground = detect_ground_plane(room_cloud, rng=rng)
        walls = detect_walls(room_cloud, ground=ground, rng=rng)
        floor_idx = set(ground.indices_for("room"))
        for wall in walls:
            assert floor_idx.isdisjoint(wall.indices_for("room"))

    def test_detects_ground_itself_when_not_given(self, room_cloud):
        walls = detect_walls(room_cloud, rng=np.random.default_rng(42))
        assert len(walls) == 2

    def test_small_walls_rejected(self):
        rng = np.random.default_rng(0)
        # 400 mm × 400 mm vertical patch: area 0.16 m² < 0.5 m²
        patch = np.column_stack((rng.uniform(0, 400, 200), np.zeros(200), rng.uniform(0, 400, 200)))
        walls = detect_walls(load_from_array(patch), rng=np.random.default_rng(0))
        assert walls == []

"""
Tests for rigcal.calibration.box (plane unifier and box correspondences).
"""

import numpy as np
import pytest

from rigcal.calibration.box import (
    build_box_correspondences,
    detect_plane_points,
    unify,
)
from rigcal.errors import InvalidConfiguration
from rigcal.types import BoxGeometry, MarkerMap, Plane, PlaneMarkerMap


def square_corners(x, y, size=100.0):
    """Plane-local corners of a marker whose upper left corner is (x, y)."""
    return [[x, y, 0], [x + size, y, 0], [x + size, y + size, 0], [x, y + size, 0]]


def make_map(dictionary, ids, origins):
    return MarkerMap(
        dictionary=dictionary,
        marker_ids=np.array(ids, dtype=np.int32),
        corners=np.array([square_corners(*o) for o in origins], dtype=np.float64),
    )


class FakeDetector:
    """Returns canned detections per dictionary name and records calls."""

    def __init__(self, detections):
        self.detections = detections
        self.calls = []

    def __call__(self, image, dictionary):
        self.calls.append(dictionary)
        ids, corners = self.detections.get(dictionary, ([], []))
        return (
            np.array(ids, dtype=np.int32),
            np.array(corners, dtype=np.float32).reshape(-1, 4, 2),
        )


def pixels(marker_id):
    """Distinct fake pixel corners for a marker id."""
    base = 10.0 * marker_id
    return [[base, base], [base + 5, base], [base + 5, base + 5], [base, base + 5]]


class TestUnify:
    def test_origin_on_each_plane(self):
        origin = np.zeros((1, 3))
        np.testing.assert_array_equal(unify(origin, Plane.XY)[0], [8, 8, 0])
        np.testing.assert_array_equal(unify(origin, Plane.YZ)[0], [0, 8, 8])
        np.testing.assert_array_equal(unify(origin, Plane.XZ)[0], [8, 0, 8])

    def test_formulas(self):
        point = np.array([[250.0, -500.0, 7.0]])
        np.testing.assert_allclose(unify(point, "XY")[0], [10, 4, 0])
        np.testing.assert_allclose(unify(point, "YZ")[0], [0, 4, 6])
        np.testing.assert_allclose(unify(point, "XZ")[0], [10, 0, 12])

    def test_ignores_local_z(self):
        a = unify(np.array([[125.0, 125.0, 0.0]]), Plane.XY)
        b = unify(np.array([[125.0, 125.0, 99.0]]), Plane.XY)
        np.testing.assert_array_equal(a, b)

    def test_custom_geometry(self):
        geometry = BoxGeometry(offset=0.0, denominator=2.0)
        result = unify(np.array([[4.0, 6.0, 0.0]]), Plane.XY, geometry)
        np.testing.assert_array_equal(result[0], [2, 3, 0])

    def test_output_shape_and_dtype(self):
        result = unify(np.zeros((5, 3)), Plane.YZ)
        assert result.shape == (5, 3)
        assert result.dtype == np.float32

    def test_same_corner_matches_exactly_across_planes(self):
        # The shared edge between XY and YZ: XY x = -1000 and YZ x = 1000
        xy = unify(np.array([[-1000.0, 375.0, 0.0]]), Plane.XY)
        yz = unify(np.array([[1000.0, 375.0, 0.0]]), Plane.YZ)
        np.testing.assert_array_equal(xy, yz)

    def test_invalid_plane(self):
        with pytest.raises(InvalidConfiguration):
            unify(np.zeros((1, 3)), "QQ")


class TestDetectPlanePoints:
    def test_unifies_detected_markers(self):
        marker_map = make_map("DICT_4X4_50", [1], [(0.0, 0.0)])
        detector = FakeDetector({"DICT_4X4_50": ([1], [pixels(1)])})
        plane_map = PlaneMarkerMap(marker_map=marker_map, plane=Plane.XY)

        result = detect_plane_points(np.zeros((10, 10)), plane_map, detector)

        assert len(result) == 4
        np.testing.assert_allclose(result.object_points[0], [8, 8, 0])
        np.testing.assert_allclose(result.object_points[2], [8.8, 8.8, 0], rtol=1e-6)
        np.testing.assert_array_equal(result.image_points, np.array(pixels(1), dtype=np.float32))

    def test_unknown_ids_skipped(self):
        marker_map = make_map("DICT_4X4_50", [1], [(0.0, 0.0)])
        detector = FakeDetector({"DICT_4X4_50": ([42], [pixels(42)])})
        plane_map = PlaneMarkerMap(marker_map=marker_map, plane=Plane.XY)

        result = detect_plane_points(np.zeros((10, 10)), plane_map, detector)
        assert len(result) == 0


class TestBuildBoxCorrespondences:
    @pytest.fixture
    def plane_maps(self):
        return [
            PlaneMarkerMap(make_map("DICT_4X4_50", [0, 1], [(0, 0), (200, 0)]), Plane.XY),
            PlaneMarkerMap(make_map("DICT_5X5_50", [0], [(0, 0)]), Plane.YZ),
            PlaneMarkerMap(make_map("DICT_6X6_50", [5], [(0, 0)]), Plane.XZ),
        ]

    def test_concatenates_in_plane_order(self, plane_maps):
        detector = FakeDetector({
            "DICT_4X4_50": ([1, 0], [pixels(1), pixels(0)]),
            "DICT_5X5_50": ([0], [pixels(2)]),
            "DICT_6X6_50": ([5], [pixels(3)]),
        })

        result = build_box_correspondences(np.zeros((10, 10)), plane_maps, detector)

        assert detector.calls == ["DICT_4X4_50", "DICT_5X5_50", "DICT_6X6_50"]
        assert len(result) == 16
        # XY marker 1 first, in detection order
        np.testing.assert_allclose(result.object_points[0], [9.6, 8, 0], rtol=1e-6)
        np.testing.assert_allclose(result.object_points[4], [8, 8, 0])
        # YZ then XZ
        np.testing.assert_allclose(result.object_points[8], [0, 8, 8])
        np.testing.assert_allclose(result.object_points[12], [8, 0, 8])

    def test_same_local_origin_on_two_planes_stays_distinct(self, plane_maps):
        detector = FakeDetector({
            "DICT_4X4_50": ([0], [pixels(0)]),
            "DICT_5X5_50": ([0], [pixels(1)]),
        })
        result = build_box_correspondences(np.zeros((10, 10)), plane_maps[:2], detector)

        assert len(result) == 8
        assert not np.array_equal(result.object_points[0], result.object_points[4])

    def test_nothing_detected_gives_empty_set(self, plane_maps):
        detector = FakeDetector({})
        result = build_box_correspondences(np.zeros((10, 10)), plane_maps, detector)

        assert len(result) == 0
        assert result.object_points.shape == (0, 3)

    def test_partial_detection(self, plane_maps):
        detector = FakeDetector({"DICT_6X6_50": ([5], [pixels(5)])})
        result = build_box_correspondences(np.zeros((10, 10)), plane_maps, detector)

        assert len(result) == 4
        np.testing.assert_allclose(result.object_points[:, 1], 0)

"""
Tests for rigcal.calibration.markers.
"""

import cv2
import numpy as np
import pytest

from rigcal.calibration.markers import (
    detect_markers,
    get_dictionary,
    marker_correspondences,
    marker_indices,
)
from rigcal.errors import InvalidConfiguration
from rigcal.types import MarkerMap


def marker_image(marker_ids, size=120, margin=60):
    """White canvas with the given DICT_4X4_50 markers in a row."""
    dictionary = cv2.aruco.getPredefinedDictionary(cv2.aruco.DICT_4X4_50)
    width = margin + len(marker_ids) * (size + margin)
    canvas = np.full((size + 2 * margin, width), 255, dtype=np.uint8)
    for i, marker_id in enumerate(marker_ids):
        x = margin + i * (size + margin)
        canvas[margin:margin + size, x:x + size] = cv2.aruco.generateImageMarker(
            dictionary, marker_id, size
        )
    return cv2.cvtColor(canvas, cv2.COLOR_GRAY2BGR)


@pytest.fixture
def marker_map():
    return MarkerMap(
        dictionary="DICT_4X4_50",
        marker_ids=np.array([4, 9], dtype=np.int32),
        corners=np.arange(2 * 4 * 3, dtype=np.float64).reshape(2, 4, 3),
    )


class TestDictionaries:
    def test_known_name(self):
        assert get_dictionary("DICT_4X4_50") is not None

    def test_unknown_name(self):
        with pytest.raises(InvalidConfiguration, match="Unknown ArUco dictionary"):
            get_dictionary("DICT_9X9_1")


class TestDetectMarkers:
    def test_detects_synthetic_markers(self):
        ids, corners = detect_markers(marker_image([4, 9]), "DICT_4X4_50")

        assert sorted(ids.tolist()) == [4, 9]
        assert corners.shape == (2, 4, 2)
        assert corners.dtype == np.float32

    def test_first_corner_is_upper_left(self):
        ids, corners = detect_markers(marker_image([4]), "DICT_4X4_50")

        assert ids.tolist() == [4]
        np.testing.assert_allclose(corners[0, 0], [60, 60], atol=2.0)
        np.testing.assert_allclose(corners[0, 2], [179, 179], atol=2.0)

    def test_blank_image(self):
        blank = np.full((200, 200, 3), 255, dtype=np.uint8)
        ids, corners = detect_markers(blank, "DICT_4X4_50")

        assert ids.shape == (0,)
        assert corners.shape == (0, 4, 2)

    def test_grayscale_input(self):
        gray = cv2.cvtColor(marker_image([4]), cv2.COLOR_BGR2GRAY)
        ids, _ = detect_markers(gray, "DICT_4X4_50")
        assert ids.tolist() == [4]


class TestMarkerMapLookup:
    def test_marker_indices(self, marker_map):
        assert marker_indices(marker_map, np.array([9, 1, 4])) == [1, 0]

    def test_correspondences_in_corner_order(self, marker_map):
        corners = np.arange(2 * 4 * 2, dtype=np.float32).reshape(2, 4, 2)
        result = marker_correspondences(marker_map, np.array([9, 4]), corners)

        assert len(result) == 8
        np.testing.assert_array_equal(result.object_points[:4], marker_map.corners[1])
        np.testing.assert_array_equal(result.object_points[4:], marker_map.corners[0])
        np.testing.assert_array_equal(result.image_points, corners.reshape(-1, 2))

    def test_unknown_markers_skipped(self, marker_map):
        corners = np.zeros((2, 4, 2), dtype=np.float32)
        result = marker_correspondences(marker_map, np.array([100, 4]), corners)
        assert len(result) == 4

    def test_no_known_markers(self, marker_map):
        corners = np.zeros((1, 4, 2), dtype=np.float32)
        result = marker_correspondences(marker_map, np.array([100]), corners)
        assert len(result) == 0

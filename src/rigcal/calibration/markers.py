"""
ArUco marker detection and marker-map lookup.

Pure functions - no classes, no state.
"""

from __future__ import annotations

import cv2
import numpy as np

from ..errors import InvalidConfiguration
from ..types import MarkerMap, PointCorrespondences


# ============================================================================
# ArUco Dictionary Reference
# ============================================================================

ARUCO_DICTIONARIES = {
    "DICT_4X4_50": cv2.aruco.DICT_4X4_50,
    "DICT_4X4_100": cv2.aruco.DICT_4X4_100,
    "DICT_4X4_250": cv2.aruco.DICT_4X4_250,
    "DICT_4X4_1000": cv2.aruco.DICT_4X4_1000,
    "DICT_5X5_50": cv2.aruco.DICT_5X5_50,
    "DICT_5X5_100": cv2.aruco.DICT_5X5_100,
    "DICT_5X5_250": cv2.aruco.DICT_5X5_250,
    "DICT_5X5_1000": cv2.aruco.DICT_5X5_1000,
    "DICT_6X6_50": cv2.aruco.DICT_6X6_50,
    "DICT_6X6_100": cv2.aruco.DICT_6X6_100,
    "DICT_6X6_250": cv2.aruco.DICT_6X6_250,
    "DICT_6X6_1000": cv2.aruco.DICT_6X6_1000,
    "DICT_7X7_50": cv2.aruco.DICT_7X7_50,
    "DICT_7X7_100": cv2.aruco.DICT_7X7_100,
    "DICT_7X7_250": cv2.aruco.DICT_7X7_250,
    "DICT_7X7_1000": cv2.aruco.DICT_7X7_1000,
    "DICT_ARUCO_ORIGINAL": cv2.aruco.DICT_ARUCO_ORIGINAL,
    "DICT_APRILTAG_16h5": cv2.aruco.DICT_APRILTAG_16h5,
    "DICT_APRILTAG_25h9": cv2.aruco.DICT_APRILTAG_25h9,
    "DICT_APRILTAG_36h10": cv2.aruco.DICT_APRILTAG_36h10,
    "DICT_APRILTAG_36h11": cv2.aruco.DICT_APRILTAG_36h11,
}


def get_dictionary(name: str) -> cv2.aruco.Dictionary:
    """
    Look up a predefined ArUco dictionary by name.

    Raises:
        InvalidConfiguration: if the name is not a known dictionary
    """
    if name not in ARUCO_DICTIONARIES:
        raise InvalidConfiguration(f"Unknown ArUco dictionary: {name!r}")
    return cv2.aruco.getPredefinedDictionary(ARUCO_DICTIONARIES[name])


# ============================================================================
# Detection
# ============================================================================


def detect_markers(image: np.ndarray, dictionary: str) -> tuple[np.ndarray, np.ndarray]:
    """
    Detect ArUco markers of one dictionary in an image.

    Args:
        image: BGR or grayscale image
        dictionary: Name from ARUCO_DICTIONARIES

    Returns:
        (ids, corners) with ids (k,) int32 and corners (k, 4, 2) float32.
        Both are empty when nothing is found.
    """
    gray = image if image.ndim == 2 else cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

    params = cv2.aruco.DetectorParameters()
    params.cornerRefinementMethod = cv2.aruco.CORNER_REFINE_SUBPIX
    # Subpixel window scales with image width
    params.cornerRefinementWinSize = max(3, int(round(5.0 * gray.shape[1] / 2000.0)))

    detector = cv2.aruco.ArucoDetector(get_dictionary(dictionary), params)
    corners, ids, _ = detector.detectMarkers(gray)

    if ids is None or len(corners) == 0:
        return np.array([], dtype=np.int32), np.empty((0, 4, 2), dtype=np.float32)

    ids_flat = ids.reshape(-1).astype(np.int32)
    corners_flat = np.array(corners, dtype=np.float32).reshape(-1, 4, 2)
    return ids_flat, corners_flat


# ============================================================================
# Marker Map Lookup
# ============================================================================


def marker_indices(marker_map: MarkerMap, detected_ids: np.ndarray) -> list[int]:
    """
    Catalog index for each detected id that belongs to the map.

    Ids not in the map are skipped, so the result can be shorter than
    detected_ids.
    """
    lookup = {int(marker_id): i for i, marker_id in enumerate(marker_map.marker_ids)}
    return [lookup[int(i)] for i in detected_ids if int(i) in lookup]


def marker_correspondences(
    marker_map: MarkerMap,
    detected_ids: np.ndarray,
    detected_corners: np.ndarray,
) -> PointCorrespondences:
    """
    Pair detected marker corners with their map-local 3D positions.

    Each recognised marker contributes four correspondences in corner order.

    Args:
        marker_map: Catalog the detections are looked up in
        detected_ids: (k,) detected marker ids
        detected_corners: (k, 4, 2) detected corner pixels

    Returns:
        PointCorrespondences in the map's local frame
    """
    lookup = {int(marker_id): i for i, marker_id in enumerate(marker_map.marker_ids)}

    img_points = []
    obj_points = []
    for marker_id, corners in zip(detected_ids, detected_corners):
        index = lookup.get(int(marker_id))
        if index is None:
            continue
        img_points.append(np.asarray(corners, dtype=np.float32).reshape(4, 2))
        obj_points.append(marker_map.corners[index].reshape(4, 3))

    if not img_points:
        return PointCorrespondences.empty()

    return PointCorrespondences(
        image_points=np.concatenate(img_points),
        object_points=np.concatenate(obj_points),
    )

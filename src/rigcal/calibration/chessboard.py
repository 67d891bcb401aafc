"""
Chessboard corner detection.

Pure functions - no classes, no state.
"""

from __future__ import annotations

import cv2
import numpy as np

from ..types import ChessboardConfig, PointCorrespondences


FIND_FLAGS = (
    cv2.CALIB_CB_ADAPTIVE_THRESH
    | cv2.CALIB_CB_FILTER_QUADS
    | cv2.CALIB_CB_FAST_CHECK
    | cv2.CALIB_CB_NORMALIZE_IMAGE
)
SUBPIX_CRITERIA = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, 30, 0.1)


def chessboard_object_points(config: ChessboardConfig) -> np.ndarray:
    """
    3D positions of the inner corners on the board plane (z = 0).

    Row-major order, matching cv2.findChessboardCorners.

    Returns:
        (width * height, 3) float32 array
    """
    grid = np.zeros((config.corner_count, 3), dtype=np.float32)
    grid[:, :2] = np.mgrid[0 : config.width, 0 : config.height].T.reshape(-1, 2)
    grid[:, :2] *= config.square_size
    return grid


def detect_chessboard(image: np.ndarray, config: ChessboardConfig) -> PointCorrespondences:
    """
    Find chessboard inner corners in a single image.

    Args:
        image: BGR or grayscale image
        config: Board dimensions and square size

    Returns:
        PointCorrespondences for every inner corner, or an empty set
        if the board is not found
    """
    gray = image if image.ndim == 2 else cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

    found, corners = cv2.findChessboardCorners(gray, config.board_size, flags=FIND_FLAGS)
    if not found or corners is None:
        return PointCorrespondences.empty()

    corners = cv2.cornerSubPix(gray, corners, (11, 11), (-1, -1), SUBPIX_CRITERIA)

    return PointCorrespondences(
        image_points=corners.reshape(-1, 2),
        object_points=chessboard_object_points(config),
    )

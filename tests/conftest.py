"""
Pytest configuration and shared fixtures.
"""

import tempfile
from pathlib import Path

import cv2
import numpy as np
import pytest


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that's cleaned up after test."""
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


@pytest.fixture
def sample_intrinsics_matrix():
    """Typical camera intrinsics matrix."""
    return np.array([
        [800.0, 0.0, 640.0],
        [0.0, 800.0, 360.0],
        [0.0, 0.0, 1.0],
    ], dtype=np.float64)


@pytest.fixture
def sample_distortion():
    """Modest distortion coefficients (k1, k2, p1, p2, k3)."""
    return np.array([0.05, -0.1, 0.0, 0.0, 0.0], dtype=np.float64)


@pytest.fixture
def sample_camera_intrinsics(sample_intrinsics_matrix, sample_distortion):
    """Sample CameraIntrinsics dataclass."""
    from rigcal.types import CameraIntrinsics
    return CameraIntrinsics(
        resolution=(1280, 720),
        matrix=sample_intrinsics_matrix,
        distortion=sample_distortion,
        error=0.25,
        per_view_errors=(0.2, 0.3),
        grid_count=2,
    )


@pytest.fixture
def board_config():
    """9x6 inner corners, 25 mm squares."""
    from rigcal.types import ChessboardConfig
    return ChessboardConfig(width=9, height=6, square_size=25.0)


# Board poses (rvec, tvec in mm) that keep a 200x125 mm board in a 1280x720 view
BOARD_POSES = [
    ((0.0, 0.0, 0.0), (-100.0, -60.0, 600.0)),
    ((0.3, 0.0, 0.0), (-100.0, -60.0, 600.0)),
    ((-0.3, 0.0, 0.0), (-100.0, -60.0, 650.0)),
    ((0.0, 0.3, 0.0), (-100.0, -60.0, 600.0)),
    ((0.0, -0.3, 0.0), (-120.0, -60.0, 650.0)),
    ((0.2, 0.2, 0.1), (-80.0, -50.0, 550.0)),
    ((-0.2, 0.2, -0.1), (-150.0, -80.0, 700.0)),
    ((0.2, -0.2, 0.05), (-50.0, -100.0, 600.0)),
    ((-0.2, -0.2, 0.0), (-100.0, 0.0, 650.0)),
    ((0.4, 0.1, 0.0), (-200.0, -60.0, 750.0)),
    ((0.1, 0.4, 0.0), (0.0, -60.0, 700.0)),
    ((-0.4, -0.1, 0.2), (-100.0, -120.0, 700.0)),
    ((0.0, 0.0, 0.3), (-100.0, -60.0, 500.0)),
    ((0.15, -0.35, -0.2), (-60.0, -30.0, 650.0)),
    ((-0.35, 0.15, 0.0), (-140.0, -90.0, 600.0)),
]


def project_views(object_points, matrix, distortion, poses=BOARD_POSES):
    """Noiseless correspondences for each pose, via cv2.projectPoints."""
    from rigcal.types import PointCorrespondences

    views = []
    for rvec, tvec in poses:
        projected, _ = cv2.projectPoints(
            np.asarray(object_points, dtype=np.float64),
            np.array(rvec, dtype=np.float64),
            np.array(tvec, dtype=np.float64),
            matrix,
            distortion,
        )
        views.append(PointCorrespondences(
            image_points=projected.reshape(-1, 2),
            object_points=object_points,
        ))
    return views


@pytest.fixture
def synthetic_views(board_config, sample_intrinsics_matrix, sample_distortion):
    """Fifteen noiseless chessboard views of the sample camera."""
    from rigcal.calibration.chessboard import chessboard_object_points
    return project_views(
        chessboard_object_points(board_config),
        sample_intrinsics_matrix,
        sample_distortion,
    )


@pytest.fixture
def project():
    """The project_views helper, for tests that build their own views."""
    return project_views


@pytest.fixture
def board_poses():
    return BOARD_POSES

"""
Stereo calibration and rectification.

Pure functions - no classes, no state.
"""

from __future__ import annotations

import cv2
import numpy as np

import rigcal.logger
from ..errors import InvalidConfiguration, SolveFailure
from ..types import (
    CameraIntrinsics,
    CorrespondenceCollection,
    StereoParameters,
)
from .intrinsic import MIN_POINTS_PER_VIEW

logger = rigcal.logger.get(__name__)

STEREO_CRITERIA = (cv2.TERM_CRITERIA_COUNT + cv2.TERM_CRITERIA_EPS, 1000, 1e-10)


def _stereo_pairs(
    a: CorrespondenceCollection,
    b: CorrespondenceCollection,
) -> tuple[list[np.ndarray], list[np.ndarray], list[np.ndarray]]:
    """Object and image point lists for the image pairs usable in a solve."""
    obj_points = []
    img_points_a = []
    img_points_b = []

    for view_a, view_b in zip(a, b):
        if len(view_a) < MIN_POINTS_PER_VIEW or len(view_a) != len(view_b):
            continue
        obj_points.append(view_a.object_points)
        img_points_a.append(view_a.image_points)
        img_points_b.append(view_b.image_points)

    return obj_points, img_points_a, img_points_b


def solve_stereo(
    a: CorrespondenceCollection,
    b: CorrespondenceCollection,
    intrinsics_a: CameraIntrinsics,
    intrinsics_b: CameraIntrinsics,
    image_size: tuple[int, int],
) -> StereoParameters:
    """
    Estimate the pose of camera B relative to camera A, then rectify.

    Intrinsics of both cameras are held fixed (CALIB_FIX_INTRINSIC). For
    marker patterns the collections must already be reduced to shared
    points; pairs whose sets differ in length, or have too few points,
    are skipped.

    Args:
        a: Camera A collection
        b: Camera B collection, index-aligned with a
        intrinsics_a: Fixed intrinsics for camera A
        intrinsics_b: Fixed intrinsics for camera B
        image_size: (width, height) of the images

    Returns:
        StereoParameters including rectification transforms

    Raises:
        InvalidConfiguration: if the collections differ in length
        SolveFailure: if no pair is usable or the solve does not converge
    """
    if len(a) != len(b):
        raise InvalidConfiguration(
            f"Stereo collections are misaligned: {len(a)} vs {len(b)} images"
        )

    obj_points, img_points_a, img_points_b = _stereo_pairs(a, b)
    if not obj_points:
        raise SolveFailure(
            f"No image pair has at least {MIN_POINTS_PER_VIEW} shared points"
        )

    logger.info(f"Stereo calibrating with {len(obj_points)} of {len(a)} image pairs")

    matrix_a = np.asarray(intrinsics_a.matrix, dtype=np.float64)
    dist_a = np.asarray(intrinsics_a.distortion, dtype=np.float64)
    matrix_b = np.asarray(intrinsics_b.matrix, dtype=np.float64)
    dist_b = np.asarray(intrinsics_b.distortion, dtype=np.float64)
    size = (int(image_size[0]), int(image_size[1]))

    try:
        ret, _, _, _, _, R, T, E, F = cv2.stereoCalibrate(
            obj_points,
            img_points_a,
            img_points_b,
            matrix_a,
            dist_a,
            matrix_b,
            dist_b,
            size,
            criteria=STEREO_CRITERIA,
            flags=cv2.CALIB_FIX_INTRINSIC,
        )
    except cv2.error as e:
        raise SolveFailure(f"Stereo calibration failed: {e}") from e

    if not (np.all(np.isfinite(R)) and np.all(np.isfinite(T)) and np.isfinite(ret)):
        raise SolveFailure("Stereo calibration did not converge")

    logger.info(f"Stereo reprojection error = {ret:.4f}")

    R1, R2, P1, P2, Q, roi_a, roi_b = cv2.stereoRectify(
        matrix_a,
        dist_a,
        matrix_b,
        dist_b,
        size,
        R,
        T,
        flags=cv2.CALIB_ZERO_DISPARITY,
        alpha=1,
        newImageSize=size,
    )

    return StereoParameters(
        rotation=R,
        translation=np.asarray(T, dtype=np.float64).ravel(),
        essential=E,
        fundamental=F,
        rect_rotation_a=R1,
        rect_rotation_b=R2,
        projection_a=P1,
        projection_b=P2,
        disparity_to_depth=Q,
        valid_roi_a=tuple(int(v) for v in roi_a),
        valid_roi_b=tuple(int(v) for v in roi_b),
        error=float(ret),
        pair_count=len(obj_points),
    )


def build_rectify_maps(
    intrinsics_a: CameraIntrinsics,
    intrinsics_b: CameraIntrinsics,
    stereo: StereoParameters,
    image_size: tuple[int, int],
) -> tuple[tuple[np.ndarray, np.ndarray], tuple[np.ndarray, np.ndarray]]:
    """
    Precompute cv2.remap lookup tables for both cameras.

    Returns:
        ((map1_a, map2_a), (map1_b, map2_b))
    """
    size = (int(image_size[0]), int(image_size[1]))
    maps_a = cv2.initUndistortRectifyMap(
        intrinsics_a.matrix,
        intrinsics_a.distortion,
        stereo.rect_rotation_a,
        stereo.projection_a,
        size,
        cv2.CV_16SC2,
    )
    maps_b = cv2.initUndistortRectifyMap(
        intrinsics_b.matrix,
        intrinsics_b.distortion,
        stereo.rect_rotation_b,
        stereo.projection_b,
        size,
        cv2.CV_16SC2,
    )
    return maps_a, maps_b

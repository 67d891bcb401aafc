"""
Intrinsic camera calibration.

Pure functions - no threading, no state. Caller manages image collection.
"""

from __future__ import annotations

import cv2
import numpy as np

import rigcal.logger
from ..errors import SolveFailure
from ..types import (
    CalibrationFlags,
    CameraIntrinsics,
    CorrespondenceCollection,
)

logger = rigcal.logger.get(__name__)

# Views with fewer points cannot constrain a pose and are left out of solves
MIN_POINTS_PER_VIEW = 4

# Largest magnitude accepted for any solved camera parameter
MAX_PARAMETER_MAGNITUDE = 1e10

_FIX_K_FLAGS = (
    cv2.CALIB_FIX_K1,
    cv2.CALIB_FIX_K2,
    cv2.CALIB_FIX_K3,
    cv2.CALIB_FIX_K4,
    cv2.CALIB_FIX_K5,
)

# Order matches the summary string written to calibration files
_FLAG_NAMES = (
    (cv2.CALIB_FIX_K1, "+fix_k1"),
    (cv2.CALIB_FIX_K2, "+fix_k2"),
    (cv2.CALIB_FIX_K3, "+fix_k3"),
    (cv2.CALIB_FIX_K4, "+fix_k4"),
    (cv2.CALIB_FIX_K5, "+fix_k5"),
    (cv2.CALIB_USE_INTRINSIC_GUESS, "+use_intrinsic_guess"),
    (cv2.CALIB_FIX_ASPECT_RATIO, "+fix_aspectRatio"),
    (cv2.CALIB_FIX_PRINCIPAL_POINT, "+fix_principal_point"),
    (cv2.CALIB_ZERO_TANGENT_DIST, "+zero_tangent_dist"),
    (cv2.CALIB_FIX_TANGENT_DIST, "+fix_tangent_dist"),
)


# ============================================================================
# Flags
# ============================================================================


def solver_flags(flags: CalibrationFlags, use_intrinsic_guess: bool = False) -> int:
    """
    Build the OpenCV flag word for cv2.calibrateCamera.

    Args:
        flags: Calibration options
        use_intrinsic_guess: Seed the solve with the supplied matrix

    Returns:
        Bitwise OR of cv2.CALIB_* constants
    """
    word = 0
    for fixed, bit in zip(flags.fix_k, _FIX_K_FLAGS):
        if fixed:
            word |= bit
    if flags.aspect_ratio:
        word |= cv2.CALIB_FIX_ASPECT_RATIO
    if flags.zero_tangent_dist:
        word |= cv2.CALIB_ZERO_TANGENT_DIST
    if flags.fix_tangent_dist:
        word |= cv2.CALIB_FIX_TANGENT_DIST
    if flags.fix_principal_point:
        word |= cv2.CALIB_FIX_PRINCIPAL_POINT
    if use_intrinsic_guess:
        word |= cv2.CALIB_USE_INTRINSIC_GUESS
    return word


def describe_flags(flag_word: int) -> str:
    """Human readable summary of a flag word, e.g. "+fix_k3 +fix_k4"."""
    return " ".join(name for bit, name in _FLAG_NAMES if flag_word & bit)


# ============================================================================
# Reprojection Error
# ============================================================================


def compute_reprojection_errors(
    matrix: np.ndarray,
    distortion: np.ndarray,
    rvecs: tuple[np.ndarray | None, ...] | list,
    tvecs: tuple[np.ndarray | None, ...] | list,
    collection: CorrespondenceCollection,
) -> tuple[tuple[float, ...], float]:
    """
    Reprojection error per view and over the whole collection.

    Per view: sqrt(err^2 / n) where err is the L2 norm between observed and
    reprojected points. Overall: sqrt(sum err^2 / sum n), a point-weighted
    RMS rather than the mean of per-view values. Empty views, and views
    without a pose, report 0.0 and add nothing to either sum.

    Returns:
        (per_view_errors, average_error)
    """
    per_view = []
    total_sq_error = 0.0
    total_points = 0

    for view, rvec, tvec in zip(collection, rvecs, tvecs):
        n = len(view)
        if n == 0 or rvec is None or tvec is None:
            per_view.append(0.0)
            continue

        projected, _ = cv2.projectPoints(view.object_points, rvec, tvec, matrix, distortion)
        projected = projected.reshape(-1, 2).astype(np.float32)
        err = cv2.norm(view.image_points, projected, cv2.NORM_L2)

        per_view.append(float(np.sqrt(err * err / n)))
        total_sq_error += err * err
        total_points += n

    if total_points == 0:
        return tuple(per_view), 0.0

    return tuple(per_view), float(np.sqrt(total_sq_error / total_points))


# ============================================================================
# Calibration
# ============================================================================


def check_intrinsics(matrix: np.ndarray, distortion: np.ndarray) -> bool:
    """True if every parameter is finite and within a sane magnitude."""
    for values in (matrix, distortion):
        values = np.asarray(values, dtype=np.float64)
        if not np.all(np.isfinite(values)):
            return False
        if np.any(np.abs(values) > MAX_PARAMETER_MAGNITUDE):
            return False
    return True


def _usable_views(collection: CorrespondenceCollection) -> list[int]:
    return [i for i, view in enumerate(collection) if len(view) >= MIN_POINTS_PER_VIEW]


def _initial_guess(
    flags: CalibrationFlags,
    prior: CameraIntrinsics | None,
) -> tuple[np.ndarray, np.ndarray]:
    if prior is not None:
        matrix = np.array(prior.matrix, dtype=np.float64).reshape(3, 3)
        distortion = np.array(prior.distortion, dtype=np.float64).ravel()
        if flags.aspect_ratio:
            matrix[0, 0] = matrix[1, 1] * flags.aspect_ratio
        return matrix, distortion

    matrix = np.eye(3, dtype=np.float64)
    if flags.aspect_ratio:
        # fx/fy of the seed is held fixed by CALIB_FIX_ASPECT_RATIO
        matrix[0, 0] = flags.aspect_ratio
    distortion = np.zeros(5, dtype=np.float64)
    return matrix, distortion


def solve_intrinsics(
    collection: CorrespondenceCollection,
    image_size: tuple[int, int],
    flags: CalibrationFlags = CalibrationFlags(),
    prior: CameraIntrinsics | None = None,
) -> tuple[CameraIntrinsics, bool]:
    """
    Calibrate camera intrinsics from a correspondence collection.

    With a prior, the solve is seeded from it (CALIB_USE_INTRINSIC_GUESS);
    otherwise it starts from an identity matrix and zero distortion.
    Non-planar rigs (the marker box) need a prior.

    Args:
        collection: One PointCorrespondences per image
        image_size: (width, height) of the images
        flags: Which parameters to hold fixed
        prior: Optional initial estimate

    Returns:
        (intrinsics, ok). ok is False when a solved parameter is not finite
        or out of range; errors are still computed in that case.

    Raises:
        SolveFailure: if no view has enough points, or OpenCV rejects the data
    """
    usable = _usable_views(collection)
    if not usable:
        raise SolveFailure(
            f"No view has at least {MIN_POINTS_PER_VIEW} points "
            f"({len(collection)} views collected)"
        )

    skipped = len(collection) - len(usable)
    if skipped:
        logger.info(f"Skipping {skipped} view(s) with too few points")

    matrix, distortion = _initial_guess(flags, prior)
    flag_word = solver_flags(flags, use_intrinsic_guess=prior is not None)

    obj_points = [collection[i].object_points for i in usable]
    img_points = [collection[i].image_points for i in usable]

    try:
        rms, matrix, distortion, rvecs, tvecs = cv2.calibrateCamera(
            obj_points,
            img_points,
            tuple(image_size),
            matrix,
            distortion,
            flags=flag_word,
        )
    except cv2.error as e:
        raise SolveFailure(f"Intrinsic calibration failed: {e}") from e

    logger.debug(f"cv2.calibrateCamera RMS = {rms:.4f}")

    matrix = np.asarray(matrix, dtype=np.float64).reshape(3, 3)
    distortion = np.asarray(distortion, dtype=np.float64).ravel()
    ok = check_intrinsics(matrix, distortion)

    # Scatter solved poses back to their original view index
    view_rvecs: list[np.ndarray | None] = [None] * len(collection)
    view_tvecs: list[np.ndarray | None] = [None] * len(collection)
    for i, rvec, tvec in zip(usable, rvecs, tvecs):
        view_rvecs[i] = np.asarray(rvec, dtype=np.float64).reshape(3, 1)
        view_tvecs[i] = np.asarray(tvec, dtype=np.float64).reshape(3, 1)

    per_view, average = compute_reprojection_errors(
        matrix, distortion, view_rvecs, view_tvecs, collection
    )

    intrinsics = CameraIntrinsics(
        resolution=(int(image_size[0]), int(image_size[1])),
        matrix=matrix,
        distortion=distortion,
        error=average,
        per_view_errors=per_view,
        rvecs=tuple(view_rvecs),
        tvecs=tuple(view_tvecs),
        grid_count=len(usable),
        flags=flag_word,
    )
    return intrinsics, ok


def fixed_intrinsics(
    prior: CameraIntrinsics,
    collection: CorrespondenceCollection,
    image_size: tuple[int, int],
) -> CameraIntrinsics:
    """
    Use a known calibration as-is and recover each view's pose against it.

    Poses come from cv2.solvePnP. Views where that fails keep a None pose
    and report zero error.

    Args:
        prior: Intrinsics to hold fixed
        collection: One PointCorrespondences per image
        image_size: (width, height) of the images

    Returns:
        CameraIntrinsics with the prior's matrix and distortion plus
        per-view poses and errors
    """
    matrix = np.asarray(prior.matrix, dtype=np.float64).reshape(3, 3)
    distortion = np.asarray(prior.distortion, dtype=np.float64).ravel()

    view_rvecs: list[np.ndarray | None] = []
    view_tvecs: list[np.ndarray | None] = []
    for view in collection:
        if len(view) < MIN_POINTS_PER_VIEW:
            view_rvecs.append(None)
            view_tvecs.append(None)
            continue
        try:
            success, rvec, tvec = cv2.solvePnP(
                view.object_points, view.image_points, matrix, distortion
            )
        except cv2.error:
            success = False
        if not success:
            logger.debug("solvePnP failed for a view; leaving it unposed")
            view_rvecs.append(None)
            view_tvecs.append(None)
            continue
        view_rvecs.append(rvec)
        view_tvecs.append(tvec)

    per_view, average = compute_reprojection_errors(
        matrix, distortion, view_rvecs, view_tvecs, collection
    )

    return CameraIntrinsics(
        resolution=(int(image_size[0]), int(image_size[1])),
        matrix=matrix,
        distortion=distortion,
        error=average,
        per_view_errors=per_view,
        rvecs=tuple(view_rvecs),
        tvecs=tuple(view_tvecs),
        grid_count=sum(r is not None for r in view_rvecs),
        flags=prior.flags,
    )

"""
Calibration module for rigcal.

All functions are pure - they take dataclasses and return dataclasses.
No threading, no state management. The session driver owns the buffers.
"""

from .markers import (
    ARUCO_DICTIONARIES,
    detect_markers,
    marker_correspondences,
    marker_indices,
)

from .chessboard import (
    chessboard_object_points,
    detect_chessboard,
)

from .box import (
    unify,
    detect_plane_points,
    build_box_correspondences,
)

from .matching import (
    match_shared,
    match_shared_points,
)

from .intrinsic import (
    solver_flags,
    describe_flags,
    compute_reprojection_errors,
    solve_intrinsics,
    fixed_intrinsics,
)

from .stereo import (
    solve_stereo,
    build_rectify_maps,
)

__all__ = [
    # Markers
    "ARUCO_DICTIONARIES",
    "detect_markers",
    "marker_correspondences",
    "marker_indices",
    # Chessboard
    "chessboard_object_points",
    "detect_chessboard",
    # Box rig
    "unify",
    "detect_plane_points",
    "build_box_correspondences",
    # Matching
    "match_shared",
    "match_shared_points",
    # Intrinsic
    "solver_flags",
    "describe_flags",
    "compute_reprojection_errors",
    "solve_intrinsics",
    "fixed_intrinsics",
    # Stereo
    "solve_stereo",
    "build_rectify_maps",
]

# rigcal - Camera calibration from chessboards and ArUco marker rigs

__version__ = "0.1.0"

# Errors
from rigcal.errors import (
    CalibrationError,
    InvalidConfiguration,
    ResourceUnavailable,
    SolveFailure,
)

# Core types
from rigcal.types import (
    Plane,
    Mode,
    Pattern,
    PointCorrespondences,
    MarkerMap,
    PlaneMarkerMap,
    BoxGeometry,
    CalibrationFlags,
    CameraIntrinsics,
    StereoParameters,
    ChessboardConfig,
    SessionSettings,
)

# Configuration
from rigcal.config import (
    load_session_settings,
    load_marker_map,
    save_marker_map,
    save_intrinsics,
    load_intrinsics,
    save_stereo,
    load_stereo,
)

# Session
from rigcal.session import (
    CalibrationSession,
    SessionResult,
    SessionState,
    run_session,
)

__all__ = [
    # Errors
    "CalibrationError",
    "InvalidConfiguration",
    "ResourceUnavailable",
    "SolveFailure",
    # Core types
    "Plane",
    "Mode",
    "Pattern",
    "PointCorrespondences",
    "MarkerMap",
    "PlaneMarkerMap",
    "BoxGeometry",
    "CalibrationFlags",
    "CameraIntrinsics",
    "StereoParameters",
    "ChessboardConfig",
    "SessionSettings",
    # Configuration
    "load_session_settings",
    "load_marker_map",
    "save_marker_map",
    "save_intrinsics",
    "load_intrinsics",
    "save_stereo",
    "load_stereo",
    # Session
    "CalibrationSession",
    "SessionResult",
    "SessionState",
    "run_session",
]

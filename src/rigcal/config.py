"""
Configuration loading/saving.

Pure functions operating on dataclasses.
- TOML session settings (what to calibrate and where results go)
- TOML marker maps (marker ids and their 3D corners)
- TOML calibration files (intrinsics and stereo parameters)
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import numpy as np
import rtoml

from .errors import InvalidConfiguration, ResourceUnavailable
from .types import (
    BoxGeometry,
    CalibrationFlags,
    CameraIntrinsics,
    ChessboardConfig,
    MarkerMap,
    Mode,
    Pattern,
    Plane,
    PlaneMarkerMap,
    SessionSettings,
    StereoParameters,
)
from .calibration.intrinsic import describe_flags
from .calibration.markers import ARUCO_DICTIONARIES


# Number of marker maps each marker pattern needs
MARKER_MAP_COUNTS = {
    Pattern.ARUCO_SINGLE: 1,
    Pattern.ARUCO_BOX: 3,
}

MIN_SQUARE_SIZE = 10e-6


# ============================================================================
# TOML Helpers
# ============================================================================


def _read_toml(path: Path, what: str) -> dict[str, Any]:
    path = Path(path)
    try:
        return rtoml.load(path)
    except FileNotFoundError as e:
        raise ResourceUnavailable(f"Could not open {what}: {path}") from e
    except OSError as e:
        raise ResourceUnavailable(f"Could not read {what}: {path} ({e})") from e
    except rtoml.TomlParsingError as e:
        raise InvalidConfiguration(f"Malformed {what} {path}: {e}") from e


def _write_toml(data: dict[str, Any], path: Path) -> None:
    path = Path(path)
    # Ensure parent directory exists
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        rtoml.dump(data, f)


def _parse_enum(enum_cls, value, what: str):
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        raise InvalidConfiguration(f"Invalid {what}: {value!r}") from None


def _resolve(base: Path, value: str | None) -> Path | None:
    if value is None or str(value) in ("", "0"):
        return None
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


def _matrix(value, shape: tuple[int, ...]) -> np.ndarray:
    return np.array(value, dtype=np.float64).reshape(shape)


# ============================================================================
# Marker Maps
# ============================================================================


def load_marker_map(path: Path) -> MarkerMap:
    """
    Load a marker map from TOML.

    Format:
        dictionary = "DICT_6X6_250"
        [[markers]]
        id = 0
        corners = [[x, y, z], [x, y, z], [x, y, z], [x, y, z]]

    Raises:
        ResourceUnavailable: if the file cannot be read
        InvalidConfiguration: if entries are malformed
    """
    data = _read_toml(path, "marker map")

    dictionary = data.get("dictionary")
    if not dictionary:
        raise InvalidConfiguration(f"Marker map {path} has no dictionary")
    if dictionary not in ARUCO_DICTIONARIES:
        raise InvalidConfiguration(
            f"Marker map {path} uses unknown ArUco dictionary {dictionary!r}"
        )

    markers = data.get("markers", [])
    if not markers:
        raise InvalidConfiguration(f"Marker map {path} has no markers")

    ids = []
    corners = []
    for entry in markers:
        try:
            ids.append(int(entry["id"]))
            corners.append(_matrix(entry["corners"], (4, 3)))
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidConfiguration(f"Malformed marker entry in {path}: {entry}") from e

    return MarkerMap(
        dictionary=str(dictionary),
        marker_ids=np.array(ids, dtype=np.int32),
        corners=np.array(corners, dtype=np.float64),
    )


def save_marker_map(marker_map: MarkerMap, path: Path) -> None:
    """Save a marker map to TOML."""
    data = {
        "dictionary": marker_map.dictionary,
        "markers": [
            {"id": int(marker_id), "corners": corners.tolist()}
            for marker_id, corners in zip(marker_map.marker_ids, marker_map.corners)
        ],
    }
    _write_toml(data, path)


# ============================================================================
# Session Settings
# ============================================================================


def _parse_flags(data: dict[str, Any]) -> CalibrationFlags:
    kwargs = {
        "aspect_ratio": float(data.get("aspect_ratio", 0.0)),
        "zero_tangent_dist": bool(data.get("zero_tangent_dist", False)),
        "fix_principal_point": bool(data.get("fix_principal_point", False)),
        "fix_tangent_dist": bool(data.get("fix_tangent_dist", False)),
    }
    fix = data.get("fix_dist_coeffs", "00000")
    if isinstance(fix, str):
        return CalibrationFlags.from_digits(fix, **kwargs)
    return CalibrationFlags(fix_k=tuple(bool(v) for v in fix), **kwargs)


def _parse_marker_maps(entries: list[dict], base: Path) -> tuple[PlaneMarkerMap, ...]:
    plane_maps = []
    for entry in entries:
        if "path" not in entry or "plane" not in entry:
            raise InvalidConfiguration(
                f"Each [[marker_maps]] entry needs 'path' and 'plane': {entry}"
            )
        plane = Plane.parse(entry["plane"])
        marker_map = load_marker_map(_resolve(base, entry["path"]))
        plane_maps.append(PlaneMarkerMap(marker_map=marker_map, plane=plane))
    return tuple(plane_maps)


def load_session_settings(path: Path) -> SessionSettings:
    """
    Load and validate session settings from a TOML file.

    Relative paths are resolved against the settings file's directory.

    Raises:
        ResourceUnavailable: if the file, or a marker map it names, cannot be read
        InvalidConfiguration: if the settings cannot produce a valid run
    """
    path = Path(path)
    data = _read_toml(path, "settings file")
    base = path.parent

    mode = _parse_enum(Mode, data.get("mode"), "calibration mode")
    pattern = _parse_enum(Pattern, data.get("pattern"), "calibration pattern")

    board = data.get("chessboard", {})
    chessboard = ChessboardConfig(
        width=int(board.get("width", 9)),
        height=int(board.get("height", 6)),
        square_size=float(board.get("square_size", 25.0)),
    )

    box = data.get("box", {})
    geometry = BoxGeometry(
        offset=float(box.get("offset", 1000.0)),
        denominator=float(box.get("denominator", 125.0)),
    )

    marker_maps = ()
    if pattern is not Pattern.CHESSBOARD:
        marker_maps = _parse_marker_maps(data.get("marker_maps", []), base)

    camera_id = data.get("camera_id")
    frame_limit = data.get("frame_limit")

    settings = SessionSettings(
        mode=mode,
        pattern=pattern,
        images=tuple(_resolve(base, p) for p in data.get("images", [])),
        camera_id=int(camera_id) if camera_id is not None else None,
        frame_limit=int(frame_limit) if frame_limit is not None else None,
        chessboard=chessboard,
        marker_maps=marker_maps,
        box=geometry,
        flags=_parse_flags(data.get("solver", {})),
        intrinsic_input=_resolve(base, data.get("intrinsic_input")),
        intrinsic_input_right=_resolve(base, data.get("intrinsic_input_right")),
        intrinsic_output=_resolve(base, data.get("intrinsic_output")),
        extrinsic_output=_resolve(base, data.get("extrinsic_output")),
        undistorted_path=_resolve(base, data.get("undistorted_path")),
        rectified_path=_resolve(base, data.get("rectified_path")),
    )
    validate_settings(settings)
    return settings


def validate_settings(settings: SessionSettings) -> None:
    """
    Check settings for combinations that cannot run.

    Raises:
        InvalidConfiguration: describing the first problem found
    """
    if not isinstance(settings.mode, Mode):
        raise InvalidConfiguration(f"Invalid calibration mode: {settings.mode!r}")
    if not isinstance(settings.pattern, Pattern):
        raise InvalidConfiguration(f"Invalid calibration pattern: {settings.pattern!r}")

    if settings.pattern is Pattern.CHESSBOARD:
        board = settings.chessboard
        if board.width <= 0 or board.height <= 0:
            raise InvalidConfiguration(
                f"Invalid chessboard size: {board.width} {board.height}"
            )
        if board.square_size <= MIN_SQUARE_SIZE:
            raise InvalidConfiguration(f"Invalid square size: {board.square_size}")
    else:
        expected = MARKER_MAP_COUNTS[settings.pattern]
        if len(settings.marker_maps) != expected:
            raise InvalidConfiguration(
                f"Incorrect number of marker maps for {settings.pattern.value}: "
                f"{len(settings.marker_maps)} (need {expected})"
            )
        planes = [m.plane for m in settings.marker_maps]
        if len(set(planes)) != len(planes):
            raise InvalidConfiguration(
                f"Each marker map needs its own plane, got {[p.value for p in planes]}"
            )
        if settings.box.denominator == 0:
            raise InvalidConfiguration("Box denominator must be non-zero")
        for plane_map in settings.marker_maps:
            if plane_map.marker_map.dictionary not in ARUCO_DICTIONARIES:
                raise InvalidConfiguration(
                    f"Unknown ArUco dictionary: {plane_map.marker_map.dictionary!r}"
                )

    if settings.pattern is Pattern.ARUCO_BOX and settings.intrinsic_input is None:
        # cv2.calibrateCamera needs an initial guess for non-planar rigs
        raise InvalidConfiguration("ARUCO_BOX calibration requires an intrinsic input")

    if settings.pattern is Pattern.ARUCO_SINGLE and settings.intrinsic_input is None:
        # Only XY maps unify to z = 0
        off_plane = [m.plane.value for m in settings.marker_maps if m.plane is not Plane.XY]
        if off_plane:
            raise InvalidConfiguration(
                f"ARUCO_SINGLE on plane {off_plane[0]} requires an intrinsic input"
            )

    if not settings.images and settings.camera_id is None:
        raise InvalidConfiguration("No image list or camera_id given")

    if settings.is_stereo:
        if not settings.images:
            raise InvalidConfiguration("Stereo calibration needs an image list")
        if len(settings.images) % 2 != 0:
            raise InvalidConfiguration(
                "Image list must have an even number of entries for stereo calibration "
                f"(got {len(settings.images)})"
            )


# ============================================================================
# Intrinsics Files
# ============================================================================


def save_intrinsics(
    intrinsics: CameraIntrinsics,
    path: Path,
    settings: SessionSettings | None = None,
) -> None:
    """
    Save camera intrinsics to a TOML calibration file.

    Args:
        intrinsics: CameraIntrinsics dataclass
        path: Output file
        settings: Optional session settings for pattern metadata
    """
    data: dict[str, Any] = {
        "calibration_time": datetime.now().isoformat(timespec="seconds"),
        "image_width": int(intrinsics.resolution[0]),
        "image_height": int(intrinsics.resolution[1]),
    }

    if settings is not None:
        data["calibration_pattern"] = settings.pattern.value
        if settings.pattern is Pattern.CHESSBOARD:
            data["board_width"] = settings.chessboard.width
            data["board_height"] = settings.chessboard.height
            data["square_size"] = settings.chessboard.square_size
        if settings.flags.aspect_ratio:
            data["aspect_ratio"] = settings.flags.aspect_ratio

    data["calibration_flags"] = describe_flags(intrinsics.flags)
    data["flag_value"] = int(intrinsics.flags)
    data["camera_matrix"] = np.asarray(intrinsics.matrix, dtype=np.float64).tolist()
    data["distortion_coefficients"] = (
        np.asarray(intrinsics.distortion, dtype=np.float64).ravel().tolist()
    )
    data["avg_reprojection_error"] = float(intrinsics.error)
    data["grid_count"] = int(intrinsics.grid_count)
    if intrinsics.per_view_errors:
        data["per_view_reprojection_errors"] = [float(e) for e in intrinsics.per_view_errors]

    _write_toml(data, path)


def load_intrinsics(path: Path) -> CameraIntrinsics:
    """
    Load camera intrinsics from a TOML calibration file.

    Per-view poses are not stored, so the result has none.

    Raises:
        ResourceUnavailable: if the file cannot be read
        InvalidConfiguration: if the matrix or coefficients are missing
    """
    data = _read_toml(path, "intrinsic input")

    try:
        matrix = _matrix(data["camera_matrix"], (3, 3))
        distortion = np.array(data["distortion_coefficients"], dtype=np.float64).ravel()
    except (KeyError, ValueError) as e:
        raise InvalidConfiguration(f"Intrinsic file {path} is missing camera parameters") from e

    return CameraIntrinsics(
        resolution=(int(data.get("image_width", 0)), int(data.get("image_height", 0))),
        matrix=matrix,
        distortion=distortion,
        error=float(data.get("avg_reprojection_error", 0.0)),
        per_view_errors=tuple(float(e) for e in data.get("per_view_reprojection_errors", [])),
        grid_count=int(data.get("grid_count", 0)),
        flags=int(data.get("flag_value", 0)),
    )


# ============================================================================
# Stereo Files
# ============================================================================


def save_stereo(
    stereo: StereoParameters,
    path: Path,
    settings: SessionSettings | None = None,
) -> None:
    """Save stereo extrinsics and rectification parameters to TOML."""
    data: dict[str, Any] = {
        "calibration_time": datetime.now().isoformat(timespec="seconds"),
    }
    if settings is not None:
        data["calibration_pattern"] = settings.pattern.value

    data["stereo_reprojection_error"] = float(stereo.error)
    data["pair_count"] = int(stereo.pair_count)
    data["stereo_parameters"] = {
        "rotation_matrix": np.asarray(stereo.rotation).tolist(),
        "translation_vector": np.asarray(stereo.translation).ravel().tolist(),
        "essential_matrix": np.asarray(stereo.essential).tolist(),
        "fundamental_matrix": np.asarray(stereo.fundamental).tolist(),
    }
    data["rectification_parameters"] = {
        "rectification_transformation_1": np.asarray(stereo.rect_rotation_a).tolist(),
        "rectification_transformation_2": np.asarray(stereo.rect_rotation_b).tolist(),
        "projection_matrix_1": np.asarray(stereo.projection_a).tolist(),
        "projection_matrix_2": np.asarray(stereo.projection_b).tolist(),
        "disparity_to_depth_mapping_matrix": np.asarray(stereo.disparity_to_depth).tolist(),
        "valid_roi_1": list(stereo.valid_roi_a),
        "valid_roi_2": list(stereo.valid_roi_b),
    }

    _write_toml(data, path)


def load_stereo(path: Path) -> StereoParameters:
    """
    Load stereo parameters from a TOML file written by save_stereo.

    Raises:
        ResourceUnavailable: if the file cannot be read
        InvalidConfiguration: if a required table is missing
    """
    data = _read_toml(path, "stereo file")

    try:
        ster = data["stereo_parameters"]
        rect = data["rectification_parameters"]
        return StereoParameters(
            rotation=_matrix(ster["rotation_matrix"], (3, 3)),
            translation=_matrix(ster["translation_vector"], (3,)),
            essential=_matrix(ster["essential_matrix"], (3, 3)),
            fundamental=_matrix(ster["fundamental_matrix"], (3, 3)),
            rect_rotation_a=_matrix(rect["rectification_transformation_1"], (3, 3)),
            rect_rotation_b=_matrix(rect["rectification_transformation_2"], (3, 3)),
            projection_a=_matrix(rect["projection_matrix_1"], (3, 4)),
            projection_b=_matrix(rect["projection_matrix_2"], (3, 4)),
            disparity_to_depth=_matrix(rect["disparity_to_depth_mapping_matrix"], (4, 4)),
            valid_roi_a=tuple(int(v) for v in rect["valid_roi_1"]),
            valid_roi_b=tuple(int(v) for v in rect["valid_roi_2"]),
            error=float(data.get("stereo_reprojection_error", 0.0)),
            pair_count=int(data.get("pair_count", 0)),
        )
    except (KeyError, ValueError) as e:
        raise InvalidConfiguration(f"Stereo file {path} is incomplete: {e}") from e

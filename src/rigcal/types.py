"""
Core data structures for rigcal.

Types are frozen dataclasses with slots where no properties are needed.
Logic is in separate pure functions - these are data containers only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable

import numpy as np

from .errors import InvalidConfiguration


# ============================================================================
# Enumerations
# ============================================================================


class Plane(Enum):
    """The three orthogonal planes of a marker box rig."""

    XY = "XY"
    YZ = "YZ"
    XZ = "XZ"

    @property
    def index(self) -> int:
        """Plane index used for overlay colour and corner conventions."""
        return _PLANE_INDEX[self]

    @classmethod
    def parse(cls, label: str | Plane) -> Plane:
        """
        Convert a plane label to a Plane.

        Raises:
            InvalidConfiguration: for any label other than XY, YZ or XZ
        """
        if isinstance(label, Plane):
            return label
        try:
            return cls(str(label).strip().upper())
        except ValueError:
            raise InvalidConfiguration(
                f"Unrecognized plane label: {label!r} (expected XY, YZ or XZ)"
            ) from None


_PLANE_INDEX = {Plane.XY: 0, Plane.YZ: 1, Plane.XZ: 2}


class Mode(Enum):
    INTRINSIC = "INTRINSIC"
    STEREO = "STEREO"


class Pattern(Enum):
    CHESSBOARD = "CHESSBOARD"
    ARUCO_SINGLE = "ARUCO_SINGLE"
    ARUCO_BOX = "ARUCO_BOX"


# ============================================================================
# Point Correspondences
# ============================================================================


@dataclass(frozen=True, slots=True)
class PointCorrespondences:
    """
    Matched 2D/3D points for one image from one camera.

    Index i of image_points is the observation of object_points[i].
    Arrays are float32 because that is what the OpenCV solvers accept.
    """

    image_points: np.ndarray  # (n, 2) pixel coordinates
    object_points: np.ndarray  # (n, 3) reference coordinates

    def __post_init__(self):
        img = np.asarray(self.image_points, dtype=np.float32).reshape(-1, 2)
        obj = np.asarray(self.object_points, dtype=np.float32).reshape(-1, 3)
        if len(img) != len(obj):
            raise ValueError(
                f"Correspondence length mismatch: {len(img)} image points, "
                f"{len(obj)} object points"
            )
        object.__setattr__(self, "image_points", img)
        object.__setattr__(self, "object_points", obj)

    def __len__(self) -> int:
        return len(self.image_points)

    @classmethod
    def empty(cls) -> PointCorrespondences:
        return cls(
            image_points=np.empty((0, 2), dtype=np.float32),
            object_points=np.empty((0, 3), dtype=np.float32),
        )


# One PointCorrespondences per image, in capture order.
CorrespondenceCollection = list[PointCorrespondences]


def concat_correspondences(sets: Iterable[PointCorrespondences]) -> PointCorrespondences:
    """Join correspondence sets end to end, preserving order."""
    sets = [s for s in sets if len(s) > 0]
    if not sets:
        return PointCorrespondences.empty()
    return PointCorrespondences(
        image_points=np.concatenate([s.image_points for s in sets]),
        object_points=np.concatenate([s.object_points for s in sets]),
    )


def total_points(collection: CorrespondenceCollection) -> int:
    return sum(len(s) for s in collection)


# ============================================================================
# Marker Maps
# ============================================================================


@dataclass(frozen=True, slots=True)
class MarkerMap:
    """
    Catalog of markers with known 3D corner positions in a map-local frame.

    Corners are ordered as the detector reports them:
    upper left, upper right, lower right, lower left.
    """

    dictionary: str
    marker_ids: np.ndarray  # (m,) marker identities
    corners: np.ndarray  # (m, 4, 3) corner positions

    def __len__(self) -> int:
        return len(self.marker_ids)


@dataclass(frozen=True, slots=True)
class PlaneMarkerMap:
    """A marker map bound to the box plane it lies on."""

    marker_map: MarkerMap
    plane: Plane


@dataclass(frozen=True, slots=True)
class BoxGeometry:
    """
    Constants that map plane-local marker coordinates onto the box frame.

    The offset moves each map's origin to a shared exterior corner and the
    denominator scales the physical unit down to small integers.
    """

    offset: float = 1000.0
    denominator: float = 125.0


# ============================================================================
# Solver Configuration
# ============================================================================


@dataclass(frozen=True, slots=True)
class CalibrationFlags:
    """
    Options for the intrinsic solve.

    fix_k holds one entry per radial coefficient k1..k5.
    aspect_ratio of 0 leaves fx/fy free.
    """

    fix_k: tuple[bool, bool, bool, bool, bool] = (False, False, False, False, False)
    aspect_ratio: float = 0.0
    zero_tangent_dist: bool = False
    fix_principal_point: bool = False
    fix_tangent_dist: bool = False

    def __post_init__(self):
        fix_k = tuple(bool(v) for v in self.fix_k)
        if len(fix_k) != 5:
            raise InvalidConfiguration(
                f"fix_k needs 5 entries (k1..k5), got {len(fix_k)}"
            )
        if self.aspect_ratio < 0:
            raise InvalidConfiguration(f"Invalid aspect ratio: {self.aspect_ratio}")
        object.__setattr__(self, "fix_k", fix_k)

    @classmethod
    def from_digits(cls, digits: str, **kwargs) -> CalibrationFlags:
        """Build from a five-digit string such as "00111" (1 = fixed)."""
        digits = str(digits).strip()
        if len(digits) != 5 or any(c not in "01" for c in digits):
            raise InvalidConfiguration(
                f"Distortion fix string must be five 0/1 digits, got {digits!r}"
            )
        return cls(fix_k=tuple(c == "1" for c in digits), **kwargs)

    @classmethod
    def fix_all_distortion(cls, **kwargs) -> CalibrationFlags:
        return cls(fix_k=(True,) * 5, fix_tangent_dist=True, **kwargs)


# ============================================================================
# Calibration Results
# ============================================================================


@dataclass(frozen=True, slots=True)
class CameraIntrinsics:
    """
    Intrinsic parameters for a camera.

    Per-view fields are index-aligned with the correspondence collection
    that produced them. Views left out of the solve have None poses.
    A prior loaded from file has empty per-view fields.
    """

    resolution: tuple[int, int]  # (width, height)
    matrix: np.ndarray  # 3x3 camera matrix
    distortion: np.ndarray  # Distortion coefficients (k1, k2, p1, p2, k3[, ...])
    error: float  # Average RMS reprojection error over all points
    per_view_errors: tuple[float, ...] = ()
    rvecs: tuple[np.ndarray | None, ...] = ()
    tvecs: tuple[np.ndarray | None, ...] = ()
    grid_count: int = 0  # Number of views used in calibration
    flags: int = 0  # Solver flag word


@dataclass(frozen=True, slots=True)
class StereoParameters:
    """
    Relative pose of camera B with respect to camera A plus rectification.

    ROIs are (x, y, width, height) in the rectified images.
    """

    rotation: np.ndarray  # R, 3x3
    translation: np.ndarray  # T, (3,)
    essential: np.ndarray  # E, 3x3
    fundamental: np.ndarray  # F, 3x3
    rect_rotation_a: np.ndarray  # R1
    rect_rotation_b: np.ndarray  # R2
    projection_a: np.ndarray  # P1, 3x4
    projection_b: np.ndarray  # P2, 3x4
    disparity_to_depth: np.ndarray  # Q, 4x4
    valid_roi_a: tuple[int, int, int, int]
    valid_roi_b: tuple[int, int, int, int]
    error: float  # RMS reprojection error from the stereo solve
    pair_count: int = 0


# ============================================================================
# Session Settings
# ============================================================================


@dataclass(frozen=True)  # No slots - need properties
class ChessboardConfig:
    """Inner-corner count per row and column, and square edge length."""

    width: int = 9
    height: int = 6
    square_size: float = 25.0  # User-chosen unit (mm, px, ...)

    @property
    def board_size(self) -> tuple[int, int]:
        return (self.width, self.height)

    @property
    def corner_count(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class SessionSettings:
    """
    Everything a calibration run needs.
    Loaded from a TOML settings file by config.load_session_settings.
    """

    mode: Mode
    pattern: Pattern
    images: tuple[Path, ...] = ()
    camera_id: int | None = None
    frame_limit: int | None = None
    chessboard: ChessboardConfig = field(default_factory=ChessboardConfig)
    marker_maps: tuple[PlaneMarkerMap, ...] = ()
    box: BoxGeometry = field(default_factory=BoxGeometry)
    flags: CalibrationFlags = field(default_factory=CalibrationFlags)
    intrinsic_input: Path | None = None
    intrinsic_input_right: Path | None = None
    intrinsic_output: Path | None = None
    extrinsic_output: Path | None = None
    undistorted_path: Path | None = None
    rectified_path: Path | None = None

    @property
    def is_stereo(self) -> bool:
        return self.mode is Mode.STEREO

    @property
    def uses_markers(self) -> bool:
        return self.pattern is not Pattern.CHESSBOARD

"""
Calibration session driver.

Runs DETECTING -> SOLVING -> DONE over one image source:
every image (or left/right image pair) is detected and stored before any
solving starts. Solve failures are recorded on the result and never raised
out of the driver; configuration errors are raised before detection.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

import numpy as np

import rigcal.logger
from .calibration.box import MarkerDetector, build_box_correspondences
from .calibration.chessboard import detect_chessboard
from .calibration.intrinsic import check_intrinsics, fixed_intrinsics, solve_intrinsics
from .calibration.markers import detect_markers
from .calibration.matching import match_shared
from .calibration.stereo import solve_stereo
from .config import load_intrinsics, save_intrinsics, save_stereo, validate_settings
from .errors import ResourceUnavailable, SolveFailure
from .imaging import rectify_image_pairs, undistort_images
from .sources import CameraSource, ImageListSource
from .types import (
    CameraIntrinsics,
    CorrespondenceCollection,
    Pattern,
    PointCorrespondences,
    SessionSettings,
    StereoParameters,
)

logger = rigcal.logger.get(__name__)


class SessionState(Enum):
    DETECTING = "DETECTING"
    SOLVING = "SOLVING"
    DONE = "DONE"


@dataclass(frozen=True)
class SessionResult:
    """
    Outcome of a calibration run.

    In stereo mode intrinsics is the left camera and intrinsics_right the
    right one. failures lists every solve or output problem encountered.
    """

    image_count: int
    intrinsics: CameraIntrinsics | None = None
    intrinsics_ok: bool = False
    intrinsics_right: CameraIntrinsics | None = None
    intrinsics_right_ok: bool = False
    stereo: StereoParameters | None = None
    stopped: bool = False
    failures: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failures


def default_source(settings: SessionSettings) -> Iterable[np.ndarray]:
    """Image list if one is configured, otherwise the live camera."""
    if settings.images:
        return ImageListSource(settings.images)
    return CameraSource(settings.camera_id, settings.frame_limit)


class CalibrationSession:
    """
    Owns the correspondence collections for one calibration run.

    points_a holds the only camera in intrinsic mode and the left camera in
    stereo mode; points_b holds the right camera.
    """

    def __init__(
        self,
        settings: SessionSettings,
        detector: MarkerDetector | None = None,
        prior: CameraIntrinsics | None = None,
        prior_right: CameraIntrinsics | None = None,
    ):
        validate_settings(settings)
        self.settings = settings
        self.detector = detector if detector is not None else detect_markers
        self.state = SessionState.DETECTING

        self.points_a: CorrespondenceCollection = []
        self.points_b: CorrespondenceCollection = []
        self.image_size: tuple[int, int] | None = None

        if prior is None and settings.intrinsic_input is not None:
            prior = load_intrinsics(settings.intrinsic_input)
        if prior_right is None and settings.intrinsic_input_right is not None:
            prior_right = load_intrinsics(settings.intrinsic_input_right)
        self.prior = prior
        self.prior_right = prior_right if prior_right is not None else prior

    @property
    def image_count(self) -> int:
        """Images (intrinsic mode) or image pairs (stereo mode) absorbed."""
        return len(self.points_a)

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(self, image: np.ndarray) -> PointCorrespondences:
        """Detect the configured pattern. A miss gives an empty set."""
        size = (int(image.shape[1]), int(image.shape[0]))
        if self.image_size is None:
            self.image_size = size
        elif size != self.image_size:
            logger.warning(f"Image size {size} differs from session size {self.image_size}")

        if self.settings.pattern is Pattern.CHESSBOARD:
            points = detect_chessboard(image, self.settings.chessboard)
        else:
            points = build_box_correspondences(
                image, self.settings.marker_maps, self.detector, self.settings.box
            )

        if len(points) == 0:
            logger.debug(f"Pattern not found in image {self.image_count}")
        return points

    def add_image(self, image: np.ndarray) -> PointCorrespondences:
        """Absorb one image into the single-camera collection."""
        self._require_state(SessionState.DETECTING)
        points = self.detect(image)
        self.points_a.append(points)
        logger.info(f"Image {self.image_count - 1}: {len(points)} points")
        return points

    def add_pair(self, image_a: np.ndarray, image_b: np.ndarray) -> tuple[PointCorrespondences, PointCorrespondences]:
        """Absorb a left/right image pair, keeping both collections aligned."""
        self._require_state(SessionState.DETECTING)
        points_a = self.detect(image_a)
        points_b = self.detect(image_b)
        self.points_a.append(points_a)
        self.points_b.append(points_b)
        logger.info(
            f"Pair {self.image_count - 1}: {len(points_a)} left, {len(points_b)} right points"
        )
        return points_a, points_b

    def _require_state(self, state: SessionState) -> None:
        if self.state is not state:
            raise RuntimeError(f"Session is {self.state.value}, expected {state.value}")

    # ------------------------------------------------------------------
    # Solving
    # ------------------------------------------------------------------

    def _camera_intrinsics(
        self,
        points: CorrespondenceCollection,
        prior: CameraIntrinsics | None,
        label: str,
        failures: list[str],
    ) -> tuple[CameraIntrinsics | None, bool]:
        """Intrinsics for one stereo camera: the fixed prior, or a fresh solve."""
        if prior is not None:
            intrinsics = fixed_intrinsics(prior, points, self.image_size)
            ok = check_intrinsics(intrinsics.matrix, intrinsics.distortion)
        else:
            intrinsics, ok = self._solve_intrinsics(points, None, label, failures)
            if intrinsics is None:
                return None, False

        self._report_intrinsics(intrinsics, ok, label, failures)
        return intrinsics, ok

    def _solve_intrinsics(
        self,
        points: CorrespondenceCollection,
        prior: CameraIntrinsics | None,
        label: str,
        failures: list[str],
    ) -> tuple[CameraIntrinsics | None, bool]:
        try:
            return solve_intrinsics(points, self.image_size, self.settings.flags, prior)
        except SolveFailure as e:
            logger.warning(f"Intrinsic calibration failed for {label}: {e}")
            failures.append(f"{label}: {e}")
            return None, False

    @staticmethod
    def _report_intrinsics(
        intrinsics: CameraIntrinsics,
        ok: bool,
        label: str,
        failures: list[str],
    ) -> None:
        if ok:
            logger.info(
                f"Intrinsic calibration succeeded for {label}. "
                f"Avg reprojection error = {intrinsics.error:.4f}"
            )
        else:
            logger.warning(
                f"Intrinsic calibration failed for {label}. "
                f"Avg reprojection error = {intrinsics.error:.4f}"
            )
            failures.append(f"{label}: intrinsic parameters out of range")

    def solve(self, stopped: bool = False) -> SessionResult:
        """
        Run the solve stage on everything gathered so far.

        Returns:
            SessionResult; failures are recorded on it, never raised
        """
        self._require_state(SessionState.DETECTING)
        self.state = SessionState.SOLVING
        failures: list[str] = []

        if self.image_count == 0 or self.image_size is None:
            logger.warning("No images were processed; nothing to calibrate")
            self.state = SessionState.DONE
            return SessionResult(image_count=0, stopped=stopped, failures=("no images processed",))

        if self.settings.is_stereo:
            result = self._solve_stereo(failures, stopped)
        else:
            intrinsics, ok = self._solve_intrinsics(self.points_a, self.prior, "camera", failures)
            if intrinsics is not None:
                self._report_intrinsics(intrinsics, ok, "camera", failures)
            result = SessionResult(
                image_count=self.image_count,
                intrinsics=intrinsics,
                intrinsics_ok=ok,
                stopped=stopped,
                failures=tuple(failures),
            )

        self.state = SessionState.DONE
        return result

    def _solve_stereo(self, failures: list[str], stopped: bool) -> SessionResult:
        intrinsics_a, ok_a = self._camera_intrinsics(self.points_a, self.prior, "left", failures)
        intrinsics_b, ok_b = self._camera_intrinsics(self.points_b, self.prior_right, "right", failures)

        stereo = None
        if intrinsics_a is not None and intrinsics_b is not None:
            if self.settings.uses_markers:
                points_a, points_b = match_shared(self.points_a, self.points_b)
            else:
                # Every chessboard corner is shared and already index-aligned
                points_a, points_b = self.points_a, self.points_b
            try:
                stereo = solve_stereo(
                    points_a, points_b, intrinsics_a, intrinsics_b, self.image_size
                )
            except SolveFailure as e:
                logger.warning(f"Stereo calibration failed: {e}")
                failures.append(f"stereo: {e}")
        else:
            failures.append("stereo: skipped, intrinsics unavailable")

        return SessionResult(
            image_count=self.image_count,
            intrinsics=intrinsics_a,
            intrinsics_ok=ok_a,
            intrinsics_right=intrinsics_b,
            intrinsics_right_ok=ok_b,
            stereo=stereo,
            stopped=stopped,
            failures=tuple(failures),
        )

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def save(self, result: SessionResult) -> SessionResult:
        """
        Write whichever outputs the result supports.

        Intrinsic files and undistorted images need a successful intrinsic
        solve; stereo files and rectified images need a stereo result.

        Returns:
            The result, with any output failures appended
        """
        settings = self.settings
        failures = list(result.failures)

        try:
            if not settings.is_stereo and result.intrinsics is not None and result.intrinsics_ok:
                if settings.intrinsic_output is not None:
                    save_intrinsics(result.intrinsics, settings.intrinsic_output, settings)
                    logger.info(f"Saved intrinsics to {settings.intrinsic_output}")
                if settings.undistorted_path is not None and settings.images:
                    undistort_images(settings.images, result.intrinsics, settings.undistorted_path)

            if settings.is_stereo and result.stereo is not None:
                if settings.extrinsic_output is not None:
                    save_stereo(result.stereo, settings.extrinsic_output, settings)
                    logger.info(f"Saved stereo parameters to {settings.extrinsic_output}")
                if settings.rectified_path is not None and settings.images:
                    pairs = list(zip(settings.images[0::2], settings.images[1::2]))
                    rectify_image_pairs(
                        pairs,
                        result.intrinsics,
                        result.intrinsics_right,
                        result.stereo,
                        self.image_size,
                        settings.rectified_path,
                    )
        except OSError as e:
            logger.error(f"Could not write calibration output: {e}")
            failures.append(f"output: {e}")

        if len(failures) == len(result.failures):
            return result
        return SessionResult(
            image_count=result.image_count,
            intrinsics=result.intrinsics,
            intrinsics_ok=result.intrinsics_ok,
            intrinsics_right=result.intrinsics_right,
            intrinsics_right_ok=result.intrinsics_right_ok,
            stereo=result.stereo,
            stopped=result.stopped,
            failures=tuple(failures),
        )


def run_session(
    settings: SessionSettings,
    source: Iterable[np.ndarray] | None = None,
    stop_event: threading.Event | None = None,
    detector: MarkerDetector | None = None,
    save: bool = True,
) -> SessionResult:
    """
    Detect over every image from the source, then solve and save.

    The stop event is checked once per image (or pair); when set, the
    session proceeds straight to solving with what it has. A source that
    fails before any image was read raises ResourceUnavailable; a later
    failure ends detection early.

    Args:
        settings: Validated session settings
        source: Iterable of images; defaults to the configured list or camera
        stop_event: Optional cooperative stop flag
        detector: Marker detector override
        save: Write configured outputs after solving

    Returns:
        SessionResult
    """
    session = CalibrationSession(settings, detector=detector)
    images = iter(source if source is not None else default_source(settings))
    stopped = False

    while True:
        if stop_event is not None and stop_event.is_set():
            logger.info(f"Stop requested after {session.image_count} images")
            stopped = True
            break
        try:
            image_a = next(images)
            if settings.is_stereo:
                image_b = next(images, None)
                if image_b is None:
                    logger.warning("Discarding left image without a right partner")
                    break
                session.add_pair(image_a, image_b)
            else:
                session.add_image(image_a)
        except StopIteration:
            break
        except ResourceUnavailable as e:
            if session.image_count == 0:
                raise
            logger.warning(f"{e}; continuing with {session.image_count} images")
            break

    result = session.solve(stopped=stopped)
    if save:
        result = session.save(result)
    return result

"""
Verification images: undistorted single-camera views and rectified pairs.

Output directories must already exist; a missing directory is reported and
the step skipped.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import cv2

import rigcal.logger
from .calibration.stereo import build_rectify_maps
from .errors import ResourceUnavailable
from .sources import read_image
from .types import CameraIntrinsics, StereoParameters

logger = rigcal.logger.get(__name__)


def _output_dir_ok(output_dir: Path, what: str) -> bool:
    if Path(output_dir).is_dir():
        return True
    logger.warning(f"{what} images could not be saved. Invalid path: {output_dir}")
    return False


def undistort_images(
    paths: Sequence[Path],
    intrinsics: CameraIntrinsics,
    output_dir: Path,
) -> list[Path]:
    """
    Write an undistorted copy of each image as undistorted_{i}.jpg.

    Unreadable images are skipped.

    Returns:
        Paths written
    """
    output_dir = Path(output_dir)
    if not _output_dir_ok(output_dir, "Undistorted"):
        return []

    written = []
    for i, path in enumerate(paths):
        try:
            image = read_image(path)
        except ResourceUnavailable as e:
            logger.warning(str(e))
            continue
        undistorted = cv2.undistort(image, intrinsics.matrix, intrinsics.distortion)
        out = output_dir / f"undistorted_{i}.jpg"
        cv2.imwrite(str(out), undistorted)
        written.append(out)

    logger.info(f"Wrote {len(written)} undistorted images to {output_dir}")
    return written


def rectify_image_pairs(
    pairs: Sequence[tuple[Path, Path]],
    intrinsics_a: CameraIntrinsics,
    intrinsics_b: CameraIntrinsics,
    stereo: StereoParameters,
    image_size: tuple[int, int],
    output_dir: Path,
) -> list[Path]:
    """
    Write rectified left/right images as {left,right}_rectified_{i}.jpg.

    Returns:
        Paths written
    """
    output_dir = Path(output_dir)
    if not _output_dir_ok(output_dir, "Rectified"):
        return []

    maps = build_rectify_maps(intrinsics_a, intrinsics_b, stereo, image_size)

    written = []
    for i, pair in enumerate(pairs):
        for view, path, (map1, map2) in zip(("left", "right"), pair, maps):
            try:
                image = read_image(path)
            except ResourceUnavailable as e:
                logger.warning(str(e))
                continue
            rectified = cv2.remap(image, map1, map2, cv2.INTER_LINEAR)
            out = output_dir / f"{view}_rectified_{i}.jpg"
            cv2.imwrite(str(out), rectified)
            written.append(out)

    logger.info(f"Wrote {len(written)} rectified images to {output_dir}")
    return written

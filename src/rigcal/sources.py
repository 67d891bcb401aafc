"""
Image sources for a calibration session.

A source is an iterable of BGR images. Reading is blocking and sequential.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, Sequence

import cv2
import numpy as np

import rigcal.logger
from .errors import ResourceUnavailable

logger = rigcal.logger.get(__name__)

# Larger images are halved before detection
MAX_IMAGE_WIDTH = 1280


def prepare_image(image: np.ndarray) -> np.ndarray:
    """Downscale images wider than MAX_IMAGE_WIDTH by half."""
    if image.shape[1] > MAX_IMAGE_WIDTH:
        return cv2.resize(image, None, fx=0.5, fy=0.5)
    return image


def read_image(path: Path) -> np.ndarray:
    """
    Read an image from disk, downscaled like every session image.

    Raises:
        ResourceUnavailable: if the file is missing or not an image
    """
    image = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if image is None:
        raise ResourceUnavailable(f"Could not read image: {path}")
    return prepare_image(image)


class ImageListSource:
    """Images read from a list of files, in list order."""

    def __init__(self, paths: Sequence[Path]):
        self.paths = [Path(p) for p in paths]

    def __len__(self) -> int:
        return len(self.paths)

    def __iter__(self) -> Iterator[np.ndarray]:
        for path in self.paths:
            yield read_image(path)


class CameraSource:
    """
    Frames from a live camera.

    Iteration ends when a frame cannot be read or frame_limit is reached.
    """

    def __init__(self, camera_id: int, frame_limit: int | None = None):
        self.camera_id = camera_id
        self.frame_limit = frame_limit

    def __iter__(self) -> Iterator[np.ndarray]:
        capture = cv2.VideoCapture(self.camera_id)
        if not capture.isOpened():
            raise ResourceUnavailable(f"Could not open camera {self.camera_id}")

        logger.info(f"Reading frames from camera {self.camera_id}")
        count = 0
        try:
            while self.frame_limit is None or count < self.frame_limit:
                ok, frame = capture.read()
                if not ok or frame is None:
                    logger.info(f"Camera {self.camera_id} feed ended after {count} frames")
                    break
                count += 1
                yield prepare_image(frame)
        finally:
            capture.release()

"""
Frame sources: still image files and live cameras.

Both expose the same three calls so the matchers never care where pixels
come from:

    acquire()  -> open the source, raise SourceUnavailable on failure
    read()     -> current RGB frame, or None while nothing is decoded yet
    release()  -> close the source; safe to call repeatedly
"""

import os
import logging
from typing import Optional

import cv2
import numpy as np

from .errors import SourceUnavailable

logger = logging.getLogger(__name__)

CAMERA_WIDTH = int(os.environ.get("CAMERA_WIDTH", "1280"))
CAMERA_HEIGHT = int(os.environ.get("CAMERA_HEIGHT", "720"))


def load_image(path: str) -> np.ndarray:
    """
    Read an image file as RGB uint8.

    Raises:
        SourceUnavailable: File is missing or cannot be decoded.
    """
    if not os.path.exists(path):
        raise SourceUnavailable(f"Image not found: {path}")
    image = cv2.imread(path)
    if image is None:
        raise SourceUnavailable(f"Could not decode image: {path}")
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


class StillImageSource:
    """A single decoded image, returned on every read()."""

    def __init__(self, path: Optional[str] = None, image: Optional[np.ndarray] = None):
        if path is None and image is None:
            raise ValueError("StillImageSource needs a path or an image")
        self.path = path
        self._image = image
        self._acquired = False

    def acquire(self) -> None:
        if self._image is None:
            self._image = load_image(self.path)
        self._acquired = True

    def read(self) -> Optional[np.ndarray]:
        return self._image if self._acquired else None

    def release(self) -> None:
        self._acquired = False


class CameraSource:
    """Live camera stream through cv2.VideoCapture."""

    def __init__(self, index: int = 0, width: int = CAMERA_WIDTH, height: int = CAMERA_HEIGHT):
        self.index = index
        self.width = width
        self.height = height
        self._capture: Optional[cv2.VideoCapture] = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def acquire(self) -> None:
        if self._capture is not None:
            return

        capture = cv2.VideoCapture(self.index)
        if not capture.isOpened():
            capture.release()
            raise SourceUnavailable(f"Could not open camera {self.index}")

        # Keep latency low: only the newest frame matters.
        capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)

        self._capture = capture
        logger.info(f"Camera {self.index} opened")

    def read(self) -> Optional[np.ndarray]:
        if self._capture is None:
            return None
        ok, frame = self._capture.read()
        if not ok or frame is None:
            return None
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def release(self) -> None:
        if self._capture is None:
            return
        self._capture.release()
        self._capture = None
        logger.info(f"Camera {self.index} released")

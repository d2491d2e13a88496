"""
Webcam capture for the gesture navigator harness.

Wraps OpenCV VideoCapture and hands out RGB frames, optionally mirrored so
the preview behaves like a selfie view.
"""

import sys
from typing import Optional

import cv2
import numpy as np

from .config import CAMERA_WIDTH, CAMERA_HEIGHT, CAMERA_FPS, DEFAULT_CAMERA_INDEX
from .logger import get_logger

logger = get_logger("CameraManager")

# Consecutive failed reads before the camera counts as lost
MAX_CONSECUTIVE_READ_FAILURES = 30


class CameraError(Exception):
    """Raised when camera operations fail."""
    pass


def _open_capture(index: int) -> cv2.VideoCapture:
    """Open a capture, preferring DirectShow on Windows."""
    if sys.platform == "win32":
        capture = cv2.VideoCapture(index, cv2.CAP_DSHOW)
        if capture.isOpened():
            return capture
        capture.release()
        logger.debug("DirectShow failed, trying default backend")
    return cv2.VideoCapture(index)


class CameraManager:
    """
    OpenCV webcam source.

    Attributes:
        camera_index: Camera device index.
        width: Requested capture width.
        height: Requested capture height.
        fps: Requested frame rate.
        mirror: Flip frames horizontally.
    """

    def __init__(
        self,
        camera_index: int = DEFAULT_CAMERA_INDEX,
        width: int = CAMERA_WIDTH,
        height: int = CAMERA_HEIGHT,
        fps: int = CAMERA_FPS,
        mirror: bool = True
    ):
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self.fps = fps
        self.mirror = mirror

        self._capture: Optional[cv2.VideoCapture] = None
        self._frame_count = 0
        self._read_failures = 0

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def open(self) -> None:
        """
        Open the camera.

        Raises:
            CameraError: If the camera cannot be opened.
        """
        if self._capture is not None:
            self.close()

        logger.info(f"Opening camera {self.camera_index}...")
        capture = _open_capture(self.camera_index)
        if not capture.isOpened():
            capture.release()
            raise CameraError(f"Failed to open camera {self.camera_index}")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        capture.set(cv2.CAP_PROP_FPS, self.fps)
        capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)  # Latest frame only

        actual_w = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_h = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        logger.info(f"Camera opened: {actual_w}x{actual_h} @ {capture.get(cv2.CAP_PROP_FPS):.1f} FPS")

        self._capture = capture
        self._frame_count = 0
        self._read_failures = 0

    def close(self) -> None:
        """Release the camera."""
        if self._capture is not None:
            logger.info("Closing camera")
            self._capture.release()
            self._capture = None

    def read_frame_rgb(self) -> Optional[np.ndarray]:
        """
        Read one frame as RGB.

        Returns:
            RGB image (H, W, 3), or None when this read failed.

        Raises:
            CameraError: If the camera is not open or keeps failing.
        """
        if self._capture is None:
            raise CameraError("Camera is not open")

        ok, frame = self._capture.read()
        if not ok or frame is None:
            self._read_failures += 1
            if self._read_failures >= MAX_CONSECUTIVE_READ_FAILURES:
                raise CameraError(
                    f"Camera {self.camera_index} returned no frames "
                    f"{self._read_failures} times in a row"
                )
            return None

        self._read_failures = 0
        self._frame_count += 1
        if self.mirror:
            frame = cv2.flip(frame, 1)
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def __enter__(self) -> "CameraManager":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

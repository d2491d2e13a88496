"""
Camera-session adapter for gesture navigation.

Sits between a camera session and the detection pipeline: throttles frames
to the configured detection frequency, exposes the enable/reset/stop
control surface, and fans recognizer notifications out to any number of
weakly held gesture delegates.
"""

import time
from concurrent.futures import Future
from typing import Callable, Optional

import numpy as np

from .config import GestureConfig
from .dispatcher import Dispatcher, InlineDispatcher
from .gesture_delegate import HandGestureDelegate, MulticastGestureDelegate
from .gesture_models import (
    FailureKind,
    GestureRecognitionError,
    GestureResult,
    GestureState,
    PalmState,
    RecognizerSnapshot,
)
from .hand_detector import HandDetectionManager
from .logger import get_logger
from .pose_estimator import PoseEstimator

logger = get_logger("GestureSessionAdapter")


class GestureSessionAdapter(HandGestureDelegate):
    """
    Feeds camera frames to gesture recognition and broadcasts the results.

    The adapter is the recognizer's delegate; notifications reach the
    subscribed delegates on the dispatcher's consumer context.
    """

    def __init__(
        self,
        estimator: PoseEstimator,
        config: Optional[GestureConfig] = None,
        dispatcher: Optional[Dispatcher] = None,
        clock: Callable[[], float] = time.monotonic,
        detection_manager: Optional[HandDetectionManager] = None
    ):
        """
        Initialize the adapter.

        Args:
            estimator: Hand-pose estimation service.
            config: Recognition settings (defaults if None).
            dispatcher: Consumer-context publisher (inline if None).
            clock: Monotonic time source used by the frame throttle.
            detection_manager: Pre-built detection manager (one is created
                for ``estimator`` if None).
        """
        self.config = config or GestureConfig()
        self._dispatcher = dispatcher or InlineDispatcher()
        self._clock = clock
        self._multicast = MulticastGestureDelegate()

        self._detection = detection_manager or HandDetectionManager(
            estimator, config=self.config, dispatcher=self._dispatcher
        )
        self._detection.gesture_recognizer.delegate = self

        self._gesture_enabled = False
        self._last_process_time: Optional[float] = None
        self._pending: Optional[Future] = None
        self._frame_count = 0
        self._processed_frame_count = 0
        self._dropped_frame_count = 0
        self._closed = False

        logger.info(
            f"GestureSessionAdapter initialized "
            f"(max_detection_frequency={self.config.max_detection_frequency:.1f}/s)"
        )

    # Delegates

    def add_gesture_delegate(self, delegate: HandGestureDelegate) -> None:
        self._multicast.add_delegate(delegate)

    def remove_gesture_delegate(self, delegate: HandGestureDelegate) -> None:
        self._multicast.remove_delegate(delegate)

    # Control surface

    @property
    def detection_manager(self) -> HandDetectionManager:
        return self._detection

    @property
    def is_gesture_enabled(self) -> bool:
        return self._gesture_enabled

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def processed_frame_count(self) -> int:
        return self._processed_frame_count

    @property
    def dropped_frame_count(self) -> int:
        return self._dropped_frame_count

    def set_gesture_enabled(self, enabled: bool) -> None:
        """Enable or disable recognition. Enabling restarts the frame counters."""
        self._gesture_enabled = enabled
        self._detection.set_gesture_enabled(enabled)

        if enabled:
            self._frame_count = 0
            self._processed_frame_count = 0
            self._dropped_frame_count = 0
            self._last_process_time = None

    def reset_gesture_state(self) -> None:
        """Force the recognizer back to idle (e.g. after a step change)."""
        logger.debug("Resetting gesture state")
        self._detection.reset_gesture_recognition()

    def snapshot(self) -> RecognizerSnapshot:
        return self._detection.gesture_recognizer.snapshot()

    def stop(self) -> None:
        """Stop recognition. The adapter can be re-enabled afterwards."""
        logger.info("Stopping gesture session")
        self.set_gesture_enabled(False)

    def close(self) -> None:
        """Stop recognition, shut down the worker and drop all delegates."""
        if self._closed:
            return
        self._closed = True
        self.stop()
        self._detection.close()
        self._multicast.remove_all_delegates()
        logger.debug("GestureSessionAdapter closed")

    def __enter__(self) -> "GestureSessionAdapter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # Session input

    def on_frame(self, frame: np.ndarray) -> Optional[Future]:
        """
        Accept one camera frame.

        Frames are forwarded at most ``max_detection_frequency`` times per
        second, and only while the previous frame is no longer in flight.

        Args:
            frame: RGB image (H, W, 3).

        Returns:
            The detection future for a forwarded frame, else None.
        """
        self._frame_count += 1

        if not self._gesture_enabled or self._closed:
            return None

        now = self._clock()
        if (self._last_process_time is not None
                and now - self._last_process_time < self.config.min_frame_interval):
            return None

        if self._pending is not None and not self._pending.done():
            self._dropped_frame_count += 1
            return None

        self._last_process_time = now
        self._processed_frame_count += 1
        self._pending = self._detection.process_frame(frame)
        return self._pending

    def on_session_error(self, error: Exception) -> None:
        """Report a camera-session failure to the gesture delegates."""
        logger.error(f"Camera session error: {error}")
        failure = GestureRecognitionError(FailureKind.SYSTEM_ERROR, str(error))
        self._dispatcher.post(self._multicast.gesture_recognition_did_fail, failure)

    # HandGestureDelegate (recognizer -> subscribers)

    def gesture_state_did_change(self, state: GestureState) -> None:
        self._multicast.gesture_state_did_change(state)

    def palm_state_did_change(self, palm_state: PalmState) -> None:
        self._multicast.palm_state_did_change(palm_state)

    def hover_progress_did_update(self, progress: float) -> None:
        self._multicast.hover_progress_did_update(progress)

    def did_recognize_gesture(self, result: GestureResult) -> None:
        if not self._gesture_enabled:
            return
        self._multicast.did_recognize_gesture(result)

    def gesture_recognition_did_fail(self, error: GestureRecognitionError) -> None:
        self._multicast.gesture_recognition_did_fail(error)

"""
Frame intake and landmark extraction.

``HandDetectionManager`` hands each camera frame to a single background
worker, runs the pose estimator there, turns every observation into a
validated ``HandDetectionResult`` and forwards the per-frame list to the
gesture recognizer.
"""

import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

import numpy as np

from .config import DIAGNOSTICS_FRAME_INTERVAL, GestureConfig
from .dispatcher import Dispatcher, InlineDispatcher
from .gesture_models import FailureKind, GestureRecognitionError, Point
from .logger import get_logger
from .pose_estimator import (
    HandObservation,
    HandPoseRequest,
    Handedness,
    JointName,
    PoseEstimator,
)
from .scheduler import ThreadedScheduler

if TYPE_CHECKING:
    from .gesture_state_machine import HandGestureRecognizer

logger = get_logger("HandDetectionManager")


class Finger(Enum):
    """The five fingers."""
    THUMB = "thumb"
    INDEX = "index"
    MIDDLE = "middle"
    RING = "ring"
    LITTLE = "little"

    @property
    def joint_names(self) -> tuple[JointName, JointName, JointName, JointName]:
        """Joint chain ordered tip, DIP, PIP, base (thumb: tip, IP, MP, CMC)."""
        return _FINGER_JOINTS[self]


_FINGER_JOINTS = {
    Finger.THUMB: (JointName.THUMB_TIP, JointName.THUMB_IP, JointName.THUMB_MP, JointName.THUMB_CMC),
    Finger.INDEX: (JointName.INDEX_TIP, JointName.INDEX_DIP, JointName.INDEX_PIP, JointName.INDEX_MCP),
    Finger.MIDDLE: (JointName.MIDDLE_TIP, JointName.MIDDLE_DIP, JointName.MIDDLE_PIP, JointName.MIDDLE_MCP),
    Finger.RING: (JointName.RING_TIP, JointName.RING_DIP, JointName.RING_PIP, JointName.RING_MCP),
    Finger.LITTLE: (JointName.LITTLE_TIP, JointName.LITTLE_DIP, JointName.LITTLE_PIP, JointName.LITTLE_MCP),
}

# Query order: finger chains, then the wrist
_QUERY_ORDER = tuple(j for finger in Finger for j in finger.joint_names) + (JointName.WRIST,)


@dataclass(frozen=True)
class JointLandmark:
    """A kept joint in normalized view space (top-left origin)."""
    x: float
    y: float
    confidence: float
    joint: JointName

    @property
    def point(self) -> Point:
        return (self.x, self.y)


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned extent of a hand's landmarks."""
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class HandDetectionResult:
    """
    One validated hand.

    Attributes:
        landmarks: Joints whose confidence passed the floor.
        bounding_box: Min/max extent of the landmarks.
        handedness: Left/right tag.
        confidence: Hand-level estimator score.
    """
    landmarks: tuple[JointLandmark, ...]
    bounding_box: BoundingBox
    handedness: Handedness
    confidence: float

    def landmark(self, joint: JointName) -> Optional[JointLandmark]:
        """Get the kept landmark for a joint, if any."""
        for lm in self.landmarks:
            if lm.joint == joint:
                return lm
        return None

    def landmarks_for_finger(self, finger: Finger) -> list[JointLandmark]:
        """Get the kept landmarks belonging to one finger."""
        joints = finger.joint_names
        return [lm for lm in self.landmarks if lm.joint in joints]

    @property
    def center(self) -> Point:
        """Mean position of all kept landmarks."""
        if not self.landmarks:
            return (0.0, 0.0)
        count = len(self.landmarks)
        return (
            sum(lm.x for lm in self.landmarks) / count,
            sum(lm.y for lm in self.landmarks) / count,
        )


def bounding_box_for(landmarks: tuple[JointLandmark, ...]) -> BoundingBox:
    """Min/max extent of a set of landmarks."""
    if not landmarks:
        return BoundingBox(0.0, 0.0, 0.0, 0.0)
    xs = [lm.x for lm in landmarks]
    ys = [lm.y for lm in landmarks]
    return BoundingBox(
        x=min(xs),
        y=min(ys),
        width=max(xs) - min(xs),
        height=max(ys) - min(ys),
    )


def extract_hand(
    observation: HandObservation,
    min_joint_confidence: float,
    flip_y: bool
) -> Optional[HandDetectionResult]:
    """
    Build a HandDetectionResult from an estimator observation.

    Args:
        observation: Raw estimator output for one hand.
        min_joint_confidence: Joints at or below this confidence are dropped.
        flip_y: Convert a bottom-left origin to top-left (y' = 1 - y).

    Returns:
        The validated hand, or None when no joint passed the floor.
    """
    landmarks = []
    for joint in _QUERY_ORDER:
        point = observation.joints.get(joint)
        if point is None or point.confidence <= min_joint_confidence:
            continue
        y = 1.0 - point.y if flip_y else point.y
        landmarks.append(JointLandmark(x=point.x, y=y, confidence=point.confidence, joint=joint))

    if not landmarks:
        return None

    kept = tuple(landmarks)
    return HandDetectionResult(
        landmarks=kept,
        bounding_box=bounding_box_for(kept),
        handedness=observation.handedness,
        confidence=observation.confidence,
    )


class HandDetectionManager:
    """
    Bridges camera frames to the gesture recognizer.

    Frames are processed on a single background worker in arrival order.
    Published fields (``detected_hands``, ``is_detecting``, ``error``) are
    written only through the dispatcher.
    """

    def __init__(
        self,
        estimator: PoseEstimator,
        config: Optional[GestureConfig] = None,
        dispatcher: Optional[Dispatcher] = None,
        recognizer: Optional["HandGestureRecognizer"] = None
    ):
        """
        Initialize the manager.

        Args:
            estimator: Hand-pose estimation service.
            config: Recognition settings (defaults used if None).
            dispatcher: Consumer-context publisher (inline if None).
            recognizer: Gesture recognizer; one is created on the worker's
                scheduler if None.
        """
        self.config = config or GestureConfig()
        self._estimator = estimator
        self._dispatcher = dispatcher or InlineDispatcher()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="HandPoseWorker")

        if recognizer is None:
            from .gesture_state_machine import HandGestureRecognizer

            recognizer = HandGestureRecognizer(
                config=self.config,
                scheduler=ThreadedScheduler(executor=self._executor),
                dispatcher=self._dispatcher,
            )
        self.gesture_recognizer = recognizer

        self._gesture_enabled = False
        self._frames_received = 0
        self._frames_succeeded = 0
        self._closed = False

        # Published
        self._detected_hands: list[HandDetectionResult] = []
        self._is_detecting = False
        self._error: Optional[str] = None

        logger.info(f"HandDetectionManager initialized (max_hands={self.config.max_hands})")

    # Published state

    @property
    def detected_hands(self) -> list[HandDetectionResult]:
        return list(self._detected_hands)

    @property
    def is_detecting(self) -> bool:
        return self._is_detecting

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def has_detected_hands(self) -> bool:
        return bool(self._detected_hands)

    @property
    def detected_hand_count(self) -> int:
        return len(self._detected_hands)

    @property
    def is_gesture_enabled(self) -> bool:
        return self._gesture_enabled

    @property
    def frames_received(self) -> int:
        return self._frames_received

    @property
    def frames_succeeded(self) -> int:
        return self._frames_succeeded

    def get_landmarks_for_finger(self, finger: Finger) -> list[JointLandmark]:
        """Get one finger's landmarks across all published hands."""
        return [lm for hand in self._detected_hands for lm in hand.landmarks_for_finger(finger)]

    # Intake

    def process_frame(self, frame: np.ndarray) -> Future:
        """
        Queue one camera frame for detection and return immediately.

        Args:
            frame: RGB image (H, W, 3). Must not be mutated until the
                returned future completes.

        Returns:
            Future resolving to the frame's validated hands (empty on failure).
        """
        self._frames_received += 1
        return self._executor.submit(self._process, frame, "Hand detection failed")

    def process_image(self, image: np.ndarray) -> Future:
        """
        Detect hands in a still image.

        Publishes ``is_detecting`` around the work.

        Args:
            image: RGB image (H, W, 3).

        Returns:
            Future resolving to the validated hands.
        """
        if image is None or getattr(image, "ndim", 0) != 3:
            self._publish_error("Unable to process image")
            future: Future = Future()
            future.set_result([])
            return future

        self._dispatcher.post(self._set_is_detecting, True)
        return self._executor.submit(self._process_image, image)

    def _process_image(self, image: np.ndarray) -> list[HandDetectionResult]:
        try:
            return self._process(image, "Image hand detection failed")
        finally:
            self._dispatcher.post(self._set_is_detecting, False)

    def _process(self, frame: np.ndarray, failure_message: str) -> list[HandDetectionResult]:
        request = HandPoseRequest(
            frame=frame,
            max_hands=self.config.max_hands,
            timestamp_ms=int(time.monotonic() * 1000),
        )

        try:
            observations = self._estimator.perform(request)
        except Exception as e:
            message = f"{failure_message}: {e}"
            logger.error(message)
            self._publish_error(message)
            self.gesture_recognizer.report_failure(
                GestureRecognitionError(FailureKind.SYSTEM_ERROR, message)
            )
            return []

        self._frames_succeeded += 1
        if self._frames_received % DIAGNOSTICS_FRAME_INTERVAL == 0:
            logger.debug(
                f"Frames received={self._frames_received}, succeeded={self._frames_succeeded}"
            )

        flip_y = getattr(self._estimator, "origin_bottom_left", False)
        hands = []
        for observation in observations[:self.config.max_hands]:
            hand = extract_hand(observation, self.config.min_joint_confidence, flip_y)
            if hand is not None:
                hands.append(hand)

        self._dispatcher.post(self._publish_hands, list(hands))

        if self._gesture_enabled:
            self.gesture_recognizer.process_hand_detection(hands)

        return hands

    def _publish_hands(self, hands: list[HandDetectionResult]) -> None:
        self._detected_hands = hands
        self._error = None

    def _publish_error(self, message: str) -> None:
        self._dispatcher.post(self._set_error, message)

    def _set_error(self, message: str) -> None:
        self._error = message

    def _set_is_detecting(self, value: bool) -> None:
        self._is_detecting = value

    # Control

    def set_gesture_enabled(self, enabled: bool) -> None:
        """Start or stop forwarding detections to the recognizer."""
        self._gesture_enabled = enabled
        self.gesture_recognizer.set_enabled(enabled)
        logger.debug(f"Gesture recognition {'enabled' if enabled else 'disabled'}")

    def reset_gesture_recognition(self) -> None:
        """Force the recognizer back to idle."""
        self.gesture_recognizer.reset()

    def close(self) -> None:
        """Stop the worker and the recognizer timers."""
        if self._closed:
            return
        self._closed = True
        self._gesture_enabled = False
        self.gesture_recognizer.teardown()
        self._executor.shutdown(wait=True)
        logger.debug("HandDetectionManager closed")

    def __enter__(self) -> "HandDetectionManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

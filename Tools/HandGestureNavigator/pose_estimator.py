"""
Hand-pose estimation interface and its MediaPipe implementation.

The recognizer only depends on ``PoseEstimator``: something that takes a
per-frame ``HandPoseRequest`` and returns one ``HandObservation`` per hand,
each mapping named joints to normalized points with confidences.
``MediaPipeHandEstimator`` provides that on top of MediaPipe Hands and
supports both the Solutions API and the Tasks API.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Protocol

import numpy as np

from .config import (
    MAX_HANDS,
    MEDIAPIPE_MODEL_COMPLEXITY,
    MEDIAPIPE_MIN_DETECTION_CONFIDENCE,
    MEDIAPIPE_MIN_TRACKING_CONFIDENCE,
)
from .logger import get_logger

logger = get_logger("PoseEstimator")


class JointName(Enum):
    """The 21 named hand joints. Values are MediaPipe landmark indices."""
    WRIST = 0
    THUMB_CMC = 1
    THUMB_MP = 2
    THUMB_IP = 3
    THUMB_TIP = 4
    INDEX_MCP = 5
    INDEX_PIP = 6
    INDEX_DIP = 7
    INDEX_TIP = 8
    MIDDLE_MCP = 9
    MIDDLE_PIP = 10
    MIDDLE_DIP = 11
    MIDDLE_TIP = 12
    RING_MCP = 13
    RING_PIP = 14
    RING_DIP = 15
    RING_TIP = 16
    LITTLE_MCP = 17
    LITTLE_PIP = 18
    LITTLE_DIP = 19
    LITTLE_TIP = 20


class Handedness(Enum):
    """Left/right tag reported by the estimator."""
    LEFT = "Left"
    RIGHT = "Right"
    UNKNOWN = "Unknown"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "Handedness":
        """Map an estimator label ("Left"/"Right") to a Handedness."""
        if label:
            for member in cls:
                if member.value.lower() == label.lower():
                    return member
        return cls.UNKNOWN


@dataclass(frozen=True)
class JointPoint:
    """A joint as reported by the estimator, in its own coordinate origin."""
    x: float
    y: float
    confidence: float


@dataclass
class HandObservation:
    """
    One hand returned by an estimator.

    Attributes:
        joints: Reported joints. Joints the estimator could not locate are absent.
        handedness: Left/right tag.
        confidence: Hand-level detection score.
    """
    joints: Mapping[JointName, JointPoint]
    handedness: Handedness = Handedness.UNKNOWN
    confidence: float = 1.0


@dataclass(frozen=True)
class HandPoseRequest:
    """
    Per-frame estimation request.

    A new request is built for every frame so that no request state is
    shared between in-flight estimations.
    """
    frame: np.ndarray = field(repr=False)
    max_hands: int = MAX_HANDS
    timestamp_ms: int = 0


class PoseEstimator(Protocol):
    """Interface of a hand-pose estimation service."""

    # True when the estimator reports y with the origin at the bottom-left.
    origin_bottom_left: bool

    def perform(self, request: HandPoseRequest) -> list[HandObservation]:
        """Run estimation for one frame. May raise on failure."""
        ...

    def close(self) -> None:
        ...


class MediaPipeHandEstimator:
    """
    PoseEstimator backed by MediaPipe Hands.

    Uses the Solutions API (mp.solutions.hands) when the installed
    MediaPipe provides it, otherwise the Tasks API HandLandmarker with a
    cached model file. MediaPipe is imported on ``initialize()``.
    """

    origin_bottom_left = False

    def __init__(
        self,
        max_num_hands: int = MAX_HANDS,
        model_complexity: int = MEDIAPIPE_MODEL_COMPLEXITY,
        min_detection_confidence: float = MEDIAPIPE_MIN_DETECTION_CONFIDENCE,
        min_tracking_confidence: float = MEDIAPIPE_MIN_TRACKING_CONFIDENCE,
        use_image_mode: bool = False
    ):
        """
        Initialize the estimator.

        Args:
            max_num_hands: Upper bound configured on the MediaPipe model.
            model_complexity: Model complexity (0=Lite, 1=Full).
            min_detection_confidence: Minimum detection confidence.
            min_tracking_confidence: Minimum tracking confidence.
            use_image_mode: Process each frame independently instead of
                tracking across frames.
        """
        self.max_num_hands = max_num_hands
        self.model_complexity = model_complexity
        self.min_detection_confidence = min_detection_confidence
        self.min_tracking_confidence = min_tracking_confidence
        self.use_image_mode = use_image_mode

        self._mp = None
        self._hands = None  # Solutions API Hands object
        self._landmarker = None  # Tasks API HandLandmarker object
        self._using_tasks_api = False
        self._last_timestamp_ms = -1
        self._is_initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    @property
    def using_tasks_api(self) -> bool:
        return self._using_tasks_api

    def initialize(self) -> None:
        """
        Load MediaPipe and create the hand model.

        Raises:
            ImportError: If MediaPipe is not installed or incomplete.
        """
        if self._is_initialized:
            return

        try:
            import mediapipe as mp
        except ImportError as e:
            raise ImportError(
                "MediaPipe is required. Install with: pip install mediapipe"
            ) from e

        self._mp = mp
        logger.debug(f"MediaPipe version: {getattr(mp, '__version__', 'unknown')}")

        if hasattr(mp, "solutions") and hasattr(mp.solutions, "hands"):
            self._initialize_solutions_api()
        elif hasattr(mp, "tasks"):
            self._initialize_tasks_api()
        else:
            raise ImportError(
                "MediaPipe installation incomplete. "
                "Neither Solutions API nor Tasks API found."
            )

        self._is_initialized = True

    def _initialize_solutions_api(self) -> None:
        self._using_tasks_api = False
        self._hands = self._mp.solutions.hands.Hands(
            static_image_mode=self.use_image_mode,
            model_complexity=self.model_complexity,
            max_num_hands=self.max_num_hands,
            min_detection_confidence=self.min_detection_confidence,
            min_tracking_confidence=self.min_tracking_confidence
        )
        logger.info(
            f"MediaPipe Hands initialized (Solutions API, max_hands={self.max_num_hands})"
        )

    def _initialize_tasks_api(self) -> None:
        from mediapipe.tasks import python as mp_python
        from mediapipe.tasks.python import vision as mp_vision

        from .model_manager import ensure_hand_landmarker_model

        self._using_tasks_api = True
        model_path = ensure_hand_landmarker_model()
        logger.debug(f"Model path: {model_path}")

        running_mode = (
            mp_vision.RunningMode.IMAGE if self.use_image_mode
            else mp_vision.RunningMode.VIDEO
        )
        options = mp_vision.HandLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=model_path),
            running_mode=running_mode,
            num_hands=self.max_num_hands,
            min_hand_detection_confidence=self.min_detection_confidence,
            min_hand_presence_confidence=self.min_detection_confidence,
            min_tracking_confidence=self.min_tracking_confidence
        )
        self._landmarker = mp_vision.HandLandmarker.create_from_options(options)
        logger.info(
            f"MediaPipe Hands initialized (Tasks API, {running_mode.name} mode, "
            f"max_hands={self.max_num_hands})"
        )

    def close(self) -> None:
        """Release MediaPipe resources."""
        if self._hands:
            self._hands.close()
            self._hands = None
        if self._landmarker:
            self._landmarker.close()
            self._landmarker = None
        self._is_initialized = False
        logger.debug("MediaPipeHandEstimator closed")

    def __enter__(self) -> "MediaPipeHandEstimator":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def perform(self, request: HandPoseRequest) -> list[HandObservation]:
        """
        Estimate hand poses in one RGB frame.

        Args:
            request: Frame (H, W, 3) RGB array and the hand limit.

        Returns:
            At most ``request.max_hands`` observations, in MediaPipe order.
        """
        if not self._is_initialized:
            self.initialize()

        if self._using_tasks_api:
            hands = self._perform_tasks_api(request)
        else:
            hands = self._perform_solutions_api(request)

        return hands[:request.max_hands]

    def _perform_solutions_api(self, request: HandPoseRequest) -> list[HandObservation]:
        results = self._hands.process(request.frame)
        if not results.multi_hand_landmarks:
            return []

        observations = []
        for i, hand_landmarks in enumerate(results.multi_hand_landmarks):
            label, score = None, 1.0
            if results.multi_handedness and i < len(results.multi_handedness):
                category = results.multi_handedness[i].classification[0]
                label, score = category.label, category.score
            observations.append(_to_observation(hand_landmarks.landmark, label, score))

        return observations

    def _perform_tasks_api(self, request: HandPoseRequest) -> list[HandObservation]:
        frame = request.frame
        if not frame.flags["C_CONTIGUOUS"]:
            frame = np.ascontiguousarray(frame)

        mp_image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=frame)

        if self.use_image_mode:
            result = self._landmarker.detect(mp_image)
        else:
            # VIDEO mode requires strictly increasing timestamps
            timestamp_ms = max(request.timestamp_ms, self._last_timestamp_ms + 1)
            self._last_timestamp_ms = timestamp_ms
            result = self._landmarker.detect_for_video(mp_image, timestamp_ms)

        if not result.hand_landmarks:
            return []

        observations = []
        for i, hand_landmarks in enumerate(result.hand_landmarks):
            label, score = None, 1.0
            if result.handedness and i < len(result.handedness):
                category = result.handedness[i][0]
                label, score = category.category_name, category.score
            observations.append(_to_observation(hand_landmarks, label, score))

        return observations


def _to_observation(landmarks, label: Optional[str], score: float) -> HandObservation:
    """Convert a MediaPipe landmark list to a HandObservation."""
    joints = {}
    for joint in JointName:
        if joint.value >= len(landmarks):
            continue
        lm = landmarks[joint.value]
        # Hand landmarks carry no per-joint visibility; fall back to the hand score
        visibility = getattr(lm, "visibility", None)
        confidence = visibility if visibility else score
        joints[joint] = JointPoint(x=float(lm.x), y=float(lm.y), confidence=float(confidence))

    return HandObservation(
        joints=joints,
        handedness=Handedness.from_label(label),
        confidence=float(score)
    )

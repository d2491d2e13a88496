"""
Finger geometry for the confirmation posture and pointing direction.

The confirmation posture is index and thumb extended with middle, ring and
little curled. Thumb and index are tested with a relaxed multiplier, the
other three with a strict one, so noisy input still opens a gesture window
while the curled fingers have to be clearly curled.
"""

import math
import time
from dataclasses import dataclass
from typing import Optional

from .config import (
    GestureConfig,
    POSTURE_FULL_MATCH_CONFIDENCE,
    POSTURE_PARTIAL_MATCH_SCALE,
)
from .gesture_models import MotionDirection, PalmState, Point, distance
from .hand_detector import Finger, HandDetectionResult
from .pose_estimator import JointName

# Joints a finger needs before it is tested at all
MIN_FINGER_LANDMARKS = 3


@dataclass(frozen=True)
class PostureAnalysis:
    """Per-finger result of a confirmation-posture check."""
    thumb_extended: bool = False
    index_extended: bool = False
    middle_bent: bool = False
    ring_bent: bool = False
    little_bent: bool = False
    confidence: float = 0.0

    @property
    def is_confirmation_posture(self) -> bool:
        return all(self.finger_extensions)

    @property
    def finger_extensions(self) -> tuple[bool, bool, bool, bool, bool]:
        return (
            self.thumb_extended,
            self.index_extended,
            self.middle_bent,
            self.ring_bent,
            self.little_bent,
        )

    @property
    def match_count(self) -> int:
        return sum(self.finger_extensions)


@dataclass(frozen=True)
class PointingResult:
    """Index-finger pointing classification."""
    is_pointing: bool
    direction: MotionDirection = MotionDirection.NONE
    confidence: float = 0.0
    position: Point = (0.0, 0.0)
    angle: Optional[float] = None  # degrees


def bending_factor(tip: Point, middle: Point, base: Point) -> float:
    """
    Perpendicular distance of ``middle`` from the tip-base line, over the line length.

    Returns:
        Near 0 for a straight finger; 1.0 when tip and base coincide.
    """
    line_length = distance(tip, base)
    if line_length <= 0:
        return 1.0

    numerator = abs(
        (tip[1] - base[1]) * middle[0]
        - (tip[0] - base[0]) * middle[1]
        + tip[0] * base[1]
        - tip[1] * base[0]
    )
    return numerator / line_length / line_length


def pointing_angle(tip: Point, lower: Point) -> float:
    """Angle in degrees of the vector lower -> tip (y grows downwards)."""
    return math.degrees(math.atan2(tip[1] - lower[1], tip[0] - lower[0]))


class PostureClassifier:
    """Classifies finger extension, the confirmation posture and pointing."""

    def __init__(self, config: Optional[GestureConfig] = None):
        self.config = config or GestureConfig()

    def is_finger_extended(
        self,
        finger: Finger,
        hand: HandDetectionResult,
        multiplier: float = 1.0
    ) -> bool:
        """
        Test whether one finger is extended.

        Args:
            finger: Finger to test.
            hand: Hand holding the landmarks.
            multiplier: Threshold multiplier (relaxed or strict).

        Returns:
            True if extended. Missing joints give False.
        """
        landmarks = {lm.joint: lm.point for lm in hand.landmarks_for_finger(finger)}
        if len(landmarks) < MIN_FINGER_LANDMARKS:
            return False

        tip_name, dip_name, pip_name, base_name = finger.joint_names

        if finger is Finger.THUMB:
            tip, cmc = landmarks.get(tip_name), landmarks.get(base_name)
            if tip is None or cmc is None:
                return False
            threshold = (
                self.config.finger_extension_threshold
                * self.config.thumb_threshold_scale
                * multiplier
            )
            return distance(tip, cmc) > threshold

        try:
            tip = landmarks[tip_name]
            dip = landmarks[dip_name]
            pip = landmarks[pip_name]
            mcp = landmarks[base_name]
        except KeyError:
            return False

        segment_threshold = self.config.segment_min_length * multiplier
        segments_ok = (
            distance(tip, dip) > segment_threshold
            and distance(dip, pip) > segment_threshold
            and distance(pip, mcp) > segment_threshold
        )

        return (
            distance(tip, mcp) > self.config.finger_extension_threshold * multiplier
            and segments_ok
            and bending_factor(tip, pip, mcp) < self.config.bending_threshold / multiplier
        )

    def analyze(self, hand: HandDetectionResult) -> PostureAnalysis:
        """
        Check the confirmation posture.

        Args:
            hand: Hand to classify.

        Returns:
            Per-finger flags and a confidence scaled by the hand confidence.
        """
        relaxed = self.config.relaxed_multiplier
        strict = self.config.strict_multiplier

        analysis = PostureAnalysis(
            thumb_extended=self.is_finger_extended(Finger.THUMB, hand, relaxed),
            index_extended=self.is_finger_extended(Finger.INDEX, hand, relaxed),
            middle_bent=not self.is_finger_extended(Finger.MIDDLE, hand, strict),
            ring_bent=not self.is_finger_extended(Finger.RING, hand, strict),
            little_bent=not self.is_finger_extended(Finger.LITTLE, hand, strict),
        )

        if analysis.is_confirmation_posture:
            confidence = POSTURE_FULL_MATCH_CONFIDENCE
        else:
            confidence = analysis.match_count / 5.0 * POSTURE_PARTIAL_MATCH_SCALE

        return PostureAnalysis(
            thumb_extended=analysis.thumb_extended,
            index_extended=analysis.index_extended,
            middle_bent=analysis.middle_bent,
            ring_bent=analysis.ring_bent,
            little_bent=analysis.little_bent,
            confidence=confidence * hand.confidence,
        )

    def palm_state(self, hand: HandDetectionResult, timestamp: Optional[float] = None) -> PalmState:
        """Build the published PalmState for a hand."""
        analysis = self.analyze(hand)
        return PalmState(
            is_confirmation_posture=analysis.is_confirmation_posture,
            confidence=analysis.confidence,
            center=hand.center,
            finger_extensions=analysis.finger_extensions,
            timestamp=time.time() if timestamp is None else timestamp,
        )

    def classify_pointing(self, hand: HandDetectionResult) -> PointingResult:
        """
        Classify the index finger direction.

        Up (angle in [-max, -min]) means next step, down ([min, max]) means
        previous step. Other angles give MotionDirection.NONE.

        Args:
            hand: Hand to classify.

        Returns:
            A neutral result if the index tip, PIP, MCP or wrist is missing.
        """
        tip = hand.landmark(JointName.INDEX_TIP)
        pip = hand.landmark(JointName.INDEX_PIP)
        mcp = hand.landmark(JointName.INDEX_MCP)
        wrist = hand.landmark(JointName.WRIST)
        if tip is None or pip is None or mcp is None or wrist is None:
            return PointingResult(is_pointing=False)

        bent_count = sum(
            not self.is_finger_extended(finger, hand)
            for finger in (Finger.MIDDLE, Finger.RING, Finger.LITTLE)
        )
        if bent_count < self.config.pointing_min_bent_fingers:
            return PointingResult(is_pointing=False, position=tip.point)

        angle = pointing_angle(tip.point, pip.point)
        low = self.config.pointing_angle_min
        high = self.config.pointing_angle_max
        if -high <= angle <= -low:
            direction = MotionDirection.UP
        elif low <= angle <= high:
            direction = MotionDirection.DOWN
        else:
            direction = MotionDirection.NONE

        return PointingResult(
            is_pointing=True,
            direction=direction,
            confidence=hand.confidence * self.config.pointing_confidence_scale,
            position=tip.point,
            angle=angle,
        )

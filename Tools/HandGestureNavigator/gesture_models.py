"""
Gesture value types for HandGestureNavigator.

Enums and immutable records exchanged between the recognizer, its
delegates and the session adapter.
"""

import math
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional

Point = tuple[float, float]


def distance(a: Point, b: Point) -> float:
    """Euclidean distance between two normalized points."""
    return math.hypot(a[0] - b[0], a[1] - b[1])


class GestureType(Enum):
    """Navigation command produced by a recognized gesture."""
    PREVIOUS_STEP = auto()
    NEXT_STEP = auto()

    @property
    def description(self) -> str:
        return "previous step" if self is GestureType.PREVIOUS_STEP else "next step"


class GestureState(Enum):
    """Recognizer state."""
    IDLE = auto()        # Waiting for a hand
    DETECTING = auto()   # Hand seen, confirmation posture not held
    HOVERING = auto()    # Posture held, dwell timer running
    READY = auto()       # Dwell confirmed, waiting for a pointing direction
    PROCESSING = auto()  # Pointing direction accepted
    COMPLETED = auto()   # Command emitted, waiting for the hand to leave

    @property
    def description(self) -> str:
        return _STATE_DESCRIPTIONS[self]


_STATE_DESCRIPTIONS = {
    GestureState.IDLE: "idle",
    GestureState.DETECTING: "detecting",
    GestureState.HOVERING: "hovering",
    GestureState.READY: "ready",
    GestureState.PROCESSING: "processing",
    GestureState.COMPLETED: "completed",
}


class MotionDirection(Enum):
    """Coarse direction of a pointing finger or hand motion."""
    UP = auto()
    DOWN = auto()
    LEFT = auto()
    RIGHT = auto()
    NONE = auto()


class FailureKind(Enum):
    """Kinds reported on the recognition failure channel."""
    NO_HAND_DETECTED = auto()
    POSTURE_NOT_HELD = auto()
    HOVER_TIMEOUT = auto()
    MOTION_TOO_SLOW = auto()
    MOTION_TOO_FAST = auto()
    AMBIGUOUS_MOTION = auto()
    SYSTEM_ERROR = auto()


class GestureRecognitionError(Exception):
    """
    Failure reported to gesture delegates.

    Instances are delivered as values through
    ``gesture_recognition_did_fail``; the recognizer never raises them.

    Attributes:
        kind: Failure category.
        detail: Optional message (set for SYSTEM_ERROR).
    """

    def __init__(self, kind: FailureKind, detail: Optional[str] = None):
        self.kind = kind
        self.detail = detail
        message = kind.name.lower() if detail is None else f"{kind.name.lower()}: {detail}"
        super().__init__(message)


@dataclass(frozen=True)
class PalmState:
    """
    Confirmation-posture analysis for one hand at one instant.

    Attributes:
        is_confirmation_posture: Index and thumb extended, other fingers curled.
        confidence: Posture confidence scaled by the hand confidence.
        center: Mean of the hand's kept landmarks.
        finger_extensions: Thumb extended, index extended, middle bent,
            ring bent, little bent.
        timestamp: Wall-clock time of the analysis.
    """
    is_confirmation_posture: bool
    confidence: float
    center: Point
    finger_extensions: tuple[bool, bool, bool, bool, bool]
    timestamp: float = field(default_factory=time.time)


@dataclass
class HoverState:
    """Dwell tracking while the recognizer is hovering."""
    start_time: float
    start_position: Point
    current_position: Point
    is_stable: bool = True
    duration: float = 0.0

    def is_completed(self, hover_duration: float) -> bool:
        return self.duration >= hover_duration


@dataclass
class MotionTrackingState:
    """Auxiliary trace of hand motion while ready."""
    start_position: Point
    current_position: Point
    start_time: float
    velocity: Point = (0.0, 0.0)
    direction: MotionDirection = MotionDirection.NONE
    distance: float = 0.0

    def advanced(self, position: Point) -> "MotionTrackingState":
        """
        Return a new trace that ends at ``position``.

        Args:
            position: Latest hand center.

        Returns:
            Updated tracking state with velocity, distance and dominant direction.
        """
        velocity = (position[0] - self.current_position[0],
                    position[1] - self.current_position[1])
        dx = position[0] - self.start_position[0]
        dy = position[1] - self.start_position[1]

        if abs(dy) > abs(dx):
            direction = MotionDirection.UP if dy < 0 else MotionDirection.DOWN
        elif abs(dx) > abs(dy):
            direction = MotionDirection.LEFT if dx < 0 else MotionDirection.RIGHT
        else:
            direction = MotionDirection.NONE

        return MotionTrackingState(
            start_position=self.start_position,
            current_position=position,
            start_time=self.start_time,
            velocity=velocity,
            direction=direction,
            distance=math.hypot(dx, dy),
        )


@dataclass(frozen=True)
class GestureResult:
    """A recognized navigation command."""
    gesture_type: GestureType
    confidence: float
    hand_position: Point
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class RecognizerSnapshot:
    """Read-only diagnostics view of a recognizer."""
    state: GestureState
    hover_progress: float
    palm_state: Optional[PalmState]
    last_result: Optional[GestureResult]
    is_enabled: bool

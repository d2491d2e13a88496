"""
HandGestureNavigator - Hands-free recipe step navigation using MediaPipe Hands.

Turns per-frame hand landmarks into "previous step" / "next step" commands
through a timed, confidence-gated gesture state machine.
"""

__version__ = "1.0.0"
__author__ = "ChefHelper Team"

from .config import GestureConfig, GestureConfigError
from .dispatcher import InlineDispatcher, QueuedDispatcher
from .gesture_delegate import HandGestureDelegate, MulticastGestureDelegate
from .gesture_models import (
    FailureKind,
    GestureRecognitionError,
    GestureResult,
    GestureState,
    GestureType,
    MotionDirection,
    PalmState,
    RecognizerSnapshot,
)
from .gesture_state_machine import HandGestureRecognizer
from .hand_detector import Finger, HandDetectionManager, HandDetectionResult, JointLandmark
from .pose_estimator import HandObservation, HandPoseRequest, JointName, JointPoint, MediaPipeHandEstimator
from .posture_classifier import PostureClassifier
from .scheduler import ThreadedScheduler
from .session_adapter import GestureSessionAdapter

__all__ = [
    "GestureConfig",
    "GestureConfigError",
    "InlineDispatcher",
    "QueuedDispatcher",
    "HandGestureDelegate",
    "MulticastGestureDelegate",
    "FailureKind",
    "GestureRecognitionError",
    "GestureResult",
    "GestureState",
    "GestureType",
    "MotionDirection",
    "PalmState",
    "RecognizerSnapshot",
    "HandGestureRecognizer",
    "Finger",
    "HandDetectionManager",
    "HandDetectionResult",
    "JointLandmark",
    "HandObservation",
    "HandPoseRequest",
    "JointName",
    "JointPoint",
    "MediaPipeHandEstimator",
    "PostureClassifier",
    "ThreadedScheduler",
    "GestureSessionAdapter",
]

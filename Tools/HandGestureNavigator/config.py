"""
Configuration constants for HandGestureNavigator.

This module contains all tunable parameters for frame intake, posture
classification, hover confirmation, pointing detection and the webcam
harness. ``GestureConfig`` bundles the recognition thresholds so each
recognizer can be constructed with its own values.
"""

from dataclasses import dataclass
from typing import Final


# Camera configuration (webcam harness)
CAMERA_WIDTH: Final[int] = 640
CAMERA_HEIGHT: Final[int] = 480
CAMERA_FPS: Final[int] = 30
DEFAULT_CAMERA_INDEX: Final[int] = 0

# MediaPipe configuration
MEDIAPIPE_MODEL_COMPLEXITY: Final[int] = 0  # Lite model for performance
MEDIAPIPE_MIN_DETECTION_CONFIDENCE: Final[float] = 0.5
MEDIAPIPE_MIN_TRACKING_CONFIDENCE: Final[float] = 0.5

# =============================================================================
# Frame intake
# =============================================================================
MAX_HANDS: Final[int] = 2  # Hands requested from the estimator per frame
MIN_JOINT_CONFIDENCE: Final[float] = 0.3  # Joints at or below are discarded
MAX_DETECTION_FREQUENCY: Final[float] = 15.0  # Frames/s forwarded by the session adapter
DIAGNOSTICS_FRAME_INTERVAL: Final[int] = 30  # Log intake stats every N frames

# =============================================================================
# Confirmation posture (index + thumb extended, other fingers curled)
# =============================================================================
FINGER_EXTENSION_THRESHOLD: Final[float] = 0.3  # Tip-to-base distance (normalized)
THUMB_THRESHOLD_SCALE: Final[float] = 0.8  # Thumb uses a shorter reach
SEGMENT_MIN_LENGTH: Final[float] = 0.02  # Each joint-to-joint segment
BENDING_THRESHOLD: Final[float] = 0.3  # Max bending factor for a straight finger
RELAXED_MULTIPLIER: Final[float] = 0.6  # Thumb and index
STRICT_MULTIPLIER: Final[float] = 0.5  # Middle, ring and little
CONFIRMATION_CONFIDENCE_THRESHOLD: Final[float] = 0.5
POSTURE_FULL_MATCH_CONFIDENCE: Final[float] = 0.9
POSTURE_PARTIAL_MATCH_SCALE: Final[float] = 0.6

# =============================================================================
# Hover confirmation
# =============================================================================
HOVER_DURATION: Final[float] = 1.0  # seconds
HOVER_STABILITY_THRESHOLD: Final[float] = 0.15  # Max centroid drift (normalized)
HOVER_RESTART_FACTOR: Final[float] = 2.0  # Drift beyond threshold * factor restarts
HOVER_SAMPLE_INTERVAL: Final[float] = 0.1  # seconds
POSTURE_CHECK_INTERVAL: Final[float] = 0.5  # seconds between re-checks while hovering

# =============================================================================
# Pointing / motion
# =============================================================================
MOTION_TIME_WINDOW: Final[float] = 2.0  # Position history kept (seconds)
PROCESSING_TIMEOUT: Final[float] = 1.0  # seconds before processing falls back to idle
POINTING_CONFIDENCE_SCALE: Final[float] = 0.8
POINTING_MIN_BENT_FINGERS: Final[int] = 0  # 0 keeps the bent-finger gate open
POINTING_ANGLE_MIN: Final[float] = 30.0  # degrees
POINTING_ANGLE_MAX: Final[float] = 150.0  # degrees

# Logging
LOG_FILENAME: Final[str] = "hand_gesture_navigator.log"
LOG_MAX_BYTES: Final[int] = 5 * 1024 * 1024  # 5 MB
LOG_BACKUP_COUNT: Final[int] = 3

# Exit codes
EXIT_SUCCESS: Final[int] = 0
EXIT_CAMERA_ERROR: Final[int] = 2
EXIT_RUNTIME_ERROR: Final[int] = 3


class GestureConfigError(ValueError):
    """Raised when a GestureConfig holds values the recognizer cannot use."""
    pass


@dataclass
class GestureConfig:
    """Container for gesture recognition thresholds and timing windows."""

    # Intake
    max_hands: int = MAX_HANDS
    min_joint_confidence: float = MIN_JOINT_CONFIDENCE
    max_detection_frequency: float = MAX_DETECTION_FREQUENCY

    # Posture
    finger_extension_threshold: float = FINGER_EXTENSION_THRESHOLD
    thumb_threshold_scale: float = THUMB_THRESHOLD_SCALE
    segment_min_length: float = SEGMENT_MIN_LENGTH
    bending_threshold: float = BENDING_THRESHOLD
    relaxed_multiplier: float = RELAXED_MULTIPLIER
    strict_multiplier: float = STRICT_MULTIPLIER
    confirmation_confidence_threshold: float = CONFIRMATION_CONFIDENCE_THRESHOLD

    # Hover
    hover_duration: float = HOVER_DURATION
    hover_stability_threshold: float = HOVER_STABILITY_THRESHOLD
    hover_restart_factor: float = HOVER_RESTART_FACTOR
    hover_sample_interval: float = HOVER_SAMPLE_INTERVAL
    posture_check_interval: float = POSTURE_CHECK_INTERVAL

    # Pointing / motion
    motion_time_window: float = MOTION_TIME_WINDOW
    processing_timeout: float = PROCESSING_TIMEOUT
    pointing_confidence_scale: float = POINTING_CONFIDENCE_SCALE
    pointing_min_bent_fingers: int = POINTING_MIN_BENT_FINGERS
    pointing_angle_min: float = POINTING_ANGLE_MIN
    pointing_angle_max: float = POINTING_ANGLE_MAX

    def __post_init__(self) -> None:
        """
        Validate configuration constraints.

        Raises:
            GestureConfigError: If one or more fields are out of range.
        """
        if self.max_hands < 1:
            raise GestureConfigError("max_hands must be at least 1.")
        if not 0.0 <= self.min_joint_confidence < 1.0:
            raise GestureConfigError("min_joint_confidence must be in range [0, 1).")
        if self.max_detection_frequency <= 0:
            raise GestureConfigError("max_detection_frequency must be greater than 0.")
        if self.relaxed_multiplier <= 0 or self.strict_multiplier <= 0:
            raise GestureConfigError("threshold multipliers must be greater than 0.")
        if not 0.0 <= self.confirmation_confidence_threshold <= 1.0:
            raise GestureConfigError("confirmation_confidence_threshold must be in range [0, 1].")
        if self.hover_duration <= 0 or self.hover_sample_interval <= 0:
            raise GestureConfigError("hover timing values must be greater than 0.")
        if self.hover_stability_threshold <= 0:
            raise GestureConfigError("hover_stability_threshold must be greater than 0.")
        if self.hover_restart_factor < 1.0:
            raise GestureConfigError("hover_restart_factor must be at least 1.0.")
        if self.posture_check_interval < 0:
            raise GestureConfigError("posture_check_interval must be non-negative.")
        if not 0 <= self.pointing_min_bent_fingers <= 3:
            raise GestureConfigError("pointing_min_bent_fingers must be in range [0, 3].")
        if not 0.0 <= self.pointing_angle_min < self.pointing_angle_max <= 180.0:
            raise GestureConfigError("pointing angles must satisfy 0 <= min < max <= 180.")

    @property
    def hover_restart_threshold(self) -> float:
        """Centroid drift that restarts the hover timer."""
        return self.hover_stability_threshold * self.hover_restart_factor

    @property
    def min_frame_interval(self) -> float:
        """Minimum seconds between frames forwarded to intake."""
        return 1.0 / self.max_detection_frequency

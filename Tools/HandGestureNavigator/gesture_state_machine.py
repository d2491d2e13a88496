"""
Gesture state machine for HandGestureNavigator.

Turns per-frame hand detections into at most one navigation command per
"show hand -> confirm -> point -> remove hand" cycle:

    idle -> hovering       confirmation posture held with enough confidence
    hovering -> detecting  posture lost (periodic re-check or final check)
    hovering -> ready      hover duration reached and posture still held
    ready -> processing    index finger pointing
    processing -> completed  up/down direction emitted as a GestureResult
    processing -> idle     no up/down direction within the processing timeout
    any -> idle            no hand detected

After a command the recognizer ignores posture and pointing until a batch
with no hands arrives.
"""

import threading
import time
import weakref
from collections import deque
from typing import Callable, Optional

from .config import GestureConfig
from .dispatcher import Dispatcher, InlineDispatcher
from .gesture_delegate import HandGestureDelegate
from .gesture_models import (
    GestureRecognitionError,
    GestureResult,
    GestureState,
    GestureType,
    HoverState,
    MotionDirection,
    MotionTrackingState,
    PalmState,
    Point,
    RecognizerSnapshot,
    distance,
)
from .hand_detector import HandDetectionResult
from .logger import get_logger
from .posture_classifier import PointingResult, PostureClassifier
from .scheduler import Scheduler, ThreadedScheduler, TimerHandle

logger = get_logger("HandGestureRecognizer")

STATE_HISTORY_SIZE = 10

_DIRECTION_GESTURES = {
    MotionDirection.UP: GestureType.NEXT_STEP,
    MotionDirection.DOWN: GestureType.PREVIOUS_STEP,
}


class HandGestureRecognizer:
    """
    Timed, confidence-gated gesture state machine.

    Detection batches and hover-timer ticks are expected on one worker;
    ``reset()`` and ``set_enabled()`` may come from the owner's thread.
    Published fields (``current_state``, ``palm_state``, ``hover_progress``,
    ``last_gesture_result``) and delegate callbacks only change inside
    callables posted to the dispatcher.
    """

    def __init__(
        self,
        config: Optional[GestureConfig] = None,
        scheduler: Optional[Scheduler] = None,
        dispatcher: Optional[Dispatcher] = None,
        delegate: Optional[HandGestureDelegate] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the recognizer.

        Args:
            config: Thresholds and timing windows (defaults if None).
            scheduler: Source of the hover-sample timer.
            dispatcher: Consumer-context publisher (inline if None).
            delegate: Notification receiver, held weakly.
            clock: Monotonic time source in seconds.
        """
        self.config = config or GestureConfig()
        self._classifier = PostureClassifier(self.config)
        self._scheduler = scheduler or ThreadedScheduler()
        self._dispatcher = dispatcher or InlineDispatcher()
        self._clock = clock
        self._lock = threading.RLock()

        self._delegate_ref: Optional[weakref.ref] = None
        self.delegate = delegate

        self._enabled = True
        self._state = GestureState.IDLE
        self._awaiting_removal = False
        self._triggered_directions: set[MotionDirection] = set()
        self._state_history: deque[GestureState] = deque(maxlen=STATE_HISTORY_SIZE)
        self._position_history: deque[tuple[Point, float]] = deque()

        self._latest_hand: Optional[HandDetectionResult] = None
        self._palm: Optional[PalmState] = None
        self._hover: Optional[HoverState] = None
        self._hover_timer: Optional[TimerHandle] = None
        self._hover_generation = 0
        self._last_posture_check = 0.0
        self._motion: Optional[MotionTrackingState] = None
        self._processing_started = 0.0

        # Published
        self._published_state = GestureState.IDLE
        self._hover_progress = 0.0
        self._palm_state: Optional[PalmState] = None
        self._last_result: Optional[GestureResult] = None

    # =========================================================================
    # Published state
    # =========================================================================

    @property
    def delegate(self) -> Optional[HandGestureDelegate]:
        return self._delegate_ref() if self._delegate_ref is not None else None

    @delegate.setter
    def delegate(self, value: Optional[HandGestureDelegate]) -> None:
        self._delegate_ref = weakref.ref(value) if value is not None else None

    @property
    def current_state(self) -> GestureState:
        return self._published_state

    @property
    def hover_progress(self) -> float:
        return self._hover_progress

    @property
    def palm_state(self) -> Optional[PalmState]:
        return self._palm_state

    @property
    def last_gesture_result(self) -> Optional[GestureResult]:
        return self._last_result

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def is_awaiting_removal(self) -> bool:
        return self._awaiting_removal

    @property
    def triggered_directions(self) -> frozenset[MotionDirection]:
        return frozenset(self._triggered_directions)

    @property
    def hover_state(self) -> Optional[HoverState]:
        return self._hover

    @property
    def motion_tracking_state(self) -> Optional[MotionTrackingState]:
        return self._motion

    @property
    def position_history(self) -> list[tuple[Point, float]]:
        return list(self._position_history)

    @property
    def state_history(self) -> list[GestureState]:
        return list(self._state_history)

    def snapshot(self) -> RecognizerSnapshot:
        """Read-only diagnostics view of the published state."""
        return RecognizerSnapshot(
            state=self._published_state,
            hover_progress=self._hover_progress,
            palm_state=self._palm_state,
            last_result=self._last_result,
            is_enabled=self._enabled,
        )

    # =========================================================================
    # Control
    # =========================================================================

    def process_hand_detection(self, hands: list[HandDetectionResult]) -> None:
        """
        Feed one frame's detections.

        Args:
            hands: Validated hands of the frame. An empty list means the
                hand left the view.
        """
        with self._lock:
            if not self._enabled:
                return

            if not hands:
                self._handle_no_hand()
                return

            best = max(hands, key=lambda hand: hand.confidence)
            self._process_hand(best)

    def reset(self) -> None:
        """Return to idle and drop timers, hover/motion state and history."""
        with self._lock:
            self._change_state(GestureState.IDLE)
            self._cleanup()
            self._state_history.clear()
            self._awaiting_removal = False
            self._triggered_directions.clear()
            self._latest_hand = None
            self._palm = None
            self._dispatcher.post(self._publish_reset)
        logger.debug("Recognizer reset")

    def set_enabled(self, enabled: bool) -> None:
        """
        Enable or disable recognition.

        Disabling also resets, so re-enabling always starts from idle.
        """
        with self._lock:
            self._enabled = enabled
            if not enabled:
                self.reset()
        logger.debug(f"Recognizer {'enabled' if enabled else 'disabled'}")

    def teardown(self) -> None:
        """Disable recognition and cancel timers."""
        with self._lock:
            self._enabled = False
            self._cleanup()
            self._state = GestureState.IDLE
            self._dispatcher.post(self._publish_reset)
            self._delegate_ref = None

    def report_failure(self, error: GestureRecognitionError) -> None:
        """Deliver an upstream failure to the delegate. State is left as is."""
        self._dispatcher.post(self._publish_failure, error)

    # =========================================================================
    # Transitions
    # =========================================================================

    def _change_state(self, new_state: GestureState) -> None:
        if new_state is self._state:
            return

        old_state = self._state
        self._state = new_state
        self._state_history.append(new_state)
        logger.debug(f"State {old_state.description} -> {new_state.description}")
        self._dispatcher.post(self._publish_state, new_state)

        if old_state is GestureState.HOVERING:
            self._stop_hover()

        if new_state is GestureState.IDLE:
            self._cleanup()
        elif new_state is GestureState.HOVERING:
            self._start_hover()
        elif new_state is GestureState.READY:
            self._start_motion_tracking()
        elif new_state is GestureState.PROCESSING:
            self._processing_started = self._clock()

    def _handle_no_hand(self) -> None:
        if self._awaiting_removal:
            self._awaiting_removal = False
            self._triggered_directions.clear()
            logger.debug("Hand removed, gesture cycle re-armed")
        self._change_state(GestureState.IDLE)

    def _process_hand(self, hand: HandDetectionResult) -> None:
        now = self._clock()
        self._latest_hand = hand
        self._update_position_history(hand.center, now)

        # Only position tracking until the hand leaves
        if self._awaiting_removal:
            return

        state = self._state
        if state in (GestureState.IDLE, GestureState.DETECTING):
            self._check_posture(hand)
        elif state is GestureState.HOVERING:
            self._recheck_hover_posture(hand, now)
        elif state is GestureState.READY:
            self._detect_pointing(hand)
        elif state is GestureState.PROCESSING:
            self._continue_processing(hand, now)

    def _update_position_history(self, position: Point, now: float) -> None:
        self._position_history.append((position, now))
        cutoff = now - self.config.motion_time_window
        while self._position_history and self._position_history[0][1] < cutoff:
            self._position_history.popleft()

    # =========================================================================
    # Posture
    # =========================================================================

    def _update_palm(self, hand: HandDetectionResult) -> PalmState:
        palm = self._classifier.palm_state(hand)
        self._palm = palm
        self._dispatcher.post(self._publish_palm_state, palm)
        return palm

    def _check_posture(self, hand: HandDetectionResult) -> None:
        palm = self._update_palm(hand)

        if (palm.is_confirmation_posture
                and palm.confidence >= self.config.confirmation_confidence_threshold):
            self._change_state(GestureState.HOVERING)

    def _recheck_hover_posture(self, hand: HandDetectionResult, now: float) -> None:
        palm = self._update_palm(hand)

        # Posture loss is only decided every posture_check_interval
        if now - self._last_posture_check < self.config.posture_check_interval:
            return
        self._last_posture_check = now

        if not palm.is_confirmation_posture:
            logger.debug("Confirmation posture lost while hovering")
            self._change_state(GestureState.DETECTING)

    # =========================================================================
    # Hover
    # =========================================================================

    def _start_hover(self) -> None:
        now = self._clock()
        center = self._palm.center if self._palm is not None else self._latest_hand.center
        self._hover = HoverState(start_time=now, start_position=center, current_position=center)
        self._last_posture_check = now

        self._hover_generation += 1
        generation = self._hover_generation
        self._dispatcher.post(self._publish_hover_progress, 0.0)
        self._hover_timer = self._scheduler.schedule_repeating(
            self.config.hover_sample_interval,
            lambda: self._on_hover_sample(generation),
        )

    def _stop_hover(self) -> None:
        if self._hover_timer is not None:
            self._hover_timer.cancel()
            self._hover_timer = None
        self._hover_generation += 1
        self._hover = None

    def _on_hover_sample(self, generation: int) -> None:
        with self._lock:
            if (not self._enabled
                    or self._state is not GestureState.HOVERING
                    or generation != self._hover_generation
                    or self._hover is None):
                return

            now = self._clock()
            hover = self._hover
            position = (
                self._latest_hand.center if self._latest_hand is not None
                else hover.current_position
            )
            displacement = distance(position, hover.start_position)

            if displacement > self.config.hover_restart_threshold:
                logger.debug(f"Hover restarted (moved {displacement:.3f})")
                self._hover = HoverState(
                    start_time=now,
                    start_position=position,
                    current_position=position,
                    is_stable=False,
                )
                self._dispatcher.post(self._publish_hover_progress, 0.0)
                return

            self._hover = HoverState(
                start_time=hover.start_time,
                start_position=hover.start_position,
                current_position=position,
                is_stable=displacement <= self.config.hover_stability_threshold,
                duration=now - hover.start_time,
            )
            progress = min(self._hover.duration / self.config.hover_duration, 1.0)
            self._dispatcher.post(self._publish_hover_progress, progress)

            if self._hover.is_completed(self.config.hover_duration):
                self._complete_hover()

    def _complete_hover(self) -> None:
        hand = self._latest_hand
        if hand is not None and self._classifier.analyze(hand).is_confirmation_posture:
            logger.debug("Hover confirmed")
            self._change_state(GestureState.READY)
        else:
            logger.debug("Confirmation posture lost at end of hover")
            self._change_state(GestureState.DETECTING)

    # =========================================================================
    # Pointing
    # =========================================================================

    def _start_motion_tracking(self) -> None:
        if self._palm is not None:
            start = self._palm.center
        elif self._latest_hand is not None:
            start = self._latest_hand.center
        else:
            start = (0.0, 0.0)
        self._motion = MotionTrackingState(
            start_position=start,
            current_position=start,
            start_time=self._clock(),
        )

    def _detect_pointing(self, hand: HandDetectionResult) -> None:
        pointing = self._classifier.classify_pointing(hand)
        if pointing.is_pointing and pointing.direction not in self._triggered_directions:
            self._change_state(GestureState.PROCESSING)
            if pointing.direction in _DIRECTION_GESTURES:
                self._recognize(pointing)
            return

        self._advance_motion(hand)

    def _continue_processing(self, hand: HandDetectionResult, now: float) -> None:
        if now - self._processing_started > self.config.processing_timeout:
            logger.debug("No direction resolved before processing timeout")
            self._change_state(GestureState.IDLE)
            return

        pointing = self._classifier.classify_pointing(hand)
        if (pointing.is_pointing
                and pointing.direction in _DIRECTION_GESTURES
                and pointing.direction not in self._triggered_directions):
            self._recognize(pointing)
            return

        self._advance_motion(hand)

    def _advance_motion(self, hand: HandDetectionResult) -> None:
        if self._motion is not None:
            self._motion = self._motion.advanced(hand.center)

    def _recognize(self, pointing: PointingResult) -> None:
        gesture_type = _DIRECTION_GESTURES[pointing.direction]
        result = GestureResult(
            gesture_type=gesture_type,
            confidence=pointing.confidence,
            hand_position=pointing.position,
        )

        self._triggered_directions.add(pointing.direction)
        self._awaiting_removal = True
        logger.info(
            f"Gesture recognized: {gesture_type.description} "
            f"(angle={pointing.angle:.1f}, confidence={pointing.confidence:.2f})"
        )

        self._dispatcher.post(self._publish_result, result)
        self._change_state(GestureState.COMPLETED)

    # =========================================================================
    # Cleanup
    # =========================================================================

    def _cleanup(self) -> None:
        self._stop_hover()
        self._motion = None
        self._position_history.clear()

    # =========================================================================
    # Publication (consumer context)
    # =========================================================================

    def _publish_state(self, state: GestureState) -> None:
        self._published_state = state
        delegate = self.delegate
        if delegate is not None:
            delegate.gesture_state_did_change(state)

    def _publish_palm_state(self, palm_state: PalmState) -> None:
        self._palm_state = palm_state
        delegate = self.delegate
        if delegate is not None:
            delegate.palm_state_did_change(palm_state)

    def _publish_hover_progress(self, progress: float) -> None:
        self._hover_progress = progress
        delegate = self.delegate
        if delegate is not None:
            delegate.hover_progress_did_update(progress)

    def _publish_result(self, result: GestureResult) -> None:
        self._last_result = result
        delegate = self.delegate
        if delegate is not None:
            delegate.did_recognize_gesture(result)

    def _publish_failure(self, error: GestureRecognitionError) -> None:
        delegate = self.delegate
        if delegate is not None:
            delegate.gesture_recognition_did_fail(error)

    def _publish_reset(self) -> None:
        self._published_state = GestureState.IDLE
        self._palm_state = None
        self._hover_progress = 0.0
        self._last_result = None

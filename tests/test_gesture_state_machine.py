import dataclasses
import gc

from HandGestureNavigator.config import GestureConfig
from HandGestureNavigator.dispatcher import QueuedDispatcher
from HandGestureNavigator.gesture_models import (
    FailureKind,
    GestureRecognitionError,
    GestureState,
    GestureType,
    MotionDirection,
)
from HandGestureNavigator.pose_estimator import JointName

from hand_fixtures import (
    POINT_DOWN,
    POINT_SIDEWAYS,
    POINT_UP,
    drive_to_ready,
    hover_for,
    make_recognizer,
    open_hand,
    pointing_hand,
    posture_hand,
)


def test_posture_hold_then_point_up_emits_next_step() -> None:
    recognizer, scheduler, clock, delegate = make_recognizer()

    drive_to_ready(recognizer, scheduler, clock)
    assert recognizer.current_state is GestureState.READY

    recognizer.process_hand_detection([pointing_hand(POINT_UP)])

    assert recognizer.current_state is GestureState.COMPLETED
    assert delegate.states == [
        GestureState.HOVERING,
        GestureState.READY,
        GestureState.PROCESSING,
        GestureState.COMPLETED,
    ]
    assert len(delegate.results) == 1
    result = delegate.results[0]
    assert result.gesture_type is GestureType.NEXT_STEP
    assert result.confidence == 0.9 * 0.8
    assert recognizer.last_gesture_result == result
    assert recognizer.is_awaiting_removal
    assert recognizer.triggered_directions == frozenset({MotionDirection.UP})


def test_point_down_emits_previous_step() -> None:
    recognizer, scheduler, clock, delegate = make_recognizer()

    drive_to_ready(recognizer, scheduler, clock)
    hand = pointing_hand(POINT_DOWN)
    recognizer.process_hand_detection([hand])

    assert [r.gesture_type for r in delegate.results] == [GestureType.PREVIOUS_STEP]
    assert delegate.results[0].hand_position == hand.landmark(JointName.INDEX_TIP).point
    assert recognizer.triggered_directions == frozenset({MotionDirection.DOWN})


def test_open_hand_never_starts_hovering() -> None:
    recognizer, scheduler, clock, delegate = make_recognizer()

    for _ in range(5):
        recognizer.process_hand_detection([open_hand()])
        clock.advance(0.2)
        scheduler.tick()

    assert recognizer.current_state is GestureState.IDLE
    assert delegate.states == []
    assert scheduler.timers == []
    palm = recognizer.palm_state
    assert palm is not None
    assert not palm.is_confirmation_posture
    assert palm.confidence < 0.5


def test_low_confidence_posture_does_not_start_hovering() -> None:
    recognizer, _, _, _ = make_recognizer()

    # 0.9 * 0.5 = 0.45, below the 0.5 entry threshold
    recognizer.process_hand_detection([posture_hand(confidence=0.5)])

    assert recognizer.current_state is GestureState.IDLE
    assert recognizer.palm_state.is_confirmation_posture


def test_most_confident_hand_is_used() -> None:
    recognizer, _, _, _ = make_recognizer()

    recognizer.process_hand_detection([open_hand(confidence=0.95), posture_hand(confidence=0.6)])
    assert recognizer.current_state is GestureState.IDLE

    recognizer.process_hand_detection([open_hand(confidence=0.5), posture_hand(confidence=0.9)])
    assert recognizer.current_state is GestureState.HOVERING


def test_hover_progress_is_monotonic_and_ready_only_after_duration() -> None:
    recognizer, scheduler, clock, delegate = make_recognizer()
    hand = posture_hand()

    recognizer.process_hand_detection([hand])
    hover_for(recognizer, scheduler, clock, 0.875, hand=hand)

    assert recognizer.current_state is GestureState.HOVERING
    assert recognizer.hover_progress < 1.0

    hover_for(recognizer, scheduler, clock, 0.125, hand=hand)

    assert recognizer.current_state is GestureState.READY
    progress = delegate.progress
    assert progress[0] == 0.0
    assert progress == sorted(progress)
    assert progress[-1] == 1.0
    assert all(0.0 <= p <= 1.0 for p in progress)


def test_hover_timer_is_cancelled_when_leaving_hovering() -> None:
    recognizer, scheduler, clock, _ = make_recognizer()

    drive_to_ready(recognizer, scheduler, clock)

    assert len(scheduler.timers) == 1
    assert scheduler.active == []
    assert recognizer.hover_state is None
    assert recognizer.motion_tracking_state is not None


def test_large_hand_movement_restarts_hover() -> None:
    recognizer, scheduler, clock, delegate = make_recognizer()
    start = posture_hand()
    moved = posture_hand(offset=(0.9, 0.5))

    recognizer.process_hand_detection([start])
    hover_for(recognizer, scheduler, clock, 0.5, hand=start)
    assert recognizer.hover_progress == 0.5

    clock.advance(0.125)
    recognizer.process_hand_detection([moved])
    scheduler.tick()

    hover = recognizer.hover_state
    assert recognizer.current_state is GestureState.HOVERING
    assert recognizer.hover_progress == 0.0
    assert hover.start_time == clock.now
    assert hover.start_position == moved.center
    assert not hover.is_stable

    # A full duration from the restart is needed again
    hover_for(recognizer, scheduler, clock, 0.875, hand=moved)
    assert recognizer.current_state is GestureState.HOVERING
    hover_for(recognizer, scheduler, clock, 0.125, hand=moved)
    assert recognizer.current_state is GestureState.READY
    assert 0.0 in delegate.progress[1:]


def test_small_drift_keeps_hover_running_but_marks_unstable() -> None:
    recognizer, scheduler, clock, _ = make_recognizer()
    start = posture_hand()
    drifted = posture_hand(offset=(0.7, 0.5))  # 0.2: beyond stability, within restart

    recognizer.process_hand_detection([start])
    hover_for(recognizer, scheduler, clock, 0.25, hand=drifted)

    hover = recognizer.hover_state
    assert hover.start_position == start.center
    assert not hover.is_stable
    assert hover.duration == 0.25


def test_posture_lost_while_hovering_moves_to_detecting() -> None:
    recognizer, scheduler, clock, _ = make_recognizer()

    recognizer.process_hand_detection([posture_hand()])
    clock.advance(0.25)
    recognizer.process_hand_detection([open_hand()])
    # Re-check only runs once the posture-check interval has passed
    assert recognizer.current_state is GestureState.HOVERING

    clock.advance(0.25)
    recognizer.process_hand_detection([open_hand()])

    assert recognizer.current_state is GestureState.DETECTING
    assert scheduler.active == []
    assert recognizer.hover_state is None


def test_posture_lost_at_end_of_hover_moves_to_detecting() -> None:
    config = GestureConfig(posture_check_interval=10.0)
    recognizer, scheduler, clock, _ = make_recognizer(config=config)

    recognizer.process_hand_detection([posture_hand()])
    hover_for(recognizer, scheduler, clock, 0.875, hand=posture_hand())
    clock.advance(0.125)
    recognizer.process_hand_detection([open_hand()])
    scheduler.tick()

    assert recognizer.current_state is GestureState.DETECTING


def test_detecting_returns_to_hovering_when_posture_is_shown_again() -> None:
    recognizer, scheduler, clock, delegate = make_recognizer()

    recognizer.process_hand_detection([posture_hand()])
    clock.advance(0.5)
    recognizer.process_hand_detection([open_hand()])
    assert recognizer.current_state is GestureState.DETECTING

    recognizer.process_hand_detection([posture_hand()])

    assert recognizer.current_state is GestureState.HOVERING
    assert delegate.states == [GestureState.HOVERING, GestureState.DETECTING, GestureState.HOVERING]
    assert len(scheduler.active) == 1


def test_stale_hover_tick_is_ignored() -> None:
    recognizer, scheduler, clock, delegate = make_recognizer()

    recognizer.process_hand_detection([posture_hand()])
    stale = scheduler.timers[0]
    recognizer.process_hand_detection([])
    assert recognizer.current_state is GestureState.IDLE

    # Late tick from the cancelled timer after a new hover started
    recognizer.process_hand_detection([posture_hand()])
    clock.advance(5.0)
    progress_before = list(delegate.progress)
    stale.callback()

    assert recognizer.current_state is GestureState.HOVERING
    assert delegate.progress == progress_before


def test_hand_loss_returns_to_idle_from_every_active_state() -> None:
    recognizer, scheduler, clock, _ = make_recognizer()

    recognizer.process_hand_detection([posture_hand()])
    recognizer.process_hand_detection([])
    assert recognizer.current_state is GestureState.IDLE
    assert scheduler.active == []

    recognizer.process_hand_detection([posture_hand()])
    clock.advance(0.5)
    recognizer.process_hand_detection([open_hand()])
    assert recognizer.current_state is GestureState.DETECTING
    recognizer.process_hand_detection([])
    assert recognizer.current_state is GestureState.IDLE

    drive_to_ready(recognizer, scheduler, clock)
    recognizer.process_hand_detection([])
    assert recognizer.current_state is GestureState.IDLE
    assert recognizer.motion_tracking_state is None
    assert recognizer.position_history == []


def test_only_one_command_until_hand_is_removed() -> None:
    recognizer, scheduler, clock, delegate = make_recognizer()

    drive_to_ready(recognizer, scheduler, clock)
    recognizer.process_hand_detection([pointing_hand(POINT_UP)])

    for hand in (pointing_hand(POINT_UP), pointing_hand(POINT_DOWN), posture_hand()):
        clock.advance(0.25)
        recognizer.process_hand_detection([hand])
        scheduler.tick()

    assert recognizer.current_state is GestureState.COMPLETED
    assert len(delegate.results) == 1
    assert scheduler.active == []

    recognizer.process_hand_detection([])
    assert recognizer.current_state is GestureState.IDLE
    assert not recognizer.is_awaiting_removal
    assert recognizer.triggered_directions == frozenset()

    drive_to_ready(recognizer, scheduler, clock)
    recognizer.process_hand_detection([pointing_hand(POINT_DOWN)])

    assert [r.gesture_type for r in delegate.results] == [
        GestureType.NEXT_STEP,
        GestureType.PREVIOUS_STEP,
    ]


def test_sideways_pointing_moves_to_processing_without_command() -> None:
    recognizer, scheduler, clock, delegate = make_recognizer()

    drive_to_ready(recognizer, scheduler, clock)
    recognizer.process_hand_detection([pointing_hand(POINT_SIDEWAYS)])

    assert recognizer.current_state is GestureState.PROCESSING
    assert delegate.results == []
    assert MotionDirection.NONE not in recognizer.triggered_directions

    clock.advance(0.5)
    recognizer.process_hand_detection([pointing_hand(POINT_UP)])

    assert recognizer.current_state is GestureState.COMPLETED
    assert [r.gesture_type for r in delegate.results] == [GestureType.NEXT_STEP]


def test_processing_times_out_to_idle() -> None:
    recognizer, scheduler, clock, delegate = make_recognizer()

    drive_to_ready(recognizer, scheduler, clock)
    recognizer.process_hand_detection([pointing_hand(POINT_SIDEWAYS)])
    clock.advance(1.5)
    recognizer.process_hand_detection([pointing_hand(POINT_UP)])

    assert recognizer.current_state is GestureState.IDLE
    assert delegate.results == []


def test_ready_tracks_motion_when_not_pointing() -> None:
    recognizer, scheduler, clock, _ = make_recognizer()

    drive_to_ready(recognizer, scheduler, clock)
    start = recognizer.motion_tracking_state.start_position
    moved = open_hand(offset=(0.5, 0.3))
    # No wrist: pointing cannot be classified
    moved = dataclasses.replace(
        moved,
        landmarks=tuple(lm for lm in moved.landmarks if lm.joint is not JointName.WRIST),
    )
    recognizer.process_hand_detection([moved])

    motion = recognizer.motion_tracking_state
    assert recognizer.current_state is GestureState.READY
    assert motion.start_position == start
    assert motion.direction is MotionDirection.UP
    assert motion.distance > 0


def test_position_history_is_bounded_by_time_window() -> None:
    recognizer, _, clock, _ = make_recognizer()

    for _ in range(10):
        recognizer.process_hand_detection([open_hand()])
        clock.advance(0.5)

    history = recognizer.position_history
    assert 0 < len(history) <= 5
    assert all(clock.now - 0.5 - t <= 2.0 for _, t in history)


def test_disable_enable_round_trip_starts_from_idle() -> None:
    recognizer, scheduler, clock, _ = make_recognizer()

    recognizer.process_hand_detection([posture_hand()])
    hover_for(recognizer, scheduler, clock, 0.5, hand=posture_hand())
    assert recognizer.current_state is GestureState.HOVERING

    recognizer.set_enabled(False)
    recognizer.set_enabled(True)

    assert recognizer.is_enabled
    assert recognizer.current_state is GestureState.IDLE
    assert recognizer.hover_progress == 0.0
    assert recognizer.palm_state is None
    assert recognizer.hover_state is None
    assert recognizer.motion_tracking_state is None
    assert scheduler.active == []


def test_disabled_recognizer_ignores_detections() -> None:
    recognizer, scheduler, _, delegate = make_recognizer()
    recognizer.set_enabled(False)

    recognizer.process_hand_detection([posture_hand()])
    recognizer.process_hand_detection([])

    assert recognizer.current_state is GestureState.IDLE
    assert recognizer.palm_state is None
    assert delegate.palm_states == []
    assert scheduler.timers == []


def test_reset_clears_awaiting_removal() -> None:
    recognizer, scheduler, clock, _ = make_recognizer()

    drive_to_ready(recognizer, scheduler, clock)
    recognizer.process_hand_detection([pointing_hand(POINT_UP)])
    recognizer.reset()

    assert recognizer.current_state is GestureState.IDLE
    assert not recognizer.is_awaiting_removal
    assert recognizer.last_gesture_result is None
    assert recognizer.state_history == []

    recognizer.process_hand_detection([posture_hand()])
    assert recognizer.current_state is GestureState.HOVERING


def test_report_failure_leaves_state_unchanged() -> None:
    recognizer, scheduler, clock, delegate = make_recognizer()
    drive_to_ready(recognizer, scheduler, clock)

    recognizer.report_failure(GestureRecognitionError(FailureKind.SYSTEM_ERROR, "estimator crashed"))

    assert recognizer.current_state is GestureState.READY
    assert len(delegate.failures) == 1
    assert delegate.failures[0].kind is FailureKind.SYSTEM_ERROR
    assert str(delegate.failures[0]) == "system_error: estimator crashed"


def test_published_state_changes_only_when_dispatcher_drains() -> None:
    dispatcher = QueuedDispatcher()
    recognizer, _, _, delegate = make_recognizer(dispatcher=dispatcher)

    recognizer.process_hand_detection([posture_hand()])

    assert recognizer.current_state is GestureState.IDLE
    assert delegate.states == []
    assert dispatcher.pending > 0

    dispatcher.drain()

    assert recognizer.current_state is GestureState.HOVERING
    assert delegate.states == [GestureState.HOVERING]
    assert recognizer.palm_state.is_confirmation_posture


def test_delegate_is_held_weakly() -> None:
    recognizer, _, _, delegate = make_recognizer()
    assert recognizer.delegate is delegate

    del delegate
    gc.collect()

    assert recognizer.delegate is None
    recognizer.process_hand_detection([posture_hand()])
    assert recognizer.current_state is GestureState.HOVERING


def test_state_history_keeps_last_ten_transitions() -> None:
    recognizer, _, clock, _ = make_recognizer()

    for _ in range(8):
        recognizer.process_hand_detection([posture_hand()])
        clock.advance(0.5)
        recognizer.process_hand_detection([open_hand()])

    history = recognizer.state_history
    assert len(history) == 10
    assert history[-1] is GestureState.DETECTING


def test_teardown_stops_timers_and_drops_delegate() -> None:
    recognizer, scheduler, _, _ = make_recognizer()
    recognizer.process_hand_detection([posture_hand()])

    recognizer.teardown()

    assert not recognizer.is_enabled
    assert scheduler.active == []
    assert recognizer.delegate is None
    assert recognizer.current_state is GestureState.IDLE
    assert recognizer.snapshot().state is GestureState.IDLE
    assert recognizer.hover_progress == 0.0


def test_snapshot_reflects_published_state() -> None:
    recognizer, scheduler, clock, _ = make_recognizer()
    drive_to_ready(recognizer, scheduler, clock)

    snapshot = recognizer.snapshot()

    assert snapshot.state is GestureState.READY
    assert snapshot.hover_progress == 1.0
    assert snapshot.is_enabled
    assert snapshot.last_result is None


def _run_scenario(angle: float, pointing_batches: int):
    recognizer, scheduler, clock, delegate = make_recognizer()

    recognizer.process_hand_detection([])
    assert recognizer.current_state is GestureState.IDLE

    hand = posture_hand()
    recognizer.process_hand_detection([hand])
    assert recognizer.current_state is GestureState.HOVERING
    assert recognizer.hover_progress == 0.0

    hover_for(recognizer, scheduler, clock, 1.0, hand=hand)
    assert recognizer.current_state is GestureState.READY

    for _ in range(pointing_batches):
        clock.advance(0.0625)
        recognizer.process_hand_detection([pointing_hand(angle)])
    assert recognizer.current_state is GestureState.COMPLETED

    recognizer.process_hand_detection([])
    assert recognizer.current_state is GestureState.IDLE
    assert recognizer.triggered_directions == frozenset()
    return delegate.results


def test_scenario_point_up_once() -> None:
    results = _run_scenario(POINT_UP, pointing_batches=1)

    assert [r.gesture_type for r in results] == [GestureType.NEXT_STEP]


def test_scenario_point_down_held_emits_exactly_one_command() -> None:
    results = _run_scenario(POINT_DOWN, pointing_batches=20)

    assert [r.gesture_type for r in results] == [GestureType.PREVIOUS_STEP]


def test_palm_state_keeps_updating_while_hovering() -> None:
    recognizer, scheduler, clock, delegate = make_recognizer()
    recognizer.process_hand_detection([posture_hand()])
    assert len(delegate.palm_states) == 1

    moved = posture_hand(offset=(0.52, 0.5))
    hover_for(recognizer, scheduler, clock, 0.375, hand=moved)

    assert recognizer.current_state is GestureState.HOVERING
    assert len(delegate.palm_states) == 4
    assert recognizer.palm_state.center == moved.center


def test_state_history_survives_a_completed_cycle() -> None:
    recognizer, scheduler, clock, _ = make_recognizer()

    drive_to_ready(recognizer, scheduler, clock)
    recognizer.process_hand_detection([pointing_hand(POINT_UP)])
    recognizer.process_hand_detection([])

    assert recognizer.state_history == [
        GestureState.HOVERING,
        GestureState.READY,
        GestureState.PROCESSING,
        GestureState.COMPLETED,
        GestureState.IDLE,
    ]

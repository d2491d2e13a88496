#!/usr/bin/env python3
"""
Hand Gesture Navigator

Webcam harness for the gesture engine: hold the confirmation posture
(index and thumb extended, other fingers curled) still for a second, then
point the index finger up for the next recipe step or down for the
previous one. Remove the hand to arm the next gesture.

Usage:
    python -m HandGestureNavigator.gesture_navigator [--camera <index>] [--preview] [--debug]

Exit Codes:
    0 - Success
    2 - Camera error
    3 - Runtime error
"""

import argparse
import signal
import sys
import time
from typing import Optional

import cv2
import numpy as np

from .camera_manager import CameraManager, CameraError
from .config import (
    DEFAULT_CAMERA_INDEX,
    EXIT_SUCCESS,
    EXIT_CAMERA_ERROR,
    EXIT_RUNTIME_ERROR,
    MAX_HANDS,
    GestureConfig,
)
from .dispatcher import QueuedDispatcher
from .gesture_delegate import HandGestureDelegate
from .gesture_models import (
    GestureRecognitionError,
    GestureResult,
    GestureState,
    GestureType,
)
from .hand_detector import HandDetectionResult
from .logger import get_logger, setup_logging
from .pose_estimator import JointName, MediaPipeHandEstimator
from .session_adapter import GestureSessionAdapter

DEFAULT_STEP_COUNT = 10

_HAND_CONNECTIONS = [
    (JointName.WRIST, JointName.THUMB_CMC), (JointName.THUMB_CMC, JointName.THUMB_MP),
    (JointName.THUMB_MP, JointName.THUMB_IP), (JointName.THUMB_IP, JointName.THUMB_TIP),
    (JointName.WRIST, JointName.INDEX_MCP), (JointName.INDEX_MCP, JointName.INDEX_PIP),
    (JointName.INDEX_PIP, JointName.INDEX_DIP), (JointName.INDEX_DIP, JointName.INDEX_TIP),
    (JointName.MIDDLE_MCP, JointName.MIDDLE_PIP), (JointName.MIDDLE_PIP, JointName.MIDDLE_DIP),
    (JointName.MIDDLE_DIP, JointName.MIDDLE_TIP),
    (JointName.RING_MCP, JointName.RING_PIP), (JointName.RING_PIP, JointName.RING_DIP),
    (JointName.RING_DIP, JointName.RING_TIP),
    (JointName.WRIST, JointName.LITTLE_MCP), (JointName.LITTLE_MCP, JointName.LITTLE_PIP),
    (JointName.LITTLE_PIP, JointName.LITTLE_DIP), (JointName.LITTLE_DIP, JointName.LITTLE_TIP),
    (JointName.INDEX_MCP, JointName.MIDDLE_MCP), (JointName.MIDDLE_MCP, JointName.RING_MCP),
    (JointName.RING_MCP, JointName.LITTLE_MCP),
]


class RecipeStepTracker(HandGestureDelegate):
    """Moves through recipe steps on recognized gestures."""

    def __init__(self, step_count: int):
        self.step_count = step_count
        self.current_step = 0
        self.state = GestureState.IDLE
        self.hover_progress = 0.0
        self._logger = get_logger("RecipeStepTracker")

    def gesture_state_did_change(self, state: GestureState) -> None:
        self.state = state
        self._logger.debug(f"Gesture state: {state.description}")

    def hover_progress_did_update(self, progress: float) -> None:
        self.hover_progress = progress

    def did_recognize_gesture(self, result: GestureResult) -> None:
        if result.gesture_type is GestureType.NEXT_STEP:
            self.current_step = min(self.current_step + 1, self.step_count - 1)
        else:
            self.current_step = max(self.current_step - 1, 0)
        self._logger.info(
            f"{result.gesture_type.description} -> step {self.current_step + 1}/{self.step_count}"
        )

    def gesture_recognition_did_fail(self, error: GestureRecognitionError) -> None:
        self._logger.warning(f"Gesture recognition failed: {error}")


def draw_hand(image: np.ndarray, hand: HandDetectionResult) -> None:
    """Draw a hand's kept landmarks and bones onto a BGR image."""
    h, w = image.shape[:2]
    points = {lm.joint: (int(lm.x * w), int(lm.y * h)) for lm in hand.landmarks}

    for start, end in _HAND_CONNECTIONS:
        if start in points and end in points:
            cv2.line(image, points[start], points[end], (0, 0, 255), 2)
    for point in points.values():
        cv2.circle(image, point, 3, (0, 255, 0), -1)


class NavigatorApp:
    """
    Camera loop driving a gesture session.

    Frames go camera -> session adapter -> detection worker; notifications
    come back through a queued dispatcher drained once per loop iteration.
    """

    def __init__(
        self,
        camera_index: int = DEFAULT_CAMERA_INDEX,
        config: Optional[GestureConfig] = None,
        step_count: int = DEFAULT_STEP_COUNT,
        preview: bool = False
    ):
        self.camera_index = camera_index
        self.config = config or GestureConfig()
        self.preview = preview

        self._logger = get_logger("App")
        self._running = False
        self._dispatcher = QueuedDispatcher()
        self._camera: Optional[CameraManager] = None
        self._adapter: Optional[GestureSessionAdapter] = None
        self.tracker = RecipeStepTracker(step_count)

        self._frame_count = 0
        self._start_time = 0.0

    def initialize(self) -> None:
        """
        Open the camera and build the gesture session.

        Raises:
            CameraError: If the camera cannot be opened.
        """
        self._logger.info("Initializing gesture navigator...")

        self._camera = CameraManager(camera_index=self.camera_index)
        self._camera.open()

        estimator = MediaPipeHandEstimator(max_num_hands=self.config.max_hands)
        estimator.initialize()

        self._adapter = GestureSessionAdapter(
            estimator, config=self.config, dispatcher=self._dispatcher
        )
        self._adapter.add_gesture_delegate(self.tracker)
        self._adapter.set_gesture_enabled(True)

        self._logger.info("Gesture navigator initialized")

    def run(self) -> None:
        """Run the capture loop until stopped."""
        self._running = True
        self._start_time = time.perf_counter()
        self._logger.info("Starting capture loop...")

        try:
            while self._running:
                self._process_frame()

                if self.preview:
                    key = cv2.waitKey(1) & 0xFF
                    if key == ord('q') or key == 27:  # q or ESC
                        self._logger.info("Quit key pressed")
                        break
        except KeyboardInterrupt:
            self._logger.info("Interrupted by user")
        finally:
            self.stop()

    def _process_frame(self) -> None:
        if self._camera is None or self._adapter is None:
            return

        frame = self._camera.read_frame_rgb()
        if frame is not None:
            self._frame_count += 1
            self._adapter.on_frame(frame)

        self._dispatcher.drain()

        if self.preview and frame is not None:
            self._show_preview(frame)

    def _show_preview(self, frame: np.ndarray) -> None:
        display = cv2.cvtColor(frame, cv2.COLOR_RGB2BGR)

        for hand in self._adapter.detection_manager.detected_hands:
            draw_hand(display, hand)

        tracker = self.tracker
        lines = [
            (f"Step {tracker.current_step + 1}/{tracker.step_count}", (0, 255, 0)),
            (f"State: {tracker.state.description}", (0, 255, 255)),
            (f"Hover: {tracker.hover_progress * 100:.0f}%", (255, 255, 255)),
        ]
        for i, (text, color) in enumerate(lines):
            cv2.putText(display, text, (10, 30 + 30 * i), cv2.FONT_HERSHEY_SIMPLEX, 0.8, color, 2)

        cv2.imshow("Hand Gesture Navigator", display)

    def request_stop(self) -> None:
        """Ask the capture loop to exit after the current frame."""
        self._running = False

    def stop(self) -> None:
        """Stop the loop and release everything."""
        if self._adapter is None and self._camera is None:
            return
        self._running = False
        self._logger.info("Stopping gesture navigator...")

        if self._adapter:
            self._adapter.close()
            self._adapter = None

        if self._camera:
            self._camera.close()
            self._camera = None

        if self.preview:
            cv2.destroyAllWindows()

        if self._frame_count > 0:
            elapsed = time.perf_counter() - self._start_time
            avg_fps = self._frame_count / elapsed if elapsed > 0 else 0
            self._logger.info(
                f"Stopped at step {self.tracker.current_step + 1}. Captured {self._frame_count} "
                f"frames in {elapsed:.1f}s ({avg_fps:.1f} FPS average)"
            )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Hand Gesture Navigator - step through a recipe with hand gestures",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit Codes:
  0  Success
  2  Camera error (camera not available)
  3  Runtime error (unexpected error)

Examples:
  python -m HandGestureNavigator.gesture_navigator
  python -m HandGestureNavigator.gesture_navigator --camera 1 --preview
  python -m HandGestureNavigator.gesture_navigator --steps 6 --debug
"""
    )

    parser.add_argument(
        "--camera", "-c",
        type=int,
        default=DEFAULT_CAMERA_INDEX,
        help=f"Camera index (default: {DEFAULT_CAMERA_INDEX})"
    )

    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Enable debug logging"
    )

    parser.add_argument(
        "--preview",
        action="store_true",
        help="Show a preview window with landmarks and gesture state"
    )

    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Log to the console only"
    )

    parser.add_argument(
        "--max-hands",
        type=int,
        default=MAX_HANDS,
        help=f"Hands requested per frame (default: {MAX_HANDS})"
    )

    parser.add_argument(
        "--steps",
        type=int,
        default=DEFAULT_STEP_COUNT,
        help=f"Number of recipe steps (default: {DEFAULT_STEP_COUNT})"
    )

    args = parser.parse_args(argv)
    if args.steps < 1:
        parser.error("--steps must be at least 1")
    return args


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code.
    """
    args = parse_args(argv)

    logger = setup_logging(debug=args.debug, log_to_file=not args.no_log_file)
    logger.info("Hand Gesture Navigator starting...")

    app: Optional[NavigatorApp] = None

    try:
        config = GestureConfig(max_hands=args.max_hands)
        app = NavigatorApp(
            camera_index=args.camera,
            config=config,
            step_count=args.steps,
            preview=args.preview
        )

        def signal_handler(sig, frame):
            logger.info("Received shutdown signal")
            if app:
                app.request_stop()

        signal.signal(signal.SIGINT, signal_handler)
        # SIGTERM is not available on Windows
        if sys.platform != 'win32':
            signal.signal(signal.SIGTERM, signal_handler)

        app.initialize()
        app.run()

        return EXIT_SUCCESS

    except CameraError as e:
        logger.error(f"Camera error: {e}")
        return EXIT_CAMERA_ERROR
    except Exception as e:
        logger.exception(f"Runtime error: {e}")
        return EXIT_RUNTIME_ERROR
    finally:
        if app:
            app.stop()


if __name__ == "__main__":
    sys.exit(main())

"""
Gesture notification interface and multicast fan-out.
"""

import threading
import weakref
from typing import Any

from .gesture_models import GestureRecognitionError, GestureResult, GestureState, PalmState
from .logger import get_logger

logger = get_logger("MulticastGestureDelegate")


class HandGestureDelegate:
    """
    Receiver of recognizer notifications.

    All notifications arrive on the consumer context. Subclasses override
    the ones they care about; the defaults do nothing.
    """

    def gesture_state_did_change(self, state: GestureState) -> None:
        pass

    def palm_state_did_change(self, palm_state: PalmState) -> None:
        pass

    def hover_progress_did_update(self, progress: float) -> None:
        pass

    def did_recognize_gesture(self, result: GestureResult) -> None:
        pass

    def gesture_recognition_did_fail(self, error: GestureRecognitionError) -> None:
        pass


class MulticastGestureDelegate(HandGestureDelegate):
    """
    Broadcasts notifications to many delegates.

    Subscribers are held by weak reference, so the owner has to keep its
    delegate alive; collected subscribers are pruned on every broadcast.
    """

    def __init__(self):
        self._delegates: list[weakref.ref] = []
        self._lock = threading.Lock()

    def add_delegate(self, delegate: HandGestureDelegate) -> None:
        """Subscribe a delegate. Adding the same delegate twice keeps one entry."""
        with self._lock:
            self._delegates = [
                ref for ref in self._delegates
                if ref() is not None and ref() is not delegate
            ]
            self._delegates.append(weakref.ref(delegate))

    def remove_delegate(self, delegate: HandGestureDelegate) -> None:
        with self._lock:
            self._delegates = [
                ref for ref in self._delegates
                if ref() is not None and ref() is not delegate
            ]

    def remove_all_delegates(self) -> None:
        with self._lock:
            self._delegates.clear()

    @property
    def delegate_count(self) -> int:
        """Number of live subscribers."""
        with self._lock:
            return sum(1 for ref in self._delegates if ref() is not None)

    def _broadcast(self, method: str, *args: Any) -> None:
        with self._lock:
            self._delegates = [ref for ref in self._delegates if ref() is not None]
            refs = list(self._delegates)

        for ref in refs:
            delegate = ref()
            if delegate is None:
                continue
            try:
                getattr(delegate, method)(*args)
            except Exception as e:
                logger.error(f"Error in gesture delegate {type(delegate).__name__}.{method}: {e}")

    def gesture_state_did_change(self, state: GestureState) -> None:
        self._broadcast("gesture_state_did_change", state)

    def palm_state_did_change(self, palm_state: PalmState) -> None:
        self._broadcast("palm_state_did_change", palm_state)

    def hover_progress_did_update(self, progress: float) -> None:
        self._broadcast("hover_progress_did_update", progress)

    def did_recognize_gesture(self, result: GestureResult) -> None:
        self._broadcast("did_recognize_gesture", result)

    def gesture_recognition_did_fail(self, error: GestureRecognitionError) -> None:
        self._broadcast("gesture_recognition_did_fail", error)

"""
Cancellable repeating timers for the gesture recognizer.

``ThreadedScheduler`` runs each timer on a daemon thread. When given an
executor, ticks are submitted to it, so timer callbacks run on the same
single worker that processes frames and never overlap with frame
processing.
"""

import threading
from concurrent.futures import Executor
from typing import Callable, Optional, Protocol

from .logger import get_logger

logger = get_logger("Scheduler")


class TimerHandle(Protocol):
    """Handle of a scheduled timer."""

    def cancel(self) -> None:
        ...

    @property
    def cancelled(self) -> bool:
        ...


class Scheduler(Protocol):
    """Creates repeating timers."""

    def schedule_repeating(self, interval: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class RepeatingTimer:
    """A timer that fires ``callback`` every ``interval`` seconds until cancelled."""

    def __init__(
        self,
        interval: float,
        callback: Callable[[], None],
        executor: Optional[Executor] = None,
        name: str = "GestureTimer"
    ):
        self.interval = interval
        self._callback = callback
        self._executor = executor
        self._cancelled = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> "RepeatingTimer":
        self._thread.start()
        return self

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    def _run(self) -> None:
        while not self._cancelled.wait(self.interval):
            if self._executor is None:
                self._fire()
                continue
            try:
                self._executor.submit(self._fire)
            except RuntimeError:
                # Executor shut down
                logger.debug(f"{self._thread.name}: executor closed, stopping timer")
                self._cancelled.set()

    def _fire(self) -> None:
        if self._cancelled.is_set():
            return
        try:
            self._callback()
        except Exception as e:
            logger.error(f"Error in timer callback: {e}")


class ThreadedScheduler:
    """Scheduler backed by one daemon thread per timer."""

    def __init__(self, executor: Optional[Executor] = None):
        """
        Initialize the scheduler.

        Args:
            executor: Where ticks run. None runs them on the timer thread.
        """
        self._executor = executor
        self._timers: list[RepeatingTimer] = []
        self._lock = threading.Lock()
        self._counter = 0

    def schedule_repeating(self, interval: float, callback: Callable[[], None]) -> RepeatingTimer:
        """
        Start a repeating timer.

        Args:
            interval: Seconds between ticks.
            callback: Called on every tick.

        Returns:
            The running timer; call ``cancel()`` to stop it.
        """
        with self._lock:
            self._counter += 1
            self._timers = [t for t in self._timers if not t.cancelled]
            timer = RepeatingTimer(
                interval, callback, self._executor, name=f"GestureTimer-{self._counter}"
            )
            self._timers.append(timer)
        return timer.start()

    def cancel_all(self) -> None:
        """Cancel every timer and wait briefly for their threads."""
        with self._lock:
            timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()
        for timer in timers:
            timer.join(timeout=1.0)

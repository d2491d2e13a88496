"""
Publication of observable state onto the consumer context.

The recognizer and the detection manager never touch their published
fields or call delegates directly from the worker thread; they post a
callable to a Dispatcher, and the consumer runs it.
"""

import queue
from typing import Any, Callable, Optional, Protocol

from .logger import get_logger

logger = get_logger("Dispatcher")


class Dispatcher(Protocol):
    """Runs posted callables on the consumer context."""

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        ...


def _run(fn: Callable[..., Any], args: tuple) -> None:
    try:
        fn(*args)
    except Exception as e:
        logger.error(f"Error in dispatched callback {getattr(fn, '__qualname__', fn)}: {e}")


class InlineDispatcher:
    """Runs callables immediately on the posting thread."""

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        _run(fn, args)


class QueuedDispatcher:
    """
    Collects callables in a queue until the consumer drains it.

    The owner's UI loop calls ``drain()`` once per iteration; callables run
    there, in posting order.
    """

    def __init__(self):
        self._queue: "queue.Queue[tuple[Callable[..., Any], tuple]]" = queue.Queue()

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        self._queue.put((fn, args))

    def drain(self, max_items: Optional[int] = None) -> int:
        """
        Run pending callables.

        Args:
            max_items: Stop after this many (None drains everything queued).

        Returns:
            Number of callables run.
        """
        count = 0
        while max_items is None or count < max_items:
            try:
                fn, args = self._queue.get_nowait()
            except queue.Empty:
                break
            _run(fn, args)
            count += 1
        return count

    @property
    def pending(self) -> int:
        return self._queue.qsize()

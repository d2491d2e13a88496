import threading
from concurrent.futures import ThreadPoolExecutor

from HandGestureNavigator.scheduler import RepeatingTimer, ThreadedScheduler


def test_repeating_timer_fires_until_cancelled() -> None:
    fired = threading.Event()
    count = []

    def tick() -> None:
        count.append(1)
        if len(count) >= 3:
            fired.set()

    scheduler = ThreadedScheduler()
    timer = scheduler.schedule_repeating(0.01, tick)

    assert fired.wait(timeout=5)
    timer.cancel()
    timer.join(timeout=1)

    assert timer.cancelled
    seen = len(count)
    threading.Event().wait(0.05)
    assert len(count) == seen


def test_ticks_run_on_the_given_executor() -> None:
    names = []
    fired = threading.Event()

    def tick() -> None:
        names.append(threading.current_thread().name)
        fired.set()

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="HandPoseWorker") as executor:
        scheduler = ThreadedScheduler(executor=executor)
        scheduler.schedule_repeating(0.01, tick)
        assert fired.wait(timeout=5)
        scheduler.cancel_all()

    assert names[0].startswith("HandPoseWorker")


def test_callback_errors_do_not_stop_the_timer() -> None:
    calls = []
    fired = threading.Event()

    def tick() -> None:
        calls.append(1)
        if len(calls) >= 2:
            fired.set()
        raise ValueError("boom")

    timer = RepeatingTimer(0.01, tick).start()
    try:
        assert fired.wait(timeout=5)
    finally:
        timer.cancel()
        timer.join(timeout=1)


def test_timer_stops_when_executor_is_shut_down() -> None:
    executor = ThreadPoolExecutor(max_workers=1)
    timer = RepeatingTimer(0.01, lambda: None, executor=executor).start()

    executor.shutdown(wait=True)
    timer.join(timeout=2)

    assert timer.cancelled


def test_cancel_all_cancels_every_timer() -> None:
    scheduler = ThreadedScheduler()
    timers = [scheduler.schedule_repeating(0.05, lambda: None) for _ in range(3)]

    scheduler.cancel_all()

    assert all(timer.cancelled for timer in timers)

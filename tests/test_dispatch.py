import threading
import time

from xcedectl.dispatch import Dispatcher


def test_posted_callbacks_run_in_order_on_caller_thread():
    d = Dispatcher()
    seen = []
    caller = threading.get_ident()
    for i in range(3):
        d.post(lambda i=i: seen.append((i, threading.get_ident())))

    assert d.run_pending() == 3
    assert seen == [(0, caller), (1, caller), (2, caller)]


def test_run_pending_returns_zero_when_nothing_ready():
    d = Dispatcher()
    t0 = time.monotonic()
    assert d.run_pending(timeout=0.1) == 0
    assert time.monotonic() - t0 >= 0.09


def test_post_from_worker_wakes_blocked_pump():
    d = Dispatcher()
    seen = []
    threading.Timer(0.05, lambda: d.post(lambda: seen.append("worker"))).start()

    assert d.run_pending(timeout=2) == 1
    assert seen == ["worker"]


def test_call_later_waits_for_its_delay():
    d = Dispatcher()
    seen = []
    d.call_later(0.1, lambda: seen.append("late"))

    assert d.run_pending() == 0
    assert d.has_timers
    assert d.run_pending(timeout=1) == 1
    assert seen == ["late"]
    assert not d.has_timers


def test_timers_fire_by_due_time():
    d = Dispatcher()
    seen = []
    d.call_later(0.08, lambda: seen.append("b"))
    d.call_later(0.02, lambda: seen.append("a"))
    time.sleep(0.1)
    d.run_pending()
    assert seen == ["a", "b"]

import threading
import time

from geogrid.deadline import Deadline


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, event, seconds):
        self.now += seconds
        return event.is_set()


def test_sleep_never_passes_the_deadline():
    clock = FakeClock()
    deadline = Deadline(10, clock=clock, sleeper=clock.sleep)
    assert deadline.sleep(4)
    assert deadline.remaining() == 6
    assert deadline.sleep(30)
    assert clock.now == 10
    assert deadline.expired


def test_child_ends_at_earlier_deadline_and_shares_cancel():
    clock = FakeClock()
    parent = Deadline(20, clock=clock, sleeper=clock.sleep)
    child = parent.child(90)
    assert child.remaining() == 20
    assert parent.child(5).remaining() == 5

    parent.cancel()
    assert child.cancelled
    assert not child.sleep(1)


def test_unbounded_deadline():
    deadline = Deadline(None)
    assert deadline.remaining() == float("inf")
    assert not deadline.expired


def test_real_sleep_wakes_on_cancel():
    event = threading.Event()
    deadline = Deadline(30, cancel_event=event)
    threading.Timer(0.05, event.set).start()
    started = time.monotonic()
    assert deadline.sleep(10) is False
    assert time.monotonic() - started < 5


def test_detached_copy_cancels_independently():
    clock = FakeClock()
    parent = Deadline(30, clock=clock, sleeper=clock.sleep)
    copy = parent.detached()

    assert copy.expires_at == parent.expires_at
    copy.cancel()
    assert copy.cancelled
    assert not parent.cancelled

    parent.cancel()
    assert parent.detached().cancelled

"""Cancellable deadlines shared between the orchestrator and point workers."""
from __future__ import annotations

import threading
import time
from typing import Callable, Optional

Clock = Callable[[], float]
Sleeper = Callable[[threading.Event, float], bool]


def event_sleep(event: threading.Event, seconds: float) -> bool:
    return event.wait(seconds)


class Deadline:
    """A point in time plus a cancel signal.

    sleep() is the only blocking primitive used by the query state machine;
    it returns early as soon as the cancel event is set. Tests swap in a
    fake clock and sleeper so no real time passes.
    """

    def __init__(
        self,
        seconds: Optional[float],
        cancel_event: Optional[threading.Event] = None,
        clock: Clock = time.monotonic,
        sleeper: Sleeper = event_sleep,
    ) -> None:
        self.clock = clock
        self.sleeper = sleeper
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self.expires_at = None if seconds is None else clock() + max(0.0, float(seconds))

    def remaining(self) -> float:
        if self.expires_at is None:
            return float("inf")
        return max(0.0, self.expires_at - self.clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    def sleep(self, seconds: float) -> bool:
        """Wait up to `seconds`, never past the deadline.

        Returns False if cancelled before or during the wait.
        """
        if self.cancelled:
            return False
        wait_for = min(max(0.0, seconds), self.remaining())
        if wait_for <= 0.0:
            return not self.cancelled
        interrupted = self.sleeper(self.cancel_event, wait_for)
        return not (interrupted or self.cancelled)

    def child(self, seconds: Optional[float]) -> "Deadline":
        """A deadline that ends at the earlier of self and now + seconds, sharing cancellation."""
        child = Deadline(None, cancel_event=self.cancel_event, clock=self.clock, sleeper=self.sleeper)
        candidates = []
        if seconds is not None:
            candidates.append(self.clock() + max(0.0, float(seconds)))
        if self.expires_at is not None:
            candidates.append(self.expires_at)
        child.expires_at = min(candidates) if candidates else None
        return child

    def detached(self) -> "Deadline":
        """Same expiry, clock and sleeper, but a private cancel event.

        Cancelling the copy leaves this deadline's event untouched. The copy
        starts cancelled if this one already is.
        """
        copy = Deadline(None, clock=self.clock, sleeper=self.sleeper)
        copy.expires_at = self.expires_at
        if self.cancelled:
            copy.cancel()
        return copy

from tilesource.errors import FetchCancelledError
from tilesource.errors import FetchTimeoutError
import threading
import time


class FetchContext:

    """Cancellation and deadline for a single tile request

    A context is created by the caller for each request. Backend calls derive
    a child context bounded by their own budget; cancelling or expiring a
    parent is observed by all of its children, but not the other way around.
    The deadline is measured on the monotonic clock.
    """

    def __init__(self, stop=None, deadline=None, parent=None):
        self.stop = stop if stop is not None else threading.Event()
        self.deadline = deadline
        self.parent = parent

    @classmethod
    def with_timeout(cls, timeout_seconds, stop=None):
        deadline = None
        if timeout_seconds is not None:
            deadline = time.monotonic() + timeout_seconds
        return cls(stop=stop, deadline=deadline)

    def child(self, timeout_seconds=None):
        deadline = self.deadline
        if timeout_seconds is not None:
            child_deadline = time.monotonic() + timeout_seconds
            if deadline is None or child_deadline < deadline:
                deadline = child_deadline
        return FetchContext(deadline=deadline, parent=self)

    def cancel(self):
        self.stop.set()

    def cancelled(self):
        if self.stop.is_set():
            return True
        return self.parent is not None and self.parent.cancelled()

    def remaining(self):
        """seconds left before the deadline, or None when unbounded"""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def expired(self):
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self):
        if self.cancelled():
            raise FetchCancelledError('Fetch cancelled')
        if self.expired():
            raise FetchTimeoutError('Fetch deadline exceeded')

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        # a child reads as cancelled once its scope is left
        if self.parent is not None:
            self.stop.set()
        suppress_exception = False
        return suppress_exception


def background_context():
    return FetchContext()

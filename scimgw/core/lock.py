"""Advisory mutual exclusion with first-come, first-served hand-over."""
from __future__ import annotations
import threading
from collections import deque


class Lock:
    """Process-local lock granting waiters in the order they asked.

    Usage:
        lock = Lock()
        lock.acquire()
        try:
            ...
        finally:
            lock.release()

        with lock:
            ...
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._locked = False
        self._waiters: deque = deque()

    @property
    def locked(self) -> bool:
        return self._locked

    def acquire(self) -> bool:
        """Block until the lock is held by the caller."""
        with self._cond:
            if not self._locked and not self._waiters:
                self._locked = True
                return True
            ticket = object()
            self._waiters.append(ticket)
            while self._locked or self._waiters[0] is not ticket:
                self._cond.wait()
            self._waiters.popleft()
            self._locked = True
            return True

    def release(self) -> None:
        """Release the lock and wake the longest waiting caller."""
        with self._cond:
            if not self._locked:
                raise RuntimeError("release of an unlocked Lock")
            self._locked = False
            self._cond.notify_all()

    def __enter__(self) -> "Lock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

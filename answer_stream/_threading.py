"""
Exclusion primitives for the stream controller.

The engine is driven from one cooperative thread, so by default every lock
here is a zero-cost no-op. Two cases get a real (re-entrant) lock:

* Python 3.13+ free-threaded builds, where nothing else serializes callers.
* Callers that explicitly drive one controller from several threads
  (``StreamController(thread_safe=True)``).
"""

from __future__ import annotations

import sys
import threading

__all__ = ["CriticalSection", "SessionCounter", "is_free_threaded"]


def is_free_threaded() -> bool:
    """Return *True* if the interpreter is a free-threaded (nogil) build."""
    _is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
    if _is_gil_enabled is not None:
        return not _is_gil_enabled()
    return False


class _NoOpLock:
    """A lock-alike that does nothing."""

    def acquire(self, blocking: bool = True, timeout: float = -1) -> bool:
        return True

    def release(self) -> None:
        pass


class CriticalSection:
    """Re-entrant lock on free-threaded builds (or on request), a no-op otherwise.

    Re-entrant because state-change listeners may call back into the
    controller while a mutation is still being published.
    """

    def __init__(self, force: bool = False) -> None:
        self._real = force or is_free_threaded()
        self._lock: threading.RLock | _NoOpLock = threading.RLock() if self._real else _NoOpLock()

    @property
    def is_real_lock(self) -> bool:
        return self._real

    def __enter__(self) -> CriticalSection:
        self._lock.acquire()
        return self

    def __exit__(self, *args: object) -> None:
        self._lock.release()


class SessionCounter:
    """Monotonically increasing stream-session ids, starting at 1."""

    def __init__(self, force_lock: bool = False) -> None:
        self._value = 0
        self._cs = CriticalSection(force=force_lock)

    def next(self) -> int:
        with self._cs:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        """Id of the most recently minted session (0 before the first)."""
        with self._cs:
            return self._value

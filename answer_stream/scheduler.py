"""
Post-commit effect schedulers.

Scrolling must be measured after the new content is laid out, so the
controller never scrolls inline. It hands the effect to a scheduler which
runs it on a later tick.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from typing import Any

logger = logging.getLogger("answer_stream")

__all__ = ["AsyncioScheduler", "DeferredScheduler", "ImmediateScheduler"]


def _run_effect(effect: Callable[[], Any]) -> None:
    try:
        effect()
    except Exception as exc:
        logger.warning("[AnswerStream] Deferred effect %r failed: %s", effect, exc)


class DeferredScheduler:
    """
    Queues effects until the display layer calls :meth:`flush`.

    The display calls ``flush()`` once it has applied the latest content,
    which is the explicit acknowledgement that layout is up to date.
    """

    def __init__(self) -> None:
        self._pending: deque[Callable[[], Any]] = deque()

    def defer(self, effect: Callable[[], Any]) -> None:
        self._pending.append(effect)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def flush(self) -> int:
        """Run every queued effect in order; returns how many ran."""
        ran = 0
        while self._pending:
            _run_effect(self._pending.popleft())
            ran += 1
        return ran


class AsyncioScheduler:
    """Runs effects on the next event-loop iteration via ``loop.call_soon``."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _resolve_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def defer(self, effect: Callable[[], Any]) -> None:
        loop = self._resolve_loop()
        loop.call_soon(_run_effect, effect)


class ImmediateScheduler:
    """Runs effects right away. For displays whose ``set_content`` is synchronous."""

    def defer(self, effect: Callable[[], Any]) -> None:
        _run_effect(effect)

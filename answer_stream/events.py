"""
Backend stream events and the helpers that feed them to a controller.

The desktop backend emits named events (``solution-stream-start``,
``solution-stream-chunk``, ``solution``, ``solution-error``,
``require-login``). :func:`parse_event` maps those, or the generic
``start``/``chunk``/``complete``/``error`` names, onto typed events;
:func:`dispatch` applies one event; :func:`drive` consumes a whole (async)
event stream and stamps each event with the session it belongs to.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import AsyncIterable, Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from .exceptions import AuthError

if TYPE_CHECKING:
    from .controller import StreamController

logger = logging.getLogger("answer_stream")

__all__ = [
    "StreamChunk",
    "StreamComplete",
    "StreamError",
    "StreamEvent",
    "StreamStart",
    "dispatch",
    "drive",
    "parse_event",
    "stream_answer",
]


@dataclass(frozen=True)
class StreamStart:
    pass


@dataclass(frozen=True)
class StreamChunk:
    token: str
    session_id: int | None = None


@dataclass(frozen=True)
class StreamComplete:
    text: str | None = None
    session_id: int | None = None


@dataclass(frozen=True)
class StreamError:
    detail: Any
    session_id: int | None = None


StreamEvent = Union[StreamStart, StreamChunk, StreamComplete, StreamError]

_START_NAMES = frozenset({"start", "solution-stream-start", "stream-start"})
_CHUNK_NAMES = frozenset({"chunk", "solution-stream-chunk", "stream-chunk"})
_COMPLETE_NAMES = frozenset({"complete", "solution", "stream-complete"})
_ERROR_NAMES = frozenset({"error", "solution-error", "stream-error"})
_LOGIN_NAMES = frozenset({"require-login"})


def parse_event(data: Mapping[str, Any]) -> StreamEvent:
    """
    Build a typed event from a mapping such as one JSON line of a capture.

    The event name is read from ``event`` (or ``type``), the payload from
    ``data`` (or ``payload``), and an optional ``session_id``.

    Raises:
        ValueError: If the event name is missing or unknown.
    """
    name = data.get("event", data.get("type"))
    if not isinstance(name, str) or not name:
        raise ValueError(f"Event has no name: {dict(data)!r}")
    payload = data.get("data", data.get("payload"))
    session_id = data.get("session_id")
    if session_id is not None:
        session_id = int(session_id)

    key = name.strip().lower()
    if key in _START_NAMES:
        return StreamStart()
    if key in _CHUNK_NAMES:
        return StreamChunk("" if payload is None else str(payload), session_id)
    if key in _COMPLETE_NAMES:
        return StreamComplete(None if payload is None else str(payload), session_id)
    if key in _ERROR_NAMES:
        return StreamError("unknown error" if payload is None else payload, session_id)
    if key in _LOGIN_NAMES:
        return StreamError(AuthError("API key is missing; sign in first."), session_id)
    raise ValueError(f"Unknown stream event {name!r}")


def dispatch(controller: StreamController, event: StreamEvent) -> int | None:
    """Apply *event*; returns the new session id for a start, else ``None``."""
    if isinstance(event, StreamStart):
        return controller.start()
    if isinstance(event, StreamChunk):
        controller.chunk(event.token, session_id=event.session_id)
    elif isinstance(event, StreamComplete):
        controller.complete(event.text, session_id=event.session_id)
    elif isinstance(event, StreamError):
        controller.error(event.detail, session_id=event.session_id)
    else:
        raise TypeError(f"Not a stream event: {type(event).__name__}")
    return None


async def drive(
    controller: StreamController,
    source: Union[Iterable[StreamEvent], AsyncIterable[StreamEvent]],
) -> int | None:
    """
    Feed an ordered event stream into *controller*.

    Unstamped events are stamped with the id returned by the most recent
    start while that session is live, so ordering stays explicit even when
    the source is replayed.

    Returns:
        The id of the last session started, or ``None`` if none was.
    """
    current: int | None = None

    def apply(event: StreamEvent) -> None:
        nonlocal current
        # Once the session settles, unstamped events are pre-stream failures
        # of the next request and must not be tied to the finished one.
        if (
            current is not None
            and controller.session_id == current
            and not isinstance(event, StreamStart)
            and event.session_id is None
        ):
            event = dataclasses.replace(event, session_id=current)
        started = dispatch(controller, event)
        if started is not None:
            current = started

    if isinstance(source, AsyncIterable):
        async for event in source:
            apply(event)
    else:
        for i, event in enumerate(source):
            apply(event)
            if i > 0 and i % 100 == 0:
                await asyncio.sleep(0)
    return current


async def stream_answer(
    controller: StreamController,
    tokens: Union[Iterable[str], AsyncIterable[str]],
) -> str:
    """
    Run one request's token stream through *controller*.

    Starts a session, forwards every token, and completes with the joined
    text. A failing or cancelled token source settles the session through
    the error path; cancellation is re-raised after being recorded.

    Returns:
        The text of the entry the session wrote to.
    """
    session_id = controller.start()
    parts: list[str] = []
    try:
        if isinstance(tokens, AsyncIterable):
            async for token in tokens:
                parts.append(str(token))
                controller.chunk(token, session_id=session_id)
        else:
            for token in tokens:
                parts.append(str(token))
                controller.chunk(token, session_id=session_id)
    except asyncio.CancelledError as exc:
        controller.error(exc, session_id=session_id)
        raise
    except Exception as exc:
        logger.warning("[AnswerStream] Token source failed: %s", exc)
        controller.error(exc, session_id=session_id)
        active = controller.history.active_entry
        return active.full if active is not None else ""

    controller.complete("".join(parts), session_id=session_id)
    active = controller.history.active_entry
    return active.full if active is not None else ""

"""
Stream controller: turns backend stream events into history and display state.

One controller owns one :class:`HistoryLog`, one :class:`ErrorState` and at
most one live :class:`StreamSession`. Every stream runs
``IDLE -> STREAMING -> SETTLED``; the next ``start()`` opens a new session.

Usage::

    controller = StreamController(settings, display=my_view)
    sid = controller.start()
    controller.chunk("Hello", session_id=sid)
    controller.complete("Hello", session_id=sid)

Each session gets a monotonically increasing id from ``start()``. Events
stamped with any other id are dropped, so a late chunk from a superseded
request can never land in the new answer's entry.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ._threading import CriticalSection, SessionCounter
from .config import DEFAULT_SEPARATOR, EngineSettings
from .error_state import ErrorState
from .history import SUMMARY_LENGTH, HistoryEntry, HistoryLog
from .markdown import render_or_raw
from .policy import ContextAction, ContextFlags, decide
from .protocols import get_renderer
from .scheduler import DeferredScheduler

logger = logging.getLogger("answer_stream")

__all__ = ["StateChange", "StreamController", "StreamSession", "StreamState"]

Listener = Callable[["StateChange"], Any]


class StreamState(enum.Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    SETTLED = "settled"


@dataclass
class StreamSession:
    """The live stream. Discarded when it settles or a newer one starts."""

    session_id: int
    action: ContextAction
    entry: HistoryEntry
    buffer: str = ""
    chunks: int = 0
    index: int | None = 0


@dataclass(frozen=True)
class StateChange:
    """Notification sent to listeners after every mutation."""

    operation: str
    state: StreamState
    session_id: int | None
    content: str
    active_index: int


class StreamController:
    """
    Drives the per-stream state machine.

    Parameters
    ----------
    settings:
        Source of ``keep_context`` (read at every ``start()``), plus the
        separator, summary length and history bound. Defaults to
        :class:`EngineSettings`.
    flags:
        Caller-owned :class:`ContextFlags`. ``overwrite_next`` is consumed by
        the next ``start()``.
    renderer:
        Object with ``render(text) -> markup``. Defaults to the registered
        renderer (see :func:`answer_stream.protocols.get_renderer`).
    display:
        Optional surface with ``set_content`` / ``scroll_to_end``.
    scheduler:
        Runs the scroll effect after the content change is visible. Defaults
        to a :class:`DeferredScheduler` the display flushes after layout.
    thread_safe:
        Serialize every operation behind a real lock, for callers that feed
        one controller from several threads.
    """

    def __init__(
        self,
        settings: Any | None = None,
        *,
        flags: ContextFlags | None = None,
        history: HistoryLog | None = None,
        renderer: Any | None = None,
        display: Any | None = None,
        scheduler: Any | None = None,
        error_state: ErrorState | None = None,
        thread_safe: bool = False,
    ) -> None:
        self._settings = settings if settings is not None else EngineSettings()
        # Without an explicit settings source the caller owns flags.keep_context.
        self._read_keep_context = settings is not None
        self.flags = flags if flags is not None else ContextFlags()
        self._history = (
            history
            if history is not None
            else HistoryLog(max_entries=getattr(self._settings, "max_history", None))
        )
        self._renderer = renderer if renderer is not None else get_renderer()
        self._display = display
        self._scheduler = scheduler if scheduler is not None else DeferredScheduler()
        self._error_state = error_state if error_state is not None else ErrorState()

        self._cs = CriticalSection(force=thread_safe)
        self._ids = SessionCounter(force_lock=thread_safe)
        self._session: StreamSession | None = None
        self._state = StreamState.IDLE
        self._content = ""
        self._loading = False
        self._scroll_pending = False
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    @property
    def history(self) -> HistoryLog:
        return self._history

    @property
    def active_index(self) -> int:
        return self._history.active_index

    @property
    def error_state(self) -> ErrorState:
        return self._error_state

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def content(self) -> str:
        """Markup most recently published to the display."""
        return self._content

    @property
    def is_loading(self) -> bool:
        """True from ``start()`` until the first token or the session settles."""
        return self._loading

    @property
    def session_id(self) -> int | None:
        """Id of the live session, or ``None`` when nothing is streaming."""
        return self._session.session_id if self._session is not None else None

    @property
    def buffer(self) -> str | None:
        return self._session.buffer if self._session is not None else None

    @property
    def scheduler(self) -> Any:
        return self._scheduler

    @property
    def separator(self) -> str:
        return getattr(self._settings, "separator", DEFAULT_SEPARATOR)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Subscribe to :class:`StateChange` notifications; returns an unsubscriber."""
        self._listeners.append(listener)

        def remove() -> None:
            self.remove_listener(listener)

        return remove

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, operation: str, session_id: int | None) -> None:
        change = StateChange(
            operation=operation,
            state=self._state,
            session_id=session_id,
            content=self._content,
            active_index=self._history.active_index,
        )
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as exc:
                logger.warning(
                    "[AnswerStream] Listener %r failed on %s: %s", listener, operation, exc
                )

    # ------------------------------------------------------------------
    # Display plumbing
    # ------------------------------------------------------------------

    def _publish(self, markup: str) -> None:
        self._content = markup
        if self._display is None:
            return
        try:
            self._display.set_content(markup)
        except Exception as exc:
            logger.warning("[AnswerStream] Display rejected content: %s", exc)

    def _request_scroll(self) -> None:
        # One pending scroll at a time; it reads whatever content is current when it runs.
        if self._display is None or self._scroll_pending:
            return
        self._scroll_pending = True
        self._scheduler.defer(self._scroll_to_end)

    def _scroll_to_end(self) -> None:
        with self._cs:
            self._scroll_pending = False
        if self._display is not None:
            self._display.scroll_to_end()

    def _render(self, text: str) -> str:
        if not text:
            return ""
        return render_or_raw(self._renderer, text)

    # ------------------------------------------------------------------
    # Stream events
    # ------------------------------------------------------------------

    def start(self) -> int:
        """
        Open a new stream session and prepare the entry it writes to.

        Returns the session id to stamp on this stream's later events.
        """
        with self._cs:
            if self._session is not None:
                logger.debug(
                    "[AnswerStream] Session %d superseded before settling",
                    self._session.session_id,
                )
                self._session = None

            if self._read_keep_context:
                self.flags.keep_context = bool(getattr(self._settings, "keep_context", False))

            action = decide(self.flags, bool(self._history))
            session_id = self._ids.next()
            summary_length = getattr(self._settings, "summary_length", SUMMARY_LENGTH)

            if action is ContextAction.CONTINUE:
                self._history.select(0)
                entry = self._history[0]
                buffer = entry.full + self.separator
                markup = self._render(buffer)
            else:
                entry = HistoryEntry.placeholder(summary_length)
                if action is ContextAction.REPLACE:
                    self._history.replace_front(entry)
                else:
                    self._history.insert_front(entry)
                buffer = ""
                markup = ""

            self._session = StreamSession(session_id, action, entry, buffer)
            self._state = StreamState.STREAMING
            self._loading = True
            self._publish(markup)
            logger.debug("[AnswerStream] Session %d started (%s)", session_id, action.value)
            self._notify("start", session_id)
            return session_id

    def _live_session(self, session_id: int | None, operation: str) -> StreamSession | None:
        session = self._session
        if session is None:
            logger.debug("[AnswerStream] Dropping %s: no live session", operation)
            return None
        if session_id is not None and session_id != session.session_id:
            logger.debug(
                "[AnswerStream] Dropping stale %s for session %s (live: %d)",
                operation,
                session_id,
                session.session_id,
            )
            return None
        return session

    def _entry_index(self, entry: HistoryEntry) -> int | None:
        for index, candidate in enumerate(self._history):
            if candidate is entry:
                return index
        return None

    def _session_index(self, session: StreamSession) -> int | None:
        """Position of the session's entry; rescans only if the log was edited underneath it."""
        index = session.index
        if (
            index is not None
            and index < len(self._history)
            and self._history[index] is session.entry
        ):
            return index
        session.index = self._entry_index(session.entry)
        return session.index

    def chunk(self, token: str, session_id: int | None = None) -> bool:
        """Append *token* to the live answer. Returns ``False`` if dropped."""
        with self._cs:
            session = self._live_session(session_id, "chunk")
            if session is None:
                return False

            session.buffer += str(token)
            session.chunks += 1
            session.entry.set_full(session.buffer)
            index = self._session_index(session)
            if index is not None:
                self._history.select(index)

            self._loading = False
            self._publish(self._render(session.buffer))
            self._request_scroll()
            self._notify("chunk", session.session_id)
            return True

    def complete(self, final_text: str | None = None, session_id: int | None = None) -> bool:
        """
        Settle the live session with the backend's final answer.

        When the session continued the previous answer, the streamed buffer
        already holds the combined text and *final_text* is not applied.
        """
        with self._cs:
            session = self._live_session(session_id, "complete")
            if session is None:
                return False

            if session.action is not ContextAction.CONTINUE:
                text = session.buffer if final_text is None else str(final_text)
                session.entry.set_full(text)

            index = self._session_index(session)
            if index is not None:
                self._history.select(index)
            self._publish(self._render(session.entry.full))

            self._settle()
            self._error_state.dismiss()
            logger.debug(
                "[AnswerStream] Session %d complete after %d chunk(s)",
                session.session_id,
                session.chunks,
            )
            self._notify("complete", session.session_id)
            return True

    def error(self, err: Any, session_id: int | None = None) -> bool:
        """
        Surface a failure in the error panel. History is left as it is.

        May be called with no live session for failures detected before the
        stream starts (missing key, backend unreachable).
        """
        with self._cs:
            session = self._session
            if session_id is not None and (session is None or session.session_id != session_id):
                logger.debug("[AnswerStream] Dropping stale error for session %s", session_id)
                return False

            kind = self._error_state.show(err)
            logger.info(
                "[AnswerStream] Stream failed (%s): %s", kind.__name__, self._error_state.raw_detail
            )
            if session is not None:
                self._settle()
            self._loading = False
            self._notify("error", session.session_id if session is not None else None)
            return True

    def _settle(self) -> None:
        self._session = None
        self._state = StreamState.SETTLED
        self._loading = False

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def select_history(self, index: int) -> bool:
        """Show entry *index*. Out-of-range indices are ignored."""
        with self._cs:
            if not self._history.select(index):
                return False
            self._publish(self._render(self._history[index].full))
            self._notify("select", self.session_id)
            return True

    def request_overwrite(self) -> None:
        """Make the next stream regenerate the newest answer in place."""
        self.flags.request_overwrite()

    def dismiss_error(self) -> None:
        with self._cs:
            self._error_state.dismiss()
            self._notify("dismiss_error", self.session_id)

    def toggle_error_details(self) -> bool:
        with self._cs:
            expanded = self._error_state.toggle_details()
            self._notify("toggle_details", self.session_id)
            return expanded

    def clear_history(self) -> None:
        """Forget every answer. A live session is abandoned with it."""
        with self._cs:
            if self._session is not None:
                logger.debug(
                    "[AnswerStream] Session %d abandoned by history clear",
                    self._session.session_id,
                )
                self._settle()
            self._history.clear()
            self._publish("")
            self._notify("clear", None)

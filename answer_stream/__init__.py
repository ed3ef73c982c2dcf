"""
answer-stream public API.

Streaming-answer aggregation for assistant UIs: assembles incremental tokens
into a display-ready document and keeps a rolling history of answers with a
continue / replace / create context policy.
"""

from __future__ import annotations

from .config import EngineSettings, load_settings, save_settings
from .controller import StateChange, StreamController, StreamSession, StreamState
from .error_state import ErrorState
from .events import (
    StreamChunk,
    StreamComplete,
    StreamError,
    StreamStart,
    dispatch,
    drive,
    parse_event,
    stream_answer,
)
from .exceptions import (
    AuthError,
    QuotaError,
    RenderError,
    StreamCancelledError,
    StreamEngineError,
    TransportError,
    classify_error,
)
from .history import HistoryEntry, HistoryLog, summarize
from .markdown import MarkdownRenderer
from .policy import ContextAction, ContextFlags, decide
from .protocols import get_renderer, set_renderer
from .scheduler import AsyncioScheduler, DeferredScheduler, ImmediateScheduler

__all__ = [
    "AsyncioScheduler",
    "AuthError",
    "ContextAction",
    "ContextFlags",
    "DeferredScheduler",
    "EngineSettings",
    "ErrorState",
    "HistoryEntry",
    "HistoryLog",
    "ImmediateScheduler",
    "MarkdownRenderer",
    "QuotaError",
    "RenderError",
    "StateChange",
    "StreamCancelledError",
    "StreamChunk",
    "StreamComplete",
    "StreamController",
    "StreamEngineError",
    "StreamError",
    "StreamSession",
    "StreamStart",
    "StreamState",
    "TransportError",
    "classify_error",
    "decide",
    "dispatch",
    "drive",
    "get_renderer",
    "load_settings",
    "parse_event",
    "save_settings",
    "set_renderer",
    "stream_answer",
    "summarize",
]

"""
Shared fixtures and fakes for the answer-stream test suite.

The display fake records every call in order so tests can assert that the
scroll effect only runs after the content it measures has been applied.
"""

from unittest.mock import MagicMock

import pytest

from answer_stream.config import EngineSettings
from answer_stream.controller import StreamController
from answer_stream.history import HistoryEntry, HistoryLog
from answer_stream.policy import ContextFlags
from answer_stream.scheduler import DeferredScheduler

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class RecordingDisplay:
    """Display surface that logs ("set", markup) and ("scroll", content) calls."""

    def __init__(self):
        self.calls = []
        self.content = ""

    def set_content(self, markup):
        self.content = markup
        self.calls.append(("set", markup))

    def scroll_to_end(self):
        self.calls.append(("scroll", self.content))


class EchoRenderer:
    """Renderer that tags text so tests can tell rendered from raw output."""

    def render(self, text):
        return f"<md>{text}</md>"


def make_history(*texts, max_entries=None):
    """Build a HistoryLog whose index 0 holds texts[0]."""
    log = HistoryLog(max_entries=max_entries)
    for text in reversed(texts):
        log.insert_front(HistoryEntry(full=text, time="12:00:00"))
    return log


def make_failing_renderer(exc=None):
    renderer = MagicMock()
    renderer.render.side_effect = exc or ValueError("bad markdown")
    return renderer


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def display():
    return RecordingDisplay()


@pytest.fixture
def scheduler():
    return DeferredScheduler()


@pytest.fixture
def flags():
    return ContextFlags()


@pytest.fixture
def make_controller(display, scheduler, flags):
    """
    Factory for controllers wired to the recording display, a deferred
    scheduler and the echo renderer. Keyword overrides pass through.
    """

    def factory(*history_texts, settings=None, **kwargs):
        kwargs.setdefault("flags", flags)
        kwargs.setdefault("display", display)
        kwargs.setdefault("scheduler", scheduler)
        kwargs.setdefault("renderer", EchoRenderer())
        kwargs.setdefault("history", make_history(*history_texts))
        return StreamController(settings, **kwargs)

    return factory


@pytest.fixture
def keep_context_settings():
    return EngineSettings(keep_context=True)


@pytest.fixture
def echo_renderer():
    return EchoRenderer()


@pytest.fixture
def failing_renderer():
    return make_failing_renderer()


@pytest.fixture
def history_factory():
    """Factory building a HistoryLog newest-first from its arguments."""
    return make_history

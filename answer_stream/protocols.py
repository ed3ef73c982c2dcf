"""
Collaborator protocols for the answer-stream engine.

Defines structural subtyping (typing.Protocol) interfaces for the pieces the
engine talks to but does not own: the markup renderer, the display surface,
the settings source and the scheduler that runs post-commit effects.

Usage:
    from answer_stream.protocols import set_renderer, get_renderer

    # Default: MarkdownRenderer from answer_stream.markdown
    renderer = get_renderer()

    # Swap in a custom renderer for testing or a richer markdown library:
    set_renderer(my_renderer)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger("answer_stream")

__all__ = [
    "DisplaySurface",
    "NullDisplay",
    "RenderAdapter",
    "Scheduler",
    "SettingsProvider",
    "get_renderer",
    "set_renderer",
]


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class RenderAdapter(Protocol):
    """Pure conversion from raw answer text to display markup."""

    def render(self, text: str) -> str:
        """Return markup for *text*. May raise; callers fall back to raw text."""
        ...


@runtime_checkable
class DisplaySurface(Protocol):
    """Where rendered answers are shown."""

    def set_content(self, markup: str) -> None:
        """Replace the visible content."""
        ...

    def scroll_to_end(self) -> None:
        """Scroll to the bottom. Only called after ``set_content`` took effect."""
        ...


@runtime_checkable
class SettingsProvider(Protocol):
    """Read-only view of the user's persistent preferences."""

    @property
    def keep_context(self) -> bool: ...


@runtime_checkable
class Scheduler(Protocol):
    """Runs an effect on a later tick, after the current mutation is visible."""

    def defer(self, effect: Callable[[], Any]) -> None: ...


# ---------------------------------------------------------------------------
# Null display
# ---------------------------------------------------------------------------


class NullDisplay:
    """Display surface that only remembers what it was asked to show."""

    def __init__(self) -> None:
        self.content = ""
        self.scrolls = 0

    def set_content(self, markup: str) -> None:
        self.content = markup

    def scroll_to_end(self) -> None:
        self.scrolls += 1


# ---------------------------------------------------------------------------
# Module-level renderer registry
# ---------------------------------------------------------------------------

_renderer: Any = None


def set_renderer(renderer: Any) -> None:
    """Replace the default renderer (module-level singleton)."""
    global _renderer
    if not callable(getattr(renderer, "render", None)):
        raise TypeError(f"Renderer must provide render(text); got {type(renderer).__name__}")
    _renderer = renderer
    logger.info("[AnswerStream] Renderer set to %s", type(renderer).__name__)


def get_renderer() -> Any:
    """Return the active default renderer, creating the markdown one lazily."""
    global _renderer
    if _renderer is None:
        from .markdown import MarkdownRenderer

        _renderer = MarkdownRenderer()
    return _renderer

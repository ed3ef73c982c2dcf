"""
Default markup adapter: a small Markdown subset rendered to HTML.

Covers what streamed answers actually contain (fenced code, headings,
rules, quotes, lists, inline emphasis and code). Deployments that need full
CommonMark plug in their own renderer via
:func:`answer_stream.protocols.set_renderer`.
"""

from __future__ import annotations

import html
import logging
import re
from typing import Any

from .exceptions import RenderError

logger = logging.getLogger("answer_stream")

__all__ = ["MarkdownRenderer", "render_or_raw"]

_FENCE = "```"
_HEADING = re.compile(r"^(#{1,6})\s+(.+)$")
_RULE = re.compile(r"^[-*_]{3,}\s*$")
_BULLET = re.compile(r"^[-*+]\s+(.+)$")
_NUMBERED = re.compile(r"^\d+\.\s+(.+)$")
_INLINE_RULES = (
    (re.compile(r"`([^`]+)`"), r"<code>\1</code>"),
    (re.compile(r"\*\*(.+?)\*\*"), r"<strong>\1</strong>"),
    (re.compile(r"__(.+?)__"), r"<strong>\1</strong>"),
    (re.compile(r"\*(.+?)\*"), r"<em>\1</em>"),
    (re.compile(r"(?<!\w)_(.+?)_(?!\w)"), r"<em>\1</em>"),
)


def _inline(text: str) -> str:
    for pattern, replacement in _INLINE_RULES:
        text = pattern.sub(replacement, text)
    return text


class MarkdownRenderer:
    """Stateless renderer; one instance can be shared by every controller."""

    def render(self, text: str) -> str:
        if not text:
            return ""
        if not isinstance(text, str):
            raise RenderError(f"Expected text, got {type(text).__name__}")

        out: list[str] = []
        code: list[str] | None = None
        open_list = ""

        def close_list() -> None:
            nonlocal open_list
            if open_list:
                out.append(f"</{open_list}>")
                open_list = ""

        for line in html.escape(text).split("\n"):
            stripped = line.strip()

            if stripped.startswith(_FENCE):
                if code is None:
                    close_list()
                    code = []
                else:
                    out.append(f"<pre><code>{'&#10;'.join(code)}</code></pre>")
                    code = None
                continue
            if code is not None:
                code.append(line)
                continue

            if not stripped:
                close_list()
                out.append("")
                continue

            if _RULE.match(stripped):
                close_list()
                out.append("<hr>")
                continue

            heading = _HEADING.match(stripped)
            if heading:
                close_list()
                level = len(heading.group(1))
                out.append(f"<h{level}>{_inline(heading.group(2))}</h{level}>")
                continue

            if stripped.startswith("&gt; "):
                close_list()
                out.append(f"<blockquote>{_inline(stripped[5:])}</blockquote>")
                continue

            for tag, pattern in (("ul", _BULLET), ("ol", _NUMBERED)):
                item = pattern.match(stripped)
                if item:
                    if open_list != tag:
                        close_list()
                        out.append(f"<{tag}>")
                        open_list = tag
                    out.append(f"<li>{_inline(item.group(1))}</li>")
                    break
            else:
                close_list()
                out.append(f"<p>{_inline(stripped)}</p>")

        # An unterminated fence is normal mid-stream: show what has arrived.
        if code is not None:
            out.append(f"<pre><code>{'&#10;'.join(code)}</code></pre>")
        close_list()
        return "\n".join(out)


def render_or_raw(renderer: Any, text: str) -> str:
    """Render *text*, substituting it verbatim if the renderer fails."""
    try:
        return renderer.render(text)
    except Exception as exc:
        logger.warning(
            "[AnswerStream] Render failed (%s: %s); showing raw text.", type(exc).__name__, exc
        )
        return text

"""
Error kinds and classification for streamed answers.

Backend failures reach the engine as exceptions, status mappings, or bare
strings. This module centralizes how they are classified and which
user-facing copy each kind shows, so the controller, the event parser and the
CLI report failures consistently.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, ClassVar

__all__ = [
    "AuthError",
    "QuotaError",
    "RenderError",
    "StreamCancelledError",
    "StreamEngineError",
    "TransportError",
    "classify_error",
    "describe_detail",
]


class StreamEngineError(RuntimeError):
    """Base class for every failure the engine knows how to present."""

    icon: ClassVar[str] = "⚠️"
    title: ClassVar[str] = "Something went wrong"
    description: ClassVar[str] = "An unknown error occurred."


class TransportError(StreamEngineError):
    """Backend unreachable or the request failed."""

    icon = "🌐"
    title = "Connection failed"
    description = "The assistant backend could not be reached or the request failed."


class AuthError(StreamEngineError):
    """Credentials were rejected or are missing."""

    icon = "🔑"
    title = "Authentication failed"
    description = "The API key was rejected. Check the key in settings."


class QuotaError(StreamEngineError):
    """Resource exhausted: balance, quota or rate limit."""

    icon = "💳"
    title = "Quota exhausted"
    description = "The account has run out of quota or is being rate limited."


class StreamCancelledError(StreamEngineError):
    """The request was interrupted, usually by a newer request."""

    icon = "⏹️"
    title = "Request interrupted"
    description = "The answer was interrupted by a newer request."


class RenderError(StreamEngineError):
    """Markup conversion failed. Recovered locally, never shown as an error."""


_AUTH_CODES = frozenset({401, 403})
_QUOTA_CODES = frozenset({402, 429})

_AUTH_PATTERN = re.compile(
    r"unauthori[sz]ed|invalid[ _-]?api[ _-]?key|incorrect api key|authenticat|"
    r"permission denied|forbidden|require-login|api key (?:is )?missing",
    re.IGNORECASE,
)
_QUOTA_PATTERN = re.compile(
    r"quota|insufficient[ _-]?(?:balance|funds|credit)|rate[ _-]?limit|"
    r"too many requests|resource[ _-]?exhausted|billing",
    re.IGNORECASE,
)
_CANCEL_PATTERN = re.compile(r"context canceled|cancelled|canceled", re.IGNORECASE)
_STATUS_PATTERN = re.compile(r"\b(4\d\d|5\d\d)\b")


def describe_detail(detail: Any) -> str:
    """Render an error detail as the raw string kept behind "show details"."""
    if isinstance(detail, BaseException):
        message = str(detail)
        return f"{type(detail).__name__}: {message}" if message else type(detail).__name__
    if isinstance(detail, Mapping):
        parts = [f"{key}={value}" for key, value in detail.items()]
        return ", ".join(parts)
    return str(detail)


def _status_code(detail: Any) -> int | None:
    candidates: list[Any] = []
    if isinstance(detail, Mapping):
        candidates.extend(detail.get(key) for key in ("code", "status", "status_code"))
    elif isinstance(detail, BaseException):
        candidates.extend(
            getattr(detail, attr, None) for attr in ("status_code", "status", "code")
        )
    for candidate in candidates:
        if candidate is None or isinstance(candidate, bool):
            continue
        try:
            return int(candidate)
        except (TypeError, ValueError):
            continue

    match = _STATUS_PATTERN.search(describe_detail(detail))
    if match:
        return int(match.group(1))
    return None


def classify_error(detail: Any) -> type[StreamEngineError]:
    """
    Map a backend failure onto the kind shown to the user.

    Args:
        detail: An exception, a mapping with ``code``/``status``/``message``
            keys, or a plain string as emitted by the backend.

    Returns:
        The :class:`StreamEngineError` subclass describing the failure.
        Anything unrecognised is a :class:`TransportError`.
    """
    if isinstance(detail, StreamEngineError) and not isinstance(detail, RenderError):
        return type(detail)
    if isinstance(detail, PermissionError):
        return AuthError

    code = _status_code(detail)
    if code in _AUTH_CODES:
        return AuthError
    if code in _QUOTA_CODES:
        return QuotaError

    text = describe_detail(detail)
    if _AUTH_PATTERN.search(text):
        return AuthError
    if _QUOTA_PATTERN.search(text):
        return QuotaError
    if _CANCEL_PATTERN.search(text):
        return StreamCancelledError
    return TransportError

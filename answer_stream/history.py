"""
Rolling log of past answers, newest first.

Each :class:`HistoryEntry` keeps the full answer text plus a short preview
derived from it. The log also owns the *active index*: the entry currently
shown and, while a stream is live, the one being written.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime

logger = logging.getLogger("answer_stream")

__all__ = [
    "ELLIPSIS",
    "PLACEHOLDER_SUMMARY",
    "SUMMARY_LENGTH",
    "HistoryEntry",
    "HistoryLog",
    "summarize",
]

SUMMARY_LENGTH = 30
ELLIPSIS = "..."
PLACEHOLDER_SUMMARY = "thinking..."


def summarize(full: str, length: int = SUMMARY_LENGTH) -> str:
    """Preview shown in the history list: first *length* chars on one line."""
    return full[:length].replace("\n", " ") + ELLIPSIS


def _clock() -> str:
    return datetime.now().strftime("%H:%M:%S")


@dataclass
class HistoryEntry:
    """One answer. ``summary`` follows ``full`` and is never set directly."""

    full: str = ""
    time: str = field(default_factory=_clock)
    summary_length: int = field(default=SUMMARY_LENGTH, repr=False)
    summary: str = field(init=False)

    def __post_init__(self) -> None:
        self.summary = summarize(self.full, self.summary_length)

    def set_full(self, text: str) -> None:
        self.full = text
        self.summary = summarize(text, self.summary_length)

    @classmethod
    def placeholder(cls, summary_length: int = SUMMARY_LENGTH) -> HistoryEntry:
        """Empty entry shown while the first token is awaited."""
        entry = cls(full="", summary_length=summary_length)
        entry.summary = PLACEHOLDER_SUMMARY
        return entry

    def to_dict(self) -> dict[str, str]:
        return {"summary": self.summary, "full": self.full, "time": self.time}


class HistoryLog:
    """
    Ordered answers, index 0 being the newest.

    Parameters
    ----------
    max_entries:
        Optional bound. When set, inserting past the bound drops the oldest
        entries. ``None`` keeps every answer for the life of the process.
    """

    def __init__(self, max_entries: int | None = None) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be None or >= 1")
        self._entries: list[HistoryEntry] = []
        self._active_index = 0
        self._max_entries = max_entries

    # -- read API -------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __getitem__(self, index: int) -> HistoryEntry:
        return self._entries[index]

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(self._entries)

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    @property
    def active_index(self) -> int:
        return self._active_index

    @property
    def active_entry(self) -> HistoryEntry | None:
        if not self._entries:
            return None
        return self._entries[self._active_index]

    @property
    def max_entries(self) -> int | None:
        return self._max_entries

    def summaries(self) -> list[str]:
        return [entry.summary for entry in self._entries]

    # -- mutation -------------------------------------------------------------

    def select(self, index: int) -> bool:
        """
        Point the active index at *index*.

        Returns ``False`` and changes nothing when *index* is out of range.
        """
        valid = isinstance(index, int) and not isinstance(index, bool)
        if not valid or not 0 <= index < len(self._entries):
            logger.debug("[AnswerStream] Ignoring history selection %r", index)
            return False
        self._active_index = index
        return True

    def insert_front(self, entry: HistoryEntry) -> None:
        self._entries.insert(0, entry)
        self._active_index = 0
        if self._max_entries is not None and len(self._entries) > self._max_entries:
            dropped = len(self._entries) - self._max_entries
            del self._entries[self._max_entries :]
            logger.debug("[AnswerStream] Evicted %d old history entries", dropped)

    def replace_front(self, entry: HistoryEntry) -> None:
        if not self._entries:
            raise IndexError("cannot replace the newest entry of an empty history")
        self._entries[0] = entry
        self._active_index = 0

    def clear(self) -> None:
        self._entries.clear()
        self._active_index = 0

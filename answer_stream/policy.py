"""Context carry-over policy: how a new answer relates to the previous one."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

logger = logging.getLogger("answer_stream")

__all__ = ["ContextAction", "ContextFlags", "decide"]


class ContextAction(enum.Enum):
    """What ``start()`` does with the newest history entry."""

    CONTINUE = "continue"  # append after a separator in the same slot
    REPLACE = "replace"  # regenerate in place
    CREATE = "create"  # new slot at the front


@dataclass
class ContextFlags:
    """
    Caller-owned flags read by :func:`decide`.

    ``keep_context`` is the persistent preference. ``overwrite_next`` is a
    one-shot request (e.g. "regenerate") cleared by the decision that reads it.
    """

    keep_context: bool = False
    overwrite_next: bool = False

    def request_overwrite(self) -> None:
        self.overwrite_next = True

    def consume_overwrite(self) -> bool:
        """Return the one-shot flag and clear it."""
        value, self.overwrite_next = self.overwrite_next, False
        return value


def decide(flags: ContextFlags, history_non_empty: bool) -> ContextAction:
    """Pick the action for the next stream, consuming ``overwrite_next``."""
    overwrite = flags.consume_overwrite()
    if overwrite and history_non_empty:
        action = ContextAction.REPLACE
    elif flags.keep_context and history_non_empty:
        action = ContextAction.CONTINUE
    else:
        action = ContextAction.CREATE
    logger.debug(
        "[AnswerStream] Context policy: keep_context=%s overwrite=%s history=%s -> %s",
        flags.keep_context,
        overwrite,
        history_non_empty,
        action.value,
    )
    return action

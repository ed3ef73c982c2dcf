"""Error panel model shown when a stream fails."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from .exceptions import StreamEngineError, classify_error, describe_detail

__all__ = ["ErrorState"]


@dataclass
class ErrorState:
    """
    What the error panel shows. The raw detail stays hidden until the user
    expands it.
    """

    visible: bool = False
    icon: str = StreamEngineError.icon
    title: str = StreamEngineError.title
    description: str = StreamEngineError.description
    raw_detail: str = ""
    details_expanded: bool = False
    kind: str = ""

    def show(self, detail: Any) -> type[StreamEngineError]:
        """Classify *detail* and make the panel visible."""
        kind = classify_error(detail)
        self.visible = True
        self.icon = kind.icon
        self.title = kind.title
        self.description = kind.description
        self.raw_detail = describe_detail(detail)
        self.details_expanded = False
        self.kind = kind.__name__
        return kind

    def toggle_details(self) -> bool:
        self.details_expanded = not self.details_expanded
        return self.details_expanded

    def dismiss(self) -> None:
        """Hide the panel and forget the last failure."""
        self.visible = False
        self.icon = StreamEngineError.icon
        self.title = StreamEngineError.title
        self.description = StreamEngineError.description
        self.raw_detail = ""
        self.details_expanded = False
        self.kind = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

"""Per-cell annotations (highlight color and comment) for sheet grids."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from .constants import SheetKind


class CommentState(Enum):
    """Tri-state comment status layered on top of comment presence."""

    ABSENT = "absent"
    OPEN = "open"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class AnnotationKey:
    """Identity of an annotated cell."""

    clinic_id: str
    sheet_kind: SheetKind
    row_id: str
    field: str

    def with_row(self, row_id: str) -> AnnotationKey:
        return replace(self, row_id=row_id)


@dataclass(frozen=True)
class CellAnnotation:
    """Highlight and comment attached to one cell.

    Lives independently of the row data: editing the cell leaves its
    annotation untouched.
    """

    key: AnnotationKey
    highlight_color: str | None = None
    highlighted_by: str | None = None
    comment: str | None = None
    resolved: bool = False

    @property
    def comment_state(self) -> CommentState:
        if not self.comment:
            return CommentState.ABSENT
        return CommentState.RESOLVED if self.resolved else CommentState.OPEN

    @property
    def is_empty(self) -> bool:
        """True when nothing is left worth storing."""
        return self.highlight_color is None and not self.comment

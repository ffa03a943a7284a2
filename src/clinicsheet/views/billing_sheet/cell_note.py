"""Cell note dataclass for comment and lock notes."""

from __future__ import annotations

from dataclasses import dataclass

from ...models.annotation import CellAnnotation, CommentState


@dataclass
class CellNote:
    """Tooltip content for one cell.

    An open comment takes display priority over a resolved one; a lock
    comment only ever appears on column headers.
    """

    comment: str | None = None
    resolved: bool = False
    lock_comment: str | None = None

    @classmethod
    def from_annotation(cls, annotation: CellAnnotation | None) -> CellNote:
        if annotation is None or annotation.comment_state is CommentState.ABSENT:
            return cls()
        return cls(comment=annotation.comment, resolved=annotation.resolved)

    @property
    def symbol(self) -> str:
        """Return symbol based on note type priority (open > resolved > lock).

        Returns:
            "💬" for an open comment, "✔" for a resolved one, "🔒" for a lock
        """
        if self.comment and not self.resolved:
            return "💬"
        elif self.comment:
            return "✔"
        elif self.lock_comment is not None:
            return "🔒"
        return "💬"  # fallback

    def __bool__(self) -> bool:
        """Return True if any note exists."""
        return bool(self.comment) or self.lock_comment is not None

    def __str__(self) -> str:
        """Format note text for display in tooltip."""
        parts = []
        if self.comment:
            prefix = "Resolved: " if self.resolved else ""
            parts.append(f"{prefix}{self.comment}")
        if self.lock_comment is not None:
            parts.append(f"Locked: {self.lock_comment}" if self.lock_comment else "Locked")
        return "\n\n".join(parts) if parts else ""

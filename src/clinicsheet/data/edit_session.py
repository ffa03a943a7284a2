"""Edit session helper for accumulating changes to one owner's rows.

EditSession is the single working copy for one grid interaction. Every
tuple of a batch (a paste can yield hundreds) reads and writes through the
same session, so later tuples see the effects of earlier ones. Changes are
accumulated as MutableRowBuilder instances keyed by row index and frozen
into a new row list in one step.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ..models.mutable_row_builder import MutableRowBuilder
from ..models.sheet_row import SheetRow
from ..services.row_service import RowService


class EditSession:
    """Working copy over a row sequence.

    Usage:
        session = EditSession(owner_id, prior_rows)
        session.ensure_index(250)
        session.set_fields(3, {"patient_insurance": "Acme"})
        new_rows = session.freeze()
    """

    def __init__(self, owner_id: str, rows: Sequence[SheetRow]):
        """Initialize an edit session.

        Args:
            owner_id: Owner of the sequence (used for padding ids).
            rows: Prior row sequence; never mutated.
        """
        self._owner_id = owner_id
        self._base: list[SheetRow] = list(rows)
        self._pending: dict[int, MutableRowBuilder] = {}

    @property
    def owner_id(self) -> str:
        return self._owner_id

    @property
    def pending(self) -> dict[int, MutableRowBuilder]:
        """Get the pending builders dict keyed by row index."""
        return self._pending

    def __len__(self) -> int:
        return len(self._base)

    def ensure_index(self, index: int) -> None:
        """Synthesize padding rows so that ``index`` is a valid row index."""
        if index >= len(self._base):
            self._base = RowService.ensure_padding(self._owner_id, self._base, index + 1)

    def get_builder(self, index: int) -> MutableRowBuilder:
        """Get or create the builder for a row index."""
        if index not in self._pending:
            self._pending[index] = MutableRowBuilder()
        return self._pending[index]

    def row(self, index: int) -> SheetRow:
        """Effective row at index: base row with pending changes applied."""
        base = self._base[index]
        builder = self._pending.get(index)
        return builder.freeze(base) if builder else base

    def set_fields(self, index: int, values: dict[str, Any]) -> None:
        self.get_builder(index).update(values)

    def replace_id(self, index: int, new_id: str) -> None:
        self.get_builder(index).new_id = new_id

    def has_pending_changes(self) -> bool:
        return any(builder.has_changes() for builder in self._pending.values())

    def freeze(self) -> list[SheetRow]:
        """Apply every builder and return the new row list."""
        return [self.row(index) for index in range(len(self._base))]

"""Row styling logic for the billing sheet.

Encapsulates all visual styling: status and CPT colors, user highlights,
comment notes and pending-row markers on the row index.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from .decorations import cell_note, cell_style
from .panel_constants import COLOR_PENDING_INDEX_BG

if TYPE_CHECKING:
    from tksheet import Sheet

    from ...data.annotation_store import AnnotationStore
    from ...models.lookups import LookupTables
    from ...models.sheet_row import SheetRow


class BillingRowStyler:
    """Pushes decorations for the current rows into a tksheet Sheet.

    Usage:
        styler = BillingRowStyler(
            sheet=self.sheet,
            get_rows=lambda: self.rows,
            get_fields=lambda: self._fields,
            get_lookups=lambda: controller.lookups,
            annotations=controller.annotations,
        )
        styler.apply_all_styling()  # Full refresh
        styler.update_rows_styling({3, 4})  # Rows touched by one edit
    """

    def __init__(
        self,
        sheet: Sheet,
        get_rows: Callable[[], list[SheetRow]],
        get_fields: Callable[[], list[str]],
        get_lookups: Callable[[], LookupTables],
        annotations: AnnotationStore,
    ):
        self.sheet = sheet
        self._get_rows = get_rows
        self._get_fields = get_fields
        self._get_lookups = get_lookups
        self._annotations = annotations

        # Note cache to prevent redundant tksheet calls
        self._note_cache: dict[tuple[int, int], str] = {}

    def _apply_row_highlights(self, data_idx: int) -> None:
        row = self._get_rows()[data_idx]
        lookups = self._get_lookups()

        if row.is_pending:
            self.sheet.highlight_cells(row=data_idx, bg=COLOR_PENDING_INDEX_BG, canvas="row_index")

        for col, field_name in enumerate(self._get_fields()):
            style = cell_style(row, field_name, lookups, self._annotations.get(row.id, field_name))
            if style:
                self.sheet.highlight_cells(row=data_idx, column=col, bg=style.bg, fg=style.fg)

    def _compute_row_notes(self, data_idx: int) -> dict[tuple[int, int], str]:
        row = self._get_rows()[data_idx]
        target: dict[tuple[int, int], str] = {}
        for col, field_name in enumerate(self._get_fields()):
            note = cell_note(self._annotations.get(row.id, field_name))
            if note:
                target[(data_idx, col)] = str(note)
        return target

    def _sync_notes(self, target: dict[tuple[int, int], str], rows: set[int] | None = None) -> None:
        # Remove notes that are cached but no longer wanted (limited to rows if given)
        for cell_key in list(self._note_cache):
            if rows is not None and cell_key[0] not in rows:
                continue
            if cell_key not in target:
                self.sheet.note(cell_key[0], cell_key[1], note=None)
                del self._note_cache[cell_key]

        for cell_key, note_text in target.items():
            if self._note_cache.get(cell_key) != note_text:
                self.sheet.note(cell_key[0], cell_key[1], note=note_text)
                self._note_cache[cell_key] = note_text

    # --- Public API ---

    def apply_all_styling(self) -> None:
        """Dehighlight everything, then re-apply styling for every row."""
        self.sheet.dehighlight_all()
        target: dict[tuple[int, int], str] = {}
        for data_idx in range(len(self._get_rows())):
            self._apply_row_highlights(data_idx)
            target.update(self._compute_row_notes(data_idx))
        self._sync_notes(target)

    def update_rows_styling(self, data_indices: set[int]) -> None:
        """Restyle only the given rows."""
        row_count = len(self._get_rows())
        rows = {idx for idx in data_indices if 0 <= idx < row_count}
        target: dict[tuple[int, int], str] = {}
        for data_idx in rows:
            for col in range(len(self._get_fields())):
                self.sheet.dehighlight_cells(row=data_idx, column=col)
            self.sheet.dehighlight_cells(row=data_idx, canvas="row_index")
            self._apply_row_highlights(data_idx)
            target.update(self._compute_row_notes(data_idx))
        self._sync_notes(target, rows)

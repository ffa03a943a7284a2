"""Panel widget for one provider's monthly billing sheet.

Uses tksheet for display. All row changes go through SheetController; the
panel re-renders from controller.rows() after each interaction.
"""

from __future__ import annotations

import logging
import tkinter as tk
from tkinter import ttk
from typing import TYPE_CHECKING

from tksheet import num2alpha

from ...data.reconciler import CellEdit
from ...models.annotation import CommentState
from ...models.constants import FIELD_TITLES, FULL_ACCESS_ROLES
from ...models.view_context import StaffView
from ..dialogs import ask_comment, ask_lock_comment, confirm_delete_row, show_error
from .cell_note import CellNote
from .decorations import header_title
from .panel_constants import (
    COLUMN_WIDTHS,
    DEFAULT_COLUMN_WIDTH,
    DYNAMIC_MENU_LABELS,
    MENU_COMMENT,
    MENU_DELETE_ROW,
    MENU_HIGHLIGHT,
    MENU_INSERT_ABOVE,
    MENU_INSERT_BELOW,
    MENU_LOCK,
    MENU_REOPEN,
    MENU_RESOLVE,
    MENU_UNLOCK,
)
from .row_styler import BillingRowStyler
from .sheet import BillingSheet

if TYPE_CHECKING:
    from ...data.sheet_controller import SheetController
    from ...models.sheet_row import SheetRow
    from ...utils.async_bridge import TkAsyncioBridge

logger = logging.getLogger(__name__)


class BillingSheetPanel(ttk.Frame):
    """Grid for editing one provider's month of appointments."""

    def _get_field(self, col: int | None) -> str | None:
        if col is None or not 0 <= col < len(self._fields):
            return None
        return self._fields[col]

    def _get_row(self, data_idx: int | None) -> SheetRow | None:
        if data_idx is None or not 0 <= data_idx < len(self.rows):
            return None
        return self.rows[data_idx]

    # --- Grid events ---

    def _on_sheet_modified(self, event) -> None:
        """Handle sheet modification events (called AFTER changes are applied).

        Cell edits and pastes become one CellEdit batch; a row drag becomes a
        move by row id, resolved against the rows as they were before the move.
        """
        if self._suppress_notifications or self._controller.owner_id is None:
            return

        moved = getattr(event, "moved", None)
        moved_rows = moved.get("rows", {}).get("data", {}) if moved else {}
        if moved_rows:
            self._handle_row_move(moved_rows)
            return

        cells = getattr(event, "cells", None)
        if not cells:
            return

        # tksheet v7 structure: {'table': {(row, col): old_value}, 'header': {}, 'index': {}}
        table_cells = cells.get("table", {})
        if not table_cells:
            return

        batch = [
            CellEdit(row=r, col=c, old=old_value, new=self.sheet.get_cell_data(r, c))
            for (r, c), old_value in table_cells.items()
        ]
        result = self._controller.handle_edits(batch)
        if result.rejected:
            logger.debug("Ignored %d edits to read-only cells", len(result.rejected))
        self.refresh_view()

    def _handle_row_move(self, moved_rows: dict[int, int]) -> None:
        # self.rows still holds the pre-move order
        old_indices = sorted(moved_rows)
        row_ids = [self.rows[idx].id for idx in old_indices if idx < len(self.rows)]
        dest_index = min(moved_rows.values())
        if not self._controller.move_rows(row_ids, dest_index):
            logger.debug("Ignored repeated move of %d rows", len(row_ids))
        self.refresh_view()

    # --- Popup menu ---

    def _can_manage_locks(self) -> bool:
        context = self._controller.view_context
        return (
            self._controller.can_edit
            and isinstance(context, StaffView)
            and context.role in FULL_ACCESS_ROLES
        )

    def _add_menu_command(self, label: str, func, table: bool = False, index: bool = False, header: bool = False):
        self.sheet.popup_menu_add_command(
            label=label,
            func=func,
            table_menu=table,
            index_menu=index,
            header_menu=header,
            empty_space_menu=False,
        )

    def _update_context_menu(self, region: str, clicked_row: int | None, clicked_col: int | None) -> None:
        """Rebuild the popup menu for what was right-clicked."""
        for label in DYNAMIC_MENU_LABELS:
            self.sheet.popup_menu_del_command(label=label)

        self._context_row = clicked_row
        self._context_col = clicked_col
        can_edit = self._controller.can_edit and bool(self._controller.projection().editable_fields)

        if region == "header":
            field_name = self._get_field(clicked_col)
            if field_name and self._can_manage_locks():
                if self._controller.lock_state.is_locked(field_name):
                    self._add_menu_command(MENU_UNLOCK, self._toggle_lock, header=True)
                else:
                    self._add_menu_command(MENU_LOCK, self._toggle_lock, header=True)
            return

        row = self._get_row(clicked_row)
        if row is None or region not in ("table", "index"):
            return

        if region == "table" and self._controller.can_edit and self._get_field(clicked_col):
            field_name = self._fields[clicked_col]
            self._add_menu_command(MENU_HIGHLIGHT, self._toggle_highlight, table=True)
            self._add_menu_command(MENU_COMMENT, self._edit_comment, table=True)
            state = self._controller.annotations.comment_state(row.id, field_name)
            if state is CommentState.OPEN:
                self._add_menu_command(MENU_RESOLVE, self._resolve_comment, table=True)
            elif state is CommentState.RESOLVED:
                self._add_menu_command(MENU_REOPEN, self._reopen_comment, table=True)

        if can_edit:
            in_table = region == "table"
            self._add_menu_command(MENU_INSERT_ABOVE, self._insert_above, table=in_table, index=not in_table)
            self._add_menu_command(MENU_INSERT_BELOW, self._insert_below, table=in_table, index=not in_table)
            if not row.is_placeholder:
                self._add_menu_command(MENU_DELETE_ROW, self._delete_row, table=in_table, index=not in_table)

    def _on_right_click(self, event) -> None:
        """Update the popup menu before tksheet builds and shows it."""
        region = self.sheet.identify_region(event)
        clicked_row = self.sheet.identify_row(event)
        clicked_col = self.sheet.identify_column(event)
        self._update_context_menu(region, clicked_row, clicked_col)

    # --- Menu actions ---

    def _toggle_highlight(self) -> None:
        field_name = self._get_field(self._context_col)
        if self._context_row is None or field_name is None:
            return
        self._controller.toggle_highlight(self._context_row, field_name)
        self.refresh_view()

    def _edit_comment(self) -> None:
        field_name = self._get_field(self._context_col)
        row = self._get_row(self._context_row)
        if row is None or field_name is None:
            return
        annotation = self._controller.annotations.get(row.id, field_name)
        title = f"Comment: {FIELD_TITLES[field_name]} (row {self._context_row + 1})"
        text = ask_comment(self, title, annotation.comment if annotation else None)
        if text is None:
            return
        self._controller.set_comment(self._context_row, field_name, text)
        self.refresh_view()

    def _set_resolved(self, resolved: bool) -> None:
        field_name = self._get_field(self._context_col)
        if self._context_row is None or field_name is None:
            return
        self._controller.resolve_comment(self._context_row, field_name, resolved)
        self.refresh_view()

    def _resolve_comment(self) -> None:
        self._set_resolved(True)

    def _reopen_comment(self) -> None:
        self._set_resolved(False)

    def _insert(self, above: bool) -> None:
        if self._context_row is None:
            return
        self._controller.insert_row(self._context_row, above)
        self.refresh_view()

    def _insert_above(self) -> None:
        self._insert(above=True)

    def _insert_below(self) -> None:
        self._insert(above=False)

    def _delete_row(self) -> None:
        if self._context_row is None:
            return
        if not confirm_delete_row(self, self._context_row + 1):
            return
        if self._controller.delete_row(self._context_row):
            self.refresh_view()

    def _toggle_lock(self) -> None:
        field_name = self._get_field(self._context_col)
        if field_name is None:
            return
        comment = None
        if not self._controller.lock_state.is_locked(field_name):
            comment = ask_lock_comment(self, FIELD_TITLES[field_name])
            if comment is None:
                return
        self._bridge.spawn(
            self._controller.toggle_lock(field_name, comment),
            on_done=lambda _state: self.refresh_view(),
            on_error=lambda exc: self.show_error(str(exc)),
        )

    # --- Widgets ---

    def _create_widgets(self) -> None:
        """Create all panel widgets."""
        self.sheet = BillingSheet(
            self,
            headers=[],
            show_row_index=True,
            index_align="e",
            height=500,
            width=1200,
            note_corners=True,
        )
        self.sheet.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)

        # Configure notes to behave like tooltips
        self.sheet.set_options(
            tooltip_hover_delay=300,
            tooltip_width=300,
            tooltip_height=100,
            paste_can_expand_x=False,
            paste_can_expand_y=False,
        )

        self.sheet.enable_bindings()
        self.sheet.disable_bindings(
            "column_drag_and_drop",
            "rc_select_column",
            "rc_insert_column",
            "rc_delete_column",
            "rc_insert_row",
            "rc_delete_row",
            "sort_cells",
            "sort_row",
            "sort_column",
            "sort_rows",
            "sort_columns",
            "undo",
        )

        self.sheet.add_begin_right_click(self._on_right_click)
        self.sheet.row_index(50)

        # Fires AFTER the sheet has been modified, not during
        self.sheet.bind("<<SheetModified>>", self._on_sheet_modified)

        footer = ttk.Frame(self)
        footer.pack(fill=tk.X, padx=5, pady=(2, 5))

        self.totals_label = ttk.Label(footer, text="")
        self.totals_label.pack(side=tk.LEFT)

        self.status_label = ttk.Label(footer, text="", foreground="#b91c1c")
        self.status_label.pack(side=tk.RIGHT)

    def __init__(self, parent: tk.Widget, controller: SheetController, bridge: TkAsyncioBridge):
        """Initialize the billing sheet panel.

        Args:
            parent: Parent widget
            controller: SheetController that owns the rows
            bridge: Bridge used to run backend calls from menu actions
        """
        super().__init__(parent)

        self._controller = controller
        self._bridge = bridge

        self.rows: list[SheetRow] = []
        self._fields: list[str] = []
        self._readonly_cols: list[int] = []
        self._header_note_cols: set[int] = set()
        self._context_row: int | None = None
        self._context_col: int | None = None
        self._refresh_pending = False

        # Flag to suppress change notifications during programmatic updates
        self._suppress_notifications = False

        self._create_widgets()

        self._styler = BillingRowStyler(
            sheet=self.sheet,
            get_rows=lambda: self.rows,
            get_fields=lambda: self._fields,
            get_lookups=lambda: controller.lookups,
            annotations=controller.annotations,
        )

        controller.store.add_observer(self._on_store_changed)
        controller.annotations.add_observer(self._on_annotations_changed)

    # --- Observers ---

    def _on_store_changed(self, owner_id: str, affected_ids: set[str] | None) -> None:
        if owner_id == self._controller.owner_id:
            self.schedule_refresh()

    def _on_annotations_changed(self, row_ids: set[str]) -> None:
        # Annotations never change row data; restyle just the affected rows
        indices = {idx for idx, row in enumerate(self.rows) if row.id in row_ids}
        if indices:
            self._styler.update_rows_styling(indices)
            self.sheet.set_refresh_timer()

    def schedule_refresh(self) -> None:
        """Coalesce refresh requests into one redraw when Tk is idle."""
        if self._refresh_pending:
            return
        self._refresh_pending = True
        self.after_idle(self.refresh_view)

    # --- Rendering ---

    def _apply_projection(self) -> None:
        projection = self._controller.projection()
        lock_state = self._controller.lock_state
        fields = projection.fields

        if fields != self._fields:
            self._fields = fields
            self.sheet.set_column_widths(
                [COLUMN_WIDTHS.get(name, DEFAULT_COLUMN_WIDTH) for name in fields]
            )
        self.sheet.headers(
            [header_title(spec.title, lock_state.is_locked(spec.field)) for spec in projection]
        )

        if self._readonly_cols:
            self.sheet.readonly_columns(columns=self._readonly_cols, readonly=False)
        self._readonly_cols = projection.readonly_columns
        if self._readonly_cols:
            self.sheet.readonly_columns(columns=self._readonly_cols, readonly=True)

        # Lock comments as header tooltips
        for col in self._header_note_cols:
            self.sheet.note(self.sheet.span(num2alpha(col), header=True, table=False), note=None)
        self._header_note_cols = set()
        for col, field_name in enumerate(fields):
            if lock_state.is_locked(field_name):
                note = CellNote(lock_comment=lock_state.comment_for(field_name) or "")
                self.sheet.note(self.sheet.span(num2alpha(col), header=True, table=False), note=str(note))
                self._header_note_cols.add(col)

    def _update_footer(self) -> None:
        totals = self._controller.column_totals()
        self.totals_label.config(
            text=" | ".join(f"{FIELD_TITLES[name]}: {value}" for name, value in totals.items())
        )

    def refresh_view(self) -> None:
        """Redraw the grid from the controller's current rows."""
        self._refresh_pending = False
        self._apply_projection()
        self.rows = self._controller.rows()

        self._suppress_notifications = True
        try:
            data = [[row.display_value(name) for name in self._fields] for row in self.rows]
            self.sheet.set_sheet_data(data, reset_col_positions=False)
            self.sheet.set_index_data([str(i + 1) for i in range(len(self.rows))])
        finally:
            self._suppress_notifications = False

        self._styler.apply_all_styling()
        self._update_footer()
        # set_refresh_timer() avoids stacking redraws
        self.sheet.set_refresh_timer()

    # --- Public API ---

    def open(self, owner_id: str, period) -> None:
        """Load a provider's month in the background and show it."""
        self.clear_error()
        self._bridge.spawn(
            self._controller.open_sheet(owner_id, period),
            on_done=lambda _: self.refresh_view(),
            on_error=lambda exc: self.show_error(f"Could not open sheet: {exc}"),
        )

    def show_error(self, message: str, modal: bool = False) -> None:
        self.status_label.config(text=message)
        if modal:
            show_error(self, message)

    def clear_error(self) -> None:
        self.status_label.config(text="")

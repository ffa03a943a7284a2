"""Tests for BillingRowStyler against a mocked tksheet Sheet."""

from unittest.mock import MagicMock, call

import pytest

from clinicsheet.models.annotation import AnnotationKey, CellAnnotation
from clinicsheet.models.constants import SheetKind
from clinicsheet.models.sheet_row import SheetRow
from clinicsheet.views.billing_sheet.panel_constants import COLOR_PENDING_INDEX_BG
from clinicsheet.views.billing_sheet.row_styler import BillingRowStyler

FIELDS = ["patient_id", "notes"]


class FakeAnnotations:
    def __init__(self):
        self.items = {}

    def add(self, row_id, field_name, **values):
        key = AnnotationKey("c1", SheetKind.PROVIDERS, row_id, field_name)
        self.items[(row_id, field_name)] = CellAnnotation(key, **values)

    def get(self, row_id, field_name):
        return self.items.get((row_id, field_name))


@pytest.fixture
def annotations():
    return FakeAnnotations()


@pytest.fixture
def rows():
    return [SheetRow(id="r1", notes="a"), SheetRow(id="new-1-1-1", notes="b")]


@pytest.fixture
def styler(rows, annotations, lookups):
    return BillingRowStyler(
        sheet=MagicMock(),
        get_rows=lambda: rows,
        get_fields=lambda: FIELDS,
        get_lookups=lambda: lookups,
        annotations=annotations,
    )


class TestBillingRowStyler:
    def test_pending_row_marked_on_index(self, styler):
        styler.apply_all_styling()

        styler.sheet.dehighlight_all.assert_called_once()
        styler.sheet.highlight_cells.assert_called_once_with(row=1, bg=COLOR_PENDING_INDEX_BG, canvas="row_index")

    def test_highlight_and_note_applied(self, styler, annotations):
        annotations.add("r1", "notes", highlight_color="#eab308", comment="Call payer")

        styler.apply_all_styling()

        styler.sheet.highlight_cells.assert_any_call(row=0, column=1, bg="#eab308", fg="black")
        styler.sheet.note.assert_called_once_with(0, 1, note="Call payer")

    def test_unchanged_note_not_rewritten(self, styler, annotations):
        annotations.add("r1", "notes", comment="Call payer")
        styler.apply_all_styling()
        styler.apply_all_styling()
        assert styler.sheet.note.call_count == 1

    def test_removed_note_cleared(self, styler, annotations):
        annotations.add("r1", "notes", comment="Call payer")
        styler.apply_all_styling()
        annotations.items.clear()

        styler.update_rows_styling({0})

        assert styler.sheet.note.call_args == call(0, 1, note=None)

    def test_update_ignores_out_of_range_rows(self, styler):
        styler.update_rows_styling({5})
        styler.sheet.highlight_cells.assert_not_called()
        styler.sheet.dehighlight_cells.assert_not_called()

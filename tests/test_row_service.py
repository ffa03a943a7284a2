"""Tests for RowService."""

import pytest

from clinicsheet.models.sheet_row import SheetRow
from clinicsheet.services.row_service import RowService


def _rows(*ids):
    return [SheetRow(id=row_id, notes=row_id) for row_id in ids]


class TestEnsurePadding:
    def test_pads_empty_sequence(self):
        rows = RowService.ensure_padding("p", [], 5)
        assert [r.id for r in rows] == [f"empty-p-{i}" for i in range(5)]
        assert all(r.is_placeholder for r in rows)

    def test_existing_rows_preserved_in_order(self):
        rows = _rows("a", "b")
        padded = RowService.ensure_padding("p", rows, 4)
        assert padded[:2] == rows
        assert len(padded) == 4

    def test_no_padding_when_long_enough(self):
        rows = _rows("a", "b", "c")
        padded = RowService.ensure_padding("p", rows, 2)
        assert padded == rows
        assert padded is not rows

    def test_index_continues_after_existing_placeholders(self):
        rows = [SheetRow(id="empty-p-0"), SheetRow(id="empty-p-1")]
        padded = RowService.ensure_padding("p", rows, 3)
        assert padded[2].id == "empty-p-2"

    def test_index_bumped_past_highest_placeholder(self):
        """After earlier placeholders were converted, new ids must not collide."""
        rows = [SheetRow(id="a"), SheetRow(id="empty-p-5")]
        padded = RowService.ensure_padding("p", rows, 4)
        assert [r.id for r in padded[2:]] == ["empty-p-6", "empty-p-7"]
        assert len({r.id for r in padded}) == 4


class TestPlaceholderConversion:
    def test_converts_placeholder(self, minter, now):
        row = SheetRow(id="empty-p-0")
        converted = RowService.convert_placeholder_to_real(row, minter, now)
        assert converted.id == "new-1000-1-500000000"
        assert converted.created_at == now()
        assert converted.updated_at == now()

    def test_real_row_unchanged(self, minter):
        row = SheetRow(id="new-1-1-1")
        assert RowService.convert_placeholder_to_real(row, minter) is row


class TestDelete:
    def test_can_delete(self):
        assert RowService.can_delete(SheetRow(id="x", notes="n")) == (True, "")
        ok, reason = RowService.can_delete(SheetRow(id="empty-p-0"))
        assert ok is False
        assert reason

    def test_delete_repads(self):
        rows = RowService.ensure_padding("p", _rows("a", "b"), 4)
        updated = RowService.delete_row("p", rows, 0, 4)
        assert updated[0].id == "b"
        assert len(updated) == 4
        assert "a" not in {r.id for r in updated}
        assert len({r.id for r in updated}) == 4

    def test_delete_placeholder_refused(self):
        rows = RowService.ensure_padding("p", [], 3)
        with pytest.raises(ValueError):
            RowService.delete_row("p", rows, 1, 3)


class TestReorder:
    def test_move_single_row_down(self):
        rows = _rows("a", "b", "c", "d")
        moved = RowService.reorder_rows(rows, [0], 2)
        assert [r.id for r in moved] == ["b", "c", "a", "d"]

    def test_move_block_keeps_relative_order(self):
        rows = _rows("a", "b", "c", "d", "e")
        moved = RowService.reorder_rows(rows, [3, 1], 0)
        assert [r.id for r in moved] == ["b", "d", "a", "c", "e"]

    def test_dest_clamped_to_end(self):
        rows = _rows("a", "b", "c")
        moved = RowService.reorder_rows(rows, [0], 99)
        assert [r.id for r in moved] == ["b", "c", "a"]

    def test_contents_preserved(self):
        rows = _rows("a", "b")
        moved = RowService.reorder_rows(rows, [1], 0)
        assert moved[0] is rows[1]

    def test_move_by_id_is_idempotent(self):
        rows = _rows("a", "b", "c", "d")
        once = RowService.move_rows_by_id(rows, ["a"], 2)
        twice = RowService.move_rows_by_id(once, ["a"], 2)
        assert [r.id for r in once] == ["b", "c", "a", "d"]
        assert [r.id for r in twice] == [r.id for r in once]


class TestInsert:
    def test_insert_above(self, minter, now):
        rows = _rows("a", "b")
        updated, new_row = RowService.insert_row(rows, 1, True, minter, now)
        assert [r.id for r in updated] == ["a", new_row.id, "b"]
        assert new_row.is_pending
        assert new_row.created_at == now()

    def test_insert_below(self, minter):
        rows = _rows("a", "b")
        updated, new_row = RowService.insert_row(rows, 1, False, minter)
        assert updated[-1] is new_row


class TestColumnTotals:
    def test_sums_real_rows(self):
        rows = [
            SheetRow(id="a", insurance_payment="50", collected_from_patient="25", total="75"),
            SheetRow(id="b", insurance_payment="10.5", collected_from_patient="00", total="10.5"),
            SheetRow(id="empty-p-0"),
        ]
        assert RowService.column_totals(rows) == {
            "insurance_payment": "60.5",
            "collected_from_patient": "25",
            "total": "85.5",
        }

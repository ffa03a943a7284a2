"""Tests for the ODBC SQL layer and OdbcBackend, against mocked connections."""

from unittest.mock import MagicMock

import pytest

pyodbc = pytest.importorskip("pyodbc")

from clinicsheet.data import odbc_backend  # noqa: E402
from clinicsheet.data.backend import SheetBackendError  # noqa: E402
from clinicsheet.models.annotation import AnnotationKey, CellAnnotation  # noqa: E402
from clinicsheet.models.column_lock import LockScope  # noqa: E402
from clinicsheet.models.constants import SheetKind  # noqa: E402
from clinicsheet.models.sheet_row import SheetPeriod, SheetRow  # noqa: E402
from clinicsheet.utils import odbc_operations as ops  # noqa: E402

PERIOD = SheetPeriod(3, 2025)


@pytest.fixture
def cursor():
    return MagicMock()


@pytest.fixture
def conn(cursor):
    conn = MagicMock()
    conn.raw.cursor.return_value = cursor
    return conn


def _statements(cursor):
    return [c.args[0] for c in cursor.execute.call_args_list]


class TestSheetRows:
    def test_missing_sheet_loads_nothing(self, conn, cursor):
        cursor.fetchone.return_value = None
        assert ops.load_sheet_rows(conn, "prov-1", PERIOD) == []

    def test_replace_inserts_updates_and_deletes(self, conn, cursor):
        cursor.fetchone.return_value = ("sheet-1",)
        cursor.rowcount = 1
        cursor.fetchall.return_value = [("srv-a",), ("srv-old",)]
        rows = [SheetRow(id="srv-a", notes="a"), SheetRow(id="new-1-1-1", notes="b")]

        id_map = ops.replace_sheet_rows(conn, "c1", "prov-1", PERIOD, rows)

        assert list(id_map) == ["new-1-1-1"]
        statements = _statements(cursor)
        assert any(s.startswith("UPDATE provider_sheet_rows") for s in statements)
        assert any(s.startswith("INSERT INTO provider_sheet_rows") for s in statements)
        delete = cursor.execute.call_args_list[-1]
        assert delete.args == ("DELETE FROM provider_sheet_rows WHERE id = ?", ("srv-old",))
        conn.raw.commit.assert_called_once()
        conn.raw.rollback.assert_not_called()

    def test_replace_creates_sheet_on_first_save(self, conn, cursor):
        cursor.fetchone.return_value = None
        cursor.fetchall.return_value = []

        ops.replace_sheet_rows(conn, "c1", "prov-1", PERIOD, [SheetRow(id="new-1-1-1", notes="b")])

        assert _statements(cursor)[1].startswith("INSERT INTO provider_sheets")

    def test_replace_rolls_back_on_error(self, conn, cursor):
        cursor.fetchone.return_value = ("sheet-1",)
        cursor.execute.side_effect = [None, pyodbc.Error("constraint")]

        with pytest.raises(pyodbc.Error):
            ops.replace_sheet_rows(conn, "c1", "prov-1", PERIOD, [SheetRow(id="srv-a", notes="a")])

        conn.raw.rollback.assert_called_once()
        conn.raw.commit.assert_not_called()
        cursor.close.assert_called()


class TestLocksAndAnnotations:
    def test_lock_record_created_on_first_write(self, conn, cursor):
        cursor.fetchone.return_value = None

        ops.write_lock_flag(conn, LockScope("c1"), "insurance_payment", True, "closed")

        statements = _statements(cursor)
        assert statements[1].startswith("INSERT INTO is_lock_providers")
        assert "ins_pay = ?, ins_pay_comment = ?" in statements[2]
        assert "provider_id IS NULL" in statements[2]
        conn.raw.commit.assert_called_once()

    def test_load_annotations_merges_highlight_and_comment(self, conn, monkeypatch):
        results = iter(
            [
                [{"row_id": "r1", "column_key": "notes", "highlight_color": "#eab308", "user_id": "u1"}],
                [
                    {"row_id": "r1", "column_key": "notes", "comment": "x", "resolved": 0},
                    {"row_id": "r2", "column_key": "total", "comment": "y", "resolved": 1},
                ],
            ]
        )
        monkeypatch.setattr(ops, "_fetch_dicts", lambda cursor: next(results))

        annotations = ops.load_annotations(conn, "c1", SheetKind.PROVIDERS)

        by_row = {a.key.row_id: a for a in annotations}
        assert by_row["r1"].highlight_color == "#eab308"
        assert by_row["r1"].comment == "x"
        assert by_row["r2"].resolved is True
        assert by_row["r2"].highlight_color is None

    def test_upsert_without_highlight_deletes_it(self, conn, cursor):
        cursor.rowcount = 1
        key = AnnotationKey("c1", SheetKind.PROVIDERS, "r1", "notes")

        ops.upsert_annotation(conn, CellAnnotation(key, comment="x"))

        statements = _statements(cursor)
        assert statements[0].startswith("DELETE FROM cell_highlights")
        assert statements[1].startswith("UPDATE cell_comments")
        assert len(statements) == 2


class TestOdbcBackend:
    def test_requires_connection_string(self):
        with pytest.raises(ValueError):
            odbc_backend.OdbcBackend("", "c1")

    @pytest.mark.asyncio
    async def test_driver_errors_translated(self, monkeypatch):
        monkeypatch.setattr(odbc_backend, "OdbcConnection", MagicMock())
        monkeypatch.setattr(ops, "load_patients", MagicMock(side_effect=pyodbc.Error("offline")))
        backend = odbc_backend.OdbcBackend("DSN=clinic", "c1")

        with pytest.raises(SheetBackendError) as exc_info:
            await backend.fetch_patients()

        assert exc_info.value.operation == "fetch patients"

    @pytest.mark.asyncio
    async def test_lock_state_absent(self, monkeypatch):
        monkeypatch.setattr(odbc_backend, "OdbcConnection", MagicMock())
        monkeypatch.setattr(ops, "load_lock_record", MagicMock(return_value=None))
        backend = odbc_backend.OdbcBackend("DSN=clinic", "c1")

        assert await backend.fetch_lock_state(LockScope("c1")) is None

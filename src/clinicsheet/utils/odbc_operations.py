"""Database operations for the provider billing sheets.

Provides connection management and the SQL behind each SheetBackend
operation. All functions here are blocking; OdbcBackend runs them in a
worker thread.

Tables:
    provider_sheets       (id, clinic_id, provider_id, month, year)
    provider_sheet_rows   (id, sheet_id, row_order, <sheet fields>, <color fields>,
                           cpt_code_color, created_at, updated_at)
    patients              (clinic_id, patient_id, first_name, last_name, insurance,
                           copay, coinsurance)
    billing_codes         (clinic_id, code, description, color)
    status_colors         (clinic_id, status, status_type, color, text_color)
    is_lock_providers     (id, clinic_id, provider_id, <lock key>, <lock key>_comment ...)
    cell_highlights       (clinic_id, sheet_type, row_id, column_key, highlight_color, user_id)
    cell_comments         (clinic_id, sheet_type, row_id, column_key, comment, resolved)
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from typing import Any

import pyodbc

from ..data.row_codec import ALL_ROW_COLUMNS, record_to_row, row_to_record
from ..models.annotation import AnnotationKey, CellAnnotation
from ..models.column_lock import LockScope
from ..models.constants import LOCK_KEYS, SheetKind, StatusType
from ..models.lookups import BillingCode, StatusColor
from ..models.patient import Patient
from ..models.sheet_row import SheetPeriod, SheetRow, is_local_id

logger = logging.getLogger(__name__)


class OdbcConnection:
    """Wrapper for the billing database connection."""

    def __init__(self, connection_string: str):
        """Initialize with an ODBC connection string.

        Args:
            connection_string: Full ODBC connection string (DRIVER=...;SERVER=...)
        """
        self.connection_string = connection_string
        self._conn: pyodbc.Connection | None = None

    def connect(self) -> None:
        """Establish database connection (transactions are committed explicitly)."""
        self._conn = pyodbc.connect(self.connection_string, autocommit=False)

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def raw(self) -> pyodbc.Connection:
        """Underlying connection.

        Raises:
            RuntimeError: If not connected
        """
        if not self._conn:
            raise RuntimeError("Not connected to database")
        return self._conn

    def __enter__(self) -> OdbcConnection:
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()


def _fetch_dicts(cursor: pyodbc.Cursor) -> list[dict[str, Any]]:
    columns = [column[0] for column in cursor.description]
    return [dict(zip(columns, values, strict=False)) for values in cursor.fetchall()]


# ==============================================================================
# Sheet rows
# ==============================================================================


def find_sheet_id(conn: OdbcConnection, owner_id: str, period: SheetPeriod) -> str | None:
    cursor = conn.raw.cursor()
    try:
        cursor.execute(
            "SELECT id FROM provider_sheets WHERE provider_id = ? AND month = ? AND year = ?",
            (owner_id, period.month, period.year),
        )
        found = cursor.fetchone()
        return str(found[0]) if found else None
    finally:
        cursor.close()


def load_sheet_rows(conn: OdbcConnection, owner_id: str, period: SheetPeriod) -> list[SheetRow]:
    """Load one provider's rows for a month, in sheet order.

    Returns:
        Saved rows only (no padding); empty list if the sheet does not exist yet
    """
    sheet_id = find_sheet_id(conn, owner_id, period)
    if sheet_id is None:
        return []

    cursor = conn.raw.cursor()
    try:
        cursor.execute(
            f"SELECT id, {', '.join(ALL_ROW_COLUMNS)} FROM provider_sheet_rows "
            "WHERE sheet_id = ? ORDER BY row_order",
            (sheet_id,),
        )
        return [record_to_row(record["id"], record) for record in _fetch_dicts(cursor)]
    finally:
        cursor.close()


def replace_sheet_rows(
    conn: OdbcConnection,
    clinic_id: str,
    owner_id: str,
    period: SheetPeriod,
    rows: Sequence[SheetRow],
) -> dict[str, str]:
    """Overwrite a provider's month with exactly the given rows.

    Rows with server ids are updated, rows with local ids are inserted under
    a fresh server id, and stored rows missing from the sequence are deleted.
    Runs in one transaction.

    Returns:
        Mapping of local id -> server id for every inserted row

    Raises:
        pyodbc.Error: If any statement fails (transaction rolled back)
    """
    raw = conn.raw
    cursor = raw.cursor()
    id_map: dict[str, str] = {}

    try:
        sheet_id = find_sheet_id(conn, owner_id, period)
        if sheet_id is None:
            sheet_id = str(uuid.uuid4())
            cursor.execute(
                "INSERT INTO provider_sheets (id, clinic_id, provider_id, month, year) VALUES (?, ?, ?, ?, ?)",
                (sheet_id, clinic_id, owner_id, period.month, period.year),
            )

        columns = ALL_ROW_COLUMNS + ("row_order",)
        assignments = ", ".join(f"{name} = ?" for name in columns)
        placeholders = ", ".join("?" for _ in columns)
        kept_ids: list[str] = []

        for order, row in enumerate(rows):
            record = row_to_record(row)
            record["row_order"] = order
            values = [record[name] for name in columns]

            if not is_local_id(row.id):
                cursor.execute(
                    f"UPDATE provider_sheet_rows SET {assignments} WHERE id = ? AND sheet_id = ?",
                    (*values, row.id, sheet_id),
                )
                if cursor.rowcount:
                    kept_ids.append(row.id)
                    continue
                # Deleted on the server since our last fetch: write it back under the same id
                server_id = row.id
            else:
                server_id = str(uuid.uuid4())
                id_map[row.id] = server_id

            cursor.execute(
                f"INSERT INTO provider_sheet_rows (id, sheet_id, {', '.join(columns)}) "
                f"VALUES (?, ?, {placeholders})",
                (server_id, sheet_id, *values),
            )
            kept_ids.append(server_id)

        cursor.execute("SELECT id FROM provider_sheet_rows WHERE sheet_id = ?", (sheet_id,))
        kept = set(kept_ids)
        stale = [str(found[0]) for found in cursor.fetchall() if str(found[0]) not in kept]
        for row_id in stale:
            cursor.execute("DELETE FROM provider_sheet_rows WHERE id = ?", (row_id,))

        raw.commit()
        logger.debug(
            "Saved %d rows for %s (%d inserted, %d deleted)", len(rows), owner_id, len(id_map), len(stale)
        )
        return id_map

    except Exception:
        raw.rollback()
        raise
    finally:
        cursor.close()


# ==============================================================================
# Reference data
# ==============================================================================


def load_patients(conn: OdbcConnection, clinic_id: str) -> list[Patient]:
    cursor = conn.raw.cursor()
    try:
        cursor.execute(
            "SELECT patient_id, first_name, last_name, insurance, copay, coinsurance "
            "FROM patients WHERE clinic_id = ? ORDER BY patient_id",
            (clinic_id,),
        )
        return [
            Patient(
                patient_id=str(record["patient_id"]),
                first_name=record["first_name"],
                last_name=record["last_name"],
                insurance=record["insurance"],
                copay=None if record["copay"] is None else str(record["copay"]),
                coinsurance=None if record["coinsurance"] is None else str(record["coinsurance"]),
            )
            for record in _fetch_dicts(cursor)
        ]
    finally:
        cursor.close()


def load_billing_codes(conn: OdbcConnection, clinic_id: str) -> list[BillingCode]:
    cursor = conn.raw.cursor()
    try:
        cursor.execute(
            "SELECT code, description, color FROM billing_codes WHERE clinic_id = ?",
            (clinic_id,),
        )
        return [BillingCode(r["code"], r["description"], r["color"]) for r in _fetch_dicts(cursor)]
    finally:
        cursor.close()


def load_status_colors(conn: OdbcConnection, clinic_id: str) -> list[StatusColor]:
    cursor = conn.raw.cursor()
    try:
        cursor.execute(
            "SELECT status, status_type, color, text_color FROM status_colors WHERE clinic_id = ?",
            (clinic_id,),
        )
        colors = []
        for record in _fetch_dicts(cursor):
            try:
                status_type = StatusType(record["status_type"])
            except ValueError:
                logger.warning("Skipping status color with unknown type %r", record["status_type"])
                continue
            colors.append(
                StatusColor(record["status"], status_type, record["color"], record["text_color"] or "#000000")
            )
        return colors
    finally:
        cursor.close()


# ==============================================================================
# Column locks
# ==============================================================================


def _lock_where(scope: LockScope) -> tuple[str, tuple[Any, ...]]:
    if scope.owner_id is None:
        return "clinic_id = ? AND provider_id IS NULL", (scope.clinic_id,)
    return "clinic_id = ? AND provider_id = ?", (scope.clinic_id, scope.owner_id)


def load_lock_record(conn: OdbcConnection, scope: LockScope) -> dict[str, Any] | None:
    """Read the lock record for a scope, or None if it was never created."""
    where, params = _lock_where(scope)
    columns = [key for key in LOCK_KEYS.values()] + [f"{key}_comment" for key in LOCK_KEYS.values()]
    cursor = conn.raw.cursor()
    try:
        cursor.execute(f"SELECT {', '.join(columns)} FROM is_lock_providers WHERE {where}", params)
        records = _fetch_dicts(cursor)
        return records[0] if records else None
    finally:
        cursor.close()


def write_lock_flag(
    conn: OdbcConnection, scope: LockScope, field_name: str, locked: bool, comment: str | None
) -> None:
    """Set one column's lock flag, creating the scope's record on first write."""
    key = LOCK_KEYS[field_name]
    where, params = _lock_where(scope)
    raw = conn.raw
    cursor = raw.cursor()
    try:
        cursor.execute(f"SELECT id FROM is_lock_providers WHERE {where}", params)
        if cursor.fetchone() is None:
            cursor.execute(
                "INSERT INTO is_lock_providers (id, clinic_id, provider_id) VALUES (?, ?, ?)",
                (str(uuid.uuid4()), scope.clinic_id, scope.owner_id),
            )
        cursor.execute(
            f"UPDATE is_lock_providers SET {key} = ?, {key}_comment = ? WHERE {where}",
            (locked, comment, *params),
        )
        raw.commit()
    except Exception:
        raw.rollback()
        raise
    finally:
        cursor.close()


# ==============================================================================
# Annotations
# ==============================================================================


def load_annotations(conn: OdbcConnection, clinic_id: str, sheet_kind: SheetKind) -> list[CellAnnotation]:
    """Merge highlight and comment rows into one annotation per cell."""
    merged: dict[AnnotationKey, dict[str, Any]] = {}
    cursor = conn.raw.cursor()
    try:
        cursor.execute(
            "SELECT row_id, column_key, highlight_color, user_id FROM cell_highlights "
            "WHERE clinic_id = ? AND sheet_type = ?",
            (clinic_id, sheet_kind.value),
        )
        for record in _fetch_dicts(cursor):
            key = AnnotationKey(clinic_id, sheet_kind, str(record["row_id"]), record["column_key"])
            merged.setdefault(key, {}).update(
                highlight_color=record["highlight_color"], highlighted_by=record["user_id"]
            )

        cursor.execute(
            "SELECT row_id, column_key, comment, resolved FROM cell_comments "
            "WHERE clinic_id = ? AND sheet_type = ?",
            (clinic_id, sheet_kind.value),
        )
        for record in _fetch_dicts(cursor):
            key = AnnotationKey(clinic_id, sheet_kind, str(record["row_id"]), record["column_key"])
            merged.setdefault(key, {}).update(comment=record["comment"], resolved=bool(record["resolved"]))
    finally:
        cursor.close()

    return [CellAnnotation(key=key, **values) for key, values in merged.items()]


def _key_params(key: AnnotationKey) -> tuple[str, str, str, str]:
    return (key.clinic_id, key.sheet_kind.value, key.row_id, key.field)


_KEY_WHERE = "clinic_id = ? AND sheet_type = ? AND row_id = ? AND column_key = ?"


def upsert_annotation(conn: OdbcConnection, annotation: CellAnnotation) -> None:
    """Write both halves of an annotation; an absent half is deleted."""
    raw = conn.raw
    cursor = raw.cursor()
    params = _key_params(annotation.key)
    try:
        if annotation.highlight_color is None:
            cursor.execute(f"DELETE FROM cell_highlights WHERE {_KEY_WHERE}", params)
        else:
            cursor.execute(
                f"UPDATE cell_highlights SET highlight_color = ?, user_id = ? WHERE {_KEY_WHERE}",
                (annotation.highlight_color, annotation.highlighted_by, *params),
            )
            if not cursor.rowcount:
                cursor.execute(
                    "INSERT INTO cell_highlights "
                    "(clinic_id, sheet_type, row_id, column_key, highlight_color, user_id) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (*params, annotation.highlight_color, annotation.highlighted_by),
                )

        if not annotation.comment:
            cursor.execute(f"DELETE FROM cell_comments WHERE {_KEY_WHERE}", params)
        else:
            cursor.execute(
                f"UPDATE cell_comments SET comment = ?, resolved = ? WHERE {_KEY_WHERE}",
                (annotation.comment, annotation.resolved, *params),
            )
            if not cursor.rowcount:
                cursor.execute(
                    "INSERT INTO cell_comments (clinic_id, sheet_type, row_id, column_key, comment, resolved) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (*params, annotation.comment, annotation.resolved),
                )
        raw.commit()
    except Exception:
        raw.rollback()
        raise
    finally:
        cursor.close()


def delete_annotation(conn: OdbcConnection, key: AnnotationKey) -> None:
    raw = conn.raw
    cursor = raw.cursor()
    try:
        cursor.execute(f"DELETE FROM cell_highlights WHERE {_KEY_WHERE}", _key_params(key))
        cursor.execute(f"DELETE FROM cell_comments WHERE {_KEY_WHERE}", _key_params(key))
        raw.commit()
    except Exception:
        raw.rollback()
        raise
    finally:
        cursor.close()

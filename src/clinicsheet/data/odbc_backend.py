"""SheetBackend backed by an ODBC data source.

Wraps the odbc_operations module. Each call opens its own connection in a
worker thread so the tk/asyncio loop never blocks on the driver.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import TypeVar

import pyodbc

from ..models.annotation import AnnotationKey, CellAnnotation
from ..models.column_lock import ColumnLockState, LockScope
from ..models.constants import SheetKind
from ..models.lookups import BillingCode, StatusColor
from ..models.patient import Patient
from ..models.sheet_row import SheetPeriod, SheetRow
from ..utils import odbc_operations as ops
from ..utils.odbc_operations import OdbcConnection
from .backend import SheetBackend, SheetBackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OdbcBackend(SheetBackend):
    """Billing database reached through pyodbc."""

    def __init__(self, connection_string: str, clinic_id: str):
        """Initialize the ODBC backend.

        Args:
            connection_string: ODBC connection string
            clinic_id: Clinic every query is scoped to

        Raises:
            ValueError: If the connection string is empty
        """
        if not connection_string:
            raise ValueError("An ODBC connection string is required")
        self._connection_string = connection_string
        self._clinic_id = clinic_id

    @property
    def clinic_id(self) -> str:
        return self._clinic_id

    def _run(self, operation: str, func: Callable[[OdbcConnection], T]) -> T:
        """Open a connection, run func, and translate driver errors."""
        try:
            with OdbcConnection(self._connection_string) as conn:
                return func(conn)
        except pyodbc.Error as e:
            logger.error("%s failed: %s", operation, e)
            raise SheetBackendError(operation, e) from e

    async def _call(self, operation: str, func: Callable[[OdbcConnection], T]) -> T:
        return await asyncio.to_thread(self._run, operation, func)

    async def fetch_rows(self, owner_id: str, period: SheetPeriod) -> list[SheetRow]:
        return await self._call("fetch rows", lambda conn: ops.load_sheet_rows(conn, owner_id, period))

    async def replace_rows(self, owner_id: str, period: SheetPeriod, rows: Sequence[SheetRow]) -> dict[str, str]:
        rows = list(rows)
        return await self._call(
            "save rows",
            lambda conn: ops.replace_sheet_rows(conn, self._clinic_id, owner_id, period, rows),
        )

    async def fetch_patients(self) -> list[Patient]:
        return await self._call("fetch patients", lambda conn: ops.load_patients(conn, self._clinic_id))

    async def fetch_billing_codes(self) -> list[BillingCode]:
        return await self._call("fetch billing codes", lambda conn: ops.load_billing_codes(conn, self._clinic_id))

    async def fetch_status_colors(self) -> list[StatusColor]:
        return await self._call("fetch status colors", lambda conn: ops.load_status_colors(conn, self._clinic_id))

    async def fetch_lock_state(self, scope: LockScope) -> ColumnLockState | None:
        record = await self._call("fetch column locks", lambda conn: ops.load_lock_record(conn, scope))
        return None if record is None else ColumnLockState.from_record(scope, record)

    async def write_lock(self, scope: LockScope, field_name: str, locked: bool, comment: str | None) -> None:
        await self._call(
            "toggle column lock",
            lambda conn: ops.write_lock_flag(conn, scope, field_name, locked, comment),
        )

    async def fetch_annotations(self, sheet_kind: SheetKind) -> list[CellAnnotation]:
        return await self._call(
            "fetch annotations", lambda conn: ops.load_annotations(conn, self._clinic_id, sheet_kind)
        )

    async def upsert_annotation(self, annotation: CellAnnotation) -> None:
        await self._call("save annotation", lambda conn: ops.upsert_annotation(conn, annotation))

    async def delete_annotation(self, key: AnnotationKey) -> None:
        await self._call("delete annotation", lambda conn: ops.delete_annotation(conn, key))

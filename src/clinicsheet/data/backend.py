"""Backend abstraction for the billing sheets.

Provides the abstract SheetBackend (the request/response data store the
sheet engine talks to) and an in-memory implementation used for tests and
the offline demo mode. The ODBC implementation lives in odbc_backend.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Any

from ..models.annotation import AnnotationKey, CellAnnotation
from ..models.column_lock import ColumnLockState, LockScope
from ..models.constants import SheetKind
from ..models.lookups import BillingCode, StatusColor
from ..models.patient import Patient
from ..models.sheet_row import SheetPeriod, SheetRow, is_local_id
from .row_codec import record_to_row, row_to_record


class SheetBackendError(Exception):
    """A backend call failed (network, driver, or constraint error)."""

    def __init__(self, operation: str, cause: BaseException | None = None):
        message = f"{operation} failed" if cause is None else f"{operation} failed: {cause}"
        super().__init__(message)
        self.operation = operation
        self.cause = cause


class SheetBackend(ABC):
    """Abstract base class for billing sheet storage.

    Every call is a suspension point; implementations must not block the
    event loop.
    """

    @property
    @abstractmethod
    def clinic_id(self) -> str:
        """Clinic this backend session is scoped to."""

    # --- Rows ---

    @abstractmethod
    async def fetch_rows(self, owner_id: str, period: SheetPeriod) -> list[SheetRow]:
        """Read an owner's saved rows for a month, in sheet order (no padding)."""

    @abstractmethod
    async def replace_rows(self, owner_id: str, period: SheetPeriod, rows: Sequence[SheetRow]) -> dict[str, str]:
        """Overwrite an owner's month with exactly these rows.

        Returns:
            Mapping of local id -> server id for rows stored under a new id
        """

    # --- Reference data ---

    @abstractmethod
    async def fetch_patients(self) -> list[Patient]:
        """Read the clinic's patients for auto-fill."""

    @abstractmethod
    async def fetch_billing_codes(self) -> list[BillingCode]:
        """Read the clinic's billing codes."""

    @abstractmethod
    async def fetch_status_colors(self) -> list[StatusColor]:
        """Read the clinic's configured status colors (may be empty)."""

    # --- Column locks ---

    @abstractmethod
    async def fetch_lock_state(self, scope: LockScope) -> ColumnLockState | None:
        """Read the lock record for a scope; None if it was never created."""

    @abstractmethod
    async def write_lock(self, scope: LockScope, field_name: str, locked: bool, comment: str | None) -> None:
        """Set one column's lock flag, creating the record if absent."""

    # --- Annotations ---

    @abstractmethod
    async def fetch_annotations(self, sheet_kind: SheetKind) -> list[CellAnnotation]:
        """Read every annotation of the clinic for one sheet kind."""

    @abstractmethod
    async def upsert_annotation(self, annotation: CellAnnotation) -> None:
        """Insert or replace one cell's annotation."""

    @abstractmethod
    async def delete_annotation(self, key: AnnotationKey) -> None:
        """Remove one cell's annotation (no error if absent)."""


class InMemoryBackend(SheetBackend):
    """Dictionary-backed SheetBackend.

    Rows are stored as records through the same codec the database uses,
    so CPT serialization is exercised exactly as in production.
    """

    def __init__(
        self,
        clinic_id: str = "clinic",
        patients: Iterable[Patient] = (),
        billing_codes: Iterable[BillingCode] = (),
        status_colors: Iterable[StatusColor] = (),
    ):
        self._clinic_id = clinic_id
        self._rows: dict[tuple[str, SheetPeriod], list[tuple[str, dict[str, Any]]]] = {}
        self._patients = list(patients)
        self._billing_codes = list(billing_codes)
        self._status_colors = list(status_colors)
        self._locks: dict[LockScope, ColumnLockState] = {}
        self._annotations: dict[AnnotationKey, CellAnnotation] = {}

    @property
    def clinic_id(self) -> str:
        return self._clinic_id

    async def fetch_rows(self, owner_id: str, period: SheetPeriod) -> list[SheetRow]:
        return [record_to_row(row_id, record) for row_id, record in self._rows.get((owner_id, period), [])]

    async def replace_rows(self, owner_id: str, period: SheetPeriod, rows: Sequence[SheetRow]) -> dict[str, str]:
        id_map: dict[str, str] = {}
        stored: list[tuple[str, dict[str, Any]]] = []
        for row in rows:
            row_id = row.id
            if is_local_id(row_id):
                row_id = str(uuid.uuid4())
                id_map[row.id] = row_id
            stored.append((row_id, row_to_record(row)))
        self._rows[(owner_id, period)] = stored
        return id_map

    async def fetch_patients(self) -> list[Patient]:
        return list(self._patients)

    async def fetch_billing_codes(self) -> list[BillingCode]:
        return list(self._billing_codes)

    async def fetch_status_colors(self) -> list[StatusColor]:
        return list(self._status_colors)

    async def fetch_lock_state(self, scope: LockScope) -> ColumnLockState | None:
        return self._locks.get(scope)

    async def write_lock(self, scope: LockScope, field_name: str, locked: bool, comment: str | None) -> None:
        current = self._locks.get(scope) or ColumnLockState(scope=scope)
        self._locks[scope] = current.with_lock(field_name, locked, comment if comment is not None else "")

    async def fetch_annotations(self, sheet_kind: SheetKind) -> list[CellAnnotation]:
        return [a for key, a in self._annotations.items() if key.sheet_kind is sheet_kind]

    async def upsert_annotation(self, annotation: CellAnnotation) -> None:
        self._annotations[annotation.key] = annotation

    async def delete_annotation(self, key: AnnotationKey) -> None:
        self._annotations.pop(key, None)

    def stored_rows(self, owner_id: str, period: SheetPeriod) -> list[SheetRow]:
        """Synchronous peek at stored rows (tests and debugging)."""
        return [record_to_row(row_id, record) for row_id, record in self._rows.get((owner_id, period), [])]

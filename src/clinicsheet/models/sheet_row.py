"""Data model for the provider billing sheet.

Contains the SheetRow frozen dataclass, CPT code entries, and the row
identity helpers (placeholder, locally created, and server-issued ids).
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass, fields
from datetime import datetime

from .constants import (
    COLOR_FIELDS,
    EMPTY_ID_PREFIX,
    MONTH_NAMES,
    NEW_ID_PREFIX,
    SHEET_FIELDS,
)

# ==============================================================================
# Row Identity Helpers
# ==============================================================================


def make_empty_id(owner_id: str, index: int) -> str:
    """Build the deterministic id of a padding row.

    Args:
        owner_id: Provider (or sheet) the row sequence belongs to
        index: Slot index among the owner's padding rows

    Returns:
        Id of the form ``empty-<owner>-<index>``
    """
    return f"{EMPTY_ID_PREFIX}{owner_id}-{index}"


def parse_empty_index(row_id: str) -> int | None:
    """Extract the slot index from a padding row id, or None if not a padding id."""
    if not row_id.startswith(EMPTY_ID_PREFIX):
        return None
    tail = row_id.rsplit("-", 1)[-1]
    return int(tail) if tail.isdigit() else None


def is_empty_id(row_id: str) -> bool:
    """Check if an id belongs to an unsaved padding row."""
    return row_id.startswith(EMPTY_ID_PREFIX)


def is_new_id(row_id: str) -> bool:
    """Check if an id belongs to a locally created row pending its first save."""
    return row_id.startswith(NEW_ID_PREFIX)


def is_local_id(row_id: str) -> bool:
    """Check if an id was minted client-side (padding or pending row)."""
    return is_empty_id(row_id) or is_new_id(row_id)


class RowIdMinter:
    """Mints ``new-<timestamp>-<counter>-<rand>`` ids for locally created rows.

    The counter guarantees uniqueness within one process even when several
    rows are created in the same millisecond (e.g. a multi-row paste).
    Clock and random source are injectable for tests.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        rand: Callable[[], float] = random.random,
    ):
        self._clock = clock
        self._rand = rand
        self._counter = 0

    def mint(self) -> str:
        self._counter += 1
        millis = int(self._clock() * 1000)
        suffix = f"{self._rand():.9f}"[2:]
        return f"{NEW_ID_PREFIX}{millis}-{self._counter}-{suffix}"


# ==============================================================================
# Period
# ==============================================================================


@dataclass(frozen=True)
class SheetPeriod:
    """Billing month a provider sheet covers."""

    month: int
    year: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be 1-12, got {self.month}")

    @property
    def label(self) -> str:
        return f"{MONTH_NAMES[self.month - 1]} {self.year}"


# ==============================================================================
# Row Types
# ==============================================================================


@dataclass(frozen=True)
class CptEntry:
    """One billing code on a row, with the display color resolved at edit time."""

    code: str
    color: str


def join_codes(entries: tuple[CptEntry, ...] | None) -> str:
    """Render CPT entries as the comma-joined text shown in the grid."""
    if not entries:
        return ""
    return ", ".join(entry.code for entry in entries)


@dataclass(frozen=True)
class SheetRow:
    """One appointment/billing line of a provider's monthly sheet.

    Immutable: use dataclasses.replace() or MutableRowBuilder to derive a
    changed row. Every field except ``id`` and the timestamps is nullable,
    and None is the only representation of "no value" (never "").

    The ``*_color`` attributes are a denormalized cache of the display color
    resolved from the status tables when the status was edited.
    """

    id: str

    # Patient linkage
    patient_id: str | None = None
    patient_first_name: str | None = None
    last_initial: str | None = None
    patient_insurance: str | None = None
    patient_copay: str | None = None
    patient_coinsurance: str | None = None

    # Scheduling
    appointment_date: str | None = None
    cpt_code: tuple[CptEntry, ...] | None = None
    appointment_status: str | None = None

    # Claim
    claim_status: str | None = None
    submit_date: str | None = None
    insurance_payment: str | None = None
    payment_date: str | None = None
    insurance_adjustment: str | None = None

    # Patient pay
    collected_from_patient: str | None = None
    patient_pay_status: str | None = None
    ar_date: str | None = None

    # Derived
    total: str | None = None

    notes: str | None = None

    # Color shadows
    appointment_status_color: str | None = None
    claim_status_color: str | None = None
    patient_pay_status_color: str | None = None
    payment_date_color: str | None = None
    ar_date_color: str | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_placeholder(self) -> bool:
        """True for padding rows that have never been edited."""
        return is_empty_id(self.id)

    @property
    def is_pending(self) -> bool:
        """True for locally created rows that have not been saved yet."""
        return is_new_id(self.id)

    @property
    def has_content(self) -> bool:
        """True if any user-visible field holds a value."""
        return any(getattr(self, name) is not None for name in SHEET_FIELDS)

    @property
    def cpt_codes(self) -> list[str]:
        return [entry.code for entry in self.cpt_code or ()]

    def display_value(self, field_name: str) -> str:
        """Get the text shown in the grid for a field."""
        value = getattr(self, field_name)
        if field_name == "cpt_code":
            return join_codes(value)
        return "" if value is None else str(value)


# Fields compared when diffing two versions of a row
DIFF_FIELDS: tuple[str, ...] = SHEET_FIELDS + COLOR_FIELDS

ROW_FIELD_NAMES = frozenset(f.name for f in fields(SheetRow))

"""Derivation engine: side effects of editing one sheet field.

derive_on_edit() is a pure function of (row, field, value, context). It
returns the full set of field values to write (the edited field plus any
dependent fields) and, separately, highlight effects aimed at the
annotation store. Effects never touch row data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..models.coercion import format_amount, parse_amount
from ..models.constants import (
    COLOR_SHADOWS,
    CURRENCY_FIELDS,
    PATIENT_ID_FIELD,
    TOTAL_FIELD,
)
from ..models.lookups import LookupTables
from ..models.patient import parse_patient_reference
from ..models.sheet_row import CptEntry, SheetRow

ZERO_MARKER = "00"


@dataclass(frozen=True)
class DerivationContext:
    """Everything derivation may consult besides the row itself."""

    lookups: LookupTables
    user_highlight_color: str
    zero_marker_color: str


@dataclass(frozen=True)
class HighlightEffect:
    """Request to set (color) or clear (color None) a cell highlight."""

    field: str
    color: str | None

    @property
    def is_removal(self) -> bool:
        return self.color is None


@dataclass
class RowPatch:
    """Field values produced by one edit, plus annotation side effects."""

    values: dict[str, Any] = field(default_factory=dict)
    effects: list[HighlightEffect] = field(default_factory=list)


def _is_zero(field_name: str, value: str | None) -> bool:
    if value is None:
        return False
    if field_name == "collected_from_patient" and value == ZERO_MARKER:
        return True
    return parse_amount(value) == 0


def _zero_effect(
    field_name: str, old: str | None, new: str | None, context: DerivationContext
) -> HighlightEffect | None:
    """Auto-highlight for zero payments; removed when a zero is changed away."""
    if _is_zero(field_name, new):
        if field_name == "collected_from_patient" and new == ZERO_MARKER:
            return HighlightEffect(field_name, context.zero_marker_color)
        return HighlightEffect(field_name, context.user_highlight_color)
    if _is_zero(field_name, old):
        return HighlightEffect(field_name, None)
    return None


def _derive_patient(value: str | None, lookups: LookupTables) -> dict[str, Any]:
    if value is None:
        return {PATIENT_ID_FIELD: None}

    patient_id = parse_patient_reference(value)
    patient = lookups.patients.find(patient_id)
    if patient is None:
        return {PATIENT_ID_FIELD: patient_id}

    # Authoritative auto-fill: overwrite, don't merge
    return {
        PATIENT_ID_FIELD: patient.patient_id,
        "patient_first_name": patient.first_name,
        "last_initial": patient.last_initial,
        "patient_insurance": patient.insurance,
        "patient_copay": patient.copay,
        "patient_coinsurance": patient.coinsurance,
    }


def _derive_codes(codes: list[str] | None, lookups: LookupTables) -> dict[str, Any]:
    if not codes:
        return {"cpt_code": None}
    return {"cpt_code": tuple(CptEntry(code, lookups.code_color(code)) for code in codes)}


def compute_total(insurance_payment: str | None, collected_from_patient: str | None) -> str | None:
    if insurance_payment is None and collected_from_patient is None:
        return None
    return format_amount(parse_amount(insurance_payment) + parse_amount(collected_from_patient))


def derive_on_edit(row: SheetRow, field_name: str, value: Any, context: DerivationContext) -> RowPatch:
    """Compute every field change caused by writing value into field_name.

    Args:
        row: Current version of the row (including earlier edits of the batch)
        field_name: Field being edited
        value: Already-coerced value (a list of codes for ``cpt_code``)
        context: Lookup tables and highlight colors

    Returns:
        RowPatch with the edited field, dependent fields, and highlight effects
    """
    patch = RowPatch()
    lookups = context.lookups

    if field_name == PATIENT_ID_FIELD:
        patch.values.update(_derive_patient(value, lookups))
        return patch

    if field_name == "cpt_code":
        patch.values.update(_derive_codes(value, lookups))
        return patch

    patch.values[field_name] = value

    if field_name in CURRENCY_FIELDS:
        other_field = CURRENCY_FIELDS[1] if field_name == CURRENCY_FIELDS[0] else CURRENCY_FIELDS[0]
        amounts = {field_name: value, other_field: getattr(row, other_field)}
        patch.values[TOTAL_FIELD] = compute_total(
            amounts["insurance_payment"], amounts["collected_from_patient"]
        )
        effect = _zero_effect(field_name, getattr(row, field_name), value, context)
        if effect is not None:
            patch.effects.append(effect)

    if field_name in COLOR_SHADOWS:
        status_type, shadow_field = COLOR_SHADOWS[field_name]
        pair = lookups.status_color(value, status_type)
        patch.values[shadow_field] = pair.background if pair else None

    return patch

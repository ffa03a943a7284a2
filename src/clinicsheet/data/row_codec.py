"""Row <-> storage record conversion.

CPT codes are an ordered list of (code, color) pairs in memory; storage
keeps them as two comma-joined columns. This is the only place that
delimited form exists.
"""

from __future__ import annotations

from typing import Any

from ..models.constants import COLOR_FIELDS, SHEET_FIELDS
from ..models.lookups import NEUTRAL_CPT_COLOR
from ..models.sheet_row import CptEntry, SheetRow

# Plain columns stored 1:1 (cpt_code is split into code and color lists)
ROW_COLUMNS: tuple[str, ...] = tuple(f for f in SHEET_FIELDS if f != "cpt_code") + COLOR_FIELDS
ALL_ROW_COLUMNS: tuple[str, ...] = ROW_COLUMNS + ("cpt_code", "cpt_code_color", "created_at", "updated_at")


def serialize_codes(entries: tuple[CptEntry, ...] | None) -> tuple[str | None, str | None]:
    """Split CPT entries into the comma-joined code and color columns."""
    if not entries:
        return None, None
    return ",".join(e.code for e in entries), ",".join(e.color for e in entries)


def deserialize_codes(
    codes: str | None, colors: str | None, neutral: str = NEUTRAL_CPT_COLOR
) -> tuple[CptEntry, ...] | None:
    """Pair comma-joined codes with their colors (missing colors become neutral)."""
    if not codes:
        return None
    code_list = [c.strip() for c in codes.split(",") if c.strip()]
    color_list = [c.strip() for c in (colors or "").split(",")]
    entries = []
    for index, code in enumerate(code_list):
        color = color_list[index] if index < len(color_list) and color_list[index] else neutral
        entries.append(CptEntry(code, color))
    return tuple(entries) or None


def row_to_record(row: SheetRow) -> dict[str, Any]:
    record: dict[str, Any] = {name: getattr(row, name) for name in ROW_COLUMNS}
    record["cpt_code"], record["cpt_code_color"] = serialize_codes(row.cpt_code)
    record["created_at"] = row.created_at
    record["updated_at"] = row.updated_at
    return record


def record_to_row(row_id: str, record: dict[str, Any]) -> SheetRow:
    values = {name: record.get(name) for name in ROW_COLUMNS}
    values["cpt_code"] = deserialize_codes(record.get("cpt_code"), record.get("cpt_code_color"))
    return SheetRow(
        id=str(row_id),
        created_at=record.get("created_at"),
        updated_at=record.get("updated_at"),
        **values,
    )

"""Coercion of raw grid text into stored field values.

The grid never blocks a keystroke: input that does not parse for its field
kind is stored as None rather than rejected.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from .constants import (
    FIELD_KINDS,
    MONTH_NAMES,
    STATUS_OPTIONS,
    FieldKind,
    StatusType,
)

DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%Y/%m/%d",
    "%b %d, %Y",
    "%B %d, %Y",
)

_STATUS_LOOKUP: dict[str, str] = {
    option.lower(): option
    for status_type, options in STATUS_OPTIONS.items()
    if status_type is not StatusType.MONTH
    for option in options
}


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def coerce_text(value: Any) -> str | None:
    return _as_text(value)


def coerce_amount(value: Any) -> str | None:
    """Keep the trimmed input if it parses as a finite number, else None.

    The literal text is preserved (so ``"00"`` stays ``"00"``); only a
    leading ``$`` and thousands separators are dropped.
    """
    text = _as_text(value)
    if text is None:
        return None
    cleaned = text.replace(",", "").removeprefix("$").strip()
    try:
        number = float(cleaned)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return cleaned


def parse_amount(value: str | None) -> float:
    """Numeric value of an amount field; missing or unparseable counts as 0."""
    if value is None:
        return 0.0
    cleaned = str(value).replace(",", "").removeprefix("$").strip()
    try:
        number = float(cleaned)
    except ValueError:
        return 0.0
    return number if math.isfinite(number) else 0.0


def format_amount(number: float) -> str:
    """Serialize a computed amount: whole numbers without decimals."""
    rounded = round(number, 2)
    if rounded == int(rounded):
        return str(int(rounded))
    return f"{rounded:.2f}".rstrip("0").rstrip(".")


def coerce_date(value: Any) -> str | None:
    """Normalize a date to ISO ``YYYY-MM-DD``; empty or unparseable gives None."""
    text = _as_text(value)
    if text is None:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def coerce_month(value: Any) -> str | None:
    """Resolve a month name, three-letter abbreviation, or number to its full name."""
    text = _as_text(value)
    if text is None:
        return None
    if text.isdigit():
        index = int(text)
        return MONTH_NAMES[index - 1] if 1 <= index <= 12 else None
    lowered = text.lower()
    for name in MONTH_NAMES:
        if lowered == name.lower() or (len(lowered) >= 3 and name.lower().startswith(lowered)):
            return name
    return None


def coerce_status(value: Any) -> str | None:
    """Canonicalize the case of a known status; unknown statuses are kept as typed."""
    text = _as_text(value)
    if text is None:
        return None
    return _STATUS_LOOKUP.get(text.lower(), text)


def split_codes(value: Any) -> list[str] | None:
    """Split comma-separated CPT input into unique codes, in order."""
    text = _as_text(value)
    if text is None:
        return None
    codes: list[str] = []
    for part in text.split(","):
        code = part.strip()
        if code and code not in codes:
            codes.append(code)
    return codes or None


def coerce_field(field_name: str, value: Any) -> Any:
    """Coerce raw grid input for a field according to its kind.

    Args:
        field_name: SheetRow field being edited
        value: Raw value from the grid (usually a string)

    Returns:
        The stored representation (list of codes for ``cpt_code``).
    """
    kind = FIELD_KINDS.get(field_name, FieldKind.TEXT)
    if kind is FieldKind.NUMERIC:
        return coerce_amount(value)
    if kind is FieldKind.DATE:
        return coerce_date(value)
    if kind is FieldKind.MONTH:
        return coerce_month(value)
    if kind is FieldKind.STATUS:
        return coerce_status(value)
    if kind is FieldKind.CODES:
        return split_codes(value)
    return coerce_text(value)

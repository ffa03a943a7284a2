"""Lookup tables threaded into the derivation engine.

Billing codes and status colors are per-clinic reference data. They are
bundled into a LookupTables value and passed explicitly, never read from
module state, so derivation stays a pure function of its inputs.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from .constants import DEFAULT_STATUS_COLORS, StatusType
from .patient import PatientIndex

NEUTRAL_CPT_COLOR = "#cccccc"


@dataclass(frozen=True)
class ColorPair:
    """Background and text color for a status cell."""

    background: str
    text: str = "#000000"


@dataclass(frozen=True)
class BillingCode:
    code: str
    description: str | None = None
    color: str | None = None


@dataclass(frozen=True)
class StatusColor:
    status: str
    status_type: StatusType
    color: str
    text_color: str = "#000000"


def default_status_colors() -> list[StatusColor]:
    """Status colors used for a clinic that has not configured its own."""
    return [
        StatusColor(status, status_type, background, text)
        for (status, status_type), (background, text) in DEFAULT_STATUS_COLORS.items()
    ]


@dataclass(frozen=True)
class LookupTables:
    """Reference data needed to derive side effects of an edit."""

    billing_codes: dict[str, BillingCode] = field(default_factory=dict)
    status_colors: dict[tuple[str, StatusType], ColorPair] = field(default_factory=dict)
    patients: PatientIndex = field(default_factory=PatientIndex)
    neutral_cpt_color: str = NEUTRAL_CPT_COLOR

    @classmethod
    def build(
        cls,
        billing_codes: Iterable[BillingCode] = (),
        status_colors: Iterable[StatusColor] | None = None,
        patients: PatientIndex | None = None,
        neutral_cpt_color: str = NEUTRAL_CPT_COLOR,
    ) -> LookupTables:
        """Build tables from backend records.

        Args:
            billing_codes: Clinic billing codes
            status_colors: Clinic status colors; None selects the defaults
            patients: Patient index for auto-fill
            neutral_cpt_color: Color for CPT codes missing from billing_codes
        """
        if status_colors is None:
            status_colors = default_status_colors()
        return cls(
            billing_codes={code.code.strip().upper(): code for code in billing_codes},
            status_colors={
                (sc.status, StatusType(sc.status_type)): ColorPair(sc.color, sc.text_color)
                for sc in status_colors
            },
            patients=patients if patients is not None else PatientIndex(),
            neutral_cpt_color=neutral_cpt_color,
        )

    def status_color(self, status: str | None, status_type: StatusType) -> ColorPair | None:
        if not status:
            return None
        return self.status_colors.get((status, status_type))

    def code_color(self, code: str) -> str:
        entry = self.billing_codes.get(code.strip().upper())
        if entry is None or not entry.color:
            return self.neutral_cpt_color
        return entry.color

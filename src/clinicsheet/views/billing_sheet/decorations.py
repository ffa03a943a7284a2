"""Per-cell visual decorations for the billing sheet.

Pure functions of row data, reference lookups and annotations, so they can
be tested without a Tk root. The row styler pushes the results into tksheet.
"""

from __future__ import annotations

from dataclasses import dataclass

from ...models.annotation import CellAnnotation
from ...models.constants import COLOR_SHADOWS, TOTAL_FIELD
from ...models.lookups import LookupTables
from ...models.sheet_row import SheetRow
from .cell_note import CellNote
from .panel_constants import COLOR_TOTAL_BG


@dataclass(frozen=True)
class CellStyle:
    bg: str | None = None
    fg: str | None = None

    def __bool__(self) -> bool:
        return self.bg is not None or self.fg is not None


def status_style(row: SheetRow, field_name: str, lookups: LookupTables) -> CellStyle:
    """Color for a status or month cell.

    The row's cached shadow color wins; the lookup table supplies the text
    color and covers rows saved before a color was cached.
    """
    shadow = COLOR_SHADOWS.get(field_name)
    if shadow is None:
        return CellStyle()
    status_type, color_field = shadow
    pair = lookups.status_color(getattr(row, field_name), status_type)
    cached = getattr(row, color_field)
    if pair is None:
        return CellStyle(bg=cached)
    return CellStyle(bg=cached or pair.background, fg=pair.text)


def cpt_style(row: SheetRow) -> CellStyle:
    """A CPT cell takes the color of its first code."""
    if not row.cpt_code:
        return CellStyle()
    return CellStyle(bg=row.cpt_code[0].color)


def is_highlighted(annotation: CellAnnotation | None) -> bool:
    return annotation is not None and annotation.highlight_color is not None


def cell_style(
    row: SheetRow,
    field_name: str,
    lookups: LookupTables,
    annotation: CellAnnotation | None = None,
) -> CellStyle:
    """Resolve the background/foreground for one cell.

    Priority: user highlight > status/code color > derived-column tint.
    """
    if is_highlighted(annotation):
        return CellStyle(bg=annotation.highlight_color, fg="black")
    if field_name == "cpt_code":
        return cpt_style(row)
    if field_name in COLOR_SHADOWS:
        return status_style(row, field_name, lookups)
    if field_name == TOTAL_FIELD:
        return CellStyle(bg=COLOR_TOTAL_BG)
    return CellStyle()


def cell_note(annotation: CellAnnotation | None) -> CellNote:
    return CellNote.from_annotation(annotation)


def header_title(title: str, locked: bool) -> str:
    """Column header text; locked columns carry a padlock."""
    return f"🔒 {title}" if locked else title

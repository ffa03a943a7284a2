"""Row service for row-sequence operations on SheetRow lists.

Covers padding maintenance, placeholder conversion, deletion, drag
reordering, and row insertion. All operations are pure: they take a row
list and return a new one, leaving the input untouched.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from datetime import datetime, timezone

from ..models.coercion import format_amount, parse_amount
from ..models.constants import MIN_ROWS, SUMMED_FIELDS
from ..models.sheet_row import (
    RowIdMinter,
    SheetRow,
    is_empty_id,
    make_empty_id,
    parse_empty_index,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RowService:
    """Stateless operations on an owner's ordered row sequence.

    All methods are static as the service is stateless.
    """

    @staticmethod
    def ensure_padding(owner_id: str, rows: Sequence[SheetRow], min_rows: int = MIN_ROWS) -> list[SheetRow]:
        """Backfill placeholder rows until the sequence has min_rows rows.

        Existing rows are preserved verbatim and in order; padding only
        appends. New placeholder ids are ``empty-<owner>-<index>`` where the
        index starts at the number of placeholders already present, bumped
        past the highest existing placeholder index so ids never collide.

        Args:
            owner_id: Owner the sequence belongs to
            rows: Current sequence
            min_rows: Minimum length to guarantee

        Returns:
            New list with len >= min_rows
        """
        padded = list(rows)
        shortfall = min_rows - len(padded)
        if shortfall <= 0:
            return padded

        empty_indices = [parse_empty_index(row.id) for row in padded if is_empty_id(row.id)]
        start = len(empty_indices)
        known = [index for index in empty_indices if index is not None]
        if known:
            start = max(start, max(known) + 1)

        padded.extend(SheetRow(id=make_empty_id(owner_id, start + n)) for n in range(shortfall))
        return padded

    @staticmethod
    def convert_placeholder_to_real(
        row: SheetRow,
        minter: RowIdMinter,
        now: Callable[[], datetime] = utc_now,
    ) -> SheetRow:
        """Give a placeholder row a fresh ``new-`` id on its first edit.

        Rows that are already real are returned unchanged, so the conversion
        happens at most once per row.
        """
        if not row.is_placeholder:
            return row
        stamp = now()
        return replace(row, id=minter.mint(), created_at=stamp, updated_at=stamp)

    @staticmethod
    def can_delete(row: SheetRow) -> tuple[bool, str]:
        """Check whether a row may be deleted.

        Returns:
            Tuple of (can_delete, reason_if_not).
        """
        if row.is_placeholder:
            return False, "Empty rows cannot be deleted"
        return True, ""

    @staticmethod
    def delete_row(
        owner_id: str, rows: Sequence[SheetRow], index: int, min_rows: int = MIN_ROWS
    ) -> list[SheetRow]:
        """Remove a non-empty row outright and re-pad the tail.

        Raises:
            IndexError: If index is out of range
            ValueError: If the row is a placeholder
        """
        row = rows[index]
        ok, reason = RowService.can_delete(row)
        if not ok:
            raise ValueError(reason)
        remaining = [r for i, r in enumerate(rows) if i != index]
        return RowService.ensure_padding(owner_id, remaining, min_rows)

    @staticmethod
    def reorder_rows(rows: Sequence[SheetRow], source_indices: Iterable[int], dest_index: int) -> list[SheetRow]:
        """Move rows so the first moved row lands at dest_index.

        Moved rows keep their relative order and contents. The moved rows are
        spliced out (highest index first) and reinserted at
        ``min(dest_index, len(remaining))``.
        """
        indices = sorted({i for i in source_indices if 0 <= i < len(rows)})
        if not indices:
            return list(rows)

        moved = [rows[i] for i in indices]
        remaining = list(rows)
        for i in reversed(indices):
            del remaining[i]

        insert_at = min(max(dest_index, 0), len(remaining))
        return remaining[:insert_at] + moved + remaining[insert_at:]

    @staticmethod
    def move_rows_by_id(rows: Sequence[SheetRow], row_ids: Sequence[str], dest_index: int) -> list[SheetRow]:
        """Reorder by row identity rather than by position.

        Applying the same move twice gives the same result as applying it
        once, so repeated delivery of a drag event cannot move rows again.
        """
        wanted = set(row_ids)
        indices = [i for i, row in enumerate(rows) if row.id in wanted]
        return RowService.reorder_rows(rows, indices, dest_index)

    @staticmethod
    def insert_row(
        rows: Sequence[SheetRow],
        index: int,
        above: bool,
        minter: RowIdMinter,
        now: Callable[[], datetime] = utc_now,
    ) -> tuple[list[SheetRow], SheetRow]:
        """Insert a blank pending row above or below the given row.

        The inserted row has a ``new-`` id so it keeps its position when the
        sequence is saved and refetched.

        Returns:
            Tuple of (new row list, inserted row)
        """
        stamp = now()
        new_row = SheetRow(id=minter.mint(), created_at=stamp, updated_at=stamp)
        position = index if above else index + 1
        position = min(max(position, 0), len(rows))
        updated = list(rows)
        updated.insert(position, new_row)
        return updated, new_row

    @staticmethod
    def column_totals(rows: Iterable[SheetRow]) -> dict[str, str]:
        """Sum the footer columns (Ins Pay, Collected from PT, Total)."""
        sums = dict.fromkeys(SUMMED_FIELDS, 0.0)
        for row in rows:
            if row.is_placeholder:
                continue
            for field_name in SUMMED_FIELDS:
                sums[field_name] += parse_amount(getattr(row, field_name))
        return {name: format_amount(total) for name, total in sums.items()}

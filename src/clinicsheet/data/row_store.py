"""Row store: per-owner row sequences for the provider sheets.

Each owner (provider) maps to one ordered list of SheetRow objects that is
always padded to at least ``min_rows``. The sequence is replaced as a whole
on every commit; callers hand in the full current array, never a slice.

Observers are called with (owner_id, affected_row_ids), where
affected_row_ids is None for a full reload.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import replace

from ..models.constants import MIN_ROWS
from ..models.sheet_row import SheetRow
from ..services.row_service import RowService

logger = logging.getLogger(__name__)

StoreObserver = Callable[[str, "set[str] | None"], None]


class DuplicateRowIdError(ValueError):
    """Raised when a committed sequence would contain the same id twice."""


class RowStore:
    """In-memory owner -> row sequence mapping.

    Usage:
        store = RowStore()
        store.load("prov-1", fetched_rows)
        store.add_observer(lambda owner, ids: refresh(owner))
        store.commit("prov-1", updated_rows, {"new-1-1-42"})
    """

    def __init__(self, min_rows: int = MIN_ROWS):
        self._min_rows = min_rows
        self._rows: dict[str, list[SheetRow]] = {}
        self._observers: list[StoreObserver] = []

    @property
    def min_rows(self) -> int:
        return self._min_rows

    def owners(self) -> list[str]:
        return list(self._rows)

    def has_owner(self, owner_id: str) -> bool:
        return owner_id in self._rows

    def rows(self, owner_id: str) -> list[SheetRow]:
        """Get a copy of an owner's current sequence (padded)."""
        if owner_id not in self._rows:
            return RowService.ensure_padding(owner_id, [], self._min_rows)
        return list(self._rows[owner_id])

    def get_row(self, owner_id: str, row_id: str) -> SheetRow | None:
        for row in self._rows.get(owner_id, ()):
            if row.id == row_id:
                return row
        return None

    def index_of(self, owner_id: str, row_id: str) -> int | None:
        for index, row in enumerate(self._rows.get(owner_id, ())):
            if row.id == row_id:
                return index
        return None

    # --- Mutation ---

    @staticmethod
    def _check_unique(owner_id: str, rows: Sequence[SheetRow]) -> None:
        seen: set[str] = set()
        for row in rows:
            if row.id in seen:
                raise DuplicateRowIdError(f"Duplicate row id {row.id!r} for owner {owner_id!r}")
            seen.add(row.id)

    def load(self, owner_id: str, rows: Iterable[SheetRow]) -> None:
        """Replace an owner's sequence with freshly fetched rows."""
        padded = RowService.ensure_padding(owner_id, list(rows), self._min_rows)
        self._check_unique(owner_id, padded)
        self._rows[owner_id] = padded
        logger.debug("Loaded %d rows for owner %s", len(padded), owner_id)
        self._notify_observers(owner_id, None)

    def commit(self, owner_id: str, rows: Sequence[SheetRow], affected_ids: set[str] | None = None) -> None:
        """Replace an owner's sequence with a locally computed one.

        Args:
            owner_id: Owner being updated
            rows: Full new sequence (padding is re-evaluated)
            affected_ids: Row ids whose contents changed (None = all)
        """
        padded = RowService.ensure_padding(owner_id, rows, self._min_rows)
        self._check_unique(owner_id, padded)
        self._rows[owner_id] = padded
        self._notify_observers(owner_id, affected_ids)

    def rename_ids(self, owner_id: str, mapping: Mapping[str, str]) -> set[str]:
        """Swap local ids for server ids in place, without reordering.

        Ids not present in the sequence are ignored.

        Returns:
            The new ids that were applied.
        """
        rows = self._rows.get(owner_id)
        if not rows or not mapping:
            return set()

        applied: set[str] = set()
        renamed = []
        for row in rows:
            new_id = mapping.get(row.id)
            if new_id is not None:
                renamed.append(replace(row, id=new_id))
                applied.add(new_id)
            else:
                renamed.append(row)

        if applied:
            self._check_unique(owner_id, renamed)
            self._rows[owner_id] = renamed
            self._notify_observers(owner_id, applied)
        return applied

    def forget(self, owner_id: str) -> None:
        self._rows.pop(owner_id, None)

    # --- Observers ---

    def add_observer(self, callback: StoreObserver) -> None:
        """Add observer callback."""
        if callback not in self._observers:
            self._observers.append(callback)

    def remove_observer(self, callback: StoreObserver) -> None:
        """Remove observer callback."""
        if callback in self._observers:
            self._observers.remove(callback)

    def _notify_observers(self, owner_id: str, affected_ids: set[str] | None) -> None:
        """Notify all observers of data changes."""
        for callback in self._observers:
            try:
                callback(owner_id, affected_ids)
            except Exception:
                # One broken observer must not stop the others
                logger.exception("Row store observer failed for owner %s", owner_id)

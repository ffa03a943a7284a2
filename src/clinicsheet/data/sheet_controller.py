"""Sheet controller: wires the sheet engine together for one clinic session.

The grid view talks only to this class. It owns the row store, reconciler,
persistence adapter, lock store and annotation store, and routes each grid
interaction through them:

    grid edit batch -> ChangeReconciler -> RowStore.commit
                                        -> AnnotationStore (zero highlights)
                                        -> PersistenceAdapter.save (debounced)

All entry points called from tk event handlers are synchronous and return
immediately; backend round-trips run as tasks on the asyncio loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Iterable, Mapping, Sequence
from datetime import datetime
from typing import Any

from ..models.column_lock import ColumnLockState, LockScope
from ..models.constants import SheetKind
from ..models.lookups import LookupTables
from ..models.patient import PatientIndex
from ..models.sheet_row import RowIdMinter, SheetPeriod, SheetRow
from ..models.view_context import ViewContext
from ..services.derivation_service import DerivationContext
from ..services.projection_service import ColumnProjection, project_columns
from ..services.row_service import RowService, utc_now
from ..settings import SheetSettings
from .annotation_store import AnnotationStore
from .backend import SheetBackend
from .lock_store import LockStore
from .persistence import PersistenceAdapter
from .reconciler import CellEdit, ChangeReconciler, ReconcileResult
from .row_store import RowStore

logger = logging.getLogger(__name__)


class NoSheetOpenError(RuntimeError):
    """Raised when a row operation is attempted before open_sheet()."""


class SheetController:
    """Facade over the sheet engine for one signed-in user and clinic.

    Usage:
        controller = SheetController(backend, settings, StaffView(Role.ADMIN), loop=loop)
        await controller.load_reference_data()
        await controller.open_sheet("prov-1", SheetPeriod(3, 2025))
        controller.handle_edits([CellEdit(0, 3, None, "Acme")])
    """

    def __init__(
        self,
        backend: SheetBackend,
        settings: SheetSettings,
        view_context: ViewContext,
        can_edit: bool = True,
        loop: asyncio.AbstractEventLoop | None = None,
        on_error: Callable[[str], None] | None = None,
        minter: RowIdMinter | None = None,
        now: Callable[[], datetime] = utc_now,
    ):
        self._backend = backend
        self._settings = settings
        self._loop = loop or asyncio.get_running_loop()
        self.view_context = view_context
        self.can_edit = can_edit
        self.on_error = on_error
        self._minter = minter or RowIdMinter()
        self._now = now
        self._tasks: set[asyncio.Task] = set()

        self._owner_id: str | None = None
        self._period: SheetPeriod | None = None
        self._lookups = LookupTables.build(neutral_cpt_color=settings.neutral_cpt_color)

        self.store = RowStore(settings.min_rows)
        self.locks = LockStore(backend, on_error=self._report_error)
        self.annotations = AnnotationStore(
            backend, SheetKind.PROVIDERS, loop=self._loop, on_error=self._report_error
        )
        self.reconciler = ChangeReconciler(
            self.projection(),
            self.derivation_context(),
            min_rows=settings.min_rows,
            minter=self._minter,
            now=now,
        )
        self.persistence = PersistenceAdapter(
            backend,
            self.store,
            delay=settings.debounce_seconds,
            loop=self._loop,
            on_save_started=self.reconciler.mark_save_started,
            on_saved=self._on_saved,
            on_error=self._on_save_error,
        )

    # --- Context ---

    @property
    def owner_id(self) -> str | None:
        return self._owner_id

    @property
    def period(self) -> SheetPeriod | None:
        return self._period

    @property
    def lookups(self) -> LookupTables:
        return self._lookups

    @property
    def lock_scope(self) -> LockScope:
        return LockScope(self._backend.clinic_id)

    @property
    def lock_state(self) -> ColumnLockState:
        return self.locks.state(self.lock_scope)

    def projection(self) -> ColumnProjection:
        """Column projection for the current viewer and lock state."""
        return project_columns(self.view_context, self.can_edit, self.lock_state)

    def derivation_context(self) -> DerivationContext:
        return DerivationContext(
            lookups=self._lookups,
            user_highlight_color=self._settings.user_highlight_color,
            zero_marker_color=self._settings.zero_marker_color,
        )

    def _require_owner(self) -> tuple[str, SheetPeriod]:
        if self._owner_id is None or self._period is None:
            raise NoSheetOpenError("No provider sheet is open")
        return self._owner_id, self._period

    # --- Loading ---

    async def load_reference_data(self) -> None:
        """Fetch patients, billing codes, status colors, locks and annotations."""
        patients = await self._backend.fetch_patients()
        codes = await self._backend.fetch_billing_codes()
        colors = await self._backend.fetch_status_colors()
        self._lookups = LookupTables.build(
            billing_codes=codes,
            status_colors=colors or None,
            patients=PatientIndex(patients),
            neutral_cpt_color=self._settings.neutral_cpt_color,
        )
        self.reconciler.derivation_context = self.derivation_context()
        await self.locks.load(self.lock_scope)
        await self.annotations.load()
        logger.info("Loaded %d patients and %d billing codes", len(patients), len(codes))

    async def open_sheet(self, owner_id: str, period: SheetPeriod) -> None:
        """Switch to an owner's month, flushing and resetting the previous one."""
        previous = self._owner_id
        if previous is not None:
            await self.persistence.flush_now(previous)
            self.reconciler.reset(previous)

        self._owner_id = owner_id
        self._period = period
        rows = await self._backend.fetch_rows(owner_id, period)
        self.store.load(owner_id, rows)
        self.reconciler.reset(owner_id)
        logger.info("Opened %s for %s (%d saved rows)", period.label, owner_id, len(rows))

    async def refresh(self) -> None:
        """Refetch the open sheet; pending local edits keep precedence for display."""
        owner_id, period = self._require_owner()
        rows = await self._backend.fetch_rows(owner_id, period)
        if self._owner_id != owner_id or self._period != period:
            return
        self.store.load(owner_id, rows)
        self.reconciler.mark_refetched(owner_id)

    async def refresh_locks(self) -> ColumnLockState:
        return await self.locks.load(self.lock_scope)

    # --- Reads for rendering ---

    def rows(self) -> list[SheetRow]:
        """Rows to render for the open sheet."""
        if self._owner_id is None:
            return []
        return self.reconciler.display_rows(self._owner_id, self.store.rows(self._owner_id))

    def row_at(self, index: int) -> SheetRow | None:
        rows = self.rows()
        return rows[index] if 0 <= index < len(rows) else None

    def column_totals(self) -> dict[str, str]:
        return RowService.column_totals(self.rows())

    # --- Grid interactions (synchronous) ---

    def handle_edits(self, batch: Iterable[CellEdit]) -> ReconcileResult:
        """Apply one grid interaction and queue its save."""
        owner_id, period = self._require_owner()
        self.reconciler.projection = self.projection()
        result = self.reconciler.apply_changes(owner_id, self.rows(), list(batch))

        self.store.commit(owner_id, result.updated_rows, result.affected_ids)
        if result.id_transitions:
            self.annotations.rekey(result.id_transitions)
        if result.annotation_effects:
            self.annotations.apply_effects(result.annotation_effects, self._settings.user_id)

        request = result.save_request
        if request is not None:
            self.persistence.save(owner_id, request.rows, period, request.generation)
        return result

    def move_rows(self, row_ids: Sequence[str], dest_index: int) -> bool:
        """Apply a drag reorder by row identity.

        Returns:
            False if the rows were already in place (repeated event)
        """
        owner_id, period = self._require_owner()
        prior = self.rows()
        updated = RowService.move_rows_by_id(prior, row_ids, dest_index)
        if [r.id for r in updated] == [r.id for r in prior]:
            return False
        self._commit_structural(owner_id, period, updated, immediate=False)
        return True

    def delete_row(self, index: int) -> bool:
        """Delete a non-empty row and save the remaining sequence immediately.

        Returns:
            False if the row is a placeholder (nothing deleted)
        """
        owner_id, period = self._require_owner()
        prior = self.rows()
        row = prior[index]
        ok, reason = RowService.can_delete(row)
        if not ok:
            logger.debug("Delete refused for row %d: %s", index, reason)
            return False
        updated = RowService.delete_row(owner_id, prior, index, self._settings.min_rows)
        self.annotations.remove_row(row.id)
        self._commit_structural(owner_id, period, updated, immediate=True)
        return True

    def insert_row(self, index: int, above: bool) -> SheetRow:
        owner_id, period = self._require_owner()
        updated, new_row = RowService.insert_row(self.rows(), index, above, self._minter, self._now)
        self._commit_structural(owner_id, period, updated, immediate=False)
        return new_row

    def _commit_structural(
        self, owner_id: str, period: SheetPeriod, rows: list[SheetRow], immediate: bool
    ) -> None:
        rows = RowService.ensure_padding(owner_id, rows, self._settings.min_rows)
        request = self.reconciler.record_local_change(owner_id, rows)
        self.store.commit(owner_id, rows, None)
        if immediate:
            self.spawn(self.persistence.save_now(owner_id, request.rows, period, request.generation))
        else:
            self.persistence.save(owner_id, request.rows, period, request.generation)

    # --- Annotations ---

    def _row_for(self, row_index: int) -> SheetRow:
        row = self.row_at(row_index)
        if row is None:
            raise IndexError(f"No row at index {row_index}")
        return row

    def toggle_highlight(self, row_index: int, field_name: str, color: str | None = None) -> bool:
        row = self._row_for(row_index)
        color = color or self._settings.user_highlight_color
        return self.annotations.toggle_highlight(row.id, field_name, color, self._settings.user_id)

    def set_comment(self, row_index: int, field_name: str, text: str | None) -> None:
        row = self._row_for(row_index)
        self.annotations.set_comment(row.id, field_name, text)

    def resolve_comment(self, row_index: int, field_name: str, resolved: bool = True) -> None:
        row = self._row_for(row_index)
        self.annotations.resolve_comment(row.id, field_name, resolved)

    # --- Locks ---

    async def toggle_lock(self, field_name: str, comment: str | None = None) -> ColumnLockState:
        """Flip a column lock; the projection picks it up on the next render."""
        state = await self.locks.toggle(self.lock_scope, field_name, comment)
        self.reconciler.projection = self.projection()
        return state

    # --- Persistence callbacks ---

    def _on_saved(self, owner_id: str, generation: int, applied: Mapping[str, str]) -> None:
        self.reconciler.mark_saved(owner_id, generation, applied)
        if applied:
            self.annotations.rekey(applied)

    def _on_save_error(self, owner_id: str, exc: BaseException) -> None:
        self.reconciler.mark_save_failed(owner_id, self.reconciler.generation(owner_id))
        self._report_error(exc, f"Could not save the sheet for {owner_id}")

    def _report_error(self, exc: BaseException, message: str | None = None) -> None:
        text = f"{message}: {exc}" if message else str(exc)
        if self.on_error:
            self.on_error(text)

    # --- Task management ---

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run a coroutine on the loop without awaiting it; failures are reported."""
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task failed", exc_info=exc)
            self._report_error(exc)

    async def flush(self) -> None:
        """Write everything pending (rows and annotations)."""
        await self.persistence.flush_now()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.annotations.drain()

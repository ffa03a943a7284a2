"""Persistence adapter: debounced full-sequence saves per owner.

Rapid edits are coalesced: every save() re-arms a short timer and only the
latest sequence is written when it fires. flush_now() writes immediately
(used on blur, owner/month change, and shutdown). Saves for the same owner
never overlap; saves for different owners are independent, so one owner's
failure cannot affect another.

After a successful write, server-issued ids are applied to the row store
by matching the local ``new-``/``empty-`` id, never by position.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace

from ..models.sheet_row import SheetPeriod, SheetRow
from .backend import SheetBackend
from .row_store import RowStore

logger = logging.getLogger(__name__)

SaveStartedCallback = Callable[[str, int], None]
SavedCallback = Callable[[str, int, Mapping[str, str]], None]
ErrorCallback = Callable[[str, BaseException], None]


def rows_to_persist(rows: Sequence[SheetRow]) -> list[SheetRow]:
    """Drop placeholder rows that never received data."""
    return [row for row in rows if not (row.is_placeholder and not row.has_content)]


@dataclass
class _Pending:
    rows: list[SheetRow]
    period: SheetPeriod
    generation: int
    waiters: list[asyncio.Future] = field(default_factory=list)


class PersistenceAdapter:
    """Debounced writer from the row store to a SheetBackend.

    Usage:
        adapter = PersistenceAdapter(backend, store, delay=1.0, on_error=show_error)
        adapter.save("prov-1", rows, period, generation=3)   # returns immediately
        await adapter.flush_now()                           # on navigation
    """

    def __init__(
        self,
        backend: SheetBackend,
        store: RowStore,
        delay: float = 1.0,
        loop: asyncio.AbstractEventLoop | None = None,
        on_save_started: SaveStartedCallback | None = None,
        on_saved: SavedCallback | None = None,
        on_error: ErrorCallback | None = None,
    ):
        """Initialize the adapter.

        Args:
            backend: Storage to write to
            store: Row store that receives reconciled server ids
            delay: Debounce delay in seconds
            loop: Event loop for timers and write tasks (default: running loop)
            on_save_started: Called as (owner_id, generation) when a write begins
            on_saved: Called as (owner_id, generation, applied_id_map) on success
            on_error: Called as (owner_id, exception) on failure
        """
        self._backend = backend
        self._store = store
        self._delay = delay
        self._loop = loop or asyncio.get_running_loop()
        self._on_save_started = on_save_started
        self._on_saved = on_saved
        self._on_error = on_error

        self._pending: dict[str, _Pending] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._tasks: set[asyncio.Task] = set()
        self._last_saved: dict[tuple[str, SheetPeriod], tuple[SheetRow, ...]] = {}

    @property
    def delay(self) -> float:
        return self._delay

    def has_pending(self, owner_id: str | None = None) -> bool:
        if owner_id is None:
            return bool(self._pending)
        return owner_id in self._pending

    # --- Scheduling ---

    def save(self, owner_id: str, rows: Sequence[SheetRow], period: SheetPeriod, generation: int = 0) -> asyncio.Future:
        """Queue a debounced write of an owner's full sequence.

        Returns immediately. The returned future resolves to True once the
        sequence (or a later one that superseded it) was written, or False
        if that write failed.
        """
        waiter = self._loop.create_future()
        previous = self._pending.get(owner_id)
        waiters = previous.waiters if previous else []
        waiters.append(waiter)
        self._pending[owner_id] = _Pending(list(rows), period, generation, waiters)

        timer = self._timers.pop(owner_id, None)
        if timer is not None:
            timer.cancel()
        self._timers[owner_id] = self._loop.call_later(self._delay, self._on_timer, owner_id)
        return waiter

    def _on_timer(self, owner_id: str) -> None:
        self._timers.pop(owner_id, None)
        task = self._loop.create_task(self._write(owner_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def flush_now(self, owner_id: str | None = None) -> None:
        """Write pending sequences immediately and wait for in-flight writes.

        Args:
            owner_id: Owner to flush, or None for every owner
        """
        owners = [owner_id] if owner_id is not None else list(self._pending)
        for owner in owners:
            timer = self._timers.pop(owner, None)
            if timer is not None:
                timer.cancel()
            await self._write(owner)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def save_now(
        self, owner_id: str, rows: Sequence[SheetRow], period: SheetPeriod, generation: int = 0
    ) -> bool:
        """Write an owner's sequence without debouncing (e.g. after a delete)."""
        waiter = self.save(owner_id, rows, period, generation)
        await self.flush_now(owner_id)
        return await waiter

    def discard(self, owner_id: str) -> None:
        """Drop an owner's queued write without saving it."""
        timer = self._timers.pop(owner_id, None)
        if timer is not None:
            timer.cancel()
        pending = self._pending.pop(owner_id, None)
        if pending:
            self._resolve(pending, False)

    # --- Writing ---

    @staticmethod
    def _resolve(pending: _Pending, ok: bool) -> None:
        for waiter in pending.waiters:
            if not waiter.done():
                waiter.set_result(ok)

    async def _write(self, owner_id: str) -> None:
        lock = self._locks.setdefault(owner_id, asyncio.Lock())
        self._lock_users[owner_id] = self._lock_users.get(owner_id, 0) + 1
        try:
            async with lock:
                await self._write_pending(owner_id)
        finally:
            self._lock_users[owner_id] -= 1
            if not self._lock_users[owner_id]:
                del self._lock_users[owner_id]
                del self._locks[owner_id]

    async def _write_pending(self, owner_id: str) -> None:
        pending = self._pending.pop(owner_id, None)
        if pending is None:
            return

        rows = rows_to_persist(pending.rows)
        key = (owner_id, pending.period)
        if self._last_saved.get(key) == tuple(rows):
            logger.debug("Skipping save for %s: unchanged since last write", owner_id)
            if self._on_saved:
                self._on_saved(owner_id, pending.generation, {})
            self._resolve(pending, True)
            return

        if self._on_save_started:
            self._on_save_started(owner_id, pending.generation)

        try:
            id_map = await self._backend.replace_rows(owner_id, pending.period, rows)
        except Exception as e:
            # Optimistic: local rows stay as they are and become the retry baseline
            logger.exception("Saving %d rows for %s failed", len(rows), owner_id)
            if self._on_error:
                self._on_error(owner_id, e)
            self._resolve(pending, False)
            return

        applied = self._reconcile_ids(owner_id, id_map)
        self._last_saved[key] = _renamed(rows, id_map)
        queued = self._pending.get(owner_id)
        if queued is not None and id_map:
            # A newer sequence was queued mid-write; it must not insert these rows again
            queued.rows = list(_renamed(queued.rows, id_map))
        logger.info("Saved %d rows for %s (%d new)", len(rows), owner_id, len(id_map))

        if self._on_saved:
            self._on_saved(owner_id, pending.generation, applied)
        self._resolve(pending, True)

    def _reconcile_ids(self, owner_id: str, id_map: Mapping[str, str]) -> dict[str, str]:
        """Apply server ids to the store's current rows by local id.

        Entries whose local id is no longer present (row deleted or already
        replaced by a refetch) are left for the next full refetch.
        """
        if not id_map:
            return {}
        present = {row.id for row in self._store.rows(owner_id)}
        applied = {local: server for local, server in id_map.items() if local in present}
        for local in id_map.keys() - applied.keys():
            logger.debug("No local row %s for owner %s; deferring to refetch", local, owner_id)
        self._store.rename_ids(owner_id, applied)
        return applied


def _renamed(rows: Sequence[SheetRow], id_map: Mapping[str, str]) -> tuple[SheetRow, ...]:
    return tuple(replace(row, id=id_map[row.id]) if row.id in id_map else row for row in rows)

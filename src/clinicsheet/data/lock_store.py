"""Column lock store.

Lock state is read on every render by the field projection, so it is cached
here per scope. A toggle is a request/response call followed by a refetch
of the whole record for that scope; the cache never guesses the result.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..models.column_lock import ColumnLockState, LockScope, unlocked
from .backend import SheetBackend

logger = logging.getLogger(__name__)


class LockStore:
    def __init__(self, backend: SheetBackend, on_error: Callable[[BaseException], None] | None = None):
        self._backend = backend
        self._on_error = on_error
        self._states: dict[LockScope, ColumnLockState] = {}

    def state(self, scope: LockScope) -> ColumnLockState:
        """Cached lock state (all unlocked until loaded)."""
        return self._states.get(scope) or unlocked(scope)

    async def load(self, scope: LockScope) -> ColumnLockState:
        """Fetch the scope's record; an absent record means all unlocked."""
        state = await self._backend.fetch_lock_state(scope)
        if state is None:
            state = unlocked(scope)
        self._states[scope] = state
        return state

    async def set_lock(
        self, scope: LockScope, field_name: str, locked: bool, comment: str | None = None
    ) -> ColumnLockState:
        """Write one column's flag, then refetch the scope's record.

        On failure the error is logged and reported, and the cached state is
        returned unchanged.
        """
        try:
            await self._backend.write_lock(scope, field_name, locked, comment)
            state = await self.load(scope)
        except Exception as e:
            logger.exception("Updating lock on %s failed", field_name)
            if self._on_error:
                self._on_error(e)
            return self.state(scope)
        logger.info("Column %s %s", field_name, "locked" if locked else "unlocked")
        return state

    async def toggle(self, scope: LockScope, field_name: str, comment: str | None = None) -> ColumnLockState:
        locked = not self.state(scope).is_locked(field_name)
        return await self.set_lock(scope, field_name, locked, comment)

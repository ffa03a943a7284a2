"""Annotation store: per-cell highlights and comments.

Annotations are keyed by (clinic, sheet kind, row id, field) and live
independently of row data. Every change is applied locally first (so the
next render shows it) and then written to the backend in the background.
Writes for the same cell are serialized; a failed write is logged and
reported through on_error, and the local state is kept.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace

from ..models.annotation import AnnotationKey, CellAnnotation, CommentState
from ..models.constants import SheetKind
from .backend import SheetBackend
from .reconciler import AnnotationEffect

logger = logging.getLogger(__name__)


class AnnotationStore:
    """Local cache of one clinic's annotations for one sheet kind.

    Usage:
        store = AnnotationStore(backend, SheetKind.PROVIDERS, loop=loop)
        await store.load()
        store.toggle_highlight(row.id, "claim_status", "#eab308", user_id)
        store.set_comment(row.id, "notes", "Call insurance")
    """

    def __init__(
        self,
        backend: SheetBackend,
        sheet_kind: SheetKind,
        loop: asyncio.AbstractEventLoop | None = None,
        on_error: Callable[[BaseException], None] | None = None,
    ):
        self._backend = backend
        self._sheet_kind = sheet_kind
        self._loop = loop or asyncio.get_running_loop()
        self._on_error = on_error
        self._annotations: dict[AnnotationKey, CellAnnotation] = {}
        self._locks: dict[AnnotationKey, asyncio.Lock] = {}
        self._lock_users: dict[AnnotationKey, int] = {}
        self._tasks: set[asyncio.Task] = set()
        self._observers: list[Callable[[set[str]], None]] = []

    @property
    def sheet_kind(self) -> SheetKind:
        return self._sheet_kind

    def key(self, row_id: str, field_name: str) -> AnnotationKey:
        return AnnotationKey(self._backend.clinic_id, self._sheet_kind, row_id, field_name)

    async def load(self) -> None:
        """Replace the cache with the backend's annotations."""
        annotations = await self._backend.fetch_annotations(self._sheet_kind)
        self._annotations = {a.key: a for a in annotations}
        logger.debug("Loaded %d annotations for %s", len(self._annotations), self._sheet_kind.value)
        self._notify_observers({a.key.row_id for a in annotations})

    # --- Queries ---

    def get(self, row_id: str, field_name: str) -> CellAnnotation | None:
        return self._annotations.get(self.key(row_id, field_name))

    def highlight_color(self, row_id: str, field_name: str) -> str | None:
        annotation = self.get(row_id, field_name)
        return annotation.highlight_color if annotation else None

    def comment_state(self, row_id: str, field_name: str) -> CommentState:
        annotation = self.get(row_id, field_name)
        return annotation.comment_state if annotation else CommentState.ABSENT

    def for_row(self, row_id: str) -> list[CellAnnotation]:
        return [a for key, a in self._annotations.items() if key.row_id == row_id]

    def __len__(self) -> int:
        return len(self._annotations)

    # --- Local mutation + background write ---

    def _put(self, key: AnnotationKey, annotation: CellAnnotation | None) -> None:
        if annotation is None or annotation.is_empty:
            self._annotations.pop(key, None)
        else:
            self._annotations[key] = annotation
        self._schedule_write(key)
        self._notify_observers({key.row_id})

    def _current(self, row_id: str, field_name: str) -> CellAnnotation:
        key = self.key(row_id, field_name)
        return self._annotations.get(key) or CellAnnotation(key=key)

    def set_highlight(self, row_id: str, field_name: str, color: str | None, user_id: str | None = None) -> None:
        """Set (or with color None, clear) a cell's highlight."""
        current = self._current(row_id, field_name)
        self._put(current.key, replace(current, highlight_color=color, highlighted_by=user_id if color else None))

    def toggle_highlight(self, row_id: str, field_name: str, color: str, user_id: str | None = None) -> bool:
        """Flip a cell's highlight.

        Returns:
            True if the cell is highlighted afterwards
        """
        highlighted = self.highlight_color(row_id, field_name) is None
        self.set_highlight(row_id, field_name, color if highlighted else None, user_id)
        return highlighted

    def set_comment(self, row_id: str, field_name: str, text: str | None) -> None:
        """Set a cell's comment text (reopens it); blank text removes the comment."""
        current = self._current(row_id, field_name)
        text = (text or "").strip() or None
        self._put(current.key, replace(current, comment=text, resolved=False))

    def resolve_comment(self, row_id: str, field_name: str, resolved: bool = True) -> None:
        current = self._current(row_id, field_name)
        if current.comment_state is CommentState.ABSENT:
            return
        self._put(current.key, replace(current, resolved=resolved))

    def remove_comment(self, row_id: str, field_name: str) -> None:
        self.set_comment(row_id, field_name, None)

    def apply_effects(self, effects: Iterable[AnnotationEffect], user_id: str | None = None) -> None:
        """Apply highlight side effects produced by an edit batch."""
        for item in effects:
            self.set_highlight(item.row_id, item.effect.field, item.effect.color, user_id)

    def remove_row(self, row_id: str) -> None:
        """Drop every annotation of a deleted row."""
        for annotation in self.for_row(row_id):
            self._put(annotation.key, None)

    def rekey(self, id_map: Mapping[str, str]) -> int:
        """Carry annotations forward when rows change identity.

        Args:
            id_map: old row id -> new row id

        Returns:
            Number of annotations moved
        """
        moved = [a for key, a in self._annotations.items() if key.row_id in id_map]
        for annotation in moved:
            old_key = annotation.key
            new_key = old_key.with_row(id_map[old_key.row_id])
            self._put(old_key, None)
            self._put(new_key, replace(annotation, key=new_key))
        if moved:
            logger.debug("Re-keyed %d annotations", len(moved))
        return len(moved)

    # --- Background writes ---

    def _schedule_write(self, key: AnnotationKey) -> None:
        task = self._loop.create_task(self._write(key))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _write(self, key: AnnotationKey) -> None:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                # Write whatever is current when our turn comes
                annotation = self._annotations.get(key)
                try:
                    if annotation is None:
                        await self._backend.delete_annotation(key)
                    else:
                        await self._backend.upsert_annotation(annotation)
                except Exception as e:
                    logger.exception("Saving annotation for %s/%s failed", key.row_id, key.field)
                    if self._on_error:
                        self._on_error(e)
        finally:
            self._release_lock(key)

    def _release_lock(self, key: AnnotationKey) -> None:
        """Forget a cell's lock once its last queued writer is done."""
        self._lock_users[key] -= 1
        if not self._lock_users[key]:
            del self._lock_users[key]
            del self._locks[key]

    async def drain(self) -> None:
        """Wait until every queued write has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- Observers ---

    def add_observer(self, callback: Callable[[set[str]], None]) -> None:
        """Add observer callback (called with affected row ids)."""
        if callback not in self._observers:
            self._observers.append(callback)

    def _notify_observers(self, row_ids: set[str]) -> None:
        for callback in self._observers:
            try:
                callback(row_ids)
            except Exception:
                logger.exception("Annotation observer failed")

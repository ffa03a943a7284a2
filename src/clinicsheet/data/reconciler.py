"""Change reconciler: grid edit batches -> new row sequence + mutations.

One grid interaction (a keystroke commit, a paste, a fill) arrives as a
batch of CellEdit tuples. The batch is applied in a single pass over one
EditSession, then diffed against the prior sequence to produce per-field
MutationCalls and a full-sequence SaveRequest.

The reconciler also tracks, per owner, the sync state of its latest
locally computed sequence:

    CLEAN --edit--> DIRTY_LOCAL --save start--> SAVING --save ok--> RECONCILED
                        ^                          |
                        +----- edit / save fail ---+

While an owner is DIRTY_LOCAL or SAVING, display_rows() serves the pending
snapshot instead of the canonical store rows, so a refetch that lands
before the save round-trip cannot revert just-typed values.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from ..models.coercion import coerce_field
from ..models.constants import MIN_ROWS
from ..models.sheet_row import DIFF_FIELDS, RowIdMinter, SheetRow
from ..services.derivation_service import DerivationContext, HighlightEffect, derive_on_edit
from ..services.projection_service import ColumnProjection
from ..services.row_service import RowService, utc_now
from .edit_session import EditSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CellEdit:
    """One changed cell as reported by the grid."""

    row: int
    col: int
    old: Any
    new: Any


@dataclass(frozen=True)
class MutationCall:
    """Per-field write against the row store.

    ``replaces`` is set when the row just left the placeholder regime and
    names the placeholder id it took over from.
    """

    owner_id: str
    row_id: str
    field: str
    value: Any
    replaces: str | None = None


@dataclass(frozen=True)
class SaveRequest:
    """Full-sequence save for one owner, tagged with the edit generation."""

    owner_id: str
    rows: tuple[SheetRow, ...]
    generation: int


@dataclass(frozen=True)
class AnnotationEffect:
    """Highlight side effect bound to a concrete row id."""

    row_id: str
    effect: HighlightEffect


@dataclass
class ReconcileResult:
    updated_rows: list[SheetRow]
    mutation_calls: list[MutationCall]
    save_request: SaveRequest | None
    annotation_effects: list[AnnotationEffect] = field(default_factory=list)
    id_transitions: dict[str, str] = field(default_factory=dict)
    rejected: list[CellEdit] = field(default_factory=list)

    @property
    def affected_ids(self) -> set[str]:
        return {call.row_id for call in self.mutation_calls}


class SyncState(Enum):
    CLEAN = "clean"
    DIRTY_LOCAL = "dirty_local"
    SAVING = "saving"
    RECONCILED = "reconciled"


@dataclass
class _OwnerSync:
    state: SyncState = SyncState.CLEAN
    snapshot: list[SheetRow] | None = None
    generation: int = 0


def diff_rows(
    owner_id: str,
    prior_rows: Sequence[SheetRow],
    updated_rows: Sequence[SheetRow],
    id_transitions: Mapping[str, str],
) -> list[MutationCall]:
    """Field-by-field diff of two versions of an owner's sequence.

    Rows are matched by id. A row that transitioned out of the placeholder
    regime emits a call for every non-null field, since consumers have no
    prior record of its new id. Freshly synthesized padding rows emit nothing.
    """
    prior_by_id = {row.id: row for row in prior_rows}
    replaced_by = {new_id: old_id for old_id, new_id in id_transitions.items()}
    calls: list[MutationCall] = []

    for row in updated_rows:
        if row.id in replaced_by:
            for name in DIFF_FIELDS:
                value = getattr(row, name)
                if value is not None:
                    calls.append(MutationCall(owner_id, row.id, name, value, replaces=replaced_by[row.id]))
            continue

        old = prior_by_id.get(row.id)
        if old is None or old is row:
            continue
        for name in DIFF_FIELDS:
            value = getattr(row, name)
            if getattr(old, name) != value:
                calls.append(MutationCall(owner_id, row.id, name, value))

    return calls


class ChangeReconciler:
    """Applies grid edit batches and tracks per-owner sync state.

    The active projection and derivation context are plain attributes that
    the sheet controller refreshes on every render; both can also be passed
    per call.
    """

    def __init__(
        self,
        projection: ColumnProjection,
        derivation_context: DerivationContext,
        min_rows: int = MIN_ROWS,
        minter: RowIdMinter | None = None,
        now: Callable[[], datetime] = utc_now,
    ):
        self.projection = projection
        self.derivation_context = derivation_context
        self._min_rows = min_rows
        self._minter = minter or RowIdMinter()
        self._now = now
        self._sync: dict[str, _OwnerSync] = {}
        # Shared across owners so a reset owner never reuses a stale generation
        self._generations = itertools.count(1)

    # --- Edit batches ---

    def apply_changes(
        self,
        owner_id: str,
        prior_rows: Sequence[SheetRow],
        batch: Iterable[CellEdit],
        projection: ColumnProjection | None = None,
        context: DerivationContext | None = None,
    ) -> ReconcileResult:
        """Apply one grid interaction atomically.

        Args:
            owner_id: Owner whose sheet was edited
            prior_rows: Full sequence the grid was showing
            batch: Changed cells from one interaction
            projection: Column projection (defaults to the active one)
            context: Derivation context (defaults to the active one)

        Returns:
            ReconcileResult with the new sequence, mutation calls, and save
            request (None when the batch changed nothing)
        """
        projection = projection or self.projection
        context = context or self.derivation_context
        session = EditSession(owner_id, prior_rows)
        effects: list[AnnotationEffect] = []
        transitions: dict[str, str] = {}
        rejected: list[CellEdit] = []

        for edit in batch:
            field_name = projection.field_at(edit.col)
            if field_name is None or edit.row < 0 or not projection.is_editable(edit.col):
                logger.debug("Ignoring edit on read-only cell (%d, %d)", edit.row, edit.col)
                rejected.append(edit)
                continue

            session.ensure_index(edit.row)
            current = session.row(edit.row)
            value = coerce_field(field_name, edit.new)
            patch = derive_on_edit(current, field_name, value, context)
            changed = {name: v for name, v in patch.values.items() if getattr(current, name) != v}

            if changed:
                stamp = self._now()
                if current.is_placeholder:
                    converted = RowService.convert_placeholder_to_real(current, self._minter, lambda: stamp)
                    session.replace_id(edit.row, converted.id)
                    changed["created_at"] = converted.created_at
                    transitions[current.id] = converted.id
                changed["updated_at"] = stamp
                session.set_fields(edit.row, changed)

            row = session.row(edit.row)
            if row.is_placeholder:
                continue
            effects.extend(AnnotationEffect(row.id, effect) for effect in patch.effects)

        updated = RowService.ensure_padding(owner_id, session.freeze(), self._min_rows)
        calls = diff_rows(owner_id, prior_rows, updated, transitions)
        # Nothing changed: leave the sync state and any pending snapshot alone
        save_request = self.record_local_change(owner_id, updated) if calls or transitions else None

        return ReconcileResult(
            updated_rows=updated,
            mutation_calls=calls,
            save_request=save_request,
            annotation_effects=effects,
            id_transitions=transitions,
            rejected=rejected,
        )

    # --- Sync state machine ---

    def _owner(self, owner_id: str) -> _OwnerSync:
        if owner_id not in self._sync:
            self._sync[owner_id] = _OwnerSync()
        return self._sync[owner_id]

    def state(self, owner_id: str) -> SyncState:
        return self._owner(owner_id).state

    def generation(self, owner_id: str) -> int:
        return self._owner(owner_id).generation

    def record_local_change(self, owner_id: str, rows: Sequence[SheetRow]) -> SaveRequest:
        """Make rows the pending snapshot (edit transition) and build its save request.

        Used by apply_changes and by the structural operations (delete,
        reorder, insert) that produce a whole new sequence.
        """
        sync = self._owner(owner_id)
        sync.generation = next(self._generations)
        sync.snapshot = list(rows)
        sync.state = SyncState.DIRTY_LOCAL
        return SaveRequest(owner_id, tuple(rows), sync.generation)

    def display_rows(self, owner_id: str, canonical_rows: Sequence[SheetRow]) -> list[SheetRow]:
        """Rows to render: the pending snapshot while unsaved, else the canonical rows."""
        sync = self._sync.get(owner_id)
        if sync and sync.snapshot is not None and sync.state in (SyncState.DIRTY_LOCAL, SyncState.SAVING):
            return list(sync.snapshot)
        return list(canonical_rows)

    def mark_save_started(self, owner_id: str, generation: int) -> None:
        sync = self._owner(owner_id)
        if generation == sync.generation and sync.state is SyncState.DIRTY_LOCAL:
            sync.state = SyncState.SAVING

    def mark_saved(self, owner_id: str, generation: int, id_map: Mapping[str, str]) -> None:
        """Save confirmed: adopt server ids, and settle if nothing newer is pending."""
        sync = self._owner(owner_id)
        if sync.snapshot is not None and id_map:
            sync.snapshot = [replace(row, id=id_map[row.id]) if row.id in id_map else row for row in sync.snapshot]
        if generation == sync.generation:
            sync.state = SyncState.RECONCILED
            sync.snapshot = None

    def mark_save_failed(self, owner_id: str, generation: int) -> None:
        """Keep the snapshot as the retry baseline."""
        sync = self._owner(owner_id)
        if sync.state is SyncState.SAVING:
            sync.state = SyncState.DIRTY_LOCAL

    def mark_refetched(self, owner_id: str) -> None:
        sync = self._owner(owner_id)
        if sync.state is SyncState.RECONCILED:
            sync.state = SyncState.CLEAN

    def reset(self, owner_id: str) -> None:
        """Drop pending state (owner or month change)."""
        self._sync.pop(owner_id, None)

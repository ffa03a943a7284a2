"""Field projection: which sheet fields are shown, and which are editable.

Two independent axes compose a projection. The view context decides the
visible columns and the role's own edit restrictions. Editability of a
visible column is then the AND of the global edit permission, the column
lock flag, and that role restriction.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from ..models.column_lock import ColumnLockState
from ..models.constants import (
    CONDENSED_HIDDEN_FIELDS,
    DERIVED_FIELDS,
    FIELD_TITLES,
    FULL_ACCESS_ROLES,
    OFFICE_EDITABLE_FIELDS,
    OFFICE_VISIBLE_FIELDS,
    PROVIDER_LEVEL1_EDITABLE,
    PROVIDER_LEVEL1_VISIBLE,
    SCHEDULING_EDIT_COUNT,
    SHEET_FIELDS,
    VIEW_ONLY_ROLES,
    Role,
)
from ..models.view_context import ProviderView, StaffView, ViewContext


@dataclass(frozen=True)
class ColumnSpec:
    """One projected grid column."""

    field: str
    title: str
    editable: bool


@dataclass(frozen=True)
class ColumnProjection:
    """Ordered columns for one render, with index/field helpers."""

    columns: tuple[ColumnSpec, ...]

    def __len__(self) -> int:
        return len(self.columns)

    def __iter__(self) -> Iterator[ColumnSpec]:
        return iter(self.columns)

    def __getitem__(self, col: int) -> ColumnSpec:
        return self.columns[col]

    @property
    def fields(self) -> list[str]:
        return [spec.field for spec in self.columns]

    @property
    def headers(self) -> list[str]:
        return [spec.title for spec in self.columns]

    @property
    def readonly_columns(self) -> list[int]:
        return [col for col, spec in enumerate(self.columns) if not spec.editable]

    @property
    def editable_fields(self) -> frozenset[str]:
        return frozenset(spec.field for spec in self.columns if spec.editable)

    def field_at(self, col: int) -> str | None:
        """Field shown in a column, or None for an out-of-range index."""
        if 0 <= col < len(self.columns):
            return self.columns[col].field
        return None

    def column_of(self, field_name: str) -> int | None:
        for col, spec in enumerate(self.columns):
            if spec.field == field_name:
                return col
        return None

    def is_editable(self, col: int) -> bool:
        return 0 <= col < len(self.columns) and self.columns[col].editable


def _visible_fields(context: ViewContext) -> tuple[str, ...]:
    if isinstance(context, ProviderView):
        if context.level == 1:
            return SHEET_FIELDS[:PROVIDER_LEVEL1_VISIBLE]
        return SHEET_FIELDS
    if context.role is Role.OFFICE_STAFF:
        return OFFICE_VISIBLE_FIELDS
    if context.condensed:
        return tuple(f for f in SHEET_FIELDS if f not in CONDENSED_HIDDEN_FIELDS)
    return SHEET_FIELDS


def _role_allows(context: ViewContext, field_name: str) -> bool:
    """Role-specific restriction, before permission and locks are applied."""
    if field_name in DERIVED_FIELDS:
        return False
    if isinstance(context, ProviderView):
        return context.level == 1 and field_name in PROVIDER_LEVEL1_EDITABLE
    if not isinstance(context, StaffView):
        raise TypeError(f"Unknown view context: {context!r}")
    role = context.role
    if role in FULL_ACCESS_ROLES:
        return True
    if role in VIEW_ONLY_ROLES:
        return False
    if role is Role.OFFICIAL_STAFF:
        return SHEET_FIELDS.index(field_name) < SCHEDULING_EDIT_COUNT
    if role is Role.OFFICE_STAFF:
        return field_name in OFFICE_EDITABLE_FIELDS
    return False


def project_columns(
    context: ViewContext,
    can_edit: bool,
    lock_state: ColumnLockState | None = None,
) -> ColumnProjection:
    """Project the sheet's fields into grid columns for one viewer.

    Pure: call again on every render since role and locks can change.

    Args:
        context: Viewer's role/mode variant
        can_edit: Global edit permission for this sheet
        lock_state: Column locks for the sheet's scope (None = nothing locked)

    Returns:
        Ordered ColumnProjection
    """
    columns = []
    for field_name in _visible_fields(context):
        locked = lock_state is not None and lock_state.is_locked(field_name)
        editable = can_edit and not locked and _role_allows(context, field_name)
        columns.append(ColumnSpec(field_name, FIELD_TITLES[field_name], editable))
    return ColumnProjection(tuple(columns))

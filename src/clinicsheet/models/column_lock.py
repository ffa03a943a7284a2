"""Column lock state for a clinic's provider sheets."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from .constants import LOCK_KEYS, SheetKind


@dataclass(frozen=True)
class LockScope:
    """Record a lock state applies to: one clinic, optionally one provider."""

    clinic_id: str
    owner_id: str | None = None
    sheet_kind: SheetKind = SheetKind.PROVIDERS


@dataclass(frozen=True)
class ColumnLockState:
    """One boolean per lockable column plus an optional comment per column.

    Keys are sheet field names. A missing key means unlocked, so a freshly
    created record is simply an empty state.
    """

    scope: LockScope
    locked: frozenset[str] = frozenset()
    comments: dict[str, str] = field(default_factory=dict)

    def is_locked(self, field_name: str) -> bool:
        return field_name in self.locked

    def comment_for(self, field_name: str) -> str | None:
        return self.comments.get(field_name)

    def with_lock(self, field_name: str, locked: bool, comment: str | None = None) -> ColumnLockState:
        """Return a copy with one column's flag (and comment) changed."""
        if field_name not in LOCK_KEYS:
            raise KeyError(f"{field_name!r} is not a lockable column")
        names = set(self.locked)
        comments = dict(self.comments)
        if locked:
            names.add(field_name)
        else:
            names.discard(field_name)
        if comment is not None:
            if comment:
                comments[field_name] = comment
            else:
                comments.pop(field_name, None)
        return replace(self, locked=frozenset(names), comments=comments)

    def to_record(self) -> dict[str, object]:
        """Serialize to the lock table's column layout."""
        record: dict[str, object] = {}
        for field_name, key in LOCK_KEYS.items():
            record[key] = field_name in self.locked
            record[f"{key}_comment"] = self.comments.get(field_name)
        return record

    @classmethod
    def from_record(cls, scope: LockScope, record: dict[str, object]) -> ColumnLockState:
        locked = frozenset(name for name, key in LOCK_KEYS.items() if record.get(key))
        comments = {
            name: str(record[f"{key}_comment"])
            for name, key in LOCK_KEYS.items()
            if record.get(f"{key}_comment")
        }
        return cls(scope=scope, locked=locked, comments=comments)


def unlocked(scope: LockScope) -> ColumnLockState:
    """Default state for a scope with no stored record."""
    return ColumnLockState(scope=scope)

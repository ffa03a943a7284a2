"""Mutable row builder for accumulating changes to SheetRow.

MutableRowBuilder provides a mutable interface for building changes to
a SheetRow. Changes are accumulated and then frozen into an immutable
SheetRow via the freeze() method.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from .sheet_row import ROW_FIELD_NAMES

if TYPE_CHECKING:
    from .sheet_row import SheetRow

# None is a legitimate field value ("cleared"), so "not set" needs its own marker
UNSET: Any = object()


@dataclass
class MutableRowBuilder:
    """Accumulator for building changes to a SheetRow.

    Values are kept in a dict because clearing a cell (setting None) is a
    real change, distinct from leaving the field untouched.

    Usage:
        builder = MutableRowBuilder()
        builder.set_field("patient_insurance", "Acme")
        builder.set_field("patient_copay", None)
        new_row = builder.freeze(base_row)
    """

    changes: dict[str, Any] = field(default_factory=dict)
    new_id: str | None = None

    def has_changes(self) -> bool:
        """Check if any fields have been set.

        Returns:
            True if at least one field (or the id) was set.
        """
        return bool(self.changes) or self.new_id is not None

    def freeze(self, base: SheetRow) -> SheetRow:
        """Apply accumulated changes to base row and return new immutable row.

        Args:
            base: The base SheetRow to apply changes to.

        Returns:
            New SheetRow with changes applied, or base itself if nothing was set.
        """
        if not self.has_changes():
            return base

        kwargs = dict(self.changes)
        if self.new_id is not None:
            kwargs["id"] = self.new_id
        return replace(base, **kwargs)

    def get_field(self, field_name: str, default: Any = UNSET) -> Any:
        """Get a pending field value by name.

        Args:
            field_name: A SheetRow field name.
            default: Returned when the field has not been set.

        Returns:
            The pending value, or default (UNSET unless given).
        """
        return self.changes.get(field_name, default)

    def set_field(self, field_name: str, value: Any) -> None:
        """Set a field value by name.

        Raises:
            AttributeError: If field_name is not a SheetRow field.
        """
        if field_name not in ROW_FIELD_NAMES or field_name == "id":
            raise AttributeError(f"SheetRow has no editable field {field_name!r}")
        self.changes[field_name] = value

    def update(self, values: dict[str, Any]) -> None:
        for name, value in values.items():
            self.set_field(name, value)

    def copy(self) -> MutableRowBuilder:
        return MutableRowBuilder(changes=dict(self.changes), new_id=self.new_id)

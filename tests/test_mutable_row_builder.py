"""Unit tests for MutableRowBuilder."""

import pytest

from clinicsheet.models.mutable_row_builder import UNSET, MutableRowBuilder
from clinicsheet.models.sheet_row import SheetRow


class TestMutableRowBuilderBasics:
    """Basic tests for MutableRowBuilder."""

    def test_empty_builder(self):
        """Empty builder has no changes."""
        builder = MutableRowBuilder()
        assert builder.has_changes() is False

    def test_set_field(self):
        builder = MutableRowBuilder()
        builder.set_field("patient_insurance", "Acme")
        assert builder.has_changes() is True
        assert builder.get_field("patient_insurance") == "Acme"

    def test_setting_none_is_a_change(self):
        """Clearing a cell is a real change, unlike an unset field."""
        builder = MutableRowBuilder()
        builder.set_field("notes", None)
        assert builder.has_changes() is True
        assert builder.get_field("notes") is None
        assert builder.get_field("patient_copay") is UNSET

    def test_new_id_is_a_change(self):
        builder = MutableRowBuilder(new_id="new-1-1-1")
        assert builder.has_changes() is True

    def test_unknown_field_rejected(self):
        builder = MutableRowBuilder()
        with pytest.raises(AttributeError):
            builder.set_field("diagnosis", "x")

    def test_id_not_settable_as_field(self):
        builder = MutableRowBuilder()
        with pytest.raises(AttributeError):
            builder.set_field("id", "other")


class TestMutableRowBuilderFreeze:
    """Tests for MutableRowBuilder.freeze()."""

    def test_freeze_applies_changes(self):
        base = SheetRow(id="r1", notes="old", patient_copay="20")
        builder = MutableRowBuilder()
        builder.update({"notes": "new", "patient_copay": None})

        result = builder.freeze(base)

        assert result.notes == "new"
        assert result.patient_copay is None
        assert result.id == "r1"
        assert base.notes == "old"  # base untouched

    def test_freeze_without_changes_returns_base(self):
        base = SheetRow(id="r1")
        assert MutableRowBuilder().freeze(base) is base

    def test_freeze_applies_new_id(self):
        base = SheetRow(id="empty-p-0")
        builder = MutableRowBuilder(new_id="new-1-1-1")
        builder.set_field("notes", "x")
        assert builder.freeze(base).id == "new-1-1-1"

    def test_copy_is_independent(self):
        builder = MutableRowBuilder()
        builder.set_field("notes", "a")
        clone = builder.copy()
        clone.set_field("notes", "b")
        assert builder.get_field("notes") == "a"

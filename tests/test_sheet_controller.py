"""Integration tests for SheetController over the in-memory backend."""

from dataclasses import replace
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from clinicsheet.data.backend import InMemoryBackend, SheetBackendError
from clinicsheet.data.reconciler import CellEdit, SyncState
from clinicsheet.data.sheet_controller import NoSheetOpenError, SheetController
from clinicsheet.models.annotation import CommentState
from clinicsheet.models.constants import Role
from clinicsheet.models.sheet_row import SheetPeriod, SheetRow, is_local_id
from clinicsheet.models.view_context import StaffView
from clinicsheet.settings import SheetSettings

PERIOD = SheetPeriod(3, 2025)
MIN_ROWS = 10


class OfflineBackend(InMemoryBackend):
    async def replace_rows(self, owner_id, period, rows):
        raise SheetBackendError("save rows", RuntimeError("offline"))


@pytest.fixture
def settings():
    return SheetSettings(clinic_id="c1", user_id="u1", min_rows=MIN_ROWS, debounce_ms=10)


@pytest.fixture
def backend(patients, billing_codes):
    return InMemoryBackend(clinic_id="c1", patients=patients, billing_codes=billing_codes)


@pytest.fixture
def make_controller(settings, minter, now):
    async def _make(backend, owner_id="prov-1", **kwargs):
        controller = SheetController(backend, settings, StaffView(Role.ADMIN), minter=minter, now=now, **kwargs)
        await controller.load_reference_data()
        await controller.open_sheet(owner_id, PERIOD)
        return controller

    return _make


@pytest_asyncio.fixture
async def controller(make_controller, backend):
    controller = await make_controller(backend)
    yield controller
    await controller.flush()


@pytest_asyncio.fixture
async def seeded(make_controller, backend):
    await backend.replace_rows("prov-1", PERIOD, [SheetRow(id=i, notes=i) for i in ("a", "b", "c")])
    controller = await make_controller(backend)
    yield controller
    await controller.flush()


def col(controller, field_name):
    return controller.projection().column_of(field_name)


class TestOpenSheet:
    @pytest.mark.asyncio
    async def test_new_sheet_is_padded(self, controller):
        rows = controller.rows()
        assert len(rows) == MIN_ROWS
        assert all(r.is_placeholder for r in rows)
        assert controller.owner_id == "prov-1"
        assert controller.period == PERIOD

    @pytest.mark.asyncio
    async def test_row_ops_require_open_sheet(self, settings, backend):
        controller = SheetController(backend, settings, StaffView(Role.ADMIN))
        assert controller.rows() == []
        with pytest.raises(NoSheetOpenError):
            controller.handle_edits([CellEdit(0, 0, None, "x")])

    @pytest.mark.asyncio
    async def test_switching_owner_flushes_previous(self, controller, backend):
        controller.handle_edits([CellEdit(0, col(controller, "notes"), None, "first")])

        await controller.open_sheet("prov-2", PERIOD)

        assert backend.stored_rows("prov-1", PERIOD)[0].notes == "first"
        assert all(r.is_placeholder for r in controller.rows())


class TestEdits:
    @pytest.mark.asyncio
    async def test_edit_autofills_and_saves(self, controller, backend):
        controller.handle_edits([CellEdit(0, col(controller, "patient_id"), None, "A123 - Jane Doe")])

        shown = controller.rows()[0]
        assert shown.patient_insurance == "Acme Health"
        assert shown.is_pending

        await controller.flush()

        stored = backend.stored_rows("prov-1", PERIOD)
        assert len(stored) == 1
        assert stored[0].patient_first_name == "Jane"
        assert controller.rows()[0].id == stored[0].id
        assert not is_local_id(stored[0].id)
        assert controller.reconciler.state("prov-1") is SyncState.RECONCILED

    @pytest.mark.asyncio
    async def test_zero_highlight_follows_row_to_server_id(self, controller, settings):
        controller.handle_edits([CellEdit(0, col(controller, "collected_from_patient"), None, "00")])
        pending_id = controller.rows()[0].id
        assert controller.annotations.highlight_color(pending_id, "collected_from_patient") == settings.zero_marker_color

        await controller.flush()

        server_id = controller.rows()[0].id
        assert server_id != pending_id
        assert controller.annotations.highlight_color(server_id, "collected_from_patient") == settings.zero_marker_color
        assert controller.annotations.get(pending_id, "collected_from_patient") is None

    @pytest.mark.asyncio
    async def test_refetch_does_not_revert_pending_edit(self, controller):
        controller.handle_edits([CellEdit(2, col(controller, "notes"), None, "typed")])

        await controller.refresh()

        assert controller.rows()[2].notes == "typed"

    @pytest.mark.asyncio
    async def test_column_totals(self, controller):
        controller.handle_edits(
            [
                CellEdit(0, col(controller, "insurance_payment"), None, "40"),
                CellEdit(1, col(controller, "insurance_payment"), None, "2.5"),
            ]
        )
        assert controller.column_totals()["insurance_payment"] == "42.5"
        assert controller.column_totals()["total"] == "42.5"

    @pytest.mark.asyncio
    async def test_save_failure_reported(self, make_controller, patients):
        on_error = MagicMock()
        controller = await make_controller(OfflineBackend(clinic_id="c1", patients=patients), on_error=on_error)

        controller.handle_edits([CellEdit(0, col(controller, "notes"), None, "x")])
        await controller.flush()

        assert "Could not save" in on_error.call_args.args[0]
        assert controller.reconciler.state("prov-1") is SyncState.DIRTY_LOCAL
        assert controller.rows()[0].notes == "x"

    @pytest.mark.asyncio
    async def test_retyped_value_lets_refetch_through(self, seeded, backend):
        notes = col(seeded, "notes")
        seeded.handle_edits([CellEdit(0, notes, "a", "x")])
        await seeded.flush()

        result = seeded.handle_edits([CellEdit(0, notes, "x", "x")])
        await seeded.flush()

        assert result.save_request is None
        assert seeded.reconciler.state("prov-1") is SyncState.RECONCILED

        stored = backend.stored_rows("prov-1", PERIOD)
        await backend.replace_rows("prov-1", PERIOD, [replace(stored[0], notes="changed"), *stored[1:]])
        await seeded.refresh()

        assert seeded.rows()[0].notes == "changed"
        assert seeded.reconciler.state("prov-1") is SyncState.CLEAN

    @pytest.mark.asyncio
    async def test_blank_currency_edit_creates_nothing(self, controller, backend):
        result = controller.handle_edits([CellEdit(0, col(controller, "insurance_payment"), None, "")])
        await controller.flush()

        assert controller.rows()[0].is_placeholder
        assert result.mutation_calls == []
        assert backend.stored_rows("prov-1", PERIOD) == []


class TestStructuralChanges:
    @pytest.mark.asyncio
    async def test_move_rows_by_identity(self, seeded, backend):
        assert seeded.move_rows(["a"], 2) is True
        assert [r.id for r in seeded.rows()[:3]] == ["b", "c", "a"]

        # Repeated drag event for the same move is a no-op
        assert seeded.move_rows(["a"], 2) is False

        await seeded.flush()
        assert [r.id for r in backend.stored_rows("prov-1", PERIOD)] == ["b", "c", "a"]

    @pytest.mark.asyncio
    async def test_move_away_and_back_settles(self, seeded, backend):
        seeded.handle_edits([CellEdit(0, col(seeded, "notes"), "a", "x")])
        await seeded.flush()

        seeded.move_rows(["a"], 2)
        seeded.move_rows(["a"], 0)
        assert seeded.reconciler.state("prov-1") is SyncState.DIRTY_LOCAL
        await seeded.flush()

        assert seeded.reconciler.state("prov-1") is SyncState.RECONCILED
        stored = backend.stored_rows("prov-1", PERIOD)
        await backend.replace_rows("prov-1", PERIOD, [replace(stored[0], notes="changed"), *stored[1:]])
        await seeded.refresh()
        assert seeded.rows()[0].notes == "changed"

    @pytest.mark.asyncio
    async def test_delete_row_saves_immediately(self, seeded, backend):
        seeded.set_comment(0, "notes", "gone soon")

        assert seeded.delete_row(0) is True
        assert seeded.rows()[0].id == "b"
        assert len(seeded.rows()) == MIN_ROWS
        assert seeded.annotations.for_row("a") == []

        await seeded.flush()
        assert [r.id for r in backend.stored_rows("prov-1", PERIOD)] == ["b", "c"]

    @pytest.mark.asyncio
    async def test_delete_placeholder_refused(self, seeded):
        assert seeded.delete_row(5) is False
        assert len(seeded.rows()) == MIN_ROWS

    @pytest.mark.asyncio
    async def test_insert_row(self, seeded):
        new_row = seeded.insert_row(1, above=True)
        ids = [r.id for r in seeded.rows()[:4]]
        assert ids == ["a", new_row.id, "b", "c"]
        assert new_row.is_pending


class TestAnnotationsAndLocks:
    @pytest.mark.asyncio
    async def test_highlight_and_comment_by_index(self, seeded, settings):
        assert seeded.toggle_highlight(1, "notes") is True
        assert seeded.annotations.highlight_color("b", "notes") == settings.user_highlight_color

        seeded.set_comment(1, "notes", "Call payer")
        seeded.resolve_comment(1, "notes")
        assert seeded.annotations.comment_state("b", "notes") is CommentState.RESOLVED

    @pytest.mark.asyncio
    async def test_locked_column_rejects_edits(self, controller):
        claim_col = col(controller, "claim_status")

        state = await controller.toggle_lock("claim_status", "Month closed")

        assert state.is_locked("claim_status")
        assert controller.projection().is_editable(claim_col) is False
        result = controller.handle_edits([CellEdit(0, claim_col, None, "Paid")])
        assert result.mutation_calls == []
        assert len(result.rejected) == 1

        await controller.toggle_lock("claim_status")
        assert controller.projection().is_editable(claim_col) is True

"""Tests for PersistenceAdapter (debounced saves and id reconciliation)."""

import asyncio
from unittest.mock import MagicMock

import pytest

from clinicsheet.data.backend import InMemoryBackend, SheetBackendError
from clinicsheet.data.persistence import PersistenceAdapter, rows_to_persist
from clinicsheet.data.row_store import RowStore
from clinicsheet.models.sheet_row import SheetPeriod, SheetRow

PERIOD = SheetPeriod(3, 2025)
DELAY = 0.01


class RecordingBackend(InMemoryBackend):
    """InMemoryBackend that records replace_rows calls and can fail or block."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls = []
        self.fail_owners = set()
        self.gate = None

    async def replace_rows(self, owner_id, period, rows):
        self.calls.append((owner_id, [r.id for r in rows]))
        if self.gate is not None:
            await self.gate.wait()
        if owner_id in self.fail_owners:
            raise SheetBackendError("save rows", RuntimeError("offline"))
        return await super().replace_rows(owner_id, period, rows)


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def store():
    return RowStore(min_rows=4)


@pytest.fixture
def make_adapter(backend, store):
    def _make(**kwargs):
        kwargs.setdefault("delay", DELAY)
        return PersistenceAdapter(backend, store, **kwargs)

    return _make


def test_rows_to_persist_drops_untouched_placeholders():
    rows = [SheetRow(id="a", notes="x"), SheetRow(id="empty-p-0"), SheetRow(id="empty-p-1", notes="typed")]
    assert [r.id for r in rows_to_persist(rows)] == ["a", "empty-p-1"]


class TestDebounce:
    @pytest.mark.asyncio
    async def test_save_returns_immediately(self, make_adapter, backend):
        adapter = make_adapter()
        future = adapter.save("p", [SheetRow(id="a", notes="x")], PERIOD)
        assert not future.done()
        assert backend.calls == []
        assert adapter.has_pending("p")
        assert await future is True

    @pytest.mark.asyncio
    async def test_rapid_saves_coalesce(self, make_adapter, backend):
        adapter = make_adapter()
        futures = [adapter.save("p", [SheetRow(id="a", notes=str(n))], PERIOD, n) for n in range(5)]

        results = await asyncio.gather(*futures)

        assert results == [True] * 5
        assert len(backend.calls) == 1
        assert backend.stored_rows("p", PERIOD)[0].notes == "4"

    @pytest.mark.asyncio
    async def test_flush_now_skips_the_timer(self, make_adapter, backend):
        adapter = make_adapter(delay=60)
        adapter.save("p", [SheetRow(id="a", notes="x")], PERIOD)

        await adapter.flush_now()

        assert len(backend.calls) == 1
        assert adapter.has_pending() is False

    @pytest.mark.asyncio
    async def test_unchanged_sequence_not_rewritten(self, make_adapter, backend):
        adapter = make_adapter()
        rows = [SheetRow(id="a", notes="x")]
        await adapter.save("p", rows, PERIOD)
        assert await adapter.save("p", rows, PERIOD) is True
        assert len(backend.calls) == 1

    @pytest.mark.asyncio
    async def test_skipped_save_still_reports_saved(self, make_adapter, backend):
        on_saved = MagicMock()
        started = MagicMock()
        adapter = make_adapter(on_saved=on_saved, on_save_started=started)
        rows = [SheetRow(id="a", notes="x")]
        await adapter.save("p", rows, PERIOD, 1)

        assert await adapter.save("p", rows, PERIOD, 2) is True

        assert started.call_count == 1
        on_saved.assert_called_with("p", 2, {})

    @pytest.mark.asyncio
    async def test_owner_lock_released_after_write(self, make_adapter):
        adapter = make_adapter()
        await adapter.save_now("p", [SheetRow(id="a", notes="x")], PERIOD)
        assert adapter._locks == {}
        assert adapter._lock_users == {}

    @pytest.mark.asyncio
    async def test_discard(self, make_adapter, backend):
        adapter = make_adapter()
        future = adapter.save("p", [SheetRow(id="a")], PERIOD)
        adapter.discard("p")
        assert await future is False
        await asyncio.sleep(DELAY * 3)
        assert backend.calls == []


class TestIdReconciliation:
    @pytest.mark.asyncio
    async def test_server_ids_applied_by_local_id(self, make_adapter, backend, store):
        rows = [SheetRow(id="srv-a", notes="a"), SheetRow(id="new-1-1-1", notes="b")]
        store.load("p", rows)
        on_saved = MagicMock()
        adapter = make_adapter(on_saved=on_saved)

        await adapter.save_now("p", store.rows("p"), PERIOD, generation=7)

        stored = store.rows("p")
        assert stored[0].id == "srv-a"
        assert stored[1].notes == "b"
        assert not stored[1].is_pending
        owner, generation, applied = on_saved.call_args.args
        assert (owner, generation) == ("p", 7)
        assert applied == {"new-1-1-1": stored[1].id}

    @pytest.mark.asyncio
    async def test_placeholders_not_saved(self, make_adapter, backend, store):
        store.load("p", [SheetRow(id="new-1-1-1", notes="b")])
        adapter = make_adapter()

        await adapter.save_now("p", store.rows("p"), PERIOD)

        assert backend.calls == [("p", ["new-1-1-1"])]

    @pytest.mark.asyncio
    async def test_save_queued_mid_write_does_not_duplicate_rows(self, make_adapter, backend, store):
        """A save queued while the first is in flight must reuse the server id."""
        first = [SheetRow(id="new-1-1-1", notes="v1")]
        store.load("p", first)
        adapter = make_adapter()
        backend.gate = asyncio.Event()

        f1 = adapter.save("p", first, PERIOD, 1)
        await asyncio.sleep(DELAY * 5)  # first write now blocked in the backend
        f2 = adapter.save("p", [SheetRow(id="new-1-1-1", notes="v2")], PERIOD, 2)
        backend.gate.set()

        assert await f1 is True
        assert await f2 is True
        assert len(backend.calls) == 2
        assert "new-1-1-1" not in backend.calls[1][1]
        stored = backend.stored_rows("p", PERIOD)
        assert len(stored) == 1
        assert stored[0].notes == "v2"


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_reported_and_rows_kept(self, make_adapter, backend, store):
        backend.fail_owners.add("p")
        store.load("p", [SheetRow(id="new-1-1-1", notes="b")])
        on_error = MagicMock()
        on_saved = MagicMock()
        adapter = make_adapter(on_error=on_error, on_saved=on_saved)

        ok = await adapter.save_now("p", store.rows("p"), PERIOD)

        assert ok is False
        assert on_error.call_args.args[0] == "p"
        assert isinstance(on_error.call_args.args[1], SheetBackendError)
        on_saved.assert_not_called()
        assert store.rows("p")[0].id == "new-1-1-1"

    @pytest.mark.asyncio
    async def test_failure_isolated_per_owner(self, make_adapter, backend):
        backend.fail_owners.add("p1")
        adapter = make_adapter(on_error=MagicMock())

        f1 = adapter.save("p1", [SheetRow(id="a", notes="1")], PERIOD)
        f2 = adapter.save("p2", [SheetRow(id="b", notes="2")], PERIOD)

        assert await f1 is False
        assert await f2 is True
        assert backend.stored_rows("p2", PERIOD)[0].notes == "2"

    @pytest.mark.asyncio
    async def test_retry_after_failure_writes_again(self, make_adapter, backend):
        backend.fail_owners.add("p")
        adapter = make_adapter(on_error=MagicMock())
        rows = [SheetRow(id="a", notes="x")]
        assert await adapter.save("p", rows, PERIOD) is False

        backend.fail_owners.clear()
        assert await adapter.save("p", rows, PERIOD) is True
        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_save_started_callback(self, make_adapter):
        started = MagicMock()
        adapter = make_adapter(on_save_started=started)
        await adapter.save("p", [SheetRow(id="a", notes="x")], PERIOD, 3)
        started.assert_called_once_with("p", 3)

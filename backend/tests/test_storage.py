"""
Tests for JSON snapshot storage and the debounced flusher.
"""

import asyncio
import json

import pytest

from civicpulse.core.exceptions import StorageError
from civicpulse.storage import DebouncedFlusher, JsonFileStorage


class RecordingStorage:
    """Storage double that records saves and can be told to fail."""

    def __init__(self, fail: bool = False):
        self.path = "memory://records.json"
        self.saves = []
        self.fail = fail

    async def save_all(self, records):
        if self.fail:
            raise StorageError("disk full", path=self.path, operation="save")
        self.saves.append(records)


class SlowStorage(RecordingStorage):
    """Storage double whose writes take a while to complete."""

    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay

    async def save_all(self, records):
        await asyncio.sleep(self.delay)
        await super().save_all(records)


class TestJsonFileStorage:

    @pytest.mark.asyncio
    async def test_missing_file_loads_none(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "absent.json")
        assert await storage.load_all() is None

    @pytest.mark.asyncio
    async def test_empty_file_loads_none(self, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text("   \n", encoding="utf-8")
        assert await JsonFileStorage(path).load_all() is None

    @pytest.mark.asyncio
    async def test_save_then_load(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "nested" / "dir" / "data.json")
        records = [{"id": "inc_1", "description": "Überschwemmung"}]

        await storage.save_all(records)

        assert await storage.load_all() == records
        assert json.loads(storage.path.read_text(encoding="utf-8")) == records
        assert not (storage.path.parent / ".data.json.tmp").exists()

    @pytest.mark.asyncio
    async def test_save_replaces_previous_snapshot(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "data.json")
        await storage.save_all([1, 2, 3])
        await storage.save_all({"a": []})
        assert await storage.load_all() == {"a": []}

    @pytest.mark.asyncio
    async def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "corrupt.json"
        path.write_text("[{", encoding="utf-8")
        with pytest.raises(StorageError) as exc_info:
            await JsonFileStorage(path).load_all()
        assert exc_info.value.details["operation"] == "load"

    @pytest.mark.asyncio
    async def test_unserializable_snapshot_raises(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "data.json")
        with pytest.raises(StorageError):
            await storage.save_all({"bad": object()})
        assert not storage.path.exists()


class TestDebouncedFlusher:

    @pytest.mark.asyncio
    async def test_burst_of_mutations_is_one_write(self):
        state = {"value": 0}
        storage = RecordingStorage()
        flusher = DebouncedFlusher("counter", lambda: dict(state), storage, delay=0.05)
        await flusher.start()
        try:
            for i in range(1, 6):
                state["value"] = i
                flusher.mark_dirty()
            await asyncio.sleep(0.25)
        finally:
            await flusher.shutdown()

        assert storage.saves == [{"value": 5}]
        assert flusher.get_metrics()["mutations"] == 5
        assert flusher.get_metrics()["flushes"] == 1

    @pytest.mark.asyncio
    async def test_flush_without_changes_writes_nothing(self):
        storage = RecordingStorage()
        flusher = DebouncedFlusher("noop", lambda: [], storage, delay=0.01)
        assert await flusher.flush()
        assert storage.saves == []

    @pytest.mark.asyncio
    async def test_failed_flush_is_swallowed_and_retried(self):
        storage = RecordingStorage(fail=True)
        flusher = DebouncedFlusher("flaky", lambda: ["record"], storage, delay=0.01)
        flusher.mark_dirty()

        assert await flusher.flush() is False
        assert flusher.is_dirty
        assert flusher.get_metrics()["flush_failures"] == 1

        storage.fail = False
        assert await flusher.flush() is True
        assert not flusher.is_dirty
        assert storage.saves == [["record"]]

    @pytest.mark.asyncio
    async def test_shutdown_flushes_pending_changes(self):
        storage = RecordingStorage()
        flusher = DebouncedFlusher("pending", lambda: {"k": "v"}, storage, delay=10)
        await flusher.start()
        flusher.mark_dirty()
        await flusher.shutdown()

        assert storage.saves == [{"k": "v"}]
        assert not flusher.is_running

    @pytest.mark.asyncio
    async def test_changes_before_start_are_flushed_once_started(self):
        storage = RecordingStorage()
        flusher = DebouncedFlusher("early", lambda: [1], storage, delay=0.01)
        flusher.mark_dirty()
        await flusher.start()
        try:
            await asyncio.sleep(0.1)
            assert storage.saves == [[1]]
        finally:
            await flusher.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_write_in_flight(self):
        storage = SlowStorage(delay=0.3)
        flusher = DebouncedFlusher("slow", lambda: {"k": "v"}, storage, delay=0.01)
        await flusher.start()
        flusher.mark_dirty()
        await asyncio.sleep(0.1)

        await flusher.shutdown()

        assert storage.saves == [{"k": "v"}]
        assert not flusher.is_dirty

    @pytest.mark.asyncio
    async def test_changes_during_write_in_flight_are_saved_on_shutdown(self):
        state = {"value": 1}
        storage = SlowStorage(delay=0.3)
        flusher = DebouncedFlusher("slow", lambda: dict(state), storage, delay=0.01)
        await flusher.start()
        flusher.mark_dirty()
        await asyncio.sleep(0.1)

        state["value"] = 2
        flusher.mark_dirty()
        await flusher.shutdown()

        assert storage.saves == [{"value": 1}, {"value": 2}]

    @pytest.mark.asyncio
    async def test_cancelled_flush_stays_dirty(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "records.json")
        slow = SlowStorage(delay=1)
        flusher = DebouncedFlusher("cancelled", lambda: ["record"], slow, delay=0.01)
        flusher.mark_dirty()

        task = asyncio.create_task(flusher.flush())
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert flusher.is_dirty
        assert slow.saves == []

        flusher.storage = storage
        assert await flusher.flush() is True
        assert json.loads(storage.path.read_text(encoding="utf-8")) == ["record"]

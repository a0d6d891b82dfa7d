"""
Debounced background persistence.

Each store owns one ``DebouncedFlusher``. Mutations call ``mark_dirty()``; a
background task waits for the debounce window to pass and then writes a single
snapshot, so a burst of writes costs one disk write. In-memory state stays
authoritative: a failed write is logged and retried on the next flush, and a
crash between a mutation and its flush loses that mutation.
"""

import asyncio
from typing import Any, Callable, Optional

from civicpulse.core.logging_config import get_logger
from civicpulse.storage.json_store import JsonFileStorage


class DebouncedFlusher:
    """
    Coalescing snapshot writer for one collection.

    Args:
        name: Collection name used in logs
        snapshot: Callable returning the JSON-compatible collection snapshot
        storage: Destination storage
        delay: Debounce window in seconds
    """

    def __init__(
        self,
        name: str,
        snapshot: Callable[[], Any],
        storage: JsonFileStorage,
        delay: float = 0.35,
    ):
        self.name = name
        self.snapshot = snapshot
        self.storage = storage
        self.delay = delay

        self.logger = get_logger(f"{__name__}.{name}", {"store": name})

        self._dirty = False
        self._wakeup = asyncio.Event()
        self._write_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._is_running = False

        self._metrics = {
            "flushes": 0,
            "flush_failures": 0,
            "mutations": 0,
        }

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def is_running(self) -> bool:
        return self._is_running

    def get_metrics(self):
        return dict(self._metrics)

    def mark_dirty(self) -> None:
        """Record that the collection changed and schedule a flush."""
        self._dirty = True
        self._metrics["mutations"] += 1
        if self._is_running:
            self._wakeup.set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._is_running:
            return
        self._is_running = True
        self._task = asyncio.create_task(self._run(), name=f"flusher_{self.name}")
        if self._dirty:
            self._wakeup.set()
        self.logger.debug(f"Flusher for {self.name} started (debounce {self.delay}s)")

    async def shutdown(self) -> None:
        """Stop the background task and write any pending changes."""
        if self._is_running:
            self._is_running = False
            if self._task:
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
                self._task = None
        await self.flush()
        self.logger.info(f"Flusher for {self.name} stopped: {self._metrics}")

    async def _run(self) -> None:
        while self._is_running:
            await self._wakeup.wait()
            await asyncio.sleep(self.delay)
            # Mutations that land before this point are covered by the snapshot below.
            self._wakeup.clear()
            # A cancelled loop leaves the write running; shutdown's flush waits on it.
            await asyncio.shield(self.flush())

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def flush(self) -> bool:
        """
        Write the current snapshot if there are unsaved changes.

        Writes are serialized, so a flush started while another is in
        flight waits for it and then saves whatever changed meanwhile.

        Returns:
            True if the collection is clean afterwards
        """
        async with self._write_lock:
            if not self._dirty:
                return True

            self._dirty = False
            data = self.snapshot()
            try:
                await self.storage.save_all(data)
            except asyncio.CancelledError:
                self._dirty = True
                raise
            except Exception:
                self._dirty = True
                self._metrics["flush_failures"] += 1
                self.logger.exception(f"Flush of {self.name} to {self.storage.path} failed")
                return False

            self._metrics["flushes"] += 1
            self.logger.debug(f"Flushed {self.name} to {self.storage.path}")
            return True

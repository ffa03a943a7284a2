"""Drive an asyncio event loop from the tkinter main loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import tkinter as tk

logger = logging.getLogger(__name__)

# Pump interval in milliseconds
DEFAULT_POLL_INTERVAL_MS = 20


class TkAsyncioBridge:
    """Runs ready asyncio callbacks on a tk after() timer.

    Uses tkinter's after() for scheduling so every coroutine step runs on
    the tk main thread; event handlers and coroutines therefore never run
    concurrently. Blocking work must go through asyncio.to_thread().

    Usage:
        bridge = TkAsyncioBridge()
        bridge.start(root)
        bridge.spawn(controller.open_sheet("prov-1", period), on_done=refresh)
        root.mainloop()
        bridge.close()
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None, interval_ms: int = DEFAULT_POLL_INTERVAL_MS):
        """Initialize the bridge.

        Args:
            loop: Loop to drive (a new one is created if omitted)
            interval_ms: Delay between pumps
        """
        self._loop = loop or asyncio.new_event_loop()
        self._interval_ms = interval_ms
        self._after_id: str | None = None
        self._active = False
        self._tk_root: tk.Misc | None = None

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def is_active(self) -> bool:
        """Whether pumping is currently active."""
        return self._active

    def _schedule_pump(self) -> None:
        if not self._active or not self._tk_root:
            return
        self._after_id = self._tk_root.after(self._interval_ms, self._pump)

    def start(self, tk_root: tk.Misc) -> None:
        """Start pumping the loop.

        Args:
            tk_root: Tkinter widget used for after() scheduling
        """
        if self._active:
            return
        self._tk_root = tk_root
        self._active = True
        self._schedule_pump()

    def stop(self) -> None:
        """Stop pumping (the loop itself stays usable)."""
        self._active = False
        if self._after_id and self._tk_root:
            try:
                self._tk_root.after_cancel(self._after_id)
            except Exception:
                logger.debug("after_cancel failed; widget already destroyed")
        self._after_id = None

    def pump(self) -> None:
        """Run every callback that is ready right now, then return."""
        self._loop.call_soon(self._loop.stop)
        self._loop.run_forever()

    def _pump(self) -> None:
        if not self._active:
            return
        try:
            self.pump()
        finally:
            self._schedule_pump()

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        on_done: Callable[[Any], None] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
    ) -> asyncio.Task:
        """Schedule a coroutine; callbacks run on the tk thread when it finishes."""
        task = self._loop.create_task(coro)

        def _finished(done: asyncio.Task) -> None:
            if done.cancelled():
                return
            exc = done.exception()
            if exc is not None:
                logger.error("Background task failed", exc_info=exc)
                if on_error:
                    on_error(exc)
            elif on_done:
                on_done(done.result())

        task.add_done_callback(_finished)
        return task

    def run_until_complete(self, coro: Coroutine[Any, Any, Any]) -> Any:
        """Block until a coroutine finishes (startup and shutdown only)."""
        return self._loop.run_until_complete(coro)

    def close(self) -> None:
        """Stop pumping, cancel leftover tasks, and close the loop."""
        self.stop()
        if self._loop.is_closed():
            return
        pending = [task for task in asyncio.all_tasks(self._loop) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        self._loop.close()

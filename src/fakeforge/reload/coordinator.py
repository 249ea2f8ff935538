"""
FakeForge Reload Coordinator

Rebuilds the serving table when sources change.

Triggers within the debounce window collapse into one rebuild. Rebuilds
never overlap: a trigger that fires while one is running sets ``queued``,
and exactly one more rebuild runs once the current one finishes, however
many triggers arrived in the meantime.

    idle --trigger--> (debounce) --fire--> rebuilding --done--> idle
                                              |  fire: queued = True
                                              '--done, queued--> rebuilding
"""

import asyncio
import inspect
import logging
import time
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional

from watchfiles import DefaultFilter, awatch

from .live import LiveUpdateChannel

logger = logging.getLogger("fakeforge.reload")

DEBOUNCE_SECONDS = 0.25

IGNORED_DIRS = ('.fakeforge',)


class ReloadCoordinator:
    """
    Debounced, non-overlapping rebuild of the serving table.

    Args:
        rebuild: ``rebuild(refresh)`` returning a new table (sync or async).
            ``refresh`` is True when configuration should be re-read.
        handle: Object with a ``swap(table)`` method holding the live table
        channel: Live-update channel notified after each successful rebuild
        debounce: Debounce window in seconds
        on_reloaded: Optional ``callback(table, elapsed_ms)`` after a swap
        lifecycle: Optional Lifecycle; the coordinator closes on shutdown

    Example:
        coordinator = ReloadCoordinator(rebuild, handle, channel)
        coordinator.start_watching(['models/', 'fakeforge.yaml'])
    """

    def __init__(
        self,
        rebuild: Callable[[bool], Any],
        handle,
        channel: Optional[LiveUpdateChannel] = None,
        debounce: float = DEBOUNCE_SECONDS,
        on_reloaded: Optional[Callable[[Any, float], None]] = None,
        lifecycle=None
    ):
        self._rebuild = rebuild
        self.handle = handle
        self.channel = channel or LiveUpdateChannel()
        self.debounce = debounce
        self.on_reloaded = on_reloaded

        self.running = False
        self.queued = False
        self.rebuild_count = 0
        self.failure_count = 0

        self._timer: Optional[asyncio.TimerHandle] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._current: Optional[asyncio.Task] = None
        self._watch_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._watched: Optional[List[str]] = None
        self._closed = False

        if lifecycle is not None:
            lifecycle.register(self.close, "reload coordinator")

    @property
    def pending(self) -> bool:
        """True while a debounce timer is waiting to fire."""
        return self._timer is not None

    def trigger(self, reason: str = "change") -> None:
        """
        Request a rebuild, restarting the debounce window.

        Must be called from the event loop thread.
        """
        if self._closed:
            return
        self._loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        logger.debug(f"Reload requested ({reason})")
        self._timer = self._loop.call_later(self.debounce, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if self._closed:
            return
        if self.running:
            # At most one extra rebuild; later triggers are absorbed
            self.queued = True
            return
        self.running = True
        self._current = self._loop.create_task(self._run())

    async def _run(self) -> None:
        try:
            await self.rebuild_now(refresh=True)
        finally:
            self.running = False
            self._current = None
            if self.queued and not self._closed:
                self.queued = False
                self._fire()

    async def rebuild_now(self, refresh: bool = True) -> bool:
        """
        Build a new table and swap it in.

        A failed build is logged and the previous table stays active.

        Returns:
            True if a new table was swapped in
        """
        start_time = time.perf_counter()
        self.rebuild_count += 1
        try:
            table = self._rebuild(refresh)
            if inspect.isawaitable(table):
                table = await table
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failure_count += 1
            logger.error(f"Rebuild failed, keeping previous routes: {e}")
            return False

        self.handle.swap(table)
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        self.channel.broadcast("reload")
        if self.on_reloaded is not None:
            try:
                self.on_reloaded(table, elapsed_ms)
            except Exception as e:
                logger.error(f"Reload callback failed: {e}")

        logger.info(f"Reloaded in {elapsed_ms:.0f} ms")
        return True

    async def wait_idle(self) -> None:
        """Wait until no debounce timer, rebuild or queued rebuild is left."""
        while self._timer is not None or self.running or self.queued:
            if self._current is not None:
                await asyncio.wait([self._current])
            else:
                await asyncio.sleep(self.debounce / 2 or 0.01)

    async def watch(self, paths: Iterable[str]) -> None:
        """
        Trigger a rebuild whenever a watched path changes.

        Runs until ``close()`` is called.

        Args:
            paths: Files and directories to watch
        """
        existing: List[str] = []
        for path in paths:
            if Path(path).exists():
                existing.append(str(path))
            else:
                logger.warning(f"Not watching missing path {path}")
        if not existing:
            logger.warning("No paths to watch; hot reload disabled")
            return

        self._stop_event = asyncio.Event()
        watch_filter = DefaultFilter(ignore_dirs=(*DefaultFilter.ignore_dirs, *IGNORED_DIRS))
        logger.info(f"Watching {', '.join(existing)}")

        async for changes in awatch(*existing, watch_filter=watch_filter, stop_event=self._stop_event):
            changed = sorted({Path(path).name for _, path in changes})
            self.trigger(f"changed: {', '.join(changed)}")

    def start_watching(self, paths: Iterable[str]) -> None:
        """
        Watch paths in a background task.

        Calling again with the same paths is a no-op; different paths
        replace the running watch.
        """
        paths = list(paths)
        if self._closed:
            return
        if self._watch_task is not None:
            if paths == self._watched:
                return
            logger.info("Watched paths changed; restarting watcher")
            self._stop_watching()
        self._watched = paths
        self._watch_task = asyncio.get_running_loop().create_task(self.watch(paths))

    def _stop_watching(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
            self._stop_event = None
        if self._watch_task is not None:
            self._watch_task.cancel()
            self._watch_task = None
        self._watched = None

    def close(self) -> None:
        """Cancel the pending timer, stop watching and close live connections."""
        self._closed = True
        self.queued = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._stop_watching()
        self.channel.close_all()

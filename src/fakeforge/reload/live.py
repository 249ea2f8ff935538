"""
FakeForge Live Updates

Server-sent event stream telling connected dev clients to reload.

Clients receive ``reload`` after every successful rebuild and ``ping``
every heartbeat interval. A closed stream means "reconnect".
"""

import asyncio
import logging
from typing import AsyncIterator, Optional, Set

logger = logging.getLogger("fakeforge.reload")

HEARTBEAT_INTERVAL = 25.0

_CLOSE = object()


def format_event(event: str, data: str = "now") -> str:
    return f"event: {event}\ndata: {data}\n\n"


class LiveUpdateChannel:
    """
    Set of open live-update connections.

    Each connection is an ``asyncio.Queue`` of pre-formatted SSE messages.
    A connection whose queue is full is treated as dead and pruned.
    """

    def __init__(self, heartbeat_interval: float = HEARTBEAT_INTERVAL, max_pending: int = 32):
        self.heartbeat_interval = heartbeat_interval
        self.max_pending = max_pending
        self._clients: Set[asyncio.Queue] = set()
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def connect(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_pending)
        if self._closed:
            queue.put_nowait(_CLOSE)
        else:
            self._clients.add(queue)
            logger.debug(f"Live-update client connected ({len(self._clients)} open)")
        return queue

    def disconnect(self, queue: asyncio.Queue) -> None:
        if queue in self._clients:
            self._clients.discard(queue)
            logger.debug(f"Live-update client disconnected ({len(self._clients)} open)")

    async def stream(self, queue: asyncio.Queue) -> AsyncIterator[str]:
        """
        Yield SSE messages for one connection until the channel closes.

        Args:
            queue: Queue returned by ``connect()``
        """
        try:
            yield ": connected\n\n"
            while True:
                message = await queue.get()
                if message is _CLOSE:
                    break
                yield message
        finally:
            self.disconnect(queue)

    def broadcast(self, event: str, data: str = "now") -> int:
        """
        Send an event to every connection.

        Returns:
            Number of connections the event was queued for
        """
        message = format_event(event, data)
        delivered = 0
        for queue in list(self._clients):
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.debug("Pruning unresponsive live-update client")
                self._clients.discard(queue)
        return delivered

    def heartbeat(self) -> int:
        return self.broadcast("ping")

    def start_heartbeat(self) -> None:
        if self._heartbeat_task is None and not self._closed:
            self._heartbeat_task = asyncio.get_running_loop().create_task(self._run_heartbeat())

    async def _run_heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            self.heartbeat()

    def close_all(self) -> None:
        """Close every connection and stop the heartbeat."""
        self._closed = True
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

        for queue in list(self._clients):
            while True:
                try:
                    queue.put_nowait(_CLOSE)
                    break
                except asyncio.QueueFull:
                    queue.get_nowait()
        self._clients.clear()

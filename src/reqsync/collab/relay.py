"""Fan-out of collaboration messages to connected editors.

Every registered connection gets its own bounded FIFO outbox drained by a
dedicated sender task. Enqueueing never waits, so a broadcast never delays the
operation that triggered it. Delivery is at-most-once: a message is dropped
when the recipient's outbox is full, and droppable messages (cursor moves) are
refused as soon as the outbox is half full.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Connection(Protocol):
    connection_id: str

    async def send_json(self, message: dict[str, Any]) -> None: ...


@dataclass(eq=False)
class Outbox:
    connection: Connection
    queue: asyncio.Queue[dict[str, Any]]
    task: asyncio.Task[None] | None = None
    closed: bool = False
    dropped: int = field(default=0)


class Relay:
    """Owned delivery service with an explicit start/stop lifecycle."""

    def __init__(self, outbox_size: int = 256):
        if outbox_size < 2:
            raise ValueError("outbox_size must be at least 2")
        self.outbox_size = outbox_size
        self._outboxes: dict[str, Outbox] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def connection_ids(self) -> list[str]:
        return list(self._outboxes)

    async def start(self) -> None:
        self._running = True
        logger.info("Relay started")

    async def stop(self) -> None:
        self._running = False
        outboxes = list(self._outboxes.values())
        self._outboxes.clear()
        for outbox in outboxes:
            if outbox.task is not None:
                outbox.task.cancel()
        await asyncio.gather(*(outbox.task for outbox in outboxes if outbox.task is not None), return_exceptions=True)
        logger.info(f"Relay stopped, {len(outboxes)} connection(s) released")

    def register(self, connection: Connection) -> None:
        if not self._running:
            raise RuntimeError("Relay not started. Call start() first.")
        if connection.connection_id in self._outboxes:
            return
        outbox = Outbox(connection=connection, queue=asyncio.Queue(maxsize=self.outbox_size))
        outbox.task = asyncio.create_task(self._pump(outbox), name=f"relay-{connection.connection_id}")
        self._outboxes[connection.connection_id] = outbox
        logger.debug(f"Registered connection {connection.connection_id}")

    async def unregister(self, connection_id: str) -> None:
        outbox = self._outboxes.pop(connection_id, None)
        if outbox is None:
            return
        self._close(outbox)
        if outbox.task is not None and outbox.task is not asyncio.current_task():
            outbox.task.cancel()
            await asyncio.gather(outbox.task, return_exceptions=True)
        logger.debug(f"Unregistered connection {connection_id}")

    def send(self, connection_id: str, message: dict[str, Any], droppable: bool = False) -> bool:
        """Queue a message for one connection; False when it was not queued."""
        outbox = self._outboxes.get(connection_id)
        if outbox is None or outbox.closed:
            return False

        if droppable and outbox.queue.qsize() >= self.outbox_size // 2:
            outbox.dropped += 1
            return False

        try:
            outbox.queue.put_nowait(message)
        except asyncio.QueueFull:
            outbox.dropped += 1
            logger.warning(f"Outbox of {connection_id} is full, dropping {message.get('event')}")
            return False
        return True

    def broadcast(self, connection_ids: Iterable[str], message: dict[str, Any], droppable: bool = False) -> int:
        return sum(1 for connection_id in connection_ids if self.send(connection_id, message, droppable=droppable))

    async def flush(self) -> None:
        """Wait until every open outbox has been drained."""
        await asyncio.gather(*(outbox.queue.join() for outbox in list(self._outboxes.values()) if not outbox.closed))

    def _close(self, outbox: Outbox) -> None:
        outbox.closed = True
        while not outbox.queue.empty():
            outbox.queue.get_nowait()
            outbox.queue.task_done()

    async def _pump(self, outbox: Outbox) -> None:
        connection_id = outbox.connection.connection_id
        while True:
            message = await outbox.queue.get()
            try:
                await outbox.connection.send_json(message)
            except Exception as e:
                logger.info(f"Delivery to {connection_id} failed, closing its outbox: {e}")
                outbox.closed = True
                return
            finally:
                outbox.queue.task_done()
                if outbox.closed:
                    self._close(outbox)

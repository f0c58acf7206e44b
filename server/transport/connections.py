"""
Transport connection module.

A Connection is one live client endpoint. The relay core only relies on the
attributes and coroutines of the base class; subclasses adapt a concrete
transport (asyncio TCP streams or WebSockets) to it.
"""

import asyncio
import itertools
import json
from typing import Optional, Set

from websockets.exceptions import ConnectionClosed

from common.constants import OUTBOX_SIZE
from server.utils.logger import logger


class Connection:
    """Transport-agnostic client connection."""

    transport = 'base'
    _ids = itertools.count(1)

    def __init__(self, peer=None, outbox_size: int = OUTBOX_SIZE):
        self.connection_id = next(Connection._ids)
        self.peer = peer
        self.identifier: Optional[str] = None
        self.channels: Set[str] = set()
        self.closed = False
        self._send_lock = asyncio.Lock()

        # Frames published to this connection, drained by writer_task
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)
        self.writer_task: Optional[asyncio.Task] = None

    def __repr__(self):
        return f"<{type(self).__name__} cid={self.connection_id} id={self.identifier!r}>"

    def mark_closed(self):
        """Stop accepting outbound frames."""
        self.closed = True

    async def send(self, message: dict) -> bool:
        """
        Serialize and write one frame.

        Returns False without writing when the connection is already closed.
        Transport errors propagate to the caller.
        """
        if self.closed:
            return False
        async with self._send_lock:
            if self.closed:
                return False
            await self._write(json.dumps(message))
        return True

    def enqueue(self, message: dict) -> bool:
        """
        Queue a published frame for the writer task.

        Returns False when the connection is closed or its outbox is full.
        """
        if self.closed:
            return False
        try:
            self.outbox.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def discard_pending(self) -> int:
        """Drop every queued frame. Returns how many were dropped."""
        dropped = 0
        while True:
            try:
                self.outbox.get_nowait()
            except asyncio.QueueEmpty:
                return dropped
            self.outbox.task_done()
            dropped += 1

    async def flush(self):
        """Wait until every queued frame has been written or dropped."""
        await self.outbox.join()

    async def close(self):
        """Stop the writer task and close the underlying transport."""
        self._shutdown()
        await self._close()

    async def abort(self):
        """Drop the transport without waiting for unsent data to drain."""
        self._shutdown()
        await self._abort()

    def _shutdown(self):
        self.mark_closed()
        task = self.writer_task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        self.discard_pending()

    async def _write(self, data: str):
        raise NotImplementedError

    async def _close(self):
        raise NotImplementedError

    async def _abort(self):
        await self._close()


class StreamConnection(Connection):
    """Line-delimited JSON over an asyncio TCP stream."""

    transport = 'tcp'

    def __init__(self, writer: asyncio.StreamWriter, outbox_size: int = OUTBOX_SIZE):
        super().__init__(peer=writer.get_extra_info('peername'), outbox_size=outbox_size)
        self.writer = writer

    async def _write(self, data: str):
        self.writer.write(data.encode('utf-8') + b'\n')
        await self.writer.drain()

    async def _close(self):
        try:
            self.writer.close()
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Stream close for cid={self.connection_id} failed: {e}")

    async def _abort(self):
        self.writer.transport.abort()


class WebSocketConnection(Connection):
    """JSON text frames over a WebSocket."""

    transport = 'ws'

    def __init__(self, websocket, outbox_size: int = OUTBOX_SIZE):
        super().__init__(peer=getattr(websocket, 'remote_address', None), outbox_size=outbox_size)
        self.websocket = websocket

    async def _write(self, data: str):
        await self.websocket.send(data)

    async def _close(self):
        try:
            await self.websocket.close()
        except ConnectionClosed as e:
            logger.debug(f"WebSocket close for cid={self.connection_id} failed: {e}")

    async def _abort(self):
        self.websocket.transport.abort()

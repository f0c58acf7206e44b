"""
Channel router module.

Keeps the in-memory mapping from channel name to the set of connections
currently subscribed, and fans events out to those members. Publishing only
queues a frame on each member's outbox; a writer task per member performs the
actual send, so a stalled member never holds up the publisher.
"""

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional, Set

from common.constants import SEND_TIMEOUT
from server.transport.connections import Connection
from server.utils.logger import logger


class ChannelRouter:
    """Channel membership and best-effort publish."""

    def __init__(self, send_timeout: float = SEND_TIMEOUT):
        self.channels: Dict[str, Set[Connection]] = {}  # channel -> members
        self.send_timeout = send_timeout
        self.lock = asyncio.Lock()  # Protect membership table

        # Called with a member whose writer gave up; defaults to dropping its memberships
        self.on_member_failure: Optional[Callable[[Connection], Awaitable]] = None
        self._drops: Set[asyncio.Task] = set()

    async def subscribe(self, connection: Connection, channel: str) -> bool:
        """Add a connection to a channel. Empty names and closed connections are ignored."""
        if not channel:
            return False
        async with self.lock:
            if connection.closed:
                return False
            self.channels.setdefault(channel, set()).add(connection)
            connection.channels.add(channel)
        return True

    async def unsubscribe(self, connection: Connection, channel: str) -> bool:
        """Remove a connection from one channel."""
        if not channel:
            return False
        async with self.lock:
            return self._remove(connection, channel)

    async def unsubscribe_all(self, connection: Connection, close: bool = False) -> int:
        """
        Remove a connection from every channel it belongs to.

        With close=True the connection is also marked closed inside the same
        critical section, so a concurrent publish either sees the full
        membership or none of it.
        """
        async with self.lock:
            removed = 0
            for channel in list(connection.channels):
                if self._remove(connection, channel):
                    removed += 1
            if close:
                connection.mark_closed()
        return removed

    def _remove(self, connection: Connection, channel: str) -> bool:
        members = self.channels.get(channel)
        connection.channels.discard(channel)
        if not members or connection not in members:
            return False
        members.discard(connection)
        if not members:
            del self.channels[channel]
        return True

    async def members(self, channel: str) -> List[Connection]:
        """Snapshot of the current members of a channel."""
        async with self.lock:
            return [member for member in self.channels.get(channel, ()) if not member.closed]

    def channel_count(self) -> int:
        """Number of channels with at least one member."""
        return len(self.channels)

    async def publish(self, channel: str, message: dict) -> int:
        """
        Queue a message for every current member of a channel.

        Each member gets at most one copy. Nothing is awaited per member:
        the writer task of each member performs the send, bounded by
        send_timeout. A member whose outbox is full is dropped. Returns the
        number of members the message was queued for.
        """
        members = await self.members(channel)
        if not members:
            logger.debug(f"Publish to empty channel '{channel}' (type={message.get('type')})")
            return 0

        queued = 0
        for member in members:
            if member.enqueue(message):
                self._ensure_writer(member)
                queued += 1
            elif not member.closed:
                self._schedule_drop(member, "outbound queue full")
        return queued

    def _ensure_writer(self, member: Connection):
        if member.writer_task is None or member.writer_task.done():
            member.writer_task = asyncio.create_task(self._drain(member))

    async def _drain(self, member: Connection):
        """Write queued frames in order until the member closes or fails."""
        while True:
            message = await member.outbox.get()
            try:
                await asyncio.wait_for(member.send(message), self.send_timeout)
            except asyncio.TimeoutError:
                await self._drop(member, f"send timed out after {self.send_timeout}s")
                return
            except Exception as e:
                await self._drop(member, f"send failed: {e}")
                return
            finally:
                member.outbox.task_done()

    def _schedule_drop(self, member: Connection, reason: str):
        member.mark_closed()
        task = asyncio.create_task(self._drop(member, reason))
        self._drops.add(task)
        task.add_done_callback(self._drops.discard)

    async def _drop(self, member: Connection, reason: str):
        logger.warning(f"Dropping cid={member.connection_id}: {reason}")
        member.mark_closed()
        member.discard_pending()
        try:
            if self.on_member_failure is not None:
                await self.on_member_failure(member)
            else:
                await self.unsubscribe_all(member, close=True)
        except Exception as e:
            logger.error(f"Failed to drop cid={member.connection_id}: {e}")

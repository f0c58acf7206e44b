"""
Connection registry module.

Tracks live connections and the identifier each one registered with. The
identity channel of an identifier (the channel named exactly after it) is the
only directory of that user's live connections.
"""

from typing import Dict

from common.protocol_definitions import normalize_identifier
from server.router.channel_router import ChannelRouter
from server.transport.connections import Connection
from server.utils.logger import logger


class ConnectionRegistry:
    """Connection to identifier bookkeeping."""

    def __init__(self, router: ChannelRouter):
        self.router = router
        self.connections: Dict[int, Connection] = {}  # cid -> connection
        router.on_member_failure = self.drop

    def add(self, connection: Connection):
        """Track a newly established connection."""
        self.connections[connection.connection_id] = connection

    def count(self) -> int:
        return len(self.connections)

    async def associate(self, connection: Connection, identifier) -> bool:
        """
        Bind an identifier to a connection and join its identity channel.

        Empty identifiers are dropped. The first identifier bound to a
        connection is kept for its whole lifetime.
        """
        identifier = normalize_identifier(identifier)
        if identifier is None:
            logger.debug(f"Ignoring empty registration from cid={connection.connection_id}")
            return False
        if connection.closed:
            return False

        if connection.identifier is not None and connection.identifier != identifier:
            logger.warning(
                f"cid={connection.connection_id} already registered as '{connection.identifier}', "
                f"ignoring '{identifier}'"
            )
            return False

        connection.identifier = identifier
        joined = await self.router.subscribe(connection, identifier)
        if joined:
            logger.log_register(identifier, connection.connection_id)
        return joined

    async def on_disconnect(self, connection: Connection) -> bool:
        """
        Release every channel membership and drop the identifier association.

        Calling this more than once for the same connection is a no-op.
        """
        if self.connections.pop(connection.connection_id, None) is None and connection.closed:
            return False

        identifier = connection.identifier
        rooms = await self.router.unsubscribe_all(connection, close=True)
        connection.identifier = None
        logger.log_disconnect(identifier, connection.connection_id, rooms)
        return True

    async def drop(self, connection: Connection):
        """Disconnect a member the router could not deliver to and end its transport."""
        if not await self.on_disconnect(connection):
            # Never tracked here, still release whatever it joined
            await self.router.unsubscribe_all(connection, close=True)
        await connection.abort()

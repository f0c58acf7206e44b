#!/usr/bin/env python3
"""
Real-time Messaging Relay Server

Builds the relay components from a ServerConfig and serves them over two
transports: line-delimited JSON on a TCP port and JSON text frames on a
WebSocket port. Each connection is read by a single task, so its frames are
handled strictly in arrival order.
"""

import asyncio
import json
from typing import List, Optional

from websockets.asyncio.server import serve
from websockets.exceptions import ConnectionClosed

from common.protocol_definitions import create_error_message
from server.relay.relay_service import RelayService
from server.router.channel_router import ChannelRouter
from server.store.account_store import AccountStore
from server.store.message_store import MessageStore, MemoryMessageStore, SqliteMessageStore
from server.transport.connections import Connection, StreamConnection, WebSocketConnection
from server.utils.config import ServerConfig
from server.utils.logger import logger


class RelayServer:
    """Main server class that wires the relay together."""

    def __init__(self, config: Optional[ServerConfig] = None,
                 store: Optional[MessageStore] = None,
                 accounts: Optional[AccountStore] = None):
        self.config = config or ServerConfig()

        if store is None:
            store = MemoryMessageStore() if self.config.uses_memory_store else SqliteMessageStore(self.config.db_path)
        if accounts is None:
            accounts = AccountStore(self.config.db_path)

        self.router = ChannelRouter(send_timeout=self.config.send_timeout)
        self.store = store
        self.accounts = accounts
        self.relay = RelayService(self.router, self.store, accounts=self.accounts)

        self.tcp_server: Optional[asyncio.AbstractServer] = None
        self.ws_server = None

    async def handle_frame(self, connection: Connection, raw) -> None:
        """Decode one frame and dispatch it, containing any per-event failure."""
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Malformed JSON from cid={connection.connection_id}: {e}")
            await connection.send(create_error_message("Malformed JSON"))
            return

        try:
            await self.relay.dispatch(connection, message)
        except Exception as e:
            logger.error(f"Error processing message from cid={connection.connection_id}: {e}")

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Handle one TCP connection."""
        connection = StreamConnection(writer, outbox_size=self.config.outbox_size)
        self.relay.connect(connection)

        try:
            while True:
                try:
                    data = await reader.readuntil(b'\n')
                except asyncio.IncompleteReadError as e:
                    # EOF; a final unterminated line is still handled
                    if e.partial.strip():
                        await self.handle_frame(connection, e.partial.strip())
                    break
                except asyncio.LimitOverrunError as e:
                    logger.warning(f"Message too large from cid={connection.connection_id}")
                    await connection.send(create_error_message("Message too large"))
                    if not await self.skip_line(reader, e.consumed):
                        break
                    continue

                line = data.strip()
                if not line:
                    continue
                await self.handle_frame(connection, line)

        except asyncio.CancelledError:
            logger.info(f"Connection cancelled for cid={connection.connection_id}")
            raise
        except (ConnectionError, OSError) as e:
            logger.error(f"Socket error for cid={connection.connection_id}: {e}")
        finally:
            await self.relay.disconnect(connection)
            await connection.close()

    @staticmethod
    async def skip_line(reader: asyncio.StreamReader, consumed: int) -> bool:
        """
        Discard the rest of an oversized line, up to and including its newline.

        Returns False if the stream ended first.
        """
        try:
            while True:
                await reader.readexactly(consumed)
                try:
                    await reader.readuntil(b'\n')
                    return True
                except asyncio.LimitOverrunError as e:
                    consumed = e.consumed
        except asyncio.IncompleteReadError:
            return False

    async def handle_websocket(self, websocket):
        """Handle one WebSocket connection."""
        connection = WebSocketConnection(websocket, outbox_size=self.config.outbox_size)
        self.relay.connect(connection)

        try:
            async for frame in websocket:
                if isinstance(frame, bytes):
                    logger.debug(f"Dropping binary frame from cid={connection.connection_id}")
                    continue
                await self.handle_frame(connection, frame)
        except ConnectionClosed as e:
            logger.debug(f"WebSocket cid={connection.connection_id} closed: {e}")
        finally:
            await self.relay.disconnect(connection)
            await connection.close()

    async def start(self) -> List[tuple]:
        """Open the listeners. Returns the bound (host, port) addresses."""
        self.tcp_server = await asyncio.start_server(
            self.handle_client,
            self.config.host,
            self.config.port,
            limit=self.config.max_message_size
        )
        addresses = [sock.getsockname()[:2] for sock in self.tcp_server.sockets]
        logger.info(f"TCP relay listening on {', '.join(str(a) for a in addresses)}")

        if self.config.ws_port is not None:
            self.ws_server = await serve(
                self.handle_websocket,
                self.config.host,
                self.config.ws_port,
                max_size=self.config.max_message_size,
                ping_interval=self.config.ping_interval,
                ping_timeout=self.config.ping_timeout
            )
            ws_addresses = [sock.getsockname()[:2] for sock in self.ws_server.sockets]
            logger.info(f"WebSocket relay listening on {', '.join(str(a) for a in ws_addresses)}")
            addresses.extend(ws_addresses)

        return addresses

    @property
    def tcp_port(self) -> Optional[int]:
        if self.tcp_server is None:
            return None
        return self.tcp_server.sockets[0].getsockname()[1]

    @property
    def ws_port(self) -> Optional[int]:
        if self.ws_server is None:
            return None
        return list(self.ws_server.sockets)[0].getsockname()[1]

    async def serve_forever(self):
        """Start the listeners and run until cancelled."""
        await self.start()
        try:
            await asyncio.Future()  # run forever
        finally:
            await self.stop()

    async def stop(self):
        """Close listeners and stores."""
        if self.ws_server is not None:
            self.ws_server.close()
            await self.ws_server.wait_closed()
            self.ws_server = None
        if self.tcp_server is not None:
            self.tcp_server.close()
            # wait_closed also waits for accepted streams, so end them first
            for connection in list(self.relay.registry.connections.values()):
                try:
                    await asyncio.wait_for(connection.flush(), self.config.send_timeout)
                except asyncio.TimeoutError:
                    logger.warning(f"Unsent frames dropped for cid={connection.connection_id} on shutdown")
                await connection.close()
            await self.tcp_server.wait_closed()
            self.tcp_server = None
        await self.store.close()
        await self.accounts.close()
        logger.info("Relay stopped")

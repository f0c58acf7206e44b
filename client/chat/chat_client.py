"""
Relay client module.

Headless TCP client for the relay: register, join rooms, chat, signal, and
read incoming frames from a queue.

Usage:
    client = RelayClient('localhost', 9000)
    await client.connect()
    account = await client.create_account('alice')
    await client.register(account['number'])
    await client.join_room(room_name(account['number'], '222333444'))
    await client.send_chat(account['number'], 'alice', room, 'hi')
    frame = await client.receive(timeout=5)
"""

import asyncio
import json
from typing import Any, Optional

from common.constants import MessageTypes
from common.protocol_definitions import (
    create_register_message, create_join_room_message, create_leave_room_message,
    create_chat_message, create_call_user_message, create_answer_call_message,
    create_ice_candidate_message, create_get_history_message, create_new_account_message,
    create_list_users_message, create_set_facetime_message, create_heartbeat_message
)


class RelayClient:
    """Client-side relay connection."""

    def __init__(self, host: str = 'localhost', port: int = 9000):
        self.host = host
        self.port = port
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._listener: Optional[asyncio.Task] = None

    async def connect(self):
        """Open the TCP connection and start reading frames."""
        self.reader, self.writer = await asyncio.open_connection(self.host, self.port)
        self._listener = asyncio.create_task(self._listen())

    async def _listen(self):
        while True:
            data = await self.reader.readline()
            if not data:
                break
            await self._inbox.put(json.loads(data.decode('utf-8')))

    async def send_message(self, message: dict):
        """Send a JSON frame to the server."""
        if not self.writer:
            raise ConnectionError("Not connected to server")
        self.writer.write(json.dumps(message).encode('utf-8') + b'\n')
        await self.writer.drain()

    async def register(self, number: str):
        await self.send_message(create_register_message(number))

    async def join_room(self, room: str):
        await self.send_message(create_join_room_message(room))

    async def leave_room(self, room: str):
        await self.send_message(create_leave_room_message(room))

    async def send_chat(self, sender_number: str, sender_name: str, room: str, text: str):
        await self.send_message(create_chat_message(sender_number, sender_name, room, text))

    async def call_user(self, to: str, from_: str, offer: Any):
        await self.send_message(create_call_user_message(to, from_, offer))

    async def answer_call(self, to: str, from_: str, answer: Any):
        await self.send_message(create_answer_call_message(to, from_, answer))

    async def send_ice_candidate(self, to: str, candidate: Any):
        await self.send_message(create_ice_candidate_message(to, candidate))

    async def heartbeat(self) -> dict:
        await self.send_message(create_heartbeat_message())
        return await self.wait_for(MessageTypes.HEARTBEAT_ACK)

    async def request_history(self, room: str) -> dict:
        """Fetch the stored messages of a room."""
        await self.send_message(create_get_history_message(room))
        return await self.wait_for(MessageTypes.HISTORY)

    async def create_account(self, name: str, old_number: Optional[str] = None) -> dict:
        await self.send_message(create_new_account_message(name, old_number))
        return await self.wait_for(MessageTypes.ACCOUNT_CREATED)

    async def list_users(self) -> dict:
        await self.send_message(create_list_users_message())
        return await self.wait_for(MessageTypes.USERS)

    async def set_facetime(self, number: str, facetime: Optional[str]) -> dict:
        await self.send_message(create_set_facetime_message(number, facetime))
        return await self.wait_for(MessageTypes.FACETIME_UPDATED)

    async def receive(self, timeout: float = None) -> dict:
        """Next frame from the server. Blocks until one arrives."""
        if timeout:
            return await asyncio.wait_for(self._inbox.get(), timeout)
        return await self._inbox.get()

    async def wait_for(self, msg_type: str, timeout: float = 5.0) -> dict:
        """
        Skip frames until one of msg_type arrives.

        An error frame ends the wait with a RuntimeError.
        """
        while True:
            message = await self.receive(timeout)
            if message.get('type') == msg_type:
                return message
            if message.get('type') == MessageTypes.ERROR:
                raise RuntimeError(message.get('message', 'server error'))

    async def close(self):
        if self._listener:
            self._listener.cancel()
            try:
                await self._listener
            except (asyncio.CancelledError, ConnectionError):
                pass
        if self.writer:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (ConnectionError, OSError):
                pass

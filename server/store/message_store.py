"""
Message store module.

Append-only log of chat messages keyed by room. Retrieval order always equals
append order.
"""

import asyncio
import sqlite3
import threading
from dataclasses import replace
from typing import Dict, List

from common.errors import MessageStoreError
from common.protocol_definitions import ChatMessage


class MessageStore:
    """Interface shared by the message store backends."""

    async def append(self, message: ChatMessage) -> ChatMessage:
        """Record one message and return it with its sequence id assigned."""
        raise NotImplementedError

    async def history(self, room: str) -> List[ChatMessage]:
        """All messages of a room, oldest first. Unknown rooms yield []."""
        raise NotImplementedError

    async def close(self):
        pass


class MemoryMessageStore(MessageStore):
    """Process-local store, lost on restart."""

    def __init__(self):
        self.rooms: Dict[str, List[ChatMessage]] = {}
        self.next_id = 1
        self.lock = asyncio.Lock()

    async def append(self, message: ChatMessage) -> ChatMessage:
        async with self.lock:
            stored = replace(message, message_id=self.next_id)
            self.next_id += 1
            self.rooms.setdefault(message.room, []).append(stored)
        return stored

    async def history(self, room: str) -> List[ChatMessage]:
        async with self.lock:
            return list(self.rooms.get(room, ()))


class SqliteMessageStore(MessageStore):
    """Durable store backed by a SQLite ``messages`` table."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            senderNumber TEXT,
            senderName TEXT,
            room TEXT,
            text TEXT,
            timestamp TEXT
        )
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.lock = asyncio.Lock()  # Serialize writers
        self._db_lock = threading.Lock()  # Guard the connection across worker threads
        try:
            self.db = sqlite3.connect(db_path, check_same_thread=False)
            with self.db:
                self.db.execute(self.SCHEMA)
                self.db.execute("CREATE INDEX IF NOT EXISTS idx_messages_room ON messages (room, id)")
        except sqlite3.Error as e:
            raise MessageStoreError(f"cannot open message store {db_path}: {e}") from e

    def _insert(self, message: ChatMessage) -> int:
        with self._db_lock, self.db:
            cursor = self.db.execute(
                "INSERT INTO messages (senderNumber, senderName, room, text, timestamp) VALUES (?, ?, ?, ?, ?)",
                (message.sender_number, message.sender_name, message.room, message.text, message.timestamp)
            )
            return cursor.lastrowid

    def _select(self, room: str) -> List[ChatMessage]:
        with self._db_lock:
            rows = self.db.execute(
                "SELECT id, senderNumber, senderName, room, text, timestamp FROM messages WHERE room = ? ORDER BY id ASC",
                (room,)
            ).fetchall()
        return [
            ChatMessage(
                sender_number=row[1], sender_name=row[2], room=row[3],
                text=row[4], timestamp=row[5], message_id=row[0]
            )
            for row in rows
        ]

    async def append(self, message: ChatMessage) -> ChatMessage:
        async with self.lock:
            try:
                message_id = await asyncio.to_thread(self._insert, message)
            except sqlite3.Error as e:
                raise MessageStoreError(f"message insert error: {e}") from e
        return replace(message, message_id=message_id)

    async def history(self, room: str) -> List[ChatMessage]:
        try:
            return await asyncio.to_thread(self._select, room)
        except sqlite3.Error as e:
            raise MessageStoreError(f"history query error: {e}") from e

    async def close(self):
        with self._db_lock:
            self.db.close()

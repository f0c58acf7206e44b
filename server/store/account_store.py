"""
Account store module.

Issues participant identifiers and keeps the user directory shown to clients.
"""

import asyncio
import secrets
import sqlite3
import threading
from typing import Callable, List, Optional

from common.constants import ACCOUNT_NUMBER_MIN, ACCOUNT_NUMBER_MAX, ACCOUNT_NUMBER_ATTEMPTS
from common.errors import AccountStoreError
from common.protocol_definitions import UserAccount


def generate_number() -> str:
    """Random 9-digit account number."""
    return str(ACCOUNT_NUMBER_MIN + secrets.randbelow(ACCOUNT_NUMBER_MAX - ACCOUNT_NUMBER_MIN + 1))


class AccountStore:
    """SQLite-backed ``users`` table."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            number TEXT UNIQUE,
            name TEXT,
            facetime TEXT
        )
    """

    def __init__(self, db_path: str, number_factory: Callable[[], str] = generate_number):
        self.db_path = db_path
        self.number_factory = number_factory
        self.lock = asyncio.Lock()
        self._db_lock = threading.Lock()
        try:
            self.db = sqlite3.connect(db_path, check_same_thread=False)
            with self.db:
                self.db.execute(self.SCHEMA)
        except sqlite3.Error as e:
            raise AccountStoreError(f"cannot open account store {db_path}: {e}") from e

    def _create(self, name: str, old_number: Optional[str]) -> UserAccount:
        with self._db_lock:
            if old_number:
                with self.db:
                    self.db.execute("DELETE FROM users WHERE number = ?", (old_number,))

            for _ in range(ACCOUNT_NUMBER_ATTEMPTS):
                number = self.number_factory()
                try:
                    with self.db:
                        self.db.execute("INSERT INTO users (number, name) VALUES (?, ?)", (number, name))
                except sqlite3.IntegrityError:
                    continue
                return UserAccount(number=number, name=name)
        raise AccountStoreError(f"no free account number after {ACCOUNT_NUMBER_ATTEMPTS} attempts")

    def _list(self) -> List[UserAccount]:
        with self._db_lock:
            rows = self.db.execute("SELECT number, name, facetime FROM users ORDER BY id ASC").fetchall()
        return [UserAccount(number=row[0], name=row[1], facetime=row[2]) for row in rows]

    def _set_facetime(self, number: str, facetime: Optional[str]) -> bool:
        with self._db_lock, self.db:
            cursor = self.db.execute("UPDATE users SET facetime = ? WHERE number = ?", (facetime or None, number))
            return cursor.rowcount > 0

    async def create_account(self, name: str, old_number: Optional[str] = None) -> UserAccount:
        """Issue a fresh number for name, deleting old_number first when given."""
        if not name:
            raise AccountStoreError("Name is required")
        async with self.lock:
            try:
                return await asyncio.to_thread(self._create, name, old_number)
            except sqlite3.Error as e:
                raise AccountStoreError(f"Error creating new account: {e}") from e

    async def list_users(self) -> List[UserAccount]:
        """All accounts in creation order."""
        try:
            return await asyncio.to_thread(self._list)
        except sqlite3.Error as e:
            raise AccountStoreError(f"Error listing users: {e}") from e

    async def set_facetime(self, number: str, facetime: Optional[str]) -> bool:
        """Update the facetime handle of an account. Returns False for an unknown number."""
        if not number:
            raise AccountStoreError("missing number")
        async with self.lock:
            try:
                return await asyncio.to_thread(self._set_facetime, number, facetime)
            except sqlite3.Error as e:
                raise AccountStoreError(f"Error updating facetime: {e}") from e

    async def close(self):
        with self._db_lock:
            self.db.close()

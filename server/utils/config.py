"""
Server configuration module.

This module handles server-side configuration settings.
"""

import os
from typing import Optional

from common.constants import (
    DEFAULT_SERVER_HOST, DEFAULT_PORT, DEFAULT_WS_PORT, DEFAULT_DB_PATH, MEMORY_DB, LOG_DIR,
    MAX_MESSAGE_SIZE, OUTBOX_SIZE, SEND_TIMEOUT, WS_PING_INTERVAL, WS_PING_TIMEOUT
)


class ServerConfig:
    """Server configuration class."""

    def __init__(self, host: str = DEFAULT_SERVER_HOST, port: int = DEFAULT_PORT,
                 ws_port: Optional[int] = DEFAULT_WS_PORT, db_path: str = DEFAULT_DB_PATH):
        self.host = host
        self.port = port
        self.ws_port = ws_port  # None disables the WebSocket listener
        self.db_path = db_path

        # Logging configuration
        self.logs_dir = LOG_DIR

        # Frame settings
        self.max_message_size = MAX_MESSAGE_SIZE

        # Fan-out settings
        self.send_timeout = SEND_TIMEOUT
        self.outbox_size = OUTBOX_SIZE

        # Connection settings
        self.ping_interval = WS_PING_INTERVAL
        self.ping_timeout = WS_PING_TIMEOUT

    @classmethod
    def from_env(cls, environ=None) -> 'ServerConfig':
        """Build a config from PORT / RELAY_HOST / RELAY_WS_PORT / RELAY_DB."""
        environ = os.environ if environ is None else environ
        ws_port = environ.get('RELAY_WS_PORT', str(DEFAULT_WS_PORT))
        return cls(
            host=environ.get('RELAY_HOST', DEFAULT_SERVER_HOST),
            port=int(environ.get('PORT', DEFAULT_PORT)),
            ws_port=int(ws_port) if ws_port else None,
            db_path=environ.get('RELAY_DB', DEFAULT_DB_PATH)
        )

    @property
    def uses_memory_store(self) -> bool:
        return self.db_path == MEMORY_DB

    def get_connection_info(self):
        """Get connection information."""
        return {
            'host': self.host,
            'port': self.port,
            'ws_port': self.ws_port
        }

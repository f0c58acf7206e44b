"""
Server logging module.

This module handles server-side logging functionality.
"""

import logging
from datetime import datetime
from pathlib import Path

from common.constants import LOG_DIR, CHAT_LOG_FILE, SIGNALING_LOG_FILE


class RelayLogger:
    """Server logging class."""

    def __init__(self, logs_dir: str = LOG_DIR, log_level: int = logging.INFO):
        self.logger = logging.getLogger('relay_server')
        self.configure(log_level, logs_dir)

    def configure(self, log_level: int = logging.INFO, logs_dir: str = LOG_DIR, transcripts: bool = True):
        """(Re)build handlers and transcript paths."""
        self.logger.setLevel(log_level)

        # Remove existing handlers
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        # Transcript files are created on first write
        self.logs_dir = Path(logs_dir)
        self.chat_log_path = self.logs_dir / CHAT_LOG_FILE
        self.signaling_log_path = self.logs_dir / SIGNALING_LOG_FILE
        self.transcripts_enabled = transcripts

    def info(self, message: str):
        """Log info message."""
        self.logger.info(message)

    def error(self, message: str):
        """Log error message."""
        self.logger.error(message)

    def warning(self, message: str):
        """Log warning message."""
        self.logger.warning(message)

    def debug(self, message: str):
        """Log debug message."""
        self.logger.debug(message)

    def log_connection(self, peer, connection_id: int, transport: str):
        """Log client connection."""
        self.info(f"New {transport} connection from {peer}, assigned cid={connection_id}")

    def log_register(self, identifier: str, connection_id: int):
        """Log identifier registration."""
        self.info(f"Connection cid={connection_id} registered as '{identifier}'")

    def log_join(self, room: str, connection_id: int):
        """Log room join."""
        self.debug(f"Connection cid={connection_id} joined room '{room}'")

    def log_disconnect(self, identifier, connection_id: int, rooms: int):
        """Log client disconnect."""
        who = identifier if identifier is not None else 'unregistered'
        self.info(f"Connection cid={connection_id} ({who}) disconnected, left {rooms} room(s)")

    def log_message(self, sender_number: str, sender_name: str, room: str, text: str, delivered: int):
        """Log chat message."""
        self.info(f"Message from {sender_name} ({sender_number}) in '{room}' queued for {delivered} connection(s)")
        self._write_to_file(self.chat_log_path, f"{datetime.now().isoformat()} | {room} | {sender_name} ({sender_number}) | {text}")

    def log_signal(self, kind: str, from_identifier, to_identifier: str, delivered: int):
        """Log signaling hop."""
        self.info(f"Signal '{kind}' from {from_identifier} to {to_identifier} queued for {delivered} connection(s)")
        self._write_to_file(self.signaling_log_path, f"{datetime.now().isoformat()} | {kind.upper()} | FROM: {from_identifier} | TO: {to_identifier} | DELIVERED: {delivered}")

    def log_account_created(self, number: str, name: str):
        """Log account creation."""
        self.info(f"Account created: '{name}' with number={number}")

    def log_error(self, operation: str, error: Exception):
        """Log error with operation context."""
        self.error(f"Error in {operation}: {error}")

    def _write_to_file(self, file_path: Path, content: str):
        """Write content to log file."""
        if not self.transcripts_enabled:
            return
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, 'a', encoding='utf-8') as f:
                f.write(content + '\n')
        except OSError as e:
            self.error(f"Failed to write to log file {file_path}: {e}")


# Global logger instance
logger = RelayLogger()

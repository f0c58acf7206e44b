#!/usr/bin/env python3
"""
Unit tests for server/utils/config.py and the main_server.py argument parsing.
"""

import unittest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import fakes  # noqa: F401  (quiet logger)
from common.constants import DEFAULT_PORT, DEFAULT_WS_PORT, DEFAULT_DB_PATH, MEMORY_DB, OUTBOX_SIZE
from server.utils.config import ServerConfig
from main_server import parse_args, build_config


class TestServerConfig(unittest.TestCase):

    def test_defaults(self):
        config = ServerConfig()
        self.assertEqual(config.port, DEFAULT_PORT)
        self.assertEqual(config.ws_port, DEFAULT_WS_PORT)
        self.assertEqual(config.db_path, DEFAULT_DB_PATH)
        self.assertFalse(config.uses_memory_store)
        self.assertEqual(config.outbox_size, OUTBOX_SIZE)

    def test_from_env(self):
        config = ServerConfig.from_env({
            'PORT': '3000', 'RELAY_HOST': '127.0.0.1', 'RELAY_WS_PORT': '3001', 'RELAY_DB': MEMORY_DB
        })
        self.assertEqual(config.get_connection_info(), {'host': '127.0.0.1', 'port': 3000, 'ws_port': 3001})
        self.assertTrue(config.uses_memory_store)

    def test_empty_ws_port_disables_websocket(self):
        self.assertIsNone(ServerConfig.from_env({'RELAY_WS_PORT': ''}).ws_port)

    def test_command_line(self):
        args = parse_args(['--port', '7000', '--ws-port', '0', '--db', MEMORY_DB, '--logs-dir', 'tmp-logs'])
        config = build_config(args)
        self.assertEqual(config.port, 7000)
        self.assertIsNone(config.ws_port)
        self.assertTrue(config.uses_memory_store)
        self.assertEqual(config.logs_dir, 'tmp-logs')


if __name__ == '__main__':
    unittest.main()

#!/usr/bin/env python3
"""
Unit tests for main_client.py

Tests the command-line client's startup failures:
- Server unreachable
- Account creation rejected by the server
"""

import argparse
import contextlib
import io
import unittest
from unittest.mock import AsyncMock, patch

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import main_client


class TestClientStartup(unittest.IsolatedAsyncioTestCase):
    """Test cases for run() before the chat loop starts."""

    def make_args(self, number=None):
        return argparse.Namespace(host='localhost', port=9000, name='Alice', number=number, peer='222')

    async def run_with(self, client):
        out = io.StringIO()
        with patch('main_client.RelayClient', return_value=client), contextlib.redirect_stdout(out):
            code = await main_client.run(self.make_args())
        return code, out.getvalue()

    async def test_unreachable_server(self):
        client = AsyncMock()
        client.connect.side_effect = ConnectionRefusedError("refused")

        code, output = await self.run_with(client)

        self.assertEqual(code, 1)
        self.assertIn("[ERROR] Failed to connect", output)

    async def test_rejected_account_creation(self):
        client = AsyncMock()
        client.create_account.side_effect = RuntimeError("Name is required")

        code, output = await self.run_with(client)

        self.assertEqual(code, 1)
        self.assertIn("[ERROR] Failed to create account: Name is required", output)
        client.close.assert_awaited_once()
        client.register.assert_not_awaited()


if __name__ == '__main__':
    unittest.main()

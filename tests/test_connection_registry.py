#!/usr/bin/env python3
"""
Unit tests for server/registry/connection_registry.py
"""

import unittest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fakes import RecordingConnection, FailingConnection, settle
from server.registry.connection_registry import ConnectionRegistry
from server.router.channel_router import ChannelRouter


class TestConnectionRegistry(unittest.IsolatedAsyncioTestCase):
    """Test cases for identifier association and disconnect cleanup."""

    def setUp(self):
        self.router = ChannelRouter()
        self.registry = ConnectionRegistry(self.router)
        self.conn = RecordingConnection()
        self.registry.add(self.conn)

    async def test_associate_joins_identity_channel(self):
        self.assertTrue(await self.registry.associate(self.conn, "111"))

        self.assertEqual(self.conn.identifier, "111")
        self.assertEqual(await self.router.members("111"), [self.conn])

    async def test_numeric_identifier_is_stringified(self):
        await self.registry.associate(self.conn, 111)
        self.assertEqual(self.conn.identifier, "111")
        self.assertEqual(await self.router.members("111"), [self.conn])

    async def test_whole_float_identifier_joins_integer_channel(self):
        await self.registry.associate(self.conn, 111.0)
        self.assertEqual(self.conn.identifier, "111")
        self.assertEqual(await self.router.members("111"), [self.conn])

    async def test_empty_identifier_is_ignored(self):
        for value in (None, ""):
            self.assertFalse(await self.registry.associate(self.conn, value))
        self.assertIsNone(self.conn.identifier)
        self.assertEqual(self.router.channel_count(), 0)

    async def test_identifier_cannot_be_reassigned(self):
        await self.registry.associate(self.conn, "111")
        self.assertFalse(await self.registry.associate(self.conn, "222"))

        self.assertEqual(self.conn.identifier, "111")
        self.assertEqual(await self.router.members("222"), [])

    async def test_same_identifier_twice_is_harmless(self):
        await self.registry.associate(self.conn, "111")
        self.assertTrue(await self.registry.associate(self.conn, "111"))
        self.assertEqual(await self.router.members("111"), [self.conn])

    async def test_several_connections_share_identity_channel(self):
        other = RecordingConnection()
        self.registry.add(other)
        await self.registry.associate(self.conn, "111")
        await self.registry.associate(other, "111")

        delivered = await self.router.publish("111", {"type": "incomingCall"})
        self.assertEqual(delivered, 2)
        await settle(self.conn, other)
        self.assertEqual(len(self.conn.sent), 1)
        self.assertEqual(len(other.sent), 1)

    async def test_disconnect_releases_everything(self):
        await self.registry.associate(self.conn, "111")
        await self.router.subscribe(self.conn, "111_222")

        self.assertTrue(await self.registry.on_disconnect(self.conn))

        self.assertIsNone(self.conn.identifier)
        self.assertTrue(self.conn.closed)
        self.assertEqual(self.registry.count(), 0)
        self.assertEqual(await self.router.publish("111", {"type": "incomingCall"}), 0)
        self.assertEqual(await self.router.publish("111_222", {"type": "message"}), 0)
        self.assertEqual(self.conn.sent, [])

    async def test_disconnect_twice_is_noop(self):
        await self.registry.associate(self.conn, "111")
        self.assertTrue(await self.registry.on_disconnect(self.conn))
        self.assertFalse(await self.registry.on_disconnect(self.conn))

    async def test_undeliverable_member_is_disconnected(self):
        broken = FailingConnection()
        self.registry.add(broken)
        await self.registry.associate(broken, "222")
        await self.router.subscribe(broken, "111_222")

        await self.router.publish("111_222", {"type": "message"})
        await settle(broken)

        self.assertTrue(broken.closed)
        self.assertTrue(broken.aborted)
        self.assertIsNone(broken.identifier)
        self.assertEqual(self.registry.count(), 1)
        self.assertEqual(self.router.channel_count(), 0)

    async def test_closed_connection_cannot_register(self):
        await self.registry.on_disconnect(self.conn)
        self.assertFalse(await self.registry.associate(self.conn, "111"))
        self.assertEqual(self.router.channel_count(), 0)


if __name__ == '__main__':
    unittest.main()

#!/usr/bin/env python3
"""
Unit tests for server/relay/relay_service.py

Drives the dispatch table with in-memory connections:
- Direct message between two registered users
- Call offer forwarded byte-for-byte
- Concurrent senders on one room
- A member that never reads does not slow the sender
- Malformed events and persistence failures
- History and account requests
"""

import asyncio
import json
import unittest
from unittest.mock import AsyncMock, patch

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fakes import RecordingConnection, HangingConnection, settle, wait_until
from common.constants import MessageTypes
from common.errors import MessageStoreError
from common.protocol_definitions import (
    room_name, create_register_message, create_join_room_message, create_leave_room_message,
    create_chat_message, create_call_user_message, create_answer_call_message,
    create_ice_candidate_message, create_get_history_message, create_new_account_message,
    create_list_users_message, create_set_facetime_message, create_heartbeat_message
)
from server.relay.relay_service import RelayService
from server.router.channel_router import ChannelRouter
from server.store.account_store import AccountStore
from server.store.message_store import MemoryMessageStore


class RelayTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.router = ChannelRouter(send_timeout=0.5)
        self.store = MemoryMessageStore()
        self.accounts = AccountStore(":memory:")
        self.relay = RelayService(self.router, self.store, accounts=self.accounts)
        self.connections = []

    async def asyncTearDown(self):
        await self.accounts.close()

    def open_connection(self, name: str = None, connection_class=RecordingConnection) -> RecordingConnection:
        conn = connection_class(name)
        self.relay.connect(conn)
        self.connections.append(conn)
        return conn

    async def dispatch(self, conn, message) -> bool:
        """Dispatch a frame and wait until the published frames of healthy connections are written."""
        handled = await self.relay.dispatch(conn, message)
        await settle(*(c for c in self.connections if not isinstance(c, HangingConnection)))
        return handled

    async def registered(self, number: str) -> RecordingConnection:
        conn = self.open_connection(number)
        await self.dispatch(conn, create_register_message(number))
        return conn


class TestDirectMessages(RelayTestCase):

    async def test_message_reaches_peer_and_history(self):
        alice = await self.registered("111")
        bob = await self.registered("222")
        room = room_name("111", "222")
        self.assertEqual(room, "111_222")
        await self.dispatch(alice, create_join_room_message(room))
        await self.dispatch(bob, create_join_room_message(room))

        await self.dispatch(alice, create_chat_message("111", "Alice", room, "hi"))

        received = bob.of_type(MessageTypes.MESSAGE)
        self.assertEqual(len(received), 1)
        self.assertEqual(received[0]["senderNumber"], "111")
        self.assertEqual(received[0]["senderName"], "Alice")
        self.assertEqual(received[0]["room"], room)
        self.assertEqual(received[0]["text"], "hi")
        self.assertIn("timestamp", received[0])
        # The sender is a room member too
        self.assertEqual(len(alice.of_type(MessageTypes.MESSAGE)), 1)

        history = await self.store.history(room)
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].text, "hi")
        self.assertEqual(history[0].timestamp, received[0]["timestamp"])

    async def test_each_member_gets_one_copy_in_order(self):
        members = [self.open_connection(str(i)) for i in range(4)]
        for conn in members:
            await self.dispatch(conn, create_join_room_message("group"))
            await self.dispatch(conn, create_join_room_message("group"))

        for i in range(3):
            await self.dispatch(members[0], create_chat_message("0", "zero", "group", f"m{i}"))

        for conn in members:
            self.assertEqual([m["text"] for m in conn.of_type(MessageTypes.MESSAGE)], ["m0", "m1", "m2"])
        self.assertEqual([m.text for m in await self.store.history("group")], ["m0", "m1", "m2"])

    async def test_message_to_empty_room_is_still_stored(self):
        alice = await self.registered("111")
        await self.dispatch(alice, create_chat_message("111", "Alice", "111_333", "anyone?"))

        self.assertEqual([m.text for m in await self.store.history("111_333")], ["anyone?"])
        self.assertEqual(alice.of_type(MessageTypes.MESSAGE), [])

    async def test_message_without_room_or_sender_is_dropped(self):
        alice = await self.registered("111")
        await self.dispatch(alice, create_join_room_message("r"))

        await self.dispatch(alice, create_chat_message("111", "Alice", "", "no room"))
        await self.dispatch(alice, create_chat_message("", "Alice", "r", "no sender"))
        await self.dispatch(alice, {"type": MessageTypes.MESSAGE})

        self.assertEqual(alice.of_type(MessageTypes.MESSAGE), [])
        self.assertEqual(await self.store.history("r"), [])

    async def test_persistence_failure_still_publishes(self):
        bob = await self.registered("222")
        await self.dispatch(bob, create_join_room_message("111_222"))

        with patch.object(self.store, "append", AsyncMock(side_effect=MessageStoreError("disk full"))):
            await self.dispatch(bob, create_chat_message("111", "Alice", "111_222", "still here"))

        received = bob.of_type(MessageTypes.MESSAGE)
        self.assertEqual([m["text"] for m in received], ["still here"])
        self.assertEqual(await self.store.history("111_222"), [])

    async def test_concurrent_senders_lose_nothing(self):
        listener = self.open_connection("listener")
        await self.dispatch(listener, create_join_room_message("busy"))
        senders = [await self.registered(str(1000 + i)) for i in range(50)]

        await asyncio.gather(*(
            self.dispatch(conn, create_chat_message(conn.identifier, "n", "busy", f"from {conn.identifier}"))
            for conn in senders
        ))

        self.assertEqual(len(await self.store.history("busy")), 50)
        self.assertEqual(len(listener.of_type(MessageTypes.MESSAGE)), 50)

    async def test_unread_member_does_not_slow_sender(self):
        alice = await self.registered("111")
        stuck = self.open_connection("stuck", connection_class=HangingConnection)
        for conn in (alice, stuck):
            await self.dispatch(conn, create_join_room_message("r"))

        started = asyncio.get_running_loop().time()
        for i in range(3):
            await self.relay.dispatch(alice, create_chat_message("111", "Alice", "r", f"m{i}"))
        elapsed = asyncio.get_running_loop().time() - started

        self.assertLess(elapsed, self.router.send_timeout)
        await settle(alice)
        self.assertEqual([m["text"] for m in alice.of_type(MessageTypes.MESSAGE)], ["m0", "m1", "m2"])

        # Once its send times out the stuck member is disconnected
        await wait_until(lambda: self.relay.registry.count() == 1)
        await settle(stuck)
        self.assertTrue(stuck.aborted)
        self.assertEqual(await self.router.members("r"), [alice])

    async def test_leave_room_stops_delivery(self):
        alice = self.open_connection()
        bob = self.open_connection()
        for conn in (alice, bob):
            await self.dispatch(conn, create_join_room_message("r"))
        await self.dispatch(bob, create_leave_room_message("r"))

        await self.dispatch(alice, create_chat_message("111", "Alice", "r", "bye"))

        self.assertEqual(bob.of_type(MessageTypes.MESSAGE), [])
        self.assertEqual(len(alice.of_type(MessageTypes.MESSAGE)), 1)


class TestSignaling(RelayTestCase):

    async def test_call_offer_is_forwarded_unchanged(self):
        caller = await self.registered("111")
        callee = await self.registered("222")
        offer = {"type": "offer", "sdp": "v=0\r\no=- 4611731400430051336 2 IN IP4 127.0.0.1\r\ns=-\r\n"}

        await self.dispatch(caller, create_call_user_message("222", "111", offer))

        calls = callee.of_type(MessageTypes.INCOMING_CALL)
        self.assertEqual(len(calls), 1)
        self.assertEqual(calls[0]["to"], "222")
        self.assertEqual(calls[0]["from"], "111")
        self.assertEqual(json.dumps(calls[0]["offer"]), json.dumps(offer))
        self.assertEqual(caller.of_type(MessageTypes.INCOMING_CALL), [])

    async def test_answer_and_candidates_reach_caller(self):
        caller = await self.registered("111")
        callee = await self.registered("222")

        await self.dispatch(callee, create_answer_call_message("111", "222", {"sdp": "answer"}))
        await self.dispatch(callee, create_ice_candidate_message("111", {"candidate": "c1"}))

        self.assertEqual(caller.of_type(MessageTypes.CALL_ANSWERED)[0]["answer"], {"sdp": "answer"})
        self.assertEqual(caller.of_type(MessageTypes.ICE_CANDIDATE)[0]["candidate"], {"candidate": "c1"})

    async def test_numeric_target_is_accepted(self):
        caller = await self.registered("111")
        callee = await self.registered("222")
        await self.dispatch(caller, create_call_user_message(222, 111, {"sdp": "x"}))
        self.assertEqual(len(callee.of_type(MessageTypes.INCOMING_CALL)), 1)

    async def test_signal_without_target_is_dropped(self):
        caller = await self.registered("111")
        callee = await self.registered("222")

        await self.dispatch(caller, create_call_user_message("", "111", {"sdp": "x"}))
        await self.dispatch(caller, {"type": MessageTypes.ICE_CANDIDATE, "candidate": {}})

        self.assertEqual(callee.sent, [])
        self.assertEqual(caller.sent, [])

    async def test_signals_are_not_persisted(self):
        caller = await self.registered("111")
        await self.registered("222")
        await self.dispatch(caller, create_call_user_message("222", "111", {"sdp": "x"}))
        self.assertEqual(await self.store.history("222"), [])


class TestLifecycle(RelayTestCase):

    async def test_disconnect_removes_from_all_channels(self):
        alice = await self.registered("111")
        await self.dispatch(alice, create_join_room_message("111_222"))

        await self.relay.disconnect(alice)
        await self.relay.disconnect(alice)

        self.assertEqual(self.relay.registry.count(), 0)
        self.assertEqual(await self.router.publish("111", {"type": "incomingCall"}), 0)
        self.assertEqual(await self.router.publish("111_222", {"type": "message"}), 0)
        self.assertEqual(alice.sent, [])

    async def test_disconnect_never_raises(self):
        alice = await self.registered("111")
        with patch.object(self.relay.registry, "on_disconnect", AsyncMock(side_effect=RuntimeError("boom"))):
            await self.relay.disconnect(alice)

    async def test_unknown_and_malformed_frames(self):
        conn = self.open_connection()
        self.assertFalse(await self.dispatch(conn, {"type": "selfDestruct"}))
        self.assertFalse(await self.dispatch(conn, {"no": "type"}))
        self.assertFalse(await self.dispatch(conn, ["registerSocket", "111"]))
        self.assertEqual(conn.sent, [])

    async def test_empty_register_and_join_are_dropped(self):
        conn = self.open_connection()
        self.assertTrue(await self.dispatch(conn, create_register_message("")))
        self.assertTrue(await self.dispatch(conn, create_join_room_message("")))
        self.assertIsNone(conn.identifier)
        self.assertEqual(conn.channels, set())

    async def test_heartbeat(self):
        conn = self.open_connection()
        await self.dispatch(conn, create_heartbeat_message())
        self.assertEqual(len(conn.of_type(MessageTypes.HEARTBEAT_ACK)), 1)


class TestRequests(RelayTestCase):

    async def test_get_history(self):
        alice = await self.registered("111")
        await self.dispatch(alice, create_chat_message("111", "Alice", "111_222", "one"))
        await self.dispatch(alice, create_chat_message("111", "Alice", "111_222", "two"))

        await self.dispatch(alice, create_get_history_message("111_222"))

        reply = alice.of_type(MessageTypes.HISTORY)[0]
        self.assertEqual(reply["count"], 2)
        self.assertEqual([m["text"] for m in reply["messages"]], ["one", "two"])
        self.assertEqual(reply["messages"][0]["senderName"], "Alice")

    async def test_get_history_of_unknown_room(self):
        conn = self.open_connection()
        await self.dispatch(conn, create_get_history_message("nothing_here"))
        reply = conn.of_type(MessageTypes.HISTORY)[0]
        self.assertEqual(reply["messages"], [])
        self.assertEqual(reply["count"], 0)

    async def test_get_history_without_room(self):
        conn = self.open_connection()
        await self.dispatch(conn, {"type": MessageTypes.GET_HISTORY})
        self.assertEqual(conn.of_type(MessageTypes.ERROR)[0]["message"], "missing room")

    async def test_get_history_store_failure(self):
        conn = self.open_connection()
        with patch.object(self.store, "history", AsyncMock(side_effect=MessageStoreError("locked"))):
            await self.dispatch(conn, create_get_history_message("r"))
        self.assertEqual(len(conn.of_type(MessageTypes.ERROR)), 1)

    async def test_account_flow(self):
        conn = self.open_connection()

        await self.dispatch(conn, create_new_account_message("Alice"))
        created = conn.of_type(MessageTypes.ACCOUNT_CREATED)[0]
        self.assertEqual(created["name"], "Alice")

        await self.dispatch(conn, create_set_facetime_message(created["number"], "alice@example.com"))
        self.assertEqual(conn.of_type(MessageTypes.FACETIME_UPDATED)[0]["ok"], True)

        await self.dispatch(conn, create_list_users_message())
        users = conn.of_type(MessageTypes.USERS)[0]["users"]
        self.assertEqual(users, [{"number": created["number"], "name": "Alice", "facetime": "alice@example.com"}])

    async def test_new_account_replaces_old_number(self):
        conn = self.open_connection()
        await self.dispatch(conn, create_new_account_message("Alice"))
        old = conn.of_type(MessageTypes.ACCOUNT_CREATED)[0]["number"]

        await self.dispatch(conn, create_new_account_message("Alice", old))
        new = conn.of_type(MessageTypes.ACCOUNT_CREATED)[1]["number"]

        await self.dispatch(conn, create_list_users_message())
        numbers = [u["number"] for u in conn.of_type(MessageTypes.USERS)[0]["users"]]
        self.assertEqual(numbers, [new])
        self.assertNotIn(old, numbers)

    async def test_new_account_requires_name(self):
        conn = self.open_connection()
        await self.dispatch(conn, create_new_account_message(""))
        self.assertEqual(conn.of_type(MessageTypes.ERROR)[0]["message"], "Name is required")

    async def test_set_facetime_requires_number(self):
        conn = self.open_connection()
        await self.dispatch(conn, create_set_facetime_message("", "x"))
        self.assertEqual(conn.of_type(MessageTypes.ERROR)[0]["message"], "missing number")

    async def test_accounts_unavailable(self):
        relay = RelayService(self.router, self.store)
        conn = RecordingConnection()
        relay.connect(conn)
        await relay.dispatch(conn, create_list_users_message())
        self.assertEqual(conn.of_type(MessageTypes.ERROR)[0]["message"], "accounts unavailable")


if __name__ == '__main__':
    unittest.main()

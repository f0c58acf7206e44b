"""
Relay service module.

One handler per inbound event type. Handlers validate the minimal shape of a
frame, apply it to the registry, router and stores, and publish the result.
Malformed core events are dropped without a reply; request/response events
(history, accounts) answer the requester with an error frame instead.
"""

from typing import Awaitable, Callable, Dict, Optional

from common.constants import MessageTypes, SIGNAL_KIND_BY_EVENT
from common.errors import AccountStoreError, MessageStoreError
from common.protocol_definitions import (
    ChatMessage, SignalingEnvelope, normalize_identifier, utc_timestamp,
    create_history_message, create_account_created_message, create_users_message,
    create_facetime_updated_message, create_heartbeat_ack_message, create_error_message
)
from server.registry.connection_registry import ConnectionRegistry
from server.router.channel_router import ChannelRouter
from server.signaling.signaling_forwarder import SignalingForwarder
from server.store.account_store import AccountStore
from server.store.message_store import MessageStore
from server.transport.connections import Connection
from server.utils.logger import logger

Handler = Callable[[Connection, dict], Awaitable[None]]


class RelayService:
    """Event dispatch for the relay."""

    def __init__(self, router: ChannelRouter, store: MessageStore,
                 accounts: Optional[AccountStore] = None,
                 registry: Optional[ConnectionRegistry] = None,
                 forwarder: Optional[SignalingForwarder] = None):
        self.router = router
        self.store = store
        self.accounts = accounts
        self.registry = registry or ConnectionRegistry(router)
        self.forwarder = forwarder or SignalingForwarder(router)

        self.handlers: Dict[str, Handler] = {
            MessageTypes.REGISTER_SOCKET: self.handle_register,
            MessageTypes.JOIN_ROOM: self.handle_join_room,
            MessageTypes.LEAVE_ROOM: self.handle_leave_room,
            MessageTypes.MESSAGE: self.handle_message,
            MessageTypes.CALL_USER: self.handle_signal,
            MessageTypes.ANSWER_CALL: self.handle_signal,
            MessageTypes.ICE_CANDIDATE: self.handle_signal,
            MessageTypes.GET_HISTORY: self.handle_get_history,
            MessageTypes.NEW_ACCOUNT: self.handle_new_account,
            MessageTypes.LIST_USERS: self.handle_list_users,
            MessageTypes.SET_FACETIME: self.handle_set_facetime,
            MessageTypes.HEARTBEAT: self.handle_heartbeat,
        }

    # Lifecycle

    def connect(self, connection: Connection):
        """Start tracking a freshly accepted connection."""
        self.registry.add(connection)
        logger.log_connection(connection.peer, connection.connection_id, connection.transport)

    async def disconnect(self, connection: Connection):
        """Release the connection's memberships. Never raises."""
        try:
            await self.registry.on_disconnect(connection)
        except Exception as e:
            logger.log_error(f"disconnect of cid={connection.connection_id}", e)

    async def dispatch(self, connection: Connection, message) -> bool:
        """Route one decoded frame to its handler. Returns False if the frame was not handled."""
        if not isinstance(message, dict):
            logger.warning(f"Dropping non-object frame from cid={connection.connection_id}")
            return False

        msg_type = message.get('type')
        handler = self.handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            logger.warning(f"Unknown message type '{msg_type}' from cid={connection.connection_id}")
            return False

        logger.debug(f"Received from cid={connection.connection_id}: {msg_type}")
        await handler(connection, message)
        return True

    # Core events

    async def handle_register(self, connection: Connection, data: dict):
        """Join the identity channel named after the sender's number."""
        await self.registry.associate(connection, data.get('number', data.get('identifier')))

    async def handle_join_room(self, connection: Connection, data: dict):
        room = normalize_identifier(data.get('room'))
        if room is None:
            return
        if await self.router.subscribe(connection, room):
            logger.log_join(room, connection.connection_id)

    async def handle_leave_room(self, connection: Connection, data: dict):
        room = normalize_identifier(data.get('room'))
        if room is None:
            return
        await self.router.unsubscribe(connection, room)

    async def handle_message(self, connection: Connection, data: dict):
        """Persist a chat message, then broadcast it to the room."""
        room = normalize_identifier(data.get('room'))
        sender_number = normalize_identifier(data.get('senderNumber'))
        if room is None or sender_number is None:
            logger.debug(f"Dropping message without room/senderNumber from cid={connection.connection_id}")
            return

        message = ChatMessage(
            sender_number=sender_number,
            sender_name=data.get('senderName'),
            room=room,
            text=data.get('text'),
            timestamp=utc_timestamp()
        )

        # Durability is best-effort: delivery goes ahead even if the insert fails
        try:
            message = await self.store.append(message)
        except MessageStoreError as e:
            logger.log_error("message insert", e)

        delivered = await self.router.publish(room, message.to_wire())
        logger.log_message(sender_number, message.sender_name, room, message.text, delivered)

    async def handle_signal(self, connection: Connection, data: dict):
        """Forward callUser / answerCall / iceCandidate to the target's identity channel."""
        envelope = SignalingEnvelope(
            kind=SIGNAL_KIND_BY_EVENT[data['type']],
            to_identifier=normalize_identifier(data.get('to')),
            from_identifier=normalize_identifier(data.get('from')) or connection.identifier,
            payload={key: value for key, value in data.items() if key != 'type'}
        )
        await self.forwarder.forward(envelope)

    # Request/response events

    async def handle_get_history(self, connection: Connection, data: dict):
        room = normalize_identifier(data.get('room'))
        if room is None:
            await connection.send(create_error_message("missing room"))
            return

        try:
            messages = await self.store.history(room)
        except MessageStoreError as e:
            logger.log_error("history", e)
            await connection.send(create_error_message("history unavailable"))
            return

        logger.info(f"History of '{room}' ({len(messages)} messages) requested by cid={connection.connection_id}")
        await connection.send(create_history_message(room, messages))

    async def handle_new_account(self, connection: Connection, data: dict):
        if self.accounts is None:
            await connection.send(create_error_message("accounts unavailable"))
            return
        name = data.get('name')
        if not name or not isinstance(name, str):
            await connection.send(create_error_message("Name is required"))
            return

        try:
            account = await self.accounts.create_account(name, normalize_identifier(data.get('oldNumber')))
        except AccountStoreError as e:
            logger.log_error("new account", e)
            await connection.send(create_error_message("account creation failed"))
            return

        logger.log_account_created(account.number, account.name)
        await connection.send(create_account_created_message(account))

    async def handle_list_users(self, connection: Connection, data: dict):
        if self.accounts is None:
            await connection.send(create_error_message("accounts unavailable"))
            return

        try:
            users = await self.accounts.list_users()
        except AccountStoreError as e:
            logger.log_error("list users", e)
            await connection.send(create_error_message("user list unavailable"))
            return

        await connection.send(create_users_message(users))

    async def handle_set_facetime(self, connection: Connection, data: dict):
        if self.accounts is None:
            await connection.send(create_error_message("accounts unavailable"))
            return
        number = normalize_identifier(data.get('number'))
        if number is None:
            await connection.send(create_error_message("missing number"))
            return

        try:
            updated = await self.accounts.set_facetime(number, data.get('facetime'))
        except AccountStoreError as e:
            logger.log_error("set facetime", e)
            await connection.send(create_error_message("facetime update failed"))
            return

        await connection.send(create_facetime_updated_message(updated))

    async def handle_heartbeat(self, connection: Connection, data: dict):
        logger.debug(f"Heartbeat from cid={connection.connection_id}")
        await connection.send(create_heartbeat_ack_message())

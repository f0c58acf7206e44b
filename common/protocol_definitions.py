"""
Protocol definitions for the real-time messaging relay.

This module defines the message structures and data formats used in communication
between client and server components. Every frame on the wire is a single JSON
object whose "type" field names the event.
"""

from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from datetime import datetime, timezone

from common.constants import MessageTypes, ROOM_SEPARATOR


@dataclass(frozen=True)
class ChatMessage:
    """Chat message structure."""
    sender_number: str
    sender_name: str
    room: str
    text: str
    timestamp: str
    message_id: Optional[int] = None

    def to_wire(self) -> Dict[str, Any]:
        """Broadcast form delivered to room members."""
        return {
            "type": MessageTypes.MESSAGE,
            "senderNumber": self.sender_number,
            "senderName": self.sender_name,
            "room": self.room,
            "text": self.text,
            "timestamp": self.timestamp
        }

    def to_history_entry(self) -> Dict[str, Any]:
        """Form used inside a history reply."""
        return {
            "senderNumber": self.sender_number,
            "senderName": self.sender_name,
            "text": self.text,
            "timestamp": self.timestamp
        }


@dataclass(frozen=True)
class SignalingEnvelope:
    """Call-setup payload forwarded to the target's identity channel."""
    kind: str
    to_identifier: Optional[str]
    from_identifier: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UserAccount:
    """Registered participant."""
    number: str
    name: str
    facetime: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "name": self.name,
            "facetime": self.facetime
        }


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.strftime('%Y-%m-%dT%H:%M:%S.') + f"{now.microsecond // 1000:03d}Z"


def normalize_identifier(value: Any) -> Optional[str]:
    """
    Coerce an identifier, room or target field to a string.

    Returns None for missing or empty values. Numbers are accepted and
    stringified since clients commonly send account numbers as integers;
    whole floats print without a fraction (111.0 -> "111").
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str) or value == '':
        return None
    return value


def room_name(first: Any, second: Any) -> str:
    """Deterministic direct-message room for two identifiers, independent of argument order."""
    return ROOM_SEPARATOR.join(sorted([str(first), str(second)]))


# Client to Server

def create_register_message(number: str) -> Dict[str, Any]:
    """Create a register socket message."""
    return {
        "type": MessageTypes.REGISTER_SOCKET,
        "number": number
    }


def create_join_room_message(room: str) -> Dict[str, Any]:
    """Create a join room message."""
    return {
        "type": MessageTypes.JOIN_ROOM,
        "room": room
    }


def create_leave_room_message(room: str) -> Dict[str, Any]:
    """Create a leave room message."""
    return {
        "type": MessageTypes.LEAVE_ROOM,
        "room": room
    }


def create_chat_message(sender_number: str, sender_name: str, room: str, text: str) -> Dict[str, Any]:
    """Create a chat message."""
    return {
        "type": MessageTypes.MESSAGE,
        "senderNumber": sender_number,
        "senderName": sender_name,
        "room": room,
        "text": text
    }


def create_call_user_message(to: str, from_: str, offer: Any) -> Dict[str, Any]:
    """Create a call offer message."""
    return {
        "type": MessageTypes.CALL_USER,
        "to": to,
        "from": from_,
        "offer": offer
    }


def create_answer_call_message(to: str, from_: str, answer: Any) -> Dict[str, Any]:
    """Create a call answer message."""
    return {
        "type": MessageTypes.ANSWER_CALL,
        "to": to,
        "from": from_,
        "answer": answer
    }


def create_ice_candidate_message(to: str, candidate: Any) -> Dict[str, Any]:
    """Create an ICE candidate message."""
    return {
        "type": MessageTypes.ICE_CANDIDATE,
        "to": to,
        "candidate": candidate
    }


def create_get_history_message(room: str) -> Dict[str, Any]:
    """Create a get history message."""
    return {
        "type": MessageTypes.GET_HISTORY,
        "room": room
    }


def create_new_account_message(name: str, old_number: Optional[str] = None) -> Dict[str, Any]:
    """Create a new account message."""
    message = {
        "type": MessageTypes.NEW_ACCOUNT,
        "name": name
    }
    if old_number:
        message["oldNumber"] = old_number
    return message


def create_list_users_message() -> Dict[str, Any]:
    """Create a list users message."""
    return {
        "type": MessageTypes.LIST_USERS
    }


def create_set_facetime_message(number: str, facetime: Optional[str]) -> Dict[str, Any]:
    """Create a set facetime message."""
    return {
        "type": MessageTypes.SET_FACETIME,
        "number": number,
        "facetime": facetime
    }


def create_heartbeat_message() -> Dict[str, Any]:
    """Create a heartbeat message."""
    return {
        "type": MessageTypes.HEARTBEAT,
        "timestamp": utc_timestamp()
    }


# Server to Client

def create_signal_message(envelope: SignalingEnvelope, event_type: str) -> Dict[str, Any]:
    """Relay a signaling payload unchanged apart from its event type."""
    message = dict(envelope.payload)
    message["type"] = event_type
    return message


def create_history_message(room: str, messages: List[ChatMessage]) -> Dict[str, Any]:
    """Create a history message."""
    return {
        "type": MessageTypes.HISTORY,
        "room": room,
        "messages": [message.to_history_entry() for message in messages],
        "count": len(messages)
    }


def create_account_created_message(account: UserAccount) -> Dict[str, Any]:
    """Create an account created message."""
    return {
        "type": MessageTypes.ACCOUNT_CREATED,
        "number": account.number,
        "name": account.name
    }


def create_users_message(accounts: List[UserAccount]) -> Dict[str, Any]:
    """Create a users message."""
    return {
        "type": MessageTypes.USERS,
        "users": [account.to_dict() for account in accounts]
    }


def create_facetime_updated_message(ok: bool = True) -> Dict[str, Any]:
    """Create a facetime updated message."""
    return {
        "type": MessageTypes.FACETIME_UPDATED,
        "ok": ok
    }


def create_heartbeat_ack_message() -> Dict[str, Any]:
    """Create a heartbeat acknowledgment message."""
    return {
        "type": MessageTypes.HEARTBEAT_ACK,
        "timestamp": utc_timestamp()
    }


def create_error_message(message: str) -> Dict[str, Any]:
    """Create an error message."""
    return {
        "type": MessageTypes.ERROR,
        "message": message
    }

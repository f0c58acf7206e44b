"""
Shared constants for the real-time messaging relay.

This module contains all constants used across client and server components.
"""

# Network Configuration
DEFAULT_HOST = 'localhost'
DEFAULT_SERVER_HOST = '0.0.0.0'
DEFAULT_PORT = 9000
DEFAULT_WS_PORT = 9001

# Limits
MAX_MESSAGE_SIZE = 1024 * 1024  # 1MB per frame
OUTBOX_SIZE = 256  # queued outbound frames per connection

# Timeouts
SEND_TIMEOUT = 5.0  # seconds per member per publish
WS_PING_INTERVAL = 20  # seconds
WS_PING_TIMEOUT = 20  # seconds

# Storage
DEFAULT_DB_PATH = 'chat.db'
MEMORY_DB = ':memory:'

# Identifiers
ACCOUNT_NUMBER_MIN = 100000000
ACCOUNT_NUMBER_MAX = 999999999
ACCOUNT_NUMBER_ATTEMPTS = 10

# Rooms
ROOM_SEPARATOR = '_'

# Logging
LOG_DIR = 'logs'
CHAT_LOG_FILE = 'chat_history.log'
SIGNALING_LOG_FILE = 'signaling.log'


# Message Types
class MessageTypes:
    # Client to Server
    REGISTER_SOCKET = 'registerSocket'
    JOIN_ROOM = 'joinRoom'
    LEAVE_ROOM = 'leaveRoom'
    MESSAGE = 'message'
    CALL_USER = 'callUser'
    ANSWER_CALL = 'answerCall'
    ICE_CANDIDATE = 'iceCandidate'
    GET_HISTORY = 'getHistory'
    NEW_ACCOUNT = 'newAccount'
    LIST_USERS = 'listUsers'
    SET_FACETIME = 'setFacetime'
    HEARTBEAT = 'heartbeat'

    # Server to Client
    INCOMING_CALL = 'incomingCall'
    CALL_ANSWERED = 'callAnswered'
    HISTORY = 'history'
    ACCOUNT_CREATED = 'accountCreated'
    USERS = 'users'
    FACETIME_UPDATED = 'facetimeUpdated'
    HEARTBEAT_ACK = 'heartbeat_ack'
    ERROR = 'error'


# Signaling kinds and the outbound event each one is relayed as
class SignalKinds:
    OFFER = 'offer'
    ANSWER = 'answer'
    ICE_CANDIDATE = 'ice-candidate'


SIGNAL_KIND_BY_EVENT = {
    MessageTypes.CALL_USER: SignalKinds.OFFER,
    MessageTypes.ANSWER_CALL: SignalKinds.ANSWER,
    MessageTypes.ICE_CANDIDATE: SignalKinds.ICE_CANDIDATE,
}

OUTBOUND_EVENT_BY_KIND = {
    SignalKinds.OFFER: MessageTypes.INCOMING_CALL,
    SignalKinds.ANSWER: MessageTypes.CALL_ANSWERED,
    SignalKinds.ICE_CANDIDATE: MessageTypes.ICE_CANDIDATE,
}

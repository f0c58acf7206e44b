#!/usr/bin/env python3
"""
Real-time Messaging Relay - Command-line Client

Connects to the relay over TCP, registers an account number and chats with
one peer in their shared direct-message room.

Usage:
    python main_client.py --name alice [--number 111111111] --peer 222222222

Commands inside the session:
    /history     Show the stored messages of the room
    /users       List registered users
    /quit        Leave
    anything else is sent as a chat message
"""

import argparse
import asyncio
import sys

from client.chat.chat_client import RelayClient
from common.constants import DEFAULT_HOST, DEFAULT_PORT, MessageTypes
from common.protocol_definitions import room_name, create_get_history_message, create_list_users_message


def print_message(message: dict):
    msg_type = message.get('type')
    if msg_type == MessageTypes.MESSAGE:
        print(f"[{message.get('timestamp', '')[:19]}] {message.get('senderName')}: {message.get('text')}")
    elif msg_type == MessageTypes.INCOMING_CALL:
        print(f"[CALL] Incoming call from {message.get('from')}")
    elif msg_type == MessageTypes.HISTORY:
        print(f"[HISTORY] {message.get('count', 0)} message(s) in {message.get('room')}")
        for entry in message.get('messages', []):
            print(f"  [{(entry.get('timestamp') or '')[:19]}] {entry.get('senderName')}: {entry.get('text')}")
    elif msg_type == MessageTypes.USERS:
        for user in message.get('users', []):
            print(f"  {user.get('number')}  {user.get('name')}")
    elif msg_type == MessageTypes.ERROR:
        print(f"[ERROR] {message.get('message')}")


async def print_incoming(client: RelayClient):
    while True:
        print_message(await client.receive())


async def run(args) -> int:
    client = RelayClient(args.host, args.port)
    try:
        await client.connect()
    except OSError as e:
        print(f"[ERROR] Failed to connect to {args.host}:{args.port}: {e}")
        return 1

    number = args.number
    if not number:
        try:
            account = await client.create_account(args.name)
        except (RuntimeError, asyncio.TimeoutError) as e:
            print(f"[ERROR] Failed to create account: {str(e) or 'no reply from server'}")
            await client.close()
            return 1
        number = account['number']
        print(f"[INFO] Your account number is {number}")

    await client.register(number)
    room = room_name(number, args.peer)
    await client.join_room(room)
    print(f"[INFO] Chatting in room {room}")
    print_message(await client.request_history(room))

    printer = asyncio.create_task(print_incoming(client))
    loop = asyncio.get_running_loop()
    try:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            line = line.strip()
            if not line:
                continue
            if line == '/quit':
                break
            if line == '/history':
                await client.send_message(create_get_history_message(room))
            elif line == '/users':
                await client.send_message(create_list_users_message())
            else:
                await client.send_chat(number, args.name, room, line)
    finally:
        printer.cancel()
        await client.close()
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description='Relay chat client')
    parser.add_argument('--host', type=str, default=DEFAULT_HOST,
                        help=f'Server host (default: {DEFAULT_HOST})')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                        help=f'Server TCP port (default: {DEFAULT_PORT})')
    parser.add_argument('--name', type=str, required=True,
                        help='Display name')
    parser.add_argument('--number', type=str, default=None,
                        help='Existing account number (a new account is created if omitted)')
    parser.add_argument('--peer', type=str, required=True,
                        help='Account number of the person to chat with')
    args = parser.parse_args(argv)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())

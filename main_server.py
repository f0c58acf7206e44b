#!/usr/bin/env python3
"""
Real-time Messaging Relay - Main Entry Point

Unified entry point for the relay server that provides:
- Identity registration and room membership
- Persisted direct/group chat with history
- WebRTC call signaling (offer, answer, ICE candidates)

Usage:
    python main_server.py

Optional arguments:
    --host HOST           Bind address (default: 0.0.0.0, env RELAY_HOST)
    --port PORT           TCP port (default: 9000, env PORT)
    --ws-port PORT        WebSocket port, 0 to disable (default: 9001, env RELAY_WS_PORT)
    --db PATH             SQLite database, ':memory:' for no persistence (default: chat.db, env RELAY_DB)
    --logs-dir DIR        Transcript directory (default: logs)
    --debug               Verbose logging
"""

import argparse
import asyncio
import logging
import sys

from server.main_server import RelayServer
from server.utils.config import ServerConfig
from server.utils.logger import logger


def parse_args(argv=None):
    defaults = ServerConfig.from_env()
    parser = argparse.ArgumentParser(description='Real-time Messaging Relay')
    parser.add_argument('--host', type=str, default=defaults.host,
                        help=f'Host to bind to (default: {defaults.host})')
    parser.add_argument('--port', type=int, default=defaults.port,
                        help=f'TCP port for line-delimited JSON (default: {defaults.port})')
    parser.add_argument('--ws-port', type=int, default=defaults.ws_port or 0,
                        help=f'WebSocket port, 0 disables it (default: {defaults.ws_port})')
    parser.add_argument('--db', type=str, default=defaults.db_path,
                        help=f'SQLite database path (default: {defaults.db_path})')
    parser.add_argument('--logs-dir', type=str, default=defaults.logs_dir,
                        help=f'Directory for chat/signaling transcripts (default: {defaults.logs_dir})')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging')
    return parser.parse_args(argv)


def build_config(args) -> ServerConfig:
    config = ServerConfig(
        host=args.host,
        port=args.port,
        ws_port=args.ws_port or None,
        db_path=args.db
    )
    config.logs_dir = args.logs_dir
    return config


def main(argv=None):
    args = parse_args(argv)
    config = build_config(args)
    logger.configure(logging.DEBUG if args.debug else logging.INFO, config.logs_dir)

    try:
        server = RelayServer(config)
        logger.info(f"Relay binding to {config.get_connection_info()}")
        asyncio.run(server.serve_forever())
    except KeyboardInterrupt:
        logger.info("Server shutting down...")
    except Exception as e:
        logger.log_error("server", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

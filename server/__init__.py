"""
Server package for the real-time messaging relay.

This package contains all server-side functionality including:
- Connection registry and identity channels
- Channel routing and fan-out
- Chat message and account persistence
- Call signaling relay
- Configuration and utilities
"""

"""
Registry module for server-side connection tracking.

Handles:
- Live connection bookkeeping
- Identifier registration
- Disconnect cleanup
"""

"""
Storage module for chat history and accounts.

Handles:
- Append-only chat message log (memory or SQLite)
- Account numbers and the user directory
"""

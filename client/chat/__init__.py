"""
Chat module for client-side relay access.

Handles:
- Registration and room membership
- Sending chat and signaling frames
- History and account requests
"""

"""
Exception types shared by relay components.
"""


class RelayError(Exception):
    """Base class for relay errors."""


class MessageStoreError(RelayError):
    """Raised when a chat message cannot be persisted or read back."""


class AccountStoreError(RelayError):
    """Raised when an account operation fails."""

"""
Error types raised by the interaction engine.

Conditions that can be recovered locally (a read that is still pending)
never raise; the calling operation returns without effect instead.
"""

from typing import Sequence


class InteractionError(Exception):
    """Base class for all engine errors."""


class ValidationError(InteractionError):
    """A draft cannot be built because its calendar, member or address is missing."""


class MissingKeyError(InteractionError):
    """An address or calendar key is missing or not decrypted. Blocks that save only."""

    def __init__(self, message: str, owner_id: str = ""):
        super().__init__(message)
        self.owner_id = owner_id


class ReadError(InteractionError):
    """The source component of a recurring series could not be read."""


class StoreError(InteractionError):
    """A call to the event store failed. The draft is kept so the user can retry."""
    reason = "store"


class NetworkError(StoreError):
    reason = "network"


class DecryptError(StoreError):
    reason = "decrypt"


class PermissionDeniedError(StoreError):
    reason = "permission"


class UserCancelled(InteractionError):
    """A confirmation was declined. Callers resolve this as a no-op."""


class FatalSequenceError(InteractionError):
    """
    A multi-step sequence failed after some of its steps were committed.
    
    Nothing is rolled back; the client state can no longer be reconciled
    and needs a full reload.
    """

    def __init__(self, message: str, committed_steps: Sequence[str] = ()):
        super().__init__(message)
        self.committed_steps = tuple(committed_steps)

"""Exception taxonomy for the reconciliation client."""

from __future__ import annotations


class RoomChatError(Exception):
    """Base class for every error raised by the client core."""


class NotFoundError(RoomChatError):
    """A referenced room or message is absent."""


class RoomNotFoundError(NotFoundError):
    def __init__(self, room_id: str) -> None:
        super().__init__(f"Room {room_id!r} not found")
        self.room_id = room_id


class InvalidStateError(RoomChatError):
    """An operation was attempted in the wrong room-activation state."""


class IdentityMissingError(InvalidStateError):
    def __init__(self, room_id: str) -> None:
        super().__init__(f"No participant identity stored for room {room_id!r}")
        self.room_id = room_id


class TransportError(RoomChatError):
    """Failure reported by the transport, persistence or blob collaborators."""


class AccessDeniedError(RoomChatError):
    """Wrong room password, or a participant acting on someone else's message."""

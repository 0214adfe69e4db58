"""Records returned by the room store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ParticipantGrant:
    room_id: str
    user_id: str
    display_name: str
    token: str


@dataclass(frozen=True)
class RoomAccess:
    room_id: str
    user_id: str
    display_name: str
    room: dict[str, Any]

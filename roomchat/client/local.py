"""In-process platform: a backend room store plus an event bus, wired like the relay."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from roomchat.backend.rows import settings_payload
from roomchat.backend.security import generate_token
from roomchat.backend.store import RoomStore

from .errors import TransportError
from .events import EventKind, Topic, decode_message_row, decode_room_row, encode_draft
from .models import Message, MessageDraft, Room
from .transport import InMemoryEventBus

logger = logging.getLogger(__name__)


@contextmanager
def _platform_call(operation: str) -> Iterator[None]:
    try:
        yield
    except TransportError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise TransportError(f"{operation} failed: {exc}") from exc


class LocalPlatform:
    """Implements the persistence contract on top of a ``RoomStore``.

    Every successful mutation is published on ``bus`` exactly as the relay
    broadcasts it, so clients sharing the bus observe each other's changes.
    """

    def __init__(self, store: RoomStore, bus: InMemoryEventBus) -> None:
        self.store = store
        self.bus = bus

    async def join_room(self, room_id: str, password: str, user_id: str, display_name: str) -> bool | None:
        with _platform_call("join room"):
            verdict = self.store.verify_password(room_id, password)
            if not verdict:
                return verdict
            self.store.join_room(
                room_id=room_id,
                password=password,
                display_name=display_name,
                user_id=user_id,
                token=generate_token(),
            )
        return True

    async def fetch_room(self, room_id: str) -> Room | None:
        with _platform_call("fetch room"):
            row = self.store.fetch_room(room_id)
        if row is None:
            return None
        return decode_room_row(row)

    async def fetch_messages(self, room_id: str) -> list[Message]:
        with _platform_call("fetch messages"):
            rows = self.store.fetch_messages(room_id)
        return [decode_message_row(row) for row in rows]

    async def create_message(self, draft: MessageDraft, pending_id: str) -> Message:
        with _platform_call("create message"):
            row = self.store.create_message(draft.room_id, encode_draft(draft, pending_id))
        self.bus.publish(Topic.MESSAGES, draft.room_id, EventKind.INSERT, row)
        return decode_message_row(row)

    async def update_message(self, room_id: str, message_id: str, patch: dict[str, Any]) -> None:
        with _platform_call("update message"):
            row = None
            if self._in_room(room_id, message_id):
                row = self.store.update_message(message_id, patch)
        if row is None:
            logger.info("Update for message %s in room %s matched nothing", message_id, room_id)
            return
        self.bus.publish(Topic.MESSAGES, room_id, EventKind.UPDATE, row)

    async def delete_message(self, room_id: str, message_id: str) -> None:
        with _platform_call("delete message"):
            row = None
            if self._in_room(room_id, message_id):
                row = self.store.delete_message(message_id)
        if row is None:
            return
        self.bus.publish(Topic.MESSAGES, room_id, EventKind.DELETE, {"id": message_id})

    async def update_room(self, room_id: str, patch: dict[str, Any]) -> None:
        with _platform_call("update room"):
            row = self.store.update_room(room_id, patch)
        if row is None:
            raise TransportError(f"Room {room_id!r} no longer exists")
        self.bus.publish(Topic.ROOM_CONFIG, room_id, EventKind.UPDATE, settings_payload(room_id, patch))

    def _in_room(self, room_id: str, message_id: str) -> bool:
        row = self.store.get_message(message_id)
        return row is not None and row["room_id"] == room_id

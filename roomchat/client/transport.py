"""Collaborator contracts and in-process implementations of the transport and blob store."""

from __future__ import annotations

import itertools
import logging
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Callable, Mapping, Protocol

from .events import EventKind, Topic
from .models import Message, MessageDraft, Room

logger = logging.getLogger(__name__)

EventCallback = Callable[[Mapping[str, Any]], None]


@dataclass(frozen=True)
class SubscriptionHandle:
    topic: Topic
    room_id: str
    subscription_id: int


class EventTransport(Protocol):
    async def subscribe(self, topic: Topic, room_id: str, callback: EventCallback) -> SubscriptionHandle:
        """Deliver ``{kind, payload}`` notifications for ``topic`` in ``room_id`` until unsubscribed.

        Returns once the subscription is live; raises ``TransportError`` when
        it cannot be established.
        """

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Stop delivery for ``handle``; unknown handles are ignored."""


class RoomPlatform(Protocol):
    async def join_room(self, room_id: str, password: str, user_id: str, display_name: str) -> bool | None:
        """Register the participant; ``False`` for a wrong password, ``None`` when the room is absent."""

    async def fetch_room(self, room_id: str) -> Room | None:
        """Return the room, or ``None`` when it does not exist."""

    async def fetch_messages(self, room_id: str) -> list[Message]:
        """Return the room's messages in ascending creation order."""

    async def create_message(self, draft: MessageDraft, pending_id: str) -> Message:
        """Persist ``draft`` and return it with its canonical id and timestamp."""

    async def update_message(self, room_id: str, message_id: str, patch: dict[str, Any]) -> None:
        """Persist a reaction patch; a message that no longer exists is not an error."""

    async def delete_message(self, room_id: str, message_id: str) -> None:
        """Delete a message; deleting an absent message is not an error."""

    async def update_room(self, room_id: str, patch: dict[str, Any]) -> None:
        """Persist a room settings patch."""


class BlobStorage(Protocol):
    async def upload(self, room_id: str, name: str, content: bytes, mime_type: str) -> str:
        """Store ``content`` and return its public url."""


class InMemoryEventBus:
    """Per-topic, per-room publish/subscribe with synchronous in-order delivery."""

    def __init__(self) -> None:
        self._subscribers: dict[tuple[Topic, str], dict[int, EventCallback]] = defaultdict(dict)
        self._ids = itertools.count(1)

    async def subscribe(self, topic: Topic, room_id: str, callback: EventCallback) -> SubscriptionHandle:
        handle = SubscriptionHandle(topic=Topic(topic), room_id=room_id, subscription_id=next(self._ids))
        self._subscribers[(handle.topic, room_id)][handle.subscription_id] = callback
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        key = (handle.topic, handle.room_id)
        callbacks = self._subscribers.get(key)
        if callbacks is None:
            return
        callbacks.pop(handle.subscription_id, None)
        if not callbacks:
            self._subscribers.pop(key, None)

    def subscriber_count(self, topic: Topic, room_id: str) -> int:
        return len(self._subscribers.get((Topic(topic), room_id), {}))

    def publish(self, topic: Topic, room_id: str, kind: EventKind, payload: Mapping[str, Any]) -> int:
        callbacks = list(self._subscribers.get((Topic(topic), room_id), {}).values())
        delivered = 0
        for callback in callbacks:
            try:
                callback({"kind": EventKind(kind).value, "payload": dict(payload)})
            except Exception:  # noqa: BLE001
                logger.exception("Subscriber for %s/%s failed on %s event", topic, room_id, kind)
                continue
            delivered += 1
        return delivered


class InMemoryBlobStorage:
    def __init__(self, bucket: str = "chat-files") -> None:
        self.bucket = bucket
        self._blobs: dict[str, tuple[bytes, str]] = {}

    async def upload(self, room_id: str, name: str, content: bytes, mime_type: str) -> str:
        suffix = PurePosixPath(name).suffix
        key = f"{room_id}/{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{suffix}"
        url = f"memory://{self.bucket}/{key}"
        self._blobs[url] = (bytes(content), mime_type)
        return url

    def read(self, url: str) -> bytes | None:
        blob = self._blobs.get(url)
        return blob[0] if blob is not None else None

"""Platform and event transport backed by a running relay over HTTP and websockets."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from typing import Any
from urllib.parse import quote, urlencode

import httpx
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from .config import ClientSettings
from .errors import TransportError
from .events import Topic, decode_message_row, decode_room_row, encode_draft
from .models import Message, MessageDraft, Room
from .transport import EventCallback, SubscriptionHandle

logger = logging.getLogger(__name__)

MESSAGE_CREATE_FIELDS = (
    "content",
    "message_type",
    "file_url",
    "file_name",
    "file_type",
    "file_size",
    "reply_to",
    "client_ref",
)


def _room_path(room_id: str, *parts: str) -> str:
    segments = [quote(room_id, safe=""), *(quote(part, safe="") for part in parts)]
    return "/api/rooms/" + "/".join(segments)


def _error_detail(response: httpx.Response) -> str:
    try:
        return str(response.json().get("detail", response.text))
    except (ValueError, AttributeError):
        return response.text


def _field(operation: str, response: httpx.Response, key: str) -> Any:
    try:
        return response.json()[key]
    except (ValueError, KeyError, TypeError) as exc:
        raise TransportError(f"{operation} returned an unexpected body") from exc


def websocket_url(base_url: str, room_id: str, token: str, topic: Topic) -> str:
    base = base_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    query = urlencode({"token": token, "topic": Topic(topic).value})
    return f"{base}/ws/rooms/{quote(room_id, safe='')}?{query}"


class RelayPlatform:
    """``RoomPlatform`` speaking to the relay's ``/api/rooms`` endpoints.

    Every call after joining is authorised with the participant token the
    relay issued for that room. Tokens live only as long as this object.
    """

    def __init__(self, http: httpx.AsyncClient) -> None:
        self.http = http
        self._tokens: dict[str, str] = {}

    @property
    def base_url(self) -> str:
        return str(self.http.base_url)

    def token_for(self, room_id: str) -> str:
        token = self._tokens.get(room_id)
        if token is None:
            raise TransportError(f"Room {room_id!r} has not been joined through this relay")
        return token

    async def join_room(self, room_id: str, password: str, user_id: str, display_name: str) -> bool | None:
        response = await self._request(
            "join room",
            "POST",
            _room_path(room_id, "join"),
            json={"password": password, "display_name": display_name, "user_id": user_id},
        )
        if response.status_code == 404:
            return None
        if response.status_code == 403:
            return False
        self._check("join room", response)
        self._tokens[room_id] = _field("join room", response, "token")
        logger.info("Joined room %s through relay %s", room_id, self.base_url)
        return True

    async def fetch_room(self, room_id: str) -> Room | None:
        response = await self._request(
            "fetch room", "GET", _room_path(room_id), params={"token": self.token_for(room_id)}
        )
        if response.status_code == 404:
            return None
        self._check("fetch room", response)
        return decode_room_row(_field("fetch room", response, "room"))

    async def fetch_messages(self, room_id: str) -> list[Message]:
        response = await self._request(
            "fetch messages", "GET", _room_path(room_id, "messages"), params={"token": self.token_for(room_id)}
        )
        self._check("fetch messages", response)
        return [decode_message_row(row) for row in _field("fetch messages", response, "messages")]

    async def create_message(self, draft: MessageDraft, pending_id: str) -> Message:
        row = encode_draft(draft, pending_id)
        message = {field: row[field] for field in MESSAGE_CREATE_FIELDS if field in row}
        response = await self._request(
            "create message",
            "POST",
            _room_path(draft.room_id, "messages"),
            json={"token": self.token_for(draft.room_id), "message": message},
        )
        self._check("create message", response)
        return decode_message_row(_field("create message", response, "message"))

    async def update_message(self, room_id: str, message_id: str, patch: dict[str, Any]) -> None:
        response = await self._request(
            "update message",
            "PATCH",
            _room_path(room_id, "messages", message_id),
            json={"token": self.token_for(room_id), "patch": patch},
        )
        if response.status_code == 404:
            logger.info("Update for message %s in room %s matched nothing", message_id, room_id)
            return
        self._check("update message", response)

    async def delete_message(self, room_id: str, message_id: str) -> None:
        response = await self._request(
            "delete message",
            "DELETE",
            _room_path(room_id, "messages", message_id),
            params={"token": self.token_for(room_id)},
        )
        if response.status_code == 404:
            logger.info("Message %s in room %s was already gone", message_id, room_id)
            return
        self._check("delete message", response)

    async def update_room(self, room_id: str, patch: dict[str, Any]) -> None:
        response = await self._request(
            "update room",
            "PATCH",
            _room_path(room_id, "settings"),
            json={"token": self.token_for(room_id), "patch": patch},
        )
        self._check("update room", response)

    async def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{operation} failed: {exc}") from exc

    @staticmethod
    def _check(operation: str, response: httpx.Response) -> None:
        if response.is_error:
            raise TransportError(
                f"{operation} failed with HTTP {response.status_code}: {_error_detail(response)}"
            )


class RelayEventTransport:
    """``EventTransport`` holding one relay websocket per subscription."""

    def __init__(self, platform: RelayPlatform) -> None:
        self._platform = platform
        self._ids = itertools.count(1)
        self._listeners: dict[int, asyncio.Task[None]] = {}
        self._stopping: set[asyncio.Task[None]] = set()

    async def subscribe(self, topic: Topic, room_id: str, callback: EventCallback) -> SubscriptionHandle:
        topic = Topic(topic)
        url = websocket_url(self._platform.base_url, room_id, self._platform.token_for(room_id), topic)
        try:
            websocket = await connect(url)
        except (OSError, WebSocketException) as exc:
            raise TransportError(f"Subscribing to {topic.value} of room {room_id!r} failed: {exc}") from exc
        handle = SubscriptionHandle(topic=topic, room_id=room_id, subscription_id=next(self._ids))
        self._listeners[handle.subscription_id] = asyncio.create_task(
            self._listen(handle, websocket, callback),
            name=f"relay-{topic.value}-{room_id}",
        )
        logger.debug("Subscribed to %s of room %s", topic.value, room_id)
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        task = self._listeners.pop(handle.subscription_id, None)
        if task is None:
            return
        task.cancel()
        self._stopping.add(task)
        task.add_done_callback(self._stopping.discard)

    async def aclose(self) -> None:
        for subscription_id in list(self._listeners):
            task = self._listeners.pop(subscription_id)
            task.cancel()
            self._stopping.add(task)
        stopping = list(self._stopping)
        self._stopping.clear()
        await asyncio.gather(*stopping, return_exceptions=True)

    async def _listen(self, handle: SubscriptionHandle, websocket: ClientConnection, callback: EventCallback) -> None:
        try:
            async for raw in websocket:
                try:
                    event = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Received invalid JSON on %s of room %s", handle.topic.value, handle.room_id)
                    continue
                try:
                    callback(event)
                except Exception:  # noqa: BLE001
                    logger.exception("Subscriber for %s/%s failed", handle.topic.value, handle.room_id)
        except ConnectionClosed as exc:
            logger.warning("Relay closed %s stream of room %s: %s", handle.topic.value, handle.room_id, exc)
        finally:
            await websocket.close()


def create_relay_client(settings: ClientSettings) -> tuple[RelayPlatform, RelayEventTransport]:
    http = httpx.AsyncClient(
        base_url=settings.relay_url,
        timeout=httpx.Timeout(settings.relay_timeout_seconds),
    )
    platform = RelayPlatform(http)
    return platform, RelayEventTransport(platform)

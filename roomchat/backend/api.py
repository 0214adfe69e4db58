"""FastAPI endpoints for rooms, messages and websocket event fan-out."""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field, model_validator

from roomchat.client.events import EventKind, Topic
from roomchat.client.models import BackgroundPattern, MessageKind

from .config import load_settings
from .models import RoomAccess
from .rows import settings_payload
from .security import generate_token
from .store import RoomStore, create_store

logger = logging.getLogger(__name__)

HEX_COLOR_PATTERN = r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$"


class CreateRoomRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=200)


class RoomResponse(BaseModel):
    room: dict[str, Any]


class JoinRequest(BaseModel):
    password: str = Field(min_length=1)
    display_name: str = Field(min_length=1, max_length=50)
    user_id: str | None = Field(default=None, min_length=1, max_length=64)


class JoinResponse(BaseModel):
    room_id: str
    user_id: str
    display_name: str
    token: str


class MessageCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    content: str = Field(default="", max_length=4000)
    message_type: MessageKind = MessageKind.TEXT
    file_url: str | None = None
    file_name: str | None = None
    file_type: str | None = None
    file_size: int | None = Field(default=None, ge=0)
    reply_to: str | None = None
    client_ref: str | None = Field(default=None, max_length=64)

    @model_validator(mode="after")
    def _require_body_or_file(self) -> "MessageCreate":
        if not self.content.strip() and not self.file_url:
            raise ValueError("content may only be empty when a file is attached")
        return self


class MessageEnvelope(BaseModel):
    token: str = Field(min_length=1)
    message: MessageCreate


class MessageResponse(BaseModel):
    message: dict[str, Any]


class MessagesResponse(BaseModel):
    messages: list[dict[str, Any]]


class ReactionPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    likes: list[str]
    dislikes: list[str]

    @model_validator(mode="after")
    def _disjoint(self) -> "ReactionPatch":
        if set(self.likes) & set(self.dislikes):
            raise ValueError("a participant cannot both like and dislike a message")
        return self


class ReactionEnvelope(BaseModel):
    token: str = Field(min_length=1)
    patch: ReactionPatch


class SettingsPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    background_color: str | None = Field(default=None, pattern=HEX_COLOR_PATTERN)
    background_pattern: BackgroundPattern | None = None
    is_muted: bool | None = None

    @model_validator(mode="after")
    def _one_field_at_least(self) -> "SettingsPatch":
        if not self.model_dump(exclude_none=True):
            raise ValueError("settings patch is empty")
        return self


class SettingsEnvelope(BaseModel):
    token: str = Field(min_length=1)
    patch: SettingsPatch


class DeleteResponse(BaseModel):
    id: str


class RoomWebSocketHub:
    def __init__(self) -> None:
        self._connections: dict[tuple[str, Topic], set[WebSocket]] = defaultdict(set)

    async def connect(self, room_id: str, topic: Topic, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections[(room_id, topic)].add(websocket)

    def disconnect(self, room_id: str, topic: Topic, websocket: WebSocket) -> None:
        connections = self._connections.get((room_id, topic))
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            self._connections.pop((room_id, topic), None)

    async def broadcast(self, room_id: str, topic: Topic, kind: EventKind, payload: dict[str, Any]) -> None:
        stale_connections: list[WebSocket] = []
        event = {"kind": kind.value, "payload": payload}
        for websocket in list(self._connections.get((room_id, topic), set())):
            try:
                await websocket.send_json(event)
            except RuntimeError:
                stale_connections.append(websocket)
        for websocket in stale_connections:
            logger.info("Dropping stale %s connection for room %s", topic.value, room_id)
            self.disconnect(room_id=room_id, topic=topic, websocket=websocket)


def _default_store() -> RoomStore:
    settings = load_settings()
    return create_store(database_url=settings.database_url, password_salt=settings.password_salt)


def create_app(store: RoomStore | None = None) -> FastAPI:
    app = FastAPI(title="Roomchat Relay", version="0.3.0")
    room_store = store if store is not None else _default_store()
    websocket_hub = RoomWebSocketHub()
    app.state.websocket_hub = websocket_hub

    def get_store() -> RoomStore:
        return room_store

    def require_access(local_store: RoomStore, room_id: str, token: str) -> RoomAccess:
        access = local_store.get_access(room_id=room_id, raw_token=token)
        if access is None:
            raise HTTPException(status_code=404, detail="Room not found or token invalid")
        return access

    def require_message(local_store: RoomStore, room_id: str, message_id: str) -> dict[str, Any]:
        row = local_store.get_message(message_id=message_id)
        if row is None or row["room_id"] != room_id:
            raise HTTPException(status_code=404, detail="Message not found")
        return row

    @app.post("/api/rooms", response_model=RoomResponse)
    def create_room(
        payload: CreateRoomRequest,
        local_store: RoomStore = Depends(get_store),
    ) -> RoomResponse:
        room = local_store.create_room(name=payload.name.strip(), password=payload.password)
        logger.info("Created room %s", room["id"])
        return RoomResponse(room=room)

    @app.post("/api/rooms/{room_id}/join", response_model=JoinResponse)
    def join_room(
        room_id: str,
        payload: JoinRequest,
        local_store: RoomStore = Depends(get_store),
    ) -> JoinResponse:
        verdict = local_store.verify_password(room_id=room_id, password=payload.password)
        if verdict is None:
            raise HTTPException(status_code=404, detail="Room not found")
        if not verdict:
            raise HTTPException(status_code=403, detail="Wrong password")
        grant = local_store.join_room(
            room_id=room_id,
            password=payload.password,
            display_name=payload.display_name.strip(),
            user_id=payload.user_id or uuid.uuid4().hex,
            token=generate_token(),
        )
        if grant is None:
            raise HTTPException(status_code=403, detail="Wrong password")
        return JoinResponse(
            room_id=grant.room_id,
            user_id=grant.user_id,
            display_name=grant.display_name,
            token=grant.token,
        )

    @app.get("/api/rooms/{room_id}", response_model=RoomResponse)
    def get_room(
        room_id: str,
        token: str = Query(min_length=1),
        local_store: RoomStore = Depends(get_store),
    ) -> RoomResponse:
        access = require_access(local_store, room_id, token)
        return RoomResponse(room=access.room)

    @app.get("/api/rooms/{room_id}/messages", response_model=MessagesResponse)
    def get_messages(
        room_id: str,
        token: str = Query(min_length=1),
        local_store: RoomStore = Depends(get_store),
    ) -> MessagesResponse:
        require_access(local_store, room_id, token)
        return MessagesResponse(messages=local_store.fetch_messages(room_id=room_id))

    @app.post("/api/rooms/{room_id}/messages", response_model=MessageResponse)
    async def post_message(
        room_id: str,
        payload: MessageEnvelope,
        local_store: RoomStore = Depends(get_store),
    ) -> MessageResponse:
        access = require_access(local_store, room_id, payload.token)
        fields = payload.message.model_dump(mode="json")
        fields["user_id"] = access.user_id
        fields["username"] = access.display_name
        row = local_store.create_message(room_id=room_id, fields=fields)
        await websocket_hub.broadcast(room_id=room_id, topic=Topic.MESSAGES, kind=EventKind.INSERT, payload=row)
        return MessageResponse(message=row)

    @app.patch("/api/rooms/{room_id}/messages/{message_id}", response_model=MessageResponse)
    async def patch_message(
        room_id: str,
        message_id: str,
        payload: ReactionEnvelope,
        local_store: RoomStore = Depends(get_store),
    ) -> MessageResponse:
        require_access(local_store, room_id, payload.token)
        require_message(local_store, room_id, message_id)
        row = local_store.update_message(message_id=message_id, patch=payload.patch.model_dump())
        if row is None:
            raise HTTPException(status_code=404, detail="Message not found")
        await websocket_hub.broadcast(room_id=room_id, topic=Topic.MESSAGES, kind=EventKind.UPDATE, payload=row)
        return MessageResponse(message=row)

    @app.delete("/api/rooms/{room_id}/messages/{message_id}", response_model=DeleteResponse)
    async def delete_message(
        room_id: str,
        message_id: str,
        token: str = Query(min_length=1),
        local_store: RoomStore = Depends(get_store),
    ) -> DeleteResponse:
        access = require_access(local_store, room_id, token)
        existing = require_message(local_store, room_id, message_id)
        if existing["user_id"] != access.user_id:
            raise HTTPException(status_code=403, detail="Only the author may delete a message")
        if local_store.delete_message(message_id=message_id) is None:
            raise HTTPException(status_code=404, detail="Message not found")
        await websocket_hub.broadcast(
            room_id=room_id,
            topic=Topic.MESSAGES,
            kind=EventKind.DELETE,
            payload={"id": message_id},
        )
        return DeleteResponse(id=message_id)

    @app.patch("/api/rooms/{room_id}/settings", response_model=RoomResponse)
    async def patch_settings(
        room_id: str,
        payload: SettingsEnvelope,
        local_store: RoomStore = Depends(get_store),
    ) -> RoomResponse:
        require_access(local_store, room_id, payload.token)
        patch = payload.patch.model_dump(mode="json", exclude_none=True)
        room = local_store.update_room(room_id=room_id, patch=patch)
        if room is None:
            raise HTTPException(status_code=404, detail="Room not found")
        await websocket_hub.broadcast(
            room_id=room_id,
            topic=Topic.ROOM_CONFIG,
            kind=EventKind.UPDATE,
            payload=settings_payload(room_id, patch),
        )
        return RoomResponse(room=room)

    @app.websocket("/ws/rooms/{room_id}")
    async def room_ws(
        websocket: WebSocket,
        room_id: str,
        local_store: RoomStore = Depends(get_store),
    ) -> None:
        token = websocket.query_params.get("token")
        topic_raw = websocket.query_params.get("topic", Topic.MESSAGES.value)
        if token is None or token == "" or topic_raw not in {topic.value for topic in Topic}:
            await websocket.close(code=1008)
            return
        if local_store.get_access(room_id=room_id, raw_token=token) is None:
            await websocket.close(code=1008)
            return

        topic = Topic(topic_raw)
        await websocket_hub.connect(room_id=room_id, topic=topic, websocket=websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            websocket_hub.disconnect(room_id=room_id, topic=topic, websocket=websocket)

    return app


app = create_app()

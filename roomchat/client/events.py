"""Transport event decoding: loosely-typed rows in, a closed event union out."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import TransportError
from .models import (
    Attachment,
    BackgroundPattern,
    Message,
    MessageDraft,
    MessageKind,
    Room,
    RoomSettings,
)

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


class Topic(str, Enum):
    MESSAGES = "messages"
    ROOM_CONFIG = "room-config"


class EventKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class MessageRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    room_id: str = Field(min_length=1)
    user_id: str
    username: str
    content: str = ""
    message_type: MessageKind = MessageKind.TEXT
    file_url: str | None = None
    file_name: str | None = None
    file_type: str | None = None
    file_size: int | None = None
    reply_to: str | None = None
    likes: list[str] = Field(default_factory=list)
    dislikes: list[str] = Field(default_factory=list)
    created_at: datetime
    client_ref: str | None = None

    @field_validator("likes", "dislikes", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_message(self) -> Message:
        attachment: Attachment | None = None
        if self.file_url:
            attachment = Attachment(
                url=self.file_url,
                name=self.file_name or "",
                mime_type=self.file_type or DEFAULT_MIME_TYPE,
                size_bytes=self.file_size or 0,
            )
        liked_by = frozenset(self.likes)
        disliked_by = frozenset(self.dislikes)
        overlap = liked_by & disliked_by
        if overlap:
            logger.warning("Message %s lists %d participant(s) in both reaction sets", self.id, len(overlap))
            disliked_by = disliked_by - overlap
        return Message(
            id=self.id,
            room_id=self.room_id,
            author_id=self.user_id,
            author_display_name=self.username,
            body=self.content,
            kind=self.message_type,
            created_at=self.created_at,
            attachment=attachment,
            reply_to=self.reply_to,
            liked_by=liked_by,
            disliked_by=disliked_by,
            pending_id=self.client_ref,
        )


class MessageRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)


class RoomRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    name: str
    background_color: str = "#3b82f6"
    background_pattern: BackgroundPattern = BackgroundPattern.NONE
    is_muted: bool = False

    def to_room(self) -> Room:
        return Room(
            id=self.id,
            name=self.name,
            background_color=self.background_color,
            background_pattern=self.background_pattern,
            is_muted=self.is_muted,
        )


class RoomSettingsRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    background_color: str | None = None
    background_pattern: BackgroundPattern | None = None
    is_muted: bool | None = None

    def to_settings(self) -> RoomSettings:
        return RoomSettings(
            background_color=self.background_color,
            background_pattern=self.background_pattern,
            is_muted=self.is_muted,
        )


class TransportEnvelope(BaseModel):
    kind: EventKind
    payload: dict[str, Any]


@dataclass(frozen=True)
class MessageInserted:
    message: Message


@dataclass(frozen=True)
class MessageUpdated:
    message: Message


@dataclass(frozen=True)
class MessageDeleted:
    message_id: str


@dataclass(frozen=True)
class RoomConfigUpdated:
    room_id: str
    settings: RoomSettings


@dataclass(frozen=True)
class RoomDeleted:
    room_id: str


TransportEvent = Union[MessageInserted, MessageUpdated, MessageDeleted, RoomConfigUpdated, RoomDeleted]


def decode_event(topic: Topic, raw: Mapping[str, Any]) -> TransportEvent:
    """Validate a raw ``{kind, payload}`` notification into a typed event."""
    try:
        envelope = TransportEnvelope.model_validate(raw)
        if topic is Topic.MESSAGES:
            if envelope.kind is EventKind.DELETE:
                return MessageDeleted(message_id=MessageRef.model_validate(envelope.payload).id)
            message = MessageRow.model_validate(envelope.payload).to_message()
            if envelope.kind is EventKind.INSERT:
                return MessageInserted(message=message)
            return MessageUpdated(message=message)

        if envelope.kind is EventKind.DELETE:
            return RoomDeleted(room_id=MessageRef.model_validate(envelope.payload).id)
        settings_row = RoomSettingsRow.model_validate(envelope.payload)
        return RoomConfigUpdated(room_id=settings_row.id, settings=settings_row.to_settings())
    except ValidationError as exc:
        raise TransportError(f"Invalid {topic.value} event: {exc.error_count()} validation error(s)") from exc


def decode_message_row(row: Mapping[str, Any]) -> Message:
    try:
        return MessageRow.model_validate(row).to_message()
    except ValidationError as exc:
        raise TransportError(f"Invalid message row: {exc.error_count()} validation error(s)") from exc


def decode_room_row(row: Mapping[str, Any]) -> Room:
    try:
        return RoomRow.model_validate(row).to_room()
    except ValidationError as exc:
        raise TransportError(f"Invalid room row: {exc.error_count()} validation error(s)") from exc


def encode_draft(draft: MessageDraft, pending_id: str) -> dict[str, Any]:
    """Build the insert row for a draft; ``client_ref`` is echoed back by the platform."""
    row: dict[str, Any] = {
        "room_id": draft.room_id,
        "user_id": draft.author_id,
        "username": draft.author_display_name,
        "content": draft.body,
        "message_type": draft.kind.value,
        "likes": [],
        "dislikes": [],
        "client_ref": pending_id,
    }
    if draft.attachment is not None:
        row["file_url"] = draft.attachment.url
        row["file_name"] = draft.attachment.name
        row["file_type"] = draft.attachment.mime_type
        row["file_size"] = draft.attachment.size_bytes
    if draft.reply_to is not None:
        row["reply_to"] = draft.reply_to
    return row

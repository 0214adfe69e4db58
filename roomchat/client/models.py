"""Domain models for rooms, messages and participant sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class MessageKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    AUDIO = "audio"
    VIDEO = "video"


class BackgroundPattern(str, Enum):
    NONE = "none"
    GRID = "grid"
    DOTS = "dots"
    WAVES = "waves"
    DIAGONAL = "diagonal"


class DeliveryState(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Room:
    id: str
    name: str
    background_color: str = "#3b82f6"
    background_pattern: BackgroundPattern = BackgroundPattern.NONE
    is_muted: bool = False


@dataclass(frozen=True)
class Attachment:
    url: str
    name: str
    mime_type: str
    size_bytes: int


@dataclass(frozen=True)
class Message:
    id: str
    room_id: str
    author_id: str
    author_display_name: str
    body: str
    kind: MessageKind
    created_at: datetime
    attachment: Attachment | None = None
    reply_to: str | None = None
    liked_by: frozenset[str] = field(default_factory=frozenset)
    disliked_by: frozenset[str] = field(default_factory=frozenset)
    pending_id: str | None = None
    delivery: DeliveryState = DeliveryState.SENT

    @property
    def is_optimistic(self) -> bool:
        return self.delivery is not DeliveryState.SENT


@dataclass(frozen=True)
class MessageDraft:
    """A locally authored message that has no canonical id yet."""

    room_id: str
    author_id: str
    author_display_name: str
    body: str = ""
    kind: MessageKind = MessageKind.TEXT
    attachment: Attachment | None = None
    reply_to: str | None = None

    def __post_init__(self) -> None:
        if not self.body.strip() and self.attachment is None:
            raise ValueError("message body may only be empty when an attachment is present")

    def to_message(self, message_id: str, created_at: datetime) -> Message:
        return Message(
            id=message_id,
            room_id=self.room_id,
            author_id=self.author_id,
            author_display_name=self.author_display_name,
            body=self.body,
            kind=self.kind,
            created_at=created_at,
            attachment=self.attachment,
            reply_to=self.reply_to,
            pending_id=message_id,
            delivery=DeliveryState.PENDING,
        )


@dataclass(frozen=True)
class ParticipantSession:
    room_id: str
    user_id: str
    display_name: str


@dataclass(frozen=True)
class RoomSettings:
    """A partial set of room settings; ``None`` means the field is untouched."""

    background_color: str | None = None
    background_pattern: BackgroundPattern | None = None
    is_muted: bool | None = None


def kind_for_mime(mime_type: str) -> MessageKind:
    major = mime_type.split("/", maxsplit=1)[0].lower()
    if major == "image":
        return MessageKind.IMAGE
    if major == "audio":
        return MessageKind.AUDIO
    if major == "video":
        return MessageKind.VIDEO
    return MessageKind.FILE

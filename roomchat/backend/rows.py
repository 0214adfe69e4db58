"""Row builders for rooms and messages as the platform stores and broadcasts them."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

DEFAULT_BACKGROUND_COLOR = "#3b82f6"
DEFAULT_BACKGROUND_PATTERN = "none"

PUBLIC_ROOM_FIELDS = ("id", "name", "background_color", "background_pattern", "is_muted", "created_at", "created_by")
ROOM_SETTING_FIELDS = ("background_color", "background_pattern", "is_muted")
MESSAGE_FIELDS = (
    "id",
    "room_id",
    "user_id",
    "username",
    "content",
    "message_type",
    "file_url",
    "file_name",
    "file_type",
    "file_size",
    "reply_to",
    "likes",
    "dislikes",
    "created_at",
    "client_ref",
)
MESSAGE_INPUT_FIELDS = (
    "user_id",
    "username",
    "content",
    "message_type",
    "file_url",
    "file_name",
    "file_type",
    "file_size",
    "reply_to",
    "client_ref",
)
REACTION_FIELDS = ("likes", "dislikes")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_room_row(room_id: str, name: str, password_hash: str, created_by: str | None = None) -> dict[str, Any]:
    return {
        "id": room_id,
        "name": name,
        "password_hash": password_hash,
        "background_color": DEFAULT_BACKGROUND_COLOR,
        "background_pattern": DEFAULT_BACKGROUND_PATTERN,
        "is_muted": False,
        "created_at": utc_now_iso(),
        "created_by": created_by,
    }


def public_room_row(row: Mapping[str, Any]) -> dict[str, Any]:
    """Strip everything a participant must not see, the password hash above all."""
    return {field: _json_ready(row.get(field)) for field in PUBLIC_ROOM_FIELDS}


def build_message_row(message_id: str, room_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
    row: dict[str, Any] = {field: fields.get(field) for field in MESSAGE_INPUT_FIELDS}
    row["id"] = message_id
    row["room_id"] = room_id
    row["content"] = row["content"] or ""
    row["message_type"] = row["message_type"] or "text"
    row["likes"] = []
    row["dislikes"] = []
    row["created_at"] = utc_now_iso()
    return {field: row.get(field) for field in MESSAGE_FIELDS}


def message_out(row: Mapping[str, Any]) -> dict[str, Any]:
    return {field: _json_ready(row.get(field)) for field in MESSAGE_FIELDS}


def apply_reaction_patch(row: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    next_row = dict(row)
    for field in REACTION_FIELDS:
        if field in patch:
            next_row[field] = list(patch[field])
    return next_row


def apply_room_patch(row: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    next_row = dict(row)
    for field in ROOM_SETTING_FIELDS:
        if field in patch:
            next_row[field] = patch[field]
    return next_row


def settings_payload(room_id: str, patch: Mapping[str, Any]) -> dict[str, Any]:
    """Room-config update payload: the room id plus only the settings that changed."""
    payload: dict[str, Any] = {"id": room_id}
    payload.update({field: patch[field] for field in ROOM_SETTING_FIELDS if field in patch})
    return payload


def _json_ready(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, tuple):
        return list(value)
    return value

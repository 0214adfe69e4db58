"""Persistence interfaces and implementations for rooms and messages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol
import uuid

from roomchat.backend.models import ParticipantGrant, RoomAccess
from roomchat.backend.rows import (
    MESSAGE_FIELDS,
    PUBLIC_ROOM_FIELDS,
    ROOM_SETTING_FIELDS,
    apply_reaction_patch,
    apply_room_patch,
    build_message_row,
    build_room_row,
    message_out,
    public_room_row,
    utc_now_iso,
)
from roomchat.backend.security import hash_password, hash_token, password_matches


class RoomStore(Protocol):
    def create_room(self, name: str, password: str, created_by: str | None = None) -> dict[str, Any]:
        """Create a room and return its public row."""

    def verify_password(self, room_id: str, password: str) -> bool | None:
        """Check a room password; ``None`` when the room does not exist."""

    def join_room(self, room_id: str, password: str, display_name: str, user_id: str, token: str) -> ParticipantGrant | None:
        """Register a participant token when the password is valid."""

    def get_access(self, room_id: str, raw_token: str) -> RoomAccess | None:
        """Return participant and room when the token is valid for the room."""

    def fetch_room(self, room_id: str) -> dict[str, Any] | None:
        """Return the public room row."""

    def fetch_messages(self, room_id: str) -> list[dict[str, Any]]:
        """Return message rows ascending by creation time."""

    def get_message(self, message_id: str) -> dict[str, Any] | None:
        """Return one message row."""

    def create_message(self, room_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Insert a message, assigning canonical id and timestamp."""

    def update_message(self, message_id: str, patch: Mapping[str, Any]) -> dict[str, Any] | None:
        """Apply a reaction patch and return the new row."""

    def delete_message(self, message_id: str) -> dict[str, Any] | None:
        """Delete a message and return the removed row."""

    def update_room(self, room_id: str, patch: Mapping[str, Any]) -> dict[str, Any] | None:
        """Apply a settings patch and return the new public row."""


@dataclass
class InMemoryRoomStore:
    password_salt: str

    def __post_init__(self) -> None:
        self._rooms: dict[str, dict[str, Any]] = {}
        self._participants: dict[str, dict[str, dict[str, str]]] = {}
        self._messages: dict[str, dict[str, Any]] = {}

    def create_room(self, name: str, password: str, created_by: str | None = None) -> dict[str, Any]:
        room_id = str(uuid.uuid4())
        row = build_room_row(
            room_id=room_id,
            name=name,
            password_hash=hash_password(password, self.password_salt),
            created_by=created_by,
        )
        self._rooms[room_id] = row
        self._participants[room_id] = {}
        return public_room_row(row)

    def verify_password(self, room_id: str, password: str) -> bool | None:
        row = self._rooms.get(room_id)
        if row is None:
            return None
        return password_matches(password, row["password_hash"], self.password_salt)

    def join_room(self, room_id: str, password: str, display_name: str, user_id: str, token: str) -> ParticipantGrant | None:
        if not self.verify_password(room_id=room_id, password=password):
            return None
        self._participants[room_id][hash_token(token, self.password_salt)] = {
            "user_id": user_id,
            "display_name": display_name,
        }
        return ParticipantGrant(room_id=room_id, user_id=user_id, display_name=display_name, token=token)

    def get_access(self, room_id: str, raw_token: str) -> RoomAccess | None:
        room = self._rooms.get(room_id)
        if room is None:
            return None
        participant = self._participants[room_id].get(hash_token(raw_token, self.password_salt))
        if participant is None:
            return None
        return RoomAccess(
            room_id=room_id,
            user_id=participant["user_id"],
            display_name=participant["display_name"],
            room=public_room_row(room),
        )

    def fetch_room(self, room_id: str) -> dict[str, Any] | None:
        row = self._rooms.get(room_id)
        if row is None:
            return None
        return public_room_row(row)

    def fetch_messages(self, room_id: str) -> list[dict[str, Any]]:
        rows = [row for row in self._messages.values() if row["room_id"] == room_id]
        rows.sort(key=lambda row: row["created_at"])
        return [message_out(row) for row in rows]

    def get_message(self, message_id: str) -> dict[str, Any] | None:
        row = self._messages.get(message_id)
        if row is None:
            return None
        return message_out(row)

    def create_message(self, room_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        if room_id not in self._rooms:
            raise KeyError(room_id)
        row = build_message_row(message_id=str(uuid.uuid4()), room_id=room_id, fields=fields)
        self._messages[row["id"]] = row
        return message_out(row)

    def update_message(self, message_id: str, patch: Mapping[str, Any]) -> dict[str, Any] | None:
        row = self._messages.get(message_id)
        if row is None:
            return None
        self._messages[message_id] = apply_reaction_patch(row, patch)
        return message_out(self._messages[message_id])

    def delete_message(self, message_id: str) -> dict[str, Any] | None:
        row = self._messages.pop(message_id, None)
        if row is None:
            return None
        return message_out(row)

    def update_room(self, room_id: str, patch: Mapping[str, Any]) -> dict[str, Any] | None:
        row = self._rooms.get(room_id)
        if row is None:
            return None
        self._rooms[room_id] = apply_room_patch(row, patch)
        return public_room_row(self._rooms[room_id])


_MESSAGE_COLUMNS = ", ".join(MESSAGE_FIELDS)
_ROOM_COLUMNS = ", ".join(PUBLIC_ROOM_FIELDS)


@dataclass
class PostgresRoomStore:
    database_url: str
    password_salt: str

    def _connect(self) -> Any:
        import psycopg
        from psycopg.rows import dict_row

        return psycopg.connect(self.database_url, row_factory=dict_row)

    def create_room(self, name: str, password: str, created_by: str | None = None) -> dict[str, Any]:
        row = build_room_row(
            room_id=str(uuid.uuid4()),
            name=name,
            password_hash=hash_password(password, self.password_salt),
            created_by=created_by,
        )
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO rooms (id, name, password_hash, background_color, background_pattern,
                                       is_muted, created_at, created_by)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        row["id"],
                        row["name"],
                        row["password_hash"],
                        row["background_color"],
                        row["background_pattern"],
                        row["is_muted"],
                        row["created_at"],
                        row["created_by"],
                    ),
                )
            conn.commit()
        return public_room_row(row)

    def verify_password(self, room_id: str, password: str) -> bool | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT password_hash FROM rooms WHERE id = %s", (room_id,))
                row = cur.fetchone()
        if row is None:
            return None
        return password_matches(password, row["password_hash"], self.password_salt)

    def join_room(self, room_id: str, password: str, display_name: str, user_id: str, token: str) -> ParticipantGrant | None:
        if not self.verify_password(room_id=room_id, password=password):
            return None
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO room_participants (id, room_id, user_id, display_name, token_hash, joined_at)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    (
                        str(uuid.uuid4()),
                        room_id,
                        user_id,
                        display_name,
                        hash_token(token, self.password_salt),
                        utc_now_iso(),
                    ),
                )
            conn.commit()
        return ParticipantGrant(room_id=room_id, user_id=user_id, display_name=display_name, token=token)

    def get_access(self, room_id: str, raw_token: str) -> RoomAccess | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT p.user_id AS participant_id, p.display_name AS participant_name, {_prefixed("r", PUBLIC_ROOM_FIELDS)}
                    FROM room_participants p
                    JOIN rooms r ON r.id = p.room_id
                    WHERE p.room_id = %s
                      AND p.token_hash = %s
                    """,
                    (room_id, hash_token(raw_token, self.password_salt)),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return RoomAccess(
            room_id=room_id,
            user_id=row["participant_id"],
            display_name=row["participant_name"],
            room=public_room_row(row),
        )

    def fetch_room(self, room_id: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT {_ROOM_COLUMNS} FROM rooms WHERE id = %s", (room_id,))
                row = cur.fetchone()
        if row is None:
            return None
        return public_room_row(row)

    def fetch_messages(self, room_id: str) -> list[dict[str, Any]]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE room_id = %s ORDER BY created_at ASC, id ASC",
                    (room_id,),
                )
                rows = cur.fetchall()
        return [message_out(row) for row in rows]

    def get_message(self, message_id: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id = %s", (message_id,))
                row = cur.fetchone()
        if row is None:
            return None
        return message_out(row)

    def create_message(self, room_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        row = build_message_row(message_id=str(uuid.uuid4()), room_id=room_id, fields=fields)
        placeholders = ", ".join(["%s"] * len(MESSAGE_FIELDS))
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"INSERT INTO messages ({_MESSAGE_COLUMNS}) VALUES ({placeholders})",
                    tuple(row[field] for field in MESSAGE_FIELDS),
                )
            conn.commit()
        return message_out(row)

    def update_message(self, message_id: str, patch: Mapping[str, Any]) -> dict[str, Any] | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE messages
                    SET likes = %s, dislikes = %s
                    WHERE id = %s
                    RETURNING {_MESSAGE_COLUMNS}
                    """,
                    (list(patch.get("likes", [])), list(patch.get("dislikes", [])), message_id),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            return None
        return message_out(row)

    def delete_message(self, message_id: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(f"DELETE FROM messages WHERE id = %s RETURNING {_MESSAGE_COLUMNS}", (message_id,))
                row = cur.fetchone()
            conn.commit()
        if row is None:
            return None
        return message_out(row)

    def update_room(self, room_id: str, patch: Mapping[str, Any]) -> dict[str, Any] | None:
        fields = [field for field in ROOM_SETTING_FIELDS if field in patch]
        if not fields:
            return self.fetch_room(room_id)
        assignments = ", ".join(f"{field} = %s" for field in fields)
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"UPDATE rooms SET {assignments} WHERE id = %s RETURNING {_ROOM_COLUMNS}",
                    (*[patch[field] for field in fields], room_id),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            return None
        return public_room_row(row)


def _prefixed(alias: str, fields: tuple[str, ...]) -> str:
    return ", ".join(f"{alias}.{field}" for field in fields)


def create_store(database_url: str | None, password_salt: str) -> RoomStore:
    if database_url:
        return PostgresRoomStore(database_url=database_url, password_salt=password_salt)
    return InMemoryRoomStore(password_salt=password_salt)

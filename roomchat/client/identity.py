"""Per-room participant identity kept across room view activations."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict
from pathlib import Path
from typing import Protocol

from .models import ParticipantSession

logger = logging.getLogger(__name__)


def generate_user_id() -> str:
    return uuid.uuid4().hex


class IdentityStore(Protocol):
    def load(self, room_id: str) -> ParticipantSession | None:
        """Return the stored identity for ``room_id``, if any."""

    def save(self, session: ParticipantSession) -> None:
        """Persist ``session`` for its room."""

    def forget(self, room_id: str) -> None:
        """Drop the identity for ``room_id``."""


class InMemoryIdentityStore:
    def __init__(self) -> None:
        self._sessions: dict[str, ParticipantSession] = {}

    def load(self, room_id: str) -> ParticipantSession | None:
        return self._sessions.get(room_id)

    def save(self, session: ParticipantSession) -> None:
        self._sessions[session.room_id] = session

    def forget(self, room_id: str) -> None:
        self._sessions.pop(room_id, None)


class FileIdentityStore:
    """One JSON file per room under ``directory``."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, room_id: str) -> Path:
        safe_name = "".join(char if char.isalnum() or char in "-_" else "_" for char in room_id)
        return self.directory / f"room_{safe_name}.json"

    def load(self, room_id: str) -> ParticipantSession | None:
        path = self._path(room_id)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            session = ParticipantSession(
                room_id=payload["room_id"],
                user_id=payload["user_id"],
                display_name=payload["display_name"],
            )
        except (ValueError, KeyError, TypeError):
            logger.warning("Ignoring unreadable identity file %s", path)
            return None
        if session.room_id != room_id or not session.user_id or not session.display_name:
            return None
        return session

    def save(self, session: ParticipantSession) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(session.room_id).write_text(json.dumps(asdict(session)), encoding="utf-8")

    def forget(self, room_id: str) -> None:
        self._path(room_id).unlink(missing_ok=True)


def create_identity_store(identity_dir: str | None) -> IdentityStore:
    if identity_dir:
        return FileIdentityStore(directory=identity_dir)
    return InMemoryIdentityStore()

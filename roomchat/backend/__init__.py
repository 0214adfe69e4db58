"""Reference platform backend: room store and HTTP/websocket relay."""

from .config import BackendSettings, load_settings
from .security import generate_token, hash_password, hash_token, password_matches
from .store import InMemoryRoomStore, PostgresRoomStore, RoomStore, create_store

__all__ = [
    "BackendSettings",
    "create_store",
    "generate_token",
    "hash_password",
    "hash_token",
    "InMemoryRoomStore",
    "load_settings",
    "password_matches",
    "PostgresRoomStore",
    "RoomStore",
]

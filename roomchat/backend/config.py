"""Configuration helpers for the relay backend."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class BackendSettings:
    password_salt: str
    database_url: str | None
    host: str
    port: int
    log_level: str


def load_settings() -> BackendSettings:
    port_raw = os.getenv("ROOMCHAT_PORT", "8000")
    return BackendSettings(
        password_salt=os.getenv("ROOMCHAT_PASSWORD_SALT", "dev-salt"),
        database_url=os.getenv("ROOMCHAT_DATABASE_URL"),
        host=os.getenv("ROOMCHAT_HOST", "127.0.0.1"),
        port=int(port_raw),
        log_level=os.getenv("ROOMCHAT_LOG_LEVEL", "INFO").upper(),
    )

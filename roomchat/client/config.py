"""Configuration helpers for the chat client."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ClientSettings:
    identity_dir: str | None
    reply_preview_chars: int
    relay_url: str = "http://127.0.0.1:8000"
    relay_timeout_seconds: float = 10.0


def load_client_settings() -> ClientSettings:
    preview_raw = os.getenv("ROOMCHAT_REPLY_PREVIEW_CHARS", "80")
    timeout_raw = os.getenv("ROOMCHAT_RELAY_TIMEOUT_SECONDS", "10")
    return ClientSettings(
        identity_dir=os.getenv("ROOMCHAT_IDENTITY_DIR") or None,
        reply_preview_chars=int(preview_raw),
        relay_url=os.getenv("ROOMCHAT_RELAY_URL", "http://127.0.0.1:8000"),
        relay_timeout_seconds=float(timeout_raw),
    )

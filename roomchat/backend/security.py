"""Salted hashes for room passwords and participant tokens.

Passwords and tokens are hashed under different purpose labels, so a token
hash can never be replayed as a password hash and the other way round.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from enum import Enum


TOKEN_BYTES = 24


class SecretPurpose(str, Enum):
    ROOM_PASSWORD = "room-password"
    PARTICIPANT_TOKEN = "participant-token"


def generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_secret(secret: str, salt: str, purpose: SecretPurpose) -> str:
    """sha256 over ``purpose:secret`` followed by the server salt, hex encoded."""
    payload = f"{SecretPurpose(purpose).value}:{secret}{salt}".encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def hash_password(password: str, salt: str) -> str:
    return hash_secret(password, salt, SecretPurpose.ROOM_PASSWORD)


def hash_token(token: str, salt: str) -> str:
    return hash_secret(token, salt, SecretPurpose.PARTICIPANT_TOKEN)


def password_matches(password: str, expected_hash: str | None, salt: str) -> bool:
    if not expected_hash:
        return False
    return hmac.compare_digest(hash_password(password, salt), expected_hash)

"""Resolve ``reply_to`` references against a message snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .models import Message, MessageKind

if TYPE_CHECKING:
    from .store import MessageSnapshot


DEFAULT_PREVIEW_CHARS = 80
ELLIPSIS = "…"


@dataclass(frozen=True)
class ResolvedReply:
    message_id: str
    author_display_name: str
    preview: str
    kind: MessageKind


def build_preview(message: Message, max_chars: int = DEFAULT_PREVIEW_CHARS) -> str:
    text = " ".join(message.body.split())
    if not text and message.attachment is not None:
        text = message.attachment.name
    if len(text) <= max_chars:
        return text
    return text[: max(max_chars - len(ELLIPSIS), 0)].rstrip() + ELLIPSIS


def resolve_reply(
    message: Message,
    snapshot: MessageSnapshot,
    max_chars: int = DEFAULT_PREVIEW_CHARS,
) -> ResolvedReply | None:
    """Return the reply target summary, or ``None`` when it cannot be found.

    The target may have been deleted or may not have arrived yet; both are
    normal and callers render a placeholder.
    """
    if message.reply_to is None:
        return None
    target = snapshot.get(message.reply_to)
    if target is None:
        return None
    return ResolvedReply(
        message_id=target.id,
        author_display_name=target.author_display_name,
        preview=build_preview(target, max_chars=max_chars),
        kind=target.kind,
    )

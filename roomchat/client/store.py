"""In-memory ordered message log for the active room."""

from __future__ import annotations

import bisect
import itertools
import logging
import uuid
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from typing import overload

from .errors import InvalidStateError, NotFoundError
from .models import DeliveryState, Message, MessageDraft, utc_now
from .reactions import ReactionSets

logger = logging.getLogger(__name__)

PENDING_ID_PREFIX = "tmp-"


@dataclass(eq=False)
class _Entry:
    seq: int
    message: Message

    def sort_key(self) -> tuple[datetime, int]:
        return (self.message.created_at, self.seq)


class MessageSnapshot(Sequence[Message]):
    """Immutable, time-ordered view of the log at the moment it was taken."""

    def __init__(self, messages: Iterable[Message]) -> None:
        self._messages = tuple(messages)
        self._index: dict[str, Message] | None = None

    @overload
    def __getitem__(self, index: int) -> Message: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[Message]: ...

    def __getitem__(self, index):
        return self._messages[index]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    def get(self, message_id: str) -> Message | None:
        if self._index is None:
            self._index = {message.id: message for message in self._messages}
        return self._index.get(message_id)

    def ids(self) -> list[str]:
        return [message.id for message in self._messages]


class MessageStore:
    """Authoritative message log for exactly one room.

    Entries are ordered by ``created_at`` with ties broken by a per-store
    arrival sequence. Optimistic entries live under their pending id until
    :meth:`reconcile` rewrites them to the canonical id.
    """

    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        self._entries: dict[str, _Entry] = {}
        self._ordered: list[_Entry] = []
        self._sequence = itertools.count()
        self._active = False
        self._snapshot: MessageSnapshot | None = None

    @property
    def is_active(self) -> bool:
        return self._active

    def load_initial(self, messages: Iterable[Message]) -> None:
        if self._active:
            raise InvalidStateError(f"Room {self.room_id!r} is already active")
        self._clear()
        self._active = True
        for message in messages:
            if self._accepts(message):
                self._upsert(message)
        logger.debug("Loaded %d messages for room %s", len(self._ordered), self.room_id)

    def close(self) -> None:
        dropped = sum(1 for entry in self._ordered if entry.message.is_optimistic)
        if dropped:
            logger.info("Discarding %d optimistic message(s) for room %s", dropped, self.room_id)
        self._clear()
        self._active = False

    def snapshot(self) -> MessageSnapshot:
        self._require_active()
        if self._snapshot is None:
            self._snapshot = MessageSnapshot(entry.message for entry in self._ordered)
        return self._snapshot

    def get(self, message_id: str) -> Message | None:
        self._require_active()
        entry = self._entries.get(message_id)
        return entry.message if entry is not None else None

    def apply_remote_insert(self, message: Message) -> Message | None:
        self._require_active()
        if not self._accepts(message):
            return None
        if message.id not in self._entries and self._is_pending(message.pending_id):
            return self.reconcile(message.pending_id, message)
        return self._upsert(message)

    def apply_remote_update(self, message: Message) -> Message | None:
        self._require_active()
        if not self._accepts(message):
            return None
        entry = self._entries.get(message.id)
        if entry is None:
            logger.warning("Ignoring update for unknown message %s in room %s", message.id, self.room_id)
            return None
        return self._rewrite(entry, message)

    def apply_remote_delete(self, message_id: str) -> bool:
        self._require_active()
        entry = self._entries.pop(message_id, None)
        if entry is None:
            return False
        self._ordered.remove(entry)
        self._snapshot = None
        return True

    def append_optimistic(self, draft: MessageDraft) -> str:
        """Insert ``draft`` immediately under a temporary id and return that id."""
        self._require_active()
        if draft.room_id != self.room_id:
            raise InvalidStateError(f"Draft for room {draft.room_id!r} sent to room {self.room_id!r}")
        pending_id = f"{PENDING_ID_PREFIX}{uuid.uuid4().hex}"
        self._insert(draft.to_message(message_id=pending_id, created_at=utc_now()))
        return pending_id

    def reconcile(self, pending_id: str, message: Message) -> Message | None:
        """Rewrite the optimistic entry ``pending_id`` to its canonical ``message``."""
        self._require_active()
        if not self._accepts(message):
            return None
        confirmed = replace(message, pending_id=pending_id, delivery=DeliveryState.SENT)
        pending = self._entries.get(pending_id)
        if pending is None:
            existing = self._entries.get(message.id)
            if existing is not None:
                # already confirmed by the echo, which may carry newer reactions
                return existing.message
            return self._insert(confirmed)
        if not pending.message.is_optimistic:
            logger.warning(
                "Message %s references confirmed message %s as its draft in room %s",
                message.id,
                pending_id,
                self.room_id,
            )
            return self._upsert(message)
        if message.id in self._entries:
            # the echo was applied before we learned the canonical id
            self.apply_remote_delete(pending_id)
            return self._upsert(confirmed)
        del self._entries[pending_id]
        self._entries[message.id] = pending
        return self._rewrite(pending, confirmed)

    def mark_failed(self, pending_id: str) -> Message | None:
        return self._set_delivery(pending_id, DeliveryState.FAILED)

    def mark_pending(self, pending_id: str) -> Message | None:
        return self._set_delivery(pending_id, DeliveryState.PENDING)

    def discard_optimistic(self, pending_id: str) -> bool:
        self._require_active()
        entry = self._entries.get(pending_id)
        if entry is None or not entry.message.is_optimistic:
            return False
        return self.apply_remote_delete(pending_id)

    def apply_reactions(self, message_id: str, sets: ReactionSets) -> ReactionSets:
        """Apply reaction sets locally and return the sets they replaced."""
        self._require_active()
        entry = self._entries.get(message_id)
        if entry is None:
            raise NotFoundError(f"Message {message_id!r} not found in room {self.room_id!r}")
        previous = ReactionSets(liked_by=entry.message.liked_by, disliked_by=entry.message.disliked_by)
        self._rewrite(entry, replace(entry.message, liked_by=sets.liked_by, disliked_by=sets.disliked_by))
        return previous

    def _set_delivery(self, pending_id: str, delivery: DeliveryState) -> Message | None:
        self._require_active()
        entry = self._entries.get(pending_id)
        if entry is None or not entry.message.is_optimistic:
            return None
        return self._rewrite(entry, replace(entry.message, delivery=delivery))

    def _is_pending(self, message_id: str | None) -> bool:
        if message_id is None:
            return False
        entry = self._entries.get(message_id)
        return entry is not None and entry.message.is_optimistic

    def _accepts(self, message: Message) -> bool:
        if message.room_id != self.room_id:
            logger.warning(
                "Dropping message %s for room %s in store for room %s",
                message.id,
                message.room_id,
                self.room_id,
            )
            return False
        return True

    def _upsert(self, message: Message) -> Message:
        entry = self._entries.get(message.id)
        if entry is None:
            return self._insert(message)
        return self._rewrite(entry, message)

    def _insert(self, message: Message) -> Message:
        entry = _Entry(seq=next(self._sequence), message=message)
        self._entries[message.id] = entry
        bisect.insort(self._ordered, entry, key=_Entry.sort_key)
        self._snapshot = None
        return message

    def _rewrite(self, entry: _Entry, message: Message) -> Message:
        if message.created_at != entry.message.created_at:
            self._ordered.remove(entry)
            entry.message = message
            bisect.insort(self._ordered, entry, key=_Entry.sort_key)
        else:
            entry.message = message
        self._snapshot = None
        return message

    def _clear(self) -> None:
        self._entries.clear()
        self._ordered.clear()
        self._snapshot = None

    def _require_active(self) -> None:
        if not self._active:
            raise InvalidStateError(f"Message store for room {self.room_id!r} is not active")

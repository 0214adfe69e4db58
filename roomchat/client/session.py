"""Room activation and the calling layer around the reconciliation core."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Mapping

from .config import ClientSettings, load_client_settings
from .errors import (
    AccessDeniedError,
    IdentityMissingError,
    InvalidStateError,
    NotFoundError,
    RoomChatError,
    RoomNotFoundError,
    TransportError,
)
from .events import (
    MessageDeleted,
    MessageInserted,
    MessageUpdated,
    RoomConfigUpdated,
    RoomDeleted,
    Topic,
    TransportEvent,
    decode_event,
)
from .identity import IdentityStore, create_identity_store, generate_user_id
from .models import (
    Attachment,
    Message,
    MessageDraft,
    MessageKind,
    ParticipantSession,
    Room,
    kind_for_mime,
)
from .reactions import ReactionAction, compute_reaction
from .replies import ResolvedReply, resolve_reply
from .room_config import RoomConfigSynchronizer, RoomSetting
from .store import MessageSnapshot, MessageStore
from .transport import BlobStorage, EventTransport, RoomPlatform, SubscriptionHandle

logger = logging.getLogger(__name__)

ChangeCallback = Callable[["RoomView"], None]
FailureCallback = Callable[[RoomChatError], None]
IncomingCallback = Callable[[Message], None]


class ActivationState(str, Enum):
    INACTIVE = "inactive"
    LOADING = "loading"
    ACTIVE = "active"
    CLOSED = "closed"


class RoomView:
    """Owns the message store, room settings and both subscriptions of one room.

    All mutations happen on the event loop thread: transport callbacks are
    applied as they arrive, including while a send is awaiting the platform.
    """

    def __init__(
        self,
        participant: ParticipantSession,
        platform: RoomPlatform,
        transport: EventTransport,
        blobs: BlobStorage | None = None,
        reply_preview_chars: int = 80,
        on_change: ChangeCallback | None = None,
        on_failure: FailureCallback | None = None,
        on_incoming: IncomingCallback | None = None,
    ) -> None:
        self.room_id = participant.room_id
        self.participant = participant
        self.store = MessageStore(room_id=participant.room_id)
        self._platform = platform
        self._transport = transport
        self._blobs = blobs
        self._reply_preview_chars = reply_preview_chars
        self._on_change = on_change
        self._on_failure = on_failure
        self._on_incoming = on_incoming
        self._state = ActivationState.INACTIVE
        self._config: RoomConfigSynchronizer | None = None
        self._handles: list[SubscriptionHandle] = []
        self._buffered: list[tuple[Topic, Mapping[str, Any]]] = []
        self._drafts: dict[str, MessageDraft] = {}

    @property
    def state(self) -> ActivationState:
        return self._state

    @property
    def room(self) -> Room:
        if self._config is None:
            raise InvalidStateError(f"Room {self.room_id!r} has not been loaded")
        return self._config.room

    async def open(self) -> None:
        if self._state is not ActivationState.INACTIVE:
            raise InvalidStateError(f"Cannot open room {self.room_id!r} from state {self._state.value}")
        self._state = ActivationState.LOADING
        try:
            for topic in (Topic.MESSAGES, Topic.ROOM_CONFIG):
                self._handles.append(
                    await self._transport.subscribe(topic, self.room_id, self._subscriber(topic))
                )
            room = await self._platform.fetch_room(self.room_id)
            if room is None:
                raise RoomNotFoundError(self.room_id)
            messages = await self._platform.fetch_messages(self.room_id)
            if self._state is not ActivationState.LOADING:
                raise InvalidStateError(f"Room {self.room_id!r} was closed while loading")
        except BaseException:
            try:
                self.close()
            except TransportError:
                logger.exception("Releasing subscriptions for room %s failed", self.room_id)
            raise

        self._config = RoomConfigSynchronizer(room)
        self.store.load_initial(messages)
        self._state = ActivationState.ACTIVE
        logger.info("Room %s active with %d messages", self.room_id, len(messages))
        buffered, self._buffered = self._buffered, []
        for topic, raw in buffered:
            self._on_event(topic, raw)
        self._changed()

    def close(self) -> None:
        if self._state is ActivationState.CLOSED and not self._handles:
            return
        self._state = ActivationState.CLOSED
        handles, self._handles = self._handles, []
        failures: list[Exception] = []
        for handle in handles:
            try:
                self._transport.unsubscribe(handle)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Failed to unsubscribe %s for room %s", handle.topic.value, self.room_id)
                failures.append(exc)
        self.store.close()
        self._drafts.clear()
        self._buffered.clear()
        if failures:
            raise TransportError(f"Failed to release {len(failures)} subscription(s)") from failures[0]

    def snapshot(self) -> MessageSnapshot:
        return self.store.snapshot()

    def resolve_reply(self, message: Message) -> ResolvedReply | None:
        return resolve_reply(message, self.store.snapshot(), max_chars=self._reply_preview_chars)

    async def send(
        self,
        body: str = "",
        reply_to: str | None = None,
        kind: MessageKind = MessageKind.TEXT,
        attachment: Attachment | None = None,
    ) -> Message | None:
        self._require_active()
        if not body.strip() and attachment is None:
            return None
        if reply_to is not None:
            target = self.store.get(reply_to)
            if target is not None and target.is_optimistic:
                raise InvalidStateError(f"Cannot reply to unconfirmed message {reply_to!r}")
        draft = MessageDraft(
            room_id=self.room_id,
            author_id=self.participant.user_id,
            author_display_name=self.participant.display_name,
            body=body,
            kind=kind,
            attachment=attachment,
            reply_to=reply_to,
        )
        pending_id = self.store.append_optimistic(draft)
        self._drafts[pending_id] = draft
        self._changed()
        return await self._deliver(pending_id=pending_id, draft=draft)

    async def retry(self, pending_id: str) -> Message | None:
        self._require_active()
        draft = self._drafts.get(pending_id)
        if draft is None or self.store.get(pending_id) is None:
            raise NotFoundError(f"No failed message {pending_id!r} to retry")
        if self.store.mark_pending(pending_id) is None:
            raise InvalidStateError(f"Message {pending_id!r} is not awaiting retry")
        self._changed()
        return await self._deliver(pending_id=pending_id, draft=draft)

    def discard(self, pending_id: str) -> bool:
        self._require_active()
        self._drafts.pop(pending_id, None)
        discarded = self.store.discard_optimistic(pending_id)
        if discarded:
            self._changed()
        return discarded

    async def send_file(
        self,
        name: str,
        content: bytes,
        mime_type: str,
        kind: MessageKind | None = None,
        body: str = "",
        reply_to: str | None = None,
    ) -> Message | None:
        self._require_active()
        if self._blobs is None:
            raise InvalidStateError("No blob storage configured for file messages")
        try:
            url = await self._blobs.upload(self.room_id, name, content, mime_type)
        except TransportError as exc:
            logger.warning("Upload of %s to room %s failed: %s", name, self.room_id, exc)
            self._fail(exc)
            return None
        if self._state is not ActivationState.ACTIVE:
            return None
        attachment = Attachment(url=url, name=name, mime_type=mime_type, size_bytes=len(content))
        return await self.send(
            body=body,
            reply_to=reply_to,
            kind=kind or kind_for_mime(mime_type),
            attachment=attachment,
        )

    async def toggle_reaction(self, message_id: str, action: ReactionAction) -> bool:
        self._require_active()
        message = self.store.get(message_id)
        if message is not None and message.is_optimistic:
            raise InvalidStateError(f"Cannot react to unconfirmed message {message_id!r}")
        update = compute_reaction(
            snapshot=self.store.snapshot(),
            message_id=message_id,
            participant_id=self.participant.user_id,
            action=ReactionAction(action),
        )
        previous = self.store.apply_reactions(message_id, update.sets)
        logger.debug(
            "Reaction of %s on %s is now %s",
            self.participant.user_id,
            message_id,
            update.sets.reaction_of(self.participant.user_id),
        )
        self._changed()
        try:
            await self._platform.update_message(self.room_id, message_id, update.to_patch())
        except TransportError as exc:
            logger.warning("Reaction on %s in room %s failed: %s", message_id, self.room_id, exc)
            if self._state is ActivationState.ACTIVE:
                current = self.store.get(message_id)
                if current is not None and (current.liked_by, current.disliked_by) == (
                    update.sets.liked_by,
                    update.sets.disliked_by,
                ):
                    self.store.apply_reactions(message_id, previous)
                    self._changed()
            self._fail(exc)
            return False
        return True

    async def delete(self, message_id: str) -> bool:
        self._require_active()
        message = self.store.get(message_id)
        if message is None:
            raise NotFoundError(f"Message {message_id!r} not found")
        if message.author_id != self.participant.user_id:
            raise AccessDeniedError(f"Only the author may delete message {message_id!r}")
        if message.is_optimistic:
            raise InvalidStateError(f"Message {message_id!r} is not confirmed; discard it instead")
        try:
            await self._platform.delete_message(self.room_id, message_id)
        except TransportError as exc:
            logger.warning("Delete of %s in room %s failed: %s", message_id, self.room_id, exc)
            self._fail(exc)
            return False
        if self._state is ActivationState.ACTIVE and self.store.apply_remote_delete(message_id):
            self._changed()
        return True

    async def change_setting(self, setting: RoomSetting, value: Any) -> Room:
        config = self._active_config()
        setting = RoomSetting(setting)
        previous = getattr(config.room, setting.value)
        patch = config.apply_local(setting, value)
        applied = getattr(config.room, setting.value)
        self._changed()
        try:
            await self._platform.update_room(self.room_id, patch)
        except TransportError as exc:
            logger.warning("Updating %s of room %s failed: %s", setting.value, self.room_id, exc)
            if self._state is ActivationState.ACTIVE and getattr(config.room, setting.value) == applied:
                config.apply_local(setting, previous)
                self._changed()
            self._fail(exc)
        return config.room

    async def _deliver(self, pending_id: str, draft: MessageDraft) -> Message | None:
        try:
            message = await self._platform.create_message(draft, pending_id)
        except TransportError as exc:
            logger.warning("Sending %s to room %s failed: %s", pending_id, self.room_id, exc)
            if self._state is ActivationState.ACTIVE and self.store.mark_failed(pending_id) is not None:
                self._changed()
            self._fail(exc)
            return None
        if self._state is not ActivationState.ACTIVE:
            logger.debug("Dropping confirmation for %s after room %s closed", pending_id, self.room_id)
            return None
        self._drafts.pop(pending_id, None)
        confirmed = self.store.reconcile(pending_id, message)
        self._changed()
        return confirmed

    def _subscriber(self, topic: Topic) -> Callable[[Mapping[str, Any]], None]:
        def deliver(raw: Mapping[str, Any]) -> None:
            self._on_event(topic, raw)

        return deliver

    def _on_event(self, topic: Topic, raw: Mapping[str, Any]) -> None:
        if self._state is ActivationState.LOADING:
            self._buffered.append((topic, raw))
            return
        if self._state is not ActivationState.ACTIVE:
            logger.debug("Dropping %s event for inactive room %s", topic.value, self.room_id)
            return
        self._dispatch(topic, raw)

    def _dispatch(self, topic: Topic, raw: Mapping[str, Any]) -> None:
        try:
            event = decode_event(topic, raw)
        except TransportError as exc:
            logger.warning("Dropping %s event for room %s: %s", topic.value, self.room_id, exc)
            return
        self._apply(event)

    def _apply(self, event: TransportEvent) -> None:
        if isinstance(event, MessageInserted):
            message = event.message
            is_new = self.store.get(message.id) is None and (
                message.pending_id is None or self.store.get(message.pending_id) is None
            )
            if self.store.apply_remote_insert(message) is None:
                return
            if is_new and message.author_id != self.participant.user_id:
                self._alert(message)
        elif isinstance(event, MessageUpdated):
            if self.store.apply_remote_update(event.message) is None:
                return
        elif isinstance(event, MessageDeleted):
            if not self.store.apply_remote_delete(event.message_id):
                return
        elif isinstance(event, RoomConfigUpdated):
            if event.room_id != self.room_id:
                logger.warning("Ignoring settings for room %s in room %s", event.room_id, self.room_id)
                return
            self._active_config().apply_remote(event.settings)
        elif isinstance(event, RoomDeleted):
            if event.room_id != self.room_id:
                return
            logger.info("Room %s was deleted remotely", self.room_id)
            self.close()
            self._fail(RoomNotFoundError(self.room_id))
            return
        self._changed()

    def _alert(self, message: Message) -> None:
        if self._on_incoming is not None and not self.room.is_muted:
            self._on_incoming(message)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self)

    def _fail(self, error: RoomChatError) -> None:
        if self._on_failure is not None:
            self._on_failure(error)

    def _require_active(self) -> None:
        if self._state is not ActivationState.ACTIVE:
            raise InvalidStateError(f"Room {self.room_id!r} is {self._state.value}, not active")

    def _active_config(self) -> RoomConfigSynchronizer:
        self._require_active()
        if self._config is None:
            raise InvalidStateError(f"Room {self.room_id!r} has not been loaded")
        return self._config


class ChatClient:
    """Joins rooms and keeps at most one room view active at a time."""

    def __init__(
        self,
        platform: RoomPlatform,
        transport: EventTransport,
        identities: IdentityStore | None = None,
        blobs: BlobStorage | None = None,
        settings: ClientSettings | None = None,
        on_change: ChangeCallback | None = None,
        on_failure: FailureCallback | None = None,
        on_incoming: IncomingCallback | None = None,
    ) -> None:
        self.settings = settings if settings is not None else load_client_settings()
        self.identities = identities if identities is not None else create_identity_store(self.settings.identity_dir)
        self._platform = platform
        self._transport = transport
        self._blobs = blobs
        self._on_change = on_change
        self._on_failure = on_failure
        self._on_incoming = on_incoming
        self._active: RoomView | None = None

    @property
    def active_view(self) -> RoomView | None:
        return self._active

    async def join_room(self, room_id: str, password: str, display_name: str) -> ParticipantSession:
        display_name = display_name.strip()
        if not display_name:
            raise ValueError("display name must not be empty")
        existing = self.identities.load(room_id)
        user_id = existing.user_id if existing is not None else generate_user_id()
        verdict = await self._platform.join_room(room_id, password, user_id=user_id, display_name=display_name)
        if verdict is None:
            raise RoomNotFoundError(room_id)
        if not verdict:
            raise AccessDeniedError(f"Wrong password for room {room_id!r}")
        session = ParticipantSession(room_id=room_id, user_id=user_id, display_name=display_name)
        self.identities.save(session)
        return session

    async def activate_room(self, room_id: str) -> RoomView:
        participant = self.identities.load(room_id)
        if participant is None:
            raise IdentityMissingError(room_id)
        if self._active is not None:
            self.deactivate_room(self._active)
        view = RoomView(
            participant=participant,
            platform=self._platform,
            transport=self._transport,
            blobs=self._blobs,
            reply_preview_chars=self.settings.reply_preview_chars,
            on_change=self._on_change,
            on_failure=self._on_failure,
            on_incoming=self._on_incoming,
        )
        await view.open()
        self._active = view
        return view

    def deactivate_room(self, view: RoomView) -> None:
        try:
            view.close()
        finally:
            if self._active is view:
                self._active = None

"""Client-side realtime reconciliation engine for chat rooms."""

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
from .identity import FileIdentityStore, InMemoryIdentityStore, create_identity_store
from .local import LocalPlatform
from .models import (
    Attachment,
    BackgroundPattern,
    DeliveryState,
    Message,
    MessageDraft,
    MessageKind,
    ParticipantSession,
    Room,
    RoomSettings,
)
from .reactions import ReactionAction, ReactionSets, compute_reaction, toggle_reaction
from .relay import RelayEventTransport, RelayPlatform, create_relay_client
from .replies import ResolvedReply, resolve_reply
from .room_config import RoomConfigSynchronizer, RoomSetting
from .session import ActivationState, ChatClient, RoomView
from .store import MessageSnapshot, MessageStore
from .transport import InMemoryBlobStorage, InMemoryEventBus

__all__ = [
    "AccessDeniedError",
    "ActivationState",
    "Attachment",
    "BackgroundPattern",
    "ChatClient",
    "ClientSettings",
    "compute_reaction",
    "create_identity_store",
    "create_relay_client",
    "DeliveryState",
    "FileIdentityStore",
    "IdentityMissingError",
    "InMemoryBlobStorage",
    "InMemoryEventBus",
    "InMemoryIdentityStore",
    "InvalidStateError",
    "load_client_settings",
    "LocalPlatform",
    "Message",
    "MessageDraft",
    "MessageKind",
    "MessageSnapshot",
    "MessageStore",
    "NotFoundError",
    "ParticipantSession",
    "ReactionAction",
    "ReactionSets",
    "RelayEventTransport",
    "RelayPlatform",
    "resolve_reply",
    "ResolvedReply",
    "Room",
    "RoomChatError",
    "RoomConfigSynchronizer",
    "RoomNotFoundError",
    "RoomSetting",
    "RoomSettings",
    "RoomView",
    "toggle_reaction",
    "TransportError",
]

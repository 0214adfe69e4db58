"""Room settings reconciliation with last-arrival-wins semantics."""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from enum import Enum
from typing import Any

from .models import BackgroundPattern, Room, RoomSettings

logger = logging.getLogger(__name__)

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


class RoomSetting(str, Enum):
    BACKGROUND_COLOR = "background_color"
    BACKGROUND_PATTERN = "background_pattern"
    IS_MUTED = "is_muted"


def validate_setting(setting: RoomSetting, value: Any) -> Any:
    if setting is RoomSetting.BACKGROUND_COLOR:
        if not isinstance(value, str) or not _HEX_COLOR.match(value):
            raise ValueError(f"background_color must be a hex color, got {value!r}")
        return value
    if setting is RoomSetting.BACKGROUND_PATTERN:
        return BackgroundPattern(value)
    if not isinstance(value, bool):
        raise ValueError(f"is_muted must be a bool, got {value!r}")
    return value


class RoomConfigSynchronizer:
    """Holds the in-memory ``Room`` fed by local intent and the remote stream.

    Whichever update is applied last wins. No causal ordering is tracked: a
    remote update arriving after an optimistic local write overwrites it.
    """

    def __init__(self, room: Room) -> None:
        self._room = room

    @property
    def room(self) -> Room:
        return self._room

    def apply_local(self, setting: RoomSetting, value: Any) -> dict[str, Any]:
        """Apply one setting optimistically and return the patch to persist."""
        setting = RoomSetting(setting)
        value = validate_setting(setting=setting, value=value)
        self._room = replace(self._room, **{setting.value: value})
        wire_value = value.value if isinstance(value, BackgroundPattern) else value
        return {setting.value: wire_value}

    def apply_remote(self, settings: RoomSettings) -> Room:
        changes: dict[str, Any] = {}
        if settings.background_color is not None:
            changes["background_color"] = settings.background_color
        if settings.background_pattern is not None:
            changes["background_pattern"] = settings.background_pattern
        if settings.is_muted is not None:
            changes["is_muted"] = settings.is_muted
        if changes:
            self._room = replace(self._room, **changes)
            logger.debug("Applied remote settings %s to room %s", sorted(changes), self._room.id)
        return self._room

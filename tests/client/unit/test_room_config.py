import pytest

from roomchat.client.models import BackgroundPattern, Room, RoomSettings
from roomchat.client.room_config import RoomConfigSynchronizer, RoomSetting


def _room() -> Room:
    return Room(id="general", name="General")


def test_local_write_is_applied_optimistically_and_returns_patch() -> None:
    sync = RoomConfigSynchronizer(_room())

    patch = sync.apply_local(RoomSetting.BACKGROUND_PATTERN, "dots")

    assert patch == {"background_pattern": "dots"}
    assert sync.room.background_pattern is BackgroundPattern.DOTS


def test_remote_update_after_local_write_wins() -> None:
    sync = RoomConfigSynchronizer(_room())

    sync.apply_local(RoomSetting.BACKGROUND_COLOR, "#fff")
    sync.apply_remote(RoomSettings(background_color="#000"))

    assert sync.room.background_color == "#000"


def test_local_write_after_remote_update_wins() -> None:
    sync = RoomConfigSynchronizer(_room())

    sync.apply_remote(RoomSettings(is_muted=True))
    sync.apply_local(RoomSetting.IS_MUTED, False)

    assert sync.room.is_muted is False


def test_remote_update_only_touches_fields_it_carries() -> None:
    sync = RoomConfigSynchronizer(_room())
    sync.apply_local(RoomSetting.BACKGROUND_COLOR, "#ef4444")

    sync.apply_remote(RoomSettings(is_muted=True))

    assert sync.room.background_color == "#ef4444"
    assert sync.room.is_muted is True


@pytest.mark.parametrize(
    ("setting", "value"),
    [
        (RoomSetting.BACKGROUND_COLOR, "red"),
        (RoomSetting.BACKGROUND_COLOR, "#12345"),
        (RoomSetting.BACKGROUND_PATTERN, "stripes"),
        (RoomSetting.IS_MUTED, "yes"),
    ],
)
def test_invalid_local_values_are_rejected(setting: RoomSetting, value: object) -> None:
    sync = RoomConfigSynchronizer(_room())

    with pytest.raises(ValueError):
        sync.apply_local(setting, value)

    assert sync.room == _room()


def test_setting_accepts_wire_name() -> None:
    sync = RoomConfigSynchronizer(_room())

    patch = sync.apply_local("is_muted", True)

    assert patch == {"is_muted": True}

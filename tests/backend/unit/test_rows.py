from datetime import datetime, timezone

from roomchat.backend.rows import (
    apply_reaction_patch,
    apply_room_patch,
    build_message_row,
    message_out,
    public_room_row,
    settings_payload,
)


def test_build_message_row_ignores_server_owned_fields() -> None:
    row = build_message_row(
        message_id="m-1",
        room_id="general",
        fields={"id": "forged", "created_at": "1999-01-01", "likes": ["u-9"], "content": None, "user_id": "u-1"},
    )

    assert row["id"] == "m-1"
    assert row["room_id"] == "general"
    assert row["likes"] == [] and row["dislikes"] == []
    assert row["content"] == ""
    assert row["message_type"] == "text"
    assert row["created_at"] != "1999-01-01"


def test_message_out_serializes_datetimes() -> None:
    created = datetime(2024, 5, 1, 12, tzinfo=timezone.utc)

    row = message_out({"id": "m-1", "created_at": created, "likes": ("u-1",)})

    assert row["created_at"] == "2024-05-01T12:00:00+00:00"
    assert row["likes"] == ["u-1"]
    assert row["client_ref"] is None


def test_public_room_row_drops_password_hash() -> None:
    row = public_room_row({"id": "general", "name": "General", "password_hash": "x", "is_muted": False})

    assert "password_hash" not in row
    assert row["name"] == "General"


def test_apply_reaction_patch_leaves_original_untouched() -> None:
    original = {"id": "m-1", "likes": ["u-1"], "dislikes": []}

    patched = apply_reaction_patch(original, {"likes": [], "dislikes": ["u-1"], "content": "edited"})

    assert original["likes"] == ["u-1"]
    assert patched["likes"] == []
    assert patched["dislikes"] == ["u-1"]
    assert "content" not in patched


def test_apply_room_patch_only_touches_settings() -> None:
    patched = apply_room_patch({"id": "general", "name": "General", "is_muted": False}, {"is_muted": True, "name": "x"})

    assert patched == {"id": "general", "name": "General", "is_muted": True}


def test_settings_payload_carries_only_changed_fields() -> None:
    assert settings_payload("general", {"background_color": "#000"}) == {
        "id": "general",
        "background_color": "#000",
    }

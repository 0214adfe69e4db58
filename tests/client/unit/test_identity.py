from roomchat.client.identity import (
    FileIdentityStore,
    InMemoryIdentityStore,
    create_identity_store,
    generate_user_id,
)
from roomchat.client.models import ParticipantSession


def test_create_identity_store_uses_files_when_directory_present(tmp_path) -> None:
    store = create_identity_store(identity_dir=str(tmp_path))

    assert isinstance(store, FileIdentityStore)


def test_create_identity_store_falls_back_to_memory() -> None:
    assert isinstance(create_identity_store(identity_dir=None), InMemoryIdentityStore)


def test_generate_user_id_is_unique() -> None:
    assert generate_user_id() != generate_user_id()


def test_file_identity_store_round_trips_per_room(tmp_path) -> None:
    store = FileIdentityStore(directory=tmp_path / "identities")
    session = ParticipantSession(room_id="room/1", user_id="u-1", display_name="Ada")

    store.save(session)
    reopened = FileIdentityStore(directory=tmp_path / "identities")

    assert reopened.load("room/1") == session
    assert reopened.load("room-2") is None


def test_file_identity_store_forget_removes_identity(tmp_path) -> None:
    store = FileIdentityStore(directory=tmp_path)
    store.save(ParticipantSession(room_id="general", user_id="u-1", display_name="Ada"))

    store.forget("general")
    store.forget("general")

    assert store.load("general") is None


def test_file_identity_store_ignores_unreadable_file(tmp_path, caplog) -> None:
    store = FileIdentityStore(directory=tmp_path)
    (tmp_path / "room_general.json").write_text("{not json", encoding="utf-8")

    assert store.load("general") is None
    assert "unreadable identity file" in caplog.text


def test_file_identity_store_rejects_identity_of_other_room(tmp_path) -> None:
    store = FileIdentityStore(directory=tmp_path)
    (tmp_path / "room_general.json").write_text(
        '{"room_id": "random", "user_id": "u-1", "display_name": "Ada"}',
        encoding="utf-8",
    )

    assert store.load("general") is None

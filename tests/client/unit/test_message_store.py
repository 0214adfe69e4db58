from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from roomchat.client.errors import InvalidStateError, NotFoundError
from roomchat.client.models import DeliveryState, Message, MessageDraft, MessageKind
from roomchat.client.reactions import ReactionSets
from roomchat.client.store import MessageStore

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _message(message_id: str, minute: int, room_id: str = "general", **overrides) -> Message:
    fields = {
        "id": message_id,
        "room_id": room_id,
        "author_id": "u-1",
        "author_display_name": "Ada",
        "body": f"body of {message_id}",
        "kind": MessageKind.TEXT,
        "created_at": BASE_TIME + timedelta(minutes=minute),
    }
    fields.update(overrides)
    return Message(**fields)


def _draft(body: str = "hello", room_id: str = "general") -> MessageDraft:
    return MessageDraft(room_id=room_id, author_id="u-1", author_display_name="Ada", body=body)


def _loaded_store(*messages: Message) -> MessageStore:
    store = MessageStore(room_id="general")
    store.load_initial(messages)
    return store


def test_load_initial_orders_by_created_at() -> None:
    store = _loaded_store(_message("b", 2), _message("a", 1), _message("c", 3))

    assert store.snapshot().ids() == ["a", "b", "c"]


def test_load_initial_rejects_second_activation_until_closed() -> None:
    store = _loaded_store(_message("a", 1))

    with pytest.raises(InvalidStateError):
        store.load_initial([])

    store.close()
    store.load_initial([_message("z", 9)])

    assert store.snapshot().ids() == ["z"]


def test_operations_before_load_raise_invalid_state() -> None:
    store = MessageStore(room_id="general")

    with pytest.raises(InvalidStateError):
        store.snapshot()
    with pytest.raises(InvalidStateError):
        store.apply_remote_insert(_message("a", 1))
    with pytest.raises(InvalidStateError):
        store.append_optimistic(_draft())


def test_remote_insert_is_idempotent() -> None:
    store = _loaded_store()
    message = _message("m-1", 1)

    store.apply_remote_insert(message)
    store.apply_remote_insert(message)

    assert store.snapshot().ids() == ["m-1"]


def test_equal_timestamps_keep_arrival_order() -> None:
    store = _loaded_store()

    store.apply_remote_insert(_message("second", 5))
    store.apply_remote_insert(_message("first", 5))
    store.apply_remote_insert(_message("earlier", 4))

    assert store.snapshot().ids() == ["earlier", "second", "first"]


def test_out_of_order_arrival_renders_by_timestamp() -> None:
    store = _loaded_store()

    store.apply_remote_insert(_message("late", 10))
    store.apply_remote_insert(_message("early", 1))

    assert store.snapshot().ids() == ["early", "late"]


def test_optimistic_send_then_echo_yields_one_message() -> None:
    store = _loaded_store(_message("A", 1), _message("B", 2))

    pending_id = store.append_optimistic(_draft(body="C"))
    pending = store.get(pending_id)

    assert pending is not None
    assert pending.delivery is DeliveryState.PENDING
    assert pending_id.startswith("tmp-")

    echo = _message("m-42", 3, body="C", pending_id=pending_id)
    store.apply_remote_insert(echo)

    snapshot = store.snapshot()
    assert len(snapshot) == 3
    assert snapshot.ids() == ["A", "B", "m-42"]
    assert snapshot[-1].delivery is DeliveryState.SENT
    assert store.get(pending_id) is None


def test_reconcile_after_echo_without_reference_drops_pending_entry() -> None:
    store = _loaded_store(_message("A", 1))
    pending_id = store.append_optimistic(_draft(body="hi"))

    store.apply_remote_insert(_message("m-7", 2, body="hi"))
    store.reconcile(pending_id, _message("m-7", 2, body="hi"))

    assert store.snapshot().ids() == ["A", "m-7"]


def test_reconcile_then_echo_is_idempotent() -> None:
    store = _loaded_store()
    pending_id = store.append_optimistic(_draft(body="hi"))
    canonical = _message("m-9", 2, body="hi", pending_id=pending_id)

    store.reconcile(pending_id, canonical)
    store.apply_remote_insert(canonical)

    assert store.snapshot().ids() == ["m-9"]


def test_insert_referencing_confirmed_message_does_not_replace_it() -> None:
    store = _loaded_store(_message("m-1", 1), _message("m-2", 2))

    store.apply_remote_insert(_message("m-9", 3, author_id="u-2", pending_id="m-1"))

    snapshot = store.snapshot()
    assert snapshot.ids() == ["m-1", "m-2", "m-9"]
    assert snapshot.get("m-1") == _message("m-1", 1)


def test_reconcile_against_confirmed_message_keeps_both(caplog) -> None:
    store = _loaded_store(_message("m-1", 1))

    store.reconcile("m-1", _message("m-9", 2, author_id="u-2"))

    assert store.snapshot().ids() == ["m-1", "m-9"]
    assert "as its draft" in caplog.text


def test_remote_update_replaces_message_in_place() -> None:
    store = _loaded_store(_message("a", 1), _message("b", 2))

    store.apply_remote_update(_message("a", 1, liked_by=frozenset({"u-2"})))

    snapshot = store.snapshot()
    assert snapshot.ids() == ["a", "b"]
    assert snapshot[0].liked_by == frozenset({"u-2"})


def test_remote_update_for_unknown_id_is_warning_only(caplog) -> None:
    store = _loaded_store(_message("a", 1))

    with caplog.at_level("WARNING"):
        result = store.apply_remote_update(_message("ghost", 1))

    assert result is None
    assert store.snapshot().ids() == ["a"]
    assert "unknown message ghost" in caplog.text


def test_remote_delete_is_idempotent() -> None:
    store = _loaded_store(_message("a", 1), _message("m-5", 2))

    assert store.apply_remote_delete("m-5") is True
    assert store.apply_remote_delete("m-5") is False
    assert store.snapshot().ids() == ["a"]


def test_like_update_then_delete_race_leaves_no_message() -> None:
    store = _loaded_store(_message("m-5", 1))

    store.apply_remote_update(_message("m-5", 1, liked_by=frozenset({"u-3"})))
    store.apply_remote_delete("m-5")
    store.apply_remote_update(_message("m-5", 1, liked_by=frozenset({"u-4"})))

    assert store.snapshot().get("m-5") is None
    assert len(store.snapshot()) == 0


def test_messages_from_other_rooms_are_dropped() -> None:
    store = _loaded_store()

    result = store.apply_remote_insert(_message("x", 1, room_id="other"))

    assert result is None
    assert len(store.snapshot()) == 0


def test_snapshot_is_stable_while_store_mutates() -> None:
    store = _loaded_store(_message("a", 1), _message("b", 2))
    snapshot = store.snapshot()

    iterator = iter(snapshot)
    first = next(iterator)
    store.apply_remote_delete("b")
    store.apply_remote_insert(_message("c", 3))
    rest = list(iterator)

    assert [first.id] + [message.id for message in rest] == ["a", "b"]
    assert [message.id for message in snapshot] == ["a", "b"]
    assert store.snapshot().ids() == ["a", "c"]


def test_snapshot_is_shared_until_next_mutation() -> None:
    store = _loaded_store(_message("a", 1))

    first = store.snapshot()
    second = store.snapshot()
    store.apply_remote_insert(_message("b", 2))

    assert first is second
    assert store.snapshot() is not first


def test_mark_failed_then_pending_and_discard() -> None:
    store = _loaded_store()
    pending_id = store.append_optimistic(_draft())

    failed = store.mark_failed(pending_id)
    retried = store.mark_pending(pending_id)

    assert failed is not None and failed.delivery is DeliveryState.FAILED
    assert retried is not None and retried.delivery is DeliveryState.PENDING
    assert store.discard_optimistic(pending_id) is True
    assert len(store.snapshot()) == 0


def test_discard_ignores_confirmed_messages() -> None:
    store = _loaded_store(_message("a", 1))

    assert store.discard_optimistic("a") is False
    assert store.mark_failed("a") is None
    assert store.snapshot().ids() == ["a"]


def test_apply_reactions_returns_previous_sets() -> None:
    store = _loaded_store(_message("a", 1, disliked_by=frozenset({"u-1"})))

    previous = store.apply_reactions(
        "a",
        ReactionSets(liked_by=frozenset({"u-1"}), disliked_by=frozenset()),
    )

    assert previous == ReactionSets(liked_by=frozenset(), disliked_by=frozenset({"u-1"}))
    message = store.get("a")
    assert message is not None
    assert message.liked_by == frozenset({"u-1"})


def test_apply_reactions_unknown_message_raises_not_found() -> None:
    store = _loaded_store()

    with pytest.raises(NotFoundError):
        store.apply_reactions("nope", ReactionSets(liked_by=frozenset(), disliked_by=frozenset()))


def test_close_discards_optimistic_state() -> None:
    store = _loaded_store(_message("a", 1))
    store.append_optimistic(_draft())

    store.close()

    assert store.is_active is False
    with pytest.raises(InvalidStateError):
        store.snapshot()


def test_append_optimistic_rejects_foreign_room_draft() -> None:
    store = _loaded_store()

    with pytest.raises(InvalidStateError):
        store.append_optimistic(_draft(room_id="other"))


def test_reconciled_message_moves_to_server_timestamp() -> None:
    store = _loaded_store(_message("A", 1))
    pending_id = store.append_optimistic(_draft(body="x"))
    pending = store.get(pending_id)
    assert pending is not None

    store.apply_remote_insert(_message("B", 2))
    canonical = replace(
        _message("m-1", 3, body="x"),
        created_at=pending.created_at + timedelta(days=1),
        pending_id=pending_id,
    )
    store.apply_remote_insert(canonical)

    assert store.snapshot().ids() == ["A", "B", "m-1"]

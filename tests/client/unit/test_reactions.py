from datetime import datetime, timezone

import pytest

from roomchat.client.errors import NotFoundError
from roomchat.client.models import Message, MessageKind
from roomchat.client.reactions import (
    ReactionAction,
    ReactionSets,
    compute_reaction,
    toggle_reaction,
)
from roomchat.client.store import MessageSnapshot

EMPTY = ReactionSets(liked_by=frozenset(), disliked_by=frozenset())


def _message(message_id: str, liked_by: set[str] = frozenset(), disliked_by: set[str] = frozenset()) -> Message:
    return Message(
        id=message_id,
        room_id="general",
        author_id="u-1",
        author_display_name="Ada",
        body="hi",
        kind=MessageKind.TEXT,
        created_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        liked_by=frozenset(liked_by),
        disliked_by=frozenset(disliked_by),
    )


def test_like_adds_participant() -> None:
    result = toggle_reaction(current=EMPTY, participant_id="u-1", action=ReactionAction.LIKE)

    assert result.liked_by == frozenset({"u-1"})
    assert result.disliked_by == frozenset()


def test_like_twice_removes_participant() -> None:
    liked = toggle_reaction(current=EMPTY, participant_id="u-1", action=ReactionAction.LIKE)

    result = toggle_reaction(current=liked, participant_id="u-1", action=ReactionAction.LIKE)

    assert result == EMPTY


def test_switch_from_dislike_to_like_is_atomic() -> None:
    current = ReactionSets(liked_by=frozenset({"u-2"}), disliked_by=frozenset({"u-1", "u-3"}))

    result = toggle_reaction(current=current, participant_id="u-1", action=ReactionAction.LIKE)

    assert result.liked_by == frozenset({"u-1", "u-2"})
    assert result.disliked_by == frozenset({"u-3"})


def test_like_dislike_like_returns_to_liked_only() -> None:
    state = EMPTY
    for action in (ReactionAction.LIKE, ReactionAction.DISLIKE, ReactionAction.LIKE):
        state = toggle_reaction(current=state, participant_id="u-1", action=action)
        assert not state.liked_by & state.disliked_by

    assert state.reaction_of("u-1") is ReactionAction.LIKE
    assert state.disliked_by == frozenset()


def test_any_toggle_sequence_keeps_sets_disjoint() -> None:
    sequence = [
        ReactionAction.DISLIKE,
        ReactionAction.DISLIKE,
        ReactionAction.LIKE,
        ReactionAction.DISLIKE,
        ReactionAction.LIKE,
        ReactionAction.LIKE,
        ReactionAction.DISLIKE,
    ]
    state = ReactionSets(liked_by=frozenset({"u-9"}), disliked_by=frozenset({"u-8"}))

    for action in sequence:
        state = toggle_reaction(current=state, participant_id="u-1", action=action)
        assert not state.liked_by & state.disliked_by
        assert "u-9" in state.liked_by
        assert "u-8" in state.disliked_by


def test_participant_in_both_sets_is_normalized() -> None:
    corrupt = ReactionSets(liked_by=frozenset({"u-1"}), disliked_by=frozenset({"u-1"}))

    result = toggle_reaction(current=corrupt, participant_id="u-1", action=ReactionAction.DISLIKE)

    assert result == EMPTY


def test_compute_reaction_reads_snapshot_and_builds_patch() -> None:
    snapshot = MessageSnapshot([_message("m-1", liked_by={"u-2"}, disliked_by={"u-1"})])

    update = compute_reaction(snapshot=snapshot, message_id="m-1", participant_id="u-1", action=ReactionAction.LIKE)

    assert update.message_id == "m-1"
    assert update.to_patch() == {"likes": ["u-1", "u-2"], "dislikes": []}


def test_compute_reaction_unknown_message_raises_not_found() -> None:
    snapshot = MessageSnapshot([_message("m-1")])

    with pytest.raises(NotFoundError):
        compute_reaction(snapshot=snapshot, message_id="m-2", participant_id="u-1", action=ReactionAction.LIKE)

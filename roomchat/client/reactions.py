"""Pure like/dislike toggling with per-participant mutual exclusion."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import NotFoundError

if TYPE_CHECKING:
    from .store import MessageSnapshot


class ReactionAction(str, Enum):
    LIKE = "like"
    DISLIKE = "dislike"


@dataclass(frozen=True)
class ReactionSets:
    liked_by: frozenset[str]
    disliked_by: frozenset[str]

    def reaction_of(self, participant_id: str) -> ReactionAction | None:
        if participant_id in self.liked_by:
            return ReactionAction.LIKE
        if participant_id in self.disliked_by:
            return ReactionAction.DISLIKE
        return None


@dataclass(frozen=True)
class ReactionUpdate:
    message_id: str
    sets: ReactionSets

    def to_patch(self) -> dict[str, Any]:
        """Wire patch for the persistence collaborator, sorted for stable payloads."""
        return {
            "likes": sorted(self.sets.liked_by),
            "dislikes": sorted(self.sets.disliked_by),
        }


def toggle_reaction(current: ReactionSets, participant_id: str, action: ReactionAction) -> ReactionSets:
    """Toggle ``action`` for ``participant_id``.

    Reacting again with the same action removes the reaction. Otherwise the
    participant is added to the target set and removed from the other one
    in the same step.
    """
    if action is ReactionAction.LIKE:
        target, other = current.liked_by, current.disliked_by
    else:
        target, other = current.disliked_by, current.liked_by

    if participant_id in target:
        new_target = target - {participant_id}
    else:
        new_target = target | {participant_id}
    new_other = other - {participant_id}

    if action is ReactionAction.LIKE:
        return ReactionSets(liked_by=new_target, disliked_by=new_other)
    return ReactionSets(liked_by=new_other, disliked_by=new_target)


def compute_reaction(
    snapshot: MessageSnapshot,
    message_id: str,
    participant_id: str,
    action: ReactionAction,
) -> ReactionUpdate:
    message = snapshot.get(message_id)
    if message is None:
        raise NotFoundError(f"Message {message_id!r} not found")
    current = ReactionSets(liked_by=message.liked_by, disliked_by=message.disliked_by)
    return ReactionUpdate(
        message_id=message_id,
        sets=toggle_reaction(current=current, participant_id=participant_id, action=action),
    )

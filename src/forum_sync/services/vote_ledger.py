"""Per-post vote state and the pure toggle transition.

A ledger records, for one post, the current user's vote and the post's
aggregate up/down counts. :meth:`VoteLedger.apply` is the only way to change
it; both local toggles and store re-syncs go through it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

from forum_sync.schemas import VoteKind

logger = logging.getLogger(__name__)


class RemoteOperation(Enum):
    """Row write that persists a transition."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    NONE = "none"


@dataclass(frozen=True)
class TallyDelta:
    """Change to a post's up/down counts."""

    up: int = 0
    down: int = 0

    def inverse(self) -> TallyDelta:
        return TallyDelta(up=-self.up, down=-self.down)

    def __bool__(self) -> bool:
        return bool(self.up or self.down)


@dataclass(frozen=True)
class VoteTransition:
    """Move of the user's vote from ``previous`` to ``current`` with its tally delta."""

    previous: VoteKind | None
    current: VoteKind | None
    delta: TallyDelta

    @property
    def operation(self) -> RemoteOperation:
        if self.previous == self.current:
            return RemoteOperation.NONE
        if self.previous is None:
            return RemoteOperation.INSERT
        if self.current is None:
            return RemoteOperation.DELETE
        return RemoteOperation.UPDATE

    def inverse(self) -> VoteTransition:
        """Return the transition that undoes this one exactly."""
        return VoteTransition(previous=self.current, current=self.previous, delta=self.delta.inverse())


_UP = TallyDelta(up=1)
_DOWN = TallyDelta(down=1)

# (current vote, requested) -> (new vote, delta)
_TOGGLE_TABLE: dict[tuple[VoteKind | None, VoteKind], tuple[VoteKind | None, TallyDelta]] = {
    (None, VoteKind.UP): (VoteKind.UP, _UP),
    (None, VoteKind.DOWN): (VoteKind.DOWN, _DOWN),
    (VoteKind.UP, VoteKind.UP): (None, _UP.inverse()),
    (VoteKind.UP, VoteKind.DOWN): (VoteKind.DOWN, TallyDelta(up=-1, down=1)),
    (VoteKind.DOWN, VoteKind.DOWN): (None, _DOWN.inverse()),
    (VoteKind.DOWN, VoteKind.UP): (VoteKind.UP, TallyDelta(up=1, down=-1)),
}


def plan_toggle(current: VoteKind | None, requested: VoteKind) -> VoteTransition:
    """Return the transition for pressing ``requested`` while ``current`` is held.

    Pressing the held kind again clears the vote; pressing the other kind
    switches it.
    """
    new_vote, delta = _TOGGLE_TABLE[(current, requested)]
    return VoteTransition(previous=current, current=new_vote, delta=delta)


@dataclass(frozen=True)
class VoteState:
    """Read-only view of a ledger for rendering."""

    post_id: str
    vote: VoteKind | None
    up: int
    down: int

    @property
    def score(self) -> int:
        return self.up - self.down


@dataclass
class VoteLedger:
    """Own-vote state and aggregate counts for one post."""

    post_id: str
    vote: VoteKind | None = None
    up_count: int = 0
    down_count: int = 0

    def apply(self, transition: VoteTransition) -> VoteTransition:
        """Apply ``transition`` and return the transition actually applied.

        Counts saturate at zero. The returned transition carries the delta
        after clamping, so its inverse restores this ledger exactly.

        Raises:
            ValueError: If the transition was planned against another vote.
        """
        if transition.previous != self.vote:
            raise ValueError(
                f"Stale transition for post {self.post_id}: "
                f"expected {transition.previous}, ledger holds {self.vote}"
            )

        up = max(0, self.up_count + transition.delta.up)
        down = max(0, self.down_count + transition.delta.down)
        effective = TallyDelta(up=up - self.up_count, down=down - self.down_count)
        if effective != transition.delta:
            logger.debug(
                "Clamped tally delta for post %s from %s to %s",
                self.post_id,
                transition.delta,
                effective,
            )

        self.vote = transition.current
        self.up_count = up
        self.down_count = down
        return VoteTransition(previous=transition.previous, current=transition.current, delta=effective)

    def toggle(self, requested: VoteKind) -> VoteTransition:
        """Plan and apply a toggle against the current state."""
        return self.apply(plan_toggle(self.vote, requested))

    def reconcile(self, vote: VoteKind | None, up: int, down: int) -> VoteTransition:
        """Move the ledger to state freshly read from the store."""
        transition = VoteTransition(
            previous=self.vote,
            current=vote,
            delta=TallyDelta(up=up - self.up_count, down=down - self.down_count),
        )
        return self.apply(transition)

    def snapshot(self) -> VoteState:
        return VoteState(
            post_id=self.post_id,
            vote=self.vote,
            up=self.up_count,
            down=self.down_count,
        )


class VoteBook:
    """Session-scoped map of post id to ledger."""

    def __init__(self) -> None:
        self._ledgers: dict[str, VoteLedger] = {}

    def ledger(self, post_id: str) -> VoteLedger:
        """Return the ledger for ``post_id``, creating an empty one if needed."""
        ledger = self._ledgers.get(post_id)
        if ledger is None:
            ledger = VoteLedger(post_id=post_id)
            self._ledgers[post_id] = ledger
        return ledger

    def get(self, post_id: str) -> VoteLedger | None:
        return self._ledgers.get(post_id)

    def __contains__(self, post_id: object) -> bool:
        return post_id in self._ledgers

    def __iter__(self) -> Iterator[VoteLedger]:
        return iter(list(self._ledgers.values()))

    def __len__(self) -> int:
        return len(self._ledgers)

    def discard(self, post_id: str) -> None:
        self._ledgers.pop(post_id, None)

    def clear(self) -> None:
        self._ledgers.clear()

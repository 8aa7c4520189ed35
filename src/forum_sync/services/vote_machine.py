"""Optimistic vote toggling against the backing store.

This module provides the VoteStateMachine class that owns the session's vote
ledgers. It handles:

- Initial load of own votes and per-post tallies
- Optimistic toggles with rollback on remote failure
- Serialization of toggles and re-syncs per post
- Re-deriving tallies from fresh count queries on push notifications
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from forum_sync.core.settings import settings
from forum_sync.repositories.base import ConstraintViolationError, ForumStore, StoreError
from forum_sync.schemas import VoteKind
from forum_sync.services.notifications import NoticeBoard
from forum_sync.services.optimistic import OptimisticMutation, Undo
from forum_sync.services.vote_ledger import (
    RemoteOperation,
    VoteBook,
    VoteState,
    VoteTransition,
    plan_toggle,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoteOutcome:
    """Result of a toggle as reported to the caller."""

    post_id: str
    ok: bool
    state: VoteState
    error: str | None = None


class VoteStateMachine:
    """Applies the toggle protocol for one user across the posts they watch.

    All writes to a post's ledger happen while holding that post's lock. A
    toggle keeps the lock until its remote write settles, so a second toggle
    on the same post waits and then plans against the latest local state.
    """

    def __init__(
        self,
        store: ForumStore,
        user_id: str,
        notices: NoticeBoard,
        book: VoteBook | None = None,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.notices = notices
        self.book = book if book is not None else VoteBook()
        self._locks: dict[str, asyncio.Lock] = {}
        # Bumped by every toggle so a bulk load can tell its own votes went stale.
        self._generations: dict[str, int] = {}

    def _lock_for(self, post_id: str) -> asyncio.Lock:
        lock = self._locks.get(post_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[post_id] = lock
        return lock

    def snapshot(self, post_id: str) -> VoteState:
        """Return the current state of ``post_id`` (empty if never loaded)."""
        ledger = self.book.get(post_id)
        if ledger is None:
            return VoteState(post_id=post_id, vote=None, up=0, down=0)
        return ledger.snapshot()

    def watches(self, post_id: str) -> bool:
        return post_id in self.book

    async def load(self, post_ids: Sequence[str]) -> None:
        """Load own votes and tallies for ``post_ids``.

        Own votes come from a single query. Tallies are counted one post at a
        time, in order. A post toggled after the own-vote query re-reads its
        own vote under the post lock.
        """
        if not post_ids:
            return

        generations = {post_id: self._generations.get(post_id, 0) for post_id in post_ids}
        own_by_post: dict[str, VoteKind] | None
        try:
            own_votes = await self.store.fetch_user_votes(self.user_id, post_ids)
        except StoreError as exc:
            logger.warning("Could not load own votes for %d posts: %s", len(post_ids), exc)
            own_by_post = None
        else:
            own_by_post = {vote.post_id: vote.kind for vote in own_votes}

        for post_id in post_ids:
            async with self._lock_for(post_id):
                ledger = self.book.ledger(post_id)
                toggled = self._generations.get(post_id, 0) != generations[post_id]
                try:
                    counts = await self.store.count_votes(post_id)
                    if own_by_post is not None and not toggled:
                        kind = own_by_post.get(post_id)
                    else:
                        own = await self.store.fetch_vote(post_id, self.user_id)
                        kind = own.kind if own else None
                except StoreError as exc:
                    logger.warning("Could not load votes for post %s: %s", post_id, exc)
                    continue
                ledger.reconcile(kind, counts.up, counts.down)

        logger.debug("Loaded vote state for %d posts", len(post_ids))

    async def toggle(self, post_id: str, requested: VoteKind) -> VoteOutcome:
        """Toggle the user's vote on ``post_id`` and persist it.

        Store failures never propagate: the optimistic change is undone, one
        notice is posted and the outcome reports the error.
        """
        async with self._lock_for(post_id):
            try:
                return await self._toggle_locked(post_id, requested)
            finally:
                # Counted once settled, so a load that overlapped it re-reads.
                self._generations[post_id] = self._generations.get(post_id, 0) + 1

    async def _toggle_locked(self, post_id: str, requested: VoteKind) -> VoteOutcome:
        ledger = self.book.ledger(post_id)
        planned = plan_toggle(ledger.vote, requested)

        def apply() -> Undo:
            applied = ledger.apply(planned)
            return lambda: ledger.apply(applied.inverse())

        mutation: OptimisticMutation[None] = OptimisticMutation(
            f"{requested.value}vote on post {post_id}", apply
        )
        try:
            await mutation.commit(lambda: self._persist(post_id, planned))
        except ConstraintViolationError as exc:
            logger.error(
                "Vote on post %s contradicts stored rows, re-syncing: %s",
                post_id,
                exc,
                exc_info=True,
            )
            await self._resync(post_id)
            return self._failed(post_id, exc)
        except StoreError as exc:
            logger.warning("Vote on post %s failed, rolled back: %s", post_id, exc)
            return self._failed(post_id, exc)

        return VoteOutcome(post_id=post_id, ok=True, state=ledger.snapshot())

    async def refresh(self, post_id: str) -> bool:
        """Re-derive the ledger of a watched post from the store.

        Runs after any in-flight toggle on the same post has settled.
        Returns False if the post is not watched or the store call failed.
        """
        if post_id not in self.book:
            return False
        async with self._lock_for(post_id):
            return await self._resync(post_id)

    async def _resync(self, post_id: str) -> bool:
        try:
            counts = await self.store.count_votes(post_id)
            own = await self.store.fetch_vote(post_id, self.user_id)
        except StoreError as exc:
            logger.warning("Could not re-sync votes for post %s: %s", post_id, exc)
            return False

        ledger = self.book.ledger(post_id)
        ledger.reconcile(own.kind if own else None, counts.up, counts.down)
        logger.debug("Re-synced post %s to %s", post_id, ledger.snapshot())
        return True

    async def _persist(self, post_id: str, transition: VoteTransition) -> None:
        operation = transition.operation
        kind = transition.current
        if operation is RemoteOperation.DELETE or kind is None:
            await self.store.delete_vote(post_id, self.user_id)
        elif operation is RemoteOperation.INSERT:
            await self.store.insert_vote(post_id, self.user_id, kind)
        else:
            await self.store.update_vote(post_id, self.user_id, kind)

    def _failed(self, post_id: str, exc: StoreError) -> VoteOutcome:
        self.notices.error(settings.vote_failed_notice, post_id=post_id)
        return VoteOutcome(
            post_id=post_id,
            ok=False,
            state=self.snapshot(post_id),
            error=str(exc),
        )

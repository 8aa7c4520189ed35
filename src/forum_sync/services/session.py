"""Session-scoped owner of all reconciled state.

This module provides the ForumSession class that wires the store, the push
channel and the identity provider together for one signed-in user. It owns
exactly one vote book, one message log and one post log per open thread;
every reader observes state through it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

from forum_sync.core.settings import settings
from forum_sync.repositories.base import ForumStore
from forum_sync.schemas import EntityKind
from forum_sync.services.conversations import ConversationService
from forum_sync.services.notifications import NoticeBoard
from forum_sync.services.push import PushChannel, Subscription
from forum_sync.services.realtime import RealtimeMerge
from forum_sync.services.threads import PostLog, ThreadService
from forum_sync.services.vote_machine import VoteStateMachine

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    """Supplies the signed-in user's stable identifier."""

    def current_user_id(self) -> str | None: ...


@dataclass
class StaticIdentity:
    """Identity provider returning a fixed user id."""

    user_id: str | None = None

    def current_user_id(self) -> str | None:
        return self.user_id


@dataclass
class _Follow:
    subscription: Subscription
    task: asyncio.Task[None]


@dataclass
class SessionState:
    """Components built for the signed-in user."""

    user_id: str
    votes: VoteStateMachine
    conversations: ConversationService
    threads: ThreadService
    merge: RealtimeMerge
    follows: dict[str, _Follow] = field(default_factory=dict)


class SessionNotStartedError(RuntimeError):
    """Raised when state is requested before a user is signed in."""


class ForumSession:
    """Starts, feeds and tears down the reconciliation state for one user."""

    def __init__(
        self,
        store: ForumStore,
        channel: PushChannel,
        identity: IdentityProvider,
        notices: NoticeBoard | None = None,
    ) -> None:
        self.store = store
        self.channel = channel
        self.identity = identity
        self.notices = notices if notices is not None else NoticeBoard()
        self._state: SessionState | None = None

    @property
    def started(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> SessionState:
        if self._state is None:
            raise SessionNotStartedError("No user is signed in")
        return self._state

    @property
    def user_id(self) -> str:
        return self.state.user_id

    @property
    def votes(self) -> VoteStateMachine:
        return self.state.votes

    @property
    def conversations(self) -> ConversationService:
        return self.state.conversations

    @property
    def threads(self) -> ThreadService:
        return self.state.threads

    async def start(self) -> bool:
        """Load the inbox and subscribe to messages and votes.

        Returns False when no user is signed in.
        """
        if self._state is not None:
            return True

        user_id = self.identity.current_user_id()
        if not user_id:
            logger.info("Session not started: no signed-in user")
            return False

        votes = VoteStateMachine(self.store, user_id, self.notices)
        conversations = ConversationService(self.store, user_id, self.notices)
        threads = ThreadService(self.store, user_id, self.notices, votes)
        merge = RealtimeMerge(self.store, conversations, threads, votes)
        self._state = SessionState(
            user_id=user_id,
            votes=votes,
            conversations=conversations,
            threads=threads,
            merge=merge,
        )

        # Subscribe before loading; notifications overlapping the load are deduplicated.
        self._follow(EntityKind.MESSAGE.value, EntityKind.MESSAGE.value)
        self._follow(EntityKind.VOTE.value, EntityKind.VOTE.value)
        await conversations.load()
        logger.info("%s %s session started for %s", settings.app_name, settings.app_version, user_id)
        return True

    async def watch_thread(self, thread_id: str) -> PostLog:
        """Open a thread and follow new replies to it."""
        state = self.state
        key = f"thread:{thread_id}"
        if key not in state.follows:
            self._follow(key, EntityKind.POST.value, {"thread_id": thread_id})
        return await state.threads.open_thread(thread_id)

    async def unwatch_thread(self, thread_id: str) -> None:
        state = self.state
        follow = state.follows.pop(f"thread:{thread_id}", None)
        if follow is not None:
            await self._unfollow(follow)
        state.threads.close_thread(thread_id)

    async def stop(self) -> None:
        """Unsubscribe everything and drop the session state."""
        state, self._state = self._state, None
        if state is None:
            return
        follows = list(state.follows.values())
        state.follows.clear()
        for follow in follows:
            await self._unfollow(follow)
        logger.info("Session stopped for %s", state.user_id)

    async def identity_changed(self) -> bool:
        """Re-read the identity and restart if the user changed."""
        user_id = self.identity.current_user_id()
        if self._state is not None and self._state.user_id == user_id:
            return True
        await self.stop()
        return await self.start()

    def _follow(self, key: str, table: str, row_filter: Mapping[str, str] | None = None) -> None:
        state = self.state
        subscription = self.channel.subscribe(table, row_filter)
        task = asyncio.create_task(state.merge.run(subscription), name=f"forum-sync:{key}")
        state.follows[key] = _Follow(subscription=subscription, task=task)

    async def _unfollow(self, follow: _Follow) -> None:
        follow.subscription.close()
        try:
            await follow.task
        except Exception:
            logger.error("Merge task for %s failed", follow.subscription.table, exc_info=True)

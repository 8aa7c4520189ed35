"""Thread replies and their vote ledgers."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable

from forum_sync.core.settings import settings
from forum_sync.db.time import utcnow
from forum_sync.repositories.base import ForumStore, StoreError
from forum_sync.schemas import PostRow
from forum_sync.services.notifications import NoticeBoard
from forum_sync.services.optimistic import OptimisticMutation, Undo
from forum_sync.services.vote_machine import VoteStateMachine

logger = logging.getLogger(__name__)


class PostLog:
    """Id-keyed, append-only list of the replies in one thread."""

    def __init__(self, thread_id: str) -> None:
        self.thread_id = thread_id
        self._rows: dict[str, PostRow] = {}

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, post_id: object) -> bool:
        return post_id in self._rows

    def replace(self, rows: Iterable[PostRow]) -> None:
        self._rows = {row.id: row for row in rows if row.thread_id == self.thread_id}

    def merge(self, row: PostRow) -> bool:
        """Insert ``row`` unless its id is already present. Returns True if added."""
        if row.thread_id != self.thread_id:
            return False
        if row.id in self._rows:
            logger.debug("Duplicate delivery of post %s dropped", row.id)
            return False
        self._rows[row.id] = row
        return True

    def remove(self, post_id: str) -> None:
        self._rows.pop(post_id, None)

    def posts(self) -> list[PostRow]:
        """Return the replies oldest first."""
        return sorted(self._rows.values(), key=lambda row: (row.created_at, row.id))

    def ids(self) -> list[str]:
        return [row.id for row in self.posts()]


class ThreadService:
    """Loads open threads and keeps their replies and tallies current."""

    def __init__(
        self,
        store: ForumStore,
        user_id: str,
        notices: NoticeBoard,
        votes: VoteStateMachine,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.notices = notices
        self.votes = votes
        self._threads: dict[str, PostLog] = {}

    def thread(self, thread_id: str) -> PostLog | None:
        return self._threads.get(thread_id)

    def is_open(self, thread_id: str) -> bool:
        return thread_id in self._threads

    async def open_thread(self, thread_id: str) -> PostLog:
        """Load the replies of ``thread_id`` and their vote state."""
        log = self._threads.get(thread_id)
        if log is None:
            log = PostLog(thread_id)
            self._threads[thread_id] = log

        try:
            rows = await self.store.list_thread_posts(thread_id)
        except StoreError as exc:
            logger.warning("Could not load posts of thread %s: %s", thread_id, exc)
            return log

        log.replace(rows)
        await self.votes.load(log.ids())
        logger.info("Opened thread %s with %d posts", thread_id, len(log))
        return log

    def close_thread(self, thread_id: str) -> None:
        self._threads.pop(thread_id, None)

    async def merge(self, row: PostRow) -> bool:
        """Fold a post delivered by the push channel into its thread."""
        log = self._threads.get(row.thread_id)
        if log is None:
            logger.debug("Post %s belongs to unwatched thread %s", row.id, row.thread_id)
            return False
        if not log.merge(row):
            return False
        await self.votes.load([row.id])
        return True

    async def add_post(
        self,
        thread_id: str,
        content: str,
        image_ref: str | None = None,
    ) -> PostRow | None:
        """Post a reply to an open thread.

        A reply needs text or an image. It is shown at once and withdrawn if
        the store rejects it.
        """
        text = content.strip()
        if not text and not image_ref:
            return None

        log = self._threads.get(thread_id)
        if log is None:
            log = await self.open_thread(thread_id)

        post = PostRow(
            id=str(uuid.uuid4()),
            thread_id=thread_id,
            author_id=self.user_id,
            content=text,
            image_ref=image_ref,
            created_at=utcnow(),
        )

        def apply() -> Undo:
            log.merge(post)
            self.votes.book.ledger(post.id)

            def undo() -> None:
                log.remove(post.id)
                self.votes.book.discard(post.id)

            return undo

        mutation: OptimisticMutation[None] = OptimisticMutation(f"post {post.id}", apply)
        try:
            await mutation.commit(lambda: self.store.insert_post(post))
        except StoreError as exc:
            logger.warning("Posting to thread %s failed: %s", thread_id, exc)
            self.notices.error(settings.post_failed_notice, thread_id=thread_id)
            return None
        return post

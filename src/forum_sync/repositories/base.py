"""Contract for the persistent relational store.

The reconciliation core only talks to the store through :class:`ForumStore`.
Every method is a suspension point; implementations raise :class:`StoreError`
(or a subclass) for any failure so callers can catch at the call site.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol, runtime_checkable

from forum_sync.schemas import MessageRow, PostRow, ProfileRow, VoteCounts, VoteKind, VoteRow


class StoreError(RuntimeError):
    """Base exception raised for store failures.

    Covers transient failures: timeouts, dropped connections, server errors.
    """


class ConstraintViolationError(StoreError):
    """Raised when a write contradicts the stored rows.

    Examples are a duplicate vote insert or an update of a vote row that no
    longer exists. The local state that led to the write is stale.
    """


@runtime_checkable
class ForumStore(Protocol):
    """Operations the core issues against the backing store."""

    async def insert_post(self, post: PostRow) -> None: ...

    async def fetch_post(self, post_id: str) -> PostRow | None: ...

    async def list_thread_posts(self, thread_id: str) -> list[PostRow]: ...

    async def insert_vote(self, post_id: str, user_id: str, kind: VoteKind) -> None: ...

    async def update_vote(self, post_id: str, user_id: str, kind: VoteKind) -> None: ...

    async def delete_vote(self, post_id: str, user_id: str) -> None: ...

    async def fetch_vote(self, post_id: str, user_id: str) -> VoteRow | None: ...

    async def fetch_user_votes(self, user_id: str, post_ids: Sequence[str]) -> list[VoteRow]: ...

    async def count_votes(self, post_id: str) -> VoteCounts: ...

    async def insert_message(self, message: MessageRow) -> None: ...

    async def fetch_message(self, message_id: str) -> MessageRow | None: ...

    async def list_messages_for(self, user_id: str) -> list[MessageRow]:
        """Return messages sent or received by ``user_id``, newest first."""
        ...

    async def mark_read(self, message_ids: Iterable[str], recipient_id: str) -> None: ...

    async def fetch_profiles(self, user_ids: Iterable[str]) -> list[ProfileRow]: ...

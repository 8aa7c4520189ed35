"""Row builders and fixed identifiers shared by the tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from forum_sync.schemas import MessageRow, PostRow

ME = "00000000-0000-0000-0000-00000000000a"
ALICE = "00000000-0000-0000-0000-0000000000a1"
BOB = "00000000-0000-0000-0000-0000000000b0"
CAROL = "00000000-0000-0000-0000-0000000000c0"
THREAD = "10000000-0000-0000-0000-000000000001"
OTHER_THREAD = "10000000-0000-0000-0000-000000000002"

EPOCH = datetime(2024, 1, 1, tzinfo=UTC)


def at(seconds: int) -> datetime:
    """Return a timestamp ``seconds`` after a fixed epoch."""
    return EPOCH + timedelta(seconds=seconds)


def make_message(
    message_id: str,
    sender: str,
    recipient: str,
    t: int,
    *,
    read: bool = False,
    content: str | None = None,
) -> MessageRow:
    return MessageRow(
        id=message_id,
        sender_id=sender,
        recipient_id=recipient,
        content=content or f"message {message_id}",
        read=read,
        created_at=at(t),
    )


def make_post(post_id: str, t: int, *, thread_id: str = THREAD, author: str = ALICE) -> PostRow:
    return PostRow(
        id=post_id,
        thread_id=thread_id,
        author_id=author,
        content=f"post {post_id}",
        created_at=at(t),
    )

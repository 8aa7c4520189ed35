"""Tests for thread post logs and replies."""

import pytest

from forum_sync.repositories import StoreError
from forum_sync.services.threads import ThreadService
from forum_sync.services.vote_machine import VoteStateMachine

from .factories import ME, THREAD


@pytest.mark.asyncio
async def test_rejected_reply_is_withdrawn_with_its_vote_ledger(failing_store, notices) -> None:
    failing_store.list_thread_posts.return_value = []
    failing_store.insert_post.side_effect = StoreError("rejected")
    votes = VoteStateMachine(failing_store, ME, notices)
    threads = ThreadService(failing_store, ME, notices, votes)
    await threads.open_thread(THREAD)

    assert await threads.add_post(THREAD, "first!") is None

    assert threads.thread(THREAD).ids() == []
    assert len(votes.book) == 0
    assert [notice.message for notice in notices.drain()] == ["Failed to add post"]


@pytest.mark.asyncio
async def test_blank_reply_is_ignored(failing_store, notices) -> None:
    votes = VoteStateMachine(failing_store, ME, notices)
    threads = ThreadService(failing_store, ME, notices, votes)

    assert await threads.add_post(THREAD, "   ") is None
    failing_store.insert_post.assert_not_awaited()

"""Tests for folding push notifications into session state."""

import asyncio

import httpx
import pytest
from sqlalchemy import select

from forum_sync.models import Message, Vote
from forum_sync.repositories import RestForumStore, StoreError
from forum_sync.repositories.rest_store import RestConfig
from forum_sync.schemas import VoteKind
from forum_sync.services.conversations import ConversationService
from forum_sync.services.push import LocalPushChannel
from forum_sync.services.realtime import MalformedEventError, RealtimeMerge, parse_event
from forum_sync.services.threads import ThreadService
from forum_sync.services.vote_machine import VoteStateMachine

from ..factories import ALICE, BOB, ME, OTHER_THREAD, THREAD, make_message, make_post


def _merge(store, notices):
    votes = VoteStateMachine(store, ME, notices)
    conversations = ConversationService(store, ME, notices)
    threads = ThreadService(store, ME, notices, votes)
    return RealtimeMerge(store, conversations, threads, votes)


@pytest.mark.asyncio
async def test_duplicate_message_insert_is_idempotent(store, notices, seed_messages) -> None:
    seed_messages(make_message("m1", ALICE, ME, 1))
    merge = _merge(store, notices)
    event = {"table": "messages", "operation": "INSERT", "id": "m1"}

    assert await merge.handle(event) is True
    once = merge.conversations.log.newest_first()
    assert await merge.handle(event) is False

    assert merge.conversations.log.newest_first() == once
    assert merge.conversations.conversations()[0].peer.username == "alice"


@pytest.mark.asyncio
async def test_message_update_merges_read_receipt(store, notices, seed_messages, db_session) -> None:
    seed_messages(make_message("m1", ME, ALICE, 1))
    merge = _merge(store, notices)
    await merge.conversations.load()

    row = db_session.scalars(select(Message).where(Message.id == "m1")).one()
    row.read = True
    db_session.commit()

    assert await merge.handle({"table": "messages", "operation": "UPDATE", "id": "m1"}) is True
    assert merge.conversations.log.get("m1").read is True


@pytest.mark.asyncio
async def test_foreign_messages_are_ignored(store, notices, seed_messages) -> None:
    seed_messages(make_message("m1", ALICE, BOB, 1))
    merge = _merge(store, notices)

    assert await merge.handle({"table": "messages", "operation": "INSERT", "id": "m1"}) is False
    assert len(merge.conversations.log) == 0


@pytest.mark.asyncio
async def test_post_insert_merges_into_watched_thread_once(store, notices, seed_post) -> None:
    seed_post("p1", t=1)
    merge = _merge(store, notices)
    await merge.threads.open_thread(THREAD)
    await store.insert_post(make_post("p2", 2))
    event = {"table": "posts", "operation": "INSERT", "record": {"id": "p2", "thread_id": THREAD}}

    assert await merge.handle(event) is True
    assert await merge.handle(event) is False

    assert merge.threads.thread(THREAD).ids() == ["p1", "p2"]
    assert merge.votes.watches("p2")


@pytest.mark.asyncio
async def test_post_in_unwatched_thread_is_ignored(store, notices, profiles) -> None:
    merge = _merge(store, notices)
    await merge.threads.open_thread(THREAD)
    await store.insert_post(make_post("q1", 1, thread_id=OTHER_THREAD))

    assert await merge.handle({"table": "posts", "operation": "INSERT", "id": "q1"}) is False


@pytest.mark.asyncio
async def test_vote_event_recounts_tally(store, notices, seed_post, db_session) -> None:
    post_id = seed_post("p1", up=1)
    merge = _merge(store, notices)
    await merge.votes.load([post_id])

    db_session.add(Vote(post_id=post_id, user_id=BOB, kind="up"))
    db_session.commit()
    event = {"table": "votes", "operation": "INSERT", "record": {"post_id": post_id}}

    assert await merge.handle(event) is True
    assert await merge.handle(event) is True

    state = merge.votes.snapshot(post_id)
    assert (state.vote, state.up, state.down) == (None, 2, 0)


@pytest.mark.asyncio
async def test_duplicated_delete_events_keep_counts_non_negative(
    store, notices, seed_post, db_session
) -> None:
    post_id = seed_post("p1")
    merge = _merge(store, notices)
    await merge.votes.load([post_id])
    await merge.votes.toggle(post_id, VoteKind.DOWN)
    await store.delete_vote(post_id, ME)

    for _ in range(3):
        await merge.handle({"table": "votes", "operation": "DELETE", "post_id": post_id})

    state = merge.votes.snapshot(post_id)
    assert (state.vote, state.up, state.down) == (None, 0, 0)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"table": "threads", "operation": "INSERT", "id": "t1"},
        {"table": "messages", "operation": "INSERT"},
        {"table": "votes", "operation": "UPDATE", "id": "v1"},
        {"table": "posts", "operation": "TRUNCATE", "id": "p1"},
        ["not", "a", "mapping"],
    ],
)
async def test_malformed_payloads_are_dropped(failing_store, notices, payload, caplog) -> None:
    merge = _merge(failing_store, notices)

    assert await merge.handle(payload) is False
    assert "malformed" in caplog.text
    failing_store.fetch_message.assert_not_awaited()
    failing_store.fetch_post.assert_not_awaited()


def test_parse_event_lifts_keys_from_record() -> None:
    event = parse_event({"entity_kind": "votes", "operation": "update", "record": {"post_id": 7}})

    assert event.post_id == "7"
    assert event.vote_post_id == "7"
    deleted = parse_event({"table": "votes", "operation": "DELETE", "old_record": {"post_id": "p9"}})
    assert deleted.post_id == "p9"
    with pytest.raises(MalformedEventError):
        parse_event({"table": "posts", "operation": "INSERT"})


@pytest.mark.asyncio
async def test_fetch_failure_drops_event(failing_store, notices) -> None:
    failing_store.fetch_message.side_effect = StoreError("offline")
    merge = _merge(failing_store, notices)

    assert await merge.handle({"table": "messages", "operation": "INSERT", "id": "m1"}) is False
    assert notices.pending == ()


@pytest.mark.asyncio
async def test_invalid_stored_row_does_not_stop_the_merge_loop(notices, eventually) -> None:
    good = make_message("good", ALICE, ME, 2).model_dump(mode="json")

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/profiles"):
            return httpx.Response(200, json=[])
        if request.url.params["id"] == "eq.bad":
            return httpx.Response(200, json=[{"id": "bad", "sender_id": ALICE}])
        return httpx.Response(200, json=[good])

    store = RestForumStore(
        RestConfig(
            base_url="https://store.test", api_key=None, access_token=None, timeout_seconds=5.0
        ),
        transport=httpx.MockTransport(handler),
    )
    merge = _merge(store, notices)
    channel = LocalPushChannel()
    subscription = channel.subscribe("messages")
    task = asyncio.create_task(merge.run(subscription))

    channel.publish("messages", {"operation": "INSERT", "id": "bad"})
    channel.publish("messages", {"operation": "INSERT", "id": "good"})

    await eventually(lambda: "good" in {m.id for m in merge.conversations.log.newest_first()})
    assert not task.done()
    assert "bad" not in {m.id for m in merge.conversations.log.newest_first()}

    subscription.close()
    await task
    await store.close()


@pytest.mark.asyncio
async def test_unexpected_data_error_is_logged_and_dropped(failing_store, notices, caplog) -> None:
    failing_store.fetch_post.side_effect = KeyError("thread_id")
    merge = _merge(failing_store, notices)

    assert await merge.handle({"table": "posts", "operation": "INSERT", "id": "p1"}) is False
    assert any(record.levelname == "ERROR" for record in caplog.records)

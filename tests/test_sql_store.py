"""Tests for the SQLAlchemy store."""

import pytest

from forum_sync.repositories import ConstraintViolationError, StoreError
from forum_sync.schemas import VoteKind

from .factories import ALICE, BOB, ME, OTHER_THREAD, THREAD, make_message, make_post


@pytest.mark.asyncio
async def test_duplicate_vote_insert_is_constraint_violation(store, seed_post) -> None:
    post_id = seed_post("p1")
    await store.insert_vote(post_id, ME, VoteKind.UP)

    with pytest.raises(ConstraintViolationError):
        await store.insert_vote(post_id, ME, VoteKind.DOWN)


@pytest.mark.asyncio
async def test_update_of_missing_vote_is_constraint_violation(store, seed_post) -> None:
    post_id = seed_post("p1")

    with pytest.raises(ConstraintViolationError):
        await store.update_vote(post_id, ME, VoteKind.DOWN)


@pytest.mark.asyncio
async def test_vote_round_trip_and_counts(store, seed_post) -> None:
    post_id = seed_post("p1", up=2, down=3)

    await store.insert_vote(post_id, ME, VoteKind.UP)
    assert (await store.fetch_vote(post_id, ME)).kind is VoteKind.UP

    await store.update_vote(post_id, ME, VoteKind.DOWN)
    counts = await store.count_votes(post_id)
    assert (counts.up, counts.down) == (2, 4)

    await store.delete_vote(post_id, ME)
    await store.delete_vote(post_id, ME)
    assert await store.fetch_vote(post_id, ME) is None
    assert (await store.fetch_user_votes(ME, [post_id])) == []


@pytest.mark.asyncio
async def test_thread_posts_are_oldest_first(store, profiles) -> None:
    await store.insert_post(make_post("p2", 2))
    await store.insert_post(make_post("p1", 1))
    await store.insert_post(make_post("q1", 0, thread_id=OTHER_THREAD))

    posts = await store.list_thread_posts(THREAD)

    assert [post.id for post in posts] == ["p1", "p2"]
    assert posts[0].created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_messages_for_user_are_newest_first(store, seed_messages) -> None:
    seed_messages(
        make_message("m1", ALICE, ME, 1),
        make_message("m3", ME, BOB, 3),
        make_message("m2", ALICE, BOB, 2),
    )

    rows = await store.list_messages_for(ME)

    assert [row.id for row in rows] == ["m3", "m1"]


@pytest.mark.asyncio
async def test_mark_read_only_touches_recipient_rows(store, seed_messages) -> None:
    seed_messages(make_message("m1", ALICE, ME, 1), make_message("m2", ME, ALICE, 2))

    await store.mark_read(["m1", "m2"], ME)

    assert (await store.fetch_message("m1")).read is True
    assert (await store.fetch_message("m2")).read is False


@pytest.mark.asyncio
async def test_fetch_profiles(store, profiles) -> None:
    rows = await store.fetch_profiles([ALICE, "nobody"])

    assert [row.username for row in rows] == ["alice"]


@pytest.mark.asyncio
async def test_rows_failing_validation_raise_store_error(store, seed_post, mocker) -> None:
    post_id = seed_post("p1")
    row_schema = mocker.patch("forum_sync.repositories.sql_store.PostRow")
    row_schema.model_validate.side_effect = ValueError("created_at is not a datetime")

    with pytest.raises(StoreError):
        await store.fetch_post(post_id)

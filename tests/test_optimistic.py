"""Tests for optimistic mutations."""

import pytest

from forum_sync.repositories import StoreError
from forum_sync.services.optimistic import OptimisticMutation


class Counter:
    def __init__(self) -> None:
        self.value = 0

    def bump(self):
        self.value += 1
        return self.drop

    def drop(self) -> None:
        self.value -= 1


@pytest.mark.asyncio
async def test_commit_keeps_change_on_success() -> None:
    counter = Counter()

    async def remote() -> str:
        assert counter.value == 1
        return "ok"

    mutation = OptimisticMutation("bump", counter.bump)

    assert await mutation.commit(remote) == "ok"
    assert counter.value == 1
    assert mutation.applied


@pytest.mark.asyncio
async def test_commit_compensates_and_reraises_store_errors() -> None:
    counter = Counter()

    async def remote() -> None:
        raise StoreError("nope")

    mutation = OptimisticMutation("bump", counter.bump)

    with pytest.raises(StoreError):
        await mutation.commit(remote)
    assert counter.value == 0

    mutation.compensate()
    assert counter.value == 0


@pytest.mark.asyncio
async def test_other_errors_are_not_compensated() -> None:
    counter = Counter()

    async def remote() -> None:
        raise KeyError("bug")

    with pytest.raises(KeyError):
        await OptimisticMutation("bump", counter.bump).commit(remote)
    assert counter.value == 1

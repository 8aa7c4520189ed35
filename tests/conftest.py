# tests/conftest.py
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Generator, Iterator
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from forum_sync.db.session import Base, create_tables, drop_tables
from forum_sync.models import Message, Post, Profile, Vote
from forum_sync.repositories import SqlForumStore
from forum_sync.schemas import MessageRow
from forum_sync.services.notifications import NoticeBoard

from .factories import ALICE, BOB, ME, make_post

TEST_DB_URL = "sqlite://"


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(engine)
    try:
        yield engine
    finally:
        drop_tables(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Iterator[sessionmaker[Session]]:
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def store(session_factory: sessionmaker[Session]) -> SqlForumStore:
    return SqlForumStore(session_factory)


@pytest.fixture()
def failing_store() -> AsyncMock:
    """Store double whose methods can be made to fail per test."""
    return AsyncMock(spec=SqlForumStore)


@pytest.fixture()
def notices() -> NoticeBoard:
    return NoticeBoard()


@pytest.fixture()
def profiles(db_session: Session) -> None:
    """Persist profiles for the users the tests talk about."""
    db_session.add_all(
        [
            Profile(id=ME, username="me"),
            Profile(id=ALICE, username="alice"),
            Profile(id=BOB, username="bob", avatar_url="https://example.test/bob.png"),
        ]
    )
    db_session.commit()


@pytest.fixture()
def seed_post(db_session: Session, profiles: None) -> Callable[..., str]:
    """Persist a post with the given number of existing up and down votes."""

    def _seed(post_id: str, *, up: int = 0, down: int = 0, t: int = 0) -> str:
        db_session.add(Post(**make_post(post_id, t).model_dump()))
        for index in range(up):
            db_session.add(Vote(post_id=post_id, user_id=f"up-voter-{post_id}-{index}", kind="up"))
        for index in range(down):
            db_session.add(
                Vote(post_id=post_id, user_id=f"down-voter-{post_id}-{index}", kind="down")
            )
        db_session.commit()
        return post_id

    return _seed


@pytest.fixture()
def seed_messages(db_session: Session, profiles: None) -> Callable[..., None]:
    def _seed(*rows: MessageRow) -> None:
        db_session.add_all(Message(**row.model_dump()) for row in rows)
        db_session.commit()

    return _seed


@pytest.fixture()
def eventually() -> Callable[[Callable[[], bool]], Awaitable[None]]:
    """Wait until a condition holds while background merge tasks run."""

    async def _wait(condition: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not condition():
            if loop.time() > deadline:
                raise AssertionError("condition not reached before timeout")
            await asyncio.sleep(0.01)

    return _wait

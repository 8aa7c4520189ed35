"""SQLAlchemy implementation of the store contract."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from typing import TypeVar

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from forum_sync.models import Message, Post, Profile, Vote
from forum_sync.schemas import MessageRow, PostRow, ProfileRow, VoteCounts, VoteKind, VoteRow

from .base import ConstraintViolationError, StoreError

__all__ = ["SqlForumStore"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SqlForumStore:
    """Store backed by SQLAlchemy sessions.

    Each call opens a short-lived session from ``session_factory`` and runs
    the blocking work in a worker thread so the event loop stays responsive.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        if session_factory is None:
            from forum_sync.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    async def _call(self, work: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._run, work)

    def _run(self, work: Callable[[Session], T]) -> T:
        with self._session_factory() as db:
            try:
                return work(db)
            except IntegrityError as exc:
                db.rollback()
                raise ConstraintViolationError(f"Constraint violated: {exc.orig}") from exc
            except SQLAlchemyError as exc:
                db.rollback()
                raise StoreError(f"Store request failed: {exc}") from exc
            except ValueError as exc:
                # Includes pydantic ValidationError for rows that do not fit the schemas.
                db.rollback()
                raise StoreError(f"Store returned an invalid row: {exc}") from exc

    # Posts

    async def insert_post(self, post: PostRow) -> None:
        def work(db: Session) -> None:
            db.add(Post(**post.model_dump()))
            db.commit()

        await self._call(work)

    async def fetch_post(self, post_id: str) -> PostRow | None:
        def work(db: Session) -> PostRow | None:
            post = db.get(Post, post_id)
            return PostRow.model_validate(post) if post is not None else None

        return await self._call(work)

    async def list_thread_posts(self, thread_id: str) -> list[PostRow]:
        def work(db: Session) -> list[PostRow]:
            rows = db.scalars(
                select(Post)
                .where(Post.thread_id == thread_id)
                .order_by(Post.created_at.asc(), Post.id.asc())
            )
            return [PostRow.model_validate(row) for row in rows]

        return await self._call(work)

    # Votes

    async def insert_vote(self, post_id: str, user_id: str, kind: VoteKind) -> None:
        def work(db: Session) -> None:
            db.add(Vote(post_id=post_id, user_id=user_id, kind=kind.value))
            db.commit()

        await self._call(work)

    async def update_vote(self, post_id: str, user_id: str, kind: VoteKind) -> None:
        def work(db: Session) -> None:
            result = db.execute(
                update(Vote)
                .where(Vote.post_id == post_id, Vote.user_id == user_id)
                .values(kind=kind.value)
            )
            if result.rowcount == 0:
                db.rollback()
                raise ConstraintViolationError(
                    f"No vote by {user_id} on post {post_id} to update"
                )
            db.commit()

        await self._call(work)

    async def delete_vote(self, post_id: str, user_id: str) -> None:
        def work(db: Session) -> None:
            result = db.execute(
                delete(Vote).where(Vote.post_id == post_id, Vote.user_id == user_id)
            )
            if result.rowcount == 0:
                logger.debug("Delete of absent vote on post %s by %s", post_id, user_id)
            db.commit()

        await self._call(work)

    async def fetch_vote(self, post_id: str, user_id: str) -> VoteRow | None:
        def work(db: Session) -> VoteRow | None:
            vote = db.scalars(
                select(Vote).where(Vote.post_id == post_id, Vote.user_id == user_id)
            ).first()
            return VoteRow.model_validate(vote) if vote is not None else None

        return await self._call(work)

    async def fetch_user_votes(self, user_id: str, post_ids: Sequence[str]) -> list[VoteRow]:
        if not post_ids:
            return []

        def work(db: Session) -> list[VoteRow]:
            rows = db.scalars(
                select(Vote).where(Vote.user_id == user_id, Vote.post_id.in_(list(post_ids)))
            )
            return [VoteRow.model_validate(row) for row in rows]

        return await self._call(work)

    async def count_votes(self, post_id: str) -> VoteCounts:
        def work(db: Session) -> VoteCounts:
            rows = db.execute(
                select(Vote.kind, func.count())
                .where(Vote.post_id == post_id)
                .group_by(Vote.kind)
            ).all()
            counts = {kind: total for kind, total in rows}
            return VoteCounts(
                post_id=post_id,
                up=counts.get(VoteKind.UP.value, 0),
                down=counts.get(VoteKind.DOWN.value, 0),
            )

        return await self._call(work)

    # Messages

    async def insert_message(self, message: MessageRow) -> None:
        def work(db: Session) -> None:
            db.add(Message(**message.model_dump()))
            db.commit()

        await self._call(work)

    async def fetch_message(self, message_id: str) -> MessageRow | None:
        def work(db: Session) -> MessageRow | None:
            message = db.get(Message, message_id)
            return MessageRow.model_validate(message) if message is not None else None

        return await self._call(work)

    async def list_messages_for(self, user_id: str) -> list[MessageRow]:
        def work(db: Session) -> list[MessageRow]:
            rows = db.scalars(
                select(Message)
                .where(or_(Message.sender_id == user_id, Message.recipient_id == user_id))
                .order_by(Message.created_at.desc(), Message.id.desc())
            )
            return [MessageRow.model_validate(row) for row in rows]

        return await self._call(work)

    async def mark_read(self, message_ids: Iterable[str], recipient_id: str) -> None:
        ids = list(message_ids)
        if not ids:
            return

        def work(db: Session) -> None:
            db.execute(
                update(Message)
                .where(Message.id.in_(ids), Message.recipient_id == recipient_id)
                .values(read=True)
            )
            db.commit()

        await self._call(work)

    # Profiles

    async def fetch_profiles(self, user_ids: Iterable[str]) -> list[ProfileRow]:
        ids = list(user_ids)
        if not ids:
            return []

        def work(db: Session) -> list[ProfileRow]:
            rows = db.scalars(select(Profile).where(Profile.id.in_(ids)))
            return [ProfileRow.model_validate(row) for row in rows]

        return await self._call(work)

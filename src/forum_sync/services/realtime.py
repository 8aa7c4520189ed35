"""Folding push notifications into local state.

This module provides the RealtimeMerge class that consumes change
notifications from push subscriptions and applies them to the session's
state. Notifications may be duplicated, reordered relative to our own
optimistic writes, or malformed; each one is handled on its own and a bad
one never affects the rest.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from typing import Any

from pydantic import ValidationError

from forum_sync.repositories.base import ForumStore, StoreError
from forum_sync.schemas import ChangeEvent, EntityKind, Operation
from forum_sync.services.conversations import ConversationService
from forum_sync.services.threads import ThreadService
from forum_sync.services.vote_machine import VoteStateMachine

logger = logging.getLogger(__name__)


class MalformedEventError(ValueError):
    """Raised when a push payload cannot be understood."""


def parse_event(raw: Any) -> ChangeEvent:
    """Validate a raw payload into a :class:`ChangeEvent`.

    Raises:
        MalformedEventError: For unknown tables, operations or missing keys.
    """
    if not isinstance(raw, Mapping):
        raise MalformedEventError(f"Expected a mapping, got {type(raw).__name__}")
    try:
        return ChangeEvent.model_validate(dict(raw))
    except ValidationError as exc:
        raise MalformedEventError(str(exc)) from exc


class RealtimeMerge:
    """Applies change notifications to threads, votes and the message log."""

    def __init__(
        self,
        store: ForumStore,
        conversations: ConversationService,
        threads: ThreadService,
        votes: VoteStateMachine,
    ) -> None:
        self.store = store
        self.conversations = conversations
        self.threads = threads
        self.votes = votes
        self._handlers: dict[EntityKind, Callable[[ChangeEvent], Awaitable[bool]]] = {
            EntityKind.POST: self._merge_post,
            EntityKind.MESSAGE: self._merge_message,
            EntityKind.VOTE: self._merge_vote,
        }

    async def run(self, subscription: AsyncIterator[Any]) -> None:
        """Apply notifications in arrival order until the subscription closes."""
        async for raw in subscription:
            await self.handle(raw)

    async def handle(self, raw: Any) -> bool:
        """Apply one notification. Returns True if local state changed."""
        try:
            event = parse_event(raw)
        except MalformedEventError as exc:
            logger.warning("Dropping malformed push payload %r: %s", raw, exc)
            return False

        try:
            return await self._handlers[event.entity_kind](event)
        except StoreError as exc:
            logger.warning(
                "Could not merge %s %s of %s: %s",
                event.entity_kind.value,
                event.operation.value,
                event.id or event.post_id,
                exc,
            )
            return False
        except (ValueError, TypeError, KeyError) as exc:
            logger.error(
                "Dropping %s %s of %s after data error: %s",
                event.entity_kind.value,
                event.operation.value,
                event.id or event.post_id,
                exc,
                exc_info=True,
            )
            return False

    async def _merge_post(self, event: ChangeEvent) -> bool:
        if event.operation is not Operation.INSERT:
            logger.debug("Ignoring %s of immutable post %s", event.operation.value, event.id)
            return False
        row = await self.store.fetch_post(event.row_id)
        if row is None:
            logger.debug("Post %s no longer visible", event.id)
            return False
        return await self.threads.merge(row)

    async def _merge_message(self, event: ChangeEvent) -> bool:
        if event.operation is Operation.DELETE:
            logger.debug("Ignoring delete of message %s", event.id)
            return False
        row = await self.store.fetch_message(event.row_id)
        if row is None:
            logger.debug("Message %s no longer visible", event.id)
            return False
        return await self.conversations.merge(row)

    async def _merge_vote(self, event: ChangeEvent) -> bool:
        # Third-party deltas cannot be composed with our in-flight toggle, so
        # the tally is re-derived from a count query instead.
        return await self.votes.refresh(event.vote_post_id)

"""Conversation summaries projected from the message log."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from forum_sync.core.settings import settings
from forum_sync.db.time import utcnow
from forum_sync.repositories.base import ForumStore, StoreError
from forum_sync.schemas import MessageRow, ProfileRow
from forum_sync.services.message_log import MessageLog
from forum_sync.services.notifications import NoticeBoard
from forum_sync.services.optimistic import OptimisticMutation, Undo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Conversation:
    """Summary of the exchange with one peer."""

    peer: ProfileRow
    last_message: MessageRow
    unread_count: int


def placeholder_profile(peer_id: str) -> ProfileRow:
    """Stand-in identity for a peer whose profile could not be joined."""
    return ProfileRow(id=peer_id, username=settings.placeholder_username, avatar_url=None)


def count_unread(messages: Iterable[MessageRow], self_id: str, peer_id: str) -> int:
    """Count messages from ``peer_id`` to ``self_id`` that are still unread."""
    return sum(
        1
        for message in messages
        if message.sender_id == peer_id and message.recipient_id == self_id and not message.read
    )


def project_conversations(
    messages: Sequence[MessageRow],
    self_id: str,
    profiles: Mapping[str, ProfileRow] | None = None,
) -> tuple[Conversation, ...]:
    """Reduce a newest-first message list to one summary per peer.

    The first message seen for a peer is its most recent one. Unread counts
    are taken over the whole input, independently of scan order. The result
    keeps encounter order, which is newest conversation first.
    """
    profiles = profiles or {}
    seen: dict[str, Conversation] = {}
    for message in messages:
        peer_id = message.peer_of(self_id)
        if peer_id in seen:
            continue
        seen[peer_id] = Conversation(
            peer=profiles.get(peer_id) or placeholder_profile(peer_id),
            last_message=message,
            unread_count=count_unread(messages, self_id, peer_id),
        )
    return tuple(seen.values())


class ConversationService:
    """Inbox operations for the current user."""

    def __init__(
        self,
        store: ForumStore,
        user_id: str,
        notices: NoticeBoard,
        log: MessageLog | None = None,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.notices = notices
        self.log = log if log is not None else MessageLog(user_id)
        self.profiles: dict[str, ProfileRow] = {}
        self._projection: tuple[tuple[int, int], tuple[Conversation, ...]] | None = None

    async def load(self) -> bool:
        """Replace the log with the messages involving the user."""
        try:
            rows = await self.store.list_messages_for(self.user_id)
        except StoreError as exc:
            logger.warning("Could not load messages for %s: %s", self.user_id, exc)
            return False
        self.log.replace(rows)
        await self.ensure_profiles(row.peer_of(self.user_id) for row in rows)
        logger.debug("Loaded %d messages for %s", len(self.log), self.user_id)
        return True

    async def ensure_profiles(self, peer_ids: Iterable[str]) -> None:
        """Fetch profiles not yet known; failures leave placeholders in place."""
        missing = sorted({peer_id for peer_id in peer_ids if peer_id not in self.profiles})
        if not missing:
            return
        try:
            rows = await self.store.fetch_profiles(missing)
        except StoreError as exc:
            logger.warning("Could not fetch %d profiles: %s", len(missing), exc)
            return
        for row in rows:
            self.profiles[row.id] = row

    def conversations(self) -> tuple[Conversation, ...]:
        """Return the summaries for the current log, rebuilt when it changed."""
        key = (self.log.version, len(self.profiles))
        if self._projection is None or self._projection[0] != key:
            summaries = project_conversations(self.log.newest_first(), self.user_id, self.profiles)
            self._projection = (key, summaries)
        return self._projection[1]

    def unread_total(self) -> int:
        return sum(conversation.unread_count for conversation in self.conversations())

    async def merge(self, row: MessageRow) -> bool:
        """Fold a message delivered by the push channel into the log."""
        changed = self.log.merge(row)
        if changed and row.involves(self.user_id):
            await self.ensure_profiles([row.peer_of(self.user_id)])
        return changed

    async def open_conversation(self, peer_id: str) -> list[MessageRow]:
        """Mark the peer's unread messages as read and return the thread.

        The receipt is applied to the log before the store confirms it; on
        failure the flags are restored and a notice is posted. The thread is
        returned either way.
        """
        unread = self.log.unread_from(peer_id)
        if unread:

            def apply() -> Undo:
                changed = self.log.set_read(unread, True)
                return lambda: self.log.set_read(changed, False)

            mutation: OptimisticMutation[None] = OptimisticMutation(
                f"read receipt for {len(unread)} messages from {peer_id}", apply
            )
            try:
                await mutation.commit(lambda: self.store.mark_read(unread, self.user_id))
            except StoreError as exc:
                logger.warning("Could not mark messages from %s read: %s", peer_id, exc)
                self.notices.error(settings.read_receipt_failed_notice, peer_id=peer_id)

        await self.ensure_profiles([peer_id])
        return self.log.thread_with(peer_id)

    async def send_message(self, peer_id: str, content: str) -> MessageRow | None:
        """Send ``content`` to ``peer_id``.

        Blank content is ignored. The message shows up in the log at once and
        is removed again if the store rejects it.
        """
        text = content.strip()
        if not text:
            return None

        message = MessageRow(
            id=str(uuid.uuid4()),
            sender_id=self.user_id,
            recipient_id=peer_id,
            content=text,
            read=False,
            created_at=utcnow(),
        )

        def apply() -> Undo:
            self.log.merge(message)
            return lambda: self.log.remove(message.id)

        mutation: OptimisticMutation[None] = OptimisticMutation(
            f"message {message.id} to {peer_id}", apply
        )
        try:
            await mutation.commit(lambda: self.store.insert_message(message))
        except StoreError as exc:
            logger.warning("Sending message to %s failed: %s", peer_id, exc)
            self.notices.error(settings.message_failed_notice, peer_id=peer_id)
            return None

        await self.ensure_profiles([peer_id])
        return message

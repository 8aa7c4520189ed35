"""Session-scoped cache of direct messages."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from forum_sync.schemas import MessageRow

logger = logging.getLogger(__name__)


def _recency_key(message: MessageRow) -> tuple:
    return (message.created_at, message.id)


class MessageLog:
    """Id-keyed log of the messages involving one user.

    The log is append-only apart from the ``read`` flag. Inserts are keyed by
    id, so a row that is already present (for example our own optimistic
    send) is never duplicated by a later notification.
    """

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        self._rows: dict[str, MessageRow] = {}
        self.version = 0

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._rows

    def get(self, message_id: str) -> MessageRow | None:
        return self._rows.get(message_id)

    def replace(self, rows: Iterable[MessageRow]) -> None:
        """Swap the whole log for a fresh load from the store."""
        self._rows = {row.id: row for row in rows if row.involves(self.user_id)}
        self._touch()

    def merge(self, row: MessageRow) -> bool:
        """Fold a row from the store into the log.

        New ids are inserted. For a known id only ``read`` is merged, and only
        from false to true, so a late notification cannot undo a receipt.
        Returns True if the log changed.
        """
        if not row.involves(self.user_id):
            logger.debug("Ignoring message %s not involving %s", row.id, self.user_id)
            return False

        current = self._rows.get(row.id)
        if current is None:
            self._rows[row.id] = row
            self._touch()
            return True

        if row.read and not current.read:
            self._rows[row.id] = current.with_read(True)
            self._touch()
            return True

        logger.debug("Duplicate delivery of message %s dropped", row.id)
        return False

    def remove(self, message_id: str) -> None:
        if self._rows.pop(message_id, None) is not None:
            self._touch()

    def set_read(self, message_ids: Iterable[str], read: bool) -> list[str]:
        """Set ``read`` on the given ids and return the ids that changed."""
        changed = []
        for message_id in message_ids:
            current = self._rows.get(message_id)
            if current is None or current.read == read:
                continue
            self._rows[message_id] = current.with_read(read)
            changed.append(message_id)
        if changed:
            self._touch()
        return changed

    def newest_first(self) -> list[MessageRow]:
        return sorted(self._rows.values(), key=_recency_key, reverse=True)

    def thread_with(self, peer_id: str) -> list[MessageRow]:
        """Return the exchange with ``peer_id``, oldest first."""
        rows = [row for row in self._rows.values() if row.peer_of(self.user_id) == peer_id]
        return sorted(rows, key=_recency_key)

    def unread_from(self, peer_id: str) -> list[str]:
        """Return ids of unread messages from ``peer_id`` to the owner."""
        return [
            row.id
            for row in self._rows.values()
            if row.sender_id == peer_id and row.recipient_id == self.user_id and not row.read
        ]

    def _touch(self) -> None:
        self.version += 1

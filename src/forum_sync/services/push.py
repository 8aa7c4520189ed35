"""Push channel abstraction.

Change notifications arrive as raw mappings such as
``{"table": "messages", "operation": "INSERT", "id": "..."}``. A
subscription is an async iterator over them; closing it unsubscribes.
:class:`LocalPushChannel` is an in-process broker used when the host wires
notifications in itself, and in tests.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Protocol

from forum_sync.core.settings import settings

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """Queue of notifications for one table, optionally filtered by row values."""

    def __init__(
        self,
        channel: LocalPushChannel,
        table: str,
        row_filter: Mapping[str, str] | None = None,
        maxsize: int = 0,
    ) -> None:
        self.channel = channel
        self.table = table
        self.row_filter = dict(row_filter or {})
        self.closed = False
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)

    def matches(self, payload: Mapping[str, Any]) -> bool:
        record = payload.get("record") or {}
        for column, expected in self.row_filter.items():
            value = record.get(column, payload.get(column))
            # Notifications that omit the column cannot be ruled out here.
            if value is not None and str(value) != expected:
                return False
        return True

    def deliver(self, payload: Mapping[str, Any]) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait({"table": self.table, **payload})
        except asyncio.QueueFull:
            logger.warning("Subscription to %s is full; notification dropped", self.table)
            return False
        return True

    def close(self) -> None:
        """Unsubscribe; iteration ends once queued notifications are consumed."""
        if self.closed:
            return
        self.closed = True
        self.channel.unsubscribe(self)
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> dict[str, Any]:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class PushChannel(Protocol):
    """Source of change notifications keyed by table and optional row filter."""

    def subscribe(self, table: str, row_filter: Mapping[str, str] | None = None) -> Subscription: ...


class LocalPushChannel:
    """In-process broker fanning published notifications out to subscriptions."""

    def __init__(self, queue_size: int | None = None) -> None:
        self.queue_size = settings.subscription_queue_size if queue_size is None else queue_size
        self._subscriptions: list[Subscription] = []

    def subscribe(self, table: str, row_filter: Mapping[str, str] | None = None) -> Subscription:
        subscription = Subscription(self, table, row_filter, maxsize=self.queue_size)
        self._subscriptions.append(subscription)
        logger.debug("Subscribed to %s with filter %s", table, subscription.row_filter)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def publish(self, table: str, payload: Mapping[str, Any]) -> int:
        """Deliver ``payload`` to every matching subscription on ``table``."""
        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.table == table and subscription.matches(payload):
                delivered += subscription.deliver(payload)
        return delivered

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

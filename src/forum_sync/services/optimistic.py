"""Optimistic local mutations with compensating actions."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from forum_sync.repositories.base import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Undo = Callable[[], None]


class OptimisticMutation(Generic[T]):
    """Local change applied ahead of its remote confirmation.

    ``apply`` performs the local change and returns the callable that undoes
    exactly that change. :meth:`commit` applies, awaits the remote call, and
    runs the undo if the remote call raises :class:`StoreError`. The error is
    re-raised so the caller can report it.
    """

    def __init__(self, label: str, apply: Callable[[], Undo]) -> None:
        self.label = label
        self._apply = apply
        self._undo: Undo | None = None

    @property
    def applied(self) -> bool:
        return self._undo is not None

    async def commit(self, remote: Callable[[], Awaitable[T]]) -> T:
        self._undo = self._apply()
        try:
            result = await remote()
        except StoreError:
            logger.debug("Rolling back %s", self.label)
            self.compensate()
            raise
        logger.debug("Confirmed %s", self.label)
        return result

    def compensate(self) -> None:
        """Undo the local change once; later calls are no-ops."""
        undo, self._undo = self._undo, None
        if undo is not None:
            undo()

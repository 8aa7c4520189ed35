"""User-facing notices for non-fatal failures."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class NoticeLevel(Enum):
    """Severity shown to the user."""

    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    """A message the host UI should surface, typically as a toast."""

    level: NoticeLevel
    message: str
    context: dict[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    """Sink for notices raised by the core."""

    def notify(self, notice: Notice) -> None: ...


class NoticeBoard:
    """Collects notices for the host UI to drain.

    Every notice is also logged so failures are visible without a UI.
    """

    def __init__(self) -> None:
        self._pending: list[Notice] = []

    def notify(self, notice: Notice) -> None:
        logger.info("Notice (%s): %s %s", notice.level.value, notice.message, notice.context)
        self._pending.append(notice)

    def error(self, message: str, **context: Any) -> None:
        """Post an error notice."""
        self.notify(Notice(NoticeLevel.ERROR, message, dict(context)))

    def drain(self) -> list[Notice]:
        """Return and clear the pending notices."""
        pending, self._pending = self._pending, []
        return pending

    @property
    def pending(self) -> tuple[Notice, ...]:
        return tuple(self._pending)

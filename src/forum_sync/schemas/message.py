"""Direct message row schema."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

from .common import as_utc


class MessageRow(BaseModel):
    """Full message row as stored.

    Rows are frozen; a change of ``read`` produces a new row via
    :meth:`mark_read`.
    """

    id: str
    sender_id: str
    recipient_id: str
    content: str
    read: bool = False
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _normalize_created_at(cls, value: datetime) -> datetime:
        return as_utc(value)

    def involves(self, user_id: str) -> bool:
        """Return True if ``user_id`` sent or received this message."""
        return user_id in (self.sender_id, self.recipient_id)

    def peer_of(self, user_id: str) -> str:
        """Return the other participant relative to ``user_id``."""
        return self.sender_id if self.recipient_id == user_id else self.recipient_id

    def with_read(self, read: bool) -> "MessageRow":
        """Return a copy with the read flag set."""
        if read == self.read:
            return self
        return self.model_copy(update={"read": read})

    model_config = ConfigDict(from_attributes=True, frozen=True)

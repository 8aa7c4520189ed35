"""Change notifications delivered by the push channel."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EntityKind(str, Enum):
    """Tables the core subscribes to."""

    POST = "posts"
    VOTE = "votes"
    MESSAGE = "messages"


class Operation(str, Enum):
    """Row operations reported by the push channel."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """A single change notification.

    The channel delivers identifiers, not necessarily full rows. Post and
    message events must carry ``id``; vote events must carry ``post_id``
    (votes are keyed by post and user, not by a surrogate id). Both may be
    lifted from an attached ``record`` or ``old_record``.
    """

    entity_kind: EntityKind = Field(validation_alias="table")
    operation: Operation
    id: str | None = None
    post_id: str | None = None
    record: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _lift_record_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "table" not in data and "entity_kind" in data:
            data["table"] = data["entity_kind"]
        if isinstance(data.get("operation"), str):
            data["operation"] = data["operation"].upper()
        # Deletes only carry the previous row.
        for source in (data.get("record"), data.get("old_record")):
            if not isinstance(source, dict):
                continue
            for key in ("id", "post_id"):
                if data.get(key) is None and source.get(key) is not None:
                    data[key] = str(source[key])
        return data

    @model_validator(mode="after")
    def _require_key(self) -> ChangeEvent:
        if self.entity_kind is EntityKind.VOTE:
            if not self.post_id:
                raise ValueError("vote event without post_id")
        elif not self.id:
            raise ValueError(f"{self.entity_kind.value} event without id")
        return self

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @property
    def row_id(self) -> str:
        """Identifier of the changed post or message."""
        if not self.id:
            raise ValueError(f"{self.entity_kind.value} event without id")
        return self.id

    @property
    def vote_post_id(self) -> str:
        """Post whose votes changed."""
        if not self.post_id:
            raise ValueError("vote event without post_id")
        return self.post_id

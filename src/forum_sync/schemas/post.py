"""Post row schema."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

from .common import as_utc


class PostRow(BaseModel):
    """Full post row as stored."""

    id: str
    thread_id: str
    author_id: str
    content: str = ""
    image_ref: str | None = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _normalize_created_at(cls, value: datetime) -> datetime:
        return as_utc(value)

    model_config = ConfigDict(from_attributes=True, frozen=True)

"""Vote-related Pydantic schemas."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class VoteKind(str, Enum):
    """Direction of a vote as stored in the ``votes.kind`` column."""

    UP = "up"
    DOWN = "down"


class VoteRow(BaseModel):
    """One user's vote on one post."""

    post_id: str
    user_id: str
    kind: VoteKind

    model_config = ConfigDict(from_attributes=True, frozen=True)


class VoteCounts(BaseModel):
    """Aggregate vote counts for a post as returned by a count query."""

    post_id: str
    up: int = Field(default=0, ge=0)
    down: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)

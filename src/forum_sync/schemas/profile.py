"""Profile row schema."""

from pydantic import BaseModel, ConfigDict


class ProfileRow(BaseModel):
    """Display identity joined onto posts and conversations."""

    id: str
    username: str
    avatar_url: str | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

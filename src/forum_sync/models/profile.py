# src/forum_sync/models/profile.py
"""Public profile rows joined onto posts and messages."""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from forum_sync.db.session import Base


class Profile(Base):
    """Display identity of a user."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    username: Mapped[str] = mapped_column(Text, nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)

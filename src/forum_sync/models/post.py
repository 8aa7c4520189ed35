# src/forum_sync/models/post.py
"""SQLAlchemy model for thread replies."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from forum_sync.db.session import Base
from forum_sync.db.time import utcnow


class Post(Base):
    """Reply posted into a thread.

    Posts are immutable once created; the client core never edits them.
    """

    __tablename__ = "posts"
    __table_args__ = (Index("ix_posts_thread_id_created_at", "thread_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    thread_id: Mapped[str] = mapped_column(String(36), nullable=False)
    author_id: Mapped[str] = mapped_column(String(36), ForeignKey("profiles.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # Public URL of an uploaded image, if any.
    image_ref: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

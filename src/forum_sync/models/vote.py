# src/forum_sync/models/vote.py
"""Models capturing voting interactions on posts."""

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from forum_sync.db.session import Base


class Vote(Base):
    """Per-user vote on a post."""

    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("post_id", "user_id", name="uq_votes_post_user"),
        CheckConstraint("kind IN ('up', 'down')", name="ck_votes_kind"),
        Index("ix_votes_post_id", "post_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    post_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("posts.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("profiles.id"), nullable=False)

    # "up" or "down".
    kind: Mapped[str] = mapped_column(String(4), nullable=False)

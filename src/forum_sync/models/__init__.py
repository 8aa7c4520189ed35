"""SQLAlchemy models for the forum store."""

from .message import Message
from .post import Post
from .profile import Profile
from .vote import Vote

__all__ = [
    "Message",
    "Post",
    "Profile",
    "Vote",
]

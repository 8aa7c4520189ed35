"""Pydantic schemas for rows crossing the store boundary."""

from .events import ChangeEvent, EntityKind, Operation
from .message import MessageRow
from .post import PostRow
from .profile import ProfileRow
from .vote import VoteCounts, VoteKind, VoteRow

__all__ = [
    "ChangeEvent",
    "EntityKind",
    "MessageRow",
    "Operation",
    "PostRow",
    "ProfileRow",
    "VoteCounts",
    "VoteKind",
    "VoteRow",
]

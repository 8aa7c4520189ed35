"""Store contract and its implementations."""

from .base import ConstraintViolationError, ForumStore, StoreError
from .rest_store import RestForumStore
from .sql_store import SqlForumStore

__all__ = [
    "ConstraintViolationError",
    "ForumStore",
    "RestForumStore",
    "SqlForumStore",
    "StoreError",
]

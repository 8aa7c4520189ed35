"""PostgREST implementation of the store contract.

This module provides the RestForumStore class that issues the core's store
operations against a PostgREST-compatible HTTP endpoint. It includes:

- Lazily created ``httpx.AsyncClient`` with API key authentication
- ``eq.`` / ``in.`` / ``or`` row filters
- Exact counts read from the ``Content-Range`` header
- Mapping of HTTP failures onto the store exception hierarchy
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from forum_sync.core.settings import settings
from forum_sync.schemas import MessageRow, PostRow, ProfileRow, VoteCounts, VoteKind, VoteRow

from .base import ConstraintViolationError, StoreError

__all__ = ["RestConfig", "RestForumStore", "load_rest_config"]

logger = logging.getLogger(__name__)

# HTTP status codes
HTTP_CONFLICT = 409
HTTP_BAD_REQUEST = 400

REST_PREFIX = "/rest/v1"

RowT = TypeVar("RowT", bound=BaseModel)


@dataclass(frozen=True)
class RestConfig:
    """Immutable configuration for the HTTP store."""

    base_url: str
    api_key: str | None
    access_token: str | None
    timeout_seconds: float


def load_rest_config() -> RestConfig:
    """Build configuration object from global settings."""
    if not settings.rest_base_url:
        raise StoreError("FORUM_REST_BASE_URL is not configured")
    return RestConfig(
        base_url=settings.rest_base_url,
        api_key=settings.rest_api_key,
        access_token=settings.rest_access_token,
        timeout_seconds=float(settings.rest_timeout_seconds),
    )


def _eq(value: str) -> str:
    return f"eq.{value}"


def _in(values: Iterable[str]) -> str:
    return "in.(" + ",".join(f'"{value}"' for value in values) + ")"


def _parse_total(content_range: str | None) -> int:
    # PostgREST reports "0-24/57" or "*/0".
    if not content_range or "/" not in content_range:
        raise StoreError(f"Missing count in Content-Range: {content_range!r}")
    total = content_range.rsplit("/", 1)[1]
    if total == "*":
        raise StoreError("Store did not return an exact count")
    try:
        return int(total)
    except ValueError as exc:
        raise StoreError(f"Unreadable count in Content-Range: {content_range!r}") from exc


def _json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise StoreError(f"Store returned invalid JSON: {exc}") from exc


def _rows(model: type[RowT], rows: Iterable[Any]) -> list[RowT]:
    try:
        return [model.model_validate(row) for row in rows]
    except ValidationError as exc:
        raise StoreError(f"Store returned an invalid {model.__name__}: {exc}") from exc


def _first(model: type[RowT], rows: list[Any]) -> RowT | None:
    return _rows(model, rows[:1])[0] if rows else None


class RestForumStore:
    """HTTP client wrapper for a PostgREST endpoint."""

    def __init__(
        self,
        config: RestConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_rest_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                headers = {"Content-Type": "application/json"}
                if self.config.api_key:
                    headers["apikey"] = self.config.api_key
                token = self.config.access_token or self.config.api_key
                if token:
                    headers["Authorization"] = f"Bearer {token}"
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    headers=headers,
                    transport=self._transport,
                )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, str] | None = None,
        json_data: Any | None = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        client = await self._ensure_client()
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await client.request(
                method,
                f"{REST_PREFIX}/{table}",
                params=params,
                json=json_data,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise StoreError(f"Store request failed: {exc}") from exc

        if response.status_code == HTTP_CONFLICT:
            raise ConstraintViolationError(f"{method} {table} conflicted: {response.text}")
        if response.status_code >= HTTP_BAD_REQUEST:
            raise StoreError(f"Store responded with {response.status_code} for {method} {table}")
        return response

    async def _select(self, table: str, params: Mapping[str, str]) -> list[dict[str, Any]]:
        response = await self._request("GET", table, params={"select": "*", **params})
        body = _json(response)
        if not isinstance(body, list):
            raise StoreError(f"Expected a list of {table} rows, got {type(body).__name__}")
        return body

    # Posts

    async def insert_post(self, post: PostRow) -> None:
        await self._request(
            "POST", "posts", json_data=post.model_dump(mode="json"), prefer="return=minimal"
        )

    async def fetch_post(self, post_id: str) -> PostRow | None:
        rows = await self._select("posts", {"id": _eq(post_id)})
        return _first(PostRow, rows)

    async def list_thread_posts(self, thread_id: str) -> list[PostRow]:
        rows = await self._select(
            "posts", {"thread_id": _eq(thread_id), "order": "created_at.asc,id.asc"}
        )
        return _rows(PostRow, rows)

    # Votes

    async def insert_vote(self, post_id: str, user_id: str, kind: VoteKind) -> None:
        await self._request(
            "POST",
            "votes",
            json_data={"post_id": post_id, "user_id": user_id, "kind": kind.value},
            prefer="return=minimal",
        )

    async def update_vote(self, post_id: str, user_id: str, kind: VoteKind) -> None:
        response = await self._request(
            "PATCH",
            "votes",
            params={"post_id": _eq(post_id), "user_id": _eq(user_id)},
            json_data={"kind": kind.value},
            prefer="return=representation",
        )
        if not _json(response):
            raise ConstraintViolationError(f"No vote by {user_id} on post {post_id} to update")

    async def delete_vote(self, post_id: str, user_id: str) -> None:
        await self._request(
            "DELETE",
            "votes",
            params={"post_id": _eq(post_id), "user_id": _eq(user_id)},
            prefer="return=minimal",
        )

    async def fetch_vote(self, post_id: str, user_id: str) -> VoteRow | None:
        rows = await self._select("votes", {"post_id": _eq(post_id), "user_id": _eq(user_id)})
        return _first(VoteRow, rows)

    async def fetch_user_votes(self, user_id: str, post_ids: Sequence[str]) -> list[VoteRow]:
        if not post_ids:
            return []
        rows = await self._select("votes", {"user_id": _eq(user_id), "post_id": _in(post_ids)})
        return _rows(VoteRow, rows)

    async def _count(self, post_id: str, kind: VoteKind) -> int:
        response = await self._request(
            "HEAD",
            "votes",
            params={"select": "post_id", "post_id": _eq(post_id), "kind": _eq(kind.value)},
            prefer="count=exact",
        )
        return _parse_total(response.headers.get("Content-Range"))

    async def count_votes(self, post_id: str) -> VoteCounts:
        up = await self._count(post_id, VoteKind.UP)
        down = await self._count(post_id, VoteKind.DOWN)
        return VoteCounts(post_id=post_id, up=up, down=down)

    # Messages

    async def insert_message(self, message: MessageRow) -> None:
        await self._request(
            "POST", "messages", json_data=message.model_dump(mode="json"), prefer="return=minimal"
        )

    async def fetch_message(self, message_id: str) -> MessageRow | None:
        rows = await self._select("messages", {"id": _eq(message_id)})
        return _first(MessageRow, rows)

    async def list_messages_for(self, user_id: str) -> list[MessageRow]:
        rows = await self._select(
            "messages",
            {
                "or": f"(sender_id.eq.{user_id},recipient_id.eq.{user_id})",
                "order": "created_at.desc,id.desc",
            },
        )
        return _rows(MessageRow, rows)

    async def mark_read(self, message_ids: Iterable[str], recipient_id: str) -> None:
        ids = list(message_ids)
        if not ids:
            return
        await self._request(
            "PATCH",
            "messages",
            params={"id": _in(ids), "recipient_id": _eq(recipient_id)},
            json_data={"read": True},
            prefer="return=minimal",
        )

    # Profiles

    async def fetch_profiles(self, user_ids: Iterable[str]) -> list[ProfileRow]:
        ids = list(user_ids)
        if not ids:
            return []
        rows = await self._select("profiles", {"id": _in(ids)})
        return _rows(ProfileRow, rows)

"""
Storage backends the sync controllers read from and write through.

Every read is owner-filtered and every delete is constrained by owner in the
query itself. Backends translate their transport errors into QueryError,
AuthError, and SubscriptionError so callers deal with one taxonomy.
"""
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import httpx
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from schemas.bookmark import BookmarkCreate, BookmarkResponse
from schemas.change_event import ChangeEvent, ChangeType
from schemas.user import UserResponse
from services import bookmark_service
from services.change_feed import ChangeFeed
from services.exceptions import (
    AuthError,
    BookmarkNotFoundError,
    QueryError,
    SubscriptionError,
)

logger = logging.getLogger(__name__)

BOOKMARKS_TABLE = "bookmarks"


class ChangeStream(Protocol):
    """Async stream of change events that can be closed."""

    def __aiter__(self) -> AsyncIterator[ChangeEvent]: ...

    async def close(self) -> None: ...


class BookmarkStore(Protocol):
    """Owner-scoped bookmark storage with a change-notification channel."""

    async def list_bookmarks(self, user_id: int) -> list[BookmarkResponse]: ...

    async def count_bookmarks(self, user_id: int) -> int: ...

    async def add_bookmark(self, user_id: int, data: BookmarkCreate) -> BookmarkResponse: ...

    async def delete_bookmark(self, user_id: int, bookmark_id: int) -> None: ...

    async def subscribe_changes(self, table: str = BOOKMARKS_TABLE) -> ChangeStream: ...


class DatabaseBookmarkStore:
    """Talks to the database directly and announces writes on the change feed."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        change_feed: ChangeFeed | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._change_feed = change_feed

    async def list_bookmarks(self, user_id: int) -> list[BookmarkResponse]:
        """All bookmarks owned by user_id, newest first."""
        try:
            async with self._session_factory() as db:
                rows = await bookmark_service.list_bookmarks(db, user_id)
                return [BookmarkResponse.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to list bookmarks: {e}") from e

    async def count_bookmarks(self, user_id: int) -> int:
        """Number of bookmarks owned by user_id."""
        try:
            async with self._session_factory() as db:
                return await bookmark_service.count_bookmarks(db, user_id)
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to count bookmarks: {e}") from e

    async def add_bookmark(self, user_id: int, data: BookmarkCreate) -> BookmarkResponse:
        """Insert a bookmark and return it with its server-assigned id and created_at."""
        try:
            async with self._session_factory.begin() as db:
                bookmark = await bookmark_service.create_bookmark(db, user_id, data)
                created = BookmarkResponse.model_validate(bookmark)
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to add bookmark: {e}") from e
        await self._announce(ChangeType.INSERT, created.id)
        return created

    async def delete_bookmark(self, user_id: int, bookmark_id: int) -> None:
        """
        Delete a bookmark owned by user_id.

        Raises:
            BookmarkNotFoundError: If no bookmark with that id belongs to user_id.
        """
        try:
            async with self._session_factory.begin() as db:
                deleted = await bookmark_service.delete_bookmark(db, user_id, bookmark_id)
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to delete bookmark: {e}") from e
        if not deleted:
            raise BookmarkNotFoundError(bookmark_id)
        await self._announce(ChangeType.DELETE, bookmark_id)

    async def subscribe_changes(self, table: str = BOOKMARKS_TABLE) -> ChangeStream:
        """Open a change subscription; raises SubscriptionError without a feed."""
        if self._change_feed is None:
            raise SubscriptionError("No change feed configured")
        return await self._change_feed.subscribe(table)

    async def _announce(self, change_type: ChangeType, record_id: int) -> None:
        if self._change_feed is not None:
            await self._change_feed.publish(ChangeEvent(type=change_type, record_id=record_id))


class ApiBookmarkStore:
    """
    Talks to the REST API with a bearer token.

    The API derives the owner from the token, so the user_id arguments only
    document intent here; the server applies the ownership filter. Change
    notifications come from an optional change feed because the API itself
    only serves request/response traffic.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        token: str | None = None,
        change_feed: ChangeFeed | None = None,
    ) -> None:
        self._client = client
        self._token = token
        self._change_feed = change_feed

    def _headers(self) -> dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise QueryError(f"{method} {path} failed: {e}") from e
        if response.status_code == 401:
            raise AuthError(f"{method} {path} was rejected: not authenticated")
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise QueryError(
                f"{e.request.method} {e.request.url.path} returned {response.status_code}",
            ) from e

    @staticmethod
    def _payload(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise QueryError(
                f"{response.request.method} {response.request.url.path} "
                f"returned a non-JSON body",
            ) from e

    async def get_current_user(self) -> UserResponse:
        """Profile of the user the token belongs to."""
        response = await self._request("GET", "/users/me")
        self._raise_for_status(response)
        try:
            return UserResponse.model_validate(self._payload(response))
        except ValidationError as e:
            raise QueryError(f"Unexpected user payload: {e}") from e

    async def list_bookmarks(self, user_id: int) -> list[BookmarkResponse]:  # noqa: ARG002
        """All bookmarks owned by the token's user, newest first."""
        response = await self._request("GET", "/bookmarks/")
        self._raise_for_status(response)
        payload = self._payload(response)
        try:
            return [BookmarkResponse.model_validate(item) for item in payload]
        except (ValidationError, TypeError) as e:
            raise QueryError(f"Unexpected bookmark list payload: {e}") from e

    async def count_bookmarks(self, user_id: int) -> int:  # noqa: ARG002
        """Number of bookmarks owned by the token's user."""
        response = await self._request("GET", "/bookmarks/count")
        self._raise_for_status(response)
        payload = self._payload(response)
        try:
            return int(payload["count"])
        except (KeyError, TypeError, ValueError) as e:
            raise QueryError(f"Unexpected bookmark count payload: {payload!r}") from e

    async def add_bookmark(  # noqa: ARG002
        self, user_id: int, data: BookmarkCreate,
    ) -> BookmarkResponse:
        """Create a bookmark and return the stored row."""
        response = await self._request("POST", "/bookmarks/", json=data.model_dump())
        self._raise_for_status(response)
        try:
            return BookmarkResponse.model_validate(self._payload(response))
        except ValidationError as e:
            raise QueryError(f"Unexpected bookmark payload: {e}") from e

    async def delete_bookmark(self, user_id: int, bookmark_id: int) -> None:  # noqa: ARG002
        """
        Delete a bookmark owned by the token's user.

        Raises:
            BookmarkNotFoundError: If the server reports 404 (missing or not owned).
        """
        response = await self._request("DELETE", f"/bookmarks/{bookmark_id}")
        if response.status_code == 404:
            raise BookmarkNotFoundError(bookmark_id)
        self._raise_for_status(response)

    async def subscribe_changes(self, table: str = BOOKMARKS_TABLE) -> ChangeStream:
        """Open a change subscription; raises SubscriptionError without a feed."""
        if self._change_feed is None:
            raise SubscriptionError("No change feed configured")
        return await self._change_feed.subscribe(table)

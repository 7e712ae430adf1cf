"""Fixtures for sync controller tests: an in-memory backend shared by several stores."""
import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from schemas.bookmark import BookmarkCreate, BookmarkResponse
from schemas.change_event import ChangeEvent, ChangeType
from services.exceptions import BookmarkNotFoundError, QueryError, SubscriptionError
from sync.controller import SessionContext


class FakeChangeStream:
    """Queue-backed change stream. push() delivers an event, fail() drops the channel."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[ChangeEvent | Exception | None] = asyncio.Queue()
        self.closed = False

    def __aiter__(self) -> "FakeChangeStream":
        return self

    async def __anext__(self) -> ChangeEvent:
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    def push(self, event: ChangeEvent) -> None:
        self._queue.put_nowait(event)

    def fail(self, message: str = "connection lost") -> None:
        self._queue.put_nowait(SubscriptionError(message))

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(None)


class FakeBackend:
    """Shared table of bookmarks; every write is broadcast to open streams."""

    def __init__(self) -> None:
        self.rows: dict[int, BookmarkResponse] = {}
        self.streams: list[FakeChangeStream] = []
        self._next_id = 1
        self._clock = datetime(2025, 1, 5, 12, 0, tzinfo=UTC)

    def insert(
        self,
        user_id: int,
        title: str,
        url: str,
        bookmark_id: int | None = None,
    ) -> BookmarkResponse:
        bookmark_id = bookmark_id or self._next_id
        self._next_id = max(self._next_id, bookmark_id) + 1
        self._clock += timedelta(seconds=1)
        row = BookmarkResponse(
            id=bookmark_id,
            user_id=user_id,
            title=title,
            url=url,
            created_at=self._clock,
        )
        self.rows[bookmark_id] = row
        self.broadcast(ChangeEvent(type=ChangeType.INSERT, record_id=bookmark_id))
        return row

    def remove(self, user_id: int, bookmark_id: int) -> bool:
        row = self.rows.get(bookmark_id)
        if row is None or row.user_id != user_id:
            return False
        del self.rows[bookmark_id]
        self.broadcast(ChangeEvent(type=ChangeType.DELETE, record_id=bookmark_id))
        return True

    def list_for(self, user_id: int) -> list[BookmarkResponse]:
        owned = [row for row in self.rows.values() if row.user_id == user_id]
        return sorted(owned, key=lambda row: (row.created_at, row.id), reverse=True)

    def broadcast(self, event: ChangeEvent) -> None:
        for stream in self.streams:
            if not stream.closed:
                stream.push(event)


class FakeBookmarkStore:
    """
    BookmarkStore over a FakeBackend.

    Reads take their snapshot when issued; if read_gate is set, the response is
    held until the gate opens, which models a slow network round trip.
    """

    def __init__(self, backend: FakeBackend, push_available: bool = True) -> None:
        self.backend = backend
        self.push_available = push_available
        self.read_gate: asyncio.Event | None = None
        self.fail_reads = False
        self.list_calls = 0
        self.count_calls = 0
        self.max_concurrent_reads = 0
        self.subscriptions: list[FakeChangeStream] = []
        self._concurrent_reads = 0

    async def _read(self, snapshot):
        self._concurrent_reads += 1
        self.max_concurrent_reads = max(self.max_concurrent_reads, self._concurrent_reads)
        try:
            if self.read_gate is not None:
                await self.read_gate.wait()
            if self.fail_reads:
                raise QueryError("database unavailable")
            return snapshot
        finally:
            self._concurrent_reads -= 1

    async def list_bookmarks(self, user_id: int) -> list[BookmarkResponse]:
        self.list_calls += 1
        return await self._read(self.backend.list_for(user_id))

    async def count_bookmarks(self, user_id: int) -> int:
        self.count_calls += 1
        return await self._read(len(self.backend.list_for(user_id)))

    async def add_bookmark(self, user_id: int, data: BookmarkCreate) -> BookmarkResponse:
        return self.backend.insert(user_id, data.title, data.url)

    async def delete_bookmark(self, user_id: int, bookmark_id: int) -> None:
        if not self.backend.remove(user_id, bookmark_id):
            raise BookmarkNotFoundError(bookmark_id)

    async def subscribe_changes(self, table: str = "bookmarks") -> FakeChangeStream:
        if not self.push_available:
            raise SubscriptionError("push channel unavailable")
        stream = FakeChangeStream()
        self.backend.streams.append(stream)
        self.subscriptions.append(stream)
        return stream


@pytest.fixture
def backend() -> FakeBackend:
    """Empty shared backend."""
    return FakeBackend()


@pytest.fixture
def make_store(backend: FakeBackend) -> Callable[..., FakeBookmarkStore]:
    """Factory for additional stores (sessions) over the same backend."""
    def _make_store(push_available: bool = True) -> FakeBookmarkStore:
        return FakeBookmarkStore(backend, push_available=push_available)

    return _make_store


@pytest.fixture
def store(make_store: Callable[..., FakeBookmarkStore]) -> FakeBookmarkStore:
    """Store with a working push channel."""
    return make_store()


@pytest.fixture
def session() -> SessionContext:
    """Signed-in user 1."""
    return SessionContext(user_id=1, display_name="Ada")


@pytest.fixture
def wait_until() -> Callable:
    """Poll a predicate until it holds, failing the test after a timeout."""
    async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        async with asyncio.timeout(timeout):
            while not predicate():
                await asyncio.sleep(0.01)

    return _wait_until

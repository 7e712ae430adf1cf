"""
Session-scoped views that keep bookmark state fresh.

BookmarkListController holds the full list and listens on two channels: a
fixed-interval poll and a best-effort push subscription. Either one only
triggers a full re-read, so correctness never depends on the push channel;
with it down, the list is at most one polling interval stale.
BookmarkCountController is the poll-only sibling that tracks the count.
"""
import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from schemas.bookmark import BookmarkCreate, BookmarkResponse
from schemas.change_event import ChangeEvent
from services.exceptions import SubscriptionError
from sync.display import count_label
from sync.reconciler import DEFAULT_INTERVAL_SECONDS, Reconciler
from sync.store import BOOKMARKS_TABLE, BookmarkStore, ChangeStream

logger = logging.getLogger(__name__)

BookmarkListListener = Callable[[tuple[BookmarkResponse, ...]], None]
CountListener = Callable[[int], None]


@dataclass(frozen=True)
class SessionContext:
    """The signed-in user a view belongs to."""

    user_id: int
    display_name: str = "User"
    avatar_url: str | None = None


class BookmarkListController:
    """Owns the current bookmark list for one user session."""

    def __init__(
        self,
        session: SessionContext,
        store: BookmarkStore,
        interval: float = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self.session = session
        self._store = store
        self._current: tuple[BookmarkResponse, ...] = ()
        self._listeners: list[BookmarkListListener] = []
        self._reconciler: Reconciler[list[BookmarkResponse]] = Reconciler(
            fetch=self._fetch,
            apply=self._apply,
            interval=interval,
            name=f"bookmark-list[user={session.user_id}]",
        )
        self._subscription: ChangeStream | None = None
        self._listener_task: asyncio.Task[None] | None = None
        self._initialized = False
        self._torn_down = False

    @property
    def current_list(self) -> tuple[BookmarkResponse, ...]:
        """Bookmarks owned by the session user, newest first."""
        return self._current

    @property
    def subscribed(self) -> bool:
        """True while the push channel is open."""
        return self._subscription is not None

    def add_listener(self, listener: BookmarkListListener) -> None:
        """Call listener with the new list after every applied refresh."""
        self._listeners.append(listener)

    async def initialize(self, initial_snapshot: Sequence[BookmarkResponse] = ()) -> None:
        """
        Show the snapshot right away, then reconcile against the store.

        Starts polling and the push subscription, and returns once the first
        refresh has completed.
        """
        if self._initialized or self._torn_down:
            return
        self._initialized = True
        if initial_snapshot:
            self._apply(list(initial_snapshot))
        first_refresh = self._reconciler.trigger()
        self.start_periodic_refresh()
        await self.subscribe_to_changes()
        if first_refresh is not None:
            await asyncio.shield(first_refresh)

    async def refresh(self) -> None:
        """Replace the list with the store's current contents."""
        await self._reconciler.refresh()

    async def on_change_notification(self, event: ChangeEvent | None = None) -> None:
        """Re-read on any change; the event itself is not interpreted."""
        if event is not None:
            logger.debug(
                "%s change on %s, refreshing user %s",
                event.type, event.table, self.session.user_id,
            )
        await self.refresh()

    def start_periodic_refresh(self, interval: float | None = None) -> None:
        """Poll the store every interval seconds for the life of the view."""
        self._reconciler.start(interval)

    async def subscribe_to_changes(self) -> bool:
        """
        Open the push channel.

        Returns:
            True if subscribed. On failure the view keeps polling and no retry
            is attempted.
        """
        if self._torn_down or self._subscription is not None:
            return self._subscription is not None
        try:
            subscription = await self._store.subscribe_changes(BOOKMARKS_TABLE)
        except SubscriptionError as e:
            logger.info(
                "Push channel unavailable for user %s, relying on polling: %s",
                self.session.user_id, e,
            )
            return False
        if self._torn_down:
            await subscription.close()
            return False
        self._subscription = subscription
        self._listener_task = asyncio.create_task(
            self._listen(subscription),
            name=f"bookmark-list[user={self.session.user_id}]-push",
        )
        self._listener_task.add_done_callback(self._report_listener_failure)
        return True

    async def teardown(self) -> None:
        """
        Stop polling and close the push channel. Safe to call more than once
        and before initialize().
        """
        if self._torn_down:
            return
        self._torn_down = True
        self._reconciler.stop()
        if self._listener_task is not None:
            self._listener_task.cancel()
            await asyncio.wait({self._listener_task})
            self._listener_task = None
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None

    async def add_bookmark(self, title: str, url: str) -> BookmarkResponse:
        """
        Save a bookmark for the session user.

        The list is not updated here; the change shows up on the next refresh.

        Raises:
            pydantic.ValidationError: If title or url is empty after trimming.
            QueryError: If the store rejects the write.
        """
        data = BookmarkCreate(title=title, url=url)
        return await self._store.add_bookmark(self.session.user_id, data)

    async def delete_bookmark(self, bookmark_id: int) -> None:
        """
        Delete one of the session user's bookmarks.

        Raises:
            BookmarkNotFoundError: If it doesn't exist or belongs to someone else.
            QueryError: If the store rejects the write.
        """
        await self._store.delete_bookmark(self.session.user_id, bookmark_id)

    async def _fetch(self) -> list[BookmarkResponse]:
        return await self._store.list_bookmarks(self.session.user_id)

    def _apply(self, bookmarks: list[BookmarkResponse]) -> None:
        self._current = tuple(bookmarks)
        for listener in self._listeners:
            listener(self._current)

    async def _listen(self, subscription: ChangeStream) -> None:
        try:
            async for event in subscription:
                await self.on_change_notification(event)
        except SubscriptionError as e:
            logger.warning(
                "Push channel for user %s dropped, relying on polling: %s",
                self.session.user_id, e,
            )

    def _report_listener_failure(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Push listener for user %s stopped on %s: %s",
                self.session.user_id, type(exc).__name__, exc,
            )


class BookmarkCountController:
    """Keeps the number of bookmarks owned by the session user, poll-only."""

    def __init__(
        self,
        session: SessionContext,
        store: BookmarkStore,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        initial_count: int = 0,
    ) -> None:
        self.session = session
        self._store = store
        self._count = initial_count
        self._listeners: list[CountListener] = []
        self._reconciler: Reconciler[int] = Reconciler(
            fetch=self._fetch,
            apply=self._apply,
            interval=interval,
            name=f"bookmark-count[user={session.user_id}]",
        )

    @property
    def count(self) -> int:
        return self._count

    @property
    def label(self) -> str:
        """e.g. '1 bookmark saved', '3 bookmarks saved'."""
        return count_label(self._count)

    def add_listener(self, listener: CountListener) -> None:
        self._listeners.append(listener)

    async def initialize(self) -> None:
        """Start polling and wait for the first count."""
        self._reconciler.start()
        await self._reconciler.refresh()

    async def refresh(self) -> None:
        await self._reconciler.refresh()

    async def teardown(self) -> None:
        self._reconciler.stop()

    async def _fetch(self) -> int:
        return await self._store.count_bookmarks(self.session.user_id)

    def _apply(self, count: int) -> None:
        self._count = count
        for listener in self._listeners:
            listener(count)

"""Client-side synchronization of a user's bookmarks."""
from sync.controller import BookmarkCountController, BookmarkListController, SessionContext
from sync.reconciler import DEFAULT_INTERVAL_SECONDS, Reconciler
from sync.store import ApiBookmarkStore, BookmarkStore, DatabaseBookmarkStore

__all__ = [
    "DEFAULT_INTERVAL_SECONDS",
    "ApiBookmarkStore",
    "BookmarkCountController",
    "BookmarkListController",
    "BookmarkStore",
    "DatabaseBookmarkStore",
    "Reconciler",
    "SessionContext",
]

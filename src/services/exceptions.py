"""Shared exceptions for service layer and sync operations."""


class AuthError(Exception):
    """
    Raised when the identity provider rejects or cannot identify the caller.

    Covers both "not signed in" and provider-side failures (misconfiguration,
    unreachable JWKS endpoint, rejected credentials).
    """

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)


class QueryError(Exception):
    """Raised when a storage read or write fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class BookmarkNotFoundError(QueryError):
    """Raised when a bookmark doesn't exist or isn't owned by the requesting user."""

    def __init__(self, bookmark_id: int) -> None:
        self.bookmark_id = bookmark_id
        super().__init__(f"Bookmark not found: {bookmark_id}")


class SubscriptionError(Exception):
    """Raised when the change-notification channel cannot be opened or drops."""

    def __init__(self, message: str) -> None:
        super().__init__(message)

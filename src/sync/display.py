"""Plain-text rendering of bookmark state."""
from collections.abc import Sequence
from datetime import datetime
from urllib.parse import urlparse

from schemas.bookmark import BookmarkResponse

EMPTY_LIST_TEXT = (
    "No bookmarks yet\n"
    "Add your first bookmark to get started. Bookmarks sync automatically."
)


def display_domain(url: str) -> str:
    """
    Hostname to show for a bookmark, without a leading 'www.'.

    Falls back to the raw string when it doesn't parse as an absolute URL.
    """
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return url
    if not hostname:
        return url
    return hostname.removeprefix("www.")


def format_created_at(created_at: datetime) -> str:
    """Short US-style date, e.g. 'Jan 5, 2025'."""
    return f"{created_at:%b} {created_at.day}, {created_at.year}"


def count_label(count: int) -> str:
    """Human-readable bookmark count."""
    return f"{count} bookmark{'' if count == 1 else 's'} saved"


def render_bookmark(bookmark: BookmarkResponse) -> str:
    """Two-line card: title, then domain and date."""
    return (
        f"[{bookmark.id}] {bookmark.title}\n"
        f"    {display_domain(bookmark.url)} · {format_created_at(bookmark.created_at)}"
    )


def render_bookmarks(bookmarks: Sequence[BookmarkResponse]) -> str:
    """The whole list, or the empty-state text when there is nothing to show."""
    if not bookmarks:
        return EMPTY_LIST_TEXT
    lines = [f"All Bookmarks ({len(bookmarks)})"]
    lines.extend(render_bookmark(b) for b in bookmarks)
    return "\n".join(lines)

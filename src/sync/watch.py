"""
Terminal view of your bookmarks that stays current.

Usage:
    python -m sync.watch                 # show the list, redraw on every change
    python -m sync.watch add TITLE URL
    python -m sync.watch delete ID [--yes]

Reads API_URL (default http://localhost:8000) and BOOKMARKS_TOKEN, an Auth0
access token. If REDIS_URL is set, changes also arrive over the push channel;
otherwise the view relies on polling every SYNC_POLL_INTERVAL_SECONDS.
"""
import argparse
import asyncio
import logging
import os
import sys

import httpx
from pydantic import ValidationError

from core.config import get_settings
from core.redis import RedisClient
from services.change_feed import ChangeFeed
from services.exceptions import AuthError, QueryError
from sync.controller import BookmarkCountController, BookmarkListController, SessionContext
from sync.display import render_bookmarks
from sync.store import ApiBookmarkStore

logger = logging.getLogger(__name__)


def get_api_base_url() -> str:
    """Get the API base URL from settings."""
    return get_settings().api_url


def get_default_timeout() -> float:
    """Get the default request timeout."""
    return float(os.getenv("BOOKMARKS_API_TIMEOUT", "30.0"))


def get_poll_interval() -> float:
    """Get the polling interval from settings."""
    return get_settings().sync_poll_interval_seconds


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookmarks-watch",
        description="Terminal view of your bookmarks that stays current.",
    )
    parser.add_argument("--api-url", default=get_api_base_url())
    parser.add_argument("--token", default=os.getenv("BOOKMARKS_TOKEN"))
    parser.add_argument("--redis-url", default=os.getenv("REDIS_URL"))
    parser.add_argument("--interval", type=float, default=get_poll_interval())
    subcommands = parser.add_subparsers(dest="command")
    add = subcommands.add_parser("add", help="save a bookmark")
    add.add_argument("title")
    add.add_argument("url")
    delete = subcommands.add_parser("delete", help="delete a bookmark by id")
    delete.add_argument("bookmark_id", type=int)
    delete.add_argument(
        "-y", "--yes", action="store_true", help="delete without asking for confirmation",
    )
    return parser


def confirm_delete(bookmark_id: int) -> bool:
    try:
        answer = input(f"Are you sure you want to delete bookmark {bookmark_id}? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def attach_display(
    header: str,
    list_controller: BookmarkListController,
    count_controller: BookmarkCountController,
):
    """Redraw the screen whenever either controller applies a new value."""
    def redraw() -> None:
        print("\033[2J\033[H", end="")
        print(header)
        print(count_controller.label)
        print()
        print(render_bookmarks(list_controller.current_list), flush=True)

    list_controller.add_listener(lambda _bookmarks: redraw())
    count_controller.add_listener(lambda _count: redraw())
    return redraw


async def watch(store: ApiBookmarkStore, session: SessionContext, interval: float) -> None:
    """Render the list and count on every applied refresh until cancelled."""
    list_controller = BookmarkListController(session, store, interval=interval)
    count_controller = BookmarkCountController(session, store, interval=interval)
    attach_display(
        f"My Bookmarks - {session.display_name}", list_controller, count_controller,
    )
    try:
        await count_controller.initialize()
        await list_controller.initialize()
        if not list_controller.subscribed:
            logger.info("Live updates unavailable, refreshing every %.1fs", interval)
        await asyncio.Event().wait()
    finally:
        await list_controller.teardown()
        await count_controller.teardown()


async def run(args: argparse.Namespace) -> int:
    """Execute one CLI command. Returns the process exit code."""
    if args.command == "delete" and not args.yes and not confirm_delete(args.bookmark_id):
        print("Cancelled")
        return 0

    redis_client = None
    change_feed = None
    if args.redis_url:
        redis_client = RedisClient(args.redis_url)
        await redis_client.connect()
        change_feed = ChangeFeed(redis_client)

    try:
        async with httpx.AsyncClient(
            base_url=args.api_url, timeout=get_default_timeout(),
        ) as client:
            store = ApiBookmarkStore(client, token=args.token, change_feed=change_feed)
            user = await store.get_current_user()
            session = SessionContext(
                user_id=user.id,
                display_name=user.display_name,
                avatar_url=user.avatar_url,
            )

            if args.command == "add":
                controller = BookmarkListController(session, store)
                created = await controller.add_bookmark(args.title, args.url)
                print(f"Saved [{created.id}] {created.title}")
            elif args.command == "delete":
                controller = BookmarkListController(session, store)
                await controller.delete_bookmark(args.bookmark_id)
                print(f"Deleted bookmark {args.bookmark_id}")
            else:
                await watch(store, session, args.interval)
    except AuthError:
        print(
            f"Not signed in. Sign in at {args.api_url}/auth/login and set BOOKMARKS_TOKEN.",
            file=sys.stderr,
        )
        return 1
    except ValidationError as e:
        print(f"Failed to save bookmark: {e.errors()[0]['msg']}", file=sys.stderr)
        return 1
    except QueryError as e:
        print(f"Failed: {e}. Please try again.", file=sys.stderr)
        return 1
    finally:
        if redis_client is not None:
            await redis_client.close()
    return 0


def main() -> None:
    """Entry point for the bookmarks-watch command."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = build_parser().parse_args()
    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()

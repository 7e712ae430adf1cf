"""
Table-scoped change notifications over Redis pub/sub.

Writers publish a ChangeEvent after committing; readers hold a
ChangeSubscription and treat every event as "re-read the table". Delivery is
best-effort: with Redis disabled or down, publishing is a logged no-op and
subscribing raises SubscriptionError so callers can fall back to polling.
"""
import logging
from typing import Self

from pydantic import ValidationError
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from core.redis import RedisClient
from schemas.change_event import ChangeEvent
from services.exceptions import SubscriptionError

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "changes:"

# How long a single read waits before re-checking whether the subscription was closed
POLL_TIMEOUT_SECONDS = 1.0


def channel_for(table: str) -> str:
    """Redis channel carrying change events for a table."""
    return f"{CHANNEL_PREFIX}{table}"


class ChangeSubscription:
    """Async iterator of ChangeEvents for one table. close() is idempotent."""

    def __init__(self, pubsub: PubSub, table: str) -> None:
        self._pubsub = pubsub
        self.table = table
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once close() has been called."""
        return self._closed

    def __aiter__(self) -> Self:
        return self

    async def __anext__(self) -> ChangeEvent:
        while not self._closed:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=POLL_TIMEOUT_SECONDS,
                )
            except RedisError as e:
                raise SubscriptionError(f"Change feed for '{self.table}' dropped: {e}") from e
            if message is None:
                continue
            try:
                return ChangeEvent.model_validate_json(message["data"])
            except ValidationError:
                logger.warning("Ignoring malformed change event on %s", channel_for(self.table))
        raise StopAsyncIteration

    async def close(self) -> None:
        """Unsubscribe and release the connection."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._pubsub.unsubscribe(channel_for(self.table))
            await self._pubsub.aclose()
        except RedisError as e:
            logger.warning("Failed to close change subscription cleanly: %s", e)


class ChangeFeed:
    """Publishes and subscribes to change events for watched tables."""

    def __init__(self, redis_client: RedisClient | None) -> None:
        self._redis = redis_client

    @property
    def available(self) -> bool:
        """Whether events can currently be delivered."""
        return self._redis is not None and self._redis.is_connected

    async def publish(self, event: ChangeEvent) -> bool:
        """
        Announce a committed change.

        Returns:
            True if the event reached Redis, False if it was dropped.
        """
        if self._redis is None:
            logger.debug("No change feed configured, dropping %s event", event.type)
            return False
        receivers = await self._redis.publish(
            channel_for(event.table), event.model_dump_json(),
        )
        return receivers is not None

    async def subscribe(self, table: str = "bookmarks") -> ChangeSubscription:
        """
        Open a subscription to change events for a table.

        Raises:
            SubscriptionError: If Redis is unavailable or refuses the subscription.
        """
        pubsub = self._redis.pubsub() if self._redis is not None else None
        if pubsub is None:
            raise SubscriptionError("Change feed unavailable: Redis is not connected")
        try:
            await pubsub.subscribe(channel_for(table))
        except RedisError as e:
            try:
                await pubsub.aclose()
            except RedisError as close_error:
                logger.warning("Failed to release pubsub: %s", close_error)
            raise SubscriptionError(f"Could not subscribe to '{table}' changes: {e}") from e
        logger.debug("Subscribed to %s", channel_for(table))
        return ChangeSubscription(pubsub, table)


# Global change feed state, mirrors the Redis client container
class _ChangeFeedState:
    """Container for global change feed state."""

    feed: ChangeFeed | None = None


_state = _ChangeFeedState()


def get_change_feed() -> ChangeFeed:
    """Get the global change feed, or a disconnected one before startup."""
    return _state.feed if _state.feed is not None else ChangeFeed(None)


def set_change_feed(feed: ChangeFeed | None) -> None:
    """Set the global change feed instance."""
    _state.feed = feed

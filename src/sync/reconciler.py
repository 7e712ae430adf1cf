"""
Poll-driven reconciliation of a locally held value against the backend.

A Reconciler owns nothing but the refresh policy: it calls ``fetch`` to read
the latest truth and ``apply`` to publish it. Refreshes are single-flight: a
trigger that arrives while one is running marks a follow-up instead of
starting a parallel request, so results are applied in request order and the
state after the last trigger always reflects a read issued after it.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from services.exceptions import QueryError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INTERVAL_SECONDS = 2.0


class Reconciler(Generic[T]):
    """Runs fetch-then-apply on demand and on a fixed interval until stopped."""

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        apply: Callable[[T], None],
        interval: float = DEFAULT_INTERVAL_SECONDS,
        name: str = "reconciler",
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._fetch = fetch
        self._apply = apply
        self.interval = interval
        self.name = name
        self._in_flight: asyncio.Task[None] | None = None
        self._rerun = False
        self._poll_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once stop() has been called."""
        return self._closed

    @property
    def in_flight(self) -> bool:
        """True while a refresh is running."""
        return self._in_flight is not None

    @property
    def polling(self) -> bool:
        """True while the periodic refresh is scheduled."""
        return self._poll_task is not None

    def trigger(self) -> asyncio.Task[None] | None:
        """
        Request a refresh without waiting for it.

        Returns:
            The task that will satisfy this request, or None once stopped.
        """
        if self._closed:
            return None
        if self._in_flight is None:
            self._in_flight = asyncio.create_task(self._run(), name=f"{self.name}-refresh")
            self._in_flight.add_done_callback(self._report_failure)
        else:
            self._rerun = True
        return self._in_flight

    async def refresh(self) -> None:
        """
        Refresh and wait until the result (or a newer one) has been applied.

        Read failures are logged and leave the current value untouched; the
        next trigger or tick retries. Cancelling the caller does not cancel the
        shared in-flight refresh.
        """
        task = self.trigger()
        if task is not None:
            await asyncio.shield(task)

    def start(self, interval: float | None = None) -> None:
        """Schedule a refresh every ``interval`` seconds. No-op if already running."""
        if self._closed or self._poll_task is not None:
            return
        if interval is not None:
            if interval <= 0:
                raise ValueError("interval must be positive")
            self.interval = interval
        self._poll_task = asyncio.create_task(self._poll(), name=f"{self.name}-poll")
        logger.debug("%s polling every %.2fs", self.name, self.interval)

    def stop(self) -> None:
        """
        Stop scheduling refreshes. Idempotent.

        A refresh already in flight is allowed to finish but its result is
        discarded.
        """
        if self._closed:
            return
        self._closed = True
        self._rerun = False
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        logger.debug("%s stopped", self.name)

    async def _poll(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.interval)
            self.trigger()

    async def _run(self) -> None:
        try:
            while True:
                self._rerun = False
                await self._fetch_and_apply()
                if not self._rerun or self._closed:
                    break
        finally:
            self._in_flight = None

    async def _fetch_and_apply(self) -> None:
        try:
            value = await self._fetch()
        except QueryError as e:
            logger.warning("%s refresh failed, keeping previous state: %s", self.name, e)
            return
        if self._closed:
            logger.debug("%s discarded a result that arrived after stop", self.name)
            return
        self._apply(value)

    def _report_failure(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s refresh raised %s: %s", self.name, type(exc).__name__, exc)

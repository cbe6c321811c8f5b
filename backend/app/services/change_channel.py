"""
In-process change-notification channel.

Delivers row-level insert/update/delete events for one named resource to
every current subscriber. Delivery is best effort and at most once:
publishing never blocks, there is no replay, and a subscriber that falls too
far behind is dropped. A dropped subscriber learns about it through
ChannelDisconnected and is expected to resynchronise from a full query.
"""
import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional, Set

from app.config import settings

logger = logging.getLogger(__name__)


class ChangeOperation(str, enum.Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    """A single row change. DELETE events may carry only row_before."""
    operation: ChangeOperation
    row_after: Optional[Any] = None
    row_before: Optional[Any] = None

    @property
    def row(self) -> Any:
        """The most recent known state of the row."""
        return self.row_after if self.row_after is not None else self.row_before


class ChannelDisconnected(Exception):
    """Raised by Subscription.get() once the subscription has been dropped."""
    pass


class Subscription:
    """One subscriber's view of a ChangeChannel."""

    def __init__(self, channel: "ChangeChannel", max_pending: int):
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._lost = asyncio.Event()
        self.closed = False

    @property
    def resource(self) -> str:
        return self._channel.resource

    def _deliver(self, event: ChangeEvent) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._drop()
            return False
        return True

    def _drop(self) -> None:
        self.closed = True
        self._lost.set()

    async def get(self) -> ChangeEvent:
        """
        Wait for the next event.

        Events already queued when the subscription is dropped are discarded:
        after a drop the subscriber must resync anyway.

        Raises:
            ChannelDisconnected: If the subscription was dropped or closed
        """
        if self._lost.is_set():
            raise ChannelDisconnected(f"Subscription to '{self.resource}' was dropped")

        get_task = asyncio.ensure_future(self._queue.get())
        lost_task = asyncio.ensure_future(self._lost.wait())
        try:
            await asyncio.wait({get_task, lost_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (get_task, lost_task):
                if not task.done():
                    task.cancel()

        if self._lost.is_set():
            raise ChannelDisconnected(f"Subscription to '{self.resource}' was dropped")
        return get_task.result()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        """Release the subscription. Safe to call more than once."""
        if not self._lost.is_set():
            self._drop()
        self._channel._remove(self)


class ChangeChannel:
    """Fan-out of change events for a named resource."""

    def __init__(self, resource: str, max_pending: Optional[int] = None):
        self.resource = resource
        self.max_pending = max_pending or settings.change_channel_max_pending
        self._subscribers: Set[Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self.max_pending)
        self._subscribers.add(subscription)
        logger.debug(f"New subscriber on '{self.resource}' ({len(self._subscribers)} total)")
        return subscription

    def publish(self, event: ChangeEvent) -> int:
        """
        Deliver an event to every subscriber without blocking.

        Returns:
            Number of subscribers the event was delivered to
        """
        delivered = 0
        for subscription in list(self._subscribers):
            if subscription._deliver(event):
                delivered += 1
            else:
                logger.warning(
                    f"Dropping lagging subscriber on '{self.resource}' "
                    f"({subscription.pending()} undelivered events)"
                )
                self._subscribers.discard(subscription)
        return delivered

    def close(self) -> None:
        """Disconnect every subscriber (e.g. on shutdown or upstream loss)."""
        for subscription in list(self._subscribers):
            subscription._drop()
        self._subscribers.clear()
        logger.info(f"Closed change channel '{self.resource}'")

    def _remove(self, subscription: Subscription) -> None:
        self._subscribers.discard(subscription)


# Process-wide channel for listing changes
listing_channel = ChangeChannel("listings")


def get_listing_channel() -> ChangeChannel:
    """FastAPI dependency for the listings change channel."""
    return listing_channel

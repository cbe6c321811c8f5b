"""
Per-viewer live distribution feed.

State machine:

    CONNECTING -> SYNCED <-> UPDATING
                    |  ^
                    v  |
                 UNAVAILABLE        (resync failing, retrying with backoff)

    any state -> DISCONNECTED       (terminal; subscription released)

Each connected viewer owns one DistributionFeed. All mutation of its view
state happens on one task (the run loop, plus acknowledge() called from the
same event loop) and apply() never awaits, so events are handled strictly in
delivery order with no interleaving. The consumer receives FeedMessages
through `outbox`, which stays bounded even if the consumer stops reading.

The change channel is best effort with no replay. The only guarantee relied
on is that a full resync (on reconnect, or periodically) brings the view
back in line with the database.
"""
import asyncio
import enum
import logging
from collections import deque
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Set
from uuid import UUID

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, wait_exponential

from app.config import settings
from app.database_types import utcnow
from app.models.listing import ListingStatus
from app.schemas.feed import FeedFilters, FeedMessage, FeedNotification, FeedSnapshot, FeedStatus
from app.schemas.listing import ListingRow
from app.services.change_channel import (
    ChangeChannel,
    ChangeEvent,
    ChangeOperation,
    ChannelDisconnected,
    Subscription,
)
from app.services.listings import FeedUnavailableError
from app.services.tier_policy import is_visible, tier_rank

logger = logging.getLogger(__name__)


FeedQuery = Callable[[str], Awaitable[List[ListingRow]]]


class FeedState(str, enum.Enum):
    CONNECTING = "connecting"
    SYNCED = "synced"
    UPDATING = "updating"
    UNAVAILABLE = "unavailable"
    DISCONNECTED = "disconnected"


def sort_feed(rows) -> List[ListingRow]:
    """Newest first; equal timestamps put the higher tier first."""
    return sorted(rows, key=lambda r: (r.created_at, tier_rank(r.tier), str(r.id)), reverse=True)


class FeedOutbox:
    """
    Bounded message queue between a feed and its consumer.

    At most one snapshot is ever pending: a newer snapshot replaces the
    unsent one, since it already carries the full view. Notifications and
    statuses are capped at `max_pending`; past that the oldest one is
    dropped. A consumer that stops reading therefore holds at most
    `max_pending + 1` messages, however many changes arrive.
    """

    def __init__(self, max_pending: int):
        self.max_pending = max_pending
        self.dropped = 0
        self._messages: Deque[FeedMessage] = deque()
        self._ready = asyncio.Event()

    def put_nowait(self, message: FeedMessage) -> None:
        if isinstance(message, FeedSnapshot):
            for pending in self._messages:
                if isinstance(pending, FeedSnapshot):
                    self._messages.remove(pending)
                    break
        elif self._event_count() >= self.max_pending:
            self._drop_oldest_event()
        self._messages.append(message)
        self._ready.set()

    async def get(self) -> FeedMessage:
        while not self._messages:
            self._ready.clear()
            await self._ready.wait()
        return self._messages.popleft()

    def get_nowait(self) -> FeedMessage:
        if not self._messages:
            raise asyncio.QueueEmpty()
        return self._messages.popleft()

    def empty(self) -> bool:
        return not self._messages

    def qsize(self) -> int:
        return len(self._messages)

    def _event_count(self) -> int:
        return sum(1 for m in self._messages if not isinstance(m, FeedSnapshot))

    def _drop_oldest_event(self) -> None:
        for pending in self._messages:
            if not isinstance(pending, FeedSnapshot):
                self._messages.remove(pending)
                break
        self.dropped += 1
        if self.dropped == 1 or self.dropped % self.max_pending == 0:
            logger.warning(f"Feed consumer is lagging; {self.dropped} undelivered messages dropped")


class DistributionFeed:
    """Live, tier-gated view of active listings for one viewer."""

    def __init__(
        self,
        viewer_id: str,
        role: str,
        query: FeedQuery,
        channel: ChangeChannel,
        clock: Callable[[], datetime] = utcnow,
        resync_interval: Optional[float] = None,
        retry_wait=None,
        filters: Optional[FeedFilters] = None,
        outbox_max_pending: Optional[int] = None,
        max_clock_skew: Optional[float] = None,
    ):
        self.viewer_id = viewer_id
        self.role = role
        self.filters = filters or FeedFilters()
        self.notifications_enabled = True
        self._query = query
        self._channel = channel
        self._clock = clock
        self._resync_interval = (
            settings.feed_resync_interval_seconds if resync_interval is None else resync_interval
        )
        self._retry_wait = retry_wait or wait_exponential(
            multiplier=0.5, max=settings.feed_retry_max_seconds
        )
        self._max_clock_skew = timedelta(seconds=(
            settings.feed_max_clock_skew_seconds if max_clock_skew is None else max_clock_skew
        ))

        self.state = FeedState.CONNECTING
        self.last_seen_at: datetime = clock()
        self.resync_count = 0
        self.outbox = FeedOutbox(outbox_max_pending or settings.feed_outbox_max_pending)

        self._items: Dict[UUID, ListingRow] = {}
        self._ordered: List[ListingRow] = []
        self._notified: Set[UUID] = set()
        self._versions: Dict[UUID, datetime] = {}
        self._deleted: Set[UUID] = set()
        self._subscription: Optional[Subscription] = None
        self._task: Optional[asyncio.Task] = None
        self._outage_reported = False

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def visible_items(self) -> List[ListingRow]:
        return list(self._ordered)

    @property
    def unseen_count(self) -> int:
        """Derived on every read; there is no separately stored counter."""
        return sum(1 for row in self._ordered if row.created_at > self.last_seen_at)

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._subscription

    def snapshot(self) -> FeedSnapshot:
        return FeedSnapshot(
            state=self.state.value,
            items=self.visible_items,
            unseen_count=self.unseen_count,
            last_seen_at=self.last_seen_at,
            notifications_enabled=self.notifications_enabled,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """CONNECTING -> SYNCED: subscribe, run the one-shot query, reset the mark."""
        logger.info(f"Feed connecting for viewer {self.viewer_id} (role={self.role})")
        rows = await self._load()
        if self.state is FeedState.DISCONNECTED:
            return
        self._replace_items(rows)
        self.last_seen_at = self._clock()
        self.state = FeedState.SYNCED
        self._emit(self.snapshot())
        logger.info(f"Feed synced for viewer {self.viewer_id}: {len(self._ordered)} visible listings")

    async def resync(self) -> None:
        """
        Full resynchronisation after a lost subscription or on the periodic timer.

        Missed events are never replayed; the view is rebuilt from the query.
        Listings that appear this way are not announced, and the high-water
        mark is kept, so anything created since the last acknowledge still
        counts as unseen.
        """
        self.resync_count += 1
        logger.info(f"Feed resync #{self.resync_count} for viewer {self.viewer_id}")
        rows = await self._load()
        if self.state is FeedState.DISCONNECTED:
            return
        self._replace_items(rows)
        self.state = FeedState.SYNCED
        self._emit(self.snapshot())

    def apply(self, change: ChangeEvent) -> bool:
        """
        Apply one change event. Returns True if the visible set changed.

        INSERT/UPDATE: the row is kept if it is active and its tier is visible
        to this role, removed otherwise. DELETE: removed unconditionally.
        Events older than a version already seen for the same listing are
        ignored; they can arrive after a resync that already reflects them.
        """
        if self.state is FeedState.DISCONNECTED:
            return False

        operation = ChangeOperation(change.operation)
        row = change.row
        if row is None:
            logger.warning(f"Ignoring {operation.value} event without row data")
            return False

        previous_state = self.state
        self.state = FeedState.UPDATING
        try:
            if operation is ChangeOperation.DELETE:
                self._deleted.add(row.id)
                changed = self._remove(row.id)
            elif change.row_after is None:
                logger.warning(f"Ignoring {operation.value} event for {row.id} without row_after")
                changed = False
            elif self._is_stale(change.row_after):
                logger.debug(f"Ignoring stale {operation.value} event for listing {row.id}")
                changed = False
            else:
                self._versions[row.id] = change.row_after.updated_at
                if self._is_member(change.row_after):
                    changed = self._upsert(change.row_after)
                else:
                    changed = self._remove(row.id)
        finally:
            self.state = previous_state if previous_state is not FeedState.UPDATING else FeedState.SYNCED

        if changed:
            self._emit(self.snapshot())
        return changed

    def acknowledge(self) -> None:
        """
        Mark everything currently visible as seen.

        The mark is now(), moved forward to the newest visible listing when
        that listing's created_at is slightly ahead of this server's clock, so
        the unseen count is zero right after acknowledging. The allowance is
        capped at `max_clock_skew`: a listing dated further in the future
        stays unseen instead of pinning the mark ahead, which would hide every
        real insert until the clock caught up.
        """
        now = self._clock()
        newest = self._ordered[0].created_at if self._ordered else now
        newest = min(newest, now + self._max_clock_skew)
        self.last_seen_at = max(now, newest, self.last_seen_at)
        logger.debug(f"Viewer {self.viewer_id} acknowledged feed at {self.last_seen_at.isoformat()}")
        self._emit(self.snapshot())

    def set_notifications(self, enabled: bool) -> None:
        """
        Turn new-listing notifications on or off.

        Listings that arrive while muted still update the view and the unseen
        count; they are not announced later when notifications come back on.
        """
        if self.notifications_enabled == enabled:
            return
        self.notifications_enabled = enabled
        logger.debug(f"Viewer {self.viewer_id} {'enabled' if enabled else 'muted'} feed notifications")
        self._emit(self.snapshot())

    def disconnect(self) -> None:
        """Release the subscription immediately and stop the run loop."""
        if self.state is FeedState.DISCONNECTED:
            return
        self.state = FeedState.DISCONNECTED
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.info(f"Feed disconnected for viewer {self.viewer_id}")

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Run the feed on its own task."""
        self._task = asyncio.create_task(self.run(), name=f"feed-{self.viewer_id}")
        return self._task

    async def run(self) -> None:
        if self.state is FeedState.CONNECTING:
            await self.connect()

        while self.state is not FeedState.DISCONNECTED:
            try:
                if self._resync_interval:
                    change = await asyncio.wait_for(self._subscription.get(), self._resync_interval)
                else:
                    change = await self._subscription.get()
            except asyncio.TimeoutError:
                await self.resync()
                continue
            except ChannelDisconnected:
                if self.state is FeedState.DISCONNECTED:
                    break
                logger.warning(f"Change channel lost for viewer {self.viewer_id}, resyncing")
                await self.resync()
                continue

            self.apply(change)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load(self) -> List[ListingRow]:
        """
        Subscribe, then query, retrying the query until it succeeds.

        Subscribing first means changes committed while the query runs are
        queued and applied afterwards instead of falling into a gap.
        """
        if self._subscription is not None:
            self._subscription.close()
        self._subscription = self._channel.subscribe()

        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(FeedUnavailableError),
            wait=self._retry_wait,
            before_sleep=self._on_query_failed,
            reraise=True,
        ):
            with attempt:
                rows = await self._query(self.role)

        if self._outage_reported:
            logger.info(f"Feed recovered for viewer {self.viewer_id}")
            self._outage_reported = False
        return rows

    def _on_query_failed(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception()
        logger.warning(
            f"Feed query failed for viewer {self.viewer_id} "
            f"(attempt {retry_state.attempt_number}): {exc}"
        )
        if self.state is FeedState.DISCONNECTED:
            return
        self.state = FeedState.UNAVAILABLE
        if not self._outage_reported:
            self._outage_reported = True
            self._emit(FeedStatus(state=FeedState.UNAVAILABLE.value, detail="feed unavailable, retrying"))

    def _is_member(self, row: ListingRow) -> bool:
        return (
            row.status == ListingStatus.ACTIVE.value
            and is_visible(self.role, row.tier)
            and self.filters.matches(row)
        )

    def _is_stale(self, row: ListingRow) -> bool:
        if row.id in self._deleted:
            return True
        known = self._versions.get(row.id)
        return known is not None and row.updated_at < known

    def _replace_items(self, rows: List[ListingRow]) -> None:
        self._items = {row.id: row for row in rows if self._is_member(row)}
        for row in rows:
            self._versions[row.id] = row.updated_at
        # Anything visible after a (re)sync is already known to the viewer.
        self._notified.update(self._items)
        self._resort()

    def _upsert(self, row: ListingRow) -> bool:
        is_new = row.id not in self._items
        if not is_new and self._items[row.id] == row:
            return False
        self._items[row.id] = row
        self._resort()
        if is_new and row.id not in self._notified:
            self._notified.add(row.id)
            if self.notifications_enabled:
                self._emit(FeedNotification(listing_id=str(row.id), listing=row))
        return True

    def _remove(self, listing_id: UUID) -> bool:
        if self._items.pop(listing_id, None) is None:
            return False
        self._resort()
        return True

    def _resort(self) -> None:
        self._ordered = sort_feed(self._items.values())

    def _emit(self, message: FeedMessage) -> None:
        self.outbox.put_nowait(message)

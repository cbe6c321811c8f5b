"""
Feed API endpoints.

GET /api/feed      one-shot tier-gated snapshot
WS  /api/feed/ws   live DistributionFeed for the connection
"""
import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app import database
from app.database import get_db
from app.models.listing import ListingTier
from app.models.user import User
from app.api.auth import get_current_user, get_websocket_user
from app.schemas.feed import FeedFilters, FeedResponse, FeedStatus
from app.services.change_channel import ChangeChannel, get_listing_channel
from app.services.feed import DistributionFeed
from app.services.listings import list_visible_listings, make_feed_query

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=FeedResponse)
async def get_feed(
    tier: Optional[ListingTier] = None,
    experience_level: Optional[str] = None,
    search: Optional[str] = Query(None, min_length=1, max_length=200),
    skills: Optional[List[str]] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Active listings visible to the current user, newest first.

    `skills` may be repeated; a listing matches when it shares at least one.
    """
    items = await list_visible_listings(
        db,
        current_user.role,
        tier=tier.value if tier else None,
        experience_level=experience_level,
        search=search,
        skills=skills,
        limit=limit,
    )
    return FeedResponse(items=items, count=len(items))


def parse_feed_filters(websocket: WebSocket) -> FeedFilters:
    """Read feed filters from the socket's query string (?tier=&skills=a,b)."""
    params = websocket.query_params
    skills = []
    for value in params.getlist("skills"):
        skills.extend(value.split(","))
    tier = params.get("tier")
    if tier is not None and tier not in {t.value for t in ListingTier}:
        raise ValueError(f"Unknown tier filter: {tier}")
    return FeedFilters(
        tier=tier,
        experience_level=params.get("experience_level") or None,
        search=params.get("search") or None,
        skills=skills,
    )


async def serve_feed(websocket: WebSocket, feed: DistributionFeed, viewer: str) -> None:
    """
    Pump one accepted socket until either side stops.

    Server -> client: snapshot / new_listing / status messages.
    Client -> server:
        {"type": "ack"}     marks everything visible as seen
        {"type": "mute"}    stops new_listing notifications
        {"type": "unmute"}  resumes them

    If the feed dies, the client gets a final "unavailable" status and the
    socket is closed with 1011.
    """
    async def send_messages():
        while True:
            message = await feed.outbox.get()
            await websocket.send_json(message.model_dump(mode="json"))

    async def receive_messages():
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                logger.debug(f"Ignoring non-JSON frame from viewer {viewer}")
                continue

            message_type = data.get("type") if isinstance(data, dict) else None
            if message_type == "ack":
                feed.acknowledge()
            elif message_type == "mute":
                feed.set_notifications(False)
            elif message_type == "unmute":
                feed.set_notifications(True)
            else:
                logger.debug(f"Ignoring unknown feed message from viewer {viewer}: {data!r}")

    feed_task = feed.start()
    sender_task = asyncio.create_task(send_messages())
    receiver_task = asyncio.create_task(receive_messages())

    try:
        done, _ = await asyncio.wait(
            {feed_task, receiver_task, sender_task},
            return_when=asyncio.FIRST_COMPLETED,
        )

        if receiver_task in done:
            error = receiver_task.exception()
            if isinstance(error, WebSocketDisconnect):
                logger.info(f"Feed socket closed by viewer {viewer}")
            elif error is not None:
                logger.error(f"Feed socket for viewer {viewer} failed: {error}")
        elif feed_task in done:
            error = None if feed_task.cancelled() else feed_task.exception()
            logger.error(f"Feed for viewer {viewer} stopped unexpectedly: {error!r}")
            sender_task.cancel()
            await asyncio.gather(sender_task, return_exceptions=True)
            try:
                await websocket.send_json(
                    FeedStatus(state="unavailable", detail="feed stopped").model_dump(mode="json")
                )
                await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.debug(f"Could not close feed socket for viewer {viewer}: {e}")
        else:
            error = sender_task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error(f"Sending to viewer {viewer} failed: {error}")
    finally:
        feed.disconnect()
        sender_task.cancel()
        receiver_task.cancel()
        await asyncio.gather(feed_task, sender_task, receiver_task, return_exceptions=True)


@router.websocket("/ws")
async def feed_socket(
    websocket: WebSocket,
    channel: ChangeChannel = Depends(get_listing_channel),
):
    """
    Live feed over a WebSocket.

    Optional query parameters narrow the feed like GET /api/feed:
    tier, experience_level, search, skills (comma-separated or repeated).
    The viewer's role and filters are fixed for the life of the connection.
    """
    async with database.AsyncSessionLocal() as db:
        user = await get_websocket_user(websocket, db)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        filters = parse_feed_filters(websocket)
    except (ValueError, ValidationError) as e:
        logger.info(f"Rejecting feed socket for viewer {user.id}: {e}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    feed = DistributionFeed(
        viewer_id=str(user.id),
        role=user.role,
        query=make_feed_query(lambda: database.AsyncSessionLocal(), filters),
        channel=channel,
        filters=filters,
    )
    await serve_feed(websocket, feed, str(user.id))

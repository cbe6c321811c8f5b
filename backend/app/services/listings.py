"""
Listing persistence and change publication.
ALL listing mutations go through this module so every committed change
reaches the change channel.
"""
import logging
from enum import Enum
from typing import Callable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, delete, and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.listing import Listing, ListingStatus
from app.models.match_suggestion import MatchSuggestion
from app.models.user import User
from app.schemas.feed import FeedFilters
from app.schemas.listing import ListingCreate, ListingUpdate, ListingRow
from app.services.change_channel import ChangeChannel, ChangeEvent, ChangeOperation
from app.services.tier_policy import is_visible, visible_tiers

logger = logging.getLogger(__name__)


class FeedUnavailableError(Exception):
    """Raised when the feed's one-shot query cannot be served."""
    pass


def to_row(listing: Listing) -> ListingRow:
    return ListingRow.model_validate(listing)


async def create_listing(
    db: AsyncSession,
    data: ListingCreate,
    owner: Optional[User],
    channel: ChangeChannel,
) -> Listing:
    """Create a listing and publish an insert event after commit."""
    listing = Listing(
        client_id=owner.id if owner else None,
        title=data.title,
        company=data.company,
        description=data.description,
        requirements=data.requirements,
        experience_level=data.experience_level,
        location=data.location,
        skills=list(data.skills),
        tier=data.tier.value,
        status=data.status.value,
    )
    db.add(listing)
    await db.commit()
    await db.refresh(listing)

    channel.publish(ChangeEvent(ChangeOperation.INSERT, row_after=to_row(listing)))
    logger.info(f"Created listing {listing.id} ({listing.tier}/{listing.status}): {listing.title}")
    return listing


async def update_listing(
    db: AsyncSession,
    listing: Listing,
    changes: ListingUpdate,
    channel: ChangeChannel,
) -> Listing:
    """Apply a partial update and publish an update event with both row states."""
    before = to_row(listing)

    for field, value in changes.model_dump(exclude_unset=True).items():
        if value is None and field in ("title", "skills", "tier", "status"):
            continue
        if isinstance(value, Enum):
            value = value.value
        setattr(listing, field, value)

    await db.commit()
    await db.refresh(listing)

    after = to_row(listing)
    channel.publish(ChangeEvent(ChangeOperation.UPDATE, row_after=after, row_before=before))

    log_data = {
        "listing_id": str(listing.id),
        "tier": f"{before.tier} -> {after.tier}",
        "status": f"{before.status} -> {after.status}",
    }
    logger.info(f"Updated listing {listing.id}", extra=log_data)
    return listing


async def delete_listing(db: AsyncSession, listing: Listing, channel: ChangeChannel) -> None:
    """Delete a listing and publish a delete event carrying its last state."""
    before = to_row(listing)
    await db.execute(delete(MatchSuggestion).where(MatchSuggestion.listing_id == listing.id))
    await db.delete(listing)
    await db.commit()

    channel.publish(ChangeEvent(ChangeOperation.DELETE, row_before=before))
    logger.info(f"Deleted listing {before.id}")


async def get_listing(db: AsyncSession, listing_id: UUID) -> Optional[Listing]:
    result = await db.execute(select(Listing).where(Listing.id == listing_id))
    return result.scalar_one_or_none()


def can_view_listing(user: User, listing: Listing) -> bool:
    """
    Direct-fetch access rule: owners always see their own listing, everyone
    else sees it only when it would be in their feed.
    """
    if listing.client_id is not None and listing.client_id == user.id:
        return True
    return listing.status == ListingStatus.ACTIVE.value and is_visible(user.role, listing.tier)


def can_manage_listing(user: User, listing: Listing) -> bool:
    return user.is_privileged() or (listing.client_id is not None and listing.client_id == user.id)


async def list_visible_listings(
    db: AsyncSession,
    role: str,
    tier: Optional[str] = None,
    experience_level: Optional[str] = None,
    search: Optional[str] = None,
    skills: Optional[Sequence[str]] = None,
    limit: Optional[int] = None,
) -> List[ListingRow]:
    """
    One-shot feed query: active listings whose tier the role may see,
    newest first. Optional filters only narrow the tier-gated set.

    `skills` keeps listings sharing at least one skill with the request.
    Skills live in a JSON column, so that filter runs on the loaded rows
    through FeedFilters, the same check a live feed applies to events.
    """
    tiers = visible_tiers(role)
    if not tiers:
        return []

    filters = [
        Listing.status == ListingStatus.ACTIVE.value,
        Listing.tier.in_(sorted(tiers)),
    ]
    if tier:
        filters.append(Listing.tier == tier)
    if experience_level:
        filters.append(Listing.experience_level == experience_level)
    if search:
        filters.append(or_(
            Listing.title.ilike(f"%{search}%"),
            Listing.description.ilike(f"%{search}%"),
        ))

    query = select(Listing).where(and_(*filters)).order_by(Listing.created_at.desc())
    if limit and not skills:
        query = query.limit(limit)

    result = await db.execute(query)
    rows = [to_row(listing) for listing in result.scalars().all()]

    if skills:
        skill_filter = FeedFilters(skills=list(skills))
        rows = [row for row in rows if skill_filter.matches(row)]
        if limit:
            rows = rows[:limit]
    return rows


def make_feed_query(
    session_factory: Callable[[], AsyncSession],
    filters: Optional[FeedFilters] = None,
):
    """
    Build the query function a DistributionFeed uses to (re)synchronise.

    Database failures surface as FeedUnavailableError so the feed can retry
    without knowing anything about SQLAlchemy.
    """
    filters = filters or FeedFilters()

    async def query(role: str) -> List[ListingRow]:
        try:
            async with session_factory() as db:
                return await list_visible_listings(
                    db,
                    role,
                    tier=filters.tier,
                    experience_level=filters.experience_level,
                    search=filters.search,
                    skills=filters.skills,
                )
        except SQLAlchemyError as e:
            raise FeedUnavailableError(f"Feed query failed: {e}") from e

    return query

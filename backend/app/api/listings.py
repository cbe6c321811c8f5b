"""
Listings API endpoints.
Handles listing CRUD; every mutation is published to the listings change channel.
"""
import logging
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.listing import Listing, ListingTier
from app.models.user import User, ViewerRole
from app.api.auth import get_current_user, require_roles
from app.schemas.listing import ListingCreate, ListingUpdate, ListingRow
from app.services.change_channel import ChangeChannel, get_listing_channel
from app.services import listings as listing_service

# Configure logger
logger = logging.getLogger(__name__)

router = APIRouter()


async def get_visible_listing(
    listing_id: UUID,
    current_user: User,
    db: AsyncSession,
) -> Listing:
    """
    Load a listing the user may see.

    A listing outside the user's tiers is reported exactly like a missing one
    so its existence is not revealed.
    """
    listing = await listing_service.get_listing(db, listing_id)
    if not listing or not listing_service.can_view_listing(current_user, listing):
        raise HTTPException(status_code=404, detail="Listing not found")
    return listing


async def get_managed_listing(
    listing_id: UUID,
    current_user: User,
    db: AsyncSession,
) -> Listing:
    """Load a listing the user may change (owner or privileged)."""
    listing = await listing_service.get_listing(db, listing_id)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")

    can_manage = listing_service.can_manage_listing(current_user, listing)
    if not can_manage and not listing_service.can_view_listing(current_user, listing):
        raise HTTPException(status_code=404, detail="Listing not found")
    if not can_manage:
        logger.warning(f"User {current_user.email} tried to modify listing {listing_id} they do not own")
        raise HTTPException(status_code=403, detail="Not authorized to modify this listing")
    return listing


# ============================================================
# ENDPOINTS
# ============================================================

@router.post("/", response_model=ListingRow, status_code=201)
async def create_listing(
    listing: ListingCreate,
    current_user: User = Depends(require_roles(ViewerRole.CLIENT, ViewerRole.PRIVILEGED)),
    db: AsyncSession = Depends(get_db),
    channel: ChangeChannel = Depends(get_listing_channel),
):
    """
    Create a new listing owned by the current user.

    The listing starts in the given status (draft by default) and only
    appears in feeds once it is active.
    """
    new_listing = await listing_service.create_listing(db, listing, current_user, channel)
    return new_listing


@router.get("/", response_model=List[ListingRow])
async def list_listings(
    tier: Optional[ListingTier] = None,
    experience_level: Optional[str] = None,
    search: Optional[str] = Query(None, min_length=1, max_length=200),
    skills: Optional[List[str]] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    List active listings visible to the current user, newest first.

    Filters only narrow the tier-gated set: asking for a tier the user
    cannot see returns an empty list.
    """
    return await listing_service.list_visible_listings(
        db,
        current_user.role,
        tier=tier.value if tier else None,
        experience_level=experience_level,
        search=search,
        skills=skills,
        limit=limit,
    )


@router.get("/{listing_id}", response_model=ListingRow)
async def get_listing(
    listing_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get one listing by id."""
    return await get_visible_listing(listing_id, current_user, db)


@router.patch("/{listing_id}", response_model=ListingRow)
async def update_listing(
    listing_id: UUID,
    changes: ListingUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    channel: ChangeChannel = Depends(get_listing_channel),
):
    """
    Update a listing.

    Changing tier or status moves the listing in or out of connected feeds.
    """
    listing = await get_managed_listing(listing_id, current_user, db)
    return await listing_service.update_listing(db, listing, changes, channel)


@router.delete("/{listing_id}", status_code=204)
async def delete_listing(
    listing_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    channel: ChangeChannel = Depends(get_listing_channel),
):
    """Delete a listing and its suggestions."""
    listing = await get_managed_listing(listing_id, current_user, db)
    await listing_service.delete_listing(db, listing, channel)

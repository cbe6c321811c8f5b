"""
Suggestion store.
Persists match suggestions per listing as one replaceable unit.
"""
import asyncio
import logging
from typing import List, Optional, Sequence
from uuid import UUID
from weakref import WeakValueDictionary

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.listing import Listing
from app.models.match_suggestion import MatchSuggestion
from app.schemas.suggestion import SuggestionCreate

logger = logging.getLogger(__name__)

# Writers in this process queue here before taking the row lock. SQLite
# ignores FOR UPDATE, and sessions sharing one connection would otherwise
# interleave inside a single transaction.
_listing_locks: "WeakValueDictionary[UUID, asyncio.Lock]" = WeakValueDictionary()


def _listing_lock(listing_id: UUID) -> asyncio.Lock:
    lock = _listing_locks.get(listing_id)
    if lock is None:
        lock = asyncio.Lock()
        _listing_locks[listing_id] = lock
    return lock


async def upsert_batch(
    db: AsyncSession,
    listing_id: UUID,
    suggestions: Sequence[SuggestionCreate],
) -> List[MatchSuggestion]:
    """
    Atomically replace every suggestion for a listing with `suggestions`.

    Candidates missing from the new batch lose their old suggestion. The
    listing row is locked first (SELECT ... FOR UPDATE, plus an in-process
    lock per listing) so two concurrent batches for the same listing run one
    after the other and the later one wins whole; they never merge.

    Args:
        db: Database session
        listing_id: Listing whose suggestion set is replaced
        suggestions: New batch (may be empty, which clears the set)

    Returns:
        The stored suggestions, highest overall score first

    Raises:
        ValueError: If the listing does not exist or a candidate appears twice
    """
    candidate_ids = [s.candidate_id for s in suggestions]
    if len(candidate_ids) != len(set(candidate_ids)):
        raise ValueError(f"Duplicate candidate in suggestion batch for listing {listing_id}")

    lock = _listing_lock(listing_id)
    async with lock:
        rows = await _replace_batch(db, listing_id, suggestions)

    logger.info(f"Stored {len(rows)} suggestions for listing {listing_id} (previous set replaced)")

    return sorted(rows, key=lambda r: r.overall_score, reverse=True)


async def _replace_batch(
    db: AsyncSession,
    listing_id: UUID,
    suggestions: Sequence[SuggestionCreate],
) -> List[MatchSuggestion]:
    try:
        result = await db.execute(
            select(Listing.id)
            .where(Listing.id == listing_id)
            .with_for_update()
        )
        if result.scalar_one_or_none() is None:
            raise ValueError(f"Listing {listing_id} not found")

        await db.execute(
            delete(MatchSuggestion).where(MatchSuggestion.listing_id == listing_id)
        )

        rows = [
            MatchSuggestion(
                listing_id=listing_id,
                candidate_id=s.candidate_id,
                overall_score=s.overall_score,
                skills_score=s.skills_score,
                experience_score=s.experience_score,
                education_score=s.education_score,
                reasoning=s.reasoning,
                key_strengths=list(s.key_strengths),
                potential_concerns=list(s.potential_concerns),
            )
            for s in suggestions
        ]
        db.add_all(rows)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return rows


async def list_suggestions(
    db: AsyncSession,
    listing_id: UUID,
    min_score: Optional[int] = None,
) -> List[MatchSuggestion]:
    """List a listing's suggestions, highest overall score first."""
    query = select(MatchSuggestion).where(MatchSuggestion.listing_id == listing_id)
    if min_score is not None:
        query = query.where(MatchSuggestion.overall_score >= min_score)
    query = query.order_by(MatchSuggestion.overall_score.desc(), MatchSuggestion.created_at.asc())

    result = await db.execute(query)
    return list(result.scalars().all())

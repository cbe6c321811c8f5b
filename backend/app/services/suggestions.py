"""
Suggestion generation: score a pool of candidates for a listing and store
the results as the listing's new suggestion set.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.listing import Listing
from app.models.match_suggestion import MatchSuggestion
from app.models.user import User, ViewerRole
from app.schemas.suggestion import CandidateFailure, SuggestionCreate
from app.services.match_scorer import MatchScorer, ScoringError, score_with_retry
from app.services.suggestion_store import upsert_batch

logger = logging.getLogger(__name__)


@dataclass
class GenerationReport:
    listing_id: str
    suggestions: List[MatchSuggestion] = field(default_factory=list)
    failures: List[CandidateFailure] = field(default_factory=list)
    analyzed_candidates: int = 0
    persisted: bool = False


async def get_candidate_pool(
    db: AsyncSession,
    listing: Listing,
    limit: Optional[int] = None,
) -> List[User]:
    """
    Candidates considered for a listing: everyone except clients and the
    listing's owner.
    """
    filters = [User.role != ViewerRole.CLIENT.value]
    if listing.client_id is not None:
        filters.append(User.id != listing.client_id)

    result = await db.execute(
        select(User)
        .where(and_(*filters))
        .order_by(User.created_at.asc())
        .limit(limit or settings.suggestion_candidate_pool)
    )
    return list(result.scalars().all())


async def generate_suggestions(
    db: AsyncSession,
    listing: Listing,
    scorer: MatchScorer,
    candidates: Sequence[User],
    concurrency: Optional[int] = None,
    retry_wait=None,
) -> GenerationReport:
    """
    Score every candidate and replace the listing's suggestion set.

    Failures are per candidate: one bad profile or one malformed answer never
    blocks the others. If every candidate failed, nothing is written, so an
    outage of the reasoning collaborator cannot wipe existing suggestions.
    """
    report = GenerationReport(listing_id=str(listing.id), analyzed_candidates=len(candidates))
    job_requirements = listing.requirements_text()
    semaphore = asyncio.Semaphore(concurrency or settings.scoring_concurrency)

    async def score_one(candidate: User):
        async with semaphore:
            try:
                analysis = await score_with_retry(
                    scorer, job_requirements, candidate.candidate_profile_text(), wait=retry_wait
                )
            except ScoringError as e:
                logger.warning(
                    f"Could not generate suggestion for candidate {candidate.id} "
                    f"on listing {listing.id}: [{e.code}] {e}"
                )
                return CandidateFailure(candidate_id=candidate.id, error_code=e.code, message=str(e))
            return SuggestionCreate(candidate_id=candidate.id, **analysis.model_dump())

    outcomes = await asyncio.gather(*(score_one(c) for c in candidates))

    scored = [o for o in outcomes if isinstance(o, SuggestionCreate)]
    report.failures = [o for o in outcomes if isinstance(o, CandidateFailure)]

    if not scored and report.failures:
        logger.error(
            f"All {len(report.failures)} candidates failed for listing {listing.id}; "
            f"keeping previous suggestions"
        )
        return report

    report.suggestions = await upsert_batch(db, listing.id, scored)
    report.persisted = True

    logger.info(
        f"Generated suggestions for listing {listing.id}: "
        f"{len(scored)} scored, {len(report.failures)} failed"
    )
    return report

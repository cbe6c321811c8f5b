"""
Match suggestion API endpoints.
Scores candidates against a listing and serves the stored suggestion set.
"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.user import User
from app.api.auth import get_current_user
from app.api.listings import get_managed_listing, get_visible_listing
from app.schemas.suggestion import (
    GenerateSuggestionsRequest,
    GenerateSuggestionsResponse,
    MatchRequest,
    MatchResponse,
    SuggestionListResponse,
)
from app.services.match_scorer import (
    CollaboratorMalformedResponse,
    CollaboratorUnavailable,
    InsufficientInput,
    MatchScorer,
    ScoringError,
    score_with_retry,
)
from app.services.reasoning import get_match_scorer
from app.services.suggestion_store import list_suggestions
from app.services.suggestions import generate_suggestions, get_candidate_pool

logger = logging.getLogger(__name__)

router = APIRouter()


def scoring_http_error(e: ScoringError) -> HTTPException:
    """Map a scoring failure onto the HTTP status the caller should see."""
    if isinstance(e, InsufficientInput):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, CollaboratorUnavailable):
        return HTTPException(status_code=503, detail="Match analysis is temporarily unavailable. Please retry.")
    if isinstance(e, CollaboratorMalformedResponse):
        return HTTPException(status_code=502, detail="Match analysis returned an invalid result.")
    return HTTPException(status_code=502, detail="Match analysis failed.")


@router.post("/{listing_id}/suggestions/generate", response_model=GenerateSuggestionsResponse)
async def generate_listing_suggestions(
    listing_id: UUID,
    request: Optional[GenerateSuggestionsRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    scorer: MatchScorer = Depends(get_match_scorer),
):
    """
    Score the candidate pool against a listing and replace its suggestions.

    Candidates that fail are reported in `failures`. If all of them fail the
    stored suggestions are left as they were (`persisted` is false).
    """
    listing = await get_managed_listing(listing_id, current_user, db)
    max_candidates = request.max_candidates if request else None

    candidates = await get_candidate_pool(db, listing, limit=max_candidates)
    logger.info(f"Generating suggestions for listing {listing.id} over {len(candidates)} candidates")

    report = await generate_suggestions(db, listing, scorer, candidates)

    if report.failures and not report.persisted:
        # Nothing scored: surface the collaborator outage instead of an empty success
        if all(f.error_code == CollaboratorUnavailable.code for f in report.failures):
            raise HTTPException(
                status_code=503,
                detail="Match analysis is temporarily unavailable. Existing suggestions were kept."
            )

    return GenerateSuggestionsResponse(
        listing_id=listing.id,
        suggestions=report.suggestions,
        failures=report.failures,
        analyzed_candidates=report.analyzed_candidates,
        persisted=report.persisted,
    )


@router.get("/{listing_id}/suggestions", response_model=SuggestionListResponse)
async def get_listing_suggestions(
    listing_id: UUID,
    min_score: Optional[int] = Query(None, ge=0, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Stored suggestions for a listing, highest overall score first."""
    listing = await get_managed_listing(listing_id, current_user, db)
    suggestions = await list_suggestions(db, listing.id, min_score=min_score)
    return SuggestionListResponse(suggestions=suggestions, count=len(suggestions))


@router.post("/{listing_id}/match", response_model=MatchResponse)
async def match_candidate(
    listing_id: UUID,
    request: MatchRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    scorer: MatchScorer = Depends(get_match_scorer),
):
    """Score one pasted candidate profile against a listing. Nothing is stored."""
    listing = await get_visible_listing(listing_id, current_user, db)

    try:
        analysis = await score_with_retry(scorer, listing.requirements_text(), request.candidate_resume)
    except ScoringError as e:
        logger.warning(f"Match for listing {listing.id} failed: [{e.code}] {e}")
        raise scoring_http_error(e)

    return MatchResponse(
        listing_id=listing.id,
        candidate_email=request.candidate_email,
        match_analysis=analysis,
    )

"""
Referral API endpoints.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.user import User
from app.api.auth import get_current_user
from app.api.listings import get_visible_listing
from app.api.suggestions import scoring_http_error
from app.schemas.referral import ReferralDraft, ReferralDraftRequest
from app.services.match_scorer import MatchScorer, ScoringError, score_with_retry
from app.services.reasoning import get_match_scorer
from app.services.referral_composer import compose_referral_draft

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/draft", response_model=ReferralDraft)
async def draft_referral(
    request: ReferralDraftRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    scorer: MatchScorer = Depends(get_match_scorer),
):
    """
    Score the referred candidate and pre-fill the referral form.

    The referrer's own `why_good_fit` text is returned untouched; the
    generated summary is only used when it is empty.
    """
    listing = await get_visible_listing(request.listing_id, current_user, db)

    try:
        analysis = await score_with_retry(scorer, listing.requirements_text(), request.candidate_resume)
    except ScoringError as e:
        logger.warning(f"Referral draft for listing {listing.id} failed: [{e.code}] {e}")
        raise scoring_http_error(e)

    draft = compose_referral_draft(
        listing_id=listing.id,
        candidate_name=request.candidate_name,
        candidate_email=request.candidate_email,
        analysis=analysis,
        why_good_fit=request.why_good_fit,
    )
    logger.info(
        f"User {current_user.email} drafted referral of {request.candidate_email} "
        f"for listing {listing.id} (overall={analysis.overall_score})"
    )
    return draft

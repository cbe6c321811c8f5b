"""Pre-fill referral submissions from a match analysis."""
from typing import Optional
from uuid import UUID

from app.schemas.referral import ReferralDraft
from app.schemas.suggestion import MatchAnalysis


def build_why_good_fit(analysis: MatchAnalysis) -> Optional[str]:
    """Summarise the top three strengths, or None when there are none."""
    insights = ". ".join(s.strip().rstrip(".") for s in analysis.key_strengths[:3] if s.strip())
    if not insights:
        return None
    return (
        f"Based on AI analysis: {insights}. "
        f"This candidate demonstrates strong alignment with the role requirements."
    )


def compose_referral_draft(
    listing_id: UUID,
    candidate_name: str,
    candidate_email: str,
    analysis: MatchAnalysis,
    why_good_fit: Optional[str] = None,
) -> ReferralDraft:
    """
    Build a referral draft. Text the referrer already wrote is kept as is;
    the generated summary only fills an empty field.
    """
    written = (why_good_fit or "").strip()
    generated = None if written else build_why_good_fit(analysis)

    return ReferralDraft(
        listing_id=listing_id,
        candidate_name=candidate_name,
        candidate_email=candidate_email,
        why_good_fit=written or generated or "",
        ai_generated=generated is not None,
        match_analysis=analysis,
    )

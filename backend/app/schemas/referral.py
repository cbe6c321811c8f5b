"""Referral draft schemas."""
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr

from app.schemas.suggestion import MatchAnalysis


class ReferralDraftRequest(BaseModel):
    listing_id: UUID
    candidate_name: str
    candidate_email: EmailStr
    candidate_resume: str
    why_good_fit: Optional[str] = None  # Referrer's own text wins over the generated one


class ReferralDraft(BaseModel):
    """Pre-filled referral submission. The referrer reviews it before submitting."""
    listing_id: UUID
    candidate_name: str
    candidate_email: EmailStr
    why_good_fit: str
    ai_generated: bool
    match_analysis: MatchAnalysis

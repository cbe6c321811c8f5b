from sqlalchemy import Column, Integer, Text, ForeignKey, Index, UniqueConstraint, CheckConstraint
import uuid

from app.database import Base
from app.database_types import GUID, JSON, UTCDateTime, utcnow


class MatchSuggestion(Base):
    """
    Persisted candidate/listing match.

    One row per (listing, candidate). Rows are only ever written as part of a
    full batch replacement for their listing, never patched field by field.
    """
    __tablename__ = "match_suggestions"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    listing_id = Column(GUID, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False)
    candidate_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Scores (0-100, independently bounded)
    overall_score = Column(Integer, nullable=False)
    skills_score = Column(Integer, nullable=False)
    experience_score = Column(Integer, nullable=False)
    education_score = Column(Integer, nullable=False)

    reasoning = Column(Text, nullable=False)
    key_strengths = Column(JSON, nullable=False, default=list)
    potential_concerns = Column(JSON, nullable=False, default=list)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('listing_id', 'candidate_id', name='uq_suggestion_listing_candidate'),
        CheckConstraint('overall_score BETWEEN 0 AND 100', name='ck_suggestion_overall_range'),
        CheckConstraint('skills_score BETWEEN 0 AND 100', name='ck_suggestion_skills_range'),
        CheckConstraint('experience_score BETWEEN 0 AND 100', name='ck_suggestion_experience_range'),
        CheckConstraint('education_score BETWEEN 0 AND 100', name='ck_suggestion_education_range'),
        Index('idx_suggestions_listing_score', 'listing_id', 'overall_score'),
    )

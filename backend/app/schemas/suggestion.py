"""Match scoring and suggestion schemas."""
from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictInt, StrictStr


Score = Annotated[StrictInt, Field(ge=0, le=100)]


class MatchAnalysis(BaseModel):
    """
    Parsed reasoning collaborator output.

    Strict on purpose: a string "85", a float, a missing list or an
    out-of-range score must fail validation rather than be coerced, so a
    broken response can never masquerade as a real (low) score. The overall
    score is independent of the sub-scores; no formula relates them.
    """
    model_config = ConfigDict(extra="ignore")

    overall_score: Score
    skills_score: Score = Field(validation_alias=AliasChoices("skills_score", "skills_match"))
    experience_score: Score = Field(validation_alias=AliasChoices("experience_score", "experience_match"))
    education_score: Score = Field(validation_alias=AliasChoices("education_score", "education_match"))
    reasoning: StrictStr = Field(min_length=1)
    key_strengths: list[StrictStr]
    potential_concerns: list[StrictStr]


class SuggestionCreate(MatchAnalysis):
    """A scored candidate ready to be written by upsert_batch."""
    candidate_id: UUID


class SuggestionResponse(BaseModel):
    id: UUID
    listing_id: UUID
    candidate_id: UUID
    overall_score: int
    skills_score: int
    experience_score: int
    education_score: int
    reasoning: str
    key_strengths: list[str]
    potential_concerns: list[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CandidateFailure(BaseModel):
    """Why one candidate has no suggestion in this batch."""
    candidate_id: UUID
    error_code: str
    message: str


class SuggestionListResponse(BaseModel):
    suggestions: list[SuggestionResponse]
    count: int


class GenerateSuggestionsRequest(BaseModel):
    max_candidates: Optional[int] = Field(None, ge=1, le=200)


class GenerateSuggestionsResponse(BaseModel):
    listing_id: UUID
    suggestions: list[SuggestionResponse]
    failures: list[CandidateFailure]
    analyzed_candidates: int
    persisted: bool


class MatchRequest(BaseModel):
    """Score one pasted candidate profile against a listing (nothing is saved)."""
    candidate_resume: str
    candidate_email: Optional[str] = None


class MatchResponse(BaseModel):
    listing_id: UUID
    candidate_email: Optional[str] = None
    match_analysis: MatchAnalysis

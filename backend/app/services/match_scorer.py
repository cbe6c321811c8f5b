"""
Match scoring: one candidate profile against one listing's requirements.

The reasoning collaborator does the actual judgement. This module owns the
contract around it: input is validated before any call is made, and the
collaborator's output either parses into a complete MatchAnalysis or the
call fails. There is no path that turns a bad response into a default score.
"""
import asyncio
import logging
from typing import Optional, Protocol

from pydantic import ValidationError
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config import settings
from app.schemas.suggestion import MatchAnalysis

logger = logging.getLogger(__name__)


class ScoringError(Exception):
    """Base class for scoring failures."""
    code = "scoring_error"
    retryable = False


class InsufficientInput(ScoringError):
    """Profile or requirements too short to score; raised before any collaborator call."""
    code = "insufficient_input"


class CollaboratorUnavailable(ScoringError):
    """Transient collaborator failure (network, rate limit, 5xx). Safe to retry."""
    code = "collaborator_unavailable"
    retryable = True


class CollaboratorMalformedResponse(ScoringError):
    """Collaborator answered, but not with a parseable score. Never retried or defaulted."""
    code = "collaborator_malformed_response"


class ReasoningClient(Protocol):
    async def analyze(self, job_requirements: str, candidate_profile: str) -> str:
        """Return the collaborator's raw JSON text."""
        ...


class MatchScorer:
    """Stateless scorer around a reasoning collaborator."""

    def __init__(self, client: ReasoningClient, min_profile_chars: Optional[int] = None):
        self.client = client
        self.min_profile_chars = (
            settings.min_profile_chars if min_profile_chars is None else min_profile_chars
        )

    def validate_input(self, job_requirements: str, candidate_profile: str) -> None:
        """
        Raises:
            InsufficientInput: If either text is empty or the profile is too short
        """
        if not job_requirements or not job_requirements.strip():
            raise InsufficientInput("Job requirements are empty")
        profile = (candidate_profile or "").strip()
        if len(profile) < self.min_profile_chars:
            raise InsufficientInput(
                f"Candidate profile has {len(profile)} characters, "
                f"at least {self.min_profile_chars} are required"
            )

    async def score(self, job_requirements: str, candidate_profile: str) -> MatchAnalysis:
        """
        Score a candidate profile against job requirements.

        The collaborator call is shielded: if the caller is cancelled the call
        still runs to completion and its result is dropped.

        Returns:
            Unsaved MatchAnalysis (persist it through the suggestion store)

        Raises:
            InsufficientInput, CollaboratorUnavailable, CollaboratorMalformedResponse
        """
        self.validate_input(job_requirements, candidate_profile)
        raw = await asyncio.shield(self.client.analyze(job_requirements, candidate_profile))
        return parse_analysis(raw)


def parse_analysis(raw) -> MatchAnalysis:
    """
    Strict parse of collaborator output.

    Raises:
        CollaboratorMalformedResponse: On anything but a complete, in-range payload
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str) or not raw.strip():
        raise CollaboratorMalformedResponse("Empty response from reasoning collaborator")

    text = _strip_code_fence(raw.strip())
    try:
        return MatchAnalysis.model_validate_json(text)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) or "<root>" for err in e.errors()})
        raise CollaboratorMalformedResponse(
            f"Reasoning collaborator returned an invalid score payload (fields: {', '.join(fields)})"
        ) from e


def _strip_code_fence(text: str) -> str:
    """Models sometimes wrap JSON in ```json fences despite being told not to."""
    if text.startswith("```") and text.endswith("```"):
        body = text[3:-3]
        if body.startswith("json"):
            body = body[4:]
        return body.strip()
    return text


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception()
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        f"Reasoning collaborator unavailable (attempt {retry_state.attempt_number}), "
        f"retrying in {wait:.1f}s: {exc}"
    )


async def score_with_retry(
    scorer: MatchScorer,
    job_requirements: str,
    candidate_profile: str,
    max_attempts: Optional[int] = None,
    wait=None,
) -> MatchAnalysis:
    """Score, retrying only CollaboratorUnavailable with exponential backoff."""
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(CollaboratorUnavailable),
        stop=stop_after_attempt(max_attempts or settings.scoring_max_attempts),
        wait=wait or wait_exponential(multiplier=1, min=1, max=20),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            return await scorer.score(job_requirements, candidate_profile)

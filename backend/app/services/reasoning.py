"""
Reasoning collaborators for the match scorer.

`openai` mode calls OpenAI chat completions. `dev` mode uses the local
keyword heuristic so the app runs without an API key.
"""
import logging
from typing import Optional

import openai
from openai import AsyncOpenAI

from app.config import settings
from app.services.heuristic_reasoning import HeuristicReasoningClient
from app.services.match_scorer import (
    CollaboratorMalformedResponse,
    CollaboratorUnavailable,
    MatchScorer,
    ReasoningClient,
    ScoringError,
)

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are an expert recruiting AI that provides objective candidate-job match "
    "analysis. Always respond with valid JSON."
)

MATCH_PROMPT = """
You are an expert recruiting AI. Analyze how well this candidate matches the job requirements.

JOB DETAILS:
{job_requirements}

CANDIDATE PROFILE:
{candidate_profile}

Please provide a detailed analysis in the following JSON format:
{{
  "overall_score": <integer between 0-100>,
  "skills_score": <integer between 0-100>,
  "experience_score": <integer between 0-100>,
  "education_score": <integer between 0-100>,
  "reasoning": "<detailed explanation of the match>",
  "key_strengths": ["<strength 1>", "<strength 2>", "<strength 3>"],
  "potential_concerns": ["<concern 1>", "<concern 2>"]
}}

Consider:
- Technical skills alignment
- Experience level and years
- Educational background relevance
- Industry experience
- Location compatibility
- Growth potential

The overall score is your holistic judgement, not an average of the other scores.
Be objective and provide honest assessments. Scores should reflect realistic matching probability.
"""

# Transient failures worth retrying
RETRYABLE_ERRORS = (
    openai.RateLimitError,
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.InternalServerError,
)


class OpenAIReasoningClient:
    """Reasoning collaborator backed by OpenAI chat completions (JSON mode)."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model or settings.openai_model
        # Retries happen one level up so they are logged and bounded per candidate.
        self.client = client or AsyncOpenAI(
            api_key=api_key or settings.openai_api_key,
            timeout=timeout or settings.openai_timeout_seconds,
            max_retries=0,
        )

    async def analyze(self, job_requirements: str, candidate_profile: str) -> str:
        prompt = MATCH_PROMPT.format(
            job_requirements=job_requirements,
            candidate_profile=candidate_profile,
        )
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.3,
                max_tokens=1500,
                response_format={"type": "json_object"},
            )
        except RETRYABLE_ERRORS as e:
            raise CollaboratorUnavailable(f"OpenAI request failed: {e}") from e
        except openai.APIError as e:
            # Auth, quota, bad request: not transient, and not a malformed answer either
            raise ScoringError(f"OpenAI rejected the request: {e}") from e

        if not completion.choices:
            raise CollaboratorMalformedResponse("OpenAI returned no choices")
        content = completion.choices[0].message.content
        if not content:
            raise CollaboratorMalformedResponse("OpenAI returned an empty message")
        return content


def build_reasoning_client() -> ReasoningClient:
    if settings.reasoning_mode == "openai":
        if not settings.openai_api_key:
            raise RuntimeError("reasoning_mode is 'openai' but OPENAI_API_KEY is not set")
        return OpenAIReasoningClient()
    return HeuristicReasoningClient()


_scorer: Optional[MatchScorer] = None


def get_match_scorer() -> MatchScorer:
    """FastAPI dependency for the process-wide match scorer."""
    global _scorer
    if _scorer is None:
        _scorer = MatchScorer(build_reasoning_client())
        logger.info(f"Match scorer using {type(_scorer.client).__name__}")
    return _scorer

"""
Tests for suggestion and match endpoints.

Validates:
- Owners generate and read suggestions; other viewers cannot
- Per-candidate failures are reported alongside successes
- Scoring failures map to 400 / 502 / 503
- A collaborator outage keeps the previous suggestions
"""
import json

import pytest
import pytest_asyncio

from app.config import settings
from app.main import app as fastapi_app
from app.models.listing import ListingTier
from app.services.match_scorer import CollaboratorUnavailable, MatchScorer
from app.services.reasoning import get_match_scorer


RESUME = (
    "Senior Python engineer with 8 years of experience running FastAPI services on "
    "PostgreSQL. Bachelor of Science in Computer Science."
)


class FixedClient:
    def __init__(self, answer):
        self.answer = answer
        self.calls = 0

    async def analyze(self, job_requirements: str, candidate_profile: str) -> str:
        self.calls += 1
        if isinstance(self.answer, Exception):
            raise self.answer
        return self.answer


def analysis_json(overall=84) -> str:
    return json.dumps({
        "overall_score": overall,
        "skills_match": 90,
        "experience_match": 80,
        "education_match": 70,
        "reasoning": "Strong match on the core stack.",
        "key_strengths": ["FastAPI", "PostgreSQL", "Mentoring", "On-call ownership"],
        "potential_concerns": ["No Kubernetes"],
    })


@pytest.fixture
def use_client():
    """Install a reasoning client behind the app's match scorer."""
    def install(client):
        scorer = MatchScorer(client, min_profile_chars=50)
        fastapi_app.dependency_overrides[get_match_scorer] = lambda: scorer
        return client

    yield install
    fastapi_app.dependency_overrides.pop(get_match_scorer, None)


@pytest_asyncio.fixture
async def listing(listing_factory, client_user):
    return await listing_factory(client_user, tier=ListingTier.BASE)


def auth(client, user):
    client.cookies.set("auth_token", str(user.id))
    return client


# ============================================================
# Generate / list
# ============================================================

@pytest.mark.asyncio
async def test_owner_generates_suggestions(
    async_client, listing, client_user, candidate_user, standard_user, use_client
):
    client = use_client(FixedClient(analysis_json()))

    response = await auth(async_client, client_user).post(f"/api/listings/{listing.id}/suggestions/generate")

    assert response.status_code == 200
    data = response.json()
    assert data["persisted"] is True
    assert data["analyzed_candidates"] == 2
    assert [s["candidate_id"] for s in data["suggestions"]] == [str(candidate_user.id)]
    assert data["suggestions"][0]["skills_score"] == 90
    # standard_user has no resume, so it fails before reaching the collaborator
    assert [(f["candidate_id"], f["error_code"]) for f in data["failures"]] == [
        (str(standard_user.id), "insufficient_input")
    ]
    assert client.calls == 1


@pytest.mark.asyncio
async def test_generate_respects_max_candidates(async_client, listing, client_user, candidate_user, standard_user, use_client):
    use_client(FixedClient(analysis_json()))

    response = await auth(async_client, client_user).post(
        f"/api/listings/{listing.id}/suggestions/generate", json={"max_candidates": 1}
    )

    assert response.status_code == 200
    assert response.json()["analyzed_candidates"] == 1


@pytest.mark.asyncio
async def test_viewer_cannot_generate_or_read_suggestions(async_client, listing, standard_user, use_client):
    use_client(FixedClient(analysis_json()))
    client = auth(async_client, standard_user)

    assert (await client.post(f"/api/listings/{listing.id}/suggestions/generate")).status_code == 403
    assert (await client.get(f"/api/listings/{listing.id}/suggestions")).status_code == 403


@pytest.mark.asyncio
async def test_outage_returns_503_and_keeps_previous_suggestions(
    async_client, listing, client_user, candidate_user, use_client, monkeypatch
):
    monkeypatch.setattr(settings, "scoring_max_attempts", 1)
    use_client(FixedClient(analysis_json(overall=77)))
    client = auth(async_client, client_user)
    assert (await client.post(f"/api/listings/{listing.id}/suggestions/generate")).status_code == 200

    use_client(FixedClient(CollaboratorUnavailable("rate limited")))
    response = await client.post(f"/api/listings/{listing.id}/suggestions/generate")
    assert response.status_code == 503

    stored = await client.get(f"/api/listings/{listing.id}/suggestions")
    assert [s["overall_score"] for s in stored.json()["suggestions"]] == [77]


@pytest.mark.asyncio
async def test_list_suggestions_min_score(
    async_client, listing, client_user, candidate_user, user_factory, use_client
):
    await user_factory("second@example.com", resume_text=RESUME)
    use_client(FixedClient(analysis_json(overall=60)))
    client = auth(async_client, client_user)
    await client.post(f"/api/listings/{listing.id}/suggestions/generate")

    everything = await client.get(f"/api/listings/{listing.id}/suggestions")
    assert everything.json()["count"] == 2

    filtered = await client.get(f"/api/listings/{listing.id}/suggestions", params={"min_score": 61})
    assert filtered.status_code == 200
    assert filtered.json() == {"suggestions": [], "count": 0}


# ============================================================
# Match one profile
# ============================================================

@pytest.mark.asyncio
async def test_match_returns_analysis_without_storing(async_client, listing, standard_user, client_user, use_client):
    use_client(FixedClient(analysis_json()))

    response = await auth(async_client, standard_user).post(
        f"/api/listings/{listing.id}/match",
        json={"candidate_resume": RESUME, "candidate_email": "jane@example.com"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["candidate_email"] == "jane@example.com"
    assert data["match_analysis"]["overall_score"] == 84
    assert data["match_analysis"]["education_score"] == 70

    stored = await auth(async_client, client_user).get(f"/api/listings/{listing.id}/suggestions")
    assert stored.json()["count"] == 0


@pytest.mark.asyncio
async def test_match_short_profile_is_400(async_client, listing, standard_user, use_client):
    client = use_client(FixedClient(analysis_json()))

    response = await auth(async_client, standard_user).post(
        f"/api/listings/{listing.id}/match", json={"candidate_resume": "Python dev"}
    )

    assert response.status_code == 400
    assert client.calls == 0


@pytest.mark.asyncio
async def test_match_malformed_answer_is_502(async_client, listing, standard_user, use_client):
    use_client(FixedClient('{"overall_score": "high"}'))

    response = await auth(async_client, standard_user).post(
        f"/api/listings/{listing.id}/match", json={"candidate_resume": RESUME}
    )

    assert response.status_code == 502


@pytest.mark.asyncio
async def test_match_unavailable_is_503(async_client, listing, standard_user, use_client, monkeypatch):
    monkeypatch.setattr(settings, "scoring_max_attempts", 1)
    use_client(FixedClient(CollaboratorUnavailable("timeout")))

    response = await auth(async_client, standard_user).post(
        f"/api/listings/{listing.id}/match", json={"candidate_resume": RESUME}
    )

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_match_on_invisible_listing_is_404(
    async_client, listing_factory, client_user, standard_user, use_client
):
    exclusive = await listing_factory(client_user, tier=ListingTier.EXCLUSIVE)
    use_client(FixedClient(analysis_json()))

    response = await auth(async_client, standard_user).post(
        f"/api/listings/{exclusive.id}/match", json={"candidate_resume": RESUME}
    )

    assert response.status_code == 404

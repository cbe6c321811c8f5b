"""
Tests for listing endpoints.

Validates:
- Only clients and privileged users can create listings
- Lists and direct fetches are tier-gated (invisible = 404)
- Owners always see their own listings
- Only owners and privileged users can update or delete
- Every mutation is published on the listings change channel
"""
import pytest
from uuid import uuid4

from httpx import AsyncClient

from app.models.listing import ListingStatus, ListingTier
from app.services.change_channel import ChangeOperation


def auth(client: AsyncClient, user) -> AsyncClient:
    client.cookies.set("auth_token", str(user.id))
    return client


NEW_LISTING = {
    "title": "Staff Platform Engineer",
    "company": "Acme",
    "description": "Own the platform",
    "requirements": "Kubernetes, Terraform, Go",
    "experience_level": "senior",
    "skills": ["kubernetes", "terraform", "go"],
    "tier": "priority",
    "status": "active",
}


# ============================================================
# Create
# ============================================================

@pytest.mark.asyncio
async def test_client_creates_listing_and_publishes_insert(async_client, client_user, channel):
    subscription = channel.subscribe()

    response = await auth(async_client, client_user).post("/api/listings/", json=NEW_LISTING)

    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Staff Platform Engineer"
    assert data["tier"] == "priority"
    assert data["status"] == "active"
    assert data["client_id"] == str(client_user.id)

    event = await subscription.get()
    assert event.operation is ChangeOperation.INSERT
    assert str(event.row_after.id) == data["id"]


@pytest.mark.asyncio
async def test_new_listing_defaults_to_base_draft(async_client, client_user):
    response = await auth(async_client, client_user).post("/api/listings/", json={"title": "Analyst"})

    assert response.status_code == 201
    assert response.json()["tier"] == "base"
    assert response.json()["status"] == "draft"


@pytest.mark.asyncio
async def test_non_clients_cannot_create_listings(async_client, standard_user, candidate_user, channel):
    subscription = channel.subscribe()

    for user in (standard_user, candidate_user):
        response = await auth(async_client, user).post("/api/listings/", json=NEW_LISTING)
        assert response.status_code == 403

    assert subscription.pending() == 0


@pytest.mark.asyncio
async def test_unknown_tier_is_rejected(async_client, client_user):
    response = await auth(async_client, client_user).post(
        "/api/listings/", json={**NEW_LISTING, "tier": "platinum"}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unauthenticated_requests_are_rejected(async_client):
    assert (await async_client.get("/api/listings/")).status_code == 401
    assert (await async_client.post("/api/listings/", json=NEW_LISTING)).status_code == 401


# ============================================================
# Read
# ============================================================

@pytest.mark.asyncio
async def test_list_is_tier_gated_and_newest_first(
    async_client, listing_factory, client_user, standard_user, privileged_user
):
    base = await listing_factory(client_user, title="Base", tier=ListingTier.BASE, age_minutes=30)
    priority = await listing_factory(client_user, title="Priority", tier=ListingTier.PRIORITY, age_minutes=20)
    exclusive = await listing_factory(client_user, title="Exclusive", tier=ListingTier.EXCLUSIVE, age_minutes=10)
    await listing_factory(client_user, title="Draft", status=ListingStatus.DRAFT)

    standard = await auth(async_client, standard_user).get("/api/listings/")
    assert [item["id"] for item in standard.json()] == [str(priority.id), str(base.id)]

    privileged = await auth(async_client, privileged_user).get("/api/listings/")
    assert [item["id"] for item in privileged.json()] == [str(exclusive.id), str(priority.id), str(base.id)]


@pytest.mark.asyncio
async def test_filters_only_narrow_visible_set(async_client, listing_factory, client_user, standard_user):
    await listing_factory(client_user, title="Python Engineer", description="Own services", tier=ListingTier.BASE, experience_level="mid")
    await listing_factory(client_user, title="Go Engineer", description="Own services", tier=ListingTier.PRIORITY, experience_level="senior")
    await listing_factory(client_user, title="Python Lead", description="Own services", tier=ListingTier.EXCLUSIVE, experience_level="senior")

    client = auth(async_client, standard_user)

    by_search = await client.get("/api/listings/", params={"search": "python"})
    assert [item["title"] for item in by_search.json()] == ["Python Engineer"]

    by_level = await client.get("/api/listings/", params={"experience_level": "senior"})
    assert [item["title"] for item in by_level.json()] == ["Go Engineer"]

    # Asking for an invisible tier returns nothing instead of leaking it
    by_tier = await client.get("/api/listings/", params={"tier": "exclusive"})
    assert by_tier.status_code == 200
    assert by_tier.json() == []


@pytest.mark.asyncio
async def test_client_and_candidate_see_empty_feed_list(
    async_client, listing_factory, client_user, candidate_user
):
    await listing_factory(client_user, tier=ListingTier.BASE)

    for user in (client_user, candidate_user):
        response = await auth(async_client, user).get("/api/listings/")
        assert response.status_code == 200
        assert response.json() == []


@pytest.mark.asyncio
async def test_invisible_listing_is_not_found(async_client, listing_factory, client_user, standard_user):
    exclusive = await listing_factory(client_user, tier=ListingTier.EXCLUSIVE)
    draft = await listing_factory(client_user, tier=ListingTier.BASE, status=ListingStatus.DRAFT)

    client = auth(async_client, standard_user)
    assert (await client.get(f"/api/listings/{exclusive.id}")).status_code == 404
    assert (await client.get(f"/api/listings/{draft.id}")).status_code == 404
    assert (await client.get(f"/api/listings/{uuid4()}")).status_code == 404


@pytest.mark.asyncio
async def test_owner_sees_own_draft(async_client, listing_factory, client_user):
    draft = await listing_factory(client_user, tier=ListingTier.EXCLUSIVE, status=ListingStatus.DRAFT)

    response = await auth(async_client, client_user).get(f"/api/listings/{draft.id}")

    assert response.status_code == 200
    assert response.json()["status"] == "draft"


# ============================================================
# Update / delete
# ============================================================

@pytest.mark.asyncio
async def test_owner_update_publishes_before_and_after(async_client, listing_factory, client_user, channel):
    listing = await listing_factory(client_user, tier=ListingTier.EXCLUSIVE)
    subscription = channel.subscribe()

    response = await auth(async_client, client_user).patch(
        f"/api/listings/{listing.id}", json={"tier": "priority"}
    )

    assert response.status_code == 200
    assert response.json()["tier"] == "priority"

    event = await subscription.get()
    assert event.operation is ChangeOperation.UPDATE
    assert event.row_before.tier == "exclusive"
    assert event.row_after.tier == "priority"
    assert event.row_after.updated_at >= event.row_before.updated_at
    assert event.row_after.created_at == event.row_before.created_at


@pytest.mark.asyncio
async def test_partial_update_keeps_other_fields(async_client, listing_factory, client_user):
    listing = await listing_factory(client_user, title="Original", skills=["python"])

    response = await auth(async_client, client_user).patch(
        f"/api/listings/{listing.id}", json={"status": "paused", "title": None}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "paused"
    assert data["title"] == "Original"
    assert data["skills"] == ["python"]


@pytest.mark.asyncio
async def test_privileged_can_manage_any_listing(async_client, listing_factory, client_user, privileged_user):
    draft = await listing_factory(client_user, status=ListingStatus.DRAFT)

    response = await auth(async_client, privileged_user).patch(
        f"/api/listings/{draft.id}", json={"status": "active"}
    )

    assert response.status_code == 200
    assert response.json()["status"] == "active"


@pytest.mark.asyncio
async def test_viewer_cannot_modify_visible_listing(
    async_client, listing_factory, client_user, standard_user, channel
):
    listing = await listing_factory(client_user, tier=ListingTier.BASE)
    subscription = channel.subscribe()

    client = auth(async_client, standard_user)
    assert (await client.patch(f"/api/listings/{listing.id}", json={"title": "Hijacked"})).status_code == 403
    assert (await client.delete(f"/api/listings/{listing.id}")).status_code == 403
    assert subscription.pending() == 0


@pytest.mark.asyncio
async def test_other_client_gets_not_found(async_client, listing_factory, client_user, user_factory):
    from app.models.user import ViewerRole

    listing = await listing_factory(client_user)
    rival = await user_factory("rival@example.com", ViewerRole.CLIENT)

    response = await auth(async_client, rival).patch(f"/api/listings/{listing.id}", json={"title": "Mine"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_publishes_delete(async_client, listing_factory, client_user, standard_user, channel):
    listing = await listing_factory(client_user)
    subscription = channel.subscribe()

    response = await auth(async_client, client_user).delete(f"/api/listings/{listing.id}")
    assert response.status_code == 204

    event = await subscription.get()
    assert event.operation is ChangeOperation.DELETE
    assert event.row_after is None
    assert event.row_before.id == listing.id

    assert (await auth(async_client, standard_user).get(f"/api/listings/{listing.id}")).status_code == 404

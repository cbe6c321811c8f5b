"""Listing-related Pydantic schemas."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.listing import ListingTier, ListingStatus


class ListingBase(BaseModel):
    """Base schema with common listing fields."""
    title: str = Field(..., min_length=1, max_length=255)
    company: Optional[str] = None
    description: Optional[str] = None
    requirements: Optional[str] = None
    experience_level: Optional[str] = None  # junior | mid | senior | executive
    location: Optional[str] = None
    skills: list[str] = Field(default_factory=list)


class ListingCreate(ListingBase):
    """Schema for creating a listing."""
    tier: ListingTier = ListingTier.BASE
    status: ListingStatus = ListingStatus.DRAFT


class ListingUpdate(BaseModel):
    """Partial update. Tier and status changes are what move listings in and out of feeds."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    company: Optional[str] = None
    description: Optional[str] = None
    requirements: Optional[str] = None
    experience_level: Optional[str] = None
    location: Optional[str] = None
    skills: Optional[list[str]] = None
    tier: Optional[ListingTier] = None
    status: Optional[ListingStatus] = None


class ListingRow(BaseModel):
    """
    Immutable snapshot of a listing row.

    This is what travels on the change channel and what the feed holds in
    memory, so no viewer ever shares a live ORM object with another.
    """
    id: UUID
    client_id: Optional[UUID] = None
    title: str
    company: Optional[str] = None
    description: Optional[str] = None
    requirements: Optional[str] = None
    experience_level: Optional[str] = None
    location: Optional[str] = None
    skills: list[str] = Field(default_factory=list)
    tier: str
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("skills", mode="before")
    @classmethod
    def _skills_default(cls, value):
        return [] if value is None else value

"""Messages a DistributionFeed sends to its consumer, and feed filters."""
from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.listing import ListingRow


class FeedFilters(BaseModel):
    """
    Optional narrowing of a viewer's feed.

    The same filters are applied by the one-shot query and to every live
    event, so both paths agree on membership. Filters only narrow the
    tier-gated set; they never widen it.
    """
    tier: Optional[str] = None
    experience_level: Optional[str] = None
    search: Optional[str] = Field(None, min_length=1, max_length=200)
    skills: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @field_validator("skills", mode="before")
    @classmethod
    def _split_skills(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [skill.strip() for skill in value if skill and skill.strip()]

    @property
    def is_empty(self) -> bool:
        return not (self.tier or self.experience_level or self.search or self.skills)

    def matches(self, row: ListingRow) -> bool:
        if self.tier and row.tier != self.tier:
            return False
        if self.experience_level and row.experience_level != self.experience_level:
            return False
        if self.search:
            needle = self.search.lower()
            haystack = f"{row.title}\n{row.description or ''}".lower()
            if needle not in haystack:
                return False
        if self.skills:
            # Overlap: at least one requested skill, case-insensitive
            wanted = {skill.lower() for skill in self.skills}
            if not wanted.intersection(skill.lower() for skill in row.skills):
                return False
        return True


class FeedSnapshot(BaseModel):
    """Full view state, sent after connect, resync, acknowledge and every change."""
    type: Literal["snapshot"] = "snapshot"
    state: str
    items: list[ListingRow]
    unseen_count: int
    last_seen_at: datetime
    notifications_enabled: bool = True


class FeedNotification(BaseModel):
    """A listing became visible for the first time in this session."""
    type: Literal["new_listing"] = "new_listing"
    listing_id: str
    listing: ListingRow


class FeedStatus(BaseModel):
    """Connection-level status, e.g. while a resync keeps failing."""
    type: Literal["status"] = "status"
    state: str
    detail: Optional[str] = None


FeedMessage = Union[FeedSnapshot, FeedNotification, FeedStatus]


class FeedResponse(BaseModel):
    """One-shot feed snapshot for the REST endpoint."""
    items: list[ListingRow]
    count: int

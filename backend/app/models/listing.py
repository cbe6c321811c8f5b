from sqlalchemy import Column, String, Text, ForeignKey, Index
import uuid
import enum

from app.database import Base
from app.database_types import GUID, JSON, UTCDateTime, utcnow


class ListingTier(str, enum.Enum):
    """Subscription tier paid for by the client. Ordered lowest to highest."""
    BASE = "base"
    PRIORITY = "priority"
    EXCLUSIVE = "exclusive"


class ListingStatus(str, enum.Enum):
    """Lifecycle of a listing. Only ACTIVE listings appear in the feed."""
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    FILLED = "filled"
    ARCHIVED = "archived"


class Listing(Base):
    __tablename__ = "listings"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    client_id = Column(GUID, ForeignKey("users.id"), nullable=True, index=True)

    # Job details
    title = Column(String(255), nullable=False)
    company = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    requirements = Column(Text, nullable=True)
    experience_level = Column(String(32), nullable=True)  # junior | mid | senior | executive
    location = Column(String(255), nullable=True)
    skills = Column(JSON, nullable=True, default=list)

    # Feed membership
    tier = Column(String(32), nullable=False, default=ListingTier.BASE.value)
    status = Column(String(32), nullable=False, default=ListingStatus.DRAFT.value)

    # created_at is the feed's recency key and never changes after insert
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        # Index for the one-shot feed query
        Index('idx_listings_feed', 'status', 'tier', 'created_at'),
    )

    def requirements_text(self) -> str:
        """Job requirements as sent to the reasoning collaborator."""
        lines = [
            f"Title: {self.title}",
            f"Company: {self.company or 'Not specified'}",
            f"Description: {self.description or 'Not specified'}",
            f"Requirements: {self.requirements or 'Not specified'}",
            f"Experience Level: {self.experience_level or 'Not specified'}",
            f"Location: {self.location or 'Not specified'}",
        ]
        if self.skills:
            lines.append(f"Skills: {', '.join(self.skills)}")
        return "\n".join(lines)

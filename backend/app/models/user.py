from sqlalchemy import Column, String, Integer, Text
import uuid
import enum

from app.database import Base
from app.database_types import GUID, JSON, UTCDateTime, utcnow


class ViewerRole(str, enum.Enum):
    """User role. Only PRIVILEGED and STANDARD take part in the live feed."""
    PRIVILEGED = "privileged"  # Founding circle - sees every tier
    STANDARD = "standard"  # Select circle - sees base and priority tiers
    CLIENT = "client"  # Posts and pays for listings
    CANDIDATE = "candidate"


class User(Base):
    __tablename__ = "users"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False, index=True)

    # Stored as a plain string so unknown roles fail closed in the tier policy
    # instead of failing to load.
    role = Column(String(32), nullable=False, default=ViewerRole.STANDARD.value, index=True)

    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    company = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)

    # Candidate profile used by the match scorer
    resume_text = Column(Text, nullable=True)
    skills = Column(JSON, nullable=True, default=list)
    experience_years = Column(Integer, nullable=True)

    # Timestamps
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def is_privileged(self) -> bool:
        """Check if user has the privileged (founding circle) role."""
        return self.role == ViewerRole.PRIVILEGED.value

    def candidate_profile_text(self) -> str:
        """
        Build the profile text sent to the match scorer.

        The resume carries most of the signal; skills, years and location are
        appended when present so short resumes still get scored on them.
        """
        parts = []
        if self.resume_text:
            parts.append(self.resume_text.strip())
        if self.skills:
            parts.append(f"Skills: {', '.join(self.skills)}")
        if self.experience_years is not None:
            parts.append(f"Experience: {self.experience_years} years")
        if self.location:
            parts.append(f"Location: {self.location}")
        return "\n".join(parts)

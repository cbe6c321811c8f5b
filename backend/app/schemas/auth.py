"""Session-related Pydantic schemas."""
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr


class SessionUserResponse(BaseModel):
    """The user behind the current session."""
    id: UUID
    email: EmailStr
    role: str
    full_name: str
    company: str | None = None

    model_config = ConfigDict(from_attributes=True)

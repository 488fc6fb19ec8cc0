"""
Data models for contacts, their mergeable profile, and match results.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

from circles.schemas.summary import Birthday


class Profile(BaseModel):
    """The subset of a contact record touched by merging."""
    interests: list[str] = Field(default_factory=list)
    topics_to_avoid: list[str] = Field(default_factory=list)
    religious_events: list[str] = Field(default_factory=list)
    work_info: Optional[str] = None
    family_details: Optional[str] = None
    travel_notes: Optional[str] = None
    birthday: Optional[Birthday] = None


class Contact(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    name: Optional[str] = None
    profile: Profile = Field(default_factory=Profile)
    modified_at: Optional[datetime] = None


class MatchResult(BaseModel):
    """Outcome of resolving extracted text to a contact."""
    contact_id: Optional[UUID] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    suggestions: list[UUID] = Field(default_factory=list, max_length=5)

    @model_validator(mode="after")
    def _contact_requires_confidence(self) -> "MatchResult":
        if self.contact_id is not None and self.confidence <= 0:
            raise ValueError("a matched contact requires confidence > 0")
        return self


class InteractionRecord(BaseModel):
    """Interaction appended to a contact after a successful intake."""
    narrative: str
    raw_text: str
    source: str
    interests: Optional[list[str]] = None
    events: Optional[list[str]] = None
    dates: Optional[list[date]] = None
    operation_id: Optional[UUID] = None  # Idempotency key for queue replays

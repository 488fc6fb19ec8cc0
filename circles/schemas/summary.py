"""
Data models for structured summaries extracted from model responses.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator

# Year-less birthdays are stored on a leap year so Feb 29 stays representable.
PLACEHOLDER_YEAR = 1904


class Birthday(BaseModel):
    """A birthday, optionally without a known year."""
    value: date
    year_known: bool = True

    @property
    def month_day(self) -> tuple[int, int]:
        return (self.value.month, self.value.day)


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def _clean_items(values: Optional[list[str]]) -> list[str]:
    return [item.strip() for item in values or [] if item and item.strip()]


class StructuredSummary(BaseModel):
    """Canonical extraction result for one piece of text."""
    narrative: str = Field(min_length=1)
    interests: list[str] = Field(default_factory=list)
    events: list[str] = Field(default_factory=list)
    dates: list[date] = Field(default_factory=list)
    work_info: Optional[str] = None
    topics_to_avoid: Optional[list[str]] = None
    family_details: Optional[str] = None
    travel_notes: Optional[str] = None
    religious_events: Optional[list[str]] = None
    birthday: Optional[Birthday] = None

    @field_validator("work_info", "family_details", "travel_notes", mode="before")
    @classmethod
    def _collapse_blank_text(cls, value: Optional[str]) -> Optional[str]:
        return _clean_text(value)

    @field_validator("interests", "events", mode="before")
    @classmethod
    def _drop_blank_items(cls, value: Optional[list[str]]) -> list[str]:
        return _clean_items(value)

    @field_validator("topics_to_avoid", "religious_events", mode="before")
    @classmethod
    def _collapse_blank_lists(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return _clean_items(value) or None

    @field_validator("dates")
    @classmethod
    def _unique_dates(cls, value: list[date]) -> list[date]:
        return list(dict.fromkeys(value))


class ContactDetection(BaseModel):
    """Summary plus the contact the model believes the text is about."""
    detected_contact_name: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    summary: StructuredSummary

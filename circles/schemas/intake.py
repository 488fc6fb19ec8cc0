"""
Data models for pending intake operations and submission outcomes.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from circles.schemas.contact import MatchResult
from circles.schemas.summary import StructuredSummary


class OperationKind(str, Enum):
    VOICE_NOTE_SUMMARIZE = "voice_note_summarize"
    TEXT_IMPORT = "text_import"


class PendingOperation(BaseModel):
    """An intake that could not reach the model and waits in the offline queue."""
    id: UUID = Field(default_factory=uuid4)
    kind: OperationKind
    raw_text: str
    target_contact_id: Optional[UUID] = None
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "shortcut_import"
    attempts: int = 0


class IntakeStatus(str, Enum):
    SKIPPED = "skipped"
    MERGED = "merged"
    SHELVED = "shelved"
    QUEUED = "queued"


class IntakeOutcome(BaseModel):
    """What happened to one submission."""
    status: IntakeStatus
    contact_id: Optional[UUID] = None
    changed: bool = False
    summary: Optional[StructuredSummary] = None
    match: Optional[MatchResult] = None
    operation_id: Optional[UUID] = None


class DrainReport(BaseModel):
    processed: int = 0
    failed: int = 0
    skipped: int = 0

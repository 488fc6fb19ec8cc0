"""
API Router: Intake Endpoints.

Accepts transcribed voice notes and imported text and runs them through
the intake pipeline.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from circles.api.deps import get_pipeline
from circles.logging_config import get_logger
from circles.pipeline import Pipeline
from circles.schemas.intake import IntakeOutcome
from circles.services.intake_orchestrator import DEFAULT_IMPORT_SOURCE

logger = get_logger(__name__)
router = APIRouter(prefix="/intake", tags=["Intake"])


class VoiceNoteRequest(BaseModel):
    text: str
    contact_id: UUID


class ImportRequest(BaseModel):
    text: str
    source: str = Field(default=DEFAULT_IMPORT_SOURCE, min_length=1)


@router.post("/voice-note", response_model=IntakeOutcome)
async def submit_voice_note(
    body: VoiceNoteRequest,
    pipeline: Pipeline = Depends(get_pipeline),
) -> IntakeOutcome:
    """Summarize a voice note transcription and merge it into its contact."""
    return await pipeline.orchestrator.submit_voice_note(body.text, body.contact_id)


@router.post("/import", response_model=IntakeOutcome)
async def submit_import(
    body: ImportRequest,
    pipeline: Pipeline = Depends(get_pipeline),
) -> IntakeOutcome:
    """Detect the contact imported text is about, then merge or shelve it."""
    return await pipeline.orchestrator.submit_import(body.text, source=body.source)

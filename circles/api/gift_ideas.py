"""
API Router: Gift Ideas.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from circles.api.deps import get_pipeline
from circles.errors import ContactNotFound
from circles.pipeline import Pipeline

router = APIRouter(prefix="/gift-ideas", tags=["Gift Ideas"])


class GiftIdeasRequest(BaseModel):
    contact_id: UUID
    budget: Optional[str] = None


class GiftIdeasResponse(BaseModel):
    contact_id: UUID
    ideas: list[str]


@router.post("", response_model=GiftIdeasResponse)
async def generate_gift_ideas(
    body: GiftIdeasRequest,
    pipeline: Pipeline = Depends(get_pipeline),
) -> GiftIdeasResponse:
    contact = await pipeline.contacts.get(body.contact_id)
    if contact is None:
        raise ContactNotFound(body.contact_id)

    ideas = await pipeline.gift_ideas.generate(contact, body.budget)
    return GiftIdeasResponse(contact_id=contact.id, ideas=ideas)

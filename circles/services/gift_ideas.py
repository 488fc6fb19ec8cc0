"""
Gift Idea Service.

Asks the language model for gift ideas for a contact and turns the reply
into a clean list. Failures propagate; gift ideas are never queued.
"""

from __future__ import annotations

from typing import Optional

from circles.logging_config import get_logger
from circles.schemas.contact import Contact
from circles.services.interfaces import Summarizer
from circles.services.response_parser import parse_gift_ideas

logger = get_logger(__name__)


class GiftIdeaService:
    def __init__(self, summarizer: Summarizer) -> None:
        self._summarizer = summarizer

    async def generate(self, contact: Contact, budget: Optional[str] = None) -> list[str]:
        raw = await self._summarizer.generate_gift_ideas(contact, budget)
        ideas = parse_gift_ideas(raw)
        logger.info(
            "gift_ideas_generated",
            contact_id=str(contact.id),
            budget=budget,
            count=len(ideas),
        )
        return ideas

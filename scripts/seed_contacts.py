"""
Database Seeding Script.

Populates the `contacts` table with sample contacts for trying out the
intake pipeline.
"""

import asyncio
import os
import sys

# Add project root to path so we can import circles
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dotenv import load_dotenv
load_dotenv(".env.local")

from circles.db import get_db
from circles.logging_config import setup_logging, get_logger
from circles.schemas.contact import Contact, Profile

setup_logging()
logger = get_logger(__name__)

SAMPLE_CONTACTS = [
    Contact(
        name="Bob",
        profile=Profile(interests=["sailing", "jazz"], work_info="Engineer"),
    ),
    Contact(
        name="Priya Raman",
        profile=Profile(
            interests=["climbing", "board games"],
            work_info="Product Manager at Stripe",
            family_details="Two kids",
        ),
    ),
    Contact(
        name="Sam Okafor",
        profile=Profile(interests=["cooking"], travel_notes="Prefers trains over flights"),
    ),
]


async def seed() -> None:
    db = get_db()

    logger.info("seeding_contacts", count=len(SAMPLE_CONTACTS))
    existing_names = {c.name.lower() for c in await db.roster() if c.name}

    for contact in SAMPLE_CONTACTS:
        if contact.name.lower() in existing_names:
            logger.info("contact_seed_skipped", name=contact.name)
            continue
        await db.save(contact)
        logger.info("contact_seeded", name=contact.name, id=str(contact.id))

    logger.info("seeding_complete")


if __name__ == "__main__":
    asyncio.run(seed())

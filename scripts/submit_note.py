"""
CLI tool to push a note through the intake pipeline.

Usage:
    python scripts/submit_note.py --contact-id <uuid> "Had coffee with Sam..."
    python scripts/submit_note.py --source messages "Lunch with Priya, she just started at Stripe"
    python scripts/submit_note.py --file transcript.txt --contact-id <uuid>
    python scripts/submit_note.py --drain

Examples:
    # A voice note transcription for a known contact
    python scripts/submit_note.py --contact-id 3f1c... "Talked about her trip to Lisbon"

    # Imported text; the contact is detected automatically
    python scripts/submit_note.py "Dinner with Bob, he loves sailing"

    # Replay whatever is waiting in the offline queue
    python scripts/submit_note.py --drain
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path
from uuid import UUID

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dotenv import load_dotenv
load_dotenv(".env.local")

from circles.logging_config import setup_logging, get_logger
from circles.pipeline import build_pipeline

setup_logging()
logger = get_logger(__name__)


async def submit(
    text: str,
    contact_id: UUID | None = None,
    source: str = "shortcut_import",
) -> None:
    """Submit one note and print the outcome."""
    pipeline = build_pipeline()
    await pipeline.start()

    try:
        if contact_id:
            outcome = await pipeline.orchestrator.submit_voice_note(text, contact_id)
        else:
            outcome = await pipeline.orchestrator.submit_import(text, source=source)

        print(f"Status: {outcome.status.value}")
        if outcome.contact_id:
            print(f"Contact: {outcome.contact_id} (changed: {outcome.changed})")
        if outcome.summary:
            print(f"Summary: {outcome.summary.narrative}")
        if outcome.match and outcome.match.suggestions:
            print("Suggestions: " + ", ".join(str(s) for s in outcome.match.suggestions))
        if outcome.operation_id and outcome.status.value == "queued":
            print(f"Queued as {outcome.operation_id}; it will be replayed when back online.")
    finally:
        await pipeline.close()


async def drain() -> None:
    """Replay the offline queue once."""
    pipeline = build_pipeline()
    await pipeline.start()

    try:
        report = await pipeline.queue.drain_if_online()
        print(f"Processed: {report.processed}, failed: {report.failed}, skipped: {report.skipped}")
        print(f"Still queued: {len(pipeline.queue)}")
    finally:
        await pipeline.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Submit a note to the Circles intake pipeline")
    parser.add_argument("text", nargs="?", help="Note text (or use --file)")
    parser.add_argument("--file", type=Path, help="Read the note text from a file")
    parser.add_argument("--contact-id", type=UUID, help="Contact UUID for a voice note")
    parser.add_argument("--source", default="shortcut_import", help="Import source label")
    parser.add_argument("--drain", action="store_true", help="Replay the offline queue and exit")

    args = parser.parse_args()

    if args.drain:
        asyncio.run(drain())
        return

    text = args.file.read_text(encoding="utf-8") if args.file else args.text
    if not text:
        parser.error("Provide note text or --file")

    asyncio.run(submit(text=text, contact_id=args.contact_id, source=args.source))


if __name__ == "__main__":
    main()

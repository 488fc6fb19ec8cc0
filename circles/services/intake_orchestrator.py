"""
Intake Orchestrator.

Drives one submission through the pipeline:

    Received → Summarizing → ParsedConfident → Merged
                           → ParsedLowConfidence → Shelved
                           → SummarizeFailed (offline) → Queued

Voice notes already know their contact. Imported text (shortcuts, shared
messages) goes through contact detection and is only merged when the
detection is confident; otherwise it lands in the unassigned-note inbox
with ranked suggestions.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional, Sequence
from uuid import UUID

from circles.config import get_settings
from circles.errors import is_connectivity_error
from circles.logging_config import bind_submission, get_logger
from circles.schemas.contact import Contact, InteractionRecord, MatchResult
from circles.schemas.intake import (
    IntakeOutcome,
    IntakeStatus,
    OperationKind,
    PendingOperation,
)
from circles.schemas.summary import StructuredSummary
from circles.services import contact_matcher
from circles.services.interfaces import ContactStore, Summarizer, UnassignedNoteSink
from circles.services.offline_queue import OfflineQueue
from circles.services.profile_merge import merge_profile
from circles.services.response_parser import parse_detection, parse_summary

logger = get_logger(__name__)

VOICE_NOTE_SOURCE = "voice_note"
DEFAULT_IMPORT_SOURCE = "shortcut_import"


class IntakeOrchestrator:
    """
    Composes summarizer, parser, matcher, merge engine and stores.

    Merges into the same contact are serialised with a per-contact lock so
    the read-merge-write cycle never loses a concurrent update.
    """

    def __init__(
        self,
        summarizer: Summarizer,
        contact_store: ContactStore,
        note_sink: UnassignedNoteSink,
        queue: OfflineQueue,
        confidence_threshold: Optional[float] = None,
        suggestion_limit: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self._summarizer = summarizer
        self._contacts = contact_store
        self._notes = note_sink
        self._queue = queue
        self.confidence_threshold = (
            settings.confidence_threshold if confidence_threshold is None else confidence_threshold
        )
        self.suggestion_limit = settings.suggestion_limit if suggestion_limit is None else suggestion_limit
        self._contact_locks: dict[UUID, asyncio.Lock] = {}
        self._lock_users: Counter[UUID] = Counter()

    # -- Entry points --

    async def submit_voice_note(self, text: str, contact_id: UUID) -> IntakeOutcome:
        """Summarize a transcribed voice note and merge it into ``contact_id``."""
        operation = PendingOperation(
            kind=OperationKind.VOICE_NOTE_SUMMARIZE,
            raw_text=text,
            target_contact_id=contact_id,
            source=VOICE_NOTE_SOURCE,
        )
        return await self._run(operation, allow_queue=True)

    async def submit_import(self, text: str, source: str = DEFAULT_IMPORT_SOURCE) -> IntakeOutcome:
        """Detect which contact imported text is about, then merge or shelve it."""
        operation = PendingOperation(
            kind=OperationKind.TEXT_IMPORT,
            raw_text=text,
            source=source or DEFAULT_IMPORT_SOURCE,
        )
        return await self._run(operation, allow_queue=True)

    async def process_pending(self, operation: PendingOperation) -> IntakeOutcome:
        """
        Replay a queued operation.

        Used as the OfflineQueue processor. Queuing is disabled so any
        failure propagates and the queue keeps the operation.
        """
        return await self._run(operation, allow_queue=False)

    # -- State machine --

    async def _run(self, operation: PendingOperation, allow_queue: bool) -> IntakeOutcome:
        with bind_submission(operation.id):
            if not operation.raw_text.strip():
                logger.info("intake_empty_text", kind=operation.kind.value)
                return IntakeOutcome(status=IntakeStatus.SKIPPED, operation_id=operation.id)

            logger.info(
                "intake_received",
                kind=operation.kind.value,
                source=operation.source,
                text_length=len(operation.raw_text),
                replay=not allow_queue,
            )

            try:
                if operation.kind == OperationKind.VOICE_NOTE_SUMMARIZE:
                    outcome = await self._handle_voice_note(operation)
                else:
                    outcome = await self._handle_import(operation)
            except (Exception, asyncio.CancelledError) as e:
                if allow_queue and is_connectivity_error(e):
                    logger.warning("intake_offline_queued", error=str(e))
                    await self._queue.enqueue(operation)
                    return IntakeOutcome(status=IntakeStatus.QUEUED, operation_id=operation.id)
                logger.error("intake_failed", error=str(e), error_type=type(e).__name__)
                raise

            logger.info(
                "intake_complete",
                status=outcome.status.value,
                contact_id=str(outcome.contact_id) if outcome.contact_id else None,
                changed=outcome.changed,
            )
            return outcome

    async def _handle_voice_note(self, operation: PendingOperation) -> IntakeOutcome:
        contact_id = operation.target_contact_id
        contact = await self._contacts.get(contact_id) if contact_id else None

        raw = await self._summarizer.summarize(
            operation.raw_text,
            contact.name if contact else None,
        )
        summary = parse_summary(raw)

        if contact is None:
            logger.warning("voice_note_contact_missing", contact_id=str(contact_id))
            roster = await self._contacts.roster()
            match = MatchResult(suggestions=self._suggest(operation, summary, roster))
            return await self._shelve(operation, summary, match)

        match = MatchResult(contact_id=contact.id, confidence=1.0)
        return await self._merge(operation, summary, match)

    async def _handle_import(self, operation: PendingOperation) -> IntakeOutcome:
        roster = await self._contacts.roster()
        raw = await self._summarizer.detect_and_summarize(operation.raw_text, roster)
        detection = parse_detection(raw)

        match = contact_matcher.resolve(
            detection.detected_contact_name,
            detection.confidence,
            self._suggestion_text(operation, detection.summary),
            roster,
            limit=self.suggestion_limit,
        )
        logger.info(
            "contact_detected",
            detected_name=detection.detected_contact_name,
            contact_id=str(match.contact_id) if match.contact_id else None,
            confidence=match.confidence,
            suggestions=len(match.suggestions),
        )

        if match.contact_id is not None and match.confidence >= self.confidence_threshold:
            return await self._merge(operation, detection.summary, match)
        return await self._shelve(operation, detection.summary, match)

    @property
    def locked_contacts(self) -> int:
        """Contacts with a merge in progress or waiting."""
        return len(self._contact_locks)

    @asynccontextmanager
    async def _contact_lock(self, contact_id: UUID) -> AsyncIterator[None]:
        """Serialise merges per contact; the lock is dropped once nobody holds or awaits it."""
        lock = self._contact_locks.setdefault(contact_id, asyncio.Lock())
        self._lock_users[contact_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[contact_id] -= 1
            if not self._lock_users[contact_id]:
                del self._lock_users[contact_id]
                del self._contact_locks[contact_id]

    # -- Outcomes --

    async def _merge(
        self,
        operation: PendingOperation,
        summary: StructuredSummary,
        match: MatchResult,
    ) -> IntakeOutcome:
        contact_id = match.contact_id
        async with self._contact_lock(contact_id):
            # Re-read under the lock; the roster may be stale by now.
            contact = await self._contacts.get(contact_id)
            if contact is None:
                logger.warning("merge_contact_missing", contact_id=str(contact_id))
                return await self._shelve(operation, summary, match.model_copy(update={"contact_id": None}))

            result = merge_profile(contact.profile, summary)
            if result.changed:
                updated = contact.model_copy(
                    update={"profile": result.updated, "modified_at": datetime.now(timezone.utc)}
                )
                await self._contacts.save(updated)
                logger.info("profile_merged", contact_id=str(contact_id), changed_fields=result.changed_fields)
            else:
                logger.info("profile_unchanged", contact_id=str(contact_id))

            await self._contacts.append_interaction(
                contact_id,
                InteractionRecord(
                    narrative=summary.narrative,
                    raw_text=operation.raw_text,
                    source=operation.source,
                    interests=summary.interests or None,
                    events=summary.events or None,
                    dates=summary.dates or None,
                    operation_id=operation.id,
                ),
            )

        return IntakeOutcome(
            status=IntakeStatus.MERGED,
            contact_id=contact_id,
            changed=result.changed,
            summary=summary,
            match=match,
            operation_id=operation.id,
        )

    async def _shelve(
        self,
        operation: PendingOperation,
        summary: StructuredSummary,
        match: MatchResult,
    ) -> IntakeOutcome:
        narrative = summary.narrative or operation.raw_text
        await self._notes.save(narrative, operation.raw_text, list(match.suggestions), source=operation.source)
        logger.info(
            "intake_shelved",
            confidence=match.confidence,
            suggestions=[str(s) for s in match.suggestions],
        )
        return IntakeOutcome(
            status=IntakeStatus.SHELVED,
            summary=summary,
            match=match,
            operation_id=operation.id,
        )

    # -- Helpers --

    def _suggest(
        self,
        operation: PendingOperation,
        summary: StructuredSummary,
        roster: Sequence[Contact],
    ) -> list[UUID]:
        return contact_matcher.suggest(
            self._suggestion_text(operation, summary),
            roster,
            limit=min(self.suggestion_limit, contact_matcher.DEFAULT_SUGGESTION_LIMIT),
        )

    @staticmethod
    def _suggestion_text(operation: PendingOperation, summary: StructuredSummary) -> str:
        if summary.narrative in operation.raw_text:
            return operation.raw_text
        return f"{operation.raw_text}\n{summary.narrative}"

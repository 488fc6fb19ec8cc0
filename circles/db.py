"""
Supabase Database Client.

Contact roster, interaction history and the unassigned-note inbox, backed
by three Supabase tables: ``contacts``, ``interactions`` and
``unassigned_notes``. One shared client instance is used per process.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional
from uuid import UUID

from supabase import Client, create_client

from circles.config import get_settings
from circles.logging_config import get_logger
from circles.schemas.contact import Contact, InteractionRecord, Profile
from circles.schemas.summary import Birthday

logger = get_logger(__name__)

CONTACTS_TABLE = "contacts"
INTERACTIONS_TABLE = "interactions"
UNASSIGNED_NOTES_TABLE = "unassigned_notes"


def contact_from_row(row: dict[str, Any]) -> Contact:
    birthday = None
    if row.get("birthday"):
        birthday = Birthday(
            value=date.fromisoformat(row["birthday"]),
            year_known=row.get("birthday_year_known", True),
        )
    return Contact(
        id=row["id"],
        name=row.get("name"),
        modified_at=row.get("modified_at"),
        profile=Profile(
            interests=row.get("interests") or [],
            topics_to_avoid=row.get("topics_to_avoid") or [],
            religious_events=row.get("religious_events") or [],
            work_info=row.get("work_info"),
            family_details=row.get("family_details"),
            travel_notes=row.get("travel_notes"),
            birthday=birthday,
        ),
    )


def contact_to_row(contact: Contact) -> dict[str, Any]:
    profile = contact.profile
    return {
        "id": str(contact.id),
        "name": contact.name,
        "interests": profile.interests,
        "topics_to_avoid": profile.topics_to_avoid,
        "religious_events": profile.religious_events,
        "work_info": profile.work_info,
        "family_details": profile.family_details,
        "travel_notes": profile.travel_notes,
        "birthday": profile.birthday.value.isoformat() if profile.birthday else None,
        "birthday_year_known": profile.birthday.year_known if profile.birthday else None,
        "modified_at": contact.modified_at.isoformat() if contact.modified_at else None,
    }


class SupabaseContactStore:
    """
    Wrapper around the official Supabase Python client.

    Implements the contact store used by the intake pipeline; ``note_sink()``
    exposes the unassigned-note inbox. Errors are logged and re-raised; the pipeline
    decides what a failed write means.
    """

    _instance: Optional[SupabaseContactStore] = None

    def __init__(self, client: Client) -> None:
        self._client = client

    @classmethod
    def shared(cls) -> SupabaseContactStore:
        """Process-wide instance built from settings."""
        if cls._instance is None:
            settings = get_settings()

            if not settings.supabase_url or not settings.supabase_service_key:
                logger.warning(
                    "supabase_credentials_missing",
                    url=bool(settings.supabase_url),
                    key=bool(settings.supabase_service_key),
                )

            try:
                client = create_client(settings.supabase_url, settings.supabase_service_key)
            except Exception as e:
                logger.error("supabase_client_init_failed", error=str(e))
                raise
            logger.info("supabase_client_initialized", url=settings.supabase_url)
            cls._instance = cls(client)

        return cls._instance

    @property
    def client(self) -> Client:
        """Access the raw Supabase client."""
        return self._client

    # -- ContactStore --

    async def roster(self) -> list[Contact]:
        try:
            response = self.client.table(CONTACTS_TABLE).select("*").order("name").execute()
        except Exception as e:
            logger.error("roster_fetch_failed", error=str(e))
            raise
        return [contact_from_row(row) for row in response.data or []]

    async def get(self, contact_id: UUID) -> Optional[Contact]:
        try:
            response = (
                self.client.table(CONTACTS_TABLE)
                .select("*")
                .eq("id", str(contact_id))
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("contact_fetch_failed", contact_id=str(contact_id), error=str(e))
            raise
        if not response.data:
            return None
        return contact_from_row(response.data[0])

    async def save(self, contact: Contact) -> None:
        try:
            self.client.table(CONTACTS_TABLE).upsert(contact_to_row(contact)).execute()
        except Exception as e:
            logger.error("contact_save_failed", contact_id=str(contact.id), error=str(e))
            raise
        logger.debug("contact_saved", contact_id=str(contact.id))

    async def append_interaction(self, contact_id: UUID, record: InteractionRecord) -> None:
        """Insert an interaction; a replayed operation id is written only once."""
        payload = {
            "contact_id": str(contact_id),
            **record.model_dump(mode="json"),
        }
        try:
            table = self.client.table(INTERACTIONS_TABLE)
            if record.operation_id is not None:
                table.upsert(payload, on_conflict="operation_id", ignore_duplicates=True).execute()
            else:
                table.insert(payload).execute()
        except Exception as e:
            logger.error("interaction_append_failed", contact_id=str(contact_id), error=str(e))
            raise

    # -- UnassignedNoteSink --

    async def save_unassigned_note(
        self,
        narrative: str,
        raw_text: str,
        suggestions: list[UUID],
        source: str = "shortcut_import",
    ) -> None:
        payload = {
            "narrative": narrative,
            "raw_text": raw_text,
            "suggested_contact_ids": [str(s) for s in suggestions],
            "source": source,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.client.table(UNASSIGNED_NOTES_TABLE).insert(payload).execute()
        except Exception as e:
            logger.error("unassigned_note_save_failed", source=source, error=str(e))
            raise
        logger.info("unassigned_note_saved", source=source, suggestions=len(suggestions))

    async def list_unassigned_notes(self, limit: int = 50) -> list[dict[str, Any]]:
        try:
            response = (
                self.client.table(UNASSIGNED_NOTES_TABLE)
                .select("*")
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error("unassigned_notes_fetch_failed", error=str(e))
            raise
        return response.data or []

    def note_sink(self) -> UnassignedNoteInbox:
        return UnassignedNoteInbox(self)


class UnassignedNoteInbox:
    """UnassignedNoteSink view over the Supabase store."""

    def __init__(self, store: SupabaseContactStore) -> None:
        self._store = store

    async def save(
        self,
        narrative: str,
        raw_text: str,
        suggestions: list[UUID],
        source: str = "shortcut_import",
    ) -> None:
        await self._store.save_unassigned_note(narrative, raw_text, suggestions, source=source)

    async def recent(self, limit: int = 50) -> list[dict[str, Any]]:
        return await self._store.list_unassigned_notes(limit)


# Global accessor
def get_db() -> SupabaseContactStore:
    return SupabaseContactStore.shared()

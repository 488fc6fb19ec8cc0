"""
Capability interfaces consumed by the intake pipeline.

The orchestrator depends only on these protocols; concrete adapters
(Gemini / backend summarizers, the Supabase store, the HTTP connectivity
monitor) are injected at the edges so the pipeline runs without a live
network or database in tests.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence, Union
from uuid import UUID

from circles.schemas.contact import Contact, InteractionRecord

ConnectivityCallback = Callable[[bool], Union[None, Awaitable[None]]]


class Summarizer(Protocol):
    """Language-model access. Every method returns the raw response text."""

    async def summarize(self, text: str, contact_name: Optional[str] = None) -> str:
        ...

    async def detect_and_summarize(self, text: str, roster: Sequence[Contact]) -> str:
        ...

    async def generate_gift_ideas(self, contact: Contact, budget: Optional[str] = None) -> str:
        ...


class ContactStore(Protocol):
    async def roster(self) -> list[Contact]:
        ...

    async def get(self, contact_id: UUID) -> Optional[Contact]:
        ...

    async def save(self, contact: Contact) -> None:
        ...

    async def append_interaction(self, contact_id: UUID, record: InteractionRecord) -> None:
        ...


class UnassignedNoteSink(Protocol):
    """Holding area for text that needs manual assignment."""

    async def save(
        self,
        narrative: str,
        raw_text: str,
        suggestions: list[UUID],
        source: str = "shortcut_import",
    ) -> None:
        ...

    async def recent(self, limit: int = 50) -> list[dict[str, Any]]:
        ...


class ConnectivityMonitor(Protocol):
    def on_change(self, callback: ConnectivityCallback) -> None:
        ...

"""
Pipeline wiring.

Builds the intake pipeline from settings: summarizer, Supabase store,
offline queue and connectivity monitor, with the orchestrator registered
as the queue's processor. Shared by the API server, the queue drainer
worker and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from circles.config import Settings, get_settings
from circles.db import get_db
from circles.logging_config import get_logger
from circles.services.connectivity import HttpConnectivityMonitor, build_connectivity_monitor
from circles.services.gift_ideas import GiftIdeaService
from circles.services.intake_orchestrator import IntakeOrchestrator
from circles.services.interfaces import ContactStore, Summarizer, UnassignedNoteSink
from circles.services.offline_queue import OfflineQueue
from circles.services.queue_store import QueueStore, build_queue_store
from circles.services.summarizer import build_summarizer

logger = get_logger(__name__)


@dataclass
class Pipeline:
    orchestrator: IntakeOrchestrator
    queue: OfflineQueue
    contacts: ContactStore
    inbox: UnassignedNoteSink
    gift_ideas: GiftIdeaService
    queue_store: QueueStore
    monitor: Optional[HttpConnectivityMonitor] = None

    async def start(self) -> None:
        """Load the persisted queue and hook the queue to connectivity changes."""
        await self.queue.load()
        if self.monitor is not None:
            self.monitor.on_change(self.queue.handle_connectivity_change)
            await self.monitor.check()
        logger.info("pipeline_started", queued=len(self.queue))

    async def close(self) -> None:
        if self.monitor is not None:
            self.monitor.stop()
        await self.queue.wait_idle()
        close = getattr(self.queue_store, "close", None)
        if close is not None:
            await close()
        logger.info("pipeline_closed")


def assemble_pipeline(
    summarizer: Summarizer,
    contacts: ContactStore,
    inbox: UnassignedNoteSink,
    queue_store: QueueStore,
    monitor: Optional[HttpConnectivityMonitor] = None,
    settings: Settings | None = None,
) -> Pipeline:
    """Wire already-built adapters together."""
    settings = settings or get_settings()
    queue = OfflineQueue(queue_store)
    orchestrator = IntakeOrchestrator(
        summarizer=summarizer,
        contact_store=contacts,
        note_sink=inbox,
        queue=queue,
        confidence_threshold=settings.confidence_threshold,
        suggestion_limit=settings.suggestion_limit,
    )
    queue.set_processor(orchestrator.process_pending)
    return Pipeline(
        orchestrator=orchestrator,
        queue=queue,
        contacts=contacts,
        inbox=inbox,
        gift_ideas=GiftIdeaService(summarizer),
        queue_store=queue_store,
        monitor=monitor,
    )


def build_pipeline(settings: Settings | None = None) -> Pipeline:
    """Build the production pipeline from settings."""
    settings = settings or get_settings()
    store = get_db()
    return assemble_pipeline(
        summarizer=build_summarizer(settings),
        contacts=store,
        inbox=store.note_sink(),
        queue_store=build_queue_store(settings),
        monitor=build_connectivity_monitor(settings),
        settings=settings,
    )

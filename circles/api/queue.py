"""
API Router: Offline Queue and Inbox.

Inspect operations waiting for connectivity, trigger a drain by hand,
and list notes waiting for manual assignment.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from circles.api.deps import get_pipeline
from circles.logging_config import get_logger
from circles.pipeline import Pipeline
from circles.schemas.intake import DrainReport

logger = get_logger(__name__)
router = APIRouter(tags=["Queue"])


@router.get("/queue")
async def get_queue(pipeline: Pipeline = Depends(get_pipeline)) -> dict[str, Any]:
    """Operations waiting to be replayed, oldest first."""
    pending = await pipeline.queue.refresh()
    return {
        "online": pipeline.queue.is_online,
        "data": [op.model_dump(mode="json") for op in pending],
        "total": len(pending),
    }


@router.post("/queue/drain", response_model=DrainReport)
async def drain_queue(pipeline: Pipeline = Depends(get_pipeline)) -> DrainReport:
    """Replay queued operations now. Does nothing while offline."""
    report = await pipeline.queue.drain_if_online()
    logger.info("manual_drain_requested", processed=report.processed, failed=report.failed)
    return report


@router.get("/inbox")
async def get_inbox(
    limit: int = Query(default=50, ge=1, le=200),
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """Unassigned notes, newest first."""
    notes = await pipeline.inbox.recent(limit)
    return {"data": notes, "total": len(notes)}

"""
Queue Drainer Worker.

Watches connectivity and replays queued intake operations whenever the
network comes back. Also drains periodically while online so operations
that failed for non-network reasons get retried. Runs as a long-lived
background process.

Start with:
    python -m circles.workers.queue_drainer
"""

from __future__ import annotations

import asyncio
import signal
import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))

from dotenv import load_dotenv
load_dotenv(".env.local")

from circles.config import get_settings
from circles.logging_config import setup_logging, get_logger
from circles.pipeline import Pipeline, build_pipeline

setup_logging()
logger = get_logger(__name__)
settings = get_settings()

# How often to retry a non-empty queue while online (seconds)
RETRY_INTERVAL = 60.0


class QueueDrainerWorker:
    """
    Owns a pipeline, its connectivity monitor and a periodic retry loop.

    Connectivity edges drain the queue through the monitor callback; the
    retry loop covers operations that stayed queued after a drain and
    operations other processes queued in the shared store.
    """

    def __init__(self, pipeline: Pipeline | None = None) -> None:
        self._running = False
        self._pipeline = pipeline or build_pipeline(settings)
        self._monitor_task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start monitoring and the retry loop."""
        await self._pipeline.start()
        self._running = True

        if self._pipeline.monitor is not None:
            self._monitor_task = asyncio.create_task(self._pipeline.monitor.run())

        logger.info(
            "queue_drainer_started",
            retry_interval=RETRY_INTERVAL,
            queued=len(self._pipeline.queue),
        )

        while self._running:
            await asyncio.sleep(RETRY_INTERVAL)
            if not self._running:
                break
            try:
                await self._retry_pending()
            except Exception as e:
                logger.error("queue_drainer_error", error=str(e))

    async def stop(self) -> None:
        """Gracefully stop the worker."""
        self._running = False
        if self._monitor_task is not None:
            self._monitor_task.cancel()
        await self._pipeline.close()
        logger.info("queue_drainer_stopped")

    async def _retry_pending(self) -> bool:
        """
        Drain the queue if anything is waiting.

        Returns True if a drain ran.
        """
        queue = self._pipeline.queue
        if not queue.is_online:
            return False
        # Other processes (the API server) enqueue into the same store.
        if not await queue.refresh():
            return False

        report = await queue.drain_if_online()
        logger.info(
            "queue_retry_complete",
            processed=report.processed,
            failed=report.failed,
            remaining=len(queue),
        )
        return True


async def main() -> None:
    worker = QueueDrainerWorker()

    # Handle graceful shutdown
    loop = asyncio.get_running_loop()

    def shutdown_handler() -> None:
        logger.info("shutdown_signal_received")
        asyncio.ensure_future(worker.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    try:
        await worker.start()
    except KeyboardInterrupt:
        await worker.stop()


if __name__ == "__main__":
    asyncio.run(main())

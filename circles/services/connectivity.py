"""
Connectivity Monitor.

Polls a probe URL and reports online/offline transitions to registered
callbacks. Only edges are emitted; the first probe always reports so
listeners learn the starting state.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Optional

import httpx

from circles.config import Settings, get_settings
from circles.logging_config import get_logger
from circles.services.interfaces import ConnectivityCallback

logger = get_logger(__name__)


class HttpConnectivityMonitor:
    """
    Treats any HTTP response from the probe URL as "online".

    Status codes are ignored: a 4xx from the probe still means
    the network path works. Only a request that gets no response at all
    counts as offline.
    """

    def __init__(
        self,
        probe_url: str,
        poll_seconds: float = 15.0,
        timeout_seconds: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.probe_url = probe_url
        self.poll_seconds = poll_seconds
        self._timeout = timeout_seconds
        self._transport = transport
        self._callbacks: list[ConnectivityCallback] = []
        self._is_online: Optional[bool] = None
        self._running = False

    @property
    def is_online(self) -> Optional[bool]:
        return self._is_online

    def on_change(self, callback: ConnectivityCallback) -> None:
        self._callbacks.append(callback)

    async def probe(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                await client.head(self.probe_url)
        except httpx.TransportError as e:
            logger.debug("connectivity_probe_failed", url=self.probe_url, error=str(e))
            return False
        return True

    async def check(self) -> bool:
        """Probe once and notify listeners if the state flipped."""
        online = await self.probe()
        if online != self._is_online:
            self._is_online = online
            logger.info("connectivity_state", online=online, url=self.probe_url)
            await self._notify(online)
        return online

    async def run(self) -> None:
        """Poll until ``stop()`` is called."""
        self._running = True
        logger.info("connectivity_monitor_started", url=self.probe_url, poll_seconds=self.poll_seconds)
        while self._running:
            try:
                await self.check()
            except Exception as e:
                logger.error("connectivity_callback_error", error=str(e))
            await asyncio.sleep(self.poll_seconds)
        logger.info("connectivity_monitor_stopped")

    def stop(self) -> None:
        self._running = False

    async def _notify(self, online: bool) -> None:
        for callback in list(self._callbacks):
            result = callback(online)
            if inspect.isawaitable(result):
                await result


def build_connectivity_monitor(settings: Settings | None = None) -> HttpConnectivityMonitor:
    settings = settings or get_settings()
    return HttpConnectivityMonitor(
        probe_url=settings.connectivity_probe_url,
        poll_seconds=settings.connectivity_poll_seconds,
    )

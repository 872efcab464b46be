"""
Latency Probe
=============

Periodic HTTP round-trip check against the relay's /ping endpoint.

This is a network-quality indicator for display only; it is not part
of the streaming protocol and never affects sessions.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import requests


logger = logging.getLogger(__name__)


GOOD_LATENCY_MS = 100.0


@dataclass(frozen=True, slots=True)
class ProbeResult:
    """
    Outcome of one probe.
    
    Attributes:
        ok: Whether the request succeeded
        latency_ms: Round-trip time (None on failure)
        checked_at: Wall-clock time of the probe
        error: Failure description
    """
    
    ok: bool
    latency_ms: Optional[float]
    checked_at: float
    error: Optional[str] = None
    
    @property
    def good(self) -> bool:
        """Whether the round trip is under the good-quality threshold."""
        return self.ok and self.latency_ms is not None and self.latency_ms < GOOD_LATENCY_MS


class LatencyProbe:
    """
    Measures /ping round trips on an interval.
    
    Requests run in a worker thread; the event loop is never blocked.
    
    Example:
        probe = LatencyProbe("http://localhost:5000/ping", interval=5.0)
        task = probe.start()
        ...
        await probe.stop()
    """
    
    def __init__(
        self,
        url: str,
        interval: float = 5.0,
        timeout: float = 2.0,
        http: Optional[Any] = None,
    ) -> None:
        """
        Initialize latency probe.
        
        Args:
            url: Full URL of the ping endpoint
            interval: Seconds between probes
            timeout: Request timeout in seconds
            http: Object with a requests-style get() (defaults to a
                requests.Session)
        """
        self.url = url
        self.interval = interval
        self.timeout = timeout
        self.http = http if http is not None else requests.Session()
        self.last_result: Optional[ProbeResult] = None
        self._stop_event: asyncio.Event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
    
    def probe_once(self) -> ProbeResult:
        """Run one blocking probe."""
        start = time.perf_counter()
        try:
            response = self.http.get(self.url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            result = ProbeResult(ok=False, latency_ms=None, checked_at=time.time(), error=str(e))
            logger.warning(f"Network check failed: {e}")
        else:
            latency_ms = (time.perf_counter() - start) * 1000.0
            result = ProbeResult(ok=True, latency_ms=round(latency_ms, 2), checked_at=time.time())
        
        self.last_result = result
        return result
    
    def start(self) -> asyncio.Task:
        """Run the probe loop as a background task with a fresh stop event."""
        if self._task is not None and not self._task.done():
            return self._task
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run(), name="latency_probe")
        return self._task
    
    async def run(self) -> None:
        """Probe until stop() is called, including a stop() made before the first iteration."""
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass
            await asyncio.to_thread(self.probe_once)
    
    async def stop(self) -> None:
        self._stop_event.set()
    
    def to_dict(self) -> dict:
        result = self.last_result
        if result is None:
            return {"url": self.url, "latency_ms": None, "ok": None, "good": None}
        return {
            "url": self.url,
            "latency_ms": result.latency_ms,
            "ok": result.ok,
            "good": result.good,
            "error": result.error,
        }

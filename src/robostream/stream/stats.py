"""
Stats Aggregator
================

Tumbling-window frame statistics for one session.

Windows are non-overlapping. A window closes on flush_if_due(), called
before each arrival is counted and by the owner's flush timer, once at
least `window_seconds` have passed since the window opened. A window can
therefore run long, never short.

When a window closes:
    frames_received = frames counted in the closed window
    avg_latency_ms  = (now - window_start - window_seconds) * 1000

avg_latency_ms is a coarse jitter proxy, not end-to-end latency: the
wire format carries no timestamps.

Example:
    stats = StatsAggregator()
    
    for payload in payloads:
        stats.record_frame()
        
    snapshot = stats.snapshot()
    print(snapshot.frames_received, snapshot.dropped_frames)
"""

import logging
import time
from typing import Callable, Optional

from robostream.models.metrics import Metrics


logger = logging.getLogger(__name__)


class StatsAggregator:
    """
    Per-session tumbling window counter.
    
    Owned by exactly one pipeline; readers only take snapshots.
    
    Attributes:
        window_seconds: Minimum window length
        clock: Monotonic time source (injectable for tests)
    """
    
    def __init__(
        self,
        window_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize stats aggregator.
        
        Args:
            window_seconds: Minimum window length in seconds
            clock: Monotonic clock returning seconds
        """
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        
        self.window_seconds = window_seconds
        self.clock = clock
        
        self._window_start: float = clock()
        self._count: int = 0
        self._dropped: int = 0
        self._snapshot = Metrics()
    
    @property
    def pending_count(self) -> int:
        """Frames counted in the currently open window."""
        return self._count
    
    @property
    def window_start(self) -> float:
        """Clock time the current window opened."""
        return self._window_start
    
    def record_frame(self) -> Optional[Metrics]:
        """
        Count one frame arrival.
        
        A window that is due is flushed first, so the arriving frame is
        counted in the new window.
        
        Returns:
            The published snapshot if a window closed, else None.
        """
        flushed = self.flush_if_due()
        self._count += 1
        return flushed
    
    def record_drop(self) -> int:
        """
        Count one frame that failed to decode.
        
        Returns:
            Total drops on this connection.
        """
        self._dropped += 1
        self._snapshot = self._snapshot.model_copy(
            update={"dropped_frames": self._dropped}
        )
        return self._dropped
    
    def flush_if_due(self) -> Optional[Metrics]:
        """
        Close the current window if it has lasted long enough.
        
        Returns:
            The published snapshot if a window closed, else None.
        """
        now = self.clock()
        elapsed = now - self._window_start
        if elapsed < self.window_seconds:
            return None
        
        overrun_ms = (elapsed - self.window_seconds) * 1000.0
        self._snapshot = Metrics(
            frames_received=self._count,
            avg_latency_ms=round(overrun_ms, 3),
            dropped_frames=self._dropped,
            windows_closed=self._snapshot.windows_closed + 1,
            last_update=now,
        )
        self._count = 0
        self._window_start = now
        return self._snapshot
    
    def snapshot(self) -> Metrics:
        """Latest published metrics."""
        return self._snapshot
    
    def reset(self) -> None:
        """
        Start over, e.g. after a reconnect.
        
        The fresh snapshot is stamped with the reset time so stall
        detection measures from the reconnect, not from stream creation.
        """
        self._window_start = self.clock()
        self._count = 0
        self._dropped = 0
        self._snapshot = Metrics(last_update=self._window_start)

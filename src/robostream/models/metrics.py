"""
Metrics Models
==============

Snapshots of windowed stream statistics.

A snapshot is what a pipeline publishes at the end of each tumbling
window. It is immutable; readers (the registry, the HTTP surface) only
ever see whole snapshots.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Metrics(BaseModel):
    """
    Rolling performance snapshot for one session.
    
    Attributes:
        frames_received: Frames counted in the last closed window
        avg_latency_ms: Window overrun past the nominal boundary (jitter proxy)
        dropped_frames: Frames that failed to decode on this connection
        windows_closed: Number of windows flushed on this connection
        last_update: Monotonic time of the last flush or reset (None before either)
    """
    
    model_config = ConfigDict(frozen=True)
    
    frames_received: int = Field(default=0, ge=0)
    avg_latency_ms: float = Field(default=0.0, ge=0.0)
    dropped_frames: int = Field(default=0, ge=0)
    windows_closed: int = Field(default=0, ge=0)
    last_update: Optional[float] = Field(default=None)

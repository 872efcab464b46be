"""
Latest Frame Slot
=================

Single-slot overwrite buffer between frame decode and draw.

This is deliberately NOT a queue. When frames are decoded faster than
the display refreshes, each new frame replaces the one waiting in the
slot and the older frame is never drawn. Memory use and visual lag stay
bounded to one frame regardless of arrival rate.

Design Rules:
    - Holds at most one frame
    - put() always succeeds and overwrites
    - take() empties the slot
    - Counts superseded (never drawn) frames for observability
"""

import logging
from typing import Optional

from robostream.stream.frame import DecodedFrame


logger = logging.getLogger(__name__)


class LatestFrameSlot:
    """
    Latest-wins handoff for decoded frames.
    
    Attributes:
        superseded_count: Frames overwritten before they were taken
        total_put: Total frames ever put into the slot
        
    Example:
        slot = LatestFrameSlot()
        
        slot.put(frame_a)
        slot.put(frame_b)   # frame_a is dropped
        
        slot.take()         # -> frame_b
        slot.take()         # -> None
    """
    
    def __init__(self) -> None:
        self._frame: Optional[DecodedFrame] = None
        self._superseded_count: int = 0
        self._total_put: int = 0
    
    @property
    def superseded_count(self) -> int:
        """Frames dropped because a newer one replaced them."""
        return self._superseded_count
    
    @property
    def total_put(self) -> int:
        """Total frames ever put into the slot."""
        return self._total_put
    
    @property
    def pending(self) -> bool:
        """Whether a frame is waiting to be taken."""
        return self._frame is not None
    
    def put(self, frame: DecodedFrame) -> bool:
        """
        Store a frame, replacing any frame still waiting.
        
        Args:
            frame: Newly decoded frame
            
        Returns:
            True if the slot was empty, False if a waiting frame was
            superseded.
        """
        self._total_put += 1
        superseded = self._frame
        self._frame = frame
        
        if superseded is not None:
            self._superseded_count += 1
            logger.debug(
                f"Frame {superseded.sequence} superseded by {frame.sequence} "
                f"on stream {frame.stream_id!r}"
            )
            return False
        return True
    
    def take(self) -> Optional[DecodedFrame]:
        """Remove and return the waiting frame, if any."""
        frame, self._frame = self._frame, None
        return frame
    
    def clear(self) -> bool:
        """
        Drop the waiting frame without drawing it.
        
        Returns:
            True if a frame was discarded.
        """
        had_frame = self._frame is not None
        self._frame = None
        return had_frame
    
    def metrics(self) -> dict:
        """Slot counters for observability."""
        return {
            "pending": self.pending,
            "superseded_count": self._superseded_count,
            "total_put": self._total_put,
        }

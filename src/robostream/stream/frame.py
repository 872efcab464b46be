"""
Frame Data Model
=================

Internal frame representations for the consumer pipeline.

Binary payloads on the wire carry no header: no sequence number and no
timestamp. The sequence here is assigned locally in socket-arrival
order and the timestamp is the local receive time.

Design Rules:
    - Frame holds the encoded payload exactly as received
    - DecodedFrame holds the bitmap produced by the codec
    - Both are immutable
"""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, slots=True)
class Frame:
    """
    Encoded frame as received from the relay.
    
    Attributes:
        stream_id: Stream the receiving session is bound to
        sequence: Local arrival index on this session (starts at 0)
        received_at: Monotonic receive time in seconds
        data: Raw JPEG bytes
    """
    
    stream_id: str
    sequence: int
    received_at: float
    data: bytes
    
    def __repr__(self) -> str:
        """Compact repr that doesn't dump the payload."""
        return (
            f"Frame(stream_id={self.stream_id!r}, "
            f"sequence={self.sequence}, "
            f"bytes={len(self.data)})"
        )


@dataclass(frozen=True, slots=True)
class DecodedFrame:
    """
    Decoded bitmap ready to draw.
    
    Attributes:
        stream_id: Stream the frame belongs to
        sequence: Arrival index of the source Frame
        received_at: Monotonic receive time of the source Frame
        image: BGR image, shape (H, W, 3), dtype uint8
    """
    
    stream_id: str
    sequence: int
    received_at: float
    image: np.ndarray
    
    @property
    def size(self) -> tuple:
        """(width, height) of the bitmap."""
        height, width = self.image.shape[:2]
        return width, height
    
    def __repr__(self) -> str:
        width, height = self.size
        return (
            f"DecodedFrame(stream_id={self.stream_id!r}, "
            f"sequence={self.sequence}, size={width}x{height})"
        )

"""
Frame Renderers
===============

Draw targets for the consumer pipeline.

The consumer pipeline calls `renderer.draw(frame)` at most once per
display refresh, always with the most recent decoded frame.

Renderers:
    - MemoryRenderer: keeps the last drawn frame per stream, so the
      HTTP service can serve snapshots
    - WindowRenderer: shows frames in OpenCV windows (desktop viewer)
"""

import logging
from typing import Dict, List, Optional, Protocol

import cv2
import numpy as np

from robostream.stream.codec import encode_jpeg
from robostream.stream.frame import DecodedFrame


logger = logging.getLogger(__name__)


class FrameRenderer(Protocol):
    """Protocol for draw targets."""
    
    def draw(self, frame: DecodedFrame) -> None:
        ...
    
    def forget(self, stream_id: str) -> None:
        ...


class MemoryRenderer:
    """
    Keeps the last drawn frame for every stream.
    
    Example:
        renderer = MemoryRenderer()
        pipeline = ConsumerPipeline("main", renderer=renderer)
        ...
        jpeg = renderer.snapshot_jpeg("main")
    """
    
    def __init__(self) -> None:
        self._frames: Dict[str, DecodedFrame] = {}
        self.draw_count: int = 0
    
    def draw(self, frame: DecodedFrame) -> None:
        self._frames[frame.stream_id] = frame
        self.draw_count += 1
    
    def forget(self, stream_id: str) -> None:
        self._frames.pop(stream_id, None)
    
    def latest(self, stream_id: str) -> Optional[DecodedFrame]:
        """Last frame drawn for a stream."""
        return self._frames.get(stream_id)
    
    @property
    def stream_ids(self) -> List[str]:
        return sorted(self._frames)
    
    def snapshot_jpeg(self, stream_id: str, quality: int = 85) -> Optional[bytes]:
        """Re-encode the last drawn frame of a stream, or None."""
        frame = self._frames.get(stream_id)
        if frame is None:
            return None
        return encode_jpeg(frame.image, quality)


class WindowRenderer:
    """
    Shows each stream in its own OpenCV window.
    
    Must be driven from the main thread; the desktop viewer runs its
    event loop there.
    """
    
    def __init__(self, title_prefix: str = "robostream") -> None:
        self.title_prefix = title_prefix
        self._windows: Dict[str, str] = {}
        self._pending_key: int = -1

    def _title(self, stream_id: str) -> str:
        return f"{self.title_prefix}: {stream_id}"

    def compose(self, frame: DecodedFrame) -> np.ndarray:
        """Image actually shown for a frame. Subclasses add overlays."""
        return frame.image

    def draw(self, frame: DecodedFrame) -> None:
        title = self._windows.setdefault(frame.stream_id, self._title(frame.stream_id))
        cv2.imshow(title, self.compose(frame))

        # HighGUI only repaints inside waitKey; keep the key for poll_key()
        key = cv2.waitKey(1)
        if key != -1:
            self._pending_key = key & 0xFF

    def poll_key(self) -> int:
        """Last key pressed in any window, or -1."""
        key, self._pending_key = self._pending_key, -1
        if key == -1:
            pressed = cv2.waitKey(1)
            if pressed != -1:
                key = pressed & 0xFF
        return key
    
    def forget(self, stream_id: str) -> None:
        title = self._windows.pop(stream_id, None)
        if title is not None:
            try:
                cv2.destroyWindow(title)
            except cv2.error as e:
                logger.debug(f"Could not destroy window {title!r}: {e}")
    
    def close(self) -> None:
        """Destroy every window."""
        for stream_id in list(self._windows):
            self.forget(stream_id)

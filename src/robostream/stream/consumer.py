"""
Consumer Frame Pipeline
=======================

Receive → decode → draw for one viewer session, with windowed stats.

Binary messages:
    - Every arrival is counted in the stats window
    - The payload is decoded in a worker thread
    - A decode failure increments dropped_frames, is logged, and the
      pipeline moves on to the next frame
    - A decoded frame goes into a single-slot buffer and one draw is
      scheduled at the next display refresh tick. Frames decoded before
      that tick overwrite the slot; only the newest is drawn.

Text messages:
    Parsed as control messages. Unknown types are ignored. Malformed
    messages are logged and dropped without affecting frame flow.

Stats windows:
    A flush timer closes each window on schedule, so a window with no
    arrivals still publishes (frames_received=0) and the last window of
    a burst is reported without waiting for the next frame.

Design Rules:
    - At most one draw is ever pending
    - close() cancels the pending draw, the flush timer, and clears the
      slot immediately
    - reset() restarts stats (called on every reconnect)
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

import numpy as np

from robostream.models.control import (
    AnyControlMessage,
    ControlMessage,
    ControlMessageError,
    parse_control_message,
)
from robostream.models.metrics import Metrics
from robostream.stream.buffer import LatestFrameSlot
from robostream.stream.codec import ImageDecodeError, decode_jpeg
from robostream.stream.frame import DecodedFrame, Frame
from robostream.stream.render import FrameRenderer, MemoryRenderer
from robostream.stream.stats import StatsAggregator


logger = logging.getLogger(__name__)


Decoder = Callable[[bytes], np.ndarray]
ControlHandler = Callable[[AnyControlMessage], Awaitable[None]]

DEFAULT_REFRESH_HZ = 60.0


class ConsumerPipeline:
    """
    Frame consumer for one stream.
    
    Attributes:
        stream_id: Stream being consumed
        renderer: Draw target
        refresh_interval: Seconds between display refresh ticks
        stats: Tumbling-window statistics
        slot: Latest-wins handoff between decode and draw
        frames_drawn: Frames actually drawn
        parse_errors: Malformed control messages dropped
        
    Example:
        pipeline = ConsumerPipeline("main", renderer=MemoryRenderer())
        session = TransportSession(
            url, Role.VIEWER, "main",
            on_binary=pipeline.on_binary_message,
            on_text=pipeline.on_control_message,
        )
    """
    
    def __init__(
        self,
        stream_id: str,
        renderer: Optional[FrameRenderer] = None,
        refresh_hz: float = DEFAULT_REFRESH_HZ,
        stats: Optional[StatsAggregator] = None,
        decoder: Decoder = decode_jpeg,
        on_control: Optional[ControlHandler] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize consumer pipeline.
        
        Args:
            stream_id: Stream being consumed
            renderer: Draw target (defaults to a MemoryRenderer)
            refresh_hz: Display refresh rate draws are aligned to
            stats: Aggregator (one is created if omitted)
            decoder: JPEG decoder returning a BGR image
            on_control: Coroutine called with recognised control messages
            clock: Monotonic clock for arrival timestamps
        """
        if refresh_hz <= 0:
            raise ValueError("refresh_hz must be positive")
        
        self.stream_id = stream_id
        self.renderer = renderer if renderer is not None else MemoryRenderer()
        self.refresh_interval = 1.0 / refresh_hz
        self.stats = stats if stats is not None else StatsAggregator(clock=clock)
        self.decoder = decoder
        self.on_control = on_control
        self.clock = clock
        
        self.slot = LatestFrameSlot()
        self.frames_drawn: int = 0
        self.parse_errors: int = 0
        
        self._sequence: int = 0
        self._draw_handle: Optional[asyncio.TimerHandle] = None
        self._flush_handle: Optional[asyncio.TimerHandle] = None
        self._closed: bool = False
    
    @property
    def metrics(self) -> Metrics:
        """Latest windowed metrics."""
        return self.stats.snapshot()
    
    @property
    def draw_pending(self) -> bool:
        """Whether a draw is scheduled."""
        return self._draw_handle is not None
    
    @property
    def closed(self) -> bool:
        return self._closed
    
    # -------------------------------------------------------------------------
    # Message handlers
    # -------------------------------------------------------------------------
    
    async def on_binary_message(self, payload: bytes) -> Optional[DecodedFrame]:
        """
        Handle one binary frame payload.
        
        Args:
            payload: Raw JPEG bytes
            
        Returns:
            The decoded frame, or None if it was dropped.
        """
        if self._closed:
            return None
        
        frame = Frame(
            stream_id=self.stream_id,
            sequence=self._sequence,
            received_at=self.clock(),
            data=payload,
        )
        self._sequence += 1
        self.stats.record_frame()
        self._schedule_flush()
        
        try:
            image = await asyncio.to_thread(self.decoder, frame.data)
        except ImageDecodeError as e:
            dropped = self.stats.record_drop()
            logger.warning(
                f"Dropped frame {frame.sequence} on stream {self.stream_id!r}: "
                f"{e} (total dropped: {dropped})"
            )
            return None
        
        if self._closed:
            return None
        
        decoded = DecodedFrame(
            stream_id=frame.stream_id,
            sequence=frame.sequence,
            received_at=frame.received_at,
            image=image,
        )
        self.slot.put(decoded)
        self._schedule_draw()
        return decoded
    
    async def on_control_message(self, raw: str) -> Optional[AnyControlMessage]:
        """
        Handle one text (control) message.
        
        Returns:
            The parsed message, or None if it was malformed.
        """
        try:
            message = parse_control_message(raw)
        except ControlMessageError as e:
            self.parse_errors += 1
            logger.warning(f"Dropping control message on {self.stream_id!r}: {e}")
            return None
        
        if type(message) is ControlMessage:
            logger.debug(f"Ignoring control message of type {message.type!r}")
            return message
        
        if self.on_control is not None:
            await self.on_control(message)
        return message
    
    # -------------------------------------------------------------------------
    # Drawing
    # -------------------------------------------------------------------------
    
    def _schedule_draw(self) -> None:
        """Schedule one draw at the next refresh tick unless one is pending."""
        if self._draw_handle is not None:
            return
        
        loop = asyncio.get_running_loop()
        now = loop.time()
        delay = self.refresh_interval - (now % self.refresh_interval)
        self._draw_handle = loop.call_later(delay, self._draw)
    
    def _draw(self) -> None:
        self._draw_handle = None
        frame = self.slot.take()
        if frame is None or self._closed:
            return
        
        try:
            self.renderer.draw(frame)
        except Exception:
            logger.exception(f"Renderer failed on stream {self.stream_id!r}")
            return
        self.frames_drawn += 1
    
    def _cancel_draw(self) -> None:
        if self._draw_handle is not None:
            self._draw_handle.cancel()
            self._draw_handle = None
    
    # -------------------------------------------------------------------------
    # Stats windows
    # -------------------------------------------------------------------------
    
    def start(self) -> None:
        """Start closing stats windows on schedule. Needs a running loop."""
        self._schedule_flush()
    
    @property
    def flush_pending(self) -> bool:
        """Whether the window flush timer is armed."""
        return self._flush_handle is not None
    
    def _schedule_flush(self) -> None:
        """Arm the timer for the end of the current stats window."""
        if self._flush_handle is not None or self._closed:
            return
        
        window = self.stats.window_seconds
        remaining = self.stats.window_start + window - self.stats.clock()
        delay = min(max(remaining, 0.001), window)
        loop = asyncio.get_running_loop()
        self._flush_handle = loop.call_later(delay, self._flush_tick)
    
    def _flush_tick(self) -> None:
        self._flush_handle = None
        if self._closed:
            return
        self.stats.flush_if_due()
        self._schedule_flush()
    
    def _cancel_flush(self) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
    
    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    
    def reset(self) -> None:
        """Restart statistics and drop any undrawn frame."""
        self._cancel_draw()
        self.slot.clear()
        
        # The new window starts now; re-arm the flush timer against it
        armed = self.flush_pending
        self._cancel_flush()
        self.stats.reset()
        self._sequence = 0
        if armed:
            self._schedule_flush()
    
    def close(self) -> None:
        """Cancel the pending draw and flush timer, and stop accepting frames."""
        self._closed = True
        self._cancel_draw()
        self._cancel_flush()
        self.slot.clear()
        self.renderer.forget(self.stream_id)
    
    def to_dict(self) -> dict:
        """Metrics plus pipeline counters, for the HTTP surface."""
        return {
            "stream_id": self.stream_id,
            **self.metrics.model_dump(),
            "frames_drawn": self.frames_drawn,
            "parse_errors": self.parse_errors,
            **{f"slot_{k}": v for k, v in self.slot.metrics().items()},
        }

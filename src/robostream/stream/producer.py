"""
Producer Frame Pipeline
=======================

Capture → rasterize → encode → send, paced by the configured frame rate.

Each iteration:
    1. Read the settings store once; this snapshot governs the whole
       iteration
    2. Read the current frame from the media source
    3. Resize it to the target resolution and JPEG-encode it at the
       target quality (in a worker thread)
    4. If the session is registered, send it; otherwise drop it
    5. Wait 1 / frame_rate seconds, or until stopped

Design Rules:
    - Frames are never queued: while disconnected, frames are captured
      and dropped, and capture continues
    - Settings changes apply from the next iteration, never mid-frame
    - Failing to open the media source is terminal for the pipeline and
      is raised to the caller; there is no automatic retry
    - Stopping sets a cancellation event captured when the loop started,
      so a stale loop can never outlive its stop()
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import numpy as np

from robostream.models.capture import CaptureSettings
from robostream.stream.codec import ImageEncodeError, encode_jpeg, rasterize
from robostream.stream.session import TransportSession
from robostream.stream.settings_store import SettingsStore
from robostream.stream.source import MediaAcquisitionError, MediaSource
from robostream.stream.stats import StatsAggregator


logger = logging.getLogger(__name__)


Encoder = Callable[[np.ndarray, int], bytes]


class ProducerMetrics:
    """Counters for ProducerPipeline observability."""
    
    __slots__ = (
        "frames_captured",
        "frames_sent",
        "frames_skipped",
        "capture_misses",
        "encode_errors",
        "last_frame_bytes",
    )
    
    def __init__(self) -> None:
        self.frames_captured: int = 0
        self.frames_sent: int = 0
        self.frames_skipped: int = 0
        self.capture_misses: int = 0
        self.encode_errors: int = 0
        self.last_frame_bytes: int = 0
    
    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {name: getattr(self, name) for name in self.__slots__}


class ProducerPipeline:
    """
    Paced frame sender for one streamer session.
    
    Attributes:
        session: Transport session frames are sent on
        settings_store: Shared capture settings
        stats: Per-window send statistics
        metrics: Capture/send counters
        last_encoded_settings: Settings used for the most recent encode
        
    Example:
        store = SettingsStore()
        pipeline = ProducerPipeline(session, store)
        
        await pipeline.start(CameraSource(0))
        pipeline.update_settings(quality=0.5)   # applies to the next frame
        await pipeline.stop()
    """
    
    def __init__(
        self,
        session: TransportSession,
        settings_store: SettingsStore,
        encoder: Encoder = encode_jpeg,
        stats: Optional[StatsAggregator] = None,
    ) -> None:
        """
        Initialize producer pipeline.
        
        Args:
            session: Streamer-role transport session
            settings_store: Store read at the start of every iteration
            encoder: JPEG encoder taking (image, quality 1..100)
            stats: Aggregator for sent frames (one is created if omitted)
        """
        self.session = session
        self.settings_store = settings_store
        self.encoder = encoder
        self.stats = stats if stats is not None else StatsAggregator()
        self.metrics = ProducerMetrics()
        self.last_encoded_settings: Optional[CaptureSettings] = None
        
        self._source: Optional[MediaSource] = None
        self._task: Optional[asyncio.Task] = None
        self._cancel: Optional[asyncio.Event] = None
    
    @property
    def running(self) -> bool:
        """Whether the pacing loop is active."""
        return self._task is not None and not self._task.done()
    
    @property
    def stream_id(self) -> str:
        return self.session.stream_id
    
    async def start(self, source: MediaSource) -> None:
        """
        Open the media source and start the pacing loop.
        
        Args:
            source: Media source to capture from
            
        Raises:
            MediaAcquisitionError: If the source cannot be opened. The
                error is also recorded in the settings store.
            RuntimeError: If the pipeline is already running
        """
        if self.running:
            raise RuntimeError("Producer pipeline already running")
        
        try:
            await source.open()
        except MediaAcquisitionError as e:
            self.settings_store.set_error(self.stream_id, e.user_message)
            logger.error(f"Media acquisition failed for {source.name}: {e}")
            raise
        
        self.settings_store.clear_error(self.stream_id)
        self._source = source
        self._cancel = asyncio.Event()
        self._task = asyncio.create_task(
            self._run(source, self._cancel),
            name=f"producer:{self.stream_id}",
        )
        logger.info(f"Producer pipeline started for stream {self.stream_id!r}")
    
    async def stop(self) -> None:
        """Stop the pacing loop and release the media source."""
        if self._cancel is not None:
            self._cancel.set()
        
        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, timeout=5.0)
            except asyncio.TimeoutError:
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            self._task = None
        
        if self._source is not None:
            await self._source.close()
            self._source = None
        
        logger.info(f"Producer pipeline stopped for stream {self.stream_id!r}")
    
    def update_settings(self, **overrides: Any) -> CaptureSettings:
        """Merge overrides into the shared settings (see SettingsStore)."""
        return self.settings_store.update_settings(**overrides)
    
    async def run_once(self, source: Optional[MediaSource] = None) -> bool:
        """
        Run a single capture/encode/send iteration without pacing.
        
        Args:
            source: Source to read (defaults to the started source)
            
        Returns:
            True if a frame was sent.
        """
        source = source or self._source
        if source is None:
            raise RuntimeError("No media source")
        return await self._process_frame(source, self.settings_store.settings)
    
    async def _run(self, source: MediaSource, cancel: asyncio.Event) -> None:
        """Pacing loop; exits once `cancel` is set."""
        while not cancel.is_set():
            settings = self.settings_store.settings
            
            try:
                await self._process_frame(source, settings)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Producer iteration failed: {e}")
            
            try:
                await asyncio.wait_for(cancel.wait(), timeout=settings.frame_interval)
                break
            except asyncio.TimeoutError:
                pass
    
    async def _process_frame(
        self,
        source: MediaSource,
        settings: CaptureSettings,
    ) -> bool:
        """Capture, encode and (maybe) send one frame with fixed settings."""
        frame = await source.read()
        if frame is None:
            self.metrics.capture_misses += 1
            return False
        self.metrics.frames_captured += 1
        
        try:
            payload = await asyncio.to_thread(self._encode, frame, settings)
        except ImageEncodeError as e:
            self.metrics.encode_errors += 1
            logger.warning(f"Encode failed on stream {self.stream_id!r}: {e}")
            return False
        
        self.last_encoded_settings = settings
        self.metrics.last_frame_bytes = len(payload)
        
        # Not registered: drop, never queue
        if not self.session.registered:
            self.metrics.frames_skipped += 1
            return False
        
        if not await self.session.send(payload):
            self.metrics.frames_skipped += 1
            return False
        
        self.metrics.frames_sent += 1
        self.stats.record_frame()
        return True
    
    def _encode(self, frame: np.ndarray, settings: CaptureSettings) -> bytes:
        raster = rasterize(frame, settings.resolution)
        return self.encoder(raster, settings.jpeg_quality)

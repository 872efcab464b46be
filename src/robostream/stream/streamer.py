"""
Streamer
========

Session + pipeline wiring for the producer role.

A Streamer owns one streamer-role TransportSession and one
ProducerPipeline reading from a media source. The settings store is
passed in so several streamers (or a settings surface) can share it.

Media acquisition failures:
    start() records the failure on `media_error` and re-raises it. The
    session stays connected so the stream can come back with retry()
    once the user has fixed the cause. Nothing retries on its own.
"""

import logging
from typing import Any, Optional

from robostream.models.session import ConnectionState, Role
from robostream.stream.producer import ProducerPipeline
from robostream.stream.session import DEFAULT_RECONNECT_DELAY, TransportSession
from robostream.stream.settings_store import SettingsStore
from robostream.stream.source import MediaAcquisitionError, MediaSource


logger = logging.getLogger(__name__)


class Streamer:
    """
    Producer endpoint for one stream id.
    
    Attributes:
        session: Streamer-role transport session
        pipeline: Producer pipeline
        source: Media source frames are captured from
        media_error: Last acquisition failure, if the pipeline is down
    """
    
    def __init__(
        self,
        url: str,
        stream_id: str,
        source: MediaSource,
        settings_store: Optional[SettingsStore] = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        **session_kwargs: Any,
    ) -> None:
        self.source = source
        self.settings_store = settings_store if settings_store is not None else SettingsStore()
        self.session = TransportSession(
            url,
            Role.STREAMER,
            stream_id,
            reconnect_delay=reconnect_delay,
            **session_kwargs,
        )
        self.pipeline = ProducerPipeline(self.session, self.settings_store)
        self.media_error: Optional[MediaAcquisitionError] = None
    
    @property
    def stream_id(self) -> str:
        return self.session.stream_id
    
    @property
    def state(self) -> ConnectionState:
        return self.session.state
    
    @property
    def streaming(self) -> bool:
        return self.pipeline.running
    
    async def start(self) -> None:
        """
        Connect and start capturing.
        
        Raises:
            MediaAcquisitionError: If the media source cannot be opened
        """
        self.session.start()
        await self._start_pipeline()
    
    async def retry(self) -> None:
        """
        Explicitly retry media acquisition after a failure.
        
        Raises:
            MediaAcquisitionError: If the source still cannot be opened
        """
        if self.pipeline.running:
            return
        logger.info(f"Retrying media acquisition for stream {self.stream_id!r}")
        await self._start_pipeline()
    
    async def _start_pipeline(self) -> None:
        try:
            await self.pipeline.start(self.source)
        except MediaAcquisitionError as e:
            self.media_error = e
            raise
        self.media_error = None
    
    async def close(self) -> None:
        await self.pipeline.stop()
        await self.session.close()
    
    def to_dict(self) -> dict:
        settings = self.settings_store.settings
        return {
            "stream_id": self.stream_id,
            "state": self.state.value,
            "streaming": self.streaming,
            "media_error": (
                {"kind": self.media_error.kind.value, "message": self.media_error.user_message}
                if self.media_error
                else None
            ),
            "settings": settings.model_dump(),
            "send_rate": self.pipeline.stats.snapshot().frames_received,
            "producer": self.pipeline.metrics.to_dict(),
            "session": self.session.metrics.to_dict(),
        }

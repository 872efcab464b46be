"""
Viewers
=======

Session + pipeline wiring for the consumer roles.

Viewer:
    One viewer-role TransportSession feeding one ConsumerPipeline.
    Statistics restart every time the socket opens again.

MultiViewer:
    One multi-viewer-role session that receives active-streams
    broadcasts, and a StreamRegistry that opens a Viewer for every
    active stream and closes it when the stream disappears.

Example:
    multi = MultiViewer("ws://localhost:5000", renderer=MemoryRenderer())
    multi.start()
    ...
    print(multi.registry.metrics_snapshot())
    await multi.close()
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from robostream.models.control import (
    ActiveStreamsMessage,
    ControlMessageError,
    parse_control_message,
)
from robostream.models.metrics import Metrics
from robostream.models.session import ALL_STREAMS, ConnectionState, Role
from robostream.stream.consumer import DEFAULT_REFRESH_HZ, ConsumerPipeline
from robostream.stream.registry import StreamRegistry
from robostream.stream.render import FrameRenderer, MemoryRenderer
from robostream.stream.session import DEFAULT_RECONNECT_DELAY, TransportSession


logger = logging.getLogger(__name__)


class Viewer:
    """
    Single-stream viewer.
    
    Attributes:
        pipeline: Consumer pipeline for the stream
        session: Viewer-role transport session
    """
    
    def __init__(
        self,
        url: str,
        stream_id: str,
        renderer: Optional[FrameRenderer] = None,
        refresh_hz: float = DEFAULT_REFRESH_HZ,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        **session_kwargs: Any,
    ) -> None:
        self.pipeline = ConsumerPipeline(
            stream_id,
            renderer=renderer,
            refresh_hz=refresh_hz,
        )
        self.session = TransportSession(
            url,
            Role.VIEWER,
            stream_id,
            on_binary=self.pipeline.on_binary_message,
            on_text=self.pipeline.on_control_message,
            reconnect_delay=reconnect_delay,
            **session_kwargs,
        )
        self.session.add_status_observer(self._on_status)
    
    @property
    def stream_id(self) -> str:
        return self.session.stream_id
    
    @property
    def metrics(self) -> Metrics:
        return self.pipeline.metrics
    
    @property
    def state(self) -> ConnectionState:
        return self.session.state
    
    def _on_status(self, state: ConnectionState) -> None:
        # Dropped-frame counts are per connection
        if state is ConnectionState.OPEN:
            self.pipeline.reset()
    
    def start(self) -> None:
        self.pipeline.start()
        self.session.start()
    
    async def close(self) -> None:
        """Cancel pending draws, then close the session."""
        self.pipeline.close()
        await self.session.close()
    
    def to_dict(self) -> dict:
        return {
            **self.pipeline.to_dict(),
            "state": self.state.value,
            "session": self.session.metrics.to_dict(),
        }


class MultiViewer:
    """
    Discovery-driven viewer for every active stream.
    
    Attributes:
        session: Multi-viewer-role session receiving broadcasts
        registry: One Viewer per active stream id
        stall_timeout: Seconds without a metrics update before a stream
            is reported as stalled
    """
    
    def __init__(
        self,
        url: str,
        renderer: Optional[FrameRenderer] = None,
        refresh_hz: float = DEFAULT_REFRESH_HZ,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        stall_timeout: float = 5.0,
        monitor_interval: float = 1.0,
        viewer_factory: Optional[Callable[[str], Viewer]] = None,
        **session_kwargs: Any,
    ) -> None:
        self.url = url
        self.renderer = renderer if renderer is not None else MemoryRenderer()
        self.refresh_hz = refresh_hz
        self.reconnect_delay = reconnect_delay
        self.stall_timeout = stall_timeout
        self.monitor_interval = monitor_interval
        self._session_kwargs = session_kwargs
        self._viewer_factory = viewer_factory or self._default_viewer
        
        self.registry: StreamRegistry[Viewer] = StreamRegistry(
            create=self._create_viewer,
            destroy=self._destroy_viewer,
            metrics_of=lambda viewer: viewer.metrics,
        )
        self.session = TransportSession(
            url,
            Role.MULTI_VIEWER,
            ALL_STREAMS,
            on_text=self._on_text,
            reconnect_delay=reconnect_delay,
            **session_kwargs,
        )
        self.parse_errors: int = 0
        
        self._monitor_task: Optional[asyncio.Task] = None
        self._stop_event: asyncio.Event = asyncio.Event()
    
    @property
    def state(self) -> ConnectionState:
        return self.session.state
    
    @property
    def viewers(self) -> dict:
        return self.registry.consumers
    
    def start(self) -> None:
        self.session.start()
        if self._monitor_task is None:
            self._monitor_task = asyncio.create_task(
                self._monitor(),
                name="multi-viewer:monitor",
            )
    
    async def close(self) -> None:
        """Stop monitoring, close the discovery session and every viewer."""
        self._stop_event.set()
        if self._monitor_task is not None:
            await self._monitor_task
            self._monitor_task = None
        
        await self.session.close()
        await self.registry.close()
    
    async def _on_text(self, raw: str) -> None:
        try:
            message = parse_control_message(raw)
        except ControlMessageError as e:
            self.parse_errors += 1
            logger.warning(f"Dropping control message: {e}")
            return
        
        if isinstance(message, ActiveStreamsMessage):
            await self.registry.on_active_streams(message.streams)
        else:
            logger.debug(f"Ignoring control message of type {message.type!r}")
    
    def _default_viewer(self, stream_id: str) -> Viewer:
        return Viewer(
            self.url,
            stream_id,
            renderer=self.renderer,
            refresh_hz=self.refresh_hz,
            reconnect_delay=self.reconnect_delay,
            **self._session_kwargs,
        )
    
    async def _create_viewer(self, stream_id: str) -> Viewer:
        viewer = self._viewer_factory(stream_id)
        viewer.start()
        return viewer
    
    async def _destroy_viewer(self, stream_id: str, viewer: Viewer) -> None:
        await viewer.close()
    
    async def _monitor(self) -> None:
        """Periodically report stalled streams."""
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self.monitor_interval,
                )
                break
            except asyncio.TimeoutError:
                pass
            self.registry.check_stalled(self.stall_timeout)
    
    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "active_streams": list(self.registry.snapshot),
            "stalled_streams": self.registry.stalled_streams(self.stall_timeout),
            "streams": {
                stream_id: viewer.to_dict()
                for stream_id, viewer in sorted(self.viewers.items())
            },
        }

"""
Stream Module
=============

Session protocol and frame pipelines.

Components:
    - TransportSession: reconnecting WebSocket session with registration
    - ProducerPipeline: capture → encode → pace → send
    - ConsumerPipeline: receive → decode → draw, with windowed stats
    - StreamRegistry: discovery-driven fan-out of consumers
    - StatsAggregator: tumbling 1-second windows
    - SettingsStore: shared capture settings
    - Streamer / Viewer / MultiViewer: role wiring

Example:
    from robostream.stream import Streamer, SettingsStore, TestPatternSource
    
    streamer = Streamer(
        "ws://localhost:5000", "main",
        source=TestPatternSource(),
        settings_store=SettingsStore(),
    )
    await streamer.start()
"""

from robostream.stream.buffer import LatestFrameSlot
from robostream.stream.codec import (
    ImageDecodeError,
    ImageEncodeError,
    decode_jpeg,
    encode_jpeg,
    rasterize,
)
from robostream.stream.consumer import ConsumerPipeline
from robostream.stream.frame import DecodedFrame, Frame
from robostream.stream.probe import LatencyProbe, ProbeResult
from robostream.stream.producer import ProducerPipeline
from robostream.stream.registry import StreamDiff, StreamRegistry, StreamSnapshot
from robostream.stream.render import FrameRenderer, MemoryRenderer, WindowRenderer
from robostream.stream.session import TransportSession
from robostream.stream.settings_store import SettingsStore
from robostream.stream.source import (
    CameraSource,
    MediaAcquisitionError,
    MediaErrorKind,
    MediaSource,
    TestPatternSource,
)
from robostream.stream.stats import StatsAggregator
from robostream.stream.streamer import Streamer
from robostream.stream.viewer import MultiViewer, Viewer


__all__ = [
    "CameraSource",
    "ConsumerPipeline",
    "DecodedFrame",
    "Frame",
    "FrameRenderer",
    "ImageDecodeError",
    "ImageEncodeError",
    "LatencyProbe",
    "LatestFrameSlot",
    "MediaAcquisitionError",
    "MediaErrorKind",
    "MediaSource",
    "MemoryRenderer",
    "MultiViewer",
    "ProbeResult",
    "ProducerPipeline",
    "SettingsStore",
    "StatsAggregator",
    "StreamDiff",
    "StreamRegistry",
    "StreamSnapshot",
    "Streamer",
    "TestPatternSource",
    "TransportSession",
    "Viewer",
    "WindowRenderer",
    "decode_jpeg",
    "encode_jpeg",
    "rasterize",
]

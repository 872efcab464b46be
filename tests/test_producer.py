"""
Producer Pipeline Tests
=======================

Uses a fake session so capture/encode/send can be checked without a
relay.
"""

import asyncio

import numpy as np
import pytest

from robostream.stream.codec import encode_jpeg
from robostream.stream.producer import ProducerPipeline
from robostream.stream.settings_store import SettingsStore
from robostream.stream.source import (
    USER_MESSAGES,
    MediaAcquisitionError,
    MediaErrorKind,
    TestPatternSource,
)
from robostream.stream.streamer import Streamer


class FakeSession:
    """Records sends; registration is toggled by the test."""
    
    def __init__(self, registered=True, stream_id="main"):
        self.registered = registered
        self.stream_id = stream_id
        self.sent = []
    
    async def send(self, data):
        if not self.registered:
            return False
        self.sent.append(data)
        return True


class FailingSource:
    """Source whose open() raises a media error."""
    
    def __init__(self, kind):
        self.name = "broken-camera"
        self.kind = kind
        self.open_calls = 0
    
    async def open(self):
        self.open_calls += 1
        raise MediaAcquisitionError(self.kind, "device unavailable")
    
    async def read(self):
        return None
    
    async def close(self):
        pass


class RecordingEncoder:
    """Encoder recording the raster shape and quality of every call."""
    
    def __init__(self, on_call=None):
        self.calls = []
        self.on_call = on_call
    
    def __call__(self, image, quality):
        self.calls.append((image.shape, quality))
        if self.on_call is not None:
            self.on_call(len(self.calls))
        return encode_jpeg(image, quality)


@pytest.fixture
def store():
    store = SettingsStore()
    store.update_settings(resolution="640x480")
    return store


class TestProducerPipeline:
    """Tests for single iterations."""
    
    def test_sends_encoded_frame(self, store):
        """Verify a captured frame is encoded and sent."""
        session = FakeSession()
        encoder = RecordingEncoder()
        pipeline = ProducerPipeline(session, store, encoder=encoder)
        source = TestPatternSource(width=320, height=240)
        
        async def scenario():
            await source.open()
            return await pipeline.run_once(source)
        
        assert asyncio.run(scenario()) is True
        assert len(session.sent) == 1
        assert encoder.calls == [((480, 640, 3), 80)]
        assert pipeline.metrics.frames_sent == 1
    
    def test_unregistered_frames_are_dropped(self, store):
        """Verify frames are skipped while unregistered."""
        session = FakeSession(registered=False)
        pipeline = ProducerPipeline(session, store)
        source = TestPatternSource(width=320, height=240)
        
        async def scenario():
            await source.open()
            results = [await pipeline.run_once(source) for _ in range(3)]
            session.registered = True
            results.append(await pipeline.run_once(source))
            return results
        
        assert asyncio.run(scenario()) == [False, False, False, True]
        assert len(session.sent) == 1
        assert pipeline.metrics.frames_skipped == 3
        assert pipeline.metrics.frames_captured == 4
    
    def test_settings_change_applies_to_next_frame(self, store):
        """Verify a settings change applies from the next frame."""
        session = FakeSession()
        
        def change_mid_frame(call_number):
            if call_number == 1:
                store.update_settings(quality=0.2, resolution="1280x720")
        
        encoder = RecordingEncoder(on_call=change_mid_frame)
        pipeline = ProducerPipeline(session, store, encoder=encoder)
        source = TestPatternSource(width=320, height=240)
        
        async def scenario():
            await source.open()
            await pipeline.run_once(source)
            first = pipeline.last_encoded_settings
            await pipeline.run_once(source)
            return first
        
        first = asyncio.run(scenario())
        
        assert encoder.calls == [((480, 640, 3), 80), ((720, 1280, 3), 20)]
        assert first.quality == 0.8
        assert pipeline.last_encoded_settings.quality == 0.2
    
    def test_capture_miss_is_counted(self, store):
        """Verify an empty capture is counted."""
        pipeline = ProducerPipeline(FakeSession(), store)
        unopened = TestPatternSource()
        
        assert asyncio.run(pipeline.run_once(unopened)) is False
        assert pipeline.metrics.capture_misses == 1


class TestProducerLifecycle:
    """Tests for the paced loop and media failures."""
    
    def test_paced_loop_and_stop(self, store):
        """Verify the loop paces frames and stops."""
        store.update_settings(frame_rate=20)
        session = FakeSession()
        pipeline = ProducerPipeline(session, store)
        source = TestPatternSource(width=160, height=120)
        
        async def scenario():
            await pipeline.start(source)
            running = pipeline.running
            await asyncio.sleep(0.5)
            await pipeline.stop()
            sent_at_stop = len(session.sent)
            await asyncio.sleep(0.2)
            return running, sent_at_stop
        
        running, sent_at_stop = asyncio.run(scenario())
        
        assert running
        assert 3 <= sent_at_stop <= 12
        assert len(session.sent) == sent_at_stop
        assert not pipeline.running
    
    def test_media_failure_recorded_and_raised(self, store):
        """Verify a media failure is stored and raised."""
        pipeline = ProducerPipeline(FakeSession(), store)
        source = FailingSource(MediaErrorKind.PERMISSION_DENIED)
        
        with pytest.raises(MediaAcquisitionError) as excinfo:
            asyncio.run(pipeline.start(source))
        
        assert excinfo.value.kind is MediaErrorKind.PERMISSION_DENIED
        assert store.errors == {"main": USER_MESSAGES[MediaErrorKind.PERMISSION_DENIED]}
        assert not pipeline.running
        assert source.open_calls == 1
    
    def test_start_clears_previous_error(self, store):
        """Verify start clears the previous media error."""
        store.set_error("main", "old failure")
        pipeline = ProducerPipeline(FakeSession(), store)
        
        async def scenario():
            await pipeline.start(TestPatternSource(width=64, height=48))
            await pipeline.stop()
        
        asyncio.run(scenario())
        
        assert store.errors == {}


class TestStreamer:
    """Tests for the streamer runtime."""
    
    def test_media_failure_keeps_session(self, store):
        """Verify a media failure leaves the session connected."""
        source = FailingSource(MediaErrorKind.NOT_FOUND)
        
        async def scenario():
            streamer = Streamer(
                "ws://127.0.0.1:1",
                "main",
                source,
                settings_store=store,
                reconnect_delay=0.05,
                open_timeout=0.5,
            )
            with pytest.raises(MediaAcquisitionError):
                await streamer.start()
            state = streamer.to_dict()
            with pytest.raises(MediaAcquisitionError):
                await streamer.retry()
            await streamer.close()
            return state
        
        state = asyncio.run(scenario())
        
        assert state["streaming"] is False
        assert state["media_error"]["kind"] == "not_found"
        assert source.open_calls == 2

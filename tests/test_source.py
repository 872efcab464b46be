"""
Media Source Tests
==================
"""

import asyncio

import pytest

from robostream.stream import source as source_module
from robostream.stream.source import (
    CameraSource,
    MediaAcquisitionError,
    MediaErrorKind,
    TestPatternSource,
    classify_camera_failure,
)


class TestClassifyCameraFailure:
    """Tests for camera failure classification."""
    
    def test_missing_device(self, tmp_path):
        """Verify a missing device is NOT_FOUND."""
        assert classify_camera_failure(str(tmp_path / "video9")) is MediaErrorKind.NOT_FOUND
    
    def test_unreadable_device(self, tmp_path, monkeypatch):
        """Verify an unreadable device is PERMISSION_DENIED."""
        device = tmp_path / "video0"
        device.touch()
        monkeypatch.setattr(source_module.os, "access", lambda path, mode: False)
        
        assert classify_camera_failure(str(device)) is MediaErrorKind.PERMISSION_DENIED
    
    def test_readable_device_is_busy(self, tmp_path):
        """Verify a readable device that fails to open is BUSY."""
        device = tmp_path / "video0"
        device.touch()
        
        assert classify_camera_failure(str(device)) is MediaErrorKind.BUSY
    
    def test_no_device_node(self):
        """Verify a source without a device node is UNKNOWN."""
        assert classify_camera_failure(None) is MediaErrorKind.UNKNOWN
    
    def test_user_message(self):
        """Verify the user message and detail."""
        error = MediaAcquisitionError(MediaErrorKind.BUSY, "held by pid 42")
        
        assert "in use" in error.user_message
        assert "held by pid 42" in str(error)


class TestCameraSource:
    """Tests for the OpenCV camera source."""
    
    def test_device_path(self):
        """Verify device paths for indexes, paths and URLs."""
        assert CameraSource(2).device_path == "/dev/video2"
        assert CameraSource("/dev/video5").device_path == "/dev/video5"
        assert CameraSource("rtsp://cam/stream").device_path is None
    
    def test_unopenable_camera_raises(self, tmp_path):
        """Verify an unopenable camera raises MediaAcquisitionError."""
        source = CameraSource(str(tmp_path / "no-such-camera.mp4"))
        
        with pytest.raises(MediaAcquisitionError) as excinfo:
            asyncio.run(source.open())

        assert excinfo.value.kind is MediaErrorKind.UNKNOWN


class TestTestPatternSource:
    """Tests for the synthetic source."""
    
    def test_frames_have_native_size(self):
        """Verify generated frames have the configured size."""
        source = TestPatternSource(width=160, height=120)
        
        async def scenario():
            before_open = await source.read()
            await source.open()
            frames = [await source.read() for _ in range(3)]
            await source.close()
            return before_open, frames
        
        before_open, frames = asyncio.run(scenario())
        
        assert before_open is None
        assert all(frame.shape == (120, 160, 3) for frame in frames)
        assert source.frames_generated == 3

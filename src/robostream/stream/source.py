"""
Media Sources
=============

Frame sources for the producer pipeline.

This module provides the MediaSource protocol and two implementations:
    - CameraSource: a local camera opened through OpenCV
    - TestPatternSource: deterministic synthetic frames, no hardware

Acquisition Failures:
    Opening a source can fail for reasons the user has to fix. Those
    failures raise MediaAcquisitionError with a MediaErrorKind
    discriminator and a user-facing message. They are never retried
    automatically; the caller surfaces them and waits for an explicit
    retry.
"""

import asyncio
import logging
import math
import os
import time
from enum import Enum
from typing import Optional, Protocol, Union

import cv2
import numpy as np


logger = logging.getLogger(__name__)


class MediaErrorKind(str, Enum):
    """Why a media source could not be acquired."""
    
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    BUSY = "busy"
    UNKNOWN = "unknown"


USER_MESSAGES = {
    MediaErrorKind.PERMISSION_DENIED: (
        "Camera access was denied. Grant camera permission and retry."
    ),
    MediaErrorKind.NOT_FOUND: (
        "No camera was found. Connect a camera and retry."
    ),
    MediaErrorKind.BUSY: (
        "The camera is in use by another application. Close it and retry."
    ),
    MediaErrorKind.UNKNOWN: (
        "The camera could not be started. Check the device and retry."
    ),
}


class MediaAcquisitionError(Exception):
    """
    Raised when a media source cannot be opened.
    
    Attributes:
        kind: Failure discriminator
        user_message: Message suitable for display
    """
    
    def __init__(self, kind: MediaErrorKind, detail: str = "") -> None:
        self.kind = kind
        self.user_message = USER_MESSAGES[kind]
        super().__init__(f"{kind.value}: {detail or self.user_message}")


class MediaSource(Protocol):
    """
    Protocol for frame sources.
    
    open() acquires the device and may raise MediaAcquisitionError.
    read() returns the current frame, or None if no frame is ready.
    """
    
    name: str
    
    async def open(self) -> None:
        ...
    
    async def read(self) -> Optional[np.ndarray]:
        ...
    
    async def close(self) -> None:
        ...


def classify_camera_failure(device_path: Optional[str]) -> MediaErrorKind:
    """
    Work out why a camera failed to open.
    
    Uses the V4L2 device node when there is one: a missing node means
    no camera, an unreadable node means missing permission, and a node
    we can read but could not open is held by another process.
    
    Args:
        device_path: Device node such as /dev/video0, or None
        
    Returns:
        MediaErrorKind for the failure
    """
    if device_path is None:
        return MediaErrorKind.UNKNOWN
    if not os.path.exists(device_path):
        return MediaErrorKind.NOT_FOUND
    if not os.access(device_path, os.R_OK | os.W_OK):
        return MediaErrorKind.PERMISSION_DENIED
    return MediaErrorKind.BUSY


class CameraSource:
    """
    Local camera read through cv2.VideoCapture.
    
    Reads run in a worker thread so a slow device never blocks the
    event loop.
    
    Attributes:
        index: Camera index (or a device path / URL string)
        width, height: Requested capture size (a hint to the driver)
    """
    
    def __init__(
        self,
        index: Union[int, str] = 0,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> None:
        self.index = index
        self.width = width
        self.height = height
        self.name = f"camera:{index}"
        self._capture: Optional[cv2.VideoCapture] = None
    
    @property
    def device_path(self) -> Optional[str]:
        """V4L2 node for this camera, if it has one."""
        if isinstance(self.index, int):
            return f"/dev/video{self.index}"
        if str(self.index).startswith("/dev/"):
            return str(self.index)
        return None
    
    async def open(self) -> None:
        """
        Open the camera.
        
        Raises:
            MediaAcquisitionError: If the device cannot be opened
        """
        capture = await asyncio.to_thread(cv2.VideoCapture, self.index)
        
        if not capture.isOpened():
            capture.release()
            kind = classify_camera_failure(self.device_path)
            raise MediaAcquisitionError(kind, f"cv2.VideoCapture({self.index!r}) failed")
        
        if self.width:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        if self.height:
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        
        self._capture = capture
        logger.info(f"Opened {self.name}")
    
    async def read(self) -> Optional[np.ndarray]:
        """Grab the current frame, or None if the device produced none."""
        if self._capture is None:
            return None
        ok, frame = await asyncio.to_thread(self._capture.read)
        return frame if ok else None
    
    async def close(self) -> None:
        """Release the camera."""
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info(f"Released {self.name}")


class TestPatternSource:
    """
    Deterministic synthetic frames for running without a camera.
    
    Each frame is a colour gradient that drifts over time with the
    frame counter drawn on top, so a viewer can see motion and spot
    dropped frames by eye.
    
    Attributes:
        width, height: Native size of generated frames
        period: Seconds for one full colour cycle
    """
    
    __test__ = False
    
    def __init__(
        self,
        width: int = 640,
        height: int = 480,
        period: float = 4.0,
    ) -> None:
        self.width = width
        self.height = height
        self.period = period
        self.name = "test-pattern"
        self.frames_generated: int = 0
        self._opened = False
        self._start: float = 0.0
        
        ramp = np.linspace(0, 255, width, dtype=np.float32)
        self._ramp = np.tile(ramp, (height, 1))
    
    async def open(self) -> None:
        self._opened = True
        self._start = time.monotonic()
    
    async def read(self) -> Optional[np.ndarray]:
        if not self._opened:
            return None
        
        phase = (time.monotonic() - self._start) / self.period
        shift = 127.5 * (1 + math.sin(2 * math.pi * phase))
        
        frame = np.empty((self.height, self.width, 3), dtype=np.uint8)
        frame[..., 0] = self._ramp.astype(np.uint8)
        frame[..., 1] = ((self._ramp + shift) % 256).astype(np.uint8)
        frame[..., 2] = np.uint8(int(shift))
        
        cv2.putText(
            frame,
            f"#{self.frames_generated}",
            (16, 48),
            cv2.FONT_HERSHEY_SIMPLEX,
            1.2,
            (255, 255, 255),
            2,
        )
        self.frames_generated += 1
        return frame
    
    async def close(self) -> None:
        self._opened = False

"""
Image Codec
===========

JPEG encode/decode and rasterization for frame payloads.

Design Rules:
    - This is the ONLY place in the codebase that touches JPEG bytes
    - Decoded images are BGR uint8 arrays of shape (H, W, 3)
    - Failures raise ImageDecodeError / ImageEncodeError; callers decide
      whether a failure is fatal (it never is for a single frame)
    - Functions are synchronous and CPU-bound; pipelines run them with
      asyncio.to_thread so the event loop keeps pacing
"""

import logging

import cv2
import numpy as np

from robostream.models.capture import Resolution


logger = logging.getLogger(__name__)


class ImageDecodeError(Exception):
    """Raised when a payload cannot be decoded into an image."""
    pass


class ImageEncodeError(Exception):
    """Raised when an image cannot be encoded to JPEG."""
    pass


def rasterize(image: np.ndarray, resolution: Resolution) -> np.ndarray:
    """
    Draw a source frame onto a raster of the target resolution.
    
    The source is scaled to exactly width x height, ignoring its native
    size and aspect ratio.
    
    Args:
        image: Source frame (H, W, 3) or (H, W)
        resolution: Target raster size
        
    Returns:
        BGR image of shape (resolution.height, resolution.width, 3)
    """
    if image.ndim == 2:
        image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    
    height, width = image.shape[:2]
    if (width, height) == (resolution.width, resolution.height):
        return image
    
    interpolation = (
        cv2.INTER_AREA
        if width > resolution.width or height > resolution.height
        else cv2.INTER_LINEAR
    )
    return cv2.resize(
        image,
        (resolution.width, resolution.height),
        interpolation=interpolation,
    )


def encode_jpeg(image: np.ndarray, quality: int) -> bytes:
    """
    Encode a BGR image to JPEG bytes.
    
    Args:
        image: BGR image, dtype uint8
        quality: JPEG quality 1..100
        
    Returns:
        Encoded JPEG bytes
        
    Raises:
        ImageEncodeError: If the image is invalid or encoding fails
    """
    if image is None or image.size == 0:
        raise ImageEncodeError("Cannot encode an empty image")
    if image.dtype != np.uint8:
        raise ImageEncodeError(f"Invalid dtype for encode: {image.dtype}")
    
    ok, buffer = cv2.imencode(
        ".jpg",
        image,
        [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)],
    )
    if not ok:
        raise ImageEncodeError("cv2.imencode returned failure")
    
    return buffer.tobytes()


def decode_jpeg(data: bytes) -> np.ndarray:
    """
    Decode JPEG bytes into a BGR image.
    
    Args:
        data: Raw JPEG payload
        
    Returns:
        BGR image as np.ndarray (H, W, 3), dtype=uint8
        
    Raises:
        ImageDecodeError: If the payload is empty, corrupt, or decodes
            to an unexpected shape
    """
    if not data:
        raise ImageDecodeError("Empty frame payload")
    
    try:
        nparr = np.frombuffer(data, np.uint8)
        bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise ImageDecodeError(f"cv2.imdecode failed: {e}") from e
    
    if bgr is None:
        raise ImageDecodeError(
            f"cv2.imdecode returned None for {len(data)} byte payload"
        )
    
    if bgr.ndim != 3 or bgr.shape[2] != 3:
        raise ImageDecodeError(f"Invalid image shape: {bgr.shape}")
    
    return bgr

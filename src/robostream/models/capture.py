"""
Capture Settings Models
=======================

Resolution, frame rate and JPEG quality used by the producer pipeline.

Bounds:
    - resolution: one of SUPPORTED_RESOLUTIONS
    - frame_rate: 1..60 frames per second
    - quality: 0.1..1.0 (mapped to JPEG quality 10..100 at encode time)

Models are frozen: a settings change always produces a new value, so a
pipeline iteration that already read its settings is never affected by
a later update.
"""

from typing import Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


SUPPORTED_RESOLUTIONS: Dict[Tuple[int, int], str] = {
    (640, 480): "VGA",
    (1280, 720): "HD",
    (1920, 1080): "Full HD",
}


class Resolution(BaseModel):
    """Target raster size in pixels."""
    
    model_config = ConfigDict(frozen=True)
    
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    
    @model_validator(mode="after")
    def _check_supported(self) -> "Resolution":
        if (self.width, self.height) not in SUPPORTED_RESOLUTIONS:
            supported = ", ".join(f"{w}x{h}" for w, h in SUPPORTED_RESOLUTIONS)
            raise ValueError(
                f"Unsupported resolution {self.width}x{self.height} "
                f"(supported: {supported})"
            )
        return self
    
    @property
    def label(self) -> str:
        """Human-readable name, e.g. 'HD'."""
        return SUPPORTED_RESOLUTIONS[(self.width, self.height)]
    
    @classmethod
    def parse(cls, value: str) -> "Resolution":
        """Parse a 'WIDTHxHEIGHT' string."""
        try:
            width, height = (int(part) for part in value.lower().split("x"))
        except ValueError as e:
            raise ValueError(f"Invalid resolution string: {value!r}") from e
        return cls(width=width, height=height)
    
    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


class CaptureSettings(BaseModel):
    """
    Producer capture/encode configuration.
    
    Attributes:
        resolution: Target raster size (source frames are resized to it)
        frame_rate: Frames per second to send
        quality: JPEG quality in [0.1, 1.0]
    """
    
    model_config = ConfigDict(frozen=True)
    
    resolution: Resolution = Field(
        default_factory=lambda: Resolution(width=1280, height=720),
    )
    frame_rate: int = Field(default=30, ge=1, le=60)
    quality: float = Field(default=0.8, ge=0.1, le=1.0)
    
    @property
    def frame_interval(self) -> float:
        """Seconds between frames at the configured rate."""
        return 1.0 / self.frame_rate
    
    @property
    def jpeg_quality(self) -> int:
        """Quality on the 1..100 scale used by JPEG encoders."""
        return max(1, min(100, int(round(self.quality * 100))))


# Quick presets (partial overrides)
PRESETS: Dict[str, dict] = {
    "low": {"quality": 0.3, "frame_rate": 15},
    "medium": {"quality": 0.5, "frame_rate": 30},
    "high": {"quality": 0.8, "frame_rate": 60},
}

"""
Settings Store
==============

Single shared source of truth for producer capture settings.

The store is passed explicitly to every producer pipeline it applies
to. Pipelines read `store.settings` once at the start of each iteration;
because CaptureSettings is immutable and updates swap in a new value, a
write is visible to the next iteration and never to the one in flight.

The store also keeps a display-only map of stream id → last error.

Example:
    store = SettingsStore()
    store.update_settings(quality=0.2)
    store.apply_preset("low")
    store.set_error("main", "Camera permission denied")
"""

import logging
from typing import Any, Dict, Optional

from robostream.models.capture import PRESETS, CaptureSettings, Resolution


logger = logging.getLogger(__name__)


class SettingsStore:
    """
    Mutable holder for the current CaptureSettings.
    
    `update_settings` is the only mutation entry point for settings.
    Invalid updates raise pydantic.ValidationError and leave the store
    unchanged.
    """
    
    def __init__(self, initial: Optional[CaptureSettings] = None) -> None:
        """
        Initialize settings store.
        
        Args:
            initial: Starting settings (defaults: 1280x720, 30 fps, 0.8)
        """
        self._settings = initial if initial is not None else CaptureSettings()
        self._errors: Dict[str, str] = {}
        self._revision: int = 0
    
    @property
    def settings(self) -> CaptureSettings:
        """Current settings value."""
        return self._settings
    
    @property
    def revision(self) -> int:
        """Incremented on every successful update."""
        return self._revision
    
    @property
    def errors(self) -> Dict[str, str]:
        """Copy of the stream id → last error map."""
        return dict(self._errors)
    
    def update_settings(self, **overrides: Any) -> CaptureSettings:
        """
        Merge overrides into the current settings.
        
        Fields not named keep their previous value. `resolution` may be
        given as a Resolution, a dict, or a 'WIDTHxHEIGHT' string.
        
        Args:
            **overrides: Any of resolution, frame_rate, quality
            
        Returns:
            The new settings value
            
        Raises:
            pydantic.ValidationError: If the merged value is out of bounds
            ValueError: If an unknown field is named
        """
        unknown = set(overrides) - set(CaptureSettings.model_fields)
        if unknown:
            raise ValueError(f"Unknown settings field(s): {sorted(unknown)}")
        
        resolution = overrides.get("resolution")
        if isinstance(resolution, str):
            overrides["resolution"] = Resolution.parse(resolution)
        
        merged = {**self._settings.model_dump(), **_dump(overrides)}
        new_settings = CaptureSettings.model_validate(merged)
        
        if new_settings != self._settings:
            self._settings = new_settings
            self._revision += 1
            logger.info(
                f"Capture settings updated: {new_settings.resolution} "
                f"@ {new_settings.frame_rate} fps, quality={new_settings.quality}"
            )
        return self._settings
    
    def apply_preset(self, name: str) -> CaptureSettings:
        """
        Apply a named quality preset (low / medium / high).
        
        Raises:
            KeyError: If the preset does not exist
        """
        if name not in PRESETS:
            raise KeyError(f"Unknown preset: {name!r}")
        return self.update_settings(**PRESETS[name])
    
    def set_error(self, stream_id: str, message: str) -> None:
        """Record the last error for a stream."""
        self._errors[stream_id] = message
    
    def clear_error(self, stream_id: str) -> None:
        """Forget the last error for a stream."""
        self._errors.pop(stream_id, None)


def _dump(overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Turn nested models in an override dict into plain dicts."""
    return {
        key: value.model_dump() if hasattr(value, "model_dump") else value
        for key, value in overrides.items()
    }

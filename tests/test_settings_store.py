"""
Settings Store Tests
====================
"""

import pytest
from pydantic import ValidationError

from robostream.models.capture import CaptureSettings, Resolution
from robostream.stream.settings_store import SettingsStore


class TestSettingsStore:
    """Tests for merge-style updates."""
    
    def test_quality_update_leaves_other_fields(self):
        """Verify a quality update leaves other fields alone."""
        store = SettingsStore()
        before = store.settings
        
        after = store.update_settings(quality=0.2)
        
        assert after.quality == 0.2
        assert after.frame_rate == before.frame_rate
        assert after.resolution == before.resolution
    
    def test_update_replaces_value_not_mutates(self):
        """Verify updates replace the settings object."""
        store = SettingsStore()
        snapshot = store.settings
        
        store.update_settings(frame_rate=10)
        
        assert snapshot.frame_rate == 30
        assert store.settings.frame_rate == 10
    
    def test_invalid_update_leaves_store_unchanged(self):
        """Verify an invalid update changes nothing."""
        store = SettingsStore()
        
        with pytest.raises(ValidationError):
            store.update_settings(frame_rate=120)
        
        assert store.settings == CaptureSettings()
        assert store.revision == 0
    
    def test_resolution_string(self):
        """Verify resolution accepts a WxH string."""
        store = SettingsStore()
        store.update_settings(resolution="640x480")
        
        assert store.settings.resolution == Resolution(width=640, height=480)
    
    def test_unknown_field(self):
        """Verify an unknown field is rejected."""
        with pytest.raises(ValueError):
            SettingsStore().update_settings(brightness=3)
    
    def test_revision_counts_real_changes(self):
        """Verify only real changes bump the revision."""
        store = SettingsStore()
        store.update_settings(quality=0.5)
        store.update_settings(quality=0.5)
        
        assert store.revision == 1
    
    def test_apply_preset(self):
        """Verify a preset replaces the settings."""
        store = SettingsStore()
        store.apply_preset("low")
        
        assert store.settings.quality == 0.3
        assert store.settings.frame_rate == 15
        assert str(store.settings.resolution) == "1280x720"
    
    def test_unknown_preset(self):
        """Verify an unknown preset is rejected."""
        with pytest.raises(KeyError):
            SettingsStore().apply_preset("ultra")
    
    def test_isolated_instances(self):
        """Verify stores do not share state."""
        a, b = SettingsStore(), SettingsStore()
        a.update_settings(quality=0.1)
        
        assert b.settings.quality == 0.8
    
    def test_error_map(self):
        """Verify errors are stored per stream and read as a copy."""
        store = SettingsStore()
        store.set_error("main", "Camera busy")
        
        errors = store.errors
        errors["side"] = "mutating the copy"
        
        assert store.errors == {"main": "Camera busy"}
        store.clear_error("main")
        store.clear_error("missing")
        assert store.errors == {}

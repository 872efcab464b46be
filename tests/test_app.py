"""
HTTP Service Tests
==================

Runs the FastAPI app in streamer mode with the test pattern and an
unreachable relay.
"""

import pytest
from fastapi.testclient import TestClient

import robostream.main
from robostream.config import Settings


@pytest.fixture
def client(monkeypatch):
    config = Settings(
        mode="streamer",
        capture={"source": "test-pattern", "frame_rate": 5, "width": 640, "height": 480},
        relay={"url": "ws://127.0.0.1:1", "reconnect_delay_seconds": 0.05, "open_timeout_seconds": 0.5},
        probe={"enabled": False},
    )
    monkeypatch.setattr(robostream.main, "settings", config)
    
    with TestClient(robostream.main.app) as client:
        yield client


class TestServiceEndpoints:
    """Tests for health, readiness and metrics endpoints."""
    
    def test_root_and_health(self, client):
        """Verify the root, health and ping endpoints respond."""
        assert client.get("/").json()["mode"] == "streamer"
        assert client.get("/health").json()["status"] == "healthy"
        assert client.get("/ping").json() == {"pong": True}
    
    def test_not_ready_without_relay(self, client):
        """Verify readiness fails while no relay session is up."""
        response = client.get("/ready")
        
        assert response.status_code == 503
        assert response.json()["streaming"] is True
    
    def test_metrics(self, client):
        """Verify the metrics endpoint reports runtime state."""
        body = client.get("/metrics").json()
        
        assert body["runtime"]["stream_id"] == "main"
        assert body["runtime"]["media_error"] is None
        assert body["network"] is None


class TestSettingsEndpoints:
    """Tests for the capture settings surface."""
    
    def test_get_settings(self, client):
        """Verify the current capture settings are returned."""
        body = client.get("/settings").json()
        
        assert body["resolution"] == "640x480"
        assert body["frame_rate"] == 5
        assert body["errors"] == {}
        assert body["presets"] == ["high", "low", "medium"]
    
    def test_patch_merges(self, client):
        """Verify a partial update keeps the other fields."""
        body = client.patch("/settings", json={"quality": 0.5}).json()
        
        assert body["quality"] == 0.5
        assert body["frame_rate"] == 5
        assert body["resolution"] == "640x480"
        assert body["revision"] == 1
    
    def test_patch_invalid_value(self, client):
        """Verify an out-of-range value is rejected."""
        response = client.patch("/settings", json={"frame_rate": 100})
        
        assert response.status_code == 422
        assert client.get("/settings").json()["frame_rate"] == 5
    
    def test_patch_unknown_field(self, client):
        """Verify an unknown field is rejected."""
        assert client.patch("/settings", json={"brightness": 2}).status_code == 422
    
    def test_presets(self, client):
        """Verify presets are listed and applied."""
        body = client.post("/settings/preset/high").json()
        
        assert body["quality"] == 0.8
        assert body["frame_rate"] == 60
        assert client.post("/settings/preset/ultra").status_code == 404


class TestStreamEndpoints:
    """Tests for stream and retry endpoints."""
    
    def test_streamer_has_no_viewed_streams(self, client):
        """Verify a streamer exposes no viewed streams."""
        assert client.get("/streams").json()["streams"] == []
        assert client.get("/streams/main/snapshot").status_code == 404
    
    def test_retry_while_streaming(self, client):
        """Verify retry reports the producer as streaming."""
        response = client.post("/streamer/retry")
        
        assert response.status_code == 200
        assert response.json()["status"] == "streaming"

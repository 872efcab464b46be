"""
robostream Configuration
========================

This module handles configuration loading for the streaming service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    ROBOSTREAM_RELAY_URL        -> relay.url
    ROBOSTREAM_RECONNECT_DELAY  -> relay.reconnect_delay_seconds
    ROBOSTREAM_MODE             -> mode
    ROBOSTREAM_STREAM_ID        -> stream_id
    ROBOSTREAM_CAPTURE_SOURCE   -> capture.source
    ROBOSTREAM_CAMERA_INDEX     -> capture.camera_index
    ROBOSTREAM_PROBE_URL        -> probe.url
    ROBOSTREAM_LOG_LEVEL        -> logging.level
    PORT                        -> server.port

Example:
    from robostream.config import settings
    
    print(settings.mode)
    print(settings.relay.url)
    print(settings.capture.frame_rate)
"""

import os
import logging
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from robostream.models.capture import CaptureSettings, Resolution


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""
    
    name: str = Field(default="robostream", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class RelayConfig(BaseModel):
    """Relay connection configuration."""
    
    url: str = Field(
        default="ws://localhost:5000",
        description="WebSocket URL of the relay",
    )
    reconnect_delay_seconds: float = Field(
        default=3.0,
        ge=0,
        description="Fixed delay between a disconnect and the next connect",
    )
    open_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for the WebSocket opening handshake",
    )
    ping_interval_seconds: Optional[float] = Field(
        default=20.0,
        gt=0,
        description="Keepalive ping interval (null disables)",
    )
    max_message_bytes: int = Field(
        default=16 * 1024 * 1024,
        ge=1024,
        description="Largest accepted incoming message",
    )


class CaptureConfig(BaseModel):
    """Producer capture configuration (initial settings)."""
    
    source: Literal["camera", "test-pattern"] = Field(
        default="camera",
        description="Frame source: a local camera or a synthetic test pattern",
    )
    camera_index: int = Field(default=0, ge=0, description="OpenCV camera index")
    width: int = Field(default=1280, description="Initial target width")
    height: int = Field(default=720, description="Initial target height")
    frame_rate: int = Field(default=30, ge=1, le=60, description="Initial frame rate")
    quality: float = Field(default=0.8, ge=0.1, le=1.0, description="Initial JPEG quality")
    
    def to_capture_settings(self) -> CaptureSettings:
        """Build the initial CaptureSettings for a settings store."""
        return CaptureSettings(
            resolution=Resolution(width=self.width, height=self.height),
            frame_rate=self.frame_rate,
            quality=self.quality,
        )


class DisplayConfig(BaseModel):
    """Consumer display configuration."""
    
    refresh_hz: float = Field(
        default=60.0,
        gt=0,
        le=240,
        description="Display refresh rate draws are aligned to",
    )
    stall_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Seconds without a stats update before a stream is reported stalled",
    )


class ProbeConfig(BaseModel):
    """Latency probe configuration."""
    
    enabled: bool = Field(default=True, description="Run the /ping latency probe")
    url: str = Field(
        default="http://localhost:5000/ping",
        description="URL of the relay ping endpoint",
    )
    interval_seconds: float = Field(default=5.0, gt=0, description="Seconds between probes")
    timeout_seconds: float = Field(default=2.0, gt=0, description="Probe request timeout")


class ServerConfig(BaseModel):
    """Server configuration."""
    
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for robostream.
    
    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """
    
    service: ServiceConfig = Field(default_factory=ServiceConfig)
    mode: Literal["streamer", "viewer", "multi-viewer"] = Field(
        default="multi-viewer",
        description="Role this service runs",
    )
    stream_id: str = Field(
        default="main",
        min_length=1,
        description="Stream id for streamer and viewer modes",
    )
    relay: RelayConfig = Field(default_factory=RelayConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    
    def session_kwargs(self) -> dict:
        """Keyword arguments shared by every TransportSession."""
        return {
            "reconnect_delay": self.relay.reconnect_delay_seconds,
            "open_timeout": self.relay.open_timeout_seconds,
            "ping_interval": self.relay.ping_interval_seconds,
            "max_message_bytes": self.relay.max_message_bytes,
        }


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.
    
    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values
        
    Args:
        config_path: Path to config.yaml. If None, searches common locations.
        
    Returns:
        Settings: Loaded configuration
    """
    # Find config file
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break
    
    # Load from YAML if exists
    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.info("No config file found, using defaults and environment variables")
    
    # Apply environment variable overrides
    _apply_env_overrides(config_data)
    
    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""
    
    # Relay settings
    if env_url := os.environ.get("ROBOSTREAM_RELAY_URL"):
        config_data.setdefault("relay", {})["url"] = env_url
    if env_delay := os.environ.get("ROBOSTREAM_RECONNECT_DELAY"):
        config_data.setdefault("relay", {})["reconnect_delay_seconds"] = float(env_delay)
    
    # Role
    if env_mode := os.environ.get("ROBOSTREAM_MODE"):
        config_data["mode"] = env_mode
    if env_stream := os.environ.get("ROBOSTREAM_STREAM_ID"):
        config_data["stream_id"] = env_stream
    
    # Capture settings
    if env_source := os.environ.get("ROBOSTREAM_CAPTURE_SOURCE"):
        config_data.setdefault("capture", {})["source"] = env_source
    if env_camera := os.environ.get("ROBOSTREAM_CAMERA_INDEX"):
        config_data.setdefault("capture", {})["camera_index"] = int(env_camera)
    
    # Probe
    if env_probe := os.environ.get("ROBOSTREAM_PROBE_URL"):
        config_data.setdefault("probe", {})["url"] = env_probe
    
    # Server settings
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    
    # Logging settings
    if env_log := os.environ.get("ROBOSTREAM_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)
    
    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    
    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)

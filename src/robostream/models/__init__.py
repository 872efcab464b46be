"""
Data Models
===========

Pydantic models for robostream.

Models:
    Session:
        - Role: streamer / viewer / multi-viewer
        - ConnectionState: transport session states
    
    Control:
        - RegisterMessage, ActiveStreamsMessage, ControlMessage
        - parse_control_message
    
    Capture:
        - Resolution, CaptureSettings, PRESETS
    
    Metrics:
        - Metrics: windowed stream statistics
"""

from robostream.models.session import ALL_STREAMS, ConnectionState, Role
from robostream.models.control import (
    ActiveStreamsMessage,
    ControlMessage,
    ControlMessageError,
    RegisterMessage,
    parse_control_message,
)
from robostream.models.capture import (
    PRESETS,
    SUPPORTED_RESOLUTIONS,
    CaptureSettings,
    Resolution,
)
from robostream.models.metrics import Metrics

__all__ = [
    # Session
    "ALL_STREAMS",
    "ConnectionState",
    "Role",
    # Control
    "ActiveStreamsMessage",
    "ControlMessage",
    "ControlMessageError",
    "RegisterMessage",
    "parse_control_message",
    # Capture
    "PRESETS",
    "SUPPORTED_RESOLUTIONS",
    "CaptureSettings",
    "Resolution",
    # Metrics
    "Metrics",
]

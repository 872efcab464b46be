"""
Session Models
==============

Roles and connection states for a transport session.

Lifecycle:
    CONNECTING → OPEN → REGISTERED → (socket closes) → RECONNECTING → CONNECTING …

    CLOSED is terminal and is only entered through an explicit close().
"""

from enum import Enum


class Role(str, Enum):
    """
    Role a session registers with at the relay.
    
    Attributes:
        STREAMER: Captures and transmits frames for one stream id
        VIEWER: Receives and renders frames for one stream id
        MULTI_VIEWER: Receives active-stream broadcasts for all stream ids
    """
    
    STREAMER = "streamer"
    VIEWER = "viewer"
    MULTI_VIEWER = "multi-viewer"


# Stream id a multi-viewer registers under
ALL_STREAMS = "all"


class ConnectionState(str, Enum):
    """Connection state of a transport session."""
    
    CONNECTING = "connecting"
    OPEN = "open"
    REGISTERED = "registered"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"
    
    @property
    def is_open(self) -> bool:
        """Whether a socket is currently connected."""
        return self in (ConnectionState.OPEN, ConnectionState.REGISTERED)

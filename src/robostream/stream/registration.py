"""
Registration Protocol
=====================

Handshake sent immediately after every (re)connection.

    {"type": "register", "role": "<role>", "streamId": "<id>"}

Registration is fire-and-forget: the relay sends no acknowledgement and
the session treats itself as registered as soon as the message is
written. Frames sent or received in the short window before the relay
binds the socket may be lost; nothing tries to recover them.
"""

import logging
from typing import Any, Union

from robostream.models.control import RegisterMessage
from robostream.models.session import ALL_STREAMS, Role


logger = logging.getLogger(__name__)


def build_register_message(role: Union[Role, str], stream_id: str) -> RegisterMessage:
    """
    Build the registration message for a session.
    
    Multi-viewer sessions always register under the "all" stream id.
    
    Args:
        role: Session role
        stream_id: Stream the session binds to
        
    Returns:
        RegisterMessage ready to serialize
    """
    role = Role(role)
    if role is Role.MULTI_VIEWER and stream_id != ALL_STREAMS:
        logger.warning(
            f"multi-viewer sessions register as {ALL_STREAMS!r}, "
            f"ignoring stream id {stream_id!r}"
        )
        stream_id = ALL_STREAMS
    return RegisterMessage(role=role, stream_id=stream_id)


async def register(websocket: Any, message: RegisterMessage) -> None:
    """
    Send a registration message on an open socket.
    
    Args:
        websocket: Open WebSocket connection
        message: Message from build_register_message
        
    Raises:
        websockets.exceptions.ConnectionClosed: If the socket closed
    """
    await websocket.send(message.to_json())
    logger.info(
        f"Registered as {message.role.value} for stream {message.stream_id!r}"
    )

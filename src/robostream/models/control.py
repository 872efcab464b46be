"""
Control Message Schema
======================

Pydantic models for the JSON control messages exchanged with the relay.

Wire Contract:
    Client → relay, once per connection:
        {"type": "register", "role": "streamer", "streamId": "main"}
    
    Relay → multi-viewer, periodically:
        {"type": "active-streams", "streams": ["main", "side"]}

    Any other `type` is accepted and ignored by receivers.

Example:
    from robostream.models.control import parse_control_message
    
    message = parse_control_message(raw)
    if isinstance(message, ActiveStreamsMessage):
        registry_update(message.streams)
"""

import json
from typing import Any, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from robostream.models.session import Role


class ControlMessageError(ValueError):
    """Raised when a text message is not a usable control message."""
    pass


class ControlMessage(BaseModel):
    """
    Generic control envelope.
    
    Used for messages whose `type` is not recognised. Extra fields are
    kept so they can be logged, but nothing acts on them.
    """
    
    model_config = ConfigDict(extra="allow")
    
    type: str = Field(..., min_length=1, description="Message discriminator")


class RegisterMessage(BaseModel):
    """
    Registration handshake sent on every (re)connection.
    
    Attributes:
        type: Always "register"
        role: Session role
        stream_id: Stream the session binds to (wire name: streamId)
    """
    
    model_config = ConfigDict(populate_by_name=True)
    
    type: Literal["register"] = "register"
    role: Role
    stream_id: str = Field(..., alias="streamId", min_length=1)
    
    def to_json(self) -> str:
        """Serialize with wire field names."""
        return self.model_dump_json(by_alias=True)


class ActiveStreamsMessage(BaseModel):
    """
    Discovery broadcast listing stream ids with an active streamer.
    
    Attributes:
        type: Always "active-streams"
        streams: Stream ids, in relay order (order carries no meaning)
    """
    
    type: Literal["active-streams"] = "active-streams"
    streams: List[str] = Field(default_factory=list)


AnyControlMessage = Union[RegisterMessage, ActiveStreamsMessage, ControlMessage]


_KNOWN_TYPES = {
    "register": RegisterMessage,
    "active-streams": ActiveStreamsMessage,
}


def parse_control_message(raw: Union[str, bytes]) -> AnyControlMessage:
    """
    Parse a text WebSocket message into a control message.
    
    Args:
        raw: UTF-8 JSON text
        
    Returns:
        RegisterMessage or ActiveStreamsMessage for known types,
        ControlMessage for any other type.
        
    Raises:
        ControlMessageError: Invalid JSON, non-object payload, missing
            `type`, or a known type with an invalid body
    """
    try:
        data: Any = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ControlMessageError(f"Invalid control message JSON: {e}") from e
    
    if not isinstance(data, dict):
        raise ControlMessageError(
            f"Control message must be a JSON object, got {type(data).__name__}"
        )
    
    message_type = data.get("type")
    if not isinstance(message_type, str) or not message_type:
        raise ControlMessageError("Control message is missing 'type'")
    
    model = _KNOWN_TYPES.get(message_type, ControlMessage)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ControlMessageError(
            f"Invalid '{message_type}' message: {e.error_count()} error(s)"
        ) from e

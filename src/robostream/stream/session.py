"""
Transport Session
=================

One persistent WebSocket connection to the relay, with fixed-delay
reconnection and a registration handshake on every connect.

State machine:
    CONNECTING → OPEN → REGISTERED → (socket closes) → RECONNECTING → CONNECTING …
    
    CLOSED is entered only through close().

Reconnect policy:
    After any socket close or connection failure the session waits
    exactly `reconnect_delay` seconds (default 3.0) and connects again.
    There is no backoff growth and no retry limit.

Message dispatch:
    Binary messages → on_binary(bytes)
    Text messages   → on_text(str)
    
    Handlers are awaited inline, so messages on one session are handled
    strictly in socket-arrival order. A handler exception is logged and
    does not drop the connection.

Example:
    session = await TransportSession.open(
        "ws://localhost:5000", Role.VIEWER, "main",
        on_binary=pipeline.on_binary_message,
    )
    ...
    await session.close()
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

import websockets
from pydantic import BaseModel
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from robostream.models.session import ConnectionState, Role
from robostream.stream.registration import build_register_message, register


logger = logging.getLogger(__name__)


BinaryHandler = Callable[[bytes], Awaitable[None]]
TextHandler = Callable[[str], Awaitable[None]]
StatusObserver = Callable[[ConnectionState], None]

DEFAULT_RECONNECT_DELAY = 3.0


class SessionMetrics:
    """Counters for TransportSession observability."""
    
    __slots__ = (
        "connect_count",
        "reconnect_count",
        "messages_received",
        "bytes_received",
        "messages_sent",
        "send_skipped",
        "send_errors",
        "handler_errors",
        "last_error",
    )
    
    def __init__(self) -> None:
        self.connect_count: int = 0
        self.reconnect_count: int = 0
        self.messages_received: int = 0
        self.bytes_received: int = 0
        self.messages_sent: int = 0
        self.send_skipped: int = 0
        self.send_errors: int = 0
        self.handler_errors: int = 0
        self.last_error: Optional[str] = None
    
    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {name: getattr(self, name) for name in self.__slots__}


class TransportSession:
    """
    Reconnecting WebSocket session bound to one role and stream id.
    
    The stream id and role are fixed for the lifetime of the session;
    every reconnect re-registers with the same values.
    
    Attributes:
        url: Relay WebSocket URL
        role: Registered role
        stream_id: Registered stream id
        reconnect_delay: Seconds between a close and the next connect
        metrics: Connection counters
    """
    
    def __init__(
        self,
        url: str,
        role: Union[Role, str],
        stream_id: str,
        *,
        on_binary: Optional[BinaryHandler] = None,
        on_text: Optional[TextHandler] = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        open_timeout: float = 10.0,
        ping_interval: Optional[float] = 20.0,
        close_timeout: float = 5.0,
        max_message_bytes: Optional[int] = 16 * 1024 * 1024,
    ) -> None:
        """
        Initialize transport session. Nothing connects until start().
        
        Args:
            url: Relay WebSocket URL
            role: streamer, viewer or multi-viewer
            stream_id: Stream to bind to ("all" for multi-viewer)
            on_binary: Coroutine called with each binary message
            on_text: Coroutine called with each text message
            reconnect_delay: Fixed delay before reconnecting (seconds)
            open_timeout: Timeout for the opening handshake (seconds)
            ping_interval: Keepalive ping interval (None disables)
            close_timeout: Timeout for the closing handshake (seconds)
            max_message_bytes: Largest accepted incoming message
        """
        if reconnect_delay < 0:
            raise ValueError("reconnect_delay must be >= 0")
        
        self.url = url
        self._register_message = build_register_message(role, stream_id)
        self.on_binary = on_binary
        self.on_text = on_text
        self.reconnect_delay = reconnect_delay
        self.open_timeout = open_timeout
        self.ping_interval = ping_interval
        self.close_timeout = close_timeout
        self.max_message_bytes = max_message_bytes
        
        # State
        self._state: ConnectionState = ConnectionState.CONNECTING
        self._websocket: Optional[Any] = None
        self._task: Optional[asyncio.Task] = None
        self._closed: bool = False
        self._stop_event: asyncio.Event = asyncio.Event()
        self._registered_event: asyncio.Event = asyncio.Event()
        self._observers: List[StatusObserver] = []
        
        self.metrics = SessionMetrics()
    
    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------
    
    @property
    def role(self) -> Role:
        """Registered role."""
        return self._register_message.role
    
    @property
    def stream_id(self) -> str:
        """Registered stream id."""
        return self._register_message.stream_id
    
    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state
    
    @property
    def registered(self) -> bool:
        """Whether frames can be sent right now."""
        return self._state is ConnectionState.REGISTERED
    
    @property
    def closed(self) -> bool:
        """Whether close() has been called."""
        return self._closed
    
    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    
    @classmethod
    async def open(
        cls,
        url: str,
        role: Union[Role, str],
        stream_id: str,
        **kwargs: Any,
    ) -> "TransportSession":
        """Create a session and start connecting in the background."""
        session = cls(url, role, stream_id, **kwargs)
        session.start()
        return session
    
    def start(self) -> None:
        """Start the connect/reconnect loop as a background task."""
        if self._closed:
            raise RuntimeError("Cannot start a closed session")
        if self._task is not None:
            return
        
        self._task = asyncio.create_task(
            self._run(),
            name=f"session:{self.role.value}:{self.stream_id}",
        )
    
    async def close(self) -> None:
        """
        Close the session permanently.
        
        Cancels any pending reconnect wait, closes the socket and waits
        for the background task to finish. No reconnect follows.
        """
        if self._closed:
            return
        
        logger.info(f"Closing session {self.role.value}:{self.stream_id}")
        self._closed = True
        self._stop_event.set()
        self._registered_event.clear()
        
        websocket = self._websocket
        if websocket is not None:
            try:
                await websocket.close()
            except Exception as e:
                logger.debug(f"Error while closing socket: {e}")
        
        if self._task is not None and self._task is not asyncio.current_task():
            try:
                await asyncio.wait_for(self._task, timeout=self.close_timeout)
            except asyncio.TimeoutError:
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            self._task = None
        
        self._set_state(ConnectionState.CLOSED)
    
    async def wait_registered(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the session is registered.
        
        Returns:
            True if registered, False on timeout.
        """
        try:
            await asyncio.wait_for(self._registered_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False
    
    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------
    
    def add_status_observer(self, observer: StatusObserver) -> None:
        """Register a callback for state transitions."""
        self._observers.append(observer)
    
    def remove_status_observer(self, observer: StatusObserver) -> None:
        """Unregister a state transition callback."""
        if observer in self._observers:
            self._observers.remove(observer)
    
    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------
    
    async def send(self, data: Union[bytes, str, dict, BaseModel]) -> bool:
        """
        Send a binary payload or a control message.
        
        Nothing is queued: if the session is not registered the message
        is dropped.
        
        Args:
            data: bytes (frame), str (raw JSON), dict or pydantic model
            
        Returns:
            True if the message was written to the socket.
        """
        websocket = self._websocket
        if websocket is None or self._state is not ConnectionState.REGISTERED:
            self.metrics.send_skipped += 1
            return False
        
        if isinstance(data, BaseModel):
            data = data.model_dump_json(by_alias=True)
        elif isinstance(data, dict):
            data = json.dumps(data)
        
        try:
            await websocket.send(data)
        except ConnectionClosed as e:
            self.metrics.send_errors += 1
            logger.debug(f"Send failed, connection closed: {e}")
            return False
        
        self.metrics.messages_sent += 1
        return True
    
    # -------------------------------------------------------------------------
    # Connection loop
    # -------------------------------------------------------------------------
    
    async def _run(self) -> None:
        """Connect, receive until the socket closes, wait, repeat."""
        logger.info(
            f"Session {self.role.value}:{self.stream_id} starting, "
            f"connecting to {self.url}"
        )
        
        while not self._closed:
            self._set_state(ConnectionState.CONNECTING)
            
            try:
                await self._connect_and_receive()
            except Exception as e:
                if self._closed:
                    break
                self.metrics.last_error = str(e) or type(e).__name__
                logger.warning(
                    f"Connection error on {self.role.value}:{self.stream_id}: "
                    f"{self.metrics.last_error}"
                )
            
            if self._closed:
                break
            
            # Fixed delay, unbounded retries
            self.metrics.reconnect_count += 1
            self._set_state(ConnectionState.RECONNECTING)
            logger.info(
                f"Reconnecting in {self.reconnect_delay:.1f}s "
                f"(attempt {self.metrics.reconnect_count})"
            )
            
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self.reconnect_delay,
                )
                # Stop event was set, exit
                break
            except asyncio.TimeoutError:
                pass
        
        logger.info(f"Session {self.role.value}:{self.stream_id} stopped")
    
    async def _connect_and_receive(self) -> None:
        """Open one connection, register, and dispatch messages until close."""
        async with websockets.connect(
            self.url,
            open_timeout=self.open_timeout,
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_interval,
            close_timeout=self.close_timeout,
            max_size=self.max_message_bytes,
        ) as ws:
            self._websocket = ws
            self.metrics.connect_count += 1
            
            try:
                if self._closed:
                    return
                self._set_state(ConnectionState.OPEN)
                
                await register(ws, self._register_message)
                self._set_state(ConnectionState.REGISTERED)
                
                async for message in ws:
                    if self._closed:
                        break
                    await self._dispatch(message)
                    
            except ConnectionClosedOK:
                logger.info("Connection closed normally")
            finally:
                self._websocket = None
                self._registered_event.clear()
    
    async def _dispatch(self, message: Union[bytes, str]) -> None:
        """Route one message to its handler."""
        self.metrics.messages_received += 1
        self.metrics.bytes_received += len(message)
        
        if isinstance(message, (bytes, bytearray, memoryview)):
            handler = self.on_binary
            payload: Any = bytes(message)
        else:
            handler = self.on_text
            payload = message
        
        if handler is None:
            return
        
        try:
            await handler(payload)
        except Exception:
            self.metrics.handler_errors += 1
            logger.exception(
                f"Message handler failed on {self.role.value}:{self.stream_id}"
            )
    
    def _set_state(self, state: ConnectionState) -> None:
        """Record a state transition and notify observers."""
        if state is self._state:
            return
        
        previous, self._state = self._state, state
        logger.debug(
            f"Session {self.role.value}:{self.stream_id}: "
            f"{previous.value} -> {state.value}"
        )
        
        if state is ConnectionState.REGISTERED:
            self._registered_event.set()
        else:
            self._registered_event.clear()
        
        for observer in list(self._observers):
            try:
                observer(state)
            except Exception:
                logger.exception("Status observer failed")

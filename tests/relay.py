"""
In-process relay for tests.

Implements the relay side of the protocol: accepts `register`, forwards
binary frames from a streamer to the viewers bound to the same stream
id, and sends `active-streams` broadcasts to multi-viewers.
"""

import asyncio
import json
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

import websockets
from websockets.exceptions import ConnectionClosed


class Relay:
    """Minimal relay bound to 127.0.0.1 on a free port."""
    
    def __init__(self, broadcast_on_change: bool = True) -> None:
        self.broadcast_on_change = broadcast_on_change
        self.registrations: List[Tuple[str, str]] = []
        self.connection_count: int = 0
        self.frames_forwarded: int = 0
        self.streamers: Dict[str, object] = {}
        self.viewers: Dict[str, Set[object]] = defaultdict(set)
        self.multi_viewers: Set[object] = set()
        self._connections: Set[object] = set()
        self._server = None
        self.port: Optional[int] = None
    
    @property
    def url(self) -> str:
        return f"ws://127.0.0.1:{self.port}"
    
    async def start(self) -> "Relay":
        self._server = await websockets.serve(self._handler, "127.0.0.1", 0)
        self.port = next(iter(self._server.sockets)).getsockname()[1]
        return self
    
    async def stop(self) -> None:
        await self.drop_all()
        self._server.close()
        await self._server.wait_closed()
    
    async def __aenter__(self) -> "Relay":
        return await self.start()
    
    async def __aexit__(self, *args) -> None:
        await self.stop()
    
    async def drop_all(self) -> None:
        """Close every client connection from the relay side."""
        for ws in list(self._connections):
            await ws.close()
    
    async def broadcast_active(self, streams: Optional[List[str]] = None) -> None:
        if streams is None:
            streams = sorted(self.streamers)
        message = json.dumps({"type": "active-streams", "streams": streams})
        for ws in list(self.multi_viewers):
            try:
                await ws.send(message)
            except ConnectionClosed:
                pass
    
    async def send_text(self, role: str, text: str) -> None:
        """Send raw text to every client registered with `role`."""
        targets = (
            self.multi_viewers
            if role == "multi-viewer"
            else {ws for group in self.viewers.values() for ws in group}
        )
        for ws in list(targets):
            await ws.send(text)
    
    async def _handler(self, ws) -> None:
        self.connection_count += 1
        self._connections.add(ws)
        role = stream_id = None
        try:
            async for message in ws:
                if isinstance(message, str):
                    data = json.loads(message)
                    if data.get("type") != "register":
                        continue
                    role, stream_id = data["role"], data["streamId"]
                    self.registrations.append((role, stream_id))
                    if role == "streamer":
                        self.streamers[stream_id] = ws
                        if self.broadcast_on_change:
                            await self.broadcast_active()
                    elif role == "viewer":
                        self.viewers[stream_id].add(ws)
                    elif role == "multi-viewer":
                        self.multi_viewers.add(ws)
                        if self.broadcast_on_change:
                            await self.broadcast_active()
                elif role == "streamer":
                    for viewer in list(self.viewers.get(stream_id, ())):
                        try:
                            await viewer.send(message)
                            self.frames_forwarded += 1
                        except ConnectionClosed:
                            pass
        except ConnectionClosed:
            pass
        finally:
            self._connections.discard(ws)
            self.multi_viewers.discard(ws)
            if stream_id is not None:
                self.viewers.get(stream_id, set()).discard(ws)
                if self.streamers.get(stream_id) is ws:
                    del self.streamers[stream_id]
                    if self.broadcast_on_change:
                        await self.broadcast_active()


async def wait_until(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    """Poll `predicate` until it is true or `timeout` passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return bool(predicate())

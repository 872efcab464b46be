"""
Transport Session Tests
=======================

Runs sessions against the in-process relay.
"""

import asyncio

from relay import Relay, wait_until
from robostream.models.session import ConnectionState, Role
from robostream.stream.session import TransportSession


class TestRegistration:
    """Tests for the connect/register handshake."""
    
    def test_registers_on_connect(self):
        """Verify the session registers after connecting."""
        async def scenario():
            async with Relay() as relay:
                session = TransportSession(relay.url, Role.STREAMER, "main", reconnect_delay=0.2)
                session.start()
                registered = await session.wait_registered(timeout=3.0)
                await wait_until(lambda: relay.registrations)
                await session.close()
                return registered, relay.registrations, session.state
        
        registered, registrations, state = asyncio.run(scenario())
        
        assert registered
        assert registrations == [("streamer", "main")]
        assert state is ConnectionState.CLOSED
    
    def test_multi_viewer_registers_as_all(self):
        """Verify a multi-viewer session registers as "all"."""
        async def scenario():
            async with Relay() as relay:
                session = TransportSession(relay.url, Role.MULTI_VIEWER, "ignored")
                session.start()
                await session.wait_registered(timeout=3.0)
                await wait_until(lambda: relay.registrations)
                await session.close()
                return relay.registrations
        
        assert asyncio.run(scenario()) == [("multi-viewer", "all")]
    
    def test_send_requires_registration(self):
        """Verify sends fail until registered."""
        async def scenario():
            session = TransportSession("ws://127.0.0.1:1", Role.STREAMER, "main")
            return await session.send(b"frame"), session.metrics.send_skipped
        
        assert asyncio.run(scenario()) == (False, 1)


class TestReconnect:
    """Tests for the fixed-delay reconnect loop."""
    
    def test_reregisters_after_drop(self):
        """Verify the session re-registers after a drop."""
        delay = 0.3
        
        async def scenario():
            loop = asyncio.get_running_loop()
            transitions = []
            
            async with Relay() as relay:
                session = TransportSession(relay.url, Role.VIEWER, "main", reconnect_delay=delay)
                session.add_status_observer(
                    lambda state: transitions.append((state, loop.time()))
                )
                session.start()
                await session.wait_registered(timeout=3.0)
                await wait_until(lambda: len(relay.registrations) == 1)
                
                await relay.drop_all()
                await wait_until(lambda: len(relay.registrations) == 2, timeout=5.0)
                await session.wait_registered(timeout=3.0)
                await session.close()
                return relay.registrations, transitions, session.metrics.reconnect_count
        
        registrations, transitions, reconnects = asyncio.run(scenario())
        
        assert registrations == [("viewer", "main"), ("viewer", "main")]
        assert reconnects == 1
        
        states = [state for state, _ in transitions]
        assert states[:3] == [ConnectionState.OPEN, ConnectionState.REGISTERED, ConnectionState.RECONNECTING]
        
        reconnecting_at = transitions[2][1]
        connecting_at = next(
            t for state, t in transitions[3:] if state is ConnectionState.CONNECTING
        )
        assert delay * 0.9 <= connecting_at - reconnecting_at < delay + 0.5
    
    def test_retries_failed_connects(self):
        """Verify failed connects are retried."""
        async def scenario():
            session = TransportSession(
                "ws://127.0.0.1:1",
                Role.STREAMER,
                "main",
                reconnect_delay=0.05,
                open_timeout=0.5,
            )
            session.start()
            await wait_until(lambda: session.metrics.reconnect_count >= 3, timeout=3.0)
            await session.close()
            return session
        
        session = asyncio.run(scenario())
        
        assert session.metrics.reconnect_count >= 3
        assert session.metrics.connect_count == 0
        assert session.metrics.last_error is not None
    
    def test_close_stops_reconnecting(self):
        """Verify close stops the reconnect loop."""
        async def scenario():
            async with Relay() as relay:
                session = TransportSession(relay.url, Role.VIEWER, "main", reconnect_delay=0.1)
                session.start()
                await session.wait_registered(timeout=3.0)
                await session.close()
                connections = relay.connection_count
                await asyncio.sleep(0.4)
                return connections, relay.connection_count, session
        
        before, after, session = asyncio.run(scenario())
        
        assert before == after == 1
        assert session.state is ConnectionState.CLOSED
        assert session.closed


class TestDispatch:
    """Tests for message dispatch by frame type."""
    
    def test_handler_error_does_not_drop_connection(self):
        """Verify a handler error keeps the connection open."""
        async def scenario():
            received = []
            
            async def on_text(raw):
                received.append(raw)
                if raw == "boom":
                    raise RuntimeError("handler failed")
            
            async with Relay() as relay:
                session = TransportSession(relay.url, Role.VIEWER, "main", on_text=on_text)
                session.start()
                await session.wait_registered(timeout=3.0)
                await wait_until(lambda: relay.viewers.get("main"))
                
                await relay.send_text("viewer", "boom")
                await relay.send_text("viewer", "after")
                await wait_until(lambda: len(received) == 2)
                state = session.state
                await session.close()
                return received, state, session.metrics.handler_errors
        
        received, state, errors = asyncio.run(scenario())
        
        assert received == ["boom", "after"]
        assert state is ConnectionState.REGISTERED
        assert errors == 1

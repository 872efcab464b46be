"""
Stream Registry
===============

Discovery-driven fan-out of consumers for a multi-viewer.

The relay periodically broadcasts the set of stream ids that have an
active streamer. The registry turns each broadcast into a typed
snapshot (sorted, de-duplicated) and compares it with the set of
consumers it currently holds:

    unchanged  → nothing happens
    changed    → destroy consumers for (old - new)
                 create consumers for (new - old)
                 ids in both are left untouched

A stream missing from a broadcast is torn down immediately; there is
no grace period. Creating an existing consumer or destroying a missing
one is a no-op, so repeated or overlapping broadcasts cannot churn.

Example:
    registry = StreamRegistry(create=open_viewer, destroy=close_viewer)
    
    await registry.on_active_streams(["main", "side"])   # creates 2
    await registry.on_active_streams(["side", "main"])   # no change
    await registry.on_active_streams(["main"])           # destroys "side"
"""

import logging
import time
from dataclasses import dataclass
from typing import (
    Awaitable,
    Callable,
    Dict,
    Generic,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
    TypeVar,
)

from robostream.models.metrics import Metrics


logger = logging.getLogger(__name__)


T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class StreamDiff:
    """Stream ids to create and destroy, each sorted."""
    
    added: Tuple[str, ...]
    removed: Tuple[str, ...]
    
    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


@dataclass(frozen=True, slots=True)
class StreamSnapshot:
    """
    Canonical set of active stream ids.
    
    `ids` is sorted and free of duplicates, so equality is set equality
    regardless of the order the relay listed them in.
    """
    
    ids: Tuple[str, ...] = ()
    
    @classmethod
    def from_ids(cls, ids: Iterable[str]) -> "StreamSnapshot":
        return cls(tuple(sorted(set(ids))))
    
    def diff(self, previous: "StreamSnapshot") -> StreamDiff:
        """Changes needed to go from `previous` to this snapshot."""
        current, before = set(self.ids), set(previous.ids)
        return StreamDiff(
            added=tuple(sorted(current - before)),
            removed=tuple(sorted(before - current)),
        )
    
    def __contains__(self, stream_id: object) -> bool:
        return stream_id in self.ids
    
    def __iter__(self) -> Iterator[str]:
        return iter(self.ids)
    
    def __len__(self) -> int:
        return len(self.ids)


class StreamRegistry(Generic[T]):
    """
    Holds one consumer per active stream id.
    
    Consumers are created and destroyed through the callbacks given at
    construction; the registry never inspects them beyond `metrics_of`.
    
    Attributes:
        broadcasts_seen: Broadcasts received
        broadcasts_applied: Broadcasts that changed the consumer set
    """
    
    def __init__(
        self,
        create: Callable[[str], Awaitable[T]],
        destroy: Callable[[str, T], Awaitable[None]],
        metrics_of: Optional[Callable[[T], Metrics]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize stream registry.
        
        Args:
            create: Coroutine building the consumer for a stream id
            destroy: Coroutine tearing a consumer down
            metrics_of: Reads a consumer's metrics (for snapshots and
                stall detection)
            clock: Monotonic clock
        """
        self._create = create
        self._destroy = destroy
        self._metrics_of = metrics_of
        self.clock = clock
        
        self._consumers: Dict[str, T] = {}
        self._created_at: Dict[str, float] = {}
        self._stalled: set = set()
        
        self.broadcasts_seen: int = 0
        self.broadcasts_applied: int = 0
    
    @property
    def snapshot(self) -> StreamSnapshot:
        """Snapshot of the stream ids that currently have a consumer."""
        return StreamSnapshot.from_ids(self._consumers)
    
    @property
    def consumers(self) -> Dict[str, T]:
        """Copy of the stream id → consumer map."""
        return dict(self._consumers)
    
    def get(self, stream_id: str) -> Optional[T]:
        return self._consumers.get(stream_id)
    
    async def on_active_streams(self, ids: Iterable[str]) -> Optional[StreamDiff]:
        """
        Apply an active-streams broadcast.
        
        Args:
            ids: Stream ids from the broadcast, in any order
            
        Returns:
            The applied diff, or None if the set did not change.
        """
        self.broadcasts_seen += 1
        incoming = StreamSnapshot.from_ids(ids)
        current = self.snapshot
        
        if incoming == current:
            return None
        
        diff = incoming.diff(current)
        logger.info(
            f"Active streams changed: +{list(diff.added)} -{list(diff.removed)}"
        )
        
        for stream_id in diff.removed:
            await self.destroy(stream_id)
        for stream_id in diff.added:
            await self.create(stream_id)
        
        self.broadcasts_applied += 1
        return diff
    
    async def create(self, stream_id: str) -> Optional[T]:
        """
        Create the consumer for a stream if it does not exist.
        
        A failing create is logged and leaves the id absent, so the
        next broadcast that still lists it will try again.
        
        Returns:
            The consumer (existing or new), or None if creation failed.
        """
        existing = self._consumers.get(stream_id)
        if existing is not None:
            return existing
        
        try:
            consumer = await self._create(stream_id)
        except Exception:
            logger.exception(f"Failed to create consumer for stream {stream_id!r}")
            return None
        
        self._consumers[stream_id] = consumer
        self._created_at[stream_id] = self.clock()
        logger.info(f"Consumer created for stream {stream_id!r}")
        return consumer
    
    async def destroy(self, stream_id: str) -> bool:
        """
        Destroy the consumer for a stream if it exists.
        
        Returns:
            True if a consumer was destroyed.
        """
        consumer = self._consumers.pop(stream_id, None)
        self._created_at.pop(stream_id, None)
        self._stalled.discard(stream_id)
        if consumer is None:
            return False
        
        try:
            await self._destroy(stream_id, consumer)
        except Exception:
            logger.exception(f"Failed to destroy consumer for stream {stream_id!r}")
        logger.info(f"Consumer destroyed for stream {stream_id!r}")
        return True
    
    async def close(self) -> None:
        """Destroy every consumer."""
        for stream_id in list(self._consumers):
            await self.destroy(stream_id)
    
    def metrics_snapshot(self) -> Dict[str, Metrics]:
        """Read-only metrics for every consumer."""
        if self._metrics_of is None:
            return {}
        return {
            stream_id: self._metrics_of(consumer)
            for stream_id, consumer in sorted(self._consumers.items())
        }
    
    def stalled_streams(self, timeout: float) -> List[str]:
        """
        Stream ids whose metrics have not updated for `timeout` seconds.
        
        A stream that has never flushed a window is measured from when
        its consumer was created.
        """
        if self._metrics_of is None:
            return []
        
        now = self.clock()
        stalled = []
        for stream_id, consumer in sorted(self._consumers.items()):
            last = self._metrics_of(consumer).last_update
            if last is None:
                last = self._created_at.get(stream_id, now)
            if now - last > timeout:
                stalled.append(stream_id)
        return stalled
    
    def check_stalled(self, timeout: float) -> List[str]:
        """Log streams that became stalled or recovered since the last check."""
        stalled = set(self.stalled_streams(timeout))
        for stream_id in sorted(stalled - self._stalled):
            logger.warning(f"Stream {stream_id!r} may be stalled")
        for stream_id in sorted(self._stalled - stalled):
            logger.info(f"Stream {stream_id!r} recovered")
        self._stalled = stalled
        return sorted(stalled)

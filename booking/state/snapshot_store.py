"""
Transition snapshot storage.

A TransitionSnapshot is the state of an appointment captured right before a
write. It lives from before-write until after-write consumes it, bounded by
a TTL (30 seconds by default) so a write that never completes cannot leak
entries.

Two backends:
- InMemorySnapshotStore: per-process dict guarded by an asyncio.Lock, with a
  background sweeper task that evicts expired entries.
- RedisSnapshotStore: SET ... EX + GETDEL; expiry is native and the store is
  shared by every API worker process.

Both expose the same coroutine API: put(), pop(), discard(), start(), stop().
"""

import asyncio
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from redis.exceptions import RedisError

from database.models import Appointment, AppointmentStatus

logger = logging.getLogger(__name__)

SNAPSHOT_KEY_PREFIX = "appointment:snapshot"


@dataclass(frozen=True)
class TransitionSnapshot:
    """Pre-write state of one appointment."""

    appointment_id: UUID
    start_time: datetime
    status: AppointmentStatus
    published: bool

    @classmethod
    def capture(cls, appointment: Appointment) -> "TransitionSnapshot":
        return cls(
            appointment_id=appointment.id,
            start_time=appointment.start_time,
            status=appointment.status,
            published=appointment.is_published,
        )

    def to_json(self) -> str:
        return json.dumps(
            {
                "appointment_id": str(self.appointment_id),
                "start_time": self.start_time.isoformat(),
                "status": self.status.value,
                "published": self.published,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "TransitionSnapshot":
        data = json.loads(raw)
        return cls(
            appointment_id=UUID(data["appointment_id"]),
            start_time=datetime.fromisoformat(data["start_time"]),
            status=AppointmentStatus(data["status"]),
            published=bool(data["published"]),
        )


class SnapshotStore(Protocol):
    async def put(self, snapshot: TransitionSnapshot) -> None: ...

    async def pop(self, appointment_id: UUID) -> TransitionSnapshot | None: ...

    async def discard(self, appointment_id: UUID) -> None: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


class InMemorySnapshotStore:
    """
    Bounded, concurrency-safe snapshot map with TTL eviction.

    Every access goes through one asyncio.Lock, so get+delete in pop() is
    atomic with respect to other request handlers. Expired entries are never
    returned, and the sweeper removes them even if nobody asks again.
    """

    def __init__(
        self,
        ttl_seconds: float = 30,
        sweep_interval_seconds: float = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: dict[UUID, tuple[float, TransitionSnapshot]] = {}
        self._lock = asyncio.Lock()
        self._sweeper: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._entries)

    async def put(self, snapshot: TransitionSnapshot) -> None:
        expires_at = self._clock() + self.ttl_seconds
        async with self._lock:
            self._entries[snapshot.appointment_id] = (expires_at, snapshot)

    async def pop(self, appointment_id: UUID) -> TransitionSnapshot | None:
        async with self._lock:
            entry = self._entries.pop(appointment_id, None)

        if entry is None:
            return None

        expires_at, snapshot = entry
        if expires_at <= self._clock():
            logger.debug(f"Snapshot expired before after-write | appointment_id={appointment_id}")
            return None
        return snapshot

    async def discard(self, appointment_id: UUID) -> None:
        async with self._lock:
            self._entries.pop(appointment_id, None)

    async def sweep(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = self._clock()
        async with self._lock:
            expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.info(f"Snapshot sweep evicted {len(expired)} expired entries")
        return len(expired)

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                await self.sweep()
            except Exception as e:
                logger.exception(f"Snapshot sweep failed: {e}")

    async def start(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever())
            logger.info(
                f"Snapshot sweeper started | ttl={self.ttl_seconds}s | "
                f"interval={self.sweep_interval_seconds}s"
            )

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("Snapshot sweeper stopped")


class RedisSnapshotStore:
    """Snapshot store shared across processes through Redis key expiry."""

    def __init__(self, client, ttl_seconds: int = 30):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(appointment_id: UUID) -> str:
        return f"{SNAPSHOT_KEY_PREFIX}:{appointment_id}"

    async def put(self, snapshot: TransitionSnapshot) -> None:
        try:
            await self.client.set(
                self._key(snapshot.appointment_id),
                snapshot.to_json(),
                ex=self.ttl_seconds,
            )
        except RedisError as e:
            # The write goes ahead without a snapshot and will not notify
            logger.error(f"Could not store snapshot | appointment_id={snapshot.appointment_id}: {e}")

    async def pop(self, appointment_id: UUID) -> TransitionSnapshot | None:
        try:
            raw = await self.client.getdel(self._key(appointment_id))
        except RedisError as e:
            logger.error(f"Could not read snapshot | appointment_id={appointment_id}: {e}")
            return None
        if raw is None:
            return None
        return TransitionSnapshot.from_json(raw)

    async def discard(self, appointment_id: UUID) -> None:
        try:
            await self.client.delete(self._key(appointment_id))
        except RedisError as e:
            logger.warning(f"Could not delete snapshot, it will expire | appointment_id={appointment_id}: {e}")

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None


def build_snapshot_store(settings) -> SnapshotStore:
    """Create the snapshot store selected by SNAPSHOT_BACKEND."""
    if settings.SNAPSHOT_BACKEND == "redis":
        from shared.redis_client import get_redis_client

        return RedisSnapshotStore(get_redis_client(), ttl_seconds=settings.SNAPSHOT_TTL_SECONDS)

    return InMemorySnapshotStore(
        ttl_seconds=settings.SNAPSHOT_TTL_SECONDS,
        sweep_interval_seconds=settings.SNAPSHOT_SWEEP_INTERVAL_SECONDS,
    )

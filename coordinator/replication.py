"""
File: coordinator/replication.py
Replication hub: keeps every worker's replica in line with an
authoritative mirror held by the coordinator.

Mutation events from all workers go through one queue and are applied one
at a time by a single task, so the mirror follows one linear history even
though the workers produce events concurrently. After each event the full
collection is pushed to every live worker, the sender included.
"""
import asyncio
import logging
from typing import Optional, Sequence

from common.metrics import coordinator_metrics
from common.models import MutationEvent, Snapshot
from common.store import ResourceStore
from coordinator.pool import WorkerHandle

logger = logging.getLogger("coordinator.replication")


class ReplicationHub:
    """
    Serializes mutation events and broadcasts snapshots.
    """

    def __init__(self, handles: Sequence[WorkerHandle], mirror: Optional[ResourceStore] = None):
        """
        Args:
            handles: Workers that receive snapshots
            mirror: Authoritative store; a fresh empty one by default
        """
        self.handles = handles
        self.mirror = mirror if mirror is not None else ResourceStore()
        self.events_processed = 0
        self._events: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return self._events.qsize()

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._relay_loop(), name="replication-relay")
            logger.info("Replication relay started")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Replication relay stopped")

    def submit(self, event: MutationEvent) -> None:
        """Queue an event received from a worker. Never blocks."""
        self._events.put_nowait(event)

    async def join(self) -> None:
        """Wait until every submitted event has been processed."""
        await self._events.join()

    async def _relay_loop(self) -> None:
        while True:
            event = await self._events.get()
            try:
                self.process(event)
            except Exception as e:
                logger.error(f"Failed to relay {event.operation.value} {event.record.id}: {e}", exc_info=True)
            finally:
                self._events.task_done()

    def process(self, event: MutationEvent) -> Snapshot:
        """
        Apply one event to the mirror and broadcast the result.

        Args:
            event: Mutation reported by a worker

        Returns:
            Snapshot: The collection pushed to the workers
        """
        self.mirror.apply(event)
        self.events_processed += 1

        coordinator_metrics["events"].labels(operation=event.operation.value).inc()
        coordinator_metrics["mirror_size"].set(len(self.mirror))

        snapshot = Snapshot(users=self.mirror.all())
        self.broadcast(snapshot)

        logger.debug(f"{event.operation.value} {event.record.id} relayed, mirror has {len(self.mirror)} users")
        return snapshot

    def broadcast(self, snapshot: Snapshot) -> int:
        """
        Queue a snapshot on every live worker's channel.

        Returns:
            int: Number of workers the snapshot was queued for
        """
        sent = 0
        for handle in self.handles:
            if not handle.alive:
                continue
            handle.channel.send(snapshot)
            sent += 1
        return sent

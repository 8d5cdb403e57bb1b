"""
File: common/channel.py
Fire-and-forget replication channel between processes.

Characteristics:
1. send() never blocks the caller; messages go into a bounded queue
2. A single background task delivers queued messages over HTTP, in order
3. When the queue is full the oldest message is discarded
4. A failed delivery is handed to an explicit policy (drop_on_unreachable
   by default); nothing is retried
"""
import asyncio
import logging
from typing import Any, Callable, Optional

import httpx
from pydantic import BaseModel

from common.metrics import channel_metrics

logger = logging.getLogger("replication")

UnreachablePolicy = Callable[["ReplicationChannel", Any, Exception], None]


def drop_on_unreachable(channel: "ReplicationChannel", payload: Any, error: Exception) -> None:
    """
    Delivery policy for an unreachable peer: log the failure and discard the message.

    The peer stays stale until a later message reaches it.
    """
    channel_metrics["deliveries"].labels(channel=channel.name, result="dropped_unreachable").inc()
    logger.warning(f"Channel {channel.name}: {channel.url} unreachable, message dropped ({error})")


class ReplicationChannel:
    """
    Asynchronous one-way channel to a single peer endpoint.
    """

    def __init__(self, name: str, url: str, method: str = "POST", maxsize: int = 100,
                 timeout: float = 2.0, on_unreachable: UnreachablePolicy = drop_on_unreachable,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            name: Channel name used in logs and metrics
            url: Endpoint that receives every message
            method: HTTP method used for delivery
            maxsize: Maximum number of undelivered messages kept
            timeout: Timeout of a single delivery in seconds
            on_unreachable: Called with (channel, payload, error) when a delivery fails
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.name = name
        self.url = url
        self.method = method
        self.timeout = timeout
        self.on_unreachable = on_unreachable
        self._transport = transport
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._client: Optional[httpx.AsyncClient] = None
        self._task: Optional[asyncio.Task] = None

        self.delivered = 0
        self.dropped = 0

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        """Start the delivery task on the running event loop."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._deliver_loop(), name=f"channel-{self.name}")
        logger.debug(f"Channel {self.name} started -> {self.method} {self.url}")

    async def stop(self) -> None:
        """Stop delivering. Messages still queued are discarded."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._client is not None:
            await self._client.aclose()
            self._client = None

        logger.debug(f"Channel {self.name} stopped")

    def send(self, payload: Any) -> None:
        """
        Queue a message for delivery and return immediately.

        Args:
            payload: A pydantic model or any JSON-serializable value
        """
        if self._queue.full():
            self._queue.get_nowait()
            self._queue.task_done()
            self.dropped += 1
            channel_metrics["deliveries"].labels(channel=self.name, result="dropped_overflow").inc()
            logger.warning(f"Channel {self.name} full, oldest message dropped")

        self._queue.put_nowait(payload)

    async def join(self) -> None:
        """Wait until every queued message has been delivered or dropped."""
        await self._queue.join()

    async def _deliver_loop(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                await self.deliver(payload)
            except Exception as e:
                logger.error(f"Channel {self.name}: unexpected delivery error: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    async def deliver(self, payload: Any) -> bool:
        """
        Deliver one message now.

        Returns:
            bool: True if the peer accepted the message
        """
        body = payload.model_dump(mode="json") if isinstance(payload, BaseModel) else payload

        try:
            response = await self.client.request(self.method, self.url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            self.dropped += 1
            self.on_unreachable(self, payload, e)
            return False

        self.delivered += 1
        channel_metrics["deliveries"].labels(channel=self.name, result="delivered").inc()
        return True

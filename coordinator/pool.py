"""
File: coordinator/pool.py
Worker process pool.

Spawns one worker process per slot, keeps a WorkerHandle for each of them
and watches for processes that exit. Exited workers are invalidated, not
restarted.
"""
import asyncio
import logging
import os
import subprocess
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from common.channel import ReplicationChannel
from common.metrics import coordinator_metrics

logger = logging.getLogger("coordinator.pool")


@dataclass
class WorkerHandle:
    """
    Coordinator-side view of one worker.

    Attributes:
        index: Position in the pool, starting at 1
        host: Host the worker listens on
        port: Port of the worker's users API
        control_port: Port of the worker's control API
        channel: Channel carrying snapshots to the worker
        process: Worker process, None for handles not spawned by a pool
        alive: False once the process has exited
    """
    index: int
    host: str
    port: int
    control_port: int
    channel: ReplicationChannel
    process: Optional[subprocess.Popen] = None
    alive: bool = True

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def control_url(self) -> str:
        return f"http://{self.host}:{self.control_port}"

    def invalidate(self) -> None:
        self.alive = False


def snapshot_channel(index: int, host: str, control_port: int, maxsize: int = 100,
                     timeout: float = 2.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> ReplicationChannel:
    return ReplicationChannel(
        name=f"worker-{index}-snapshots",
        url=f"http://{host}:{control_port}/replication/snapshot",
        method="PUT",
        maxsize=maxsize,
        timeout=timeout,
        transport=transport,
    )


class WorkerPool:
    """
    Fixed-size pool of worker processes.

    Worker i (1-based) serves the users API on base_port + i and its
    control API on base_control_port + i.
    """

    def __init__(self, size: int, host: str, base_port: int, base_control_port: int,
                 coordinator_url: str, queue_size: int = 100, replication_timeout: float = 2.0,
                 startup_attempts: int = 50, startup_wait: float = 0.2, monitor_interval: float = 1.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            size: Number of workers, fixed for the lifetime of the pool
            host: Host the workers bind to
            base_port: Coordinator's public port
            base_control_port: Coordinator's control port
            coordinator_url: Control URL the workers report events to
            queue_size: Capacity of each snapshot channel
            replication_timeout: Timeout of a single snapshot delivery
            startup_attempts: Health checks per worker before giving up
            startup_wait: Seconds between health checks
            monitor_interval: Seconds between process liveness checks
            transport: Optional httpx transport for health checks and channels
        """
        if size < 1:
            raise ValueError("Worker pool needs at least one worker")

        self.size = size
        self.host = host
        self.base_port = base_port
        self.base_control_port = base_control_port
        self.coordinator_url = coordinator_url
        self.queue_size = queue_size
        self.replication_timeout = replication_timeout
        self.startup_attempts = startup_attempts
        self.startup_wait = startup_wait
        self.monitor_interval = monitor_interval
        self._transport = transport

        self.handles: List[WorkerHandle] = []
        self._monitor_task: Optional[asyncio.Task] = None

    def worker_env(self, index: int) -> Dict[str, str]:
        """Environment passed to worker `index`."""
        env = os.environ.copy()
        env["WORKER_INDEX"] = str(index)
        env["HOST"] = self.host
        env["PORT"] = str(self.base_port + index)
        env["CONTROL_PORT"] = str(self.base_control_port + index)
        env["COORDINATOR_URL"] = self.coordinator_url
        return env

    def spawn(self, index: int) -> WorkerHandle:
        """
        Spawn worker `index` and return its handle.
        """
        process = subprocess.Popen(
            [sys.executable, "-m", "worker.main"],
            env=self.worker_env(index),
        )

        handle = WorkerHandle(
            index=index,
            host=self.host,
            port=self.base_port + index,
            control_port=self.base_control_port + index,
            channel=snapshot_channel(index, self.host, self.base_control_port + index,
                                     self.queue_size, self.replication_timeout, self._transport),
            process=process,
        )
        logger.info(f"Worker {index} spawned (PID: {process.pid}, port {handle.port})")
        return handle

    async def start(self) -> None:
        """Spawn every worker, start their channels and wait until they answer."""
        logger.info(f"Spawning {self.size} worker processes...")

        for index in range(1, self.size + 1):
            handle = self.spawn(index)
            await handle.channel.start()
            self.handles.append(handle)

        coordinator_metrics["alive_workers"].set(len(self.handles))

        await self.wait_ready()
        self._monitor_task = asyncio.create_task(self.monitor(self.monitor_interval), name="worker-monitor")

    async def wait_ready(self) -> None:
        """
        Wait until every worker's control API answers /health.

        A worker that never answers is logged and kept; requests routed to
        it fail with a dispatch error.
        """
        async with httpx.AsyncClient(timeout=self.startup_wait * 5, transport=self._transport) as client:
            for handle in self.handles:
                try:
                    async for attempt in AsyncRetrying(
                        stop=stop_after_attempt(self.startup_attempts),
                        wait=wait_fixed(self.startup_wait),
                        retry=retry_if_exception_type(httpx.HTTPError),
                        reraise=True,
                    ):
                        with attempt:
                            response = await client.get(f"{handle.control_url}/health")
                            response.raise_for_status()
                    logger.debug(f"Worker {handle.index} ready")
                except httpx.HTTPError as e:
                    logger.error(f"Worker {handle.index} did not become ready: {e}")

    def check_processes(self) -> List[WorkerHandle]:
        """
        Invalidate handles whose process has exited.

        Returns:
            List[WorkerHandle]: Handles invalidated by this call
        """
        exited = []
        for handle in self.handles:
            if not handle.alive or handle.process is None:
                continue
            returncode = handle.process.poll()
            if returncode is not None:
                handle.invalidate()
                exited.append(handle)
                logger.warning(f"Worker {handle.index} (PID {handle.process.pid}) exited with code {returncode}")

        if exited:
            coordinator_metrics["alive_workers"].set(len(self.alive_handles()))
        return exited

    async def monitor(self, interval: float = 1.0) -> None:
        """Poll worker processes until cancelled."""
        while True:
            await asyncio.sleep(interval)
            for handle in self.check_processes():
                await handle.channel.stop()

    def alive_handles(self) -> List[WorkerHandle]:
        return [handle for handle in self.handles if handle.alive]

    async def stop(self, timeout: float = 5.0) -> None:
        """Stop monitoring, close the channels and terminate every worker."""
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None

        for handle in self.handles:
            await handle.channel.stop()
            self._stop_process(handle, timeout)
            handle.invalidate()

        coordinator_metrics["alive_workers"].set(0)
        logger.info("Worker processes stopped")

    def _stop_process(self, handle: WorkerHandle, timeout: float) -> None:
        proc = handle.process
        if proc is None or proc.poll() is not None:
            return

        # SIGTERM first for a graceful shutdown
        proc.terminate()
        try:
            proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Force killing worker {handle.index} (PID {proc.pid})")
            proc.kill()
            proc.wait(timeout=2.0)

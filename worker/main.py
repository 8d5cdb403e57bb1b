#!/usr/bin/env python3
"""
File: worker/main.py
Entry point for a worker process.

Started by the coordinator with its index, ports and the coordinator's
control URL in the environment. Without COORDINATOR_URL the worker runs
standalone and publishes no mutation events.
"""
import argparse
import asyncio
import logging
import os
from typing import Optional

import uvicorn

from common.channel import ReplicationChannel
from common.logging import setup_logging
from common.store import ResourceStore
from common.utils import get_debug_mode, run_servers
from worker import config
from worker.api import create_api, create_control_api
from worker.service import UserService

logger = logging.getLogger("worker")


async def serve_worker(worker_index: int, host: str, port: int, control_port: int,
                       coordinator_url: Optional[str] = None, log_level: str = "info") -> None:
    """
    Run one worker until it is told to exit.

    Args:
        worker_index: Index of this worker in the pool (0 when standalone)
        host: Interface to bind
        port: Port of the public users API
        control_port: Port of the private control API
        coordinator_url: Base URL of the coordinator's control API, if any
        log_level: uvicorn log level
    """
    store = ResourceStore()

    channel = None
    if coordinator_url:
        channel = ReplicationChannel(
            name=f"worker-{worker_index}-events",
            url=f"{coordinator_url}/replication/events",
            method="POST",
            maxsize=config.REPLICATION_QUEUE_SIZE,
            timeout=config.REPLICATION_TIMEOUT,
        )
        await channel.start()

    service = UserService(store, publish=channel.send if channel else None)

    public_server = uvicorn.Server(uvicorn.Config(
        create_api(service, worker_index, port), host=host, port=port, log_level=log_level))
    control_server = uvicorn.Server(uvicorn.Config(
        create_control_api(store, worker_index), host=host, port=control_port, log_level=log_level))

    logger.important(f"Worker {worker_index} started on port {port} "
                     f"(control {control_port}), process id #{os.getpid()}")
    try:
        await run_servers(public_server, control_server)
    finally:
        if channel is not None:
            await channel.stop()
        logger.important(f"Worker {worker_index} stopped")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Users cluster - worker")
    parser.add_argument("--index", type=int, default=config.WORKER_INDEX, help="Index of this worker")
    parser.add_argument("--host", type=str, default=config.HOST, help="Interface to bind")
    parser.add_argument("--port", type=int, default=config.PORT, help="Port of the users API")
    parser.add_argument("--control-port", type=int, default=config.CONTROL_PORT, help="Port of the control API")
    parser.add_argument("--coordinator-url", type=str, default=config.COORDINATOR_URL,
                        help="Control URL of the coordinator; empty to run standalone")
    parser.add_argument("--debug", action="store_true", default=get_debug_mode(), help="Enable debug mode")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(f"worker-{args.index}", debug=args.debug, node_id=args.index)

    asyncio.run(serve_worker(
        worker_index=args.index,
        host=args.host,
        port=args.port,
        control_port=args.control_port,
        coordinator_url=args.coordinator_url or None,
        log_level="debug" if args.debug else "info",
    ))


if __name__ == "__main__":
    main()

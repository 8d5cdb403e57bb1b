#!/usr/bin/env python3
"""
File: coordinator/main.py
Entry point of the users cluster.

Modes:
- multi: coordinator plus a pool of worker processes (default)
- single: one worker serving the users API directly, no replication
"""
import argparse
import asyncio
import logging

import uvicorn

from common.logging import setup_logging
from common.utils import get_debug_mode, run_servers
from coordinator import config
from coordinator.api import create_control_api, create_proxy_api
from coordinator.balancer import RoundRobinBalancer
from coordinator.pool import WorkerPool
from coordinator.replication import ReplicationHub
from worker.main import serve_worker

logger = logging.getLogger("coordinator")


async def run_cluster(args: argparse.Namespace) -> None:
    """
    Spawn the worker pool, then serve the proxy and control apps until shutdown.
    """
    log_level = "debug" if args.debug else "info"
    coordinator_url = f"http://{args.host}:{args.control_port}"

    pool = WorkerPool(
        size=args.workers,
        host=args.host,
        base_port=args.port,
        base_control_port=args.control_port,
        coordinator_url=coordinator_url,
        queue_size=config.REPLICATION_QUEUE_SIZE,
        replication_timeout=config.REPLICATION_TIMEOUT,
        startup_attempts=config.WORKER_STARTUP_ATTEMPTS,
        startup_wait=config.WORKER_STARTUP_WAIT,
        monitor_interval=config.MONITOR_INTERVAL,
    )
    balancer = None
    hub = None

    try:
        await pool.start()

        balancer = RoundRobinBalancer(pool.handles, timeout=config.PROXY_TIMEOUT)
        hub = ReplicationHub(pool.handles)
        await hub.start()

        proxy_server = uvicorn.Server(uvicorn.Config(
            create_proxy_api(balancer), host=args.host, port=args.port, log_level=log_level))
        control_server = uvicorn.Server(uvicorn.Config(
            create_control_api(balancer, hub), host=args.host, port=args.control_port, log_level=log_level))

        logger.important(f"Coordinator listening on port {args.port} with {pool.size} workers "
                         f"(control {args.control_port})")
        await run_servers(proxy_server, control_server)
    finally:
        if hub is not None:
            await hub.stop()
        if balancer is not None:
            await balancer.close()
        await pool.stop()
        logger.important("Coordinator stopped")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Users cluster - coordinator")
    parser.add_argument("--mode", choices=["single", "multi"], default="multi",
                        help="multi: coordinator and worker pool; single: one worker, no replication")
    parser.add_argument("--host", type=str, default=config.HOST, help="Interface to bind")
    parser.add_argument("--port", type=int, default=config.PORT, help="Public port")
    parser.add_argument("--control-port", type=int, default=config.CONTROL_PORT, help="Control port")
    parser.add_argument("--workers", type=int, default=config.WORKERS, help="Number of worker processes")
    parser.add_argument("--debug", action="store_true", default=get_debug_mode(), help="Enable debug mode")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    if args.mode == "single":
        setup_logging("worker-0", debug=args.debug, node_id=0)
        asyncio.run(serve_worker(
            worker_index=0,
            host=args.host,
            port=args.port,
            control_port=args.control_port,
            coordinator_url=None,
            log_level="debug" if args.debug else "info",
        ))
        return

    setup_logging("coordinator", debug=args.debug, node_id=0)
    asyncio.run(run_cluster(args))


if __name__ == "__main__":
    main()

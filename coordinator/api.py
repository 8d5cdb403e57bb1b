"""
File: coordinator/api.py
HTTP surface of the coordinator.

- The proxy app listens on the public port and forwards every request to
  a worker chosen by the balancer.
- The control app listens on a private port; workers report mutation
  events to it and operators read status and metrics from it.
"""
import logging
from typing import List

from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from common.handlers import register_error_handlers
from common.logging import get_uptime
from common.models import HealthResponse, MutationEvent
from common.utils import current_timestamp
from coordinator.balancer import RoundRobinBalancer
from coordinator.replication import ReplicationHub

logger = logging.getLogger("coordinator")

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class WorkerInfo(BaseModel):
    index: int
    address: str
    alive: bool


class StatusResponse(BaseModel):
    pool_size: int = Field(..., description="Number of workers spawned at startup")
    cursor: int = Field(..., description="Index into the pool of the next worker to serve a request")
    workers: List[WorkerInfo]
    mirror_size: int = Field(..., description="Users in the authoritative mirror")
    events_processed: int = Field(..., description="Mutation events relayed so far")
    pending_events: int = Field(..., description="Events waiting to be relayed")
    uptime: float = Field(..., description="Time running in seconds")


def create_proxy_api(balancer: RoundRobinBalancer) -> FastAPI:
    """
    Create the public proxy application.

    Args:
        balancer: Balancer that selects and calls the workers

    Returns:
        FastAPI: Configured application
    """
    app = FastAPI(title="Users Cluster", docs_url=None, redoc_url=None, openapi_url=None)
    register_error_handlers(app)

    @app.api_route("/{path:path}", methods=PROXY_METHODS)
    async def proxy(request: Request):
        return await balancer.dispatch(request)

    return app


def create_control_api(balancer: RoundRobinBalancer, hub: ReplicationHub) -> FastAPI:
    """
    Create the private control application.

    Args:
        balancer: Balancer whose pool and cursor are reported in /status
        hub: Replication hub that receives worker events

    Returns:
        FastAPI: Configured application
    """
    app = FastAPI(title="Users Cluster control", docs_url=None, redoc_url=None)

    @app.post("/replication/events", status_code=202)
    async def receive_event(event: MutationEvent):
        logger.debug(f"Event received: {event.operation.value} {event.record.id}")
        hub.submit(event)
        return {"accepted": True}

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(timestamp=current_timestamp())

    @app.get("/status", response_model=StatusResponse)
    async def get_status():
        return StatusResponse(
            pool_size=balancer.pool_size,
            cursor=balancer.cursor,
            workers=[
                WorkerInfo(index=handle.index, address=handle.base_url, alive=handle.alive)
                for handle in balancer.handles
            ],
            mirror_size=len(hub.mirror),
            events_processed=hub.events_processed,
            pending_events=hub.pending,
            uptime=get_uptime(),
        )

    @app.get("/metrics")
    async def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app

"""
File: worker/api.py
HTTP surface of a worker.

Two applications are built here:
- the public users API, reached only through the coordinator's proxy
  (or directly in single mode)
- the private control API, used by the coordinator to push snapshots and
  to check health
"""
import logging
import os

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from common.errors import InvalidEndpoint, InvalidIdentifier
from common.handlers import register_error_handlers
from common.logging import get_uptime
from common.metrics import worker_metrics
from common.models import HealthResponse, Snapshot
from common.store import ResourceStore
from common.utils import current_timestamp
from worker.config import USERS_ENDPOINT
from worker.service import UserService

logger = logging.getLogger("worker")


class StatusResponse(BaseModel):
    worker_index: int = Field(..., description="Index of this worker in the pool")
    pid: int = Field(..., description="Process id")
    users: int = Field(..., description="Number of users in the local store")
    snapshots_applied: int = Field(..., description="Snapshots received from the coordinator")
    uptime: float = Field(..., description="Time running in seconds")


def create_api(service: UserService, worker_index: int = 0, port: int = 0) -> FastAPI:
    """
    Create the public users API.

    Args:
        service: Resource service bound to this worker's store
        worker_index: Index of this worker, used in logs
        port: Port this app is served on, used in logs

    Returns:
        FastAPI: Configured application
    """
    app = FastAPI(title="Users API", docs_url=None, redoc_url=None, openapi_url=None,
                  redirect_slashes=False)
    register_error_handlers(app)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        logger.debug(f"{request.method} {request.url.path} -> {response.status_code} "
                     f"(worker {worker_index}, port {port}, pid {os.getpid()})")
        return response

    @app.get(USERS_ENDPOINT)
    async def list_users():
        return JSONResponse([user.model_dump() for user in service.list()])

    @app.post(USERS_ENDPOINT)
    async def create_user(request: Request):
        user = service.create(await request.body())
        return JSONResponse(user.model_dump(), status_code=201)

    @app.api_route(USERS_ENDPOINT, methods=["PUT", "DELETE"])
    async def collection_without_id():
        # The collection itself is not a valid user id
        raise InvalidIdentifier(USERS_ENDPOINT)

    @app.get(USERS_ENDPOINT + "/{user_id}")
    async def get_user(user_id: str):
        return JSONResponse(service.get(user_id).model_dump())

    @app.post(USERS_ENDPOINT + "/{user_id}")
    async def create_on_member(user_id: str):
        raise InvalidEndpoint(user_id)

    @app.put(USERS_ENDPOINT + "/{user_id}")
    async def update_user(user_id: str, request: Request):
        user = service.update(user_id, await request.body())
        return JSONResponse(user.model_dump())

    @app.delete(USERS_ENDPOINT + "/{user_id}")
    async def delete_user(user_id: str):
        service.delete(user_id)
        return Response(status_code=204)

    return app


def create_control_api(store: ResourceStore, worker_index: int = 0) -> FastAPI:
    """
    Create the private control API of a worker.

    Args:
        store: Store replaced by incoming snapshots
        worker_index: Index of this worker

    Returns:
        FastAPI: Configured application
    """
    app = FastAPI(title=f"Worker {worker_index} control", docs_url=None, redoc_url=None)
    state = {"snapshots_applied": 0}

    @app.put("/replication/snapshot")
    async def apply_snapshot(snapshot: Snapshot):
        store.replace_all(snapshot.users)
        state["snapshots_applied"] += 1
        worker_metrics["snapshots"].inc()
        worker_metrics["store_size"].set(len(store))
        logger.debug(f"Snapshot applied: {len(snapshot.users)} users")
        return {"applied": len(snapshot.users)}

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(timestamp=current_timestamp())

    @app.get("/status", response_model=StatusResponse)
    async def get_status():
        return StatusResponse(
            worker_index=worker_index,
            pid=os.getpid(),
            users=len(store),
            snapshots_applied=state["snapshots_applied"],
            uptime=get_uptime(),
        )

    @app.get("/metrics")
    async def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app

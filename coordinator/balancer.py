"""
File: coordinator/balancer.py
Round-robin dispatch of client requests to the worker pool.

The request is streamed to the selected worker and the worker's response
is streamed back unchanged: status code, headers and body bytes.
"""
import logging
from typing import List, Optional, Sequence

import httpx
from fastapi import Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from common.errors import DispatchError
from common.metrics import coordinator_metrics
from coordinator.pool import WorkerHandle

logger = logging.getLogger("coordinator.balancer")

# Connection-scoped headers, never forwarded by a proxy
HOP_BY_HOP_HEADERS = {
    b"connection",
    b"keep-alive",
    b"proxy-authenticate",
    b"proxy-authorization",
    b"te",
    b"trailers",
    b"transfer-encoding",
    b"upgrade",
}


def forwardable_headers(headers: Sequence[tuple]) -> List[tuple]:
    return [(name, value) for name, value in headers if name.lower() not in HOP_BY_HOP_HEADERS]


def upstream_target(scope: dict) -> str:
    """
    Path and query of a request exactly as the client sent them.

    The decoded scope["path"] would turn %2F into a path separator.
    """
    raw_path = scope.get("raw_path") or scope["path"].encode("utf-8")
    # Some servers include the query string in raw_path
    target = raw_path.split(b"?", 1)[0].decode("latin-1")
    query = scope.get("query_string", b"")
    if query:
        target = f"{target}?{query.decode('latin-1')}"
    return target


class RoundRobinBalancer:
    """
    Selects workers in strict rotation and proxies requests to them.

    The pool size is captured once at construction and bounds the cursor
    for the lifetime of the balancer.
    """

    def __init__(self, handles: Sequence[WorkerHandle], timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            handles: Worker handles in dispatch order
            timeout: Timeout for a proxied request in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        if not handles:
            raise ValueError("Balancer needs at least one worker")

        self.handles: List[WorkerHandle] = list(handles)
        self.pool_size = len(self.handles)
        self.cursor = 0
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def next_handle(self) -> WorkerHandle:
        """
        Return the worker at the cursor and advance the cursor.

        Returns:
            WorkerHandle: Worker selected for the next request
        """
        handle = self.handles[self.cursor]
        self.cursor = (self.cursor + 1) % self.pool_size
        return handle

    async def dispatch(self, request: Request) -> StreamingResponse:
        """
        Proxy one request to the next worker.

        The cursor moves on before the request is sent, so a dead worker
        only fails the requests that land on it.

        Args:
            request: Incoming client request

        Returns:
            StreamingResponse: The worker's response

        Raises:
            DispatchError: If the selected worker cannot be reached
        """
        handle = self.next_handle()

        if not handle.alive:
            coordinator_metrics["dispatch_errors"].labels(worker=str(handle.index)).inc()
            raise DispatchError(handle.index, "process exited")

        url = f"{handle.base_url}{upstream_target(request.scope)}"

        headers = [(name, value) for name, value in forwardable_headers(request.headers.raw) if name.lower() != b"host"]

        # Only stream a body when the client announced one
        content = None
        if "content-length" in request.headers or "transfer-encoding" in request.headers:
            content = request.stream()

        upstream_request = self.client.build_request(request.method, url, headers=headers, content=content)

        try:
            upstream = await self.client.send(upstream_request, stream=True)
        except httpx.HTTPError as e:
            coordinator_metrics["dispatch_errors"].labels(worker=str(handle.index)).inc()
            logger.warning(f"Dispatch of {request.method} {request.url.path} to worker {handle.index} failed: {e}")
            raise DispatchError(handle.index, str(e)) from e

        coordinator_metrics["dispatches"].labels(worker=str(handle.index)).inc()
        logger.debug(f"{request.method} {request.url.path} -> worker {handle.index} ({upstream.status_code})")

        response = StreamingResponse(
            upstream.aiter_raw(),
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        # Raw list keeps repeated headers such as set-cookie
        response.raw_headers = [
            (name.lower(), value) for name, value in forwardable_headers(upstream.headers.raw)
        ]
        return response

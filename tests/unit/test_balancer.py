"""
Unit tests for round-robin dispatch and request proxying.
"""
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from coordinator.api import create_proxy_api
from coordinator.balancer import RoundRobinBalancer, forwardable_headers, upstream_target


def echo_transport(seen=None):
    """Mock workers that echo back what they received and who they are."""
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        body = {
            "port": request.url.port,
            "method": request.method,
            "path": request.url.path,
            "query": request.url.query.decode(),
            "body": request.content.decode(),
        }
        return httpx.Response(
            201 if request.method == "POST" else 200,
            headers=[("x-worker", str(request.url.port)), ("set-cookie", "a=1"), ("set-cookie", "b=2")],
            content=json.dumps(body).encode(),
        )
    return httpx.MockTransport(handler)


def test_balancer_requires_workers():
    with pytest.raises(ValueError):
        RoundRobinBalancer([])


def test_next_handle_rotates(handles):
    balancer = RoundRobinBalancer(handles)

    picked = [balancer.next_handle().index for _ in range(7)]

    assert picked == [1, 2, 3, 1, 2, 3, 1]
    assert balancer.cursor == 1


def test_pool_size_is_fixed_at_construction(handles, make_handle):
    balancer = RoundRobinBalancer(handles)

    handles.append(make_handle(4))

    assert balancer.pool_size == 3
    assert [balancer.next_handle().index for _ in range(4)] == [1, 2, 3, 1]


def test_requests_are_spread_round_robin(handles):
    """Consecutive requests land on consecutive workers."""
    # Arrange
    balancer = RoundRobinBalancer(handles, transport=echo_transport())

    # Act
    with TestClient(create_proxy_api(balancer)) as client:
        ports = [client.get("/api/users").json()["port"] for _ in range(6)]

    # Assert
    assert ports == [4001, 4002, 4003, 4001, 4002, 4003]


def test_request_is_forwarded_unchanged(handles):
    # Arrange
    seen = []
    balancer = RoundRobinBalancer(handles, transport=echo_transport(seen))

    # Act
    with TestClient(create_proxy_api(balancer)) as client:
        response = client.post("/api/users?page=2", content=b'{"username": "A"}',
                               headers={"content-type": "application/json", "x-trace": "abc"})

    # Assert
    assert response.status_code == 201
    assert response.json() == {
        "port": 4001,
        "method": "POST",
        "path": "/api/users",
        "query": "page=2",
        "body": '{"username": "A"}',
    }
    forwarded = seen[0].headers
    assert forwarded["x-trace"] == "abc"
    assert forwarded["content-type"] == "application/json"
    assert forwarded["host"] == "127.0.0.1:4001"


def test_response_headers_are_forwarded(handles):
    balancer = RoundRobinBalancer(handles, transport=echo_transport())

    with TestClient(create_proxy_api(balancer)) as client:
        response = client.get("/api/users")

    assert response.headers["x-worker"] == "4001"
    assert response.headers.get_list("set-cookie") == ["a=1", "b=2"]


def test_worker_errors_are_passed_through(handles):
    """The worker's status code and body reach the client untouched."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "User not found"})

    balancer = RoundRobinBalancer(handles, transport=httpx.MockTransport(handler))

    with TestClient(create_proxy_api(balancer)) as client:
        response = client.get("/api/users/3b241101-e2bb-4255-8caf-4136c566a962")

    assert response.status_code == 404
    assert response.json() == {"message": "User not found"}


def test_unreachable_worker_is_internal_error(handles):
    # Arrange
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.port == 4002:
            raise httpx.ConnectError("Connection refused", request=request)
        return httpx.Response(200, json=[])

    balancer = RoundRobinBalancer(handles, transport=httpx.MockTransport(handler))

    # Act
    with TestClient(create_proxy_api(balancer)) as client:
        responses = [client.get("/api/users") for _ in range(4)]

    # Assert
    assert [response.status_code for response in responses] == [200, 500, 200, 200]
    assert responses[1].json() == {"message": "Internal server error"}
    assert balancer.cursor == 1, "The cursor advances past the failed worker"


def test_exited_worker_is_not_contacted(handles):
    seen = []
    handles[0].invalidate()
    balancer = RoundRobinBalancer(handles, transport=echo_transport(seen))

    with TestClient(create_proxy_api(balancer)) as client:
        first = client.get("/api/users")
        second = client.get("/api/users")

    assert first.status_code == 500
    assert first.json() == {"message": "Internal server error"}
    assert second.json()["port"] == 4002
    assert [request.url.port for request in seen] == [4002]


def test_forwardable_headers_strips_hop_by_hop():
    headers = [
        (b"content-type", b"application/json"),
        (b"Connection", b"keep-alive"),
        (b"transfer-encoding", b"chunked"),
        (b"x-request-id", b"1"),
    ]

    assert forwardable_headers(headers) == [(b"content-type", b"application/json"), (b"x-request-id", b"1")]


def test_encoded_path_is_forwarded_as_sent(handles):
    """Percent-escapes in the path reach the worker without being decoded."""
    # Arrange
    seen = []
    balancer = RoundRobinBalancer(handles, transport=echo_transport(seen))

    # Act
    with TestClient(create_proxy_api(balancer)) as client:
        client.get("/api/users/abc%2Fdef?name=a%26b")

    # Assert
    assert seen[0].url.raw_path == b"/api/users/abc%2Fdef?name=a%26b"


def test_upstream_target_without_raw_path():
    scope = {"path": "/api/users", "query_string": b"page=2"}

    assert upstream_target(scope) == "/api/users?page=2"


def test_upstream_target_strips_query_from_raw_path():
    scope = {"path": "/api/users", "raw_path": b"/api/users?page=2", "query_string": b"page=2"}

    assert upstream_target(scope) == "/api/users?page=2"

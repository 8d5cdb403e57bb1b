"""
Shared test configuration.
Fixtures used by both unit and integration tests.
"""
import logging
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from common.channel import ReplicationChannel
from common.store import ResourceStore
from coordinator.pool import WorkerHandle
from worker.api import create_api, create_control_api
from worker.service import UserService

logging.basicConfig(level=logging.INFO)


def pytest_addoption(parser):
    """Options for integration tests."""
    parser.addoption(
        "--runintegration", action="store_true", default=False, help="Run integration tests"
    )


@pytest.fixture
def store():
    return ResourceStore()


@pytest.fixture
def events():
    """Collects the mutation events published by a service."""
    return []


@pytest.fixture
def service(store, events):
    return UserService(store, publish=events.append)


@pytest.fixture
def api_client(service):
    """Test client for a worker's public users API."""
    return TestClient(create_api(service, worker_index=1, port=4001))


@pytest.fixture
def control_client(store):
    """Test client for a worker's control API."""
    return TestClient(create_control_api(store, worker_index=1))


@pytest.fixture
def make_handle():
    """Factory for worker handles with a mocked snapshot channel and no process."""
    def factory(index: int, alive: bool = True) -> WorkerHandle:
        return WorkerHandle(
            index=index,
            host="127.0.0.1",
            port=4000 + index,
            control_port=5000 + index,
            channel=MagicMock(spec=ReplicationChannel),
            alive=alive,
        )
    return factory


@pytest.fixture
def handles(make_handle):
    return [make_handle(index) for index in range(1, 4)]

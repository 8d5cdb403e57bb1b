"""
Unit tests for the fire-and-forget replication channel.
"""
import json
from unittest.mock import MagicMock

import httpx
import pytest

from common.channel import ReplicationChannel, drop_on_unreachable
from common.models import Snapshot, User


def recording_transport(received, status_code=200):
    """Mock transport that records every JSON body it receives."""
    def handler(request: httpx.Request) -> httpx.Response:
        received.append((request.method, str(request.url), json.loads(request.content)))
        return httpx.Response(status_code, json={"ok": True})
    return httpx.MockTransport(handler)


def refusing_transport():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)
    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_deliver_serializes_models():
    # Arrange
    received = []
    channel = ReplicationChannel("test", "http://127.0.0.1:5001/replication/snapshot", method="PUT",
                                 transport=recording_transport(received))
    snapshot = Snapshot(users=[User(id="a", username="User Name", age=22, hobbies=["Books"])])

    # Act
    delivered = await channel.deliver(snapshot)
    await channel.stop()

    # Assert
    assert delivered is True
    assert channel.delivered == 1
    assert received == [(
        "PUT",
        "http://127.0.0.1:5001/replication/snapshot",
        {"users": [{"username": "User Name", "age": 22, "hobbies": ["Books"], "id": "a"}]},
    )]


@pytest.mark.asyncio
async def test_messages_are_delivered_in_order():
    received = []
    channel = ReplicationChannel("test", "http://peer/events", transport=recording_transport(received))
    await channel.start()

    for number in range(5):
        channel.send({"n": number})
    await channel.join()
    await channel.stop()

    assert [body["n"] for _, _, body in received] == [0, 1, 2, 3, 4]
    assert channel.pending == 0


@pytest.mark.asyncio
async def test_send_does_not_block_when_full():
    """A full queue discards its oldest message to make room."""
    # Arrange
    received = []
    channel = ReplicationChannel("test", "http://peer/events", maxsize=3,
                                 transport=recording_transport(received))

    # Act: nothing is delivering yet
    for number in range(5):
        channel.send({"n": number})

    # Assert
    assert channel.pending == 3
    assert channel.dropped == 2

    await channel.start()
    await channel.join()
    await channel.stop()

    assert [body["n"] for _, _, body in received] == [2, 3, 4], "The newest messages survive"


@pytest.mark.asyncio
async def test_unreachable_peer_invokes_policy():
    # Arrange
    policy = MagicMock()
    channel = ReplicationChannel("test", "http://peer/events", on_unreachable=policy,
                                 transport=refusing_transport())

    # Act
    delivered = await channel.deliver({"n": 1})
    await channel.stop()

    # Assert
    assert delivered is False
    assert channel.dropped == 1
    policy.assert_called_once()
    called_channel, payload, error = policy.call_args.args
    assert called_channel is channel
    assert payload == {"n": 1}
    assert isinstance(error, httpx.ConnectError)


@pytest.mark.asyncio
async def test_error_status_counts_as_unreachable():
    policy = MagicMock()
    channel = ReplicationChannel("test", "http://peer/events", on_unreachable=policy,
                                 transport=recording_transport([], status_code=503))

    assert await channel.deliver({"n": 1}) is False
    assert isinstance(policy.call_args.args[2], httpx.HTTPStatusError)
    await channel.stop()


@pytest.mark.asyncio
async def test_failed_delivery_does_not_stop_the_loop():
    """After a failure the channel keeps delivering later messages."""
    # Arrange
    received = []
    attempts = {"count": 0}

    def flaky(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] == 1:
            raise httpx.ConnectError("Connection refused", request=request)
        received.append(json.loads(request.content))
        return httpx.Response(200)

    channel = ReplicationChannel("test", "http://peer/events", on_unreachable=MagicMock(),
                                 transport=httpx.MockTransport(flaky))
    await channel.start()

    # Act
    channel.send({"n": 1})
    channel.send({"n": 2})
    await channel.join()
    await channel.stop()

    # Assert
    assert received == [{"n": 2}], "The failed message is not retried"
    assert channel.dropped == 1
    assert channel.delivered == 1


def test_drop_on_unreachable_logs_warning(caplog):
    channel = ReplicationChannel("test", "http://peer/events")

    drop_on_unreachable(channel, {"n": 1}, httpx.ConnectError("Connection refused"))

    assert "unreachable" in caplog.text

"""
Unit tests for the upstream Realtime WebSocket client.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from websockets.exceptions import ConnectionClosedError
from websockets.frames import Close

from agent_proxy.errors import UpstreamConnectionError
from agent_proxy.proxy.upstream_client import RealtimeUpstreamClient


class FakeUpstreamSocket:
    """Async-iterable stand-in for a websockets connection."""

    def __init__(self, frames, error=None):
        self.frames = frames
        self.error = error
        self.send = AsyncMock()
        self.close = AsyncMock()
        self.close_code = 1000
        self.close_reason = ""

    async def __aiter__(self):
        for frame in self.frames:
            yield frame
        if self.error is not None:
            raise self.error


@pytest.fixture
def upstream_client():
    return RealtimeUpstreamClient(
        "wss://example.test/v1/realtime?model=gpt-realtime",
        headers={"Authorization": "Bearer sk-test"},
        connect_timeout=1,
    )


@pytest.mark.asyncio
async def test_connect_success(upstream_client):
    mock_ws = MagicMock()
    with patch("websockets.connect", AsyncMock(return_value=mock_ws)) as mock_connect:
        await upstream_client.connect()

    assert upstream_client.ws is mock_ws
    assert upstream_client.connected
    args, kwargs = mock_connect.call_args
    assert args[0] == "wss://example.test/v1/realtime?model=gpt-realtime"
    assert kwargs["additional_headers"] == {"Authorization": "Bearer sk-test"}
    assert kwargs["compression"] is None


@pytest.mark.asyncio
async def test_connect_failure(upstream_client):
    with patch("websockets.connect", AsyncMock(side_effect=OSError("Connection refused"))):
        with pytest.raises(UpstreamConnectionError):
            await upstream_client.connect()
    assert not upstream_client.connected


@pytest.mark.asyncio
async def test_connect_timeout(upstream_client):
    with patch("websockets.connect", AsyncMock(side_effect=asyncio.TimeoutError())):
        with pytest.raises(UpstreamConnectionError) as exc_info:
            await upstream_client.connect()
    assert "Timeout" in str(exc_info.value)


@pytest.mark.asyncio
async def test_send_json(upstream_client):
    upstream_client.ws = FakeUpstreamSocket([])
    await upstream_client.send_json({"type": "response.create"})
    upstream_client.ws.send.assert_called_once_with(json.dumps({"type": "response.create"}))


@pytest.mark.asyncio
async def test_send_before_connect_raises(upstream_client):
    with pytest.raises(UpstreamConnectionError):
        await upstream_client.send_json({"type": "response.create"})


@pytest.mark.asyncio
async def test_messages_yield_text_and_skip_binary(upstream_client):
    upstream_client.ws = FakeUpstreamSocket(['{"type": "session.created"}', b"\x00\x01", '{"type": "session.updated"}'])

    received = [message async for message in upstream_client.messages()]

    assert received == ['{"type": "session.created"}', '{"type": "session.updated"}']
    assert upstream_client.close_code == 1000


@pytest.mark.asyncio
async def test_messages_record_abnormal_close(upstream_client):
    error = ConnectionClosedError(Close(1011, "keepalive ping timeout"), None)
    upstream_client.ws = FakeUpstreamSocket(['{"type": "session.created"}'], error=error)

    received = [message async for message in upstream_client.messages()]

    assert received == ['{"type": "session.created"}']
    assert upstream_client.close_code == 1011
    assert upstream_client.close_reason == "keepalive ping timeout"


@pytest.mark.asyncio
async def test_close(upstream_client):
    upstream_client.ws = FakeUpstreamSocket([])
    await upstream_client.close()
    upstream_client.ws.close.assert_called_once()


@pytest.mark.asyncio
async def test_close_without_connection(upstream_client):
    await upstream_client.close()

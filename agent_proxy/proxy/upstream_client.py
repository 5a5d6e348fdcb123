"""
WebSocket client for the OpenAI Realtime endpoint.

One RealtimeUpstreamClient is opened per proxy connection. It does not
reconnect: when the upstream socket closes, the proxy connection ends and
the client decides whether to start a new session.
"""

import asyncio
import json
import time
from typing import AsyncIterator, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, ConnectionClosedOK, WebSocketException

from agent_proxy.config.constants import (
    UPSTREAM_CONNECT_TIMEOUT,
    UPSTREAM_MAX_SIZE,
    UPSTREAM_PING_INTERVAL,
)
from agent_proxy.config.logging_config import (
    ATTR_DIRECTION,
    ATTR_MESSAGE_TYPE,
    ATTR_UPSTREAM_CLOSE_CODE,
    ATTR_UPSTREAM_CLOSE_REASON,
    BoundProxyLogger,
    ProxyLogger,
)
from agent_proxy.errors import UpstreamConnectionError


class RealtimeUpstreamClient:
    """
    Client to connect to the OpenAI Realtime API over WebSocket.

    Text frames are exchanged as-is; the state machine decides what is sent
    and the orchestrator parses what is received.
    """

    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        log: Optional[BoundProxyLogger] = None,
        connect_timeout: float = UPSTREAM_CONNECT_TIMEOUT,
    ):
        self.url = url
        self.headers = headers or {}
        self.log = log or ProxyLogger().bind()
        self.connect_timeout = connect_timeout
        self.ws = None
        self._close_code: Optional[int] = None
        self._close_reason: str = ""

    async def connect(self) -> None:
        """
        Open the upstream WebSocket.

        Raises:
            UpstreamConnectionError: the handshake failed or timed out
        """
        self.log.info("connecting to upstream", url=self.url)
        connection_start = time.time()
        try:
            self.ws = await asyncio.wait_for(
                websockets.connect(
                    self.url,
                    max_size=UPSTREAM_MAX_SIZE,
                    ping_interval=UPSTREAM_PING_INTERVAL,
                    compression=None,
                    additional_headers=self.headers,
                ),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamConnectionError(
                f"Timeout while connecting to upstream (after {self.connect_timeout}s)"
            ) from e
        except (OSError, WebSocketException) as e:
            raise UpstreamConnectionError(f"Failed to connect to upstream: {e}") from e
        self.log.info(
            "upstream connected",
            connect_seconds=round(time.time() - connection_start, 3),
        )

    @property
    def connected(self) -> bool:
        return self.ws is not None

    @property
    def close_code(self) -> Optional[int]:
        if self._close_code is None and self.ws is not None:
            return self.ws.close_code
        return self._close_code

    @property
    def close_reason(self) -> str:
        if not self._close_reason and self.ws is not None:
            return self.ws.close_reason or ""
        return self._close_reason

    async def send_json(self, event: dict) -> None:
        """
        Serialize and send one client event to the upstream.

        Raises:
            ConnectionClosed: the upstream socket is already closed
        """
        if self.ws is None:
            raise UpstreamConnectionError("Upstream is not connected")
        self.log.debug(
            "client → upstream",
            **{ATTR_DIRECTION: "client→upstream", ATTR_MESSAGE_TYPE: event.get("type")},
        )
        await self.ws.send(json.dumps(event))

    async def messages(self) -> AsyncIterator[str]:
        """
        Yield text frames until the upstream closes.

        Ends normally on any closure; the close code and reason are available
        afterwards through ``close_code`` and ``close_reason``.
        """
        if self.ws is None:
            raise UpstreamConnectionError("Upstream is not connected")
        try:
            async for message in self.ws:
                if isinstance(message, bytes):
                    self.log.debug("ignoring binary frame from upstream", bytes=len(message))
                    continue
                yield message
        except ConnectionClosedOK as e:
            self._record_close(e)
        except ConnectionClosedError as e:
            self._record_close(e)
            self.log.warn(
                "upstream connection closed unexpectedly",
                **{ATTR_UPSTREAM_CLOSE_CODE: self._close_code, ATTR_UPSTREAM_CLOSE_REASON: self._close_reason},
            )

    def _record_close(self, error: ConnectionClosed) -> None:
        frame = error.rcvd or error.sent
        if frame is not None:
            self._close_code = frame.code
            self._close_reason = frame.reason

    async def close(self) -> None:
        """Close the upstream WebSocket if it is open."""
        if self.ws is None:
            return
        self.log.debug("closing upstream connection")
        await self.ws.close()

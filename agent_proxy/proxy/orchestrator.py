"""
Connection orchestrator for the realtime agent proxy.

This module implements the server side of the proxy endpoint:
- Accept the client WebSocket and open one upstream WebSocket for it
- Run the two message pumps (client → upstream, upstream → client)
- Serialize every state transition of a connection behind one lock
- Carry out the actions the session state machine returns
- Tear both sockets down together when either side ends

Connections share nothing but the registry; each one gets its own lock,
state machine and upstream client.
"""

import asyncio
from typing import Callable, List, Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketState
from websockets.exceptions import ConnectionClosed

from agent_proxy.config.constants import ERROR_UPSTREAM_CONNECTION_FAILED, TRACE_ID_QUERY_PARAM
from agent_proxy.config.logging_config import (
    ATTR_ERROR_CODE,
    ATTR_ERROR_MESSAGE,
    BoundProxyLogger,
    ProxyLogger,
    resolve_level_name,
)
from agent_proxy.config.settings import ProxySettings
from agent_proxy.errors import MalformedMessageError, UpstreamConnectionError
from agent_proxy.models.connection import ConnectionRegistry, ProxyConnection
from agent_proxy.models.message_schemas import AudioFrame, ClientEvent, parse_client_message
from agent_proxy.models.openai_schemas import parse_upstream_event
from agent_proxy.proxy import translator
from agent_proxy.proxy.state_machine import (
    Action,
    CloseConnection,
    ScheduleCommit,
    SendClient,
    SendUpstream,
    SessionStateMachine,
)
from agent_proxy.proxy.upstream_client import RealtimeUpstreamClient

UpstreamFactory = Callable[[ProxySettings, BoundProxyLogger], RealtimeUpstreamClient]


def default_upstream_factory(settings: ProxySettings, log: BoundProxyLogger) -> RealtimeUpstreamClient:
    """Build the upstream client for one connection from process settings."""
    return RealtimeUpstreamClient(
        settings.upstream_url,
        headers=settings.upstream_headers,
        log=log,
        connect_timeout=settings.connect_timeout,
    )


class ProxySession:
    """
    Runs one accepted connection: both pumps, the commit debounce timer and
    the actions returned by the state machine.
    """

    def __init__(
        self,
        websocket: WebSocket,
        machine: SessionStateMachine,
        upstream: RealtimeUpstreamClient,
        log: BoundProxyLogger,
        commit_debounce_ms: int,
    ):
        self.websocket = websocket
        self.machine = machine
        self.connection = machine.connection
        self.upstream = upstream
        self.log = log
        self.commit_debounce = commit_debounce_ms / 1000
        self._lock = asyncio.Lock()
        self._commit_task: Optional[asyncio.Task] = None

    async def run(self) -> None:
        """Run both pumps until either side ends, then stop the other."""
        client_task = asyncio.create_task(self._client_pump())
        upstream_task = asyncio.create_task(self._upstream_pump())
        done, pending = await asyncio.wait({client_task, upstream_task}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            if task.exception() is not None:
                raise task.exception()

    async def _transition(self, step: Callable[[], List[Action]]) -> None:
        async with self._lock:
            await self._apply(step())

    async def _client_pump(self) -> None:
        while not self.connection.closed:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                self.log.info("client disconnected", close_code=message.get("code"))
                return
            if message.get("bytes") is not None:
                parsed = AudioFrame(data=message["bytes"])
            elif message.get("text") is not None:
                try:
                    parsed = parse_client_message(message["text"])
                except MalformedMessageError as e:
                    await self._transition(lambda: self.machine.on_malformed(e))
                    return
            else:
                continue
            await self._transition(lambda: self.machine.on_client_message(parsed))

    async def _upstream_pump(self) -> None:
        async for text in self.upstream.messages():
            try:
                event = parse_upstream_event(text)
            except MalformedMessageError as e:
                await self._transition(lambda: self.machine.on_malformed(e))
                return
            await self._transition(lambda: self.machine.on_upstream_event(event))
            if self.connection.closed:
                return
        await self._transition(
            lambda: self.machine.on_upstream_closed(self.upstream.close_code, self.upstream.close_reason)
        )

    async def _apply(self, actions: List[Action]) -> None:
        for action in actions:
            if isinstance(action, SendUpstream):
                try:
                    await self.upstream.send_json(action.event)
                except ConnectionClosed:
                    # The upstream pump reports the closure
                    self.log.warn("upstream closed while sending", message_type=action.event.get("type"))
                    return
            elif isinstance(action, SendClient):
                await self._send_client(action.payload)
            elif isinstance(action, ScheduleCommit):
                self._schedule_commit()
            elif isinstance(action, CloseConnection):
                self.log.info("closing connection", reason=action.reason)
                self._cancel_commit()

    async def _send_client(self, payload) -> None:
        if self.websocket.client_state != WebSocketState.CONNECTED:
            return
        if isinstance(payload, bytes):
            await self.websocket.send_bytes(payload)
        elif isinstance(payload, ClientEvent):
            await self.websocket.send_text(payload.to_json())
        else:
            await self.websocket.send_text(payload)

    def _schedule_commit(self) -> None:
        self._cancel_commit()
        self._commit_task = asyncio.create_task(self._commit_after_debounce())

    def _cancel_commit(self) -> None:
        task = self._commit_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._commit_task = None

    async def _commit_after_debounce(self) -> None:
        await asyncio.sleep(self.commit_debounce)
        await self._transition(self.machine.on_audio_idle)

    async def shutdown(self) -> None:
        """Stop the timer, drop deferred work and close the upstream socket."""
        self._cancel_commit()
        async with self._lock:
            self.machine.close()
        await self.upstream.close()


class ConnectionOrchestrator:
    """Accepts client WebSockets and pairs each with its own upstream connection.

    One orchestrator serves the whole process; every call to
    handle_websocket() owns exactly one ProxyConnection from accept to
    teardown.
    """

    def __init__(
        self,
        settings: ProxySettings,
        proxy_logger: Optional[ProxyLogger] = None,
        registry: Optional[ConnectionRegistry] = None,
        upstream_factory: Optional[UpstreamFactory] = None,
    ):
        self.settings = settings
        self.proxy_logger = proxy_logger or ProxyLogger(resolve_level_name(settings.log_level, settings.debug))
        self.registry = registry or ConnectionRegistry()
        self.upstream_factory = upstream_factory or default_upstream_factory

    async def handle_websocket(self, websocket: WebSocket) -> None:
        """Handle a client WebSocket connection throughout its lifecycle.

        Args:
            websocket (WebSocket): The FastAPI WebSocket connection object

        This method:
        1. Accepts the connection and assigns its connection and trace ids
        2. Opens the upstream connection, or reports the failure and closes
        3. Runs both message pumps until either side ends
        4. Closes both sockets and unregisters the connection
        """
        await websocket.accept()
        connection_id = self.registry.next_connection_id()
        trace_id = (websocket.query_params.get(TRACE_ID_QUERY_PARAM) or "").strip() or connection_id
        connection = ProxyConnection(connection_id=connection_id, trace_id=trace_id)
        self.registry.add_connection(connection)
        log = self.proxy_logger.bind(connection_id=connection_id, trace_id=trace_id)
        log.info("client connected", active_connections=len(self.registry))

        upstream = self.upstream_factory(self.settings, log)
        session = None
        try:
            try:
                await upstream.connect()
            except UpstreamConnectionError as e:
                log.error(str(e), **{ATTR_ERROR_CODE: ERROR_UPSTREAM_CONNECTION_FAILED})
                error = translator.proxy_error(str(e), ERROR_UPSTREAM_CONNECTION_FAILED, trace_id, connection_id)
                await websocket.send_text(error.to_json())
                return

            machine = SessionStateMachine(connection, log, default_model=self.settings.default_model)
            session = ProxySession(websocket, machine, upstream, log, self.settings.commit_debounce_ms)
            await session.run()
        except Exception as e:
            log.error(f"Error in proxy connection: {e}", **{ATTR_ERROR_MESSAGE: repr(e)})
        finally:
            if session is not None:
                await session.shutdown()
            else:
                connection.closed = True
            if websocket.client_state == WebSocketState.CONNECTED:
                await websocket.close()
            self.registry.remove_connection(connection_id)
            log.info("connection closed", active_connections=len(self.registry))

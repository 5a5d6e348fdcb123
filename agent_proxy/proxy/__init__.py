"""
Proxy module: everything between the client socket and the upstream socket.

Key components:
- audio_gate: AudioCommitGate, the byte counter that decides when input
  audio may be committed.
- translator: pure mapping functions between the two protocols.
- state_machine: SessionStateMachine, which owns turn ordering for one
  connection and returns the actions to perform.
- upstream_client: RealtimeUpstreamClient, the WebSocket client for the
  OpenAI Realtime endpoint.
- orchestrator: ConnectionOrchestrator, which pairs a client socket with an
  upstream socket and runs both message pumps.

Usage examples:
```python
from agent_proxy.config.logging_config import configure_logging
from agent_proxy.config.settings import ProxySettings
from agent_proxy.proxy.orchestrator import ConnectionOrchestrator

orchestrator = ConnectionOrchestrator(ProxySettings.from_env(), configure_logging())

@app.websocket("/openai")
async def openai_endpoint(websocket: WebSocket):
    await orchestrator.handle_websocket(websocket)
```
"""

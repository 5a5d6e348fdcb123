"""
Models module for the data structures of the realtime agent proxy.

Key components:
- message_schemas: Pydantic models for the voice-agent client protocol, both
  the control messages a client sends and the events the proxy sends back.
- openai_schemas: Pydantic models for the OpenAI Realtime server events the
  proxy acts on, plus a pass-through model for everything else.
- connection: per-connection state (ProxyConnection) and the registry of
  live connections.

Usage examples:
```python
from agent_proxy.models.message_schemas import parse_client_message
from agent_proxy.models.openai_schemas import parse_upstream_event

message = parse_client_message('{"type": "InjectUserMessage", "content": "Hi"}')
event = parse_upstream_event('{"type": "session.updated", "session": {}}')
```
"""

from agent_proxy.models.connection import ConnectionRegistry, ProxyConnection
from agent_proxy.models.message_schemas import (
    AudioFrame,
    ClientEvent,
    ClientMessage,
    ErrorEvent,
    OutgoingEvent,
    SettingsMessage,
    parse_client_message,
)
from agent_proxy.models.openai_schemas import (
    KnownUpstreamEvent,
    UnknownUpstreamEvent,
    UpstreamEvent,
    parse_upstream_event,
)

"""
Per-connection state and the process-wide connection registry.

A ProxyConnection holds every flag the session state machine reads or writes
for one client/upstream pairing. Connections never share state; the registry
only hands out connection ids and tracks which connections are live for the
health endpoint.
"""

import itertools
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Set

from agent_proxy.models.message_schemas import ClientMessage, ErrorEvent
from agent_proxy.proxy.audio_gate import AudioCommitGate


@dataclass
class ProxyConnection:
    """
    State of one live client/upstream pairing.

    Only the session state machine mutates these fields, and only while the
    orchestrator holds the connection lock.
    """

    connection_id: str
    trace_id: str
    audio_gate: AudioCommitGate = field(default_factory=AudioCommitGate)

    # Upstream confirmed our session.update
    session_configured: bool = False
    settings_applied_sent: bool = False
    # What each session.update still awaiting session.updated was sent for
    session_update_kinds: Deque[str] = field(default_factory=deque)

    # An upstream response is open and not yet closed
    response_in_progress: bool = False
    # Id from the last response.created, cleared when that response closes
    current_response_id: Optional[str] = None
    # A function_call_output was forwarded during an open response; the next
    # response.create waits for that response's text completion
    pending_response_create_after_function_call_output: bool = False
    # A response.create was requested while another response was open
    response_create_deferred: bool = False
    # Responses already closed by their text completion
    text_closed_response_ids: Set[str] = field(default_factory=set)
    # Text completions that carried no response id
    text_closed_without_id: int = 0

    # Item confirmations still awaited before response.create
    pending_item_acks: int = 0
    pending_context_acks: int = 0
    acked_item_ids: Set[str] = field(default_factory=set)

    # Released after the next session.updated
    pending_context_items: List[dict] = field(default_factory=list)
    greeting: Optional[str] = None

    # Client messages not yet admissible, in arrival order
    held_messages: Deque[ClientMessage] = field(default_factory=deque)

    # Commits sent by the proxy whose input_audio_buffer.committed is outstanding
    awaiting_commit_acks: int = 0

    agent_started_speaking_sent: bool = False
    pending_idle_timeout_error: Optional[ErrorEvent] = None

    closed: bool = False


class ConnectionRegistry:
    """
    Registry of live proxy connections.

    Hands out short connection ids (``c1``, ``c2``, ...) and keeps each live
    ProxyConnection until it is removed at teardown.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self.active_connections: Dict[str, ProxyConnection] = {}
        self._counter = itertools.count(1)

    def next_connection_id(self) -> str:
        return f"c{next(self._counter)}"

    def add_connection(self, connection: ProxyConnection) -> None:
        """
        Add a connection to the registry.

        Args:
            connection: The newly accepted connection
        """
        self.active_connections[connection.connection_id] = connection

    def get_connection(self, connection_id: str) -> Optional[ProxyConnection]:
        """
        Get a live connection by its id.

        Returns:
            The connection, or None if it is not registered
        """
        return self.active_connections.get(connection_id)

    def remove_connection(self, connection_id: str) -> None:
        """
        Remove a connection from the registry.

        Args:
            connection_id: Id of the connection to remove
        """
        self.active_connections.pop(connection_id, None)

    def __len__(self) -> int:
        return len(self.active_connections)

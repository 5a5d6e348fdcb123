"""
Session state machine for one proxy connection.

The machine owns every ordering decision the proxy makes: which translated
message is sent upstream, when, and what the client is told. It performs no
I/O. Each entry point returns the ordered list of actions the orchestrator
must carry out.

Turn rules enforced here:
- At most one ``response.create`` is outstanding per connection. A turn
  closes on ``response.output_text.done`` (or ``response.done``), never on
  ``response.output_audio.done``, which upstream may send first.
- Nothing content-bearing is sent upstream before ``session.updated``.
  Client messages that arrive earlier are held and released in arrival order.
- After a function result is forwarded during an open turn, the next
  ``response.create`` waits for that turn's ``response.output_text.done``;
  a ``response.done`` without text does not release it.
- Input audio is committed only once the commit gate reaches its threshold.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from agent_proxy.config.constants import (
    DEFAULT_REALTIME_MODEL,
    ERROR_MALFORMED_MESSAGE,
    ERROR_UPSTREAM_CLOSED,
    ERROR_UPSTREAM_CLOSED_BEFORE_SESSION_READY,
)
from agent_proxy.config.logging_config import (
    ATTR_DIRECTION,
    ATTR_ERROR_CODE,
    ATTR_ERROR_MESSAGE,
    ATTR_MESSAGE_TYPE,
    ATTR_UPSTREAM_CLOSE_CODE,
    ATTR_UPSTREAM_CLOSE_REASON,
    BoundProxyLogger,
    ProxyLogger,
)
from agent_proxy.errors import MalformedMessageError
from agent_proxy.models.connection import ProxyConnection
from agent_proxy.models.message_schemas import (
    AgentAudioDoneEvent,
    AgentStartedSpeakingEvent,
    AudioFrame,
    ClientEvent,
    ClientMessage,
    CloseMessage,
    FunctionCallResponseMessage,
    InjectAgentMessage,
    InjectUserMessage,
    KeepAliveMessage,
    PromptUpdatedEvent,
    SettingsAppliedEvent,
    SettingsMessage,
    SpeakUpdatedEvent,
    UpdatePromptMessage,
    UpdateSpeakMessage,
)
from agent_proxy.models.openai_schemas import (
    AudioBufferCommittedEvent,
    ConversationItemAddedEvent,
    ConversationItemCreatedEvent,
    ConversationItemDoneEvent,
    ConversationItemEvent,
    FunctionCallArgumentsDoneEvent,
    OutputAudioDeltaEvent,
    OutputAudioDoneEvent,
    OutputAudioTranscriptDoneEvent,
    OutputTextDeltaEvent,
    OutputTextDoneEvent,
    RealtimeErrorEvent,
    ResponseCreatedEvent,
    ResponseDoneEvent,
    SessionCreatedEvent,
    SessionUpdatedEvent,
    SpeechStartedEvent,
    SpeechStoppedEvent,
    TranscriptionCompletedEvent,
    TranscriptionDeltaEvent,
    UnknownUpstreamEvent,
    UpstreamEvent,
)
from agent_proxy.proxy import translator

SESSION_UPDATE_SETTINGS = "settings"
SESSION_UPDATE_PROMPT = "prompt"
SESSION_UPDATE_SPEAK = "speak"

CLIENT_TO_UPSTREAM = "client→upstream"
UPSTREAM_TO_CLIENT = "upstream→client"


class ProxyState(str, Enum):
    """Derived lifecycle state of a connection."""

    AWAITING_SESSION = "awaiting_session"
    SESSION_READY = "session_ready"
    RESPONSE_IN_FLIGHT = "response_in_flight"
    RESPONSE_IN_FLIGHT_PENDING_DEFERRED = "response_in_flight_pending_deferred"
    CLOSED = "closed"


@dataclass(frozen=True)
class SendUpstream:
    """Serialize ``event`` as JSON and send it to the upstream."""

    event: dict


@dataclass(frozen=True)
class SendClient:
    """Send to the client: an event model as JSON text, raw text as-is, bytes as a binary frame."""

    payload: Union[ClientEvent, str, bytes]


@dataclass(frozen=True)
class ScheduleCommit:
    """(Re)start the commit debounce timer."""


@dataclass(frozen=True)
class CloseConnection:
    reason: str = ""


Action = Union[SendUpstream, SendClient, ScheduleCommit, CloseConnection]


class SessionStateMachine:
    """
    Decides, for one connection, what is sent where in response to client
    messages, upstream events, audio idle timeouts and upstream closure.
    """

    def __init__(
        self,
        connection: ProxyConnection,
        log: Optional[BoundProxyLogger] = None,
        default_model: str = DEFAULT_REALTIME_MODEL,
    ):
        self.connection = connection
        self.log = log or ProxyLogger().bind(
            connection_id=connection.connection_id, trace_id=connection.trace_id
        )
        self.default_model = default_model

        self.client_handlers: Dict[type, Callable[[ClientMessage, List[Action]], None]] = {
            SettingsMessage: self._on_settings,
            InjectUserMessage: self._on_inject_user_message,
            UpdatePromptMessage: self._on_update_prompt,
            UpdateSpeakMessage: self._on_update_speak,
            InjectAgentMessage: self._on_inject_agent_message,
            FunctionCallResponseMessage: self._on_function_call_response,
            KeepAliveMessage: self._on_keep_alive,
            CloseMessage: self._on_close_message,
            AudioFrame: self._on_audio_frame,
        }
        self.upstream_handlers: Dict[type, Callable[[UpstreamEvent, List[Action]], None]] = {
            SessionCreatedEvent: self._on_session_created,
            SessionUpdatedEvent: self._on_session_updated,
            ConversationItemAddedEvent: self._on_conversation_item,
            ConversationItemCreatedEvent: self._on_conversation_item,
            ConversationItemDoneEvent: self._on_conversation_item,
            ResponseCreatedEvent: self._on_response_created,
            ResponseDoneEvent: self._on_response_done,
            OutputTextDeltaEvent: self._relay,
            OutputTextDoneEvent: self._on_output_text_done,
            OutputAudioDeltaEvent: self._on_output_audio_delta,
            OutputAudioDoneEvent: self._on_output_audio_done,
            OutputAudioTranscriptDoneEvent: self._on_output_audio_transcript_done,
            FunctionCallArgumentsDoneEvent: self._on_function_call_arguments_done,
            SpeechStartedEvent: self._on_speech_started,
            SpeechStoppedEvent: self._on_speech_stopped,
            AudioBufferCommittedEvent: self._on_audio_committed,
            TranscriptionDeltaEvent: self._on_transcription_delta,
            TranscriptionCompletedEvent: self._on_transcription_completed,
            RealtimeErrorEvent: self._on_error,
            UnknownUpstreamEvent: self._relay,
        }

    @property
    def state(self) -> ProxyState:
        conn = self.connection
        if conn.closed:
            return ProxyState.CLOSED
        if not conn.session_configured:
            return ProxyState.AWAITING_SESSION
        if conn.response_in_progress:
            if conn.pending_response_create_after_function_call_output or conn.response_create_deferred:
                return ProxyState.RESPONSE_IN_FLIGHT_PENDING_DEFERRED
            return ProxyState.RESPONSE_IN_FLIGHT
        return ProxyState.SESSION_READY

    # Entry points
    def on_client_message(self, message: ClientMessage) -> List[Action]:
        """Handle one parsed client message (control message or audio frame)."""
        if self.connection.closed:
            return []
        actions: List[Action] = []
        if self._must_hold(message):
            self.connection.held_messages.append(message)
            self.log.debug(
                "client message held until it can be sent in order",
                **{
                    ATTR_DIRECTION: CLIENT_TO_UPSTREAM,
                    ATTR_MESSAGE_TYPE: _client_message_type(message),
                    "held_messages": len(self.connection.held_messages),
                },
            )
        else:
            self._dispatch_client(message, actions)
        self._release_held(actions)
        return actions

    def on_upstream_event(self, event: UpstreamEvent) -> List[Action]:
        """Handle one parsed upstream event; flags are updated before anything is sent."""
        if self.connection.closed:
            return []
        actions: List[Action] = []
        self.log.debug(
            "upstream → client",
            **{ATTR_DIRECTION: UPSTREAM_TO_CLIENT, ATTR_MESSAGE_TYPE: event.type},
        )
        handler = self.upstream_handlers[type(event)]
        handler(event, actions)
        self._release_held(actions)
        return actions

    def on_audio_idle(self) -> List[Action]:
        """Debounce expiry after the last audio frame: commit if the gate allows it."""
        conn = self.connection
        if conn.closed or not conn.audio_gate.has_pending:
            return []
        actions: List[Action] = []
        if self._turn_pending() or not conn.session_configured:
            self.log.debug(
                "audio commit postponed while a response is open",
                **{"audio.pending_bytes": conn.audio_gate.pending_bytes},
            )
            return actions
        if not conn.audio_gate.ready():
            self.log.debug(
                "audio below commit threshold; keeping it buffered",
                **{
                    "audio.pending_bytes": conn.audio_gate.pending_bytes,
                    "audio.threshold": conn.audio_gate.threshold,
                },
            )
            return actions
        committed = conn.audio_gate.commit()
        self.log.info(
            "input_audio_buffer.commit + response.create",
            **{ATTR_DIRECTION: CLIENT_TO_UPSTREAM, "audio.pending_bytes": committed},
        )
        actions.append(SendUpstream(translator.audio_commit_event()))
        conn.awaiting_commit_acks += 1
        self._start_response(actions)
        return actions

    def on_upstream_closed(self, code: Optional[int] = None, reason: str = "") -> List[Action]:
        """Upstream socket closed: tell the client why, then close it."""
        conn = self.connection
        if conn.closed:
            return []
        actions: List[Action] = []
        self._flush_idle_timeout_error(actions)
        close_attrs = {ATTR_UPSTREAM_CLOSE_CODE: code, ATTR_UPSTREAM_CLOSE_REASON: reason}
        detail = f"code {code}, reason: {reason}" if reason else f"code {code}"
        if not conn.settings_applied_sent:
            description = f"Upstream closed before session ready ({detail}). Session may not have been applied."
            error_code = ERROR_UPSTREAM_CLOSED_BEFORE_SESSION_READY
            self.log.warn(description, **close_attrs)
        else:
            description = f"Upstream closed ({detail})."
            error_code = ERROR_UPSTREAM_CLOSED
            self.log.info("upstream closed", **close_attrs)
        error = translator.proxy_error(description, error_code, conn.trace_id, conn.connection_id)
        actions.append(SendClient(error))
        actions.append(CloseConnection(reason=error_code))
        self._mark_closed()
        return actions

    def on_malformed(self, error: MalformedMessageError) -> List[Action]:
        """A frame from either side could not be parsed: report it and close."""
        conn = self.connection
        if conn.closed:
            return []
        self.log.error(
            str(error),
            **{
                ATTR_DIRECTION: CLIENT_TO_UPSTREAM if error.source == "client" else UPSTREAM_TO_CLIENT,
                ATTR_ERROR_CODE: ERROR_MALFORMED_MESSAGE,
                ATTR_ERROR_MESSAGE: error.detail,
            },
        )
        actions: List[Action] = [
            SendClient(translator.proxy_error(str(error), ERROR_MALFORMED_MESSAGE, conn.trace_id, conn.connection_id)),
            CloseConnection(reason=ERROR_MALFORMED_MESSAGE),
        ]
        self._mark_closed()
        return actions

    def close(self) -> List[Action]:
        """Enter CLOSED; held and deferred work is discarded."""
        if not self.connection.closed:
            dropped = len(self.connection.held_messages)
            self._mark_closed()
            self.log.debug("session state closed", held_messages_dropped=dropped)
        return []

    # Admission
    def _must_hold(self, message: ClientMessage) -> bool:
        if isinstance(message, (SettingsMessage, KeepAliveMessage, CloseMessage)):
            return False
        if self.connection.held_messages:
            return True
        return not self._admissible(message)

    def _admissible(self, message: ClientMessage) -> bool:
        conn = self.connection
        if not conn.session_configured:
            return False
        if isinstance(message, (UpdatePromptMessage, UpdateSpeakMessage)):
            return not conn.response_in_progress
        return True

    def _release_held(self, actions: List[Action]) -> None:
        conn = self.connection
        while conn.held_messages and not conn.closed:
            message = conn.held_messages[0]
            if not self._admissible(message):
                break
            conn.held_messages.popleft()
            self._dispatch_client(message, actions)

    def _dispatch_client(self, message: ClientMessage, actions: List[Action]) -> None:
        handler = self.client_handlers[type(message)]
        handler(message, actions)

    # Turn bookkeeping
    def _turn_pending(self) -> bool:
        """A response is open, about to be requested, or waiting on item confirmations."""
        conn = self.connection
        return (
            conn.response_in_progress
            or conn.pending_response_create_after_function_call_output
            or conn.response_create_deferred
            or conn.pending_item_acks > 0
        )

    def _start_response(self, actions: List[Action]) -> None:
        conn = self.connection
        actions.append(SendUpstream(translator.response_create_event()))
        conn.response_in_progress = True
        conn.agent_started_speaking_sent = False

    def _request_response(self, actions: List[Action]) -> None:
        conn = self.connection
        if conn.response_in_progress or conn.pending_response_create_after_function_call_output:
            conn.response_create_deferred = True
            self.log.info("response.create deferred until the open response closes")
            return
        self._start_response(actions)

    def _close_turn(self, actions: List[Action], text_completed: bool = True) -> None:
        conn = self.connection
        conn.response_in_progress = False
        conn.current_response_id = None
        conn.agent_started_speaking_sent = False
        self._release_held(actions)
        if conn.pending_response_create_after_function_call_output:
            if not text_completed:
                self.log.info("response closed without text; response.create still waits for a text completion")
                return
            conn.pending_response_create_after_function_call_output = False
            conn.response_create_deferred = False
            self.log.info("sending deferred response.create", **{ATTR_DIRECTION: CLIENT_TO_UPSTREAM})
            self._start_response(actions)
        elif conn.response_create_deferred:
            conn.response_create_deferred = False
            self.log.info("sending deferred response.create", **{ATTR_DIRECTION: CLIENT_TO_UPSTREAM})
            self._start_response(actions)
        elif conn.audio_gate.ready():
            actions.append(ScheduleCommit())

    def _closed_by_text(self, response_id: Optional[str]) -> bool:
        """True when this response.done belongs to a turn its text completion already closed."""
        conn = self.connection
        if response_id is not None and response_id in conn.text_closed_response_ids:
            conn.text_closed_response_ids.discard(response_id)
            return True
        if conn.text_closed_without_id and (response_id is None or response_id != conn.current_response_id):
            conn.text_closed_without_id -= 1
            return True
        if response_id is None and conn.text_closed_response_ids:
            conn.text_closed_response_ids.pop()
            return True
        return False

    def _mark_agent_speaking(self, actions: List[Action]) -> None:
        if not self.connection.agent_started_speaking_sent:
            actions.append(SendClient(AgentStartedSpeakingEvent()))
            self.connection.agent_started_speaking_sent = True

    def _flush_idle_timeout_error(self, actions: List[Action]) -> None:
        pending = self.connection.pending_idle_timeout_error
        if pending is not None:
            actions.append(SendClient(pending))
            self.connection.pending_idle_timeout_error = None

    def _mark_closed(self) -> None:
        conn = self.connection
        conn.closed = True
        conn.held_messages.clear()
        conn.pending_context_items.clear()
        conn.pending_response_create_after_function_call_output = False
        conn.response_create_deferred = False

    # Client message handlers
    def _on_settings(self, message: SettingsMessage, actions: List[Action]) -> None:
        conn = self.connection
        if self._turn_pending():
            self.log.info(
                "Settings received while a response is open; SettingsApplied sent without session.update",
                **{ATTR_DIRECTION: CLIENT_TO_UPSTREAM, ATTR_MESSAGE_TYPE: message.type},
            )
            actions.append(SendClient(SettingsAppliedEvent()))
            conn.settings_applied_sent = True
            return
        actions.append(SendUpstream(translator.settings_to_session_update(message, self.default_model)))
        conn.session_update_kinds.append(SESSION_UPDATE_SETTINGS)
        conn.pending_context_items.extend(translator.settings_to_context_items(message))
        conn.greeting = translator.settings_greeting(message)
        self.log.info(
            "Settings → session.update",
            **{
                ATTR_DIRECTION: CLIENT_TO_UPSTREAM,
                ATTR_MESSAGE_TYPE: message.type,
                "context_items": len(conn.pending_context_items),
            },
        )

    def _on_inject_user_message(self, message: InjectUserMessage, actions: List[Action]) -> None:
        actions.append(SendUpstream(translator.inject_user_message_to_item_create(message)))
        actions.append(SendClient(translator.inject_user_message_to_echo(message)))
        self.connection.pending_item_acks += 1
        self.log.info(
            "InjectUserMessage → conversation.item.create",
            **{ATTR_DIRECTION: CLIENT_TO_UPSTREAM, ATTR_MESSAGE_TYPE: message.type},
        )

    def _on_inject_agent_message(self, message: InjectAgentMessage, actions: List[Action]) -> None:
        actions.append(SendUpstream(translator.inject_agent_message_to_item_create(message)))
        self.log.info(
            "InjectAgentMessage → conversation.item.create",
            **{ATTR_DIRECTION: CLIENT_TO_UPSTREAM, ATTR_MESSAGE_TYPE: message.type},
        )

    def _on_update_prompt(self, message: UpdatePromptMessage, actions: List[Action]) -> None:
        actions.append(SendUpstream(translator.update_prompt_to_session_update(message)))
        self.connection.session_update_kinds.append(SESSION_UPDATE_PROMPT)
        self.log.info(
            "UpdatePrompt → session.update",
            **{ATTR_DIRECTION: CLIENT_TO_UPSTREAM, ATTR_MESSAGE_TYPE: message.type},
        )

    def _on_update_speak(self, message: UpdateSpeakMessage, actions: List[Action]) -> None:
        event = translator.update_speak_to_session_update(message)
        if event is None:
            self.log.info("UpdateSpeak without a voice; nothing to change")
            actions.append(SendClient(SpeakUpdatedEvent()))
            return
        actions.append(SendUpstream(event))
        self.connection.session_update_kinds.append(SESSION_UPDATE_SPEAK)
        self.log.info(
            "UpdateSpeak → session.update",
            **{ATTR_DIRECTION: CLIENT_TO_UPSTREAM, ATTR_MESSAGE_TYPE: message.type},
        )

    def _on_function_call_response(self, message: FunctionCallResponseMessage, actions: List[Action]) -> None:
        conn = self.connection
        actions.append(SendUpstream(translator.function_call_response_to_item_create(message)))
        attrs = {ATTR_DIRECTION: CLIENT_TO_UPSTREAM, ATTR_MESSAGE_TYPE: message.type, "call_id": message.id}
        if conn.response_in_progress:
            # The response that requested the call is still open upstream
            conn.pending_response_create_after_function_call_output = True
            self.log.info("function_call_output sent; response.create deferred until the response closes", **attrs)
            return
        self.log.info("function_call_output sent", **attrs)
        self._request_response(actions)

    def _on_keep_alive(self, message: KeepAliveMessage, actions: List[Action]) -> None:
        self.log.debug("KeepAlive", **{ATTR_DIRECTION: CLIENT_TO_UPSTREAM, ATTR_MESSAGE_TYPE: message.type})

    def _on_close_message(self, message: CloseMessage, actions: List[Action]) -> None:
        self.log.info("client requested close", **{ATTR_MESSAGE_TYPE: message.type})
        actions.append(CloseConnection(reason="client_close"))
        self._mark_closed()

    def _on_audio_frame(self, message: AudioFrame, actions: List[Action]) -> None:
        if not message.data:
            return
        for event in translator.audio_to_append_events(message.data):
            actions.append(SendUpstream(event))
        pending = self.connection.audio_gate.record(len(message.data))
        self.log.debug(
            "input_audio_buffer.append",
            **{ATTR_DIRECTION: CLIENT_TO_UPSTREAM, "audio.bytes": len(message.data), "audio.pending_bytes": pending},
        )
        actions.append(ScheduleCommit())

    # Upstream event handlers
    def _relay(self, event: UpstreamEvent, actions: List[Action]) -> None:
        actions.append(SendClient(event.raw))

    def _on_session_created(self, event: SessionCreatedEvent, actions: List[Action]) -> None:
        # Arrives before our session.update is applied; not a readiness signal
        self.log.info("session.created received; waiting for session.updated")

    def _on_session_updated(self, event: SessionUpdatedEvent, actions: List[Action]) -> None:
        conn = self.connection
        kind = conn.session_update_kinds.popleft() if conn.session_update_kinds else SESSION_UPDATE_SETTINGS
        conn.session_configured = True
        if kind == SESSION_UPDATE_PROMPT:
            actions.append(SendClient(PromptUpdatedEvent()))
            return
        if kind == SESSION_UPDATE_SPEAK:
            actions.append(SendClient(SpeakUpdatedEvent()))
            return
        for item in conn.pending_context_items:
            actions.append(SendUpstream(item))
        conn.pending_context_acks += len(conn.pending_context_items)
        conn.pending_context_items.clear()
        actions.append(SendClient(translator.session_updated_to_settings_applied(event)))
        conn.settings_applied_sent = True
        if conn.greeting:
            # Client only: upstream rejects client-created assistant items here
            actions.append(SendClient(translator.greeting_to_conversation_text(conn.greeting)))
            self.log.info("greeting sent to client")
            conn.greeting = None
        self.log.info("session.updated → SettingsApplied", **{ATTR_DIRECTION: UPSTREAM_TO_CLIENT})

    def _counts_as_ack(self, event: ConversationItemEvent) -> bool:
        item = event.item
        if item is None:
            return True
        if item.type not in (None, "message"):
            return False
        if self.connection.pending_context_acks > 0:
            return True
        return item.role in (None, "user")

    def _on_conversation_item(self, event: ConversationItemEvent, actions: List[Action]) -> None:
        conn = self.connection
        item_id = event.item_id
        if (conn.pending_context_acks or conn.pending_item_acks) and self._counts_as_ack(event):
            if item_id is None or item_id not in conn.acked_item_ids:
                if item_id is not None:
                    conn.acked_item_ids.add(item_id)
                if conn.pending_context_acks > 0:
                    conn.pending_context_acks -= 1
                else:
                    conn.pending_item_acks -= 1
                    if conn.pending_item_acks == 0:
                        self._request_response(actions)
        self._relay(event, actions)

    def _on_response_created(self, event: ResponseCreatedEvent, actions: List[Action]) -> None:
        # Also covers responses the upstream starts on its own (server VAD)
        self.connection.response_in_progress = True
        self.connection.current_response_id = event.response_id
        actions.append(SendClient(translator.response_created_to_agent_thinking(event)))

    def _on_output_text_done(self, event: OutputTextDoneEvent, actions: List[Action]) -> None:
        conn = self.connection
        needs_started = not conn.agent_started_speaking_sent
        if event.response_id:
            conn.text_closed_response_ids.add(event.response_id)
        else:
            conn.text_closed_without_id += 1
        self._close_turn(actions)
        if needs_started:
            actions.append(SendClient(AgentStartedSpeakingEvent()))
        actions.append(SendClient(translator.output_text_done_to_conversation_text(event)))
        actions.append(SendClient(AgentAudioDoneEvent()))
        self._flush_idle_timeout_error(actions)

    def _on_response_done(self, event: ResponseDoneEvent, actions: List[Action]) -> None:
        conn = self.connection
        response_id = event.response_id
        if self._closed_by_text(response_id):
            # A newer response may be open
            return
        if response_id is not None and conn.current_response_id not in (None, response_id):
            self.log.debug("response.done for a response that is no longer open", response_id=response_id)
            return
        self._close_turn(actions, text_completed=False)
        self._flush_idle_timeout_error(actions)

    def _on_output_audio_delta(self, event: OutputAudioDeltaEvent, actions: List[Action]) -> None:
        pcm = translator.output_audio_delta_to_pcm(event)
        if not pcm:
            return
        self._mark_agent_speaking(actions)
        actions.append(SendClient(pcm))

    def _on_output_audio_done(self, event: OutputAudioDoneEvent, actions: List[Action]) -> None:
        # Upstream may send this before output_text.done; the turn stays open
        actions.append(SendClient(AgentAudioDoneEvent()))

    def _on_output_audio_transcript_done(self, event: OutputAudioTranscriptDoneEvent, actions: List[Action]) -> None:
        actions.append(SendClient(translator.output_audio_transcript_done_to_conversation_text(event)))

    def _on_function_call_arguments_done(self, event: FunctionCallArgumentsDoneEvent, actions: List[Action]) -> None:
        self.log.info(
            "function call requested → FunctionCallRequest",
            **{ATTR_DIRECTION: UPSTREAM_TO_CLIENT, ATTR_MESSAGE_TYPE: event.type, "function": event.name},
        )
        self._mark_agent_speaking(actions)
        actions.append(SendClient(translator.function_call_arguments_done_to_request(event)))
        actions.append(SendClient(translator.function_call_arguments_done_to_conversation_text(event)))

    def _on_speech_started(self, event: SpeechStartedEvent, actions: List[Action]) -> None:
        actions.append(SendClient(translator.speech_started_to_user_started_speaking()))

    def _on_speech_stopped(self, event: SpeechStoppedEvent, actions: List[Action]) -> None:
        actions.append(SendClient(translator.speech_stopped_to_utterance_end()))

    def _on_audio_committed(self, event: AudioBufferCommittedEvent, actions: List[Action]) -> None:
        conn = self.connection
        if conn.awaiting_commit_acks > 0:
            conn.awaiting_commit_acks -= 1
        else:
            # Committed by upstream turn detection; those bytes are gone
            conn.audio_gate.reset()
        self._relay(event, actions)

    def _on_transcription_delta(self, event: TranscriptionDeltaEvent, actions: List[Action]) -> None:
        actions.append(SendClient(translator.transcription_delta_to_transcript(event)))

    def _on_transcription_completed(self, event: TranscriptionCompletedEvent, actions: List[Action]) -> None:
        self.log.info(
            "input audio transcription completed → Transcript",
            **{ATTR_DIRECTION: UPSTREAM_TO_CLIENT, "transcript": event.transcript[:60]},
        )
        actions.append(SendClient(translator.transcription_completed_to_transcript(event)))

    def _on_error(self, event: RealtimeErrorEvent, actions: List[Action]) -> None:
        conn = self.connection
        message = (event.error.message if event.error else None) or ""
        idle_timeout = translator.is_idle_timeout_error(event)
        max_duration = translator.is_session_max_duration_error(event)
        attrs = {ATTR_DIRECTION: UPSTREAM_TO_CLIENT, ATTR_MESSAGE_TYPE: event.type, ATTR_ERROR_MESSAGE: message}
        if max_duration:
            self.log.info(f"expected session limit: {message or 'session max duration'}",
                          **attrs, **{ATTR_ERROR_CODE: "session_max_duration"})
        elif idle_timeout:
            self.log.info(f"expected idle timeout closure: {message or 'idle timeout'}",
                          **attrs, **{ATTR_ERROR_CODE: "idle_timeout"})
        else:
            code = (event.error.code if event.error else None) or ""
            self.log.error(message or "upstream error", **attrs, **{ATTR_ERROR_CODE: code})
            if translator.is_active_response_conflict(event):
                self.log.error(
                    "ordering violation: upstream reports an active response",
                    response_in_progress=conn.response_in_progress,
                    state=self.state.value,
                )
        client_error = translator.error_to_client_error(event, conn.trace_id, conn.connection_id)
        if idle_timeout and conn.response_in_progress:
            # Delivered after the open response's text
            conn.pending_idle_timeout_error = client_error
        else:
            actions.append(SendClient(client_error))


def _client_message_type(message: ClientMessage) -> str:
    if isinstance(message, AudioFrame):
        return "(binary)"
    return message.type

"""
Pure mapping functions between the voice-agent protocol and the OpenAI
Realtime event vocabulary.

Client-to-upstream builders return plain dicts ready to be serialized as
Realtime client events. Upstream-to-client mappers return client event models
(or raw PCM bytes for audio). Nothing here decides whether or when a message
is sent; that belongs to the session state machine.
"""

import base64
import json
from typing import List, Optional

from agent_proxy.config.constants import (
    DEFAULT_REALTIME_MODEL,
    MAX_AUDIO_BYTES_PER_APPEND,
    UPSTREAM_AUDIO_APPEND,
    UPSTREAM_AUDIO_COMMIT,
    UPSTREAM_ERROR_ACTIVE_RESPONSE,
    UPSTREAM_ERROR_IDLE_TIMEOUT,
    UPSTREAM_ERROR_SESSION_EXPIRED,
    UPSTREAM_ITEM_CREATE,
    UPSTREAM_RESPONSE_CREATE,
    UPSTREAM_SESSION_UPDATE,
)
from agent_proxy.models.message_schemas import (
    AgentThinkingEvent,
    ContextMessage,
    ConversationTextEvent,
    ErrorEvent,
    FunctionCallRequestEvent,
    FunctionCallRequestItem,
    FunctionCallResponseMessage,
    InjectAgentMessage,
    InjectUserMessage,
    SettingsAppliedEvent,
    SettingsMessage,
    TranscriptAlternative,
    TranscriptChannel,
    TranscriptEvent,
    UpdatePromptMessage,
    UpdateSpeakMessage,
    UserStartedSpeakingEvent,
    UtteranceEndEvent,
)
from agent_proxy.models.openai_schemas import (
    FunctionCallArgumentsDoneEvent,
    OutputAudioDeltaEvent,
    OutputAudioTranscriptDoneEvent,
    OutputTextDoneEvent,
    RealtimeErrorEvent,
    ResponseCreatedEvent,
    SessionUpdatedEvent,
    TranscriptionCompletedEvent,
    TranscriptionDeltaEvent,
)

MESSAGE_ROLES = ("user", "assistant")


# Client -> upstream
def settings_to_session_update(settings: SettingsMessage, default_model: str = DEFAULT_REALTIME_MODEL) -> dict:
    """
    Map Settings to a ``session.update`` event.

    The voice is not included: the Realtime API rejects ``session.voice``.
    Context messages and the greeting are not part of session.update either;
    they are handled after the session is confirmed.
    """
    think = settings.agent.think
    model = default_model
    instructions = ""
    if think is not None:
        if think.provider is not None and think.provider.model:
            model = think.provider.model
        instructions = think.prompt or ""
    session = {
        "type": "realtime",
        "model": model,
        "instructions": instructions,
    }
    if think is not None and think.functions:
        tools = []
        for function in think.functions:
            tool = {"type": "function", "name": function.name, "parameters": function.parameters or {}}
            if function.description is not None:
                tool["description"] = function.description
            tools.append(tool)
        session["tools"] = tools
    return {"type": UPSTREAM_SESSION_UPDATE, "session": session}


def message_item_create(role: str, text: str) -> dict:
    """
    Build a ``conversation.item.create`` for a text message.

    User content is ``input_text`` and assistant content ``output_text``; the
    API rejects ``input_text`` on assistant items. Roles other than user and
    assistant are sent as user.
    """
    if role not in MESSAGE_ROLES:
        role = "user"
    content_type = "input_text" if role == "user" else "output_text"
    return {
        "type": UPSTREAM_ITEM_CREATE,
        "item": {
            "type": "message",
            "role": role,
            "content": [{"type": content_type, "text": text or ""}],
        },
    }


def context_message_to_item_create(message: ContextMessage) -> dict:
    return message_item_create(message.role, message.content)


def settings_to_context_items(settings: SettingsMessage) -> List[dict]:
    """Item creates for the conversation history carried in Settings."""
    context = settings.agent.context
    if context is None:
        return []
    return [context_message_to_item_create(message) for message in context.messages]


def settings_greeting(settings: SettingsMessage) -> Optional[str]:
    """The greeting from Settings, or None when it is missing or blank."""
    greeting = settings.agent.greeting
    if greeting is None or not greeting.strip():
        return None
    return greeting


def inject_user_message_to_item_create(message: InjectUserMessage) -> dict:
    return message_item_create("user", message.content)


def inject_user_message_to_echo(message: InjectUserMessage) -> ConversationTextEvent:
    """User ConversationText echoed back so the client can keep its history."""
    return ConversationTextEvent(role="user", content=message.content)


def inject_agent_message_to_item_create(message: InjectAgentMessage) -> dict:
    return message_item_create("assistant", message.message)


def function_call_response_to_item_create(message: FunctionCallResponseMessage) -> dict:
    """
    Map a FunctionCallResponse to a ``function_call_output`` item.

    A failed call is reported to the model as a JSON object with an ``error`` key.
    """
    if message.error is not None:
        output = json.dumps({"error": message.error})
    else:
        output = message.content or ""
    return {
        "type": UPSTREAM_ITEM_CREATE,
        "item": {
            "type": "function_call_output",
            "call_id": message.id,
            "output": output,
        },
    }


def update_prompt_to_session_update(message: UpdatePromptMessage) -> dict:
    return {
        "type": UPSTREAM_SESSION_UPDATE,
        "session": {"type": "realtime", "instructions": message.prompt},
    }


def update_speak_to_session_update(message: UpdateSpeakMessage) -> Optional[dict]:
    """Map UpdateSpeak to a voice change, or None when it names no voice."""
    voice = message.speak.voice
    if not voice:
        return None
    return {
        "type": UPSTREAM_SESSION_UPDATE,
        "session": {"type": "realtime", "audio": {"output": {"voice": voice}}},
    }


def audio_to_append_events(data: bytes, max_chunk: int = MAX_AUDIO_BYTES_PER_APPEND) -> List[dict]:
    """
    Map one binary frame to ``input_audio_buffer.append`` events.

    Frames larger than the per-event limit are split; chunk boundaries fall on
    whole 16-bit samples.
    """
    if max_chunk % 2:
        max_chunk -= 1
    return [
        {
            "type": UPSTREAM_AUDIO_APPEND,
            "audio": base64.b64encode(data[offset:offset + max_chunk]).decode("ascii"),
        }
        for offset in range(0, len(data), max_chunk)
    ]


def audio_commit_event() -> dict:
    return {"type": UPSTREAM_AUDIO_COMMIT}


def response_create_event() -> dict:
    return {"type": UPSTREAM_RESPONSE_CREATE}


# Upstream -> client
def session_updated_to_settings_applied(event: Optional[SessionUpdatedEvent] = None) -> SettingsAppliedEvent:
    return SettingsAppliedEvent()


def greeting_to_conversation_text(greeting: str) -> ConversationTextEvent:
    return ConversationTextEvent(role="assistant", content=greeting)


def response_created_to_agent_thinking(event: ResponseCreatedEvent) -> AgentThinkingEvent:
    return AgentThinkingEvent()


def output_text_done_to_conversation_text(event: OutputTextDoneEvent) -> ConversationTextEvent:
    return ConversationTextEvent(role="assistant", content=event.text)


def output_audio_transcript_done_to_conversation_text(
    event: OutputAudioTranscriptDoneEvent,
) -> ConversationTextEvent:
    return ConversationTextEvent(role="assistant", content=event.transcript)


def output_audio_delta_to_pcm(event: OutputAudioDeltaEvent) -> bytes:
    """Decode an audio delta to the raw PCM sent to the client as a binary frame."""
    return base64.b64decode(event.delta)


def function_call_arguments_done_to_request(event: FunctionCallArgumentsDoneEvent) -> FunctionCallRequestEvent:
    return FunctionCallRequestEvent(
        functions=[
            FunctionCallRequestItem(
                id=event.call_id or "",
                name=event.name or "function",
                arguments=event.arguments or "",
                client_side=True,
            )
        ]
    )


def function_call_arguments_done_to_conversation_text(
    event: FunctionCallArgumentsDoneEvent,
) -> ConversationTextEvent:
    """Assistant text describing the call, e.g. ``Function call: get_weather({"city":"Paris"})``."""
    name = event.name or "function"
    arguments = (event.arguments or "").strip()
    return ConversationTextEvent(role="assistant", content=f"Function call: {name}({arguments})")


def speech_started_to_user_started_speaking() -> UserStartedSpeakingEvent:
    return UserStartedSpeakingEvent()


def speech_stopped_to_utterance_end() -> UtteranceEndEvent:
    return UtteranceEndEvent(channel=[0, 1], last_word_end=0)


def _transcript(text: str, is_final: bool) -> TranscriptEvent:
    return TranscriptEvent(
        transcript=text,
        is_final=is_final,
        speech_final=is_final,
        channel=TranscriptChannel(alternatives=[TranscriptAlternative(transcript=text)]),
    )


def transcription_delta_to_transcript(event: TranscriptionDeltaEvent) -> TranscriptEvent:
    return _transcript(event.delta, is_final=False)


def transcription_completed_to_transcript(event: TranscriptionCompletedEvent) -> TranscriptEvent:
    return _transcript(event.transcript, is_final=True)


def error_to_client_error(
    event: RealtimeErrorEvent,
    trace_id: Optional[str] = None,
    connection_id: Optional[str] = None,
) -> ErrorEvent:
    detail = event.error
    description = (detail.message if detail else None) or "Unknown error"
    code = (detail.code if detail else None) or "unknown"
    return ErrorEvent(
        description=str(description), code=str(code), trace_id=trace_id, connection_id=connection_id
    )


def proxy_error(
    description: str,
    code: str,
    trace_id: Optional[str] = None,
    connection_id: Optional[str] = None,
) -> ErrorEvent:
    """An Error raised by the proxy itself rather than relayed from upstream."""
    return ErrorEvent(description=description, code=code, trace_id=trace_id, connection_id=connection_id)


# Error classification
def _error_text(event: RealtimeErrorEvent) -> str:
    if event.error is None:
        return ""
    return (event.error.message or "").lower()


def _error_code(event: RealtimeErrorEvent) -> str:
    if event.error is None:
        return ""
    return (event.error.code or "").lower()


def is_idle_timeout_error(event: RealtimeErrorEvent) -> bool:
    """Upstream closed the session after a period without input."""
    code = _error_code(event)
    return code == UPSTREAM_ERROR_IDLE_TIMEOUT or "idle timeout" in _error_text(event) or "idle_timeout" in code


def is_session_max_duration_error(event: RealtimeErrorEvent) -> bool:
    """Upstream ended the session at its maximum allowed duration."""
    return _error_code(event) == UPSTREAM_ERROR_SESSION_EXPIRED or "maximum duration" in _error_text(event)


def is_active_response_conflict(event: RealtimeErrorEvent) -> bool:
    """Upstream rejected a request because a response was still open."""
    return (
        _error_code(event) == UPSTREAM_ERROR_ACTIVE_RESPONSE
        or "already has an active response" in _error_text(event)
    )

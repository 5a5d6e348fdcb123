"""
Pydantic models for OpenAI Realtime API server events.

Only the events the proxy acts on are modelled; they form a closed union
discriminated on ``type``. Any other well-formed event becomes an
UnknownUpstreamEvent, which the proxy relays to the client unchanged. Every
parsed event keeps the raw text it was parsed from.
"""

import base64
import binascii
import json
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, TypeAdapter, ValidationError, field_validator

from agent_proxy.errors import MalformedMessageError


class RealtimeModel(BaseModel):
    """Base for Realtime payloads; fields the proxy does not read are kept as extras."""

    model_config = ConfigDict(extra="allow")


class UpstreamEvent(RealtimeModel):
    """Base model for server events."""

    type: str
    event_id: Optional[str] = None
    _raw: str = PrivateAttr(default="")

    @property
    def raw(self) -> str:
        """The text frame this event was parsed from."""
        return self._raw or self.model_dump_json(exclude_none=True)


class ConversationItem(RealtimeModel):
    id: Optional[str] = None
    type: Optional[str] = None
    role: Optional[str] = None


class ResponseInfo(RealtimeModel):
    id: Optional[str] = None
    status: Optional[str] = None


class ErrorDetail(RealtimeModel):
    type: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None


# Session lifecycle
class SessionCreatedEvent(UpstreamEvent):
    type: Literal["session.created"]


class SessionUpdatedEvent(UpstreamEvent):
    type: Literal["session.updated"]


# Conversation items
class ConversationItemEvent(UpstreamEvent):
    item: Optional[ConversationItem] = None

    @property
    def item_id(self) -> Optional[str]:
        return self.item.id if self.item else None


class ConversationItemAddedEvent(ConversationItemEvent):
    type: Literal["conversation.item.added"]


class ConversationItemCreatedEvent(ConversationItemEvent):
    type: Literal["conversation.item.created"]


class ConversationItemDoneEvent(ConversationItemEvent):
    type: Literal["conversation.item.done"]


# Responses
class ResponseCreatedEvent(UpstreamEvent):
    type: Literal["response.created"]
    response: Optional[ResponseInfo] = None

    @property
    def response_id(self) -> Optional[str]:
        return self.response.id if self.response else None


class ResponseDoneEvent(UpstreamEvent):
    type: Literal["response.done"]
    response: Optional[ResponseInfo] = None

    @property
    def response_id(self) -> Optional[str]:
        return self.response.id if self.response else None


class OutputTextDeltaEvent(UpstreamEvent):
    type: Literal["response.output_text.delta"]
    response_id: Optional[str] = None
    delta: str = ""


class OutputTextDoneEvent(UpstreamEvent):
    type: Literal["response.output_text.done"]
    response_id: Optional[str] = None
    text: str = ""


class OutputAudioDeltaEvent(UpstreamEvent):
    """Base64-encoded PCM produced by the model."""

    type: Literal["response.output_audio.delta"]
    response_id: Optional[str] = None
    delta: str = ""

    @field_validator("delta")
    def validate_delta(cls, v):
        """Validate that the audio delta is valid base64."""
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("Invalid base64 encoded audio data")
        return v


class OutputAudioDoneEvent(UpstreamEvent):
    type: Literal["response.output_audio.done"]
    response_id: Optional[str] = None


class OutputAudioTranscriptDoneEvent(UpstreamEvent):
    type: Literal["response.output_audio_transcript.done"]
    response_id: Optional[str] = None
    transcript: str = ""


class FunctionCallArgumentsDoneEvent(UpstreamEvent):
    """The model finished streaming the arguments of a function call."""

    type: Literal["response.function_call_arguments.done"]
    response_id: Optional[str] = None
    call_id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


# Input audio
class SpeechStartedEvent(UpstreamEvent):
    type: Literal["input_audio_buffer.speech_started"]


class SpeechStoppedEvent(UpstreamEvent):
    type: Literal["input_audio_buffer.speech_stopped"]


class AudioBufferCommittedEvent(UpstreamEvent):
    type: Literal["input_audio_buffer.committed"]
    item_id: Optional[str] = None


class TranscriptionDeltaEvent(UpstreamEvent):
    type: Literal["conversation.item.input_audio_transcription.delta"]
    item_id: Optional[str] = None
    delta: str = ""


class TranscriptionCompletedEvent(UpstreamEvent):
    type: Literal["conversation.item.input_audio_transcription.completed"]
    item_id: Optional[str] = None
    transcript: str = ""


class RealtimeErrorEvent(UpstreamEvent):
    type: Literal["error"]
    error: Optional[ErrorDetail] = None


class UnknownUpstreamEvent(UpstreamEvent):
    """Any event type the proxy does not act on; relayed verbatim."""


KnownUpstreamEvent = Annotated[
    Union[
        SessionCreatedEvent,
        SessionUpdatedEvent,
        ConversationItemAddedEvent,
        ConversationItemCreatedEvent,
        ConversationItemDoneEvent,
        ResponseCreatedEvent,
        ResponseDoneEvent,
        OutputTextDeltaEvent,
        OutputTextDoneEvent,
        OutputAudioDeltaEvent,
        OutputAudioDoneEvent,
        OutputAudioTranscriptDoneEvent,
        FunctionCallArgumentsDoneEvent,
        SpeechStartedEvent,
        SpeechStoppedEvent,
        AudioBufferCommittedEvent,
        TranscriptionDeltaEvent,
        TranscriptionCompletedEvent,
        RealtimeErrorEvent,
    ],
    Field(discriminator="type"),
]

KNOWN_UPSTREAM_EVENT_TYPES = (
    "session.created",
    "session.updated",
    "conversation.item.added",
    "conversation.item.created",
    "conversation.item.done",
    "response.created",
    "response.done",
    "response.output_text.delta",
    "response.output_text.done",
    "response.output_audio.delta",
    "response.output_audio.done",
    "response.output_audio_transcript.done",
    "response.function_call_arguments.done",
    "input_audio_buffer.speech_started",
    "input_audio_buffer.speech_stopped",
    "input_audio_buffer.committed",
    "conversation.item.input_audio_transcription.delta",
    "conversation.item.input_audio_transcription.completed",
    "error",
)

_upstream_event_adapter = TypeAdapter(KnownUpstreamEvent)


def parse_upstream_event(text: str) -> UpstreamEvent:
    """
    Parse one text frame received from the upstream.

    Args:
        text: Raw JSON text

    Returns:
        A typed event, or UnknownUpstreamEvent for types the proxy does not act on

    Raises:
        MalformedMessageError: invalid JSON, a missing ``type``, or a known
            event type whose payload does not match
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedMessageError("upstream", f"invalid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise MalformedMessageError("upstream", "expected a JSON object")
    event_type = data.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise MalformedMessageError("upstream", "missing type")
    try:
        if event_type in KNOWN_UPSTREAM_EVENT_TYPES:
            event = _upstream_event_adapter.validate_python(data)
        else:
            event = UnknownUpstreamEvent.model_validate(data)
    except ValidationError as e:
        raise MalformedMessageError("upstream", f"invalid {event_type}: {e.error_count()} validation error(s)") from e
    event._raw = text
    return event

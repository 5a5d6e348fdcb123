"""
Pydantic models for the client-side voice-agent protocol.

This module defines the messages a voice-agent client sends to the proxy
(JSON control messages plus binary audio frames) and the events the proxy
sends back. Inbound control messages form a closed union discriminated on
``type``; anything outside it is rejected as malformed.
"""

import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from agent_proxy.errors import MalformedMessageError


class ClientModel(BaseModel):
    """Base for client payloads; unknown fields are tolerated and ignored."""

    model_config = ConfigDict(extra="allow")


# Settings
class FunctionDefinition(ClientModel):
    """A function the agent may ask the client to call."""

    name: str = Field(..., description="Function name")
    description: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None

    @field_validator("name")
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("Function name cannot be empty")
        return v


class ThinkProvider(ClientModel):
    model: Optional[str] = None


class ThinkSettings(ClientModel):
    provider: Optional[ThinkProvider] = None
    prompt: Optional[str] = None
    functions: List[FunctionDefinition] = Field(default_factory=list)


class SpeakProvider(ClientModel):
    voice: Optional[str] = None
    model: Optional[str] = None


class SpeakSettings(ClientModel):
    provider: Optional[SpeakProvider] = None

    @property
    def voice(self) -> Optional[str]:
        if self.provider is None:
            return None
        return self.provider.voice or self.provider.model


class ContextMessage(ClientModel):
    """One prior conversation turn replayed into a new session."""

    type: Optional[str] = None
    role: str = Field(..., description="user or assistant")
    content: str = ""


class ContextSettings(ClientModel):
    messages: List[ContextMessage] = Field(default_factory=list)


class AgentSettings(ClientModel):
    think: Optional[ThinkSettings] = None
    speak: Optional[SpeakSettings] = None
    context: Optional[ContextSettings] = None
    greeting: Optional[str] = None


class SettingsMessage(ClientModel):
    """Session configuration; the first message of every session."""

    type: Literal["Settings"]
    audio: Optional[Dict[str, Any]] = None
    agent: AgentSettings = Field(default_factory=AgentSettings)


# Conversation messages
class InjectUserMessage(ClientModel):
    type: Literal["InjectUserMessage"]
    content: str = Field(..., description="Text the user typed")


class InjectAgentMessage(ClientModel):
    type: Literal["InjectAgentMessage"]
    message: str = Field(..., description="Text the agent should be recorded as saying")


class UpdatePromptMessage(ClientModel):
    type: Literal["UpdatePrompt"]
    prompt: str


class UpdateSpeakMessage(ClientModel):
    type: Literal["UpdateSpeak"]
    speak: SpeakSettings


class FunctionCallResponseMessage(ClientModel):
    """Result of a client-side function call."""

    type: Literal["FunctionCallResponse"]
    id: str = Field(..., description="Call id from the matching FunctionCallRequest")
    name: str = Field(..., description="Function name")
    content: Optional[str] = Field(None, description="Function result")
    error: Optional[str] = Field(None, description="Failure description when the call failed")

    @field_validator("id")
    def validate_id(cls, v):
        if not v.strip():
            raise ValueError("Function call id cannot be empty")
        return v


class KeepAliveMessage(ClientModel):
    type: Literal["KeepAlive"]


class CloseMessage(ClientModel):
    type: Literal["Close"]


class AudioFrame(BaseModel):
    """Raw PCM audio received in a binary frame."""

    data: bytes

    def __len__(self) -> int:
        return len(self.data)


ClientControlMessage = Annotated[
    Union[
        SettingsMessage,
        InjectUserMessage,
        UpdatePromptMessage,
        UpdateSpeakMessage,
        InjectAgentMessage,
        FunctionCallResponseMessage,
        KeepAliveMessage,
        CloseMessage,
    ],
    Field(discriminator="type"),
]

# Union type for all possible incoming messages
ClientMessage = Union[
    SettingsMessage,
    InjectUserMessage,
    UpdatePromptMessage,
    UpdateSpeakMessage,
    InjectAgentMessage,
    FunctionCallResponseMessage,
    KeepAliveMessage,
    CloseMessage,
    AudioFrame,
]

CLIENT_MESSAGE_TYPES = (
    "Settings",
    "InjectUserMessage",
    "UpdatePrompt",
    "UpdateSpeak",
    "InjectAgentMessage",
    "FunctionCallResponse",
    "KeepAlive",
    "Close",
)

_client_message_adapter = TypeAdapter(ClientControlMessage)


def parse_client_message(text: str) -> ClientMessage:
    """
    Parse one JSON text frame from the client.

    Args:
        text: Raw text frame

    Returns:
        The typed client message

    Raises:
        MalformedMessageError: invalid JSON, a missing or unknown ``type``,
            or a payload that does not match its type
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedMessageError("client", f"invalid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise MalformedMessageError("client", "expected a JSON object")
    message_type = data.get("type")
    if not message_type:
        raise MalformedMessageError("client", "missing type")
    if message_type not in CLIENT_MESSAGE_TYPES:
        raise MalformedMessageError("client", f"unknown message type: {message_type}")
    try:
        return _client_message_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedMessageError("client", f"invalid {message_type}: {e.error_count()} validation error(s)") from e


# Events sent to the client
class ClientEvent(BaseModel):
    """Base model for events sent to the client."""

    type: str

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


class SettingsAppliedEvent(ClientEvent):
    type: Literal["SettingsApplied"] = "SettingsApplied"


class PromptUpdatedEvent(ClientEvent):
    type: Literal["PromptUpdated"] = "PromptUpdated"


class SpeakUpdatedEvent(ClientEvent):
    type: Literal["SpeakUpdated"] = "SpeakUpdated"


class ConversationTextEvent(ClientEvent):
    type: Literal["ConversationText"] = "ConversationText"
    role: Literal["user", "assistant"]
    content: str


class AgentThinkingEvent(ClientEvent):
    type: Literal["AgentThinking"] = "AgentThinking"
    content: str = ""


class AgentStartedSpeakingEvent(ClientEvent):
    type: Literal["AgentStartedSpeaking"] = "AgentStartedSpeaking"


class AgentAudioDoneEvent(ClientEvent):
    type: Literal["AgentAudioDone"] = "AgentAudioDone"


class FunctionCallRequestItem(BaseModel):
    id: str
    name: str
    arguments: str
    client_side: bool = True


class FunctionCallRequestEvent(ClientEvent):
    type: Literal["FunctionCallRequest"] = "FunctionCallRequest"
    functions: List[FunctionCallRequestItem]


class UserStartedSpeakingEvent(ClientEvent):
    type: Literal["UserStartedSpeaking"] = "UserStartedSpeaking"


class UtteranceEndEvent(ClientEvent):
    type: Literal["UtteranceEnd"] = "UtteranceEnd"
    channel: List[int] = Field(default_factory=lambda: [0, 1])
    last_word_end: float = 0


class TranscriptAlternative(BaseModel):
    transcript: str


class TranscriptChannel(BaseModel):
    alternatives: List[TranscriptAlternative]


class TranscriptEvent(ClientEvent):
    """User speech transcription (interim when ``is_final`` is false)."""

    type: Literal["Transcript"] = "Transcript"
    transcript: str
    is_final: bool
    speech_final: bool
    channel: TranscriptChannel


class ErrorEvent(ClientEvent):
    type: Literal["Error"] = "Error"
    description: str
    code: str
    trace_id: Optional[str] = None
    connection_id: Optional[str] = None


# Union type for all possible outgoing JSON events
OutgoingEvent = Union[
    SettingsAppliedEvent,
    PromptUpdatedEvent,
    SpeakUpdatedEvent,
    ConversationTextEvent,
    AgentThinkingEvent,
    AgentStartedSpeakingEvent,
    AgentAudioDoneEvent,
    FunctionCallRequestEvent,
    UserStartedSpeakingEvent,
    UtteranceEndEvent,
    TranscriptEvent,
    ErrorEvent,
]

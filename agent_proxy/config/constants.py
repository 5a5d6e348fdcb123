"""
Constants and configuration values used throughout the application.

This module keeps the wire vocabulary of both protocols, the audio format the
upstream expects, and the defaults for the proxy endpoint in one place so that
the translator, the state machine and the tests agree on them.
"""

# Logger name used throughout the application
LOGGER_NAME = "agent_proxy"

# Upstream defaults
DEFAULT_REALTIME_MODEL = "gpt-realtime"
REALTIME_BASE_URL = "wss://api.openai.com/v1/realtime"
DEFAULT_REALTIME_URL = f"{REALTIME_BASE_URL}?model={DEFAULT_REALTIME_MODEL}"

# Proxy endpoint defaults
DEFAULT_PROXY_HOST = "0.0.0.0"
DEFAULT_PROXY_PORT = 8080
DEFAULT_PROXY_PATH = "/openai"
TRACE_ID_QUERY_PARAM = "traceId"

# Input audio format: 24 kHz, 16-bit little-endian PCM, mono
AUDIO_SAMPLE_RATE = 24000
AUDIO_SAMPLE_WIDTH = 2
AUDIO_CHANNELS = 1

# Upstream rejects commits with less than 100 ms of buffered audio
MIN_AUDIO_MS_FOR_COMMIT = 100
MIN_AUDIO_BYTES_FOR_COMMIT = (
    AUDIO_SAMPLE_RATE * AUDIO_SAMPLE_WIDTH * AUDIO_CHANNELS * MIN_AUDIO_MS_FOR_COMMIT // 1000
)

# Upstream limit for one input_audio_buffer.append event (decoded bytes)
MAX_AUDIO_BYTES_PER_APPEND = 15 * 1024 * 1024

# Delay after the last binary frame before commit + response.create
COMMIT_DEBOUNCE_MS = 400

# Upstream connection settings
UPSTREAM_CONNECT_TIMEOUT = 30  # seconds
UPSTREAM_MAX_SIZE = 16 * 1024 * 1024
UPSTREAM_PING_INTERVAL = 20  # seconds

# Client message types
CLIENT_SETTINGS = "Settings"
CLIENT_INJECT_USER_MESSAGE = "InjectUserMessage"
CLIENT_UPDATE_PROMPT = "UpdatePrompt"
CLIENT_UPDATE_SPEAK = "UpdateSpeak"
CLIENT_INJECT_AGENT_MESSAGE = "InjectAgentMessage"
CLIENT_FUNCTION_CALL_RESPONSE = "FunctionCallResponse"
CLIENT_KEEP_ALIVE = "KeepAlive"
CLIENT_CLOSE = "Close"

# Events sent to the client
EVENT_SETTINGS_APPLIED = "SettingsApplied"
EVENT_CONVERSATION_TEXT = "ConversationText"
EVENT_AGENT_THINKING = "AgentThinking"
EVENT_AGENT_STARTED_SPEAKING = "AgentStartedSpeaking"
EVENT_AGENT_AUDIO_DONE = "AgentAudioDone"
EVENT_FUNCTION_CALL_REQUEST = "FunctionCallRequest"
EVENT_USER_STARTED_SPEAKING = "UserStartedSpeaking"
EVENT_UTTERANCE_END = "UtteranceEnd"
EVENT_TRANSCRIPT = "Transcript"
EVENT_ERROR = "Error"

# Upstream client events
UPSTREAM_SESSION_UPDATE = "session.update"
UPSTREAM_ITEM_CREATE = "conversation.item.create"
UPSTREAM_RESPONSE_CREATE = "response.create"
UPSTREAM_AUDIO_APPEND = "input_audio_buffer.append"
UPSTREAM_AUDIO_COMMIT = "input_audio_buffer.commit"

# Upstream server events
UPSTREAM_SESSION_CREATED = "session.created"
UPSTREAM_SESSION_UPDATED = "session.updated"
UPSTREAM_ITEM_ADDED = "conversation.item.added"
UPSTREAM_ITEM_CREATED = "conversation.item.created"
UPSTREAM_ITEM_DONE = "conversation.item.done"
UPSTREAM_RESPONSE_CREATED = "response.created"
UPSTREAM_RESPONSE_DONE = "response.done"
UPSTREAM_OUTPUT_TEXT_DELTA = "response.output_text.delta"
UPSTREAM_OUTPUT_TEXT_DONE = "response.output_text.done"
UPSTREAM_OUTPUT_AUDIO_DELTA = "response.output_audio.delta"
UPSTREAM_OUTPUT_AUDIO_DONE = "response.output_audio.done"
UPSTREAM_OUTPUT_AUDIO_TRANSCRIPT_DONE = "response.output_audio_transcript.done"
UPSTREAM_FUNCTION_CALL_ARGUMENTS_DONE = "response.function_call_arguments.done"
UPSTREAM_SPEECH_STARTED = "input_audio_buffer.speech_started"
UPSTREAM_SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
UPSTREAM_TRANSCRIPTION_DELTA = "conversation.item.input_audio_transcription.delta"
UPSTREAM_TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
UPSTREAM_ERROR = "error"

# Error codes reported to the client by the proxy itself
ERROR_UPSTREAM_CONNECTION_FAILED = "upstream_connection_failed"
ERROR_UPSTREAM_CLOSED_BEFORE_SESSION_READY = "upstream_closed_before_session_ready"
ERROR_UPSTREAM_CLOSED = "upstream_closed"
ERROR_MALFORMED_MESSAGE = "malformed_message"

# Upstream error codes with special handling
UPSTREAM_ERROR_ACTIVE_RESPONSE = "conversation_already_has_active_response"
UPSTREAM_ERROR_IDLE_TIMEOUT = "idle_timeout"
UPSTREAM_ERROR_SESSION_EXPIRED = "session_expired"

import base64
import json

from agent_proxy.models.message_schemas import (
    FunctionCallResponseMessage,
    InjectAgentMessage,
    InjectUserMessage,
    SettingsMessage,
    UpdatePromptMessage,
    UpdateSpeakMessage,
)
from agent_proxy.models.openai_schemas import parse_upstream_event
from agent_proxy.proxy import translator


def settings_message(agent: dict) -> SettingsMessage:
    return SettingsMessage(type="Settings", agent=agent)


def upstream(payload: dict):
    return parse_upstream_event(json.dumps(payload))


def test_settings_to_session_update_with_functions():
    settings = settings_message({
        "think": {
            "prompt": "You are helpful.",
            "functions": [
                {"name": "get_weather", "description": "Weather lookup", "parameters": {"type": "object"}},
                {"name": "hang_up"},
            ],
        },
        "speak": {"provider": {"voice": "alloy"}},
    })

    event = translator.settings_to_session_update(settings, default_model="gpt-realtime")

    assert event["type"] == "session.update"
    session = event["session"]
    assert session["model"] == "gpt-realtime"
    assert session["instructions"] == "You are helpful."
    assert session["tools"] == [
        {"type": "function", "name": "get_weather", "parameters": {"type": "object"}, "description": "Weather lookup"},
        {"type": "function", "name": "hang_up", "parameters": {}},
    ]
    # The realtime session rejects a top-level voice
    assert "voice" not in session


def test_settings_without_think_uses_defaults():
    event = translator.settings_to_session_update(settings_message({}), default_model="gpt-realtime")
    assert event["session"] == {"type": "realtime", "model": "gpt-realtime", "instructions": ""}


def test_message_item_create_content_types():
    user = translator.message_item_create("user", "Hi")
    assistant = translator.message_item_create("assistant", "Hello")
    system = translator.message_item_create("system", "Rules")

    assert user["item"]["content"] == [{"type": "input_text", "text": "Hi"}]
    assert assistant["item"]["content"] == [{"type": "output_text", "text": "Hello"}]
    assert system["item"]["role"] == "user"


def test_context_and_greeting_from_settings():
    settings = settings_message({
        "context": {"messages": [{"role": "assistant", "content": "Earlier reply"}]},
        "greeting": "   ",
    })
    items = translator.settings_to_context_items(settings)
    assert len(items) == 1
    assert items[0]["item"]["role"] == "assistant"
    assert translator.settings_greeting(settings) is None
    assert translator.settings_greeting(settings_message({"greeting": "Hello!"})) == "Hello!"


def test_inject_messages():
    user = InjectUserMessage(type="InjectUserMessage", content="Book a table")
    agent = InjectAgentMessage(type="InjectAgentMessage", message="Sure")

    assert translator.inject_user_message_to_item_create(user)["item"]["role"] == "user"
    echo = translator.inject_user_message_to_echo(user)
    assert (echo.role, echo.content) == ("user", "Book a table")
    assert translator.inject_agent_message_to_item_create(agent)["item"]["role"] == "assistant"


def test_function_call_response_output():
    ok = FunctionCallResponseMessage(type="FunctionCallResponse", id="call_1", name="f", content="42")
    failed = FunctionCallResponseMessage(type="FunctionCallResponse", id="call_2", name="f", error="timeout")

    assert translator.function_call_response_to_item_create(ok)["item"] == {
        "type": "function_call_output", "call_id": "call_1", "output": "42",
    }
    assert json.loads(translator.function_call_response_to_item_create(failed)["item"]["output"]) == {
        "error": "timeout"
    }


def test_update_prompt_and_speak():
    prompt = UpdatePromptMessage(type="UpdatePrompt", prompt="Be formal")
    assert translator.update_prompt_to_session_update(prompt)["session"]["instructions"] == "Be formal"

    speak = UpdateSpeakMessage(type="UpdateSpeak", speak={"provider": {"model": "aura-asteria-en"}})
    assert translator.update_speak_to_session_update(speak)["session"]["audio"]["output"]["voice"] == "aura-asteria-en"

    empty = UpdateSpeakMessage(type="UpdateSpeak", speak={})
    assert translator.update_speak_to_session_update(empty) is None


def test_audio_to_append_events_splits_on_sample_boundaries():
    data = bytes(range(256)) * 10
    events = translator.audio_to_append_events(data, max_chunk=1001)

    decoded = [base64.b64decode(event["audio"]) for event in events]
    assert [len(chunk) for chunk in decoded] == [1000, 1000, 560]
    assert b"".join(decoded) == data
    assert all(event["type"] == "input_audio_buffer.append" for event in events)


def test_audio_to_append_events_single_frame():
    events = translator.audio_to_append_events(b"\x01\x00" * 480)
    assert len(events) == 1


def test_output_audio_delta_to_pcm():
    pcm = b"\x10\x00\x20\x00"
    event = upstream({"type": "response.output_audio.delta", "delta": base64.b64encode(pcm).decode()})
    assert translator.output_audio_delta_to_pcm(event) == pcm


def test_function_call_arguments_done_defaults():
    event = upstream({"type": "response.function_call_arguments.done"})
    request = translator.function_call_arguments_done_to_request(event)
    assert request.functions[0].name == "function"
    assert request.functions[0].arguments == ""
    text = translator.function_call_arguments_done_to_conversation_text(event)
    assert text.content == "Function call: function()"


def test_transcripts():
    interim = translator.transcription_delta_to_transcript(
        upstream({"type": "conversation.item.input_audio_transcription.delta", "delta": "hel"})
    )
    final = translator.transcription_completed_to_transcript(
        upstream({"type": "conversation.item.input_audio_transcription.completed", "transcript": "hello"})
    )
    assert (interim.is_final, interim.speech_final) == (False, False)
    assert (final.is_final, final.transcript) == (True, "hello")


def test_error_to_client_error_defaults():
    event = upstream({"type": "error"})
    error = translator.error_to_client_error(event, trace_id="t-1", connection_id="c7")
    assert (error.description, error.code, error.trace_id) == ("Unknown error", "unknown", "t-1")
    assert json.loads(error.to_json())["connection_id"] == "c7"


def test_error_classification():
    idle = upstream({"type": "error", "error": {"message": "Session closed after idle timeout"}})
    expired = upstream({"type": "error", "error": {"code": "session_expired", "message": "expired"}})
    conflict = upstream({"type": "error", "error": {"code": "conversation_already_has_active_response"}})
    other = upstream({"type": "error", "error": {"code": "invalid_value", "message": "bad voice"}})

    assert translator.is_idle_timeout_error(idle)
    assert translator.is_session_max_duration_error(expired)
    assert translator.is_active_response_conflict(conflict)
    assert not any(
        check(other)
        for check in (
            translator.is_idle_timeout_error,
            translator.is_session_max_duration_error,
            translator.is_active_response_conflict,
        )
    )


def test_to_json_omits_missing_trace_id():
    error = translator.proxy_error("boom", "upstream_closed")
    assert json.loads(error.to_json()) == {"type": "Error", "description": "boom", "code": "upstream_closed"}

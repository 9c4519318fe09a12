"""Tests for Anthropic Messages <-> OpenAI Chat Completions translator."""

import json

import pytest

from anthropic_proxy.config_loader import ProxyConfig
from anthropic_proxy.core.exceptions import SerializationError, TransformError
from anthropic_proxy.messages.translator import (
    _convert_system_to_openai,
    _convert_tools,
    chat_completion_to_messages,
    clean_schema,
    map_stop_reason,
    messages_to_chat_completions,
    select_model,
)
from anthropic_proxy.testing import build_openai_chat_response, echo_response


def _payload(**overrides):
    payload = {
        "model": "claude-3-opus",
        "max_tokens": 1024,
        "messages": [{"role": "user", "content": "Hello"}],
    }
    payload.update(overrides)
    return payload


# =============================================================================
# messages_to_chat_completions() tests
# =============================================================================


class TestMessagesToChatCompletions:
    """Tests for translating Anthropic Messages requests to OpenAI Chat Completions."""

    def test_simple_text_message(self):
        result = messages_to_chat_completions(_payload())

        assert result["model"] == "claude-3-opus"
        assert result["max_tokens"] == 1024
        assert result["messages"] == [{"role": "user", "content": "Hello"}]
        assert "tools" not in result

    def test_system_as_string(self):
        result = messages_to_chat_completions(_payload(system="You are a helpful assistant."))

        assert result["messages"][0] == {"role": "system", "content": "You are a helpful assistant."}
        assert result["messages"][1] == {"role": "user", "content": "Hello"}

    def test_system_as_list_gives_one_message_per_entry(self):
        system = [
            {"type": "text", "text": "First."},
            {"type": "text", "text": "Second."},
        ]
        result = messages_to_chat_completions(_payload(system=system))

        assert result["messages"][:2] == [
            {"role": "system", "content": "First."},
            {"role": "system", "content": "Second."},
        ]

    def test_optional_parameters_pass_through(self):
        result = messages_to_chat_completions(_payload(
            temperature=0.2,
            top_p=0.9,
            stop_sequences=["END"],
            stream=True,
        ))

        assert result["temperature"] == 0.2
        assert result["top_p"] == 0.9
        assert result["stop"] == ["END"]
        assert result["stream"] is True

    def test_absent_optional_parameters_are_omitted(self):
        result = messages_to_chat_completions(_payload())

        for key in ("temperature", "top_p", "stop", "stream"):
            assert key not in result

    def test_single_text_block_collapses_to_string(self):
        messages = [{"role": "user", "content": [{"type": "text", "text": "Hi"}]}]
        result = messages_to_chat_completions(_payload(messages=messages))

        assert result["messages"] == [{"role": "user", "content": "Hi"}]

    def test_text_and_image_become_content_parts(self):
        messages = [{
            "role": "user",
            "content": [
                {"type": "text", "text": "What is this?"},
                {"type": "image", "source": {"type": "base64", "media_type": "image/jpeg", "data": "abc"}},
            ],
        }]
        result = messages_to_chat_completions(_payload(messages=messages))

        assert result["messages"][0]["content"] == [
            {"type": "text", "text": "What is this?"},
            {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,abc"}},
        ]

    def test_url_image_source(self):
        messages = [{
            "role": "user",
            "content": [{"type": "image", "source": {"type": "url", "url": "https://x/img.png"}}],
        }]
        result = messages_to_chat_completions(_payload(messages=messages))

        assert result["messages"][0]["content"] == [
            {"type": "image_url", "image_url": {"url": "https://x/img.png"}},
        ]

    def test_tool_use_becomes_tool_calls(self):
        messages = [
            {"role": "user", "content": "Weather?"},
            {
                "role": "assistant",
                "content": [
                    {"type": "text", "text": "Checking."},
                    {"type": "tool_use", "id": "toolu_1", "name": "get_weather", "input": {"city": "Oslo"}},
                ],
            },
        ]
        result = messages_to_chat_completions(_payload(messages=messages))

        assistant = result["messages"][1]
        assert assistant["role"] == "assistant"
        assert assistant["content"] == "Checking."
        assert assistant["tool_calls"] == [{
            "id": "toolu_1",
            "type": "function",
            "function": {"name": "get_weather", "arguments": json.dumps({"city": "Oslo"})},
        }]

    def test_tool_use_only_message_has_null_content(self):
        messages = [{
            "role": "assistant",
            "content": [{"type": "tool_use", "id": "t", "name": "f", "input": {}}],
        }]
        result = messages_to_chat_completions(_payload(messages=messages))

        assert result["messages"][0]["content"] is None
        assert result["messages"][0]["tool_calls"][0]["function"]["arguments"] == "{}"

    def test_tool_result_becomes_tool_message(self):
        messages = [{
            "role": "user",
            "content": [
                {"type": "tool_result", "tool_use_id": "toolu_1", "content": "Sunny"},
                {"type": "text", "text": "Thanks"},
            ],
        }]
        result = messages_to_chat_completions(_payload(messages=messages))

        assert result["messages"] == [
            {"role": "tool", "tool_call_id": "toolu_1", "content": "Sunny"},
            {"role": "user", "content": "Thanks"},
        ]

    def test_tool_result_with_block_content(self):
        messages = [{
            "role": "user",
            "content": [{
                "type": "tool_result",
                "tool_use_id": "t",
                "content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}],
            }],
        }]
        result = messages_to_chat_completions(_payload(messages=messages))

        assert result["messages"] == [{"role": "tool", "tool_call_id": "t", "content": "a\nb"}]

    def test_thinking_blocks_are_dropped(self):
        messages = [{
            "role": "assistant",
            "content": [
                {"type": "thinking", "thinking": "secret", "signature": "sig"},
                {"type": "redacted_thinking", "data": "xxx"},
                {"type": "text", "text": "Visible"},
            ],
        }]
        result = messages_to_chat_completions(_payload(messages=messages))

        assert result["messages"] == [{"role": "assistant", "content": "Visible"}]

    def test_tools_entry_must_be_object(self):
        with pytest.raises(TransformError):
            messages_to_chat_completions(_payload(tools=["get_weather"]))

    def test_tools_must_be_list(self):
        with pytest.raises(TransformError):
            messages_to_chat_completions(_payload(tools={"name": "x"}))

    def test_image_source_must_be_object(self):
        messages = [{"role": "user", "content": [{"type": "image", "source": "https://x/img.png"}]}]
        with pytest.raises(TransformError):
            messages_to_chat_completions(_payload(messages=messages))

    def test_string_tool_input_is_json_encoded(self):
        messages = [{
            "role": "assistant",
            "content": [{"type": "tool_use", "id": "t", "name": "f", "input": "raw text"}],
        }]
        result = messages_to_chat_completions(_payload(messages=messages))

        assert result["messages"][0]["tool_calls"][0]["function"]["arguments"] == '"raw text"'

    def test_invalid_content_raises(self):
        with pytest.raises(TransformError):
            messages_to_chat_completions(_payload(messages=[{"role": "user", "content": 42}]))

    def test_tools_are_converted(self):
        tools = [{
            "name": "get_weather",
            "description": "Get weather",
            "input_schema": {"type": "object", "properties": {"city": {"type": "string"}}},
        }]
        result = messages_to_chat_completions(_payload(tools=tools))

        assert result["tools"] == [{
            "type": "function",
            "function": {
                "name": "get_weather",
                "description": "Get weather",
                "parameters": {"type": "object", "properties": {"city": {"type": "string"}}},
            },
        }]

    def test_only_batch_tool_omits_tools_field(self):
        tools = [{"type": "BatchTool", "name": "batch", "input_schema": {}}]
        result = messages_to_chat_completions(_payload(tools=tools))

        assert "tools" not in result

    def test_batch_tool_dropped_among_others(self):
        tools = [
            {"type": "BatchTool", "name": "batch", "input_schema": {}},
            {"name": "keep", "input_schema": {"type": "object"}},
        ]
        result = _convert_tools(tools)

        assert [tool["function"]["name"] for tool in result] == ["keep"]


class TestSystemConversion:
    def test_none(self):
        assert _convert_system_to_openai(None) == []

    def test_invalid_type_raises(self):
        with pytest.raises(TransformError):
            _convert_system_to_openai(3)


class TestCleanSchema:
    def test_strips_uri_format_at_any_depth(self):
        schema = {
            "type": "object",
            "properties": {
                "link": {"type": "string", "format": "uri"},
                "nested": {
                    "type": "object",
                    "properties": {"deep": {"type": "string", "format": "uri"}},
                },
                "list": {"type": "array", "items": {"type": "string", "format": "uri"}},
            },
        }
        cleaned = clean_schema(schema)

        assert "format" not in cleaned["properties"]["link"]
        assert "format" not in cleaned["properties"]["nested"]["properties"]["deep"]
        assert "format" not in cleaned["properties"]["list"]["items"]

    def test_keeps_other_formats(self):
        schema = {"type": "object", "properties": {"when": {"type": "string", "format": "date-time"}}}
        assert clean_schema(schema)["properties"]["when"]["format"] == "date-time"

    def test_tuple_items(self):
        schema = {"type": "array", "items": [{"type": "string", "format": "uri"}, {"type": "integer"}]}
        assert clean_schema(schema)["items"] == [{"type": "string"}, {"type": "integer"}]

    def test_input_is_not_modified(self):
        schema = {"type": "object", "properties": {"link": {"type": "string", "format": "uri"}}}
        clean_schema(schema)
        assert schema["properties"]["link"]["format"] == "uri"


class TestSelectModel:
    def test_no_config_keeps_requested_model(self):
        assert select_model(_payload(), None) == "claude-3-opus"

    def test_completion_override(self):
        config = ProxyConfig(base_url="http://x", completion_model="small")
        assert select_model(_payload(), config) == "small"

    def test_reasoning_override_when_thinking_enabled(self):
        config = ProxyConfig(base_url="http://x", reasoning_model="big", completion_model="small")
        payload = _payload(thinking={"type": "enabled", "budget_tokens": 1024})
        assert select_model(payload, config) == "big"

    def test_thinking_without_reasoning_override_keeps_requested(self):
        config = ProxyConfig(base_url="http://x", completion_model="small")
        payload = _payload(thinking={"type": "enabled"})
        assert select_model(payload, config) == "claude-3-opus"

    def test_disabled_thinking_uses_completion_model(self):
        config = ProxyConfig(base_url="http://x", reasoning_model="big", completion_model="small")
        payload = _payload(thinking={"type": "disabled"})
        assert select_model(payload, config) == "small"

    def test_override_applied_in_translation(self):
        config = ProxyConfig(base_url="http://x", completion_model="small")
        assert messages_to_chat_completions(_payload(), config)["model"] == "small"


# =============================================================================
# chat_completion_to_messages() tests
# =============================================================================


class TestChatCompletionToMessages:
    """Tests for translating OpenAI Chat Completions responses to Anthropic Messages."""

    def test_simple_text_response(self):
        response = build_openai_chat_response(
            "Hello!",
            usage={"prompt_tokens": 12, "completion_tokens": 3},
            model="gpt-4",
            response_id="chatcmpl-abc",
        )
        result = chat_completion_to_messages(response)

        assert result == {
            "id": "chatcmpl-abc",
            "type": "message",
            "role": "assistant",
            "content": [{"type": "text", "text": "Hello!"}],
            "model": "gpt-4",
            "stop_reason": "end_turn",
            "stop_sequence": None,
            "usage": {"input_tokens": 12, "output_tokens": 3},
        }

    def test_tool_calls(self):
        response = build_openai_chat_response(
            None,
            tool_calls=[{"id": "call_1", "name": "lookup", "arguments": {"x": 1}}],
            finish_reason="tool_calls",
        )
        result = chat_completion_to_messages(response)

        assert result["content"] == [
            {"type": "tool_use", "id": "call_1", "name": "lookup", "input": {"x": 1}},
        ]
        assert result["stop_reason"] == "tool_use"

    def test_unparseable_arguments_become_empty_input(self):
        response = build_openai_chat_response(
            None,
            tool_calls=[{"id": "c", "name": "f", "arguments": "{not json"}],
            finish_reason="tool_calls",
        )
        assert chat_completion_to_messages(response)["content"][0]["input"] == {}

    def test_reasoning_becomes_leading_thinking_block(self):
        response = build_openai_chat_response("Answer")
        response["choices"][0]["message"]["reasoning_content"] = "Because."
        result = chat_completion_to_messages(response)

        assert result["content"] == [
            {"type": "thinking", "thinking": "Because."},
            {"type": "text", "text": "Answer"},
        ]

    def test_empty_content(self):
        response = build_openai_chat_response("")
        assert chat_completion_to_messages(response)["content"] == []

    def test_missing_usage_defaults_to_zero(self):
        response = build_openai_chat_response("x")
        del response["usage"]
        assert chat_completion_to_messages(response)["usage"] == {"input_tokens": 0, "output_tokens": 0}

    def test_null_finish_reason(self):
        response = build_openai_chat_response("x")
        response["choices"][0]["finish_reason"] = None
        assert chat_completion_to_messages(response)["stop_reason"] is None

    @pytest.mark.parametrize(
        "response",
        [
            {"choices": {"a": 1}},
            {"choices": ["x"]},
            {"choices": [{"message": "text", "finish_reason": "stop"}]},
            {"choices": [{"message": {"tool_calls": ["x"]}, "finish_reason": "tool_calls"}]},
            {"choices": [{"message": {"tool_calls": [{"id": "c", "function": "f"}]}}]},
            {"choices": [{"message": {"content": "x"}, "finish_reason": ["stop"]}]},
        ],
    )
    def test_wrong_field_types_raise_serialization_error(self, response):
        with pytest.raises(SerializationError):
            chat_completion_to_messages(response)

    def test_non_object_usage_defaults_to_zero(self):
        response = build_openai_chat_response("x")
        response["usage"] = "n/a"
        assert chat_completion_to_messages(response)["usage"] == {"input_tokens": 0, "output_tokens": 0}

    def test_no_choices_raises(self):
        with pytest.raises(TransformError, match="No choices in response"):
            chat_completion_to_messages({"id": "x", "choices": []})


class TestStopReasonMap:
    @pytest.mark.parametrize(
        "finish_reason,expected",
        [
            ("tool_calls", "tool_use"),
            ("stop", "end_turn"),
            ("length", "max_tokens"),
            ("content_filter", "end_turn"),
            ("anything_else", "end_turn"),
            (None, None),
        ],
    )
    def test_mapping(self, finish_reason, expected):
        assert map_stop_reason(finish_reason) == expected


class TestRoundTrip:
    """Request translation followed by an echoing backend keeps the visible content."""

    def _round_trip(self, message):
        request = messages_to_chat_completions(_payload(messages=[message]))
        upstream = echo_response(request).json_body
        return chat_completion_to_messages(upstream)

    def test_text_round_trip(self):
        result = self._round_trip({"role": "assistant", "content": "Echo me"})

        assert result["role"] == "assistant"
        assert result["content"] == [{"type": "text", "text": "Echo me"}]

    def test_tool_use_round_trip(self):
        message = {
            "role": "assistant",
            "content": [
                {"type": "thinking", "thinking": "dropped"},
                {"type": "text", "text": "Calling"},
                {"type": "tool_use", "id": "toolu_9", "name": "search", "input": {"q": "x", "n": 2}},
            ],
        }
        result = self._round_trip(message)

        assert result["content"] == [
            {"type": "text", "text": "Calling"},
            {"type": "tool_use", "id": "toolu_9", "name": "search", "input": {"q": "x", "n": 2}},
        ]
        assert result["stop_reason"] == "tool_use"

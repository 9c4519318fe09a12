"""Anthropic <-> OpenAI Messages translation.

This module translates between Anthropic Messages API format and OpenAI Chat
Completions API format, enabling the proxy to serve Anthropic-format clients
from an OpenAI-compatible backend.

Key mappings:
- Anthropic system (top-level) -> one OpenAI system message per entry
- Anthropic content blocks -> OpenAI content parts / tool_calls / tool messages
- Anthropic tools -> OpenAI function tools (meta-tools dropped, schemas cleaned)
- Extended thinking flag -> reasoning model override

Reference:
- Anthropic Messages API: https://docs.anthropic.com/en/api/messages
- OpenAI Chat Completions: https://platform.openai.com/docs/api-reference/chat
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Mapping, Optional

from ..core.exceptions import SerializationError, TransformError
from ..types.anthropic import MessagesRequest, MessagesResponse
from ..types.openai import ChatCompletionRequest, ChatCompletionResponse, ChatMessage, Tool

if TYPE_CHECKING:
    from ..config_loader import ProxyConfig

logger = logging.getLogger("anthropic-proxy")

# Tool type that only makes sense to Anthropic clients and is never invocable
BATCH_TOOL_TYPE = "BatchTool"

# Schema "format" values some OpenAI-compatible backends reject
UNSUPPORTED_SCHEMA_FORMATS = {"uri"}

STOP_REASON_MAP = {
    "tool_calls": "tool_use",
    "stop": "end_turn",
    "length": "max_tokens",
}


def map_stop_reason(finish_reason: Optional[str]) -> Optional[str]:
    """Convert OpenAI finish_reason to Anthropic stop_reason.

    Unknown reasons fall back to ``end_turn``; ``None`` stays ``None``.
    """
    if finish_reason is None:
        return None
    return STOP_REASON_MAP.get(finish_reason, "end_turn")


def has_thinking_enabled(payload: Mapping[str, Any]) -> bool:
    """Return True if the request turns on extended thinking."""
    thinking = payload.get("thinking")
    return isinstance(thinking, Mapping) and thinking.get("type") == "enabled"


def select_model(payload: Mapping[str, Any], config: Optional[ProxyConfig]) -> str:
    """Pick the backend model: configured override, else the requested model."""
    requested = payload.get("model", "")
    if config is None:
        return requested
    if has_thinking_enabled(payload):
        return config.reasoning_model or requested
    return config.completion_model or requested


def _convert_anthropic_image_to_openai(block: Mapping[str, Any]) -> dict[str, Any]:
    """Convert Anthropic image block to OpenAI image_url content part.

    Anthropic format:
        {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": "..."}}
        {"type": "image", "source": {"type": "url", "url": "https://..."}}

    OpenAI format:
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,..."}}
        {"type": "image_url", "image_url": {"url": "https://..."}}
    """
    source = block.get("source") or {}
    if not isinstance(source, Mapping):
        raise TransformError("Image source must be an object")

    if source.get("type") == "url":
        url = source.get("url", "")
    else:
        media_type = source.get("media_type", "image/png")
        data = source.get("data", "")
        url = f"data:{media_type};base64,{data}"

    return {"type": "image_url", "image_url": {"url": url}}


def _serialize_tool_input(input_data: Any) -> str:
    """Serialize tool input to the JSON string OpenAI expects."""
    try:
        return json.dumps(input_data if input_data is not None else {}, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"JSON error: tool input is not serializable: {exc}") from exc


def _tool_result_text(content: Any) -> str:
    """Flatten tool_result content (string or list of text blocks) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        text_parts = [
            block.get("text", "")
            for block in content
            if isinstance(block, Mapping) and block.get("type") == "text"
        ]
        return "\n".join(text_parts)
    return "" if content is None else str(content)


def _collapse_content(
    parts: list[dict[str, Any]],
) -> str | list[dict[str, Any]] | None:
    if not parts:
        return None
    if len(parts) == 1 and parts[0].get("type") == "text":
        return parts[0]["text"]
    return parts


def _convert_message(message: Mapping[str, Any]) -> list[ChatMessage]:
    """Expand one Anthropic message into one or more OpenAI messages.

    Tool results become standalone ``tool`` messages in the position they
    appear; the remaining visible parts and tool calls are folded into a
    single message that follows them.
    """
    role = message.get("role", "user")
    content = message.get("content")

    if isinstance(content, str):
        return [{"role": role, "content": content}]

    if not isinstance(content, list):
        raise TransformError(
            f"Message content must be a string or a list of blocks, got {type(content).__name__}"
        )

    result: list[ChatMessage] = []
    content_parts: list[dict[str, Any]] = []
    tool_calls: list[dict[str, Any]] = []

    for block in content:
        block_type = block.get("type", "") if isinstance(block, Mapping) else ""

        if block_type == "text":
            content_parts.append({"type": "text", "text": block.get("text", "")})

        elif block_type == "image":
            content_parts.append(_convert_anthropic_image_to_openai(block))

        elif block_type == "tool_use":
            tool_calls.append({
                "id": block.get("id", ""),
                "type": "function",
                "function": {
                    "name": block.get("name", ""),
                    "arguments": _serialize_tool_input(block.get("input", {})),
                },
            })

        elif block_type == "tool_result":
            result.append({
                "role": "tool",
                "tool_call_id": block.get("tool_use_id", ""),
                "content": _tool_result_text(block.get("content")),
            })

        elif block_type in ("thinking", "redacted_thinking"):
            # No place for reasoning in an OpenAI request
            logger.debug(f"Dropping {block_type} block during translation")

        else:
            logger.warning(f"Unknown content block type: {block_type!r}")

    if content_parts or tool_calls:
        converted: ChatMessage = {
            "role": role,
            "content": _collapse_content(content_parts),
        }
        if tool_calls:
            converted["tool_calls"] = tool_calls
        result.append(converted)

    return result


def _convert_system_to_openai(system: Any) -> list[ChatMessage]:
    """Convert Anthropic top-level system to OpenAI system messages.

    A string becomes one system message; a list becomes one per entry.
    """
    if system is None:
        return []
    if isinstance(system, str):
        return [{"role": "system", "content": system}]
    if isinstance(system, list):
        messages = []
        for entry in system:
            text = entry.get("text", "") if isinstance(entry, Mapping) else str(entry)
            messages.append({"role": "system", "content": text})
        return messages
    raise TransformError("system must be a string or a list of text entries")


def clean_schema(schema: Any) -> Any:
    """Strip JSON schema ``format`` values some backends reject.

    Descends through ``properties`` values and ``items``. Returns a new
    object; the input is not modified.
    """
    if not isinstance(schema, Mapping):
        return schema

    cleaned = dict(schema)
    if cleaned.get("format") in UNSUPPORTED_SCHEMA_FORMATS:
        del cleaned["format"]

    properties = cleaned.get("properties")
    if isinstance(properties, Mapping):
        cleaned["properties"] = {
            name: clean_schema(value) for name, value in properties.items()
        }

    if "items" in cleaned:
        items = cleaned["items"]
        if isinstance(items, list):
            cleaned["items"] = [clean_schema(item) for item in items]
        else:
            cleaned["items"] = clean_schema(items)

    return cleaned


def _convert_tools(tools: list[Mapping[str, Any]] | None) -> list[Tool] | None:
    """Convert Anthropic tools to OpenAI format.

    Anthropic: {"name": "...", "description": "...", "input_schema": {...}}
    OpenAI: {"type": "function", "function": {"name": "...", "description": "...", "parameters": {...}}}
    """
    if not tools:
        return None

    if not isinstance(tools, list):
        raise TransformError("tools must be a list of tool definitions")

    openai_tools: list[Tool] = []
    for tool in tools:
        if not isinstance(tool, Mapping):
            raise TransformError("Each tool must be an object")
        if tool.get("type") == BATCH_TOOL_TYPE:
            logger.debug(f"Dropping meta-tool '{tool.get('name', '')}'")
            continue
        openai_tools.append({
            "type": "function",
            "function": {
                "name": tool.get("name", ""),
                "description": tool.get("description"),
                "parameters": clean_schema(tool.get("input_schema") or {}),
            },
        })

    return openai_tools or None


def messages_to_chat_completions(
    payload: MessagesRequest | Mapping[str, Any],
    config: Optional[ProxyConfig] = None,
) -> ChatCompletionRequest:
    """Translate Anthropic Messages request to OpenAI Chat Completions.

    Args:
        payload: Anthropic Messages API request body
        config: Proxy config supplying the model overrides

    Returns:
        OpenAI Chat Completions API request body

    Raises:
        TransformError: If the messages have an unexpected shape.
        SerializationError: If a tool input cannot be encoded as JSON.
    """
    openai_messages = _convert_system_to_openai(payload.get("system"))

    for message in payload.get("messages") or []:
        if not isinstance(message, Mapping):
            raise TransformError("Each message must be an object")
        openai_messages.extend(_convert_message(message))

    result: ChatCompletionRequest = {
        "model": select_model(payload, config),
        "messages": openai_messages,
        "max_tokens": payload.get("max_tokens"),
    }

    for param in ("temperature", "top_p"):
        if payload.get(param) is not None:
            result[param] = payload[param]

    if payload.get("stop_sequences") is not None:
        result["stop"] = payload["stop_sequences"]

    if payload.get("stream") is not None:
        result["stream"] = payload["stream"]

    tools = _convert_tools(payload.get("tools"))
    if tools:
        result["tools"] = tools

    return result


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text") or ""
            for part in content
            if isinstance(part, Mapping) and part.get("type") == "text"
        )
    return ""


def _parse_tool_arguments(arguments: Any) -> Any:
    if isinstance(arguments, Mapping):
        return dict(arguments)
    try:
        parsed = json.loads(arguments)
    except (TypeError, ValueError):
        logger.debug(f"Unparseable tool arguments, using empty input: {str(arguments)[:100]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def chat_completion_to_messages(
    payload: ChatCompletionResponse | Mapping[str, Any],
) -> MessagesResponse:
    """Translate OpenAI Chat Completions response to Anthropic Messages.

    Args:
        payload: OpenAI Chat Completions API response body

    Returns:
        Anthropic Messages API response body

    Raises:
        TransformError: If the response has no choices.
        SerializationError: If the choice, message or tool calls have the
            wrong JSON types.
    """
    choices = payload.get("choices") or []
    if not choices:
        raise TransformError("No choices in response")
    if not isinstance(choices, list) or not isinstance(choices[0], Mapping):
        raise SerializationError("JSON error: `choices` must be a list of objects")

    choice = choices[0]
    message = choice.get("message") or {}
    if not isinstance(message, Mapping):
        raise SerializationError("JSON error: `message` must be an object")
    finish_reason = choice.get("finish_reason")
    if finish_reason is not None and not isinstance(finish_reason, str):
        raise SerializationError("JSON error: `finish_reason` must be a string")
    tool_calls = message.get("tool_calls") or []
    if not isinstance(tool_calls, list) or not all(
        isinstance(call, Mapping) and isinstance(call.get("function") or {}, Mapping)
        for call in tool_calls
    ):
        raise SerializationError("JSON error: `tool_calls` must be a list of objects")

    content: list[dict[str, Any]] = []

    reasoning = message.get("reasoning") or message.get("reasoning_content")
    if isinstance(reasoning, str) and reasoning:
        content.append({"type": "thinking", "thinking": reasoning})

    text = _message_text(message.get("content"))
    if text:
        content.append({"type": "text", "text": text})

    for call in tool_calls:
        function = call.get("function") or {}
        content.append({
            "type": "tool_use",
            "id": call.get("id", ""),
            "name": function.get("name", ""),
            "input": _parse_tool_arguments(function.get("arguments", "{}")),
        })

    usage = payload.get("usage")
    if not isinstance(usage, Mapping):
        usage = {}

    return {
        "id": payload.get("id", ""),
        "type": "message",
        "role": "assistant",
        "content": content,
        "model": payload.get("model", ""),
        "stop_reason": map_stop_reason(finish_reason),
        "stop_sequence": None,  # OpenAI doesn't report which sequence matched
        "usage": {
            "input_tokens": usage.get("prompt_tokens") or 0,
            "output_tokens": usage.get("completion_tokens") or 0,
        },
    }

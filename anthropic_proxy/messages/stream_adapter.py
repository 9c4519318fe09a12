"""Stream adapter for converting OpenAI Chat Completions SSE to Anthropic Messages SSE.

Converts the OpenAI chat completion streaming format to Anthropic Messages
streaming format with proper event types and block lifecycle events. The
conversion is strictly online: every backend record is translated as soon as
it is complete, nothing waits for the end of the response.

OpenAI Chat Completion Events:
    data: {"id":"...","model":"...","choices":[{"delta":{"role":"assistant"},"index":0}]}
    data: {"choices":[{"delta":{"reasoning":"Let me think"},"index":0}]}
    data: {"choices":[{"delta":{"content":"Hello"},"index":0}]}
    data: {"choices":[{"delta":{"tool_calls":[...]},"index":0}]}
    data: {"choices":[{"delta":{},"finish_reason":"stop","index":0}],"usage":{...}}
    data: [DONE]

Anthropic Messages Events:
    event: message_start
    data: {"type":"message_start","message":{...}}

    event: content_block_start
    data: {"type":"content_block_start","index":0,"content_block":{"type":"text","text":""}}

    event: content_block_delta
    data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hello"}}

    event: content_block_stop
    data: {"type":"content_block_stop","index":0}

    event: message_delta
    data: {"type":"message_delta","delta":{"stop_reason":"end_turn"},"usage":{"output_tokens":10}}

    event: message_stop
    data: {"type":"message_stop"}
"""

import json
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Mapping, Optional

import httpx

from ..core.sse import DONE_SENTINEL, format_sse_event, iter_data_payloads, iter_sse_records
from .translator import map_stop_reason

logger = logging.getLogger("anthropic-proxy")


class BlockKind(Enum):
    """Kind of the content block currently open in the output stream."""

    NONE = "none"
    THINKING = "thinking"
    TEXT = "text"
    TOOL_USE = "tool_use"


@dataclass
class StreamState:
    """Per-call translation state carried across backend chunks.

    Owned by exactly one adapter; never shared between calls.
    """

    message_id: Optional[str] = None
    model: Optional[str] = None
    block_kind: BlockKind = BlockKind.NONE
    block_index: int = 0
    tool_call_id: Optional[str] = None
    tool_call_index: Optional[int] = None
    message_started: bool = False
    message_delta_sent: bool = False
    done: bool = False


def _is_valid_choice(choice: Any) -> bool:
    """Check the nested field types of a streamed choice before it is used."""
    if not isinstance(choice, Mapping):
        return False
    finish_reason = choice.get("finish_reason")
    if finish_reason is not None and not isinstance(finish_reason, str):
        return False
    delta = choice.get("delta")
    if delta is None:
        return True
    if not isinstance(delta, Mapping):
        return False
    tool_calls = delta.get("tool_calls")
    if tool_calls is None:
        return True
    if not isinstance(tool_calls, list):
        return False
    for fragment in tool_calls:
        if not isinstance(fragment, Mapping):
            return False
        function = fragment.get("function")
        if function is not None and not isinstance(function, Mapping):
            return False
    return True


class ChatToMessagesStreamAdapter:
    """Converts an OpenAI chat completion SSE stream to Anthropic Messages SSE events.

    Block rules:
    - Reasoning, visible text and tool calls each live in their own block
      kind. Switching kind closes the open block and opens the next one at
      the following index.
    - A tool-call fragment with a new id (or a new position) closes the open
      block; the ``tool_use`` block opens once the function name is known.
    - A finish reason closes the open block and emits ``message_delta``.
    - ``[DONE]`` emits ``message_stop``.
    """

    def __init__(self, model: str = ""):
        """Initialize the stream adapter.

        Args:
            model: Model name reported if the backend chunks never carry one.
        """
        self.fallback_model = model
        self.state = StreamState()

    async def adapt_stream(
        self,
        chat_stream: AsyncIterator[bytes],
    ) -> AsyncIterator[bytes]:
        """Transform OpenAI chat completion stream to Anthropic Messages SSE events.

        A transport error raised by ``chat_stream`` ends the output with a
        single ``error`` event. A stream that ends without ``[DONE]`` is
        closed off as if it had been sent.

        Args:
            chat_stream: The incoming OpenAI chat completion byte stream

        Yields:
            Anthropic Messages API SSE events as bytes
        """
        records = iter_sse_records(chat_stream)
        try:
            async for record in records:
                for event in self.process_record(record):
                    yield event
                if self.state.done:
                    break
        except httpx.HTTPError as exc:
            logger.error(f"Stream error: {exc}")
            yield self._emit_error(f"Stream error: {exc}")
            return
        finally:
            await records.aclose()

        if not self.state.done:
            logger.debug("Backend stream ended without [DONE], closing message")
            for event in self._close_message():
                yield event

    def process_record(self, record: str) -> list[bytes]:
        """Translate one complete SSE record from the backend.

        Args:
            record: Record text without the terminating blank line

        Returns:
            Anthropic Messages SSE events, possibly none
        """
        events: list[bytes] = []

        for payload in iter_data_payloads(record):
            if self.state.done:
                break

            data_str = payload.strip()
            if data_str == DONE_SENTINEL:
                events.extend(self._close_message())
                continue

            try:
                data = json.loads(data_str)
            except json.JSONDecodeError:
                logger.debug(f"MessagesStreamAdapter: Failed to parse: {data_str[:100]}")
                continue
            if not isinstance(data, dict):
                logger.debug(f"MessagesStreamAdapter: Ignoring non-object chunk: {data_str[:100]}")
                continue

            events.extend(self._process_chat_chunk(data))

        return events

    def _process_chat_chunk(self, data: Mapping[str, Any]) -> list[bytes]:
        """Process one parsed OpenAI chat completion chunk."""
        state = self.state
        events: list[bytes] = []

        chunk_id = data.get("id")
        if not state.message_id and isinstance(chunk_id, str) and chunk_id:
            state.message_id = chunk_id
        chunk_model = data.get("model")
        if not state.model and isinstance(chunk_model, str) and chunk_model:
            state.model = chunk_model

        choices = data.get("choices")
        if not choices:
            return events
        if not isinstance(choices, list) or not _is_valid_choice(choices[0]):
            logger.debug(f"MessagesStreamAdapter: Skipping malformed chunk: {str(data)[:100]}")
            return events
        choice = choices[0]

        if state.message_delta_sent:
            logger.debug("MessagesStreamAdapter: Ignoring chunk after finish_reason")
            return events

        if not state.message_started:
            events.append(self._emit_message_start())

        delta = choice.get("delta") or {}

        reasoning = delta.get("reasoning") or delta.get("reasoning_content")
        if isinstance(reasoning, str) and reasoning:
            if state.block_kind is not BlockKind.THINKING:
                events.extend(
                    self._start_block(BlockKind.THINKING, {"type": "thinking", "thinking": ""})
                )
            events.append(self._emit_content_block_delta(
                state.block_index,
                {"type": "thinking_delta", "thinking": reasoning},
            ))

        content = delta.get("content")
        if isinstance(content, str) and content:
            if state.block_kind is not BlockKind.TEXT:
                events.extend(self._start_block(BlockKind.TEXT, {"type": "text", "text": ""}))
            events.append(self._emit_content_block_delta(
                state.block_index,
                {"type": "text_delta", "text": content},
            ))

        for fragment in delta.get("tool_calls") or []:
            events.extend(self._process_tool_call_fragment(fragment))

        finish_reason = choice.get("finish_reason")
        if finish_reason:
            events.extend(self._finish(finish_reason, data.get("usage")))

        return events

    def _process_tool_call_fragment(self, fragment: Mapping[str, Any]) -> list[bytes]:
        """Process one partial tool call from a delta."""
        state = self.state
        events: list[bytes] = []

        call_id = fragment.get("id")
        has_id = isinstance(call_id, str) and bool(call_id)
        call_index = fragment.get("index")

        new_call = has_id and call_id != state.tool_call_id
        if (
            not new_call
            and isinstance(call_index, int)
            and state.tool_call_index is not None
            and call_index != state.tool_call_index
        ):
            # Backends that omit ids still number their calls
            new_call = True

        if new_call:
            events.extend(self._close_block())
            state.tool_call_id = call_id if has_id else None
        if isinstance(call_index, int):
            state.tool_call_index = call_index

        function = fragment.get("function") or {}
        name = function.get("name")
        if isinstance(name, str) and name and (new_call or state.block_kind is not BlockKind.TOOL_USE):
            if not state.tool_call_id:
                state.tool_call_id = f"toolu_{uuid.uuid4().hex[:24]}"
            events.extend(self._start_block(
                BlockKind.TOOL_USE,
                {"type": "tool_use", "id": state.tool_call_id, "name": name, "input": {}},
            ))

        arguments = function.get("arguments")
        if isinstance(arguments, str) and arguments:
            if state.block_kind is BlockKind.TOOL_USE:
                events.append(self._emit_content_block_delta(
                    state.block_index,
                    {"type": "input_json_delta", "partial_json": arguments},
                ))
            else:
                logger.debug(
                    f"MessagesStreamAdapter: Dropping tool arguments with no open tool block: "
                    f"{arguments[:100]}"
                )

        return events

    def _start_block(self, kind: BlockKind, content_block: dict[str, Any]) -> list[bytes]:
        """Close the open block (if any) and open a new one at the next index."""
        events = self._close_block()
        self.state.block_kind = kind
        events.append(self._emit_content_block_start(self.state.block_index, content_block))
        return events

    def _close_block(self, advance: bool = True) -> list[bytes]:
        state = self.state
        if state.block_kind is BlockKind.NONE:
            return []
        event = self._emit_content_block_stop(state.block_index)
        if state.block_kind is BlockKind.TOOL_USE:
            # A later block for the same call position needs its own id
            state.tool_call_id = None
        state.block_kind = BlockKind.NONE
        if advance:
            state.block_index += 1
        return [event]

    def _finish(self, finish_reason: str, usage: Any) -> list[bytes]:
        """Close the message body once the backend reports a finish reason."""
        events = self._close_block(advance=False)
        output_tokens = 0
        if isinstance(usage, Mapping) and isinstance(usage.get("completion_tokens"), int):
            output_tokens = usage["completion_tokens"]
        events.append(self._emit_message_delta(map_stop_reason(finish_reason), output_tokens))
        return events

    def _close_message(self) -> list[bytes]:
        """Emit whatever is still missing for a well-formed message, then message_stop."""
        state = self.state
        events: list[bytes] = []
        if not state.message_started:
            events.append(self._emit_message_start())
        if not state.message_delta_sent:
            events.extend(self._close_block(advance=False))
            events.append(self._emit_message_delta("end_turn", 0))
        events.append(self._emit_message_stop())
        state.done = True
        return events

    def _emit_message_start(self) -> bytes:
        """Emit the message_start event with zero usage.

        Real usage arrives later through message_delta.
        """
        state = self.state
        state.message_started = True
        if not state.message_id:
            state.message_id = f"msg_{uuid.uuid4().hex[:24]}"

        message = {
            "id": state.message_id,
            "type": "message",
            "role": "assistant",
            "content": [],
            "model": state.model or self.fallback_model,
            "stop_reason": None,
            "stop_sequence": None,
            "usage": {"input_tokens": 0, "output_tokens": 0},
        }
        return format_sse_event("message_start", {"type": "message_start", "message": message})

    def _emit_content_block_start(self, index: int, content_block: dict[str, Any]) -> bytes:
        event_data = {
            "type": "content_block_start",
            "index": index,
            "content_block": content_block,
        }
        return format_sse_event("content_block_start", event_data)

    def _emit_content_block_delta(self, index: int, delta: dict[str, Any]) -> bytes:
        event_data = {
            "type": "content_block_delta",
            "index": index,
            "delta": delta,
        }
        return format_sse_event("content_block_delta", event_data)

    def _emit_content_block_stop(self, index: int) -> bytes:
        return format_sse_event("content_block_stop", {"type": "content_block_stop", "index": index})

    def _emit_message_delta(self, stop_reason: str, output_tokens: int) -> bytes:
        self.state.message_delta_sent = True
        event_data = {
            "type": "message_delta",
            "delta": {"stop_reason": stop_reason, "stop_sequence": None},
            "usage": {"output_tokens": output_tokens},
        }
        return format_sse_event("message_delta", event_data)

    def _emit_message_stop(self) -> bytes:
        return format_sse_event("message_stop", {"type": "message_stop"})

    def _emit_error(self, message: str) -> bytes:
        event_data = {
            "type": "error",
            "error": {"type": "stream_error", "message": message},
        }
        return format_sse_event("error", event_data)

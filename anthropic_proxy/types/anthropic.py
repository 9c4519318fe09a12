"""Anthropic Messages API wire types.

Requests arrive in this shape and responses/stream events leave in it.
"""

from typing import Any
from typing_extensions import TypedDict


class ImageSource(TypedDict, total=False):
    """Image payload: ``base64`` (``media_type`` + ``data``) or ``url``."""
    type: str
    media_type: str
    data: str
    url: str


class ContentBlock(TypedDict, total=False):
    """A content block in a request or response message.

    Attributes:
        type: Block type:
            - "text": Plain text
            - "image": Inline image (see ``source``)
            - "tool_use": Tool invocation by the assistant
            - "tool_result": Result of a tool invocation, sent by the user
            - "thinking": Extended reasoning
        text: Text content (for "text" blocks).
        thinking: Reasoning text (for "thinking" blocks).
        source: Image source (for "image" blocks).
        id: Call identifier (for "tool_use" blocks).
        name: Tool name (for "tool_use" blocks).
        input: Tool arguments (for "tool_use" blocks).
        tool_use_id: Id of the answered call (for "tool_result" blocks).
        content: Result content (for "tool_result" blocks).
        is_error: Whether the tool result reports an error.
    """
    type: str
    text: str | None
    thinking: str | None
    signature: str | None
    source: ImageSource | None
    id: str | None
    name: str | None
    input: dict[str, Any] | None
    tool_use_id: str | None
    content: str | list["ContentBlock"] | None
    is_error: bool | None


class Message(TypedDict, total=False):
    role: str
    content: str | list[ContentBlock]


class SystemEntry(TypedDict, total=False):
    type: str
    text: str


class ToolDefinition(TypedDict, total=False):
    """A tool the model may call.

    ``type`` is only set for special tools; ``"BatchTool"`` marks a
    meta-tool that cannot be invoked on an OpenAI-compatible backend.
    """
    type: str | None
    name: str
    description: str | None
    input_schema: dict[str, Any]


class ThinkingConfig(TypedDict, total=False):
    type: str
    budget_tokens: int


class MessagesRequest(TypedDict, total=False):
    """Request body for ``POST /v1/messages``."""
    model: str
    messages: list[Message]
    max_tokens: int
    system: str | list[SystemEntry] | None
    tools: list[ToolDefinition] | None
    temperature: float | None
    top_p: float | None
    stop_sequences: list[str] | None
    stream: bool | None
    thinking: ThinkingConfig | None


class Usage(TypedDict, total=False):
    input_tokens: int
    output_tokens: int


class MessagesResponse(TypedDict, total=False):
    """A complete message.

    Attributes:
        id: Message identifier.
        type: Always "message".
        role: Always "assistant".
        content: Ordered content blocks.
        model: Model that produced the message.
        stop_reason: "end_turn", "max_tokens" or "tool_use".
        stop_sequence: Always ``None`` here; backends do not report it.
        usage: Token counts.
    """
    id: str
    type: str
    role: str
    content: list[ContentBlock]
    model: str
    stop_reason: str | None
    stop_sequence: str | None
    usage: Usage


class StreamEvent(TypedDict, total=False):
    """One server-sent event of a streamed message.

    ``type`` doubles as the SSE event name: "message_start",
    "content_block_start", "content_block_delta", "content_block_stop",
    "message_delta", "message_stop" or "error".
    """
    type: str
    index: int | None
    message: MessagesResponse | None
    content_block: ContentBlock | None
    delta: dict[str, Any] | None
    usage: dict[str, Any] | None
    error: dict[str, Any] | None

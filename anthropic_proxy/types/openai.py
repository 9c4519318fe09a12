"""OpenAI Chat Completions wire types.

These are the shapes sent to and received from the OpenAI-compatible
backend. They are plain ``TypedDict`` contracts: the translator builds and
reads ordinary dicts, these only document which keys are expected.
"""

from typing import Any
from typing_extensions import TypedDict


class FunctionCall(TypedDict, total=False):
    """A function invocation inside a tool call.

    Attributes:
        name: Function name. In streamed fragments only the first fragment
            of a call usually carries it.
        arguments: JSON-encoded argument object. Streamed fragments carry a
            partial string that is only valid JSON once concatenated.
    """
    name: str | None
    arguments: str | None


class ToolCall(TypedDict, total=False):
    """A tool call attached to an assistant message.

    Attributes:
        id: Call identifier, echoed back by the matching ``tool`` message.
        type: Always ``"function"``.
        function: The function name and argument blob.
        index: Position of the call; only present in streamed fragments.
    """
    id: str
    type: str
    function: FunctionCall
    index: int


class ImageUrl(TypedDict, total=False):
    url: str
    detail: str | None


class ContentPart(TypedDict, total=False):
    """One part of a multi-part message (``text`` or ``image_url``)."""
    type: str
    text: str | None
    image_url: ImageUrl | None


class ChatMessage(TypedDict, total=False):
    """A role-tagged message.

    Attributes:
        role: ``system``, ``user``, ``assistant`` or ``tool``.
        content: A string, an ordered list of parts, or ``None`` when an
            assistant message only carries tool calls.
        tool_calls: Calls requested by the assistant.
        tool_call_id: For ``tool`` messages, the id of the answered call.
        reasoning: Reasoning text some backends return next to the answer.
        reasoning_content: Alternative spelling of ``reasoning``.
    """
    role: str
    content: str | list[ContentPart] | None
    name: str | None
    tool_calls: list[ToolCall] | None
    tool_call_id: str | None
    reasoning: str | None
    reasoning_content: str | None


class FunctionDefinition(TypedDict, total=False):
    name: str
    description: str | None
    parameters: dict[str, Any]


class Tool(TypedDict):
    type: str
    function: FunctionDefinition


class ChatCompletionRequest(TypedDict, total=False):
    """Request body for ``POST /v1/chat/completions``."""
    model: str
    messages: list[ChatMessage]
    max_tokens: int | None
    temperature: float | None
    top_p: float | None
    stop: list[str] | None
    stream: bool | None
    tools: list[Tool] | None
    tool_choice: str | dict[str, Any] | None


class Delta(TypedDict, total=False):
    """Incremental content of one streamed choice.

    Attributes:
        role: Usually only on the first chunk.
        content: Visible text fragment.
        reasoning: Reasoning text fragment.
        reasoning_content: Alternative spelling of ``reasoning``.
        tool_calls: Partial tool calls keyed by ``index``.
    """
    role: str | None
    content: str | None
    reasoning: str | None
    reasoning_content: str | None
    tool_calls: list[ToolCall] | None


class Choice(TypedDict, total=False):
    """A completion choice.

    ``message`` is set on full responses, ``delta`` on streamed chunks.
    ``finish_reason`` is one of ``stop``, ``length``, ``tool_calls``,
    ``content_filter`` or a backend-specific value.
    """
    index: int
    delta: Delta | None
    message: ChatMessage | None
    finish_reason: str | None


class Usage(TypedDict, total=False):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatCompletionResponse(TypedDict, total=False):
    """A complete (non-streaming) chat completion."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage | None


class ChatCompletionChunk(TypedDict, total=False):
    """One ``data:`` record of a streamed chat completion."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage | None

"""Anthropic Messages API translation helpers.

Provides translation between Anthropic Messages API format and OpenAI Chat
Completions API format, enabling the proxy to serve Anthropic-format requests
from OpenAI-compatible backends.
"""

from .translator import (
    chat_completion_to_messages,
    map_stop_reason,
    messages_to_chat_completions,
)
from .stream_adapter import BlockKind, ChatToMessagesStreamAdapter, StreamState

__all__ = [
    "messages_to_chat_completions",
    "chat_completion_to_messages",
    "map_stop_reason",
    "BlockKind",
    "ChatToMessagesStreamAdapter",
    "StreamState",
]

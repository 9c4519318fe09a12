"""anthropic-proxy - Anthropic Messages API on top of OpenAI-compatible backends

A small gateway that accepts Anthropic Messages requests, forwards them to an
OpenAI Chat Completions backend and translates the answer back, including
streamed responses.

This module provides:
- create_app: FastAPI application factory
- load_config / ProxyConfig: settings from env files and the environment
- messages_to_chat_completions / chat_completion_to_messages: request and
  response translation
- ChatToMessagesStreamAdapter: incremental SSE stream translation

Example:
    >>> from anthropic_proxy import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="0.0.0.0", port=3000)
"""

from .config_loader import ProxyConfig, load_config
from .core import ProxyError
from .logging import logger, setup_logging
from .main import create_app
from .messages import (
    ChatToMessagesStreamAdapter,
    chat_completion_to_messages,
    map_stop_reason,
    messages_to_chat_completions,
)

__all__ = [
    "ChatToMessagesStreamAdapter",
    "ProxyConfig",
    "ProxyError",
    "chat_completion_to_messages",
    "create_app",
    "load_config",
    "logger",
    "map_stop_reason",
    "messages_to_chat_completions",
    "setup_logging",
]

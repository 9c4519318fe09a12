"""Core module initialization."""

from .backend import (
    Backend,
    create_http_client,
    format_httpx_error,
    open_chat_stream,
    post_chat_completion,
)
from .exceptions import (
    ConfigurationError,
    InternalError,
    ProxyError,
    SerializationError,
    TransformError,
    TransportError,
    UpstreamError,
)
from .sse import SSERecordBuffer, format_sse_event, iter_data_payloads, iter_sse_records

__all__ = [
    "Backend",
    "ConfigurationError",
    "InternalError",
    "ProxyError",
    "SSERecordBuffer",
    "SerializationError",
    "TransformError",
    "TransportError",
    "UpstreamError",
    "create_http_client",
    "format_httpx_error",
    "format_sse_event",
    "iter_data_payloads",
    "iter_sse_records",
    "open_chat_stream",
    "post_chat_completion",
]

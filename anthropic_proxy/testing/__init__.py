"""Test doubles for exercising the proxy without a real backend."""

from .fake_upstream import (
    FakeUpstream,
    UpstreamResponse,
    build_openai_chat_response,
    build_openai_stream_chunks,
    echo_response,
    encode_sse_data,
)

__all__ = [
    "FakeUpstream",
    "UpstreamResponse",
    "build_openai_chat_response",
    "build_openai_stream_chunks",
    "echo_response",
    "encode_sse_data",
]

"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx
import pytest
from fastapi import FastAPI

from anthropic_proxy.config_loader import ProxyConfig
from anthropic_proxy.main import create_app
from anthropic_proxy.testing import FakeUpstream

UPSTREAM_BASE_URL = "http://upstream.local"


# =============================================================================
# Stream helpers
# =============================================================================


async def aiter_chunks(chunks: list[bytes]):
    """Helper to create async iterator from list of bytes."""
    for chunk in chunks:
        yield chunk


def parse_sse_events(raw: bytes | list[bytes]) -> list[dict[str, Any]]:
    """Parse Anthropic SSE output into ``{"event", "data"}`` dicts."""
    if isinstance(raw, list):
        raw = b"".join(raw)
    events = []
    for record in raw.decode("utf-8").split("\n\n"):
        lines = [line for line in record.split("\n") if line]
        event_line = next((line for line in lines if line.startswith("event: ")), None)
        data_line = next((line for line in lines if line.startswith("data: ")), None)
        if event_line and data_line:
            events.append({
                "event": event_line[len("event: "):],
                "data": json.loads(data_line[len("data: "):]),
            })
    return events


def openai_chunk(delta: dict[str, Any] | None = None, **choice: Any) -> bytes:
    """Encode one OpenAI streaming chunk as a ``data:`` record."""
    data = {"choices": [{"index": 0, "delta": delta or {}, **choice}]}
    return f"data: {json.dumps(data)}\n\n".encode("utf-8")


# =============================================================================
# Application fixtures
# =============================================================================


@pytest.fixture
def proxy_config() -> ProxyConfig:
    return ProxyConfig(base_url=UPSTREAM_BASE_URL, api_key="test-key")


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def make_proxy_app(upstream: FakeUpstream):
    """Factory building a proxy app wired to the fake upstream.

    Usage:
        def test_x(make_proxy_app):
            app = make_proxy_app(ProxyConfig(...))
    """

    def factory(config: ProxyConfig) -> FastAPI:
        return create_app(config, transport=httpx.ASGITransport(app=upstream.app))

    return factory


@pytest.fixture
def proxy_app(make_proxy_app, proxy_config: ProxyConfig) -> FastAPI:
    return make_proxy_app(proxy_config)


@asynccontextmanager
async def proxy_client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    """Open a client that talks to the proxy app in-process."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://proxy",
    ) as client:
        try:
            yield client
        finally:
            await app.state.http_client.aclose()

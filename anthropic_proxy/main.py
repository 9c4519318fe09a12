"""Main FastAPI application for the Anthropic proxy."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI

from .api.routes import messages_endpoint
from .config_loader import ProxyConfig, load_config
from .core.backend import Backend, create_http_client
from .core.exceptions import ProxyError, proxy_error_handler, unhandled_error_handler

logger = logging.getLogger("anthropic-proxy")


def create_app(
    config: Optional[ProxyConfig] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the proxy application.

    Args:
        config: Resolved settings. Loaded from the environment when omitted.
        transport: Optional httpx transport for the backend client (used to
            wire an in-process fake backend in tests).

    Returns:
        The configured FastAPI application instance.
    """
    if config is None:
        config = load_config()

    http_client = create_http_client(transport=transport)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Anthropic proxy starting up...")
        logger.info(f"Upstream chat completions URL: {config.chat_completions_url}")
        if config.reasoning_model:
            logger.info(f"Reasoning model override: {config.reasoning_model}")
        if config.completion_model:
            logger.info(f"Completion model override: {config.completion_model}")
        try:
            yield
        finally:
            await http_client.aclose()
            logger.info("Anthropic proxy shut down")

    app = FastAPI(title="Anthropic Proxy", lifespan=lifespan)
    app.state.config = config
    app.state.backend = Backend.from_config(config)
    app.state.http_client = http_client

    app.add_exception_handler(ProxyError, proxy_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.post("/v1/messages")(messages_endpoint)

    return app


__all__ = ["create_app"]

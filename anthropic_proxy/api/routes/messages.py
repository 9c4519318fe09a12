"""Anthropic-compatible Messages API endpoint."""

import asyncio
import json
import logging
import time
import uuid
from typing import Any, AsyncIterator, Mapping

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect

from ...core.backend import open_chat_stream, post_chat_completion
from ...core.exceptions import ProxyError, SerializationError, proxy_error_response
from ...messages import (
    ChatToMessagesStreamAdapter,
    chat_completion_to_messages,
    messages_to_chat_completions,
)

logger = logging.getLogger("anthropic-proxy")

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

REQUIRED_FIELDS = ("model", "messages", "max_tokens")


def _pretty(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


def parse_messages_payload(body: bytes) -> Mapping[str, Any]:
    """Decode and minimally validate an Anthropic Messages request body.

    Raises:
        SerializationError: If the body is not a JSON object with the
            required fields.
    """
    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError as exc:
        raise SerializationError(f"JSON error: {exc}") from exc

    if not isinstance(payload, Mapping):
        raise SerializationError("JSON error: request body must be a JSON object")

    missing = [field for field in REQUIRED_FIELDS if field not in payload]
    if missing:
        raise SerializationError(f"JSON error: missing field `{missing[0]}`")
    if not isinstance(payload["model"], str) or not payload["model"]:
        raise SerializationError("JSON error: `model` must be a non-empty string")
    if not isinstance(payload["messages"], list):
        raise SerializationError("JSON error: `messages` must be a list")
    max_tokens = payload["max_tokens"]
    if isinstance(max_tokens, bool) or not isinstance(max_tokens, int):
        raise SerializationError("JSON error: `max_tokens` must be an integer")

    return payload


async def messages_endpoint(request: Request) -> Response:
    """POST /v1/messages - Anthropic Messages API compatible endpoint."""
    # Generate request ID for log correlation
    req_id = uuid.uuid4().hex[:8]
    start_time = time.perf_counter()

    state = request.app.state
    config = state.config

    try:
        body = await request.body()
    except ClientDisconnect:
        elapsed = time.perf_counter() - start_time
        logger.warning(f"[{req_id}] ClientDisconnect after {elapsed:.3f}s while reading body")
        return Response(status_code=499)  # Client Closed Request

    try:
        payload = parse_messages_payload(body)
        is_stream = bool(payload.get("stream"))
        logger.info(
            f"[{req_id}] Messages request model={payload['model']} stream={is_stream}"
        )
        if config.verbose:
            logger.debug(f"[{req_id}] Incoming Anthropic request: {_pretty(payload)}")

        openai_payload = messages_to_chat_completions(payload, config)

        if config.verbose:
            logger.debug(f"[{req_id}] Transformed OpenAI request: {_pretty(openai_payload)}")
        elif logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                f"[{req_id}] Translated to OpenAI format: model={openai_payload.get('model')}, "
                f"messages_count={len(openai_payload['messages'])}, stream={is_stream}"
            )

        if is_stream:
            return await _handle_streaming(request, req_id, start_time, openai_payload)
        return await _handle_non_streaming(request, req_id, start_time, openai_payload)
    except ProxyError as exc:
        elapsed = time.perf_counter() - start_time
        logger.error(
            f"[{req_id}] {exc.__class__.__name__} after {elapsed:.3f}s: {exc.message}"
        )
        return proxy_error_response(exc)


async def _handle_non_streaming(
    request: Request,
    req_id: str,
    start_time: float,
    openai_payload: dict[str, Any],
) -> Response:
    state = request.app.state
    config = state.config

    openai_response = await post_chat_completion(state.http_client, state.backend, openai_payload)
    if config.verbose:
        logger.debug(f"[{req_id}] OpenAI response: {_pretty(openai_response)}")

    anthropic_response = chat_completion_to_messages(openai_response)
    if config.verbose:
        logger.debug(f"[{req_id}] Anthropic response: {_pretty(anthropic_response)}")

    elapsed = time.perf_counter() - start_time
    logger.info(
        f"[{req_id}] Completed non-streaming response for {openai_payload['model']}, "
        f"took {elapsed:.3f}s"
    )
    return JSONResponse(anthropic_response)


async def _handle_streaming(
    request: Request,
    req_id: str,
    start_time: float,
    openai_payload: dict[str, Any],
) -> Response:
    state = request.app.state

    # Backend status is checked here, before any header reaches the client
    resp = await open_chat_stream(state.http_client, state.backend, openai_payload)

    elapsed = time.perf_counter() - start_time
    logger.info(
        f"[{req_id}] Starting streaming response for {openai_payload['model']}, "
        f"setup took {elapsed:.3f}s"
    )

    adapter = ChatToMessagesStreamAdapter(openai_payload["model"])

    async def adapted_stream() -> AsyncIterator[bytes]:
        """Wrap the OpenAI stream and convert to Anthropic format."""
        try:
            async for event in adapter.adapt_stream(resp.aiter_bytes()):
                yield event
        except asyncio.CancelledError:
            logger.info(f"[{req_id}] Stream cancelled by client")
            raise
        finally:
            await resp.aclose()
            total = time.perf_counter() - start_time
            logger.debug(f"[{req_id}] Stream closed after {total:.3f}s")

    # Also closed after the response in case the body is never iterated
    return StreamingResponse(
        adapted_stream(),
        headers=SSE_HEADERS,
        background=BackgroundTask(resp.aclose),
    )

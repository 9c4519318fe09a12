"""Backend configuration and HTTP calls to the OpenAI-compatible upstream."""

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional

import httpx

from .exceptions import SerializationError, TransportError, UpstreamError

if TYPE_CHECKING:
    from ..config_loader import ProxyConfig

logger = logging.getLogger("anthropic-proxy")

# Fixed per-call timeout; there is no retry
UPSTREAM_TIMEOUT = 300.0


@dataclass(frozen=True)
class Backend:
    """The single upstream chat completions endpoint."""

    chat_completions_url: str
    api_key: Optional[str] = None
    timeout: float = UPSTREAM_TIMEOUT

    @classmethod
    def from_config(cls, config: "ProxyConfig") -> "Backend":
        return cls(chat_completions_url=config.chat_completions_url, api_key=config.api_key)

    def build_headers(self, stream: bool = False) -> dict[str, str]:
        """Build headers for the outbound request."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if stream else "application/json",
            # Explicitly request uncompressed responses
            "Accept-Encoding": "identity",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers


def create_http_client(
    timeout: float = UPSTREAM_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the shared, connection-pooling client used for every backend call."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        transport=transport,
        follow_redirects=True,
    )


def format_httpx_error(exc: Any, backend: Backend) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    try:
        request = exc.request
    except (AttributeError, RuntimeError):
        # httpx raises RuntimeError when no request is attached
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    else:
        parts.append(f"url={backend.chat_completions_url}")

    if isinstance(exc, httpx.TimeoutException):
        parts.append(f"timeout={backend.timeout}s")

    return "; ".join(parts)


def _encode_body(payload: Mapping[str, Any]) -> bytes:
    try:
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"JSON error: {exc}") from exc


async def _raise_for_upstream_status(resp: httpx.Response) -> None:
    """Turn a non-success backend response into ``UpstreamError``."""
    if resp.is_success:
        return
    try:
        body = (await resp.aread()).decode("utf-8", errors="replace")
    except httpx.HTTPError:
        body = "Unknown error"
    logger.error(f"Upstream error ({resp.status_code}): {body}")
    raise UpstreamError(
        f"Upstream returned {resp.status_code} {resp.reason_phrase}: {body}",
        upstream_status=resp.status_code,
        body=body,
    )


async def post_chat_completion(
    client: httpx.AsyncClient,
    backend: Backend,
    payload: Mapping[str, Any],
) -> dict[str, Any]:
    """Send a non-streaming chat completion and return the decoded JSON body.

    Raises:
        TransportError: On network failure or timeout.
        UpstreamError: If the backend answers with a non-success status.
        SerializationError: If the request or response is not valid JSON.
    """
    url = backend.chat_completions_url
    logger.debug(f"Non-streaming request to {url} model={payload.get('model')}")
    try:
        resp = await client.post(
            url,
            headers=backend.build_headers(),
            content=_encode_body(payload),
            timeout=backend.timeout,
        )
    except httpx.HTTPError as exc:
        raise TransportError(f"HTTP error: {format_httpx_error(exc, backend)}") from exc

    logger.debug(f"Received response from {url}: status {resp.status_code}")
    await _raise_for_upstream_status(resp)

    try:
        data = resp.json()
    except ValueError as exc:
        raise SerializationError(f"JSON error: invalid backend response: {exc}") from exc
    if not isinstance(data, dict):
        raise SerializationError("JSON error: backend response is not an object")
    return data


async def open_chat_stream(
    client: httpx.AsyncClient,
    backend: Backend,
    payload: Mapping[str, Any],
) -> httpx.Response:
    """Start a streaming chat completion and return the open response.

    The status is checked before returning so errors surface before any
    bytes reach the client. The caller owns the response and must close it.
    """
    url = backend.chat_completions_url
    logger.debug(f"Streaming request to {url} model={payload.get('model')}")
    request = client.build_request(
        "POST",
        url,
        headers=backend.build_headers(stream=True),
        content=_encode_body(payload),
        timeout=backend.timeout,
    )
    try:
        resp = await client.send(request, stream=True)
    except httpx.HTTPError as exc:
        raise TransportError(f"HTTP error: {format_httpx_error(exc, backend)}") from exc

    try:
        await _raise_for_upstream_status(resp)
    except UpstreamError:
        await resp.aclose()
        raise

    logger.debug(f"Streaming request to {url} accepted, status {resp.status_code}")
    return resp

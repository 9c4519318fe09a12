"""Core exceptions for the proxy and their HTTP rendering."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("anthropic-proxy")


class ProxyError(Exception):
    """Base exception for proxy errors.

    Every subclass carries the HTTP status it is reported with.
    """

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ProxyError):
    """Raised when backend settings are missing or malformed."""
    status_code = 500


class TransformError(ProxyError):
    """Raised when a payload cannot be translated between formats."""
    status_code = 400


class UpstreamError(ProxyError):
    """Raised when the backend answers with a non-success status."""

    status_code = 502

    def __init__(self, message: str, upstream_status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.upstream_status = upstream_status
        self.body = body


class SerializationError(ProxyError):
    """Raised when a JSON payload cannot be encoded or decoded."""
    status_code = 400


class TransportError(ProxyError):
    """Raised on network-level failures talking to the backend."""
    status_code = 502


class InternalError(ProxyError):
    status_code = 500


def error_payload(message: str) -> dict:
    return {"error": {"type": "proxy_error", "message": message}}


def proxy_error_response(exc: ProxyError) -> JSONResponse:
    """Render a proxy error as its JSON envelope and status."""
    return JSONResponse(error_payload(exc.message), status_code=exc.status_code)


async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    logger.error(
        "%s on %s %s: %s",
        exc.__class__.__name__,
        request.method,
        request.url.path,
        exc.message,
    )
    return proxy_error_response(exc)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return proxy_error_response(InternalError(f"Internal error: {exc}"))

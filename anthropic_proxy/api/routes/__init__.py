"""API routes for the proxy."""

from .messages import messages_endpoint

__all__ = [
    "messages_endpoint",
]

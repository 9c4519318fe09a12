"""API module for the proxy."""

from .routes import messages_endpoint

__all__ = [
    "messages_endpoint",
]

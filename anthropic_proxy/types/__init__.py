"""Wire type definitions for both sides of the proxy."""

from . import anthropic, openai

__all__ = ["anthropic", "openai"]

"""
Completion providers for the bridge service.

Concrete providers live in their own modules (``claude``, ``openai_provider``,
``gemini``) and are constructed through ``factory.ProviderFactory``.
"""

from .base import (
    CompletionProvider,
    CompletionResponse,
    ProviderConfigurationError,
    ProviderError,
    ProviderName,
    ToolInvocation,
)

__all__ = [
    "CompletionProvider",
    "CompletionResponse",
    "ProviderConfigurationError",
    "ProviderError",
    "ProviderName",
    "ToolInvocation",
]

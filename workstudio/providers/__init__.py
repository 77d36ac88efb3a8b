"""Provider abstractions, tools and the marker codec."""

from workstudio.providers.base import LLMProvider, LLMResponse, ToolCallRequest
from workstudio.providers.registry import create_provider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "ToolCallRequest",
    "create_provider",
]

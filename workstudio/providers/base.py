"""Provider interfaces."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

FINISH_STOP = "stop"
FINISH_TOOL_CALLS = "tool_calls"


@dataclass
class ToolCallRequest:
    """A tool call request from the LLM."""

    id: str
    name: str
    arguments: dict[str, Any]

    def to_message_dict(self) -> dict[str, Any]:
        """OpenAI-style ``tool_calls`` entry for the assistant message."""
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": json.dumps(self.arguments, ensure_ascii=False),
            },
        }


@dataclass
class LLMResponse:
    """Response from an LLM provider."""

    content: str | None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    finish_reason: str = FINISH_STOP
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        """Check if response contains tool calls."""
        return len(self.tool_calls) > 0

    @property
    def wants_tools(self) -> bool:
        return self.finish_reason == FINISH_TOOL_CALLS and self.has_tool_calls


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Conversations are passed in OpenAI chat format (``role``/``content``,
    assistant ``tool_calls``, ``tool`` results); implementations translate to
    their own wire format.
    """

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        system: str | None = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            tools: Optional list of tool definitions.
            model: Model identifier (provider-specific).
            system: System preamble.
            max_tokens: Maximum tokens in response.

        Returns:
            LLMResponse with content and/or tool calls.

        Raises:
            ProviderError: on any network, auth, rate-limit or model failure.
        """

    @abstractmethod
    def get_default_model(self) -> str:
        """Get the default model for this provider."""

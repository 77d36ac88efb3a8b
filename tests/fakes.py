"""Test doubles shared across the suite."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

from workstudio.providers.base import FINISH_TOOL_CALLS, LLMProvider, LLMResponse, ToolCallRequest
from workstudio.workspace.tree import TreeNode, scan_directory


class ScriptedProvider(LLMProvider):
    """Returns queued responses in order; records every request."""

    def __init__(self, responses: list[LLMResponse | Exception]) -> None:
        super().__init__(api_key="test-key")
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def chat(self, messages, tools=None, model=None, system=None, max_tokens=4096) -> LLMResponse:
        self.calls.append({
            "messages": copy.deepcopy(messages),
            "tools": tools,
            "model": model,
            "system": system,
            "max_tokens": max_tokens,
        })
        if not self.responses:
            return LLMResponse(content="done")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get_default_model(self) -> str:
        return "fake-model"


def tool_response(*calls: tuple[str, str, dict[str, Any]], text: str = "") -> LLMResponse:
    return LLMResponse(
        content=text,
        tool_calls=[ToolCallRequest(id=call_id, name=name, arguments=args) for call_id, name, args in calls],
        finish_reason=FINISH_TOOL_CALLS,
    )


class CountingLister:
    """Directory lister that records calls and can be paused per folder."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.gates: dict[str, Any] = {}

    async def __call__(self, directory: Path) -> list[TreeNode]:
        self.calls.append(str(directory))
        listing = scan_directory(directory)
        gate = self.gates.get(str(directory))
        if gate is not None:
            await gate.wait()
        return listing

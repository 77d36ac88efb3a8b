"""Anthropic Messages API provider."""

from __future__ import annotations

import json
import re
from typing import Any

import anthropic
from loguru import logger

from workstudio.errors import ProviderError
from workstudio.providers.base import FINISH_STOP, FINISH_TOOL_CALLS, LLMProvider, LLMResponse, ToolCallRequest

_DATA_URI_RE = re.compile(r"^data:(image/\w+);base64,(.+)$", re.DOTALL)

_STOP_REASONS = {
    "end_turn": FINISH_STOP,
    "stop_sequence": FINISH_STOP,
    "tool_use": FINISH_TOOL_CALLS,
}


class AnthropicProvider(LLMProvider):
    """Calls ``messages.create`` with the tool catalogue on every round."""

    def __init__(
        self,
        api_key: str | None,
        default_model: str = "claude-sonnet-4-5-20250929",
        request_timeout_s: float = 300.0,
        client: Any | None = None,
    ) -> None:
        super().__init__(api_key=api_key)
        self.default_model = default_model
        self.request_timeout_s = request_timeout_s
        self._client = client

    def get_default_model(self) -> str:
        return self.default_model

    def _get_client(self) -> Any:
        if self._client is None:
            if not (self.api_key or "").strip():
                raise ProviderError(
                    "Configuration Error: ANTHROPIC_API_KEY is missing. "
                    "Set it in the environment or in ~/.workstudio/config.json."
                )
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key, timeout=self.request_timeout_s)
        return self._client

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        system: str | None = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        client = self._get_client()
        request: dict[str, Any] = {
            "model": model or self.default_model,
            "max_tokens": max_tokens,
            "messages": to_anthropic_messages(messages),
        }
        if system:
            request["system"] = system
        if tools:
            request["tools"] = to_anthropic_tools(tools)

        logger.debug(f"[anthropic] model={request['model']} messages={len(request['messages'])}")
        try:
            response = await client.messages.create(**request)
        except anthropic.APIError as exc:
            raise ProviderError(str(exc) or exc.__class__.__name__) from exc

        return parse_anthropic_response(response)


def to_anthropic_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Translate OpenAI function definitions into Anthropic tool definitions."""
    converted: list[dict[str, Any]] = []
    for tool in tools:
        fn = tool.get("function", tool)
        converted.append({
            "name": fn["name"],
            "description": fn.get("description", ""),
            "input_schema": fn.get("parameters", {"type": "object", "properties": {}}),
        })
    return converted


def to_anthropic_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Translate OpenAI chat messages into Anthropic turns.

    Consecutive ``tool`` messages collapse into one user turn of
    ``tool_result`` blocks.
    """
    converted: list[dict[str, Any]] = []
    pending_results: list[dict[str, Any]] = []

    def flush_results() -> None:
        if pending_results:
            converted.append({"role": "user", "content": list(pending_results)})
            pending_results.clear()

    for msg in messages:
        role = msg.get("role")
        if role == "system":
            continue
        if role == "tool":
            pending_results.append({
                "type": "tool_result",
                "tool_use_id": msg.get("tool_call_id", ""),
                "content": str(msg.get("content", "")),
            })
            continue

        flush_results()
        if role == "assistant":
            blocks: list[dict[str, Any]] = []
            text = msg.get("content") or ""
            if text:
                blocks.append({"type": "text", "text": text})
            for call in msg.get("tool_calls") or []:
                fn = call.get("function", {})
                raw_args = fn.get("arguments") or "{}"
                try:
                    args = json.loads(raw_args) if isinstance(raw_args, str) else dict(raw_args)
                except json.JSONDecodeError:
                    args = {}
                blocks.append({"type": "tool_use", "id": call.get("id", ""), "name": fn.get("name", ""), "input": args})
            if not blocks:
                continue
            if len(blocks) == 1 and blocks[0]["type"] == "text":
                converted.append({"role": "assistant", "content": blocks[0]["text"]})
            else:
                converted.append({"role": "assistant", "content": blocks})
            continue

        converted.append({"role": "user", "content": _user_content(msg.get("content", ""))})

    flush_results()
    return converted


def _user_content(content: Any) -> Any:
    if isinstance(content, str):
        return content
    blocks: list[dict[str, Any]] = []
    for part in content or []:
        kind = part.get("type")
        if kind == "text":
            blocks.append({"type": "text", "text": part.get("text", "")})
        elif kind == "image_url":
            url = (part.get("image_url") or {}).get("url", "")
            match = _DATA_URI_RE.match(url)
            if match:
                blocks.append({
                    "type": "image",
                    "source": {"type": "base64", "media_type": match.group(1), "data": match.group(2)},
                })
    if len(blocks) == 1 and blocks[0]["type"] == "text":
        return blocks[0]["text"]
    return blocks


def parse_anthropic_response(response: Any) -> LLMResponse:
    text_parts: list[str] = []
    tool_calls: list[ToolCallRequest] = []
    for block in response.content:
        if block.type == "text":
            text_parts.append(block.text)
        elif block.type == "tool_use":
            tool_calls.append(ToolCallRequest(id=block.id, name=block.name, arguments=dict(block.input or {})))

    usage: dict[str, int] = {}
    if getattr(response, "usage", None) is not None:
        usage = {
            "input_tokens": int(getattr(response.usage, "input_tokens", 0) or 0),
            "output_tokens": int(getattr(response.usage, "output_tokens", 0) or 0),
        }
    stop_reason = str(response.stop_reason or "")
    return LLMResponse(
        content="".join(text_parts),
        tool_calls=tool_calls,
        finish_reason=_STOP_REASONS.get(stop_reason, stop_reason or FINISH_STOP),
        usage=usage,
    )

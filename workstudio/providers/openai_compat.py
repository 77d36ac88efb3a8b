"""Provider for OpenAI-compatible ``/v1/chat/completions`` endpoints."""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request
from typing import Any

from loguru import logger

from workstudio.errors import ProviderError
from workstudio.providers.base import FINISH_STOP, LLMProvider, LLMResponse, ToolCallRequest


class OpenAICompatProvider(LLMProvider):
    """Non-streaming chat completions over plain HTTP, run off the event loop."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        default_model: str,
        endpoint: str = "/v1/chat/completions",
        request_timeout_s: float = 300.0,
    ) -> None:
        super().__init__(api_key=api_key, api_base=base_url)
        self.base_url = (base_url or "").rstrip("/")
        self.endpoint = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        self.default_model = default_model
        self.request_timeout_s = float(max(10.0, request_timeout_s))

    def get_default_model(self) -> str:
        return self.default_model

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        system: str | None = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        payload: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": ([{"role": "system", "content": system}] if system else []) + list(messages),
            "max_tokens": max_tokens,
            "stream": False,
        }
        if tools:
            payload["tools"] = tools
        raw = await asyncio.to_thread(self._post, payload)
        return parse_chat_completion(raw)

    def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}{self.endpoint}"
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        req = urllib.request.Request(url=url, data=body, headers=headers, method="POST")
        logger.debug(f"[openai-compat] POST {url} model={payload['model']}")

        try:
            with urllib.request.urlopen(req, timeout=self.request_timeout_s) as resp:
                text = resp.read().decode("utf-8", errors="ignore")
        except urllib.error.HTTPError as exc:
            body_text = exc.read().decode("utf-8", errors="ignore")
            raise ProviderError(f"HTTP {exc.code}: {body_text[:500]}") from exc
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            raise ProviderError(f"Request failed: {exc}") from exc

        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ProviderError(f"Invalid JSON response: {text[:200]}") from exc
        if not isinstance(data, dict):
            raise ProviderError("Invalid response payload")
        if "error" in data:
            raise ProviderError(str(data["error"]))
        return data


def parse_chat_completion(data: dict[str, Any]) -> LLMResponse:
    choices = data.get("choices") or []
    if not choices:
        raise ProviderError("Response has no choices")
    choice = choices[0]
    message = choice.get("message") or {}

    tool_calls: list[ToolCallRequest] = []
    for call in message.get("tool_calls") or []:
        fn = call.get("function") or {}
        raw_args = fn.get("arguments") or "{}"
        try:
            args = json.loads(raw_args) if isinstance(raw_args, str) else dict(raw_args)
        except json.JSONDecodeError:
            logger.warning(f"Unparseable tool arguments for {fn.get('name')}: {raw_args[:120]}")
            args = {}
        tool_calls.append(ToolCallRequest(id=str(call.get("id", "")), name=str(fn.get("name", "")), arguments=args))

    usage = {k: int(v) for k, v in (data.get("usage") or {}).items() if isinstance(v, int)}
    return LLMResponse(
        content=message.get("content") or "",
        tool_calls=tool_calls,
        finish_reason=str(choice.get("finish_reason") or FINISH_STOP),
        usage=usage,
    )

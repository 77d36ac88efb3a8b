"""Build the configured provider."""

from __future__ import annotations

from workstudio.config.schema import Config
from workstudio.errors import ProviderError
from workstudio.providers.base import LLMProvider

PROVIDER_KINDS = ("anthropic", "openai")


def create_provider(config: Config) -> LLMProvider:
    kind = (config.provider.kind or "anthropic").strip().lower()
    api_key = config.resolve_api_key()
    if kind == "anthropic":
        from workstudio.providers.anthropic_api import AnthropicProvider

        return AnthropicProvider(
            api_key=api_key,
            default_model=config.provider.model,
            request_timeout_s=config.provider.request_timeout_s,
        )
    if kind == "openai":
        from workstudio.providers.openai_compat import OpenAICompatProvider

        return OpenAICompatProvider(
            base_url=config.provider.base_url,
            api_key=api_key,
            default_model=config.provider.model,
            endpoint=config.provider.endpoint,
            request_timeout_s=config.provider.request_timeout_s,
        )
    raise ProviderError(f"Unknown provider kind '{kind}'. Expected: {', '.join(PROVIDER_KINDS)}")

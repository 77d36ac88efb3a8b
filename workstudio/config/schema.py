"""Configuration schema for workstudio."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


class ProviderConfig(BaseModel):
    """Model provider settings."""

    kind: str = "anthropic"
    api_key: str = ""
    base_url: str = "https://api.openai.com"
    endpoint: str = "/v1/chat/completions"
    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 4096
    request_timeout_s: float = 300.0


class AgentSettings(BaseModel):
    """Tool-calling loop settings."""

    max_tool_rounds: int = 25
    history_limit: int = 30


class WorkspaceConfig(BaseModel):
    """Workspace tree and tool limits."""

    debounce_s: float = 0.3
    max_read_bytes: int = 10 * 1024 * 1024
    show_hidden: bool = False
    state_path: str = "~/.workstudio/workspace_state.json"


class Config(BaseSettings):
    """Root configuration for workstudio."""

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)

    @property
    def state_file(self) -> Path:
        """Get expanded path of the persisted workspace state."""
        return Path(self.workspace.state_path).expanduser()

    def resolve_api_key(self) -> str:
        """Configured key, else the conventional environment variable for the provider kind."""
        if self.provider.api_key.strip():
            return self.provider.api_key.strip()
        env_name = "OPENAI_API_KEY" if self.provider.kind == "openai" else "ANTHROPIC_API_KEY"
        return os.environ.get(env_name, "").strip()

    model_config = ConfigDict(
        env_prefix="WORKSTUDIO_",
        env_nested_delimiter="__",
        extra="ignore",
    )

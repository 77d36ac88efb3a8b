"""Load and save the workstudio config file."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from loguru import logger

from workstudio.config.schema import Config


def get_config_path() -> Path:
    """Default config location."""
    return Path.home() / ".workstudio" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from disk, falling back to defaults.

    Keys are stored camelCase on disk and converted to snake_case here.
    Environment variables (``WORKSTUDIO_*``) fill in whatever the file leaves unset.
    """
    path = config_path or get_config_path()
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return Config(**convert_keys(data))
        except (json.JSONDecodeError, ValueError) as exc:
            logger.warning(f"Failed to load config from {path}: {exc}")
            logger.warning("Using default configuration.")
    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """Write configuration to disk with camelCase keys."""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = convert_to_camel(config.model_dump())
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case recursively."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase recursively."""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(word.capitalize() for word in rest)

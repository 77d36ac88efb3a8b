"""Persistence of the last opened workspace root."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from loguru import logger


@dataclass(frozen=True)
class WorkspaceState:
    """Stored workspace selection."""

    root: str
    name: str


def default_state_path() -> Path:
    """Return default path for persisted workspace state."""
    return Path.home() / ".workstudio" / "workspace_state.json"


def load_workspace_state(path: Path | None = None) -> WorkspaceState | None:
    """Load the persisted workspace from disk."""
    target = path or default_state_path()
    if not target.exists():
        return None

    try:
        payload = json.loads(target.read_text(encoding="utf-8"))
        return WorkspaceState(root=str(payload["root"]), name=str(payload.get("name", "")))
    except (OSError, ValueError, KeyError, TypeError) as exc:
        logger.warning(f"Ignoring unreadable workspace state {target}: {exc}")
        return None


def save_workspace_state(state: WorkspaceState, path: Path | None = None) -> None:
    """Persist the workspace selection to disk."""
    target = path or default_state_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = {"root": state.root, "name": state.name}
    target.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def clear_workspace_state(path: Path | None = None) -> None:
    target = path or default_state_path()
    target.unlink(missing_ok=True)

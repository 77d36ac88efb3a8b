"""Tool definitions and executor for agent tool calling.

The four tools never write to disk. ``write_file`` and ``edit_file`` return an
encoded edit proposal; the only write path is :meth:`ToolExecutor.apply_write`,
used by the edit ledger once the user accepts.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

from workstudio.errors import AccessDenied, NoMatch, NotFound, WorkspaceIOError, WorkstudioError
from workstudio.providers.markers import EDIT_PATCH, EDIT_WRITE, EditProposal, encode_proposal
from workstudio.utils.helpers import new_edit_id, numbered_lines
from workstudio.workspace.guard import PathGuard

MAX_RESULT_CHARS = 100_000
DEFAULT_MAX_READ_BYTES = 10 * 1024 * 1024

PROPOSAL_ACK = "Edit proposed successfully. The user will review and accept/reject the changes."

TOOL_DEFINITIONS = [
    {
        "type": "function",
        "function": {
            "name": "read_file",
            "description": (
                "Read the contents of a file from the current workspace. Use this when you need "
                "to see code from a file that is not currently open."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Relative path to the file from the workspace root (e.g., \"src/app.js\").",
                    },
                },
                "required": ["path"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "list_directory",
            "description": "List the contents of a directory in the workspace.",
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Relative path to the directory (e.g., \"src\"). Use empty string for root.",
                    },
                },
                "required": ["path"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "write_file",
            "description": (
                "Create a new file or completely overwrite an existing file with new content. "
                "The change is proposed to the user and only written after approval."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Relative path to the file (e.g., \"src/new_module.py\").",
                    },
                    "content": {
                        "type": "string",
                        "description": "The complete content to write to the file.",
                    },
                },
                "required": ["path", "content"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "edit_file",
            "description": (
                "Make targeted edits to an existing file by replacing specific text. Use this for "
                "small, precise changes rather than rewriting the entire file."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Relative path to the file to edit.",
                    },
                    "edits": {
                        "type": "array",
                        "description": "Edit operations, applied in order.",
                        "items": {
                            "type": "object",
                            "properties": {
                                "old_text": {
                                    "type": "string",
                                    "description": "The exact text to find (must match exactly including whitespace).",
                                },
                                "new_text": {
                                    "type": "string",
                                    "description": "The replacement text.",
                                },
                            },
                            "required": ["old_text", "new_text"],
                        },
                    },
                },
                "required": ["path", "edits"],
            },
        },
    },
]


@dataclass
class ToolResult:
    """Outcome of one tool invocation, always textual."""

    text: str
    is_error: bool = False
    proposal: EditProposal | None = None

    @property
    def model_text(self) -> str:
        """What the model sees: proposals are reduced to a short acknowledgment."""
        return PROPOSAL_ACK if self.proposal is not None else self.text


class ToolExecutor:
    """Runs agent tools against the workspace, scoped by a path guard."""

    def __init__(self, guard: PathGuard, max_read_bytes: int = DEFAULT_MAX_READ_BYTES) -> None:
        self.guard = guard
        self.max_read_bytes = max_read_bytes

    async def execute(self, name: str, arguments: dict[str, Any] | str | None) -> ToolResult:
        """Run one tool. Failures come back as text, never as exceptions."""
        return await asyncio.to_thread(self.execute_sync, name, arguments)

    def execute_sync(self, name: str, arguments: dict[str, Any] | str | None) -> ToolResult:
        try:
            args = _parse_arguments(arguments)
            if name == "read_file":
                return ToolResult(self.read(str(args.get("path", ""))))
            if name == "list_directory":
                return ToolResult(self.list(str(args.get("path", "") or "")))
            if name == "write_file":
                return self.propose_write(str(args.get("path", "")), str(args.get("content", "")))
            if name == "edit_file":
                return self.propose_patch(str(args.get("path", "")), args.get("edits") or [])
            return ToolResult(f"Unknown tool: {name}", is_error=True)
        except NoMatch as exc:
            logger.info(f"Tool {name}: {exc}")
            return ToolResult(str(exc), is_error=True)
        except (WorkstudioError, OSError, ValueError) as exc:
            logger.warning(f"Tool '{name}' failed: {exc}")
            return ToolResult(f"Error executing {name}: {exc}", is_error=True)

    # ── Tools ──────────────────────────────────────────────────────────

    def read(self, path: str) -> str:
        if not path:
            raise ValueError("path is required")
        resolved = self.guard.resolve_relative(path)
        if not resolved.is_file():
            raise NotFound(path)
        size = resolved.stat().st_size
        if size > self.max_read_bytes:
            raise WorkspaceIOError(f"File too large ({size} bytes): {path}")
        content = resolved.read_text(encoding="utf-8", errors="replace")
        logger.info(f"Tool read_file: {resolved} ({len(content)} chars)")
        return _truncate(f"File: {path}\n\n{numbered_lines(content)}")

    def list(self, path: str) -> str:
        resolved = self.guard.resolve_relative(path)
        if not resolved.is_dir():
            raise NotFound(path or "/")
        try:
            items = sorted(resolved.iterdir(), key=lambda p: (not p.is_dir(), p.name.lower()))
        except PermissionError as exc:
            raise AccessDenied(str(resolved)) from exc
        entries = [f"[{'folder' if item.is_dir() else 'file'}] {item.name}" for item in items]
        logger.info(f"Tool list_directory: {resolved} ({len(entries)} entries)")
        header = f"Directory: {path or '/'}\n\n"
        if not entries:
            return header + "(empty)"
        return _truncate(header + "\n".join(entries))

    def propose_write(self, path: str, content: str) -> ToolResult:
        if not path:
            raise ValueError("path is required")
        resolved = self.guard.resolve_relative(path)
        base = self._read_current(resolved)
        proposal = EditProposal(
            id=new_edit_id(),
            kind=EDIT_WRITE,
            path=str(resolved),
            relative_path=path,
            base_content=base,
            proposed_content=content,
        )
        logger.info(f"Tool write_file: proposed {proposal.id} for {resolved} ({len(content)} chars)")
        text = (
            f"\n\n{encode_proposal(proposal)}\n\n"
            f"I've prepared changes for **{path}**. Please review and accept or reject the edit above."
        )
        return ToolResult(text, proposal=proposal)

    def propose_patch(self, path: str, edits: list[dict[str, Any]]) -> ToolResult:
        if not path:
            raise ValueError("path is required")
        if not isinstance(edits, list):
            raise ValueError("edits must be a list")
        resolved = self.guard.resolve_relative(path)
        if not resolved.is_file():
            raise NotFound(path)
        base = self._read_current(resolved)

        updated = base
        applied = 0
        skipped = 0
        for edit in edits:
            old_text = str(edit.get("old_text", "")) if isinstance(edit, dict) else ""
            new_text = str(edit.get("new_text", "")) if isinstance(edit, dict) else ""
            if not old_text or old_text not in updated:
                skipped += 1
                continue
            updated = updated.replace(old_text, new_text, 1)
            applied += 1

        if applied == 0:
            raise NoMatch(f"No matches found in {path}. The old_text must match exactly.")

        proposal = EditProposal(
            id=new_edit_id(),
            kind=EDIT_PATCH,
            path=str(resolved),
            relative_path=path,
            base_content=base,
            proposed_content=updated,
        )
        logger.info(f"Tool edit_file: proposed {proposal.id} for {resolved} ({applied} applied, {skipped} skipped)")
        note = f" ({skipped} edit(s) did not match and were skipped)" if skipped else ""
        text = (
            f"\n\n{encode_proposal(proposal)}\n\n"
            f"I've prepared {applied} edit(s) for **{path}**{note}. "
            "Please review and accept or reject the changes above."
        )
        return ToolResult(text, proposal=proposal)

    # ── Privileged write path ──────────────────────────────────────────

    def read_current(self, target: str | Path) -> str:
        """Current on-disk content of a guarded target, empty if absent."""
        return self._read_current(self.guard.ensure(target))

    def apply_write(self, target: str | Path, content: str) -> Path:
        """Write ``content`` to ``target`` after re-checking the guard."""
        resolved = self.guard.ensure(target)
        try:
            resolved.parent.mkdir(parents=True, exist_ok=True)
            resolved.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise WorkspaceIOError(f"Failed to write {resolved}: {exc}") from exc
        logger.info(f"Wrote {resolved} ({len(content)} chars)")
        return resolved

    def _read_current(self, resolved: Path) -> str:
        if not resolved.exists():
            return ""
        if not resolved.is_file():
            raise WorkspaceIOError(f"Not a file: {resolved}")
        return resolved.read_text(encoding="utf-8", errors="replace")


def _parse_arguments(arguments: dict[str, Any] | str | None) -> dict[str, Any]:
    if arguments is None or arguments == "":
        return {}
    if isinstance(arguments, dict):
        return arguments
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid tool arguments: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValueError("tool arguments must be an object")
    return parsed


def _truncate(text: str) -> str:
    if len(text) <= MAX_RESULT_CHARS:
        return text
    return text[:MAX_RESULT_CHARS] + f"\n... (truncated, {len(text) - MAX_RESULT_CHARS} more chars)"

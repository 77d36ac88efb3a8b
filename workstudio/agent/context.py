"""Context builder for assembling agent prompts."""

from __future__ import annotations

import base64
import mimetypes
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from workstudio.utils.helpers import numbered_lines

_PATH_LINE_RE = re.compile(r"^\s*-?\s*\*\*Path\*\*:\s*(.+?)\s*$", re.MULTILINE)
_DATA_URI_RE = re.compile(r"^data:(image/[\w.+-]+);base64,[A-Za-z0-9+/=\s]+$")

_LANGUAGES = {
    ".py": "python", ".js": "javascript", ".jsx": "javascript", ".ts": "typescript",
    ".tsx": "typescript", ".java": "java", ".c": "c", ".h": "c", ".cpp": "cpp",
    ".go": "go", ".rs": "rust", ".rb": "ruby", ".sh": "bash", ".json": "json",
    ".md": "markdown", ".html": "html", ".css": "css", ".yaml": "yaml", ".yml": "yaml",
    ".toml": "toml", ".sql": "sql",
}


def language_for_path(path: str) -> str:
    return _LANGUAGES.get(Path(path).suffix.lower(), "plaintext")


@dataclass
class ActiveFile:
    """The file open in the editor, with cursor position."""

    path: str
    content: str
    cursor_line: int = 1
    cursor_column: int = 1
    language: str = ""

    def __post_init__(self) -> None:
        if not self.language:
            self.language = language_for_path(self.path)


@dataclass
class WorkspaceContext:
    """Snapshot of what the user is looking at, taken once per outgoing turn."""

    project_name: str = "Untitled Project"
    project_path: str = ""
    file_tree: str = "(No files)"
    active_file: ActiveFile | None = None
    open_files: list[str] = field(default_factory=list)


def extract_root_from_preamble(preamble: str) -> str | None:
    """First ``**Path**: <abs path>`` line of a preamble, if any."""
    match = _PATH_LINE_RE.search(preamble or "")
    return match.group(1).strip() if match else None


class ContextBuilder:
    """
    Builds the context (system prompt + messages) for the agent.

    The system prompt describes the current project, its tree and the
    active editor file; messages carry history plus the new user turn.
    """

    def build_system_prompt(self, context: WorkspaceContext) -> str:
        """
        Build the workspace-aware system preamble.

        Args:
            context: Current workspace snapshot.

        Returns:
            Complete system prompt.
        """
        parts: list[str] = [
            "You are an AI coding assistant integrated into a workspace editor.",
            "You have full context of the user's current workspace and can help with coding tasks.",
            "",
            "## Current Project",
            f"- **Name**: {context.project_name}",
        ]
        if context.project_path:
            parts.append(f"- **Path**: {context.project_path}")
        parts += ["", "## Project Structure", "```", context.file_tree or "(No files)", "```", ""]

        active = context.active_file
        if active is not None:
            parts += [
                "## Currently Open File",
                f"- **Path**: {active.path}",
                f"- **Language**: {active.language}",
                f"- **Cursor Position**: Line {active.cursor_line}, Column {active.cursor_column}",
                "",
                "### File Content (with line numbers)",
                f"```{active.language}",
                numbered_lines(active.content),
                "```",
                "",
            ]

        other = [p for p in context.open_files if active is None or p != active.path]
        if other:
            parts.append("## Other Open Tabs")
            parts += [f"- {Path(p).name}" for p in other]
            parts.append("")

        parts += [
            "## Your Role",
            "- Help the user understand, modify, debug, or extend their code.",
            "- You can see the currently open file and project structure.",
            "- Use read_file and list_directory to inspect files; paths are relative to the project root.",
            "- Use write_file or edit_file to propose changes. Proposals are applied only after the user accepts them.",
            "- Reference line numbers when discussing the open file.",
        ]
        return "\n".join(parts)

    def build_messages(
        self,
        history: list[dict[str, Any]],
        current_message: str,
        media: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Build the message list for an LLM call.

        Args:
            history: Previous conversation messages (provider-facing).
            current_message: The new user message.
            media: Optional ``data:`` URIs or local image paths.

        Returns:
            List of messages; the system preamble travels separately.
        """
        messages = list(history)
        messages.append({"role": "user", "content": self._build_user_content(current_message, media)})
        return messages

    def _build_user_content(self, text: str, media: list[str] | None) -> str | list[dict[str, Any]]:
        """User content with images first, then the text."""
        if not media:
            return text

        images = []
        for item in media:
            uri = item if item.startswith("data:") else self._encode_image_file(item)
            if not uri or not _DATA_URI_RE.match(uri):
                logger.debug("Skipping attachment that is not an image data URI")
                continue
            images.append({"type": "image_url", "image_url": {"url": uri}})

        if not images:
            return text
        parts: list[dict[str, Any]] = list(images)
        if text:
            parts.append({"type": "text", "text": text})
        return parts

    @staticmethod
    def _encode_image_file(path: str) -> str | None:
        p = Path(path)
        mime, _ = mimetypes.guess_type(path)
        if not p.is_file() or not mime or not mime.startswith("image/"):
            return None
        b64 = base64.b64encode(p.read_bytes()).decode()
        return f"data:{mime};base64,{b64}"

    def add_tool_results(
        self,
        messages: list[dict[str, Any]],
        results: list[tuple[str, str, str]],
    ) -> list[dict[str, Any]]:
        """
        Append tool results, one ``tool`` message per ``(call_id, name, text)``.
        """
        for tool_call_id, tool_name, result in results:
            messages.append({
                "role": "tool",
                "tool_call_id": tool_call_id,
                "name": tool_name,
                "content": result,
            })
        return messages

    def add_assistant_message(
        self,
        messages: list[dict[str, Any]],
        content: str | None,
        tool_calls: list[dict[str, Any]] | None = None,
    ) -> list[dict[str, Any]]:
        """Append an assistant message, with tool calls when present."""
        msg: dict[str, Any] = {"role": "assistant", "content": content or ""}
        if tool_calls:
            msg["tool_calls"] = tool_calls
        messages.append(msg)
        return messages

"""Error taxonomy shared by the workspace, tools, ledger and providers."""

from __future__ import annotations


class WorkstudioError(Exception):
    """Base class for all workstudio errors."""


class NoWorkspace(WorkstudioError):
    """No project root is open."""


class AccessDenied(WorkstudioError):
    """Target path lies outside the current project root."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Access denied: path outside workspace: {path}")
        self.path = path


class NotFound(WorkstudioError):
    """File or directory does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Not found: {path}")
        self.path = path


class WorkspaceIOError(WorkstudioError):
    """Disk operation failed for a reason other than a missing target."""


class NoMatch(WorkstudioError):
    """Patch replacement found no occurrences of its old text."""


class MalformedPayload(WorkstudioError):
    """Marker body could not be parsed."""


class ProviderError(WorkstudioError):
    """Model provider call failed (network, auth, rate limit, model)."""


class StaleEdit(WorkstudioError):
    """File changed on disk between proposal and acceptance."""

    def __init__(self, edit_id: str, path: str) -> None:
        super().__init__(f"File changed since edit {edit_id} was proposed: {path}")
        self.edit_id = edit_id
        self.path = path


class CreationInProgress(WorkstudioError):
    """Another ephemeral node is already waiting for a name."""

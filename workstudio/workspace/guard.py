"""Project root value and the path guard scoped to it."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from workstudio.errors import AccessDenied, NoWorkspace


def normalize_path(path: str | Path) -> str:
    """Absolute, ``/``-separated, case-folded form used for containment checks."""
    resolved = Path(path).expanduser().resolve()
    return str(resolved).replace("\\", "/").casefold()


@dataclass(frozen=True)
class ProjectRoot:
    """Canonical directory the workspace is scoped to.

    Never mutated: opening another folder builds a new instance.
    """

    path: Path

    @classmethod
    def from_path(cls, raw: str | Path) -> "ProjectRoot":
        candidate = Path(raw).expanduser().resolve()
        if not candidate.is_dir():
            raise NoWorkspace(f"Not a directory: {candidate}")
        return cls(path=candidate)

    @property
    def name(self) -> str:
        return self.path.name or str(self.path)

    def __str__(self) -> str:
        return str(self.path)


class PathGuard:
    """Rejects any file-system target outside the current project root.

    With no root set every check fails closed.
    """

    def __init__(self, root: ProjectRoot | None = None) -> None:
        self.root = root

    def is_within_root(self, target: str | Path) -> bool:
        if self.root is None:
            logger.debug("Path check failed: no project root set")
            return False
        root_norm = normalize_path(self.root.path)
        target_norm = normalize_path(target)
        prefix = root_norm if root_norm.endswith("/") else root_norm + "/"
        inside = target_norm == root_norm or target_norm.startswith(prefix)
        if not inside:
            logger.debug(f"Path check failed: target={target_norm} root={root_norm}")
        return inside

    def ensure(self, target: str | Path) -> Path:
        """Return the resolved target, or raise AccessDenied."""
        if not self.is_within_root(target):
            raise AccessDenied(str(target))
        return Path(target).expanduser().resolve()

    def resolve_relative(self, relative: str) -> Path:
        """Join a workspace-relative path onto the root and check it.

        An empty string denotes the root itself.
        """
        if self.root is None:
            raise AccessDenied(relative or "<root>")
        candidate = Path(relative or "")
        if not candidate.is_absolute():
            candidate = self.root.path / candidate
        return self.ensure(candidate)

    def relative_to_root(self, target: str | Path) -> str:
        """Workspace-relative display form of a path inside the root."""
        if self.root is None:
            return str(target)
        try:
            return Path(target).resolve().relative_to(self.root.path).as_posix()
        except ValueError:
            return str(target)

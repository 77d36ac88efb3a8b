"""Workspace session: current root, guard, tree and watcher lifecycle."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from workstudio.errors import NoWorkspace
from workstudio.providers.tools.definitions import DEFAULT_MAX_READ_BYTES, ToolExecutor
from workstudio.workspace.guard import PathGuard, ProjectRoot
from workstudio.workspace.state_store import (
    WorkspaceState,
    clear_workspace_state,
    load_workspace_state,
    save_workspace_state,
)
from workstudio.workspace.tree import ChangeCallback, DirectoryLister, TreeStore, make_lister
from workstudio.workspace.watcher import FileWatcher


class WorkspaceSession:
    """
    Holds everything scoped to the open project.

    The guard instance is stable for the session's lifetime; opening another
    folder swaps its root so the executor and tree always check against the
    current one.
    """

    def __init__(
        self,
        state_path: Path | None = None,
        debounce_s: float = 0.3,
        max_read_bytes: int = DEFAULT_MAX_READ_BYTES,
        show_hidden: bool = False,
        lister: DirectoryLister | None = None,
        on_tree_change: ChangeCallback | None = None,
        watch: bool = True,
    ) -> None:
        self.state_path = state_path
        self.show_hidden = show_hidden
        self.watch = watch
        self.root: ProjectRoot | None = None
        self.guard = PathGuard()
        self.executor = ToolExecutor(self.guard, max_read_bytes)
        self.tree = TreeStore(
            self.guard,
            lister or make_lister(show_hidden),
            debounce_s=debounce_s,
            on_change=on_tree_change,
        )
        self._watcher: FileWatcher | None = None

    @property
    def is_open(self) -> bool:
        return self.root is not None

    def require_root(self) -> ProjectRoot:
        if self.root is None:
            raise NoWorkspace("No workspace open")
        return self.root

    async def open(self, path: str | Path, remember: bool = True) -> ProjectRoot:
        """Validate ``path``, make it the root, restart watching and load the tree."""
        root = ProjectRoot.from_path(path)
        self._stop_watcher()
        self.root = root
        self.guard.root = root
        if remember:
            save_workspace_state(WorkspaceState(root=str(root), name=root.name), self.state_path)
        await self.tree.load(root)
        if self.watch:
            self._watcher = FileWatcher(root.path, self.tree.handle_fs_change, self.show_hidden)
            self._watcher.start()
        logger.info(f"Workspace opened: {root}")
        return root

    async def restore(self) -> ProjectRoot | None:
        """Reopen the last workspace if it still exists."""
        state = load_workspace_state(self.state_path)
        if state is None:
            return None
        if not Path(state.root).is_dir():
            logger.warning(f"Last workspace no longer exists: {state.root}")
            clear_workspace_state(self.state_path)
            return None
        return await self.open(state.root, remember=False)

    def close(self) -> None:
        self._stop_watcher()
        self.tree.cancel_pending()
        logger.debug("Workspace session closed")

    def _stop_watcher(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

"""In-memory project tree with lazy expansion and debounced reconciliation.

Every local mutation hits disk first and then re-lists the affected parent
folder; the tree is never patched to an anticipated result. Watch
notifications are hints: while a node is being named they are dropped,
otherwise they are coalesced over a short window into one refresh per
parent folder.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Iterator

from loguru import logger

from workstudio.errors import (
    CreationInProgress,
    NoWorkspace,
    NotFound,
    WorkspaceIOError,
    WorkstudioError,
)
from workstudio.utils.helpers import now_ms
from workstudio.workspace.guard import PathGuard, ProjectRoot

DirectoryLister = Callable[[Path], Awaitable[list["TreeNode"]]]
ChangeCallback = Callable[[str], None]

TEMP_FILE_PREFIX = "__temp_file_"
TEMP_FOLDER_PREFIX = "__temp_folder_"


@dataclass
class TreeNode:
    """One file or folder. ``children is None`` means collapsed / not fetched."""

    id: str
    name: str
    path: str
    is_folder: bool
    children: list["TreeNode"] | None = None
    is_new: bool = False
    is_editing: bool = False


def sort_key(node: TreeNode) -> tuple[bool, str, str]:
    """Folders first, then case-insensitive name."""
    return (not node.is_folder, node.name.casefold(), node.name)


def scan_directory(directory: Path, show_hidden: bool = False) -> list[TreeNode]:
    """List immediate children of ``directory`` as sorted tree nodes."""
    nodes: list[TreeNode] = []
    try:
        with os.scandir(directory) as entries:
            for entry in entries:
                if not show_hidden and entry.name.startswith("."):
                    continue
                try:
                    is_dir = entry.is_dir()
                except OSError:
                    is_dir = False
                child_path = str(directory / entry.name)
                nodes.append(TreeNode(id=child_path, name=entry.name, path=child_path, is_folder=is_dir))
    except FileNotFoundError as exc:
        raise NotFound(str(directory)) from exc
    except OSError as exc:
        raise WorkspaceIOError(f"Cannot list {directory}: {exc}") from exc
    nodes.sort(key=sort_key)
    return nodes


def make_lister(show_hidden: bool = False) -> DirectoryLister:
    async def lister(directory: Path) -> list[TreeNode]:
        return await asyncio.to_thread(scan_directory, directory, show_hidden)

    return lister


def _key(path: str | Path) -> str:
    return str(Path(path))


def _is_under(path: str, ancestor: str) -> bool:
    return path == ancestor or path.startswith(ancestor.rstrip(os.sep) + os.sep)


class TreeStore:
    """Owns the tree graph; all mutation goes through here."""

    def __init__(
        self,
        guard: PathGuard,
        lister: DirectoryLister | None = None,
        debounce_s: float = 0.3,
        on_change: ChangeCallback | None = None,
    ) -> None:
        self.guard = guard
        self._lister = lister or make_lister()
        self.debounce_s = debounce_s
        self.on_change = on_change

        self.root: Path | None = None
        self.nodes: list[TreeNode] = []
        self.expanded: set[str] = set()
        self.selected: str | None = None
        self.editing_id: str | None = None
        self.creating = False

        self._temp_parent: str | None = None
        self._generations: dict[str, int] = {}
        self._pending_folders: set[str] = set()
        self._debounce_task: asyncio.Task | None = None
        self._refreshing = False

    # ------------------------------------------------------------------ #
    # Loading and lookup                                                   #
    # ------------------------------------------------------------------ #

    async def load(self, root: ProjectRoot) -> None:
        """Replace the whole tree with ``root``'s listing."""
        self.cancel_pending()
        self.root = root.path
        self.nodes = []
        self.expanded = set()
        self.selected = None
        self.editing_id = None
        self.creating = False
        self._temp_parent = None
        self._generations.clear()
        children = await self._fetch(_key(root.path))
        if children is not None:
            self.nodes = children
        logger.info(f"Tree loaded for {root.path} ({len(self.nodes)} entries)")
        self._changed(_key(root.path))

    def walk(self, nodes: list[TreeNode] | None = None) -> Iterator[TreeNode]:
        for node in self.nodes if nodes is None else nodes:
            yield node
            if node.children:
                yield from self.walk(node.children)

    def find(self, node_id: str | Path) -> TreeNode | None:
        key = node_id if isinstance(node_id, str) and node_id.startswith("__temp_") else _key(node_id)
        for node in self.walk():
            if node.id == key:
                return node
        return None

    def children_of(self, folder: str | Path) -> list[TreeNode] | None:
        """Loaded children of ``folder`` (root included); ``None`` when collapsed."""
        if self._is_root(folder):
            return self.nodes
        node = self.find(folder)
        return node.children if node is not None else None

    @property
    def has_ephemeral(self) -> bool:
        return any(node.is_new for node in self.walk())

    # ------------------------------------------------------------------ #
    # Expansion                                                            #
    # ------------------------------------------------------------------ #

    async def toggle_folder(self, folder: str | Path) -> bool:
        """Expand or collapse ``folder``; returns whether it is now expanded."""
        key = _key(folder)
        node = self.find(key)
        if node is None or not node.is_folder:
            raise NotFound(key)

        if key in self.expanded:
            self.expanded.discard(key)
            self._bump(key)
            node.children = None
            self._changed(key)
            return False

        children = await self._fetch(key)
        if children is None:
            return key in self.expanded
        node = self.find(key)
        if node is None:
            return False
        node.children = children
        self.expanded.add(key)
        self._changed(key)
        return True

    async def expand(self, folder: str | Path) -> None:
        if _key(folder) not in self.expanded:
            await self.toggle_folder(folder)

    async def collapse(self, folder: str | Path) -> None:
        if _key(folder) in self.expanded:
            await self.toggle_folder(folder)

    # ------------------------------------------------------------------ #
    # Reconciliation                                                       #
    # ------------------------------------------------------------------ #

    async def refresh_folder(self, folder: str | Path) -> None:
        """Re-list one folder if it is the root or currently expanded."""
        if self.root is None:
            return
        key = _key(folder)

        if self._is_root(key):
            children = await self._fetch(key)
            if children is None:
                return
            self.nodes = self._merge(self.nodes, children, key)
            self._changed(key)
            return

        if key not in self.expanded:
            return
        node = self.find(key)
        if node is None:
            self.expanded.discard(key)
            return
        children = await self._fetch(key)
        if children is None:
            return
        node = self.find(key)
        if node is None or key not in self.expanded:
            return
        node.children = self._merge(node.children or [], children, key)
        self._changed(key)

    async def refresh(self) -> None:
        """Re-list the root and then every expanded folder, parents first."""
        if self.root is None:
            return
        await self.refresh_folder(self.root)
        for key in sorted(self.expanded, key=lambda p: (p.count(os.sep), p)):
            if self.find(key) is None:
                self.expanded.discard(key)
                continue
            await self._reload_expanded(key)

    async def _reload_expanded(self, key: str) -> None:
        try:
            await self.refresh_folder(key)
        except WorkstudioError as exc:
            logger.warning(f"Dropping expanded folder {key}: {exc}")
            self.expanded.discard(key)
            node = self.find(key)
            if node is not None:
                node.children = None

    def handle_fs_change(self, event: str, changed_path: str | Path) -> bool:
        """Watch hint: schedule a debounced refresh of the changed path's parent.

        Returns False when the notification was suppressed.
        """
        if self.editing_id is not None or self.creating or self.has_ephemeral:
            logger.debug(f"[fs change] blocked while editing: {event} {changed_path}")
            return False
        if self.root is None:
            return False

        logger.debug(f"[fs change] {event} {changed_path}")
        self._pending_folders.add(_key(Path(changed_path).parent))
        task = self._debounce_task
        if task is not None and not task.done():
            if self._refreshing:
                # the running batch sleeps again and picks this folder up
                return True
            task.cancel()
        self._debounce_task = asyncio.get_running_loop().create_task(self._debounced_refresh())
        return True

    async def _debounced_refresh(self) -> None:
        while self._pending_folders:
            await asyncio.sleep(self.debounce_s)
            folders = sorted(self._pending_folders, key=lambda p: (p.count(os.sep), p))
            self._pending_folders.clear()
            self._refreshing = True
            try:
                for folder in folders:
                    try:
                        await self.refresh_folder(folder)
                    except (WorkstudioError, OSError) as exc:
                        logger.warning(f"Refresh of {folder} after change failed: {exc}")
            finally:
                self._refreshing = False

    async def drain(self) -> None:
        """Wait for a scheduled debounced refresh, if any."""
        task = self._debounce_task
        if task is not None and not task.done():
            try:
                await task
            except asyncio.CancelledError:
                pass

    def cancel_pending(self) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None
        self._refreshing = False
        self._pending_folders.clear()

    # ------------------------------------------------------------------ #
    # Creation                                                             #
    # ------------------------------------------------------------------ #

    async def start_create(self, parent: str | Path | None, is_folder: bool) -> TreeNode:
        """Insert the single ephemeral node at the head of ``parent``'s children."""
        if self.root is None:
            raise NoWorkspace("No workspace open")
        if self.creating or self.has_ephemeral:
            raise CreationInProgress("Finish or cancel the pending new item first")
        self.creating = True

        parent_key = _key(parent or self.root)
        try:
            if not self._is_root(parent_key):
                await self.expand(parent_key)
                if self.children_of(parent_key) is None:
                    raise NotFound(parent_key)
        except Exception:
            self.creating = False
            raise

        temp_id = f"{TEMP_FOLDER_PREFIX if is_folder else TEMP_FILE_PREFIX}{now_ms()}"
        temp = TreeNode(
            id=temp_id,
            name="New Folder" if is_folder else "untitled.txt",
            path=temp_id,
            is_folder=is_folder,
            is_new=True,
            is_editing=True,
        )
        self._temp_parent = parent_key
        self._insert_head(parent_key, temp)
        self.editing_id = temp_id
        self.selected = temp_id
        self._changed(parent_key)
        return temp

    async def confirm_create(self, temp_id: str, name: str) -> str:
        """Create the file or folder on disk and replace the ephemeral node."""
        temp = self.find(temp_id)
        parent_key = self._temp_parent
        if temp is None or not temp.is_new or parent_key is None:
            raise NotFound(temp_id)

        try:
            clean = _validate_name(name)
            target = self.guard.ensure(Path(parent_key) / clean)
            await asyncio.to_thread(_create_on_disk, target, temp.is_folder)
        except Exception:
            self._drop_temp(temp_id)
            raise

        self._drop_temp(temp_id)
        logger.info(f"Created {'folder' if temp.is_folder else 'file'} {target}")
        await self.refresh_folder(parent_key)
        self.selected = _key(target)
        return _key(target)

    def cancel_create(self, temp_id: str) -> None:
        self._drop_temp(temp_id)

    # ------------------------------------------------------------------ #
    # Rename / delete / move                                               #
    # ------------------------------------------------------------------ #

    def start_editing(self, node_id: str) -> None:
        node = self.find(node_id)
        if node is None:
            raise NotFound(node_id)
        self.stop_editing()
        node.is_editing = True
        self.editing_id = node.id

    def stop_editing(self) -> None:
        if self.editing_id is not None:
            node = self.find(self.editing_id)
            if node is not None and not node.is_new:
                node.is_editing = False
        if not self.creating:
            self.editing_id = None

    def select(self, path: str | None) -> None:
        self.selected = path

    async def rename(self, old_path: str | Path, new_name: str) -> str:
        source = self.guard.ensure(old_path)
        target = self.guard.ensure(source.parent / _validate_name(new_name))
        await asyncio.to_thread(_move_on_disk, source, target)
        logger.info(f"Renamed {source} -> {target}")
        self.stop_editing()
        self._forget_subtree(_key(source))
        if self.selected == _key(source):
            self.selected = _key(target)
        await self.refresh_folder(source.parent)
        return _key(target)

    async def delete(self, path: str | Path) -> None:
        target = self.guard.ensure(path)
        if self._is_root(target):
            raise WorkspaceIOError("Refusing to delete the workspace root")
        await asyncio.to_thread(_delete_on_disk, target)
        logger.info(f"Deleted {target}")
        self._forget_subtree(_key(target))
        if self.selected is not None and _is_under(self.selected, _key(target)):
            self.selected = None
        await self.refresh_folder(target.parent)

    async def move(self, source_path: str | Path, dest_folder: str | Path) -> str:
        source = self.guard.ensure(source_path)
        folder = self.guard.ensure(dest_folder)
        target = self.guard.ensure(folder / source.name)
        if _is_under(_key(folder), _key(source)):
            raise WorkspaceIOError(f"Cannot move {source} into itself")
        await asyncio.to_thread(_move_on_disk, source, target)
        logger.info(f"Moved {source} -> {target}")
        self._forget_subtree(_key(source))
        await self.refresh_folder(source.parent)
        await self.refresh_folder(folder)
        return _key(target)

    # ------------------------------------------------------------------ #
    # Rendering                                                            #
    # ------------------------------------------------------------------ #

    def render(self) -> str:
        """Indented text tree of loaded nodes, for the system preamble."""
        lines: list[str] = []

        def visit(nodes: list[TreeNode], depth: int) -> None:
            for node in nodes:
                if node.is_new:
                    continue
                prefix = "  " * depth
                if node.is_folder:
                    lines.append(f"{prefix}[dir] {node.name}/")
                    if node.children:
                        visit(node.children, depth + 1)
                else:
                    lines.append(f"{prefix}[file] {node.name}")

        visit(self.nodes, 0)
        return "\n".join(lines) if lines else "(No files)"

    # ------------------------------------------------------------------ #
    # Private helpers                                                      #
    # ------------------------------------------------------------------ #

    async def _fetch(self, key: str) -> list[TreeNode] | None:
        """List ``key``; ``None`` when a newer request for it started meanwhile."""
        generation = self._bump(key)
        children = await self._lister(self.guard.ensure(key))
        if self._generations.get(key) != generation:
            logger.debug(f"Discarding superseded listing of {key}")
            return None
        return children

    def _bump(self, key: str) -> int:
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        return generation

    def _merge(self, old: list[TreeNode], fresh: list[TreeNode], folder_key: str) -> list[TreeNode]:
        """Fresh listing, keeping loaded subtrees of still-expanded folders and the ephemeral node."""
        previous = {node.path: node for node in old if not node.is_new}
        merged: list[TreeNode] = []
        for node in fresh:
            prior = previous.get(node.path)
            if node.is_folder and prior is not None and prior.is_folder and node.path in self.expanded:
                node.children = prior.children
            if prior is not None and prior.is_editing:
                node.is_editing = True
            merged.append(node)
        present = {node.path for node in fresh if node.is_folder}
        for path in list(previous):
            if path not in present:
                self._forget_subtree(path)
        if self._temp_parent == folder_key:
            merged = [node for node in old if node.is_new] + merged
        return merged

    def _insert_head(self, parent_key: str, node: TreeNode) -> None:
        if self._is_root(parent_key):
            self.nodes = [node] + self.nodes
            return
        parent = self.find(parent_key)
        if parent is None:
            raise NotFound(parent_key)
        parent.children = [node] + (parent.children or [])

    def _drop_temp(self, temp_id: str) -> None:
        def prune(nodes: list[TreeNode]) -> list[TreeNode]:
            kept = []
            for node in nodes:
                if node.id == temp_id:
                    continue
                if node.children is not None:
                    node.children = prune(node.children)
                kept.append(node)
            return kept

        self.nodes = prune(self.nodes)
        parent_key = self._temp_parent
        self._temp_parent = None
        self.creating = False
        if self.editing_id == temp_id:
            self.editing_id = None
        if self.selected == temp_id:
            self.selected = None
        if parent_key is not None:
            self._changed(parent_key)

    def _forget_subtree(self, key: str) -> None:
        self.expanded = {p for p in self.expanded if not _is_under(p, key)}

    def _is_root(self, path: str | Path) -> bool:
        return self.root is not None and _key(path) == _key(self.root)

    def _changed(self, folder: str) -> None:
        if self.on_change is not None:
            self.on_change(folder)


def _validate_name(name: str) -> str:
    clean = (name or "").strip()
    if not clean or clean in (".", "..") or "/" in clean or "\\" in clean:
        raise WorkspaceIOError(f"Invalid name: {name!r}")
    return clean


def _create_on_disk(target: Path, is_folder: bool) -> None:
    try:
        if is_folder:
            target.mkdir(parents=True, exist_ok=True)
        else:
            with target.open("x", encoding="utf-8"):
                pass
    except FileExistsError as exc:
        raise WorkspaceIOError(f"Already exists: {target}") from exc
    except OSError as exc:
        raise WorkspaceIOError(f"Cannot create {target}: {exc}") from exc


def _move_on_disk(source: Path, target: Path) -> None:
    if not source.exists():
        raise NotFound(str(source))
    if target.exists():
        raise WorkspaceIOError(f"Already exists: {target}")
    try:
        source.rename(target)
    except OSError as exc:
        raise WorkspaceIOError(f"Cannot move {source} -> {target}: {exc}") from exc


def _delete_on_disk(target: Path) -> None:
    try:
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        elif target.exists() or target.is_symlink():
            target.unlink()
    except OSError as exc:
        raise WorkspaceIOError(f"Cannot delete {target}: {exc}") from exc

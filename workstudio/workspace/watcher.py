"""File-system watcher feeding change hints into the tree store."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable

from loguru import logger
from watchfiles import Change, awatch

ChangeHandler = Callable[[str, str], object]

_CHANGE_NAMES = {
    Change.added: "add",
    Change.modified: "change",
    Change.deleted: "unlink",
}


def is_hidden(path: str | Path, root: Path) -> bool:
    """True when any component below ``root`` starts with a dot."""
    try:
        parts = Path(path).relative_to(root).parts
    except ValueError:
        return True
    return any(part.startswith(".") for part in parts)


class FileWatcher:
    """Recursive watch of one root; events go to ``handler(event, path)``."""

    def __init__(self, root: Path, handler: ChangeHandler, show_hidden: bool = False) -> None:
        self.root = root
        self.handler = handler
        self.show_hidden = show_hidden
        self._stop: asyncio.Event | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            self.stop()
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._watch(self._stop))
        logger.info(f"Watching {self.root}")

    def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._stop = None

    async def _watch(self, stop: asyncio.Event) -> None:
        try:
            async for changes in awatch(str(self.root), stop_event=stop):
                for change, raw_path in changes:
                    if not self.show_hidden and is_hidden(raw_path, self.root):
                        continue
                    self.dispatch(_CHANGE_NAMES.get(change, "change"), raw_path)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"File watcher for {self.root} stopped")

    def dispatch(self, event: str, path: str) -> None:
        try:
            self.handler(event, path)
        except Exception:
            logger.exception(f"File change handler failed for {path}")

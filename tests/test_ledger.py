from __future__ import annotations

import asyncio
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from workstudio.agent.ledger import STATUS_APPLIED, STATUS_PENDING, STATUS_REJECTED, EditLedger
from workstudio.errors import AccessDenied, StaleEdit, WorkspaceIOError
from workstudio.providers.tools import ToolExecutor
from workstudio.workspace.guard import PathGuard, ProjectRoot


class EditLedgerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root_path = Path(self._tmp.name).resolve() / "proj"
        self.root_path.mkdir()
        self.target = self.root_path / "app.js"
        self.target.write_text("let x = 1;\n", encoding="utf-8")
        self.guard = PathGuard(ProjectRoot.from_path(self.root_path))
        self.executor = ToolExecutor(self.guard)
        self.applied: list[str] = []
        self.ledger = EditLedger(self.executor, on_applied=lambda entry: self.applied.append(entry.id))

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def _propose(self, path: str = "app.js", content: str = "let y = 1;\n"):
        result = await self.executor.execute("write_file", {"path": path, "content": content})
        return self.ledger.register(result.proposal)

    async def test_register_is_idempotent(self) -> None:
        result = await self.executor.execute("write_file", {"path": "app.js", "content": "a"})
        first = self.ledger.register(result.proposal)
        second = self.ledger.register(result.proposal)
        self.assertIs(first, second)
        self.assertEqual(len(self.ledger), 1)
        self.assertEqual(self.ledger.register_from_text(result.text), [first])

    async def test_accept_writes_and_is_idempotent(self) -> None:
        entry = await self._propose()
        accepted = await self.ledger.accept(entry.id)
        self.assertEqual(accepted.status, STATUS_APPLIED)
        self.assertEqual(self.target.read_text(encoding="utf-8"), "let y = 1;\n")

        self.target.write_text("changed later\n", encoding="utf-8")
        again = await self.ledger.accept(entry.id)
        self.assertEqual(again.status, STATUS_APPLIED)
        self.assertEqual(self.target.read_text(encoding="utf-8"), "changed later\n")
        self.assertEqual(self.applied, [entry.id])

    async def test_reject_never_touches_disk(self) -> None:
        entry = await self._propose(path="new.txt", content="hello")
        rejected = self.ledger.reject(entry.id)
        self.assertEqual(rejected.status, STATUS_REJECTED)
        self.assertFalse((self.root_path / "new.txt").exists())

        self.assertEqual(self.ledger.reject(entry.id).status, STATUS_REJECTED)
        self.assertEqual((await self.ledger.accept(entry.id)).status, STATUS_REJECTED)
        self.assertFalse((self.root_path / "new.txt").exists())

    async def test_reject_during_commit_is_ignored(self) -> None:
        entry = await self._propose()
        task = asyncio.create_task(self.ledger.accept(entry.id))
        await asyncio.sleep(0)
        self.assertEqual(self.ledger.reject(entry.id).status, STATUS_PENDING)
        accepted = await task
        self.assertEqual(accepted.status, STATUS_APPLIED)
        self.assertEqual(self.ledger.reject(entry.id).status, STATUS_APPLIED)
        self.assertEqual(self.target.read_text(encoding="utf-8"), "let y = 1;\n")
        self.assertEqual(self.applied, [entry.id])

    async def test_stale_edit_is_refused_and_stays_pending(self) -> None:
        entry = await self._propose()
        self.target.write_text("someone else wrote this\n", encoding="utf-8")
        with self.assertRaises(StaleEdit):
            await self.ledger.accept(entry.id)
        self.assertEqual(entry.status, STATUS_PENDING)
        self.assertEqual(self.target.read_text(encoding="utf-8"), "someone else wrote this\n")

    async def test_stale_check_can_be_disabled(self) -> None:
        ledger = EditLedger(self.executor, stale_check=False)
        result = await self.executor.execute("write_file", {"path": "app.js", "content": "final\n"})
        entry = ledger.register(result.proposal)
        self.target.write_text("drifted\n", encoding="utf-8")
        await ledger.accept(entry.id)
        self.assertEqual(self.target.read_text(encoding="utf-8"), "final\n")

    async def test_failed_write_leaves_entry_pending(self) -> None:
        entry = await self._propose()
        with mock.patch.object(self.executor, "apply_write", side_effect=WorkspaceIOError("disk full")):
            with self.assertRaises(WorkspaceIOError):
                await self.ledger.accept(entry.id)
        self.assertEqual(entry.status, STATUS_PENDING)
        self.assertEqual(self.ledger.pending(), [entry])

        await self.ledger.accept(entry.id)
        self.assertEqual(entry.status, STATUS_APPLIED)

    async def test_commit_uses_root_at_accept_time(self) -> None:
        entry = await self._propose()
        other = Path(self._tmp.name).resolve() / "other"
        other.mkdir()
        self.guard.root = ProjectRoot.from_path(other)
        with self.assertRaises(AccessDenied):
            await self.ledger.accept(entry.id)
        self.assertEqual(entry.status, STATUS_PENDING)

    async def test_unknown_id_raises_key_error(self) -> None:
        with self.assertRaises(KeyError):
            await self.ledger.accept("edit-missing")
        with self.assertRaises(KeyError):
            self.ledger.reject("edit-missing")


if __name__ == "__main__":
    unittest.main()

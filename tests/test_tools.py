from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from workstudio.errors import AccessDenied
from workstudio.providers.markers import EDIT_PATCH, EDIT_WRITE, decode
from workstudio.providers.tools import PROPOSAL_ACK, TOOL_DEFINITIONS, ToolExecutor
from workstudio.workspace.guard import PathGuard, ProjectRoot


class ToolExecutorTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root_path = Path(self._tmp.name).resolve() / "proj"
        (self.root_path / "src").mkdir(parents=True)
        (self.root_path / "app.js").write_text("let x = 1;\nconsole.log(x);\n", encoding="utf-8")
        (self.root_path / "src" / "util.js").write_text("export {}\n", encoding="utf-8")
        self.executor = ToolExecutor(PathGuard(ProjectRoot.from_path(self.root_path)))

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_catalogue_names(self) -> None:
        names = [tool["function"]["name"] for tool in TOOL_DEFINITIONS]
        self.assertEqual(names, ["read_file", "list_directory", "write_file", "edit_file"])

    async def test_read_file_numbers_lines(self) -> None:
        result = await self.executor.execute("read_file", {"path": "app.js"})
        self.assertFalse(result.is_error)
        self.assertTrue(result.text.startswith("File: app.js\n\n"))
        self.assertIn("   1 | let x = 1;", result.text)
        self.assertIn("   2 | console.log(x);", result.text)

    async def test_read_missing_file_is_error_text(self) -> None:
        result = await self.executor.execute("read_file", {"path": "nope.txt"})
        self.assertTrue(result.is_error)
        self.assertTrue(result.text.startswith("Error executing read_file:"))

    async def test_read_respects_size_limit(self) -> None:
        executor = ToolExecutor(self.executor.guard, max_read_bytes=4)
        result = await executor.execute("read_file", {"path": "app.js"})
        self.assertTrue(result.is_error)
        self.assertIn("too large", result.text)

    async def test_path_outside_root_is_denied(self) -> None:
        outside = self.root_path.parent / "secret.txt"
        outside.write_text("s", encoding="utf-8")
        result = await self.executor.execute("read_file", {"path": "../secret.txt"})
        self.assertTrue(result.is_error)
        self.assertIn("Access denied", result.text)

    async def test_list_directory_folders_first(self) -> None:
        result = await self.executor.execute("list_directory", {"path": ""})
        self.assertEqual(result.text, "Directory: /\n\n[folder] src\n[file] app.js")

    async def test_list_empty_directory(self) -> None:
        (self.root_path / "empty").mkdir()
        result = await self.executor.execute("list_directory", {"path": "empty"})
        self.assertEqual(result.text, "Directory: empty\n\n(empty)")

    async def test_write_file_proposes_without_touching_disk(self) -> None:
        result = await self.executor.execute("write_file", {"path": "new.txt", "content": "hello"})
        self.assertFalse(result.is_error)
        self.assertFalse((self.root_path / "new.txt").exists())
        self.assertEqual(result.model_text, PROPOSAL_ACK)

        proposal = result.proposal
        self.assertEqual(proposal.kind, EDIT_WRITE)
        self.assertEqual(proposal.base_content, "")
        self.assertEqual(proposal.proposed_content, "hello")
        self.assertEqual(decode(result.text).proposals, [proposal])

    async def test_edit_file_replaces_first_occurrence(self) -> None:
        result = await self.executor.execute(
            "edit_file",
            {"path": "app.js", "edits": [{"old_text": "x", "new_text": "y"}]},
        )
        proposal = result.proposal
        self.assertEqual(proposal.kind, EDIT_PATCH)
        self.assertEqual(proposal.proposed_content, "let y = 1;\nconsole.log(x);\n")
        self.assertEqual((self.root_path / "app.js").read_text(encoding="utf-8"), "let x = 1;\nconsole.log(x);\n")

    async def test_edit_file_skips_unmatched_edits(self) -> None:
        result = await self.executor.execute(
            "edit_file",
            {
                "path": "app.js",
                "edits": [{"old_text": "missing", "new_text": "?"}, {"old_text": "1", "new_text": "2"}],
            },
        )
        self.assertIsNotNone(result.proposal)
        self.assertIn("1 edit(s) did not match", result.text)

    async def test_edit_file_with_no_matches_is_error(self) -> None:
        result = await self.executor.execute(
            "edit_file",
            {"path": "app.js", "edits": [{"old_text": "zzz", "new_text": "y"}]},
        )
        self.assertTrue(result.is_error)
        self.assertIsNone(result.proposal)
        self.assertEqual(result.text, "No matches found in app.js. The old_text must match exactly.")

    async def test_arguments_may_arrive_as_json_string(self) -> None:
        result = await self.executor.execute("read_file", json.dumps({"path": "src/util.js"}))
        self.assertIn("export {}", result.text)

    async def test_unknown_tool(self) -> None:
        result = await self.executor.execute("delete_everything", {})
        self.assertTrue(result.is_error)
        self.assertEqual(result.text, "Unknown tool: delete_everything")

    def test_apply_write_rechecks_guard(self) -> None:
        with self.assertRaises(AccessDenied):
            self.executor.apply_write(self.root_path.parent / "evil.txt", "x")
        written = self.executor.apply_write(self.root_path / "deep" / "file.txt", "content")
        self.assertEqual(written.read_text(encoding="utf-8"), "content")


if __name__ == "__main__":
    unittest.main()

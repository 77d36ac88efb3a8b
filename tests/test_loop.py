from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from fakes import ScriptedProvider, tool_response

from workstudio.agent.ledger import STATUS_APPLIED, EditLedger
from workstudio.agent.loop import AgentOrchestrator, AgentRequest, AgentState, CancelToken
from workstudio.errors import ProviderError
from workstudio.providers.base import LLMResponse
from workstudio.providers.markers import STATUS_ERROR, STATUS_SUCCESS, decode
from workstudio.providers.tools import PROPOSAL_ACK, ToolExecutor
from workstudio.workspace.guard import PathGuard, ProjectRoot


class AgentOrchestratorTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root_path = Path(self._tmp.name).resolve() / "proj"
        self.root_path.mkdir()
        (self.root_path / "app.js").write_text("let x = 1;\nconsole.log(x);\n", encoding="utf-8")
        self.root = ProjectRoot.from_path(self.root_path)
        self.snapshots: list[str] = []

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def _capture(self, text: str) -> None:
        self.snapshots.append(text)

    async def test_plain_answer_finishes_done(self) -> None:
        provider = ScriptedProvider([LLMResponse(content="Hello!")])
        result = await AgentOrchestrator(provider).run(AgentRequest(message="hi", root=self.root), self._capture)
        self.assertEqual(result.state, AgentState.DONE)
        self.assertEqual(result.text, "Hello!")
        self.assertEqual(self.snapshots, ["Hello!"])

        call = provider.calls[0]
        self.assertEqual(call["messages"][-1], {"role": "user", "content": "hi"})
        self.assertEqual(call["model"], "fake-model")
        self.assertEqual(call["max_tokens"], 4096)
        self.assertIn(f"**Path**: {self.root_path}", call["system"])

    async def test_rename_variable_then_accept(self) -> None:
        provider = ScriptedProvider([
            tool_response(
                ("call-1", "edit_file", {
                    "path": "app.js",
                    "edits": [{"old_text": "let x = 1;\nconsole.log(x);", "new_text": "let y = 1;\nconsole.log(y);"}],
                }),
                text="Renaming. ",
            ),
            LLMResponse(content="Done: x is now y."),
        ])
        result = await AgentOrchestrator(provider).run(
            AgentRequest(message="rename x to y in app.js", root=self.root),
            self._capture,
        )

        self.assertEqual(result.state, AgentState.DONE)
        self.assertEqual(result.rounds, 1)
        self.assertEqual(len(result.proposals), 1)
        for earlier, later in zip(self.snapshots, self.snapshots[1:]):
            self.assertTrue(later.startswith(earlier))

        decoded = decode(result.text, final=True)
        self.assertEqual([s.status for s in decoded.statuses], [STATUS_SUCCESS])
        self.assertEqual(decoded.statuses[0].id, "status-call-1")
        self.assertEqual(decoded.statuses[0].summary, "Edit proposed")
        self.assertIn("Done: x is now y.", decoded.prose)

        follow_up = provider.calls[1]["messages"]
        self.assertEqual(follow_up[-2]["role"], "assistant")
        self.assertEqual(follow_up[-2]["tool_calls"][0]["function"]["name"], "edit_file")
        self.assertEqual(follow_up[-1], {
            "role": "tool",
            "tool_call_id": "call-1",
            "name": "edit_file",
            "content": PROPOSAL_ACK,
        })
        self.assertEqual((self.root_path / "app.js").read_text(encoding="utf-8"), "let x = 1;\nconsole.log(x);\n")

        ledger = EditLedger(ToolExecutor(PathGuard(self.root)))
        entries = ledger.register_from_text(result.text)
        await ledger.accept(entries[0].id)
        self.assertEqual(entries[0].status, STATUS_APPLIED)
        self.assertEqual((self.root_path / "app.js").read_text(encoding="utf-8"), "let y = 1;\nconsole.log(y);\n")

    async def test_write_new_file_then_reject_leaves_disk_alone(self) -> None:
        provider = ScriptedProvider([
            tool_response(("call-1", "write_file", {"path": "new.txt", "content": "hello"})),
            LLMResponse(content="Created a proposal."),
        ])
        result = await AgentOrchestrator(provider).run(AgentRequest(message="make new.txt", root=self.root))

        ledger = EditLedger(ToolExecutor(PathGuard(self.root)))
        (entry,) = ledger.register_from_text(result.text)
        ledger.reject(entry.id)
        self.assertFalse((self.root_path / "new.txt").exists())

    async def test_tool_failure_is_not_fatal(self) -> None:
        provider = ScriptedProvider([
            tool_response(("call-1", "read_file", {"path": "missing.js"})),
            LLMResponse(content="That file does not exist."),
        ])
        result = await AgentOrchestrator(provider).run(AgentRequest(message="read it", root=self.root))
        self.assertEqual(result.state, AgentState.DONE)
        statuses = decode(result.text).statuses
        self.assertEqual(statuses[0].status, STATUS_ERROR)
        self.assertTrue(provider.calls[1]["messages"][-1]["content"].startswith("Error executing read_file"))

    async def test_round_cap_fails_the_turn(self) -> None:
        looping = [tool_response((f"call-{i}", "list_directory", {"path": ""})) for i in range(5)]
        provider = ScriptedProvider(looping)
        result = await AgentOrchestrator(provider, max_tool_rounds=2).run(AgentRequest(message="x", root=self.root))
        self.assertEqual(result.state, AgentState.FAILED)
        self.assertTrue(result.is_error)
        self.assertEqual(result.rounds, 2)
        self.assertEqual(result.error, "Stopped after 2 tool rounds without a final answer.")

    async def test_provider_error_ends_turn(self) -> None:
        provider = ScriptedProvider([ProviderError("rate limited")])
        result = await AgentOrchestrator(provider).run(AgentRequest(message="x", root=self.root))
        self.assertEqual(result.state, AgentState.FAILED)
        self.assertEqual(result.error, "AI Error: rate limited")

    async def test_cancel_before_start(self) -> None:
        provider = ScriptedProvider([LLMResponse(content="never")])
        token = CancelToken()
        token.cancel()
        result = await AgentOrchestrator(provider).run(AgentRequest(message="x", root=self.root, cancel=token))
        self.assertEqual(result.state, AgentState.CANCELLED)
        self.assertEqual(provider.calls, [])

    async def test_cancel_during_tools_stops_next_round(self) -> None:
        token = CancelToken()
        provider = ScriptedProvider([
            tool_response(("call-1", "list_directory", {"path": ""})),
            LLMResponse(content="never"),
        ])

        async def cancel_on_first(text: str) -> None:
            token.cancel()

        result = await AgentOrchestrator(provider).run(
            AgentRequest(message="x", root=self.root, cancel=token),
            cancel_on_first,
        )
        self.assertEqual(result.state, AgentState.CANCELLED)
        self.assertEqual(len(provider.calls), 1)

    async def test_without_root_tools_fail_closed(self) -> None:
        provider = ScriptedProvider([
            tool_response(("call-1", "read_file", {"path": "app.js"})),
            LLMResponse(content="ok"),
        ])
        result = await AgentOrchestrator(provider).run(AgentRequest(message="x"))
        self.assertIn("Access denied", provider.calls[1]["messages"][-1]["content"])
        self.assertEqual(decode(result.text).statuses[0].status, STATUS_ERROR)

    async def test_root_inferred_from_preamble(self) -> None:
        provider = ScriptedProvider([
            tool_response(("call-1", "read_file", {"path": "app.js"})),
            LLMResponse(content="ok"),
        ])
        preamble = f"## Current Project\n- **Name**: proj\n- **Path**: {self.root_path}\n"
        await AgentOrchestrator(provider).run(AgentRequest(message="x", preamble=preamble))
        self.assertIn("let x = 1;", provider.calls[1]["messages"][-1]["content"])
        self.assertEqual(provider.calls[0]["system"], preamble)


if __name__ == "__main__":
    unittest.main()

"""Agent loop: multi-round tool calling against the model provider."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

from loguru import logger

from workstudio.agent.context import ContextBuilder, WorkspaceContext, extract_root_from_preamble
from workstudio.errors import NoWorkspace, ProviderError
from workstudio.providers.base import LLMProvider
from workstudio.providers.markers import (
    STATUS_ERROR,
    STATUS_RUNNING,
    STATUS_SUCCESS,
    EditProposal,
    ToolStatus,
    encode_status,
)
from workstudio.providers.tools.definitions import (
    DEFAULT_MAX_READ_BYTES,
    TOOL_DEFINITIONS,
    ToolExecutor,
    ToolResult,
)
from workstudio.workspace.guard import PathGuard, ProjectRoot

TextCallback = Callable[[str], Awaitable[None]]

_STATUS_SUMMARY_CHARS = 100


class AgentState(str, Enum):
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    RESPONDING = "responding"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CancelToken:
    """Cooperative cancellation observed at every suspension point of a run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class AgentRequest:
    """One user turn handed to the orchestrator."""

    message: str
    history: list[dict[str, Any]] = field(default_factory=list)
    images: list[str] = field(default_factory=list)
    model: str | None = None
    root: ProjectRoot | None = None
    context: WorkspaceContext | None = None
    preamble: str | None = None
    cancel: CancelToken | None = None


@dataclass
class AgentResult:
    """Accumulated UI text of a run plus how it ended."""

    text: str
    state: AgentState
    error: str | None = None
    rounds: int = 0
    proposals: list[EditProposal] = field(default_factory=list)

    @property
    def is_error(self) -> bool:
        return self.error is not None


class AgentOrchestrator:
    """
    Drives one request to completion:
    user_msg -> provider -> [tool calls -> results -> provider]* -> final text.

    The text handed to ``on_text`` is the whole accumulated UI text so far,
    with status and proposal markers embedded. The provider only ever sees
    plain tool results; proposals are acknowledged, not echoed.
    """

    def __init__(
        self,
        provider: LLMProvider,
        context_builder: ContextBuilder | None = None,
        max_tool_rounds: int = 25,
        max_tokens: int = 4096,
        max_read_bytes: int = DEFAULT_MAX_READ_BYTES,
        tools: list[dict[str, Any]] | None = None,
    ) -> None:
        self.provider = provider
        self.context = context_builder or ContextBuilder()
        self.max_tool_rounds = max_tool_rounds
        self.max_tokens = max_tokens
        self.max_read_bytes = max_read_bytes
        self.tools = tools if tools is not None else TOOL_DEFINITIONS
        self.state = AgentState.IDLE

    async def run(self, request: AgentRequest, on_text: TextCallback | None = None) -> AgentResult:
        system_prompt = self._build_preamble(request)
        executor = ToolExecutor(PathGuard(self._resolve_root(request, system_prompt)), self.max_read_bytes)
        messages = self.context.build_messages(request.history, request.message, request.images)
        model = request.model or self.provider.get_default_model()

        full_text = ""
        rounds = 0
        proposals: list[EditProposal] = []

        async def emit() -> None:
            if on_text is not None and not _is_cancelled(request):
                await on_text(full_text)

        def finish(state: AgentState, error: str | None = None) -> AgentResult:
            self._transition(state)
            return AgentResult(text=full_text, state=state, error=error, rounds=rounds, proposals=proposals)

        while True:
            if _is_cancelled(request):
                return finish(AgentState.CANCELLED)

            self._transition(AgentState.AWAITING_MODEL)
            try:
                response = await self.provider.chat(
                    messages=messages,
                    tools=self.tools,
                    model=model,
                    system=system_prompt,
                    max_tokens=self.max_tokens,
                )
            except ProviderError as exc:
                logger.error(f"Provider call failed: {exc}")
                return finish(AgentState.FAILED, error=f"AI Error: {exc}")

            if _is_cancelled(request):
                return finish(AgentState.CANCELLED)

            if not response.wants_tools:
                self._transition(AgentState.RESPONDING)
                full_text += response.content or ""
                await emit()
                return finish(AgentState.DONE)

            if rounds >= self.max_tool_rounds:
                logger.warning(f"Tool loop hit the {self.max_tool_rounds}-round limit")
                return finish(
                    AgentState.FAILED,
                    error=f"Stopped after {self.max_tool_rounds} tool rounds without a final answer.",
                )

            rounds += 1
            self._transition(AgentState.EXECUTING_TOOLS)
            if response.content:
                full_text += response.content

            results: list[tuple[str, str, str]] = []
            for call in response.tool_calls:
                if _is_cancelled(request):
                    return finish(AgentState.CANCELLED)

                status_id = f"status-{call.id}"
                target = str(call.arguments.get("path", "") or "")
                running = ToolStatus(status_id, call.name, target, STATUS_RUNNING, "Executing...")
                full_text += f"\n\n{encode_status(running)}\n\n"
                await emit()

                result = await executor.execute(call.name, call.arguments)

                full_text += encode_status(self._final_status(running, result))
                await emit()

                if result.proposal is not None:
                    full_text += result.text
                    proposals.append(result.proposal)
                    await emit()
                results.append((call.id, call.name, result.model_text))

            self.context.add_assistant_message(
                messages,
                response.content,
                tool_calls=[call.to_message_dict() for call in response.tool_calls],
            )
            self.context.add_tool_results(messages, results)
            logger.debug(f"Tool round {rounds}: {len(response.tool_calls)} tool(s) executed, continuing")
            # iteration boundary is a suspension point
            await asyncio.sleep(0)

    # ------------------------------------------------------------------ #

    def _build_preamble(self, request: AgentRequest) -> str:
        if request.preamble is not None:
            return request.preamble
        context = request.context
        if context is None:
            context = WorkspaceContext()
            if request.root is not None:
                context.project_name = request.root.name
                context.project_path = str(request.root)
        return self.context.build_system_prompt(context)

    def _resolve_root(self, request: AgentRequest, system_prompt: str) -> ProjectRoot | None:
        """Explicit root first; otherwise the preamble's ``**Path**:`` line."""
        if request.root is not None:
            return request.root
        inferred = extract_root_from_preamble(system_prompt)
        if not inferred:
            logger.warning("No project root for this turn; file tools will be denied")
            return None
        try:
            return ProjectRoot.from_path(Path(inferred))
        except NoWorkspace:
            logger.warning(f"Preamble root is not a directory: {inferred}")
            return None

    @staticmethod
    def _final_status(running: ToolStatus, result: ToolResult) -> ToolStatus:
        if result.proposal is not None:
            summary = "Edit proposed"
        else:
            summary = result.text.strip()[:_STATUS_SUMMARY_CHARS]
        return ToolStatus(
            id=running.id,
            tool_name=running.tool_name,
            path=running.path,
            status=STATUS_ERROR if result.is_error else STATUS_SUCCESS,
            summary=summary,
        )

    def _transition(self, state: AgentState) -> None:
        if state is not self.state:
            logger.debug(f"Agent state {self.state.value} -> {state.value}")
        self.state = state


def _is_cancelled(request: AgentRequest) -> bool:
    return request.cancel is not None and request.cancel.cancelled


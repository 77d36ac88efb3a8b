"""Chat controller bridging the orchestrator, edit ledger, tree and UI events."""

from __future__ import annotations

from loguru import logger

from workstudio.agent.context import ActiveFile, WorkspaceContext
from workstudio.agent.conversation import ROLE_MODEL, ROLE_USER, SessionManager, Turn
from workstudio.agent.ledger import EditLedger, PendingEdit
from workstudio.agent.loop import AgentOrchestrator, AgentRequest, AgentResult, AgentState, CancelToken
from workstudio.errors import WorkstudioError
from workstudio.events import (
    EVENT_CHUNK,
    EVENT_EDIT_PROPOSED,
    EVENT_EDIT_RESOLVED,
    EVENT_SYSTEM,
    EVENT_TOOL_STATUS,
    EVENT_TREE_CHANGED,
    EventHub,
    UIChunk,
    UIEditProposed,
    UIEditResolved,
    UISystemMessage,
    UIToolStatus,
    UITreeChanged,
)
from workstudio.providers.markers import MarkerStream, ToolStatus
from workstudio.workspace.session import WorkspaceSession


class ChatController:
    """
    Runs user turns for the active chat session.

    Streamed text is decoded as it grows: new proposals are registered in the
    ledger exactly once, status records are published when they change, and
    the prose is published for display. Accepting an edit commits through the
    workspace executor and hints the tree store about the changed file.
    """

    def __init__(
        self,
        orchestrator: AgentOrchestrator,
        workspace: WorkspaceSession,
        hub: EventHub | None = None,
        sessions: SessionManager | None = None,
        history_limit: int = 30,
        stale_check: bool = True,
    ) -> None:
        self.orchestrator = orchestrator
        self.workspace = workspace
        self.hub = hub or EventHub()
        self.sessions = sessions or SessionManager()
        self.history_limit = history_limit
        self.ledger = EditLedger(workspace.executor, on_applied=self._on_applied, stale_check=stale_check)
        if workspace.tree.on_change is None:
            workspace.tree.on_change = self._on_tree_change

    def build_context(
        self,
        active_file: ActiveFile | None = None,
        open_files: list[str] | None = None,
    ) -> WorkspaceContext:
        context = WorkspaceContext(active_file=active_file, open_files=list(open_files or []))
        root = self.workspace.root
        if root is not None:
            context.project_name = root.name
            context.project_path = str(root)
            context.file_tree = self.workspace.tree.render()
        return context

    async def send(
        self,
        text: str,
        images: list[str] | None = None,
        active_file: ActiveFile | None = None,
        open_files: list[str] | None = None,
        model: str | None = None,
        cancel: CancelToken | None = None,
    ) -> AgentResult:
        """Append the user turn, run the agent and keep the model turn current."""
        chat = self.sessions.active
        history = chat.to_history(self.history_limit)
        chat.add_turn(Turn(role=ROLE_USER, text=text, images=list(images or [])))
        model_turn = chat.add_turn(Turn(role=ROLE_MODEL, text=""))

        stream = MarkerStream()
        published: dict[str, ToolStatus] = {}

        async def on_text(full_text: str) -> None:
            chat.update_turn(model_turn.id, full_text)
            for proposal in stream.update(full_text):
                entry = self.ledger.register(proposal)
                self.hub.publish(EVENT_EDIT_PROPOSED, UIEditProposed(chat.id, entry.id, entry.relative_path))
            for status in stream.latest.statuses:
                if published.get(status.id) != status:
                    published[status.id] = status
                    self.hub.publish(EVENT_TOOL_STATUS, UIToolStatus(chat.id, status))
            self.hub.publish(EVENT_CHUNK, UIChunk(chat.id, stream.latest.prose))

        request = AgentRequest(
            message=text,
            history=history,
            images=list(images or []),
            model=model,
            root=self.workspace.root,
            context=self.build_context(active_file, open_files),
            cancel=cancel,
        )
        result = await self.orchestrator.run(request, on_text)

        if result.is_error:
            error_text = f"{result.text}\n\n{result.error}" if result.text else str(result.error)
            chat.update_turn(model_turn.id, error_text, is_error=True)
            self.hub.publish(EVENT_SYSTEM, UISystemMessage(chat.id, str(result.error), is_error=True))
        elif result.state is AgentState.CANCELLED:
            logger.info(f"Turn cancelled in session {chat.id}")
            chat.update_turn(model_turn.id, result.text)
        else:
            chat.update_turn(model_turn.id, result.text)

        stream.update(result.text)
        decoded = stream.finish()
        self.hub.publish(EVENT_CHUNK, UIChunk(chat.id, decoded.prose, final=True))
        return result

    async def accept(self, edit_id: str) -> PendingEdit | None:
        """Commit a pending edit; failures are reported and leave it pending."""
        try:
            entry = await self.ledger.accept(edit_id)
        except WorkstudioError as exc:
            logger.warning(f"Accept of {edit_id} failed: {exc}")
            self.hub.publish(EVENT_SYSTEM, UISystemMessage(self.sessions.active.id, str(exc), is_error=True))
            return self.ledger.get(edit_id)
        self.hub.publish(EVENT_EDIT_RESOLVED, UIEditResolved(entry.id, entry.relative_path, entry.status))
        return entry

    def reject(self, edit_id: str) -> PendingEdit:
        entry = self.ledger.reject(edit_id)
        if not entry.is_terminal:
            return entry
        self.hub.publish(EVENT_EDIT_RESOLVED, UIEditResolved(entry.id, entry.relative_path, entry.status))
        return entry

    def _on_applied(self, entry: PendingEdit) -> None:
        self.workspace.tree.handle_fs_change("change", entry.target_path)

    def _on_tree_change(self, folder: str) -> None:
        self.hub.publish(EVENT_TREE_CHANGED, UITreeChanged(folder))

"""Agent orchestration, conversation state and the edit ledger."""

from workstudio.agent.controller import ChatController
from workstudio.agent.ledger import EditLedger, PendingEdit
from workstudio.agent.loop import AgentOrchestrator, AgentRequest, AgentResult, AgentState, CancelToken

__all__ = [
    "AgentOrchestrator",
    "AgentRequest",
    "AgentResult",
    "AgentState",
    "CancelToken",
    "ChatController",
    "EditLedger",
    "PendingEdit",
]

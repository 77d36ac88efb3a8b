"""Conversation turns and chat sessions.

UI-facing turns may contain marker text; :meth:`ChatSession.to_history`
produces the provider-facing view with markers stripped.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Any

from workstudio.providers.markers import strip_markers
from workstudio.utils.helpers import now_ms

ROLE_USER = "user"
ROLE_MODEL = "model"

WELCOME_ID = "welcome"
WELCOME_TEXT = "Hi there. I'm ready to help you with your code."
DEFAULT_TITLE = "New Chat"
_TITLE_LIMIT = 30


def _new_id() -> str:
    return f"{now_ms()}-{secrets.token_hex(4)}"


@dataclass
class Turn:
    """One conversation entry."""

    role: str
    text: str
    id: str = field(default_factory=_new_id)
    timestamp: int = field(default_factory=now_ms)
    is_error: bool = False
    images: list[str] = field(default_factory=list)


def _welcome_turn() -> Turn:
    return Turn(role=ROLE_MODEL, text=WELCOME_TEXT, id=WELCOME_ID)


@dataclass
class ChatSession:
    """Append-only list of turns with a title."""

    id: str = field(default_factory=_new_id)
    title: str = DEFAULT_TITLE
    turns: list[Turn] = field(default_factory=lambda: [_welcome_turn()])
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def add_turn(self, turn: Turn) -> Turn:
        self.turns.append(turn)
        self.updated_at = now_ms()
        if self.title == DEFAULT_TITLE and turn.role == ROLE_USER and turn.text.strip():
            text = turn.text.strip()
            self.title = text[:_TITLE_LIMIT] + ("..." if len(text) > _TITLE_LIMIT else "")
        return turn

    def update_turn(self, turn_id: str, text: str, is_error: bool | None = None) -> None:
        for turn in self.turns:
            if turn.id == turn_id:
                turn.text = text
                if is_error is not None:
                    turn.is_error = is_error
                self.updated_at = now_ms()
                return
        raise KeyError(turn_id)

    def clear(self) -> None:
        self.turns = [_welcome_turn()]
        self.title = DEFAULT_TITLE
        self.updated_at = now_ms()

    def to_history(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Provider-facing history: welcome, error and empty turns dropped, markers stripped."""
        rows: list[dict[str, Any]] = []
        for turn in self.turns:
            if turn.id == WELCOME_ID or turn.is_error:
                continue
            text = strip_markers(turn.text)
            if not text:
                continue
            role = "assistant" if turn.role == ROLE_MODEL else "user"
            rows.append({"role": role, "content": text})
        if limit is not None and limit > 0:
            rows = rows[-limit:]
        # Providers expect the history to open with a user turn.
        while rows and rows[0]["role"] != "user":
            rows.pop(0)
        return rows


class SessionManager:
    """Holds chat sessions and which one is active."""

    def __init__(self) -> None:
        first = ChatSession()
        self.sessions: list[ChatSession] = [first]
        self.active_id: str = first.id

    @property
    def active(self) -> ChatSession:
        for session in self.sessions:
            if session.id == self.active_id:
                return session
        # active id always points at a live session; recover if it does not
        self.active_id = self.sessions[-1].id
        return self.sessions[-1]

    def create(self) -> ChatSession:
        session = ChatSession()
        self.sessions.append(session)
        self.active_id = session.id
        return session

    def switch(self, session_id: str) -> ChatSession:
        if not any(s.id == session_id for s in self.sessions):
            raise KeyError(session_id)
        self.active_id = session_id
        return self.active

    def delete(self, session_id: str) -> None:
        self.sessions = [s for s in self.sessions if s.id != session_id]
        if not self.sessions:
            self.sessions.append(ChatSession())
        if self.active_id == session_id or not any(s.id == self.active_id for s in self.sessions):
            self.active_id = self.sessions[-1].id

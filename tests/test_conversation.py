from __future__ import annotations

import unittest

from workstudio.agent.conversation import (
    DEFAULT_TITLE,
    ROLE_MODEL,
    ROLE_USER,
    WELCOME_ID,
    ChatSession,
    SessionManager,
    Turn,
)
from workstudio.providers.markers import STATUS_SUCCESS, ToolStatus, encode_status


class ChatSessionTests(unittest.TestCase):
    def test_new_session_has_welcome_turn(self) -> None:
        session = ChatSession()
        self.assertEqual(session.turns[0].id, WELCOME_ID)
        self.assertEqual(session.title, DEFAULT_TITLE)
        self.assertEqual(session.to_history(), [])

    def test_title_from_first_user_message(self) -> None:
        session = ChatSession()
        session.add_turn(Turn(role=ROLE_USER, text="Please refactor the whole parser module today"))
        self.assertEqual(session.title, "Please refactor the whole pars...")
        session.add_turn(Turn(role=ROLE_USER, text="second"))
        self.assertEqual(session.title, "Please refactor the whole pars...")

    def test_history_strips_markers_and_skips_errors(self) -> None:
        session = ChatSession()
        status = ToolStatus("status-1", "read_file", "a.py", STATUS_SUCCESS)
        session.add_turn(Turn(role=ROLE_USER, text="read a.py"))
        session.add_turn(Turn(role=ROLE_MODEL, text=f"{encode_status(status)}It prints hello."))
        session.add_turn(Turn(role=ROLE_USER, text="again"))
        session.add_turn(Turn(role=ROLE_MODEL, text="AI Error: boom", is_error=True))
        session.add_turn(Turn(role=ROLE_MODEL, text=""))
        self.assertEqual(session.to_history(), [
            {"role": "user", "content": "read a.py"},
            {"role": "assistant", "content": "It prints hello."},
            {"role": "user", "content": "again"},
        ])

    def test_history_limit_starts_with_user(self) -> None:
        session = ChatSession()
        for index in range(3):
            session.add_turn(Turn(role=ROLE_USER, text=f"q{index}"))
            session.add_turn(Turn(role=ROLE_MODEL, text=f"a{index}"))
        history = session.to_history(limit=3)
        self.assertEqual(history[0], {"role": "user", "content": "q2"})
        self.assertEqual(len(history), 2)

    def test_update_unknown_turn(self) -> None:
        with self.assertRaises(KeyError):
            ChatSession().update_turn("missing", "x")


class SessionManagerTests(unittest.TestCase):
    def test_create_switch_delete(self) -> None:
        manager = SessionManager()
        first = manager.active
        second = manager.create()
        self.assertIs(manager.active, second)
        manager.switch(first.id)
        self.assertIs(manager.active, first)
        manager.delete(first.id)
        self.assertIs(manager.active, second)

    def test_deleting_last_session_creates_fresh_one(self) -> None:
        manager = SessionManager()
        only = manager.active
        manager.delete(only.id)
        self.assertEqual(len(manager.sessions), 1)
        self.assertIsNot(manager.active, only)


if __name__ == "__main__":
    unittest.main()

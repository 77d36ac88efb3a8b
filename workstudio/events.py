"""UI event contracts and lightweight signal bus."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from workstudio.providers.markers import ToolStatus

EventHandler = Callable[[object], None]

EVENT_CHUNK = "chunk"
EVENT_TOOL_STATUS = "tool_status"
EVENT_EDIT_PROPOSED = "edit_proposed"
EVENT_EDIT_RESOLVED = "edit_resolved"
EVENT_TREE_CHANGED = "tree_changed"
EVENT_SYSTEM = "system"


@dataclass(frozen=True)
class UIChunk:
    """Clean prose of the assistant turn so far (markers removed)."""

    session_id: str
    text: str
    final: bool = False


@dataclass(frozen=True)
class UIToolStatus:
    """Latest known state of one tool invocation."""

    session_id: str
    status: ToolStatus


@dataclass(frozen=True)
class UIEditProposed:
    session_id: str
    edit_id: str
    path: str


@dataclass(frozen=True)
class UIEditResolved:
    edit_id: str
    path: str
    status: str


@dataclass(frozen=True)
class UITreeChanged:
    """A folder's children were replaced."""

    folder: str


@dataclass(frozen=True)
class UISystemMessage:
    """System status/error message for chat surface."""

    session_id: str
    text: str
    is_error: bool = False


class EventHub:
    """Simple in-process pub/sub for UI consumers."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event_name: str, payload: object) -> None:
        for handler in list(self._handlers.get(event_name, [])):
            try:
                handler(payload)
            except Exception:
                logger.exception(f"Event handler for '{event_name}' failed")

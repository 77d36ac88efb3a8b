"""In-band marker codec for the assistant text channel.

One text stream carries prose plus two kinds of control payloads, each
wrapped in its own delimiter pair::

    [TOOL_STATUS]{...json...}[/TOOL_STATUS]
    [DIFF_BLOCK]{...json...}[/DIFF_BLOCK]

The consumer re-decodes the whole buffer after every append. Decoding is a
single left-to-right scan: complete pairs are lifted out, an unterminated
marker at the tail is held back for the next pass, and a body that does not
parse stays in the prose untouched.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from workstudio.errors import MalformedPayload


class MarkerKind(str, Enum):
    STATUS = "status"
    PROPOSAL = "proposal"


_DELIMITERS: dict[MarkerKind, tuple[str, str]] = {
    MarkerKind.STATUS: ("[TOOL_STATUS]", "[/TOOL_STATUS]"),
    MarkerKind.PROPOSAL: ("[DIFF_BLOCK]", "[/DIFF_BLOCK]"),
}

STATUS_RUNNING = "running"
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"
_STATUS_VALUES = {STATUS_RUNNING, STATUS_SUCCESS, STATUS_ERROR}

EDIT_WRITE = "write"
EDIT_PATCH = "patch"
_EDIT_KINDS = {EDIT_WRITE, EDIT_PATCH}


@dataclass(frozen=True)
class ToolStatus:
    """Progress/result indicator for one tool invocation."""

    id: str
    tool_name: str
    path: str
    status: str
    summary: str = ""

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "ToolStatus":
        try:
            status = str(data["status"])
            if status not in _STATUS_VALUES:
                raise MalformedPayload(f"unknown tool status {status!r}")
            return cls(
                id=str(data["id"]),
                tool_name=str(data.get("tool_name", "")),
                path=str(data.get("path", "")),
                status=status,
                summary=str(data.get("summary", "")),
            )
        except KeyError as exc:
            raise MalformedPayload(f"tool status missing {exc}") from exc


@dataclass(frozen=True)
class EditProposal:
    """An edit awaiting human approval, as carried inside a DIFF_BLOCK."""

    id: str
    kind: str
    path: str
    relative_path: str
    base_content: str
    proposed_content: str

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "EditProposal":
        try:
            kind = str(data["kind"])
            if kind not in _EDIT_KINDS:
                raise MalformedPayload(f"unknown edit kind {kind!r}")
            return cls(
                id=str(data["id"]),
                kind=kind,
                path=str(data["path"]),
                relative_path=str(data.get("relative_path", data["path"])),
                base_content=str(data.get("base_content", "")),
                proposed_content=str(data["proposed_content"]),
            )
        except KeyError as exc:
            raise MalformedPayload(f"edit proposal missing {exc}") from exc


@dataclass
class DecodedStream:
    """Result of one decode pass."""

    prose: str
    statuses: list[ToolStatus] = field(default_factory=list)
    proposals: list[EditProposal] = field(default_factory=list)
    has_pending_tail: bool = False


# ── Encoding ─────────────────────────────────────────────────────────────────


def _dump(payload: dict[str, Any]) -> str:
    body = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    # "[/" and openers can only occur inside JSON strings; escaping keeps
    # delimiters out of bodies.
    body = body.replace("[/", "[\\/")
    for opener, _closer in _DELIMITERS.values():
        body = body.replace(opener, "\\u005b" + opener[1:])
    return body


def encode(kind: MarkerKind, payload: dict[str, Any]) -> str:
    opener, closer = _DELIMITERS[kind]
    return f"{opener}{_dump(payload)}{closer}"


def encode_status(status: ToolStatus) -> str:
    return encode(MarkerKind.STATUS, asdict(status))


def encode_proposal(proposal: EditProposal) -> str:
    return encode(MarkerKind.PROPOSAL, asdict(proposal))


# ── Decoding ─────────────────────────────────────────────────────────────────


def _match_opener(text: str, index: int) -> MarkerKind | None:
    for kind, (opener, _closer) in _DELIMITERS.items():
        if text.startswith(opener, index):
            return kind
    return None


def _is_partial_opener(tail: str) -> bool:
    return any(opener.startswith(tail) for opener, _closer in _DELIMITERS.values())


def _is_stray(body: str) -> bool:
    """True when ``body`` cannot be the start of an encoded payload."""
    head = body.lstrip()
    if head and not head.startswith("{"):
        return True
    return any(opener in body for opener, _closer in _DELIMITERS.values())


def _parse_body(kind: MarkerKind, body: str) -> ToolStatus | EditProposal:
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise MalformedPayload(str(exc)) from exc
    if not isinstance(data, dict):
        raise MalformedPayload("payload is not an object")
    if kind is MarkerKind.STATUS:
        return ToolStatus.from_payload(data)
    return EditProposal.from_payload(data)


def decode(text: str, final: bool = False) -> DecodedStream:
    """Split ``text`` into prose and structured payloads.

    While streaming (``final=False``) an unterminated marker or a partial
    opening delimiter at the end of the buffer is withheld from the prose.
    With ``final=True`` such a tail is returned as plain prose.
    """
    prose: list[str] = []
    statuses: dict[str, ToolStatus] = {}
    proposals: dict[str, EditProposal] = {}
    pending_tail = False
    pos = 0
    length = len(text)

    while pos < length:
        bracket = text.find("[", pos)
        if bracket < 0:
            prose.append(text[pos:])
            break
        prose.append(text[pos:bracket])

        kind = _match_opener(text, bracket)
        if kind is None:
            if not final and _is_partial_opener(text[bracket:]):
                pending_tail = True
                break
            prose.append("[")
            pos = bracket + 1
            continue

        opener, closer = _DELIMITERS[kind]
        body_start = bracket + len(opener)
        close_at = text.find(closer, body_start)
        if _is_stray(text[body_start:] if close_at < 0 else text[body_start:close_at]):
            # a literal opener in prose; rescan just past its bracket
            prose.append("[")
            pos = bracket + 1
            continue
        if close_at < 0:
            if final:
                prose.append(text[bracket:])
            else:
                pending_tail = True
            break

        end = close_at + len(closer)
        try:
            payload = _parse_body(kind, text[body_start:close_at])
        except MalformedPayload as exc:
            logger.debug(f"Dropping malformed {kind.value} marker: {exc}")
            prose.append("[")
            pos = bracket + 1
            continue

        if isinstance(payload, ToolStatus):
            # dict keeps first-seen order; assignment keeps the latest record
            statuses[payload.id] = payload
        elif payload.id not in proposals:
            proposals[payload.id] = payload
        pos = end

    return DecodedStream(
        prose="".join(prose),
        statuses=list(statuses.values()),
        proposals=list(proposals.values()),
        has_pending_tail=pending_tail,
    )


def strip_markers(text: str) -> str:
    """Prose only, with any unterminated tail kept as text."""
    return decode(text, final=True).prose.strip()


class MarkerStream:
    """Stateful consumer side of the marker channel.

    Keeps the growing buffer and remembers which proposal ids were already
    handed out, so each proposal is surfaced exactly once no matter how many
    times the buffer is re-decoded.
    """

    def __init__(self) -> None:
        self.buffer = ""
        self._seen_proposals: set[str] = set()
        self.latest = DecodedStream(prose="")

    def feed(self, chunk: str) -> list[EditProposal]:
        """Append an incremental chunk and return newly completed proposals."""
        return self.update(self.buffer + chunk)

    def update(self, full_text: str) -> list[EditProposal]:
        """Replace the buffer with a longer snapshot of the same stream."""
        self.buffer = full_text
        self.latest = decode(full_text)
        fresh: list[EditProposal] = []
        for proposal in self.latest.proposals:
            if proposal.id in self._seen_proposals:
                continue
            self._seen_proposals.add(proposal.id)
            fresh.append(proposal)
        return fresh

    def finish(self) -> DecodedStream:
        self.latest = decode(self.buffer, final=True)
        return self.latest

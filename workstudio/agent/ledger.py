"""Edit ledger: two-phase propose/commit for agent file edits."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from workstudio.errors import StaleEdit
from workstudio.providers.markers import EditProposal, decode
from workstudio.providers.tools.definitions import ToolExecutor
from workstudio.utils.helpers import content_hash

STATUS_PENDING = "pending"
STATUS_APPLIED = "applied"
STATUS_REJECTED = "rejected"

AppliedCallback = Callable[["PendingEdit"], None]


@dataclass
class PendingEdit:
    """A proposed edit and its approval state."""

    id: str
    kind: str
    target_path: str
    relative_path: str
    base_content: str
    proposed_content: str
    base_hash: str
    status: str = STATUS_PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status != STATUS_PENDING

    @classmethod
    def from_proposal(cls, proposal: EditProposal) -> "PendingEdit":
        return cls(
            id=proposal.id,
            kind=proposal.kind,
            target_path=proposal.path,
            relative_path=proposal.relative_path,
            base_content=proposal.base_content,
            proposed_content=proposal.proposed_content,
            base_hash=content_hash(proposal.base_content),
        )


class EditLedger:
    """
    Holds proposed edits keyed by id and performs the authorized commit.

    Registration never touches disk. Accept re-validates the target against
    the executor's guard at commit time, optionally refuses stale baselines,
    then writes through the executor. A failed commit leaves the entry
    pending so it can be retried.
    """

    def __init__(
        self,
        executor: ToolExecutor,
        on_applied: AppliedCallback | None = None,
        stale_check: bool = True,
    ) -> None:
        self.executor = executor
        self.on_applied = on_applied
        self.stale_check = stale_check
        self._edits: dict[str, PendingEdit] = {}
        self._committing: set[str] = set()

    # ------------------------------------------------------------------ #
    # Phase 1: propose                                                     #
    # ------------------------------------------------------------------ #

    def register(self, proposal: EditProposal) -> PendingEdit:
        """Register a proposal; a known id returns the existing entry unchanged."""
        existing = self._edits.get(proposal.id)
        if existing is not None:
            return existing
        entry = PendingEdit.from_proposal(proposal)
        self._edits[entry.id] = entry
        logger.info(f"Edit {entry.id} registered for {entry.relative_path} ({entry.kind})")
        return entry

    def register_from_text(self, text: str) -> list[PendingEdit]:
        """Register every complete proposal marker in ``text``."""
        return [self.register(proposal) for proposal in decode(text).proposals]

    # ------------------------------------------------------------------ #
    # Phase 2: authorize / commit                                          #
    # ------------------------------------------------------------------ #

    async def accept(self, edit_id: str) -> PendingEdit:
        entry = self._require(edit_id)
        if entry.is_terminal or edit_id in self._committing:
            return entry

        self._committing.add(edit_id)
        try:
            if self.stale_check:
                current = await asyncio.to_thread(self.executor.read_current, entry.target_path)
                if content_hash(current) != entry.base_hash:
                    logger.warning(f"Edit {edit_id} is stale: {entry.target_path} changed on disk")
                    raise StaleEdit(edit_id, entry.target_path)
            await asyncio.to_thread(self.executor.apply_write, entry.target_path, entry.proposed_content)
        except Exception:
            logger.warning(f"Edit {edit_id} commit failed; left pending")
            raise
        finally:
            self._committing.discard(edit_id)

        if entry.is_terminal:
            return entry
        entry.status = STATUS_APPLIED
        logger.info(f"Edit {edit_id} applied to {entry.target_path}")
        if self.on_applied is not None:
            self.on_applied(entry)
        return entry

    def reject(self, edit_id: str) -> PendingEdit:
        """Reject a pending edit; a no-op once terminal or while its commit runs."""
        entry = self._require(edit_id)
        if entry.is_terminal:
            return entry
        if edit_id in self._committing:
            logger.info(f"Edit {edit_id} is being applied; reject ignored")
            return entry
        entry.status = STATUS_REJECTED
        logger.info(f"Edit {edit_id} rejected")
        return entry

    # ------------------------------------------------------------------ #
    # Queries                                                              #
    # ------------------------------------------------------------------ #

    def get(self, edit_id: str) -> PendingEdit | None:
        return self._edits.get(edit_id)

    def pending(self) -> list[PendingEdit]:
        return [e for e in self._edits.values() if e.status == STATUS_PENDING]

    def all(self) -> list[PendingEdit]:
        return list(self._edits.values())

    def __contains__(self, edit_id: object) -> bool:
        return edit_id in self._edits

    def __len__(self) -> int:
        return len(self._edits)

    def _require(self, edit_id: str) -> PendingEdit:
        entry = self._edits.get(edit_id)
        if entry is None:
            raise KeyError(f"Unknown edit id: {edit_id}")
        return entry

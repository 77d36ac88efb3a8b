"""Small shared helpers."""

from __future__ import annotations

import hashlib
import itertools
import time

_edit_seq = itertools.count(1)


def now_ms() -> int:
    return int(time.time() * 1000)


def new_edit_id() -> str:
    """Time-based edit id, unique within the process."""
    return f"edit-{now_ms()}-{next(_edit_seq)}"


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def numbered_lines(content: str) -> str:
    """Prefix each line with its 1-based number, ``   7 | text``."""
    return "\n".join(f"{index:>4} | {line}" for index, line in enumerate(content.split("\n"), 1))

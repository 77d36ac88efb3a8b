"""Utility functions for workstudio."""

from workstudio.utils.helpers import content_hash, new_edit_id, now_ms, numbered_lines

__all__ = ["content_hash", "new_edit_id", "now_ms", "numbered_lines"]

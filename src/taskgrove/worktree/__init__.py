"""Managed worktree storage and task naming."""

from __future__ import annotations

from .naming import Task, normalize_label, task_dir_name, validate_identifier
from .store import WorktreeEntry, WorktreeStore

__all__ = [
    "Task",
    "WorktreeEntry",
    "WorktreeStore",
    "normalize_label",
    "task_dir_name",
    "validate_identifier",
]

"""CLI command modules for taskgrove.

    - workflow: Workflow and task lifecycle (init, add-task, merge, finalize, ...)
    - worktree: Managed worktree inventory and maintenance
"""

from __future__ import annotations

from . import workflow, worktree

__all__ = ["workflow", "worktree"]

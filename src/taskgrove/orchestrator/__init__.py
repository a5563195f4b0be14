"""Workflow orchestration over git branches and worktrees."""

from __future__ import annotations

from .models import MergeStrategy, TaskWorktree, WorkflowHandle, WorkflowStatus, WorktreeStatus
from .workflow import WorkflowOrchestrator

__all__ = [
    "MergeStrategy",
    "TaskWorktree",
    "WorkflowHandle",
    "WorkflowOrchestrator",
    "WorkflowStatus",
    "WorktreeStatus",
]

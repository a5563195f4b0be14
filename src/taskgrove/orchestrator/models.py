"""Domain models for workflow orchestration.

Key classes:
- WorkflowHandle: A registered workflow, its branch and worktree root
- TaskWorktree: One task's branch and isolated worktree
- WorkflowStatus: Merge progress of a workflow relative to its base
- MergeStrategy: How task work is folded into the workflow branch
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from taskgrove.core.result import Err, Ok, Result, ValidationError


class MergeStrategy(str, Enum):
    """How a task branch is brought into its workflow branch."""

    SEQUENTIAL = "sequential"  # merge --no-ff, one task at a time
    REBASE = "rebase"  # replay task commits with cherry-pick
    PARALLEL = "parallel"  # same as sequential; tasks were developed in parallel

    @classmethod
    def parse(cls, value: MergeStrategy | str) -> Result[MergeStrategy, ValidationError]:
        if isinstance(value, MergeStrategy):
            return Ok(value)
        try:
            return Ok(cls(str(value).strip().lower()))
        except ValueError:
            choices = ", ".join(member.value for member in cls)
            return Err(
                ValidationError(
                    f"unknown merge strategy: {value!r} (expected one of {choices})",
                    context={"strategy": str(value)},
                )
            )


class WorktreeStatus(str, Enum):
    ACTIVE = "active"
    STALE = "stale"


class WorkflowHandle(BaseModel):
    """A workflow known to this orchestrator.

    Attributes:
        workflow_id: Caller-chosen workflow identifier
        workflow_branch: Branch collecting the workflow's merged task work
        base_branch: Branch the workflow started from and finalizes into
        worktree_root: Directory holding the workflow's task worktrees
        created_at: When the handle was created
        task_count: Task worktrees created through this handle
        pending_merges: Task ids created but not yet merged
    """

    model_config = ConfigDict(extra="forbid")

    workflow_id: str
    workflow_branch: str
    base_branch: str
    worktree_root: Path
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    task_count: int = 0
    pending_merges: list[str] = Field(default_factory=list)


class TaskWorktree(BaseModel):
    model_config = ConfigDict(extra="forbid")

    task_id: str
    branch: str
    path: Path
    status: WorktreeStatus = WorktreeStatus.ACTIVE
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class WorkflowStatus(BaseModel):
    """Snapshot of a workflow's merge state.

    ``ahead_of_base`` counts first-parent commits, so each no-ff task merge
    counts once. ``unmerged_tasks`` lists task branches with at least one
    patch the workflow branch lacks; a task replayed by a rebase merge is not
    listed even though its tip is not an ancestor.
    """

    model_config = ConfigDict(extra="forbid")

    workflow_id: str
    has_conflicts: bool = False
    ahead_of_base: int = 0
    behind_base: int = 0
    unmerged_tasks: list[str] = Field(default_factory=list)
    last_merge_commit: str = ""


__all__ = [
    "MergeStrategy",
    "TaskWorktree",
    "WorkflowHandle",
    "WorkflowStatus",
    "WorktreeStatus",
]

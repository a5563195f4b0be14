"""Workflow and task namespaces on top of git branches and worktrees.

A workflow owns the branch ``<namespace>/<workflow_id>`` and the directory
``<base_dir>/<workflow_id>``. Each task owns ``<workflow_branch>__<task_id>``
and a worktree below the workflow directory. Task work is folded back into the
workflow branch inside short-lived worktrees (``_merge``, ``_finalize``), so
neither the primary checkout nor any task worktree is ever switched.

All public coroutines serialize on one lock per orchestrator: git is not safe
for concurrent ref updates even across unrelated branches of one repository.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

from taskgrove.core.config import AppConfig
from taskgrove.core.console import get_logger
from taskgrove.core.result import (
    AlreadyExistsError,
    ConflictError,
    Err,
    ExecutionError,
    FailureKind,
    GitError,
    MergeBatchError,
    NotFoundError,
    Ok,
    Result,
    TaskgroveError,
)
from taskgrove.git import GitGateway, MergeOptions
from taskgrove.git.validation import validate_branch_name
from taskgrove.worktree.naming import (
    DEFAULT_LABEL_MAX_LEN,
    SEPARATOR,
    Task,
    is_reserved_dir,
    matches_task_dir,
    normalize_label,
    task_dir_name,
    task_id_from_dir,
    validate_identifier,
)
from taskgrove.worktree.store import WorktreeStore

from .models import (
    MergeStrategy,
    TaskWorktree,
    WorkflowHandle,
    WorkflowStatus,
    WorktreeStatus,
)

DEFAULT_NAMESPACE = "grove"
MERGE_DIR = "_merge"
FINALIZE_DIR = "_finalize"


def _child_dirs(path: Path) -> list[Path]:
    try:
        return sorted(child for child in path.iterdir() if child.is_dir())
    except FileNotFoundError:
        return []


def _modified_at(path: Path) -> datetime:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=UTC)
    except OSError:
        return datetime.now(UTC)


class WorkflowOrchestrator:
    """Coordinates workflow branches, task worktrees and their merges.

    Args:
        gateway: Gateway for the main repository
        store: Worktree store; defaults to one rooted at ``base_dir``
        base_dir: Managed directory, relative to the repository root
        namespace: Prefix for workflow branch names
        label_max_len: Cap on the label slug in task directory names
        logger: Logger for progress and best-effort failures. Defaults to the
            package logger, which stays silent until logging is configured.
    """

    def __init__(
        self,
        gateway: GitGateway,
        store: WorktreeStore | None = None,
        *,
        base_dir: Path | str = ".worktrees",
        namespace: str = DEFAULT_NAMESPACE,
        label_max_len: int = DEFAULT_LABEL_MAX_LEN,
        logger: logging.Logger | None = None,
    ) -> None:
        self._gateway = gateway
        self._store = store or WorktreeStore(gateway, base_dir)
        self._namespace = namespace.strip("/")
        self._label_max_len = label_max_len
        self._logger = logger or get_logger(__name__)
        self._lock = asyncio.Lock()
        self._workflows: dict[str, WorkflowHandle] = {}

    @classmethod
    def from_config(
        cls,
        gateway: GitGateway,
        config: AppConfig,
        *,
        logger: logging.Logger | None = None,
    ) -> WorkflowOrchestrator:
        store = WorktreeStore(gateway, config.resolve_base_dir(gateway.path))
        return cls(
            gateway,
            store,
            namespace=config.worktree.namespace,
            label_max_len=config.worktree.label_max_len,
            logger=logger,
        )

    @property
    def base_dir(self) -> Path:
        return self._store.base_dir

    @property
    def store(self) -> WorktreeStore:
        return self._store

    # -------------------------------------------------------------------------
    # Naming
    # -------------------------------------------------------------------------

    def get_workflow_branch(self, workflow_id: str) -> str:
        return f"{self._namespace}/{workflow_id}"

    def get_task_branch(self, workflow_id: str, task_id: str) -> str:
        return f"{self.get_workflow_branch(workflow_id)}{SEPARATOR}{task_id}"

    def workflow_root(self, workflow_id: str) -> Path:
        return self._store.base_dir / workflow_id

    # -------------------------------------------------------------------------
    # Public API (takes the lock)
    # -------------------------------------------------------------------------

    async def initialize_workflow(
        self, workflow_id: str, base_branch: str = ""
    ) -> Result[WorkflowHandle, TaskgroveError]:
        """Create (or reuse) the workflow branch and its worktree root.

        An empty base_branch resolves to the repository's default branch. The
        branch is created without a checkout, so the primary worktree keeps
        whatever it has checked out.
        """
        async with self._lock:
            return await self._initialize_workflow_locked(workflow_id, base_branch)

    async def create_task_worktree(
        self, workflow_id: str, task: Task
    ) -> Result[TaskWorktree, TaskgroveError]:
        """Get or create the branch and worktree for one task."""
        async with self._lock:
            return await self._create_task_worktree_locked(workflow_id, task)

    async def remove_task_worktree(
        self,
        workflow_id: str,
        task_id: str,
        *,
        remove_branch: bool = False,
        force: bool = False,
    ) -> Result[None, TaskgroveError]:
        async with self._lock:
            return await self._remove_task_worktree_locked(
                workflow_id, task_id, remove_branch=remove_branch, force=force
            )

    async def merge_task_to_workflow(
        self,
        workflow_id: str,
        task_id: str,
        strategy: MergeStrategy | str = MergeStrategy.SEQUENTIAL,
    ) -> Result[str, TaskgroveError]:
        """Fold one task branch into the workflow branch.

        Returns the new workflow tip. A conflict is aborted before the
        ConflictError is returned, so the workflow branch is left unchanged.
        """
        async with self._lock:
            match MergeStrategy.parse(strategy):
                case Err(err):
                    return Err(err)
                case Ok(parsed):
                    return await self._merge_task_locked(workflow_id, task_id, parsed)

    async def merge_all_tasks_to_workflow(
        self,
        workflow_id: str,
        task_ids: Sequence[str],
        strategy: MergeStrategy | str = MergeStrategy.SEQUENTIAL,
    ) -> Result[list[str], TaskgroveError]:
        """Merge tasks in order, continuing past failures.

        Returns Ok(merged task ids) when all merged, otherwise one
        MergeBatchError listing every failure and the tasks that did merge.
        """
        async with self._lock:
            match MergeStrategy.parse(strategy):
                case Err(err):
                    return Err(err)
                case Ok(parsed):
                    pass

            failures: dict[str, TaskgroveError] = {}
            merged: list[str] = []
            for task_id in task_ids:
                match await self._merge_task_locked(workflow_id, task_id, parsed):
                    case Ok(_):
                        merged.append(task_id)
                    case Err(err):
                        self._logger.warning("Merge of task %s failed: %s", task_id, err.message)
                        failures[task_id] = err

            if failures:
                return Err(
                    MergeBatchError(failures, merged, context={"workflow": workflow_id})
                )
            return Ok(merged)

    async def finalize_workflow(
        self, workflow_id: str, *, merge: bool = False
    ) -> Result[str | None, TaskgroveError]:
        """Optionally merge the workflow into its base branch, then clean up.

        The cleanup pass removes task worktrees but keeps task and workflow
        branches. Returns the new base tip when merged.
        """
        async with self._lock:
            return await self._finalize_workflow_locked(workflow_id, merge=merge)

    async def cleanup_workflow(
        self, workflow_id: str, *, remove_workflow_branch: bool = False
    ) -> Result[None, TaskgroveError]:
        """Remove the workflow's worktrees, directory and task branches.

        Every step is best effort: failures are logged and cleanup continues.
        """
        async with self._lock:
            match validate_identifier("workflow", workflow_id):
                case Err(err):
                    return Err(err)
                case Ok(_):
                    pass
            await self._cleanup_locked(
                workflow_id,
                delete_task_branches=True,
                delete_workflow_branch=remove_workflow_branch,
            )
            self._workflows.pop(workflow_id, None)
            self._logger.info("Cleaned up workflow %s", workflow_id)
            return Ok(None)

    async def get_workflow_status(self, workflow_id: str) -> Result[WorkflowStatus, TaskgroveError]:
        async with self._lock:
            return await self._workflow_status_locked(workflow_id)

    async def list_active_workflows(self) -> Result[list[WorkflowHandle], TaskgroveError]:
        """Workflows with a directory under base_dir and an existing branch."""
        async with self._lock:
            return await self._list_workflows_locked()

    async def list_task_worktrees(self, workflow_id: str) -> Result[list[TaskWorktree], TaskgroveError]:
        async with self._lock:
            return await self._list_task_worktrees_locked(workflow_id)

    # -------------------------------------------------------------------------
    # Lock-held helpers
    # -------------------------------------------------------------------------

    async def _initialize_workflow_locked(
        self, workflow_id: str, base_branch: str
    ) -> Result[WorkflowHandle, TaskgroveError]:
        match validate_identifier("workflow", workflow_id):
            case Err(err):
                return Err(err)
            case Ok(_):
                pass

        existing = self._workflows.get(workflow_id)
        if not base_branch:
            base_branch = existing.base_branch if existing else await self._resolve_base_branch()
        if isinstance(check := validate_branch_name(base_branch), Err):
            return check

        workflow_branch = self.get_workflow_branch(workflow_id)
        match await self._gateway.create_branch(workflow_branch, base_branch):
            case Ok(_):
                self._logger.info(
                    "Created workflow branch %s from %s", workflow_branch, base_branch
                )
            case Err(AlreadyExistsError()):
                self._logger.debug("Reusing workflow branch %s", workflow_branch)
            case Err(err):
                return Err(err)

        root = self.workflow_root(workflow_id)
        try:
            await asyncio.to_thread(root.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            return Err(
                TaskgroveError(f"Failed to create workflow root: {exc}", context={"path": str(root)})
            )

        if existing is not None:
            return Ok(existing)

        handle = WorkflowHandle(
            workflow_id=workflow_id,
            workflow_branch=workflow_branch,
            base_branch=base_branch,
            worktree_root=root,
        )
        self._workflows[workflow_id] = handle
        return Ok(handle)

    async def _create_task_worktree_locked(
        self, workflow_id: str, task: Task
    ) -> Result[TaskWorktree, TaskgroveError]:
        for kind, value in (("workflow", workflow_id), ("task", task.id)):
            if isinstance(check := validate_identifier(kind, value), Err):
                return check

        workflow_branch = self.get_workflow_branch(workflow_id)
        task_branch = self.get_task_branch(workflow_id, task.id)
        root = self.workflow_root(workflow_id)

        for child in await asyncio.to_thread(_child_dirs, root):
            if matches_task_dir(child.name, task.id):
                self._logger.debug("Reusing worktree for task %s at %s", task.id, child)
                return Ok(
                    TaskWorktree(
                        task_id=task.id,
                        branch=task_branch,
                        path=child,
                        created_at=_modified_at(child),
                    )
                )

        match await self._gateway.branch_exists(workflow_branch):
            case Err(err):
                return Err(err)
            case Ok(False):
                return Err(
                    NotFoundError(
                        f"workflow branch not found: {workflow_branch}",
                        context={"workflow": workflow_id},
                        kind=FailureKind.NOT_FOUND,
                    )
                )
            case Ok(True):
                pass

        if not normalize_label(task.label, self._label_max_len):
            self._logger.debug("Task %s has no usable label; using its id as directory", task.id)
        path = root / task_dir_name(task, self._label_max_len)

        match await self._gateway.create_branch(task_branch, workflow_branch):
            case Ok(_):
                pass
            case Err(AlreadyExistsError()):
                self._logger.debug("Reusing task branch %s", task_branch)
            case Err(err):
                return Err(err)

        match await self._store.create_at(path, task_branch):
            case Err(err):
                return Err(err)
            case Ok(entry):
                pass

        handle = self._workflows.get(workflow_id)
        if handle is not None:
            handle.task_count += 1
            if task.id not in handle.pending_merges:
                handle.pending_merges.append(task.id)

        self._logger.info("Created worktree for task %s at %s", task.id, entry.path)
        return Ok(
            TaskWorktree(
                task_id=task.id,
                branch=task_branch,
                path=entry.path,
                created_at=entry.created_at or datetime.now(UTC),
            )
        )

    async def _remove_task_worktree_locked(
        self, workflow_id: str, task_id: str, *, remove_branch: bool, force: bool
    ) -> Result[None, TaskgroveError]:
        for kind, value in (("workflow", workflow_id), ("task", task_id)):
            if isinstance(check := validate_identifier(kind, value), Err):
                return check

        root = self.workflow_root(workflow_id)
        if not await asyncio.to_thread(root.is_dir):
            return Ok(None)

        for child in await asyncio.to_thread(_child_dirs, root):
            if not matches_task_dir(child.name, task_id):
                continue
            match await self._store.remove(child, force=force):
                case Ok(_):
                    self._logger.info("Removed worktree for task %s", task_id)
                case Err(err):
                    self._logger.warning("Failed to remove worktree %s: %s", child, err)

        if remove_branch:
            task_branch = self.get_task_branch(workflow_id, task_id)
            match await self._gateway.delete_branch(task_branch, force=True):
                case Ok(_) | Err(NotFoundError()):
                    pass
                case Err(err):
                    self._logger.warning("Failed to delete branch %s: %s", task_branch, err)

        handle = self._workflows.get(workflow_id)
        if handle is not None and task_id in handle.pending_merges:
            handle.pending_merges.remove(task_id)
        return Ok(None)

    async def _merge_task_locked(
        self, workflow_id: str, task_id: str, strategy: MergeStrategy
    ) -> Result[str, TaskgroveError]:
        for kind, value in (("workflow", workflow_id), ("task", task_id)):
            if isinstance(check := validate_identifier(kind, value), Err):
                return check

        workflow_branch = self.get_workflow_branch(workflow_id)
        task_branch = self.get_task_branch(workflow_id, task_id)
        for branch in (workflow_branch, task_branch):
            match await self._gateway.branch_exists(branch):
                case Err(err):
                    return Err(err)
                case Ok(False):
                    return Err(
                        NotFoundError(
                            f"branch not found: {branch}",
                            context={"workflow": workflow_id, "task": task_id},
                            kind=FailureKind.NOT_FOUND,
                        )
                    )
                case Ok(True):
                    pass

        scratch_path = self.workflow_root(workflow_id) / MERGE_DIR
        async with self._ephemeral_worktree(scratch_path, workflow_branch) as opened:
            if isinstance(opened, Err):
                return opened
            scratch = opened.value

            if strategy is MergeStrategy.REBASE:
                result = await self._replay_commits(scratch, workflow_branch, task_branch, task_id)
            else:
                result = await self._merge_branch(
                    scratch,
                    task_branch,
                    message=f"Merge task {task_id}",
                    label=f"task {task_id}",
                    task_id=task_id,
                )

        if isinstance(result, Ok):
            handle = self._workflows.get(workflow_id)
            if handle is not None and task_id in handle.pending_merges:
                handle.pending_merges.remove(task_id)
            self._logger.info(
                "Merged task %s into %s (%s)", task_id, workflow_branch, strategy.value
            )
        return result

    async def _finalize_workflow_locked(
        self, workflow_id: str, *, merge: bool
    ) -> Result[str | None, TaskgroveError]:
        match validate_identifier("workflow", workflow_id):
            case Err(err):
                return Err(err)
            case Ok(_):
                pass

        new_tip: str | None = None
        if merge:
            match await self._merge_workflow_into_base(workflow_id):
                case Err(err):
                    return Err(err)
                case Ok(sha):
                    new_tip = sha

        await self._cleanup_locked(
            workflow_id, delete_task_branches=False, delete_workflow_branch=False
        )
        self._logger.info("Finalized workflow %s", workflow_id)
        return Ok(new_tip)

    async def _merge_workflow_into_base(self, workflow_id: str) -> Result[str, TaskgroveError]:
        workflow_branch = self.get_workflow_branch(workflow_id)
        match await self._gateway.branch_exists(workflow_branch):
            case Err(err):
                return Err(err)
            case Ok(False):
                return Err(
                    NotFoundError(
                        f"workflow branch not found: {workflow_branch}",
                        context={"workflow": workflow_id},
                        kind=FailureKind.NOT_FOUND,
                    )
                )
            case Ok(True):
                pass

        base_branch = await self._base_branch_for(workflow_id)
        if isinstance(check := validate_branch_name(base_branch), Err):
            return check

        # git refuses to check out a branch that another worktree (usually the
        # primary) already has, so the primary checkout is never moved here.
        scratch_path = self.workflow_root(workflow_id) / FINALIZE_DIR
        async with self._ephemeral_worktree(scratch_path, base_branch) as opened:
            match opened:
                case Err(GitError(kind=FailureKind.CHECKED_OUT) as err):
                    return Err(
                        ExecutionError(
                            f"base branch {base_branch} is checked out in another worktree; "
                            "switch that checkout away from it before finalizing",
                            context={"workflow": workflow_id, "branch": base_branch},
                            kind=FailureKind.CHECKED_OUT,
                            failure=err.failure,
                        )
                    )
                case Err(err):
                    return Err(err)
                case Ok(scratch):
                    pass
            match await self._merge_branch(
                scratch,
                workflow_branch,
                message=f"Merge workflow {workflow_id}",
                label=f"workflow {workflow_id}",
            ):
                case Err(err):
                    return Err(err)
                case Ok(new_tip):
                    pass

        self._logger.info("Merged %s into %s", workflow_branch, base_branch)
        return Ok(new_tip)

    async def _cleanup_locked(
        self,
        workflow_id: str,
        *,
        delete_task_branches: bool,
        delete_workflow_branch: bool,
    ) -> None:
        root = self.workflow_root(workflow_id)
        resolved_root = root.resolve()

        match await self._store.list_managed():
            case Ok(entries):
                for entry in entries:
                    if resolved_root not in entry.path.resolve().parents:
                        continue
                    match await self._store.remove(entry.path, force=True):
                        case Ok(_):
                            pass
                        case Err(err):
                            self._logger.warning("Failed to remove worktree %s: %s", entry.path, err)
            case Err(err):
                self._logger.warning("Failed to list worktrees for %s: %s", workflow_id, err)

        if await asyncio.to_thread(root.exists):
            try:
                await asyncio.to_thread(shutil.rmtree, root)
            except OSError as exc:
                self._logger.warning("Failed to delete workflow root %s: %s", root, exc)

        match await self._gateway.worktree_prune():
            case Ok(_):
                pass
            case Err(err):
                self._logger.warning("Worktree prune failed: %s", err)

        workflow_branch = self.get_workflow_branch(workflow_id)
        if delete_task_branches:
            match await self._gateway.list_branches(f"{workflow_branch}{SEPARATOR}*"):
                case Ok(branches):
                    for branch in branches:
                        match await self._gateway.delete_branch(branch, force=True):
                            case Ok(_):
                                self._logger.debug("Deleted branch %s", branch)
                            case Err(err):
                                self._logger.warning("Failed to delete branch %s: %s", branch, err)
                case Err(err):
                    self._logger.warning("Failed to list task branches of %s: %s", workflow_id, err)

        if delete_workflow_branch:
            match await self._gateway.delete_branch(workflow_branch, force=True):
                case Ok(_) | Err(NotFoundError()):
                    pass
                case Err(err):
                    self._logger.warning("Failed to delete branch %s: %s", workflow_branch, err)

    async def _workflow_status_locked(
        self, workflow_id: str
    ) -> Result[WorkflowStatus, TaskgroveError]:
        match validate_identifier("workflow", workflow_id):
            case Err(err):
                return Err(err)
            case Ok(_):
                pass

        workflow_branch = self.get_workflow_branch(workflow_id)
        match await self._gateway.branch_exists(workflow_branch):
            case Err(err):
                return Err(err)
            case Ok(False):
                return Err(
                    NotFoundError(
                        f"workflow not found: {workflow_id}",
                        context={"branch": workflow_branch},
                        kind=FailureKind.NOT_FOUND,
                    )
                )
            case Ok(True):
                pass

        match await self._gateway.status():
            case Err(err):
                return Err(err)
            case Ok(repo_status):
                has_conflicts = repo_status.has_conflicts

        base_branch = await self._base_branch_for(workflow_id)
        match await self._gateway.ahead_behind(workflow_branch, base_branch):
            case Err(err):
                return Err(err)
            case Ok((ahead, behind)):
                pass

        unmerged: list[str] = []
        prefix = f"{workflow_branch}{SEPARATOR}"
        match await self._gateway.list_branches(f"{prefix}*"):
            case Err(err):
                return Err(err)
            case Ok(branches):
                pass
        for branch in branches:
            match await self._gateway.is_ancestor(branch, workflow_branch):
                case Err(err):
                    return Err(err)
                case Ok(True):
                    continue
                case Ok(False):
                    pass
            # Rebase merges replay patches, so the task tip never becomes an
            # ancestor; a task counts as merged once none of its patches is missing.
            match await self._gateway.unique_commits(workflow_branch, branch):
                case Err(err):
                    return Err(err)
                case Ok(missing) if missing:
                    unmerged.append(branch.removeprefix(prefix))
                case Ok(_):
                    pass

        match await self._gateway.rev_parse(workflow_branch, short=8):
            case Err(err):
                return Err(err)
            case Ok(tip):
                pass

        return Ok(
            WorkflowStatus(
                workflow_id=workflow_id,
                has_conflicts=has_conflicts,
                ahead_of_base=ahead,
                behind_base=behind,
                unmerged_tasks=sorted(unmerged),
                last_merge_commit=tip,
            )
        )

    async def _list_workflows_locked(self) -> Result[list[WorkflowHandle], TaskgroveError]:
        handles: list[WorkflowHandle] = []
        default_base: str | None = None

        for workflow_dir in await asyncio.to_thread(_child_dirs, self._store.base_dir):
            workflow_id = workflow_dir.name
            if validate_identifier("workflow", workflow_id).is_err():
                continue
            workflow_branch = self.get_workflow_branch(workflow_id)
            match await self._gateway.branch_exists(workflow_branch):
                case Err(err):
                    return Err(err)
                case Ok(False):
                    continue
                case Ok(True):
                    pass

            task_dirs = [
                child
                for child in await asyncio.to_thread(_child_dirs, workflow_dir)
                if not is_reserved_dir(child.name)
            ]
            registered = self._workflows.get(workflow_id)
            if registered is not None:
                handles.append(registered.model_copy(update={"task_count": len(task_dirs)}))
                continue

            if default_base is None:
                default_base = await self._resolve_base_branch()
            handles.append(
                WorkflowHandle(
                    workflow_id=workflow_id,
                    workflow_branch=workflow_branch,
                    base_branch=default_base,
                    worktree_root=workflow_dir,
                    created_at=_modified_at(workflow_dir),
                    task_count=len(task_dirs),
                )
            )

        return Ok(handles)

    async def _list_task_worktrees_locked(
        self, workflow_id: str
    ) -> Result[list[TaskWorktree], TaskgroveError]:
        match validate_identifier("workflow", workflow_id):
            case Err(err):
                return Err(err)
            case Ok(_):
                pass

        root = self.workflow_root(workflow_id)
        resolved_root = root.resolve()
        match await self._store.list_managed():
            case Err(err):
                return Err(err)
            case Ok(entries):
                pass

        tasks: dict[str, TaskWorktree] = {}
        for entry in entries:
            entry_path = entry.path.resolve()
            if entry_path.parent != resolved_root or is_reserved_dir(entry_path.name):
                continue
            task_id = task_id_from_dir(entry_path.name)
            tasks[entry_path.name] = TaskWorktree(
                task_id=task_id,
                branch=self.get_task_branch(workflow_id, task_id),
                path=entry.path,
                status=WorktreeStatus.STALE if entry.prunable else WorktreeStatus.ACTIVE,
                created_at=entry.created_at or datetime.now(UTC),
            )

        # Directories git no longer knows about are leftovers.
        for child in await asyncio.to_thread(_child_dirs, root):
            if is_reserved_dir(child.name) or child.name in tasks:
                continue
            task_id = task_id_from_dir(child.name)
            tasks[child.name] = TaskWorktree(
                task_id=task_id,
                branch=self.get_task_branch(workflow_id, task_id),
                path=child,
                status=WorktreeStatus.STALE,
                created_at=_modified_at(child),
            )

        return Ok(sorted(tasks.values(), key=lambda task: task.task_id))

    # -------------------------------------------------------------------------
    # Merge mechanics
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def _ephemeral_worktree(
        self, path: Path, branch: str
    ) -> AsyncIterator[Result[GitGateway, TaskgroveError]]:
        """Scratch worktree checked out to ``branch``, removed on every exit path.

        Yields Ok(gateway bound to the worktree) or the Err that prevented
        its creation. Residue of an earlier interrupted run is removed first.
        """
        if await asyncio.to_thread(path.exists):
            self._logger.warning("Removing leftover scratch worktree %s", path)
            await self._teardown_worktree(path)
        else:
            # A killed run may have left the registration without the directory.
            if isinstance(pruned := await self._gateway.worktree_prune(), Err):
                self._logger.debug("Worktree prune failed: %s", pruned.error)

        try:
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            yield Err(TaskgroveError(f"Failed to create {path.parent}: {exc}"))
            return

        created = await self._gateway.worktree_add(path, branch)

        try:
            match created:
                case Err(err):
                    yield Err(err)
                case Ok(_):
                    yield Ok(self._gateway.at(path))
        finally:
            await self._teardown_worktree(path)

    async def _teardown_worktree(self, path: Path) -> None:
        match await self._store.remove(path, force=True):
            case Ok(_):
                pass
            case Err(err):
                self._logger.debug("git worktree remove %s failed: %s", path, err)

        if await asyncio.to_thread(path.exists):
            try:
                await asyncio.to_thread(shutil.rmtree, path)
            except OSError as exc:
                self._logger.warning("Failed to delete %s: %s", path, exc)

        match await self._gateway.worktree_prune():
            case Ok(_):
                pass
            case Err(err):
                self._logger.warning("Worktree prune failed: %s", err)

    async def _merge_branch(
        self,
        scratch: GitGateway,
        branch: str,
        *,
        message: str,
        label: str,
        task_id: str | None = None,
    ) -> Result[str, TaskgroveError]:
        match await scratch.merge(branch, MergeOptions(message=message, no_fast_forward=True)):
            case Ok(sha):
                return Ok(sha)
            case Err(ConflictError() as err):
                return Err(await self._abort_conflict(scratch, err, label, task_id=task_id))
            case Err(err):
                await self._abort(scratch.merge_abort, scratch)
                return Err(err)

    async def _replay_commits(
        self,
        scratch: GitGateway,
        workflow_branch: str,
        task_branch: str,
        task_id: str,
    ) -> Result[str, TaskgroveError]:
        match await scratch.unique_commits(workflow_branch, task_branch):
            case Err(err):
                return Err(err)
            case Ok(commits):
                pass

        for commit in commits:
            match await scratch.cherry_pick(commit):
                case Ok(_):
                    continue
                case Err(GitError(kind=FailureKind.EMPTY_PICK)):
                    self._logger.debug("Skipping empty cherry-pick of %s", commit)
                    match await scratch.cherry_pick_skip():
                        case Err(err):
                            return Err(err)
                        case Ok(_):
                            pass
                case Err(ConflictError() as err):
                    return Err(
                        await self._abort_conflict(
                            scratch, err, f"task {task_id}", task_id=task_id, commit=commit
                        )
                    )
                case Err(err):
                    await self._abort(scratch.cherry_pick_abort, scratch)
                    return Err(err)

        return await scratch.head(short=False)

    async def _abort_conflict(
        self,
        scratch: GitGateway,
        err: ConflictError,
        label: str,
        *,
        task_id: str | None = None,
        commit: str | None = None,
    ) -> ConflictError:
        files = (await scratch.conflict_files()).unwrap_or([])
        if commit is not None:
            await self._abort(scratch.cherry_pick_abort, scratch)
            message = f"conflict replaying commit {commit[:12]} of {label}"
        else:
            await self._abort(scratch.merge_abort, scratch)
            message = f"merge conflict in {label}"
        self._logger.warning("%s (files: %s)", message, ", ".join(files) or "unknown")
        return ConflictError(
            message,
            context={"files": files} if files else None,
            failure=err.failure,
            task_id=task_id,
            commit=commit,
        )

    async def _abort(
        self,
        abort: Callable[[], Awaitable[Result[None, GitError]]],
        scratch: GitGateway,
    ) -> None:
        result = await abort()
        if isinstance(result, Err):
            # The scratch worktree is force-removed next, which discards the
            # in-progress state anyway.
            self._logger.warning("Abort in %s failed: %s", scratch.path, result.error)

    # -------------------------------------------------------------------------
    # Base branch resolution
    # -------------------------------------------------------------------------

    async def _resolve_base_branch(self) -> str:
        return (await self._gateway.default_branch()).unwrap_or("main")

    async def _base_branch_for(self, workflow_id: str) -> str:
        handle = self._workflows.get(workflow_id)
        if handle is not None:
            return handle.base_branch
        return await self._resolve_base_branch()


__all__ = ["DEFAULT_NAMESPACE", "FINALIZE_DIR", "MERGE_DIR", "WorkflowOrchestrator"]

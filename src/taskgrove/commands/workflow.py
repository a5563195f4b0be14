"""Workflow lifecycle commands.

Every command opens the repository, runs one orchestrator operation and
renders the outcome. The orchestrator's in-memory registry does not outlive
the process, so base branches resolve to the repository default unless given.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

import typer
from rich import box
from rich.table import Table

from taskgrove.core.console import console
from taskgrove.core.decorators import handle_exceptions
from taskgrove.core.result import Err, Ok, Result, TaskgroveError
from taskgrove.orchestrator import MergeStrategy, WorkflowOrchestrator
from taskgrove.worktree import Task

from ._shared import REPO_OPTION_HELP, open_orchestrator, unwrap_result

if TYPE_CHECKING:
    from taskgrove.main import AppState

app = typer.Typer(no_args_is_help=True)
T = TypeVar("T")


def _run(
    ctx: typer.Context,
    repo_path: Path,
    operation: Callable[[WorkflowOrchestrator], Awaitable[Result[T, TaskgroveError]]],
) -> T:
    state: AppState = ctx.obj

    async def _invoke() -> Result[T, TaskgroveError]:
        match await open_orchestrator(state.config, repo_path):
            case Err(err):
                return Err(err)
            case Ok(orchestrator):
                return await operation(orchestrator)

    return unwrap_result(asyncio.run(_invoke()))


@app.command("init")
@handle_exceptions
def init_workflow(
    ctx: typer.Context,
    workflow_id: str = typer.Argument(..., help="Workflow identifier."),
    base: str = typer.Option("", "--base", "-b", help="Base branch (default: repository default)."),
    repo_path: Path = typer.Option(Path("."), "--repo", "-r", help=REPO_OPTION_HELP),
) -> None:
    """Create (or reuse) a workflow branch and worktree root."""
    handle = _run(ctx, repo_path, lambda orch: orch.initialize_workflow(workflow_id, base))
    console.print(
        f"[green]Workflow {handle.workflow_id}[/green] on [cyan]{handle.workflow_branch}[/cyan] "
        f"(base {handle.base_branch})"
    )
    console.print(f"Worktree root: {handle.worktree_root}")


@app.command("add-task")
@handle_exceptions
def add_task(
    ctx: typer.Context,
    workflow_id: str = typer.Argument(..., help="Workflow identifier."),
    task_id: str = typer.Argument(..., help="Task identifier."),
    name: str = typer.Option("", "--name", "-n", help="Human label used in the directory name."),
    repo_path: Path = typer.Option(Path("."), "--repo", "-r", help=REPO_OPTION_HELP),
) -> None:
    """Create (or reuse) a task branch and worktree."""
    task = Task(id=task_id, name=name)
    worktree = _run(ctx, repo_path, lambda orch: orch.create_task_worktree(workflow_id, task))
    console.print(f"[green]{worktree.task_id}[/green] [cyan]{worktree.branch}[/cyan]")
    console.print(str(worktree.path))


@app.command("remove-task")
@handle_exceptions
def remove_task(
    ctx: typer.Context,
    workflow_id: str = typer.Argument(..., help="Workflow identifier."),
    task_id: str = typer.Argument(..., help="Task identifier."),
    delete_branch: bool = typer.Option(False, "--delete-branch", help="Also delete the task branch."),
    force: bool = typer.Option(False, "--force", "-f", help="Discard uncommitted changes."),
    repo_path: Path = typer.Option(Path("."), "--repo", "-r", help=REPO_OPTION_HELP),
) -> None:
    """Remove a task worktree."""
    _run(
        ctx,
        repo_path,
        lambda orch: orch.remove_task_worktree(
            workflow_id, task_id, remove_branch=delete_branch, force=force
        ),
    )
    console.print(f"[green]Removed task {task_id}.[/green]")


@app.command("merge")
@handle_exceptions
def merge_task(
    ctx: typer.Context,
    workflow_id: str = typer.Argument(..., help="Workflow identifier."),
    task_id: str = typer.Argument(..., help="Task identifier."),
    strategy: MergeStrategy = typer.Option(
        MergeStrategy.SEQUENTIAL, "--strategy", "-s", help="How task work is merged."
    ),
    repo_path: Path = typer.Option(Path("."), "--repo", "-r", help=REPO_OPTION_HELP),
) -> None:
    """Merge one task branch into its workflow branch."""
    sha = _run(
        ctx, repo_path, lambda orch: orch.merge_task_to_workflow(workflow_id, task_id, strategy)
    )
    console.print(f"[green]Merged {task_id}[/green] -> {sha[:8]}")


@app.command("merge-all")
@handle_exceptions
def merge_all(
    ctx: typer.Context,
    workflow_id: str = typer.Argument(..., help="Workflow identifier."),
    task_ids: list[str] | None = typer.Argument(None, help="Tasks to merge (default: all)."),
    strategy: MergeStrategy = typer.Option(
        MergeStrategy.SEQUENTIAL, "--strategy", "-s", help="How task work is merged."
    ),
    repo_path: Path = typer.Option(Path("."), "--repo", "-r", help=REPO_OPTION_HELP),
) -> None:
    """Merge several tasks in order, reporting every failure."""

    async def _merge_all(orch: WorkflowOrchestrator) -> Result[list[str], TaskgroveError]:
        selected = list(task_ids or [])
        if not selected:
            match await orch.list_task_worktrees(workflow_id):
                case Err(err):
                    return Err(err)
                case Ok(worktrees):
                    selected = [worktree.task_id for worktree in worktrees]
        return await orch.merge_all_tasks_to_workflow(workflow_id, selected, strategy)

    merged = _run(ctx, repo_path, _merge_all)
    if not merged:
        console.print("[yellow]No tasks to merge.[/yellow]")
        return
    console.print(f"[green]Merged {len(merged)} task(s):[/green] {', '.join(merged)}")


@app.command("finalize")
@handle_exceptions
def finalize(
    ctx: typer.Context,
    workflow_id: str = typer.Argument(..., help="Workflow identifier."),
    merge: bool = typer.Option(False, "--merge", help="Merge the workflow into its base branch."),
    repo_path: Path = typer.Option(Path("."), "--repo", "-r", help=REPO_OPTION_HELP),
) -> None:
    """Remove task worktrees, optionally merging the workflow first."""
    sha = _run(ctx, repo_path, lambda orch: orch.finalize_workflow(workflow_id, merge=merge))
    if sha:
        console.print(f"[green]Merged workflow {workflow_id}[/green] -> {sha[:8]}")
    console.print(f"[green]Finalized {workflow_id}.[/green] Branches kept.")


@app.command("cleanup")
@handle_exceptions
def cleanup(
    ctx: typer.Context,
    workflow_id: str = typer.Argument(..., help="Workflow identifier."),
    delete_branch: bool = typer.Option(
        False, "--delete-branch", help="Also delete the workflow branch."
    ),
    repo_path: Path = typer.Option(Path("."), "--repo", "-r", help=REPO_OPTION_HELP),
) -> None:
    """Remove a workflow's worktrees, directory and task branches."""
    _run(
        ctx,
        repo_path,
        lambda orch: orch.cleanup_workflow(workflow_id, remove_workflow_branch=delete_branch),
    )
    console.print(f"[green]Cleaned up {workflow_id}.[/green]")


@app.command("status")
@handle_exceptions
def status(
    ctx: typer.Context,
    workflow_id: str = typer.Argument(..., help="Workflow identifier."),
    repo_path: Path = typer.Option(Path("."), "--repo", "-r", help=REPO_OPTION_HELP),
) -> None:
    """Show merge progress of a workflow."""
    report = _run(ctx, repo_path, lambda orch: orch.get_workflow_status(workflow_id))

    table = Table(title=f"Workflow {report.workflow_id}", box=box.SIMPLE_HEAVY)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    conflicts = "[red]yes[/red]" if report.has_conflicts else "[green]no[/green]"
    table.add_row("Conflicts", conflicts)
    table.add_row("Ahead of base", str(report.ahead_of_base))
    table.add_row("Behind base", str(report.behind_base))
    table.add_row("Unmerged tasks", ", ".join(report.unmerged_tasks) or "-")
    table.add_row("Tip", report.last_merge_commit)
    console.print(table)


@app.command("list")
@handle_exceptions
def list_workflows(
    ctx: typer.Context,
    repo_path: Path = typer.Option(Path("."), "--repo", "-r", help=REPO_OPTION_HELP),
) -> None:
    """List workflows with a worktree root and a branch."""
    handles = _run(ctx, repo_path, lambda orch: orch.list_active_workflows())
    if not handles:
        console.print("[yellow]No active workflows.[/yellow]")
        return

    table = Table(title="Workflows", box=box.SIMPLE_HEAVY, expand=True)
    table.add_column("Workflow", style="cyan", no_wrap=True)
    table.add_column("Branch", style="white")
    table.add_column("Base", style="white")
    table.add_column("Tasks", justify="right")
    for handle in handles:
        table.add_row(
            handle.workflow_id, handle.workflow_branch, handle.base_branch, str(handle.task_count)
        )
    console.print(table)


@app.command("tasks")
@handle_exceptions
def list_tasks(
    ctx: typer.Context,
    workflow_id: str = typer.Argument(..., help="Workflow identifier."),
    repo_path: Path = typer.Option(Path("."), "--repo", "-r", help=REPO_OPTION_HELP),
) -> None:
    """List a workflow's task worktrees."""
    worktrees = _run(ctx, repo_path, lambda orch: orch.list_task_worktrees(workflow_id))
    if not worktrees:
        console.print("[yellow]No task worktrees.[/yellow]")
        return

    table = Table(title=f"Tasks of {workflow_id}", box=box.SIMPLE_HEAVY, expand=True)
    table.add_column("Task", style="cyan", no_wrap=True)
    table.add_column("Branch", style="white")
    table.add_column("Status")
    table.add_column("Path", style="dim")
    for worktree in worktrees:
        style = "green" if worktree.status.value == "active" else "yellow"
        table.add_row(
            worktree.task_id,
            worktree.branch,
            f"[{style}]{worktree.status.value}[/{style}]",
            str(worktree.path),
        )
    console.print(table)

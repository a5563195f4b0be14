from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich import box
from rich.table import Table

from taskgrove.core.console import console
from taskgrove.core.decorators import handle_exceptions
from taskgrove.core.result import Err, Ok, Result, TaskgroveError
from taskgrove.worktree import WorktreeEntry

from ._shared import REPO_OPTION_HELP, open_store, unwrap_result

if TYPE_CHECKING:
    from taskgrove.main import AppState

app = typer.Typer(no_args_is_help=True)


@app.command("list")
@handle_exceptions
def list_worktrees(
    ctx: typer.Context,
    show_all: bool = typer.Option(False, "--all", "-a", help="Include unmanaged worktrees."),
    repo_path: Path = typer.Option(Path("."), "--repo", "-r", help=REPO_OPTION_HELP),
) -> None:
    """List worktrees under the managed directory."""
    state: AppState = ctx.obj

    async def _list() -> Result[list[WorktreeEntry], TaskgroveError]:
        match await open_store(state.config, repo_path):
            case Err(err):
                return Err(err)
            case Ok(store):
                return await (store.list() if show_all else store.list_managed())

    entries = unwrap_result(asyncio.run(_list()))
    if not entries:
        console.print("[yellow]No worktrees.[/yellow]")
        return

    table = Table(title="Worktrees", box=box.SIMPLE_HEAVY, expand=True)
    table.add_column("Path", style="cyan")
    table.add_column("Branch", style="white")
    table.add_column("Head", style="dim", no_wrap=True)
    table.add_column("Flags")
    for entry in entries:
        flags = [
            flag
            for flag, enabled in (
                ("detached", entry.detached),
                ("locked", entry.locked),
                ("prunable", entry.prunable),
            )
            if enabled
        ]
        table.add_row(str(entry.path), entry.branch or "-", entry.head[:8], ", ".join(flags))
    console.print(table)


@app.command("prune")
@handle_exceptions
def prune(
    ctx: typer.Context,
    dry_run: bool = typer.Option(False, "--dry-run", help="Only report what would be pruned."),
    repo_path: Path = typer.Option(Path("."), "--repo", "-r", help=REPO_OPTION_HELP),
) -> None:
    """Prune worktree metadata whose directories are gone."""
    state: AppState = ctx.obj

    async def _prune() -> Result[list[str], TaskgroveError]:
        match await open_store(state.config, repo_path):
            case Err(err):
                return Err(err)
            case Ok(store):
                return await store.prune(dry_run=dry_run)

    pruned = unwrap_result(asyncio.run(_prune()))
    if not pruned:
        console.print("[green]Nothing to prune.[/green]")
        return
    verb = "Would prune" if dry_run else "Pruned"
    for item in pruned:
        console.print(f"{verb} {item}")


@app.command("cleanup-stale")
@handle_exceptions
def cleanup_stale(
    ctx: typer.Context,
    max_age_hours: float | None = typer.Option(
        None, "--max-age-hours", help="Age threshold (default: worktree.stale_max_age_hours)."
    ),
    repo_path: Path = typer.Option(Path("."), "--repo", "-r", help=REPO_OPTION_HELP),
) -> None:
    """Remove managed worktrees that are prunable or older than the threshold."""
    state: AppState = ctx.obj
    hours = state.config.worktree.stale_max_age_hours if max_age_hours is None else max_age_hours

    async def _cleanup() -> Result[int, TaskgroveError]:
        match await open_store(state.config, repo_path):
            case Err(err):
                return Err(err)
            case Ok(store):
                return await store.cleanup_stale(timedelta(hours=hours))

    removed = unwrap_result(asyncio.run(_cleanup()))
    console.print(f"[green]Removed {removed} stale worktree(s).[/green]")

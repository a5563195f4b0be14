from __future__ import annotations

from pathlib import Path
from typing import TypeVar

import typer

from taskgrove.core.config import AppConfig
from taskgrove.core.decorators import render_error
from taskgrove.core.result import Err, Ok, Result, TaskgroveError
from taskgrove.git import GitGateway
from taskgrove.orchestrator import WorkflowOrchestrator
from taskgrove.worktree import WorktreeStore

T = TypeVar("T")

REPO_OPTION_HELP = "Repository path."


def unwrap_result(result: Result[T, TaskgroveError]) -> T:
    match result:
        case Ok(value):
            return value
        case Err(err):
            render_error(err)
            raise typer.Exit(code=1)


async def open_gateway(config: AppConfig, repo_path: Path) -> Result[GitGateway, TaskgroveError]:
    return await GitGateway.open(
        repo_path.expanduser(),
        timeout=config.git.timeout,
        executable=config.git.executable,
    )


async def open_orchestrator(
    config: AppConfig, repo_path: Path
) -> Result[WorkflowOrchestrator, TaskgroveError]:
    match await open_gateway(config, repo_path):
        case Err(err):
            return Err(err)
        case Ok(gateway):
            return Ok(WorkflowOrchestrator.from_config(gateway, config))


async def open_store(config: AppConfig, repo_path: Path) -> Result[WorktreeStore, TaskgroveError]:
    match await open_gateway(config, repo_path):
        case Err(err):
            return Err(err)
        case Ok(gateway):
            return Ok(WorktreeStore(gateway, config.resolve_base_dir(gateway.path)))

from __future__ import annotations

import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from rich.console import Console
from typer.testing import CliRunner

GitRunner = Callable[..., str]


def _git(cwd: Path, *args: str) -> str:
    """Run git directly for fixture setup (not part of the code under test)."""
    completed = subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    )
    return completed.stdout.strip()


def init_repo(path: Path) -> Path:
    """Create a repository on branch main with one commit."""
    path.mkdir(parents=True, exist_ok=True)
    _git(path, "init")
    _git(path, "config", "user.email", "test@test.com")
    _git(path, "config", "user.name", "Test User")
    _git(path, "config", "commit.gpgsign", "false")
    (path / "README.md").write_text("# Test Repo\n")
    (path / "shared.txt").write_text("line one\nline two\nline three\n")
    _git(path, "add", ".")
    _git(path, "commit", "-m", "Initial commit")
    _git(path, "branch", "-M", "main")
    return path.resolve()


def commit_file(worktree: Path, name: str, content: str, message: str | None = None) -> str:
    """Write a file inside a worktree and commit it. Returns the commit sha."""
    target = worktree / name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    _git(worktree, "add", "--", name)
    _git(worktree, "commit", "-m", message or f"Update {name}")
    return _git(worktree, "rev-parse", "HEAD")


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """A temporary repository on main with README.md and shared.txt committed."""
    return init_repo(tmp_path / "repo")


@pytest.fixture
def git() -> GitRunner:
    """Run git in a directory: git(path, "branch", "--list")."""
    return _git


@pytest.fixture
def commit() -> Callable[..., str]:
    return commit_file


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def isolate_config(tmp_path: Path, monkeypatch: Any) -> Path:
    """Point config to a temp path so tests don't touch user state."""
    cfg_path = tmp_path / "config.toml"
    monkeypatch.setenv("TASKGROVE_CONFIG", str(cfg_path))
    for key in ("TASKGROVE_GIT__TIMEOUT", "TASKGROVE_WORKTREE__BASE_DIR", "TASKGROVE_WORKTREE__NAMESPACE"):
        monkeypatch.delenv(key, raising=False)
    return cfg_path


@pytest.fixture(autouse=True)
def capture_console(monkeypatch: Any) -> Console:
    """Use an in-memory Rich console during tests."""
    test_console = Console(record=True, width=200)
    import taskgrove.commands.workflow as workflow_commands
    import taskgrove.commands.worktree as worktree_commands
    import taskgrove.core.console as core_console
    import taskgrove.core.decorators as decorators
    import taskgrove.main as tg_main

    for module in (core_console, decorators, tg_main, workflow_commands, worktree_commands):
        monkeypatch.setattr(module, "console", test_console)
    return test_console

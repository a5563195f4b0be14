"""Tests for GitGateway against real temporary repositories."""

from __future__ import annotations

import os
import shutil
import stat
from collections.abc import Callable
from pathlib import Path

import pytest

from taskgrove.core.result import (
    AlreadyExistsError,
    CommandTimeoutError,
    ConflictError,
    Err,
    ExecutionError,
    FailureKind,
    NotFoundError,
    Ok,
    ValidationError,
)
from taskgrove.git import GitGateway, MergeOptions, is_path_within, is_repo
from taskgrove.git.client import execute, resolve_git_binary


async def _open(path: Path) -> GitGateway:
    match await GitGateway.open(path):
        case Ok(gateway):
            return gateway
        case Err(err):
            pytest.fail(f"Failed to open repo: {err}")


class TestOpen:
    @pytest.mark.asyncio
    async def test_open_resolves_repository_root(self, git_repo: Path) -> None:
        (git_repo / "sub").mkdir()
        gateway = await _open(git_repo / "sub")
        assert gateway.path == git_repo
        assert gateway.git_path.is_absolute()

    @pytest.mark.asyncio
    async def test_open_rejects_plain_directory(self, tmp_path: Path) -> None:
        plain = tmp_path / "plain"
        plain.mkdir()
        match await GitGateway.open(plain):
            case Err(ValidationError() as err):
                assert "not a git repository" in err.message
            case other:
                pytest.fail(f"Expected ValidationError, got {other}")

    @pytest.mark.asyncio
    async def test_open_rejects_missing_path(self, tmp_path: Path) -> None:
        result = await GitGateway.open(tmp_path / "missing")
        assert isinstance(result, Err)
        assert isinstance(result.error, ValidationError)

    @pytest.mark.asyncio
    async def test_is_repo(self, git_repo: Path, tmp_path: Path) -> None:
        assert await is_repo(git_repo)
        assert not await is_repo(tmp_path / "missing")

    def test_is_path_within_is_lexical(self, tmp_path: Path) -> None:
        assert is_path_within(tmp_path, tmp_path)
        assert is_path_within(tmp_path, tmp_path / "a" / "b")
        assert not is_path_within(tmp_path / "a", tmp_path / "a" / ".." / "b")
        assert not is_path_within(tmp_path / "a", tmp_path / "ab")


class TestBinaryResolution:
    def test_resolves_real_git(self, git_repo: Path) -> None:
        match resolve_git_binary(git_repo):
            case Ok(path):
                assert path.is_file()
                assert os.access(path, os.X_OK)
            case Err(err):
                pytest.fail(f"git not resolved: {err}")

    def test_rejects_git_planted_inside_repository(
        self, git_repo: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        bin_dir = git_repo / "bin"
        bin_dir.mkdir()
        planted = bin_dir / "git"
        planted.write_text("#!/bin/sh\nexit 0\n")
        planted.chmod(planted.stat().st_mode | stat.S_IXUSR)
        monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")

        match resolve_git_binary(git_repo):
            case Err(ValidationError() as err):
                assert "within repository" in err.message
            case other:
                pytest.fail(f"Expected rejection, got {other}")

    def test_missing_executable(self, git_repo: Path) -> None:
        assert resolve_git_binary(git_repo, "definitely-not-a-git-binary").is_err()


class TestExecute:
    @pytest.mark.asyncio
    async def test_timeout_kills_the_process(self, tmp_path: Path) -> None:
        sleep = shutil.which("sleep")
        if sleep is None:
            pytest.skip("sleep not available")
        match await execute(Path(sleep), tmp_path, ["5"], timeout=0.2):
            case Err(CommandTimeoutError() as err):
                assert err.kind is FailureKind.TIMEOUT
            case other:
                pytest.fail(f"Expected timeout, got {other}")

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_not_an_error_here(self, git_repo: Path) -> None:
        gateway = await _open(git_repo)
        match await execute(gateway.git_path, git_repo, ["rev-parse", "--verify", "nope"], 10):
            case Ok(result):
                assert result.returncode != 0
                assert not result.ok
            case Err(err):
                pytest.fail(f"Unexpected error: {err}")


class TestQueries:
    @pytest.mark.asyncio
    async def test_branch_queries(self, git_repo: Path) -> None:
        gateway = await _open(git_repo)

        assert await gateway.current_branch() == Ok("main")
        assert await gateway.default_branch() == Ok("main")
        assert await gateway.branch_exists("main") == Ok(True)
        assert await gateway.branch_exists("nope") == Ok(False)

        assert (await gateway.create_branch("grove/wf")).is_ok()
        assert await gateway.list_branches("grove/*") == Ok(["grove/wf"])
        # Creating a branch never switches the checkout.
        assert await gateway.current_branch() == Ok("main")

    @pytest.mark.asyncio
    async def test_create_existing_branch_is_already_exists(self, git_repo: Path) -> None:
        gateway = await _open(git_repo)
        match await gateway.create_branch("main"):
            case Err(AlreadyExistsError() as err):
                assert err.kind is FailureKind.ALREADY_EXISTS
            case other:
                pytest.fail(f"Expected AlreadyExistsError, got {other}")

    @pytest.mark.asyncio
    async def test_invalid_branch_never_reaches_git(self, git_repo: Path) -> None:
        gateway = await _open(git_repo)
        result = await gateway.create_branch("--force")
        assert isinstance(result, Err)
        assert isinstance(result.error, ValidationError)
        assert await gateway.list_branches() == Ok(["main"])

    @pytest.mark.asyncio
    async def test_rev_parse(self, git_repo: Path, git: Callable[..., str]) -> None:
        gateway = await _open(git_repo)
        full = git(git_repo, "rev-parse", "HEAD")
        assert await gateway.rev_parse("main") == Ok(full)
        match await gateway.rev_parse("main", short=8):
            case Ok(short):
                assert full.startswith(short)
                assert len(short) >= 8
            case Err(err):
                pytest.fail(str(err))
        assert isinstance((await gateway.rev_parse("missing")).error, NotFoundError)  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_ancestry_and_counts(
        self, git_repo: Path, commit: Callable[..., str]
    ) -> None:
        gateway = await _open(git_repo)
        assert (await gateway.create_branch("topic")).is_ok()
        worktree = git_repo.parent / "topic-wt"
        assert (await gateway.worktree_add(worktree, "topic")).is_ok()
        commit(worktree, "a.txt", "a\n")
        commit(worktree, "b.txt", "b\n")

        assert await gateway.is_ancestor("main", "topic") == Ok(True)
        assert await gateway.is_ancestor("topic", "main") == Ok(False)
        assert await gateway.ahead_behind("topic", "main") == Ok((2, 0))

        match await gateway.unique_commits("main", "topic"):
            case Ok(commits):
                assert len(commits) == 2
                subjects = [
                    (await gateway.run("log", "-1", "--format=%s", sha)).unwrap() for sha in commits
                ]
                assert subjects == ["Update a.txt", "Update b.txt"]
            case Err(err):
                pytest.fail(str(err))

    @pytest.mark.asyncio
    async def test_status_reports_changes(self, git_repo: Path) -> None:
        gateway = await _open(git_repo)
        match await gateway.status():
            case Ok(status):
                assert status.branch == "main"
                assert status.is_clean
            case Err(err):
                pytest.fail(str(err))

        (git_repo / "README.md").write_text("changed\n")
        (git_repo / "new file.txt").write_text("new\n")
        match await gateway.status():
            case Ok(status):
                assert status.modified == ["README.md"]
                assert status.untracked == ["new file.txt"]
                assert not status.has_conflicts
            case Err(err):
                pytest.fail(str(err))
        assert await gateway.has_uncommitted_changes() == Ok(True)


class TestMerge:
    @pytest.mark.asyncio
    async def test_conflicting_merge_then_abort(
        self, git_repo: Path, commit: Callable[..., str]
    ) -> None:
        gateway = await _open(git_repo)
        assert (await gateway.create_branch("other")).is_ok()
        other = git_repo.parent / "other-wt"
        assert (await gateway.worktree_add(other, "other")).is_ok()
        commit(other, "shared.txt", "line one\nOTHER\nline three\n")
        commit(git_repo, "shared.txt", "line one\nMAIN\nline three\n")

        match await gateway.merge("other", MergeOptions(message="Merge other", no_fast_forward=True)):
            case Err(ConflictError() as err):
                assert "CONFLICT" in (err.failure.stdout if err.failure else "")
            case other_result:
                pytest.fail(f"Expected conflict, got {other_result}")

        assert await gateway.conflict_files() == Ok(["shared.txt"])
        status = (await gateway.status()).unwrap()
        assert status.has_conflicts

        assert (await gateway.merge_abort()).is_ok()
        assert not (await gateway.status()).unwrap().has_conflicts
        # Aborting again is a no-op, not an error.
        assert (await gateway.merge_abort()).is_ok()

    @pytest.mark.asyncio
    async def test_merge_up_to_date_and_unknown_branch(self, git_repo: Path) -> None:
        gateway = await _open(git_repo)
        assert (await gateway.create_branch("same")).is_ok()
        assert (await gateway.merge("same")).is_ok()

        match await gateway.merge("no-such-branch"):
            case Err(NotFoundError()):
                pass
            case other:
                pytest.fail(f"Expected NotFoundError, got {other}")

    @pytest.mark.asyncio
    async def test_merge_rejects_option_injection(self, git_repo: Path) -> None:
        gateway = await _open(git_repo)
        result = await gateway.merge("main", MergeOptions(strategy="--evil"))
        assert isinstance(result, Err)
        assert isinstance(result.error, ValidationError)

    @pytest.mark.asyncio
    async def test_cherry_pick_and_abort_helpers(
        self, git_repo: Path, commit: Callable[..., str]
    ) -> None:
        gateway = await _open(git_repo)
        assert (await gateway.create_branch("pick-src")).is_ok()
        source = git_repo.parent / "pick-wt"
        assert (await gateway.worktree_add(source, "pick-src")).is_ok()
        sha = commit(source, "picked.txt", "picked\n")

        assert (await gateway.cherry_pick(sha)).is_ok()
        assert (git_repo / "picked.txt").read_text() == "picked\n"
        assert (await gateway.cherry_pick_abort()).is_ok()


class TestCommits:
    @pytest.mark.asyncio
    async def test_commit_all(self, git_repo: Path, git: Callable[..., str]) -> None:
        gateway = await _open(git_repo)
        (git_repo / "added.txt").write_text("x\n")
        match await gateway.commit_all("Add file"):
            case Ok(sha):
                assert sha == git(git_repo, "rev-parse", "HEAD")
            case Err(err):
                pytest.fail(str(err))
        assert (await gateway.commit("")).is_err()

    @pytest.mark.asyncio
    async def test_update_ref_compare_and_swap(
        self, git_repo: Path, git: Callable[..., str]
    ) -> None:
        gateway = await _open(git_repo)
        head = git(git_repo, "rev-parse", "HEAD")
        assert (await gateway.create_branch("cas")).is_ok()
        (git_repo / "x.txt").write_text("x\n")
        new = (await gateway.commit_all("x")).unwrap()

        assert (await gateway.update_ref("refs/heads/cas", new, head)).is_ok()
        assert git(git_repo, "rev-parse", "cas") == new
        # The old value no longer matches, so a second swap must fail.
        assert (await gateway.update_ref("refs/heads/cas", head, head)).is_err()


class TestWorktrees:
    @pytest.mark.asyncio
    async def test_add_list_lock_remove_prune(self, git_repo: Path) -> None:
        gateway = await _open(git_repo)
        first = git_repo.parent / "wt-one"
        detached = git_repo.parent / "wt-detached"

        assert (await gateway.worktree_add(first, "feature", new_branch=True)).is_ok()
        assert (await gateway.worktree_add(detached, detach=True, start_point="main")).is_ok()

        entries = {entry.path.resolve(): entry for entry in (await gateway.worktree_list()).unwrap()}
        assert entries[first.resolve()].branch == "feature"
        assert entries[detached.resolve()].detached

        assert (await gateway.worktree_lock(first, "busy agent")).is_ok()
        entries = {entry.path.resolve(): entry for entry in (await gateway.worktree_list()).unwrap()}
        assert entries[first.resolve()].locked
        assert (await gateway.worktree_unlock(first)).is_ok()

        assert (await gateway.worktree_remove(first)).is_ok()
        assert not first.exists()

        shutil.rmtree(detached)
        entries = {entry.path.resolve(): entry for entry in (await gateway.worktree_list()).unwrap()}
        assert entries[detached.resolve()].prunable

        match await gateway.worktree_prune():
            case Ok(pruned):
                assert any("wt-detached" in item for item in pruned)
            case Err(err):
                pytest.fail(str(err))

    @pytest.mark.asyncio
    async def test_add_requires_branch_unless_detached(self, git_repo: Path) -> None:
        gateway = await _open(git_repo)
        result = await gateway.worktree_add(git_repo.parent / "nowhere")
        assert isinstance(result, Err)
        assert isinstance(result.error, ValidationError)

    @pytest.mark.asyncio
    async def test_branch_checked_out_elsewhere_is_classified(self, git_repo: Path) -> None:
        gateway = await _open(git_repo)
        target = git_repo.parent / "wt-main"
        match await gateway.worktree_add(target, "main"):
            case Err(ExecutionError() as err):
                assert err.kind is FailureKind.CHECKED_OUT
            case other:
                pytest.fail(f"Expected a checked-out refusal, got {other}")
        assert not target.exists()

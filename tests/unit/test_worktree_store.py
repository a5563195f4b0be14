"""Tests for WorktreeStore containment and inventory."""

from __future__ import annotations

import shutil
from datetime import timedelta
from pathlib import Path

import pytest

from taskgrove.core.result import Err, NotFoundError, Ok, ValidationError
from taskgrove.git import GitGateway
from taskgrove.worktree import WorktreeStore


async def _store(repo: Path, **kwargs: object) -> WorktreeStore:
    match await GitGateway.open(repo):
        case Ok(gateway):
            return WorktreeStore(gateway, **kwargs)  # type: ignore[arg-type]
        case Err(err):
            pytest.fail(f"Failed to open repo: {err}")


class TestCreate:
    @pytest.mark.asyncio
    async def test_default_base_dir_and_new_branch(self, git_repo: Path) -> None:
        store = await _store(git_repo)
        assert store.base_dir == git_repo / ".worktrees"

        match await store.create("agent-1", "feature/agent-1", "main"):
            case Ok(entry):
                assert entry.path == git_repo / ".worktrees" / "agent-1"
                assert entry.branch == "feature/agent-1"
                assert len(entry.head) == 40
                assert (entry.path / "README.md").exists()
            case Err(err):
                pytest.fail(f"Failed to create worktree: {err}")

    @pytest.mark.asyncio
    async def test_attaches_to_existing_branch(self, git_repo: Path, git) -> None:
        git(git_repo, "branch", "existing")
        store = await _store(git_repo)
        match await store.create("attach", "existing"):
            case Ok(entry):
                assert git(entry.path, "rev-parse", "--abbrev-ref", "HEAD") == "existing"
            case Err(err):
                pytest.fail(str(err))

    @pytest.mark.asyncio
    async def test_prefix_is_prepended(self, git_repo: Path) -> None:
        store = await _store(git_repo, prefix="wt-")
        entry = (await store.create("one", "one")).unwrap()
        assert entry.path.name == "wt-one"

    @pytest.mark.asyncio
    async def test_existing_path_is_rejected(self, git_repo: Path) -> None:
        store = await _store(git_repo)
        (store.base_dir / "taken").mkdir(parents=True)
        match await store.create("taken", "taken"):
            case Err(ValidationError() as err):
                assert "already exists" in err.message
            case other:
                pytest.fail(f"Expected ValidationError, got {other}")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "..", "a/b", "a\\b", "x..y"])
    async def test_bad_names_are_rejected(self, git_repo: Path, name: str) -> None:
        store = await _store(git_repo)
        result = await store.create(name, "branch")
        assert isinstance(result, Err)
        assert isinstance(result.error, ValidationError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("base_branch", ["HEAD@{0}", "main~0", "main branch", "main..main"])
    async def test_base_must_be_a_branch_name(
        self, git_repo: Path, git, base_branch: str
    ) -> None:
        store = await _store(git_repo)
        result = await store.create("x", "x", base_branch)
        assert isinstance(result, Err)
        assert isinstance(result.error, ValidationError)
        assert not (store.base_dir / "x").exists()
        assert git(git_repo, "branch", "--list", "x") == ""

    @pytest.mark.asyncio
    async def test_create_at_outside_base_is_rejected(self, git_repo: Path, tmp_path: Path) -> None:
        store = await _store(git_repo)
        result = await store.create_at(tmp_path / "elsewhere", "elsewhere")
        assert isinstance(result, Err)
        assert isinstance(result.error, ValidationError)
        assert not (tmp_path / "elsewhere").exists()

    @pytest.mark.asyncio
    async def test_create_detached(self, git_repo: Path, git) -> None:
        store = await _store(git_repo)
        head = git(git_repo, "rev-parse", "HEAD")
        entry = (await store.create_detached("scratch", head)).unwrap()
        assert entry.detached
        assert entry.head == head


class TestRemove:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("exists", [True, False])
    async def test_outside_base_dir_is_always_rejected(
        self, git_repo: Path, tmp_path: Path, exists: bool
    ) -> None:
        store = await _store(git_repo)
        outside = tmp_path / "outside"
        if exists:
            outside.mkdir()

        for candidate in (outside, git_repo, store.base_dir, store.base_dir / ".." / "escape"):
            match await store.remove(candidate, force=True):
                case Err(ValidationError()):
                    pass
                case other:
                    pytest.fail(f"Expected ValidationError for {candidate}, got {other}")
        assert outside.exists() is exists

    @pytest.mark.asyncio
    async def test_removes_managed_worktree(self, git_repo: Path) -> None:
        store = await _store(git_repo)
        entry = (await store.create("gone", "gone")).unwrap()
        assert (await store.remove(entry.path)).is_ok()
        assert not entry.path.exists()

    @pytest.mark.asyncio
    async def test_dirty_worktree_needs_force(self, git_repo: Path) -> None:
        store = await _store(git_repo)
        entry = (await store.create("dirty", "dirty")).unwrap()
        (entry.path / "README.md").write_text("local edits\n")

        assert (await store.remove(entry.path)).is_err()
        assert entry.path.exists()
        assert (await store.remove(entry.path, force=True)).is_ok()


class TestInventory:
    @pytest.mark.asyncio
    async def test_list_managed_excludes_primary(self, git_repo: Path) -> None:
        store = await _store(git_repo)
        (await store.create("a", "a")).unwrap()
        (await store.create("b", "b")).unwrap()

        all_entries = (await store.list()).unwrap()
        managed = (await store.list_managed()).unwrap()
        assert len(all_entries) == 3
        assert sorted(entry.path.name for entry in managed) == ["a", "b"]
        assert all(entry.created_at is not None for entry in managed)

    @pytest.mark.asyncio
    async def test_get(self, git_repo: Path) -> None:
        store = await _store(git_repo)
        created = (await store.create("lookup", "lookup")).unwrap()

        assert (await store.get("lookup")).unwrap().path.resolve() == created.path.resolve()
        match await store.get("missing"):
            case Err(NotFoundError()):
                pass
            case other:
                pytest.fail(f"Expected NotFoundError, got {other}")

    @pytest.mark.asyncio
    async def test_lock_and_unlock(self, git_repo: Path, tmp_path: Path) -> None:
        store = await _store(git_repo)
        entry = (await store.create("locked", "locked")).unwrap()

        assert (await store.lock(entry.path, "agent running")).is_ok()
        assert (await store.get("locked")).unwrap().locked
        assert (await store.unlock(entry.path)).is_ok()
        assert not (await store.get("locked")).unwrap().locked
        assert (await store.lock(tmp_path, "nope")).is_err()


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_prune_reports_deleted_directories(self, git_repo: Path) -> None:
        store = await _store(git_repo)
        entry = (await store.create("vanished", "vanished")).unwrap()
        shutil.rmtree(entry.path)

        dry = (await store.prune(dry_run=True)).unwrap()
        assert any("vanished" in item for item in dry)
        pruned = (await store.prune()).unwrap()
        assert any("vanished" in item for item in pruned)
        assert (await store.list_managed()).unwrap() == []

    @pytest.mark.asyncio
    async def test_cleanup_stale_by_age(self, git_repo: Path) -> None:
        store = await _store(git_repo)
        (await store.create("old-1", "old-1")).unwrap()
        (await store.create("old-2", "old-2")).unwrap()

        assert await store.cleanup_stale(timedelta(days=1)) == Ok(0)
        assert len((await store.list_managed()).unwrap()) == 2

        assert await store.cleanup_stale(timedelta(0)) == Ok(2)
        assert (await store.list_managed()).unwrap() == []

    @pytest.mark.asyncio
    async def test_cleanup_stale_counts_prunable_entries(self, git_repo: Path) -> None:
        store = await _store(git_repo)
        entry = (await store.create("orphan", "orphan")).unwrap()
        shutil.rmtree(entry.path)

        assert await store.cleanup_stale(timedelta(days=1)) == Ok(1)
        assert (await store.list_managed()).unwrap() == []

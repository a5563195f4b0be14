"""Managed git worktrees confined to one base directory."""

from __future__ import annotations

import asyncio
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path

from taskgrove.core.console import get_logger
from taskgrove.core.result import (
    Err,
    NotFoundError,
    Ok,
    Result,
    TaskgroveError,
    ValidationError,
)
from taskgrove.git import GitGateway, WorktreeInfo
from taskgrove.git.validation import validate_branch_name, validate_no_nul

logger = get_logger(__name__)

DEFAULT_BASE_DIR = Path(".worktrees")

# Inventory entries are the gateway's parsed `git worktree list` records.
WorktreeEntry = WorktreeInfo


def _strictly_within(root: Path, path: Path) -> bool:
    return root in path.parents


def _modified_at(path: Path) -> datetime | None:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=UTC)
    except OSError:
        return None


def _with_timestamps(entries: list[WorktreeInfo]) -> list[WorktreeInfo]:
    for entry in entries:
        entry.created_at = _modified_at(entry.path)
    return entries


class WorktreeStore:
    """Creates, lists and removes git worktrees under a managed base directory.

    Every mutating call checks that its target lies inside ``base_dir`` before
    git is invoked, so a bad path is a ValidationError and never a deletion
    somewhere else on disk.

    Attributes:
        gateway: Gateway for the main repository
        base_dir: Absolute managed directory (default ``<repo>/.worktrees``)
        prefix: Prepended to every name passed to create/get
    """

    def __init__(
        self,
        gateway: GitGateway,
        base_dir: Path | str | None = None,
        prefix: str = "",
    ) -> None:
        base = Path(base_dir).expanduser() if base_dir is not None else DEFAULT_BASE_DIR
        if not base.is_absolute():
            base = gateway.path / base
        self._gateway = gateway
        self._base_dir = Path(os.path.abspath(base))
        self._prefix = prefix

    @property
    def gateway(self) -> GitGateway:
        return self._gateway

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def prefix(self) -> str:
        return self._prefix

    def contains(self, path: Path | str) -> bool:
        """True when path lies strictly inside base_dir.

        The check is lexical first. Symlinked prefixes (macOS maps /var to
        /private/var) are accepted when both sides resolve to the same tree.
        """
        lexical = Path(os.path.abspath(path))
        if _strictly_within(self._base_dir, lexical):
            return True
        return _strictly_within(self._base_dir.resolve(), lexical.resolve())

    def _check_contained(self, path: Path | str) -> Result[Path, ValidationError]:
        if isinstance(check := validate_no_nul("path", str(path)), Err):
            return check
        if not self.contains(path):
            return Err(
                ValidationError(
                    "path is outside the managed worktree directory",
                    context={"path": str(path), "base_dir": str(self._base_dir)},
                )
            )
        return Ok(Path(os.path.abspath(path)))

    def _path_for(self, name: str) -> Result[Path, ValidationError]:
        if isinstance(check := validate_no_nul("name", name), Err):
            return check
        if not name or name in {".", ".."} or "/" in name or "\\" in name or ".." in name:
            return Err(
                ValidationError("invalid worktree name", context={"code": "INVALID_NAME", "name": name})
            )
        return Ok(self._base_dir / f"{self._prefix}{name}")

    async def create(
        self, name: str, branch: str, base_branch: str | None = None
    ) -> Result[WorktreeEntry, TaskgroveError]:
        """Create ``base_dir/<prefix><name>`` with ``branch`` checked out.

        The branch is created from base_branch (or HEAD) when it does not
        exist yet, otherwise the worktree attaches to it.
        """
        match self._path_for(name):
            case Err(err):
                return Err(err)
            case Ok(path):
                return await self.create_at(path, branch, base_branch)

    async def create_at(
        self, path: Path, branch: str, base_branch: str | None = None
    ) -> Result[WorktreeEntry, TaskgroveError]:
        """Like create(), for an explicit path that must lie inside base_dir."""
        if isinstance(check := validate_branch_name(branch), Err):
            return check
        if base_branch and isinstance(check := validate_branch_name(base_branch), Err):
            return check
        match self._check_contained(path):
            case Err(err):
                return Err(err)
            case Ok(target):
                pass

        if await asyncio.to_thread(target.exists):
            return Err(
                ValidationError("worktree path already exists", context={"path": str(target)})
            )

        try:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            return Err(
                ValidationError(f"Failed to create worktree parent: {exc}", context={"path": str(target)})
            )

        match await self._gateway.branch_exists(branch):
            case Err(err):
                return Err(err)
            case Ok(exists):
                pass

        if exists:
            result = await self._gateway.worktree_add(target, branch)
        else:
            result = await self._gateway.worktree_add(
                target, branch, new_branch=True, start_point=base_branch
            )
        if isinstance(result, Err):
            return result

        logger.debug("Created worktree %s on %s", target, branch)
        head = (await self._gateway.at(target).head(short=False)).unwrap_or("")
        return Ok(
            WorktreeEntry(path=target, branch=branch, head=head, created_at=datetime.now(UTC))
        )

    async def create_detached(self, name: str, commit: str) -> Result[WorktreeEntry, TaskgroveError]:
        """Create a worktree with a detached HEAD at commit."""
        match self._path_for(name):
            case Err(err):
                return Err(err)
            case Ok(path):
                pass
        if await asyncio.to_thread(path.exists):
            return Err(ValidationError("worktree path already exists", context={"path": str(path)}))

        try:
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            return Err(
                ValidationError(f"Failed to create worktree parent: {exc}", context={"path": str(path)})
            )

        match await self._gateway.worktree_add(path, detach=True, start_point=commit):
            case Err(err):
                return Err(err)
            case Ok(_):
                pass
        head = (await self._gateway.at(path).head(short=False)).unwrap_or("")
        return Ok(
            WorktreeEntry(path=path, branch="", head=head, detached=True, created_at=datetime.now(UTC))
        )

    async def get(self, name: str) -> Result[WorktreeEntry, TaskgroveError]:
        match self._path_for(name):
            case Err(err):
                return Err(err)
            case Ok(path):
                pass
        match await self.list_managed():
            case Err(err):
                return Err(err)
            case Ok(entries):
                pass
        wanted = path.resolve()
        for entry in entries:
            if entry.path.resolve() == wanted:
                return Ok(entry)
        return Err(NotFoundError(f"worktree not found: {name}", context={"path": str(path)}))

    async def remove(self, path: Path | str, *, force: bool = False) -> Result[None, TaskgroveError]:
        """Remove a managed worktree.

        Paths outside base_dir are rejected whether or not they exist.
        """
        match self._check_contained(path):
            case Err(err):
                return Err(err)
            case Ok(target):
                pass
        result = await self._gateway.worktree_remove(target, force=force)
        if isinstance(result, Ok):
            logger.debug("Removed worktree %s", target)
        return result

    async def list(self) -> Result[list[WorktreeEntry], TaskgroveError]:
        """All worktrees of the repository, the primary checkout included."""
        match await self._gateway.worktree_list():
            case Err(err):
                return Err(err)
            case Ok(entries):
                return Ok(await asyncio.to_thread(_with_timestamps, entries))

    async def list_managed(self) -> Result[list[WorktreeEntry], TaskgroveError]:
        match await self.list():
            case Err(err):
                return Err(err)
            case Ok(entries):
                return Ok([entry for entry in entries if self.contains(entry.path)])

    async def lock(self, path: Path | str, reason: str | None = None) -> Result[None, TaskgroveError]:
        match self._check_contained(path):
            case Err(err):
                return Err(err)
            case Ok(target):
                return await self._gateway.worktree_lock(target, reason)

    async def unlock(self, path: Path | str) -> Result[None, TaskgroveError]:
        match self._check_contained(path):
            case Err(err):
                return Err(err)
            case Ok(target):
                return await self._gateway.worktree_unlock(target)

    async def prune(self, *, dry_run: bool = False) -> Result[list[str], TaskgroveError]:
        return await self._gateway.worktree_prune(dry_run=dry_run)

    async def cleanup_stale(self, max_age: timedelta) -> Result[int, TaskgroveError]:
        """Remove managed worktrees that git flags prunable or that are older than max_age.

        A worktree that cannot be removed is logged and skipped. Returns the
        number of worktrees removed.
        """
        match await self.list_managed():
            case Err(err):
                return Err(err)
            case Ok(entries):
                pass

        now = datetime.now(UTC)
        removed = 0
        pruned_candidates = 0
        for entry in entries:
            if entry.locked:
                continue
            if entry.prunable and entry.created_at is None:
                # Directory is gone; only git's metadata is left for prune.
                pruned_candidates += 1
                continue
            expired = entry.created_at is not None and now - entry.created_at >= max_age
            if not (entry.prunable or expired):
                continue
            match await self.remove(entry.path, force=True):
                case Ok(_):
                    removed += 1
                case Err(err):
                    logger.warning("Skipping stale worktree %s: %s", entry.path, err)

        match await self.prune():
            case Ok(_):
                removed += pruned_candidates
            case Err(err):
                logger.warning("Worktree prune after stale cleanup failed: %s", err)

        if removed:
            logger.info("Removed %d stale worktrees", removed)
        return Ok(removed)


__all__ = ["DEFAULT_BASE_DIR", "WorktreeEntry", "WorktreeStore"]

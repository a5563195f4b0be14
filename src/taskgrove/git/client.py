from __future__ import annotations

import asyncio
import contextlib
import os
import shutil
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from taskgrove.core.result import (
    CommandFailure,
    CommandTimeoutError,
    ConflictError,
    Err,
    ExecutionError,
    FailureKind,
    GitError,
    NotFoundError,
    Ok,
    Result,
    TaskgroveError,
    ValidationError,
)

from .errors import error_from_failure
from .validation import (
    validate_branch_name,
    validate_message,
    validate_no_nul,
    validate_option_value,
    validate_path_arg,
    validate_rev,
)

DEFAULT_TIMEOUT = 30.0

# Stable, untranslated output for the classification table in errors.py, and
# no interactive prompts from a subprocess nobody is watching.
_GIT_ENV = {
    "LC_ALL": "C",
    "LANG": "C",
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_MERGE_AUTOEDIT": "no",
}


@dataclass(slots=True)
class CommandResult:
    """Raw outcome of one git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def as_failure(self) -> CommandFailure:
        return CommandFailure(
            args=self.args, returncode=self.returncode, stdout=self.stdout, stderr=self.stderr
        )


@dataclass
class RepoStatus:
    path: Path
    branch: str
    upstream: str | None
    ahead: int
    behind: int
    staged: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    untracked: list[str] = field(default_factory=list)
    conflicted: list[str] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicted)

    @property
    def is_clean(self) -> bool:
        return not (self.staged or self.modified or self.untracked or self.conflicted)


@dataclass
class WorktreeInfo:
    """Information about a git worktree."""

    path: Path
    branch: str
    head: str
    detached: bool = False
    locked: bool = False
    prunable: bool = False
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class MergeOptions:
    """Low-level flags for a direct `git merge`."""

    message: str | None = None
    squash: bool = False
    no_commit: bool = False
    no_fast_forward: bool = False
    strategy: str | None = None
    strategy_option: str | None = None


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
    await process.wait()


async def execute(
    git_path: Path, cwd: Path, args: Sequence[str], timeout: float
) -> Result[CommandResult, GitError]:
    """Run git once and return its raw output.

    Only launch failures and timeouts are errors here; a non-zero exit is a
    regular CommandResult for the caller to interpret. On timeout or task
    cancellation the subprocess is killed before returning.
    """
    argv = tuple(args)
    try:
        process = await asyncio.create_subprocess_exec(
            str(git_path),
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL,
            cwd=cwd,
            env={**os.environ, **_GIT_ENV},
        )
    except FileNotFoundError:
        return Err(
            ExecutionError("git executable not found", context={"git": str(git_path), "cwd": str(cwd)})
        )
    except OSError as exc:
        return Err(
            ExecutionError(
                "Failed to start git",
                context={"cwd": str(cwd), "args": list(argv), "error": str(exc)},
            )
        )

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill(process)
        return Err(
            CommandTimeoutError(
                f"git {argv[0] if argv else ''} timed out after {timeout:g}s",
                context={"cwd": str(cwd), "args": list(argv)},
                kind=FailureKind.TIMEOUT,
            )
        )
    except asyncio.CancelledError:
        await _kill(process)
        raise

    returncode = process.returncode if process.returncode is not None else -1
    return Ok(CommandResult(argv, returncode, _decode(stdout), _decode(stderr)))


def is_path_within(root: Path, path: Path) -> bool:
    """Lexical containment check on absolute paths (no filesystem access)."""
    root_abs = Path(os.path.abspath(root))
    path_abs = Path(os.path.abspath(path))
    return path_abs == root_abs or root_abs in path_abs.parents


def resolve_git_binary(repo_root: Path, executable: str = "git") -> Result[Path, TaskgroveError]:
    """Locate git on PATH and refuse binaries that could have been planted.

    The binary is resolved through symlinks, must be a regular executable
    file, and must not live inside the repository: a PATH containing "." or
    a repo directory would otherwise let the repository choose which "git"
    runs.
    """
    found = shutil.which(executable)
    if found is None:
        return Err(ExecutionError(f"{executable} not found in PATH"))

    real = Path(found).resolve()
    if not real.is_file():
        return Err(ExecutionError("git binary is not a regular file", context={"path": str(real)}))
    if os.name != "nt" and not os.access(real, os.X_OK):
        return Err(ExecutionError("git binary is not executable", context={"path": str(real)}))

    if is_path_within(repo_root.resolve(), real):
        return Err(
            ValidationError(
                "refusing to execute git from within repository", context={"path": str(real)}
            )
        )
    return Ok(real)


def _safe_int(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _parse_status_output(raw: str, repo_path: Path) -> RepoStatus:
    """Parse `git status --porcelain=v2 --branch -z`."""
    status = RepoStatus(path=repo_path, branch="(unknown)", upstream=None, ahead=0, behind=0)

    entries = raw.split("\0")
    skip_next = False
    for entry in entries:
        if skip_next:
            # Rename/copy records carry the original path as a separate field.
            skip_next = False
            continue
        if not entry:
            continue
        if entry.startswith("#"):
            parts = entry.split()
            if len(parts) >= 3 and parts[1] == "branch.head":
                status.branch = parts[2]
            elif len(parts) >= 3 and parts[1] == "branch.upstream":
                status.upstream = parts[2]
            elif len(parts) >= 4 and parts[1] == "branch.ab":
                status.ahead = _safe_int(parts[2].lstrip("+"))
                status.behind = _safe_int(parts[3].lstrip("-"))
            continue

        kind = entry[0]
        if kind in {"1", "2"}:
            fields = entry.split(" ", 9 if kind == "2" else 8)
            if len(fields) < 9:
                continue
            xy = fields[1]
            path = fields[-1]
            if xy[0] != ".":
                status.staged.append(path)
            if len(xy) > 1 and xy[1] != ".":
                status.modified.append(path)
            skip_next = kind == "2"
        elif kind == "u":
            fields = entry.split(" ", 10)
            if len(fields) == 11:
                status.conflicted.append(fields[10])
        elif kind == "?":
            status.untracked.append(entry[2:])

    return status


def _parse_worktree_list(output: str) -> list[WorktreeInfo]:
    """Parse `git worktree list --porcelain` output."""
    worktrees: list[WorktreeInfo] = []
    current: WorktreeInfo | None = None

    for raw_line in output.splitlines():
        line = raw_line.strip()
        if line.startswith("worktree "):
            if current is not None:
                worktrees.append(current)
            current = WorktreeInfo(path=Path(line[9:]), branch="", head="")
            continue
        if current is None:
            continue

        if line.startswith("HEAD "):
            current.head = line[5:]
        elif line.startswith("branch "):
            current.branch = line[7:].removeprefix("refs/heads/")
        elif line == "detached":
            current.detached = True
        elif line == "locked" or line.startswith("locked "):
            current.locked = True
        elif line == "prunable" or line.startswith("prunable "):
            current.prunable = True

    if current is not None:
        worktrees.append(current)

    return worktrees


def _parse_pruned(output: str) -> list[str]:
    pruned: list[str] = []
    for line in output.splitlines():
        if "Removing " not in line:
            continue
        target = line.split("Removing ", 1)[1].split(":", 1)[0].strip()
        if target:
            pruned.append(target)
    return pruned


class GitGateway:
    """Async gateway to the git executable for one directory.

    Every call starts a fresh subprocess against live repository state; the
    gateway caches nothing. Use `GitGateway.open()` to construct one with the
    binary and repository checks applied, and `at()` to derive a gateway for
    another worktree of the same repository.
    """

    def __init__(self, root: Path, git_path: Path, *, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._root = root
        self._git_path = git_path
        self._timeout = timeout

    @property
    def path(self) -> Path:
        return self._root

    @property
    def git_path(self) -> Path:
        return self._git_path

    @property
    def timeout(self) -> float:
        return self._timeout

    @classmethod
    async def open(
        cls,
        path: Path | str = ".",
        *,
        timeout: float = DEFAULT_TIMEOUT,
        executable: str = "git",
    ) -> Result[GitGateway, TaskgroveError]:
        root = Path(path).expanduser().resolve()
        if not root.is_dir():
            return Err(ValidationError("Repository path does not exist", context={"path": str(root)}))

        match resolve_git_binary(root, executable):
            case Err(err):
                return Err(err)
            case Ok(git_path):
                pass

        probe = cls(root, git_path, timeout=timeout)
        match await probe.run("rev-parse", "--show-toplevel"):
            case Err(CommandTimeoutError() as err):
                return Err(err)
            case Err(err):
                return Err(
                    ValidationError(
                        f"{root} is not a git repository",
                        context={"path": str(root), "error": err.message},
                    )
                )
            case Ok(toplevel):
                top = Path(toplevel).resolve()

        if is_path_within(top, git_path):
            return Err(
                ValidationError(
                    "refusing to execute git from within repository",
                    context={"path": str(git_path)},
                )
            )
        return Ok(cls(top, git_path, timeout=timeout))

    def at(self, path: Path) -> GitGateway:
        """Return a gateway running in another worktree of the same repository."""
        return GitGateway(path, self._git_path, timeout=self._timeout)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def run_with_output(self, *args: str) -> Result[CommandResult, GitError]:
        """Run git and return stdout/stderr even when the exit status is non-zero."""
        if not self._root.exists():
            return Err(
                NotFoundError("Working directory does not exist", context={"cwd": str(self._root)})
            )
        return await execute(self._git_path, self._root, args, self._timeout)

    async def run(self, *args: str) -> Result[str, GitError]:
        """Run git and return trimmed stdout, or a classified error."""
        match await self.run_with_output(*args):
            case Err(err):
                return Err(err)
            case Ok(result):
                if not result.ok:
                    return Err(error_from_failure(result.as_failure(), cwd=str(self._root)))
                return Ok(result.stdout.strip())

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def current_branch(self) -> Result[str, GitError]:
        return await self.run("rev-parse", "--abbrev-ref", "HEAD")

    async def head(self, short: bool = True) -> Result[str, GitError]:
        args = ["rev-parse", "--short", "HEAD"] if short else ["rev-parse", "HEAD"]
        return await self.run(*args)

    async def rev_parse(self, ref: str, *, short: int | None = None) -> Result[str, TaskgroveError]:
        """Resolve a ref to a commit sha, optionally abbreviated."""
        if isinstance(check := validate_rev(ref), Err):
            return check
        args = ["rev-parse", "--verify", "--quiet"]
        if short:
            args.append(f"--short={short}")
        args.append(f"{ref}^{{commit}}")
        match await self.run_with_output(*args):
            case Err(err):
                return Err(err)
            case Ok(result):
                if not result.ok:
                    return Err(
                        NotFoundError(
                            f"revision not found: {ref}",
                            kind=FailureKind.NOT_FOUND,
                            failure=result.as_failure(),
                        )
                    )
                return Ok(result.stdout.strip())

    async def status(self) -> Result[RepoStatus, GitError]:
        match await self.run_with_output("status", "--porcelain=v2", "--branch", "-z"):
            case Err(err):
                return Err(err)
            case Ok(result):
                if not result.ok:
                    return Err(error_from_failure(result.as_failure(), cwd=str(self._root)))
                return Ok(_parse_status_output(result.stdout, self._root))

    async def has_uncommitted_changes(self) -> Result[bool, GitError]:
        return (await self.status()).map(lambda status: not status.is_clean)

    async def conflict_files(self) -> Result[list[str], GitError]:
        """List paths with unresolved conflicts in this worktree."""
        match await self.run("diff", "--name-only", "--diff-filter=U"):
            case Ok(output):
                return Ok([line.strip() for line in output.splitlines() if line.strip()])
            case Err(err):
                return Err(err)

    async def list_branches(self, pattern: str | None = None) -> Result[list[str], TaskgroveError]:
        """List local branch names, optionally filtered by a glob pattern."""
        args = ["branch", "--list", "--format=%(refname:short)"]
        if pattern is not None:
            if isinstance(check := validate_rev(pattern), Err):
                return check
            args.append(pattern)
        match await self.run(*args):
            case Ok(output):
                return Ok([line.strip() for line in output.splitlines() if line.strip()])
            case Err(err):
                return Err(err)

    async def branch_exists(self, name: str) -> Result[bool, TaskgroveError]:
        if isinstance(check := validate_branch_name(name), Err):
            return check
        match await self.run_with_output("show-ref", "--verify", "--quiet", f"refs/heads/{name}"):
            case Err(err):
                return Err(err)
            case Ok(result):
                if result.returncode == 0:
                    return Ok(True)
                if result.returncode == 1:
                    return Ok(False)
                return Err(error_from_failure(result.as_failure(), cwd=str(self._root)))

    async def default_branch(self) -> Result[str, GitError]:
        """Return the remote-tracked default branch, else main, else master, else "main"."""
        match await self.run("symbolic-ref", "refs/remotes/origin/HEAD"):
            case Ok(ref) if ref:
                return Ok(ref.removeprefix("refs/remotes/origin/"))
            case Err(CommandTimeoutError() as err):
                return Err(err)
            case _:
                pass

        for candidate in ("main", "master"):
            match await self.branch_exists(candidate):
                case Ok(True):
                    return Ok(candidate)
                case Err(CommandTimeoutError() as err):
                    return Err(err)
                case _:
                    continue
        return Ok("main")

    async def is_ancestor(self, ancestor: str, descendant: str) -> Result[bool, TaskgroveError]:
        """True when every commit of `ancestor` is reachable from `descendant`."""
        for rev in (ancestor, descendant):
            if isinstance(check := validate_rev(rev), Err):
                return check
        match await self.run_with_output("merge-base", "--is-ancestor", ancestor, descendant):
            case Err(err):
                return Err(err)
            case Ok(result):
                if result.returncode == 0:
                    return Ok(True)
                if result.returncode == 1:
                    return Ok(False)
                return Err(error_from_failure(result.as_failure(), cwd=str(self._root)))

    async def ahead_behind(
        self, branch: str, base: str, *, first_parent: bool = True
    ) -> Result[tuple[int, int], TaskgroveError]:
        """Return (ahead, behind) of `branch` relative to `base`.

        With ``first_parent`` a no-fast-forward merge counts as one commit,
        regardless of how many commits the merged branch carried.
        """
        for rev in (branch, base):
            if isinstance(check := validate_rev(rev), Err):
                return check
        args = ["rev-list", "--left-right", "--count"]
        if first_parent:
            args.append("--first-parent")
        args.append(f"{base}...{branch}")
        match await self.run(*args):
            case Err(err):
                return Err(err)
            case Ok(output):
                parts = output.split()
                if len(parts) != 2:
                    return Err(ExecutionError("unexpected rev-list output", context={"output": output}))
                behind, ahead = (_safe_int(part) for part in parts)
                return Ok((ahead, behind))

    async def unique_commits(self, base: str, head: str) -> Result[list[str], TaskgroveError]:
        """Commits on `head` missing from `base`, oldest first.

        Merge commits and commits whose patch is already on `base` are left
        out, so replaying the list with cherry-pick is repeatable.
        """
        for rev in (base, head):
            if isinstance(check := validate_rev(rev), Err):
                return check
        match await self.run(
            "rev-list", "--reverse", "--no-merges", "--right-only", "--cherry-pick", f"{base}...{head}"
        ):
            case Err(err):
                return Err(err)
            case Ok(output):
                return Ok([line.strip() for line in output.splitlines() if line.strip()])

    # -------------------------------------------------------------------------
    # Branch and commit operations
    # -------------------------------------------------------------------------

    async def create_branch(
        self, name: str, start_point: str | None = None
    ) -> Result[None, TaskgroveError]:
        """Create a branch without checking it out.

        The current branch of this worktree is never touched.
        """
        if isinstance(check := validate_branch_name(name), Err):
            return check
        args = ["branch", name]
        if start_point:
            if isinstance(check := validate_rev(start_point), Err):
                return check
            args.append(start_point)
        result = await self.run(*args)
        return result.map(lambda _: None)

    async def delete_branch(self, name: str, *, force: bool = False) -> Result[None, TaskgroveError]:
        if isinstance(check := validate_branch_name(name), Err):
            return check
        flag = "-D" if force else "-d"
        result = await self.run("branch", flag, name)
        return result.map(lambda _: None)

    async def update_ref(
        self, ref: str, new_value: str, old_value: str | None = None, *, reason: str | None = None
    ) -> Result[None, TaskgroveError]:
        """Point `ref` at `new_value`, only if it still equals `old_value` when given."""
        for rev in (ref, new_value, *(v for v in (old_value,) if v)):
            if isinstance(check := validate_rev(rev), Err):
                return check
        args = ["update-ref"]
        if reason:
            if isinstance(check := validate_message(reason), Err):
                return check
            args.extend(["-m", reason])
        args.extend([ref, new_value])
        if old_value:
            args.append(old_value)
        result = await self.run(*args)
        return result.map(lambda _: None)

    async def add(
        self, *, all: bool = False, paths: Sequence[Path | str] | None = None
    ) -> Result[None, TaskgroveError]:
        args: list[str] = ["add"]
        if all:
            args.append("--all")
        elif paths:
            values = [str(path) for path in paths]
            for value in values:
                if isinstance(check := validate_path_arg(value), Err):
                    return check
            # "--" keeps a path starting with "-" from being read as an option.
            args.extend(["--", *values])
        else:
            return Ok(None)
        result = await self.run(*args)
        return result.map(lambda _: None)

    async def commit(self, message: str) -> Result[str, TaskgroveError]:
        if isinstance(check := validate_message(message), Err):
            return check
        match await self.run("commit", "-m", message):
            case Err(err):
                return Err(err)
            case Ok(_):
                pass
        return await self.head(short=False)

    async def commit_all(self, message: str) -> Result[str, TaskgroveError]:
        """Stage all changes and commit. Returns the commit SHA."""
        match await self.add(all=True):
            case Err(err):
                return Err(err)
            case Ok(_):
                pass
        return await self.commit(message)

    # -------------------------------------------------------------------------
    # Merge operations
    # -------------------------------------------------------------------------

    async def merge(
        self, branch: str, options: MergeOptions | None = None
    ) -> Result[str, TaskgroveError]:
        """Merge a branch into this worktree's HEAD.

        Returns:
            Ok(head_sha) on success or when already up to date,
            Err(ConflictError) when the merge stopped on conflicts (the merge
            is left in progress; call merge_abort()),
            Err(NotFoundError) when the branch does not exist.
        """
        opts = options or MergeOptions()
        if isinstance(check := validate_rev(branch), Err):
            return check

        args = ["merge"]
        if opts.strategy:
            if isinstance(check := validate_option_value("strategy", opts.strategy), Err):
                return check
            args.extend(["-s", opts.strategy])
        if opts.strategy_option:
            if isinstance(
                check := validate_option_value("strategy option", opts.strategy_option), Err
            ):
                return check
            args.extend(["-X", opts.strategy_option])
        if opts.no_commit:
            args.append("--no-commit")
        if opts.no_fast_forward:
            args.append("--no-ff")
        if opts.squash:
            args.append("--squash")
        if opts.message:
            if isinstance(check := validate_message(opts.message), Err):
                return check
            args.extend(["-m", opts.message])
        args.append(branch)

        match await self.run_with_output(*args):
            case Err(err):
                return Err(err)
            case Ok(result):
                pass

        if not result.ok:
            err = error_from_failure(result.as_failure(), cwd=str(self._root))
            if err.kind is not FailureKind.UP_TO_DATE:
                return Err(err)
        return await self.head(short=False)

    async def merge_abort(self) -> Result[None, GitError]:
        """Abort an in-progress merge; succeeds when none is in progress."""
        return await self._abort("merge", "--abort")

    async def cherry_pick(self, commit: str) -> Result[str, TaskgroveError]:
        """Apply one commit onto HEAD. Returns the new head sha."""
        if isinstance(check := validate_rev(commit), Err):
            return check
        match await self.run_with_output("cherry-pick", commit):
            case Err(err):
                return Err(err)
            case Ok(result):
                pass
        if not result.ok:
            err = error_from_failure(result.as_failure(), cwd=str(self._root))
            if isinstance(err, ConflictError):
                err.commit = commit
            return Err(err)
        return await self.head(short=False)

    async def cherry_pick_abort(self) -> Result[None, GitError]:
        return await self._abort("cherry-pick", "--abort")

    async def cherry_pick_skip(self) -> Result[None, GitError]:
        return await self._abort("cherry-pick", "--skip")

    async def _abort(self, *args: str) -> Result[None, GitError]:
        match await self.run(*args):
            case Ok(_):
                return Ok(None)
            case Err(err) if err.kind is FailureKind.NOTHING_IN_PROGRESS:
                return Ok(None)
            case Err(err):
                return Err(err)

    # -------------------------------------------------------------------------
    # Worktree operations
    # -------------------------------------------------------------------------

    async def worktree_add(
        self,
        path: Path,
        branch: str | None = None,
        *,
        new_branch: bool = False,
        start_point: str | None = None,
        detach: bool = False,
    ) -> Result[Path, TaskgroveError]:
        """Create a new worktree.

        Args:
            path: Directory for the new worktree
            branch: Branch to check out (created when new_branch=True)
            new_branch: If True, create the branch with -b
            start_point: Base commit/branch for a new branch or detached HEAD
            detach: Check out start_point with a detached HEAD

        Returns:
            Ok(worktree_path) on success, Err on failure
        """
        if isinstance(check := validate_path_arg(str(path)), Err):
            return check
        if start_point and isinstance(check := validate_rev(start_point), Err):
            return check

        if detach:
            args = ["worktree", "add", "--detach", "--", str(path), start_point or "HEAD"]
        elif branch is None:
            return Err(ValidationError("worktree_add needs a branch unless detached"))
        else:
            if isinstance(check := validate_branch_name(branch), Err):
                return check
            if new_branch:
                args = ["worktree", "add", "-b", branch, "--", str(path)]
                if start_point:
                    args.append(start_point)
            else:
                args = ["worktree", "add", "--", str(path), branch]

        match await self.run(*args):
            case Ok(_):
                return Ok(path.resolve())
            case Err(err):
                return Err(err)

    async def worktree_remove(self, path: Path, *, force: bool = False) -> Result[None, TaskgroveError]:
        """Remove a worktree. With force, uncommitted changes are discarded."""
        if isinstance(check := validate_path_arg(str(path)), Err):
            return check
        args = ["worktree", "remove"]
        if force:
            args.append("--force")
        args.extend(["--", str(path)])
        result = await self.run(*args)
        return result.map(lambda _: None)

    async def worktree_list(self) -> Result[list[WorktreeInfo], GitError]:
        match await self.run("worktree", "list", "--porcelain"):
            case Ok(output):
                return Ok(_parse_worktree_list(output))
            case Err(err):
                return Err(err)

    async def worktree_lock(
        self, path: Path, reason: str | None = None
    ) -> Result[None, TaskgroveError]:
        if isinstance(check := validate_path_arg(str(path)), Err):
            return check
        args = ["worktree", "lock"]
        if reason:
            if isinstance(check := validate_no_nul("reason", reason), Err):
                return check
            args.extend(["--reason", reason])
        args.extend(["--", str(path)])
        result = await self.run(*args)
        return result.map(lambda _: None)

    async def worktree_unlock(self, path: Path) -> Result[None, TaskgroveError]:
        if isinstance(check := validate_path_arg(str(path)), Err):
            return check
        result = await self.run("worktree", "unlock", "--", str(path))
        return result.map(lambda _: None)

    async def worktree_prune(self, *, dry_run: bool = False) -> Result[list[str], GitError]:
        """Prune stale worktree administrative entries.

        Returns the entries git reported as removed (or removable, for a dry run).
        """
        args = ["worktree", "prune", "--verbose"]
        if dry_run:
            args.append("--dry-run")
        match await self.run_with_output(*args):
            case Err(err):
                return Err(err)
            case Ok(result):
                if not result.ok:
                    return Err(error_from_failure(result.as_failure(), cwd=str(self._root)))
                return Ok(_parse_pruned(f"{result.stdout}\n{result.stderr}"))


async def is_repo(path: Path | str = ".") -> bool:
    """Return True when `path` opens as a git repository."""
    return (await GitGateway.open(path)).is_ok()


__all__ = [
    "DEFAULT_TIMEOUT",
    "CommandResult",
    "GitGateway",
    "MergeOptions",
    "RepoStatus",
    "WorktreeInfo",
    "execute",
    "is_path_within",
    "is_repo",
    "resolve_git_binary",
]

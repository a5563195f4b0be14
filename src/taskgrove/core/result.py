"""
Unified Result types and error hierarchy for taskgrove.

This module provides:
1. Result[T, E] type for explicit error handling
2. Domain-specific exception hierarchy
3. Helper functions for Result operations

Usage:
    from taskgrove.core.result import Ok, Err, Result, ValidationError

    def parse_branch(name: str) -> Result[str, ValidationError]:
        if not name:
            return Err(ValidationError("branch name must not be empty"))
        return Ok(name)

    match parse_branch(raw):
        case Ok(branch):
            ...
        case Err(err):
            print(err.message)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E", bound=Exception)
F = TypeVar("F", bound=Exception)


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Represents a successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Return the contained value."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return the contained value (ignores default for Ok)."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply a function to the contained value."""
        return Ok(fn(self.value))

    def map_err(self, fn: Callable[[E], F]) -> Ok[T]:
        """No-op for Ok - returns self unchanged."""
        return self

    def and_then(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Chain operations that may fail."""
        return fn(self.value)


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Represents a failed result containing an error."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the contained error."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        """Return the default value."""
        return default

    def map(self, fn: Callable[[T], U]) -> Err[E]:
        """No-op for Err - returns self unchanged."""
        return self

    def map_err(self, fn: Callable[[E], F]) -> Err[F]:
        """Apply a function to the contained error."""
        return Err(fn(self.error))

    def and_then(self, fn: Callable[[T], Result[U, E]]) -> Err[E]:
        """Short-circuit for Err - returns self unchanged."""
        return self


# Type alias for Result
Result = Ok[T] | Err[E]


# ---------------------------------------------------------------------------
# Domain-specific error hierarchy
# ---------------------------------------------------------------------------


class TaskgroveError(Exception):
    """Base exception for all taskgrove errors.

    All custom exceptions inherit from this class so callers can catch
    (or match on) a single type at the library boundary.
    """

    def __init__(self, message: str, *, context: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class ValidationError(TaskgroveError):
    """Raised for input validation failures.

    Always detected before any subprocess is started, so a ValidationError
    guarantees that nothing was changed on disk or in the ref namespace.

    Examples:
    - Branch name starting with '-' or containing '..'
    - Worktree path outside the managed base directory
    - Unknown merge strategy
    """


class ConfigurationError(TaskgroveError):
    """Raised for configuration issues.

    Examples:
    - Config file parse errors
    - Invalid config values
    """


class FailureKind(str, Enum):
    """Classification of a failed git invocation."""

    CONFLICT = "conflict"
    EMPTY_PICK = "empty_pick"
    NOTHING_IN_PROGRESS = "nothing_in_progress"
    UP_TO_DATE = "up_to_date"
    ALREADY_EXISTS = "already_exists"
    CHECKED_OUT = "checked_out"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    GENERIC = "generic"


@dataclass(frozen=True, slots=True)
class CommandFailure:
    """Raw evidence of a failed git invocation."""

    args: tuple[str, ...]
    returncode: int | None
    stdout: str
    stderr: str


class GitError(TaskgroveError):
    """Base class for failures at the git subprocess boundary."""

    def __init__(
        self,
        message: str,
        *,
        context: dict | None = None,
        kind: FailureKind = FailureKind.GENERIC,
        failure: CommandFailure | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.kind = kind
        self.failure = failure

    @property
    def stderr(self) -> str:
        return self.failure.stderr if self.failure else ""


class CommandTimeoutError(GitError):
    """Raised when a git command exceeds its deadline and is killed."""


class ConflictError(GitError):
    """Raised when a merge or cherry-pick stops on unresolved conflicts.

    The in-progress operation has already been aborted when this error
    reaches the caller.
    """

    def __init__(
        self,
        message: str,
        *,
        context: dict | None = None,
        kind: FailureKind = FailureKind.CONFLICT,
        failure: CommandFailure | None = None,
        task_id: str | None = None,
        commit: str | None = None,
    ) -> None:
        super().__init__(message, context=context, kind=kind, failure=failure)
        self.task_id = task_id
        self.commit = commit


class NotFoundError(GitError):
    """Raised when a branch, ref, worktree or workflow does not exist."""


class ExecutionError(GitError):
    """Raised for any other non-zero git exit; carries the raw stderr."""


class AlreadyExistsError(ExecutionError):
    """Raised when git refuses to create something that already exists."""


class MergeBatchError(TaskgroveError):
    """Aggregate of per-task failures from a batch merge.

    Attributes:
        failures: Mapping of task id to the error that stopped its merge
        merged: Task ids that merged successfully before or after the failures
    """

    def __init__(
        self,
        failures: dict[str, TaskgroveError],
        merged: list[str] | None = None,
        *,
        context: dict | None = None,
    ) -> None:
        detail = "; ".join(f"task {task_id}: {err}" for task_id, err in failures.items())
        super().__init__(f"merge errors: {detail}", context=context)
        self.failures = failures
        self.merged = merged or []


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def try_result(fn: Callable[[], T], error_type: type[E] = TaskgroveError) -> Result[T, E]:
    """Execute a function and wrap the result in Ok/Err.

    Args:
        fn: Function to execute
        error_type: Exception type to catch (default: TaskgroveError)

    Returns:
        Ok(value) on success, Err(exception) on failure
    """
    try:
        return Ok(fn())
    except error_type as exc:
        return Err(exc)


def collect_results(results: list[Result[T, E]]) -> Result[list[T], E]:
    """Collect a list of Results into a Result of list.

    Returns Err on first error, Ok(list) if all succeed.
    """
    values: list[T] = []
    for result in results:
        if result.is_err():
            return result  # type: ignore[return-value]
        values.append(result.unwrap())
    return Ok(values)


__all__ = [
    # Result types
    "Ok",
    "Err",
    "Result",
    # Error hierarchy
    "TaskgroveError",
    "ValidationError",
    "ConfigurationError",
    "FailureKind",
    "CommandFailure",
    "GitError",
    "CommandTimeoutError",
    "ConflictError",
    "NotFoundError",
    "ExecutionError",
    "AlreadyExistsError",
    "MergeBatchError",
    # Helpers
    "try_result",
    "collect_results",
]

"""Classification of failed git invocations.

git has no structured error protocol, so the only way to tell a merge
conflict from a missing branch is to look at what it printed. All of that
substring matching lives in FAILURE_RULES below and nowhere else; call sites
branch on ``GitError.kind`` instead of inspecting stderr themselves.

Every subprocess is started with ``LC_ALL=C`` so these phrases are the
untranslated ones. They are still tied to git's wording and may drift between
git releases.
"""

from __future__ import annotations

from dataclasses import dataclass

from taskgrove.core.result import (
    AlreadyExistsError,
    CommandFailure,
    ConflictError,
    ExecutionError,
    FailureKind,
    GitError,
    NotFoundError,
)


@dataclass(frozen=True, slots=True)
class FailureRule:
    """One row of the classification table.

    A rule matches when any needle occurs in the combined stdout/stderr.
    Matching is case-insensitive unless ``case_sensitive`` is set.
    """

    kind: FailureKind
    needles: tuple[str, ...]
    case_sensitive: bool = False

    def matches(self, text: str, folded: str) -> bool:
        haystack = text if self.case_sensitive else folded
        for needle in self.needles:
            if (needle if self.case_sensitive else needle.lower()) in haystack:
                return True
        return False


# Order matters: the first matching rule wins. Conflicts come first because a
# conflicting merge also prints generic "error:" and "fatal:" lines.
FAILURE_RULES: tuple[FailureRule, ...] = (
    FailureRule(FailureKind.CONFLICT, ("CONFLICT (",), case_sensitive=True),
    FailureRule(
        FailureKind.CONFLICT,
        (
            "Automatic merge failed",
            "could not apply",
            "after resolving the conflicts",
            "fix conflicts and then commit",
        ),
    ),
    FailureRule(
        FailureKind.EMPTY_PICK,
        ("cherry-pick is now empty", "is now empty, possibly due to conflict resolution"),
    ),
    FailureRule(
        FailureKind.NOTHING_IN_PROGRESS,
        (
            "no merge to abort",
            "MERGE_HEAD missing",
            "no cherry-pick or revert in progress",
            "no cherry-pick in progress",
            "no rebase in progress",
        ),
    ),
    FailureRule(FailureKind.UP_TO_DATE, ("Already up to date", "Already up-to-date")),
    FailureRule(FailureKind.ALREADY_EXISTS, ("already exists",)),
    FailureRule(
        FailureKind.CHECKED_OUT,
        ("is already checked out at", "is already used by worktree at", "checked out at"),
    ),
    FailureRule(
        FailureKind.NOT_FOUND,
        (
            "not something we can merge",
            "unknown revision",
            "not a valid object name",
            "bad revision",
            "invalid reference",
            "is not a working tree",
            "did not match any",
            "not found",
            "no such ref",
            "does not exist",
        ),
    ),
)


_ERROR_TYPES: dict[FailureKind, type[GitError]] = {
    FailureKind.CONFLICT: ConflictError,
    FailureKind.NOT_FOUND: NotFoundError,
    FailureKind.ALREADY_EXISTS: AlreadyExistsError,
}


def classify_failure(stdout: str, stderr: str) -> FailureKind:
    """Return the kind of the first rule matching the command output."""
    text = f"{stdout}\n{stderr}"
    folded = text.lower()
    for rule in FAILURE_RULES:
        if rule.matches(text, folded):
            return rule.kind
    return FailureKind.GENERIC


def error_from_failure(failure: CommandFailure, *, cwd: str | None = None) -> GitError:
    """Build the classified GitError for a non-zero git exit."""
    kind = classify_failure(failure.stdout, failure.stderr)
    error_type = _ERROR_TYPES.get(kind, ExecutionError)
    detail = (
        failure.stderr.strip()
        or failure.stdout.strip()
        or f"git {' '.join(failure.args)} failed"
    )
    context: dict[str, object] = {"args": list(failure.args), "returncode": failure.returncode}
    if cwd is not None:
        context["cwd"] = cwd
    return error_type(detail, context=context, kind=kind, failure=failure)


__all__ = [
    "FAILURE_RULES",
    "FailureRule",
    "classify_failure",
    "error_from_failure",
]

"""Hardened async access to the git executable.

This package provides:
    - GitGateway: Subprocess gateway with timeouts and argument validation
    - errors: The single table classifying git failures
    - validation: Branch, revision, path and message validators
"""

from __future__ import annotations

from .client import (
    CommandResult,
    GitGateway,
    MergeOptions,
    RepoStatus,
    WorktreeInfo,
    is_path_within,
    is_repo,
)
from .errors import FAILURE_RULES, classify_failure, error_from_failure

__all__ = [
    "FAILURE_RULES",
    "CommandResult",
    "GitGateway",
    "MergeOptions",
    "RepoStatus",
    "WorktreeInfo",
    "classify_failure",
    "error_from_failure",
    "is_path_within",
    "is_repo",
]

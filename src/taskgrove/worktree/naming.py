"""Identifier rules and directory naming for task worktrees."""

from __future__ import annotations

import re
from dataclasses import dataclass

from taskgrove.core.result import Err, Ok, Result, ValidationError

DEFAULT_LABEL_MAX_LEN = 30

# Separates workflow and task ids in branch names, and task id and label slug
# in directory names. Identifiers may therefore never contain it.
SEPARATOR = "__"

_IDENTIFIER_CHARS = re.compile(r"^[A-Za-z0-9._-]+$")
_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True, slots=True)
class Task:
    """What the caller knows about a task: its id and a human label."""

    id: str
    name: str = ""
    description: str = ""

    @property
    def label(self) -> str:
        return self.name.strip() or self.description.strip()


def validate_identifier(kind: str, value: str) -> Result[str, ValidationError]:
    """Check a workflow or task id before it is used in a branch or path.

    Ids starting with "_" are reserved for internal directories such as
    ``_merge``.
    """
    if not value:
        return Err(ValidationError(f"{kind} id must not be empty", context={"code": "INVALID_ID"}))
    if not _IDENTIFIER_CHARS.match(value):
        return Err(
            ValidationError(
                f"{kind} id may only contain letters, digits, '.', '_' and '-'",
                context={"code": "INVALID_ID", kind: value},
            )
        )
    if SEPARATOR in value or ".." in value:
        return Err(
            ValidationError(
                f"{kind} id must not contain '{SEPARATOR}' or '..'",
                context={"code": "INVALID_ID", kind: value},
            )
        )
    if value[0] in "_-.":
        return Err(
            ValidationError(
                f"{kind} id must not start with '{value[0]}'",
                context={"code": "INVALID_ID", kind: value},
            )
        )
    return Ok(value)


def normalize_label(text: str, max_len: int = DEFAULT_LABEL_MAX_LEN) -> str:
    """Turn a free-form label into a lowercase ascii slug of at most max_len chars."""
    slug = _NON_ALNUM_RUN.sub("-", text.lower())
    return slug[:max_len].strip("-")


def task_dir_name(task: Task, max_len: int = DEFAULT_LABEL_MAX_LEN) -> str:
    slug = normalize_label(task.label, max_len)
    if not slug:
        return task.id
    return f"{task.id}{SEPARATOR}{slug}"


def matches_task_dir(dir_name: str, task_id: str) -> bool:
    """True when dir_name is the directory of task_id, with or without a label."""
    return dir_name == task_id or dir_name.startswith(f"{task_id}{SEPARATOR}")


def task_id_from_dir(dir_name: str) -> str:
    return dir_name.split(SEPARATOR, 1)[0]


def is_reserved_dir(dir_name: str) -> bool:
    return dir_name.startswith("_")


__all__ = [
    "DEFAULT_LABEL_MAX_LEN",
    "SEPARATOR",
    "Task",
    "is_reserved_dir",
    "matches_task_dir",
    "normalize_label",
    "task_dir_name",
    "task_id_from_dir",
    "validate_identifier",
]

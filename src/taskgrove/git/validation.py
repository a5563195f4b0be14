"""Argument validation for the git subprocess boundary.

git is always executed without a shell, so there is no shell interpolation to
worry about. What remains is option and refspec injection into git itself: a
branch called ``--upload-pack=...`` or a revision like ``HEAD@{-1}`` changes
what git does. Every user-controlled value passes through one of these
validators before it reaches ``GitGateway``.

All validators return ``Result[str, ValidationError]`` with the validated
value on success.
"""

from __future__ import annotations

from taskgrove.core.result import Err, Ok, Result, ValidationError

_FORBIDDEN_REF_CHARS = frozenset("~^:?*[\\")
_FORBIDDEN_REF_SEQUENCES = ("..", "@{", "//")
_REMOTE_EXTRA_CHARS = frozenset("._-")


def _invalid(code: str, message: str, **context: object) -> Err[ValidationError]:
    return Err(ValidationError(message, context={"code": code, **context}))


def validate_no_nul(field: str, value: str) -> Result[str, ValidationError]:
    if "\x00" in value:
        return _invalid("INVALID_INPUT", f"{field} contains NUL byte")
    return Ok(value)


def validate_branch_name(name: str) -> Result[str, ValidationError]:
    """Conservative refname check (a subset of `git check-ref-format --branch`)."""
    if isinstance(check := validate_no_nul("branch", name), Err):
        return check
    if not name:
        return _invalid("INVALID_BRANCH", "branch name must not be empty")
    if name.startswith("-"):
        return _invalid("INVALID_BRANCH", "branch name must not start with '-'", branch=name)
    if any(ch.isspace() for ch in name):
        return _invalid("INVALID_BRANCH", "branch name must not contain whitespace", branch=name)
    if any(seq in name for seq in _FORBIDDEN_REF_SEQUENCES):
        return _invalid("INVALID_BRANCH", "branch name contains forbidden sequence", branch=name)
    if (
        name.startswith("/")
        or name.endswith("/")
        or name.endswith(".")
        or name.endswith(".lock")
    ):
        return _invalid(
            "INVALID_BRANCH", "branch name has forbidden prefix/suffix", branch=name
        )
    for ch in name:
        if ch in _FORBIDDEN_REF_CHARS:
            return _invalid(
                "INVALID_BRANCH", f"branch name contains forbidden character: {ch!r}", branch=name
            )
        if ord(ch) < 0x20 or ord(ch) == 0x7F:
            return _invalid("INVALID_BRANCH", "branch name contains control character", branch=name)
    if name == "@":
        return _invalid("INVALID_BRANCH", "branch name '@' is not allowed")
    return Ok(name)


def validate_rev(rev: str) -> Result[str, ValidationError]:
    """Validate a revision (sha, branch, `a..b` range) passed as a positional argument.

    Reflog selectors (``@{...}``) are refused: they resolve against local
    history rather than a ref, so the same input names different commits over
    time. Names that end up stored or written as refs go through
    validate_branch_name instead.
    """
    if isinstance(check := validate_no_nul("rev", rev), Err):
        return check
    if not rev:
        return _invalid("INVALID_REV", "rev must not be empty")
    if rev.startswith("-"):
        return _invalid("INVALID_REV", "rev must not start with '-'", rev=rev)
    if any(ch.isspace() for ch in rev):
        return _invalid("INVALID_REV", "rev must not contain whitespace", rev=rev)
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in rev):
        return _invalid("INVALID_REV", "rev contains control character", rev=rev)
    if "@{" in rev:
        return _invalid("INVALID_REV", "rev must not use reflog syntax '@{'", rev=rev)
    return Ok(rev)


def validate_remote_name(remote: str) -> Result[str, ValidationError]:
    if isinstance(check := validate_no_nul("remote", remote), Err):
        return check
    if not remote:
        return _invalid("INVALID_REMOTE", "remote name must not be empty")
    if remote.startswith("-"):
        return _invalid("INVALID_REMOTE", "remote name must not start with '-'", remote=remote)
    if ".." in remote:
        return _invalid("INVALID_REMOTE", "remote name contains forbidden sequence", remote=remote)
    for ch in remote:
        if (ch.isascii() and ch.isalnum()) or ch in _REMOTE_EXTRA_CHARS:
            continue
        return _invalid(
            "INVALID_REMOTE", f"remote name contains invalid character: {ch!r}", remote=remote
        )
    return Ok(remote)


def validate_path_arg(path: str) -> Result[str, ValidationError]:
    """Validate a filesystem path handed to git (always placed after `--`)."""
    if isinstance(check := validate_no_nul("path", path), Err):
        return check
    if not path:
        return _invalid("INVALID_PATH", "path must not be empty")
    return Ok(path)


def validate_message(message: str) -> Result[str, ValidationError]:
    if isinstance(check := validate_no_nul("message", message), Err):
        return check
    if not message.strip():
        return _invalid("INVALID_MESSAGE", "message must not be empty")
    return Ok(message)


def validate_option_value(field: str, value: str) -> Result[str, ValidationError]:
    """Validate a value that follows its own flag, e.g. `-s <strategy>`."""
    if isinstance(check := validate_no_nul(field, value), Err):
        return check
    if not value or value.startswith("-") or any(ch.isspace() for ch in value):
        return _invalid("INVALID_OPTION", f"{field} is not a valid option value", value=value)
    return Ok(value)


__all__ = [
    "validate_branch_name",
    "validate_message",
    "validate_no_nul",
    "validate_option_value",
    "validate_path_arg",
    "validate_remote_name",
    "validate_rev",
]

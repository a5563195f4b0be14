from __future__ import annotations

import pytest

from taskgrove.core.result import Err, Ok
from taskgrove.worktree.naming import (
    Task,
    is_reserved_dir,
    matches_task_dir,
    normalize_label,
    task_dir_name,
    task_id_from_dir,
    validate_identifier,
)


@pytest.mark.parametrize("value", ["wf-1", "t1", "Task.2", "a_b", "X9"])
def test_valid_identifiers(value: str) -> None:
    assert validate_identifier("task", value) == Ok(value)


@pytest.mark.parametrize(
    "value",
    ["", "a__b", "a..b", "a/b", "a\\b", "_merge", "-x", ".hidden", "sp ace", "ü", "a:b"],
)
def test_invalid_identifiers(value: str) -> None:
    match validate_identifier("task", value):
        case Err(err):
            assert err.context["code"] == "INVALID_ID"
        case Ok(_):
            pytest.fail(f"accepted {value!r}")


class TestNormalizeLabel:
    def test_collapses_and_lowercases(self) -> None:
        assert normalize_label("Fix the  Login   Bug!") == "fix-the-login-bug"

    def test_non_ascii_becomes_separator(self) -> None:
        assert normalize_label("Crème brûlée") == "cr-me-br-l-e"

    def test_caps_length_and_trims_dashes(self) -> None:
        slug = normalize_label("a" * 29 + " tail", max_len=30)
        assert slug == "a" * 29
        assert len(normalize_label("x" * 100)) == 30

    def test_empty_when_nothing_usable(self) -> None:
        assert normalize_label("!!! ***") == ""


class TestTaskDirName:
    def test_name_wins_over_description(self) -> None:
        assert task_dir_name(Task(id="t1", name="Add API", description="ignored")) == "t1__add-api"

    def test_description_is_the_fallback(self) -> None:
        assert task_dir_name(Task(id="t1", description="Write docs")) == "t1__write-docs"

    def test_bare_id_without_label(self) -> None:
        assert task_dir_name(Task(id="t1")) == "t1"
        assert task_dir_name(Task(id="t1", name="???")) == "t1"


def test_directory_matching() -> None:
    assert matches_task_dir("t1", "t1")
    assert matches_task_dir("t1__add-api", "t1")
    assert not matches_task_dir("t10__x", "t1")
    assert not matches_task_dir("t1-x", "t1")
    assert task_id_from_dir("t1__add-api") == "t1"
    assert is_reserved_dir("_merge")
    assert not is_reserved_dir("t1")

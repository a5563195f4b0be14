from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from taskgrove.core.config import AppConfig, WorktreeConfig, load_config


def test_defaults_without_file(isolate_config: Path) -> None:
    config, meta = load_config()

    assert meta.path == isolate_config
    assert not meta.file_loaded
    assert meta.error is None
    assert config.git.timeout == 30.0
    assert config.worktree.base_dir == Path(".worktrees")
    assert config.worktree.namespace == "grove"
    assert config.worktree.label_max_len == 30


def test_toml_file_is_read(tmp_path: Path) -> None:
    cfg = tmp_path / "taskgrove.toml"
    cfg.write_text(
        '[git]\ntimeout = 12.5\n\n[worktree]\nnamespace = "swarm"\nbase_dir = "/tmp/trees"\n'
    )

    config, meta = load_config(cfg)

    assert meta.file_loaded
    assert config.git.timeout == 12.5
    assert config.worktree.namespace == "swarm"
    assert config.worktree.base_dir == Path("/tmp/trees")


def test_json_file_is_read(tmp_path: Path) -> None:
    cfg = tmp_path / "taskgrove.json"
    cfg.write_text('{"worktree": {"label_max_len": 12}}')
    config, _ = load_config(cfg)
    assert config.worktree.label_max_len == 12


def test_env_overrides_file(tmp_path: Path) -> None:
    cfg = tmp_path / "taskgrove.toml"
    cfg.write_text("[git]\ntimeout = 12.5\n")

    config, meta = load_config(cfg, env={"TASKGROVE_GIT__TIMEOUT": "5"})

    assert config.git.timeout == 5.0
    assert meta.env_overrides == {"git.timeout"}


@pytest.mark.parametrize(
    "content",
    ["[git\ntimeout = 1", "[git]\ntimeout = -3\n", '[worktree]\nnamespace = "a..b"\n'],
)
def test_safe_mode_on_bad_file(tmp_path: Path, content: str) -> None:
    cfg = tmp_path / "taskgrove.toml"
    cfg.write_text(content)

    config, meta = load_config(cfg)

    assert meta.error is not None
    assert config.git.timeout == 30.0
    assert config.worktree.namespace == "grove"


def test_resolve_base_dir(tmp_path: Path) -> None:
    assert AppConfig().resolve_base_dir(tmp_path) == tmp_path / ".worktrees"
    absolute = AppConfig(worktree=WorktreeConfig(base_dir=tmp_path / "elsewhere"))
    assert absolute.resolve_base_dir(Path("/repo")) == tmp_path / "elsewhere"


class TestNamespace:
    def test_slashes_are_trimmed(self) -> None:
        assert WorktreeConfig(namespace="/team/agents/").namespace == "team/agents"

    @pytest.mark.parametrize("value", ["", "a..b", "a b", "-x", "a__b", "a//b"])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(ValidationError):
            WorktreeConfig(namespace=value)

"""Application configuration management.

Handles loading and validating configuration from multiple sources:
    - TOML/JSON config files
    - Environment variables (TASKGROVE_* prefix)
    - Default values

Key components:
    - AppConfig: Main configuration model
    - load_config(): Safe config loading with fallback
    - ConfigLoadResult: Metadata about config source
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from contextlib import nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from unittest.mock import patch

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from taskgrove.core.result import ConfigurationError

CONFIG_ENV_VAR = "TASKGROVE_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".taskgrove.toml"


# -----------------------------------------------------------------------------
# Sub-configuration Models
# -----------------------------------------------------------------------------


class GitConfig(BaseModel):
    """Settings for the git subprocess gateway."""

    timeout: float = Field(
        default=30.0, gt=0, description="Seconds before a git command is killed."
    )
    executable: str = Field(
        default="git", description="Name of the git executable looked up on PATH."
    )


class WorktreeConfig(BaseModel):
    """Layout and naming of managed worktrees."""

    base_dir: Path = Field(
        default=Path(".worktrees"),
        description="Managed worktree directory, relative to the repository root if not absolute.",
    )
    namespace: str = Field(
        default="grove", description="Branch namespace prefix for workflow branches."
    )
    label_max_len: int = Field(
        default=30, ge=1, le=64, description="Maximum length of the label slug in task paths."
    )
    stale_max_age_hours: float = Field(
        default=24.0, ge=0, description="Age after which managed worktrees count as stale."
    )

    @field_validator("namespace")
    @classmethod
    def check_namespace(cls, v: str) -> str:
        cleaned = v.strip().strip("/")
        if not cleaned or any(part in cleaned for part in ("..", "//", " ", "__")):
            raise ValueError(f"invalid branch namespace: {v!r}")
        if cleaned.startswith("-"):
            raise ValueError("branch namespace must not start with '-'")
        return cleaned


class LoggingConfig(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Log level for taskgrove output.")


class AppConfig(BaseSettings):
    """Application-wide configuration with nested sub-configs."""

    model_config = SettingsConfigDict(
        env_prefix="TASKGROVE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    git: GitConfig = Field(default_factory=GitConfig)
    worktree: WorktreeConfig = Field(default_factory=WorktreeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
    ]:
        # Ensure environment variables override config file entries.
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)

    def resolve_base_dir(self, repo_root: Path) -> Path:
        """Return the absolute managed worktree directory for a repository."""
        base = self.worktree.base_dir.expanduser()
        if not base.is_absolute():
            base = repo_root / base
        return base


@dataclass
class ConfigLoadResult:
    path: Path
    file_loaded: bool
    env_overrides: set[str]
    error: str | None = None


def _resolve_config_path(config_path: Path | None, env_vars: Mapping[str, str]) -> Path:
    candidate = config_path or env_vars.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    return Path(candidate).expanduser()


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}

    raw = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    parser = json.loads if suffix == ".json" else tomllib.loads

    try:
        data = parser(raw)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError(f"Syntax error in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root in {path} must be a mapping.")

    return data


def _detect_env_overrides(env_vars: Mapping[str, str]) -> set[str]:
    """Detect which fields are overridden by environment variables.

    For nested models, detects vars like TASKGROVE_GIT__TIMEOUT.
    """
    prefix = AppConfig.model_config.get("env_prefix", "")
    delimiter = AppConfig.model_config.get("env_nested_delimiter", "__")
    overrides: set[str] = set()

    nested_models: dict[str, type[BaseModel]] = {
        "git": GitConfig,
        "worktree": WorktreeConfig,
        "logging": LoggingConfig,
    }

    for group_name, model_cls in nested_models.items():
        for field in model_cls.model_fields:
            env_key = f"{prefix}{group_name}{delimiter}{field}".upper()
            if env_key in env_vars:
                overrides.add(f"{group_name}.{field}")

    return overrides


def load_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> tuple[AppConfig, ConfigLoadResult]:
    """
    Load configuration with Safe Mode fallback.
    If the file is invalid, returns default config + error message.
    """
    env_vars: Mapping[str, str] = os.environ if env is None else {**os.environ, **env}
    resolved_path = _resolve_config_path(config_path, env_vars)
    env_overrides = _detect_env_overrides(env_vars)

    error: str | None = None
    file_loaded = False
    file_data: dict[str, Any] = {}

    try:
        file_data = _read_config_file(resolved_path)
        file_loaded = resolved_path.exists()
    except ConfigurationError as exc:
        error = str(exc)

    context_manager = (
        patch.dict(os.environ, env_vars, clear=False) if env is not None else nullcontext()
    )

    try:
        with context_manager:
            config = AppConfig(**file_data)
    except ValidationError as exc:
        error = str(exc)
        config = AppConfig()

    load_result = ConfigLoadResult(
        path=resolved_path,
        file_loaded=file_loaded,
        env_overrides=env_overrides,
        error=error,
    )

    return config, load_result

"""
cronkit Configuration — loads and merges config from multiple sources.

Precedence (highest to lowest):
1. Explicit overrides (passed in code)
2. Environment variables (CRONKIT_*)
3. Project config (./cronkit.toml)
4. User config (~/.cronkit/config.toml)
5. Defaults (hardcoded)

Environment variable mapping:
    CRONKIT_STORE_PATH → scheduler.store_path
    CRONKIT_STORE_BACKEND → scheduler.store_backend
    CRONKIT_TIMEZONE → scheduler.timezone
    CRONKIT_AGENT_BASE_URL → agent.base_url
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from cronkit.core.errors import ConfigurationError

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Config Sub-Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class SchedulerConfig(BaseModel):
    """Scheduler and store configuration."""

    store_backend: Literal["file", "memory"] = "file"
    store_path: str = "~/.cronkit/jobs.json"
    history_limit: int | None = Field(default=100, ge=1)
    timezone: str = "UTC"
    workspace: str = "."

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone {value!r}") from e
        return value


class ShellConfig(BaseModel):
    """Shell runner configuration."""

    executable: str | None = None
    default_timeout: float | None = None  # seconds, None = no deadline


class AgentConfig(BaseModel):
    """Default agent executor configuration."""

    base_url: str = "http://localhost:11434"
    model: str = "llama3.1"
    request_timeout: float = 300.0


class LoggingConfig(BaseModel):
    """Logging configuration."""

    log_dir: str = "~/.cronkit/logs"
    console_level: str = "WARNING"
    file_level: str = "DEBUG"
    log_events: bool = True

    @field_validator("console_level", "file_level")
    @classmethod
    def known_level(cls, value: str) -> str:
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"Unknown log level {value!r}")
        return value


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Main Config
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class CronkitConfig(BaseModel):
    """Root configuration for cronkit."""

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    shell: ShellConfig = Field(default_factory=ShellConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @staticmethod
    def load(
        overrides: dict[str, Any] | None = None,
        project_path: Path | None = None,
        user_path: Path | None = None,
    ) -> CronkitConfig:
        """
        Load configuration from all sources and merge.

        Precedence: overrides > env vars > project toml > user toml > defaults
        """
        merged: dict[str, Any] = {}

        user_config_path = user_path or Path.home() / ".cronkit" / "config.toml"
        if user_config_path.exists():
            _deep_merge(merged, _load_toml(user_config_path))

        project_config_path = project_path or Path.cwd() / "cronkit.toml"
        if project_config_path.exists():
            _deep_merge(merged, _load_toml(project_config_path))

        _deep_merge(merged, _load_from_env())

        if overrides:
            _deep_merge(merged, overrides)

        _substitute_env_vars(merged)

        try:
            return CronkitConfig(**merged)
        except Exception as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def get_store_path(self) -> Path:
        return Path(self.scheduler.store_path).expanduser()

    def get_log_dir(self) -> Path:
        return Path(self.logging.log_dir).expanduser()

    def get_workspace(self) -> Path:
        return Path(self.scheduler.workspace).expanduser().resolve()

    def get_timezone(self) -> ZoneInfo:
        return ZoneInfo(self.scheduler.timezone)

    def get_log_levels(self) -> tuple[int, int]:
        """Console and file levels as logging constants."""
        return (
            logging.getLevelName(self.logging.console_level),
            logging.getLevelName(self.logging.file_level),
        )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Internal Helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _load_toml(path: Path) -> dict[str, Any]:
    """Load a TOML file."""
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore[no-redef]

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        raise ConfigurationError(f"Failed to load config from {path}: {e}") from e


def _load_from_env() -> dict[str, Any]:
    """Load configuration from CRONKIT_* environment variables."""
    result: dict[str, Any] = {}

    env_mapping = {
        "CRONKIT_STORE_BACKEND": ("scheduler", "store_backend"),
        "CRONKIT_STORE_PATH": ("scheduler", "store_path"),
        "CRONKIT_HISTORY_LIMIT": ("scheduler", "history_limit"),
        "CRONKIT_TIMEZONE": ("scheduler", "timezone"),
        "CRONKIT_WORKSPACE": ("scheduler", "workspace"),
        "CRONKIT_SHELL": ("shell", "executable"),
        "CRONKIT_SHELL_TIMEOUT": ("shell", "default_timeout"),
        "CRONKIT_AGENT_BASE_URL": ("agent", "base_url"),
        "CRONKIT_AGENT_MODEL": ("agent", "model"),
        "CRONKIT_LOG_DIR": ("logging", "log_dir"),
        "CRONKIT_LOG_LEVEL": ("logging", "console_level"),
    }

    for env_var, (section, key) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            result.setdefault(section, {})[key] = _convert_value(value)

    return result


def _convert_value(value: str) -> Any:
    """Convert string value to appropriate type."""
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value


def _deep_merge(base: dict, override: dict) -> None:
    """Deep merge override into base (mutates base)."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _substitute(value: str) -> str:
    return _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), value)


def _substitute_env_vars(data: dict) -> None:
    """Recursively substitute ${ENV_VAR} patterns in string values."""
    for key, value in data.items():
        if isinstance(value, dict):
            _substitute_env_vars(value)
        elif isinstance(value, str):
            data[key] = _substitute(value)
        elif isinstance(value, list):
            data[key] = [_substitute(v) if isinstance(v, str) else v for v in value]

"""Configuration loading and validation."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/agent-hq/config.yaml")
DEFAULT_QUEUE_ROOT = Path("~/.config/agent-hq/queue")
DEFAULT_SESSION = "hq"


class RegistryConfig(BaseModel):
    """Where named tasks, worktrees and sessions are looked up."""

    model_config = ConfigDict(validate_default=True)

    # YAML list of {name, tree, session} entries
    tasks_file: Path = Field(default=Path("~/.config/agent-hq/tasks.yaml"))
    # Bare repository whose `git worktree list` defines the known trees
    repo_path: Path = Field(default=Path("~/work/.bare"))
    # Tree names are paths relative to this directory
    work_dir: Path = Field(default=Path("~/work"))

    @field_validator("tasks_file", "repo_path", "work_dir")
    @classmethod
    def expand_home(cls, v: Path) -> Path:
        return Path(v).expanduser()


class QueueConfig(BaseSettings):
    """Main queue configuration."""

    model_config = SettingsConfigDict(env_prefix="HQ_", extra="ignore")

    root: Path = Field(default=DEFAULT_QUEUE_ROOT)
    default_session: str = DEFAULT_SESSION
    poll_interval: int = 5

    # The prompt text is appended as the final argument
    agent_command: List[str] = Field(default_factory=lambda: ["claude"])
    shell: Optional[str] = None

    window_name_length: int = 8
    max_window_suffix: int = 99

    registry: RegistryConfig = Field(default_factory=RegistryConfig)

    log_dir: Path = Field(default=Path("~/.config/agent-hq/logs"))
    log_level: str = "INFO"

    @field_validator("root", "log_dir")
    @classmethod
    def expand_home(cls, v: Path) -> Path:
        return Path(v).expanduser()

    @field_validator("poll_interval")
    @classmethod
    def validate_poll_interval(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"poll_interval must be >= 1, got {v}")
        return v

    @field_validator("agent_command")
    @classmethod
    def validate_agent_command(cls, v: List[str]) -> List[str]:
        if not v or not v[0]:
            raise ValueError("agent_command must name an executable")
        return v

    @field_validator("window_name_length")
    @classmethod
    def validate_window_name_length(cls, v: int) -> int:
        if v < 2:
            raise ValueError(f"window_name_length must be >= 2, got {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        if v.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log_level '{v}'")
        return v.upper()

    def resolve_shell(self) -> str:
        """Shell exec'd in a task window once the agent exits."""
        return self.shell or os.environ.get("SHELL") or "zsh"


# Module-level mtime-based config cache: path -> (parsed_config, file_mtime)
_config_cache: Dict[str, tuple] = {}


def _get_cached_or_load(resolved_path: Path, loader):
    """Return cached config if file mtime unchanged, else reload."""
    key = str(resolved_path)
    try:
        current_mtime = resolved_path.stat().st_mtime
    except FileNotFoundError:
        _config_cache.pop(key, None)
        return None

    cached = _config_cache.get(key)
    if cached is not None:
        cached_result, cached_mtime = cached
        if cached_mtime == current_mtime:
            return cached_result

    result = loader(resolved_path)
    _config_cache[key] = (result, current_mtime)
    return result


def _load_config_from_file(config_path: Path) -> QueueConfig:
    """Internal loader for queue config (no caching)."""
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")

    data = _expand_env_vars(data)
    return QueueConfig(**data)


def default_config_path() -> Path:
    return Path(os.environ.get("HQ_CONFIG", str(DEFAULT_CONFIG_PATH))).expanduser()


def load_config(config_path: Optional[Path] = None) -> QueueConfig:
    """Load queue configuration from YAML file.

    Uses mtime-based caching: returns cached config if the file hasn't changed.
    A missing file yields the defaults (still overridable through HQ_* variables).
    """
    config_path = Path(config_path).expanduser() if config_path else default_config_path()
    if not config_path.exists():
        logger.debug(f"Config file not found: {config_path}. Using default configuration.")
        return QueueConfig()

    result = _get_cached_or_load(config_path.resolve(), _load_config_from_file)
    return result if result is not None else QueueConfig()


def clear_config_cache() -> None:
    """Clear the module-level config cache. Useful for tests."""
    _config_cache.clear()


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ``${VAR}`` string values from the environment.

    Args:
        data: Config data to process
        _path: Internal tracking for error messages (e.g., "registry.repo_path")
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        env_var = data[2:-1]
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(
                f"Environment variable '{env_var}' not set (referenced at config path: {_path or 'root'}). "
                f"The literal string '{data}' will be used, which may cause errors."
            )
            return data
        return value
    return data

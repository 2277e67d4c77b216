from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

from platformdirs import user_cache_path, user_config_path

from .errors import AgentCliError

APP_NAME = "agent-cli"
DEFAULT_SOURCE = "github:ftnilsson/agent-cli"
DEFAULT_GIT_TIMEOUT_S = 120.0


@dataclass(frozen=True)
class Config:
    cache_dir: str | None = None  # defaults to the platform user cache dir
    default_source: str = DEFAULT_SOURCE
    git_timeout_s: float = DEFAULT_GIT_TIMEOUT_S

    def resolved_cache_dir(self) -> Path:
        if self.cache_dir:
            return Path(self.cache_dir).expanduser()
        return user_cache_path(APP_NAME)


def config_path(path_override: str | Path | None = None) -> Path:
    if path_override is not None:
        return Path(path_override).expanduser()
    if env := os.getenv("AGENT_CLI_CONFIG_PATH"):
        return Path(env).expanduser()
    return user_config_path(APP_NAME) / "config.json"


def load_config(path_override: str | Path | None = None) -> Config:
    path = config_path(path_override)
    if not path.exists():
        return Config()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise AgentCliError(f"Could not parse config file {path}: {e}") from e
    if not isinstance(raw, dict):
        raise AgentCliError(f"Config file {path} must contain a JSON object.")

    # Unknown keys are ignored so older config files keep loading.
    known = {f.name for f in fields(Config)}
    values: dict[str, Any] = {k: v for k, v in raw.items() if k in known}
    timeout = values.get("git_timeout_s", DEFAULT_GIT_TIMEOUT_S)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise AgentCliError(f"Config field 'git_timeout_s' must be a positive number (got {timeout!r}).")
    values["git_timeout_s"] = float(timeout)
    return Config(**values)


def save_config(cfg: Config, path_override: str | Path | None = None) -> Path:
    path = config_path(path_override)
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True) + "\n", encoding="utf-8")
    tmp.replace(path)
    return path


def apply_env(base: Config) -> Config:
    # Env overrides the config file.
    cache_dir = os.getenv("AGENT_CLI_CACHE_DIR") or base.cache_dir
    default_source = os.getenv("AGENT_CLI_DEFAULT_SOURCE") or base.default_source
    timeout = os.getenv("AGENT_CLI_GIT_TIMEOUT_S") or base.git_timeout_s
    try:
        timeout_f = float(timeout)
    except (TypeError, ValueError):
        timeout_f = base.git_timeout_s
    return replace(base, cache_dir=cache_dir, default_source=default_source, git_timeout_s=timeout_f)

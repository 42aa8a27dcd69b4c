"""
Pipeline configuration.

Defaults come from environment variables, an optional YAML file overrides them, and
explicit keyword overrides (e.g. CLI flags) win over both.
- GITHUB_API_URL: REST API base URL
- CONTRIB_FORK_POLL_ATTEMPTS: int
- CONTRIB_FORK_POLL_INTERVAL: float (seconds)
- CONTRIB_REQUEST_TIMEOUT: float (seconds)
- CONTRIB_BRANCH_PREFIX: str
- CONTRIB_DB_PATH: SQLite file for contribution records
"""
import os
from typing import Optional, Dict, Any

import yaml

from .errors import ConfigError

CONFIG_FILENAME = 'pipeline.yaml'
DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'config', CONFIG_FILENAME)

_CASTS = {
    'api_url': str,
    'fork_poll_attempts': int,
    'fork_poll_interval': float,
    'request_timeout': float,
    'branch_prefix': str,
    'db_path': str,
    'user_agent': str,
}

_ENV_VARS = {
    'api_url': 'GITHUB_API_URL',
    'fork_poll_attempts': 'CONTRIB_FORK_POLL_ATTEMPTS',
    'fork_poll_interval': 'CONTRIB_FORK_POLL_INTERVAL',
    'request_timeout': 'CONTRIB_REQUEST_TIMEOUT',
    'branch_prefix': 'CONTRIB_BRANCH_PREFIX',
    'db_path': 'CONTRIB_DB_PATH',
}


class PipelineConfig:
    def __init__(
        self,
        api_url: str = "https://api.github.com",
        fork_poll_attempts: int = 15,
        fork_poll_interval: float = 2.0,
        request_timeout: float = 30.0,
        branch_prefix: str = "contrib",
        db_path: str = "contributions.db",
        user_agent: str = "contrib-pipeline",
    ):
        if int(fork_poll_attempts) < 1:
            raise ConfigError("fork_poll_attempts must be at least 1")
        if float(fork_poll_interval) < 0:
            raise ConfigError("fork_poll_interval must not be negative")
        if float(request_timeout) <= 0:
            raise ConfigError("request_timeout must be positive")
        if not branch_prefix or not str(branch_prefix).strip('/'):
            raise ConfigError("branch_prefix must not be empty")
        self.api_url = str(api_url).rstrip('/')
        self.fork_poll_attempts = int(fork_poll_attempts)
        self.fork_poll_interval = float(fork_poll_interval)
        self.request_timeout = float(request_timeout)
        self.branch_prefix = str(branch_prefix).strip('/')
        self.db_path = db_path
        self.user_agent = user_agent

    def to_dict(self) -> Dict[str, Any]:
        return {k: getattr(self, k) for k in _CASTS}


def _cast(key: str, value: Any, source: str):
    try:
        return _CASTS[key](value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid value for {key} in {source}: {value!r}")


def _env_values() -> Dict[str, Any]:
    values = {}
    for key, env in _ENV_VARS.items():
        raw = os.getenv(env)
        if raw is not None and raw != "":
            values[key] = _cast(key, raw, f"${env}")
    return values


def _file_values(path: str) -> Dict[str, Any]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            doc = yaml.safe_load(f) or {}
    except yaml.YAMLError as ex:
        raise ConfigError(f"Failed to parse {path}: {ex}")
    if not isinstance(doc, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}")
    # allow either a flat mapping or one nested under 'pipeline'
    section = doc.get('pipeline', doc) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Expected 'pipeline' to be a mapping in {path}")
    return {k: _cast(k, v, path) for k, v in section.items() if k in _CASTS and v is not None}


def load_config(path: Optional[str] = None, **overrides) -> PipelineConfig:
    """
    Build a PipelineConfig from env vars, the YAML file (explicit path or config/pipeline.yaml)
    and keyword overrides. A missing default file is fine; a missing explicit path is an error.
    """
    values = _env_values()
    if path:
        if not os.path.exists(path):
            raise ConfigError(f"Config file not found at: {path}")
        values.update(_file_values(path))
    elif os.path.exists(DEFAULT_CONFIG_PATH):
        values.update(_file_values(DEFAULT_CONFIG_PATH))
    for k, v in overrides.items():
        if v is None:
            continue
        if k not in _CASTS:
            raise ConfigError(f"Unknown config key: {k}")
        values[k] = _cast(k, v, 'overrides')
    return PipelineConfig(**values)

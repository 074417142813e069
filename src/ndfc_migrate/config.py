"""
Settings for the migration run.

Values are read from the environment (a .env file is loaded first), then from
an optional JSON or YAML config file, then from command line overrides.
"""

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from ndfc_migrate.errors import ConfigError

logger = logging.getLogger(__name__)

# Single timeout for every controller call; bulk policy calls on large fabrics are slow
DEFAULT_TIMEOUT = 300
DEFAULT_MAX_WORKERS = 5

ENV_MAP = {
    "ndfc_host": "NDFC_HOST",
    "ndfc_username": "NDFC_USERNAME",
    "ndfc_password": "NDFC_PASSWORD",
    "ndfc_domain": "NDFC_DOMAIN",
    "verify_ssl": "NDFC_VERIFY_SSL",
    "timeout": "NDFC_TIMEOUT",
    "switch_username": "SWITCH_USERNAME",
    "switch_password": "SWITCH_PASSWORD",
    "max_workers": "MAX_WORKERS",
    "output_dir": "OUTPUT_DIR",
}


@dataclass(frozen=True)
class Settings:
    """Connection and run settings."""
    ndfc_host: Optional[str] = None
    ndfc_username: Optional[str] = None
    ndfc_password: Optional[str] = None
    ndfc_domain: str = "local"
    verify_ssl: bool = False
    timeout: int = DEFAULT_TIMEOUT
    switch_username: Optional[str] = None
    switch_password: Optional[str] = None
    max_workers: int = DEFAULT_MAX_WORKERS
    output_dir: str = "host_vars"

    def require_ndfc(self):
        """Raise ConfigError unless controller credentials are set."""
        missing = [
            ENV_MAP[name] for name in ("ndfc_host", "ndfc_username", "ndfc_password")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigError(f"Missing NDFC settings: {', '.join(missing)}")

    def require_switch_credentials(self):
        """Raise ConfigError unless switch SSH credentials are set."""
        if not self.switch_username or not self.switch_password:
            raise ConfigError("Missing switch credentials: SWITCH_USERNAME, SWITCH_PASSWORD")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _coerce(name: str, value: Any) -> Any:
    try:
        if name == "verify_ssl":
            return _to_bool(value)
        if name in ("timeout", "max_workers"):
            return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from e
    return value


def read_config_file(config_file: str) -> Dict[str, Any]:
    """
    Read a JSON or YAML config file.

    Args:
        config_file: Path to the file

    Returns:
        Dictionary of settings found in the file
    """
    path = Path(config_file)
    if not path.exists():
        raise ConfigError(f"Config file not found: {config_file}")

    with open(path) as f:
        if path.suffix == '.json':
            data = json.load(f)
        else:
            data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_file}")

    known = {f.name for f in fields(Settings)}
    unknown = set(data) - known
    if unknown:
        logger.warning(f"Ignoring unknown settings in {config_file}: {', '.join(sorted(unknown))}")
    return {k: v for k, v in data.items() if k in known}


def load_settings(config_file: Optional[str] = None, env_file: Optional[str] = None, **overrides) -> Settings:
    """
    Build Settings from the environment, a config file and explicit overrides.

    Args:
        config_file: Optional JSON/YAML file
        env_file: Optional .env path, defaults to python-dotenv's lookup
        **overrides: Values that win over everything else. None values are ignored

    Returns:
        Settings
    """
    load_dotenv(env_file)

    values: Dict[str, Any] = {}
    for name, env_name in ENV_MAP.items():
        if os.environ.get(env_name) not in (None, ""):
            values[name] = os.environ[env_name]

    if config_file:
        values.update(read_config_file(config_file))

    values.update({k: v for k, v in overrides.items() if v is not None})

    settings = Settings()
    coerced = {name: _coerce(name, value) for name, value in values.items()}
    return replace(settings, **coerced)

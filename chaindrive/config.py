"""
Configuration Management

Two kinds of configuration:

1. Settings - tunables (extent size, batch limit, directories, timeouts).
   Priority (highest to lowest):
   1. Environment variables (CHAINDRIVE_*, .env supported)
   2. Settings file (settings.json in the config directory)
   3. Default values

2. Credentials - `token` and `channel`, stored per working directory or
   globally in config.json:
   ```
   {
     "global": {"token": "...", "channel": "123"},
     "scopes": {"/home/me/project": {"channel": "456"}}
   }
   ```
   resolve(key) = scoped value for the current directory, else global.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import click
from dotenv import load_dotenv

from .exceptions import ConfigError
from .file.batching import BATCH_LIMIT
from .file.splitter import PART_SIZE
from .store.discord import MAX_PAGE_SIZE
from .transfer.catalog import PAGE_SIZE
from .transfer.uploader import LINK_ATOMIC, LINK_MODES

logger = logging.getLogger(__name__)

APP_NAME = "chaindrive"

# Credential keys
TOKEN = "token"
CHANNEL = "channel"
CONFIG_KEYS = (TOKEN, CHANNEL)

ENV_PREFIX = "CHAINDRIVE_"


def _env_number(name: str, default, cast=int):
    value = os.getenv(ENV_PREFIX + name)
    if value is None:
        return default
    try:
        return cast(value)
    except ValueError as e:
        raise ConfigError(f"{ENV_PREFIX}{name} must be a number, got {value!r}") from e


def default_config_dir() -> Path:
    """Platform config directory for chaindrive."""
    return Path(click.get_app_dir(APP_NAME))


@dataclass
class Settings:
    """chaindrive tunables."""
    # Transfer
    part_size: int = PART_SIZE
    batch_limit: int = BATCH_LIMIT
    page_size: int = PAGE_SIZE
    link_mode: str = LINK_ATOMIC

    # Directories
    config_dir: Path = field(default_factory=default_config_dir)
    cache_dir: Optional[Path] = None  # config_dir/cache when unset

    # Network
    api_base: str = "https://discord.com/api/v10"
    request_timeout: float = 30.0
    max_retries: int = 3

    # Logging
    log_level: str = "WARNING"

    @property
    def extent_cache_dir(self) -> Path:
        return self.cache_dir or self.config_dir / "cache"

    @property
    def config_file(self) -> Path:
        return self.config_dir / "config.json"

    @property
    def settings_file(self) -> Path:
        return self.config_dir / "settings.json"

    @classmethod
    def from_env(cls, base: Optional['Settings'] = None) -> 'Settings':
        """Apply CHAINDRIVE_* environment variables on top of `base`."""
        load_dotenv()

        settings = base or cls()

        settings.part_size = _env_number('PART_SIZE', settings.part_size)
        settings.batch_limit = _env_number('BATCH_LIMIT', settings.batch_limit)
        settings.page_size = _env_number('PAGE_SIZE', settings.page_size)
        settings.link_mode = os.getenv('CHAINDRIVE_LINK_MODE', settings.link_mode)

        config_dir = os.getenv('CHAINDRIVE_CONFIG_DIR')
        if config_dir:
            settings.config_dir = Path(config_dir)
        cache_dir = os.getenv('CHAINDRIVE_CACHE_DIR')
        if cache_dir:
            settings.cache_dir = Path(cache_dir)

        settings.api_base = os.getenv('CHAINDRIVE_API_BASE', settings.api_base)
        settings.request_timeout = _env_number(
            'REQUEST_TIMEOUT', settings.request_timeout, cast=float
        )
        settings.max_retries = _env_number('MAX_RETRIES', settings.max_retries)
        settings.log_level = os.getenv('CHAINDRIVE_LOG_LEVEL', settings.log_level).upper()

        settings.validate()
        return settings

    @classmethod
    def from_file(cls, path: Path, base: Optional['Settings'] = None) -> 'Settings':
        """Apply a JSON settings file on top of `base`."""
        settings = base or cls()
        if not path.exists():
            return settings

        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read settings file {path}: {e}") from e

        settings.part_size = data.get('part_size', settings.part_size)
        settings.batch_limit = data.get('batch_limit', settings.batch_limit)
        settings.page_size = data.get('page_size', settings.page_size)
        settings.link_mode = data.get('link_mode', settings.link_mode)
        if 'cache_dir' in data:
            settings.cache_dir = Path(data['cache_dir'])
        settings.api_base = data.get('api_base', settings.api_base)
        settings.request_timeout = data.get('request_timeout', settings.request_timeout)
        settings.max_retries = data.get('max_retries', settings.max_retries)
        settings.log_level = data.get('log_level', settings.log_level).upper()

        settings.validate()
        return settings

    def validate(self):
        if self.part_size < 1:
            raise ConfigError(f"part_size must be positive, got {self.part_size}")
        if self.batch_limit < 1:
            raise ConfigError(f"batch_limit must be at least 1, got {self.batch_limit}")
        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise ConfigError(
                f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {self.page_size}"
            )
        if self.link_mode not in LINK_MODES:
            raise ConfigError(f"link_mode must be one of {LINK_MODES}, got {self.link_mode!r}")

    def to_dict(self) -> dict:
        return {
            'part_size': self.part_size,
            'batch_limit': self.batch_limit,
            'page_size': self.page_size,
            'link_mode': self.link_mode,
            'config_dir': str(self.config_dir),
            'cache_dir': str(self.extent_cache_dir),
            'api_base': self.api_base,
            'request_timeout': self.request_timeout,
            'max_retries': self.max_retries,
            'log_level': self.log_level,
        }


def load_settings(config_dir: Optional[Path] = None) -> Settings:
    """
    Load settings from the settings file and environment.

    An explicit `config_dir` (command line) wins over CHAINDRIVE_CONFIG_DIR.
    """
    settings = Settings.from_env()
    if config_dir is not None:
        settings.config_dir = Path(config_dir)

    settings = Settings.from_file(settings.settings_file, base=settings)

    # Environment overrides the file
    settings = Settings.from_env(base=settings)
    if config_dir is not None:
        settings.config_dir = Path(config_dir)
    return settings


def validate_value(key: str, value: str) -> str:
    """Check a credential key/value pair."""
    if key not in CONFIG_KEYS:
        raise ConfigError(f"Invalid key: {key} (possible keys: {', '.join(CONFIG_KEYS)})")
    if key == CHANNEL and not value.isdigit():
        raise ConfigError(f"Channel must be a numeric id, got {value!r}")
    return value


class ConfigStore:
    """Scoped/global credential store kept in a JSON file."""

    def __init__(self, config_path: Path):
        self.config_path = Path(config_path)
        self.data = self._load()

    def _load(self) -> Dict[str, Dict]:
        if not self.config_path.exists():
            return {"global": {}, "scopes": {}}

        try:
            with open(self.config_path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read config file {self.config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {self.config_path} is not a JSON object")
        data.setdefault("global", {})
        data.setdefault("scopes", {})
        return data

    def save(self):
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w') as f:
                json.dump(self.data, f, indent=2)
        except OSError as e:
            raise ConfigError(f"Failed to write the config file {self.config_path}: {e}") from e

    def set(self, key: str, value: str, scope: Optional[str] = None):
        """Set `key` globally (scope None) or for the directory `scope`."""
        validate_value(key, value)
        if scope is None:
            self.data["global"][key] = value
        else:
            self.data["scopes"].setdefault(scope, {})[key] = value
        self.save()
        logger.debug(f"Set {key} [scope={scope or 'global'}]")

    def global_value(self, key: str) -> Optional[str]:
        return self.data["global"].get(key)

    def scoped_value(self, key: str, cwd: Optional[str] = None) -> Optional[str]:
        scope = cwd if cwd is not None else os.getcwd()
        return self.data["scopes"].get(scope, {}).get(key)

    def resolve(self, key: str, cwd: Optional[str] = None) -> Optional[str]:
        """Scoped value for `cwd` (default: current directory), else global."""
        value = self.scoped_value(key, cwd)
        return value if value is not None else self.global_value(key)

    def require(self, key: str, cwd: Optional[str] = None) -> str:
        value = self.resolve(key, cwd)
        if value is None:
            raise ConfigError(f"No {key} set. Run: chaindrive config {key} <value>")
        return value


def resolve_credentials(store: ConfigStore, token: Optional[str] = None,
                        channel: Optional[int] = None,
                        cwd: Optional[str] = None) -> tuple:
    """
    (token, channel) with precedence: explicit > environment > scoped > global.

    Raises:
        ConfigError: a value is missing or the channel is not numeric
    """
    load_dotenv()
    token = token or os.getenv(ENV_PREFIX + "TOKEN") or store.require(TOKEN, cwd)

    if channel is None:
        raw = os.getenv(ENV_PREFIX + "CHANNEL") or store.require(CHANNEL, cwd)
        channel = int(validate_value(CHANNEL, raw))

    return token, channel

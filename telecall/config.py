"""
Configuration management for telecall.

Loads and validates the server configuration from YAML:

    telecall_url: /_telecall
    is_production: false
    disable_etag: false
    handler_modules:
      - todos.api
      - users.api
    log_level: INFO
    log_format: structured
    console: true

Lookup order: explicit path, $TELECALL_CONFIG, $TELECALL_HOME/config.yaml
(home defaults to ~/.telecall). A missing default file means defaults.
"""

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from telecall.errors import ConfigError


DEFAULT_TELECALL_URL = "/_telecall"
LOG_FORMATS = ("structured", "pretty")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_telecall_home() -> Path:
    """Directory holding config.yaml ($TELECALL_HOME or ~/.telecall)."""
    home = os.environ.get("TELECALL_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".telecall"


@dataclass
class ServerConfig:
    """
    Server configuration.

    Attributes:
        telecall_url: URL path the HTTP adapter answers on
        is_production: Production mode; development mode allows reload()
        disable_etag: Do not compute ETag headers
        handler_modules: Dotted module names whose functions are registered
        log_level: Logging level name
        log_format: "structured" or "pretty"
        console: Log to console
    """
    telecall_url: str = DEFAULT_TELECALL_URL
    is_production: bool = False
    disable_etag: bool = False
    handler_modules: List[str] = field(default_factory=list)
    log_level: str = "INFO"
    log_format: str = "structured"
    console: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerConfig":
        """
        Build and validate a config from a mapping.

        Raises:
            ConfigError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        config = cls(**data)
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration values."""
        if not isinstance(self.telecall_url, str) or not self.telecall_url.startswith("/"):
            raise ConfigError(f"telecall_url must start with '/': {self.telecall_url!r}")

        for name in ("is_production", "disable_etag", "console"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"{name} must be true or false")

        if not isinstance(self.handler_modules, list) or not all(
            isinstance(m, str) and m for m in self.handler_modules
        ):
            raise ConfigError("handler_modules must be a list of module names")

        if not isinstance(self.log_level, str) or self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")

        if self.log_format not in LOG_FORMATS:
            raise ConfigError(f"log_format must be one of {', '.join(LOG_FORMATS)}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _load_yaml(config_path: Path) -> Dict[str, Any]:
    """Load and parse a YAML configuration file."""
    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {config_path}")
    return data


def load_config(config_path: Optional[Path] = None) -> ServerConfig:
    """
    Load server configuration.

    Args:
        config_path: Path to config file. Defaults to $TELECALL_CONFIG, then
            $TELECALL_HOME/config.yaml.

    Returns:
        ServerConfig instance

    Raises:
        ConfigError: If an explicitly given file is missing, or the config
            is invalid
    """
    explicit = config_path is not None or bool(os.environ.get("TELECALL_CONFIG"))
    if config_path is None:
        env_path = os.environ.get("TELECALL_CONFIG")
        config_path = Path(env_path) if env_path else get_telecall_home() / "config.yaml"
    config_path = Path(config_path).expanduser()

    if not config_path.exists():
        if explicit:
            raise ConfigError(f"Configuration file not found: {config_path}")
        return ServerConfig()

    return ServerConfig.from_dict(_load_yaml(config_path))

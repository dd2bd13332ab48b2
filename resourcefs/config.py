"""Configuration loading for resourcefs.

Configuration lives in ~/.resourcefs/config.json (or the file named by the
RESOURCEFS_CONFIG environment variable):

    {
      "default_host": "contoso.crm.dynamics.com",
      "environments": {
        "contoso.crm.dynamics.com": {
          "api_url": "https://contoso.crm.dynamics.com",
          "token": "${CONTOSO_TOKEN}"
        }
      },
      "filter_extensions": [".js", ".html"],
      "publish_on_save": true
    }

String values may reference environment variables as ${VAR} or
${VAR:-default}. RESOURCEFS_API_URL and RESOURCEFS_TOKEN define an extra
environment that takes precedence over the file.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .client import DEFAULT_API_VERSION
from .connection import ConnectionContext, StaticCredentialProvider
from .exceptions import ConfigError
from .oplog import OperationLog
from .resource_types import normalize_extension

__all__ = [
    "DEFAULT_EXCLUDED_PREFIXES",
    "EnvironmentConfig",
    "ResourceFSConfig",
    "expand_env_vars",
    "get_default_config_dir",
    "load_config",
    "resolve_config_path",
]

logger = logging.getLogger(__name__)

# Solution-managed resources shipped by the platform itself
DEFAULT_EXCLUDED_PREFIXES = ["msdyn_", "mscrm_", "adx_", "microsoft"]

# Pattern to match ${VAR} or ${VAR:-default} syntax
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def expand_env_vars(value: str) -> str:
    """Expand ${VAR} and ${VAR:-default} references in a string."""

    def replacer(match: re.Match) -> str:
        env_value = os.environ.get(match.group(1))
        if env_value is not None:
            return env_value
        default = match.group(2)
        return default if default is not None else ""

    return ENV_VAR_PATTERN.sub(replacer, value)


def expand_env_vars_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return expand_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: expand_env_vars_recursive(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [expand_env_vars_recursive(item) for item in obj]
    return obj


def get_default_config_dir() -> Path:
    """Get the default ~/.resourcefs directory."""
    return Path.home() / ".resourcefs"


@dataclass
class EnvironmentConfig:
    """API endpoint and token for one resource store."""

    api_url: str
    token: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EnvironmentConfig":
        if not data.get("api_url"):
            raise ConfigError("Environment is missing 'api_url'")
        return cls(api_url=data["api_url"], token=data.get("token", ""))

    def to_connection(self) -> ConnectionContext:
        return ConnectionContext(token=self.token, api_url=self.api_url)


@dataclass
class ResourceFSConfig:
    """Complete resourcefs configuration."""

    environments: dict[str, EnvironmentConfig] = field(default_factory=dict)
    default_host: str | None = None
    filter_extensions: list[str] = field(default_factory=list)
    excluded_prefixes: list[str] = field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_PREFIXES)
    )
    api_version: str = DEFAULT_API_VERSION
    page_size: int | None = None
    timeout: float = 30.0
    publish_on_save: bool = True
    operation_log: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResourceFSConfig":
        """Create a config from a dictionary.

        Environments are keyed by the host of their api_url, whatever key the
        file used.

        Raises:
            ConfigError: If a field has the wrong shape
        """
        environments = {}
        for key, env_data in data.get("environments", {}).items():
            if not isinstance(env_data, dict):
                raise ConfigError(f"Environment '{key}' must be an object")
            env = EnvironmentConfig.from_dict(env_data)
            environments[env.to_connection().host] = env

        try:
            return cls(
                environments=environments,
                default_host=data.get("default_host"),
                filter_extensions=[
                    normalize_extension(ext)
                    for ext in data.get("filter_extensions", [])
                    if ext
                ],
                excluded_prefixes=list(
                    data.get("excluded_prefixes", DEFAULT_EXCLUDED_PREFIXES)
                ),
                api_version=data.get("api_version", DEFAULT_API_VERSION),
                page_size=int(data["page_size"]) if data.get("page_size") else None,
                timeout=float(data.get("timeout", 30.0)),
                publish_on_save=bool(data.get("publish_on_save", True)),
                operation_log=data.get("operation_log"),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_file(cls, path: Path, expand: bool = True) -> "ResourceFSConfig":
        """Load a config from a JSON file, expanding environment variables.

        With ``expand=False``, ${VAR} references are kept as written so the
        config can be saved back without inlining their values.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ConfigError: If the file is not valid JSON or has bad fields
        """
        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid JSON in {path}: {e}") from e
        return cls.from_dict(expand_env_vars_recursive(data) if expand else data)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "environments": {
                host: {"api_url": env.api_url, "token": env.token}
                for host, env in self.environments.items()
            },
            "filter_extensions": self.filter_extensions,
            "excluded_prefixes": self.excluded_prefixes,
            "api_version": self.api_version,
            "timeout": self.timeout,
            "publish_on_save": self.publish_on_save,
        }
        if self.default_host:
            data["default_host"] = self.default_host
        if self.page_size:
            data["page_size"] = self.page_size
        if self.operation_log:
            data["operation_log"] = self.operation_log
        return data

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    def add_environment(self, api_url: str, token: str = "") -> str:
        """Add or replace an environment and return its host key."""
        env = EnvironmentConfig(api_url=api_url, token=token)
        host = env.to_connection().host
        self.environments[host] = env
        if not self.default_host:
            self.default_host = host
        return host

    def credential_provider(self) -> StaticCredentialProvider:
        return StaticCredentialProvider(
            {host: env.to_connection() for host, env in self.environments.items()}
        )

    def create_operation_log(self) -> OperationLog | None:
        if not self.operation_log:
            return None
        return OperationLog(Path(self.operation_log))


def resolve_config_path(path: Path | None = None) -> Path:
    """Config file to use: ``path``, else RESOURCEFS_CONFIG, else the default."""
    if path is not None:
        return path
    env_path = os.environ.get("RESOURCEFS_CONFIG")
    return Path(env_path) if env_path else get_default_config_dir() / "config.json"


def load_config(path: Path | None = None) -> ResourceFSConfig:
    """Load configuration from disk and the environment.

    Args:
        path: Config file override. Defaults to RESOURCEFS_CONFIG or
            ~/.resourcefs/config.json. A missing file yields the defaults.

    Returns:
        ResourceFSConfig with environment overrides applied
    """
    path = resolve_config_path(path)
    if path.exists():
        config = ResourceFSConfig.from_file(path)
        logger.debug(f"Loaded config from {path}")
    else:
        logger.debug(f"No config file at {path}, using defaults")
        config = ResourceFSConfig()

    api_url = os.environ.get("RESOURCEFS_API_URL")
    if api_url:
        host = config.add_environment(api_url, os.environ.get("RESOURCEFS_TOKEN", ""))
        config.default_host = host

    return config

"""
Client configuration for auditflow.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Union

import yaml

from .exceptions import ConfigError

DEFAULT_BASE_URL = "http://localhost:8000/api/"
DEFAULT_CREDENTIALS_PATH = "~/.auditflow/credentials.json"


@dataclass
class ClientConfig:
    """Configuration for an auditflow client."""

    base_url: str = DEFAULT_BASE_URL

    timeout: float = 30.0

    # Upper bound on a single token refresh exchange
    refresh_timeout: float = 10.0

    credentials_path: str = DEFAULT_CREDENTIALS_PATH

    log_level: str = "info"

    def __post_init__(self):
        # Relative API paths are joined onto the base URL
        if not self.base_url.endswith("/"):
            self.base_url = self.base_url + "/"
        self.timeout = float(self.timeout)
        self.refresh_timeout = float(self.refresh_timeout)

    @property
    def credentials_file(self) -> Path:
        return Path(self.credentials_path).expanduser()

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Create configuration from environment variables."""
        try:
            return cls(
                base_url=os.environ.get("AUDITFLOW_BASE_URL", DEFAULT_BASE_URL),
                timeout=float(os.environ.get("AUDITFLOW_TIMEOUT", "30")),
                refresh_timeout=float(os.environ.get("AUDITFLOW_REFRESH_TIMEOUT", "10")),
                credentials_path=os.environ.get("AUDITFLOW_CREDENTIALS_PATH", DEFAULT_CREDENTIALS_PATH),
                log_level=os.environ.get("AUDITFLOW_LOG_LEVEL", "info"),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting in environment: {e}") from e

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ClientConfig":
        """
        Load configuration from a YAML mapping.

        Unknown keys are rejected so a typo does not silently fall back to a
        default.
        """
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: expected a mapping at the top level")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"{path}: unknown settings {', '.join(unknown)}")

        try:
            return cls(**data)
        except (AttributeError, TypeError, ValueError) as e:
            raise ConfigError(f"{path}: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

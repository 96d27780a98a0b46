"""Configuration management for sshdeploy"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from sshdeploy.constants import (
    CONFIG_ENV_VAR,
    DEFAULT_CONFIG_FILE,
    DEFAULT_EXCLUDES,
    DEFAULT_SSH_PORT,
    DEFAULT_STATE_DIR,
    DEFAULT_TIMEOUT,
)
from sshdeploy.database import default_database_url
from sshdeploy.exceptions import ConfigurationError, TargetNotFoundError
from sshdeploy.models.target import Target


@dataclass
class DeployConfig:
    """Loaded and validated configuration."""

    source: Path
    state_dir: Path
    log_dir: Path
    database_url: str
    secret_store: str = "env"
    targets: Dict[str, Target] = field(default_factory=dict)
    config_path: Optional[Path] = None

    @property
    def base_dir(self) -> Path:
        """Directory relative paths in the config are resolved against."""
        return self.config_path.parent if self.config_path else Path.cwd()

    @property
    def lock_dir(self) -> Path:
        return self.state_dir / "locks"

    @property
    def target_names(self) -> List[str]:
        return sorted(self.targets)

    def get_target(self, name: str) -> Target:
        """
        Get a target by name.

        Raises:
            TargetNotFoundError: If the target is not configured
        """
        if name not in self.targets:
            raise TargetNotFoundError(name, self.target_names)
        return self.targets[name]


def _merge_unique(*groups: List[str]) -> List[str]:
    merged: List[str] = []
    for group in groups:
        for item in group or []:
            if item not in merged:
                merged.append(item)
    return merged


class ConfigLoader:
    """Represents a raw configuration being defaulted and validated"""

    def __init__(self, config_dict: Dict[str, Any], config_path: Optional[Path] = None):
        """
        Initialize configuration

        Args:
            config_dict: Raw configuration dictionary from sshdeploy.yml
            config_path: Path the configuration was read from (optional)
        """
        self.raw_config = config_dict
        self.config_path = config_path
        self._validate()
        self._apply_defaults()

    @property
    def base_dir(self) -> Path:
        return self.config_path.parent if self.config_path else Path.cwd()

    def _validate(self) -> None:
        """Validate top level structure"""
        if not isinstance(self.raw_config, dict):
            raise ConfigurationError(
                "Configuration must be a mapping",
                str(self.config_path) if self.config_path else None,
            )

        targets = self.raw_config.get("targets")
        if not targets or not isinstance(targets, dict):
            raise ConfigurationError(
                "Missing required field: 'targets'",
                "Example:\n"
                "targets:\n"
                "  production:\n"
                "    host: 203.0.113.10\n"
                "    user: deploy\n"
                "    path: /var/www/app\n"
                "    credential: SSH_PRIVATE_KEY\n"
                "    host_key_fingerprint: SHA256:...",
            )

        for name, target in targets.items():
            if not isinstance(target, dict):
                raise ConfigurationError(f"Target '{name}' must be a mapping")
            if not isinstance(target.get("exclude", []), list):
                raise ConfigurationError(f"'targets.{name}.exclude' must be a list")

        defaults = self.raw_config.get("defaults", {}) or {}
        if not isinstance(defaults, dict):
            raise ConfigurationError("'defaults' must be a mapping")

        if not isinstance(defaults.get("exclude", []), list):
            raise ConfigurationError("'defaults.exclude' must be a list")

    def _apply_defaults(self) -> None:
        """Apply default values to every target"""
        defaults = self.raw_config.get("defaults", {}) or {}

        for target in self.raw_config["targets"].values():
            target.setdefault("port", defaults.get("port", DEFAULT_SSH_PORT))
            target.setdefault("timeout", defaults.get("timeout", DEFAULT_TIMEOUT))
            target["exclude"] = _merge_unique(
                DEFAULT_EXCLUDES, defaults.get("exclude", []), target.get("exclude", [])
            )
            if not target.get("post_deploy"):
                target["post_deploy"] = defaults.get("post_deploy")

    def _resolve_path(self, value: str) -> Path:
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = self.base_dir / path
        return path

    def build(self) -> DeployConfig:
        """Build the typed configuration."""
        targets: Dict[str, Target] = {}
        for name, data in self.raw_config["targets"].items():
            try:
                targets[name] = Target.from_dict(name, data)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid value in target '{name}': {e}")

        state_dir = Path(self.raw_config.get("state_dir", DEFAULT_STATE_DIR)).expanduser()
        log_dir = self.raw_config.get("log_dir")

        return DeployConfig(
            source=self._resolve_path(self.raw_config.get("source", ".")),
            state_dir=state_dir,
            log_dir=self._resolve_path(log_dir) if log_dir else state_dir / "logs",
            database_url=self.raw_config.get("database_url")
            or default_database_url(str(state_dir)),
            secret_store=self.raw_config.get("secret_store", "env"),
            targets=targets,
            config_path=self.config_path,
        )


def resolve_config_path(explicit: Optional[str] = None) -> Path:
    """Find the config file: --config, then $SSHDEPLOY_CONFIG, then ./sshdeploy.yml."""
    candidate = explicit or os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE
    return Path(candidate).expanduser().resolve()


def load_config(path: Optional[str] = None) -> DeployConfig:
    """
    Load configuration from YAML.

    A ``.env`` file next to the configuration is loaded into the environment
    first (existing variables win).

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    config_path = resolve_config_path(path)

    if not config_path.is_file():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}",
            f"Create {DEFAULT_CONFIG_FILE} or pass --config",
        )

    env_file = config_path.parent / ".env"
    if env_file.is_file():
        load_dotenv(env_file, override=False)

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}", str(e))

    return ConfigLoader(raw, config_path).build()

"""
Target Command Base Class

Base class for commands that operate on configured targets.
Provides lazy initialization of configuration and services.
"""

from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from sshdeploy.core.config_loader import DeployConfig, load_config
from sshdeploy.core.locks import TargetLocks
from sshdeploy.database import create_session_factory
from sshdeploy.exceptions import ConfigurationError
from sshdeploy.logger import DeployLogger
from sshdeploy.models.target import Target
from sshdeploy.services import (
    AsyncSSHTransport,
    DeploymentHistory,
    KeyRegistry,
    SecretStore,
    SecureTransport,
    create_secret_store,
)
from .base_command import BaseCommand


class TargetCommand(BaseCommand):
    """
    Base class for target-specific commands.

    Provides:
    - Configuration loading (--config)
    - Pre-configured registry, history, secret store and transport
    - Per-target loggers writing under the configured log directory
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(verbose=verbose, json_output=json_output)
        self.config_path = config_path
        self._config: Optional[DeployConfig] = None
        self._session_factory: Optional[sessionmaker] = None
        self._transport: Optional[SecureTransport] = None

    @property
    def config(self) -> DeployConfig:
        if self._config is None:
            self._config = load_config(self.config_path)
        return self._config

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = create_session_factory(self.config.database_url)
        return self._session_factory

    @property
    def registry(self) -> KeyRegistry:
        return KeyRegistry(self.session_factory)

    @property
    def history(self) -> DeploymentHistory:
        return DeploymentHistory(self.session_factory)

    @property
    def secret_store(self) -> SecretStore:
        return create_secret_store(self.config.secret_store, self.config.base_dir)

    @property
    def transport(self) -> SecureTransport:
        if self._transport is None:
            self._transport = AsyncSSHTransport()
        return self._transport

    @property
    def locks(self) -> TargetLocks:
        return TargetLocks(self.config.lock_dir)

    def get_target(self, name: str) -> Target:
        return self.config.get_target(name)

    def get_targets(self, names: List[str]) -> List[Target]:
        """Resolve target names, defaulting to the only target if there is one."""
        if not names:
            if len(self.config.targets) == 1:
                return list(self.config.targets.values())
            raise ConfigurationError(
                "No target selected",
                f"Pass --target, available: {', '.join(self.config.target_names)}",
            )
        return [self.get_target(name) for name in names]

    def create_logger(
        self, target: Target, operation: str, show_target: bool = False
    ) -> Optional[DeployLogger]:
        """Create a per-target logger (skip in JSON mode)."""
        if self.json_output:
            return None
        return DeployLogger(
            target.name,
            operation,
            verbose=self.verbose,
            log_dir=self.config.log_dir,
            show_target=show_target,
        )

    def init_logger(self, target: Target, operation: str) -> Optional[DeployLogger]:
        """Create the command's own logger."""
        self.logger = self.create_logger(target, operation)
        return self.logger

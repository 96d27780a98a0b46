"""
Target Model

A remote host and the single destination path deployments write to.
"""

import posixpath
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

from sshdeploy.constants import (
    DEFAULT_SSH_PORT,
    DEFAULT_TIMEOUT,
    PRIVILEGED_USERS,
)
from sshdeploy.exceptions import ConfigurationError


@dataclass
class Target:
    """Deployment target (one host, one login, one destination path)."""

    name: str
    host: str
    user: str
    path: str
    credential: str
    host_key_fingerprint: Optional[str] = None
    port: int = DEFAULT_SSH_PORT
    credential_label: Optional[str] = None
    credential_passphrase: Optional[str] = None
    post_deploy: Optional[str] = None
    exclude: List[str] = field(default_factory=list)
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self):
        if self.credential_label is None:
            self.credential_label = self.credential
        self.validate()

    def validate(self) -> None:
        """
        Validate target fields.

        Raises:
            ConfigurationError: If a field is missing or unsafe
        """
        if not self.host:
            raise ConfigurationError(f"Target '{self.name}' has no host")

        if not self.user:
            raise ConfigurationError(
                f"Target '{self.name}' has no user",
                "The deploy login must be set explicitly",
            )

        if self.user.lower() in PRIVILEGED_USERS:
            raise ConfigurationError(
                f"Target '{self.name}' uses privileged login '{self.user}'",
                "Create a dedicated deploy user with write access to the destination path only",
            )

        if not self.path or not posixpath.isabs(self.path):
            raise ConfigurationError(
                f"Target '{self.name}' path must be absolute: {self.path!r}"
            )

        if not posixpath.normpath(self.path).strip("/"):
            raise ConfigurationError(
                f"Target '{self.name}' path must not be the filesystem root"
            )

        if not self.credential:
            raise ConfigurationError(f"Target '{self.name}' has no credential secret")

        if not 0 < int(self.port) < 65536:
            raise ConfigurationError(f"Target '{self.name}' has invalid port {self.port}")

        if self.timeout <= 0:
            raise ConfigurationError(
                f"Target '{self.name}' has invalid timeout {self.timeout} (must be > 0)"
            )

    @property
    def address(self) -> str:
        """Get ``user@host:port`` for display."""
        return f"{self.user}@{self.host}:{self.port}"

    def remote_path(self, relative_path: str) -> str:
        """Join a manifest path onto the destination path."""
        return posixpath.join(self.path, relative_path)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for display (no secrets here)."""
        return {
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "path": self.path,
            "credential": self.credential,
            "credential_label": self.credential_label,
            "credential_passphrase": self.credential_passphrase,
            "host_key_fingerprint": self.host_key_fingerprint,
            "post_deploy": self.post_deploy,
            "exclude": list(self.exclude),
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "Target":
        """Create from dictionary."""
        return cls(
            name=name,
            host=data.get("host", ""),
            user=data.get("user", ""),
            path=data.get("path", ""),
            credential=data.get("credential", ""),
            host_key_fingerprint=data.get("host_key_fingerprint"),
            port=int(data.get("port", DEFAULT_SSH_PORT)),
            credential_label=data.get("credential_label"),
            credential_passphrase=data.get("credential_passphrase"),
            post_deploy=data.get("post_deploy"),
            exclude=list(data.get("exclude", [])),
            timeout=float(data.get("timeout", DEFAULT_TIMEOUT)),
        )

    def __repr__(self) -> str:
        return f"Target(name={self.name}, address={self.address}, path={self.path})"

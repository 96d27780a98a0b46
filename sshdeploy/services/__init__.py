"""
sshdeploy Services Layer

Key bookkeeping, policy compilation, sync planning and remote execution.
"""

from .key_registry import KeyRegistry, KeyEntry
from .history import DeploymentHistory
from .remote_executor import RemoteExecutor
from .secret_store import (
    SecretStore,
    EnvSecretStore,
    DotenvSecretStore,
    create_secret_store,
)
from .transport import (
    AsyncSSHTransport,
    HostKey,
    SecureTransport,
    TransportSession,
)

__all__ = [
    "KeyRegistry",
    "KeyEntry",
    "DeploymentHistory",
    "RemoteExecutor",
    "SecretStore",
    "EnvSecretStore",
    "DotenvSecretStore",
    "create_secret_store",
    "AsyncSSHTransport",
    "HostKey",
    "SecureTransport",
    "TransportSession",
]

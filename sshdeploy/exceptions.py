"""
sshdeploy Exception Hierarchy

Clean exception hierarchy for consistent error handling across the CLI.
Every error carries a ``kind`` that is recorded in deployment results and
printed by the CLI next to the failing stage.
"""

from typing import Optional


class SSHDeployError(Exception):
    """Base exception for all sshdeploy errors."""

    kind = "Error"

    def __init__(self, message: str, context: Optional[str] = None):
        self.message = message
        self.context = context
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with optional context."""
        if self.context:
            return f"{self.message}\nContext: {self.context}"
        return self.message


class ConfigurationError(SSHDeployError):
    """Raised when configuration is invalid or missing."""

    kind = "ConfigurationError"


class StateError(SSHDeployError):
    """Raised on an illegal deployment state transition."""

    kind = "StateError"


class CredentialUnavailable(SSHDeployError):
    """Raised when a credential cannot be read from the secret store."""

    kind = "CredentialUnavailable"


class UntrustedHost(SSHDeployError):
    """Raised when the presented host key does not match the pinned fingerprint."""

    kind = "UntrustedHost"

    def __init__(self, host: str, expected: Optional[str], presented: Optional[str]):
        self.host = host
        self.expected = expected
        self.presented = presented
        if not expected:
            message = f"No host key fingerprint pinned for '{host}'"
        else:
            message = f"Host key for '{host}' does not match the pinned fingerprint"
        context = f"Pinned: {expected or '(none)'}, presented: {presented or '(unknown)'}"
        super().__init__(message, context)


class ManifestUnreadable(SSHDeployError):
    """Raised when a local or remote file tree cannot be enumerated."""

    kind = "ManifestUnreadable"


class InvalidPolicy(SSHDeployError):
    """Raised when a restriction policy or public key would compile to an unsafe line."""

    kind = "InvalidPolicy"


class DuplicateLabel(SSHDeployError):
    """Raised when a credential label is registered twice while active."""

    kind = "DuplicateLabel"

    def __init__(self, target: str, label: str):
        self.target = target
        self.label = label
        message = f"Credential '{label}' is already active for target '{target}'"
        context = f"Run: sshdeploy keys:revoke --target {target} --label {label}"
        super().__init__(message, context)


class KeyNotFound(SSHDeployError):
    """Raised when revoking a credential label that is not active."""

    kind = "KeyNotFound"

    def __init__(self, target: str, label: str):
        self.target = target
        self.label = label
        super().__init__(f"No active credential '{label}' for target '{target}'")


class OperationTimeout(SSHDeployError):
    """Raised when a remote operation exceeds its timeout and was aborted."""

    kind = "Timeout"

    def __init__(self, operation: str, host: str, timeout: float):
        self.operation = operation
        self.host = host
        self.timeout = timeout
        message = f"{operation} timed out after {timeout:g}s"
        super().__init__(message, f"Host: {host}")


class TransferFailed(SSHDeployError):
    """Raised when the secure transport fails to connect or move data."""

    kind = "TransferFailed"


class TargetLocked(SSHDeployError):
    """Raised when another process is already deploying to the same target."""

    kind = "TargetLocked"

    def __init__(self, target: str, lock_path: str):
        self.target = target
        self.lock_path = lock_path
        message = f"Target '{target}' is locked by another deployment"
        super().__init__(message, f"Lock file: {lock_path}")


class TargetNotFoundError(ConfigurationError):
    """Raised when a target is not defined in the configuration."""

    def __init__(self, target: str, available_targets: list[str]):
        self.target = target
        self.available_targets = available_targets
        message = f"Target '{target}' not found"
        context = f"Available targets: {', '.join(available_targets) or '(none)'}"
        super().__init__(message, context)

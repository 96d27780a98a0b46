"""
Secret stores.

Read-only access to the external store that owns deploy credentials. In CI
the private key is normally exposed to the job as an environment variable.
"""

import base64
import binascii
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values

from sshdeploy.constants import BASE64_SECRET_SUFFIX
from sshdeploy.exceptions import ConfigurationError, CredentialUnavailable


class SecretStore(ABC):
    """Read-only secret store. The tool never writes secrets."""

    @abstractmethod
    def _lookup(self, secret_name: str) -> Optional[str]:
        """Return the raw value or None if absent."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Human readable store name for error messages."""

    def get(self, secret_name: str) -> bytes:
        """
        Get a secret value.

        Values of names ending in ``_B64`` are base64 decoded, which lets CI
        systems that mangle multi-line values carry a private key.

        Raises:
            CredentialUnavailable: If the secret is missing, empty or undecodable
        """
        value = self._lookup(secret_name)
        if not value:
            raise CredentialUnavailable(
                f"Secret '{secret_name}' is not available",
                f"Store: {self.description}",
            )

        if secret_name.endswith(BASE64_SECRET_SUFFIX):
            try:
                return base64.b64decode(value, validate=True)
            except (binascii.Error, ValueError):
                raise CredentialUnavailable(
                    f"Secret '{secret_name}' is not valid base64",
                    f"Store: {self.description}",
                )

        data = value.encode("utf-8")
        if not data.endswith(b"\n"):
            data += b"\n"
        return data


class EnvSecretStore(SecretStore):
    """Secrets exposed as environment variables."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = os.environ if environ is None else environ

    @property
    def description(self) -> str:
        return "environment"

    def _lookup(self, secret_name: str) -> Optional[str]:
        return self.environ.get(secret_name)


class DotenvSecretStore(SecretStore):
    """Secrets kept in a .env file (local runs)."""

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()
        self._values: Optional[Dict[str, Optional[str]]] = None

    @property
    def description(self) -> str:
        return f"dotenv file {self.path}"

    def _lookup(self, secret_name: str) -> Optional[str]:
        if self._values is None:
            if not self.path.is_file():
                raise CredentialUnavailable(
                    f"Secret file '{self.path}' does not exist",
                    f"Needed for secret '{secret_name}'",
                )
            self._values = dotenv_values(self.path)
        return self._values.get(secret_name)


def create_secret_store(store_name: str, base_dir: Optional[Path] = None) -> SecretStore:
    """
    Build a secret store from its config string.

    Args:
        store_name: ``env`` or ``dotenv:<path>``
        base_dir: Directory relative dotenv paths are resolved against

    Raises:
        ConfigurationError: If the store type is unknown
    """
    store_name = (store_name or "env").strip()

    if store_name == "env":
        return EnvSecretStore()

    if store_name.startswith("dotenv:"):
        path = Path(store_name[len("dotenv:"):]).expanduser()
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        return DotenvSecretStore(path)

    raise ConfigurationError(
        f"Unknown secret store '{store_name}'",
        "Use 'env' or 'dotenv:<path>'",
    )

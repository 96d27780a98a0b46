"""
Credential Models

Public key material and the transient private key handle used for one run.
"""

from dataclasses import dataclass, field
from typing import Optional

from sshdeploy.models.policy import RestrictionPolicy


@dataclass(frozen=True)
class PublicKey:
    """An OpenSSH public key (``key-type base64 [comment]``)."""

    key_type: str
    blob: str
    comment: str = ""

    @property
    def openssh(self) -> str:
        """Get the key as ``key-type base64`` without comment."""
        return f"{self.key_type} {self.blob}"

    def __str__(self) -> str:
        if self.comment:
            return f"{self.openssh} {self.comment}"
        return self.openssh

    def __repr__(self) -> str:
        return f"PublicKey(type={self.key_type}, comment={self.comment!r})"


@dataclass
class Credential:
    """
    Private key handle borrowed from the secret store for a single run.

    The key bytes live in a mutable buffer so they can be zeroed when the run
    ends. Nothing in this class ever formats the key material.
    """

    label: str
    secret_name: str
    private_key: bytearray = field(repr=False)
    public_key: Optional[PublicKey] = None
    policy: RestrictionPolicy = field(default_factory=RestrictionPolicy)
    passphrase: Optional[str] = field(default=None, repr=False)

    @property
    def is_released(self) -> bool:
        """Check if the key material has been released."""
        return len(self.private_key) == 0

    def key_bytes(self) -> bytes:
        """Get an immutable copy of the key for the transport."""
        return bytes(self.private_key)

    def release(self) -> None:
        """Zero the private key buffer in place and drop it."""
        for i in range(len(self.private_key)):
            self.private_key[i] = 0
        del self.private_key[:]
        self.passphrase = None

    def __repr__(self) -> str:
        state = "released" if self.is_released else "loaded"
        return f"Credential(label={self.label}, secret={self.secret_name}, {state})"

"""Secure transport for remote operations (asyncssh based)."""

import posixpath
import stat
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Tuple

import asyncssh

from sshdeploy.constants import SSH_DIR_PERMISSIONS
from sshdeploy.exceptions import (
    CredentialUnavailable,
    ManifestUnreadable,
    TransferFailed,
)
from sshdeploy.models.plan import FileEntry, Manifest

TEMP_SUFFIX = ".sshdeploy-tmp"


def normalize_fingerprint(value: Optional[str]) -> str:
    """Normalize an OpenSSH SHA256 fingerprint for comparison."""
    if not value:
        return ""
    value = value.strip()
    if value.upper().startswith("SHA256:"):
        value = "SHA256:" + value[len("SHA256:"):]
    return value.rstrip("=")


@dataclass(frozen=True)
class HostKey:
    """Host key presented by a server, before any authentication."""

    fingerprint: str
    key: Any = field(default=None, compare=False, repr=False)


class TransportSession(ABC):
    """Authenticated session to one host."""

    @abstractmethod
    async def run(self, command: str) -> Tuple[int, str, str]:
        """Execute one command, returning (exit_code, stdout, stderr)."""

    @abstractmethod
    async def list_files(
        self, root: str, skip: Optional[Callable[[str], bool]] = None
    ) -> Optional[Manifest]:
        """List regular files under root, or None if root does not exist."""

    @abstractmethod
    async def upload(self, local_path: Path, remote_path: str) -> int:
        """Upload one file preserving its mtime. Returns bytes sent."""

    @abstractmethod
    async def remove(self, remote_path: str) -> None:
        """Remove one file."""

    @abstractmethod
    async def remove_dir(self, remote_path: str) -> bool:
        """Remove an empty directory. Returns False if missing or not empty."""

    @abstractmethod
    async def read_text(self, remote_path: str) -> Optional[str]:
        """Read a text file, or None if it does not exist."""

    @abstractmethod
    async def write_text(self, remote_path: str, content: str, mode: int) -> None:
        """Atomically replace a text file and set its mode."""

    @abstractmethod
    async def close(self) -> None:
        """Close the session gracefully."""

    @abstractmethod
    def abort(self) -> None:
        """Forcibly drop the session (hard cancel)."""


class SecureTransport(ABC):
    """Factory for sessions; owns authentication and encryption."""

    @abstractmethod
    async def fetch_host_key(self, host: str, port: int) -> HostKey:
        """Get the host key a server presents. Sends no credentials."""

    @abstractmethod
    async def open_session(
        self,
        host: str,
        port: int,
        username: str,
        private_key: bytes,
        host_key: HostKey,
        passphrase: Optional[str] = None,
    ) -> TransportSession:
        """Authenticate to a host that must present exactly ``host_key``."""

    def validate_private_key(
        self, private_key: bytes, passphrase: Optional[str] = None
    ) -> None:
        """Check that a private key can be used by this transport."""


class AsyncSSHSession(TransportSession):
    """Session backed by an asyncssh connection and its SFTP channel."""

    def __init__(self, conn: asyncssh.SSHClientConnection):
        self.conn = conn
        self._sftp: Optional[asyncssh.SFTPClient] = None

    async def _sftp_client(self) -> asyncssh.SFTPClient:
        if self._sftp is None:
            try:
                self._sftp = await self.conn.start_sftp_client()
            except (asyncssh.Error, OSError) as e:
                raise TransferFailed(f"Could not start SFTP: {e}")
        return self._sftp

    async def run(self, command: str) -> Tuple[int, str, str]:
        try:
            result = await self.conn.run(command, check=False)
        except (asyncssh.Error, OSError) as e:
            raise TransferFailed(f"Remote command could not be started: {e}")

        exit_code = result.exit_status
        if exit_code is None:
            # Killed by a signal
            exit_code = -1
        return exit_code, str(result.stdout or ""), str(result.stderr or "")

    async def list_files(
        self, root: str, skip: Optional[Callable[[str], bool]] = None
    ) -> Optional[Manifest]:
        sftp = await self._sftp_client()
        try:
            if not await sftp.isdir(root):
                if await sftp.exists(root):
                    raise ManifestUnreadable(f"Remote path '{root}' is not a directory")
                return None

            manifest: Manifest = {}
            pending = [""]
            while pending:
                prefix = pending.pop()
                directory = posixpath.join(root, prefix) if prefix else root
                for entry in await sftp.readdir(directory):
                    name = entry.filename
                    if name in (".", "..") or name.endswith(TEMP_SUFFIX):
                        continue
                    rel_path = prefix + name
                    if skip is not None and skip(rel_path):
                        continue
                    mode = entry.attrs.permissions or 0
                    if stat.S_ISDIR(mode):
                        pending.append(rel_path + "/")
                    elif stat.S_ISREG(mode):
                        manifest[rel_path] = FileEntry(
                            size=entry.attrs.size or 0,
                            fingerprint=str(int(entry.attrs.mtime or 0)),
                        )
            return manifest
        except (asyncssh.SFTPError, OSError) as e:
            raise ManifestUnreadable(f"Cannot enumerate remote path '{root}': {e}")

    async def upload(self, local_path: Path, remote_path: str) -> int:
        sftp = await self._sftp_client()
        directory, name = posixpath.split(remote_path)
        temp_path = posixpath.join(directory, f".{name}{TEMP_SUFFIX}")
        try:
            await sftp.makedirs(directory, exist_ok=True)
            await sftp.put(str(local_path), temp_path, preserve=True)
            await sftp.posix_rename(temp_path, remote_path)
        except (asyncssh.SFTPError, OSError) as e:
            raise TransferFailed(f"Upload of '{remote_path}' failed: {e}")
        return local_path.stat().st_size

    async def remove(self, remote_path: str) -> None:
        sftp = await self._sftp_client()
        try:
            await sftp.remove(remote_path)
        except asyncssh.SFTPNoSuchFile:
            pass
        except (asyncssh.SFTPError, OSError) as e:
            raise TransferFailed(f"Delete of '{remote_path}' failed: {e}")

    async def remove_dir(self, remote_path: str) -> bool:
        sftp = await self._sftp_client()
        try:
            await sftp.rmdir(remote_path)
        except (asyncssh.SFTPNoSuchFile, asyncssh.SFTPDirNotEmpty, asyncssh.SFTPFailure):
            # OpenSSH reports a non-empty directory as a generic failure
            return False
        except (asyncssh.SFTPError, OSError) as e:
            raise TransferFailed(f"Removal of directory '{remote_path}' failed: {e}")
        return True

    async def read_text(self, remote_path: str) -> Optional[str]:
        sftp = await self._sftp_client()
        try:
            async with sftp.open(remote_path, "r") as f:
                return await f.read()
        except asyncssh.SFTPNoSuchFile:
            return None
        except (asyncssh.SFTPError, OSError) as e:
            raise TransferFailed(f"Read of '{remote_path}' failed: {e}")

    async def write_text(self, remote_path: str, content: str, mode: int) -> None:
        sftp = await self._sftp_client()
        directory, name = posixpath.split(remote_path)
        temp_path = posixpath.join(directory, f".{name}{TEMP_SUFFIX}")
        try:
            if directory and not await sftp.isdir(directory):
                await sftp.makedirs(directory, exist_ok=True)
                await sftp.chmod(directory, SSH_DIR_PERMISSIONS)
            async with sftp.open(temp_path, "w") as f:
                await f.write(content)
            await sftp.chmod(temp_path, mode)
            await sftp.posix_rename(temp_path, remote_path)
        except (asyncssh.SFTPError, OSError) as e:
            raise TransferFailed(f"Write of '{remote_path}' failed: {e}")

    async def close(self) -> None:
        if self._sftp is not None:
            self._sftp.exit()
            self._sftp = None
        self.conn.close()
        await self.conn.wait_closed()

    def abort(self) -> None:
        self.conn.abort()


class AsyncSSHTransport(SecureTransport):
    """
    SSH transport using asyncssh.

    Host keys are never taken from ``~/.ssh/known_hosts``: the only key
    trusted for a connection is the one the caller verified against the
    pinned fingerprint.
    """

    def __init__(self, connect_timeout: float = 10):
        self.connect_timeout = connect_timeout

    async def fetch_host_key(self, host: str, port: int) -> HostKey:
        try:
            key = await asyncssh.get_server_host_key(host, port, config=None)
        except (asyncssh.Error, OSError) as e:
            raise TransferFailed(
                f"Could not reach {host}:{port}: {e}",
                "Host key exchange failed before authentication",
            )
        if key is None:
            raise TransferFailed(f"{host}:{port} presented no host key")
        return HostKey(fingerprint=key.get_fingerprint("sha256"), key=key)

    def _import_key(
        self, private_key: bytes, passphrase: Optional[str]
    ) -> asyncssh.SSHKey:
        try:
            return asyncssh.import_private_key(private_key, passphrase)
        except (asyncssh.KeyImportError, ValueError):
            # Never include the key data in the message
            raise CredentialUnavailable(
                "Private key could not be parsed",
                "Check the secret holds an unencrypted OpenSSH/PEM key or set credential_passphrase on the target",
            )

    def validate_private_key(
        self, private_key: bytes, passphrase: Optional[str] = None
    ) -> None:
        self._import_key(private_key, passphrase)

    async def open_session(
        self,
        host: str,
        port: int,
        username: str,
        private_key: bytes,
        host_key: HostKey,
        passphrase: Optional[str] = None,
    ) -> TransportSession:
        client_key = self._import_key(private_key, passphrase)
        try:
            conn = await asyncssh.connect(
                host,
                port,
                username=username,
                client_keys=[client_key],
                known_hosts=([host_key.key], [], []),
                agent_path=None,
                agent_forwarding=False,
                password=None,
                kbdint_auth=False,
                config=None,
                connect_timeout=self.connect_timeout,
            )
        except asyncssh.HostKeyNotVerifiable as e:
            raise TransferFailed(
                f"Host key of {host} changed during connection: {e}",
                "The verified key was not presented again",
            )
        except asyncssh.PermissionDenied:
            raise TransferFailed(
                f"Authentication as '{username}' on {host} was rejected",
                "Is the public key installed in authorized_keys?",
            )
        except (asyncssh.Error, OSError) as e:
            raise TransferFailed(f"Connection to {host}:{port} failed: {e}")
        return AsyncSSHSession(conn)

"""Remote executor: verified sessions for sync and constrained commands."""

import asyncio
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Iterable, Optional, Sequence, Set, Union

from sshdeploy.constants import (
    AUTHORIZED_KEYS_PATH,
    AUTHORIZED_KEYS_PERMISSIONS,
    HOST_KEY_TIMEOUT,
)
from sshdeploy.exceptions import InvalidPolicy, OperationTimeout, UntrustedHost, TransferFailed
from sshdeploy.logger import DeployLogger
from sshdeploy.models.credential import Credential
from sshdeploy.models.plan import (
    Manifest,
    SyncAction,
    SyncOperation,
    SyncPlan,
    parent_directories,
)
from sshdeploy.models.results import CommandOutcome, TransferOutcome
from sshdeploy.models.target import Target
from sshdeploy.services.sync_planner import is_excluded
from sshdeploy.services.transport import (
    HostKey,
    SecureTransport,
    TransportSession,
    normalize_fingerprint,
)


class RemoteExecutor:
    """
    Runs remote operations against a single target.

    Every operation:
    - fetches the presented host key and compares it to the pinned
      fingerprint before any credential is sent
    - opens one authenticated session pinned to that exact key
    - is bounded by a timeout; on expiry the session is aborted
    """

    def __init__(
        self,
        transport: SecureTransport,
        logger: Optional[DeployLogger] = None,
        host_key_timeout: float = HOST_KEY_TIMEOUT,
    ):
        self.transport = transport
        self.logger = logger
        self.host_key_timeout = host_key_timeout

    def _log(self, message: str, level: str = "INFO") -> None:
        if self.logger:
            self.logger.log(message, level)

    async def _bounded(self, operation: str, target: Target, timeout: float, work):
        try:
            return await asyncio.wait_for(work, timeout)
        except asyncio.TimeoutError:
            self._log(f"{operation} on {target.host} exceeded {timeout:g}s, session aborted", "ERROR")
            raise OperationTimeout(operation, target.host, timeout)

    async def fetch_host_fingerprint(self, target: Target) -> str:
        """
        Get the fingerprint the target presents, without trusting it.

        Used by operators to pin a host out of band.
        """
        host_key = await self._bounded(
            "Host key fetch",
            target,
            self.host_key_timeout,
            self.transport.fetch_host_key(target.host, target.port),
        )
        return host_key.fingerprint

    async def verify_host(self, target: Target) -> HostKey:
        """
        Fetch the presented host key and check it against the pinned fingerprint.

        Raises:
            UntrustedHost: If nothing is pinned or the fingerprint differs
        """
        if not target.host_key_fingerprint:
            raise UntrustedHost(target.host, None, None)

        presented = await self._bounded(
            "Host key fetch",
            target,
            self.host_key_timeout,
            self.transport.fetch_host_key(target.host, target.port),
        )
        if normalize_fingerprint(presented.fingerprint) != normalize_fingerprint(
            target.host_key_fingerprint
        ):
            self._log(
                f"Host key mismatch for {target.host}: presented {presented.fingerprint}",
                "ERROR",
            )
            raise UntrustedHost(
                target.host, target.host_key_fingerprint, presented.fingerprint
            )

        self._log(f"Host key verified for {target.host} ({presented.fingerprint})")
        return presented

    @asynccontextmanager
    async def session(
        self, target: Target, credential: Credential
    ) -> AsyncIterator[TransportSession]:
        """Open a verified, authenticated session; abort it on any failure."""
        host_key = await self.verify_host(target)
        session = await self.transport.open_session(
            target.host,
            target.port,
            target.user,
            credential.key_bytes(),
            host_key,
            credential.passphrase,
        )
        self._log(f"Session opened to {target.address}")
        try:
            yield session
        except BaseException:
            session.abort()
            raise
        await session.close()

    async def fetch_manifest(
        self,
        target: Target,
        credential: Credential,
        exclusions: Iterable[str] = (),
        timeout: Optional[float] = None,
    ) -> Manifest:
        """
        List the destination tree.

        A missing destination yields an empty manifest (first deployment).

        Raises:
            ManifestUnreadable: If the destination cannot be enumerated
        """
        timeout = timeout or target.timeout
        exclusions = list(exclusions)

        async def _list() -> Manifest:
            async with self.session(target, credential) as session:
                manifest = await session.list_files(
                    target.path, skip=lambda path: is_excluded(path, exclusions)
                )
            if manifest is None:
                self._log(f"Destination {target.path} does not exist yet")
                return {}
            return manifest

        manifest = await self._bounded("Remote listing", target, timeout, _list())
        self._log(f"Remote manifest has {len(manifest)} files")
        return manifest

    async def sync(
        self,
        plan: SyncPlan,
        target: Target,
        credential: Credential,
        source_root: Union[str, Path],
        timeout: Optional[float] = None,
    ) -> TransferOutcome:
        """
        Apply a sync plan: creates and updates first, deletes last.

        Deletes of paths that stand in the way of a transfer (a file where a
        directory must go, or the reverse) run before the transfers. Remote
        directories left empty by deletes are removed.

        Stops at the first failing operation; the outcome records what was
        applied and the error.

        Raises:
            UntrustedHost: If the host key does not verify
            OperationTimeout: If the transfer exceeds the timeout
            TransferFailed: If no session could be established
        """
        timeout = timeout or target.timeout
        source_root = Path(source_root).expanduser()
        outcome = TransferOutcome()

        if plan.is_empty:
            self._log("Remote tree already up to date")
            return outcome

        started = time.monotonic()
        blocking = plan.blocking_deletes
        remaining = plan.apply_order[len(blocking):]
        keep = set(parent_directories(op.path for op in plan.transfer_operations))

        async def _apply() -> None:
            async with self.session(target, credential) as session:
                if not await self._apply_operations(
                    session, blocking, target, source_root, outcome
                ):
                    return
                if not await self._prune_directories(session, blocking, target, keep, outcome):
                    return
                if not await self._apply_operations(
                    session, remaining, target, source_root, outcome
                ):
                    return
                deleted = [op for op in remaining if op.is_delete]
                await self._prune_directories(session, deleted, target, keep, outcome)

        try:
            await self._bounded("Sync", target, timeout, _apply())
        finally:
            outcome.duration_seconds = time.monotonic() - started

        if outcome.error:
            self._log(f"Sync stopped at '{outcome.failed_operation}': {outcome.error}", "ERROR")
        else:
            self._log(f"Applied {len(outcome.applied)} operations ({outcome.bytes_sent} bytes)")
        return outcome

    async def _apply_operations(
        self,
        session: TransportSession,
        operations: Sequence[SyncOperation],
        target: Target,
        source_root: Path,
        outcome: TransferOutcome,
    ) -> bool:
        for operation in operations:
            remote_path = target.remote_path(operation.path)
            try:
                if operation.is_delete:
                    await session.remove(remote_path)
                else:
                    outcome.bytes_sent += await session.upload(
                        source_root / operation.path, remote_path
                    )
            except OSError as e:
                outcome.failed_operation = operation
                outcome.error = TransferFailed(
                    f"Cannot read local file '{operation.path}': {e.strerror or e}"
                )
                return False
            except TransferFailed as e:
                outcome.failed_operation = operation
                outcome.error = e
                return False
            outcome.applied.append(operation)
            self._log(str(operation), "DEBUG")
        return True

    async def _prune_directories(
        self,
        session: TransportSession,
        deleted: Sequence[SyncOperation],
        target: Target,
        keep: Set[str],
        outcome: TransferOutcome,
    ) -> bool:
        """Remove the parents of deleted files once they are empty."""
        for directory in parent_directories(op.path for op in deleted):
            if directory in keep:
                continue
            try:
                removed = await session.remove_dir(target.remote_path(directory))
            except TransferFailed as e:
                outcome.failed_operation = SyncOperation(directory, SyncAction.DELETE)
                outcome.error = e
                return False
            if removed:
                self._log(f"removed empty directory {directory}", "DEBUG")
        return True

    async def run_command(
        self,
        command: str,
        target: Target,
        credential: Credential,
        timeout: Optional[float] = None,
    ) -> CommandOutcome:
        """
        Execute exactly one command in one session.

        A non-zero exit is returned, not raised.

        Raises:
            UntrustedHost: If the host key does not verify
            OperationTimeout: If the command exceeds the timeout
            TransferFailed: If no session could be established
        """
        timeout = timeout or target.timeout
        started = time.monotonic()

        async def _run():
            async with self.session(target, credential) as session:
                return await session.run(command)

        if self.logger:
            self.logger.log_command(command)

        exit_code, stdout, stderr = await self._bounded(
            "Remote command", target, timeout, _run()
        )

        if self.logger:
            self.logger.log_output(stdout, "stdout")
            self.logger.log_output(stderr, "stderr")

        return CommandOutcome(
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            command=command,
            duration_seconds=time.monotonic() - started,
        )

    async def install_authorized_key(
        self,
        line: str,
        target: Target,
        credential: Credential,
        timeout: Optional[float] = None,
    ) -> bool:
        """
        Append a compiled authorized_keys line for the target's login.

        Returns:
            True if the line was added, False if it was already present
        """
        line = line.strip()
        if not line or "\n" in line or "\r" in line:
            raise InvalidPolicy("Authorized key line must be a single line")

        timeout = timeout or target.timeout

        async def _install() -> bool:
            async with self.session(target, credential) as session:
                existing = await session.read_text(AUTHORIZED_KEYS_PATH) or ""
                if line in (entry.strip() for entry in existing.splitlines()):
                    return False
                if existing and not existing.endswith("\n"):
                    existing += "\n"
                await session.write_text(
                    AUTHORIZED_KEYS_PATH,
                    existing + line + "\n",
                    AUTHORIZED_KEYS_PERMISSIONS,
                )
                return True

        added = await self._bounded("Key installation", target, timeout, _install())
        self._log(
            "Authorized key installed" if added else "Authorized key already present"
        )
        return added

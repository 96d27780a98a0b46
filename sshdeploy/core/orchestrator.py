"""
Deployment orchestrator.

One run is a sequential pipeline::

    Idle -> CredentialLoaded -> Synced -> [PostDeployRan] -> Complete

with Failed(stage) reachable from every non-terminal state. A non-zero
post-deploy exit is recorded as CommandNonZeroExit and ends the run
Complete with status partial.
"""

import asyncio
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set, Union

from sshdeploy.core.locks import TargetLocks
from sshdeploy.exceptions import (
    CredentialUnavailable,
    SSHDeployError,
    StateError,
    TargetLocked,
)
from sshdeploy.logger import DeployLogger
from sshdeploy.models.credential import Credential
from sshdeploy.models.policy import RestrictionPolicy
from sshdeploy.models.results import (
    DeploymentResult,
    DeploymentStatus,
    ErrorKind,
    RunStage,
    StepResult,
    excerpt,
)
from sshdeploy.models.target import Target
from sshdeploy.services.history import DeploymentHistory
from sshdeploy.services.key_registry import KeyRegistry
from sshdeploy.services.remote_executor import RemoteExecutor
from sshdeploy.services.secret_store import SecretStore
from sshdeploy.services.sync_planner import build_local_manifest, plan
from sshdeploy.services.transport import SecureTransport
from sshdeploy.utils import new_run_id, utcnow


class RunState(Enum):
    """States of one deployment run."""

    IDLE = "idle"
    CREDENTIAL_LOADED = "credential_loaded"
    SYNCED = "synced"
    POST_DEPLOY_RAN = "post_deploy_ran"
    COMPLETE = "complete"
    FAILED = "failed"


TRANSITIONS: Dict[RunState, Set[RunState]] = {
    RunState.IDLE: {RunState.CREDENTIAL_LOADED, RunState.FAILED},
    RunState.CREDENTIAL_LOADED: {RunState.SYNCED, RunState.FAILED},
    RunState.SYNCED: {RunState.POST_DEPLOY_RAN, RunState.COMPLETE, RunState.FAILED},
    RunState.POST_DEPLOY_RAN: {RunState.COMPLETE, RunState.FAILED},
    RunState.COMPLETE: set(),
    RunState.FAILED: set(),
}


def _error_kind(error: Exception) -> Optional[ErrorKind]:
    kind = getattr(error, "kind", None)
    try:
        return ErrorKind(kind)
    except ValueError:
        return None


class DeploymentRun:
    """State of a single run. Never reused: a new run gets a new instance."""

    def __init__(self, target: str):
        self.run_id = new_run_id()
        self.target = target
        self.state = RunState.IDLE
        self.states: List[RunState] = [RunState.IDLE]
        self.steps: List[StepResult] = []
        self.failed_stage: Optional[RunStage] = None
        self.error: Optional[Exception] = None
        self.started_at = utcnow()

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.state]

    def advance(self, new_state: RunState) -> None:
        """
        Move to a new state.

        Raises:
            StateError: If the transition is not allowed
        """
        if new_state not in TRANSITIONS[self.state]:
            raise StateError(
                f"Illegal transition {self.state.value} -> {new_state.value}",
                f"Run {self.run_id} for target '{self.target}'",
            )
        self.state = new_state
        self.states.append(new_state)

    def fail(self, stage: RunStage, error: Exception) -> None:
        """Enter Failed(stage)."""
        self.advance(RunState.FAILED)
        self.failed_stage = stage
        self.error = error

    def add_step(self, step: StepResult) -> None:
        self.steps.append(step)

    def result(self, message_filter: Callable[[str], str] = str) -> DeploymentResult:
        """
        Build the immutable result of a finished run.

        Raises:
            StateError: If the run has not reached a terminal state
        """
        if not self.is_terminal:
            raise StateError(f"Run {self.run_id} is still in state {self.state.value}")

        if self.state == RunState.FAILED:
            status = DeploymentStatus.FAILED
        elif any(step.error_kind is not None for step in self.steps):
            status = DeploymentStatus.PARTIAL
        else:
            status = DeploymentStatus.SUCCESS

        return DeploymentResult(
            run_id=self.run_id,
            target=self.target,
            status=status,
            started_at=self.started_at,
            finished_at=utcnow(),
            steps=tuple(self.steps),
            failed_stage=self.failed_stage,
            error_kind=_error_kind(self.error) if self.error else None,
            error_message=message_filter(str(self.error)) if self.error else "",
        )


LoggerFactory = Callable[[Target], Optional[DeployLogger]]


class DeploymentOrchestrator:
    """
    Top-level control flow for deployments.

    Collaborators are injected so runs can be exercised without a network:
    the secret store provides the private key, the transport carries the
    sessions, the registry refuses revoked credentials, and the history
    keeps one record per run.
    """

    def __init__(
        self,
        transport: SecureTransport,
        secret_store: SecretStore,
        registry: Optional[KeyRegistry] = None,
        history: Optional[DeploymentHistory] = None,
        locks: Optional[TargetLocks] = None,
        logger_factory: Optional[LoggerFactory] = None,
    ):
        self.transport = transport
        self.secret_store = secret_store
        self.registry = registry
        self.history = history
        self.locks = locks or TargetLocks()
        self.logger_factory = logger_factory

    def _load_passphrase(self, secret_name: str) -> str:
        raw = self.secret_store.get(secret_name)
        try:
            return raw.decode("utf-8").rstrip("\r\n")
        except UnicodeDecodeError:
            raise CredentialUnavailable(
                f"Passphrase secret '{secret_name}' is not valid UTF-8"
            )

    def load_credential(
        self, target: Target, logger: Optional[DeployLogger] = None
    ) -> Credential:
        """
        Fetch the target's private key from the secret store.

        Raises:
            CredentialUnavailable: If the secret is missing, unusable or revoked
        """
        label = target.credential_label
        entry = None

        if self.registry is not None:
            entry = self.registry.get(target.name, label)
            if entry is None:
                if self.registry.is_known(target.name, label):
                    raise CredentialUnavailable(
                        f"Credential '{label}' has been revoked for target '{target.name}'",
                        f"Register the replacement: sshdeploy rotate-key --target {target.name}",
                    )
                if logger:
                    logger.warning(
                        f"Credential '{label}' is not in the key registry for '{target.name}'"
                    )

        secret = self.secret_store.get(target.credential)
        if logger:
            logger.redact(secret)

        passphrase = None
        if target.credential_passphrase:
            passphrase = self._load_passphrase(target.credential_passphrase)
            if logger:
                logger.redact(passphrase)

        credential = Credential(
            label=label,
            secret_name=target.credential,
            private_key=bytearray(secret),
            public_key=entry.public_key if entry else None,
            policy=entry.policy if entry else RestrictionPolicy(),
            passphrase=passphrase,
        )
        try:
            self.transport.validate_private_key(
                credential.key_bytes(), credential.passphrase
            )
        except BaseException:
            credential.release()
            raise
        return credential

    async def run(
        self,
        target: Target,
        source_root: Union[str, Path],
        exclude: Iterable[str] = (),
        timeout: Optional[float] = None,
    ) -> DeploymentResult:
        """
        Deploy one target.

        Taxonomy errors never escape: they end the run in Failed(stage) and
        are reported through the returned DeploymentResult.
        """
        logger = self.logger_factory(target) if self.logger_factory else None
        result = None
        try:
            result = await self._run(target, Path(source_root), exclude, timeout, logger)
            return result
        finally:
            if logger:
                logger.close(result.status.value.upper() if result else "FAILED")

    async def run_many(
        self,
        targets: Iterable[Target],
        source_root: Union[str, Path],
        exclude: Iterable[str] = (),
        timeout: Optional[float] = None,
    ) -> List[DeploymentResult]:
        """Deploy independent targets concurrently, one result per target."""
        exclude = list(exclude)
        return list(
            await asyncio.gather(
                *(self.run(target, source_root, exclude, timeout) for target in targets)
            )
        )

    def _step(
        self,
        stage: RunStage,
        started_at,
        exit_code: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        error: Optional[Exception] = None,
        error_kind: Optional[ErrorKind] = None,
        detail: str = "",
        logger: Optional[DeployLogger] = None,
    ) -> StepResult:
        scrub = logger.scrub if logger else str
        if error is not None and error_kind is None:
            error_kind = _error_kind(error)
        return StepResult(
            stage=stage,
            started_at=started_at,
            finished_at=utcnow(),
            exit_code=exit_code,
            stdout_excerpt=excerpt(scrub(stdout)),
            stderr_excerpt=excerpt(scrub(stderr)),
            error_kind=error_kind,
            detail=scrub(str(error)) if error is not None and not detail else detail,
        )

    def _fail(
        self,
        deployment: DeploymentRun,
        stage: RunStage,
        error: Exception,
        started_at,
        logger: Optional[DeployLogger],
    ) -> None:
        deployment.add_step(self._step(stage, started_at, error=error, logger=logger))
        deployment.fail(stage, error)
        if logger:
            kind = getattr(error, "kind", type(error).__name__)
            logger.log_error(str(error), context=f"Stage: {stage.value}, kind: {kind}")

    async def _run(
        self,
        target: Target,
        source_root: Path,
        extra_exclude: Iterable[str],
        timeout: Optional[float],
        logger: Optional[DeployLogger],
    ) -> DeploymentResult:
        deployment = DeploymentRun(target.name)
        executor = RemoteExecutor(self.transport, logger)
        exclusions = list(target.exclude) + [e for e in extra_exclude if e not in target.exclude]
        timeout = timeout or target.timeout
        credential: Optional[Credential] = None

        if logger:
            logger.log(f"Run {deployment.run_id} for {target.address}:{target.path}")

        lock_started = utcnow()
        try:
            async with self.locks.hold(target.name):
                credential = await self._credential_stage(deployment, target, logger)
                if credential is not None and await self._sync_stage(
                    deployment, executor, target, credential, source_root, exclusions, timeout, logger
                ):
                    await self._post_deploy_stage(
                        deployment, executor, target, credential, timeout, logger
                    )
        except TargetLocked as e:
            self._fail(deployment, RunStage.LOCK, e, lock_started, logger)
        finally:
            if credential is not None:
                credential.release()

        result = deployment.result(logger.scrub if logger else str)
        if self.history is not None:
            self.history.record(result)

        if logger:
            if result.status == DeploymentStatus.SUCCESS:
                logger.success(f"Deployment complete ({result.duration_seconds:.1f}s)")
            elif result.status == DeploymentStatus.PARTIAL:
                logger.warning("Deployment complete, post-deploy command failed (partial)")
        return result

    async def _credential_stage(
        self,
        deployment: DeploymentRun,
        target: Target,
        logger: Optional[DeployLogger],
    ) -> Optional[Credential]:
        if logger:
            logger.step("Loading credential")
        started = utcnow()
        try:
            credential = self.load_credential(target, logger)
        except SSHDeployError as e:
            self._fail(deployment, RunStage.CREDENTIAL, e, started, logger)
            return None

        deployment.add_step(
            self._step(RunStage.CREDENTIAL, started, detail=f"secret {target.credential}")
        )
        deployment.advance(RunState.CREDENTIAL_LOADED)
        if logger:
            logger.success(f"Credential '{credential.label}' loaded")
        return credential

    async def _sync_stage(
        self,
        deployment: DeploymentRun,
        executor: RemoteExecutor,
        target: Target,
        credential: Credential,
        source_root: Path,
        exclusions: List[str],
        timeout: float,
        logger: Optional[DeployLogger],
    ) -> bool:
        if logger:
            logger.step(f"Syncing {source_root} to {target.host}:{target.path}")
        started = utcnow()
        try:
            local_manifest = build_local_manifest(source_root, exclusions)
            remote_manifest = await executor.fetch_manifest(
                target, credential, exclusions, timeout
            )
            sync_plan = plan(local_manifest, remote_manifest, exclusions)
            if logger:
                counts = sync_plan.summary()
                logger.log(
                    f"Plan: {counts['create']} create, {counts['update']} update, "
                    f"{counts['delete']} delete"
                )
            outcome = await executor.sync(
                sync_plan, target, credential, source_root, timeout
            )
        except SSHDeployError as e:
            self._fail(deployment, RunStage.SYNC, e, started, logger)
            return False

        if outcome.error is not None:
            self._fail(deployment, RunStage.SYNC, outcome.error, started, logger)
            return False

        counts = sync_plan.summary()
        detail = (
            f"create={counts['create']} update={counts['update']} "
            f"delete={counts['delete']} bytes={outcome.bytes_sent}"
        )
        deployment.add_step(self._step(RunStage.SYNC, started, detail=detail))
        deployment.advance(RunState.SYNCED)
        if logger:
            if sync_plan.is_empty:
                logger.success("Remote tree already up to date")
            else:
                logger.success(f"Applied {len(outcome.applied)} changes")
        return True

    async def _post_deploy_stage(
        self,
        deployment: DeploymentRun,
        executor: RemoteExecutor,
        target: Target,
        credential: Credential,
        timeout: float,
        logger: Optional[DeployLogger],
    ) -> None:
        if not target.post_deploy:
            deployment.advance(RunState.COMPLETE)
            return

        if logger:
            logger.step("Running post-deploy command")
        started = utcnow()
        try:
            outcome = await executor.run_command(
                target.post_deploy, target, credential, timeout
            )
        except SSHDeployError as e:
            self._fail(deployment, RunStage.POST_DEPLOY, e, started, logger)
            return

        error_kind = None if outcome.is_success else ErrorKind.COMMAND_NON_ZERO_EXIT
        deployment.add_step(
            self._step(
                RunStage.POST_DEPLOY,
                started,
                exit_code=outcome.exit_code,
                stdout=outcome.stdout,
                stderr=outcome.stderr,
                error_kind=error_kind,
                detail=target.post_deploy,
                logger=logger,
            )
        )
        deployment.advance(RunState.POST_DEPLOY_RAN)
        deployment.advance(RunState.COMPLETE)

        if logger:
            if outcome.is_success:
                logger.success("Post-deploy command succeeded")
            else:
                logger.warning(f"Post-deploy command exited with {outcome.exit_code}")

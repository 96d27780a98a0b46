"""
Result Models

Dataclass models for operation results and deployment outcomes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Tuple, List

from sshdeploy.constants import OUTPUT_EXCERPT_CHARS
from sshdeploy.models.plan import SyncOperation


class DeploymentStatus(Enum):
    """Overall outcome of one deployment run."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class RunStage(Enum):
    """Pipeline stage a step or failure belongs to."""

    LOCK = "lock"
    CREDENTIAL = "credential"
    SYNC = "sync"
    POST_DEPLOY = "post_deploy"


class ErrorKind(Enum):
    """Error taxonomy recorded in results."""

    CREDENTIAL_UNAVAILABLE = "CredentialUnavailable"
    UNTRUSTED_HOST = "UntrustedHost"
    MANIFEST_UNREADABLE = "ManifestUnreadable"
    INVALID_POLICY = "InvalidPolicy"
    DUPLICATE_LABEL = "DuplicateLabel"
    TIMEOUT = "Timeout"
    TRANSFER_FAILED = "TransferFailed"
    COMMAND_NON_ZERO_EXIT = "CommandNonZeroExit"
    TARGET_LOCKED = "TargetLocked"


def excerpt(text: str, limit: int = OUTPUT_EXCERPT_CHARS) -> str:
    """Keep the tail of captured output, where errors usually are."""
    if len(text) <= limit:
        return text
    return "..." + text[-limit:]


@dataclass
class CommandOutcome:
    """Result of a single remote command."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    command: str = ""
    duration_seconds: float = 0.0

    @property
    def is_success(self) -> bool:
        """Check if the command exited with 0."""
        return self.exit_code == 0

    def __repr__(self) -> str:
        return f"CommandOutcome(exit_code={self.exit_code}, duration={self.duration_seconds:.2f}s)"


@dataclass
class TransferOutcome:
    """Result of applying a sync plan."""

    applied: List[SyncOperation] = field(default_factory=list)
    failed_operation: Optional[SyncOperation] = None
    error: Optional[Exception] = None
    bytes_sent: int = 0
    duration_seconds: float = 0.0

    @property
    def is_success(self) -> bool:
        """Check if every operation was applied."""
        return self.error is None

    def __repr__(self) -> str:
        return (
            f"TransferOutcome(applied={len(self.applied)}, "
            f"failed={self.failed_operation}, bytes={self.bytes_sent})"
        )


@dataclass(frozen=True)
class StepResult:
    """One executed pipeline step."""

    stage: RunStage
    started_at: datetime
    finished_at: datetime
    exit_code: Optional[int] = None
    stdout_excerpt: str = ""
    stderr_excerpt: str = ""
    error_kind: Optional[ErrorKind] = None
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "stage": self.stage.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "exit_code": self.exit_code,
            "stdout_excerpt": self.stdout_excerpt,
            "stderr_excerpt": self.stderr_excerpt,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "detail": self.detail,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepResult":
        """Create from dictionary."""
        kind = data.get("error_kind")
        return cls(
            stage=RunStage(data["stage"]),
            started_at=datetime.fromisoformat(data["started_at"]),
            finished_at=datetime.fromisoformat(data["finished_at"]),
            exit_code=data.get("exit_code"),
            stdout_excerpt=data.get("stdout_excerpt", ""),
            stderr_excerpt=data.get("stderr_excerpt", ""),
            error_kind=ErrorKind(kind) if kind else None,
            detail=data.get("detail", ""),
        )


@dataclass(frozen=True)
class DeploymentResult:
    """Immutable outcome of one orchestration run, retained for audit."""

    run_id: str
    target: str
    status: DeploymentStatus
    started_at: datetime
    finished_at: datetime
    steps: Tuple[StepResult, ...] = ()
    failed_stage: Optional[RunStage] = None
    error_kind: Optional[ErrorKind] = None
    error_message: str = ""

    @property
    def is_success(self) -> bool:
        return self.status == DeploymentStatus.SUCCESS

    @property
    def is_failure(self) -> bool:
        return self.status == DeploymentStatus.FAILED

    @property
    def exit_codes(self) -> Dict[str, Optional[int]]:
        """Per-step exit codes keyed by stage."""
        return {step.stage.value: step.exit_code for step in self.steps}

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "run_id": self.run_id,
            "target": self.target,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error_message": self.error_message,
            "steps": [step.to_dict() for step in self.steps],
        }

    def __repr__(self) -> str:
        return f"DeploymentResult(target={self.target}, status={self.status.value}, steps={len(self.steps)})"

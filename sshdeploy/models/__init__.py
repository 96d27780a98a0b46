"""
sshdeploy Domain Models

Clean dataclass-based models for type-safe data handling.
"""

from .policy import RestrictionPolicy
from .credential import Credential, PublicKey
from .target import Target
from .plan import (
    FileEntry,
    Manifest,
    SyncAction,
    SyncOperation,
    SyncPlan,
)
from .results import (
    CommandOutcome,
    DeploymentResult,
    DeploymentStatus,
    ErrorKind,
    RunStage,
    StepResult,
    TransferOutcome,
)

__all__ = [
    # Policy
    "RestrictionPolicy",
    # Credentials
    "Credential",
    "PublicKey",
    # Targets
    "Target",
    # Plans
    "FileEntry",
    "Manifest",
    "SyncAction",
    "SyncOperation",
    "SyncPlan",
    # Results
    "CommandOutcome",
    "DeploymentResult",
    "DeploymentStatus",
    "ErrorKind",
    "RunStage",
    "StepResult",
    "TransferOutcome",
]

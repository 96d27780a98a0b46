"""
sshdeploy Core

Configuration, per-target locking and the deployment orchestrator.
"""

from .config_loader import DeployConfig, ConfigLoader, load_config
from .locks import TargetLocks
from .orchestrator import DeploymentOrchestrator, DeploymentRun, RunState

__all__ = [
    "DeployConfig",
    "ConfigLoader",
    "load_config",
    "TargetLocks",
    "DeploymentOrchestrator",
    "DeploymentRun",
    "RunState",
]

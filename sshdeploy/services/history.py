"""Deployment history: one audit record per orchestration run."""

from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from sshdeploy.database import DeploymentRecord
from sshdeploy.models.results import (
    DeploymentResult,
    DeploymentStatus,
    ErrorKind,
    RunStage,
    StepResult,
)


class DeploymentHistory:
    """Append-only store of DeploymentResult records."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def record(self, result: DeploymentResult) -> None:
        """Persist a finished run."""
        db = self.session_factory()
        try:
            db.add(
                DeploymentRecord(
                    run_id=result.run_id,
                    target=result.target,
                    status=result.status.value,
                    failed_stage=result.failed_stage.value if result.failed_stage else None,
                    error_kind=result.error_kind.value if result.error_kind else None,
                    error_message=result.error_message,
                    steps=[step.to_dict() for step in result.steps],
                    started_at=result.started_at,
                    finished_at=result.finished_at,
                )
            )
            db.commit()
        finally:
            db.close()

    def list(self, target: Optional[str] = None, limit: int = 20) -> List[DeploymentResult]:
        """Most recent runs first."""
        db = self.session_factory()
        try:
            query = db.query(DeploymentRecord)
            if target:
                query = query.filter(DeploymentRecord.target == target)
            records = query.order_by(DeploymentRecord.id.desc()).limit(limit).all()
            return [
                DeploymentResult(
                    run_id=record.run_id,
                    target=record.target,
                    status=DeploymentStatus(record.status),
                    started_at=record.started_at,
                    finished_at=record.finished_at,
                    steps=tuple(StepResult.from_dict(step) for step in record.steps),
                    failed_stage=RunStage(record.failed_stage) if record.failed_stage else None,
                    error_kind=ErrorKind(record.error_kind) if record.error_kind else None,
                    error_message=record.error_message or "",
                )
                for record in records
            ]
        finally:
            db.close()

"""
Progress side-channel for content writing runs
"""
import logging
from typing import Any, Dict, Optional

from database import SessionLocal
from models import WorkflowExecution

logger = logging.getLogger(__name__)


class ExecutionStatusReporter:
    """
    Writes coarse checkpoints to workflow_executions so callers can poll a run.

    Every method is a no-op without an execution id, and write failures are
    logged rather than raised.
    """

    def __init__(self, execution_id: Optional[str], campaign_id: Optional[str] = None,
                 workflow_type: Optional[str] = None):
        self.execution_id = execution_id
        self.campaign_id = campaign_id
        self.workflow_type = workflow_type

    def start(self) -> None:
        self.update("processing", result={"currentStep": "starting", "progress": 0})

    def checkpoint(self, stage: str, progress: int) -> None:
        self.update("processing", result={"currentStep": stage, "progress": progress},
                    current_stage=stage, progress=progress)

    def update(
        self,
        status: str,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        stage_results: Optional[Dict[str, Any]] = None,
        current_stage: Optional[str] = None,
        progress: Optional[int] = None,
    ) -> None:
        if not self.execution_id:
            return

        db = SessionLocal()
        try:
            execution = db.query(WorkflowExecution).filter(
                WorkflowExecution.id == self.execution_id
            ).first()

            if not execution:
                execution = WorkflowExecution(
                    id=self.execution_id,
                    campaign_id=self.campaign_id,
                    workflow_type=self.workflow_type,
                )
                db.add(execution)

            execution.status = status
            if result is not None:
                execution.result = result
            if error is not None:
                execution.error = error
            if stage_results is not None:
                execution.stage_results = stage_results
            if current_stage is not None:
                execution.current_stage = current_stage
            if progress is not None:
                execution.progress = progress
            if self.campaign_id and not execution.campaign_id:
                execution.campaign_id = self.campaign_id

            db.commit()
            logger.info(f"[StatusReporter] {self.execution_id}: {status} {current_stage or ''}".rstrip())
        except Exception as e:
            db.rollback()
            logger.error(f"[StatusReporter] Failed to update execution {self.execution_id}: {str(e)}", exc_info=True)
        finally:
            db.close()

"""
Workflow management endpoints.
Triggers scrape run workflows in Temporal and reports workflow and execution status.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session
from temporalio.client import Client, WorkflowFailureError
from temporalio.service import RPCError, RPCStatusCode

from config import TEMPORAL_ADDRESS, TEMPORAL_TASK_QUEUE
from database import get_db
from models import LobstrRun, WorkflowExecution
from workflows.scrape_run_workflow import ScrapeRunWorkflow

logger = logging.getLogger(__name__)

router = APIRouter()


class WorkflowResponse(BaseModel):
    workflow_id: str
    run_id: str
    status: str


class WorkflowStatusResponse(BaseModel):
    workflow_id: str
    run_id: str
    status: str
    result: Optional[Dict[str, Any]] = None


class ExecutionResponse(BaseModel):
    id: str
    status: str
    current_stage: Optional[str] = None
    progress: Optional[int] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    stage_results: Optional[Dict[str, Any]] = None
    campaign_id: Optional[str] = None
    workflow_type: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


async def get_temporal_client() -> Client:
    """Get a Temporal client connection."""
    try:
        return await Client.connect(TEMPORAL_ADDRESS)
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail=f"Failed to connect to Temporal: {str(e)}"
        )


@router.post("/workflows/scrape-run/trigger/{run_record_id}", response_model=WorkflowResponse)
async def trigger_scrape_run_workflow(run_record_id: str, db: Session = Depends(get_db)):
    """
    Start a workflow that launches a prepared run and saves its leads until it finishes

    Args:
        run_record_id: lobstr_runs id returned by add_tasks or start_multi_search
    """
    run = db.query(LobstrRun).filter(LobstrRun.id == run_record_id).first()
    if not run:
        raise HTTPException(status_code=404, detail=f"Run record not found: {run_record_id}")

    client = await get_temporal_client()
    try:
        workflow_id = f"scrape-run-{datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')}-{str(uuid.uuid4())[:8]}"
        logger.info(f"Starting scrape run workflow with ID: {workflow_id} for run record {run_record_id}")

        handle = await client.start_workflow(
            ScrapeRunWorkflow.run,
            id=workflow_id,
            task_queue=TEMPORAL_TASK_QUEUE,
            args=[run_record_id, run.user_id],
        )

        logger.info(f"Workflow started successfully - ID: {handle.id}, Run ID: {handle.result_run_id}")
        return WorkflowResponse(
            workflow_id=handle.id,
            run_id=handle.result_run_id,
            status="started"
        )
    except Exception as e:
        logger.error(f"Failed to start scrape run workflow: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to start workflow: {str(e)}")


# Temporal execution states that still have a live workflow to query
LIVE_STATES = {"RUNNING", "CONTINUED_AS_NEW"}


@router.get("/workflows/{workflow_id}", response_model=WorkflowStatusResponse)
async def get_scrape_run_status(workflow_id: str):
    """
    Report a scrape run workflow: its Temporal state plus lead progress.
    Running workflows answer the progress query; finished ones return their summary.
    """
    client = await get_temporal_client()
    handle = client.get_workflow_handle(workflow_id)
    try:
        description = await handle.describe()
    except RPCError as e:
        if e.status == RPCStatusCode.NOT_FOUND:
            raise HTTPException(status_code=404, detail=f"Workflow not found: {workflow_id}")
        logger.error(f"[Workflows] Describe failed for {workflow_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to get workflow status: {str(e)}")

    state = description.status.name if description.status else "UNKNOWN"
    status = state.lower() if state not in LIVE_STATES else "running"

    progress = None
    try:
        if state in LIVE_STATES:
            progress = await handle.query(ScrapeRunWorkflow.progress)
        elif state == "COMPLETED":
            progress = await handle.result()
    except (RPCError, WorkflowFailureError) as e:
        logger.warning(f"[Workflows] No progress available for {workflow_id}: {str(e)}")

    logger.info(f"[Workflows] {workflow_id} is {status}")
    return WorkflowStatusResponse(
        workflow_id=workflow_id,
        run_id=description.run_id,
        status=status,
        result=progress,
    )


@router.get("/executions/{execution_id}", response_model=ExecutionResponse)
def get_execution(execution_id: str, db: Session = Depends(get_db)):
    """
    Get the persisted progress of a content writing run
    """
    execution = db.query(WorkflowExecution).filter(WorkflowExecution.id == execution_id).first()
    if not execution:
        raise HTTPException(status_code=404, detail=f"Execution not found: {execution_id}")

    return ExecutionResponse(
        id=execution.id,
        status=execution.status,
        current_stage=execution.current_stage,
        progress=execution.progress,
        result=execution.result,
        error=execution.error,
        stage_results=execution.stage_results,
        campaign_id=execution.campaign_id,
        workflow_type=execution.workflow_type,
        created_at=execution.created_at,
        updated_at=execution.updated_at,
    )

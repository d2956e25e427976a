"""Deadline monitoring endpoints"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from ...core.deadlines import DeadlineMonitorService
from ...core.schemas import (
    BulkReshuffleResult,
    DeadlineStatus,
    ExtendDeadlineRequest,
    ReshuffleFailureReason,
    ReshuffleRequest,
)
from ..dependencies import get_deadline_service, verify_cron_secret

logger = logging.getLogger(__name__)

router = APIRouter()


@router.api_route(
    "/cron/deadline-monitor",
    methods=["GET", "POST"],
    dependencies=[Depends(verify_cron_secret)],
)
async def run_deadline_monitor(
    service: DeadlineMonitorService = Depends(get_deadline_service),
):
    """Run one deadline sweep.

    Called by an external scheduler with the cron secret as a bearer token.
    """
    try:
        logger.info("Starting deadline monitoring sweep")
        result = await service.process_deadlines()
        return {
            "message": "Deadline monitoring completed successfully",
            "result": result.model_dump(),
        }
    except Exception as e:
        logger.error(f"Error in deadline monitoring sweep: {e}")
        raise HTTPException(status_code=500, detail=f"Deadline monitoring failed: {e}")


@router.get("/deadlines", response_model=list[DeadlineStatus])
async def list_deadlines(
    service: DeadlineMonitorService = Depends(get_deadline_service),
):
    """List every open assignment with its urgency."""
    return await service.get_deadline_statuses()


@router.get("/deadlines/urgent", response_model=list[DeadlineStatus])
async def list_urgent_deadlines(
    service: DeadlineMonitorService = Depends(get_deadline_service),
):
    """List open assignments that are due soon or already overdue."""
    return await service.get_urgent_assignments()


@router.post("/assignments/{assignment_id}/extend")
async def extend_deadline(
    assignment_id: int,
    request: ExtendDeadlineRequest,
    service: DeadlineMonitorService = Depends(get_deadline_service),
):
    """Extend the deadline of a PENDING or IN_PROGRESS assignment."""
    extended = await service.extend_deadline(
        assignment_id, request.additional_hours, request.reason
    )
    if not extended:
        raise HTTPException(
            status_code=404,
            detail="Assignment not found or no longer open",
        )

    return {"assignment_id": assignment_id, "extended": True}


@router.post("/assignments/{assignment_id}/reshuffle")
async def reshuffle_assignment(
    assignment_id: int,
    request: Optional[ReshuffleRequest] = None,
    service: DeadlineMonitorService = Depends(get_deadline_service),
):
    """Hand an open or missed assignment to a different reviewer.

    Returns 404 for an unknown assignment and 409 when it was already
    processed or nobody eligible is left to take it.
    """
    request = request or ReshuffleRequest()
    result = await service.reshuffle_assignment(
        assignment_id, reason=request.reason, dry_run=request.dry_run
    )
    body = {**result.model_dump(mode="json"), "needs_manual_follow_up": result.needs_manual_follow_up}

    if result.success:
        return body
    if result.reason is ReshuffleFailureReason.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Assignment not found")
    return JSONResponse(status_code=409, content=body)


@router.post("/submissions/{submission_id}/reshuffle", response_model=BulkReshuffleResult)
async def reshuffle_submission(
    submission_id: int,
    request: Optional[ReshuffleRequest] = None,
    service: DeadlineMonitorService = Depends(get_deadline_service),
):
    """Reshuffle every open or missed assignment on a submission."""
    request = request or ReshuffleRequest()
    return await service.reshuffle_submission(
        submission_id, reason=request.reason, dry_run=request.dry_run
    )

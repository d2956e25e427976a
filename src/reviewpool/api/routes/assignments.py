"""Reviewer assignment endpoints"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from ...core.pool import ReviewerPoolService
from ...core.schemas import (
    AssignmentResult,
    AssignReviewersRequest,
    PoolOptions,
    ReviewerWorkload,
)
from ..dependencies import get_pool_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/submissions/{submission_id}/reviewers", response_model=AssignmentResult)
async def assign_reviewers(
    submission_id: int,
    request: AssignReviewersRequest,
    service: ReviewerPoolService = Depends(get_pool_service),
):
    """Assign workload-balanced reviewers to a submission.

    Business failures such as an empty pool come back in ``errors`` with
    ``success`` set to false rather than as an HTTP error.
    """
    options = PoolOptions(**request.model_dump(exclude={"author_user_id"}))
    return await service.assign_reviewers(submission_id, request.author_user_id, options)


@router.get("/reviewers/{reviewer_id}/workload", response_model=ReviewerWorkload)
async def get_reviewer_workload(
    reviewer_id: int,
    service: ReviewerPoolService = Depends(get_pool_service),
):
    """Get a reviewer's active, completed and missed review counts."""
    workload = await service.get_reviewer_workload(reviewer_id)
    if workload is None:
        raise HTTPException(status_code=404, detail="Reviewer not found")
    return workload

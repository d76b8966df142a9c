"""Submission listing and review endpoints."""
from typing import List, Optional
from fastapi import APIRouter, Depends
from uuid import UUID

from app.api.v1.schemas import (
    ReviewRequest,
    SubmissionListResponse,
    SubmissionResponse,
    TempSubmissionResponse,
)
from app.core.context import RequestContext, get_request_context
from app.services import submission_service

router = APIRouter(tags=["submissions"])


def _submission_out(submission) -> SubmissionResponse:
    out = SubmissionResponse.model_validate(submission)
    out.content = submission_service.normalize_content(out.content)
    return out


@router.get("/submissions", response_model=SubmissionListResponse)
async def list_submissions(
    org_id: Optional[str] = None,
    status: Optional[str] = None,
    ctx: RequestContext = Depends(get_request_context),
):
    submissions = await submission_service.list_submissions(ctx, org_id=org_id, status=status)
    return SubmissionListResponse(submissions=[_submission_out(s) for s in submissions])


@router.get("/submissions/{submission_id}", response_model=SubmissionResponse)
async def get_submission(
    submission_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return _submission_out(await submission_service.get_submission(ctx, submission_id))


@router.put("/submissions/{submission_id}/review", response_model=SubmissionResponse)
async def review_submission(
    submission_id: UUID,
    payload: ReviewRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    submission = await submission_service.review_submission(ctx, submission_id, payload.status)
    await ctx.db.commit()
    return _submission_out(submission)


@router.delete("/submissions/{submission_id}", status_code=204)
async def delete_submission(
    submission_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    await submission_service.delete_submission(ctx, submission_id)
    await ctx.db.commit()


@router.get("/temp-submissions", response_model=List[TempSubmissionResponse])
async def list_temp_submissions(
    org_id: Optional[str] = None,
    ctx: RequestContext = Depends(get_request_context),
):
    return await submission_service.list_temp_submissions(ctx, org_id=org_id)


@router.put("/temp-submissions/{assessment_id}/review", response_model=TempSubmissionResponse)
async def review_temp_submission(
    assessment_id: UUID,
    payload: ReviewRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    temp = await submission_service.review_temp_submission(ctx, assessment_id, payload.status)
    await ctx.db.commit()
    return temp

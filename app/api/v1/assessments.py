"""Assessment, response and draft submission endpoints."""
from typing import List, Optional
from fastapi import APIRouter, Depends
from uuid import UUID

from app.api.v1.schemas import (
    AnswerCreate,
    AssessmentCreate,
    AssessmentDetailResponse,
    AssessmentListResponse,
    AssessmentResponse,
    AssessmentUpdate,
    ResponseItem,
    ResponseListResponse,
    ResponseUpdate,
    SubmissionResponse,
    TempSubmissionResponse,
)
from app.core.context import RequestContext, get_request_context
from app.services import assessment_service, response_service, submission_service

router = APIRouter(prefix="/assessments", tags=["assessments"])


@router.get("", response_model=AssessmentListResponse)
async def list_assessments(
    org_id: Optional[str] = None,
    status: Optional[str] = None,
    language: Optional[str] = None,
    ctx: RequestContext = Depends(get_request_context),
):
    assessments = await assessment_service.list_assessments(ctx, org_id=org_id, status=status, language=language)
    return AssessmentListResponse(assessments=assessments)


@router.post("", response_model=AssessmentResponse, status_code=201)
async def create_assessment(
    payload: AssessmentCreate,
    ctx: RequestContext = Depends(get_request_context),
):
    assessment = await assessment_service.create_assessment(ctx, payload.org_id, payload.language, payload.name)
    await ctx.db.commit()
    return assessment


@router.get("/{assessment_id}", response_model=AssessmentDetailResponse)
async def get_assessment(
    assessment_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    """Assessment with its latest responses and attached files."""
    return await assessment_service.get_assessment(ctx, assessment_id)


@router.put("/{assessment_id}", response_model=AssessmentResponse)
async def update_assessment(
    assessment_id: UUID,
    payload: AssessmentUpdate,
    ctx: RequestContext = Depends(get_request_context),
):
    assessment = await assessment_service.update_assessment(
        ctx, assessment_id, name=payload.name, language=payload.language
    )
    await ctx.db.commit()
    return assessment


@router.delete("/{assessment_id}", status_code=204)
async def delete_assessment(
    assessment_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    await assessment_service.delete_assessment(ctx, assessment_id)
    await ctx.db.commit()


# --- Responses ---

@router.get("/{assessment_id}/responses", response_model=ResponseListResponse)
async def list_responses(
    assessment_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    responses = await response_service.list_responses(ctx, assessment_id)
    return ResponseListResponse(responses=responses)


@router.post("/{assessment_id}/responses", response_model=List[ResponseItem], status_code=201)
async def create_responses(
    assessment_id: UUID,
    payload: List[AnswerCreate],
    ctx: RequestContext = Depends(get_request_context),
):
    """Answer several questions at once; existing answers get a new version."""
    created = await response_service.create_or_replace_many(
        ctx, assessment_id, [(answer.revision_id, answer.text) for answer in payload]
    )
    await ctx.db.commit()
    return created


@router.get("/{assessment_id}/responses/{response_id}", response_model=ResponseItem)
async def get_response(
    assessment_id: UUID,
    response_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await response_service.get_response(ctx, assessment_id, response_id)


@router.put("/{assessment_id}/responses/{response_id}", response_model=ResponseItem)
async def update_response(
    assessment_id: UUID,
    response_id: UUID,
    payload: ResponseUpdate,
    ctx: RequestContext = Depends(get_request_context),
):
    """Write a new version. Fails with 409 unless ``version`` is still the latest."""
    updated = await response_service.update_response(ctx, assessment_id, response_id, payload.text, payload.version)
    await ctx.db.commit()
    return updated


@router.delete("/{assessment_id}/responses/{response_id}", status_code=204)
async def delete_response(
    assessment_id: UUID,
    response_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    await response_service.delete_response(ctx, assessment_id, response_id)
    await ctx.db.commit()


@router.post("/{assessment_id}/responses/{response_id}/files/{file_id}", status_code=204)
async def attach_file(
    assessment_id: UUID,
    response_id: UUID,
    file_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    await response_service.attach_file(ctx, assessment_id, response_id, file_id)
    await ctx.db.commit()


@router.delete("/{assessment_id}/responses/{response_id}/files/{file_id}", status_code=204)
async def detach_file(
    assessment_id: UUID,
    response_id: UUID,
    file_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    await response_service.detach_file(ctx, assessment_id, response_id, file_id)
    await ctx.db.commit()


# --- Submission pipeline ---

@router.post("/{assessment_id}/draft", response_model=TempSubmissionResponse)
async def submit_draft(
    assessment_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    """Merge the caller's view of the assessment into the organization draft."""
    temp = await submission_service.submit_draft(ctx, assessment_id)
    await ctx.db.commit()
    return temp


@router.post("/{assessment_id}/finalize", response_model=SubmissionResponse, status_code=201)
async def finalize_assessment(
    assessment_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    submission = await submission_service.finalize(ctx, assessment_id)
    await ctx.db.commit()
    return submission

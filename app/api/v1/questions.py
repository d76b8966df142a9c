"""Question catalog endpoints."""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from uuid import UUID

from app.api.v1.schemas import (
    QuestionCreate,
    QuestionUpdate,
    QuestionResponse,
    QuestionListResponse,
    QuestionRevisionResponse,
)
from app.core.context import RequestContext, get_request_context
from app.services import question_service

router = APIRouter(prefix="/questions", tags=["questions"])


def _question_out(question, revision) -> QuestionResponse:
    return QuestionResponse(
        question_id=question.id,
        category=question.category,
        created_at=question.created_at,
        revision=QuestionRevisionResponse.model_validate(revision),
    )


@router.get("", response_model=QuestionListResponse)
async def list_questions(
    category: Optional[str] = None,
    ctx: RequestContext = Depends(get_request_context),
):
    """List questions with their latest revision."""
    rows = await question_service.list_questions(ctx, category=category)
    return QuestionListResponse(questions=[_question_out(q, r) for q, r in rows])


@router.post("", response_model=QuestionResponse, status_code=201)
async def create_question(
    payload: QuestionCreate,
    ctx: RequestContext = Depends(get_request_context),
):
    question, revision = await question_service.create_question(ctx, payload.category, payload.text, payload.weight)
    await ctx.db.commit()
    return _question_out(question, revision)


@router.get("/{question_id}", response_model=QuestionResponse)
async def get_question(
    question_id: UUID,
    revision_id: Optional[UUID] = Query(None, description="Specific revision; latest when omitted"),
    ctx: RequestContext = Depends(get_request_context),
):
    question, revision = await question_service.get_question(ctx, question_id, revision_id)
    return _question_out(question, revision)


@router.get("/{question_id}/revisions", response_model=list[QuestionRevisionResponse])
async def list_question_revisions(
    question_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await question_service.list_revisions(ctx, question_id)


@router.put("/{question_id}", response_model=QuestionResponse)
async def update_question(
    question_id: UUID,
    payload: QuestionUpdate,
    ctx: RequestContext = Depends(get_request_context),
):
    """Create a new revision of the question. Previous revisions are kept."""
    question, revision = await question_service.update_question(
        ctx, question_id, payload.text, payload.weight, category=payload.category
    )
    await ctx.db.commit()
    return _question_out(question, revision)


@router.delete("/revisions/{revision_id}", status_code=204)
async def delete_question_revision(
    revision_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    await question_service.delete_revision(ctx, revision_id)
    await ctx.db.commit()

"""
Assessments: organization-owned questionnaire instances.

An assessment is ``draft`` until an AssessmentSubmission with the same id
exists, then ``submitted``. Submitted assessments are frozen.
"""
from typing import Optional
from uuid import UUID

from sqlalchemy import exists, select

from app.core.context import RequestContext
from app.core.errors import BadInput, NotFound
from app.core.logging import get_logger
from app.core.permissions import Operation, Target, authorize
from app.db.models import Assessment, AssessmentSubmission, now

logger = get_logger("sustainability.services.assessments")

ASSESSMENT_STATUSES = ("draft", "submitted")


def _require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise BadInput(f"Assessment {field} cannot be empty")
    return value.strip()


async def load_assessment(ctx: RequestContext, assessment_id: UUID) -> Assessment:
    assessment = await ctx.cached(("assessment", assessment_id), lambda: ctx.db.get(Assessment, assessment_id))
    if assessment is None:
        raise NotFound("Assessment not found")
    return assessment


async def lock_assessment(ctx: RequestContext, assessment_id: UUID) -> Assessment:
    """Load the assessment row FOR UPDATE.

    Every mutation of an assessment, its responses or links takes this lock,
    as does finalization, so the submitted check and the write happen in
    one serialized step.
    """
    stmt = select(Assessment).where(Assessment.id == assessment_id).with_for_update()
    assessment = (await ctx.db.execute(stmt)).scalar_one_or_none()
    if assessment is None:
        raise NotFound("Assessment not found")
    return assessment


async def is_submitted(ctx: RequestContext, assessment_id: UUID) -> bool:
    return bool(await ctx.db.scalar(select(exists().where(AssessmentSubmission.id == assessment_id))))


async def assessment_target(ctx: RequestContext, assessment: Assessment, **extra) -> Target:
    return Target(org_id=assessment.org_id, submitted=await is_submitted(ctx, assessment.id), **extra)


def _resolve_org(ctx: RequestContext, org_id: Optional[str]) -> str:
    if org_id:
        return org_id
    org_ids = ctx.principal.org_ids
    if len(org_ids) == 1:
        return org_ids[0]
    raise BadInput("org_id is required")


async def create_assessment(ctx: RequestContext, org_id: Optional[str], language: str, name: str) -> Assessment:
    org_id = _resolve_org(ctx, org_id)
    authorize(ctx.principal, Operation.ASSESSMENT_CREATE, Target(org_id=org_id))
    assessment = Assessment(
        org_id=org_id,
        language=_require_text(language, "language"),
        name=_require_text(name, "name"),
        created_at=now(),
        updated_at=now(),
    )
    ctx.db.add(assessment)
    await ctx.db.flush()
    assessment.status = "draft"
    logger.info("Created assessment %s for organization %s", assessment.id, org_id)
    return assessment


async def get_assessment(ctx: RequestContext, assessment_id: UUID) -> Assessment:
    """The assessment with ``status`` and its latest ``responses`` (files attached)."""
    from app.services.response_service import latest_responses

    assessment = await load_assessment(ctx, assessment_id)
    target = await assessment_target(ctx, assessment)
    authorize(ctx.principal, Operation.ASSESSMENT_READ, target)
    assessment.status = "submitted" if target.submitted else "draft"
    assessment.responses = await latest_responses(ctx, assessment_id)
    return assessment


async def update_assessment(
    ctx: RequestContext,
    assessment_id: UUID,
    name: Optional[str] = None,
    language: Optional[str] = None,
) -> Assessment:
    assessment = await lock_assessment(ctx, assessment_id)
    authorize(ctx.principal, Operation.ASSESSMENT_UPDATE, await assessment_target(ctx, assessment))
    if name is not None:
        assessment.name = _require_text(name, "name")
    if language is not None:
        assessment.language = _require_text(language, "language")
    assessment.updated_at = now()
    await ctx.db.flush()
    assessment.status = "draft"
    logger.info("Updated assessment %s", assessment_id)
    return assessment


async def delete_assessment(ctx: RequestContext, assessment_id: UUID) -> None:
    assessment = await lock_assessment(ctx, assessment_id)
    authorize(ctx.principal, Operation.ASSESSMENT_DELETE, await assessment_target(ctx, assessment))
    await ctx.db.delete(assessment)
    await ctx.db.flush()
    ctx.forget(("assessment", assessment_id))
    logger.info("Deleted assessment %s", assessment_id)


async def list_assessments(
    ctx: RequestContext,
    org_id: Optional[str] = None,
    status: Optional[str] = None,
    language: Optional[str] = None,
) -> list[Assessment]:
    org_id = _resolve_org(ctx, org_id)
    authorize(ctx.principal, Operation.ASSESSMENT_READ, Target(org_id=org_id))
    if status is not None and status not in ASSESSMENT_STATUSES:
        raise BadInput(f"Invalid status. Must be one of: {', '.join(ASSESSMENT_STATUSES)}")

    submitted = exists().where(AssessmentSubmission.id == Assessment.id)
    stmt = select(Assessment, submitted.label("submitted")).where(Assessment.org_id == org_id)
    if status == "draft":
        stmt = stmt.where(~submitted)
    elif status == "submitted":
        stmt = stmt.where(submitted)
    if language:
        stmt = stmt.where(Assessment.language == language)
    stmt = stmt.order_by(Assessment.created_at.desc())

    assessments = []
    for assessment, is_done in (await ctx.db.execute(stmt)).all():
        assessment.status = "submitted" if is_done else "draft"
        assessments.append(assessment)
    return assessments

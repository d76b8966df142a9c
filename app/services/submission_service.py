"""
Draft merging, finalization and review of organization submissions.

Members contribute through ``submit_draft``, which merges their view of the
assessment into the TempSubmission document. ``finalize`` freezes that
document as the AssessmentSubmission sharing the assessment's id. Content
documents are only ever written here.
"""
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.core.context import RequestContext
from app.core.errors import BadInput, Conflict, NotFound
from app.core.logging import get_logger
from app.core.permissions import Operation, Target, authorize
from app.db.models import (
    AssessmentSubmission,
    Question,
    QuestionRevision,
    TempSubmission,
    now,
)
from app.services.assessment_service import assessment_target, lock_assessment
from app.services.file_service import snapshot_file
from app.services.response_service import latest_responses

logger = get_logger("sustainability.services.submissions")

INITIAL_STATUS = "under_review"
REVIEW_STATUSES = ("under_review", "approved", "rejected", "revision_requested")

ALREADY_FINALIZED = "Assessment has already been submitted"


def normalize_content(content) -> dict:
    """Read a content document, filling the documented defaults."""
    content = dict(content) if isinstance(content, dict) else {}
    assessment = dict(content.get("assessment") or {})
    assessment.setdefault("language", "en")
    responses = []
    for entry in content.get("responses") or []:
        if not isinstance(entry, dict):
            continue
        entry = dict(entry)
        entry.setdefault("version", 1)
        entry.setdefault("files", [])
        responses.append(entry)
    content["assessment"] = assessment
    content["responses"] = responses
    return content


def apply_review(row, status: str) -> None:
    """Move a TempSubmission or AssessmentSubmission to ``status``."""
    if status not in REVIEW_STATUSES:
        raise BadInput(f"Invalid status. Must be one of: {', '.join(REVIEW_STATUSES)}")
    row.status = status
    row.reviewed_at = None if status == INITIAL_STATUS else now()


async def _response_categories(ctx: RequestContext, revision_ids: list[UUID]) -> dict[UUID, str]:
    if not revision_ids:
        return {}
    stmt = (
        select(QuestionRevision.id, Question.category)
        .join(Question, Question.id == QuestionRevision.question_id)
        .where(QuestionRevision.id.in_(revision_ids))
    )
    return {revision_id: category for revision_id, category in (await ctx.db.execute(stmt)).all()}


async def submit_draft(ctx: RequestContext, assessment_id: UUID) -> TempSubmission:
    """Merge the assessment's latest responses into the temp submission as this user's contribution."""
    assessment = await lock_assessment(ctx, assessment_id)
    responses = await latest_responses(ctx, assessment_id)
    categories = await _response_categories(ctx, [r.revision_id for r in responses])

    target = await assessment_target(ctx, assessment, categories=frozenset(categories.values()))
    authorize(ctx.principal, Operation.ASSESSMENT_SUBMIT, target)

    user_id = ctx.principal.sub
    contribution = [
        {
            "revision_id": str(response.revision_id),
            "response": response.text,
            "version": response.version,
            "user_id": user_id,
            "files": [snapshot_file(f) for f in response.files],
        }
        for response in responses
    ]
    assessment_doc = {
        "assessment_id": str(assessment.id),
        "language": assessment.language,
        "name": assessment.name,
    }

    stmt = select(TempSubmission).where(TempSubmission.assessment_id == assessment_id).with_for_update()
    temp = (await ctx.db.execute(stmt)).scalar_one_or_none()
    if temp is not None:
        replaced = {(entry["user_id"], entry["revision_id"]) for entry in contribution}
        kept = [
            entry for entry in normalize_content(temp.content)["responses"]
            if (entry.get("user_id"), entry.get("revision_id")) not in replaced
        ]
        # Assign a fresh dict so the JSONB change is flushed
        temp.content = {**temp.content, "assessment": assessment_doc, "responses": kept + contribution}
        temp.submitted_at = now()
        logger.info(
            "Merged %d response(s) from %s into temp submission %s (%d kept)",
            len(contribution), user_id, assessment_id, len(kept),
        )
    else:
        temp = TempSubmission(
            assessment_id=assessment_id,
            org_id=assessment.org_id,
            content={"assessment": assessment_doc, "responses": contribution},
            submitted_at=now(),
            status=INITIAL_STATUS,
            reviewed_at=None,
        )
        ctx.db.add(temp)
        logger.info("Created temp submission %s with %d response(s) from %s", assessment_id, len(contribution), user_id)
    await ctx.db.flush()
    return temp


async def finalize(ctx: RequestContext, assessment_id: UUID) -> AssessmentSubmission:
    """Freeze the temp submission into the assessment's single final submission."""
    assessment = await lock_assessment(ctx, assessment_id)
    authorize(ctx.principal, Operation.ASSESSMENT_FINALIZE, Target(org_id=assessment.org_id))

    if await ctx.db.get(AssessmentSubmission, assessment_id) is not None:
        raise Conflict(ALREADY_FINALIZED)

    temp = await ctx.db.get(TempSubmission, assessment_id)
    if temp is None:
        raise BadInput("No temp submission to finalize")

    content = dict(temp.content)
    content["assessment_name"] = assessment.name
    submission = AssessmentSubmission(
        id=assessment_id,
        org_id=temp.org_id,
        content=content,
        submitted_at=now(),
        status=INITIAL_STATUS,
        reviewed_at=None,
    )
    try:
        async with ctx.db.begin_nested():
            ctx.db.add(submission)
            await ctx.db.flush()
    except IntegrityError:
        raise Conflict(ALREADY_FINALIZED)

    await ctx.db.delete(temp)
    await ctx.db.flush()
    logger.info("Finalized assessment %s for organization %s", assessment_id, submission.org_id)
    return submission


async def _load_submission(ctx: RequestContext, submission_id: UUID) -> AssessmentSubmission:
    submission = await ctx.db.get(AssessmentSubmission, submission_id)
    if submission is None:
        raise NotFound("Submission not found")
    return submission


async def get_submission(ctx: RequestContext, submission_id: UUID) -> AssessmentSubmission:
    submission = await _load_submission(ctx, submission_id)
    authorize(ctx.principal, Operation.SUBMISSION_READ, Target(org_id=submission.org_id))
    return submission


async def list_submissions(
    ctx: RequestContext,
    org_id: Optional[str] = None,
    status: Optional[str] = None,
) -> list[AssessmentSubmission]:
    """Submissions visible to the caller, newest first."""
    authorize(ctx.principal, Operation.SUBMISSION_LIST)
    principal = ctx.principal
    stmt = select(AssessmentSubmission)
    if org_id:
        authorize(principal, Operation.SUBMISSION_READ, Target(org_id=org_id))
        stmt = stmt.where(AssessmentSubmission.org_id == org_id)
    elif not (principal.is_super_user or principal.is_application_admin):
        stmt = stmt.where(AssessmentSubmission.org_id.in_(principal.org_ids))
    if status:
        if status not in REVIEW_STATUSES:
            raise BadInput(f"Invalid status. Must be one of: {', '.join(REVIEW_STATUSES)}")
        stmt = stmt.where(AssessmentSubmission.status == status)
    stmt = stmt.order_by(AssessmentSubmission.submitted_at.desc())
    return list((await ctx.db.execute(stmt)).scalars().all())


async def review_submission(ctx: RequestContext, submission_id: UUID, status: str) -> AssessmentSubmission:
    submission = await _load_submission(ctx, submission_id)
    authorize(ctx.principal, Operation.SUBMISSION_REVIEW, Target(org_id=submission.org_id))
    apply_review(submission, status)
    await ctx.db.flush()
    logger.info("Submission %s reviewed: %s", submission_id, status)
    return submission


async def delete_submission(ctx: RequestContext, submission_id: UUID) -> None:
    submission = await _load_submission(ctx, submission_id)
    authorize(ctx.principal, Operation.SUBMISSION_DELETE, Target(org_id=submission.org_id))
    await ctx.db.delete(submission)
    await ctx.db.flush()
    logger.info("Deleted submission %s", submission_id)


async def list_temp_submissions(ctx: RequestContext, org_id: Optional[str] = None) -> list[TempSubmission]:
    stmt = select(TempSubmission)
    if org_id:
        authorize(ctx.principal, Operation.SUBMISSION_READ, Target(org_id=org_id))
        stmt = stmt.where(TempSubmission.org_id == org_id)
    else:
        authorize(ctx.principal, Operation.SUBMISSION_REVIEW)
    stmt = stmt.order_by(TempSubmission.submitted_at.desc())
    return list((await ctx.db.execute(stmt)).scalars().all())


async def review_temp_submission(ctx: RequestContext, assessment_id: UUID, status: str) -> TempSubmission:
    temp = await ctx.db.get(TempSubmission, assessment_id)
    if temp is None:
        raise NotFound("Temp submission not found")
    authorize(ctx.principal, Operation.SUBMISSION_REVIEW, Target(org_id=temp.org_id))
    apply_review(temp, status)
    await ctx.db.flush()
    logger.info("Temp submission %s reviewed: %s", assessment_id, status)
    return temp

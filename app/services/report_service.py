"""
Report lifecycle for finalized submissions.

Reports start as ``generating``; whatever produces the content calls
``mark_report_completed`` or ``mark_report_failed`` exactly once.
"""
import uuid
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import RequestContext
from app.core.errors import BadInput, InvariantViolation, NotFound
from app.core.logging import get_logger
from app.core.permissions import Operation, Target, authorize
from app.db.models import AssessmentSubmission, SubmissionReport, now

logger = get_logger("sustainability.services.reports")

REPORT_TYPES = ("sustainability", "compliance", "summary", "detailed")
RECOMMENDATION_STATUSES = ("todo", "in_progress", "done", "approved")


def _validate_report_type(report_type: str) -> str:
    if report_type not in REPORT_TYPES:
        raise BadInput(f"Invalid report type. Must be one of: {', '.join(REPORT_TYPES)}")
    return report_type


async def _submission_org(ctx: RequestContext, submission_id: UUID) -> str:
    submission = await ctx.db.get(AssessmentSubmission, submission_id)
    if submission is None:
        raise NotFound("Submission not found")
    return submission.org_id


async def _load_report(db: AsyncSession, report_id: UUID, lock: bool = False) -> SubmissionReport:
    stmt = select(SubmissionReport).where(SubmissionReport.id == report_id)
    if lock:
        stmt = stmt.with_for_update()
    report = (await db.execute(stmt)).scalar_one_or_none()
    if report is None:
        raise NotFound("Report not found")
    return report


async def _authorized_report(ctx: RequestContext, report_id: UUID, operation: Operation, lock: bool = False) -> SubmissionReport:
    report = await _load_report(ctx.db, report_id, lock=lock)
    org_id = await _submission_org(ctx, report.submission_id)
    authorize(ctx.principal, operation, Target(org_id=org_id))
    return report


async def generate_report(
    ctx: RequestContext,
    submission_id: UUID,
    report_type: str,
    parameters: Optional[dict] = None,
) -> SubmissionReport:
    org_id = await _submission_org(ctx, submission_id)
    authorize(ctx.principal, Operation.REPORT_GENERATE, Target(org_id=org_id))
    report = SubmissionReport(
        submission_id=submission_id,
        report_type=_validate_report_type(report_type),
        status="generating",
        generated_at=now(),
        data={"parameters": parameters} if parameters else None,
    )
    ctx.db.add(report)
    await ctx.db.flush()
    logger.info("Scheduled %s report %s for submission %s", report_type, report.id, submission_id)
    return report


async def list_reports(ctx: RequestContext, submission_id: UUID, report_type: Optional[str] = None) -> list[SubmissionReport]:
    org_id = await _submission_org(ctx, submission_id)
    authorize(ctx.principal, Operation.REPORT_READ, Target(org_id=org_id))
    stmt = select(SubmissionReport).where(SubmissionReport.submission_id == submission_id)
    if report_type:
        stmt = stmt.where(SubmissionReport.report_type == _validate_report_type(report_type))
    stmt = stmt.order_by(SubmissionReport.generated_at.desc())
    return list((await ctx.db.execute(stmt)).scalars().all())


async def list_org_reports(
    ctx: RequestContext,
    org_id: Optional[str] = None,
    report_type: Optional[str] = None,
) -> list[SubmissionReport]:
    """Reports across every submission the caller can see, newest first."""
    authorize(ctx.principal, Operation.SUBMISSION_LIST)
    principal = ctx.principal
    stmt = select(SubmissionReport).join(
        AssessmentSubmission, AssessmentSubmission.id == SubmissionReport.submission_id
    )
    if org_id:
        authorize(principal, Operation.REPORT_READ, Target(org_id=org_id))
        stmt = stmt.where(AssessmentSubmission.org_id == org_id)
    elif not (principal.is_super_user or principal.is_application_admin):
        stmt = stmt.where(AssessmentSubmission.org_id.in_(principal.org_ids))
    if report_type:
        stmt = stmt.where(SubmissionReport.report_type == _validate_report_type(report_type))
    stmt = stmt.order_by(SubmissionReport.generated_at.desc())
    return list((await ctx.db.execute(stmt)).scalars().all())


async def get_report(ctx: RequestContext, report_id: UUID) -> SubmissionReport:
    return await _authorized_report(ctx, report_id, Operation.REPORT_READ)


async def delete_report(ctx: RequestContext, report_id: UUID) -> None:
    report = await _authorized_report(ctx, report_id, Operation.REPORT_DELETE)
    await ctx.db.delete(report)
    await ctx.db.flush()
    logger.info("Deleted report %s", report_id)


def _with_recommendation_ids(data: Any) -> Any:
    if not isinstance(data, dict) or not isinstance(data.get("recommendations"), list):
        return data
    recommendations = []
    for item in data["recommendations"]:
        if isinstance(item, dict):
            item = dict(item)
            item.setdefault("recommendation_id", str(uuid.uuid4()))
            item.setdefault("status", "todo")
        recommendations.append(item)
    return {**data, "recommendations": recommendations}


async def mark_report_completed(db: AsyncSession, report_id: UUID, data: Any) -> SubmissionReport:
    report = await _load_report(db, report_id, lock=True)
    if report.status != "generating":
        raise InvariantViolation(f"Report is already {report.status}")
    report.status = "completed"
    report.data = _with_recommendation_ids(data)
    report.generated_at = now()
    await db.flush()
    logger.info("Report %s completed", report_id)
    return report


async def mark_report_failed(db: AsyncSession, report_id: UUID, reason: str) -> SubmissionReport:
    report = await _load_report(db, report_id, lock=True)
    if report.status != "generating":
        raise InvariantViolation(f"Report is already {report.status}")
    report.status = "failed"
    previous = report.data if isinstance(report.data, dict) else {}
    report.data = {**previous, "error": reason}
    await db.flush()
    logger.warning("Report %s failed: %s", report_id, reason)
    return report


async def complete_report(ctx: RequestContext, report_id: UUID, data: Any) -> SubmissionReport:
    await _authorized_report(ctx, report_id, Operation.REPORT_GENERATE)
    return await mark_report_completed(ctx.db, report_id, data)


async def fail_report(ctx: RequestContext, report_id: UUID, reason: str) -> SubmissionReport:
    await _authorized_report(ctx, report_id, Operation.REPORT_GENERATE)
    return await mark_report_failed(ctx.db, report_id, reason)


async def update_recommendation_status(
    ctx: RequestContext,
    report_id: UUID,
    recommendation_id: str,
    status: str,
) -> SubmissionReport:
    if status not in RECOMMENDATION_STATUSES:
        raise BadInput(f"Invalid status. Must be one of: {', '.join(RECOMMENDATION_STATUSES)}")
    report = await _authorized_report(ctx, report_id, Operation.REPORT_RECOMMENDATION_UPDATE, lock=True)
    if report.status != "completed":
        raise InvariantViolation("Recommendations can only be updated on a completed report")

    data = dict(report.data) if isinstance(report.data, dict) else {}
    recommendations = []
    found = False
    for item in data.get("recommendations") or []:
        if isinstance(item, dict) and item.get("recommendation_id") == recommendation_id:
            item = {**item, "status": status, "updated_at": now().isoformat()}
            found = True
        recommendations.append(item)
    if not found:
        raise NotFound("Recommendation not found")

    data["recommendations"] = recommendations
    report.data = data
    await ctx.db.flush()
    logger.info("Recommendation %s on report %s set to %s", recommendation_id, report_id, status)
    return report

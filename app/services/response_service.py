"""
Versioned responses and their file links.

Every write inserts a new row; a row once written is never updated, so the
full answer history stays available. The latest response for a question
revision is the row with the highest version. Concurrent writers are
serialized by the (assessment_id, revision_id, version) unique constraint.
"""
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from app.core.context import RequestContext
from app.core.errors import BadInput, Conflict, NotFound
from app.core.logging import get_logger
from app.core.permissions import Operation, authorize
from app.db.models import File, Response, ResponseFile, now
from app.services.assessment_service import assessment_target, load_assessment, lock_assessment
from app.services.question_service import load_revision

logger = get_logger("sustainability.services.responses")

VERSION_CONFLICT = "Version conflict: response has been modified by another user"


async def latest_responses(ctx: RequestContext, assessment_id: UUID) -> list[Response]:
    """Latest version per question revision, files eagerly loaded."""
    stmt = (
        select(Response)
        .where(Response.assessment_id == assessment_id)
        .distinct(Response.revision_id)
        .order_by(Response.revision_id, Response.version.desc())
        .options(selectinload(Response.files))
        .execution_options(populate_existing=True)
    )
    return list((await ctx.db.execute(stmt)).scalars().all())


async def _latest_row(ctx: RequestContext, assessment_id: UUID, revision_id: UUID) -> Optional[Response]:
    stmt = (
        select(Response)
        .where(Response.assessment_id == assessment_id, Response.revision_id == revision_id)
        .order_by(Response.version.desc())
        .limit(1)
    )
    return (await ctx.db.execute(stmt)).scalar_one_or_none()


async def _insert_version(
    ctx: RequestContext,
    assessment_id: UUID,
    revision_id: UUID,
    text: str,
    version: int,
    previous: Optional[Response] = None,
) -> Response:
    response = Response(
        assessment_id=assessment_id,
        revision_id=revision_id,
        text=text,
        version=version,
        updated_by=ctx.principal.sub,
        updated_at=now(),
    )
    try:
        async with ctx.db.begin_nested():
            ctx.db.add(response)
            await ctx.db.flush()
    except IntegrityError:
        logger.warning(
            "Lost version race on assessment %s revision %s at version %s", assessment_id, revision_id, version
        )
        raise Conflict(VERSION_CONFLICT)

    if previous is not None:
        # Evidence follows the answer onto the new version
        file_ids = (
            await ctx.db.execute(select(ResponseFile.file_id).where(ResponseFile.response_id == previous.id))
        ).scalars().all()
        for file_id in file_ids:
            ctx.db.add(ResponseFile(response_id=response.id, file_id=file_id, created_at=now()))
        if file_ids:
            await ctx.db.flush()
    await ctx.db.refresh(response, attribute_names=["files"])
    return response


def _require_text(text) -> str:
    if not isinstance(text, str) or not text.strip():
        raise BadInput("Response text cannot be empty")
    return text


async def _load_response(ctx: RequestContext, assessment_id: UUID, response_id: UUID) -> Response:
    stmt = (
        select(Response)
        .where(Response.id == response_id)
        .options(selectinload(Response.files))
        .execution_options(populate_existing=True)
    )
    response = (await ctx.db.execute(stmt)).scalar_one_or_none()
    if response is None:
        raise NotFound("Response not found")
    if response.assessment_id != assessment_id:
        raise BadInput("Response does not belong to the specified assessment")
    return response


async def create_or_replace_many(
    ctx: RequestContext,
    assessment_id: UUID,
    answers: Iterable[tuple[UUID, str]],
) -> list[Response]:
    """Write one new version per answer without requiring an expected version."""
    answers = list(answers)
    if not answers:
        raise BadInput("At least one response is required")

    assessment = await lock_assessment(ctx, assessment_id)
    authorize(ctx.principal, Operation.RESPONSE_WRITE, await assessment_target(ctx, assessment))

    created = []
    for revision_id, text in answers:
        text = _require_text(text)
        await load_revision(ctx, revision_id)
        current = await _latest_row(ctx, assessment_id, revision_id)
        version = current.version + 1 if current else 1
        created.append(await _insert_version(ctx, assessment_id, revision_id, text, version, current))
        logger.info("Response for revision %s in assessment %s at version %s", revision_id, assessment_id, version)
    return created


async def get_response(ctx: RequestContext, assessment_id: UUID, response_id: UUID) -> Response:
    assessment = await load_assessment(ctx, assessment_id)
    authorize(ctx.principal, Operation.RESPONSE_READ, await assessment_target(ctx, assessment))
    return await _load_response(ctx, assessment_id, response_id)


async def list_responses(ctx: RequestContext, assessment_id: UUID) -> list[Response]:
    assessment = await load_assessment(ctx, assessment_id)
    authorize(ctx.principal, Operation.RESPONSE_READ, await assessment_target(ctx, assessment))
    return await latest_responses(ctx, assessment_id)


async def update_response(
    ctx: RequestContext,
    assessment_id: UUID,
    response_id: UUID,
    text: str,
    expected_version: int,
) -> Response:
    """Optimistic update: succeeds only if ``expected_version`` is still the latest."""
    text = _require_text(text)
    assessment = await lock_assessment(ctx, assessment_id)
    authorize(ctx.principal, Operation.RESPONSE_WRITE, await assessment_target(ctx, assessment))

    response = await _load_response(ctx, assessment_id, response_id)
    current = await _latest_row(ctx, assessment_id, response.revision_id)
    if current is None or current.version != expected_version:
        logger.warning(
            "Stale update of response %s: expected version %s, latest is %s",
            response_id, expected_version, current.version if current else None,
        )
        raise Conflict(VERSION_CONFLICT)

    updated = await _insert_version(ctx, assessment_id, response.revision_id, text, current.version + 1, current)
    logger.info("Response %s superseded by %s (version %s)", response_id, updated.id, updated.version)
    return updated


async def delete_response(ctx: RequestContext, assessment_id: UUID, response_id: UUID) -> None:
    assessment = await lock_assessment(ctx, assessment_id)
    authorize(ctx.principal, Operation.RESPONSE_DELETE, await assessment_target(ctx, assessment))
    response = await _load_response(ctx, assessment_id, response_id)
    await ctx.db.delete(response)
    await ctx.db.flush()
    logger.info("Deleted response %s from assessment %s", response_id, assessment_id)


async def attach_file(ctx: RequestContext, assessment_id: UUID, response_id: UUID, file_id: UUID) -> ResponseFile:
    assessment = await lock_assessment(ctx, assessment_id)
    authorize(ctx.principal, Operation.FILE_ATTACH, await assessment_target(ctx, assessment))

    await _load_response(ctx, assessment_id, response_id)
    file = await ctx.db.get(File, file_id)
    if file is None:
        raise NotFound("File not found")
    if file.org_id != assessment.org_id:
        raise BadInput("File belongs to another organization")

    existing = await ctx.db.get(ResponseFile, (response_id, file_id))
    if existing is not None:
        raise Conflict("File is already attached to this response")

    link = ResponseFile(response_id=response_id, file_id=file_id, created_at=now())
    try:
        async with ctx.db.begin_nested():
            ctx.db.add(link)
            await ctx.db.flush()
    except IntegrityError:
        raise Conflict("File is already attached to this response")
    logger.info("Attached file %s to response %s", file_id, response_id)
    return link


async def detach_file(ctx: RequestContext, assessment_id: UUID, response_id: UUID, file_id: UUID) -> None:
    assessment = await lock_assessment(ctx, assessment_id)
    authorize(ctx.principal, Operation.FILE_DETACH, await assessment_target(ctx, assessment))

    await _load_response(ctx, assessment_id, response_id)
    result = await ctx.db.execute(
        delete(ResponseFile).where(ResponseFile.response_id == response_id, ResponseFile.file_id == file_id)
    )
    if result.rowcount == 0:
        raise NotFound("File is not attached to this response")
    logger.info("Detached file %s from response %s", file_id, response_id)

"""
Question catalog: questions and their immutable revisions.
"""
import math
from datetime import timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, exists, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from app.core.context import RequestContext
from app.core.errors import BadInput, InvariantViolation, NotFound
from app.core.logging import get_logger
from app.core.permissions import Operation, authorize
from app.db.models import CategoryCatalog, Question, QuestionRevision, Response, now

logger = get_logger("sustainability.services.questions")

REVISION_IN_USE = (
    "Cannot delete question revision: it is referenced by assessment responses. "
    "Create a new revision of the question instead."
)


def validate_text(text) -> dict:
    if not isinstance(text, dict) or not text:
        raise BadInput("Question text must map language codes to text")
    cleaned = {}
    for language, value in text.items():
        if not isinstance(language, str) or not language.strip():
            raise BadInput("Question text has an empty language code")
        if not isinstance(value, str):
            raise BadInput(f"Question text for '{language}' must be a string")
        cleaned[language.strip()] = value
    if not any(value.strip() for value in cleaned.values()):
        raise BadInput("Question text cannot be empty")
    return cleaned


def validate_weight(weight) -> float:
    try:
        weight = float(weight)
    except (TypeError, ValueError):
        raise BadInput("Question weight must be a number")
    if math.isnan(weight) or math.isinf(weight) or weight < 0:
        raise BadInput("Question weight must be a non-negative number")
    return weight


async def validate_category(ctx: RequestContext, category) -> str:
    """Questions are filed under the name of an active catalog category."""
    if not isinstance(category, str) or not category.strip():
        raise BadInput("Question category cannot be empty")
    name = category.strip()
    active = await ctx.db.scalar(
        select(exists().where(CategoryCatalog.name == name, CategoryCatalog.is_active.is_(True)))
    )
    if not active:
        raise BadInput(f"Unknown or inactive category: {name}")
    return name


async def _load_question(ctx: RequestContext, question_id: UUID) -> Question:
    stmt = (
        select(Question)
        .where(Question.id == question_id)
        .options(selectinload(Question.revisions))
        .execution_options(populate_existing=True)
    )
    question = (await ctx.db.execute(stmt)).scalar_one_or_none()
    if question is None:
        raise NotFound("Question not found")
    return question


async def load_revision(ctx: RequestContext, revision_id: UUID) -> QuestionRevision:
    """Fetch a revision, memoized for the request (revisions never change)."""
    revision = await ctx.cached(("revision", revision_id), lambda: ctx.db.get(QuestionRevision, revision_id))
    if revision is None:
        raise NotFound("Question revision not found")
    return revision


async def list_questions(ctx: RequestContext, category: Optional[str] = None) -> list[tuple[Question, QuestionRevision]]:
    """Every question with its latest revision, oldest question first."""
    authorize(ctx.principal, Operation.CATALOG_READ)
    stmt = (
        select(Question)
        .options(selectinload(Question.revisions))
        .order_by(Question.created_at)
        .execution_options(populate_existing=True)
    )
    if category:
        stmt = stmt.where(Question.category == category)
    questions = (await ctx.db.execute(stmt)).scalars().all()
    return [(q, q.revisions[0]) for q in questions if q.revisions]


async def get_question(
    ctx: RequestContext,
    question_id: UUID,
    revision_id: Optional[UUID] = None,
) -> tuple[Question, QuestionRevision]:
    """Return the question with the requested revision, or its latest one."""
    authorize(ctx.principal, Operation.CATALOG_READ)
    question = await _load_question(ctx, question_id)
    if revision_id is None:
        if not question.revisions:
            raise NotFound("Question has no revisions")
        return question, question.revisions[0]

    revision = await load_revision(ctx, revision_id)
    if revision.question_id != question.id:
        raise BadInput("Question revision does not belong to this question")
    return question, revision


async def list_revisions(ctx: RequestContext, question_id: UUID) -> list[QuestionRevision]:
    authorize(ctx.principal, Operation.CATALOG_READ)
    question = await _load_question(ctx, question_id)
    return list(question.revisions)


async def create_question(ctx: RequestContext, category: str, text: dict, weight: float) -> tuple[Question, QuestionRevision]:
    authorize(ctx.principal, Operation.CATALOG_WRITE)
    category = await validate_category(ctx, category)
    text = validate_text(text)
    weight = validate_weight(weight)

    question = Question(category=category, created_at=now())
    ctx.db.add(question)
    await ctx.db.flush()

    revision = QuestionRevision(question_id=question.id, text=text, weight=weight, created_at=now())
    ctx.db.add(revision)
    await ctx.db.flush()

    logger.info("Created question %s (%s) with revision %s", question.id, category, revision.id)
    return question, revision


async def update_question(
    ctx: RequestContext,
    question_id: UUID,
    text: dict,
    weight: float,
    category: Optional[str] = None,
) -> tuple[Question, QuestionRevision]:
    """Record a new revision; earlier revisions stay untouched."""
    authorize(ctx.principal, Operation.CATALOG_WRITE)
    text = validate_text(text)
    weight = validate_weight(weight)

    question = await _load_question(ctx, question_id)
    if category is not None:
        question.category = await validate_category(ctx, category)

    created_at = now()
    if question.revisions and created_at <= question.revisions[0].created_at:
        # latest-by-created_at must pick the new revision
        created_at = question.revisions[0].created_at + timedelta(microseconds=1)

    revision = QuestionRevision(question_id=question.id, text=text, weight=weight, created_at=created_at)
    ctx.db.add(revision)
    await ctx.db.flush()

    logger.info("Question %s has new revision %s", question.id, revision.id)
    return question, revision


async def delete_revision(ctx: RequestContext, revision_id: UUID) -> None:
    authorize(ctx.principal, Operation.CATALOG_WRITE)
    revision = await load_revision(ctx, revision_id)

    in_use = await ctx.db.scalar(select(exists().where(Response.revision_id == revision_id)))
    if in_use:
        logger.warning("Refusing to delete revision %s: referenced by responses", revision_id)
        raise InvariantViolation(REVISION_IN_USE)

    question_id = revision.question_id
    try:
        async with ctx.db.begin_nested():
            await ctx.db.execute(delete(QuestionRevision).where(QuestionRevision.id == revision_id))
    except IntegrityError:
        # A response was written between the check and the delete
        raise InvariantViolation(REVISION_IN_USE)
    ctx.forget(("revision", revision_id))

    remaining = await ctx.db.scalar(
        select(func.count()).select_from(QuestionRevision).where(QuestionRevision.question_id == question_id)
    )
    if not remaining:
        await ctx.db.execute(delete(Question).where(Question.id == question_id))
        logger.info("Deleted question %s together with its last revision", question_id)
    logger.info("Deleted question revision %s", revision_id)

import uuid

import pytest
from sqlalchemy import select

from app.core.errors import BadInput, Forbidden, InvariantViolation, NotFound
from app.db.models import Question, QuestionRevision
from app.services import assessment_service, category_service, question_service, response_service

pytestmark = pytest.mark.usefixtures("catalog")


@pytest.mark.asyncio
async def test_update_creates_new_revision_and_keeps_old(make_ctx, super_user):
    ctx = make_ctx(super_user)
    question, first = await question_service.create_question(ctx, "environment", {"en": "CO2 emissions?"}, 2.0)

    _, second = await question_service.update_question(ctx, question.id, {"en": "Scope 1 emissions?"}, 3.0)
    assert second.id != first.id
    assert second.created_at > first.created_at

    # Latest is the newest revision
    _, latest = await question_service.get_question(ctx, question.id)
    assert latest.id == second.id

    # The old revision is untouched
    _, old = await question_service.get_question(ctx, question.id, revision_id=first.id)
    assert old.text == {"en": "CO2 emissions?"}
    assert old.weight == 2.0

    revisions = await question_service.list_revisions(ctx, question.id)
    assert [r.id for r in revisions] == [second.id, first.id]


@pytest.mark.asyncio
async def test_catalog_writes_need_super_user(make_ctx, org_admin, app_admin):
    for principal in (org_admin, app_admin):
        with pytest.raises(Forbidden):
            await question_service.create_question(make_ctx(principal), "environment", {"en": "Q"}, 1.0)


@pytest.mark.asyncio
async def test_question_validation(make_ctx, super_user):
    ctx = make_ctx(super_user)
    with pytest.raises(BadInput):
        await question_service.create_question(ctx, "", {"en": "Q"}, 1.0)
    with pytest.raises(BadInput):
        await question_service.create_question(ctx, "environment", {}, 1.0)
    with pytest.raises(BadInput):
        await question_service.create_question(ctx, "environment", {"en": "   "}, 1.0)
    with pytest.raises(BadInput):
        await question_service.create_question(ctx, "environment", {"en": "Q"}, -1)


@pytest.mark.asyncio
async def test_revision_from_another_question_is_rejected(make_ctx, super_user):
    ctx = make_ctx(super_user)
    q1, _ = await question_service.create_question(ctx, "environment", {"en": "One"}, 1.0)
    _, r2 = await question_service.create_question(ctx, "social", {"en": "Two"}, 1.0)

    with pytest.raises(BadInput):
        await question_service.get_question(ctx, q1.id, revision_id=r2.id)
    with pytest.raises(NotFound):
        await question_service.get_question(ctx, q1.id, revision_id=uuid.uuid4())
    with pytest.raises(NotFound):
        await question_service.get_question(ctx, uuid.uuid4())


@pytest.mark.asyncio
async def test_list_questions_by_category(make_ctx, super_user, org_user):
    ctx = make_ctx(super_user)
    await question_service.create_question(ctx, "environment", {"en": "Env"}, 1.0)
    social, _ = await question_service.create_question(ctx, "social", {"en": "Soc"}, 1.0)
    _, newest = await question_service.update_question(ctx, social.id, {"en": "Soc v2"}, 1.0)

    rows = await question_service.list_questions(make_ctx(org_user), category="social")
    assert len(rows) == 1
    assert rows[0][0].id == social.id
    assert rows[0][1].id == newest.id


@pytest.mark.asyncio
async def test_referenced_revision_cannot_be_deleted(make_ctx, super_user, org_admin):
    root = make_ctx(super_user)
    question, revision = await question_service.create_question(root, "environment", {"en": "Water use?"}, 1.0)

    admin = make_ctx(org_admin)
    assessment = await assessment_service.create_assessment(admin, None, "en", "2026")
    await response_service.create_or_replace_many(admin, assessment.id, [(revision.id, "12 m3")])

    with pytest.raises(InvariantViolation):
        await question_service.delete_revision(root, revision.id)

    # Still there, and a new revision is the way forward
    assert await root.db.get(QuestionRevision, revision.id) is not None
    _, newer = await question_service.update_question(root, question.id, {"en": "Water withdrawal?"}, 1.0)
    _, latest = await question_service.get_question(root, question.id)
    assert latest.id == newer.id


@pytest.mark.asyncio
async def test_deleting_last_revision_removes_question(make_ctx, super_user):
    ctx = make_ctx(super_user)
    question, first = await question_service.create_question(ctx, "environment", {"en": "Q"}, 1.0)
    _, second = await question_service.update_question(ctx, question.id, {"en": "Q2"}, 1.0)

    await question_service.delete_revision(ctx, second.id)
    _, latest = await question_service.get_question(ctx, question.id)
    assert latest.id == first.id

    await question_service.delete_revision(ctx, first.id)
    remaining = (await ctx.db.execute(select(Question).where(Question.id == question.id))).scalar_one_or_none()
    assert remaining is None


@pytest.mark.asyncio
async def test_category_must_be_active_in_catalog(make_ctx, super_user):
    ctx = make_ctx(super_user)
    with pytest.raises(BadInput):
        await question_service.create_question(ctx, "enviroment", {"en": "Q"}, 1.0)

    await category_service.create_category(ctx, "legacy", "tpl-legacy", is_active=False)
    with pytest.raises(BadInput):
        await question_service.create_question(ctx, "legacy", {"en": "Q"}, 1.0)

    question, _ = await question_service.create_question(ctx, " governance ", {"en": "Board?"}, 1.0)
    assert question.category == "governance"
    with pytest.raises(BadInput):
        await question_service.update_question(ctx, question.id, {"en": "Board?"}, 1.0, category="legacy")

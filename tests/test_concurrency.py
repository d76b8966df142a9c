import asyncio

import pytest
from sqlalchemy import select

from app.core.context import RequestContext
from app.core.errors import Conflict
from app.db.models import AssessmentSubmission, CategoryCatalog, Response, TempSubmission
from app.services import assessment_service, question_service, response_service, submission_service


async def _seed(factory, super_user, org_admin, org_user):
    """Commit an assessment with one answered question and a merged draft."""
    async with factory() as session:
        session.add(CategoryCatalog(name="environment", template_id="tpl-env"))
        await session.flush()
        _, revision = await question_service.create_question(
            RequestContext(session, super_user), "environment", {"en": "Energy use?"}, 1.0
        )
        assessment = await assessment_service.create_assessment(RequestContext(session, org_admin), None, "en", "Annual")
        user = RequestContext(session, org_user)
        [response] = await response_service.create_or_replace_many(user, assessment.id, [(revision.id, "120")])
        await submission_service.submit_draft(user, assessment.id)
        await session.commit()
        return assessment.id, response.id, revision.id


async def _in_own_session(factory, principal, call):
    async with factory() as session:
        result = await call(RequestContext(session, principal))
        await session.commit()
        return result


@pytest.mark.asyncio
async def test_concurrent_updates_of_one_version(committed_sessions, super_user, org_admin, org_user):
    assessment_id, response_id, revision_id = await _seed(committed_sessions, super_user, org_admin, org_user)

    def update(text):
        return lambda ctx: response_service.update_response(ctx, assessment_id, response_id, text, 1)

    results = await asyncio.gather(
        _in_own_session(committed_sessions, org_user, update("118")),
        _in_own_session(committed_sessions, org_user, update("119")),
        return_exceptions=True,
    )
    winners = [r for r in results if isinstance(r, Response)]
    losers = [r for r in results if isinstance(r, Conflict)]
    assert len(winners) == 1 and len(losers) == 1

    async with committed_sessions() as session:
        rows = (await session.execute(
            select(Response)
            .where(Response.assessment_id == assessment_id, Response.revision_id == revision_id)
            .order_by(Response.version)
        )).scalars().all()
    assert [r.version for r in rows] == [1, 2]
    assert rows[1].text == winners[0].text


@pytest.mark.asyncio
async def test_concurrent_finalize(committed_sessions, super_user, org_admin, org_user):
    assessment_id, _, _ = await _seed(committed_sessions, super_user, org_admin, org_user)

    def finalize(ctx):
        return submission_service.finalize(ctx, assessment_id)

    results = await asyncio.gather(
        _in_own_session(committed_sessions, org_admin, finalize),
        _in_own_session(committed_sessions, org_admin, finalize),
        return_exceptions=True,
    )
    assert len([r for r in results if isinstance(r, AssessmentSubmission)]) == 1
    assert len([r for r in results if isinstance(r, Conflict)]) == 1

    async with committed_sessions() as session:
        submissions = (await session.execute(
            select(AssessmentSubmission).where(AssessmentSubmission.id == assessment_id)
        )).scalars().all()
        assert len(submissions) == 1
        assert submissions[0].content["assessment_name"] == "Annual"
        assert await session.get(TempSubmission, assessment_id) is None

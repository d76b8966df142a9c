import uuid

import pytest

from app.core.errors import BadInput, Forbidden, InvariantViolation, NotFound
from app.core.security import ORGANIZATION_ADMIN
from app.services import (
    assessment_service,
    question_service,
    report_service,
    response_service,
    submission_service,
)

from conftest import OTHER_ORG, make_principal

pytestmark = pytest.mark.usefixtures("catalog")


async def _submission(make_ctx, super_user, org_admin, org_user):
    _, revision = await question_service.create_question(make_ctx(super_user), "environment", {"en": "Q"}, 1.0)
    assessment = await assessment_service.create_assessment(make_ctx(org_admin), None, "en", "Annual")
    user = make_ctx(org_user)
    await response_service.create_or_replace_many(user, assessment.id, [(revision.id, "answer")])
    await submission_service.submit_draft(user, assessment.id)
    return await submission_service.finalize(make_ctx(org_admin), assessment.id)


@pytest.mark.asyncio
async def test_report_lifecycle(make_ctx, super_user, org_admin, org_user):
    submission = await _submission(make_ctx, super_user, org_admin, org_user)
    admin = make_ctx(org_admin)

    report = await report_service.generate_report(admin, submission.id, "sustainability", {"year": 2026})
    assert report.status == "generating"
    assert report.data == {"parameters": {"year": 2026}}

    with pytest.raises(Forbidden):
        await report_service.generate_report(make_ctx(org_user), submission.id, "summary")
    with pytest.raises(BadInput):
        await report_service.generate_report(admin, submission.id, "horoscope")
    with pytest.raises(NotFound):
        await report_service.generate_report(admin, uuid.uuid4(), "summary")

    completed = await report_service.mark_report_completed(
        admin.db,
        report.id,
        {"score": 71, "recommendations": [{"title": "Install LED lighting"}, {"title": "Audit suppliers"}]},
    )
    assert completed.status == "completed"
    recommendations = completed.data["recommendations"]
    assert all(r["status"] == "todo" for r in recommendations)
    assert len({r["recommendation_id"] for r in recommendations}) == 2

    with pytest.raises(InvariantViolation):
        await report_service.mark_report_failed(admin.db, report.id, "too late")

    rec_id = recommendations[0]["recommendation_id"]
    updated = await report_service.update_recommendation_status(admin, report.id, rec_id, "in_progress")
    assert updated.data["recommendations"][0]["status"] == "in_progress"
    assert updated.data["recommendations"][1]["status"] == "todo"

    with pytest.raises(BadInput):
        await report_service.update_recommendation_status(admin, report.id, rec_id, "someday")
    with pytest.raises(NotFound):
        await report_service.update_recommendation_status(admin, report.id, "nope", "done")

    reports = await report_service.list_reports(make_ctx(org_user), submission.id)
    assert [r.id for r in reports] == [report.id]
    assert await report_service.list_reports(make_ctx(org_user), submission.id, report_type="summary") == []


@pytest.mark.asyncio
async def test_failed_report_keeps_parameters(make_ctx, super_user, org_admin, org_user):
    submission = await _submission(make_ctx, super_user, org_admin, org_user)
    admin = make_ctx(org_admin)
    report = await report_service.generate_report(admin, submission.id, "compliance", {"framework": "CSRD"})

    failed = await report_service.fail_report(admin, report.id, "generator crashed")
    assert failed.status == "failed"
    assert failed.data == {"parameters": {"framework": "CSRD"}, "error": "generator crashed"}

    with pytest.raises(InvariantViolation):
        await report_service.update_recommendation_status(admin, report.id, "x", "done")

    await report_service.delete_report(admin, report.id)
    with pytest.raises(NotFound):
        await report_service.get_report(admin, report.id)


@pytest.mark.asyncio
async def test_org_report_listing(client, acting, make_ctx, super_user, org_admin, org_user, app_admin):
    own = await _submission(make_ctx, super_user, org_admin, org_user)
    other_admin = make_principal(sub="admin-2", org_id=OTHER_ORG, roles=(ORGANIZATION_ADMIN,), categories=("environment",))
    other_user = make_principal(sub="user-2", org_id=OTHER_ORG, categories=("environment",))
    foreign = await _submission(make_ctx, super_user, other_admin, other_user)

    admin = make_ctx(org_admin)
    summary = await report_service.generate_report(admin, own.id, "summary")
    compliance = await report_service.generate_report(admin, own.id, "compliance")
    elsewhere = await report_service.generate_report(make_ctx(other_admin), foreign.id, "summary")

    member = make_ctx(org_user)
    assert {r.id for r in await report_service.list_org_reports(member)} == {summary.id, compliance.id}
    assert [r.id for r in await report_service.list_org_reports(member, report_type="summary")] == [summary.id]
    assert [r.id for r in await report_service.list_org_reports(make_ctx(other_user))] == [elsewhere.id]
    with pytest.raises(Forbidden):
        await report_service.list_org_reports(member, org_id=OTHER_ORG)
    with pytest.raises(BadInput):
        await report_service.list_org_reports(member, report_type="horoscope")

    platform = make_ctx(app_admin)
    assert {r.id for r in await report_service.list_org_reports(platform)} == {summary.id, compliance.id, elsewhere.id}
    assert [r.id for r in await report_service.list_org_reports(platform, org_id=OTHER_ORG)] == [elsewhere.id]

    acting.current = org_user
    r = await client.get("/api/v1/reports", params={"report_type": "compliance"})
    assert r.status_code == 200
    assert [rep["id"] for rep in r.json()["reports"]] == [str(compliance.id)]

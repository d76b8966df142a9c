import uuid

import pytest

from app.core.errors import BadInput, Forbidden, NotFound
from app.services import assessment_service

from conftest import ORG, OTHER_ORG, make_principal


@pytest.mark.asyncio
async def test_create_and_read_draft(make_ctx, org_admin, org_user):
    admin = make_ctx(org_admin)
    assessment = await assessment_service.create_assessment(admin, ORG, "en", "Q3")
    assert assessment.status == "draft"
    assert assessment.org_id == ORG

    detail = await assessment_service.get_assessment(make_ctx(org_user), assessment.id)
    assert detail.status == "draft"
    assert detail.responses == []
    assert detail.name == "Q3"


@pytest.mark.asyncio
async def test_create_needs_org_admin(make_ctx, org_admin, org_user, app_admin):
    with pytest.raises(Forbidden):
        await assessment_service.create_assessment(make_ctx(org_user), ORG, "en", "Q3")
    with pytest.raises(Forbidden):
        await assessment_service.create_assessment(make_ctx(org_admin), OTHER_ORG, "en", "Q3")
    with pytest.raises(BadInput):
        await assessment_service.create_assessment(make_ctx(org_admin), ORG, "en", "   ")
    # Application admins have no single organization to default to
    with pytest.raises(BadInput):
        await assessment_service.create_assessment(make_ctx(app_admin), None, "en", "Q3")

    created = await assessment_service.create_assessment(make_ctx(app_admin), OTHER_ORG, "de", "Q4")
    assert created.org_id == OTHER_ORG


@pytest.mark.asyncio
async def test_update_delete_and_list(make_ctx, org_admin, org_user):
    admin = make_ctx(org_admin)
    first = await assessment_service.create_assessment(admin, None, "en", "First")
    second = await assessment_service.create_assessment(admin, None, "de", "Second")

    renamed = await assessment_service.update_assessment(admin, first.id, name="First (final)")
    assert renamed.name == "First (final)"
    assert renamed.language == "en"
    with pytest.raises(Forbidden):
        await assessment_service.update_assessment(make_ctx(org_user), first.id, name="Nope")

    user = make_ctx(org_user)
    listed = await assessment_service.list_assessments(user)
    assert {a.id for a in listed} == {first.id, second.id}
    assert all(a.status == "draft" for a in listed)
    assert [a.id for a in await assessment_service.list_assessments(user, language="de")] == [second.id]
    assert await assessment_service.list_assessments(user, status="submitted") == []

    outsider = make_ctx(make_principal(sub="outsider", org_id=OTHER_ORG))
    with pytest.raises(Forbidden):
        await assessment_service.list_assessments(outsider, org_id=ORG)
    with pytest.raises(Forbidden):
        await assessment_service.get_assessment(outsider, first.id)

    await assessment_service.delete_assessment(admin, second.id)
    with pytest.raises(NotFound):
        await assessment_service.get_assessment(admin, second.id)
    with pytest.raises(NotFound):
        await assessment_service.delete_assessment(admin, uuid.uuid4())

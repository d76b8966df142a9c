import uuid

import pytest

from app.core.config import settings
from app.core.errors import BadInput, Forbidden, InvariantViolation, NotFound
from app.core.permissions import IN_USE_MESSAGE
from app.db.models import File
from app.services import assessment_service, file_service, question_service, response_service
from app.services.file_service import detect_mime_type

from conftest import OTHER_ORG, make_principal

pytestmark = pytest.mark.usefixtures("catalog")


@pytest.mark.asyncio
async def test_upload_records_system_metadata(make_ctx, org_user):
    ctx = make_ctx(org_user)
    stored = await file_service.upload_file(
        ctx, None, "report.pdf", "application/octet-stream", b"%PDF-1.7",
        {"filename": "spoofed.exe", "period": "2026-Q1"},
    )
    assert stored.org_id == "org-1"
    assert stored.meta_data["filename"] == "report.pdf"
    assert stored.meta_data["content_type"] == "application/pdf"
    assert stored.meta_data["size"] == 8
    assert stored.meta_data["uploaded_by"] == "org-user"
    assert stored.meta_data["period"] == "2026-Q1"

    fetched = await file_service.get_file(ctx, stored.id)
    assert fetched.content == b"%PDF-1.7"


@pytest.mark.asyncio
async def test_upload_limits(make_ctx, org_user, monkeypatch):
    ctx = make_ctx(org_user)
    monkeypatch.setattr(settings, "MAX_FILE_SIZE", 16)

    with pytest.raises(BadInput):
        await file_service.upload_file(ctx, None, "big.bin", None, b"x" * 17)
    with pytest.raises(BadInput):
        await file_service.upload_file(ctx, None, "empty.bin", None, b"")
    stored = await file_service.upload_file(ctx, None, "ok.bin", None, b"x" * 16)
    assert stored.meta_data["size"] == 16

    with pytest.raises(Forbidden):
        await file_service.upload_file(ctx, OTHER_ORG, "x.txt", "text/plain", b"x")


@pytest.mark.asyncio
async def test_download_is_scoped_to_the_organization(make_ctx, org_user):
    stored = await file_service.upload_file(make_ctx(org_user), None, "a.txt", "text/plain", b"a")
    outsider = make_ctx(make_principal(sub="outsider", org_id=OTHER_ORG))
    with pytest.raises(Forbidden):
        await file_service.get_file(outsider, stored.id)
    with pytest.raises(NotFound):
        await file_service.get_file(outsider, uuid.uuid4())


@pytest.mark.asyncio
async def test_only_uploader_may_delete(make_ctx, org_user, org_admin):
    stored = await file_service.upload_file(make_ctx(org_user), None, "a.txt", "text/plain", b"a")

    with pytest.raises(Forbidden):
        await file_service.delete_file(make_ctx(org_admin), stored.id)

    await file_service.delete_file(make_ctx(org_user), stored.id)
    assert await make_ctx(org_user).db.get(File, stored.id) is None


@pytest.mark.asyncio
async def test_linked_file_cannot_be_deleted(make_ctx, super_user, org_admin, org_user):
    _, revision = await question_service.create_question(make_ctx(super_user), "environment", {"en": "Q"}, 1.0)
    assessment = await assessment_service.create_assessment(make_ctx(org_admin), None, "en", "A")
    ctx = make_ctx(org_user)
    [response] = await response_service.create_or_replace_many(ctx, assessment.id, [(revision.id, "see file")])
    stored = await file_service.upload_file(ctx, None, "proof.txt", "text/plain", b"proof")
    await response_service.attach_file(ctx, assessment.id, response.id, stored.id)

    with pytest.raises(InvariantViolation) as exc:
        await file_service.delete_file(ctx, stored.id)
    assert exc.value.message == IN_USE_MESSAGE
    assert await file_service.referring_responses(ctx, stored.id) == [response.id]

    await response_service.detach_file(ctx, assessment.id, response.id, stored.id)
    await file_service.delete_file(ctx, stored.id)


def test_detect_mime_type():
    assert detect_mime_type("a.png", "image/png") == "image/png"
    assert detect_mime_type("a.png", "application/octet-stream") == "image/png"
    assert detect_mime_type("noext", None) == "application/octet-stream"
    assert detect_mime_type(None, None) == "application/octet-stream"


@pytest.mark.asyncio
async def test_download_non_ascii_filename(client, acting, make_ctx, org_user):
    stored = await file_service.upload_file(make_ctx(org_user), None, "报告.pdf", "application/pdf", b"%PDF-1.7")
    acting.current = org_user

    r = await client.get(f"/api/v1/files/{stored.id}/content")
    assert r.status_code == 200
    assert r.content == b"%PDF-1.7"
    assert r.headers["content-disposition"] == (
        "attachment; filename=\"download.pdf\"; filename*=UTF-8''%E6%8A%A5%E5%91%8A.pdf"
    )


@pytest.mark.asyncio
async def test_download_strips_header_breaks(client, acting, make_ctx, org_user):
    stored = await file_service.upload_file(
        make_ctx(org_user), None, 'bill"\r\nX-Injected: 1.txt', "text/plain", b"kWh"
    )
    acting.current = org_user

    r = await client.get(f"/api/v1/files/{stored.id}/content")
    assert r.status_code == 200
    assert "x-injected" not in r.headers
    assert r.headers["content-disposition"].startswith('attachment; filename="billX-Injected: 1.txt"; ')

"""Evidence file upload and management endpoints."""
import json
from typing import Optional
from fastapi import APIRouter, UploadFile, File, Form, Depends
from fastapi.responses import Response
from urllib.parse import quote
from uuid import UUID

from app.api.v1.schemas import FileResponse
from app.core.context import RequestContext, get_request_context
from app.core.errors import BadInput
from app.services import file_service

router = APIRouter(prefix="/files", tags=["files"])


def _content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback and the UTF-8 name per RFC 5987."""
    filename = filename.replace("\r", "").replace("\n", "")
    fallback = filename.encode("ascii", "ignore").decode("ascii").replace('"', "").replace("\\", "").strip()
    if not fallback or fallback.startswith("."):
        fallback = "download" + (fallback if fallback.startswith(".") else "")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


@router.post("", response_model=FileResponse, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    org_id: Optional[str] = Form(None),
    metadata: Optional[str] = Form(None, description="Extra metadata as a JSON object"),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Upload an evidence file for an organization.

    Returns the stored metadata; the bytes are fetched from ``/files/{id}/content``.
    """
    extra = None
    if metadata:
        try:
            extra = json.loads(metadata)
        except json.JSONDecodeError:
            raise BadInput("metadata must be valid JSON")

    content = await file.read()
    stored = await file_service.upload_file(ctx, org_id, file.filename, file.content_type, content, extra)
    await ctx.db.commit()
    return stored


@router.get("/{file_id}", response_model=FileResponse)
async def get_file_metadata(
    file_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await file_service.get_file(ctx, file_id)


@router.get("/{file_id}/content")
async def download_file(
    file_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    stored = await file_service.get_file(ctx, file_id)
    metadata = stored.meta_data or {}
    filename = str(metadata.get("filename") or "download")
    return Response(
        content=stored.content,
        media_type=metadata.get("content_type") or file_service.DEFAULT_CONTENT_TYPE,
        headers={"Content-Disposition": _content_disposition(filename)},
    )


@router.delete("/{file_id}", status_code=204)
async def delete_file(
    file_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    """Delete a file you uploaded. Refused while any response links it."""
    await file_service.delete_file(ctx, file_id)
    await ctx.db.commit()

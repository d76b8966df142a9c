"""
Evidence files: uploaded blobs owned by an organization.
"""
import mimetypes
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from app.core.config import settings
from app.core.context import RequestContext
from app.core.errors import BadInput, InvariantViolation, NotFound
from app.core.logging import get_logger
from app.core.permissions import IN_USE_MESSAGE, Operation, Target, authorize
from app.db.models import File, ResponseFile, now

logger = get_logger("sustainability.services.files")

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def detect_mime_type(filename: Optional[str], content_type: Optional[str]) -> str:
    """Use the declared type unless it is generic, then guess from the extension."""
    if content_type and content_type != DEFAULT_CONTENT_TYPE:
        return content_type
    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            return guessed
    return DEFAULT_CONTENT_TYPE


def snapshot_file(file: File) -> dict:
    """Copy of a file's metadata for embedding in a submission document."""
    metadata = file.meta_data if isinstance(file.meta_data, dict) else {}
    created_at = metadata.get("created_at")
    if not isinstance(created_at, str):
        created_at = (file.created_at or now()).isoformat()
    size = metadata.get("size")
    if not isinstance(size, int):
        size = len(file.content or b"")
    return {
        "file_id": str(file.id),
        "filename": metadata.get("filename") or "unknown",
        "size": size,
        "content_type": metadata.get("content_type") or DEFAULT_CONTENT_TYPE,
        "created_at": created_at,
        "metadata": dict(metadata),
    }


async def load_file(ctx: RequestContext, file_id: UUID) -> File:
    file = await ctx.db.get(File, file_id)
    if file is None:
        raise NotFound("File not found")
    return file


async def upload_file(
    ctx: RequestContext,
    org_id: Optional[str],
    filename: Optional[str],
    content_type: Optional[str],
    content: bytes,
    extra_metadata: Optional[dict] = None,
) -> File:
    if not org_id:
        org_ids = ctx.principal.org_ids
        if len(org_ids) != 1:
            raise BadInput("org_id is required")
        org_id = org_ids[0]
    authorize(ctx.principal, Operation.FILE_UPLOAD, Target(org_id=org_id))

    if not content:
        raise BadInput("File is empty")
    if len(content) > settings.MAX_FILE_SIZE:
        raise BadInput(f"File too large. Maximum size is {settings.MAX_FILE_SIZE} bytes")
    if extra_metadata is not None and not isinstance(extra_metadata, dict):
        raise BadInput("File metadata must be a JSON object")

    created_at = now()
    metadata = dict(extra_metadata or {})
    # System keys always win over caller metadata
    metadata.update({
        "filename": filename or "unknown",
        "content_type": detect_mime_type(filename, content_type),
        "size": len(content),
        "created_at": created_at.isoformat(),
        "uploaded_by": ctx.principal.sub,
    })

    file = File(org_id=org_id, content=content, meta_data=metadata, created_at=created_at)
    ctx.db.add(file)
    await ctx.db.flush()
    logger.info("Stored file %s (%s, %d bytes) for organization %s", file.id, metadata["filename"], len(content), org_id)
    return file


async def get_file(ctx: RequestContext, file_id: UUID) -> File:
    file = await load_file(ctx, file_id)
    authorize(ctx.principal, Operation.FILE_DOWNLOAD, Target(org_id=file.org_id))
    return file


async def referring_responses(ctx: RequestContext, file_id: UUID) -> list[UUID]:
    stmt = select(ResponseFile.response_id).where(ResponseFile.file_id == file_id)
    return list((await ctx.db.execute(stmt)).scalars().all())


async def delete_file(ctx: RequestContext, file_id: UUID) -> None:
    """Delete a file the caller uploaded, refused while any response links it."""
    stmt = select(File).where(File.id == file_id).with_for_update()
    file = (await ctx.db.execute(stmt)).scalar_one_or_none()
    if file is None:
        raise NotFound("File not found")

    links = await referring_responses(ctx, file_id)
    metadata = file.meta_data or {}
    authorize(
        ctx.principal,
        Operation.FILE_DELETE,
        Target(org_id=file.org_id, uploaded_by=metadata.get("uploaded_by"), link_count=len(links)),
    )

    try:
        async with ctx.db.begin_nested():
            await ctx.db.execute(delete(File).where(File.id == file_id))
    except IntegrityError:
        raise InvariantViolation(IN_USE_MESSAGE)
    logger.info("Deleted file %s", file_id)

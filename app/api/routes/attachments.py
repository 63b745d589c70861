from __future__ import annotations

import mimetypes

from fastapi import APIRouter, File, Query, Response, UploadFile, status

from app.dependencies.auth import CurrentPrincipal
from app.dependencies.tickets import AttachmentServiceDep, BlobStoreDep
from app.tickets.models import Attachment

from .tickets import AttachmentModel

router = APIRouter(tags=["attachments"])


@router.get("/tickets/{ticket_id}/attachments", response_model=list[AttachmentModel])
async def list_attachments(
    ticket_id: str,
    service: AttachmentServiceDep,
    _: CurrentPrincipal,
) -> list[Attachment]:
    return list(await service.list_attachments(ticket_id))


@router.post(
    "/tickets/{ticket_id}/attachments",
    response_model=AttachmentModel,
    status_code=status.HTTP_201_CREATED,
)
async def upload_attachment(
    ticket_id: str,
    service: AttachmentServiceDep,
    principal: CurrentPrincipal,
    file: UploadFile = File(...),
) -> Attachment:
    file_name = file.filename or "unnamed"
    if file.size is not None:
        service.check_size(file_name, file.size)
    data = await file.read()
    return await service.upload(
        ticket_id,
        file_name=file_name,
        data=data,
        content_type=file.content_type,
        principal=principal,
    )


@router.get("/attachments/{attachment_id}/url", summary="Time-limited download link")
async def get_attachment_url(
    attachment_id: str,
    service: AttachmentServiceDep,
    _: CurrentPrincipal,
    ttl_seconds: int | None = Query(default=None, gt=0, le=7 * 24 * 3600),
) -> dict[str, str]:
    return {"url": await service.signed_url(attachment_id, ttl_seconds)}


@router.delete("/attachments/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_attachment(
    attachment_id: str,
    service: AttachmentServiceDep,
    principal: CurrentPrincipal,
) -> None:
    await service.delete(attachment_id, principal)


@router.get("/blobs/{path:path}", include_in_schema=False)
async def download_blob(path: str, blobs: BlobStoreDep, token: str = Query(...)) -> Response:
    blobs.verify_signature(path, token)
    data = await blobs.read(path)
    media_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)

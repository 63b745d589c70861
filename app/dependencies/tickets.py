from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from app.tickets.attachments import AttachmentService
from app.tickets.blobs import FilesystemBlobStore
from app.tickets.service import TicketService
from app.users.service import UserDirectory


def _from_state(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{label} is not configured")
    return service


async def get_ticket_service(request: Request) -> TicketService:
    return _from_state(request, "ticket_service", "Ticket service")


async def get_attachment_service(request: Request) -> AttachmentService:
    return _from_state(request, "attachment_service", "Attachment service")


async def get_user_directory(request: Request) -> UserDirectory:
    return _from_state(request, "user_directory", "User directory")


async def get_blob_store(request: Request) -> FilesystemBlobStore:
    return _from_state(request, "blob_store", "Blob store")


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
AttachmentServiceDep = Annotated[AttachmentService, Depends(get_attachment_service)]
UserDirectoryDep = Annotated[UserDirectory, Depends(get_user_directory)]
BlobStoreDep = Annotated[FilesystemBlobStore, Depends(get_blob_store)]

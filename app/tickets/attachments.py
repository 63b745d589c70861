from __future__ import annotations

import logging
import secrets
import time
import uuid
from datetime import datetime, timezone
from pathlib import PurePath
from typing import TYPE_CHECKING, Sequence

from .blobs import BlobStore
from .errors import AttachmentNotFoundError, InvalidInputError, StoreFailure, TicketNotFoundError
from .models import ATTACHMENT_MAX_BYTES, Attachment
from .repository import TicketStore

if TYPE_CHECKING:
    from app.security.identity import Principal

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
MAX_EXTENSION_LENGTH = 16


def build_storage_path(ticket_id: str, file_name: str) -> str:
    """Blob key of the form ``<ticket_id>/<epoch-millis>-<random>.<ext>``."""

    suffix = PurePath(file_name).suffix.lstrip(".")
    if len(suffix) > MAX_EXTENSION_LENGTH or not suffix.isalnum():
        suffix = ""
    stem = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"
    return f"{ticket_id}/{stem}.{suffix}" if suffix else f"{ticket_id}/{stem}"


class AttachmentService:
    """Upload, list, link and delete ticket attachments.

    Attachments are open to every authenticated principal; no role or
    authorship check applies. Blob and metadata writes are separate calls and
    are not rolled back against each other.
    """

    def __init__(
        self,
        store: TicketStore,
        blobs: BlobStore,
        *,
        max_bytes: int = ATTACHMENT_MAX_BYTES,
        signed_url_ttl_seconds: int = 3600,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._max_bytes = max_bytes
        self._signed_url_ttl_seconds = signed_url_ttl_seconds

    def check_size(self, file_name: str, size: int) -> None:
        if size > self._max_bytes:
            limit_mb = self._max_bytes // (1024 * 1024)
            raise InvalidInputError(f"{file_name} exceeds {limit_mb}MB limit")

    async def upload(
        self,
        ticket_id: str,
        *,
        file_name: str,
        data: bytes,
        principal: Principal,
        content_type: str | None = None,
    ) -> Attachment:
        file_name = (file_name or "").strip()
        if not file_name:
            raise InvalidInputError("File name must not be empty")
        # Size is enforced before any store call.
        self.check_size(file_name, len(data))

        if await self._store.get_ticket(ticket_id) is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")

        path = build_storage_path(ticket_id, file_name)
        await self._blobs.upload(path, data, content_type=content_type)

        attachment = Attachment(
            id=str(uuid.uuid4()),
            ticket_id=ticket_id,
            file_name=file_name,
            file_type=content_type or DEFAULT_CONTENT_TYPE,
            file_size=len(data),
            file_path=path,
            uploaded_by=principal.display_name or principal.email,
            created_at=datetime.now(timezone.utc),
        )
        try:
            stored = await self._store.insert_attachment(attachment)
        except StoreFailure:
            logger.warning("Blob %s uploaded but its metadata could not be stored", path)
            raise
        logger.info("Attached %s (%d bytes) to ticket %s", file_name, len(data), ticket_id)
        return stored

    async def list_attachments(self, ticket_id: str) -> Sequence[Attachment]:
        return await self._store.list_attachments(ticket_id)

    async def get_attachment(self, attachment_id: str) -> Attachment:
        attachment = await self._store.get_attachment(attachment_id)
        if attachment is None:
            raise AttachmentNotFoundError(f"Attachment {attachment_id} not found")
        return attachment

    async def signed_url(self, attachment_id: str, ttl_seconds: int | None = None) -> str:
        attachment = await self.get_attachment(attachment_id)
        return await self._blobs.create_signed_url(attachment.file_path, ttl_seconds or self._signed_url_ttl_seconds)

    async def delete(self, attachment_id: str, principal: Principal) -> None:
        """Remove the blob, then its metadata record.

        The blob removal is attempted exactly once. If it fails the metadata is
        kept; if the metadata delete fails afterwards the blob stays removed.
        """

        attachment = await self.get_attachment(attachment_id)
        await self._blobs.remove(attachment.file_path)
        try:
            deleted = await self._store.delete_attachment(attachment_id)
        except StoreFailure:
            logger.warning("Blob %s removed but attachment %s metadata remains", attachment.file_path, attachment_id)
            raise
        if not deleted:
            raise AttachmentNotFoundError(f"Attachment {attachment_id} not found")
        logger.info("Attachment %s deleted by %s", attachment_id, principal.user_id)

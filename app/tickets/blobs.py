from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

from app.security.tokens import create_blob_token, verify_blob_token

from .errors import AuthenticationError, BlobStoreError, InvalidInputError

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    """Object storage for attachment bytes."""

    async def upload(self, path: str, data: bytes, *, content_type: str | None = None) -> None:
        ...

    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        ...

    async def remove(self, path: str) -> None:
        ...


class FilesystemBlobStore:
    """Blob store keeping objects below a local directory.

    Signed URLs point at the API's ``/blobs`` route and carry a short-lived
    JWT bound to the object path.
    """

    def __init__(self, root: str | Path, *, base_url: str, secret: str, algorithm: str = "HS256") -> None:
        self._root = Path(root).resolve()
        self._base_url = base_url.rstrip("/")
        self._secret = secret
        self._algorithm = algorithm

    def _resolve(self, path: str) -> Path:
        candidate = (self._root / path).resolve()
        if candidate == self._root or self._root not in candidate.parents:
            raise InvalidInputError(f"Invalid blob path: {path!r}")
        return candidate

    async def upload(self, path: str, data: bytes, *, content_type: str | None = None) -> None:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            logger.error("Blob upload failed for %s: %s", path, exc)
            raise BlobStoreError(f"Failed to upload {path}") from exc

    async def read(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as exc:
            raise BlobStoreError(f"Blob {path} does not exist") from exc
        except OSError as exc:
            raise BlobStoreError(f"Failed to read {path}") from exc

    async def remove(self, path: str) -> None:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(target.unlink, True)
        except OSError as exc:
            logger.error("Blob removal failed for %s: %s", path, exc)
            raise BlobStoreError(f"Failed to remove {path}") from exc

    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        self._resolve(path)
        token = create_blob_token(path=path, secret=self._secret, algorithm=self._algorithm, ttl_seconds=ttl_seconds)
        return f"{self._base_url}/blobs/{quote(path)}?token={token}"

    def verify_signature(self, path: str, token: str) -> None:
        try:
            verify_blob_token(token, path=path, secret=self._secret, algorithm=self._algorithm)
        except ValueError as exc:
            raise AuthenticationError("Invalid or expired download link") from exc

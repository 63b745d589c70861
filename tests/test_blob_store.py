from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest

from app.tickets.blobs import FilesystemBlobStore
from app.tickets.errors import AuthenticationError, BlobStoreError, InvalidInputError


@pytest.fixture
def blob_store(tmp_path):
    return FilesystemBlobStore(tmp_path, base_url="http://testserver/", secret="blob-secret")


def _token(url: str) -> str:
    return parse_qs(urlsplit(url).query)["token"][0]


@pytest.mark.asyncio
async def test_upload_read_remove(blob_store, tmp_path):
    await blob_store.upload("t-1/a.txt", b"hello", content_type="text/plain")

    assert (tmp_path / "t-1" / "a.txt").read_bytes() == b"hello"
    assert await blob_store.read("t-1/a.txt") == b"hello"

    await blob_store.remove("t-1/a.txt")
    await blob_store.remove("t-1/a.txt")
    with pytest.raises(BlobStoreError):
        await blob_store.read("t-1/a.txt")


@pytest.mark.asyncio
async def test_paths_outside_root_are_rejected(blob_store):
    with pytest.raises(InvalidInputError):
        await blob_store.upload("../escape.txt", b"x")


@pytest.mark.asyncio
async def test_signed_url_is_bound_to_its_path(blob_store):
    url = await blob_store.create_signed_url("t-1/a.txt", 60)

    assert url.startswith("http://testserver/blobs/t-1/a.txt?token=")
    token = _token(url)
    blob_store.verify_signature("t-1/a.txt", token)
    with pytest.raises(AuthenticationError):
        blob_store.verify_signature("t-1/b.txt", token)


@pytest.mark.asyncio
async def test_signed_url_expires(blob_store):
    url = await blob_store.create_signed_url("t-1/a.txt", -1)

    with pytest.raises(AuthenticationError):
        blob_store.verify_signature("t-1/a.txt", _token(url))

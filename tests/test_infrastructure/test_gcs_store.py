"""
Tests for ospolicy.infrastructure.gcs_store
=============================================

GCSObjectStore is exercised against a stub of the google-cloud-storage
client surface it uses (bucket(), get_blob(), blob(), Blob.open(),
Blob.delete(), upload_from_string()). The stub raises the real
google.api_core exceptions so the error mapping is tested as shipped.
"""

from typing import Optional

import pytest
from google.api_core import exceptions as gcp_exceptions

from ospolicy.core.exceptions import ObjectNotFoundError, StorageError
from ospolicy.infrastructure.gcs_store import GCSObjectStore


class _StubBlobWriter:
    def __init__(self, blob: "_StubBlob") -> None:
        self._blob = blob
        self._buffer = bytearray()

    def write(self, data: bytes) -> int:
        self._buffer.extend(data)
        return len(data)

    def close(self) -> None:
        if self._blob.fail_on_close is not None:
            raise self._blob.fail_on_close
        self._blob.bucket.commit(self._blob.name, bytes(self._buffer))


class _StubBlob:
    def __init__(self, bucket: "_StubBucket", name: str) -> None:
        self.bucket = bucket
        self.name = name
        self.size: Optional[int] = None
        self.generation: Optional[int] = None
        self.fail_on_close: Optional[Exception] = bucket.fail_on_close
        self.open_calls: list[tuple] = []

    def open(self, mode: str, chunk_size=None) -> _StubBlobWriter:
        self.open_calls.append((mode, chunk_size))
        return _StubBlobWriter(self)

    def upload_from_string(self, data: bytes) -> None:
        self.bucket.commit(self.name, data)

    def delete(self) -> None:
        if self.name not in self.bucket.objects:
            raise gcp_exceptions.NotFound(f"No such object: {self.name}")
        del self.bucket.objects[self.name]


class _StubBucket:
    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, int]] = {}
        self.generation = 1000
        self.fail_on_close: Optional[Exception] = None
        self.get_blob_error: Optional[Exception] = None
        self.blobs: list[_StubBlob] = []

    def commit(self, name: str, data: bytes) -> None:
        self.generation += 1
        self.objects[name] = (data, self.generation)

    def blob(self, name: str) -> _StubBlob:
        blob = _StubBlob(self, name)
        self.blobs.append(blob)
        return blob

    def get_blob(self, name: str) -> Optional[_StubBlob]:
        if self.get_blob_error is not None:
            raise self.get_blob_error
        if name not in self.objects:
            return None
        data, generation = self.objects[name]
        blob = _StubBlob(self, name)
        blob.size = len(data)
        blob.generation = generation
        return blob


class _StubClient:
    def __init__(self) -> None:
        self.buckets: dict[str, _StubBucket] = {}
        self.closed = False

    def bucket(self, name: str) -> _StubBucket:
        return self.buckets.setdefault(name, _StubBucket())

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def client():
    return _StubClient()


@pytest.fixture
def store(client):
    return GCSObjectStore(client, chunk_size=256 * 1024)


class TestGCSObjectStore:
    """Tests for GCSObjectStore against the stub client."""

    async def test_get_attrs(self, client, store) -> None:
        """Existing blobs report size and generation."""
        client.bucket("sensors").commit("a/b.rpm", b"12345")

        attrs = await store.get_attrs("sensors", "a/b.rpm")
        assert (attrs.size, attrs.generation) == (5, 1001)

    async def test_missing_blob_is_not_found(self, store) -> None:
        """get_blob() returning None maps to ObjectNotFoundError."""
        with pytest.raises(ObjectNotFoundError):
            await store.get_attrs("sensors", "missing")

    async def test_missing_bucket_is_not_found(self, client, store) -> None:
        """A NotFound from the API maps to ObjectNotFoundError."""
        client.bucket("gone").get_blob_error = gcp_exceptions.NotFound("bucket gone")
        with pytest.raises(ObjectNotFoundError):
            await store.get_attrs("gone", "k")

    async def test_other_api_errors_are_storage_errors(self, client, store) -> None:
        """Other API failures are StorageError, not the sentinel."""
        client.bucket("sensors").get_blob_error = gcp_exceptions.ServiceUnavailable("try later")
        with pytest.raises(StorageError) as exc_info:
            await store.get_attrs("sensors", "k")
        assert not isinstance(exc_info.value, ObjectNotFoundError)

    async def test_streaming_upload(self, client, store) -> None:
        """Chunks go through Blob.open('wb') and commit on close."""
        writer = await store.open_writer("sensors", "k")
        await writer.write(b"ab")
        await writer.write(b"cd")
        await writer.close()

        bucket = client.bucket("sensors")
        assert bucket.objects["k"][0] == b"abcd"
        assert bucket.blobs[0].open_calls == [("wb", 256 * 1024)]

    async def test_zero_byte_upload(self, client, store) -> None:
        """Closing without writes uploads an empty object."""
        writer = await store.open_writer("sensors", "empty")
        await writer.close()
        assert client.bucket("sensors").objects["empty"][0] == b""

    async def test_abort_commits_nothing(self, client, store) -> None:
        """An aborted upload never creates the object."""
        writer = await store.open_writer("sensors", "k")
        await writer.write(b"partial")
        await writer.abort()
        assert client.bucket("sensors").objects == {}

    async def test_failed_finalize(self, client, store) -> None:
        """API errors while finalizing become StorageError."""
        client.bucket("sensors").fail_on_close = gcp_exceptions.InternalServerError("boom")
        writer = await store.open_writer("sensors", "k")
        await writer.write(b"x")

        with pytest.raises(StorageError):
            await writer.close()

    async def test_delete(self, client, store) -> None:
        """Deleting an existing object removes it; a missing one is not-found."""
        client.bucket("sensors").commit("k", b"x")
        await store.delete("sensors", "k")
        assert client.bucket("sensors").objects == {}

        with pytest.raises(ObjectNotFoundError):
            await store.delete("sensors", "k")

    async def test_close_closes_client(self, client, store) -> None:
        """close() releases the client."""
        await store.close()
        assert client.closed is True

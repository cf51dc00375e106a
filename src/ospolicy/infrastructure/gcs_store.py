"""
ospolicy.infrastructure.gcs_store - Google Cloud Storage Backend
==================================================================

ObjectStore implementation on top of the google-cloud-storage client.

The client library is synchronous. Every call that can touch the network is
pushed onto a worker thread with ``asyncio.to_thread`` so concurrent
transfers keep sharing one event loop.

Error Mapping:
    google.api_core.exceptions.NotFound  → ObjectNotFoundError
    missing blob (get_blob() is None)    → ObjectNotFoundError
    any other GoogleAPICallError         → StorageError

Uploads go through ``Blob.open("wb")``, a resumable upload that keeps at
most one upload chunk in memory. Aborting simply drops the writer: the
upload session is never finalized, so no object is created.

Usage:
    >>> from google.cloud import storage
    >>> store = GCSObjectStore(storage.Client())
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import structlog
from google.api_core import exceptions as gcp_exceptions
from google.cloud import storage

from ospolicy.core.exceptions import ObjectNotFoundError, StorageError
from ospolicy.core.models import ObjectAttrs
from ospolicy.infrastructure.object_store import ObjectStore, ObjectWriter


logger = structlog.get_logger()


def _storage_error(action: str, bucket: str, key: str, error: Exception) -> StorageError:
    return StorageError(
        message=f"{action} gs://{bucket}/{key} failed: {error}",
        details={"bucket": bucket, "key": key, "error_type": type(error).__name__},
    )


class _GCSWriter(ObjectWriter):
    def __init__(self, blob: Any, bucket: str, key: str, chunk_size: Optional[int]) -> None:
        self._blob = blob
        self._bucket = bucket
        self._key = key
        self._chunk_size = chunk_size
        self._stream: Any = None
        self._finished = False

    async def write(self, data: bytes) -> None:
        try:
            if self._stream is None:
                self._stream = await asyncio.to_thread(
                    self._blob.open, "wb", chunk_size=self._chunk_size
                )
            await asyncio.to_thread(self._stream.write, data)
        except gcp_exceptions.GoogleAPICallError as e:
            raise _storage_error("upload to", self._bucket, self._key, e) from e

    async def close(self) -> None:
        if self._finished:
            return
        try:
            if self._stream is None:
                # zero-byte object
                await asyncio.to_thread(self._blob.upload_from_string, b"")
            else:
                await asyncio.to_thread(self._stream.close)
        except gcp_exceptions.GoogleAPICallError as e:
            raise _storage_error("finalize", self._bucket, self._key, e) from e
        self._finished = True

    async def abort(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._stream = None
        logger.debug("gcs_upload_abandoned", bucket=self._bucket, key=self._key)


class GCSObjectStore(ObjectStore):
    """Google Cloud Storage implementation of ObjectStore.

    Args:
        client: A ``google.cloud.storage.Client``. Created with application
            default credentials when omitted.
        chunk_size: Resumable upload chunk size in bytes (a multiple of
            256 KiB). None uses the library default.
    """

    def __init__(self, client: Optional[Any] = None, chunk_size: Optional[int] = None) -> None:
        self._client = client if client is not None else storage.Client()
        self._chunk_size = chunk_size
        self._logger = logger.bind(component="gcs_object_store")

    def _blob(self, bucket: str, key: str) -> Any:
        return self._client.bucket(bucket).blob(key)

    async def get_attrs(self, bucket: str, key: str) -> ObjectAttrs:
        try:
            blob = await asyncio.to_thread(self._client.bucket(bucket).get_blob, key)
        except gcp_exceptions.NotFound as e:
            raise ObjectNotFoundError(bucket=bucket, key=key) from e
        except gcp_exceptions.GoogleAPICallError as e:
            raise _storage_error("stat", bucket, key, e) from e

        if blob is None:
            raise ObjectNotFoundError(bucket=bucket, key=key)

        return ObjectAttrs(
            bucket=bucket,
            name=key,
            size=blob.size or 0,
            generation=blob.generation or 0,
        )

    async def open_writer(self, bucket: str, key: str) -> ObjectWriter:
        self._logger.debug("gcs_upload_opened", bucket=bucket, key=key)
        return _GCSWriter(self._blob(bucket, key), bucket, key, self._chunk_size)

    async def delete(self, bucket: str, key: str) -> None:
        try:
            await asyncio.to_thread(self._blob(bucket, key).delete)
        except gcp_exceptions.NotFound as e:
            raise ObjectNotFoundError(bucket=bucket, key=key) from e
        except gcp_exceptions.GoogleAPICallError as e:
            raise _storage_error("delete", bucket, key, e) from e
        self._logger.info("gcs_object_deleted", bucket=bucket, key=key)

    async def close(self) -> None:
        await asyncio.to_thread(self._client.close)

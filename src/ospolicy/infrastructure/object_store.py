"""
ospolicy.infrastructure.object_store - Object Storage Abstraction
===================================================================

This module provides the object storage abstraction the staging pipeline
writes installers into. The pipeline only needs three capabilities: read an
object's attributes, stream a new object in, and delete a partial one.

Architecture Context:

    ┌────────────────┐  get_attrs / delete   ┌──────────────────────┐
    │ TransferWorker │ ────────────────────→ │     ObjectStore      │
    │                │  open_writer ──┐      │  ┌────────────────┐  │
    │  chunk loop ───┼── write() ─────┼────→ │  │ ObjectWriter   │  │
    │                │  close()/abort()      │  └────────────────┘  │
    └────────────────┘                       └──────────────────────┘

Writer Contract:
    - ``write(data)`` may be called any number of times.
    - ``close()`` is the durability point: the object becomes visible with
      a fresh generation number only when it returns.
    - ``abort()`` discards everything written so far. Calling it after a
      failed ``close()`` is allowed and harmless.

Missing objects are reported with the ObjectNotFoundError sentinel, never
with a generic StorageError, so callers can tell "absent" from "broken".

Storage Implementations:
    - InMemoryObjectStore: dict-backed, for development and testing
    - GCSObjectStore: Google Cloud Storage (see gcs_store.py)

Usage:
    >>> store = InMemoryObjectStore()
    >>> writer = await store.open_writer("sensors", "linux/7.30.0/falcon.rpm")
    >>> await writer.write(b"...")
    >>> await writer.close()
    >>> attrs = await store.get_attrs("sensors", "linux/7.30.0/falcon.rpm")
"""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from collections import Counter
from typing import Optional

import structlog

from ospolicy.core.exceptions import ObjectNotFoundError, StorageError
from ospolicy.core.models import ObjectAttrs


# =============================================================================
# Logger
# =============================================================================
logger = structlog.get_logger()


# =============================================================================
# Abstract Base Classes
# =============================================================================
class ObjectWriter(ABC):
    """A single in-progress object upload."""

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Append ``data`` to the object being written."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Finalize the upload. The object exists once this returns.

        Raises:
            StorageError: If the upload could not be finalized.
        """
        ...

    @abstractmethod
    async def abort(self) -> None:
        """Discard the upload. Never raises for an already-finished writer."""
        ...


class ObjectStore(ABC):
    """Abstract interface for the installer destination store.

    Methods:
        get_attrs(bucket, key): Attributes of an existing object.
        open_writer(bucket, key): Start streaming a new object.
        delete(bucket, key): Remove an object.
        close(): Release client resources.
    """

    @abstractmethod
    async def get_attrs(self, bucket: str, key: str) -> ObjectAttrs:
        """Read the attributes of ``bucket/key``.

        Raises:
            ObjectNotFoundError: If the bucket or key does not exist.
            StorageError: For any other failure.
        """
        ...

    @abstractmethod
    async def open_writer(self, bucket: str, key: str) -> ObjectWriter:
        """Open a writer that replaces ``bucket/key`` when closed."""
        ...

    @abstractmethod
    async def delete(self, bucket: str, key: str) -> None:
        """Delete ``bucket/key``.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageError: For any other failure.
        """
        ...

    async def close(self) -> None:
        """Release client resources. No-op unless overridden."""
        return None


# =============================================================================
# In-Memory Implementation
# =============================================================================
class _InMemoryWriter(ObjectWriter):
    def __init__(self, store: "InMemoryObjectStore", bucket: str, key: str) -> None:
        self._store = store
        self._bucket = bucket
        self._key = key
        self._buffer = bytearray()
        self._finished = False

    async def write(self, data: bytes) -> None:
        if self._finished:
            raise StorageError(
                message=f"writer for {self._bucket}/{self._key} is already closed",
                details={"bucket": self._bucket, "key": self._key},
            )
        self._store.calls["write"] += 1
        self._buffer.extend(data)

    async def close(self) -> None:
        if self._finished:
            return
        self._store.calls["close"] += 1
        failure = self._store.close_failures.pop((self._bucket, self._key), None)
        if failure is not None:
            raise failure
        self._finished = True
        self._store._commit(self._bucket, self._key, bytes(self._buffer))

    async def abort(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._store.calls["abort"] += 1
        self._buffer.clear()


class InMemoryObjectStore(ObjectStore):
    """Dict-backed object store for development and testing.

    Objects only become visible when a writer is closed, mirroring a real
    resumable upload. Every committed write gets a new, strictly increasing
    generation number.

    Attributes:
        objects: ``(bucket, key) -> bytes`` of committed objects.
        calls: Per-operation call counters ("get_attrs", "open_writer",
            "write", "close", "abort", "delete").
        close_failures: ``(bucket, key) -> exception`` raised once by the
            next ``close()`` of a writer for that key.

    Example:
        >>> store = InMemoryObjectStore()
        >>> store.put("sensors", "a/b.rpm", b"data")
        1
        >>> store.calls["open_writer"]
        0
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}
        self.calls: Counter[str] = Counter()
        self.close_failures: dict[tuple[str, str], Exception] = {}
        self._generations: dict[tuple[str, str], int] = {}
        self._next_generation = itertools.count(1)
        self._logger = logger.bind(component="in_memory_object_store")

    def put(self, bucket: str, key: str, data: bytes) -> int:
        """Seed an object directly and return its generation."""
        return self._commit(bucket, key, data)

    def generation_of(self, bucket: str, key: str) -> Optional[int]:
        return self._generations.get((bucket, key))

    def _commit(self, bucket: str, key: str, data: bytes) -> int:
        generation = next(self._next_generation)
        self.objects[(bucket, key)] = data
        self._generations[(bucket, key)] = generation
        self._logger.debug(
            "object_committed",
            bucket=bucket,
            key=key,
            size=len(data),
            generation=generation,
        )
        return generation

    async def get_attrs(self, bucket: str, key: str) -> ObjectAttrs:
        self.calls["get_attrs"] += 1
        data = self.objects.get((bucket, key))
        if data is None:
            raise ObjectNotFoundError(bucket=bucket, key=key)
        return ObjectAttrs(
            bucket=bucket,
            name=key,
            size=len(data),
            generation=self._generations[(bucket, key)],
        )

    async def open_writer(self, bucket: str, key: str) -> ObjectWriter:
        self.calls["open_writer"] += 1
        return _InMemoryWriter(self, bucket, key)

    async def delete(self, bucket: str, key: str) -> None:
        self.calls["delete"] += 1
        if (bucket, key) not in self.objects:
            raise ObjectNotFoundError(bucket=bucket, key=key)
        del self.objects[(bucket, key)]
        del self._generations[(bucket, key)]
        self._logger.debug("object_deleted", bucket=bucket, key=key)

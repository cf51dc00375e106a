"""
ospolicy.staging.transfer - Per-Artifact Staging Worker
=========================================================

A TransferWorker moves one installer from the distribution catalog into
the object store, streaming: bytes are uploaded as they are downloaded and
never held in memory beyond the current chunk.

State Machine:

    PENDING → QUERYING_CATALOG → CHECKING_EXISTENCE ─┬→ ALREADY_EXISTS ──→ DONE
                  ↑                 (once per key)   └→ TRANSFERRING → VERIFYING → DONE
                  │
               RETRYING ←── any failure while the retry budget lasts
                  │
                  └──→ FAILED (budget spent, non-retryable error, cancelled)

One Attempt (the retried unit):
    1. Query the catalog for the second newest installer matching the
       spec's filter (limit=1, offset=1, sort=version). No result raises
       ArtifactNotFoundError, which is retried like any transient error.
    2. Resolve the destination key from the returned version:
       ``<resolved prefix>/<version>/<file name>``.
    3. If a previous attempt opened a writer, delete what it left behind.
    4. Until the existence check for the key has completed (the object
       was found, or the store answered not-found): if the object already
       exists, record its generation, mark progress complete and stop.
       Nothing is downloaded. An attempt that fails before this step
       leaves the check to the next attempt.
    5. ``progress.set_total(file_size)``, open a writer and stream the
       download into both the writer and the progress sink.
    6. ``close()`` the writer (durability point), then re-read the object's
       attributes to learn its generation.

    A failed attempt aborts its writer before the error leaves the attempt.
    Cancellation aborts the writer too and is never retried.

Usage:
    >>> worker = TransferWorker(spec, "my-bucket", catalog, store)
    >>> resolved = await worker.run()
    >>> resolved.generation
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Awaitable, Callable, Optional

import structlog

from ospolicy.core.enums import TransferState
from ospolicy.core.exceptions import (
    ArtifactNotFoundError,
    ObjectNotFoundError,
    OSPolicyError,
    TransferError,
)
from ospolicy.core.models import ArtifactSpec, ResolvedArtifact, TransferSnapshot
from ospolicy.infrastructure.object_store import ObjectStore, ObjectWriter
from ospolicy.integrations.catalog.base import CatalogClient
from ospolicy.orchestration.retry import RetryPolicy, retry_async
from ospolicy.staging.paths import object_key, resolve_bucket_path
from ospolicy.staging.progress import ProgressSink


logger = structlog.get_logger()


# "Latest minus one": the catalog sorts newest first, offset 1 skips it.
QUERY_LIMIT = 1
QUERY_OFFSET = 1
QUERY_SORT = "version"


class TransferWorker:
    """Stages one ArtifactSpec into ``bucket``.

    Attributes:
        spec: What to stage.
        bucket: Destination bucket.
        progress: Byte counter shared with the monitor loop.
        resolved: The staged artifact once ``run()`` succeeded, else None.

    Example:
        >>> worker = TransferWorker(spec, "sensors", catalog, store)
        >>> await worker.run()
        >>> worker.snapshot().state
        <TransferState.DONE: 'done'>
    """

    def __init__(
        self,
        spec: ArtifactSpec,
        bucket: str,
        catalog: CatalogClient,
        store: ObjectStore,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.spec = spec
        self.bucket = bucket
        self.progress = ProgressSink(spec.name)
        self.resolved: Optional[ResolvedArtifact] = None

        self._catalog = catalog
        self._store = store
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

        self._lock = threading.Lock()
        self._state = TransferState.PENDING
        self._attempt = 0
        self._checked_keys: set[str] = set()
        self._partial_key: Optional[str] = None

        self._logger = logger.bind(component="transfer_worker", artifact=spec.name)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def state(self) -> TransferState:
        with self._lock:
            return self._state

    def _set_state(self, state: TransferState) -> None:
        with self._lock:
            self._state = state
        self._logger.debug("transfer_state_changed", state=state.value)

    def snapshot(self) -> TransferSnapshot:
        """Consistent view of state and progress for the monitor loop."""
        written, total = self.progress.snapshot()
        with self._lock:
            state, attempt = self._state, self._attempt
        return TransferSnapshot(
            name=self.spec.name,
            state=state,
            written=written,
            total=total,
            done=self.progress.done,
            attempt=attempt,
        )

    # =========================================================================
    # Run
    # =========================================================================

    async def run(self) -> ResolvedArtifact:
        """Stage the artifact, retrying per the retry policy.

        Returns:
            The ResolvedArtifact with a confirmed generation.

        Raises:
            OSPolicyError: The last attempt's error once the budget is spent.
            asyncio.CancelledError: If the surrounding group was cancelled.
        """
        self._logger.info("transfer_started", filter=self.spec.filter)
        try:
            resolved = await retry_async(
                self._run_attempt,
                self._retry_policy,
                on_retry=self._on_retry,
                sleep=self._sleep,
                log_context={"artifact": self.spec.name},
            )
        except asyncio.CancelledError:
            self._set_state(TransferState.FAILED)
            self._logger.warning("transfer_cancelled")
            raise
        except Exception as e:
            self._set_state(TransferState.FAILED)
            self._logger.error(
                "transfer_failed",
                error=str(e),
                error_code=getattr(e, "error_code", None),
            )
            raise

        self.resolved = resolved
        self._set_state(TransferState.DONE)
        self._logger.info(
            "transfer_completed",
            object=resolved.full_path,
            generation=resolved.generation,
            already_existed=resolved.already_existed,
        )
        return resolved

    def _on_retry(self, next_attempt: int, error: BaseException, delay: float) -> None:
        with self._lock:
            self._attempt = next_attempt
            self._state = TransferState.RETRYING

    async def _run_attempt(self, attempt: int) -> ResolvedArtifact:
        # Step 1: catalog lookup
        self._set_state(TransferState.QUERYING_CATALOG)
        records = await self._catalog.query_installers(
            self.spec.filter,
            limit=QUERY_LIMIT,
            offset=QUERY_OFFSET,
            sort=QUERY_SORT,
        )
        if not records:
            raise ArtifactNotFoundError(filter=self.spec.filter)
        metadata = records[0]

        # Step 2: destination
        bucket_path = resolve_bucket_path(
            self.spec.bucket_prefix,
            metadata.version,
            self.spec.platform,
            self.spec.cloud_region,
        )
        key = object_key(bucket_path, metadata.version, metadata.name)
        resolved = ResolvedArtifact(
            spec=self.spec,
            metadata=metadata,
            bucket=self.bucket,
            object_name=key,
        )

        # Step 3: remove what a failed upload left behind
        if self._partial_key is not None:
            await self._cleanup_partial_upload(self._partial_key)

        # Step 4: idempotence, until the store has answered for this key
        if key not in self._checked_keys:
            self._set_state(TransferState.CHECKING_EXISTENCE)
            try:
                attrs = await self._store.get_attrs(self.bucket, key)
            except ObjectNotFoundError:
                self._checked_keys.add(key)
            else:
                self._checked_keys.add(key)
                self.progress.complete(attrs.size)
                self._set_state(TransferState.ALREADY_EXISTS)
                self._logger.info("artifact_already_staged", object=key, generation=attrs.generation)
                return resolved.model_copy(
                    update={
                        "generation": attrs.generation,
                        "size": attrs.size,
                        "already_existed": True,
                    }
                )

        # Step 5: stream
        self._set_state(TransferState.TRANSFERRING)
        self.progress.set_total(metadata.file_size)
        self._partial_key = key
        writer = await self._store.open_writer(self.bucket, key)
        try:
            await self._stream(metadata.sha256, metadata.file_size, writer)
            try:
                await writer.close()
            except OSPolicyError as e:
                raise TransferError(
                    message=f"failed to complete upload of {self.spec.name} to {self.bucket}: {e}",
                    artifact=self.spec.name,
                    error_code="UPLOAD_FAILED",
                    details={"bucket": self.bucket, "key": key},
                ) from e
        except BaseException:
            await self._abort(writer, key)
            raise

        # Step 6: verify
        self._set_state(TransferState.VERIFYING)
        try:
            attrs = await self._store.get_attrs(self.bucket, key)
        except OSPolicyError as e:
            raise TransferError(
                message=f"failed to verify upload of {self.spec.name} to {self.bucket}: {e}",
                artifact=self.spec.name,
                error_code="VERIFY_FAILED",
                details={"bucket": self.bucket, "key": key},
            ) from e

        return resolved.model_copy(update={"generation": attrs.generation, "size": attrs.size})

    async def _stream(self, sha256: str, expected: int, writer: ObjectWriter) -> None:
        try:
            async for chunk in self._catalog.download(sha256):
                self.progress.write(chunk)
                await writer.write(chunk)
        except OSPolicyError:
            raise
        except Exception as e:
            raise TransferError(
                message=f"failed to download {self.spec.name} (size: {expected} bytes): {e}",
                artifact=self.spec.name,
                details={"sha256": sha256},
            ) from e

        received = self.progress.written
        if received != expected:
            raise TransferError(
                message=f"download of {self.spec.name} ended after {received} of {expected} bytes",
                artifact=self.spec.name,
                error_code="SIZE_MISMATCH",
                details={"received": received, "expected": expected},
            )

    async def _abort(self, writer: ObjectWriter, key: str) -> None:
        try:
            await writer.abort()
        except Exception as e:
            # the attempt's error takes precedence
            self._logger.warning("upload_abort_failed", object=key, error=str(e))

    async def _cleanup_partial_upload(self, key: str) -> None:
        try:
            await self._store.delete(self.bucket, key)
        except ObjectNotFoundError:
            self._partial_key = None
            return
        self._partial_key = None
        self._logger.info("partial_upload_removed", object=key)

    def __repr__(self) -> str:
        return f"TransferWorker(name={self.spec.name!r}, state={self.state.value!r})"

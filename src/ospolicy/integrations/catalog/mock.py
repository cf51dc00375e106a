"""
ospolicy.integrations.catalog.mock - In-Process Catalog for Testing
=====================================================================

A CatalogClient that serves installers from memory. It is the provider
used by tests and by dry runs (``falcon.provider: mock``).

How It Works:
    Installers are registered per filter with ``add_installer()``. A query
    sorts the registered records newest first by version and applies
    offset/limit, so the "latest minus one" query behaves like the real
    catalog.

    Failures are scripted per filter (query) or per digest (download) and
    consumed one at a time, which lets a test fail the first N attempts of
    a retried operation and succeed afterwards.

Usage:
    >>> catalog = MockCatalogClient()
    >>> catalog.add_installer("os:'*RHEL*'", name="falcon.rpm",
    ...                       version="7.30.0", content=b"...")
    >>> records = await catalog.query_installers("os:'*RHEL*'", offset=0)
"""

from __future__ import annotations

import hashlib
from collections import defaultdict, deque
from typing import Any, AsyncIterator, Optional

import structlog

from ospolicy.core.enums import CloudRegion
from ospolicy.core.exceptions import CatalogError
from ospolicy.core.models import ArtifactMetadata
from ospolicy.integrations.catalog.base import CatalogClient
from ospolicy.staging.paths import parse_version


logger = structlog.get_logger()


def _version_sort_key(record: ArtifactMetadata) -> tuple:
    parsed = parse_version(record.version)
    return (parsed is not None, parsed or ())


class MockCatalogClient(CatalogClient):
    """Mock sensor catalog for testing and development.

    Features:
        - **Installer registry**: per-filter records with real content.
        - **Scripted failures**: queue exceptions for queries or downloads.
        - **Truncated streams**: make a download raise after some bytes.
        - **Call history**: every query and download is recorded.

    Attributes:
        query_calls: ``(filter, limit, offset, sort)`` per query.
        download_calls: Digest per download started.
        cid_calls: Number of get_cid() calls.
    """

    def __init__(
        self,
        region: CloudRegion = CloudRegion.US_1,
        cid: str = "ABCDEF0123456789ABCDEF0123456789-AB",
        chunk_size: int = 4096,
    ) -> None:
        if region is CloudRegion.AUTODISCOVER:
            region = CloudRegion.US_1
        self._region = region
        self._cid = cid
        self._chunk_size = chunk_size

        self._installers: dict[str, list[ArtifactMetadata]] = defaultdict(list)
        self._content: dict[str, bytes] = {}

        self._query_failures: dict[str, deque[Exception]] = defaultdict(deque)
        self._download_failures: dict[str, deque[Exception]] = defaultdict(deque)
        self._truncate_after: dict[str, deque[int]] = defaultdict(deque)

        self.query_calls: list[tuple[str, int, int, str]] = []
        self.download_calls: list[str] = []
        self.cid_calls = 0
        self.closed = False

        self._logger = logger.bind(component="mock_catalog_client")

    # =========================================================================
    # Test Configuration
    # =========================================================================

    def add_installer(
        self,
        filter: str,
        name: str,
        version: str,
        content: bytes = b"",
        file_size: Optional[int] = None,
        **fields: Any,
    ) -> ArtifactMetadata:
        """Register an installer returned for ``filter``.

        Args:
            filter: Selector the installer is listed under.
            name: Installer file name.
            version: Installer version.
            content: Bytes served by download().
            file_size: Advertised size, ``len(content)`` by default. Set it
                lower than the content length to simulate a lying catalog.
            **fields: Extra ArtifactMetadata fields (os, platform, ...).

        Returns:
            The registered metadata record.
        """
        sha256 = fields.pop("sha256", None) or hashlib.sha256(
            content + name.encode() + version.encode()
        ).hexdigest()
        record = ArtifactMetadata(
            name=name,
            version=version,
            file_size=len(content) if file_size is None else file_size,
            sha256=sha256,
            **fields,
        )
        self._installers[filter].append(record)
        self._content[sha256] = content
        return record

    def fail_query(self, filter: str, error: Optional[Exception] = None, times: int = 1) -> None:
        """Make the next ``times`` queries for ``filter`` raise ``error``."""
        for _ in range(times):
            self._query_failures[filter].append(
                error or CatalogError(message=f"mock query failure for {filter}")
            )

    def fail_download(self, sha256: str, error: Optional[Exception] = None, times: int = 1) -> None:
        """Make the next ``times`` downloads of ``sha256`` raise before any byte."""
        for _ in range(times):
            self._download_failures[sha256].append(
                error or CatalogError(message=f"mock download failure for {sha256}")
            )

    def truncate_download(self, sha256: str, after_bytes: int, times: int = 1) -> None:
        """Make the next ``times`` downloads break off after ``after_bytes``."""
        for _ in range(times):
            self._truncate_after[sha256].append(after_bytes)

    # =========================================================================
    # CatalogClient
    # =========================================================================

    @property
    def region(self) -> CloudRegion:
        return self._region

    async def query_installers(
        self,
        filter: str,
        limit: int = 1,
        offset: int = 1,
        sort: str = "version",
    ) -> list[ArtifactMetadata]:
        self.query_calls.append((filter, limit, offset, sort))

        failures = self._query_failures[filter]
        if failures:
            raise failures.popleft()

        records = self._installers.get(filter, [])
        if sort.split("|")[0] == "version":
            records = sorted(records, key=_version_sort_key, reverse=not sort.endswith("|asc"))
        result = records[offset:offset + limit]

        self._logger.debug(
            "mock_catalog_queried",
            filter=filter,
            offset=offset,
            limit=limit,
            results=len(result),
        )
        return result

    async def download(self, sha256: str) -> AsyncIterator[bytes]:
        self.download_calls.append(sha256)

        failures = self._download_failures[sha256]
        if failures:
            raise failures.popleft()

        if sha256 not in self._content:
            raise CatalogError(
                message=f"installer {sha256} does not exist",
                details={"sha256": sha256},
            )

        content = self._content[sha256]
        truncations = self._truncate_after[sha256]
        cut = truncations.popleft() if truncations else None

        sent = 0
        for start in range(0, len(content), self._chunk_size):
            chunk = content[start:start + self._chunk_size]
            if cut is not None and sent + len(chunk) > cut:
                if cut > sent:
                    yield chunk[:cut - sent]
                raise CatalogError(
                    message=f"connection reset while downloading {sha256}",
                    details={"sha256": sha256, "received": cut},
                )
            sent += len(chunk)
            yield chunk

    async def get_cid(self) -> str:
        self.cid_calls += 1
        return self._cid

    async def close(self) -> None:
        self.closed = True

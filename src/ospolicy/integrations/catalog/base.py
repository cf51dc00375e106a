"""
ospolicy.integrations.catalog.base - Abstract Installer Catalog Interface
===========================================================================

This module defines the contract every sensor distribution client must
implement. TransferWorkers never talk HTTP themselves: they query and
download through this interface, so the real API and the mock are
interchangeable.

Architecture Context:

    ┌────────────────┐  query_installers()  ┌──────────────────────┐
    │ TransferWorker │ ───────────────────→ │    CatalogClient     │
    │                │ ←─ ArtifactMetadata  │    (abstract)        │
    │                │  download(sha256)    │                      │
    │                │ ←── bytes chunks ─── │                      │
    └────────────────┘                      └──────────┬───────────┘
                                                       │
                                            ┌──────────┴──────────┐
                                            │                     │
                                       ┌────▼───┐        ┌────────▼────────┐
                                       │  Mock  │        │ Falcon (httpx)  │
                                       └────────┘        └─────────────────┘

Query Semantics:
    ``query_installers(filter, limit=1, offset=1, sort="version")`` selects
    the second newest installer matching ``filter`` ("latest minus one").
    The catalog sorts descending by version, so offset 1 skips the newest.

Errors:
    Implementations raise CatalogError (error_code CATALOG_ERROR or
    CATALOG_AUTH_FAILED). An empty result is NOT an error at this level;
    the worker decides what zero results mean.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from ospolicy.core.enums import CloudRegion
from ospolicy.core.models import ArtifactMetadata


class CatalogClient(ABC):
    """Abstract base class for sensor distribution clients.

    Subclasses must implement:
        - query_installers(): Filtered, paged, sorted installer lookup
        - download(): Stream an installer's bytes by digest
        - get_cid(): The customer id for install parameters
        - region: The concrete cloud region in use

    Usage:
        >>> async with create_catalog_client(config.falcon) as catalog:
        ...     records = await catalog.query_installers("platform:'linux'")
    """

    @abstractmethod
    async def query_installers(
        self,
        filter: str,
        limit: int = 1,
        offset: int = 1,
        sort: str = "version",
    ) -> list[ArtifactMetadata]:
        """Look up installers matching ``filter``.

        Args:
            filter: Catalog selector (FQL).
            limit: Maximum number of records.
            offset: Records to skip.
            sort: Sort key.

        Returns:
            Matching records, possibly empty.

        Raises:
            CatalogError: If the catalog could not be queried.
        """
        ...

    @abstractmethod
    def download(self, sha256: str) -> AsyncIterator[bytes]:
        """Stream the installer identified by ``sha256``.

        Returns:
            An async iterator of byte chunks. Nothing beyond the current
            chunk is held in memory.

        Raises:
            CatalogError: If the download could not be started or broke
                off mid-stream.
        """
        ...

    @abstractmethod
    async def get_cid(self) -> str:
        """Return the customer id (CID with checksum) for this account."""
        ...

    @property
    @abstractmethod
    def region(self) -> CloudRegion:
        """Concrete cloud region. Never AUTODISCOVER once authenticated."""
        ...

    async def authenticate(self) -> None:
        """Establish credentials and resolve the region. No-op unless overridden."""
        return None

    async def close(self) -> None:
        """Release network resources. No-op unless overridden."""
        return None

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

"""
ospolicy.integrations.catalog.factory - Catalog Client Factory
================================================================

Maps ``FalconConfig.provider`` to a concrete CatalogClient.

Usage:
    >>> from ospolicy.integrations.catalog import create_catalog_client
    >>> catalog = create_catalog_client(FalconConfig(provider="mock"))
    >>> type(catalog)  # MockCatalogClient
"""

from __future__ import annotations

from typing import Any, Optional

from ospolicy.core.config import FalconConfig
from ospolicy.integrations.catalog.base import CatalogClient


def create_catalog_client(config: FalconConfig, chunk_size: Optional[int] = None) -> CatalogClient:
    """Create a catalog client instance based on configuration.

        - "falcon" → FalconCatalogClient (httpx, real API credentials)
        - "mock"   → MockCatalogClient (empty registry, no network)

    Args:
        config: Falcon configuration with provider name and credentials.
        chunk_size: Download chunk size in bytes. Client default if None.

    Returns:
        A concrete CatalogClient.

    Raises:
        ValueError: If the provider name is not recognized.
        ConfigurationError: If the falcon provider lacks credentials.
    """
    provider_name = config.provider.lower()

    if provider_name == "mock":
        from ospolicy.integrations.catalog.mock import MockCatalogClient
        kwargs: dict[str, Any] = {"region": config.cloud}
        if config.cid:
            kwargs["cid"] = config.cid
        if chunk_size:
            kwargs["chunk_size"] = chunk_size
        return MockCatalogClient(**kwargs)

    if provider_name == "falcon":
        from ospolicy.integrations.catalog.falcon import FalconCatalogClient
        if chunk_size:
            return FalconCatalogClient(config, chunk_size=chunk_size)
        return FalconCatalogClient(config)

    raise ValueError(
        f"Unknown catalog provider: '{provider_name}'. "
        f"Available providers: 'falcon', 'mock'."
    )

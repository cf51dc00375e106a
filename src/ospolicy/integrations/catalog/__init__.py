"""
ospolicy.integrations.catalog - Sensor Installer Catalog Clients
==================================================================

Available Clients:
    - CatalogClient: Abstract base class defining the catalog contract.
    - FalconCatalogClient: Falcon sensor download API over httpx.
    - MockCatalogClient: In-memory installers with scripted failures.

Usage:
    >>> from ospolicy.integrations.catalog import create_catalog_client
    >>> catalog = create_catalog_client(config.falcon)
"""

from ospolicy.integrations.catalog.base import CatalogClient
from ospolicy.integrations.catalog.mock import MockCatalogClient
from ospolicy.integrations.catalog.falcon import FalconCatalogClient
from ospolicy.integrations.catalog.factory import create_catalog_client

__all__ = [
    "CatalogClient",
    "FalconCatalogClient",
    "MockCatalogClient",
    "create_catalog_client",
]

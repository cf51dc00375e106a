"""
ospolicy.integrations.catalog.falcon - Falcon Sensor Download API Client
==========================================================================

CatalogClient backed by the CrowdStrike Falcon sensor download API, using
an ``httpx.AsyncClient``.

Endpoints:
    POST /oauth2/token                               client-credentials token
    GET  /sensors/combined/installers/v1             installer metadata query
    GET  /sensors/entities/download-installer/v1     installer bytes by sha256
    GET  /sensors/queries/installers/ccid/v1         customer id (CCID)

Authentication:
    Tokens are requested lazily on first use and refreshed a minute before
    they expire. A single asyncio.Lock guards the refresh so concurrent
    workers never request more than one token at a time. A 401 on a data
    call drops the token and retries that call once.

Region Autodiscovery:
    With ``cloud: autodiscover`` the client authenticates against us-1. The
    token response carries the account's home region in the ``X-Cs-Region``
    header; the client switches its base URL to that region and re-issues
    the token there.

    ┌──────────┐  POST /oauth2/token   ┌──────────────────┐
    │  client  │ ────────────────────→ │ api.crowdstrike  │
    │          │ ←─ X-Cs-Region: us-2  │ (us-1)           │
    │          │  POST /oauth2/token   ┌──────────────────┐
    │          │ ────────────────────→ │ api.us-2...      │
    └──────────┘                       └──────────────────┘

Error Mapping:
    401/403 on the token endpoint   → CatalogError(CATALOG_AUTH_FAILED)
    any other non-2xx / transport   → CatalogError(CATALOG_ERROR)
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, AsyncIterator, Optional

import httpx
import structlog

from ospolicy.core.config import FalconConfig
from ospolicy.core.enums import CloudRegion
from ospolicy.core.exceptions import CatalogError, ConfigurationError
from ospolicy.core.models import ArtifactMetadata
from ospolicy.integrations.catalog.base import CatalogClient


logger = structlog.get_logger()


# =============================================================================
# Cloud Base URLs
# =============================================================================
BASE_URLS: dict[CloudRegion, str] = {
    CloudRegion.US_1: "https://api.crowdstrike.com",
    CloudRegion.US_2: "https://api.us-2.crowdstrike.com",
    CloudRegion.EU_1: "https://api.eu-1.crowdstrike.com",
    CloudRegion.US_GOV_1: "https://api.laggar.gcw.crowdstrike.com",
}

REGION_HEADER = "X-Cs-Region"

# Refresh this many seconds before the advertised expiry.
TOKEN_EXPIRY_MARGIN = 60.0

DEFAULT_DOWNLOAD_CHUNK_SIZE = 1024 * 1024


def _error_message(response: httpx.Response) -> str:
    """Best-effort extraction of the API's ``errors[].message`` list."""
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    errors = payload.get("errors") if isinstance(payload, dict) else None
    if errors:
        return "; ".join(str(e.get("message", e)) for e in errors if isinstance(e, dict))
    return response.reason_phrase


class FalconCatalogClient(CatalogClient):
    """Falcon sensor download API client.

    Args:
        config: Credentials, cloud and timeouts.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
        chunk_size: Download chunk size in bytes.

    Raises:
        ConfigurationError: If client id or secret is missing.

    Example:
        >>> async with FalconCatalogClient(config.falcon) as catalog:
        ...     cid = await catalog.get_cid()
    """

    def __init__(
        self,
        config: FalconConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        chunk_size: int = DEFAULT_DOWNLOAD_CHUNK_SIZE,
    ) -> None:
        if not (config.client_id and config.client_secret):
            raise ConfigurationError(
                message="Falcon API client id and secret are required",
                error_code="MISSING_CREDENTIALS",
            )

        self._config = config
        self._chunk_size = chunk_size
        self._autodiscover = config.cloud is CloudRegion.AUTODISCOVER and not config.base_url
        self._region = CloudRegion.US_1 if config.cloud is CloudRegion.AUTODISCOVER else config.cloud

        base_url = config.base_url or BASE_URLS[self._region]
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(config.request_timeout_seconds),
            transport=transport,
            headers={"Accept": "application/json"},
        )

        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()
        self._logger = logger.bind(component="falcon_catalog_client")

    # =========================================================================
    # Authentication
    # =========================================================================

    @property
    def region(self) -> CloudRegion:
        return self._region

    async def _request_token(self) -> httpx.Response:
        try:
            return await self._http.post(
                "/oauth2/token",
                data={
                    "client_id": self._config.client_id,
                    "client_secret": self._config.client_secret,
                },
            )
        except httpx.HTTPError as e:
            raise CatalogError(
                message=f"token request failed: {e}",
                details={"base_url": str(self._http.base_url)},
            ) from e

    async def _authenticate(self) -> None:
        response = await self._request_token()

        discovered = response.headers.get(REGION_HEADER, "").lower()
        if self._autodiscover and discovered:
            self._autodiscover = False
            try:
                region = CloudRegion(discovered)
            except ValueError:
                region = None
            if region is not None and region is not CloudRegion.AUTODISCOVER and region is not self._region:
                self._logger.info("falcon_region_discovered", region=region.value)
                self._region = region
                self._http.base_url = BASE_URLS[region]
                response = await self._request_token()

        if response.status_code in (401, 403):
            raise CatalogError(
                message=f"Falcon API authentication failed: {_error_message(response)}",
                error_code="CATALOG_AUTH_FAILED",
                details={"status_code": response.status_code},
            )
        if response.is_error:
            raise CatalogError(
                message=f"token request failed: {_error_message(response)}",
                details={"status_code": response.status_code},
            )

        payload = response.json()
        self._token = payload["access_token"]
        self._token_expires_at = time.monotonic() + float(payload.get("expires_in", 1799))
        self._logger.debug("falcon_token_acquired", region=self._region.value)

    async def authenticate(self) -> None:
        """Fetch a token now, resolving an autodiscovered region."""
        await self._auth_headers()

    async def _auth_headers(self) -> dict[str, str]:
        async with self._token_lock:
            if self._token is None or time.monotonic() >= self._token_expires_at - TOKEN_EXPIRY_MARGIN:
                await self._authenticate()
            return {"Authorization": f"Bearer {self._token}"}

    async def _get_json(self, path: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        for attempt in range(2):
            headers = await self._auth_headers()
            try:
                response = await self._http.get(path, params=params, headers=headers)
            except httpx.HTTPError as e:
                raise CatalogError(
                    message=f"GET {path} failed: {e}",
                    details={"path": path},
                ) from e

            if response.status_code == 401 and attempt == 0:
                self._token = None
                continue
            if response.is_error:
                raise CatalogError(
                    message=f"GET {path} returned {response.status_code}: {_error_message(response)}",
                    details={"path": path, "status_code": response.status_code},
                )
            return response.json()

        raise CatalogError(message=f"GET {path} was not authorized", error_code="CATALOG_AUTH_FAILED")

    # =========================================================================
    # CatalogClient
    # =========================================================================

    async def query_installers(
        self,
        filter: str,
        limit: int = 1,
        offset: int = 1,
        sort: str = "version",
    ) -> list[ArtifactMetadata]:
        payload = await self._get_json(
            "/sensors/combined/installers/v1",
            params={"filter": filter, "limit": limit, "offset": offset, "sort": sort},
        )
        resources = payload.get("resources") or []
        return [ArtifactMetadata.model_validate(item) for item in resources]

    async def download(self, sha256: str) -> AsyncIterator[bytes]:
        path = "/sensors/entities/download-installer/v1"
        headers = await self._auth_headers()
        headers["Accept"] = "application/octet-stream"
        try:
            async with self._http.stream("GET", path, params={"id": sha256}, headers=headers) as response:
                if response.is_error:
                    await response.aread()
                    raise CatalogError(
                        message=(
                            f"installer download returned {response.status_code}: "
                            f"{_error_message(response)}"
                        ),
                        details={"sha256": sha256, "status_code": response.status_code},
                    )
                async for chunk in response.aiter_bytes(self._chunk_size):
                    yield chunk
        except httpx.HTTPError as e:
            raise CatalogError(
                message=f"installer download failed: {e}",
                details={"sha256": sha256},
            ) from e

    async def get_cid(self) -> str:
        payload = await self._get_json("/sensors/queries/installers/ccid/v1")
        resources = payload.get("resources") or []
        if not resources:
            raise CatalogError(
                message=f"Unexpected payload response. No resources found: {payload}",
                error_code="CATALOG_ERROR",
            )
        return str(resources[0])

    async def close(self) -> None:
        await self._http.aclose()

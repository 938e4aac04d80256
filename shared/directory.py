"""Lookup client for the organization/property/unit/tenant directory.

Units and tenants are owned by another service; the lease engine only needs
to know that they exist, which property and organization a unit belongs to,
and where to text a tenant.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from shared.config import settings
from shared.exceptions import NotFoundError, DirectoryUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnitRef:
    unit_id: str
    property_id: str
    organization_id: str


@dataclass(frozen=True)
class TenantRef:
    tenant_id: str
    phone: Optional[str] = None


class DirectoryClient:
    """Directory lookups over HTTP.

    ``get_unit`` and ``get_tenant`` raise NotFoundError for unknown ids and
    DirectoryUnavailableError when the directory cannot be reached.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.directory_service_url).rstrip("/")
        self.timeout = timeout or settings.directory_timeout_seconds
        self._transport = transport

    async def _get(self, path: str, kind: str, ref_id: str) -> dict:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(path)
        except httpx.HTTPError as e:
            logger.error(f"Directory lookup for {kind} {ref_id} failed: {e}")
            raise DirectoryUnavailableError(f"Directory unavailable: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"{kind.capitalize()} {ref_id} not found")
        if response.status_code >= 400:
            logger.error(
                f"Directory returned {response.status_code} for {kind} {ref_id}"
            )
            raise DirectoryUnavailableError(
                f"Directory returned {response.status_code} for {kind} {ref_id}"
            )
        return response.json()

    async def get_unit(self, unit_id: str) -> UnitRef:
        data = await self._get(f"/api/v1/units/{unit_id}", "unit", unit_id)
        return UnitRef(
            unit_id=str(data.get("id", unit_id)),
            property_id=str(data["property_id"]),
            organization_id=str(data["organization_id"]),
        )

    async def get_tenant(self, tenant_id: str) -> TenantRef:
        data = await self._get(f"/api/v1/tenants/{tenant_id}", "tenant", tenant_id)
        return TenantRef(
            tenant_id=str(data.get("id", tenant_id)),
            phone=data.get("phone"),
        )


_directory: Optional[DirectoryClient] = None


def get_directory() -> DirectoryClient:
    """FastAPI dependency returning the process-wide directory client."""
    global _directory
    if _directory is None:
        _directory = DirectoryClient()
    return _directory

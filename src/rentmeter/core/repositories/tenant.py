"""Repository for Tenant model."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from rentmeter.core.models import Invoice, Tenant
from rentmeter.core.repositories.base import BaseRepository

_UNSET = object()


class TenantRepository(BaseRepository[Tenant]):
    """Tenant-specific repository operations."""

    def __init__(self) -> None:
        super().__init__(Tenant)

    async def list_for_user(self, user_id: UUID) -> list[Tenant]:
        """Get the user's tenants, newest first."""
        return await self.model.filter(user_id=user_id).order_by("-created_at")

    async def update(
        self,
        user_id: UUID,
        tenant_id: UUID | str,
        name: str | None = None,
        base_rent: Decimal | None = None,
        contact: str | None | object = _UNSET,
    ) -> Tenant | None:
        """
        Updates the given fields of a tenant.

        Existing invoices are not touched: they keep the name and rent that
        were current when they were generated.
        """
        tenant = await self.get_for_user(user_id, tenant_id)
        if tenant is None:
            return None

        if name is not None:
            tenant.name = name
        if base_rent is not None:
            tenant.base_rent = base_rent
        if contact is not _UNSET:
            tenant.contact = contact or None
        await tenant.save()
        return tenant

    async def delete_for_user(self, user_id: UUID, pk: UUID | str) -> int:
        """Delete a tenant, detaching its invoices instead of removing them."""
        tenant = await self.get_for_user(user_id, pk)
        if tenant is None:
            return 0
        await Invoice.filter(tenant_id=tenant.id).update(tenant_id=None)
        await tenant.delete()
        return 1

    async def delete_all_for_user(self, user_id: UUID) -> int:
        """Delete every tenant of the user, detaching their invoices."""
        await Invoice.filter(user_id=user_id, tenant_id__isnull=False).update(
            tenant_id=None
        )
        return await self.model.filter(user_id=user_id).delete()

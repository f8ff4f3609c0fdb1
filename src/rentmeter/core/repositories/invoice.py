"""Repository for Invoice model."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from rentmeter.core.models import Invoice
from rentmeter.core.repositories.base import BaseRepository

SORT_ORDERS = {
    "date-desc": ("-date", "-created_at"),
    "date-asc": ("date", "created_at"),
    "total-desc": ("-total", "-date"),
    "total-asc": ("total", "-date"),
}


class InvoiceRepository(BaseRepository[Invoice]):
    """Invoice-specific repository operations."""

    def __init__(self) -> None:
        super().__init__(Invoice)

    async def list_for_user(
        self,
        user_id: UUID,
        tenant_id: UUID | str | None = None,
        search: str | None = None,
        sort: str = "date-desc",
    ) -> list[Invoice]:
        """
        Get the user's invoices.

        Args:
            user_id: Owner of the invoices.
            tenant_id: Only invoices of this tenant, if given.
            search: Case-insensitive substring of the tenant name.
            sort: One of ``SORT_ORDERS``.
        """
        if sort not in SORT_ORDERS:
            raise ValueError(f"Unknown sort order: {sort}")

        query = self.model.filter(user_id=user_id)
        if tenant_id is not None:
            query = query.filter(tenant_id=tenant_id)
        if search:
            query = query.filter(tenant_name__icontains=search.strip())
        return await query.order_by(*SORT_ORDERS[sort])

    async def get_last_for_tenant(
        self, user_id: UUID, tenant_id: UUID | str
    ) -> Invoice | None:
        """
        Get the tenant's most recent invoice by date.

        Invoices sharing a date are ordered by creation time, newest first.
        """
        return (
            await self.model.filter(user_id=user_id, tenant_id=tenant_id)
            .order_by("-date", "-created_at")
            .first()
        )

    async def total_revenue(self, user_id: UUID) -> Decimal:
        """Sum of all invoice totals of the user."""
        totals = await self.model.filter(user_id=user_id).values_list(
            "total", flat=True
        )
        return sum(totals, Decimal("0"))

"""Repository for User model."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from tortoise.transactions import in_transaction

from rentmeter.core.models import Invoice, Settings, Tenant, User
from rentmeter.core.repositories.base import BaseRepository
from rentmeter.core.repositories.invoice import InvoiceRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserStats:
    """Totals shown on the settings screen."""

    total_invoices: int
    total_revenue: Decimal
    total_tenants: int


class UserRepository(BaseRepository[User]):
    """User-specific repository operations."""

    def __init__(self) -> None:
        super().__init__(User)

    async def get_or_create_by_telegram_id(
        self, telegram_id: int, name: str = ""
    ) -> tuple[User, bool]:
        """Resolve a Telegram account to its user record."""
        return await self.model.get_or_create(
            defaults={"name": name}, telegram_id=telegram_id
        )

    async def update_name(self, user_id: UUID, name: str) -> User | None:
        """Change the display name of a user."""
        user = await self.get(user_id)
        if user is None:
            return None
        user.name = name
        await user.save()
        return user

    async def get_stats(self, user_id: UUID) -> UserStats:
        """Count invoices and tenants and sum revenue for a user."""
        return UserStats(
            total_invoices=await Invoice.filter(user_id=user_id).count(),
            total_revenue=await InvoiceRepository().total_revenue(user_id),
            total_tenants=await Tenant.filter(user_id=user_id).count(),
        )

    async def delete_account(self, user_id: UUID) -> bool:
        """Delete the user together with all invoices, tenants and settings."""
        async with in_transaction():
            user = await self.get(user_id)
            if user is None:
                return False
            invoices = await Invoice.filter(user_id=user_id).delete()
            tenants = await Tenant.filter(user_id=user_id).delete()
            await Settings.filter(user_id=user_id).delete()
            await user.delete()
        logger.info(
            f"Deleted account {user_id} ({invoices} invoices, {tenants} tenants)."
        )
        return True

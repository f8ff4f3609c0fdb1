"""Repository for Settings model."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from rentmeter.core.models import Settings
from rentmeter.core.repositories.base import BaseRepository


class SettingsRepository(BaseRepository[Settings]):
    """Settings-specific repository operations."""

    def __init__(self) -> None:
        super().__init__(Settings)

    async def get_by_user(self, user_id: UUID) -> Settings | None:
        """Get the user's settings row, if it was ever saved."""
        return await self.model.get_or_none(user_id=user_id)

    async def upsert_rate(self, user_id: UUID, electricity_rate: Decimal) -> Settings:
        """Create the settings row or update its rate in place."""
        settings, _ = await self.model.update_or_create(
            defaults={"electricity_rate": electricity_rate}, user_id=user_id
        )
        return settings

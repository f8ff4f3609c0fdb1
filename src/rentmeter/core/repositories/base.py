"""Base repository for common CRUD operations."""

from __future__ import annotations

from typing import Generic, Type, TypeVar
from uuid import UUID

from tortoise.models import Model

ModelType = TypeVar("ModelType", bound=Model)


class BaseRepository(Generic[ModelType]):
    """Generic repository with basic CRUD methods."""

    def __init__(self, model: Type[ModelType]):
        self.model = model

    async def get(self, pk: UUID | str) -> ModelType | None:
        """Get a model instance by its primary key."""
        return await self.model.get_or_none(id=pk)

    async def get_for_user(self, user_id: UUID, pk: UUID | str) -> ModelType | None:
        """Get an instance by primary key only if it belongs to the user."""
        return await self.model.get_or_none(id=pk, user_id=user_id)

    async def list_for_user(self, user_id: UUID) -> list[ModelType]:
        """Get all instances owned by the user."""
        return await self.model.filter(user_id=user_id).all()

    async def create(self, **kwargs) -> ModelType:
        """Create a new model instance."""
        return await self.model.create(**kwargs)

    async def delete_for_user(self, user_id: UUID, pk: UUID | str) -> int:
        """Delete an instance owned by the user. Returns the number deleted."""
        instance = await self.get_for_user(user_id, pk)
        if instance:
            await instance.delete()
            return 1
        return 0

    async def delete_all_for_user(self, user_id: UUID) -> int:
        """Delete every instance owned by the user. Returns the number deleted."""
        return await self.model.filter(user_id=user_id).delete()

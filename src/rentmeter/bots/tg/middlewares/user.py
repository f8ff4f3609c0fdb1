"""Middleware resolving the Telegram account to a user record."""

from collections.abc import Awaitable, Callable
from typing import Any

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject

from rentmeter.config import settings
from rentmeter.core.repositories.user import UserRepository


class UserMiddleware(BaseMiddleware):
    """
    Loads (or creates) the ``User`` for the sender and passes it to handlers
    as ``user``. Updates from accounts outside ``ALLOWED_USER_IDS`` are
    dropped when that list is configured.
    """

    def __init__(self, user_repo: UserRepository | None = None):
        self._user_repo = user_repo or UserRepository()

    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        tg_user = data.get("event_from_user")
        if tg_user is None:
            return None

        if settings.ALLOWED_USER_IDS and tg_user.id not in settings.ALLOWED_USER_IDS:
            return None

        user, _ = await self._user_repo.get_or_create_by_telegram_id(
            tg_user.id, name=tg_user.full_name
        )
        data["user"] = user
        return await handler(event, data)

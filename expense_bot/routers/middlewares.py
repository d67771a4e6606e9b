import logging
from typing import Any, Awaitable, Callable, Dict, Iterable

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject

logger = logging.getLogger(__name__)

TEXT_UNAUTHORIZED = "Non sei autorizzato ad usare questo bot."
TEXT_UNAUTHORIZED_SHORT = "Non autorizzato"


class AccessMiddleware(BaseMiddleware):
    """Пропускает к сценариям только пользователей из белого списка.

    Args:
        allowed: Username без "@", регистр не важен. Пустой список — доступ открыт всем.
    """

    def __init__(self, allowed: Iterable[str]):
        self.allowed = {name.lstrip("@").lower() for name in allowed}

    def is_allowed(self, username: str | None) -> bool:
        if not self.allowed:
            return True
        return bool(username) and username.lower() in self.allowed

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        user = data.get("event_from_user") or getattr(event, "from_user", None)
        if user is None:
            return None

        if not self.is_allowed(user.username):
            logger.warning("Unauthorized access attempt by %s (id=%s)", user.username, user.id)
            bot = data["bot"]
            if isinstance(event, CallbackQuery):
                await bot.answer_callback_query(callback_query_id=event.id, text=TEXT_UNAUTHORIZED_SHORT)
            elif isinstance(event, Message):
                await bot.send_message(chat_id=event.chat.id, text=TEXT_UNAUTHORIZED)
            return None

        return await handler(event, data)

import logging
from typing import Iterable

from aiogram import Bot
from aiogram.types import CallbackQuery, Message

from expense_bot.flows.base import FlowHandler
from expense_bot.keyboards.common import (
    BUTTON_BACK_TEXT, BUTTON_MAIN_MENU_TEXT, CALLBACK_BACK, CALLBACK_MAIN_MENU, kb_main_menu, parse_callback
)
from expense_bot.states.conversation import ConversationState
from expense_bot.utils.telegram import PARSE_MODE, safe_delete

logger = logging.getLogger(__name__)

MAIN_MENU_TEXT = "👋 <b>Menu principale</b>\n\nScegli un'operazione:"


class FlowController:
    """Диспетчер событий по сценариям.

    Для каждого события (текст, callback, документ, данные WebApp) сценарии
    опрашиваются в порядке регистрации, событие обрабатывает первый совпавший.
    Если не совпал никто, состояние сбрасывается и показывается главное меню.
    """

    def __init__(self, handlers: Iterable[FlowHandler]):
        self.handlers: list[FlowHandler] = list(handlers)
        for handler in self.handlers:
            handler.bind(self)

    def menu_labels(self) -> list[str]:
        return [label for h in self.handlers if (label := h.menu_label()) is not None]

    async def discard_flow(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        """Удаляет сообщения брошенного сценария и сбрасывает состояние."""
        for message_id in list(state.flow_message_ids):
            await safe_delete(bot, chat_id, message_id)
        state.reset()

    async def show_main_menu(
        self, bot: Bot, chat_id: int, state: ConversationState, text: str | None = None
    ) -> None:
        await self.discard_flow(bot, chat_id, state)
        msg = await bot.send_message(
            chat_id=chat_id,
            text=text or MAIN_MENU_TEXT,
            reply_markup=kb_main_menu(self.menu_labels()),
            parse_mode=PARSE_MODE,
        )
        state.main_menu_message_id = msg.message_id
        state.last_bot_message_id = msg.message_id

    # ---------- входящие события ----------

    async def handle_message(self, bot: Bot, message: Message, state: ConversationState) -> None:
        chat_id = message.chat.id

        if message.web_app_data is not None:
            for handler in self.handlers:
                if handler.matches_web_app_payload(state):
                    await handler.handle_web_app_payload(bot, message, state)
                    return
            await self._fallback(bot, chat_id, state, "web_app_data")
            return

        if message.document is not None:
            for handler in self.handlers:
                if handler.matches_document(state):
                    await handler.handle_document(bot, message, state)
                    return
            await self._fallback(bot, chat_id, state, "document")
            return

        text = (message.text or "").strip()
        if text.startswith("/start") or text == BUTTON_MAIN_MENU_TEXT:
            await self.show_main_menu(bot, chat_id, state)
            return

        if text == BUTTON_BACK_TEXT:
            await self.handle_back(bot, chat_id, state)
            return

        for handler in self.handlers:
            if handler.matches_menu_command(text):
                logger.info("Starting flow %s", handler.name)
                await self.discard_flow(bot, chat_id, state)
                await handler.start_from_menu(bot, chat_id, state)
                return

        if message.text is not None:
            for handler in self.handlers:
                if handler.matches_text_input(state):
                    await handler.handle_text_input(bot, message, state)
                    return

        await self._fallback(bot, chat_id, state, "text")

    async def handle_callback(self, bot: Bot, callback: CallbackQuery, state: ConversationState) -> None:
        chat_id = callback.message.chat.id
        name, data = parse_callback(callback.data)

        if name == CALLBACK_MAIN_MENU:
            await bot.answer_callback_query(callback_query_id=callback.id)
            await self.show_main_menu(bot, chat_id, state)
            return

        if name == CALLBACK_BACK:
            await bot.answer_callback_query(callback_query_id=callback.id)
            await self.handle_back(bot, chat_id, state)
            return

        for handler in self.handlers:
            if handler.matches_callback(name, data, state):
                await handler.handle_callback(bot, callback, name, data, state)
                return

        await bot.answer_callback_query(callback_query_id=callback.id)
        await self._fallback(bot, chat_id, state, f"callback {callback.data!r}")

    async def handle_back(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        for handler in self.handlers:
            if handler.matches_back(state):
                logger.info("Back from %s handled by %s", state.step.state, handler.name)
                if await handler.handle_back(bot, chat_id, state):
                    return
                break
        await self.show_main_menu(bot, chat_id, state)

    async def _fallback(self, bot: Bot, chat_id: int, state: ConversationState, event: str) -> None:
        logger.info("No flow matched %s at step %s, back to main menu", event, state.step.state)
        await self.show_main_menu(bot, chat_id, state)

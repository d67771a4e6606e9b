"""
Корневое меню настроек: список зарегистрированных разделов (SettingsSubFlow).
"""
import logging

from aiogram import Bot
from aiogram.types import CallbackQuery, Message

from expense_bot.flows.base import FlowHandler, SettingsSubFlow
from expense_bot.keyboards.common import button, kb_list
from expense_bot.states.conversation import ConversationState, SettingsStep
from expense_bot.utils.telegram import try_edit_or_send

logger = logging.getLogger(__name__)

MENU_COMMAND_TEXT = "⚙️ Impostazioni"
ROOT_TEXT = "⚙️ <b>Impostazioni</b>\n\nScegli una sezione:"


class SettingsFlowHandler(FlowHandler):
    name = "settings"

    def menu_label(self) -> str:
        return MENU_COMMAND_TEXT

    def sub_flows(self) -> list[SettingsSubFlow]:
        try:
            handlers = self.controller.handlers
        except RuntimeError:
            return []
        return [h for h in handlers if isinstance(h, SettingsSubFlow)]

    def bind(self, controller) -> None:
        super().bind(controller)
        # разделы могут быть зарегистрированы и до, и после корня
        for sub in self.sub_flows():
            sub.settings_root = self

    async def start_from_menu(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        logger.info("Opening settings for chat %s", chat_id)
        await self.show_root(bot, chat_id, state)

    async def show_root(self, bot: Bot, chat_id: int, state: ConversationState, notice: str | None = None) -> None:
        state.step = SettingsStep.ROOT
        rows = [[button(s.settings_menu_text, s.settings_callback_name, s.settings_callback_data)]
                for s in self.sub_flows()]
        text = f"{notice}\n\n{ROOT_TEXT}" if notice else ROOT_TEXT
        if not rows:
            text += "\n\nNessuna sezione disponibile."
        await try_edit_or_send(bot, chat_id, state, text, kb_list([], "", extra_rows=rows, main_menu=True))

    def matches_callback(self, name: str, data: str, state: ConversationState) -> bool:
        if state.step is not SettingsStep.ROOT:
            return False
        return any(
            name == s.settings_callback_name and data == s.settings_callback_data
            for s in self.sub_flows()
        )

    async def handle_callback(
        self, bot: Bot, callback: CallbackQuery, name: str, data: str, state: ConversationState
    ) -> None:
        await self.answer(bot, callback)
        for sub in self.sub_flows():
            if name == sub.settings_callback_name and data == sub.settings_callback_data:
                logger.info("Settings section selected: %s", sub.settings_menu_text)
                state.step = sub.settings_entry_step
                await sub.start_from_settings_root(bot, callback.message.chat.id, state)
                return

    def matches_text_input(self, state: ConversationState) -> bool:
        return False

    async def handle_text_input(self, bot: Bot, message: Message, state: ConversationState) -> None:
        return None

    def matches_back(self, state: ConversationState) -> bool:
        return state.step is SettingsStep.ROOT

    async def handle_back(self, bot: Bot, chat_id: int, state: ConversationState) -> bool:
        # из корня настроек в главное меню
        return False

"""
Общий контракт сценариев (flow) бота.

Диспетчер (`FlowController`) не знает, какой сценарий активен: он по очереди
опрашивает предикаты `matches_*` зарегистрированных сценариев и отдаёт событие
первому совпавшему. Порядок регистрации значим, поэтому предикаты разных
сценариев не должны пересекаться.
"""
from __future__ import annotations

import abc
from typing import TYPE_CHECKING

from aiogram import Bot
from aiogram.types import CallbackQuery, Message
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from expense_bot.states.conversation import ConversationState, Step

if TYPE_CHECKING:
    from expense_bot.flows.controller import FlowController


class FlowHandler(abc.ABC):
    """Базовый класс сценария.

    Атрибуты:
        name (str): Имя сценария для настройки ENABLED_FLOWS.
    """

    name: str = ""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._controller: FlowController | None = None

    def bind(self, controller: FlowController) -> None:
        self._controller = controller

    @property
    def controller(self) -> FlowController:
        if self._controller is None:
            raise RuntimeError(f"Flow {self.name!r} is not registered in a controller")
        return self._controller

    # --- главное меню ---

    def menu_label(self) -> str | None:
        """Текст кнопки в главном меню или None, если сценарий туда не выводится."""
        return None

    def matches_menu_command(self, text: str) -> bool:
        label = self.menu_label()
        return label is not None and text == label

    async def start_from_menu(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        raise NotImplementedError(f"Flow {self.name!r} cannot be started from the main menu")

    # --- callback-кнопки ---

    @abc.abstractmethod
    def matches_callback(self, name: str, data: str, state: ConversationState) -> bool:
        ...

    @abc.abstractmethod
    async def handle_callback(
        self, bot: Bot, callback: CallbackQuery, name: str, data: str, state: ConversationState
    ) -> None:
        ...

    # --- свободный текст ---

    @abc.abstractmethod
    def matches_text_input(self, state: ConversationState) -> bool:
        ...

    @abc.abstractmethod
    async def handle_text_input(self, bot: Bot, message: Message, state: ConversationState) -> None:
        ...

    # --- "Назад" ---

    @abc.abstractmethod
    def matches_back(self, state: ConversationState) -> bool:
        ...

    @abc.abstractmethod
    async def handle_back(self, bot: Bot, chat_id: int, state: ConversationState) -> bool:
        """Откатывает шаг назад.

        Returns:
            True, если шаг обработан здесь; False — диспетчер покажет главное меню.
        """

    # --- необязательные возможности ---

    def matches_document(self, state: ConversationState) -> bool:
        return False

    async def handle_document(self, bot: Bot, message: Message, state: ConversationState) -> None:
        return None

    def matches_web_app_payload(self, state: ConversationState) -> bool:
        return False

    async def handle_web_app_payload(self, bot: Bot, message: Message, state: ConversationState) -> None:
        return None

    async def answer(self, bot: Bot, callback: CallbackQuery, text: str | None = None) -> None:
        await bot.answer_callback_query(callback_query_id=callback.id, text=text)

    async def main_menu(self, bot: Bot, chat_id: int, state: ConversationState, text: str | None = None) -> None:
        await self.controller.show_main_menu(bot, chat_id, state, text=text)


class SettingsSubFlow(abc.ABC):
    """Раздел настроек, который подключается в корневое меню настроек."""

    settings_menu_text: str
    settings_callback_name: str
    settings_callback_data: str
    settings_entry_step: Step

    # Корневое меню настроек, проставляется SettingsFlowHandler при регистрации
    settings_root: FlowHandler | None = None

    @abc.abstractmethod
    async def start_from_settings_root(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        ...

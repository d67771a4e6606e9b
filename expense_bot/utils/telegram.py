import logging

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.types import InlineKeyboardMarkup, Message, ReplyKeyboardMarkup, ReplyKeyboardRemove

from expense_bot.states.conversation import ConversationState

logger = logging.getLogger(__name__)

PARSE_MODE = "HTML"
KEYBOARD_REMOVED_TEXT = "⌨️"


async def safe_delete(bot: Bot, chat_id: int, message_id: int | None):
    """Безопасное удаление сообщения в чате.

    Используется, чтобы чат оставался аккуратным: сообщения пользователя,
    временные "⏳" и брошенные сообщения сценариев удаляются без ошибок,
    даже если сообщение уже удалено или слишком старое.

    Args:
        bot (Bot): Экземпляр бота.
        chat_id (int): ID чата.
        message_id (int | None): ID сообщения для удаления.
    """
    if not message_id:
        return
    try:
        await bot.delete_message(chat_id=chat_id, message_id=message_id)
    except TelegramAPIError as e:
        logger.debug("Could not delete message %s in chat %s: %s", message_id, chat_id, e)


async def send_flow_message(
    bot: Bot,
    chat_id: int,
    state: ConversationState,
    text: str,
    reply_markup: InlineKeyboardMarkup | ReplyKeyboardMarkup | None = None,
) -> Message:
    """Отправляет новое сообщение сценария и запоминает его.

    Сообщение становится `last_bot_message_id` и попадает в список сообщений
    сценария, которые удаляются, если пользователь бросит сценарий.
    """
    msg = await bot.send_message(
        chat_id=chat_id,
        text=text,
        reply_markup=reply_markup,
        parse_mode=PARSE_MODE,
    )
    state.last_bot_message_id = msg.message_id
    state.track_flow_message(msg.message_id)
    return msg


async def try_edit_or_send(
    bot: Bot,
    chat_id: int,
    state: ConversationState,
    text: str,
    reply_markup: InlineKeyboardMarkup | None = None,
) -> Message:
    """Редактирует последнее сообщение бота, а если не вышло — шлёт новое.

    Сообщение главного меню никогда не редактируется. Ошибки редактирования
    (сообщение слишком старое, текст не изменился, сообщение удалено)
    пользователю не показываются.
    """
    message_id = state.last_bot_message_id
    if message_id is not None and message_id != state.main_menu_message_id:
        try:
            return await bot.edit_message_text(
                text=text,
                chat_id=chat_id,
                message_id=message_id,
                reply_markup=reply_markup,
                parse_mode=PARSE_MODE,
            )
        except TelegramBadRequest as e:
            logger.debug("Edit of message %s failed, sending a new one: %s", message_id, e)
    return await send_flow_message(bot, chat_id, state, text, reply_markup)


async def remove_reply_keyboard(bot: Bot, chat_id: int) -> None:
    """Убирает reply-клавиатуру сценария.

    Telegram снимает клавиатуру только вместе с сообщением, поэтому шлём
    служебное сообщение с `ReplyKeyboardRemove` и сразу его удаляем.
    """
    msg = await bot.send_message(chat_id=chat_id, text=KEYBOARD_REMOVED_TEXT, reply_markup=ReplyKeyboardRemove())
    await safe_delete(bot, chat_id, msg.message_id)

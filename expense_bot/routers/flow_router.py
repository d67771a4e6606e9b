import logging

from aiogram import Bot, F, Router
from aiogram.filters import CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, ErrorEvent, Message
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from expense_bot.flows.controller import FlowController
from expense_bot.repo.repo import ensure_user
from expense_bot.states.conversation import load_conversation, save_conversation
from expense_bot.utils.telegram import safe_delete

logger = logging.getLogger(__name__)

TEXT_UNEXPECTED_ERROR = "Si è verificato un errore. Riprova più tardi."

r = Router()


# ================== Хендлеры ==================
# controller/session_factory приходят из Dispatcher(**workflow_data), state — FSMContext aiogram

@r.message(CommandStart())
async def start(m: Message, bot: Bot, state: FSMContext, controller: FlowController,
                session_factory: async_sessionmaker[AsyncSession]):
    # chat_id пользователя нужен для рассылки отчётов по расписанию
    async with session_factory() as session:
        await ensure_user(session, m.from_user.id, m.from_user.username, m.chat.id)

    conv = await load_conversation(state)
    await controller.show_main_menu(bot, m.chat.id, conv)
    await save_conversation(state, conv)
    await safe_delete(bot, m.chat.id, m.message_id)


@r.message(F.web_app_data)
async def on_web_app_data(m: Message, bot: Bot, state: FSMContext, controller: FlowController):
    conv = await load_conversation(state)
    await controller.handle_message(bot, m, conv)
    await save_conversation(state, conv)


@r.message(F.document)
async def on_document(m: Message, bot: Bot, state: FSMContext, controller: FlowController):
    conv = await load_conversation(state)
    await controller.handle_message(bot, m, conv)
    await save_conversation(state, conv)


@r.message(F.text)
async def on_text(m: Message, bot: Bot, state: FSMContext, controller: FlowController):
    conv = await load_conversation(state)
    await controller.handle_message(bot, m, conv)
    await save_conversation(state, conv)
    # чат остаётся чистым: ввод пользователя уже отражён в сообщении бота
    await safe_delete(bot, m.chat.id, m.message_id)


@r.callback_query()
async def on_callback(cb: CallbackQuery, bot: Bot, state: FSMContext, controller: FlowController):
    conv = await load_conversation(state)
    await controller.handle_callback(bot, cb, conv)
    await save_conversation(state, conv)


@r.errors()
async def on_error(event: ErrorEvent, bot: Bot, state: FSMContext | None = None):
    logger.exception(
        "Unexpected error while handling update %s", event.update.update_id, exc_info=event.exception
    )
    if state is not None:
        await state.clear()

    update = event.update
    chat = update.message.chat if update.message else (
        update.callback_query.message.chat
        if update.callback_query and update.callback_query.message else None
    )
    if chat is None:
        return True
    try:
        await bot.send_message(chat_id=chat.id, text=TEXT_UNEXPECTED_ERROR)
    except Exception:
        logger.warning("Could not notify chat %s about the error", chat.id)
    return True

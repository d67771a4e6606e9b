"""
Сценарий добавления расхода.

Меню → Категория → Подкатегория → [Тег, если у подкатегории есть теги] →
Описание → Сумма → Дата → сохранение → главное меню.
"""
import logging
from datetime import date

from aiogram import Bot, html
from aiogram.types import CallbackQuery, Message
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from expense_bot.db.models import Tag
from expense_bot.flows.base import FlowHandler
from expense_bot.keyboards.common import button, kb_date_choice, kb_list, kb_nav
from expense_bot.services.category_service import CategoryService
from expense_bot.services.expense_service import ExpenseService
from expense_bot.states.conversation import ConversationState, InsertExpenseStep
from expense_bot.utils.formatting import breadcrumb, fmt_date, fmt_money, parse_amount, parse_date
from expense_bot.utils.telegram import remove_reply_keyboard, safe_delete, send_flow_message, try_edit_or_send

logger = logging.getLogger(__name__)

MENU_COMMAND_TEXT = "💰 Inserisci spesa"

CALLBACK_CATEGORY = "addexpenses_cat"
CALLBACK_SUBCATEGORY = "addexpenses_sub"
CALLBACK_TAG = "addexpenses_tag"
CALLBACK_SKIP_TAG = "addexpenses_skiptag"

BUTTON_USE_TODAY = "📅 Usa data di oggi"
BUTTON_CHOOSE_DATE = "📆 Scegli altra data"

# Expense.description: String(512)
MAX_DESCRIPTION_LENGTH = 512

TEXT_EMPTY_DESCRIPTION = "❌ La descrizione non può essere vuota. Riprova:"
TEXT_LONG_DESCRIPTION = f"❌ Descrizione troppo lunga (massimo {MAX_DESCRIPTION_LENGTH} caratteri). Riprova:"
TEXT_INVALID_AMOUNT = "❌ Importo non valido. Inserisci un numero positivo (es. 12.50):"
TEXT_INVALID_DATE = "❌ Data non valida ricevuta. Riprova."
TEXT_SAVE_FAILED = "❌ Si è verificato un errore durante il salvataggio. Riprova."

Step = InsertExpenseStep


class InsertExpenseFlowHandler(FlowHandler):
    name = "insert_expense"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], date_picker_url: str):
        super().__init__(session_factory)
        self.date_picker_url = date_picker_url

    def menu_label(self) -> str:
        return MENU_COMMAND_TEXT

    async def start_from_menu(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        logger.info("Starting insert expense flow for chat %s", chat_id)
        state.step = Step.SELECT_CATEGORY
        await self._show_categories(bot, chat_id, state)

    # ---------- callbacks ----------

    def matches_callback(self, name: str, data: str, state: ConversationState) -> bool:
        if state.step is Step.SELECT_CATEGORY:
            return name == CALLBACK_CATEGORY
        if state.step is Step.SELECT_SUBCATEGORY:
            return name == CALLBACK_SUBCATEGORY
        if state.step is Step.SELECT_TAG:
            return name in (CALLBACK_TAG, CALLBACK_SKIP_TAG)
        return False

    async def handle_callback(
        self, bot: Bot, callback: CallbackQuery, name: str, data: str, state: ConversationState
    ) -> None:
        chat_id = callback.message.chat.id
        await self.answer(bot, callback)

        if name == CALLBACK_SKIP_TAG:
            state.selected_tag_id = None
            state.selected_tag_name = None
            state.step = Step.ENTER_DESCRIPTION
            logger.info("Tag skipped")
            await self._ask_description(bot, chat_id, state)
            return

        try:
            entity_id = int(data)
        except ValueError:
            logger.warning("Malformed callback data %r for %s", data, name)
            await self._restart_from_categories(bot, chat_id, state, "❌ Selezione non valida.")
            return

        async with self.session_factory() as session:
            service = CategoryService(session)

            if name == CALLBACK_CATEGORY:
                category = await service.get_category(entity_id)
                if category is None:
                    logger.warning("Category %s not found", entity_id)
                    await self._restart_from_categories(bot, chat_id, state, "❌ Categoria non trovata.")
                    return
                state.selected_category_id = category.id
                state.selected_category_name = category.name
                state.step = Step.SELECT_SUBCATEGORY
                logger.info("Category selected: %s - %s", category.id, category.name)
                await self._show_subcategories(bot, chat_id, state)

            elif name == CALLBACK_SUBCATEGORY:
                subcategory = await service.get_subcategory(entity_id)
                if subcategory is None or subcategory.category_id != state.selected_category_id:
                    logger.warning("Subcategory %s not found", entity_id)
                    await self._restart_from_categories(bot, chat_id, state, "❌ Sottocategoria non trovata.")
                    return
                state.selected_subcategory_id = subcategory.id
                state.selected_subcategory_name = subcategory.name
                logger.info("SubCategory selected: %s - %s", subcategory.id, subcategory.name)

                tags = await service.list_tags(subcategory.id)
                if tags:
                    state.step = Step.SELECT_TAG
                    await self._show_tags(bot, chat_id, state, tags)
                else:
                    state.step = Step.ENTER_DESCRIPTION
                    await self._ask_description(bot, chat_id, state)

            elif name == CALLBACK_TAG:
                tag = await service.get_tag(entity_id)
                if tag is None or tag.subcategory_id != state.selected_subcategory_id:
                    logger.warning("Tag %s not found", entity_id)
                    await self._restart_from_categories(bot, chat_id, state, "❌ Tag non trovato.")
                    return
                state.selected_tag_id = tag.id
                state.selected_tag_name = tag.name
                state.step = Step.ENTER_DESCRIPTION
                logger.info("Tag selected: %s - %s", tag.id, tag.name)
                await self._ask_description(bot, chat_id, state)

    # ---------- текст ----------

    def matches_text_input(self, state: ConversationState) -> bool:
        return state.step in (Step.ENTER_DESCRIPTION, Step.ENTER_AMOUNT, Step.SELECT_DATE)

    async def handle_text_input(self, bot: Bot, message: Message, state: ConversationState) -> None:
        chat_id = message.chat.id
        text = (message.text or "").strip()

        if state.step is Step.ENTER_DESCRIPTION:
            if not text:
                await send_flow_message(bot, chat_id, state, TEXT_EMPTY_DESCRIPTION, kb_nav())
                return
            if len(text) > MAX_DESCRIPTION_LENGTH:
                await send_flow_message(bot, chat_id, state, TEXT_LONG_DESCRIPTION, kb_nav())
                return
            state.description = text
            state.step = Step.ENTER_AMOUNT
            logger.info("Description entered: %s", text)
            await self._ask_amount(bot, chat_id, state)

        elif state.step is Step.ENTER_AMOUNT:
            amount = parse_amount(text)
            if amount is None:
                await send_flow_message(bot, chat_id, state, TEXT_INVALID_AMOUNT, kb_nav())
                return
            state.amount = amount
            state.step = Step.SELECT_DATE
            logger.info("Amount entered: %s", amount)
            await self._ask_date(bot, chat_id, state)

        elif state.step is Step.SELECT_DATE:
            if text == BUTTON_USE_TODAY:
                state.selected_date = date.today()
                logger.info("Using today's date: %s", state.selected_date)
                await self._save_expense(bot, chat_id, message, state)
                return
            selected = parse_date(text)
            if selected is None:
                await send_flow_message(bot, chat_id, state, TEXT_INVALID_DATE)
                return
            state.selected_date = selected
            logger.info("Date typed: %s", selected)
            await self._save_expense(bot, chat_id, message, state)

    # ---------- WebApp ----------

    def matches_web_app_payload(self, state: ConversationState) -> bool:
        return state.step is Step.SELECT_DATE

    async def handle_web_app_payload(self, bot: Bot, message: Message, state: ConversationState) -> None:
        chat_id = message.chat.id
        raw = message.web_app_data.data
        selected = parse_date(raw)
        if selected is None:
            logger.warning("Invalid date received from WebApp: %s", raw)
            await send_flow_message(bot, chat_id, state, TEXT_INVALID_DATE)
            return
        state.selected_date = selected
        logger.info("Date selected from WebApp: %s", selected)
        await self._save_expense(bot, chat_id, message, state)

    # ---------- назад ----------

    def matches_back(self, state: ConversationState) -> bool:
        return state.step in (
            Step.SELECT_SUBCATEGORY,
            Step.SELECT_TAG,
            Step.ENTER_DESCRIPTION,
            Step.ENTER_AMOUNT,
            Step.SELECT_DATE,
        )

    async def handle_back(self, bot: Bot, chat_id: int, state: ConversationState) -> bool:
        logger.info("Handling back from step %s", state.step.state)

        if state.step is Step.SELECT_SUBCATEGORY:
            state.selected_category_id = None
            state.selected_category_name = None
            state.step = Step.SELECT_CATEGORY
            await self._show_categories(bot, chat_id, state)
            return True

        if state.step is Step.SELECT_TAG:
            state.selected_subcategory_id = None
            state.selected_subcategory_name = None
            state.step = Step.SELECT_SUBCATEGORY
            await self._show_subcategories(bot, chat_id, state)
            return True

        if state.step is Step.ENTER_DESCRIPTION:
            # к тегам, если они были, иначе к подкатегориям
            state.selected_tag_id = None
            state.selected_tag_name = None
            async with self.session_factory() as session:
                tags = await CategoryService(session).list_tags(state.selected_subcategory_id)
            if tags:
                state.step = Step.SELECT_TAG
                await self._show_tags(bot, chat_id, state, tags)
                return True
            state.selected_subcategory_id = None
            state.selected_subcategory_name = None
            state.step = Step.SELECT_SUBCATEGORY
            await self._show_subcategories(bot, chat_id, state)
            return True

        if state.step is Step.ENTER_AMOUNT:
            state.description = None
            state.step = Step.ENTER_DESCRIPTION
            await self._ask_description(bot, chat_id, state)
            return True

        if state.step is Step.SELECT_DATE:
            state.amount = None
            state.step = Step.ENTER_AMOUNT
            await self._leave_date_step(bot, chat_id, state)
            await self._ask_amount(bot, chat_id, state)
            return True

        return False

    # ---------- сообщения ----------

    def _header(self, state: ConversationState) -> str:
        lines = [f"📁 {breadcrumb(state.selected_category_name, state.selected_subcategory_name, bold=True)}"]
        if state.selected_tag_name:
            lines.append(f"🏷️ {html.quote(state.selected_tag_name)}")
        if state.description:
            lines.append(f"📝 {html.quote(state.description)}")
        if state.amount is not None:
            lines.append(f"💰 {fmt_money(state.amount)}")
        return "\n".join(lines)

    async def _restart_from_categories(self, bot: Bot, chat_id: int, state: ConversationState, notice: str) -> None:
        state.selected_category_id = state.selected_category_name = None
        state.selected_subcategory_id = state.selected_subcategory_name = None
        state.selected_tag_id = state.selected_tag_name = None
        state.step = Step.SELECT_CATEGORY
        await self._show_categories(bot, chat_id, state, notice)

    async def _show_categories(
        self, bot: Bot, chat_id: int, state: ConversationState, notice: str | None = None
    ) -> None:
        async with self.session_factory() as session:
            categories = await CategoryService(session).list_categories()

        prefix = f"{notice}\n\n" if notice else ""
        if not categories:
            text = prefix + "📁 Non ci sono categorie. Creane una da ⚙️ Impostazioni."
        else:
            text = prefix + "📁 <b>Seleziona una categoria:</b>"
        kb = kb_list([(c.name, c.id) for c in categories], CALLBACK_CATEGORY, main_menu=True)
        await try_edit_or_send(bot, chat_id, state, text, kb)

    async def _show_subcategories(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        async with self.session_factory() as session:
            subcategories = await CategoryService(session).list_subcategories(state.selected_category_id)

        text = f"📁 <b>{html.quote(state.selected_category_name)}</b>\n\n"
        if subcategories:
            text += "📂 Seleziona una sottocategoria:"
        else:
            text += "📂 Nessuna sottocategoria. Creane una da ⚙️ Impostazioni."
        kb = kb_list([(s.name, s.id) for s in subcategories], CALLBACK_SUBCATEGORY, back=True)
        await try_edit_or_send(bot, chat_id, state, text, kb)

    async def _show_tags(self, bot: Bot, chat_id: int, state: ConversationState, tags: list[Tag]) -> None:
        kb = kb_list(
            [(f"🏷️ {t.name}", t.id) for t in tags],
            CALLBACK_TAG,
            extra_rows=[[button("⏭️ Salta", CALLBACK_SKIP_TAG, "skip")]],
            back=True,
        )
        text = f"{self._header(state)}\n\n🏷️ Seleziona un tag:"
        await try_edit_or_send(bot, chat_id, state, text, kb)

    async def _ask_description(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        text = f"{self._header(state)}\n\n📝 Inserisci una descrizione per la spesa:"
        await try_edit_or_send(bot, chat_id, state, text, kb_nav())

    async def _ask_amount(self, bot: Bot, chat_id: int, state: ConversationState, notice: str | None = None) -> None:
        prefix = f"{notice}\n\n" if notice else ""
        text = f"{prefix}{self._header(state)}\n\n💰 Inserisci l'importo (es. 12.50):"
        await try_edit_or_send(bot, chat_id, state, text, kb_nav())

    async def _ask_date(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        # reply-клавиатура: кнопка WebApp работает только в ней, поэтому новое сообщение
        kb = kb_date_choice(BUTTON_USE_TODAY, BUTTON_CHOOSE_DATE, self.date_picker_url)
        text = f"{self._header(state)}\n\n📆 <b>Seleziona la data della spesa:</b>"
        await send_flow_message(bot, chat_id, state, text, kb)

    async def _leave_date_step(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        # шаг даты не завершён: его reply-клавиатура (сегодня / WebApp) больше не действует
        await remove_reply_keyboard(bot, chat_id)
        await safe_delete(bot, chat_id, state.last_bot_message_id)
        state.last_bot_message_id = None

    async def _save_expense(self, bot: Bot, chat_id: int, message: Message, state: ConversationState) -> None:
        username = message.from_user.username if message.from_user else None
        try:
            async with self.session_factory() as session:
                await ExpenseService(session).create_expense(
                    subcategory_id=state.selected_subcategory_id,
                    amount=state.amount,
                    description=state.description,
                    notes=None,
                    performed_by=username or str(chat_id),
                    tag_id=state.selected_tag_id,
                    expense_date=state.selected_date,
                )
        except Exception:
            logger.exception("Error creating expense")
            # повтор возможен: возвращаемся к вводу суммы, описание сохраняем
            state.amount = None
            state.selected_date = None
            state.step = Step.ENTER_AMOUNT
            await self._leave_date_step(bot, chat_id, state)
            await self._ask_amount(bot, chat_id, state, TEXT_SAVE_FAILED)
            return

        text = (
            "✅ <b>Spesa registrata!</b>\n\n"
            f"{self._header(state)}\n"
            f"📆 {fmt_date(state.selected_date)}"
        )
        logger.info(
            "Expense created: %s - %s - Tag: %s - Date: %s",
            state.amount, state.description, state.selected_tag_id, state.selected_date,
        )
        # подтверждение уходит вместе с клавиатурой главного меню, сообщения сценария удаляются
        await self.main_menu(bot, chat_id, state, text=text)

"""
Раздел настроек «Impostazioni spese»: создание категорий, подкатегорий и тегов.

После создания подкатегории запускается цикл добавления тегов к ней
(данные цикла — `TagCreationData` в `state.flow_data`).
"""
import logging

from aiogram import Bot, html
from aiogram.types import CallbackQuery, Message

from expense_bot.flows.base import FlowHandler, SettingsSubFlow
from expense_bot.keyboards.common import button, kb_list, kb_nav
from expense_bot.services.category_service import MAX_NAME_LENGTH, CategoryService
from expense_bot.states.conversation import ConversationState, ExpenseSettingsStep, TagCreationData
from expense_bot.utils.formatting import breadcrumb
from expense_bot.utils.telegram import send_flow_message, try_edit_or_send

logger = logging.getLogger(__name__)

CALLBACK_ADD_CATEGORY = "settings_addcat"
CALLBACK_ADD_SUBCATEGORY = "settings_addsub"
CALLBACK_PICK_CATEGORY = "settings_pickcat"
CALLBACK_ADD_TAG = "settings_addtag"
CALLBACK_TAGS_DONE = "settings_tagsdone"

ACTIONS_TEXT = "⚙️ <b>Impostazioni spese</b>\n\nCosa vuoi fare?"
TEXT_EMPTY_NAME = "❌ Il nome non può essere vuoto. Riprova:"
TEXT_INVALID_NAME = f"❌ Nome non valido (massimo {MAX_NAME_LENGTH} caratteri). Riprova:"

Step = ExpenseSettingsStep


class ExpenseSettingsFlowHandler(FlowHandler, SettingsSubFlow):
    name = "settings_expenses"

    settings_menu_text = "⚙️ Impostazioni spese"
    settings_callback_name = "settings_expenses"
    settings_callback_data = "expenses"

    @property
    def settings_entry_step(self):
        return Step.SELECT_ACTION

    async def start_from_settings_root(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        await self._show_actions(bot, chat_id, state)

    # ---------- callbacks ----------

    def matches_callback(self, name: str, data: str, state: ConversationState) -> bool:
        if state.step is Step.SELECT_ACTION:
            return name in (CALLBACK_ADD_CATEGORY, CALLBACK_ADD_SUBCATEGORY)
        if state.step is Step.SELECT_CATEGORY_FOR_SUB:
            return name == CALLBACK_PICK_CATEGORY
        if state.step is Step.ASK_TAGS:
            return name in (CALLBACK_ADD_TAG, CALLBACK_TAGS_DONE)
        return False

    async def handle_callback(
        self, bot: Bot, callback: CallbackQuery, name: str, data: str, state: ConversationState
    ) -> None:
        chat_id = callback.message.chat.id
        await self.answer(bot, callback)

        if name == CALLBACK_ADD_CATEGORY:
            state.step = Step.ADD_CATEGORY
            await self._ask_category_name(bot, chat_id, state)

        elif name == CALLBACK_ADD_SUBCATEGORY:
            state.step = Step.SELECT_CATEGORY_FOR_SUB
            await self._show_categories(bot, chat_id, state)

        elif name == CALLBACK_PICK_CATEGORY:
            category = None
            if data.isdigit():
                async with self.session_factory() as session:
                    category = await CategoryService(session).get_category(int(data))
            if category is None:
                logger.warning("Category %r not found", data)
                await self._show_categories(bot, chat_id, state, "❌ Categoria non trovata.")
                return
            state.selected_category_id = category.id
            state.selected_category_name = category.name
            state.step = Step.ADD_SUBCATEGORY
            await self._ask_subcategory_name(bot, chat_id, state)

        elif name == CALLBACK_ADD_TAG:
            state.step = Step.ADD_TAG
            await self._ask_tag_name(bot, chat_id, state)

        elif name == CALLBACK_TAGS_DONE:
            await self._finish_tags(bot, chat_id, state)

    # ---------- текст ----------

    def matches_text_input(self, state: ConversationState) -> bool:
        return state.step in (Step.ADD_CATEGORY, Step.ADD_SUBCATEGORY, Step.ADD_TAG)

    async def handle_text_input(self, bot: Bot, message: Message, state: ConversationState) -> None:
        chat_id = message.chat.id
        name = (message.text or "").strip()
        if not name:
            await send_flow_message(bot, chat_id, state, TEXT_EMPTY_NAME, kb_nav())
            return
        if len(name) > MAX_NAME_LENGTH:
            await send_flow_message(bot, chat_id, state, TEXT_INVALID_NAME, kb_nav())
            return

        if state.step is Step.ADD_CATEGORY:
            try:
                async with self.session_factory() as session:
                    category, created = await CategoryService(session).create_category(name)
            except ValueError as e:
                logger.warning("Category creation failed: %s", e)
                await send_flow_message(bot, chat_id, state, TEXT_INVALID_NAME, kb_nav())
                return
            if created:
                notice = f"✅ Categoria <b>{html.quote(category.name)}</b> creata"
            else:
                notice = f"ℹ️ La categoria <b>{html.quote(category.name)}</b> esiste già"
            await self._show_actions(bot, chat_id, state, notice)

        elif state.step is Step.ADD_SUBCATEGORY:
            try:
                async with self.session_factory() as session:
                    subcategory, created = await CategoryService(session).create_subcategory(
                        name, state.selected_category_id
                    )
            except ValueError as e:
                logger.warning("Subcategory creation failed: %s", e)
                await self._show_actions(bot, chat_id, state, "❌ Impossibile creare la sottocategoria.")
                return
            logger.info("Subcategory %s ready (created=%s), starting tag loop", subcategory.id, created)
            state.step = Step.ASK_TAGS
            state.flow_data = TagCreationData(
                subcategory_id=subcategory.id,
                subcategory_name=subcategory.name,
                category_name=state.selected_category_name,
            )
            await self._ask_tags(bot, chat_id, state)

        elif state.step is Step.ADD_TAG:
            data = state.get_flow_data(TagCreationData)
            if data is None:
                await self._show_actions(bot, chat_id, state)
                return
            try:
                async with self.session_factory() as session:
                    tag, created = await CategoryService(session).create_tag(name, data.subcategory_id)
            except ValueError as e:
                logger.warning("Tag creation failed: %s", e)
                await self._show_actions(bot, chat_id, state, "❌ Impossibile creare il tag.")
                return
            if created:
                data.tags.append(tag.name)
            state.step = Step.ASK_TAGS
            await self._ask_tags(bot, chat_id, state)

    # ---------- назад ----------

    def matches_back(self, state: ConversationState) -> bool:
        return state.flow is Step

    async def handle_back(self, bot: Bot, chat_id: int, state: ConversationState) -> bool:
        if state.step is Step.SELECT_ACTION:
            if self.settings_root is None:
                return False
            await self.settings_root.show_root(bot, chat_id, state)
            return True

        if state.step in (Step.ADD_CATEGORY, Step.SELECT_CATEGORY_FOR_SUB):
            await self._show_actions(bot, chat_id, state)
            return True

        if state.step is Step.ADD_SUBCATEGORY:
            state.selected_category_id = None
            state.selected_category_name = None
            state.step = Step.SELECT_CATEGORY_FOR_SUB
            await self._show_categories(bot, chat_id, state)
            return True

        if state.step is Step.ASK_TAGS:
            await self._finish_tags(bot, chat_id, state)
            return True

        if state.step is Step.ADD_TAG:
            state.step = Step.ASK_TAGS
            await self._ask_tags(bot, chat_id, state)
            return True

        return False

    # ---------- сообщения ----------

    async def _show_actions(
        self, bot: Bot, chat_id: int, state: ConversationState, notice: str | None = None
    ) -> None:
        state.step = Step.SELECT_ACTION
        state.selected_category_id = None
        state.selected_category_name = None
        kb = kb_list(
            [],
            "",
            extra_rows=[
                [button("➕ Categoria", CALLBACK_ADD_CATEGORY, "new")],
                [button("➕ Sottocategoria", CALLBACK_ADD_SUBCATEGORY, "new")],
            ],
            back=True,
            main_menu=True,
        )
        text = f"{notice}\n\n{ACTIONS_TEXT}" if notice else ACTIONS_TEXT
        await try_edit_or_send(bot, chat_id, state, text, kb)

    async def _ask_category_name(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        await try_edit_or_send(bot, chat_id, state, "📁 Inserisci il nome della nuova categoria:", kb_nav())

    async def _show_categories(
        self, bot: Bot, chat_id: int, state: ConversationState, notice: str | None = None
    ) -> None:
        async with self.session_factory() as session:
            categories = await CategoryService(session).list_categories()
        prefix = f"{notice}\n\n" if notice else ""
        if categories:
            text = prefix + "📁 Seleziona la categoria della nuova sottocategoria:"
        else:
            text = prefix + "📁 Non ci sono categorie. Crea prima una categoria."
        kb = kb_list([(c.name, c.id) for c in categories], CALLBACK_PICK_CATEGORY, back=True)
        await try_edit_or_send(bot, chat_id, state, text, kb)

    async def _ask_subcategory_name(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        text = (
            f"📁 <b>{html.quote(state.selected_category_name)}</b>\n\n"
            "📂 Inserisci il nome della nuova sottocategoria:"
        )
        await try_edit_or_send(bot, chat_id, state, text, kb_nav())

    def _tags_summary(self, data: TagCreationData) -> str:
        text = f"📂 {breadcrumb(data.category_name, data.subcategory_name, bold=True)}"
        if data.tags:
            text += "\n🏷️ " + ", ".join(html.quote(t) for t in data.tags)
        return text

    async def _ask_tags(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        data = state.get_flow_data(TagCreationData)
        if data is None:
            await self._show_actions(bot, chat_id, state)
            return
        add_text = "🏷️ Aggiungi un altro tag" if data.tags else "🏷️ Aggiungi tag"
        kb = kb_list(
            [],
            "",
            extra_rows=[
                [button(add_text, CALLBACK_ADD_TAG, data.subcategory_id)],
                [button("✅ Fine", CALLBACK_TAGS_DONE, data.subcategory_id)],
            ],
        )
        text = f"{self._tags_summary(data)}\n\nVuoi aggiungere dei tag a questa sottocategoria?"
        await try_edit_or_send(bot, chat_id, state, text, kb)

    async def _ask_tag_name(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        data = state.get_flow_data(TagCreationData)
        if data is None:
            await self._show_actions(bot, chat_id, state)
            return
        text = f"{self._tags_summary(data)}\n\n🏷️ Inserisci il nome del tag:"
        await try_edit_or_send(bot, chat_id, state, text, kb_nav(main_menu=False))

    async def _finish_tags(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        data = state.get_flow_data(TagCreationData)
        if data is None:
            await self._show_actions(bot, chat_id, state)
            return
        notice = (
            f"✅ Sottocategoria <b>{html.quote(data.subcategory_name)}</b> "
            f"creata in <b>{html.quote(data.category_name)}</b>"
        )
        if data.tags:
            notice += "\n🏷️ Tag: " + ", ".join(html.quote(t) for t in data.tags)
        logger.info("Tag loop finished for subcategory %s: %s", data.subcategory_id, data.tags)
        state.flow_data = None
        await self._show_actions(bot, chat_id, state, notice)

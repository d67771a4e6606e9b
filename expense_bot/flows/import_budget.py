"""
Импорт бюджетов из Excel: год → файл .xlsx → отчёт об импорте.
"""
import logging

from aiogram import Bot, html
from aiogram.types import CallbackQuery, Message

from expense_bot.flows.base import FlowHandler
from expense_bot.keyboards.common import kb_nav
from expense_bot.services.import_service import ImportResult, ImportService
from expense_bot.states.conversation import ConversationState, ImportFlowData, ImportStep
from expense_bot.utils.formatting import MAX_YEAR, MIN_YEAR, parse_year
from expense_bot.utils.telegram import safe_delete, send_flow_message, try_edit_or_send

logger = logging.getLogger(__name__)

MENU_COMMAND_TEXT = "📥 Importa Excel"

MAX_FILE_SIZE = 10 * 1024 * 1024
MAX_WARNINGS_SHOWN = 10
MAX_ERRORS_SHOWN = 5

TEXT_ASK_YEAR = f"📅 Inserisci l'anno del budget ({MIN_YEAR}-{MAX_YEAR}):"
TEXT_INVALID_YEAR = f"❌ Anno non valido. Inserisci un anno tra {MIN_YEAR} e {MAX_YEAR}:"
TEXT_WRONG_TYPE = "❌ Il file deve essere in formato .xlsx. Riprova:"
TEXT_TOO_LARGE = "❌ Il file è troppo grande (massimo 10 MB). Riprova:"
TEXT_PROCESSING = "⏳ Elaborazione del file in corso..."
TEXT_IMPORT_FAILED = "❌ Errore durante l'importazione del file. Controlla il formato e riprova."

Step = ImportStep


def _limited(lines: list[str], limit: int) -> list[str]:
    shown = [f"• {html.quote(line)}" for line in lines[:limit]]
    if len(lines) > limit:
        shown.append(f"… e altri {len(lines) - limit}")
    return shown


def format_import_result(result: ImportResult, year: int) -> str:
    """Текст отчёта об импорте: счётчики и ограниченный список предупреждений/ошибок."""
    lines = [
        f"✅ <b>Importazione {year} completata</b>",
        "",
        f"📁 Categorie create: {result.categories_created}",
        f"📂 Sottocategorie create: {result.subcategories_created}",
        f"🏷️ Tag creati: {result.tags_created}",
        f"💰 Budget creati: {result.budgets_created}",
    ]
    if result.warnings:
        lines += ["", f"⚠️ <b>Avvisi ({len(result.warnings)}):</b>"]
        lines += _limited(result.warnings, MAX_WARNINGS_SHOWN)
    if result.errors:
        lines += ["", f"❌ <b>Errori ({len(result.errors)}):</b>"]
        lines += _limited(result.errors, MAX_ERRORS_SHOWN)
    return "\n".join(lines)


class ImportFlowHandler(FlowHandler):
    name = "import"

    def menu_label(self) -> str:
        return MENU_COMMAND_TEXT

    async def start_from_menu(self, bot: Bot, chat_id: int, state: ConversationState) -> None:
        logger.info("Starting import flow for chat %s", chat_id)
        state.step = Step.ENTER_YEAR
        state.flow_data = ImportFlowData()
        await try_edit_or_send(bot, chat_id, state, TEXT_ASK_YEAR, kb_nav())

    def matches_callback(self, name: str, data: str, state: ConversationState) -> bool:
        return False

    async def handle_callback(
        self, bot: Bot, callback: CallbackQuery, name: str, data: str, state: ConversationState
    ) -> None:
        return None

    def matches_text_input(self, state: ConversationState) -> bool:
        return state.step in (Step.ENTER_YEAR, Step.WAIT_FILE)

    async def handle_text_input(self, bot: Bot, message: Message, state: ConversationState) -> None:
        chat_id = message.chat.id

        if state.step is Step.WAIT_FILE:
            data = state.get_flow_data(ImportFlowData)
            await send_flow_message(bot, chat_id, state, self._file_prompt(data.year if data else None), kb_nav())
            return

        year = parse_year(message.text)
        if year is None:
            await send_flow_message(bot, chat_id, state, TEXT_INVALID_YEAR, kb_nav())
            return

        state.step = Step.WAIT_FILE
        state.flow_data = ImportFlowData(year=year)
        logger.info("Import year selected: %s", year)
        await try_edit_or_send(bot, chat_id, state, self._file_prompt(year), kb_nav())

    def matches_document(self, state: ConversationState) -> bool:
        return state.step is Step.WAIT_FILE

    async def handle_document(self, bot: Bot, message: Message, state: ConversationState) -> None:
        chat_id = message.chat.id
        document = message.document
        data = state.get_flow_data(ImportFlowData)
        if data is None or data.year is None:
            # год потерян: начинаем сценарий заново
            await self.start_from_menu(bot, chat_id, state)
            return

        file_name = (document.file_name or "").lower()
        if not file_name.endswith(".xlsx"):
            logger.info("Rejected import file %r: wrong extension", document.file_name)
            await send_flow_message(bot, chat_id, state, TEXT_WRONG_TYPE, kb_nav())
            return
        if document.file_size is not None and document.file_size > MAX_FILE_SIZE:
            logger.info("Rejected import file %r: %s bytes", document.file_name, document.file_size)
            await send_flow_message(bot, chat_id, state, TEXT_TOO_LARGE, kb_nav())
            return

        processing = await bot.send_message(chat_id=chat_id, text=TEXT_PROCESSING)
        try:
            file = await bot.get_file(document.file_id)
            stream = await bot.download_file(file.file_path)
            async with self.session_factory() as session:
                result = await ImportService(session).import_from_excel(stream, data.year)
        except Exception:
            logger.exception("Import of %r for %s failed", document.file_name, data.year)
            await safe_delete(bot, chat_id, processing.message_id)
            await send_flow_message(bot, chat_id, state, TEXT_IMPORT_FAILED, kb_nav())
            return

        await safe_delete(bot, chat_id, processing.message_id)
        logger.info(
            "Import of %r for %s done: %s budgets, %s warnings, %s errors",
            document.file_name, data.year, result.budgets_created, len(result.warnings), len(result.errors),
        )
        await self.main_menu(bot, chat_id, state, text=format_import_result(result, data.year))

    def matches_back(self, state: ConversationState) -> bool:
        return state.flow is Step

    async def handle_back(self, bot: Bot, chat_id: int, state: ConversationState) -> bool:
        if state.step is Step.WAIT_FILE:
            state.step = Step.ENTER_YEAR
            state.flow_data = ImportFlowData()
            await try_edit_or_send(bot, chat_id, state, TEXT_ASK_YEAR, kb_nav())
            return True
        # с шага ввода года в главное меню
        return False

    @staticmethod
    def _file_prompt(year: int | None) -> str:
        return (
            f"📅 Anno: <b>{year}</b>\n\n"
            "📎 Invia il file Excel (.xlsx) con categorie, sottocategorie, tag e budget mensili."
        )

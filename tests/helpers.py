"""Общие заготовки тестов: БД в памяти, бот-заглушка и апдейты Telegram."""
import asyncio
import itertools
from datetime import datetime
from io import BytesIO
from types import SimpleNamespace

import openpyxl
from aiogram.exceptions import TelegramBadRequest
from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.base import StorageKey
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.methods import EditMessageText
from aiogram.types import CallbackQuery, Chat, Document, Message, User, WebAppData

from expense_bot.db import create_schema, make_engine
from expense_bot.db import make_session_factory as db_session_factory
from expense_bot.flows import build_handlers
from expense_bot.flows.controller import FlowController
from expense_bot.states.conversation import ConversationState, load_conversation, save_conversation

BOT_ID = 42
CHAT_ID = 100
USER_ID = 1
USERNAME = "alice"

_ids = itertools.count(1000)
_engines = []


def run(coro):
    """asyncio.run, после которого закрываются все БД, созданные за прогон."""
    async def main():
        try:
            return await coro
        finally:
            while _engines:
                await _engines.pop().dispose()

    return asyncio.run(main())


async def make_session_factory():
    """Новая пустая БД в памяти на один тест. Вызывать внутри run()."""
    engine = make_engine("sqlite+aiosqlite:///:memory:")
    _engines.append(engine)
    await create_schema(engine)
    return db_session_factory(engine)


class FakeBot:
    """Записывает все вызовы API вместо отправки в Telegram."""

    def __init__(self, fail_edits: bool = False, file_bytes: bytes = b""):
        self.fail_edits = fail_edits
        self.file_bytes = file_bytes
        self.sent = []
        self.edited = []
        self.deleted = []
        self.answers = []
        self.texts = []
        self._message_ids = itertools.count(1)

    async def send_message(self, chat_id, text, reply_markup=None, parse_mode=None, **kwargs):
        msg = SimpleNamespace(message_id=next(self._message_ids), chat_id=chat_id, text=text, reply_markup=reply_markup)
        self.sent.append(msg)
        self.texts.append(text)
        return msg

    async def edit_message_text(self, text, chat_id=None, message_id=None, reply_markup=None, parse_mode=None, **kwargs):
        if self.fail_edits:
            raise TelegramBadRequest(
                method=EditMessageText(text=text, chat_id=chat_id, message_id=message_id),
                message="Bad Request: message can't be edited",
            )
        msg = SimpleNamespace(message_id=message_id, chat_id=chat_id, text=text, reply_markup=reply_markup)
        self.edited.append(msg)
        self.texts.append(text)
        return msg

    async def delete_message(self, chat_id, message_id, **kwargs):
        self.deleted.append(message_id)
        return True

    async def answer_callback_query(self, callback_query_id, text=None, **kwargs):
        self.answers.append((callback_query_id, text))
        return True

    async def get_file(self, file_id, **kwargs):
        return SimpleNamespace(file_id=file_id, file_path=f"documents/{file_id}.xlsx")

    async def download_file(self, file_path, **kwargs):
        return BytesIO(self.file_bytes)

    @property
    def last_text(self) -> str:
        return self.texts[-1] if self.texts else ""

    @property
    def last_sent(self):
        return self.sent[-1] if self.sent else None


def tg_user(username: str | None = USERNAME, user_id: int = USER_ID) -> User:
    return User(id=user_id, is_bot=False, first_name="Test", username=username)


def tg_chat() -> Chat:
    return Chat(id=CHAT_ID, type="private")


def text_message(text: str, username: str | None = USERNAME) -> Message:
    return Message(
        message_id=next(_ids),
        date=datetime.now(),
        chat=tg_chat(),
        from_user=tg_user(username),
        text=text,
    )


def document_message(file_name: str, file_size: int = 1024, username: str = USERNAME) -> Message:
    return Message(
        message_id=next(_ids),
        date=datetime.now(),
        chat=tg_chat(),
        from_user=tg_user(username),
        document=Document(file_id="file1", file_unique_id="u1", file_name=file_name, file_size=file_size),
    )


def web_app_message(data: str, username: str = USERNAME) -> Message:
    return Message(
        message_id=next(_ids),
        date=datetime.now(),
        chat=tg_chat(),
        from_user=tg_user(username),
        web_app_data=WebAppData(data=data, button_text="📆 Scegli altra data"),
    )


def callback_query(data: str, username: str | None = USERNAME) -> CallbackQuery:
    return CallbackQuery(
        id=str(next(_ids)),
        from_user=tg_user(username),
        chat_instance="ci",
        message=Message(message_id=1, date=datetime.now(), chat=tg_chat(), text="..."),
        data=data,
    )


def make_fsm(storage: MemoryStorage | None = None) -> FSMContext:
    key = StorageKey(bot_id=BOT_ID, chat_id=CHAT_ID, user_id=USER_ID)
    return FSMContext(storage=storage or MemoryStorage(), key=key)


def make_controller(session_factory, enabled_flows: str = "") -> FlowController:
    settings = SimpleNamespace(
        DATE_PICKER_URL="https://example.org/datepicker",
        enabled_flows=[f.strip() for f in enabled_flows.split(",") if f.strip()],
    )
    return FlowController(build_handlers(session_factory, settings))


class Conversation:
    """Один пользователь, разговаривающий с контроллером.

    Как и хендлеры роутера, каждое событие загружает состояние из FSMContext
    и сохраняет его обратно; `state` — снимок после последнего события.
    """

    def __init__(self, controller: FlowController, bot: FakeBot):
        self.controller = controller
        self.bot = bot
        self.fsm = make_fsm()
        self.state = ConversationState()

    async def _dispatch(self, handle, event) -> None:
        conv = await load_conversation(self.fsm)
        await handle(self.bot, event, conv)
        await save_conversation(self.fsm, conv)
        self.state = await load_conversation(self.fsm)

    async def say(self, text: str) -> None:
        await self._dispatch(self.controller.handle_message, text_message(text))

    async def press(self, data: str) -> None:
        await self._dispatch(self.controller.handle_callback, callback_query(data))

    async def send_document(self, file_name: str, file_size: int = 1024) -> None:
        await self._dispatch(self.controller.handle_message, document_message(file_name, file_size))

    async def web_app(self, data: str) -> None:
        await self._dispatch(self.controller.handle_message, web_app_message(data))


def make_xlsx(rows) -> BytesIO:
    """Книга с заголовком и строками в формате импорта (A..E)."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(["Categoria", "Sottocategoria", "Note", "Tag", "Budget"])
    for row in rows:
        ws.append(list(row))
    buf = BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf

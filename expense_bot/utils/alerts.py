"""
Алерты об ошибках бота в Telegram.

`TelegramAlertHandler` перехватывает записи лога уровня WARNING и выше
(неавторизованный доступ, падения сохранения и импорта, необработанные ошибки
апдейтов) и пересылает их в служебные чаты через отдельного бота.
Подключается вызовом `setup_alert_logging()` в `expense_bot/main.py`.

Переменные окружения:
- TELEGRAM_BOT_ALERT — токен бота для алертов.
- TELEGRAM_ALERT_CHAT_ID — чаты (user/group) через запятую, например "123456789,-1001234567890".
Если что-то из этого не задано, обработчик ничего не отправляет.
"""
import asyncio
import logging
from typing import List, Optional, Set

from aiogram import Bot

from expense_bot.config import settings

ALERT_MAX_LENGTH = 4000


class TelegramAlertHandler(logging.Handler):
    """Обработчик логов, отправляющий записи в Telegram через бота алертов.

    Отправка асинхронная: запись ставится задачей в текущий event loop.
    Вне event loop (например, при старте до asyncio.run) запись пропускается.
    """

    def __init__(
        self,
        level: int = logging.WARNING,
        token: Optional[str] = None,
        chat_ids: Optional[str] = None,
    ) -> None:
        super().__init__(level=level)
        self._token = token if token is not None else settings.TELEGRAM_BOT_ALERT
        self._chat_ids = self._parse_chat_ids(chat_ids if chat_ids is not None else settings.TELEGRAM_ALERT_CHAT_ID)
        self._bot: Optional[Bot] = Bot(token=self._token) if self._token else None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self._bot is not None and bool(self._chat_ids)

    @staticmethod
    def _parse_chat_ids(raw: Optional[str]) -> List[int]:
        ids: List[int] = []
        for part in (raw or "").split(","):
            part = part.strip()
            if part.lstrip("-").isdigit():
                ids.append(int(part))
        return ids

    def emit(self, record: logging.LogRecord) -> None:
        if not self.enabled:
            return
        # собственные ошибки aiogram при отправке алерта не пересылаем, иначе зациклимся
        if record.name.startswith("aiogram"):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        try:
            msg = self.format(record)
        except Exception:
            self.handleError(record)
            return
        task = loop.create_task(self._send(msg[:ALERT_MAX_LENGTH]))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, text: str) -> None:
        assert self._bot is not None
        for chat_id in self._chat_ids:
            try:
                await self._bot.send_message(chat_id=chat_id, text=f"🚨 Alert:\n{text}")
            except Exception as e:
                # через logging нельзя: запись снова попадёт в этот обработчик
                print(f"[alerts] failed to deliver alert to {chat_id}: {e}")


def setup_alert_logging() -> None:
    """Подключает `TelegramAlertHandler` к корневому логгеру на уровне WARNING.

    Функцию можно вызывать многократно — дубликаты обработчика не будут добавлены.
    """
    root = logging.getLogger()
    if any(isinstance(h, TelegramAlertHandler) for h in root.handlers):
        return

    handler = TelegramAlertHandler(level=logging.WARNING)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root.addHandler(handler)

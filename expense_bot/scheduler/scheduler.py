import logging
from typing import Awaitable, Callable

import aiocron
from aiogram import Bot
from sqlalchemy.ext.asyncio import AsyncSession

from expense_bot.db import get_session
from expense_bot.repo.repo import list_report_chat_ids

logger = logging.getLogger(__name__)


def schedule_report_dispatch(
    *,
    bot: Bot,
    report_fn: Callable[[AsyncSession], Awaitable[str]],
    cron: str,
    report_name: str = "Unnamed report"
) -> aiocron.Cron | None:
    """
    Планировщик рассылки отчёта всем известным чатам по расписанию.

    :param bot: Telegram bot instance
    :param report_fn: Функция, возвращающая текст отчёта по сессии БД
    :param cron: Cron-выражение (пример: '0 9 1 * *'). Пустая строка — рассылка выключена
    :param report_name: Имя отчёта (для логов)
    """
    if not cron:
        logger.info("Report %r disabled", report_name)
        return None

    async def cron_task():
        await dispatch_report(bot=bot, report_fn=report_fn, report_name=report_name)

    job = aiocron.crontab(cron, func=cron_task, start=True)
    logger.info("Report %r scheduled with cron %r", report_name, cron)
    return job


async def dispatch_report(
    *,
    bot: Bot,
    report_fn: Callable[[AsyncSession], Awaitable[str]],
    report_name: str,
) -> int:
    """Один прогон рассылки. Ошибка по одному чату не прерывает рассылку остальным.

    Returns:
        Количество чатов, которым отчёт доставлен
    """
    sent = 0
    session = None
    try:
        session = await get_session()
        chat_ids = await list_report_chat_ids(session)
        report = await report_fn(session)

        for chat_id in chat_ids:
            try:
                await bot.send_message(chat_id=chat_id, text=report, parse_mode="HTML")
                sent += 1
            except Exception:
                logger.exception("Failed to send %s to chat %s", report_name, chat_id)
    except Exception:
        logger.exception("Report dispatch %r failed", report_name)
    finally:
        if session:
            await session.close()

    logger.info("Report %r sent to %s chats", report_name, sent)
    return sent

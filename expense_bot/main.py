import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage, SimpleEventIsolation

from expense_bot.config import settings
from expense_bot.db import SessionLocal, init_db
from expense_bot.flows import build_handlers
from expense_bot.flows.controller import FlowController
from expense_bot.routers.flow_router import r as flow_router
from expense_bot.routers.middlewares import AccessMiddleware
from expense_bot.scheduler.scheduler import schedule_report_dispatch
from expense_bot.services.budget_report import build_previous_month_report
from expense_bot.utils.alerts import setup_alert_logging

logger = logging.getLogger(__name__)


async def main() -> None:
    """Главная точка входа бота учёта расходов.

    Последовательно выполняет:
      1. Настройку логирования и алертов в Telegram.
      2. Инициализацию базы данных (`init_db`).
      3. Сборку сценариев (`build_handlers`) и диспетчера сценариев (`FlowController`).
      4. Создание `Dispatcher` с зависимостями и middleware доступа.
      5. Планирование ежемесячного отчёта по бюджету.
      6. Запуск цикла обработки сообщений (`start_polling`).
    """
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    setup_alert_logging()

    await init_db()
    bot = Bot(token=settings.TELEGRAM_BOT_TOKEN)

    handlers = build_handlers(SessionLocal, settings)
    controller = FlowController(handlers)
    logger.info("Enabled flows: %s", ", ".join(h.name for h in handlers))

    # состояние диалогов в FSM storage; апдейты одного пользователя идут по очереди
    # controller/session_factory попадают в хендлеры как именованные аргументы
    dp = Dispatcher(
        storage=MemoryStorage(),
        events_isolation=SimpleEventIsolation(),
        controller=controller,
        session_factory=SessionLocal,
    )
    access = AccessMiddleware(settings.allowed_usernames)
    dp.message.outer_middleware(access)
    dp.callback_query.outer_middleware(access)
    dp.include_router(router=flow_router)

    schedule_report_dispatch(
        bot=bot,
        report_fn=build_previous_month_report,
        cron=settings.BUDGET_REPORT_CRON,
        report_name="📊 Monthly budget report",
    )

    await bot.delete_webhook(drop_pending_updates=True)
    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await bot.session.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from expense_bot.config import Settings
from expense_bot.flows.base import FlowHandler
from expense_bot.flows.import_budget import ImportFlowHandler
from expense_bot.flows.insert_expense import InsertExpenseFlowHandler
from expense_bot.flows.settings import SettingsFlowHandler
from expense_bot.flows.settings_expenses import ExpenseSettingsFlowHandler

logger = logging.getLogger(__name__)


def build_handlers(session_factory: async_sessionmaker[AsyncSession], settings: Settings) -> list[FlowHandler]:
    """Создаёт сценарии в порядке регистрации, отбрасывая выключенные в ENABLED_FLOWS.

    Порядок важен: при совпадении предикатов событие получает первый сценарий.
    """
    handlers: list[FlowHandler] = [
        InsertExpenseFlowHandler(session_factory, settings.DATE_PICKER_URL),
        ImportFlowHandler(session_factory),
        SettingsFlowHandler(session_factory),
        ExpenseSettingsFlowHandler(session_factory),
    ]
    enabled = settings.enabled_flows
    if not enabled:
        return handlers

    unknown = set(enabled) - {h.name for h in handlers}
    if unknown:
        logger.warning("Unknown flows in ENABLED_FLOWS: %s", ", ".join(sorted(unknown)))
    return [h for h in handlers if h.name in enabled]

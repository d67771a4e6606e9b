from dotenv import load_dotenv
load_dotenv()

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


def _split_csv(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings(BaseSettings):
    """Конфигурация бота учёта расходов.

    Значения подгружаются один раз при старте из окружения или файла `.env`
    и после этого не меняются (модель заморожена).

    Атрибуты:
        TELEGRAM_BOT_TOKEN (str): Токен Telegram-бота.
        DB_URL (str): URL подключения к базе (SQLite через aiosqlite или PostgreSQL через asyncpg).
        ALLOWED_USERNAMES (str): Разрешённые username через запятую. Пусто — доступ открыт всем.
        DATE_PICKER_URL (str): URL WebApp-календаря для выбора даты расхода.
        ENABLED_FLOWS (str): Имена включённых сценариев через запятую. Пусто — включены все.
        BUDGET_REPORT_CRON (str): Cron-выражение ежемесячного отчёта по бюджету. Пусто — отчёт выключен.
        TELEGRAM_BOT_ALERT (str | None): Токен отдельного бота для алертов.
        TELEGRAM_ALERT_CHAT_ID (str | None): Чаты для алертов через запятую.
        LOG_LEVEL (str): Уровень логирования.
    """
    TELEGRAM_BOT_TOKEN: str = Field(..., alias="TELEGRAM_BOT_TOKEN")
    DB_URL: str = Field(default="sqlite+aiosqlite:///data/expenses.db", alias="DB_URL")
    ALLOWED_USERNAMES: str = Field(default="", alias="ALLOWED_USERNAMES")
    DATE_PICKER_URL: str = Field(default="https://example.org/datepicker", alias="DATE_PICKER_URL")
    ENABLED_FLOWS: str = Field(default="", alias="ENABLED_FLOWS")
    BUDGET_REPORT_CRON: str = Field(default="0 9 1 * *", alias="BUDGET_REPORT_CRON")
    TELEGRAM_BOT_ALERT: str | None = Field(default=None, alias="TELEGRAM_BOT_ALERT")
    TELEGRAM_ALERT_CHAT_ID: str | None = Field(default=None, alias="TELEGRAM_ALERT_CHAT_ID")
    LOG_LEVEL: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    @property
    def allowed_usernames(self) -> list[str]:
        # username в Telegram регистронезависимы, "@" в начале допускаем
        return [name.lstrip("@").lower() for name in _split_csv(self.ALLOWED_USERNAMES)]

    @property
    def enabled_flows(self) -> list[str]:
        return [name.lower() for name in _split_csv(self.ENABLED_FLOWS)]

settings = Settings()

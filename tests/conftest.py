import os

# настройки читаются при импорте expense_bot.config, поэтому окружение задаём до любых импортов пакета
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:TEST")
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ALLOWED_USERNAMES", "")
os.environ.setdefault("ENABLED_FLOWS", "")
os.environ.setdefault("BUDGET_REPORT_CRON", "")
os.environ["TELEGRAM_BOT_ALERT"] = ""
os.environ["TELEGRAM_ALERT_CHAT_ID"] = ""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from aiogram import html

MIN_YEAR = 2020
MAX_YEAR = 2100

DATE_INPUT_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d.%m.%Y")

# Numeric(12, 2): 10 цифр до запятой, 2 после
CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("1e10")


def fmt_money(amount: Decimal) -> str:
    """Форматирование суммы для сообщений бота: всегда евро и два знака после точки.

    Args:
        amount (Decimal): Сумма расхода или бюджета.

    Returns:
        str: Строка вида '€3.50'.
    """
    return f"€{amount:.2f}"


def fmt_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def parse_amount(s: str) -> Decimal | None:
    """Парсинг суммы, введённой пользователем в чат.

    Пробелы убираются, запятая считается десятичным разделителем.
    Сумма должна помещаться в колонку Numeric(12, 2) без округления:
    не больше двух знаков после запятой и не больше 10 цифр до неё.

    Args:
        s (str): Строка с числовым значением (ввод пользователя).

    Returns:
        Decimal | None: Сумма, приведённая к двум знакам, если ввод корректный
                        и > 0, иначе None (например, '0,001' или мусор).
    """
    if not s:
        return None
    t = s.replace(" ", "").replace(",", ".")
    try:
        v = Decimal(t)
    except (InvalidOperation, ValueError):
        return None
    if not v.is_finite() or v <= 0 or v >= MAX_AMOUNT:
        return None
    cents = v.quantize(CENT)
    if cents != v:
        return None
    return cents


def parse_year(s: str) -> int | None:
    """Год бюджета для импорта: целое число в диапазоне [2020, 2100]."""
    try:
        year = int((s or "").strip())
    except ValueError:
        return None
    if MIN_YEAR <= year <= MAX_YEAR:
        return year
    return None


def parse_date(s: str) -> date | None:
    """Дата из WebApp-календаря (ISO) или введённая руками (дд/мм/гггг, дд.мм.гггг)."""
    s = (s or "").strip()
    if not s:
        return None
    for fmt in DATE_INPUT_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    # WebApp может прислать полную ISO-строку с временем
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        return None


def breadcrumb(*parts: str | None, bold: bool = False) -> str:
    """Путь вида 'Категория > Подкатегория' с экранированием под HTML."""
    items = [html.quote(p) for p in parts if p]
    if bold:
        items = [f"<b>{p}</b>" for p in items]
    return " &gt; ".join(items)

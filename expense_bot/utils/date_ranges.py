from datetime import date


def get_month_range(year: int, month: int) -> tuple[date, date]:
    """Возвращает первый день месяца и первый день следующего месяца (полуинтервал)."""
    start = date(year, month, 1)
    if month == 12:
        end = date(year + 1, 1, 1)
    else:
        end = date(year, month + 1, 1)
    return start, end


def get_previous_month(today: date | None = None) -> tuple[int, int]:
    # Отчёт уходит 1-го числа, поэтому считаем прошлый месяц
    today = today or date.today()
    if today.month == 1:
        return today.year - 1, 12
    return today.year, today.month - 1

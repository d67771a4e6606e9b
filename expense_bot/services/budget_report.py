"""
Месячный отчёт «потрачено / бюджет» по категориям.
"""
from decimal import Decimal
from typing import Dict

from aiogram import html
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from expense_bot.db.models import Budget, Category, Expense, SubCategory
from expense_bot.utils.date_ranges import get_month_range, get_previous_month
from expense_bot.utils.formatting import fmt_money

MONTH_NAMES = [
    "gennaio", "febbraio", "marzo", "aprile", "maggio", "giugno",
    "luglio", "agosto", "settembre", "ottobre", "novembre", "dicembre",
]


async def spent_by_category(session: AsyncSession, year: int, month: int) -> Dict[str, Decimal]:
    start, end = get_month_range(year, month)
    result = await session.execute(
        select(Category.name, func.sum(Expense.amount))
        .join(SubCategory, SubCategory.id == Expense.subcategory_id)
        .join(Category, Category.id == SubCategory.category_id)
        .where(Expense.date >= start, Expense.date < end)
        .group_by(Category.name)
    )
    return {name: Decimal(str(total or 0)) for name, total in result.all()}


async def budget_by_category(session: AsyncSession, year: int, month: int) -> Dict[str, Decimal]:
    result = await session.execute(
        select(Category.name, func.sum(Budget.amount))
        .join(SubCategory, SubCategory.id == Budget.subcategory_id)
        .join(Category, Category.id == SubCategory.category_id)
        .where(Budget.year == year, Budget.month == month)
        .group_by(Category.name)
    )
    return {name: Decimal(str(total or 0)) for name, total in result.all()}


async def build_budget_report(session: AsyncSession, year: int, month: int) -> str:
    """
    Формирует текст отчёта за месяц.

    Args:
        session: Сессия БД
        year: Год
        month: Месяц (1-12)

    Returns:
        HTML-текст: по строке на категорию и итог
    """
    spent = await spent_by_category(session, year, month)
    budgets = await budget_by_category(session, year, month)
    title = f"📊 <b>Riepilogo {MONTH_NAMES[month - 1]} {year}</b>"

    if not spent and not budgets:
        return f"{title}\n\nNessuna spesa registrata."

    lines = [title, ""]
    for name in sorted(set(spent) | set(budgets)):
        s = spent.get(name, Decimal("0"))
        b = budgets.get(name)
        if b:
            mark = "🔴" if s > b else "🟢"
            lines.append(f"{mark} {html.quote(name)}: {fmt_money(s)} / {fmt_money(b)}")
        else:
            lines.append(f"⚪ {html.quote(name)}: {fmt_money(s)}")

    total_spent = sum(spent.values(), Decimal("0"))
    total_budget = sum(budgets.values(), Decimal("0"))
    lines.append("")
    if total_budget:
        lines.append(f"<b>Totale:</b> {fmt_money(total_spent)} / {fmt_money(total_budget)}")
    else:
        lines.append(f"<b>Totale:</b> {fmt_money(total_spent)}")
    return "\n".join(lines)


async def build_previous_month_report(session: AsyncSession) -> str:
    """Отчёт за прошлый месяц, для рассылки по расписанию."""
    year, month = get_previous_month()
    return await build_budget_report(session, year, month)

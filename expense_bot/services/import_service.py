"""
Импорт справочника и бюджетов из Excel (.xlsx).

Формат листа (первый лист книги, первая строка — заголовок):
  A — категория (пустая ячейка: категория из предыдущей строки)
  B — подкатегория
  C — не используется
  D — теги через запятую
  E — месячный бюджет

Для каждой строки с бюджетом создаётся по одному бюджету на каждый месяц года.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import BinaryIO, List, Optional, Tuple

import openpyxl
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_bot.db.models import Budget
from expense_bot.services.category_service import CategoryService

logger = logging.getLogger(__name__)

MONTHS = range(1, 13)


@dataclass
class ImportRow:
    row: int
    category: str
    subcategory: str
    tags: List[str]
    budget: Optional[Decimal]


@dataclass
class ImportResult:
    categories_created: int = 0
    subcategories_created: int = 0
    tags_created: int = 0
    budgets_created: int = 0
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _parse_budget(value) -> Optional[Decimal]:
    """Бюджет из ячейки: число или строка вида '€ 1.200,50'. Пусто/0 — без бюджета.

    Raises:
        ValueError: Значение не число или отрицательное
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(value)
    if isinstance(value, (int, float)):
        amount = Decimal(str(value))
    else:
        text = str(value).replace("€", "").replace(" ", "").strip()
        if not text:
            return None
        if "," in text:
            # формат 1.200,50
            text = text.replace(".", "").replace(",", ".")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ValueError(value)
    if not amount.is_finite() or amount < 0:
        raise ValueError(value)
    if amount == 0:
        return None
    return amount


def read_rows(stream: BinaryIO) -> Tuple[List[ImportRow], List[str], List[str]]:
    """Читает строки листа. Блокирующая функция, вызывать через to_thread.

    Returns:
        Строки для импорта, предупреждения и ошибки по строкам
    """
    rows: List[ImportRow] = []
    warnings: List[str] = []
    errors: List[str] = []

    wb = openpyxl.load_workbook(stream, read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0]
        current_category = ""
        for idx, values in enumerate(ws.iter_rows(min_row=2, max_col=5, values_only=True), start=2):
            values = tuple(values) + (None,) * (5 - len(values))
            category_cell, subcategory_cell, _, tags_cell, budget_cell = values[:5]

            category = _cell_text(category_cell) or current_category
            subcategory = _cell_text(subcategory_cell)

            if not any(_cell_text(v) for v in values):
                continue
            if _cell_text(category_cell):
                current_category = category
            if not category:
                warnings.append(f"Riga {idx}: categoria mancante, riga ignorata")
                continue
            if not subcategory:
                warnings.append(f"Riga {idx}: sottocategoria mancante, riga ignorata")
                continue

            try:
                budget = _parse_budget(budget_cell)
            except ValueError:
                errors.append(f"Riga {idx}: budget non valido '{_cell_text(budget_cell)}'")
                budget = None

            tags = [t.strip() for t in _cell_text(tags_cell).split(",") if t.strip()]
            rows.append(ImportRow(idx, category, subcategory, tags, budget))
    finally:
        wb.close()
    return rows, warnings, errors


class ImportService:
    """Импорт категорий, подкатегорий, тегов и бюджетов из Excel."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.categories = CategoryService(session)

    async def import_from_excel(self, stream: BinaryIO, year: int) -> ImportResult:
        """
        Разбирает файл и создаёт недостающие записи.

        Args:
            stream: Содержимое .xlsx
            year: Год, на который создаются месячные бюджеты

        Returns:
            Счётчики созданных записей, предупреждения и ошибки по строкам
        """
        rows, warnings, errors = await asyncio.to_thread(read_rows, stream)
        result = ImportResult(warnings=warnings, errors=errors)

        for row in rows:
            try:
                await self._import_row(row, year, result)
            except ValueError as e:
                await self.session.rollback()
                result.errors.append(f"Riga {row.row}: {e}")

        logger.info(
            "Import for %s: %s rows, %s warnings, %s errors",
            year, len(rows), len(result.warnings), len(result.errors),
        )
        return result

    async def _import_row(self, row: ImportRow, year: int, result: ImportResult) -> None:
        category, created = await self.categories.create_category(row.category)
        result.categories_created += created

        subcategory, created = await self.categories.create_subcategory(row.subcategory, category.id)
        result.subcategories_created += created

        for tag_name in row.tags:
            _, created = await self.categories.create_tag(tag_name, subcategory.id)
            result.tags_created += created

        if row.budget is None:
            return

        existing_months = set((await self.session.execute(
            select(Budget.month).where(Budget.subcategory_id == subcategory.id, Budget.year == year)
        )).scalars().all())
        for month in MONTHS:
            if month in existing_months:
                continue
            self.session.add(Budget(subcategory_id=subcategory.id, year=year, month=month, amount=row.budget))
            result.budgets_created += 1
        await self.session.commit()

        if existing_months:
            result.warnings.append(
                f"Riga {row.row}: budget {year} per {row.category} > {row.subcategory} già presente, mantenuto"
            )

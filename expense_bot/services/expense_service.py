import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from expense_bot.db.models import Expense, SubCategory, Tag

logger = logging.getLogger(__name__)


class ExpenseService:
    """Запись расходов."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_expense(
        self,
        subcategory_id: int,
        amount: Decimal,
        description: str,
        notes: str | None,
        performed_by: str,
        tag_id: int | None,
        expense_date: date,
    ) -> Expense:
        """
        Сохраняет расход и сразу коммитит его.

        Args:
            subcategory_id: Подкатегория расхода
            amount: Сумма (> 0)
            description: Описание
            notes: Необязательная заметка
            performed_by: Кто потратил (username)
            tag_id: Необязательный тег, обязательно той же подкатегории
            expense_date: Дата расхода

        Raises:
            ValueError: Подкатегория/тег не найдены, тег из другой подкатегории или сумма <= 0
        """
        if amount is None or amount <= 0:
            raise ValueError("Amount must be positive")
        if not description:
            raise ValueError("Description must not be empty")

        subcategory = await self.session.get(SubCategory, subcategory_id)
        if subcategory is None:
            raise ValueError(f"Subcategory {subcategory_id} does not exist")

        if tag_id is not None:
            tag = await self.session.get(Tag, tag_id)
            if tag is None:
                raise ValueError(f"Tag {tag_id} does not exist")
            if tag.subcategory_id != subcategory_id:
                raise ValueError(f"Tag {tag_id} does not belong to subcategory {subcategory_id}")

        expense = Expense(
            subcategory_id=subcategory_id,
            tag_id=tag_id,
            amount=amount,
            description=description,
            notes=notes,
            performed_by=performed_by,
            date=expense_date,
        )
        self.session.add(expense)
        await self.session.commit()
        logger.info(
            "Expense %s saved: %s %s (subcategory=%s, tag=%s, date=%s, by=%s)",
            expense.id, amount, description, subcategory_id, tag_id, expense_date, performed_by,
        )
        return expense

"""
Сервис справочника расходов: категории, подкатегории и теги.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_bot.db.models import Category, SubCategory, Tag

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 64


class CategoryService:
    """Чтение и создание категорий, подкатегорий и тегов.

    Все методы create_* идемпотентны: если запись с таким именем уже есть
    у того же родителя, возвращается существующая и флаг `created=False`.
    Каждое создание коммитится сразу.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_categories(self) -> List[Category]:
        result = await self.session.execute(select(Category).order_by(Category.name))
        return list(result.scalars().all())

    async def get_category(self, category_id: int) -> Optional[Category]:
        return await self.session.get(Category, category_id)

    async def get_subcategory(self, subcategory_id: int) -> Optional[SubCategory]:
        return await self.session.get(SubCategory, subcategory_id)

    async def get_tag(self, tag_id: int) -> Optional[Tag]:
        return await self.session.get(Tag, tag_id)

    async def list_subcategories(self, category_id: int) -> List[SubCategory]:
        result = await self.session.execute(
            select(SubCategory)
            .where(SubCategory.category_id == category_id)
            .order_by(SubCategory.name)
        )
        return list(result.scalars().all())

    async def list_tags(self, subcategory_id: int) -> List[Tag]:
        result = await self.session.execute(
            select(Tag)
            .where(Tag.subcategory_id == subcategory_id)
            .order_by(Tag.name)
        )
        return list(result.scalars().all())

    async def create_category(self, name: str) -> Tuple[Category, bool]:
        """
        Создаёт категорию, если категории с таким именем ещё нет.

        Args:
            name: Название категории (пробелы по краям обрезаются)

        Returns:
            Кортеж (категория, создана ли она сейчас)
        """
        name = _clean_name(name)
        existing = (await self.session.execute(
            select(Category).where(Category.name == name)
        )).scalar_one_or_none()
        if existing is not None:
            return existing, False

        category = Category(name=name)
        self.session.add(category)
        await self.session.commit()
        logger.info("Created category %r (id=%s)", name, category.id)
        return category, True

    async def create_subcategory(self, name: str, category_id: int) -> Tuple[SubCategory, bool]:
        """
        Создаёт подкатегорию в категории, если такой там ещё нет.

        Raises:
            ValueError: Категория не найдена
        """
        name = _clean_name(name)
        if await self.get_category(category_id) is None:
            raise ValueError(f"Category {category_id} does not exist")

        existing = (await self.session.execute(
            select(SubCategory).where(SubCategory.name == name, SubCategory.category_id == category_id)
        )).scalar_one_or_none()
        if existing is not None:
            return existing, False

        subcategory = SubCategory(name=name, category_id=category_id)
        self.session.add(subcategory)
        await self.session.commit()
        logger.info("Created subcategory %r in category %s (id=%s)", name, category_id, subcategory.id)
        return subcategory, True

    async def create_tag(self, name: str, subcategory_id: int) -> Tuple[Tag, bool]:
        name = _clean_name(name)
        if await self.get_subcategory(subcategory_id) is None:
            raise ValueError(f"Subcategory {subcategory_id} does not exist")

        existing = (await self.session.execute(
            select(Tag).where(Tag.name == name, Tag.subcategory_id == subcategory_id)
        )).scalar_one_or_none()
        if existing is not None:
            return existing, False

        tag = Tag(name=name, subcategory_id=subcategory_id)
        self.session.add(tag)
        await self.session.commit()
        logger.info("Created tag %r in subcategory %s (id=%s)", name, subcategory_id, tag.id)
        return tag, True


def _clean_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValueError("Name must not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise ValueError(f"Name is longer than {MAX_NAME_LENGTH} characters")
    return name

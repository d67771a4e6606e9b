
import pytest

from expense_bot.services.category_service import CategoryService
from helpers import make_session_factory, run


def test_create_category_is_idempotent():
    async def scenario():
        sf = await make_session_factory()
        async with sf() as session:
            service = CategoryService(session)
            first, created = await service.create_category("  Food ")
            assert created and first.name == "Food"
            second, created = await service.create_category("Food")
            assert not created and second.id == first.id
            assert [c.name for c in await service.list_categories()] == ["Food"]

    run(scenario())


def test_lists_are_alphabetical():
    async def scenario():
        sf = await make_session_factory()
        async with sf() as session:
            service = CategoryService(session)
            food, _ = await service.create_category("Food")
            await service.create_category("Casa")
            await service.create_subcategory("Restaurants", food.id)
            groceries, _ = await service.create_subcategory("Groceries", food.id)
            await service.create_tag("Milk", groceries.id)
            await service.create_tag("Bread", groceries.id)

            assert [c.name for c in await service.list_categories()] == ["Casa", "Food"]
            assert [s.name for s in await service.list_subcategories(food.id)] == ["Groceries", "Restaurants"]
            assert [t.name for t in await service.list_tags(groceries.id)] == ["Bread", "Milk"]

    run(scenario())


def test_same_subcategory_name_in_different_categories():
    async def scenario():
        sf = await make_session_factory()
        async with sf() as session:
            service = CategoryService(session)
            food, _ = await service.create_category("Food")
            home, _ = await service.create_category("Home")
            a, created_a = await service.create_subcategory("Other", food.id)
            b, created_b = await service.create_subcategory("Other", home.id)
            assert created_a and created_b and a.id != b.id
            again, created = await service.create_subcategory("Other", food.id)
            assert not created and again.id == a.id

    run(scenario())


def test_missing_parent_and_empty_name_rejected():
    async def scenario():
        sf = await make_session_factory()
        async with sf() as session:
            service = CategoryService(session)
            with pytest.raises(ValueError):
                await service.create_subcategory("Groceries", 999)
            with pytest.raises(ValueError):
                await service.create_tag("Milk", 999)
            with pytest.raises(ValueError):
                await service.create_category("   ")
            with pytest.raises(ValueError):
                await service.create_category("x" * 65)

    run(scenario())


def test_get_unknown_returns_none():
    async def scenario():
        sf = await make_session_factory()
        async with sf() as session:
            service = CategoryService(session)
            assert await service.get_category(1) is None
            assert await service.get_subcategory(1) is None
            assert await service.get_tag(1) is None

    run(scenario())

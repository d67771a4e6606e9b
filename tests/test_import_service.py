from decimal import Decimal
from io import BytesIO

import pytest
from sqlalchemy import func, select

from expense_bot.db.models import Budget
from expense_bot.services.category_service import CategoryService
from expense_bot.services.import_service import ImportService, _parse_budget, read_rows
from helpers import make_session_factory, make_xlsx, run

SAMPLE = [
    ("Food", "Groceries", None, "Milk, Bread", 300),
    (None, "Restaurants", None, None, "€ 1.200,50"),
    ("Casa", "Bollette", None, "Luce,Gas", None),
    ("Casa", None, None, None, 50),
    ("Svago", "Cinema", None, None, "tanto"),
]


def test_parse_budget_values():
    assert _parse_budget(None) is None
    assert _parse_budget(0) is None
    assert _parse_budget("") is None
    assert _parse_budget(300) == Decimal("300")
    assert _parse_budget(12.5) == Decimal("12.5")
    assert _parse_budget("€ 1.200,50") == Decimal("1200.50")
    with pytest.raises(ValueError):
        _parse_budget("tanto")
    with pytest.raises(ValueError):
        _parse_budget(-10)


def test_read_rows_inherits_category_and_collects_problems():
    rows, warnings, errors = read_rows(make_xlsx(SAMPLE))

    assert [(r.category, r.subcategory) for r in rows] == [
        ("Food", "Groceries"),
        ("Food", "Restaurants"),
        ("Casa", "Bollette"),
        ("Svago", "Cinema"),
    ]
    assert rows[0].tags == ["Milk", "Bread"]
    assert rows[1].budget == Decimal("1200.50")
    assert rows[2].budget is None
    assert rows[3].budget is None
    assert warnings == ["Riga 5: sottocategoria mancante, riga ignorata"]
    assert errors == ["Riga 6: budget non valido 'tanto'"]


def test_import_creates_taxonomy_and_monthly_budgets():
    async def scenario():
        sf = await make_session_factory()
        async with sf() as session:
            result = await ImportService(session).import_from_excel(make_xlsx(SAMPLE), 2024)

        assert result.categories_created == 3
        assert result.subcategories_created == 4
        assert result.tags_created == 4
        assert result.budgets_created == 24
        assert len(result.errors) == 1

        async with sf() as session:
            service = CategoryService(session)
            assert [c.name for c in await service.list_categories()] == ["Casa", "Food", "Svago"]
            count = (await session.execute(
                select(func.count()).select_from(Budget).where(Budget.year == 2024)
            )).scalar_one()
            assert count == 24

    run(scenario())


def test_second_import_keeps_existing_budgets():
    async def scenario():
        sf = await make_session_factory()
        rows = [("Food", "Groceries", None, "Milk", 300)]
        async with sf() as session:
            await ImportService(session).import_from_excel(make_xlsx(rows), 2024)
        async with sf() as session:
            result = await ImportService(session).import_from_excel(
                make_xlsx([("Food", "Groceries", None, "Milk", 500)]), 2024
            )

        assert result.categories_created == 0
        assert result.subcategories_created == 0
        assert result.tags_created == 0
        assert result.budgets_created == 0
        assert any("già presente" in w for w in result.warnings)

        async with sf() as session:
            amounts = (await session.execute(select(Budget.amount).distinct())).scalars().all()
            assert amounts == [Decimal("300")]

    run(scenario())


def test_broken_file_raises():
    async def scenario():
        sf = await make_session_factory()
        async with sf() as session:
            with pytest.raises(Exception):
                await ImportService(session).import_from_excel(BytesIO(b"not an excel file"), 2024)

    run(scenario())

from datetime import date
from decimal import Decimal
import html

from expense_bot.utils.date_ranges import get_month_range, get_previous_month
from expense_bot.utils.formatting import breadcrumb, fmt_date, fmt_money, parse_amount, parse_date, parse_year


def test_parse_amount_accepts_dot_and_comma():
    assert parse_amount("12.50") == Decimal("12.50")
    assert parse_amount("3,50") == Decimal("3.50")
    assert parse_amount(" 1 200,5 ") == Decimal("1200.5")


def test_parse_amount_rejects_garbage_zero_and_negative():
    for raw in ("", "abc", "0", "-5", "0,00", "NaN", "Infinity", "1.2.3"):
        assert parse_amount(raw) is None, raw


def test_parse_amount_fits_two_decimal_column():
    assert parse_amount("12.5") == Decimal("12.50")
    assert parse_amount("9999999999,99") == Decimal("9999999999.99")
    for raw in ("0,001", "1,234", "3.505", "1234567890123", "10000000000"):
        assert parse_amount(raw) is None, raw


def test_parse_year_range():
    assert parse_year("2024") == 2024
    assert parse_year(" 2020 ") == 2020
    assert parse_year("2100") == 2100
    assert parse_year("2019") is None
    assert parse_year("2101") is None
    assert parse_year("venti") is None
    assert parse_year("") is None


def test_parse_date_formats():
    assert parse_date("2024-03-05") == date(2024, 3, 5)
    assert parse_date("05/03/2024") == date(2024, 3, 5)
    assert parse_date("05.03.2024") == date(2024, 3, 5)
    assert parse_date("2024-03-05T10:20:00") == date(2024, 3, 5)
    assert parse_date("31/02/2024") is None
    assert parse_date("ieri") is None


def test_fmt_money_two_decimals():
    assert fmt_money(Decimal("3.5")) == "€3.50"
    assert fmt_money(Decimal("12")) == "€12.00"


def test_fmt_date():
    assert fmt_date(date(2024, 1, 9)) == "09/01/2024"


def test_breadcrumb_escapes_html():
    assert html.unescape(breadcrumb("Food", "Groceries")) == "Food > Groceries"
    assert "&lt;b&gt;" in breadcrumb("<b>", "x")
    assert breadcrumb("Food", None) == "Food"


def test_month_range_december():
    assert get_month_range(2024, 12) == (date(2024, 12, 1), date(2025, 1, 1))
    assert get_month_range(2024, 2) == (date(2024, 2, 1), date(2024, 3, 1))


def test_previous_month():
    assert get_previous_month(date(2024, 1, 1)) == (2023, 12)
    assert get_previous_month(date(2024, 7, 15)) == (2024, 6)

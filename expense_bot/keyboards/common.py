from aiogram.types import (
    InlineKeyboardMarkup, InlineKeyboardButton, KeyboardButton, ReplyKeyboardMarkup, WebAppInfo
)
from aiogram.utils.keyboard import InlineKeyboardBuilder

# Формат callback_data: "<name>:<data>"
CALLBACK_SEPARATOR = ":"
CALLBACK_MAIN_MENU = "main"
CALLBACK_BACK = "back"

BUTTON_MAIN_MENU_TEXT = "🏠 Menu principale"
BUTTON_BACK_TEXT = "◀️ Indietro"


def callback(name: str, data: object = "") -> str:
    return f"{name}{CALLBACK_SEPARATOR}{data}"


def parse_callback(raw: str) -> tuple[str, str]:
    name, _, data = (raw or "").partition(CALLBACK_SEPARATOR)
    return name, data


def button(text: str, name: str, data: object = "") -> InlineKeyboardButton:
    return InlineKeyboardButton(text=text, callback_data=callback(name, data))


def main_menu_button() -> InlineKeyboardButton:
    return InlineKeyboardButton(text=BUTTON_MAIN_MENU_TEXT, callback_data=CALLBACK_MAIN_MENU)


def back_button() -> InlineKeyboardButton:
    return InlineKeyboardButton(text=BUTTON_BACK_TEXT, callback_data=CALLBACK_BACK)


def kb_list(
    items: list[tuple[str, object]],
    name: str,
    *,
    extra_rows: list[list[InlineKeyboardButton]] | None = None,
    back: bool = False,
    main_menu: bool = False,
) -> InlineKeyboardMarkup:
    """Вертикальный список кнопок (по одной в ряд) + служебные ряды внизу.

    Args:
        items: Пары (текст кнопки, данные callback).
        name: Имя callback для всех кнопок списка.
        extra_rows: Дополнительные ряды после списка (например, "Salta").
        back: Добавить кнопку "Назад".
        main_menu: Добавить кнопку "Главное меню".
    """
    kb = InlineKeyboardBuilder()
    for text, data in items:
        kb.row(button(text, name, data))
    for row in extra_rows or []:
        kb.row(*row)
    if back:
        kb.row(back_button())
    if main_menu:
        kb.row(main_menu_button())
    return kb.as_markup()


def kb_nav(back: bool = True, main_menu: bool = True) -> InlineKeyboardMarkup:
    return kb_list([], "", back=back, main_menu=main_menu)


def kb_main_menu(labels: list[str]) -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=label)] for label in labels],
        resize_keyboard=True,
    )


def kb_date_choice(today_text: str, choose_text: str, date_picker_url: str) -> ReplyKeyboardMarkup:
    # web_app_data приходит только от кнопок reply-клавиатуры
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text=today_text)],
            [KeyboardButton(text=choose_text, web_app=WebAppInfo(url=date_picker_url))],
            [KeyboardButton(text=BUTTON_BACK_TEXT), KeyboardButton(text=BUTTON_MAIN_MENU_TEXT)],
        ],
        resize_keyboard=True,
    )

import html

from expense_bot.services.category_service import CategoryService
from expense_bot.states.conversation import ExpenseSettingsStep, MainMenuStep, SettingsStep, TagCreationData
from helpers import FakeBot, Conversation, make_controller, make_session_factory, run


async def _open_expense_settings():
    sf = await make_session_factory()
    s = Conversation(make_controller(sf), FakeBot())
    await s.say("⚙️ Impostazioni")
    assert s.state.step is SettingsStep.ROOT
    await s.press("settings_expenses:expenses")
    assert s.state.step is ExpenseSettingsStep.SELECT_ACTION
    return sf, s


def test_settings_root_lists_sections_and_back_goes_to_main_menu():
    async def scenario():
        sf = await make_session_factory()
        s = Conversation(make_controller(sf), FakeBot())
        await s.say("⚙️ Impostazioni")
        markup = s.bot.last_sent.reply_markup
        labels = [b.text for row in markup.inline_keyboard for b in row]
        assert "⚙️ Impostazioni spese" in labels

        await s.say("◀️ Indietro")
        assert s.state.step is MainMenuStep.MAIN_MENU

    run(scenario())


def test_create_category_idempotent():
    async def scenario():
        sf, s = await _open_expense_settings()
        await s.press("settings_addcat:new")
        assert s.state.step is ExpenseSettingsStep.ADD_CATEGORY
        await s.say("Food")
        assert s.state.step is ExpenseSettingsStep.SELECT_ACTION
        assert "Categoria <b>Food</b> creata" in s.bot.last_text

        await s.press("settings_addcat:new")
        await s.say("Food")
        assert "esiste già" in s.bot.last_text

        async with sf() as session:
            assert [c.name for c in await CategoryService(session).list_categories()] == ["Food"]

    run(scenario())


def test_empty_name_reprompts():
    async def scenario():
        sf, s = await _open_expense_settings()
        await s.press("settings_addcat:new")
        await s.say("   ")
        assert s.state.step is ExpenseSettingsStep.ADD_CATEGORY
        assert "non può essere vuoto" in s.bot.last_text

    run(scenario())


def test_subcategory_with_tag_loop():
    async def scenario():
        sf, s = await _open_expense_settings()
        async with sf() as session:
            food, _ = await CategoryService(session).create_category("Food")

        await s.press("settings_addsub:new")
        assert s.state.step is ExpenseSettingsStep.SELECT_CATEGORY_FOR_SUB
        await s.press(f"settings_pickcat:{food.id}")
        assert s.state.step is ExpenseSettingsStep.ADD_SUBCATEGORY
        await s.say("Groceries")
        assert s.state.step is ExpenseSettingsStep.ASK_TAGS
        data = s.state.get_flow_data(TagCreationData)
        assert data.subcategory_name == "Groceries" and data.category_name == "Food"

        await s.press(f"settings_addtag:{data.subcategory_id}")
        assert s.state.step is ExpenseSettingsStep.ADD_TAG
        await s.say("Milk")
        assert s.state.step is ExpenseSettingsStep.ASK_TAGS
        markup = s.bot.edited[-1].reply_markup
        assert "🏷️ Aggiungi un altro tag" in [b.text for row in markup.inline_keyboard for b in row]

        # назад с ввода тега возвращает к выбору, тег не создаётся
        await s.press(f"settings_addtag:{data.subcategory_id}")
        await s.press("back")
        assert s.state.step is ExpenseSettingsStep.ASK_TAGS

        await s.press(f"settings_tagsdone:{data.subcategory_id}")
        assert s.state.step is ExpenseSettingsStep.SELECT_ACTION
        assert s.state.flow_data is None
        text = html.unescape(s.bot.last_text)
        assert "Sottocategoria Groceries creata in Food" in text.replace("<b>", "").replace("</b>", "")
        assert "Milk" in text

        async with sf() as session:
            service = CategoryService(session)
            [groceries] = await service.list_subcategories(food.id)
            assert [t.name for t in await service.list_tags(groceries.id)] == ["Milk"]

    run(scenario())


def test_back_from_tag_choice_finalizes_without_deleting():
    async def scenario():
        sf, s = await _open_expense_settings()
        async with sf() as session:
            food, _ = await CategoryService(session).create_category("Food")
        await s.press("settings_addsub:new")
        await s.press(f"settings_pickcat:{food.id}")
        await s.say("Restaurants")
        await s.say("◀️ Indietro")

        assert s.state.step is ExpenseSettingsStep.SELECT_ACTION
        assert "creata in" in s.bot.last_text
        async with sf() as session:
            assert [sc.name for sc in await CategoryService(session).list_subcategories(food.id)] == ["Restaurants"]

    run(scenario())


def test_back_navigation_in_expense_settings():
    async def scenario():
        sf, s = await _open_expense_settings()
        async with sf() as session:
            food, _ = await CategoryService(session).create_category("Food")

        await s.press("settings_addsub:new")
        await s.press(f"settings_pickcat:{food.id}")
        await s.press("back")
        assert s.state.step is ExpenseSettingsStep.SELECT_CATEGORY_FOR_SUB
        await s.press("back")
        assert s.state.step is ExpenseSettingsStep.SELECT_ACTION
        await s.press("back")
        assert s.state.step is SettingsStep.ROOT
        await s.press("back")
        assert s.state.step is MainMenuStep.MAIN_MENU

    run(scenario())

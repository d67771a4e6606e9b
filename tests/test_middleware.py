from expense_bot.routers.middlewares import TEXT_UNAUTHORIZED, TEXT_UNAUTHORIZED_SHORT, AccessMiddleware
from helpers import FakeBot, callback_query, run, text_message, tg_chat, tg_user


async def _run(middleware, event, bot, username="alice"):
    seen = {}

    async def handler(ev, data):
        seen["data"] = data
        return "handled"

    data = {"bot": bot, "event_from_user": tg_user(username), "event_chat": tg_chat()}
    result = await middleware(handler, event, data)
    return result, seen


def test_allowed_user_is_passed_through_case_insensitive():
    async def scenario():
        middleware = AccessMiddleware(["@Alice"])
        bot = FakeBot()

        result, seen = await _run(middleware, text_message("ciao", "ALICE"), bot, username="ALICE")
        assert result == "handled"
        # доступ только проверяется: в данные хендлера ничего не добавляется
        assert set(seen["data"]) == {"bot", "event_from_user", "event_chat"}
        assert bot.sent == []

    run(scenario())


def test_unauthorized_message_is_rejected():
    async def scenario():
        middleware = AccessMiddleware(["alice"])
        bot = FakeBot()

        result, seen = await _run(middleware, text_message("ciao", "mallory"), bot, username="mallory")
        assert result is None
        assert seen == {}
        assert bot.last_text == TEXT_UNAUTHORIZED

    run(scenario())


def test_unauthorized_callback_is_answered():
    async def scenario():
        middleware = AccessMiddleware(["alice"])
        bot = FakeBot()
        cb = callback_query("main", "mallory")

        result, _ = await _run(middleware, cb, bot, username="mallory")
        assert result is None
        assert bot.answers == [(cb.id, TEXT_UNAUTHORIZED_SHORT)]
        assert bot.sent == []

    run(scenario())


def test_empty_allow_list_lets_everyone_in():
    async def scenario():
        middleware = AccessMiddleware([])
        result, _ = await _run(middleware, text_message("ciao", "bob"), FakeBot(), username="bob")
        assert result == "handled"

    run(scenario())


def test_user_without_username_denied_when_list_set():
    async def scenario():
        middleware = AccessMiddleware(["alice"])
        bot = FakeBot()
        result, _ = await _run(middleware, text_message("ciao", None), bot, username=None)
        assert result is None
        assert bot.last_text == TEXT_UNAUTHORIZED

    run(scenario())

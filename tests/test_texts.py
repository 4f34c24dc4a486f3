import pytest

from app.keyboards import MAIN_MENU_CALLBACK, START_CALLBACK, back_to_menu, main_menu
from app.texts import TEXTS, get_button_text, get_text, resolve_language


@pytest.mark.parametrize(
    "code, expected",
    [("en", "en"), ("en-US", "en"), ("EN", "en"), ("ru", "ru"), ("de", "ru"), ("", "ru"), (None, "ru")],
)
def test_resolve_language(code, expected):
    assert resolve_language(code) == expected


def test_languages_share_keys():
    def keys(node, prefix=""):
        if isinstance(node, dict):
            return {k for name, child in node.items() for k in keys(child, f"{prefix}{name}.")}
        return {prefix}

    assert keys(TEXTS["ru"]) == keys(TEXTS["en"])


def test_placeholders():
    assert get_text("errors.not_converged", "en", reason="Nope") == "Nope. Try a larger tolerance."
    assert get_text("last.template", "ru", date="01.01.2026 10:00", total=3, result="x") == (
        "Последний расчёт (01.01.2026 10:00), всего расчётов: 3\nx"
    )


def test_missing_placeholder_returns_template():
    assert get_text("errors.not_converged", "ru") == "{reason}. Попробуй указать допуск побольше."


def test_unknown_language_falls_back_to_russian():
    assert get_text("send_start", "de") == "Отправь /start, чтобы начать."


def test_unknown_key():
    assert get_text("no.such.key") == "[Текст не найден: no.such.key]"


def test_keyboards():
    ru = main_menu("ru").inline_keyboard[0][0]
    en = main_menu("en").inline_keyboard[0][0]
    assert ru.callback_data == en.callback_data == START_CALLBACK
    assert en.text == get_button_text("calculate", "en") == "🧮 Calculate bracelet"
    assert back_to_menu().inline_keyboard[0][0].callback_data == MAIN_MENU_CALLBACK

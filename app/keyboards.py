from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from app.texts import get_button_text

START_CALLBACK = "start_bracelet"
MAIN_MENU_CALLBACK = "main_menu"


# Главное меню бота
def main_menu(lang: str = "ru"):
    """Главное меню с кнопкой нового расчёта"""
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text=get_button_text("calculate", lang), callback_data=START_CALLBACK)],
    ])


# Возврат к главному меню
def back_to_menu(lang: str = "ru"):
    """Кнопка возврата в главное меню"""
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text=get_button_text("main_menu", lang), callback_data=MAIN_MENU_CALLBACK)]
    ])

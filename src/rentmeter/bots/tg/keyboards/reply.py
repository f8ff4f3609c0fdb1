"""Reply keyboard builders."""

from aiogram.types import KeyboardButton, ReplyKeyboardMarkup
from aiogram.utils.keyboard import ReplyKeyboardBuilder

NEW_INVOICE = "🧾 New invoice"
INVOICES = "📄 Invoices"
TENANTS = "👥 Tenants"
SETTINGS = "⚙️ Settings"
CANCEL = "✖️ Cancel"


def get_main_menu() -> ReplyKeyboardMarkup:
    """Builds the main menu reply keyboard."""
    builder = ReplyKeyboardBuilder()
    builder.row(KeyboardButton(text=NEW_INVOICE), KeyboardButton(text=INVOICES))
    builder.row(KeyboardButton(text=TENANTS), KeyboardButton(text=SETTINGS))
    return builder.as_markup(resize_keyboard=True)


def get_cancel_menu() -> ReplyKeyboardMarkup:
    """Keyboard shown while a dialog is waiting for text input."""
    builder = ReplyKeyboardBuilder()
    builder.row(KeyboardButton(text=CANCEL))
    return builder.as_markup(resize_keyboard=True)

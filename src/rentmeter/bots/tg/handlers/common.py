"""Common command handlers."""

from aiogram import F, Router, html
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import Message

from rentmeter.bots.tg.keyboards.reply import CANCEL, get_main_menu
from rentmeter.core.models import User

router = Router(name=__name__)


@router.message(CommandStart())
async def handle_start(message: Message, state: FSMContext, user: User) -> None:
    """Handler for the /start command."""
    await state.clear()
    await message.answer(
        f"👋 <b>Welcome, {html.quote(user.name or 'landlord')}!</b>\n\n"
        "1. Add your tenants with their monthly base rent.\n"
        "2. Each month, enter the electricity meter reading.\n"
        "3. The bot adds the electricity charge to the rent and sends "
        "a printable invoice.",
        reply_markup=get_main_menu(),
    )


@router.message(Command("help"))
async def handle_help(message: Message) -> None:
    """Handler for the /help command."""
    await message.answer(
        "This bot generates rent invoices with an electricity charge.\n\n"
        "The previous reading of a new invoice is taken from the tenant's "
        "last invoice, and the rate comes from your settings.\n\n"
        "Use the keyboard below to navigate. /cancel stops any dialog.",
        reply_markup=get_main_menu(),
    )


@router.message(Command("cancel"))
@router.message(F.text == CANCEL)
async def handle_cancel(message: Message, state: FSMContext) -> None:
    """Leaves the current dialog and returns to the main menu."""
    await state.clear()
    await message.answer("Cancelled.", reply_markup=get_main_menu())

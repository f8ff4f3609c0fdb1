"""Handlers for the settings screen and bulk deletions."""

from __future__ import annotations

import logging

from aiogram import F, Router, html
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, InlineKeyboardButton, Message
from aiogram.utils.keyboard import InlineKeyboardBuilder
from tortoise.exceptions import BaseORMException

from rentmeter.bots.tg.handlers.utils import (
    SAVE_FAILED_TEXT,
    format_validation_error,
    format_warnings,
)
from rentmeter.bots.tg.keyboards.inline import SettingsActionCallback
from rentmeter.bots.tg.keyboards.reply import SETTINGS, get_cancel_menu, get_main_menu
from rentmeter.bots.tg.states import RateUpdate
from rentmeter.core.calculations import FormValidationError, validate_electricity_rate
from rentmeter.core.display import format_money
from rentmeter.core.models import User
from rentmeter.core.repositories.invoice import InvoiceRepository
from rentmeter.core.repositories.settings import SettingsRepository
from rentmeter.core.repositories.tenant import TenantRepository
from rentmeter.core.repositories.user import UserRepository
from rentmeter.services.billing import BillingService, LookupFailure

router = Router(name=__name__)
logger = logging.getLogger(__name__)

CONFIRM_TEXTS = {
    "invoices": "Delete <b>all</b> your invoices? This cannot be undone.",
    "tenants": "Delete <b>all</b> your tenants? Invoices are kept.",
    "account": (
        "Delete your account with all tenants, invoices and settings? "
        "This cannot be undone."
    ),
}


@router.message(F.text == SETTINGS)
async def handle_settings_command(
    message: Message, user: User, billing_service: BillingService
) -> None:
    """Shows the current rate, account totals and settings actions."""
    try:
        rate = await billing_service.resolve_rate(user.id)
    except LookupFailure as e:
        logger.error(f"Failed to load settings for user {user.id}: {e}")
        await message.answer("❌ Could not load your settings. Try again later.")
        return
    stats = await UserRepository().get_stats(user.id)

    text = (
        "⚙️ <b>Settings</b>\n\n"
        f"Name: {html.quote(user.name) or 'not set'} (change with /name)\n"
        f"Electricity rate: <b>{format_money(rate)}</b> per unit\n\n"
        f"Tenants: {stats.total_tenants}\n"
        f"Invoices: {stats.total_invoices}\n"
        f"Total billed: {format_money(stats.total_revenue)}"
    )
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(
            text="💡 Change rate",
            callback_data=SettingsActionCallback(target="rate").pack(),
        )
    )
    for target, label in (
        ("invoices", "🗑 Delete all invoices"),
        ("tenants", "🗑 Delete all tenants"),
        ("account", "⛔ Delete account"),
    ):
        builder.row(
            InlineKeyboardButton(
                text=label,
                callback_data=SettingsActionCallback(target=target).pack(),
            )
        )
    await message.answer(text, reply_markup=builder.as_markup())


@router.message(Command("name"))
async def handle_name_command(
    message: Message, command: CommandObject, user: User
) -> None:
    """Changes the display name: /name <new name>."""
    name = (command.args or "").strip()
    if not name:
        await message.answer("Usage: /name <your name>")
        return
    await UserRepository().update_name(user.id, name)
    await message.answer(f"✅ Name changed to <b>{html.quote(name)}</b>.")


# --- Rate update FSM ---
@router.callback_query(SettingsActionCallback.filter(F.target == "rate"))
async def handle_rate_change(query: CallbackQuery, state: FSMContext) -> None:
    """Asks for the new electricity rate."""
    await query.answer()
    if not isinstance(query.message, Message):
        return
    await state.set_state(RateUpdate.enter_rate)
    await query.message.answer(
        "Enter the new price per unit of electricity.\n"
        "<i>Existing invoices keep the rate they were generated with.</i>",
        reply_markup=get_cancel_menu(),
    )


@router.message(RateUpdate.enter_rate)
async def handle_rate_value(message: Message, state: FSMContext, user: User) -> None:
    """Validates and saves the new rate."""
    try:
        rate, warnings = validate_electricity_rate(message.text)
    except FormValidationError as e:
        await message.answer(format_validation_error(e))
        return

    try:
        await SettingsRepository().upsert_rate(user.id, rate)
    except BaseORMException:
        logger.error(f"Failed to save rate for user {user.id}", exc_info=True)
        await state.clear()
        await message.answer(SAVE_FAILED_TEXT, reply_markup=get_main_menu())
        return

    await state.clear()
    logger.info(f"User {user.id} set electricity rate to {rate}")
    text = f"✅ Electricity rate set to <b>{format_money(rate)}</b> per unit."
    if warnings:
        text = f"{text}\n{format_warnings(warnings)}"
    await message.answer(text, reply_markup=get_main_menu())


# --- Bulk deletions ---
@router.callback_query(
    SettingsActionCallback.filter(F.target.in_(tuple(CONFIRM_TEXTS)) & ~F.confirmed)
)
async def handle_delete_request(
    query: CallbackQuery, callback_data: SettingsActionCallback
) -> None:
    """Asks to confirm a destructive action."""
    await query.answer()
    if not isinstance(query.message, Message):
        return
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(
            text="Yes, delete",
            callback_data=SettingsActionCallback(
                target=callback_data.target, confirmed=True
            ).pack(),
        )
    )
    await query.message.answer(
        CONFIRM_TEXTS[callback_data.target], reply_markup=builder.as_markup()
    )


@router.callback_query(
    SettingsActionCallback.filter(F.target.in_(tuple(CONFIRM_TEXTS)) & F.confirmed)
)
async def handle_delete_confirmed(
    query: CallbackQuery,
    callback_data: SettingsActionCallback,
    state: FSMContext,
    user: User,
) -> None:
    """Performs a confirmed bulk deletion."""
    await query.answer()
    if not isinstance(query.message, Message):
        return

    target = callback_data.target
    try:
        if target == "invoices":
            count = await InvoiceRepository().delete_all_for_user(user.id)
            text = f"✅ Deleted {count} invoices."
        elif target == "tenants":
            count = await TenantRepository().delete_all_for_user(user.id)
            text = f"✅ Deleted {count} tenants."
        else:
            await UserRepository().delete_account(user.id)
            await state.clear()
            text = "✅ Your account was deleted. Send /start to begin again."
    except BaseORMException:
        logger.error(f"Failed to delete {target} for user {user.id}", exc_info=True)
        await query.message.edit_text(f"❌ Could not delete {target}.")
        return

    logger.info(f"User {user.id} deleted {target}")
    await query.message.edit_text(text)

"""Handlers for tenant management."""

from __future__ import annotations

import logging

from aiogram import F, Router, html
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, InlineKeyboardButton, Message
from aiogram.utils.keyboard import InlineKeyboardBuilder
from tortoise.exceptions import BaseORMException

from rentmeter.bots.tg.handlers.utils import (
    SAVE_FAILED_TEXT,
    format_validation_error,
    format_warnings,
)
from rentmeter.bots.tg.keyboards.inline import TenantActionCallback, tenants_keyboard
from rentmeter.bots.tg.keyboards.reply import TENANTS, get_cancel_menu, get_main_menu
from rentmeter.bots.tg.states import TenantCreation, TenantEdit
from rentmeter.core.calculations import (
    FormValidationError,
    validate_tenant_fields,
)
from rentmeter.core.display import format_money
from rentmeter.core.models import Tenant, User
from rentmeter.core.repositories.tenant import TenantRepository

router = Router(name=__name__)
logger = logging.getLogger(__name__)

SKIP = "-"


def _tenant_card(tenant: Tenant) -> tuple[str, InlineKeyboardBuilder]:
    text = (
        f"👤 <b>{html.quote(tenant.name)}</b>\n"
        f"Base rent: <b>{format_money(tenant.base_rent)}</b>\n"
        f"Contact: {html.quote(tenant.contact) if tenant.contact else 'not set'}"
    )
    tenant_id = str(tenant.id)
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(
            text="✏️ Name",
            callback_data=TenantActionCallback(
                action="edit", tenant_id=tenant_id, field="name"
            ).pack(),
        ),
        InlineKeyboardButton(
            text="✏️ Rent",
            callback_data=TenantActionCallback(
                action="edit", tenant_id=tenant_id, field="base_rent"
            ).pack(),
        ),
        InlineKeyboardButton(
            text="✏️ Contact",
            callback_data=TenantActionCallback(
                action="edit", tenant_id=tenant_id, field="contact"
            ).pack(),
        ),
    )
    builder.row(
        InlineKeyboardButton(
            text="🗑 Delete",
            callback_data=TenantActionCallback(
                action="del", tenant_id=tenant_id
            ).pack(),
        )
    )
    return text, builder


@router.message(F.text == TENANTS)
async def handle_tenants_command(message: Message, user: User) -> None:
    """Shows the user's tenants and the button to add one."""
    tenants = await TenantRepository().list_for_user(user.id)
    builder = tenants_keyboard(tenants, action="manage")
    builder.row(InlineKeyboardButton(text="➕ Add tenant", callback_data="tenant_add"))

    text = "Your tenants:" if tenants else "You have no tenants yet."
    await message.answer(text, reply_markup=builder.as_markup())


# --- Tenant Creation FSM ---
@router.message(Command("add_tenant"))
async def handle_add_tenant_command(message: Message, state: FSMContext) -> None:
    """Starts the process of creating a new tenant."""
    await state.set_state(TenantCreation.enter_name)
    await message.answer("Enter the tenant's name:", reply_markup=get_cancel_menu())


@router.callback_query(F.data == "tenant_add")
async def handle_add_tenant(query: CallbackQuery, state: FSMContext) -> None:
    """Starts the process of creating a new tenant from the tenant list."""
    await query.answer()
    if not isinstance(query.message, Message):
        return
    await state.set_state(TenantCreation.enter_name)
    await query.message.answer(
        "Enter the tenant's name:", reply_markup=get_cancel_menu()
    )


@router.message(TenantCreation.enter_name)
async def handle_tenant_name(message: Message, state: FSMContext) -> None:
    """Stores the name and asks for the base rent."""
    if not message.text or not message.text.strip():
        await message.answer("The name cannot be empty. Try again.")
        return
    await state.update_data(name=message.text.strip())
    await state.set_state(TenantCreation.enter_base_rent)
    await message.answer("Enter the monthly base rent:")


@router.message(TenantCreation.enter_base_rent)
async def handle_tenant_rent(message: Message, state: FSMContext) -> None:
    """Validates the rent and asks for an optional contact."""
    data = await state.get_data()
    try:
        _, rent, warnings = validate_tenant_fields(data["name"], message.text)
    except FormValidationError as e:
        await message.answer(format_validation_error(e))
        return

    await state.update_data(base_rent=str(rent))
    await state.set_state(TenantCreation.enter_contact)
    text = "Enter a phone number or e-mail, or send <b>-</b> to skip:"
    if warnings:
        text = f"{format_warnings(warnings)}\n\n{text}"
    await message.answer(text)


@router.message(TenantCreation.enter_contact)
async def handle_tenant_contact(
    message: Message, state: FSMContext, user: User
) -> None:
    """Saves the new tenant."""
    data = await state.get_data()
    contact = (message.text or "").strip()
    try:
        tenant = await TenantRepository().create(
            user_id=user.id,
            name=data["name"],
            base_rent=data["base_rent"],
            contact=None if contact in ("", SKIP) else contact,
        )
    except BaseORMException:
        logger.error(f"Failed to create tenant for user {user.id}", exc_info=True)
        await message.answer(SAVE_FAILED_TEXT, reply_markup=get_main_menu())
        await state.clear()
        return

    await state.clear()
    logger.info(f"User {user.id} created tenant {tenant.id}")
    await message.answer(
        f"✅ Tenant <b>{html.quote(tenant.name)}</b> added.",
        reply_markup=get_main_menu(),
    )


# --- Tenant card and editing ---
@router.callback_query(TenantActionCallback.filter(F.action == "view"))
async def handle_tenant_view(
    query: CallbackQuery, callback_data: TenantActionCallback, user: User
) -> None:
    """Shows the tenant card with edit and delete buttons."""
    await query.answer()
    if not isinstance(query.message, Message):
        return
    tenant = await TenantRepository().get_for_user(user.id, callback_data.tenant_id)
    if tenant is None:
        await query.message.edit_text("Tenant not found.")
        return
    text, builder = _tenant_card(tenant)
    await query.message.edit_text(text, reply_markup=builder.as_markup())


@router.callback_query(TenantActionCallback.filter(F.action == "edit"))
async def handle_tenant_edit(
    query: CallbackQuery, callback_data: TenantActionCallback, state: FSMContext
) -> None:
    """Asks for the new value of one tenant field."""
    await query.answer()
    if not isinstance(query.message, Message):
        return
    await state.set_state(TenantEdit.enter_value)
    await state.update_data(
        tenant_id=callback_data.tenant_id, field=callback_data.field
    )
    prompts = {
        "name": "Enter the new name:",
        "base_rent": "Enter the new base rent. Existing invoices keep the old one.",
        "contact": "Enter the new contact, or send <b>-</b> to clear it:",
    }
    await query.message.answer(
        prompts[callback_data.field], reply_markup=get_cancel_menu()
    )


@router.message(TenantEdit.enter_value)
async def handle_tenant_edit_value(
    message: Message, state: FSMContext, user: User
) -> None:
    """Validates and stores the edited field."""
    data = await state.get_data()
    repo = TenantRepository()
    tenant = await repo.get_for_user(user.id, data["tenant_id"])
    if tenant is None:
        await state.clear()
        await message.answer("Tenant not found.", reply_markup=get_main_menu())
        return

    text = (message.text or "").strip()
    field = data["field"]
    warnings: list[str] = []
    changes: dict = {}
    if field == "contact":
        changes["contact"] = None if text in ("", SKIP) else text
    else:
        name = text if field == "name" else tenant.name
        rent = text if field == "base_rent" else tenant.base_rent
        try:
            name, rent, warnings = validate_tenant_fields(name, rent)
        except FormValidationError as e:
            await message.answer(format_validation_error(e))
            return
        changes = {"name": name} if field == "name" else {"base_rent": rent}

    try:
        tenant = await repo.update(user.id, tenant.id, **changes)
    except BaseORMException:
        logger.error(f"Failed to update tenant {data['tenant_id']}", exc_info=True)
        await state.clear()
        await message.answer(SAVE_FAILED_TEXT, reply_markup=get_main_menu())
        return

    await state.clear()
    await message.answer("✅ Saved.", reply_markup=get_main_menu())
    if tenant is not None:
        card, builder = _tenant_card(tenant)
        if warnings:
            card = f"{card}\n\n{format_warnings(warnings)}"
        await message.answer(card, reply_markup=builder.as_markup())


# --- Tenant deletion ---
@router.callback_query(TenantActionCallback.filter(F.action == "del"))
async def handle_tenant_delete(
    query: CallbackQuery, callback_data: TenantActionCallback
) -> None:
    """Asks to confirm the deletion."""
    await query.answer()
    if not isinstance(query.message, Message):
        return
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(
            text="🗑 Yes, delete",
            callback_data=TenantActionCallback(
                action="delok", tenant_id=callback_data.tenant_id
            ).pack(),
        ),
        InlineKeyboardButton(
            text="Keep",
            callback_data=TenantActionCallback(
                action="view", tenant_id=callback_data.tenant_id
            ).pack(),
        ),
    )
    await query.message.edit_text(
        "Delete this tenant? Their invoices are kept.",
        reply_markup=builder.as_markup(),
    )


@router.callback_query(TenantActionCallback.filter(F.action == "delok"))
async def handle_tenant_delete_confirmed(
    query: CallbackQuery, callback_data: TenantActionCallback, user: User
) -> None:
    """Deletes the tenant."""
    await query.answer()
    if not isinstance(query.message, Message):
        return
    try:
        deleted = await TenantRepository().delete_for_user(
            user.id, callback_data.tenant_id
        )
    except BaseORMException:
        logger.error(
            f"Failed to delete tenant {callback_data.tenant_id}", exc_info=True
        )
        await query.message.edit_text("❌ Could not delete the tenant.")
        return
    await query.message.edit_text(
        "✅ Tenant deleted." if deleted else "Tenant not found."
    )

"""Handlers for invoice generation and the invoice list."""

from __future__ import annotations

import logging
import tempfile
from datetime import date
from decimal import Decimal

from aiogram import F, Router, html
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, FSInputFile, InlineKeyboardButton, Message
from aiogram.utils.keyboard import InlineKeyboardBuilder
from tortoise.exceptions import BaseORMException

from rentmeter.bots.tg.handlers.utils import (
    FIELD_LABELS,
    SAVE_FAILED_TEXT,
    format_validation_error,
    format_warnings,
)
from rentmeter.bots.tg.keyboards.inline import (
    InvoiceActionCallback,
    InvoiceListCallback,
    SelectTenantCallback,
    tenants_keyboard,
)
from rentmeter.bots.tg.keyboards.reply import (
    INVOICES,
    NEW_INVOICE,
    get_cancel_menu,
    get_main_menu,
)
from rentmeter.bots.tg.states import InvoiceGeneration
from rentmeter.core.calculations import (
    FieldError,
    InvoiceValidationError,
    to_decimal,
)
from rentmeter.core.display import format_date, format_money, format_units, parse_date
from rentmeter.core.models import Invoice, User
from rentmeter.core.repositories.invoice import InvoiceRepository
from rentmeter.core.repositories.tenant import TenantRepository
from rentmeter.services.billing import BillingService, LookupFailure, StalePreview
from rentmeter.services.export import ExportService

router = Router(name=__name__)
logger = logging.getLogger(__name__)

LIST_LIMIT = 10

SORT_LABELS = {
    "date-desc": "Newest",
    "date-asc": "Oldest",
    "total-desc": "Highest",
    "total-asc": "Lowest",
}

# Dialog step to return to when a field fails validation at preview time.
FIELD_STATES = {
    "invoice_date": InvoiceGeneration.enter_date,
    "previous_month_reading": InvoiceGeneration.enter_previous_reading,
    "current_month_reading": InvoiceGeneration.enter_current_reading,
    "base_rent": InvoiceGeneration.enter_base_rent,
}


def _parse_number(field: str, text: str | None) -> str:
    """Returns the normalized number as text, raising FieldError if unusable."""
    return str(to_decimal(field, text))


def _invoice_summary(invoice: Invoice) -> str:
    return (
        f"🧾 <b>{html.quote(invoice.tenant_name)}</b>, {format_date(invoice.date)}\n"
        f"Base rent: {format_money(invoice.base_rent)}\n"
        f"Readings: {format_units(invoice.previous_month_reading)} → "
        f"{format_units(invoice.current_month_reading)} "
        f"({format_units(invoice.units_consumed)} units × "
        f"{format_money(invoice.effective_electricity_rate)})\n"
        f"Electricity: {format_money(invoice.electricity_cost)}\n"
        f"<b>Total: {format_money(invoice.total)}</b>"
    )


async def _send_invoice_pdf(
    message: Message, invoice: Invoice, export_service: ExportService
) -> None:
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(
            text="🗑 Delete",
            callback_data=InvoiceActionCallback(
                action="del", invoice_id=str(invoice.id)
            ).pack(),
        )
    )
    with tempfile.NamedTemporaryFile(suffix=".pdf", delete=False) as temp_file:
        output_path = await export_service.generate_pdf_invoice(
            invoice, temp_file.name
        )
    try:
        await message.answer_document(
            FSInputFile(output_path, filename=f"invoice-{invoice.date}.pdf"),
            caption=_invoice_summary(invoice),
            reply_markup=builder.as_markup(),
        )
    finally:
        output_path.unlink(missing_ok=True)


# --- Invoice generation FSM ---
@router.message(F.text == NEW_INVOICE)
async def handle_new_invoice(message: Message, state: FSMContext, user: User) -> None:
    """Starts invoice generation by listing the user's tenants."""
    tenants = await TenantRepository().list_for_user(user.id)
    if not tenants:
        await message.answer(
            "You have no tenants yet. Add one first with /add_tenant."
        )
        return

    await state.clear()
    await state.set_state(InvoiceGeneration.select_tenant)
    builder = tenants_keyboard(tenants, action="invoice")
    await message.answer("Select a tenant:", reply_markup=builder.as_markup())


@router.callback_query(InvoiceGeneration.select_tenant, SelectTenantCallback.filter())
async def handle_tenant_selection(
    query: CallbackQuery,
    callback_data: SelectTenantCallback,
    state: FSMContext,
    user: User,
) -> None:
    """Stores the tenant and asks for the invoice date."""
    await query.answer()
    if not isinstance(query.message, Message):
        return

    tenant = await TenantRepository().get_for_user(user.id, callback_data.tenant_id)
    if tenant is None:
        await query.message.edit_text("Tenant not found.")
        await state.clear()
        return

    await state.update_data(
        tenant_id=str(tenant.id),
        tenant_name=tenant.name,
        tenant_rent=str(tenant.base_rent),
    )
    await state.set_state(InvoiceGeneration.enter_date)

    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(
            text=f"Today ({format_date(date.today())})", callback_data="inv_today"
        )
    )
    await query.message.edit_text(
        f"Invoice for <b>{html.quote(tenant.name)}</b>.\n\n"
        "Enter the invoice date (e.g. 2026-10-01 or 01.10.2026):",
        reply_markup=builder.as_markup(),
    )


async def _ask_previous_reading(
    message: Message,
    state: FSMContext,
    user: User,
    billing_service: BillingService,
) -> None:
    data = await state.get_data()
    try:
        previous = await billing_service.resolve_previous_reading(
            user.id, data["tenant_id"]
        )
    except LookupFailure as e:
        logger.warning(f"Carry-over lookup failed, starting from 0: {e}")
        previous = None

    await state.set_state(InvoiceGeneration.enter_previous_reading)
    builder = InlineKeyboardBuilder()
    if previous:
        text = (
            "Previous reading from the last invoice: "
            f"<b>{format_units(previous)}</b>\n\n"
            "Press the button to use it, or enter a different value:"
        )
        builder.row(
            InlineKeyboardButton(
                text=f"Use {format_units(previous)}", callback_data="inv_prev_keep"
            )
        )
    else:
        text = (
            "No earlier reading on record for this tenant.\n\n"
            "Enter the previous meter reading, or start from 0:"
        )
        builder.row(
            InlineKeyboardButton(text="Start from 0", callback_data="inv_prev_keep")
        )
    await message.answer(text, reply_markup=builder.as_markup())


@router.callback_query(InvoiceGeneration.enter_date, F.data == "inv_today")
async def handle_date_today(
    query: CallbackQuery,
    state: FSMContext,
    user: User,
    billing_service: BillingService,
) -> None:
    """Uses today's date for the invoice."""
    await query.answer()
    if not isinstance(query.message, Message):
        return
    await state.update_data(invoice_date=date.today().isoformat())
    await query.message.edit_reply_markup(reply_markup=None)
    await _ask_previous_reading(query.message, state, user, billing_service)


@router.message(InvoiceGeneration.enter_date)
async def handle_date_value(
    message: Message,
    state: FSMContext,
    user: User,
    billing_service: BillingService,
) -> None:
    """Parses a typed invoice date."""
    try:
        invoice_date = parse_date(message.text or "")
    except ValueError:
        await message.answer("Invalid date. Try again, e.g. 2026-10-01.")
        return
    if invoice_date > date.today():
        await message.answer("The invoice date cannot be in the future.")
        return

    await state.update_data(invoice_date=invoice_date.isoformat())
    await _ask_previous_reading(message, state, user, billing_service)


async def _ask_current_reading(message: Message, state: FSMContext) -> None:
    await state.set_state(InvoiceGeneration.enter_current_reading)
    await message.answer(
        "Enter the current meter reading:", reply_markup=get_cancel_menu()
    )


@router.callback_query(
    InvoiceGeneration.enter_previous_reading, F.data == "inv_prev_keep"
)
async def handle_previous_keep(query: CallbackQuery, state: FSMContext) -> None:
    """Keeps the carried-over previous reading."""
    await query.answer()
    if not isinstance(query.message, Message):
        return
    await state.update_data(previous_value=None)
    await query.message.edit_reply_markup(reply_markup=None)
    await _ask_current_reading(query.message, state)


@router.message(InvoiceGeneration.enter_previous_reading)
async def handle_previous_value(message: Message, state: FSMContext) -> None:
    """Stores a previous reading typed by the user."""
    try:
        value = _parse_number("previous_month_reading", message.text)
    except FieldError as e:
        await message.answer(f"{e.message} Try again.")
        return
    await state.update_data(previous_value=value)
    await _ask_current_reading(message, state)


@router.message(InvoiceGeneration.enter_current_reading)
async def handle_current_value(message: Message, state: FSMContext) -> None:
    """Stores the current reading and asks for the base rent."""
    try:
        value = _parse_number("current_month_reading", message.text)
    except FieldError as e:
        await message.answer(f"{e.message} Try again.")
        return

    await state.update_data(current_value=value)
    await state.set_state(InvoiceGeneration.enter_base_rent)
    data = await state.get_data()

    builder = InlineKeyboardBuilder()
    rent = format_money(to_decimal("base_rent", data["tenant_rent"]))
    builder.row(InlineKeyboardButton(text=f"Use {rent}", callback_data="inv_rent_keep"))
    await message.answer(
        f"Base rent for this invoice: <b>{rent}</b>\n\n"
        "Press the button to keep it, or enter a different amount:",
        reply_markup=builder.as_markup(),
    )


async def _show_preview(
    message: Message,
    state: FSMContext,
    user: User,
    billing_service: BillingService,
) -> None:
    data = await state.get_data()
    try:
        preview = await billing_service.preview_invoice(
            user.id,
            data["tenant_id"],
            current_month_reading=data["current_value"],
            invoice_date=date.fromisoformat(data["invoice_date"]),
            previous_month_reading=data.get("previous_value"),
            base_rent=data.get("rent_value"),
        )
    except InvoiceValidationError as e:
        field = next(
            (f for f in FIELD_STATES if f in e.errors), "current_month_reading"
        )
        await state.set_state(FIELD_STATES[field])
        await message.answer(
            f"{format_validation_error(e)}\n\n"
            f"Enter the {FIELD_LABELS[field].lower()} again:",
            reply_markup=get_cancel_menu(),
        )
        return
    except LookupFailure as e:
        logger.error(f"Invoice preview failed for user {user.id}: {e}")
        await state.clear()
        await message.answer(
            "❌ Could not load the tenant or your settings. Try again later.",
            reply_markup=get_main_menu(),
        )
        return

    result = preview.computation
    lines = [
        f"<b>Check the invoice for {html.quote(preview.tenant.name)}:</b>",
        f"Date: {format_date(result.invoice_date)}",
        f"Base rent: {format_money(result.base_rent)}",
        f"Readings: {format_units(result.previous_month_reading)} → "
        f"{format_units(result.current_month_reading)}",
        f"Units consumed: <b>{format_units(result.units_consumed)}</b> × "
        f"{format_money(result.electricity_rate)}",
        f"Electricity: {format_money(result.electricity_cost)}",
        f"<b>Total: {format_money(result.total)}</b>",
    ]
    if preview.previous_carried_over and (
        result.current_month_reading < result.previous_month_reading
    ):
        lines.append(
            "<i>The current reading is below the last invoice's reading, "
            "so no electricity is charged.</i>"
        )
    if result.warnings:
        lines.append(format_warnings(result.warnings))
    lines.append("\nGenerate this invoice?")

    builder = InlineKeyboardBuilder()
    builder.add(InlineKeyboardButton(text="✅ Generate", callback_data="inv_confirm"))
    builder.add(InlineKeyboardButton(text="❌ Cancel", callback_data="inv_cancel"))

    await state.update_data(
        previewed_previous=(
            str(result.previous_month_reading)
            if preview.previous_carried_over
            else None
        )
    )
    await state.set_state(InvoiceGeneration.confirm)
    await message.answer("\n".join(lines), reply_markup=builder.as_markup())


@router.callback_query(InvoiceGeneration.enter_base_rent, F.data == "inv_rent_keep")
async def handle_rent_keep(
    query: CallbackQuery,
    state: FSMContext,
    user: User,
    billing_service: BillingService,
) -> None:
    """Keeps the tenant's base rent."""
    await query.answer()
    if not isinstance(query.message, Message):
        return
    await state.update_data(rent_value=None)
    await query.message.edit_reply_markup(reply_markup=None)
    await _show_preview(query.message, state, user, billing_service)


@router.message(InvoiceGeneration.enter_base_rent)
async def handle_rent_value(
    message: Message,
    state: FSMContext,
    user: User,
    billing_service: BillingService,
) -> None:
    """Stores a base rent typed by the user."""
    try:
        value = _parse_number("base_rent", message.text)
    except FieldError as e:
        await message.answer(f"{e.message} Try again.")
        return
    await state.update_data(rent_value=value)
    await _show_preview(message, state, user, billing_service)


@router.callback_query(InvoiceGeneration.confirm, F.data == "inv_confirm")
async def handle_confirmation(
    query: CallbackQuery,
    state: FSMContext,
    user: User,
    billing_service: BillingService,
    export_service: ExportService,
) -> None:
    """Saves the invoice and sends the printable PDF."""
    await query.answer()
    if not isinstance(query.message, Message):
        return

    data = await state.get_data()
    # Leave the confirm step so a second tap cannot save twice.
    await state.set_state(None)
    await query.message.edit_reply_markup(reply_markup=None)
    previewed = data.get("previewed_previous")
    try:
        invoice = await billing_service.generate_invoice(
            user.id,
            data["tenant_id"],
            current_month_reading=data["current_value"],
            invoice_date=date.fromisoformat(data["invoice_date"]),
            previous_month_reading=data.get("previous_value"),
            base_rent=data.get("rent_value"),
            expected_previous_reading=(
                Decimal(previewed) if previewed is not None else None
            ),
        )
    except StalePreview as e:
        logger.info(f"Preview for user {user.id} is out of date: {e}")
        await query.message.answer(
            "⚠️ Another invoice for this tenant was saved in the meantime, so "
            "the previous reading is now "
            f"<b>{format_units(e.preview.computation.previous_month_reading)}</b>. "
            "Please check the updated invoice."
        )
        await _show_preview(query.message, state, user, billing_service)
        return
    except InvoiceValidationError as e:
        await state.clear()
        await query.message.answer(
            format_validation_error(e), reply_markup=get_main_menu()
        )
        return
    except (LookupFailure, BaseORMException):
        logger.error(f"Failed to save invoice for user {user.id}", exc_info=True)
        await state.clear()
        await query.message.answer(SAVE_FAILED_TEXT, reply_markup=get_main_menu())
        return

    await state.clear()
    await query.message.answer("✅ Invoice generated.", reply_markup=get_main_menu())
    try:
        await _send_invoice_pdf(query.message, invoice, export_service)
    except Exception as e:
        logger.error(
            f"Failed to generate PDF for invoice {invoice.id}: {e}", exc_info=True
        )
        await query.message.answer(_invoice_summary(invoice))


@router.callback_query(InvoiceGeneration.confirm, F.data == "inv_cancel")
async def handle_cancellation(query: CallbackQuery, state: FSMContext) -> None:
    """Cancels invoice generation."""
    await state.clear()
    await query.answer()
    if not isinstance(query.message, Message):
        return
    await query.message.edit_text("Invoice generation cancelled.")
    await query.message.answer("Main menu:", reply_markup=get_main_menu())


# --- Invoice list ---
async def _render_invoice_list(
    user: User, tenant_id: str = "", sort: str = "date-desc", search: str | None = None
) -> tuple[str, InlineKeyboardBuilder]:
    invoices = await InvoiceRepository().list_for_user(
        user.id, tenant_id=tenant_id or None, search=search, sort=sort
    )

    builder = InlineKeyboardBuilder()
    if not invoices:
        return "No invoices found.", builder

    total = sum((inv.total for inv in invoices), Decimal("0"))
    header = f"<b>{len(invoices)} invoices, {format_money(total)} in total</b>"
    if search:
        header += f"\nMatching “{html.quote(search)}”"
    lines = [header, ""]
    for invoice in invoices[:LIST_LIMIT]:
        lines.append(
            f"{format_date(invoice.date)} · {html.quote(invoice.tenant_name)} · "
            f"{format_money(invoice.total)}"
        )
        builder.row(
            InlineKeyboardButton(
                text=f"📄 {invoice.tenant_name}, {format_date(invoice.date)}",
                callback_data=InvoiceActionCallback(
                    action="pdf", invoice_id=str(invoice.id)
                ).pack(),
            )
        )
    if len(invoices) > LIST_LIMIT:
        lines.append(f"\n<i>Showing the first {LIST_LIMIT}.</i>")

    if not search:
        builder.row(
            *[
                InlineKeyboardButton(
                    text=f"• {label}" if key == sort else label,
                    callback_data=InvoiceListCallback(
                        tenant_id=tenant_id, sort=key
                    ).pack(),
                )
                for key, label in SORT_LABELS.items()
            ]
        )
    return "\n".join(lines), builder


@router.message(F.text == INVOICES)
async def handle_invoices_command(message: Message, user: User) -> None:
    """Shows the newest invoices with tenant filters."""
    text, builder = await _render_invoice_list(user)
    tenants = await TenantRepository().list_for_user(user.id)
    for tenant in tenants:
        builder.row(
            InlineKeyboardButton(
                text=f"🔎 Only {tenant.name}",
                callback_data=InvoiceListCallback(tenant_id=str(tenant.id)).pack(),
            )
        )
    await message.answer(text, reply_markup=builder.as_markup())


@router.callback_query(InvoiceListCallback.filter())
async def handle_invoice_list(
    query: CallbackQuery, callback_data: InvoiceListCallback, user: User
) -> None:
    """Re-renders the invoice list with a tenant filter or sort order."""
    await query.answer()
    if not isinstance(query.message, Message):
        return
    text, builder = await _render_invoice_list(
        user, tenant_id=callback_data.tenant_id, sort=callback_data.sort
    )
    if callback_data.tenant_id:
        builder.row(
            InlineKeyboardButton(
                text="All tenants",
                callback_data=InvoiceListCallback(sort=callback_data.sort).pack(),
            )
        )
    await query.message.edit_text(text, reply_markup=builder.as_markup())


@router.message(Command("search"))
async def handle_search(message: Message, command: CommandObject, user: User) -> None:
    """Searches invoices by tenant name: /search <text>."""
    if not command.args:
        await message.answer("Usage: /search <tenant name>")
        return
    text, builder = await _render_invoice_list(user, search=command.args)
    await message.answer(text, reply_markup=builder.as_markup())


@router.callback_query(InvoiceActionCallback.filter(F.action == "pdf"))
async def handle_invoice_pdf(
    query: CallbackQuery,
    callback_data: InvoiceActionCallback,
    user: User,
    export_service: ExportService,
) -> None:
    """Sends the printable PDF of a saved invoice."""
    await query.answer()
    if not isinstance(query.message, Message):
        return
    invoice = await InvoiceRepository().get_for_user(user.id, callback_data.invoice_id)
    if invoice is None:
        await query.message.answer("Invoice not found.")
        return
    try:
        await _send_invoice_pdf(query.message, invoice, export_service)
    except Exception as e:
        logger.error(
            f"Failed to generate PDF for invoice {invoice.id}: {e}", exc_info=True
        )
        await query.message.answer(_invoice_summary(invoice))


@router.callback_query(InvoiceActionCallback.filter(F.action == "del"))
async def handle_invoice_delete(
    query: CallbackQuery, callback_data: InvoiceActionCallback
) -> None:
    """Asks to confirm deleting an invoice."""
    await query.answer()
    if not isinstance(query.message, Message):
        return
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(
            text="🗑 Yes, delete",
            callback_data=InvoiceActionCallback(
                action="delok", invoice_id=callback_data.invoice_id
            ).pack(),
        )
    )
    await query.message.answer(
        "Delete this invoice? This cannot be undone.",
        reply_markup=builder.as_markup(),
    )


@router.callback_query(InvoiceActionCallback.filter(F.action == "delok"))
async def handle_invoice_delete_confirmed(
    query: CallbackQuery, callback_data: InvoiceActionCallback, user: User
) -> None:
    """Deletes an invoice."""
    await query.answer()
    if not isinstance(query.message, Message):
        return
    try:
        deleted = await InvoiceRepository().delete_for_user(
            user.id, callback_data.invoice_id
        )
    except BaseORMException:
        logger.error(
            f"Failed to delete invoice {callback_data.invoice_id}", exc_info=True
        )
        await query.message.edit_text("❌ Could not delete the invoice.")
        return
    if deleted:
        logger.info(f"User {user.id} deleted invoice {callback_data.invoice_id}")
    await query.message.edit_text(
        "✅ Invoice deleted." if deleted else "Invoice not found."
    )

"""Inline keyboard builders."""

from aiogram.filters.callback_data import CallbackData
from aiogram.types import InlineKeyboardButton
from aiogram.utils.keyboard import InlineKeyboardBuilder

from rentmeter.core.models import Tenant


class TenantActionCallback(CallbackData, prefix="tnt"):
    """
    Callback data for tenant actions.
    - view: show tenant card
    - edit: ask for a new value of ``field``
    - del: ask to confirm deletion
    - delok: delete
    """

    action: str
    tenant_id: str
    field: str = ""


class SelectTenantCallback(CallbackData, prefix="inv_tenant"):
    """Callback data for selecting a tenant to invoice."""

    tenant_id: str


class InvoiceActionCallback(CallbackData, prefix="inv"):
    """Callback data for actions on a saved invoice (pdf, del, delok)."""

    action: str
    invoice_id: str


class InvoiceListCallback(CallbackData, prefix="inv_list"):
    """Callback data for filtering and sorting the invoice list."""

    tenant_id: str = ""
    sort: str = "date-desc"


class SettingsActionCallback(CallbackData, prefix="set"):
    """
    Callback data for settings actions.
    ``target`` is one of rate, invoices, tenants, account; ``confirmed``
    marks the second step of destructive actions.
    """

    target: str
    confirmed: bool = False


def tenants_keyboard(tenants: list[Tenant], action: str) -> InlineKeyboardBuilder:
    """One button per tenant, for either invoicing or managing them."""
    builder = InlineKeyboardBuilder()
    for tenant in tenants:
        if action == "invoice":
            callback_data = SelectTenantCallback(tenant_id=str(tenant.id)).pack()
        else:
            callback_data = TenantActionCallback(
                action="view", tenant_id=str(tenant.id)
            ).pack()
        builder.row(InlineKeyboardButton(text=tenant.name, callback_data=callback_data))
    return builder

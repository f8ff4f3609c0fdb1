"""FSM states for the bot."""

from aiogram.fsm.state import State, StatesGroup


class TenantCreation(StatesGroup):
    """States for adding a tenant."""

    enter_name = State()
    enter_base_rent = State()
    enter_contact = State()


class TenantEdit(StatesGroup):
    """States for editing one field of a tenant."""

    enter_value = State()


class InvoiceGeneration(StatesGroup):
    """States for the invoice generation process."""

    select_tenant = State()
    enter_date = State()
    enter_previous_reading = State()
    enter_current_reading = State()
    enter_base_rent = State()
    confirm = State()


class RateUpdate(StatesGroup):
    """States for changing the electricity rate."""

    enter_rate = State()

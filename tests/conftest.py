"""Pytest configuration and fixtures."""

from decimal import Decimal

import pytest
import pytest_asyncio
from tortoise import Tortoise

from rentmeter.core.models import Tenant, User
from rentmeter.core.repositories.invoice import InvoiceRepository
from rentmeter.core.repositories.settings import SettingsRepository
from rentmeter.core.repositories.tenant import TenantRepository
from rentmeter.services.billing import BillingService


@pytest_asyncio.fixture(scope="function")
async def db_session():
    """
    Provides a clean in-memory SQLite database for each test function.
    """
    await Tortoise.init(
        db_url="sqlite://:memory:",
        modules={"models": ["rentmeter.core.models"]},
    )
    await Tortoise.generate_schemas()

    yield

    await Tortoise.close_connections()


@pytest_asyncio.fixture
async def user(db_session) -> User:
    """A user with no data."""
    return await User.create(telegram_id=1001, name="Landlord")


@pytest_asyncio.fixture
async def tenant(user: User) -> Tenant:
    """A tenant of ``user`` paying 12000 base rent."""
    return await Tenant.create(user=user, name="Asha Verma", base_rent=Decimal("12000"))


@pytest.fixture
def billing_service() -> BillingService:
    """Provides a BillingService instance with real repositories."""
    return BillingService(
        tenant_repo=TenantRepository(),
        invoice_repo=InvoiceRepository(),
        settings_repo=SettingsRepository(),
    )

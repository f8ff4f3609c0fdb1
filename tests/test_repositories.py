"""Tests for the repository layer."""

from datetime import date
from decimal import Decimal

import pytest

from rentmeter.core.models import Invoice, Settings, Tenant, User
from rentmeter.core.repositories.invoice import InvoiceRepository
from rentmeter.core.repositories.settings import SettingsRepository
from rentmeter.core.repositories.tenant import TenantRepository
from rentmeter.core.repositories.user import UserRepository

pytestmark = pytest.mark.usefixtures("db_session")


async def _invoice(user: User, tenant: Tenant | None, day: date, total: str) -> Invoice:
    return await Invoice.create(
        user=user,
        tenant=tenant,
        tenant_name=tenant.name if tenant else "Former tenant",
        date=day,
        base_rent=Decimal(total),
        previous_month_reading=Decimal("0"),
        current_month_reading=Decimal("0"),
        units_consumed=Decimal("0"),
        electricity_rate=Decimal("15"),
        electricity_cost=Decimal("0"),
        total=Decimal(total),
    )


@pytest.mark.asyncio
async def test_user_get_or_create_by_telegram_id(db_session):
    repo = UserRepository()

    user, created = await repo.get_or_create_by_telegram_id(555, name="Meera")
    again, created_again = await repo.get_or_create_by_telegram_id(555, name="Other")

    assert created is True
    assert created_again is False
    assert again.id == user.id
    assert again.name == "Meera"


@pytest.mark.asyncio
async def test_user_update_name(user: User):
    updated = await UserRepository().update_name(user.id, "Mr. Rao")

    assert updated is not None
    assert (await User.get(id=user.id)).name == "Mr. Rao"


@pytest.mark.asyncio
async def test_tenant_create_and_list_newest_first(user: User):
    repo = TenantRepository()
    first = await repo.create(user_id=user.id, name="First", base_rent=Decimal("100"))
    second = await repo.create(user_id=user.id, name="Second", base_rent=Decimal("200"))
    second.created_at = first.created_at.replace(year=first.created_at.year + 1)
    await second.save(update_fields=["created_at"])

    tenants = await repo.list_for_user(user.id)

    assert [t.name for t in tenants] == ["Second", "First"]


@pytest.mark.asyncio
async def test_tenant_update_fields(user: User, tenant: Tenant):
    repo = TenantRepository()

    updated = await repo.update(user.id, tenant.id, contact="asha@example.com")
    assert updated is not None
    assert updated.contact == "asha@example.com"
    assert updated.name == "Asha Verma"

    updated = await repo.update(user.id, tenant.id, base_rent=Decimal("13000"))
    assert updated.base_rent == Decimal("13000")
    assert updated.contact == "asha@example.com"

    updated = await repo.update(user.id, tenant.id, contact="")
    assert updated.contact is None


@pytest.mark.asyncio
async def test_tenant_update_foreign_user_is_ignored(tenant: Tenant):
    stranger = await User.create(telegram_id=9009)

    result = await TenantRepository().update(stranger.id, tenant.id, name="Hijacked")

    assert result is None
    assert (await Tenant.get(id=tenant.id)).name == "Asha Verma"


@pytest.mark.asyncio
async def test_tenant_delete_keeps_invoices(user: User, tenant: Tenant):
    invoice = await _invoice(user, tenant, date(2024, 1, 1), "12000")

    deleted = await TenantRepository().delete_for_user(user.id, tenant.id)

    assert deleted == 1
    assert await Tenant.filter(id=tenant.id).count() == 0
    kept = await Invoice.get(id=invoice.id)
    assert kept.tenant_id is None
    assert kept.tenant_name == "Asha Verma"


@pytest.mark.asyncio
async def test_tenant_delete_missing_returns_zero(user: User, tenant: Tenant):
    stranger = await User.create(telegram_id=9009)

    assert await TenantRepository().delete_for_user(stranger.id, tenant.id) == 0
    assert await Tenant.filter(id=tenant.id).count() == 1


@pytest.mark.asyncio
async def test_delete_all_tenants_only_touches_owner(user: User, tenant: Tenant):
    other = await User.create(telegram_id=2002)
    foreign = await Tenant.create(user=other, name="Foreign", base_rent=500)
    await _invoice(user, tenant, date(2024, 1, 1), "100")

    deleted = await TenantRepository().delete_all_for_user(user.id)

    assert deleted == 1
    assert await Tenant.filter(id=foreign.id).count() == 1
    assert await Invoice.filter(user_id=user.id, tenant_id__isnull=True).count() == 1


@pytest.mark.asyncio
async def test_invoice_list_filter_search_and_sort(user: User, tenant: Tenant):
    other = await Tenant.create(user=user, name="Ravi Kumar", base_rent=8000)
    await _invoice(user, tenant, date(2024, 1, 1), "300")
    await _invoice(user, tenant, date(2024, 3, 1), "100")
    await _invoice(user, other, date(2024, 2, 1), "200")
    stranger = await User.create(telegram_id=2002)
    await _invoice(stranger, None, date(2024, 4, 1), "999")

    repo = InvoiceRepository()

    by_date = await repo.list_for_user(user.id)
    assert [i.date for i in by_date] == [
        date(2024, 3, 1),
        date(2024, 2, 1),
        date(2024, 1, 1),
    ]
    oldest_first = await repo.list_for_user(user.id, sort="date-asc")
    assert oldest_first[0].date == date(2024, 1, 1)

    by_total = await repo.list_for_user(user.id, sort="total-desc")
    assert [i.total for i in by_total] == [
        Decimal("300"),
        Decimal("200"),
        Decimal("100"),
    ]
    cheapest = await repo.list_for_user(user.id, sort="total-asc")
    assert cheapest[0].total == Decimal("100")

    only_asha = await repo.list_for_user(user.id, tenant_id=tenant.id)
    assert len(only_asha) == 2

    found = await repo.list_for_user(user.id, search="  ravi ")
    assert [i.tenant_name for i in found] == ["Ravi Kumar"]


@pytest.mark.asyncio
async def test_invoice_list_rejects_unknown_sort(user: User):
    with pytest.raises(ValueError):
        await InvoiceRepository().list_for_user(user.id, sort="name")


@pytest.mark.asyncio
async def test_invoice_delete_scoped_to_owner(user: User, tenant: Tenant):
    invoice = await _invoice(user, tenant, date(2024, 1, 1), "100")
    stranger = await User.create(telegram_id=2002)
    repo = InvoiceRepository()

    assert await repo.delete_for_user(stranger.id, invoice.id) == 0
    assert await repo.delete_for_user(user.id, invoice.id) == 1
    assert await Invoice.filter(id=invoice.id).count() == 0


@pytest.mark.asyncio
async def test_delete_all_invoices(user: User, tenant: Tenant):
    await _invoice(user, tenant, date(2024, 1, 1), "100")
    await _invoice(user, tenant, date(2024, 2, 1), "100")
    stranger = await User.create(telegram_id=2002)
    await _invoice(stranger, None, date(2024, 1, 1), "100")

    assert await InvoiceRepository().delete_all_for_user(user.id) == 2
    assert await Invoice.all().count() == 1


@pytest.mark.asyncio
async def test_user_stats(user: User, tenant: Tenant):
    await _invoice(user, tenant, date(2024, 1, 1), "12450")
    await _invoice(user, tenant, date(2024, 2, 1), "12000.50")

    stats = await UserRepository().get_stats(user.id)

    assert stats.total_invoices == 2
    assert stats.total_tenants == 1
    assert stats.total_revenue == Decimal("24450.50")


@pytest.mark.asyncio
async def test_user_stats_empty(user: User):
    stats = await UserRepository().get_stats(user.id)

    assert stats.total_invoices == 0
    assert stats.total_tenants == 0
    assert stats.total_revenue == 0


@pytest.mark.asyncio
async def test_settings_upsert_creates_then_updates(user: User):
    repo = SettingsRepository()
    assert await repo.get_by_user(user.id) is None

    await repo.upsert_rate(user.id, Decimal("15"))
    await repo.upsert_rate(user.id, Decimal("17.5"))

    assert await Settings.filter(user_id=user.id).count() == 1
    settings = await repo.get_by_user(user.id)
    assert settings.electricity_rate == Decimal("17.5")


@pytest.mark.asyncio
async def test_delete_account_removes_everything(user: User, tenant: Tenant):
    await _invoice(user, tenant, date(2024, 1, 1), "100")
    await SettingsRepository().upsert_rate(user.id, Decimal("20"))
    other = await User.create(telegram_id=2002)
    await Tenant.create(user=other, name="Kept", base_rent=100)

    assert await UserRepository().delete_account(user.id) is True

    assert await User.filter(id=user.id).count() == 0
    assert await Invoice.all().count() == 0
    assert await Tenant.filter(user_id=user.id).count() == 0
    assert await Settings.all().count() == 0
    assert await Tenant.filter(user_id=other.id).count() == 1
    assert await UserRepository().delete_account(user.id) is False

"""Integration tests for the BillingService."""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from tortoise.exceptions import OperationalError

from rentmeter.core.calculations import InconsistentReadingError, InvoiceValidationError
from rentmeter.core.models import Invoice, Settings, Tenant, User
from rentmeter.core.repositories.invoice import InvoiceRepository
from rentmeter.core.repositories.settings import SettingsRepository
from rentmeter.core.repositories.tenant import TenantRepository
from rentmeter.services.billing import BillingService, LookupFailure, StalePreview

pytestmark = pytest.mark.usefixtures("db_session")


async def _invoice(user: User, tenant: Tenant, day: date, reading: str) -> Invoice:
    return await Invoice.create(
        user=user,
        tenant=tenant,
        tenant_name=tenant.name,
        date=day,
        base_rent=tenant.base_rent,
        previous_month_reading=Decimal("0"),
        current_month_reading=Decimal(reading),
        units_consumed=Decimal(reading),
        electricity_rate=Decimal("15"),
        electricity_cost=Decimal(reading) * 15,
        total=tenant.base_rent + Decimal(reading) * 15,
    )


class BrokenInvoiceRepository(InvoiceRepository):
    """Invoice repository whose carry-over lookup always fails."""

    async def get_last_for_tenant(self, user_id, tenant_id):
        raise OperationalError("database is locked")


class BrokenSettingsRepository(SettingsRepository):
    """Settings repository that cannot reach the store."""

    async def get_by_user(self, user_id):
        raise OperationalError("connection refused")


@pytest.mark.asyncio
async def test_previous_reading_is_latest_by_date(
    billing_service: BillingService, user: User, tenant: Tenant
):
    """Carry-over uses the newest invoice date, not the insertion order."""
    await _invoice(user, tenant, date(2024, 3, 1), "200")
    await _invoice(user, tenant, date(2024, 1, 1), "100")
    await _invoice(user, tenant, date(2024, 2, 1), "150")

    reading = await billing_service.resolve_previous_reading(user.id, tenant.id)

    assert reading == Decimal("200")


@pytest.mark.asyncio
async def test_previous_reading_without_history_is_zero(
    billing_service: BillingService, user: User, tenant: Tenant
):
    assert await billing_service.resolve_previous_reading(user.id, tenant.id) == 0


@pytest.mark.asyncio
async def test_previous_reading_ignores_other_tenants_and_users(
    billing_service: BillingService, user: User, tenant: Tenant
):
    other_tenant = await Tenant.create(user=user, name="Other", base_rent=5000)
    other_user = await User.create(telegram_id=2002)
    await _invoice(user, other_tenant, date(2024, 5, 1), "900")
    await _invoice(other_user, tenant, date(2024, 5, 1), "800")
    await _invoice(user, tenant, date(2024, 4, 1), "120")

    assert await billing_service.resolve_previous_reading(user.id, tenant.id) == 120


@pytest.mark.asyncio
async def test_previous_reading_for_unknown_tenant_fails(
    billing_service: BillingService, user: User
):
    with pytest.raises(LookupFailure):
        await billing_service.resolve_previous_reading(user.id, uuid4())


@pytest.mark.asyncio
async def test_previous_reading_store_error_is_lookup_failure(
    user: User, tenant: Tenant
):
    service = BillingService(
        tenant_repo=TenantRepository(),
        invoice_repo=BrokenInvoiceRepository(),
        settings_repo=SettingsRepository(),
    )
    with pytest.raises(LookupFailure):
        await service.resolve_previous_reading(user.id, tenant.id)


@pytest.mark.asyncio
async def test_resolve_rate_defaults_then_uses_settings(
    billing_service: BillingService, user: User
):
    assert await billing_service.resolve_rate(user.id) == Decimal("15")

    await Settings.create(user=user, electricity_rate=Decimal("18.25"))

    assert await billing_service.resolve_rate(user.id) == Decimal("18.25")


@pytest.mark.asyncio
async def test_resolve_rate_uses_configured_default(user: User):
    service = BillingService(
        tenant_repo=TenantRepository(),
        invoice_repo=InvoiceRepository(),
        settings_repo=SettingsRepository(),
        default_rate=Decimal("9"),
    )
    assert await service.resolve_rate(user.id) == Decimal("9")


@pytest.mark.asyncio
async def test_resolve_rate_store_error_is_lookup_failure(user: User):
    service = BillingService(
        tenant_repo=TenantRepository(),
        invoice_repo=InvoiceRepository(),
        settings_repo=BrokenSettingsRepository(),
    )
    with pytest.raises(LookupFailure):
        await service.resolve_rate(user.id)


@pytest.mark.asyncio
async def test_generate_invoice_carries_over_and_snapshots(
    billing_service: BillingService, user: User, tenant: Tenant
):
    await _invoice(user, tenant, date(2024, 6, 1), "500")

    invoice = await billing_service.generate_invoice(
        user.id, tenant.id, current_month_reading="530", invoice_date=date(2024, 7, 1)
    )

    db_invoice = await Invoice.get(id=invoice.id)
    assert db_invoice.tenant_id == tenant.id
    assert db_invoice.tenant_name == "Asha Verma"
    assert db_invoice.base_rent == Decimal("12000")
    assert db_invoice.previous_month_reading == Decimal("500")
    assert db_invoice.current_month_reading == Decimal("530")
    assert db_invoice.units_consumed == Decimal("30")
    assert db_invoice.electricity_rate == Decimal("15")
    assert db_invoice.electricity_cost == Decimal("450")
    assert db_invoice.total == Decimal("12450")


@pytest.mark.asyncio
async def test_generate_invoice_chains_readings(
    billing_service: BillingService, user: User, tenant: Tenant
):
    first = await billing_service.generate_invoice(
        user.id, tenant.id, current_month_reading="100", invoice_date=date(2024, 1, 1)
    )
    second = await billing_service.generate_invoice(
        user.id, tenant.id, current_month_reading="160", invoice_date=date(2024, 2, 1)
    )

    assert first.previous_month_reading == 0
    assert second.previous_month_reading == Decimal("100")
    assert second.units_consumed == Decimal("60")


@pytest.mark.asyncio
async def test_stored_rate_survives_settings_change(
    billing_service: BillingService, user: User, tenant: Tenant
):
    settings_repo = SettingsRepository()
    await settings_repo.upsert_rate(user.id, Decimal("15"))
    invoice = await billing_service.generate_invoice(
        user.id, tenant.id, current_month_reading="10", invoice_date=date(2024, 1, 1)
    )

    await settings_repo.upsert_rate(user.id, Decimal("20"))

    db_invoice = await Invoice.get(id=invoice.id)
    assert db_invoice.electricity_rate == Decimal("15")
    assert db_invoice.electricity_cost == Decimal("150")
    assert await billing_service.resolve_rate(user.id) == Decimal("20")


@pytest.mark.asyncio
async def test_snapshot_survives_tenant_edit(
    billing_service: BillingService, user: User, tenant: Tenant
):
    invoice = await billing_service.generate_invoice(
        user.id, tenant.id, current_month_reading="10", invoice_date=date(2024, 1, 1)
    )

    await TenantRepository().update(
        user.id, tenant.id, name="Asha V.", base_rent=Decimal("15000")
    )

    db_invoice = await Invoice.get(id=invoice.id)
    assert db_invoice.tenant_name == "Asha Verma"
    assert db_invoice.base_rent == Decimal("12000")


@pytest.mark.asyncio
async def test_generate_invoice_explicit_lower_reading_is_rejected(
    billing_service: BillingService, user: User, tenant: Tenant
):
    with pytest.raises(InvoiceValidationError) as exc_info:
        await billing_service.generate_invoice(
            user.id,
            tenant.id,
            current_month_reading="40",
            previous_month_reading="100",
            invoice_date=date(2024, 1, 1),
        )

    assert isinstance(
        exc_info.value.errors["current_month_reading"], InconsistentReadingError
    )
    assert await Invoice.all().count() == 0


@pytest.mark.asyncio
async def test_generate_invoice_carried_over_lower_reading_floors(
    billing_service: BillingService, user: User, tenant: Tenant
):
    await _invoice(user, tenant, date(2024, 1, 1), "100")

    invoice = await billing_service.generate_invoice(
        user.id, tenant.id, current_month_reading="40", invoice_date=date(2024, 2, 1)
    )

    assert invoice.previous_month_reading == Decimal("100")
    assert invoice.units_consumed == 0
    assert invoice.total == Decimal("12000")


@pytest.mark.asyncio
async def test_generate_invoice_with_rent_override(
    billing_service: BillingService, user: User, tenant: Tenant
):
    invoice = await billing_service.generate_invoice(
        user.id,
        tenant.id,
        current_month_reading="10",
        previous_month_reading="0",
        base_rent="11000",
        invoice_date=date(2024, 1, 1),
    )

    assert invoice.base_rent == Decimal("11000")
    assert invoice.total == Decimal("11150")


@pytest.mark.asyncio
async def test_generate_invoice_when_carry_over_fails_starts_from_zero(
    user: User, tenant: Tenant
):
    service = BillingService(
        tenant_repo=TenantRepository(),
        invoice_repo=BrokenInvoiceRepository(),
        settings_repo=SettingsRepository(),
    )

    invoice = await service.generate_invoice(
        user.id, tenant.id, current_month_reading="25", invoice_date=date(2024, 1, 1)
    )

    assert invoice.previous_month_reading == 0
    assert invoice.units_consumed == Decimal("25")


@pytest.mark.asyncio
async def test_generate_invoice_for_foreign_tenant_fails(
    billing_service: BillingService, tenant: Tenant
):
    stranger = await User.create(telegram_id=3003)
    with pytest.raises(LookupFailure):
        await billing_service.generate_invoice(
            stranger.id,
            tenant.id,
            current_month_reading="10",
            invoice_date=date(2024, 1, 1),
        )


@pytest.mark.asyncio
async def test_preview_does_not_save(
    billing_service: BillingService, user: User, tenant: Tenant
):
    preview = await billing_service.preview_invoice(
        user.id, tenant.id, current_month_reading="10", invoice_date=date(2024, 1, 1)
    )

    assert preview.previous_carried_over is True
    assert preview.computation.total == Decimal("12150")
    assert await Invoice.all().count() == 0


@pytest.mark.asyncio
async def test_stored_invoice_matches_computation_for_fractional_inputs(
    billing_service: BillingService, user: User, tenant: Tenant
):
    await SettingsRepository().upsert_rate(user.id, Decimal("7.1234"))

    invoice = await billing_service.generate_invoice(
        user.id,
        tenant.id,
        current_month_reading="0.02",
        previous_month_reading="0.01",
        base_rent="999.99",
        invoice_date=date(2024, 1, 1),
    )

    db_invoice = await Invoice.get(id=invoice.id)
    for field in (
        "base_rent",
        "previous_month_reading",
        "current_month_reading",
        "units_consumed",
        "electricity_rate",
        "electricity_cost",
        "total",
    ):
        assert getattr(db_invoice, field) == getattr(invoice, field), field
    assert db_invoice.units_consumed == (
        db_invoice.current_month_reading - db_invoice.previous_month_reading
    )
    assert db_invoice.electricity_cost == Decimal("0.071234")
    assert db_invoice.total == Decimal("1000.061234")


@pytest.mark.asyncio
async def test_smallest_accepted_rate_survives_storage(
    billing_service: BillingService, user: User, tenant: Tenant
):
    await SettingsRepository().upsert_rate(user.id, Decimal("0.0001"))

    assert await billing_service.resolve_rate(user.id) == Decimal("0.0001")
    invoice = await billing_service.generate_invoice(
        user.id, tenant.id, current_month_reading="10", invoice_date=date(2024, 1, 1)
    )
    assert invoice.electricity_cost == Decimal("0.001")


@pytest.mark.asyncio
async def test_concurrent_generation_chains_previous_readings(
    billing_service: BillingService, user: User, tenant: Tenant
):
    await _invoice(user, tenant, date(2024, 1, 1), "100")

    first, second = await asyncio.gather(
        billing_service.generate_invoice(
            user.id,
            tenant.id,
            current_month_reading="150",
            invoice_date=date(2024, 2, 1),
        ),
        billing_service.generate_invoice(
            user.id,
            tenant.id,
            current_month_reading="200",
            invoice_date=date(2024, 3, 1),
        ),
    )

    assert first.previous_month_reading == Decimal("100")
    assert second.previous_month_reading == Decimal("150")
    assert second.units_consumed == Decimal("50")


@pytest.mark.asyncio
async def test_tenant_locks_are_released_after_generation(
    billing_service: BillingService, user: User, tenant: Tenant
):
    await billing_service.generate_invoice(
        user.id, tenant.id, current_month_reading="10", invoice_date=date(2024, 1, 1)
    )

    assert len(billing_service._tenant_locks) == 0


@pytest.mark.asyncio
async def test_generate_invoice_refuses_changed_carry_over(
    billing_service: BillingService, user: User, tenant: Tenant
):
    await _invoice(user, tenant, date(2024, 1, 1), "100")
    preview = await billing_service.preview_invoice(
        user.id, tenant.id, current_month_reading="300", invoice_date=date(2024, 3, 1)
    )
    await _invoice(user, tenant, date(2024, 2, 1), "150")

    with pytest.raises(StalePreview) as exc_info:
        await billing_service.generate_invoice(
            user.id,
            tenant.id,
            current_month_reading="300",
            invoice_date=date(2024, 3, 1),
            expected_previous_reading=preview.computation.previous_month_reading,
        )

    assert exc_info.value.expected == Decimal("100")
    assert exc_info.value.preview.computation.previous_month_reading == Decimal("150")
    assert await Invoice.all().count() == 2


@pytest.mark.asyncio
async def test_generate_invoice_accepts_unchanged_carry_over(
    billing_service: BillingService, user: User, tenant: Tenant
):
    await _invoice(user, tenant, date(2024, 1, 1), "100")

    invoice = await billing_service.generate_invoice(
        user.id,
        tenant.id,
        current_month_reading="130",
        invoice_date=date(2024, 2, 1),
        expected_previous_reading=Decimal("100.00"),
    )

    assert invoice.units_consumed == Decimal("30")

"""Service responsible for generating invoices."""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from tortoise.exceptions import BaseORMException

from rentmeter.core import calculations
from rentmeter.core.calculations import DEFAULT_ELECTRICITY_RATE, NumberInput
from rentmeter.core.models import Invoice, Tenant
from rentmeter.core.repositories.invoice import InvoiceRepository
from rentmeter.core.repositories.settings import SettingsRepository
from rentmeter.core.repositories.tenant import TenantRepository

logger = logging.getLogger(__name__)


class BillingError(Exception):
    """Custom exception for billing errors."""


class LookupFailure(BillingError):
    """A record needed for billing could not be read (missing or store error)."""


class StalePreview(BillingError):
    """The carried-over reading changed after the preview was shown."""

    def __init__(self, expected: Decimal, preview: InvoicePreview):
        super().__init__(
            f"Previous reading changed from {expected} to "
            f"{preview.computation.previous_month_reading}."
        )
        self.expected = expected
        self.preview = preview


@dataclass(frozen=True)
class InvoicePreview:
    """A computed, not yet saved invoice."""

    tenant: Tenant
    computation: calculations.InvoiceComputation
    previous_carried_over: bool


class BillingService:
    """Orchestrates the invoice generation process."""

    def __init__(
        self,
        tenant_repo: TenantRepository,
        invoice_repo: InvoiceRepository,
        settings_repo: SettingsRepository,
        default_rate: Decimal = DEFAULT_ELECTRICITY_RATE,
    ):
        self._tenant_repo = tenant_repo
        self._invoice_repo = invoice_repo
        self._settings_repo = settings_repo
        self._default_rate = default_rate
        # Entries disappear once no caller holds or awaits the lock.
        self._tenant_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _tenant_lock(self, tenant_id: UUID | str) -> asyncio.Lock:
        key = str(tenant_id)
        lock = self._tenant_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._tenant_locks[key] = lock
        return lock

    async def resolve_previous_reading(
        self, user_id: UUID, tenant_id: UUID | str
    ) -> Decimal:
        """
        Returns the reading to carry over into the tenant's next invoice.

        This is the current reading of the tenant's most recent invoice, or 0
        if the tenant has never been invoiced.

        Raises:
            LookupFailure: if the tenant is unknown or the store fails.
        """
        try:
            tenant = await self._tenant_repo.get_for_user(user_id, tenant_id)
            if tenant is None:
                raise LookupFailure(f"Tenant with id {tenant_id} not found.")
            last = await self._invoice_repo.get_last_for_tenant(user_id, tenant.id)
        except BaseORMException as e:
            raise LookupFailure(
                f"Could not read invoices of tenant {tenant_id}: {e}"
            ) from e

        if last is None:
            return Decimal("0")
        return last.current_month_reading

    async def resolve_rate(self, user_id: UUID) -> Decimal:
        """
        Returns the electricity rate to snapshot onto a new invoice.

        Raises:
            LookupFailure: if the store fails.
        """
        try:
            settings = await self._settings_repo.get_by_user(user_id)
        except BaseORMException as e:
            raise LookupFailure(f"Could not read settings: {e}") from e
        if settings is None:
            return self._default_rate
        return settings.electricity_rate

    async def preview_invoice(
        self,
        user_id: UUID,
        tenant_id: UUID | str,
        current_month_reading: NumberInput,
        invoice_date: date,
        previous_month_reading: NumberInput = None,
        base_rent: NumberInput = None,
    ) -> InvoicePreview:
        """
        Computes an invoice for a tenant without saving it.

        Missing ``previous_month_reading`` is carried over from the tenant's
        last invoice; missing ``base_rent`` is taken from the tenant.

        Raises:
            LookupFailure: if the tenant or the rate cannot be read.
            InvoiceValidationError: if the inputs are invalid.
        """
        try:
            tenant = await self._tenant_repo.get_for_user(user_id, tenant_id)
        except BaseORMException as e:
            raise LookupFailure(f"Could not read tenant {tenant_id}: {e}") from e
        if tenant is None:
            raise LookupFailure(f"Tenant with id {tenant_id} not found.")

        rate = await self.resolve_rate(user_id)

        carried_over = previous_month_reading is None
        if carried_over:
            try:
                previous_month_reading = await self.resolve_previous_reading(
                    user_id, tenant.id
                )
            except LookupFailure as e:
                logger.warning(
                    f"Carry-over lookup failed for tenant {tenant.id}, "
                    f"starting from 0: {e}"
                )
                previous_month_reading = Decimal("0")

        computation = calculations.compute_invoice(
            current_month_reading=current_month_reading,
            base_rent=tenant.base_rent if base_rent is None else base_rent,
            electricity_rate=rate,
            invoice_date=invoice_date,
            previous_month_reading=previous_month_reading,
            previous_carried_over=carried_over,
        )
        return InvoicePreview(
            tenant=tenant, computation=computation, previous_carried_over=carried_over
        )

    async def generate_invoice(
        self,
        user_id: UUID,
        tenant_id: UUID | str,
        current_month_reading: NumberInput,
        invoice_date: date,
        previous_month_reading: NumberInput = None,
        base_rent: NumberInput = None,
        expected_previous_reading: Decimal | None = None,
    ) -> Invoice:
        """
        Computes and saves an invoice for a tenant.

        The tenant name, base rent and electricity rate are copied into the
        invoice. Generation is serialized per tenant so two concurrent
        requests cannot carry over the same previous reading.

        Args:
            expected_previous_reading: The carried-over reading the user
                confirmed. If the carry-over differs by now, nothing is saved.

        Raises:
            LookupFailure: if the tenant or the rate cannot be read.
            InvoiceValidationError: if the inputs are invalid.
            StalePreview: if the carried-over reading is not the expected one.
        """
        async with self._tenant_lock(tenant_id):
            preview = await self.preview_invoice(
                user_id,
                tenant_id,
                current_month_reading=current_month_reading,
                invoice_date=invoice_date,
                previous_month_reading=previous_month_reading,
                base_rent=base_rent,
            )
            if (
                expected_previous_reading is not None
                and preview.previous_carried_over
                and preview.computation.previous_month_reading
                != expected_previous_reading
            ):
                raise StalePreview(expected_previous_reading, preview)
            invoice = await self.save_preview(user_id, preview)
        return invoice

    async def save_preview(self, user_id: UUID, preview: InvoicePreview) -> Invoice:
        """Persists a computed invoice with its snapshot fields."""
        result = preview.computation
        invoice = await self._invoice_repo.create(
            user_id=user_id,
            tenant_id=preview.tenant.id,
            tenant_name=preview.tenant.name,
            date=result.invoice_date,
            base_rent=result.base_rent,
            previous_month_reading=result.previous_month_reading,
            current_month_reading=result.current_month_reading,
            units_consumed=result.units_consumed,
            electricity_rate=result.electricity_rate,
            electricity_cost=result.electricity_cost,
            total=result.total,
        )
        logger.info(
            f"Created invoice {invoice.id} for tenant {preview.tenant.name}: "
            f"{result.units_consumed} units, total {result.total}"
        )
        return invoice
